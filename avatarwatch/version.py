"""Version information for avatarwatch."""

import subprocess
from datetime import datetime, timezone

__version__ = "0.1.0"


def get_version_info() -> dict:
    """Get version, commit, and build date."""
    try:
        commit = (
            subprocess.check_output(
                ["git", "rev-parse", "--short", "HEAD"], stderr=subprocess.DEVNULL
            )
            .decode()
            .strip()
        )
    except (OSError, subprocess.CalledProcessError):
        commit = "unknown"

    return {
        "version": __version__,
        "commit": commit,
        "build_date": datetime.now(timezone.utc).isoformat(),
    }
