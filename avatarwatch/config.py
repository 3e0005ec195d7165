"""Configuration: paths, provider settings and refresh intervals."""

import os
from pathlib import Path

# Paths
DB_PATH = Path(
    os.environ.get("AVATARWATCH_DB", Path.home() / ".avatarwatch" / "data.sqlite")
)
SERVER_PORT = int(os.environ.get("AVATARWATCH_PORT", "8430"))

# Avatar provider
HEYGEN_API_BASE = os.environ.get("HEYGEN_API_BASE", "https://api.heygen.com/v1")
HEYGEN_API_KEY = os.environ.get("HEYGEN_API_KEY", "")
HEYGEN_PLACEHOLDER_KEY = "your_heygen_api_key_here"
HEYGEN_TIMEOUT = float(os.environ.get("HEYGEN_TIMEOUT", "15"))

# Reconciliation loop
SYNC_INTERVAL = float(os.environ.get("AVATARWATCH_SYNC_INTERVAL", "10"))

# Sessions in the trash are hard deleted after this many days
TRASH_RETENTION_DAYS = int(os.environ.get("AVATARWATCH_TRASH_DAYS", "30"))

SESSION_STATUSES = ("active", "connecting", "connected", "completed", "error")
ACTIVE_STATUSES = ("active", "connecting", "connected")
MESSAGE_SENDERS = ("user", "avatar")
