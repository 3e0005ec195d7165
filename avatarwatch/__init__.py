"""Monitoring dashboard for avatar chat sessions."""

from avatarwatch.version import __version__

__all__ = ["__version__"]
