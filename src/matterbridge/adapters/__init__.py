"""Transport adapters: IRC (pydle) and the Mattermost remote session."""

from matterbridge.adapters.base import RemoteSession, SessionState

__all__ = ["RemoteSession", "SessionState"]
