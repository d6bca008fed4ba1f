"""Mattermost sessions: API client (REST + WebSocket) and legacy webhooks."""

from matterbridge.adapters.mattermost.client import (
    MattermostClient,
    PasswordCredentials,
    TokenCredentials,
)
from matterbridge.adapters.mattermost.directory import Directory
from matterbridge.adapters.mattermost.session import APISession
from matterbridge.adapters.mattermost.webhook import WebhookSession

__all__ = [
    "APISession",
    "Directory",
    "MattermostClient",
    "PasswordCredentials",
    "TokenCredentials",
    "WebhookSession",
]
