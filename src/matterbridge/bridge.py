"""Bridge: builds both sessions and the Relay from config and runs them."""

from __future__ import annotations

import asyncio
import contextlib
from enum import Enum

from loguru import logger

from matterbridge.adapters.base import RemoteSession
from matterbridge.adapters.irc import IRCClient, _connect_with_backoff
from matterbridge.adapters.mattermost import (
    APISession,
    MattermostClient,
    PasswordCredentials,
    TokenCredentials,
    WebhookSession,
)
from matterbridge.adapters.mattermost.client import Credentials
from matterbridge.config.schema import Config
from matterbridge.errors import BridgeError
from matterbridge.gateway.relay import Relay
from matterbridge.gateway.router import ChannelMap
from matterbridge.media import GiphyClient


class BridgeState(str, Enum):
    INITIALIZING = "initializing"
    CONNECTING = "connecting"
    RUNNING = "running"
    STOPPED = "stopped"


def build_credentials(config: Config) -> Credentials:
    """Token credentials when a token is configured, password credentials otherwise."""
    if config.mattermost_token:
        return TokenCredentials(token=config.mattermost_token)
    return PasswordCredentials(login=config.mattermost_login, password=config.mattermost_password)


def build_remote_session(config: Config) -> RemoteSession:
    """Pick the session variant once from ``mattermost.mode``."""
    if config.mattermost_mode == "webhook":
        return WebhookSession(
            config.mattermost_webhook_url,
            bind_address=config.mattermost_bind_address,
            tokens=config.webhook_tokens,
            icon_url=config.mattermost_icon_url,
            tls_verify=config.mattermost_tls_verify,
            queue_size=config.mattermost_queue_size,
        )
    client = MattermostClient(
        config.mattermost_server,
        no_tls=config.mattermost_no_tls,
        tls_verify=config.mattermost_tls_verify,
    )
    return APISession(client, build_credentials(config), config.mattermost_team)


def build_irc_client(config: Config, channel_map: ChannelMap) -> IRCClient:
    kwargs: dict[str, str] = {}
    if config.irc_use_sasl:
        kwargs["sasl_username"] = config.irc_sasl_user or config.irc_nick
        kwargs["sasl_password"] = config.irc_sasl_password
    return IRCClient(
        config.irc_nick,
        channel_map=channel_map,
        show_join_part=config.mattermost_show_join_part,
        nickserv_nick=config.irc_nickserv_nick,
        nickserv_password=config.irc_nickserv_password,
        **kwargs,
    )


class Bridge:
    """INITIALIZING -> CONNECTING -> RUNNING, then STOPPED once ``stop`` is set."""

    def __init__(
        self,
        config: Config,
        *,
        remote: RemoteSession | None = None,
        irc: IRCClient | None = None,
        media: GiphyClient | None = None,
    ) -> None:
        self.state = BridgeState.INITIALIZING
        self._config = config
        self.channel_map = ChannelMap.from_config(
            config.mappings,
            default_irc=config.irc_channel,
            default_remote=config.mattermost_channel,
        )
        self.remote = remote or build_remote_session(config)
        self.irc = irc or build_irc_client(config, self.channel_map)
        self.media = media or GiphyClient(config.giphy_api_key)
        self.relay = Relay(
            self.channel_map,
            self.irc,
            self.remote,
            media=self.media,
            remote_nick_format=config.mattermost_remote_nick_format,
            prefix_messages_with_nick=config.mattermost_prefix_messages_with_nick,
            irc_remote_nick_format=config.irc_remote_nick_format,
            slack_circumfix=config.irc_use_slack_circumfix,
            nick_formatter=config.mattermost_nick_formatter,
            nicks_per_row=config.mattermost_nicks_per_row,
            queue_size=config.mattermost_queue_size,
        )
        self.irc.sink = self.relay
        logger.info("Bridge initialized ({} mode, {} mappings)", self.remote.name, len(self.channel_map.all_mappings()))

    async def _join_remote_channels(self) -> None:
        for channel in self.channel_map.remote_channels():
            try:
                await self.remote.join_channel(channel)
            except BridgeError as exc:
                logger.warning("Mattermost: cannot join {}: {}", channel, exc)

    async def run(self, stop: asyncio.Event | None = None) -> None:
        """Connect both sides and relay until ``stop`` is set.

        Fatal remote errors (rejected credentials, unknown team) propagate.
        """
        stop = stop or asyncio.Event()
        self.state = BridgeState.CONNECTING
        irc_task: asyncio.Task | None = None
        try:
            await self.remote.connect()
            await self._join_remote_channels()
            cfg = self._config
            irc_task = asyncio.create_task(
                _connect_with_backoff(
                    self.irc,
                    cfg.irc_server,
                    cfg.irc_port,
                    cfg.irc_tls,
                    cfg.irc_tls_verify,
                    password=cfg.irc_password,
                    stop=stop,
                ),
                name="irc-connect",
            )
            self.state = BridgeState.RUNNING
            logger.info("Bridge running")
            await self.relay.run(stop)
        finally:
            await self._shutdown(irc_task)

    async def _shutdown(self, irc_task: asyncio.Task | None) -> None:
        if irc_task is not None:
            irc_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await irc_task
        if self.irc.connected:
            try:
                await self.irc.disconnect(expected=True)
            except (OSError, RuntimeError) as exc:
                logger.warning("IRC disconnect failed: {}", exc)
        await self.remote.close()
        await self.media.aclose()
        self.state = BridgeState.STOPPED
        logger.info("Bridge stopped")
