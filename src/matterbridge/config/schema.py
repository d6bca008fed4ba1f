"""Config schema and accessor."""

from __future__ import annotations

import os
from typing import Any

from loguru import logger

from matterbridge.errors import BridgeConfigurationError

# Env keys that override config (centralized; loaded once per reload)
_ENV_OVERRIDE_KEYS = (
    "MATTERBRIDGE_MATTERMOST_PASSWORD",
    "MATTERBRIDGE_MATTERMOST_TOKEN",
    "MATTERBRIDGE_IRC_PASSWORD",
    "MATTERBRIDGE_NICKSERV_PASSWORD",
    "MATTERBRIDGE_GIPHY_API_KEY",
    "MATTERBRIDGE_IRC_TLS_VERIFY",
)

MODES = ("api", "webhook")
NICK_FORMATTERS = ("plain", "table")

# Giphy public beta key; rate limited, override with general.giphy_api_key
GIPHY_PUBLIC_KEY = "dc6zaTOxFJmzC"


def _load_env_overrides() -> dict[str, str]:
    """Load env overrides once per reload."""
    return {k: os.environ.get(k, "") for k in _ENV_OVERRIDE_KEYS}


def _parse_bool_env(val: str) -> bool | None:
    """Parse env string to bool; None if not a recognized bool."""
    v = val.lower()
    if v in ("1", "true", "yes"):
        return True
    if v in ("0", "false", "no"):
        return False
    return None


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    val = data.get(name)
    return val if isinstance(val, dict) else {}


def _optional_str(val: Any) -> str | None:
    if val is None:
        return None
    return str(val)


class Config:
    """Config accessor with attribute-style access for nested keys."""

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self._data = data or {}
        self._env: dict[str, str] = _load_env_overrides()

    def reload(self, data: dict[str, Any], *, validate: bool = True) -> None:
        """Replace config data and re-read env overrides."""
        self._data = data or {}
        self._env = _load_env_overrides()
        if validate:
            self._validate()
        logger.debug("Config reloaded: {} mappings, mode={}", len(self.mappings), self.mattermost_mode)

    def _validate(self) -> None:
        """Validate config structure; raise BridgeConfigurationError on failure."""
        mappings = self._data.get("mappings")
        if mappings is not None and not isinstance(mappings, list):
            raise BridgeConfigurationError(
                "mappings must be a list",
                code="invalid_mappings",
                details={"type": type(mappings).__name__},
            )
        for i, item in enumerate(self.mappings):
            if not isinstance(item, dict):
                raise BridgeConfigurationError(
                    f"mappings[{i}] must be a dict",
                    code="invalid_mapping_item",
                    details={"index": i},
                )
            for key in ("irc", "mattermost"):
                if not item.get(key):
                    raise BridgeConfigurationError(
                        f"mappings[{i}] missing {key}",
                        code=f"missing_mapping_{key}",
                        details={"index": i},
                    )

        for key, value in (
            ("irc.server", self.irc_server),
            ("irc.nick", self.irc_nick),
            ("irc.channel", self.irc_channel),
            ("mattermost.channel", self.mattermost_channel),
        ):
            if not value:
                raise BridgeConfigurationError(f"{key} is required", code="missing_key", details={"key": key})

        mode = self.mattermost_mode
        if mode not in MODES:
            raise BridgeConfigurationError(
                f"mattermost.mode must be one of {', '.join(MODES)}",
                code="invalid_mode",
                details={"mode": mode},
            )
        if mode == "api":
            if not self.mattermost_server or not self.mattermost_team:
                raise BridgeConfigurationError(
                    "mattermost.server and mattermost.team are required in api mode",
                    code="missing_api_settings",
                )
            if not self.mattermost_token and not (self.mattermost_login and self.mattermost_password):
                raise BridgeConfigurationError(
                    "api mode needs mattermost.token or mattermost.login + mattermost.password",
                    code="missing_credentials",
                )
        elif not self.mattermost_webhook_url:
            raise BridgeConfigurationError(
                "mattermost.webhook_url is required in webhook mode",
                code="missing_webhook_url",
            )

        if self.mattermost_nick_formatter not in NICK_FORMATTERS:
            raise BridgeConfigurationError(
                f"mattermost.nick_formatter must be one of {', '.join(NICK_FORMATTERS)}",
                code="invalid_nick_formatter",
            )

    @property
    def raw(self) -> dict[str, Any]:
        """Raw config dict."""
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Get value by dot-separated path (e.g. 'irc.server')."""
        parts = key.split(".")
        obj: Any = self._data
        for part in parts:
            if isinstance(obj, dict) and part in obj:
                obj = obj[part]
            else:
                return default
        return obj

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __contains__(self, key: str) -> bool:
        return key in self._data

    @property
    def _irc(self) -> dict[str, Any]:
        return _section(self._data, "irc")

    @property
    def _mm(self) -> dict[str, Any]:
        return _section(self._data, "mattermost")

    @property
    def mappings(self) -> list[dict[str, Any]]:
        """Channel mapping list."""
        m = self._data.get("mappings")
        return m if isinstance(m, list) else []

    # --- IRC ---

    @property
    def irc_server(self) -> str:
        return str(self._irc.get("server", ""))

    @property
    def irc_port(self) -> int:
        return int(self._irc.get("port", 6667))

    @property
    def irc_tls(self) -> bool:
        return bool(self._irc.get("tls", False))

    @property
    def irc_tls_verify(self) -> bool:
        parsed = _parse_bool_env(self._env.get("MATTERBRIDGE_IRC_TLS_VERIFY", ""))
        if parsed is not None:
            return parsed
        return bool(self._irc.get("tls_verify", True))

    @property
    def irc_nick(self) -> str:
        return str(self._irc.get("nick", ""))

    @property
    def irc_password(self) -> str:
        return self._env.get("MATTERBRIDGE_IRC_PASSWORD") or str(self._irc.get("password") or "")

    @property
    def irc_channel(self) -> str:
        """Default IRC channel; unmapped Mattermost traffic lands here."""
        return str(self._irc.get("channel", ""))

    @property
    def irc_nickserv_nick(self) -> str:
        return str(self._irc.get("nickserv_nick") or "NickServ")

    @property
    def irc_nickserv_password(self) -> str:
        return self._env.get("MATTERBRIDGE_NICKSERV_PASSWORD") or str(self._irc.get("nickserv_password") or "")

    @property
    def irc_use_sasl(self) -> bool:
        return bool(self._irc.get("use_sasl", False))

    @property
    def irc_sasl_user(self) -> str:
        return str(self._irc.get("sasl_user") or "")

    @property
    def irc_sasl_password(self) -> str:
        return str(self._irc.get("sasl_password") or "")

    @property
    def irc_remote_nick_format(self) -> str | None:
        """Template for Mattermost authors on IRC; ``{NICK}`` is replaced."""
        return _optional_str(self._irc.get("remote_nick_format")) or None

    @property
    def irc_use_slack_circumfix(self) -> bool:
        return bool(self._irc.get("use_slack_circumfix", False))

    # --- Mattermost ---

    @property
    def mattermost_mode(self) -> str:
        return str(self._mm.get("mode", "api")).lower()

    @property
    def mattermost_server(self) -> str:
        return str(self._mm.get("server") or "")

    @property
    def mattermost_no_tls(self) -> bool:
        return bool(self._mm.get("no_tls", False))

    @property
    def mattermost_tls_verify(self) -> bool:
        return bool(self._mm.get("tls_verify", True))

    @property
    def mattermost_team(self) -> str:
        return str(self._mm.get("team") or "")

    @property
    def mattermost_login(self) -> str:
        return str(self._mm.get("login") or "")

    @property
    def mattermost_password(self) -> str:
        return self._env.get("MATTERBRIDGE_MATTERMOST_PASSWORD") or str(self._mm.get("password") or "")

    @property
    def mattermost_token(self) -> str:
        """Pre-obtained session token; selects token credentials when set."""
        return self._env.get("MATTERBRIDGE_MATTERMOST_TOKEN") or str(self._mm.get("token") or "")

    @property
    def mattermost_channel(self) -> str:
        """Default Mattermost channel; unmapped IRC traffic lands here."""
        return str(self._mm.get("channel", ""))

    @property
    def mattermost_show_join_part(self) -> bool:
        return bool(self._mm.get("show_join_part", False))

    @property
    def mattermost_remote_nick_format(self) -> str | None:
        """Template for IRC authors on Mattermost; ``{NICK}`` is replaced. Default ``irc-<nick>``."""
        return _optional_str(self._mm.get("remote_nick_format")) or None

    @property
    def mattermost_prefix_messages_with_nick(self) -> bool:
        return bool(self._mm.get("prefix_messages_with_nick", False))

    @property
    def mattermost_nick_formatter(self) -> str:
        return str(self._mm.get("nick_formatter") or "plain").lower()

    @property
    def mattermost_nicks_per_row(self) -> int:
        return max(1, int(self._mm.get("nicks_per_row", 4)))

    @property
    def mattermost_icon_url(self) -> str:
        return str(self._mm.get("icon_url") or "")

    @property
    def mattermost_webhook_url(self) -> str:
        return str(self._mm.get("webhook_url") or "")

    @property
    def mattermost_bind_address(self) -> str:
        return str(self._mm.get("bind_address") or "0.0.0.0:9999")

    @property
    def mattermost_queue_size(self) -> int:
        return max(0, int(self._mm.get("queue_size", 100)))

    # --- General ---

    @property
    def giphy_api_key(self) -> str:
        env_val = self._env.get("MATTERBRIDGE_GIPHY_API_KEY")
        if env_val:
            return env_val
        return str(self.get("general.giphy_api_key") or GIPHY_PUBLIC_KEY)

    @property
    def webhook_tokens(self) -> dict[str, str]:
        """Outgoing-webhook token -> Mattermost channel, from mappings carrying a token."""
        tokens: dict[str, str] = {}
        for item in self.mappings:
            if isinstance(item, dict) and item.get("token") and item.get("mattermost"):
                tokens[str(item["token"])] = str(item["mattermost"])
        return tokens


cfg: Config = Config({})
