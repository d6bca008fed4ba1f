"""Random GIF lookup for the ``!gif`` command."""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from matterbridge.errors import MediaLookupError

GIPHY_RANDOM_URL = "https://api.giphy.com/v1/gifs/random"


class GiphyClient:
    """Giphy random endpoint; one call per ``!gif``."""

    def __init__(
        self,
        api_key: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def random(self, keywords: str) -> str:
        """URL of a random GIF tagged ``keywords``. Raises MediaLookupError."""
        params = {"api_key": self._api_key, "tag": keywords.strip()}
        try:
            resp = await self._http.get(GIPHY_RANDOM_URL, params=params)
            resp.raise_for_status()
            payload: Any = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise MediaLookupError(
                f"giphy lookup failed: {exc}",
                code="giphy_request",
                details={"keywords": keywords},
                original_error=exc,
            ) from exc

        url = _extract_url(payload)
        if not url:
            raise MediaLookupError("giphy returned no image", code="giphy_empty", details={"keywords": keywords})
        logger.debug("Giphy: {} -> {}", keywords, url)
        return url

    async def aclose(self) -> None:
        await self._http.aclose()


def _extract_url(payload: Any) -> str:
    if not isinstance(payload, dict):
        return ""
    data = payload.get("data")
    if not isinstance(data, dict):
        return ""
    images = data.get("images")
    if isinstance(images, dict):
        downsampled = images.get("fixed_height_downsampled")
        if isinstance(downsampled, dict) and downsampled.get("url"):
            return str(downsampled["url"])
    return str(data.get("fixed_height_downsampled_url") or "")
