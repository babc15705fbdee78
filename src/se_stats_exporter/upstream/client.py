"""HTTP client for the upstream statistics source.

The client performs one opaque fetch per call and returns a typed RawState.
Every failure is reported as a FetchError; no other exception escapes
``fetch()``. Retry policy is left to the collection scheduler.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from se_stats_exporter import __version__
from se_stats_exporter.errors import FetchError, FetchErrorKind
from se_stats_exporter.upstream.models import (
    ChatStats,
    ChatStatsState,
    FlatState,
    RawState,
    TopChannel,
    UpstreamSchema,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.streamelements.com/kappa/v2"
USER_AGENT = f"se-stats-exporter/{__version__}"


class UpstreamClient:
    """Fetches statistics from StreamElements (or a flat JSON endpoint).

    For the ``chatstats`` schema two requests are made per fetch:
    ``GET {base_url}/chatstats/{channel}/stats`` and, when top channels are
    wanted, ``GET {base_url}/chatstats``. For the ``flat`` schema a single
    ``GET {base_url}`` returns a JSON object of named numeric facts.

    Each fetch is bounded by ``timeout`` seconds in total, regardless of how
    many requests it makes.

    Example:
        async with UpstreamClient(channel="global", timeout=5.0) as client:
            state = await client.fetch()
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        channel: str = "global",
        schema: UpstreamSchema = UpstreamSchema.CHATSTATS,
        timeout: float = 5.0,
        token: str | None = None,
        fetch_top_channels: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Root URL of the upstream API
            channel: Channel whose statistics are fetched (chatstats only)
            schema: Upstream payload schema
            timeout: Maximum seconds for one complete fetch
            token: Optional bearer token sent with every request
            fetch_top_channels: Whether to also fetch the top channel list
            transport: Optional httpx transport (used by tests)

        Raises:
            ValueError: If timeout is not positive
        """
        if timeout <= 0:
            raise ValueError("Timeout must be positive")

        self.base_url = base_url.rstrip("/")
        self.channel = channel
        self.schema = UpstreamSchema(schema)
        self.timeout = timeout
        self.fetch_top_channels = fetch_top_channels

        headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.AsyncClient(
            headers=headers,
            timeout=httpx.Timeout(timeout),
            transport=transport,
            follow_redirects=True,
        )

    async def __aenter__(self) -> UpstreamClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._client.aclose()

    async def fetch(self) -> RawState:
        """Fetch the current upstream state.

        Returns:
            ChatStatsState or FlatState depending on the configured schema

        Raises:
            FetchError: On timeout, connection failure, authentication
                failure, or a response that does not match the schema
        """
        try:
            async with asyncio.timeout(self.timeout):
                if self.schema is UpstreamSchema.FLAT:
                    return await self._fetch_flat()
                return await self._fetch_chatstats()
        except TimeoutError as e:
            raise FetchError(
                FetchErrorKind.TIMEOUT,
                f"Upstream did not respond within {self.timeout}s",
            ) from e

    async def _fetch_chatstats(self) -> ChatStatsState:
        stats_url = f"{self.base_url}/chatstats/{self.channel}/stats"
        stats = self._parse(ChatStats, await self._get_json(stats_url), stats_url)

        top_channels: list[TopChannel] = []
        if self.fetch_top_channels:
            channels_url = f"{self.base_url}/chatstats"
            payload = await self._get_json(channels_url)
            if not isinstance(payload, list):
                raise FetchError(
                    FetchErrorKind.MALFORMED_RESPONSE,
                    f"Expected a list of channels from {channels_url}",
                )
            top_channels = [self._parse(TopChannel, item, channels_url) for item in payload]

        return ChatStatsState(stats=stats, top_channels=top_channels)

    async def _fetch_flat(self) -> FlatState:
        payload = await self._get_json(self.base_url)
        return self._parse(FlatState, {"facts": payload}, self.base_url)

    async def _get_json(self, url: str) -> Any:
        """Send a GET request and decode the JSON body.

        Raises:
            FetchError: For any transport, status, or decoding failure
        """
        logger.debug("GET %s", url)
        try:
            response = await self._client.get(url)
        except httpx.TimeoutException as e:
            raise FetchError(FetchErrorKind.TIMEOUT, f"Timed out requesting {url}") from e
        except httpx.HTTPError as e:
            raise FetchError(
                FetchErrorKind.CONNECTION_REFUSED,
                f"Could not send GET request to {url}: {type(e).__name__}: {e!s}",
            ) from e

        if response.status_code in (401, 403):
            raise FetchError(
                FetchErrorKind.AUTH_FAILURE,
                f"HTTP {response.status_code} from {url}",
            )
        if not response.is_success:
            raise FetchError(
                FetchErrorKind.MALFORMED_RESPONSE,
                f"HTTP {response.status_code} from {url}",
            )

        try:
            return response.json()
        except ValueError as e:
            raise FetchError(
                FetchErrorKind.MALFORMED_RESPONSE,
                f"Could not parse JSON from {url}",
            ) from e

    @staticmethod
    def _parse(model: type[Any], payload: Any, url: str) -> Any:
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            raise FetchError(
                FetchErrorKind.MALFORMED_RESPONSE,
                f"Unexpected payload from {url}: {e.error_count()} validation error(s)",
            ) from e
