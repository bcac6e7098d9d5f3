"""HTTP page retrieval for paginated listings."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict

import httpx
import structlog

from ..config import FetchConfig, WatcherConfig
from ..errors import TransportError


@dataclass(slots=True)
class FetchResponse:
    """Standardised response wrapper."""

    url: str
    page: int
    status_code: int
    content: bytes
    headers: Dict[str, str]
    raw: httpx.Response | None = field(repr=False, default=None)


class PageFetcher:
    """Retrieve one listing page at a time. Raw transport only, no retries."""

    def __init__(
        self,
        watcher: WatcherConfig,
        fetch_config: FetchConfig | None = None,
        logger: structlog.BoundLogger | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        if not watcher.list_url:
            raise ValueError(f"Watcher {watcher.watcher_name} has no list_url")
        self.watcher = watcher
        self.fetch_config = fetch_config or FetchConfig()
        self.logger = logger or structlog.get_logger("feedwatch.fetcher")
        self._client = client or httpx.Client(
            follow_redirects=True,
            timeout=self.fetch_config.timeout,
            headers={"User-Agent": self.fetch_config.user_agent},
        )

    def page_url(self, page: int) -> str:
        return self.watcher.list_url.format(page=page)

    def fetch(self, page: int) -> FetchResponse:
        url = self.page_url(page)
        try:
            response = self._client.get(url, timeout=self.fetch_config.timeout)
        except httpx.HTTPError as exc:
            raise TransportError(url, f"{type(exc).__name__}: {exc}") from exc
        if self._is_failure(response):
            raise TransportError(
                url, f"Unexpected status {response.status_code}", response.status_code
            )
        self.logger.debug(
            "page_fetched", url=url, page=page, status=response.status_code, size=len(response.content)
        )
        return FetchResponse(
            url=str(response.url),
            page=page,
            status_code=response.status_code,
            content=response.content,
            headers=dict(response.headers),
            raw=response,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "PageFetcher":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @staticmethod
    def _is_failure(response: httpx.Response) -> bool:
        return getattr(response, "status_code", 0) >= 400


__all__ = ["FetchResponse", "PageFetcher"]
