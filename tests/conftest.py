"""Shared fixtures: watcher builders, fake page sources and a recording mail transport."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Iterable

import pytest

from feedwatch.config import (
    ConfigLocator,
    ConfigRepository,
    GlobalConfig,
    MailConfig,
    StoreConfig,
    WatcherConfig,
)
from feedwatch.engine import FetchResponse
from feedwatch.errors import NotificationError, TransportError
from feedwatch.infra import SQLiteManager
from feedwatch.store import SQLiteRecordStore

LISTING_URL = "https://listing.example/fatos?pagina={page}"


def listing_page(rows: Iterable[tuple[str, str, str, str, str]], header: bool = True) -> bytes:
    """Render a material-facts style table.

    Each row is ``(send_date, reference_date, company, subject, protocol)``.
    """
    parts = ["<HTML><body><table>"]
    if header:
        parts.append("<tr><th>Envio</th><th>Referência</th><th>Empresa / Assunto</th></tr>")
    for send, reference, company, subject, protocol in rows:
        parts.append(
            "<tr>"
            f"<td>{send}</td>"
            f"<td>{reference}</td>"
            f"<td><a href=\"Javascript:AbreArquivo('{protocol}')\">{company}</a><br>\n{subject}</td>"
            "</tr>"
        )
    parts.append("</table></body></HTML>")
    return "".join(parts).encode("latin-1")


class StaticFetcher:
    """Serve pre-rendered pages; an Exception value is raised instead."""

    def __init__(self, pages: dict[int, bytes | Exception]) -> None:
        self.pages = pages
        self.requested: list[int] = []
        self.closed = False

    def fetch(self, page: int) -> FetchResponse:
        self.requested.append(page)
        url = LISTING_URL.format(page=page)
        payload = self.pages.get(page)
        if payload is None:
            payload = listing_page([])
        if isinstance(payload, Exception):
            raise payload
        return FetchResponse(url=url, page=page, status_code=200, content=payload, headers={})

    def close(self) -> None:
        self.closed = True


class RecordingTransport:
    """Mail transport double; keys listed in ``fail_keys`` raise NotificationError."""

    def __init__(self, fail_keys: Iterable[str] = ()) -> None:
        self.fail_keys = set(fail_keys)
        self.sent: list[tuple[str, Any]] = []
        self.attempts: list[str] = []
        self.closed = 0

    def send(self, message, record_key: str = "") -> None:
        self.attempts.append(record_key)
        if record_key in self.fail_keys:
            raise NotificationError(record_key, "mailbox unavailable")
        self.sent.append((record_key, message))

    def close(self) -> None:
        self.closed += 1


def transport_error(page: int) -> TransportError:
    return TransportError(LISTING_URL.format(page=page), "ConnectError: refused")


@pytest.fixture
def make_watcher() -> Callable[..., WatcherConfig]:
    def _builder(**overrides: Any) -> WatcherConfig:
        base: dict[str, Any] = {
            "watcher_name": "facts",
            "list_url": LISTING_URL,
            "replacements": [{"old": "HTML", "new": "html"}, {"old": "<<"}, {"old": ">>"}],
            "row_pattern": "table tr",
            "skip_rows": 1,
            "columns": {
                "publish_date": {"selector": "td:nth-child(1)", "kind": "datetime"},
                "reference_date": {"selector": "td:nth-child(2)", "kind": "date"},
                "company": {"selector": "td:nth-child(3) a"},
                "title": {"selector": "td:nth-child(3)", "line": 1},
                "source_key": {
                    "selector": "td:nth-child(3) a",
                    "mode": "attr:href",
                    "kind": "script_id",
                    "pattern": r"AbreArquivo\('(\d+)'\)",
                },
            },
            "pagination": {"policy": "cutoff_date", "max_pages": 5},
            "subject_template": "[FATO RELEVANTE] {company}",
            "body_template": "{title}\n\nData de Referência: {reference_date}\n\n{link_url}",
            "link_template": "https://listing.example/arquivo?protocolo={source_key}",
        }
        base.update(overrides)
        return WatcherConfig.model_validate(base)

    return _builder


@pytest.fixture
def global_config(tmp_path: Path) -> GlobalConfig:
    return GlobalConfig(
        thread_pool_workers=4,
        mail=MailConfig(
            sender="bot@example.com",
            password="secret",
            recipient="ops@example.com",
            password_env=None,
        ),
        store=StoreConfig(sqlite_path=tmp_path / "history" / "feedwatch.db"),
    )


@pytest.fixture
def sqlite_manager() -> Iterable[SQLiteManager]:
    manager = SQLiteManager()
    yield manager
    manager.close_all()


@pytest.fixture
def store_factory(tmp_path: Path, sqlite_manager: SQLiteManager) -> Callable[[str], SQLiteRecordStore]:
    def _build(collection: str = "facts") -> SQLiteRecordStore:
        return SQLiteRecordStore(sqlite_manager, tmp_path / "history" / "feedwatch.db", collection)

    return _build


@pytest.fixture
def temp_config_repository(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterable[ConfigRepository]:
    monkeypatch.setenv("FEEDWATCH_HOME", str(tmp_path))
    locator = ConfigLocator(project_root=tmp_path)
    repository = ConfigRepository(locator)
    yield repository


@pytest.fixture
def render_listing() -> Callable[..., bytes]:
    return listing_page


@pytest.fixture
def make_fetcher() -> Callable[[dict[int, bytes | Exception]], StaticFetcher]:
    return StaticFetcher


@pytest.fixture
def make_transport() -> Callable[..., RecordingTransport]:
    return RecordingTransport


@pytest.fixture
def failed_page() -> Callable[[int], TransportError]:
    return transport_error
