from __future__ import annotations

import xml.etree.ElementTree as ET
from datetime import date, datetime, timezone

import pytest

from feedwatch.engine import Record
from feedwatch.feed import AtomFeedBuilder
from feedwatch.notify import MessageRenderer

ATOM = {"a": "http://www.w3.org/2005/Atom"}
GENERATED_AT = datetime(2026, 10, 19, 15, 0, tzinfo=timezone.utc)


@pytest.fixture
def news_watcher(make_watcher):
    return make_watcher(
        watcher_name="company-news",
        link_template="http://news.example/corpo.asp?origem=exibir&id={source_key}",
        feed={
            "title": "Bovespa - Plantão Empresas",
            "base_url": "http://feeds.example/",
            "limit": 3,
            "filters": {"all": {"exclude": "(?i)^fii"}, "fii": {"include": "(?i)^fii"}},
        },
    )


@pytest.fixture
def builder(news_watcher, store_factory, global_config):
    store = store_factory("company-news")
    store.insert(Record(source_key="1", title="FII ABC - Relatório", publish_date=datetime(2026, 10, 17, 9, 0)))
    store.insert(Record(source_key="2", title="ACME - Resultado", publish_date=datetime(2026, 10, 19, 10, 30)))
    store.insert(Record(source_key="3", title="Beta - Aquisição", company="Beta SA", reference_date=date(2026, 10, 18)))
    store.insert(Record(source_key="4", title="fii XYZ - Informe", publish_date=datetime(2026, 10, 16, 8, 0)))
    store.insert(Record(source_key="5", title="Gama - Dividendos", publish_date=datetime(2026, 10, 12, 8, 0)))
    store.insert(Record(source_key="6", title="Delta - Assembleia", publish_date=datetime(2026, 10, 11, 8, 0)))
    return AtomFeedBuilder(
        news_watcher,
        store,
        MessageRenderer(news_watcher, global_config.mail),
        now=lambda: GENERATED_AT,
    )


def _parse(document: bytes) -> ET.Element:
    return ET.fromstring(document)


def _entry_ids(root: ET.Element) -> list[str]:
    return [entry.findtext("a:id", namespaces=ATOM) for entry in root.findall("a:entry", ATOM)]


def test_all_feed_excludes_fund_titles_newest_first(builder) -> None:
    root = _parse(builder.render("all"))

    assert root.findtext("a:title", namespaces=ATOM) == "Bovespa - Plantão Empresas - all"
    assert root.findtext("a:id", namespaces=ATOM) == "http://feeds.example/company-news/all.atom"
    assert _entry_ids(root) == [
        "http://feeds.example/company-news/2",
        "http://feeds.example/company-news/3",
        "http://feeds.example/company-news/5",
    ]
    assert root.findtext("a:updated", namespaces=ATOM) == "2026-10-19T10:30:00-03:00"


def test_fii_feed_keeps_only_fund_titles(builder) -> None:
    root = _parse(builder.render("fii"))
    titles = [entry.findtext("a:title", namespaces=ATOM) for entry in root.findall("a:entry", ATOM)]
    assert titles == ["FII ABC - Relatório", "fii XYZ - Informe"]


def test_entries_link_to_the_source_and_carry_local_dates(builder) -> None:
    root = _parse(builder.render("all"))
    entry = root.findall("a:entry", ATOM)[1]

    assert entry.find("a:link", ATOM).get("href") == "http://news.example/corpo.asp?origem=exibir&id=3"
    assert entry.findtext("a:updated", namespaces=ATOM) == "2026-10-18T00:00:00-03:00"
    assert entry.findtext("a:author/a:name", namespaces=ATOM) == "Beta SA"


def test_empty_feed_is_stamped_with_generation_time(news_watcher, store_factory, global_config) -> None:
    builder = AtomFeedBuilder(
        news_watcher,
        store_factory("empty"),
        MessageRenderer(news_watcher, global_config.mail),
        now=lambda: GENERATED_AT,
    )
    root = _parse(builder.render("fii"))
    assert root.findall("a:entry", ATOM) == []
    assert root.findtext("a:updated", namespaces=ATOM) == "2026-10-19T15:00:00+00:00"


def test_unknown_feed_lists_available_ones(builder) -> None:
    assert builder.feed_ids == ["all", "fii"]
    with pytest.raises(ValueError, match="available: all, fii"):
        builder.build("quotes")
