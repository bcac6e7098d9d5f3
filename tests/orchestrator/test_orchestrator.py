from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from feedwatch.engine import Record, ThreadPoolManager
from feedwatch.orchestrator import Orchestrator
from feedwatch.pipeline import RunResult


@pytest.fixture
def orchestrator(temp_config_repository, global_config, sqlite_manager):
    temp_config_repository.save_global_config(global_config)
    thread_pool = ThreadPoolManager(workers_per_watcher=2)
    instance = Orchestrator(
        config_repository=temp_config_repository,
        scheduler=MagicMock(),
        thread_pool=thread_pool,
        storage=sqlite_manager,
    )
    yield instance
    instance.close()
    thread_pool.shutdown(wait=True)


def test_runner_is_cached_per_watcher(orchestrator, make_watcher) -> None:
    watcher = make_watcher()
    first = orchestrator.runner_for(watcher)
    assert orchestrator.runner_for(watcher) is first
    assert orchestrator.runner_for(make_watcher(watcher_name="other")) is not first


def test_watchers_sharing_a_collection_share_the_store(orchestrator, make_watcher) -> None:
    news = orchestrator.runner_for(make_watcher(watcher_name="company-news"))
    reports = orchestrator.runner_for(
        make_watcher(
            watcher_name="fund-reports",
            list_url=None,
            dedup={"policy": "notified", "collection": "company-news"},
        )
    )
    assert news.store is reports.store


def test_register_schedules_skips_disabled(orchestrator, make_watcher) -> None:
    enabled = make_watcher(watcher_name="facts")
    disabled = make_watcher(watcher_name="paused", enabled=False)
    scheduled = orchestrator.register_schedules([enabled, disabled])

    assert scheduled == ["facts"]
    orchestrator.scheduler.schedule_watcher.assert_called_once_with(enabled, orchestrator.run_scheduled)
    orchestrator.scheduler.start.assert_called_once()


def test_run_scheduled_delegates_to_runner(orchestrator, make_watcher, monkeypatch) -> None:
    watcher = make_watcher()
    runner = orchestrator.runner_for(watcher)
    calls: list[str] = []
    monkeypatch.setattr(runner, "run_once", lambda: calls.append("run") or RunResult(watcher="facts"))
    orchestrator.run_scheduled(watcher)
    assert calls == ["run"]


def test_history_and_reset(orchestrator, temp_config_repository, make_watcher) -> None:
    watcher = make_watcher()
    temp_config_repository.save_watcher(watcher)
    store = orchestrator.runner_for(watcher).store
    store.insert(Record(source_key="1", title="Fato"))

    assert [record.source_key for record in orchestrator.view_history("facts")] == ["1"]
    orchestrator.reset_history("facts")
    assert orchestrator.view_history("facts") == []


def test_last_results_reports_known_runners(orchestrator, make_watcher) -> None:
    orchestrator.runner_for(make_watcher())
    assert orchestrator.last_results() == {"facts": None}


def test_run_watcher_picks_up_edited_config(orchestrator, temp_config_repository, make_watcher, monkeypatch) -> None:
    temp_config_repository.save_watcher(make_watcher())
    first = orchestrator.runner_for(temp_config_repository.load_watcher("facts"))
    first_pool = orchestrator.thread_pool.get("facts")

    temp_config_repository.save_watcher(make_watcher(subject_template="[FATO] {company}"))
    monkeypatch.setattr(
        "feedwatch.pipeline.PipelineRunner.run_once",
        lambda self: RunResult(watcher=self.watcher.subject_template),
    )
    result = orchestrator.run_watcher("facts")

    assert result.watcher == "[FATO] {company}"
    current = orchestrator.runner_for(temp_config_repository.load_watcher("facts"))
    assert current is not first
    assert current.watcher.subject_template == "[FATO] {company}"
    assert current.store is first.store
    assert orchestrator.thread_pool.get("facts") is not first_pool


def test_running_runner_is_kept_across_edits(orchestrator, make_watcher, monkeypatch) -> None:
    first = orchestrator.runner_for(make_watcher())
    monkeypatch.setattr(type(first), "is_running", property(lambda self: True))
    assert orchestrator.runner_for(make_watcher(subject_template="[FATO] {company}")) is first


def test_run_scheduled_reloads_saved_config(orchestrator, temp_config_repository, make_watcher, monkeypatch) -> None:
    scheduled = make_watcher()
    temp_config_repository.save_watcher(make_watcher(body_template="{title}"))
    seen: list[str] = []
    monkeypatch.setattr(
        "feedwatch.pipeline.PipelineRunner.run_once",
        lambda self: seen.append(self.watcher.body_template) or RunResult(watcher="facts"),
    )
    orchestrator.run_scheduled(scheduled)
    assert seen == ["{title}"]


def test_render_feed_reads_the_watcher_store(orchestrator, temp_config_repository, make_watcher) -> None:
    watcher = make_watcher()
    temp_config_repository.save_watcher(watcher)
    store = orchestrator.runner_for(watcher).store
    store.insert(Record(source_key="812345", title="Aquisição de controle"))

    document = orchestrator.render_feed("facts")
    assert b"Aquisi" in document
    assert b"https://listing.example/arquivo?protocolo=812345" in document
    with pytest.raises(ValueError):
        orchestrator.render_feed("facts", "fii")
