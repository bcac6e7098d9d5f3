from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from typer.testing import CliRunner

from feedwatch.app import AppState, app
from feedwatch.engine import Record
from feedwatch.pipeline import RunResult


class StubOrchestrator:
    def __init__(self, result: RunResult | None = None) -> None:
        self.result = result or RunResult(watcher="facts", new_records=2, notified=2, pages_fetched=1)
        self.calls: list[str] = []

    def run_watcher(self, name: str) -> RunResult:
        self.calls.append(f"run:{name}")
        return self.result

    def view_history(self, name: str, limit: int = 20) -> list[Record]:
        self.calls.append(f"history:{name}:{limit}")
        return [Record(source_key="812345", title="Aquisição de controle", company="ACME")]

    def reset_history(self, name: str) -> None:
        self.calls.append(f"reset:{name}")

    def render_feed(self, name: str, feed_id: str = "all") -> bytes:
        self.calls.append(f"feed:{name}:{feed_id}")
        if feed_id not in {"all", "fii"}:
            raise ValueError(f"Unknown feed `{feed_id}` for {name} (available: all, fii)")
        return "<feed xmlns=\"http://www.w3.org/2005/Atom\"><title>Plantão</title></feed>".encode("utf-8")

    def register_schedules(self, watchers) -> list[str]:
        self.calls.append("schedule")
        return []

    def close(self) -> None:
        self.calls.append("close")


def make_state(watchers, jobs=(), orchestrator: StubOrchestrator | None = None) -> AppState:
    by_name = {watcher.watcher_name: watcher for watcher in watchers}

    def load_watcher(name: str):
        if name not in by_name:
            raise FileNotFoundError(name)
        return by_name[name]

    repository = SimpleNamespace(
        list_watchers=lambda: list(watchers),
        load_watcher=load_watcher,
        available_templates=lambda: ["company-news", "fund-reports", "material-facts"],
        install_template=MagicMock(side_effect=lambda name, overwrite=False: f"/tmp/{name}.yaml"),
    )
    scheduler = MagicMock()
    scheduler.list_jobs.return_value = list(jobs)
    return AppState(
        repository=repository,
        scheduler=scheduler,
        orchestrator=orchestrator or StubOrchestrator(),
        thread_pool=MagicMock(),
        storage=MagicMock(),
    )


@pytest.fixture
def cli(monkeypatch):
    def _install(state: AppState) -> CliRunner:
        monkeypatch.setattr("feedwatch.app.build_state", lambda verbose: state)
        return CliRunner()

    return _install


def test_watcher_list(cli, make_watcher) -> None:
    jobs = [{"id": "watcher::facts", "next_run_time": "soon", "trigger": "interval[0:10:00]"}]
    runner = cli(make_state([make_watcher()], jobs))
    result = runner.invoke(app, ["watcher", "list"])
    assert result.exit_code == 0, result.stdout
    assert "facts" in result.stdout
    assert "cutoff_date" in result.stdout
    assert "watcher::facts" in result.stdout


def test_watcher_list_empty(cli) -> None:
    result = cli(make_state([])).invoke(app, ["watcher", "list"])
    assert result.exit_code == 0
    assert "watcher init" in result.stdout


def test_watcher_run_prints_summary(cli, make_watcher) -> None:
    state = make_state([make_watcher()])
    result = cli(state).invoke(app, ["watcher", "run", "facts"])
    assert result.exit_code == 0, result.stdout
    assert "new records" in result.stdout
    assert state.orchestrator.calls == ["run:facts", "close"]


def test_watcher_run_exits_non_zero_on_error(cli, make_watcher) -> None:
    failing = StubOrchestrator(RunResult(watcher="facts", error="dedup query failed: locked"))
    result = cli(make_state([make_watcher()], orchestrator=failing)).invoke(app, ["watcher", "run", "facts"])
    assert result.exit_code == 1
    assert "dedup query failed" in result.stdout


def test_watcher_run_unknown_name(cli) -> None:
    result = cli(make_state([])).invoke(app, ["watcher", "run", "ghost"])
    assert result.exit_code == 1
    assert "Unknown watcher" in result.stdout


def test_watcher_history(cli, make_watcher) -> None:
    state = make_state([make_watcher()])
    result = cli(state).invoke(app, ["watcher", "history", "facts", "--limit", "5"])
    assert result.exit_code == 0, result.stdout
    assert "812345" in result.stdout
    assert state.orchestrator.calls == ["history:facts:5"]


def test_watcher_reset_with_confirmation_flag(cli, make_watcher) -> None:
    state = make_state([make_watcher()])
    result = cli(state).invoke(app, ["watcher", "reset", "facts", "--yes"])
    assert result.exit_code == 0, result.stdout
    assert state.orchestrator.calls == ["reset:facts"]


def test_watcher_reset_cancelled(cli, make_watcher) -> None:
    state = make_state([make_watcher()])
    result = cli(state).invoke(app, ["watcher", "reset", "facts"], input="n\n")
    assert result.exit_code == 0
    assert state.orchestrator.calls == []


def test_watcher_init_installs_profiles(cli) -> None:
    state = make_state([])
    result = cli(state).invoke(app, ["watcher", "init", "material-facts"])
    assert result.exit_code == 0, result.stdout
    state.repository.install_template.assert_called_once_with("material-facts", overwrite=False)

    result = cli(state).invoke(app, ["watcher", "init", "quotes"])
    assert result.exit_code == 1


def test_serve_without_watchers_exits(cli) -> None:
    state = make_state([])
    result = cli(state).invoke(app, ["serve"])
    assert result.exit_code == 1
    assert "Nothing to schedule" in result.stdout


def test_log_show_reads_watcher_log(cli, monkeypatch, tmp_path) -> None:
    (tmp_path / "watchers").mkdir()
    (tmp_path / "watchers" / "facts.log").write_text("line one\nline two\n", encoding="utf-8")
    monkeypatch.setattr("feedwatch.app.log_dir", lambda: tmp_path)
    result = cli(make_state([])).invoke(app, ["log", "show", "facts", "--tail", "1"])
    assert result.exit_code == 0, result.stdout
    assert "line two" in result.stdout
    assert "line one" not in result.stdout


def test_watcher_feed_prints_atom(cli, make_watcher) -> None:
    state = make_state([make_watcher()])
    result = cli(state).invoke(app, ["watcher", "feed", "facts"])
    assert result.exit_code == 0, result.stdout
    assert "<title>Plantão</title>" in result.stdout
    assert state.orchestrator.calls == ["feed:facts:all"]


def test_watcher_feed_writes_file(cli, make_watcher, tmp_path) -> None:
    state = make_state([make_watcher()])
    target = tmp_path / "feeds" / "fii.atom"
    result = cli(state).invoke(app, ["watcher", "feed", "facts", "fii", "--output", str(target)])
    assert result.exit_code == 0, result.stdout
    assert target.read_bytes().startswith(b"<feed")
    assert state.orchestrator.calls == ["feed:facts:fii"]


def test_watcher_feed_unknown_feed(cli, make_watcher) -> None:
    result = cli(make_state([make_watcher()])).invoke(app, ["watcher", "feed", "facts", "quotes"])
    assert result.exit_code == 1
    assert "Unknown feed" in result.stdout
