from __future__ import annotations

from feedwatch.logging_conf import available_watcher_logs, log_dir, tail_log, watcher_logger


def test_watcher_logger_creates_per_watcher_file(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("FEEDWATCH_HOME", str(tmp_path))
    logger = watcher_logger("material-facts")
    logger.info("run_finished", new_records=0)

    assert log_dir() == tmp_path.resolve() / "logs"
    names = [path.name for path in available_watcher_logs()]
    assert "material-facts.log" in names


def test_tail_log_returns_last_lines(tmp_path) -> None:
    path = tmp_path / "sample.log"
    path.write_text("".join(f"line {index}\n" for index in range(10)), encoding="utf-8")
    assert tail_log(path, 3) == ["line 7\n", "line 8\n", "line 9\n"]
    assert tail_log(tmp_path / "missing.log") == []
