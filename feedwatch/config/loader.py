"""Configuration loading helpers for feedwatch."""

from __future__ import annotations

import json
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

import yaml

from .models import GlobalConfig, WatcherConfig

CONFIG_EXTENSIONS = (".yaml", ".yml", ".json")
GLOBAL_CONFIG_FILENAME = "global_config.yaml"
WATCHER_CONFIG_SUFFIX = ".yaml"
TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"


def _slugify(name: str) -> str:
    return "".join(ch.lower() if ch.isalnum() else "-" for ch in name).strip("-")


def _read_file(path: Path) -> dict:
    text = path.read_text(encoding="utf-8")
    if path.suffix in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file must contain a mapping: {path}")
    return data


def _write_file(path: Path, payload: dict) -> None:
    with path.open("w", encoding="utf-8") as stream:
        if path.suffix in (".yaml", ".yml"):
            yaml.safe_dump(payload, stream, allow_unicode=True, sort_keys=False)
        else:
            json.dump(payload, stream, indent=2, ensure_ascii=False)


@dataclass(slots=True)
class ConfigLocator:
    """Resolve important paths from project root."""

    project_root: Path | None = None
    data_dir: Path | None = None
    history_dir: Path | None = None
    watchers_dir: Path | None = None
    logs_dir: Path | None = None

    def __post_init__(self) -> None:
        env_root = os.environ.get("FEEDWATCH_HOME")
        if env_root:
            root = Path(env_root).expanduser().resolve()
        else:
            root = (self.project_root or Path(__file__).resolve().parents[2]).resolve()
        self.project_root = root
        self.data_dir = (root / "data").resolve()
        self.history_dir = (self.data_dir / "history").resolve()
        self.watchers_dir = (self.data_dir / "watchers").resolve()
        self.logs_dir = (root / "logs").resolve()
        self.ensure_directories()

    def ensure_directories(self) -> None:
        for directory in (self.data_dir, self.history_dir, self.watchers_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def global_config_path(self) -> Path:
        return self.data_dir / GLOBAL_CONFIG_FILENAME


class ConfigRepository:
    """Repository encapsulating config IO and schema validation."""

    def __init__(self, locator: ConfigLocator | None = None) -> None:
        self.locator = locator or ConfigLocator()
        self._global_cache: GlobalConfig | None = None

    # ------------------------------------------------------------------
    # Global configuration helpers
    # ------------------------------------------------------------------
    def load_global_config(self) -> GlobalConfig:
        if self._global_cache is not None:
            return self._global_cache
        path = self.locator.global_config_path()
        if path.exists():
            payload = _read_file(path)
            global_cfg = GlobalConfig.model_validate(payload)
        else:
            global_cfg = GlobalConfig()
            self.save_global_config(global_cfg)
        self._global_cache = global_cfg
        return global_cfg

    def save_global_config(self, config: GlobalConfig) -> None:
        path = self.locator.global_config_path()
        # never write the SMTP password back to disk
        payload = config.model_dump(mode="json", exclude={"mail": {"password"}})
        _write_file(path, payload)
        self._global_cache = config

    # ------------------------------------------------------------------
    # Watcher configuration helpers
    # ------------------------------------------------------------------
    def watcher_path(self, watcher_name: str) -> Path:
        slug = _slugify(watcher_name)
        return self.locator.watchers_dir / f"{slug}{WATCHER_CONFIG_SUFFIX}"

    def list_watcher_files(self) -> Iterable[Path]:
        for path in sorted(self.locator.watchers_dir.glob("*")):
            if path.is_file() and path.suffix in CONFIG_EXTENSIONS:
                yield path

    def list_watchers(self) -> list[WatcherConfig]:
        return [self.load_watcher(path) for path in self.list_watcher_files()]

    def load_watcher(self, identifier: str | Path) -> WatcherConfig:
        path = identifier if isinstance(identifier, Path) else self.watcher_path(identifier)
        if not path.exists():
            raise FileNotFoundError(f"Watcher configuration not found: {identifier}")
        payload = _read_file(path)
        return WatcherConfig.model_validate(payload)

    def save_watcher(self, config: WatcherConfig) -> Path:
        path = self.watcher_path(config.watcher_name)
        payload = config.model_dump(mode="json")
        _write_file(path, payload)
        return path

    def delete_watcher(self, watcher_name: str) -> None:
        path = self.watcher_path(watcher_name)
        if path.exists():
            path.unlink()

    # ------------------------------------------------------------------
    # Built-in profiles
    # ------------------------------------------------------------------
    @staticmethod
    def available_templates() -> list[str]:
        return sorted(path.stem for path in TEMPLATES_DIR.glob("*.yaml"))

    def install_template(self, template_name: str, overwrite: bool = False) -> Path:
        """Copy a built-in watcher profile into the watchers directory.

        The template is validated first so a broken profile never lands in
        ``data/watchers``.
        """
        template_path = TEMPLATES_DIR / f"{template_name}.yaml"
        if not template_path.exists():
            raise FileNotFoundError(f"Template not found: {template_path}")
        config = WatcherConfig.model_validate(_read_file(template_path))
        target = self.watcher_path(config.watcher_name)
        if target.exists() and not overwrite:
            return target
        shutil.copyfile(template_path, target)
        return target


__all__ = ["CONFIG_EXTENSIONS", "ConfigLocator", "ConfigRepository", "TEMPLATES_DIR"]
