"""Incremental listing watcher: fetch, extract, dedup, persist, notify."""

__version__ = "0.3.0"
