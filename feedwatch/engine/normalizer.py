"""Repair known-malformed markup fragments before structural parsing."""

from __future__ import annotations

from typing import Iterable

from selectolax.parser import HTMLParser

from ..config import Replacement, WatcherConfig
from ..errors import ParseError

# Upper bound for the fixed-point loop in repair().
_MAX_PASSES = 8


class MarkupNormalizer:
    """Apply a watcher's exact replacement table and build the document tree.

    Only the documented byte sequences are touched. Replacements run until
    the text stops changing, so normalising twice equals normalising once.
    """

    def __init__(self, replacements: Iterable[Replacement] = (), encoding: str = "latin-1") -> None:
        self.replacements = [(item.old, item.new) for item in replacements]
        self.encoding = encoding

    @classmethod
    def for_watcher(cls, watcher: WatcherConfig) -> "MarkupNormalizer":
        return cls(watcher.replacements, encoding=watcher.encoding)

    def decode(self, raw: bytes) -> str:
        try:
            return raw.decode(self.encoding)
        except (UnicodeDecodeError, LookupError) as exc:
            raise ParseError(f"Cannot decode page as {self.encoding}: {exc}") from exc

    def repair(self, text: str) -> str:
        for _ in range(_MAX_PASSES):
            repaired = text
            for old, new in self.replacements:
                repaired = repaired.replace(old, new)
            if repaired == text:
                return repaired
            text = repaired
        return text

    def normalize(self, raw: bytes | str) -> str:
        text = raw if isinstance(raw, str) else self.decode(raw)
        return self.repair(text)

    def parse(self, raw: bytes | str) -> HTMLParser:
        text = self.normalize(raw)
        if not text.strip():
            raise ParseError("Empty document")
        tree = HTMLParser(text)
        if tree.root is None:
            raise ParseError("Document has no root node")
        return tree


__all__ = ["MarkupNormalizer"]
