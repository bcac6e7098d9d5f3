"""Row extraction from normalised listing pages."""

from __future__ import annotations

import re
from datetime import date, datetime, tzinfo
from typing import Any, Iterable, Iterator

import structlog
from selectolax.parser import HTMLParser, Node

from ..config import FieldKind, FieldSpec, WatcherConfig
from ..errors import FieldExtractionError
from .records import Record

CORE_FIELDS = ("source_key", "title", "company", "reference_date", "publish_date", "link")
ZERO_VALUE_MARKERS = {"-", "--"}

DATE_FORMATS = ("%d/%m/%Y",)
DATETIME_FORMATS = ("%d/%m/%Y %H:%M:%S", "%d/%m/%Y %H:%M", "%d/%m/%Y")


def parse_decimal(text: str) -> float:
    """Parse a decimal-comma number such as ``1.234,56``.

    A lone dash is the source's way of saying "no value" and maps to 0.0.
    """
    value = text.strip().rstrip("%").strip()
    if value in ZERO_VALUE_MARKERS:
        return 0.0
    normalised = value.replace(".", "").replace(",", ".", 1)
    try:
        return float(normalised)
    except ValueError as exc:
        raise FieldExtractionError("decimal", "not a decimal-comma number", text) from exc


def parse_integer(text: str) -> int:
    value = text.strip()
    if value in ZERO_VALUE_MARKERS:
        return 0
    try:
        return int(value.replace(".", ""))
    except ValueError as exc:
        raise FieldExtractionError("integer", "not an integer", text) from exc


def parse_date(text: str, fmt: str | None = None) -> date:
    value = text.strip()
    for candidate in (fmt,) if fmt else DATE_FORMATS:
        try:
            return datetime.strptime(value, candidate).date()
        except ValueError:
            continue
    raise FieldExtractionError("date", "expected dd/mm/yyyy", text)


def parse_datetime(text: str, tz: tzinfo | None = None, fmt: str | None = None) -> datetime:
    value = " ".join(text.split())
    for candidate in (fmt,) if fmt else DATETIME_FORMATS:
        try:
            parsed = datetime.strptime(value, candidate)
        except ValueError:
            continue
        return parsed.replace(tzinfo=tz) if tz is not None else parsed
    raise FieldExtractionError("datetime", "expected dd/mm/yyyy HH:MM", text)


class RecordExtractor:
    """Walk listing rows and turn each one into a :class:`Record`.

    Fields are read by structural position as declared in the watcher's
    ``columns``. Rows failing a field are skipped and logged; they never abort
    the page.
    """

    def __init__(self, watcher: WatcherConfig, logger: structlog.BoundLogger | None = None) -> None:
        if not watcher.row_pattern:
            raise ValueError(f"Watcher {watcher.watcher_name} has no row_pattern")
        self.watcher = watcher
        self.logger = logger or structlog.get_logger("feedwatch.parser")
        self._tz = watcher.tzinfo
        self._patterns = {
            name: re.compile(spec.pattern)
            for name, spec in watcher.columns.items()
            if spec.pattern
        }

    def select_rows(self, tree: HTMLParser) -> list[Node]:
        """Return data rows, dropping header and footer matches by position."""

        matches = list(tree.css(self.watcher.row_pattern))
        end = len(matches) - self.watcher.skip_tail_rows
        return matches[self.watcher.skip_rows : max(end, 0)]

    def iter_records(self, rows: Iterable[Node], page: int | None = None) -> Iterator[Record]:
        for index, row in enumerate(rows):
            try:
                record = self.extract_row(row)
            except FieldExtractionError as exc:
                self.logger.warning(
                    "row_skipped",
                    page=page,
                    row=index,
                    field=exc.field,
                    reason=exc.reason,
                    value=exc.value,
                )
                continue
            yield record

    def extract(self, tree: HTMLParser, page: int | None = None) -> Iterator[Record]:
        return self.iter_records(self.select_rows(tree), page=page)

    def extract_row(self, row: Node) -> Record:
        values: dict[str, Any] = {}
        for name, spec in self.watcher.columns.items():
            value = self._extract_field(row, name, spec)
            if value is not None:
                values[name] = value
        core = {name: values.pop(name) for name in CORE_FIELDS if name in values}
        if "source_key" not in core:
            raise FieldExtractionError("source_key", "missing natural key")
        return Record(
            source_key=str(core.pop("source_key")),
            title=str(core.pop("title", "")),
            watcher=self.watcher.watcher_name,
            extra=values,
            **core,
        )

    # ------------------------------------------------------------------
    def _extract_field(self, row: Node, name: str, spec: FieldSpec) -> Any:
        node = row if spec.selector == ":self" else row.css_first(spec.selector)
        if node is None:
            return self._missing(name, spec, "node not found")
        raw = self._read(node, spec)
        if raw is None or not raw.strip():
            return self._missing(name, spec, "empty value")
        text = raw.strip()

        if spec.line is not None:
            lines = [line.strip() for line in text.splitlines() if line.strip()]
            if spec.line >= len(lines):
                return self._missing(name, spec, f"line {spec.line} not present", text)
            text = lines[spec.line]
        if spec.split is not None and spec.part is not None:
            parts = text.split(spec.split, max(spec.part, 1))
            if spec.part >= len(parts):
                return self._missing(name, spec, f"part {spec.part} not present", text)
            text = parts[spec.part].strip()
        pattern = self._patterns.get(name)
        if pattern is not None:
            match = pattern.search(text)
            if not match:
                return self._missing(name, spec, "pattern mismatch", text)
            text = match.group(1)

        try:
            return self._convert(text, spec)
        except FieldExtractionError as exc:
            raise FieldExtractionError(name, exc.reason, exc.value) from exc

    @staticmethod
    def _read(node: Node, spec: FieldSpec) -> str | None:
        if spec.mode == "html":
            return node.html
        if spec.mode.startswith("attr:"):
            return node.attributes.get(spec.mode.split(":", 1)[1])
        if spec.line is not None:
            return node.text(deep=True, separator="\n", strip=False)
        return node.text(separator=" ", strip=True)

    def _convert(self, text: str, spec: FieldSpec) -> Any:
        if spec.kind is FieldKind.DATE:
            return parse_date(text, spec.format)
        if spec.kind is FieldKind.DATETIME:
            return parse_datetime(text, self._tz, spec.format)
        if spec.kind is FieldKind.DECIMAL:
            return parse_decimal(text)
        if spec.kind is FieldKind.INTEGER:
            return parse_integer(text)
        return text

    @staticmethod
    def _missing(name: str, spec: FieldSpec, reason: str, value: str | None = None) -> None:
        if spec.required:
            raise FieldExtractionError(name, reason, value)
        return None


__all__ = [
    "CORE_FIELDS",
    "RecordExtractor",
    "parse_date",
    "parse_datetime",
    "parse_decimal",
    "parse_integer",
]
