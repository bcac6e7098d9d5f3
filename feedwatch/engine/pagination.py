"""Pagination sweep driving fetch → normalise → extract page by page."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Callable

import structlog

from ..config import PaginationConfig, PaginationPolicy
from ..errors import ParseError, TransportError
from .fetcher import PageFetcher
from .normalizer import MarkupNormalizer
from .parser import RecordExtractor
from .records import Record


class SweepStage(str, Enum):
    FETCHING = "fetching"
    EXTRACTING = "extracting"


@dataclass(slots=True)
class PaginationResult:
    records: list[Record] = field(default_factory=list)
    pages_fetched: int = 0
    pages_failed: int = 0
    stop_reason: str = ""


class PaginationController:
    """Pull listing pages until the configured stop policy fires.

    Records are accumulated newest-first in page order. A page that fails
    to download or parse counts as "no records this page" and never as the
    end of the listing.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        normalizer: MarkupNormalizer,
        extractor: RecordExtractor,
        config: PaginationConfig,
        today: Callable[[], date] | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.normalizer = normalizer
        self.extractor = extractor
        self.config = config
        self._today = today or date.today
        self.logger = logger or structlog.get_logger("feedwatch.pagination")

    def sweep(self, on_stage: Callable[[SweepStage], None] | None = None) -> PaginationResult:
        result = PaginationResult()
        today = self._today()
        consecutive_failures = 0
        first = self.config.first_page
        for page in range(first, first + self.config.max_pages):
            if on_stage:
                on_stage(SweepStage.FETCHING)
            try:
                response = self.fetcher.fetch(page)
                tree = self.normalizer.parse(response.content)
            except (TransportError, ParseError) as exc:
                result.pages_failed += 1
                consecutive_failures += 1
                self.logger.error(
                    "page_failed",
                    page=page,
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
                if consecutive_failures >= self.config.max_consecutive_failures:
                    result.stop_reason = "too_many_failures"
                    break
                if self.config.policy is PaginationPolicy.NONE:
                    result.stop_reason = "single_page"
                    break
                continue
            consecutive_failures = 0
            result.pages_fetched += 1

            if on_stage:
                on_stage(SweepStage.EXTRACTING)
            rows = self.extractor.select_rows(tree)
            page_records = list(self.extractor.iter_records(rows, page=page))
            result.records.extend(page_records)
            self.logger.info(
                "page_extracted", page=page, rows=len(rows), records=len(page_records)
            )

            reason = self._stop_reason(rows_matched=len(rows), page_records=page_records, today=today)
            if reason:
                result.stop_reason = reason
                break
        else:
            result.stop_reason = "max_pages"
        return result

    def _stop_reason(self, rows_matched: int, page_records: list[Record], today: date) -> str | None:
        policy = self.config.policy
        if policy is PaginationPolicy.NONE:
            return "single_page"
        if policy is PaginationPolicy.EMPTY_PAGE:
            return "empty_page" if rows_matched == 0 else None
        # cutoff date: keep going only while the page still ends on today
        if not page_records:
            return "cutoff_no_records"
        last_value = page_records[-1].field_value(self.config.cutoff_field)
        if _as_date(last_value) != today:
            return "cutoff_date"
        return None


def _as_date(value: object) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return None


__all__ = ["PaginationController", "PaginationResult", "SweepStage"]
