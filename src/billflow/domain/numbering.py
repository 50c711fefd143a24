"""Document number sequencing."""

import re
from dataclasses import replace
from typing import Iterable, Optional

import structlog

from billflow.database.base import Database
from billflow.domain.entities import (
    Document,
    DocumentKind,
    InvoiceType,
    NumberSeries,
)
from billflow.domain.errors import NotFoundError
from billflow.domain import errors

logger = structlog.get_logger(__name__)

BILL_SERIES = "bill"
RENTAL_INVOICE_SERIES = "rental_invoice"
PROJECT_INVOICE_SERIES = "project_invoice"

DEFAULT_SERIES = (
    NumberSeries(name=BILL_SERIES, prefix="BILL-", next_number=1, padding=5),
    NumberSeries(name=RENTAL_INVOICE_SERIES, prefix="INV-", next_number=1, padding=5),
    NumberSeries(name=PROJECT_INVOICE_SERIES, prefix="P-INV-", next_number=1, padding=5),
)


def format_number(prefix: str, number: int, padding: int) -> str:
    """Format a document number, e.g. ``format_number("BILL-", 7, 5)`` -> ``BILL-00007``."""
    return f"{prefix}{str(number).zfill(padding)}"


def number_suffix(prefix: str, number: str) -> Optional[int]:
    """Numeric suffix of ``number`` after ``prefix``, or None if it has none."""
    if not number.startswith(prefix):
        return None
    suffix = number[len(prefix):]
    if not re.fullmatch(r"\d+", suffix):
        return None
    return int(suffix)


def next_number(series: NumberSeries, existing_numbers: Iterable[str]) -> str:
    """Propose the next free number in ``series``.

    Existing numbers with the series prefix whose numeric suffix is at or
    beyond the counter push the proposal past them.
    """
    candidate = series.next_number
    for number in existing_numbers:
        suffix = number_suffix(series.prefix, number)
        if suffix is not None and suffix >= candidate:
            candidate = suffix + 1
    return format_number(series.prefix, candidate, series.padding)


def advance_series(series: NumberSeries, number: str) -> NumberSeries:
    """Move the counter past ``number`` if it was drawn from this series."""
    suffix = number_suffix(series.prefix, number)
    if suffix is None or suffix < series.next_number:
        return series
    return replace(series, next_number=suffix + 1)


def normalize_number(number: str) -> str:
    return number.strip().lower()


def is_duplicate_number(
    number: str,
    documents: Iterable[Document],
    kind: DocumentKind,
    exclude_id: Optional[str] = None,
) -> bool:
    """Whether another document of ``kind`` already uses ``number``.

    Comparison ignores case and surrounding whitespace; the document being
    edited (``exclude_id``) is not counted.
    """
    wanted = normalize_number(number)
    return any(
        doc.kind == kind and doc.id != exclude_id and normalize_number(doc.number) == wanted
        for doc in documents
    )


def series_for(kind: DocumentKind, invoice_type: Optional[InvoiceType] = None) -> str:
    """Name of the series a document draws its number from."""
    if kind == DocumentKind.BILL:
        return BILL_SERIES
    if invoice_type == InvoiceType.RENTAL or invoice_type == InvoiceType.SECURITY_DEPOSIT:
        return RENTAL_INVOICE_SERIES
    return PROJECT_INVOICE_SERIES


def default_series(name: str) -> Optional[NumberSeries]:
    for series in DEFAULT_SERIES:
        if series.name == name:
            return series
    return None


class NumberingService:
    """Service for proposing and reserving document numbers."""

    def __init__(self, db: Database):
        """Initialize numbering service.

        Args:
            db: Database instance
        """
        self.db = db

    def get_series(self, series_name: str) -> NumberSeries:
        """Get a series, falling back to its built-in default.

        Raises:
            NotFoundError: If the series is unknown
        """
        series = self.db.snapshot().series(series_name) or default_series(series_name)
        if series is None:
            raise NotFoundError(errors.entity_not_found("Number series", series_name))
        return series

    def next_number(self, series_name: str) -> str:
        """Propose the next number for ``series_name``.

        Args:
            series_name: ``bill``, ``rental_invoice`` or ``project_invoice``

        Returns:
            Formatted document number

        Raises:
            NotFoundError: If the series is unknown
        """
        series = self.get_series(series_name)
        existing = [doc.number for doc in self.db.snapshot().documents]
        return next_number(series, existing)

    def reserve(self, series_name: str, number: str) -> NumberSeries:
        """Advance the series counter past a number that has been used.

        Returns:
            The series as persisted after the call
        """
        series = self.get_series(series_name)
        advanced = advance_series(series, number)
        if advanced != series:
            self.db.update_number_series(advanced)
            logger.debug(
                "number_series_advanced",
                series=series_name,
                next_number=advanced.next_number,
            )
        return advanced

    def configure(self, series_name: str, prefix: str, next_number: int, padding: int) -> NumberSeries:
        """Replace a series' prefix, counter and padding."""
        series = NumberSeries(
            name=series_name, prefix=prefix, next_number=next_number, padding=padding
        )
        self.db.update_number_series(series)
        return series

    def list_series(self) -> list[NumberSeries]:
        stored = {s.name: s for s in self.db.snapshot().number_series}
        for series in DEFAULT_SERIES:
            stored.setdefault(series.name, series)
        return sorted(stored.values(), key=lambda s: s.name)
