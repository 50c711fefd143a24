"""Utility functions for billflow."""

from billflow.utils.date_parser import parse_date
from billflow.utils.amount_parser import parse_amount
from billflow.utils.resolver import resolve_document, resolve_entity

__all__ = ["parse_date", "parse_amount", "resolve_document", "resolve_entity"]
