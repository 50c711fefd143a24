"""CLI error handling and formatting helpers."""

from decimal import Decimal
from typing import NoReturn

import click

from billflow.domain.errors import DomainError


def handle_domain_error(ctx: click.Context, error: DomainError | ValueError) -> NoReturn:
    """Render a domain error and exit with failure."""
    click.echo(f"Error: {error}", err=True)
    ctx.exit(1)


def money(value: Decimal) -> str:
    """Format an amount for display."""
    return f"{value:,.2f}"
