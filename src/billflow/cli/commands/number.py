"""Document numbering commands."""

import click

from billflow.cli.error_handling import handle_domain_error
from billflow.domain.errors import DomainError
from billflow.domain.numbering import NumberingService, format_number


@click.group()
def number_group():
    """Show and configure bill and invoice numbering."""
    pass


@number_group.command("next")
@click.argument("series_name", metavar="SERIES")
@click.pass_context
def next_number(ctx, series_name: str):
    """Show the next free number in a series (bill, rental_invoice, project_invoice)."""
    service = NumberingService(ctx.obj["db"])
    try:
        click.echo(service.next_number(series_name))
    except DomainError as e:
        handle_domain_error(ctx, e)


@number_group.command("list")
@click.pass_context
def list_series(ctx):
    """List numbering series."""
    series_list = NumberingService(ctx.obj["db"]).list_series()
    if not series_list:
        click.echo("No number series configured. Run 'billflow init' first.")
        return
    for series in series_list:
        preview = format_number(series.prefix, series.next_number, series.padding)
        click.echo(f"{series.name:16s} | prefix {series.prefix!r:10s} | next {preview}")


@number_group.command("set")
@click.argument("series_name", metavar="SERIES")
@click.option("--prefix", help="Number prefix (e.g., 'BILL-')")
@click.option("--next", "next_value", type=int, help="Next number to issue")
@click.option("--padding", type=int, help="Zero padding width")
@click.pass_context
def set_series(ctx, series_name: str, prefix: str | None, next_value: int | None, padding: int | None):
    """Configure a numbering series.

    Examples:
        billflow number set bill --prefix "B-" --next 100 --padding 4
    """
    service = NumberingService(ctx.obj["db"])
    try:
        current = service.get_series(series_name)
        series = service.configure(
            series_name,
            prefix if prefix is not None else current.prefix,
            next_value if next_value is not None else current.next_number,
            padding if padding is not None else current.padding,
        )
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Updated series '{series.name}': next number {format_number(series.prefix, series.next_number, series.padding)}")


def register_commands(cli):
    """Register numbering commands with main CLI."""
    cli.add_command(number_group, name="number")
