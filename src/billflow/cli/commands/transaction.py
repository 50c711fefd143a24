"""Payment transaction commands."""

import click

from billflow.cli.error_handling import handle_domain_error, money
from billflow.domain.errors import DomainError
from billflow.domain.payments import PaymentService
from billflow.utils.amount_parser import parse_amount
from billflow.utils.date_parser import parse_date


@click.group()
def transaction_group():
    """Manage payment transactions."""
    pass


@transaction_group.command("list")
@click.option("--document", "document_ref", help="Only show payments on this bill or invoice (number or ID)")
@click.option("--batch", help="Only show transactions of this bulk payment batch")
@click.option("--start-date", help="Start date (YYYY-MM-DD or relative)")
@click.option("--end-date", help="End date (YYYY-MM-DD or relative)")
@click.pass_context
def list_transactions(
    ctx,
    document_ref: str | None,
    batch: str | None,
    start_date: str | None,
    end_date: str | None,
):
    """List transactions."""
    snapshot = ctx.obj["db"].snapshot()
    try:
        start = parse_date(start_date) if start_date else None
        end = parse_date(end_date) if end_date else None
    except ValueError as e:
        click.echo(f"Error: Invalid date format: {e}", err=True)
        ctx.exit(1)

    transactions = list(snapshot.transactions)
    if document_ref:
        wanted = {doc.id for doc in snapshot.documents if document_ref in (doc.id, doc.number)}
        transactions = [t for t in transactions if t.document_id in wanted]
    if batch:
        transactions = [t for t in transactions if t.batch_id == batch]
    if start:
        transactions = [t for t in transactions if t.date >= start]
    if end:
        transactions = [t for t in transactions if t.date <= end]

    if not transactions:
        click.echo("No transactions found.")
        return

    click.echo(f"\n{'ID':32s} | {'Date':10s} | {'Type':7s} | {'Amount':>14s} | Description")
    click.echo("-" * 100)
    for txn in transactions:
        click.echo(
            f"{txn.id:32s} | {txn.date} | {txn.transaction_type.value:7s} | "
            f"{money(txn.amount):>14s} | {txn.description or ''}"
        )


@transaction_group.command("update")
@click.argument("transaction_id")
@click.option("--amount", required=True, help="New payment amount")
@click.pass_context
def update_transaction(ctx, transaction_id: str, amount: str):
    """Change a payment's amount.

    The linked bill or invoice is re-derived, so the new amount may not
    exceed what is left to pay.
    """
    service = PaymentService(ctx.obj["db"])
    try:
        updated = service.update_transaction_amount(transaction_id, parse_amount(amount))
    except ValueError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Updated transaction {updated.id}: amount {money(updated.amount)}")


@transaction_group.command("delete")
@click.argument("transaction_id")
@click.option("--yes", is_flag=True, help="Skip confirmation")
@click.pass_context
def delete_transaction(ctx, transaction_id: str, yes: bool):
    """Delete a payment and roll it back from its bill or invoice."""
    if not yes:
        click.confirm(f"Delete transaction {transaction_id}?", abort=True)
    service = PaymentService(ctx.obj["db"])
    try:
        service.delete_transaction(transaction_id)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Deleted transaction {transaction_id}")


def register_commands(cli):
    """Register transaction commands with main CLI."""
    cli.add_command(transaction_group, name="transaction")
