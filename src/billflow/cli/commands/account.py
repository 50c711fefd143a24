"""Payment account commands."""

import click

from billflow.cli.error_handling import handle_domain_error
from billflow.domain.directory import DirectoryService
from billflow.domain.entities import AccountType
from billflow.domain.errors import DomainError


@click.group()
def account_group():
    """Manage payment accounts."""
    pass


@account_group.command("add")
@click.argument("name", metavar="ACCOUNT_NAME")
@click.option(
    "--type",
    "account_type",
    type=click.Choice(["bank", "cash", "clearing"], case_sensitive=False),
    default="bank",
    show_default=True,
    help="Account type",
)
@click.pass_context
def add_account(ctx, name: str, account_type: str):
    """Add a payment account.

    Examples:
        billflow account add "Meezan Current"
        billflow account add "Petty Cash" --type cash
    """
    service = DirectoryService(ctx.obj["db"])
    try:
        account = service.add_account(name, AccountType(account_type.capitalize()))
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Created account '{account.name}' (ID: {account.id})")


@account_group.command("list")
@click.pass_context
def list_accounts(ctx):
    """List all accounts."""
    accounts = ctx.obj["db"].snapshot().accounts
    if not accounts:
        click.echo("No accounts found.")
        return

    click.echo("\nAccounts:")
    click.echo("-" * 60)
    for acc in accounts:
        click.echo(f"{acc.id} | {acc.name:20s} | {acc.account_type.value}")


def register_commands(cli):
    """Register account commands with main CLI."""
    cli.add_command(account_group, name="account")
