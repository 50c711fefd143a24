"""Main CLI entry point."""

import click

from billflow.config.logging import configure_logging
from billflow.database.factories import create_sqlite_database

# Import and register all commands at module level
from billflow.cli.commands import (
    account,
    agreement,
    category,
    contact,
    contract,
    document,
    init,
    number,
    place,
    transaction,
    tree,
)


@click.group()
@click.option(
    "--db-path",
    type=click.Path(),
    help="Path to database file (overrides BILLFLOW_DB_PATH environment variable)",
    envvar="BILLFLOW_DB_PATH",
)
@click.option(
    "--remote-url",
    help="Base URL of the remote transaction store (overrides BILLFLOW_REMOTE_URL)",
    envvar="BILLFLOW_REMOTE_URL",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Log level (overrides BILLFLOW_LOG_LEVEL)",
    envvar="BILLFLOW_LOG_LEVEL",
)
@click.pass_context
def cli(ctx, db_path: str | None, remote_url: str | None, log_level: str | None):
    """Billflow - bill and invoice allocation and payment reconciliation.

    Record vendor bills and tenant/client invoices, allocate them to projects,
    buildings or staff, link bills to vendor contracts and reconcile single
    or bulk payments against outstanding balances.
    """
    ctx.ensure_object(dict)
    configure_logging(level=log_level.upper() if log_level else None)

    # Initialize database connection only when actually running a command
    # (not when showing help)
    if ctx.invoked_subcommand is not None:
        db = create_sqlite_database(database_path=db_path)
        db.connect()
        db.initialize_schema()
        ctx.obj["db"] = db
        ctx.obj["remote_url"] = remote_url
        ctx.call_on_close(db.disconnect)


# Register all commands
init.register_commands(cli)
contact.register_commands(cli)
place.register_commands(cli)
category.register_commands(cli)
account.register_commands(cli)
contract.register_commands(cli)
agreement.register_commands(cli)
document.register_commands(cli)
transaction.register_commands(cli)
tree.register_commands(cli)
number.register_commands(cli)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
