"""Initialize system categories, accounts and numbering series."""

import click

from billflow.domain.directory import DirectoryService


@click.command("init")
@click.pass_context
def init_defaults(ctx):
    """Initialize database with system categories, accounts and number series.

    Safe to run more than once; existing entries are kept.
    """
    db = ctx.obj["db"]
    service = DirectoryService(db)

    created = service.initialize_defaults()
    click.echo(
        f"Created {created['categories']} categories, {created['accounts']} accounts "
        f"and {created['series']} number series."
    )


def register_commands(cli):
    """Register init command with main CLI."""
    cli.add_command(init_defaults)
