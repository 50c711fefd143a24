"""Category management commands."""

import click

from billflow.cli.error_handling import handle_domain_error
from billflow.domain.directory import DirectoryService
from billflow.domain.entities import CategoryType
from billflow.domain.errors import DomainError
from billflow.utils.resolver import resolve_optional


@click.group()
def category_group():
    """Manage income and expense categories."""
    pass


@category_group.command("add")
@click.argument("name", metavar="NAME")
@click.option(
    "--type",
    "category_type",
    type=click.Choice(["income", "expense"], case_sensitive=False),
    default="expense",
    show_default=True,
    help="Category type",
)
@click.option("--parent", help="Parent category name or ID")
@click.pass_context
def add_category(ctx, name: str, category_type: str, parent: str | None):
    """Add a category.

    Examples:
        billflow category add "Plumbing"
        billflow category add "Parking Income" --type income
    """
    db = ctx.obj["db"]
    service = DirectoryService(db)
    try:
        parent_id = resolve_optional(db.snapshot().categories, parent, "Category")
        category = service.add_category(name, CategoryType(category_type.capitalize()), parent_id)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Created {category.category_type.value.lower()} category '{category.name}' (ID: {category.id})")


@category_group.command("list")
@click.pass_context
def list_categories(ctx):
    """List categories grouped by type."""
    categories = ctx.obj["db"].snapshot().categories
    if not categories:
        click.echo("No categories found. Run 'billflow init' to create the system categories.")
        return
    for category_type in CategoryType:
        members = [c for c in categories if c.category_type == category_type]
        if not members:
            continue
        click.echo(f"\n{category_type.value}:")
        for category in members:
            click.echo(f"  {category.name} (ID: {category.id})")


def register_commands(cli):
    """Register category commands with main CLI."""
    cli.add_command(category_group, name="category")
