"""Rollup tree commands."""

import click

from billflow.cli.error_handling import handle_domain_error, money
from billflow.domain.entities import InvoiceType, TreeNode
from billflow.domain.errors import DomainError
from billflow.domain.tree import SORT_KEYS, TreeService, filter_tree, sort_tree
from billflow.utils.resolver import resolve_optional

INVOICE_TYPES = {
    "rental": InvoiceType.RENTAL,
    "installment": InvoiceType.INSTALLMENT,
    "service-charge": InvoiceType.SERVICE_CHARGE,
    "security-deposit": InvoiceType.SECURITY_DEPOSIT,
}


def print_tree(nodes: list[TreeNode], indent: int = 0) -> None:
    """Print tree nodes with their totals."""
    for node in nodes:
        prefix = "  " * indent
        label = f"{prefix}{node.name}"
        click.echo(
            f"{label:40s} {node.count:5d} {money(node.amount):>16s} {money(node.balance):>16s}"
        )
        if node.children:
            print_tree(list(node.children), indent + 1)


def _show(ctx, nodes: list[TreeNode], sort_key: str, direction: str, search: str | None) -> None:
    try:
        nodes = sort_tree(nodes, sort_key, direction)
    except DomainError as e:
        handle_domain_error(ctx, e)
    if search:
        nodes = filter_tree(nodes, search)
    if not nodes:
        click.echo("Nothing to show.")
        return
    click.echo(f"{'Name':40s} {'Count':>5s} {'Amount':>16s} {'Balance':>16s}")
    click.echo("-" * 80)
    print_tree(nodes)


def tree_options(f):
    """Shared sort and search options."""
    f = click.option("--search", help="Only show nodes whose name contains this text")(f)
    f = click.option(
        "--direction", type=click.Choice(["asc", "desc"]), default="desc", show_default=True
    )(f)
    f = click.option("--sort", "sort_key", type=click.Choice(SORT_KEYS), default="balance", show_default=True)(f)
    return f


@click.group()
def tree_group():
    """Show bill and invoice rollups by group and vendor."""
    pass


@tree_group.command("bills")
@click.option(
    "--group-by",
    type=click.Choice(["project", "building", "staff"]),
    default="project",
    show_default=True,
    help="Top-level grouping",
)
@click.option("--project", help="Only show this project (name or ID)")
@tree_options
@click.pass_context
def bill_tree(ctx, group_by: str, project: str | None, sort_key: str, direction: str, search: str | None):
    """Show the bill tree.

    Examples:
        billflow tree bills
        billflow tree bills --group-by building --sort name --direction asc
    """
    db = ctx.obj["db"]
    try:
        project_id = resolve_optional(db.snapshot().projects, project, "Project")
        nodes = TreeService(db).bill_tree(project_id=project_id, group_by=group_by)
    except DomainError as e:
        handle_domain_error(ctx, e)
    _show(ctx, nodes, sort_key, direction, search)


@tree_group.command("invoices")
@click.option(
    "--type",
    "invoice_type",
    type=click.Choice(sorted(INVOICE_TYPES)),
    default="rental",
    show_default=True,
    help="Invoice type",
)
@click.option("--project", help="Only show this project (name or ID)")
@click.option("--building", help="Only show this building (name or ID)")
@tree_options
@click.pass_context
def invoice_tree(
    ctx,
    invoice_type: str,
    project: str | None,
    building: str | None,
    sort_key: str,
    direction: str,
    search: str | None,
):
    """Show the invoice tree (rental invoices by building, others by project)."""
    db = ctx.obj["db"]
    snapshot = db.snapshot()
    try:
        nodes = TreeService(db).invoice_tree(
            INVOICE_TYPES[invoice_type],
            project_id=resolve_optional(snapshot.projects, project, "Project"),
            building_id=resolve_optional(snapshot.buildings, building, "Building"),
        )
    except DomainError as e:
        handle_domain_error(ctx, e)
    _show(ctx, nodes, sort_key, direction, search)


def register_commands(cli):
    """Register tree commands with main CLI."""
    cli.add_command(tree_group, name="tree")
