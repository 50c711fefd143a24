"""Vendor contract commands."""

import click

from billflow.cli.error_handling import handle_domain_error, money
from billflow.domain.contracts import contract_paid_amount
from billflow.domain.directory import DirectoryService
from billflow.domain.errors import DomainError
from billflow.utils.amount_parser import parse_amount
from billflow.utils.resolver import resolve_entity, resolve_optional


@click.group()
def contract_group():
    """Manage vendor contracts."""
    pass


@contract_group.command("add")
@click.argument("contract_number", metavar="NUMBER")
@click.option("--name", required=True, help="Contract name")
@click.option("--vendor", required=True, help="Vendor name or ID")
@click.option("--total", required=True, help="Contract total amount")
@click.option("--project", help="Project name or ID")
@click.pass_context
def add_contract(ctx, contract_number: str, name: str, vendor: str, total: str, project: str | None):
    """Add a vendor contract.

    Examples:
        billflow contract add C-001 --name "Plumbing works" --vendor "Acme" --total 500000 --project "Tower A"
    """
    db = ctx.obj["db"]
    service = DirectoryService(db)
    snapshot = db.snapshot()
    try:
        total_amount = parse_amount(total)
        vendor_id = resolve_entity(snapshot.contacts, vendor, "Vendor").id
        project_id = resolve_optional(snapshot.projects, project, "Project")
        contract = service.add_contract(contract_number, name, vendor_id, total_amount, project_id)
    except ValueError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Created contract {contract.contract_number} (ID: {contract.id})")


@contract_group.command("list")
@click.pass_context
def list_contracts(ctx):
    """List contracts with their paid amounts."""
    snapshot = ctx.obj["db"].snapshot()
    if not snapshot.contracts:
        click.echo("No contracts found.")
        return

    click.echo("\nContracts:")
    click.echo("-" * 90)
    for contract in snapshot.contracts:
        vendor = snapshot.contact(contract.vendor_id)
        paid = contract_paid_amount(contract.id, snapshot.transactions)
        click.echo(
            f"{contract.contract_number:10s} | {contract.name:25s} | "
            f"{vendor.name if vendor else '?':20s} | "
            f"{money(paid)} / {money(contract.total_amount)} | {contract.status.value}"
        )


@contract_group.command("show")
@click.argument("contract_ref", metavar="CONTRACT")
@click.pass_context
def show_contract(ctx, contract_ref: str):
    """Show contract details and budget usage."""
    snapshot = ctx.obj["db"].snapshot()
    try:
        contract = resolve_entity(snapshot.contracts, contract_ref, "Contract", label="contract_number")
    except DomainError as e:
        handle_domain_error(ctx, e)

    vendor = snapshot.contact(contract.vendor_id)
    project = snapshot.project(contract.project_id)
    paid = contract_paid_amount(contract.id, snapshot.transactions)
    click.echo(f"Contract {contract.contract_number}: {contract.name}")
    click.echo(f"  Vendor:    {vendor.name if vendor else contract.vendor_id}")
    if project:
        click.echo(f"  Project:   {project.name}")
    click.echo(f"  Status:    {contract.status.value}")
    click.echo(f"  Total:     {money(contract.total_amount)}")
    click.echo(f"  Paid:      {money(paid)}")
    click.echo(f"  Remaining: {money(contract.total_amount - paid)}")

    bills = [doc for doc in snapshot.documents if doc.contract_id == contract.id]
    if bills:
        click.echo("  Bills:")
        for bill in bills:
            click.echo(f"    {bill.number} | {money(bill.amount)} | {bill.status.value}")


@contract_group.command("terminate")
@click.argument("contract_ref", metavar="CONTRACT")
@click.pass_context
def terminate_contract(ctx, contract_ref: str):
    """Mark a contract as terminated."""
    db = ctx.obj["db"]
    service = DirectoryService(db)
    try:
        contract = resolve_entity(db.snapshot().contracts, contract_ref, "Contract", label="contract_number")
        service.terminate_contract(contract.id)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Terminated contract {contract.contract_number}")


def register_commands(cli):
    """Register contract commands with main CLI."""
    cli.add_command(contract_group, name="contract")
