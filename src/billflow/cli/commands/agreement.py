"""Rental and project agreement commands."""

import click

from billflow.cli.error_handling import handle_domain_error, money
from billflow.domain.directory import DirectoryService
from billflow.domain.entities import AgreementStatus
from billflow.domain.errors import DomainError
from billflow.utils.amount_parser import parse_amount
from billflow.utils.date_parser import parse_date
from billflow.utils.resolver import resolve_entity


@click.group()
def agreement_group():
    """Manage rental and project agreements."""
    pass


@agreement_group.command("rental-add")
@click.argument("agreement_number", metavar="NUMBER")
@click.option("--tenant", required=True, help="Tenant name or ID")
@click.option("--property", "property_ref", required=True, help="Property name or ID")
@click.option("--rent", required=True, help="Monthly rent")
@click.option("--deposit", default="0", show_default=True, help="Security deposit")
@click.option("--start", "start_date", default="today", show_default=True, help="Start date")
@click.option("--due-day", type=int, default=1, show_default=True, help="Day of month rent is due")
@click.pass_context
def add_rental_agreement(
    ctx,
    agreement_number: str,
    tenant: str,
    property_ref: str,
    rent: str,
    deposit: str,
    start_date: str,
    due_day: int,
):
    """Add a rental agreement.

    Examples:
        billflow agreement rental-add RA-001 --tenant "Jane" --property "Flat 101" --rent 50000 --deposit 100000
    """
    db = ctx.obj["db"]
    service = DirectoryService(db)
    snapshot = db.snapshot()
    try:
        agreement = service.add_rental_agreement(
            agreement_number,
            resolve_entity(snapshot.contacts, tenant, "Tenant").id,
            resolve_entity(snapshot.properties, property_ref, "Property").id,
            parse_amount(rent),
            parse_date(start_date),
            security_deposit=parse_amount(deposit),
            rent_due_day=due_day,
        )
    except ValueError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Created rental agreement {agreement.agreement_number} (ID: {agreement.id})")


@agreement_group.command("project-add")
@click.argument("agreement_number", metavar="NUMBER")
@click.option("--client", required=True, help="Client name or ID")
@click.option("--project", required=True, help="Project name or ID")
@click.option("--price", required=True, help="Selling price")
@click.pass_context
def add_project_agreement(ctx, agreement_number: str, client: str, project: str, price: str):
    """Add a project (unit sale) agreement."""
    db = ctx.obj["db"]
    service = DirectoryService(db)
    snapshot = db.snapshot()
    try:
        agreement = service.add_project_agreement(
            agreement_number,
            resolve_entity(snapshot.contacts, client, "Client").id,
            resolve_entity(snapshot.projects, project, "Project").id,
            parse_amount(price),
        )
    except ValueError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Created project agreement {agreement.agreement_number} (ID: {agreement.id})")


@agreement_group.command("list")
@click.pass_context
def list_agreements(ctx):
    """List rental and project agreements."""
    snapshot = ctx.obj["db"].snapshot()
    if not snapshot.rental_agreements and not snapshot.project_agreements:
        click.echo("No agreements found.")
        return

    if snapshot.rental_agreements:
        click.echo("\nRental agreements:")
        for agreement in snapshot.rental_agreements:
            tenant = snapshot.contact(agreement.tenant_id)
            prop = snapshot.property(agreement.property_id)
            click.echo(
                f"  {agreement.agreement_number} | {tenant.name if tenant else '?'} | "
                f"{prop.name if prop else '?'} | Rent {money(agreement.monthly_rent)} | "
                f"{agreement.status.value}"
            )
    if snapshot.project_agreements:
        click.echo("\nProject agreements:")
        for agreement in snapshot.project_agreements:
            client = snapshot.contact(agreement.client_id)
            project = snapshot.project(agreement.project_id)
            click.echo(
                f"  {agreement.agreement_number} | {client.name if client else '?'} | "
                f"{project.name if project else '?'} | Price {money(agreement.selling_price)} | "
                f"{agreement.status.value}"
            )


@agreement_group.command("cancel")
@click.argument("agreement_ref", metavar="AGREEMENT")
@click.pass_context
def cancel_agreement(ctx, agreement_ref: str):
    """Cancel an agreement by number or ID.

    Invoices can no longer be saved against a cancelled project agreement.
    """
    db = ctx.obj["db"]
    service = DirectoryService(db)
    snapshot = db.snapshot()
    agreements = list(snapshot.rental_agreements) + list(snapshot.project_agreements)
    try:
        agreement = resolve_entity(agreements, agreement_ref, "Agreement", label="agreement_number")
        service.set_agreement_status(agreement.id, AgreementStatus.CANCELLED)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Cancelled agreement {agreement.agreement_number}")


def register_commands(cli):
    """Register agreement commands with main CLI."""
    cli.add_command(agreement_group, name="agreement")
