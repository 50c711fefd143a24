"""Contact management commands."""

import click

from billflow.cli.error_handling import handle_domain_error
from billflow.domain.directory import DirectoryService
from billflow.domain.entities import ContactType
from billflow.domain.errors import DomainError

CONTACT_TYPES = {t.value.lower(): t for t in ContactType}


@click.group()
def contact_group():
    """Manage vendors, tenants, owners, clients and staff."""
    pass


@contact_group.command("add")
@click.argument("name", metavar="NAME")
@click.option(
    "--type",
    "contact_type",
    type=click.Choice(sorted(CONTACT_TYPES), case_sensitive=False),
    default="vendor",
    show_default=True,
    help="Contact type",
)
@click.pass_context
def add_contact(ctx, name: str, contact_type: str):
    """Add a contact.

    Examples:
        billflow contact add "Acme Plumbing"
        billflow contact add "Jane Tenant" --type tenant
    """
    service = DirectoryService(ctx.obj["db"])
    try:
        contact = service.add_contact(name, CONTACT_TYPES[contact_type.lower()])
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Created {contact.contact_type.value.lower()} '{contact.name}' (ID: {contact.id})")


@contact_group.command("list")
@click.option(
    "--type",
    "contact_type",
    type=click.Choice(sorted(CONTACT_TYPES), case_sensitive=False),
    help="Only show contacts of this type",
)
@click.pass_context
def list_contacts(ctx, contact_type: str | None):
    """List contacts."""
    contacts = ctx.obj["db"].snapshot().contacts
    if contact_type:
        contacts = [c for c in contacts if c.contact_type == CONTACT_TYPES[contact_type.lower()]]
    if not contacts:
        click.echo("No contacts found.")
        return

    click.echo("\nContacts:")
    click.echo("-" * 70)
    for contact in contacts:
        click.echo(f"{contact.id} | {contact.name:25s} | {contact.contact_type.value}")


def register_commands(cli):
    """Register contact commands with main CLI."""
    cli.add_command(contact_group, name="contact")
