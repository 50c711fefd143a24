"""Project, building and property commands."""

import click

from billflow.cli.error_handling import handle_domain_error
from billflow.domain.directory import DirectoryService
from billflow.domain.errors import DomainError
from billflow.utils.resolver import resolve_entity, resolve_optional


@click.group()
def project_group():
    """Manage projects."""
    pass


@project_group.command("add")
@click.argument("name", metavar="NAME")
@click.pass_context
def add_project(ctx, name: str):
    """Add a project."""
    service = DirectoryService(ctx.obj["db"])
    try:
        project = service.add_project(name)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Created project '{project.name}' (ID: {project.id})")


@project_group.command("list")
@click.pass_context
def list_projects(ctx):
    """List projects."""
    projects = ctx.obj["db"].snapshot().projects
    if not projects:
        click.echo("No projects found.")
        return
    for project in projects:
        click.echo(f"{project.id} | {project.name}")


@click.group()
def building_group():
    """Manage buildings."""
    pass


@building_group.command("add")
@click.argument("name", metavar="NAME")
@click.pass_context
def add_building(ctx, name: str):
    """Add a building."""
    service = DirectoryService(ctx.obj["db"])
    try:
        building = service.add_building(name)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Created building '{building.name}' (ID: {building.id})")


@building_group.command("list")
@click.pass_context
def list_buildings(ctx):
    """List buildings."""
    buildings = ctx.obj["db"].snapshot().buildings
    if not buildings:
        click.echo("No buildings found.")
        return
    for building in buildings:
        click.echo(f"{building.id} | {building.name}")


@click.group()
def property_group():
    """Manage properties (units inside buildings)."""
    pass


@property_group.command("add")
@click.argument("name", metavar="NAME")
@click.option("--building", required=True, help="Building name or ID")
@click.option("--owner", help="Owner contact name or ID")
@click.pass_context
def add_property(ctx, name: str, building: str, owner: str | None):
    """Add a property to a building.

    Examples:
        billflow property add "Flat 101" --building "Tower A" --owner "Sam Owner"
    """
    db = ctx.obj["db"]
    service = DirectoryService(db)
    snapshot = db.snapshot()
    try:
        building_id = resolve_entity(snapshot.buildings, building, "Building").id
        owner_id = resolve_optional(snapshot.contacts, owner, "Contact")
        prop = service.add_property(name, building_id, owner_id)
    except DomainError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Created property '{prop.name}' (ID: {prop.id})")


@property_group.command("list")
@click.pass_context
def list_properties(ctx):
    """List properties with their buildings."""
    snapshot = ctx.obj["db"].snapshot()
    if not snapshot.properties:
        click.echo("No properties found.")
        return
    for prop in snapshot.properties:
        building = snapshot.building(prop.building_id)
        owner = snapshot.contact(prop.owner_id)
        line = f"{prop.id} | {prop.name:15s} | {building.name if building else '?'}"
        if owner:
            line += f" | Owner: {owner.name}"
        click.echo(line)


def register_commands(cli):
    """Register project, building and property commands with main CLI."""
    cli.add_command(project_group, name="project")
    cli.add_command(building_group, name="building")
    cli.add_command(property_group, name="property")
