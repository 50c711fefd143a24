"""Bill and invoice commands, including payments."""

import asyncio
from dataclasses import replace
from decimal import Decimal

import click

from billflow.cli.error_handling import handle_domain_error, money
from billflow.domain.allocation import (
    AllocationRoot,
    StaffAllocation,
    TenantAllocation,
    classify_allocation,
    root_of,
    select_root,
)
from billflow.domain.amounts import line_item_from_quantity
from billflow.domain.contracts import available_contracts, link_contract, unlink_contract
from billflow.domain.documents import DocumentService
from billflow.domain.entities import (
    CategoryType,
    Document,
    DocumentKind,
    DocumentStatus,
    InvoiceType,
    LineItem,
    LineItemUnit,
    Snapshot,
    new_id,
)
from billflow.domain.errors import DomainError, ValidationError
from billflow.domain.numbering import NumberingService, series_for
from billflow.domain.payments import PaymentService
from billflow.gateway.factories import create_transaction_gateway
from billflow.utils.amount_parser import parse_amount
from billflow.utils.date_parser import parse_date
from billflow.utils.resolver import resolve_document, resolve_entity, resolve_optional

STATUSES = {
    "draft": DocumentStatus.DRAFT,
    "unpaid": DocumentStatus.UNPAID,
    "partially-paid": DocumentStatus.PARTIALLY_PAID,
    "paid": DocumentStatus.PAID,
    "overdue": DocumentStatus.OVERDUE,
}

INVOICE_TYPES = {
    "rental": InvoiceType.RENTAL,
    "installment": InvoiceType.INSTALLMENT,
    "service-charge": InvoiceType.SERVICE_CHARGE,
    "security-deposit": InvoiceType.SECURITY_DEPOSIT,
}

UNITS = {unit.value.lower(): unit for unit in LineItemUnit}


def parse_line_item(snapshot: Snapshot, item: str) -> LineItem:
    """Parse ``CATEGORY:QTY:PRICE[:UNIT]`` into a line item.

    Raises:
        ValueError: If the item is malformed or the category is unknown
    """
    parts = item.split(":")
    unit = LineItemUnit.QUANTITY
    if len(parts) >= 4 and parts[-1].strip().lower() in UNITS:
        unit = UNITS[parts.pop().strip().lower()]
    if len(parts) < 3:
        raise ValidationError(f"Invalid item '{item}'. Use CATEGORY:QTY:PRICE[:UNIT]")

    category_ref = ":".join(parts[:-2])
    expense_categories = [c for c in snapshot.categories if c.category_type == CategoryType.EXPENSE]
    category = resolve_entity(expense_categories, category_ref, "Category")
    return line_item_from_quantity(category.id, parse_amount(parts[-2]), parse_amount(parts[-1]), unit)


def resolve_category(snapshot: Snapshot, kind: DocumentKind, reference: str | None) -> str | None:
    if reference is None:
        return None
    wanted = CategoryType.EXPENSE if kind == DocumentKind.BILL else CategoryType.INCOME
    candidates = [c for c in snapshot.categories if c.category_type == wanted]
    return resolve_entity(candidates, reference, "Category").id


def describe_allocation(document: Document, snapshot: Snapshot) -> str:
    """One-line description of where a document is allocated."""
    allocation = classify_allocation(document, snapshot)
    root = root_of(allocation)
    if root is None:
        return "General / Unassigned"
    if root == AllocationRoot.PROJECT:
        project = snapshot.project(document.project_id)
        return f"Project: {project.name if project else document.project_id}"
    if isinstance(allocation, StaffAllocation):
        staff = snapshot.contact(allocation.staff_id)
        return f"Staff: {staff.name if staff else allocation.staff_id}"

    building = snapshot.building(allocation.building_id)
    text = f"Building: {building.name if building else allocation.building_id}"
    prop = snapshot.property(document.property_id)
    if prop is not None:
        text += f" / {prop.name}"
    if isinstance(allocation, TenantAllocation):
        tenant = snapshot.contact(allocation.tenant_id)
        text += f" (Tenant: {tenant.name if tenant else allocation.tenant_id})"
    elif prop is not None:
        owner = snapshot.contact(prop.owner_id)
        text += f" (Owner: {owner.name})" if owner else " (Owner)"
    return text


def apply_allocation_options(
    document: Document,
    snapshot: Snapshot,
    project: str | None,
    building: str | None,
    property_ref: str | None,
    staff: str | None,
) -> Document:
    """Move a document to the allocation named on the command line.

    Selecting a root clears the fields of the other roots; naming a property
    without a building lets the save fill in the building.
    """
    if staff is not None:
        document = select_root(document, AllocationRoot.STAFF)
        return replace(document, staff_id=resolve_entity(snapshot.contacts, staff, "Staff member").id)
    if project is not None:
        document = select_root(document, AllocationRoot.PROJECT)
        return replace(document, project_id=resolve_entity(snapshot.projects, project, "Project").id)
    if building is not None or property_ref is not None:
        document = select_root(document, AllocationRoot.BUILDING)
        return replace(
            document,
            building_id=resolve_optional(snapshot.buildings, building, "Building"),
            property_id=resolve_optional(snapshot.properties, property_ref, "Property"),
        )
    return document


def print_document(document: Document, snapshot: Snapshot) -> None:
    label = "Bill" if document.kind == DocumentKind.BILL else "Invoice"
    contact = snapshot.contact(document.contact_id)
    click.echo(f"{label} {document.number} (ID: {document.id})")
    click.echo(f"  Contact:    {contact.name if contact else document.contact_id}")
    if document.invoice_type:
        click.echo(f"  Type:       {document.invoice_type.value}")
    click.echo(f"  Issued:     {document.issue_date}")
    if document.due_date:
        click.echo(f"  Due:        {document.due_date}")
    click.echo(f"  Status:     {document.status.value}")
    click.echo(f"  Amount:     {money(document.amount)}")
    if document.security_deposit_charge:
        click.echo(f"  Deposit:    {money(document.security_deposit_charge)}")
    click.echo(f"  Paid:       {money(document.paid_amount)}")
    click.echo(f"  Balance:    {money(document.balance)}")
    click.echo(f"  Allocation: {describe_allocation(document, snapshot)}")
    contract = snapshot.contract(document.contract_id)
    if contract is not None:
        click.echo(f"  Contract:   {contract.contract_number} - {contract.name}")
    if document.description:
        click.echo(f"  Note:       {document.description}")

    if document.line_items:
        click.echo("  Items:")
        for item in document.line_items:
            category = snapshot.category(item.category_id)
            click.echo(
                f"    {category.name if category else item.category_id:25s} "
                f"{item.quantity} {item.unit.value} x {money(item.price_per_unit)} = {money(item.net_value)}"
            )

    payments = [t for t in snapshot.transactions if t.document_id == document.id]
    if payments:
        click.echo("  Payments:")
        for payment in payments:
            click.echo(f"    {payment.date} | {money(payment.amount):>14s} | {payment.id}")


def parse_amount_overrides(snapshot: Snapshot, kind: DocumentKind, overrides: tuple[str, ...]) -> dict[str, Decimal]:
    """Parse ``REF=AMOUNT`` pairs into a payment map keyed by document ID."""
    payment_map = {}
    for override in overrides:
        ref, sep, amount = override.rpartition("=")
        if not sep or not ref:
            raise ValidationError(f"Invalid amount '{override}'. Use NUMBER=AMOUNT")
        payment_map[resolve_document(snapshot, kind, ref).id] = parse_amount(amount)
    return payment_map


def make_document_group(kind: DocumentKind) -> click.Group:
    """Build the command group for bills or invoices."""
    is_bill = kind == DocumentKind.BILL
    label = "bill" if is_bill else "invoice"
    contact_help = "Vendor name or ID" if is_bill else "Tenant or client name or ID"

    @click.group(help=f"Manage {label}s and their payments.")
    def group():
        pass

    def kind_options(f):
        if is_bill:
            f = click.option(
                "--item",
                "items",
                multiple=True,
                help="Line item as CATEGORY:QTY:PRICE[:UNIT] (repeatable)",
            )(f)
            f = click.option("--contract", help="Contract number or ID")(f)
            f = click.option("--staff", help="Allocate to a staff member (name or ID)")(f)
        else:
            f = click.option(
                "--type",
                "invoice_type",
                type=click.Choice(sorted(INVOICE_TYPES)),
                help="Invoice type",
            )(f)
            f = click.option("--deposit", help="Security deposit charged on a rental invoice")(f)
            f = click.option("--project-agreement", help="Project agreement number or ID")(f)
        f = click.option("--rental-agreement", help="Rental agreement number or ID")(f)
        f = click.option("--property", "property_ref", help="Property name or ID")(f)
        f = click.option("--building", help="Building name or ID")(f)
        f = click.option("--project", help="Project name or ID")(f)
        return f

    @group.command("add", help=f"Add a {label}. Use --item for categorized lines (bills) or --amount for a flat total.")
    @click.option("--number", help=f"{label.capitalize()} number (defaults to the next in its series)")
    @click.option("--contact", required=True, help=contact_help)
    @click.option("--amount", help="Amount (ignored when items are given)")
    @click.option("--category", help="Category name or ID")
    @click.option("--date", "issue_date", default="today", show_default=True, help="Issue date")
    @click.option("--due-date", help="Due date (defaults from the issue date)")
    @click.option("--description", help="Description")
    @click.option("--draft", is_flag=True, help="Save as draft")
    @kind_options
    @click.pass_context
    def add(ctx, number, contact, amount, category, issue_date, due_date, description, draft, **options):
        db = ctx.obj["db"]
        service = DocumentService(db)
        snapshot = db.snapshot()
        try:
            invoice_type = INVOICE_TYPES[options["invoice_type"]] if options.get("invoice_type") else None
            if not is_bill and invoice_type is None:
                invoice_type = InvoiceType.RENTAL if options.get("rental_agreement") else InvoiceType.INSTALLMENT
            items = tuple(parse_line_item(snapshot, item) for item in options.get("items", ()))
            deposit = parse_amount(options["deposit"]) if options.get("deposit") else Decimal("0")
            flat_amount = parse_amount(amount) if amount else Decimal("0")
            if invoice_type == InvoiceType.RENTAL:
                flat_amount += deposit

            document = Document(
                id=new_id(),
                kind=kind,
                number=number or NumberingService(db).next_number(series_for(kind, invoice_type)),
                contact_id=resolve_entity(snapshot.contacts, contact, "Contact").id,
                amount=flat_amount,
                issue_date=parse_date(issue_date),
                status=DocumentStatus.DRAFT if draft else DocumentStatus.UNPAID,
                due_date=parse_date(due_date) if due_date else None,
                description=description,
                category_id=resolve_category(snapshot, kind, category),
                invoice_type=invoice_type,
                security_deposit_charge=deposit if invoice_type == InvoiceType.RENTAL else Decimal("0"),
                line_items=items,
            )
            document = apply_allocation_options(
                document,
                snapshot,
                options.get("project"),
                options.get("building"),
                options.get("property_ref"),
                options.get("staff"),
            )
            if options.get("rental_agreement"):
                agreement = resolve_entity(
                    snapshot.rental_agreements, options["rental_agreement"], "Rental agreement", "agreement_number"
                )
                document = replace(document, rental_agreement_id=agreement.id)
                if not document.property_id and not document.project_id and not document.staff_id:
                    document = replace(document, property_id=agreement.property_id)
            if options.get("project_agreement"):
                agreement = resolve_entity(
                    snapshot.project_agreements, options["project_agreement"], "Project agreement", "agreement_number"
                )
                document = replace(
                    document,
                    project_agreement_id=agreement.id,
                    project_id=document.project_id or agreement.project_id,
                )
            if options.get("contract"):
                contract = resolve_entity(snapshot.contracts, options["contract"], "Contract", "contract_number")
                document = link_contract(document, contract)

            saved = service.save_document(document)
        except ValueError as e:
            handle_domain_error(ctx, e)
        click.echo(f"Created {label} {saved.number} for {money(saved.amount)} (ID: {saved.id})")

    @group.command(
        "edit",
        help=(
            f"Edit a {label}. Only the options given are changed; choosing --project, "
            "--building or --staff moves it to that allocation and clears the others."
        ),
    )
    @click.argument("reference", metavar="NUMBER")
    @click.option("--number", "new_number", help="New number")
    @click.option("--amount", help="New amount (ignored when the document has items)")
    @click.option("--category", help="Category name or ID")
    @click.option("--due-date", help="Due date")
    @click.option("--description", help="Description")
    @kind_options
    @click.pass_context
    def edit(ctx, reference, new_number, amount, category, due_date, description, **options):
        db = ctx.obj["db"]
        service = DocumentService(db)
        snapshot = db.snapshot()
        try:
            document = resolve_document(snapshot, kind, reference)
            changes = {}
            if new_number is not None:
                changes["number"] = new_number
            if amount is not None:
                changes["amount"] = parse_amount(amount)
            if category is not None:
                changes["category_id"] = resolve_category(snapshot, kind, category)
            if due_date is not None:
                changes["due_date"] = parse_date(due_date)
            if description is not None:
                changes["description"] = description
            if options.get("items"):
                changes["line_items"] = tuple(parse_line_item(snapshot, item) for item in options["items"])
            if options.get("invoice_type"):
                changes["invoice_type"] = INVOICE_TYPES[options["invoice_type"]]
            if options.get("deposit") is not None:
                deposit = parse_amount(options["deposit"])
                rent = changes.get("amount", document.amount - document.security_deposit_charge)
                changes["security_deposit_charge"] = deposit
                changes["amount"] = rent + deposit
            document = replace(document, **changes)

            document = apply_allocation_options(
                document,
                snapshot,
                options.get("project"),
                options.get("building"),
                options.get("property_ref"),
                options.get("staff"),
            )
            if options.get("rental_agreement") is not None:
                agreement_id = None
                if options["rental_agreement"]:
                    agreement_id = resolve_entity(
                        snapshot.rental_agreements,
                        options["rental_agreement"],
                        "Rental agreement",
                        "agreement_number",
                    ).id
                document = replace(document, rental_agreement_id=agreement_id)
            if options.get("contract") is not None:
                if options["contract"]:
                    contract = resolve_entity(snapshot.contracts, options["contract"], "Contract", "contract_number")
                    document = link_contract(document, contract)
                else:
                    document = unlink_contract(document)

            saved = service.save_document(document)
        except ValueError as e:
            handle_domain_error(ctx, e)
        click.echo(f"Updated {label} {saved.number}: amount {money(saved.amount)}, status {saved.status.value}")

    @group.command("list", help=f"List {label}s.")
    @click.option("--status", type=click.Choice(sorted(STATUSES)), help="Filter by status")
    @click.option("--contact", help="Filter by contact (name or ID)")
    @click.option("--project", help="Filter by project (name or ID)")
    @click.pass_context
    def list_(ctx, status, contact, project):
        db = ctx.obj["db"]
        snapshot = db.snapshot()
        try:
            documents = DocumentService(db).list_documents(
                kind,
                status=STATUSES[status] if status else None,
                contact_id=resolve_optional(snapshot.contacts, contact, "Contact"),
                project_id=resolve_optional(snapshot.projects, project, "Project"),
            )
        except DomainError as e:
            handle_domain_error(ctx, e)

        if not documents:
            click.echo(f"No {label}s found.")
            return
        click.echo(f"\n{'Number':14s} | {'Date':10s} | {'Contact':20s} | {'Amount':>14s} | {'Balance':>14s} | Status")
        click.echo("-" * 100)
        for document in documents:
            contact_entity = snapshot.contact(document.contact_id)
            click.echo(
                f"{document.number:14s} | {document.issue_date} | "
                f"{contact_entity.name if contact_entity else '?':20s} | "
                f"{money(document.amount):>14s} | {money(document.balance):>14s} | {document.status.value}"
            )

    @group.command("show", help=f"Show a {label} with its items and payments.")
    @click.argument("reference", metavar="NUMBER")
    @click.pass_context
    def show(ctx, reference):
        snapshot = ctx.obj["db"].snapshot()
        try:
            document = resolve_document(snapshot, kind, reference)
        except DomainError as e:
            handle_domain_error(ctx, e)
        print_document(document, snapshot)

    @group.command("delete", help=f"Delete a {label} that has no payments.")
    @click.argument("reference", metavar="NUMBER")
    @click.option("--yes", is_flag=True, help="Skip confirmation")
    @click.pass_context
    def delete(ctx, reference, yes):
        db = ctx.obj["db"]
        try:
            document = resolve_document(db.snapshot(), kind, reference)
            if not yes:
                click.confirm(f"Delete {label} {document.number}?", abort=True)
            DocumentService(db).delete_document(document.id)
        except DomainError as e:
            handle_domain_error(ctx, e)
        click.echo(f"Deleted {label} {document.number}")

    @group.command("pay", help=f"Record a payment on a {label}.")
    @click.argument("reference", metavar="NUMBER")
    @click.option("--account", required=True, help="Payment account name or ID")
    @click.option("--amount", help="Amount to pay (defaults to the full balance)")
    @click.option("--date", "payment_date", default="today", show_default=True, help="Payment date")
    @click.option("--reference", "payment_reference", help="Payment reference (cheque number, etc.)")
    @click.pass_context
    def pay(ctx, reference, account, amount, payment_date, payment_reference):
        db = ctx.obj["db"]
        snapshot = db.snapshot()
        try:
            document = resolve_document(snapshot, kind, reference)
            transaction = PaymentService(db).apply_payment(
                document.id,
                parse_amount(amount) if amount else document.balance,
                resolve_entity(snapshot.accounts, account, "Account").id,
                payment_date=parse_date(payment_date),
                reference=payment_reference,
            )
        except ValueError as e:
            handle_domain_error(ctx, e)
        updated = db.get_document(document.id)
        click.echo(f"Recorded payment of {money(transaction.amount)} (ID: {transaction.id})")
        click.echo(f"{label.capitalize()} {updated.number}: balance {money(updated.balance)}, status {updated.status.value}")

    @group.command(
        "pay-bulk",
        help=(
            f"Pay several {label}s in one batch. A rejected payment does not stop the rest "
            "of the batch; exits with an error only when nothing was paid."
        ),
    )
    @click.argument("references", nargs=-1, required=True, metavar="NUMBER...")
    @click.option("--account", required=True, help="Payment account name or ID")
    @click.option(
        "--amount",
        "overrides",
        multiple=True,
        help="Pay a different amount as NUMBER=AMOUNT (repeatable; default is the full balance)",
    )
    @click.option("--date", "payment_date", default="today", show_default=True, help="Payment date")
    @click.option("--reference", "payment_reference", help="Reference shared by the batch")
    @click.pass_context
    def pay_bulk(ctx, references, account, overrides, payment_date, payment_reference):
        db = ctx.obj["db"]
        snapshot = db.snapshot()
        try:
            documents = [resolve_document(snapshot, kind, ref) for ref in references]
            payment_map = {doc.id: doc.balance for doc in documents}
            payment_map.update(parse_amount_overrides(snapshot, kind, overrides))
            account_id = resolve_entity(snapshot.accounts, account, "Account").id
            when = parse_date(payment_date)
        except ValueError as e:
            handle_domain_error(ctx, e)

        gateway = create_transaction_gateway(db, ctx.obj.get("remote_url"))
        service = PaymentService(db, gateway)

        async def run():
            try:
                return await service.apply_bulk_payment(
                    [doc.id for doc in documents],
                    payment_map,
                    account_id,
                    payment_date=when,
                    reference=payment_reference,
                )
            finally:
                await gateway.close()

        try:
            result = asyncio.run(run())
        except DomainError as e:
            handle_domain_error(ctx, e)

        for success in result.succeeded:
            click.echo(f"  Paid {success.number}: {money(success.transaction.amount)}")
        for failure in result.failed:
            click.echo(f"  Failed {failure.number}: {failure.error}", err=True)
        if not result.committed:
            click.echo(f"Error: {result.message}", err=True)
            ctx.exit(1)
        click.echo(result.message)
        click.echo(f"Batch: {result.batch_id}")

    if is_bill:

        @group.command("contracts")
        @click.argument("reference", metavar="NUMBER")
        @click.pass_context
        def contracts(ctx, reference):
            """List contracts this bill can be linked to."""
            snapshot = ctx.obj["db"].snapshot()
            try:
                document = resolve_document(snapshot, kind, reference)
            except DomainError as e:
                handle_domain_error(ctx, e)
            options = available_contracts(document, snapshot)
            if not options:
                click.echo("No matching contracts.")
                return
            for contract in options:
                marker = "*" if contract.id == document.contract_id else " "
                click.echo(f"{marker} {contract.contract_number:10s} | {contract.name}")

    return group


bill_group = make_document_group(DocumentKind.BILL)
invoice_group = make_document_group(DocumentKind.INVOICE)


@invoice_group.command("rent")
@click.argument("agreement_ref", metavar="AGREEMENT")
@click.option("--date", "issue_date", default="today", show_default=True, help="Invoice date")
@click.option("--grace-days", type=int, default=0, show_default=True, help="Rent-free days")
@click.option("--deposit", help="Security deposit to charge (defaults to the agreement's, first invoice only)")
@click.option("--number", help="Invoice number (defaults to the next rental number)")
@click.pass_context
def create_rent_invoice(ctx, agreement_ref: str, issue_date: str, grace_days: int, deposit: str | None, number: str | None):
    """Generate a rent invoice for a rental agreement.

    Rent is pro-rated from the issue date to the end of the month.

    Examples:
        billflow invoice rent RA-001 --date 2024-03-16
    """
    db = ctx.obj["db"]
    snapshot = db.snapshot()
    try:
        agreement = resolve_entity(
            snapshot.rental_agreements, agreement_ref, "Rental agreement", label="agreement_number"
        )
        invoice = DocumentService(db).create_rental_invoice(
            agreement.id,
            issue_date=parse_date(issue_date),
            grace_period_days=grace_days,
            security_deposit_charge=parse_amount(deposit) if deposit else None,
            number=number,
        )
    except ValueError as e:
        handle_domain_error(ctx, e)
    click.echo(f"Created invoice {invoice.number} for {money(invoice.amount)} (ID: {invoice.id})")
    click.echo(f"  {invoice.description}")


@invoice_group.command("receive-rent")
@click.argument("reference", metavar="NUMBER")
@click.option("--account", required=True, help="Receiving account name or ID")
@click.option("--rent", help="Rent received (defaults to the remaining rent)")
@click.option("--deposit", help="Deposit received (defaults to the remaining deposit)")
@click.option("--date", "payment_date", default="today", show_default=True, help="Payment date")
@click.pass_context
def receive_rent(ctx, reference: str, account: str, rent: str | None, deposit: str | None, payment_date: str):
    """Receive a rental invoice payment split into rent and security deposit."""
    db = ctx.obj["db"]
    service = PaymentService(db)
    snapshot = db.snapshot()
    try:
        invoice = resolve_document(snapshot, DocumentKind.INVOICE, reference)
        rent_remaining, deposit_remaining = service.rental_remaining(invoice.id)
        transactions = service.receive_rental_payment(
            invoice.id,
            parse_amount(rent) if rent else rent_remaining,
            parse_amount(deposit) if deposit else deposit_remaining,
            resolve_entity(snapshot.accounts, account, "Account").id,
            payment_date=parse_date(payment_date),
        )
    except ValueError as e:
        handle_domain_error(ctx, e)
    for transaction in transactions:
        click.echo(f"Recorded {transaction.description}: {money(transaction.amount)} (ID: {transaction.id})")


def register_commands(cli):
    """Register bill and invoice commands with main CLI."""
    cli.add_command(bill_group, name="bill")
    cli.add_command(invoice_group, name="invoice")
