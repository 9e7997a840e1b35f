"""
Procurement Ledger CLI

Command-line interface for budget items, amendments, purchase orders and
receipts.

Usage:
    procure init --db ledger.db
    procure budget-item create --code 5100 --description "Office supplies" --fiscal-year 2025 --amount 1000
    procure po create --vendor Staples --line "Paper|400.00|5100" --actor alice
    procure po submit --id <po_id> --actor alice
    procure po transition --id <po_id> --to APPROVED --actor bob --role MANAGER
    procure receipt record --amount 400.00 --merchant Staples
    procure check
"""

import json
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import typer
from pydantic import BaseModel
from typing_extensions import Annotated

from procurement_ledger.engine import ProcurementEngine
from procurement_ledger.kernel.errors import BudgetItemNotFound, LedgerError
from procurement_ledger.kernel.identity import Actor
from procurement_ledger.kernel.logging import configure_logging
from procurement_ledger.kernel.money import format_money
from procurement_ledger.kernel.policy import ProcurementPolicy

# Keep stdout for command output; only problems get logged
configure_logging(json_output=False, log_level="WARNING")

app = typer.Typer(
    name="procure",
    help="Procurement Ledger - budget items, purchase orders and receipts",
    add_completion=False,
)

# Sub-apps
budget_item_app = typer.Typer(help="Budget item commands")
amendment_app = typer.Typer(help="Budget amendment commands")
po_app = typer.Typer(help="Purchase order lifecycle commands")
receipt_app = typer.Typer(help="Receipt and reconciliation commands")

app.add_typer(budget_item_app, name="budget-item")
app.add_typer(amendment_app, name="amendment")
app.add_typer(po_app, name="po")
app.add_typer(receipt_app, name="receipt")

DEFAULT_DB = Path(".procurement.db")

DbOption = Annotated[Optional[Path], typer.Option("--db", help="Database path")]
PolicyOption = Annotated[
    Optional[Path], typer.Option("--policy", help="Policy JSON file")
]
ActorOption = Annotated[str, typer.Option("--actor", help="Acting user id")]
RoleOption = Annotated[str, typer.Option("--role", help="Acting user's role")]
JsonOption = Annotated[bool, typer.Option("--json", help="Output as JSON")]
PageOption = Annotated[Optional[int], typer.Option("--page", help="Page number")]
LimitOption = Annotated[Optional[int], typer.Option("--limit", help="Rows per page")]


def get_engine(db_path: Optional[Path] = None, policy_path: Optional[Path] = None) -> ProcurementEngine:
    """Open an existing ledger database"""
    db = db_path or DEFAULT_DB
    if not db.exists():
        typer.echo(f"Error: Database not found: {db}", err=True)
        typer.echo(f"Run 'procure init --db {db}' to initialize", err=True)
        raise typer.Exit(1)
    policy = ProcurementPolicy.from_json_file(policy_path) if policy_path else None
    return ProcurementEngine(db, policy=policy)


@contextmanager
def ledger_errors() -> Iterator[None]:
    """Turn domain errors into a one-line message and exit code 1"""
    try:
        yield
    except LedgerError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e


def _echo_json(value: BaseModel | list | dict) -> None:
    if isinstance(value, BaseModel):
        data: Any = value.model_dump(mode="json")
    elif isinstance(value, list):
        data = [v.model_dump(mode="json") if isinstance(v, BaseModel) else v for v in value]
    else:
        data = value
    typer.echo(json.dumps(data, indent=2, default=str))


def _resolve_budget_item_id(engine: ProcurementEngine, ref: str) -> str:
    """Accept a budget item code or id"""
    try:
        return engine.get_budget_item_by_code(ref).budget_item_id
    except BudgetItemNotFound:
        return engine.get_budget_item(ref).budget_item_id


def _parse_lines(engine: ProcurementEngine, lines: list[str]) -> list[dict[str, str]]:
    """Parse --line "DESCRIPTION|AMOUNT|BUDGET_ITEM" options"""
    parsed = []
    for raw in lines:
        parts = raw.rsplit("|", 2)
        if len(parts) != 3:
            typer.echo(f"Error: Bad line item (want DESCRIPTION|AMOUNT|BUDGET_ITEM): {raw}", err=True)
            raise typer.Exit(1)
        description, amount, ref = (p.strip() for p in parts)
        parsed.append(
            {
                "description": description,
                "amount": amount,
                "budget_item_id": _resolve_budget_item_id(engine, ref),
            }
        )
    return parsed


# Initialization commands


@app.command()
def init(
    db: Annotated[Path, typer.Option(help="Database path")] = DEFAULT_DB,
) -> None:
    """Initialize a new ledger database"""
    if db.exists():
        typer.echo(f"Error: Database already exists: {db}", err=True)
        raise typer.Exit(1)

    ProcurementEngine(db)
    typer.echo(f"✓ Initialized procurement ledger: {db}")


@app.command()
def check(
    db: DbOption = None,
    policy: PolicyOption = None,
    json_output: JsonOption = False,
) -> None:
    """Verify budget item balances against purchase orders"""
    engine = get_engine(db, policy)
    report = engine.health()

    if json_output:
        _echo_json(report)
    elif report["ledger_consistent"]:
        typer.echo("✓ Ledger consistent")
        typer.echo(f"  Events: {report['event_count']}")
        typer.echo(f"  Open purchase orders: {report['open_purchase_orders']}")
        if report["over_budget_items"]:
            typer.echo(f"  Over budget: {', '.join(report['over_budget_items'])}")
    else:
        typer.echo("✗ Ledger drift detected", err=True)
        for d in report["discrepancies"]:
            typer.echo(
                f"  {d['code']}: encumbered {d['stored_encumbered']} "
                f"(expected {d['expected_encumbered']}), spent {d['stored_actual_spent']} "
                f"(expected {d['expected_actual_spent']})",
                err=True,
            )

    if not report["ledger_consistent"]:
        raise typer.Exit(1)


# Budget item commands


@budget_item_app.command("create")
def budget_item_create(
    code: Annotated[str, typer.Option("--code", help="Budget item code")],
    description: Annotated[str, typer.Option("--description", help="What the item is for")],
    fiscal_year: Annotated[int, typer.Option("--fiscal-year", help="Fiscal year")],
    amount: Annotated[str, typer.Option("--amount", help="Budget ceiling")],
    category: Annotated[Optional[str], typer.Option("--category", help="Category")] = None,
    actor_id: ActorOption = "cli",
    role: RoleOption = "ADMIN",
    db: DbOption = None,
    policy: PolicyOption = None,
) -> None:
    """Create a budget item"""
    engine = get_engine(db, policy)
    with ledger_errors():
        item = engine.create_budget_item(
            code, description, fiscal_year, amount, Actor(actor_id=actor_id, role=role),
            category=category,
        )

    typer.echo(f"✓ Created budget item: {item.budget_item_id}")
    typer.echo(f"  {item.label()} (FY{item.fiscal_year})")
    typer.echo(f"  Budget: {format_money(item.budget_amount)}")


@budget_item_app.command("list")
def budget_item_list(
    fiscal_year: Annotated[Optional[int], typer.Option("--fiscal-year", help="Filter by year")] = None,
    over_budget: Annotated[bool, typer.Option("--over-budget", help="Only over-budget items")] = False,
    page: PageOption = None,
    limit: LimitOption = None,
    json_output: JsonOption = False,
    db: DbOption = None,
    policy: PolicyOption = None,
) -> None:
    """List budget items with their balances"""
    engine = get_engine(db, policy)
    with ledger_errors():
        result = engine.list_budget_items(fiscal_year, over_budget, page, limit)

    if json_output:
        _echo_json(result)
        return

    if not result.items:
        typer.echo("No budget items")
        return

    typer.echo(f"Budget Items ({result.total}, page {result.page}/{result.total_pages}):")
    for item in result.items:
        flag = " [OVER BUDGET]" if item.over_budget else ""
        typer.echo(
            f"  {item.code}: {item.description} FY{item.fiscal_year} - "
            f"budget {format_money(item.budget_amount)}, "
            f"encumbered {format_money(item.encumbered)}, "
            f"spent {format_money(item.actual_spent)}, "
            f"available {format_money(item.available)}{flag}"
        )


@budget_item_app.command("show")
def budget_item_show(
    ref: Annotated[str, typer.Option("--item", help="Budget item code or id")],
    json_output: JsonOption = False,
    db: DbOption = None,
    policy: PolicyOption = None,
) -> None:
    """Show one budget item"""
    engine = get_engine(db, policy)
    with ledger_errors():
        item = engine.get_budget_item(_resolve_budget_item_id(engine, ref))

    if json_output:
        _echo_json(item)
        return

    typer.echo(f"\nBudget Item: {item.budget_item_id}")
    typer.echo(f"  {item.label()}")
    typer.echo(f"  Fiscal Year: {item.fiscal_year}")
    if item.category:
        typer.echo(f"  Category: {item.category}")
    typer.echo(f"  Budget: {format_money(item.budget_amount)}")
    typer.echo(f"  Encumbered: {format_money(item.encumbered)}")
    typer.echo(f"  Spent: {format_money(item.actual_spent)}")
    typer.echo(f"  Available: {format_money(item.available)}")
    if item.over_budget:
        typer.echo("  ⚠ Over budget")


@budget_item_app.command("delete")
def budget_item_delete(
    ref: Annotated[str, typer.Option("--item", help="Budget item code or id")],
    actor_id: ActorOption = "cli",
    role: RoleOption = "ADMIN",
    db: DbOption = None,
    policy: PolicyOption = None,
) -> None:
    """Delete a budget item no open purchase order uses"""
    engine = get_engine(db, policy)
    with ledger_errors():
        budget_item_id = _resolve_budget_item_id(engine, ref)
        engine.delete_budget_item(budget_item_id, Actor(actor_id=actor_id, role=role))
    typer.echo(f"✓ Deleted budget item: {ref}")


# Amendment commands


def _print_amendments(result) -> None:
    for amendment in result.amendments:
        typer.echo(
            f"✓ {amendment.amendment_type.value} {format_money(amendment.amount)} on "
            f"{amendment.budget_item_code}: {format_money(amendment.previous_amount)} -> "
            f"{format_money(amendment.new_amount)}"
        )
    for warning in result.warnings:
        typer.echo(f"⚠ {warning.message}")


@amendment_app.command("increase")
def amendment_increase(
    ref: Annotated[str, typer.Option("--item", help="Budget item code or id")],
    amount: Annotated[str, typer.Option("--amount", help="Amount to add")],
    reason: Annotated[str, typer.Option("--reason", help="Why")],
    actor_id: ActorOption = "cli",
    role: RoleOption = "FINANCE",
    db: DbOption = None,
    policy: PolicyOption = None,
) -> None:
    """Raise a budget item's ceiling"""
    engine = get_engine(db, policy)
    with ledger_errors():
        result = engine.apply_increase(
            _resolve_budget_item_id(engine, ref), amount, reason, Actor(actor_id=actor_id, role=role)
        )
    _print_amendments(result)


@amendment_app.command("decrease")
def amendment_decrease(
    ref: Annotated[str, typer.Option("--item", help="Budget item code or id")],
    amount: Annotated[str, typer.Option("--amount", help="Amount to remove")],
    reason: Annotated[str, typer.Option("--reason", help="Why")],
    actor_id: ActorOption = "cli",
    role: RoleOption = "FINANCE",
    db: DbOption = None,
    policy: PolicyOption = None,
) -> None:
    """Lower a budget item's ceiling"""
    engine = get_engine(db, policy)
    with ledger_errors():
        result = engine.apply_decrease(
            _resolve_budget_item_id(engine, ref), amount, reason, Actor(actor_id=actor_id, role=role)
        )
    _print_amendments(result)


@amendment_app.command("transfer")
def amendment_transfer(
    from_ref: Annotated[str, typer.Option("--from", help="Source budget item code or id")],
    to_ref: Annotated[str, typer.Option("--to", help="Destination budget item code or id")],
    amount: Annotated[str, typer.Option("--amount", help="Amount to move")],
    reason: Annotated[str, typer.Option("--reason", help="Why")],
    actor_id: ActorOption = "cli",
    role: RoleOption = "FINANCE",
    db: DbOption = None,
    policy: PolicyOption = None,
) -> None:
    """Move budget between two items of the same fiscal year"""
    engine = get_engine(db, policy)
    with ledger_errors():
        result = engine.apply_transfer(
            _resolve_budget_item_id(engine, from_ref),
            _resolve_budget_item_id(engine, to_ref),
            amount,
            reason,
            Actor(actor_id=actor_id, role=role),
        )
    _print_amendments(result)


@amendment_app.command("list")
def amendment_list(
    amendment_type: Annotated[
        Optional[str],
        typer.Option("--type", help="INCREASE, DECREASE, TRANSFER_OUT or TRANSFER_IN"),
    ] = None,
    fiscal_year: Annotated[Optional[int], typer.Option("--fiscal-year", help="Filter by year")] = None,
    ref: Annotated[Optional[str], typer.Option("--item", help="Budget item code or id")] = None,
    page: PageOption = None,
    limit: LimitOption = None,
    json_output: JsonOption = False,
    db: DbOption = None,
    policy: PolicyOption = None,
) -> None:
    """List amendments, newest first"""
    engine = get_engine(db, policy)
    with ledger_errors():
        budget_item_id = _resolve_budget_item_id(engine, ref) if ref else None
        result = engine.list_amendments(
            amendment_type.upper() if amendment_type else None,
            fiscal_year,
            budget_item_id,
            page,
            limit,
        )

    if json_output:
        _echo_json(result)
        return

    if not result.items:
        typer.echo("No amendments")
        return

    typer.echo(f"Amendments ({result.total}):")
    for a in result.items:
        typer.echo(
            f"  {a.created_at:%Y-%m-%d} {a.amendment_type.value:<12} {a.budget_item_code} "
            f"{format_money(a.amount)} - {a.reason}"
        )


# Purchase order commands


def _print_po(po) -> None:
    typer.echo(f"\nPurchase Order: {po.po_number} ({po.po_id})")
    typer.echo(f"  Status: {po.status.value}")
    typer.echo(f"  Vendor: {po.vendor_name}")
    typer.echo(f"  Requester: {po.requester_name or po.requester_id}")
    if po.department:
        typer.echo(f"  Department: {po.department}")
    typer.echo(f"  Date: {po.po_date}")
    typer.echo(f"  Total: {format_money(po.total)}")
    if po.auto_approval_note:
        typer.echo(f"  Auto-approval: {po.auto_approval_note}")
    typer.echo(f"\n  Line Items ({len(po.line_items)}):")
    for line in po.line_items:
        typer.echo(f"    {line.description}: {format_money(line.amount)} -> {line.budget_item_id}")
    typer.echo("\n  History:")
    for change in po.history:
        origin = change.from_status.value if change.from_status else "-"
        suffix = f" ({change.note})" if change.note else ""
        typer.echo(
            f"    {change.occurred_at:%Y-%m-%d %H:%M} {origin} -> {change.to_status.value} "
            f"by {change.actor_id}{suffix}"
        )


@po_app.command("create")
def po_create(
    vendor: Annotated[str, typer.Option("--vendor", help="Vendor name")],
    lines: Annotated[
        Optional[list[str]],
        typer.Option("--line", help='Line item "DESCRIPTION|AMOUNT|BUDGET_ITEM" (repeatable)'),
    ] = None,
    vendor_id: Annotated[Optional[str], typer.Option("--vendor-id", help="Vendor id")] = None,
    department: Annotated[Optional[str], typer.Option("--department", help="Department")] = None,
    notes: Annotated[Optional[str], typer.Option("--notes", help="Notes")] = None,
    po_date: Annotated[
        Optional[datetime],
        typer.Option("--date", formats=["%Y-%m-%d"], help="PO date (default today)"),
    ] = None,
    actor_id: ActorOption = "cli",
    role: RoleOption = "USER",
    db: DbOption = None,
    policy: PolicyOption = None,
) -> None:
    """Create a DRAFT purchase order"""
    engine = get_engine(db, policy)
    with ledger_errors():
        po = engine.create_po(
            vendor,
            Actor(actor_id=actor_id, role=role),
            line_items=_parse_lines(engine, lines or []),
            vendor_id=vendor_id,
            department=department,
            notes=notes,
            po_date=po_date.date() if po_date else None,
        )

    typer.echo(f"✓ Created purchase order: {po.po_number}")
    typer.echo(f"  ID: {po.po_id}")
    typer.echo(f"  Total: {format_money(po.total)}")


@po_app.command("lines")
def po_lines(
    po_id: Annotated[str, typer.Option("--id", help="Purchase order id")],
    lines: Annotated[
        list[str],
        typer.Option("--line", help='Line item "DESCRIPTION|AMOUNT|BUDGET_ITEM" (repeatable)'),
    ],
    actor_id: ActorOption = "cli",
    role: RoleOption = "USER",
    db: DbOption = None,
    policy: PolicyOption = None,
) -> None:
    """Replace the line items of a DRAFT purchase order"""
    engine = get_engine(db, policy)
    with ledger_errors():
        po = engine.save_line_items(
            po_id, _parse_lines(engine, lines), Actor(actor_id=actor_id, role=role)
        )
    typer.echo(f"✓ Saved {len(po.line_items)} line items on {po.po_number}")
    typer.echo(f"  Total: {format_money(po.total)}")


@po_app.command("submit")
def po_submit(
    po_id: Annotated[str, typer.Option("--id", help="Purchase order id")],
    actor_id: ActorOption = "cli",
    role: RoleOption = "USER",
    db: DbOption = None,
    policy: PolicyOption = None,
) -> None:
    """Submit a DRAFT purchase order for approval"""
    engine = get_engine(db, policy)
    with ledger_errors():
        po = engine.submit_po(po_id, Actor(actor_id=actor_id, role=role))

    typer.echo(f"✓ Submitted {po.po_number}: {po.status.value}")
    if po.auto_approved:
        typer.echo("  Auto-approved")
    elif po.auto_approval_note:
        typer.echo(f"  {po.auto_approval_note}")


@po_app.command("transition")
def po_transition(
    po_id: Annotated[str, typer.Option("--id", help="Purchase order id")],
    to: Annotated[str, typer.Option("--to", help="Target status")],
    note: Annotated[Optional[str], typer.Option("--note", help="Reason / comment")] = None,
    override: Annotated[
        bool, typer.Option("--override", help="Approve beyond available budget")
    ] = False,
    actor_id: ActorOption = "cli",
    role: RoleOption = "USER",
    db: DbOption = None,
    policy: PolicyOption = None,
) -> None:
    """Move a purchase order to a new status"""
    engine = get_engine(db, policy)
    with ledger_errors():
        previous = engine.get_po(po_id).status
        po = engine.transition_po(
            po_id, to, Actor(actor_id=actor_id, role=role), note=note, override=override
        )
    typer.echo(f"✓ {po.po_number}: {previous.value} -> {po.status.value}")
    for warning in po.warnings:
        typer.echo(f"⚠ {warning.message}")


@po_app.command("show")
def po_show(
    po_id: Annotated[str, typer.Option("--id", help="Purchase order id")],
    json_output: JsonOption = False,
    db: DbOption = None,
    policy: PolicyOption = None,
) -> None:
    """Show a purchase order with its history"""
    engine = get_engine(db, policy)
    with ledger_errors():
        po = engine.get_po(po_id)

    if json_output:
        _echo_json(po)
    else:
        _print_po(po)


@po_app.command("list")
def po_list(
    status: Annotated[
        Optional[str], typer.Option("--status", help="Status or comma-separated statuses")
    ] = None,
    department: Annotated[Optional[str], typer.Option("--department", help="Department")] = None,
    requester: Annotated[Optional[str], typer.Option("--requester", help="Requester id")] = None,
    vendor: Annotated[Optional[str], typer.Option("--vendor", help="Vendor name contains")] = None,
    page: PageOption = None,
    limit: LimitOption = None,
    json_output: JsonOption = False,
    db: DbOption = None,
    policy: PolicyOption = None,
) -> None:
    """List purchase orders, newest first"""
    engine = get_engine(db, policy)
    with ledger_errors():
        result = engine.list_pos(status, department, requester, vendor, page, limit)

    if json_output:
        _echo_json(result)
        return

    if not result.items:
        typer.echo("No purchase orders")
        return

    typer.echo(f"Purchase Orders ({result.total}):")
    for po in result.items:
        typer.echo(
            f"  {po.po_number} [{po.status.value}] {po.vendor_name} - {format_money(po.total)}"
        )


@po_app.command("summary")
def po_summary(
    po_id: Annotated[str, typer.Option("--id", help="Purchase order id")],
    json_output: JsonOption = False,
    db: DbOption = None,
    policy: PolicyOption = None,
) -> None:
    """Show receipt coverage of a purchase order"""
    engine = get_engine(db, policy)
    with ledger_errors():
        summary = engine.get_reconciliation_summary(po_id)

    if json_output:
        _echo_json(summary)
        return

    typer.echo(f"Reconciliation: {summary.po_number}")
    typer.echo(f"  PO total: {format_money(summary.po_total)}")
    typer.echo(f"  Receipted: {format_money(summary.receipted_total)} ({summary.percent_covered}%)")
    typer.echo(f"  Remaining: {format_money(summary.remaining_amount)}")
    typer.echo(f"  Receipts: {summary.receipt_count}")


@po_app.command("suggest-receipts")
def po_suggest_receipts(
    po_id: Annotated[str, typer.Option("--id", help="Purchase order id")],
    json_output: JsonOption = False,
    db: DbOption = None,
    policy: PolicyOption = None,
) -> None:
    """Rank unlinked receipts that may belong to a purchase order"""
    engine = get_engine(db, policy)
    with ledger_errors():
        suggestions = engine.suggest_receipts_for_po(po_id)
    _print_suggestions(suggestions, json_output)


# Receipt commands


def _print_suggestions(suggestions, json_output: bool) -> None:
    if json_output:
        _echo_json(suggestions)
        return
    if not suggestions:
        typer.echo("No suggestions")
        return
    for s in suggestions:
        typer.echo(f"  {s.score:>3}  {s.label} ({s.candidate_id}): {', '.join(s.reasons)}")


@receipt_app.command("record")
def receipt_record(
    amount: Annotated[Optional[str], typer.Option("--amount", help="Receipt total")] = None,
    currency: Annotated[str, typer.Option("--currency", help="ISO currency")] = "USD",
    merchant: Annotated[Optional[str], typer.Option("--merchant", help="Merchant name")] = None,
    vendor_id: Annotated[Optional[str], typer.Option("--vendor-id", help="Vendor id")] = None,
    receipt_date: Annotated[
        Optional[datetime],
        typer.Option("--date", formats=["%Y-%m-%d"], help="Receipt date"),
    ] = None,
    file_ref: Annotated[Optional[str], typer.Option("--file-ref", help="Stored file reference")] = None,
    status: Annotated[str, typer.Option("--status", help="Processing status")] = "PENDING",
    actor_id: ActorOption = "cli",
    db: DbOption = None,
    policy: PolicyOption = None,
) -> None:
    """Register a receipt"""
    engine = get_engine(db, policy)
    with ledger_errors():
        receipt = engine.record_receipt(
            Actor(actor_id=actor_id),
            total_amount=amount,
            currency=currency,
            status=status.upper(),
            vendor_id=vendor_id,
            merchant_name=merchant,
            receipt_date=receipt_date.date() if receipt_date else None,
            file_ref=file_ref,
        )
    typer.echo(f"✓ Recorded receipt: {receipt.receipt_id}")


@receipt_app.command("status")
def receipt_status(
    receipt_id: Annotated[str, typer.Option("--id", help="Receipt id")],
    status: Annotated[str, typer.Option("--status", help="PENDING, PROCESSING, COMPLETED or FAILED")],
    amount: Annotated[Optional[str], typer.Option("--amount", help="Extracted total")] = None,
    actor_id: ActorOption = "cli",
    db: DbOption = None,
    policy: PolicyOption = None,
) -> None:
    """Update a receipt's processing status"""
    engine = get_engine(db, policy)
    with ledger_errors():
        receipt = engine.update_receipt_status(
            receipt_id, status.upper(), Actor(actor_id=actor_id), total_amount=amount
        )
    typer.echo(f"✓ Receipt {receipt.receipt_id}: {receipt.status.value}")


@receipt_app.command("link")
def receipt_link(
    receipt_id: Annotated[str, typer.Option("--id", help="Receipt id")],
    po_id: Annotated[str, typer.Option("--po", help="Purchase order id")],
    actor_id: ActorOption = "cli",
    db: DbOption = None,
    policy: PolicyOption = None,
) -> None:
    """Link a receipt to a purchase order"""
    engine = get_engine(db, policy)
    with ledger_errors():
        result = engine.link_receipt(receipt_id, po_id, Actor(actor_id=actor_id))
    typer.echo(f"✓ Linked receipt {receipt_id} to {engine.get_po(po_id).po_number}")
    if result.amount_warning:
        typer.echo(f"⚠ {result.amount_warning}")


@receipt_app.command("unlink")
def receipt_unlink(
    receipt_id: Annotated[str, typer.Option("--id", help="Receipt id")],
    actor_id: ActorOption = "cli",
    db: DbOption = None,
    policy: PolicyOption = None,
) -> None:
    """Unlink a receipt from its purchase order"""
    engine = get_engine(db, policy)
    with ledger_errors():
        engine.unlink_receipt(receipt_id, Actor(actor_id=actor_id))
    typer.echo(f"✓ Unlinked receipt {receipt_id}")


@receipt_app.command("suggest")
def receipt_suggest(
    receipt_id: Annotated[str, typer.Option("--id", help="Receipt id")],
    json_output: JsonOption = False,
    db: DbOption = None,
    policy: PolicyOption = None,
) -> None:
    """Rank purchase orders a receipt may belong to"""
    engine = get_engine(db, policy)
    with ledger_errors():
        suggestions = engine.suggest_pos_for_receipt(receipt_id)
    _print_suggestions(suggestions, json_output)


def main() -> None:
    """Main entry point"""
    app()


if __name__ == "__main__":
    main()
