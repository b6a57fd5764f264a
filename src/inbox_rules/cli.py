"""Command-line interface for inbox-rules."""

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from inbox_rules.config import Settings, load_message
from inbox_rules.errors import RuleStoreError
from inbox_rules.forwarding import ForwardingDocument, ForwardingManager
from inbox_rules.logging import get_account_logger, setup_logging
from inbox_rules.mail.messages import EmailMessage
from inbox_rules.rules.conditions import ConditionField, ConditionOperator
from inbox_rules.rules.engine import RuleEngine
from inbox_rules.rules.filters import EmailFilter, FilterActionType
from inbox_rules.rules.manager import RuleSetDocument, RuleSetManager
from inbox_rules.storage import DocumentStore, SnapshotDatabase, YamlDocumentStore

app = typer.Typer(
    name="inbox-rules",
    help="Email filter rules and conditional forwarding",
    no_args_is_help=True,
)
console = Console()

# Sub-command groups
rules_app = typer.Typer(help="Manage filter rules")
forwarding_app = typer.Typer(help="Inspect conditional forwarding")

app.add_typer(rules_app, name="rules")
app.add_typer(forwarding_app, name="forwarding")

AccountOption = Annotated[
    str | None, typer.Option("--account", "-a", help="Account whose rules to use")
]


def get_settings() -> Settings:
    """Load application settings."""
    return Settings()


def _rules_store(settings: Settings, account: str) -> DocumentStore[RuleSetDocument]:
    if settings.storage_backend == "sqlite":
        return SnapshotDatabase(settings.database_path).for_account(account, RuleSetDocument)
    return YamlDocumentStore(settings.rules_path(account), RuleSetDocument)


def _forwarding_store(settings: Settings, account: str) -> DocumentStore[ForwardingDocument]:
    if settings.storage_backend == "sqlite":
        return SnapshotDatabase(settings.database_path).for_account(
            account, ForwardingDocument, kind="forwarding"
        )
    return YamlDocumentStore(settings.forwarding_path(account), ForwardingDocument)


def open_rule_set(account: str | None = None) -> RuleSetManager:
    """Load the rule set for an account, exiting on a storage error."""
    settings = get_settings()
    account = account or settings.default_account
    setup_logging(settings)

    manager = RuleSetManager(
        store=_rules_store(settings, account),
        logger=get_account_logger(account),
    )
    try:
        manager.load()
    except RuleStoreError as e:
        console.print(f"[red]Could not load rules:[/red] {e}")
        raise typer.Exit(1)
    return manager


def save_rule_set(manager: RuleSetManager) -> None:
    """Save the rule set, exiting on a storage error."""
    try:
        manager.save()
    except RuleStoreError as e:
        console.print(f"[red]Could not save rules:[/red] {e}")
        raise typer.Exit(1)


def _require_filter(manager: RuleSetManager, filter_id: str) -> EmailFilter:
    email_filter = manager.get_by_id(filter_id)
    if email_filter is None:
        console.print(f"[red]Filter {filter_id} not found[/red]")
        raise typer.Exit(1)
    return email_filter


def _read_message(path: Path) -> EmailMessage:
    try:
        return EmailMessage.from_jmap(load_message(path))
    except (OSError, ValueError) as e:
        console.print(f"[red]Could not read message:[/red] {e}")
        raise typer.Exit(1)


@app.command()
def version() -> None:
    """Show version information."""
    from inbox_rules import __version__

    console.print(f"inbox-rules v{__version__}")


@app.command()
def init(account: AccountOption = None) -> None:
    """Initialize configuration with an example filter."""
    settings = get_settings()
    settings.ensure_config_dir()

    manager = open_rule_set(account)
    if manager.filters:
        console.print("[yellow]Rules already configured[/yellow]")
        return

    example = manager.create("File invoices", "Label invoices with attachments")
    subject = manager.add_condition(example.id)
    manager.update_condition(example.id, subject.id, value="invoice")
    attachment = manager.add_condition(example.id)
    manager.update_condition(
        example.id,
        attachment.id,
        field=ConditionField.HAS_ATTACHMENT,
        operator=ConditionOperator.IS,
        value="true",
    )
    label = manager.add_action(example.id)
    manager.update_action(example.id, label.id, type=FilterActionType.ADD_LABEL, value="Finance")
    manager.add_action(example.id)
    save_rule_set(manager)

    console.print(f"[green]Created[/green] example filter '{example.name}'")


# === Rules Commands ===


@rules_app.command("list")
def rules_list(account: AccountOption = None) -> None:
    """List all filters in display order."""
    manager = open_rule_set(account)

    if not manager.filters:
        console.print("[yellow]No filters configured[/yellow]")
        console.print("Run [bold]inbox-rules init[/bold] to create an example filter")
        return

    table = Table(title="Filters")
    table.add_column("Priority", style="dim", width=8)
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Match", width=5)
    table.add_column("Conditions", justify="right")
    table.add_column("Actions", style="green")
    table.add_column("Enabled", width=7)

    for f in manager.filters:
        table.add_row(
            str(f.priority),
            f.id,
            f.name,
            "all" if f.match_all else "any",
            str(len(f.conditions)),
            ", ".join(getattr(a.type, "value", a.type) for a in f.actions),
            "✓" if f.enabled else "✗",
        )

    console.print(table)
    stats = manager.stats
    console.print(
        f"[dim]{stats.enabled_rules}/{stats.total_rules} enabled, "
        f"applied {stats.applied_count} times[/dim]"
    )


@rules_app.command("show")
def rules_show(
    filter_id: Annotated[str, typer.Argument(help="Filter ID")],
    account: AccountOption = None,
) -> None:
    """Show one filter's conditions and actions."""
    manager = open_rule_set(account)
    f = _require_filter(manager, filter_id)

    console.print(f"[bold]{f.name}[/bold] ({'enabled' if f.enabled else 'disabled'})")
    if f.description:
        console.print(f"  {f.description}")
    console.print(f"\nMatch {'all' if f.match_all else 'any'} of:")
    for c in f.conditions:
        field = getattr(c.field, "value", c.field)
        operator = getattr(c.operator, "value", c.operator)
        console.print(f"  [dim]{c.id}[/dim] {field} {operator} '{c.value}'")
    console.print("\nThen:")
    for a in f.actions:
        action = getattr(a.type, "value", a.type)
        suffix = f" '{a.value}'" if a.value else ""
        console.print(f"  [dim]{a.id}[/dim] [green]{action}[/green]{suffix}")


@rules_app.command("create")
def rules_create(
    name: Annotated[str, typer.Argument(help="Filter name")],
    description: Annotated[
        str | None, typer.Option("--description", "-d", help="Filter description")
    ] = None,
    account: AccountOption = None,
) -> None:
    """Create an empty filter."""
    manager = open_rule_set(account)
    f = manager.create(name, description)
    save_rule_set(manager)
    console.print(f"[green]✓ Created[/green] {f.name} ({f.id})")


@rules_app.command("delete")
def rules_delete(
    filter_id: Annotated[str, typer.Argument(help="Filter ID")],
    account: AccountOption = None,
) -> None:
    """Delete a filter."""
    manager = open_rule_set(account)
    _require_filter(manager, filter_id)
    manager.delete(filter_id)
    save_rule_set(manager)
    console.print(f"[yellow]✓ Deleted {filter_id}[/yellow]")


@rules_app.command("toggle")
def rules_toggle(
    filter_id: Annotated[str, typer.Argument(help="Filter ID")],
    account: AccountOption = None,
) -> None:
    """Enable or disable a filter."""
    manager = open_rule_set(account)
    _require_filter(manager, filter_id)
    f = manager.toggle(filter_id)
    save_rule_set(manager)
    console.print(f"✓ {f.name} is now {'enabled' if f.enabled else 'disabled'}")


@rules_app.command("duplicate")
def rules_duplicate(
    filter_id: Annotated[str, typer.Argument(help="Filter ID")],
    account: AccountOption = None,
) -> None:
    """Copy a filter."""
    manager = open_rule_set(account)
    _require_filter(manager, filter_id)
    copy = manager.duplicate(filter_id)
    save_rule_set(manager)
    console.print(f"[green]✓ Created[/green] {copy.name} ({copy.id})")


@rules_app.command("move")
def rules_move(
    from_index: Annotated[int, typer.Argument(help="Current position")],
    to_index: Annotated[int, typer.Argument(help="New position")],
    account: AccountOption = None,
) -> None:
    """Move a filter to a new position."""
    manager = open_rule_set(account)
    if not manager.move_filter(from_index, to_index):
        console.print(f"[red]No filter at position {from_index}[/red]")
        raise typer.Exit(1)
    save_rule_set(manager)
    console.print(f"✓ Moved filter {from_index} → {to_index}")


@rules_app.command("add-condition")
def rules_add_condition(
    filter_id: Annotated[str, typer.Argument(help="Filter ID")],
    field: Annotated[ConditionField, typer.Option("--field", "-f")] = ConditionField.SUBJECT,
    operator: Annotated[
        ConditionOperator, typer.Option("--operator", "-o")
    ] = ConditionOperator.CONTAINS,
    value: Annotated[str, typer.Option("--value", "-v")] = "",
    account: AccountOption = None,
) -> None:
    """Add a condition to a filter."""
    manager = open_rule_set(account)
    _require_filter(manager, filter_id)
    stub = manager.add_condition(filter_id)
    condition = manager.update_condition(
        filter_id, stub.id, field=field, operator=operator, value=value
    )
    save_rule_set(manager)
    console.print(f"[green]✓ Added condition[/green] {condition.id}")


@rules_app.command("add-action")
def rules_add_action(
    filter_id: Annotated[str, typer.Argument(help="Filter ID")],
    action_type: Annotated[
        FilterActionType, typer.Option("--type", "-t")
    ] = FilterActionType.MARK_AS_READ,
    value: Annotated[
        str | None, typer.Option("--value", "-v", help="Mailbox id or label")
    ] = None,
    account: AccountOption = None,
) -> None:
    """Add an action to a filter."""
    manager = open_rule_set(account)
    _require_filter(manager, filter_id)
    stub = manager.add_action(filter_id)
    action = manager.update_action(filter_id, stub.id, type=action_type, value=value)
    save_rule_set(manager)
    console.print(f"[green]✓ Added action[/green] {action.id}")


@rules_app.command("test")
def rules_test(
    message_file: Annotated[Path, typer.Argument(help="JMAP Email object (JSON or YAML)")],
    account: AccountOption = None,
) -> None:
    """Show which filters would apply to a message (dry run)."""
    manager = open_rule_set(account)
    email = _read_message(message_file)
    console.print(f"[bold]From:[/bold] {escape(email.sender)}")
    console.print(f"[bold]Subject:[/bold] {escape(email.subject or '')}")
    if email.preview:
        console.print(f"[dim]{escape(email.preview)}[/dim]")
    console.print()

    matches = RuleEngine(manager, logger=manager.logger).evaluate(email)
    if not matches:
        console.print("[yellow]No filters match[/yellow]")
        return

    for match in matches:
        console.print(f"[cyan]{match.filter.name}[/cyan]")
        for intent in match.intents:
            console.print(f"  → [green]{intent}[/green]")


# === Forwarding Commands ===


def open_forwarding(account: str | None = None) -> ForwardingManager:
    """Load forwarding configuration for an account."""
    settings = get_settings()
    account = account or settings.default_account
    setup_logging(settings)

    manager = ForwardingManager(
        store=_forwarding_store(settings, account),
        logger=get_account_logger(account),
    )
    try:
        manager.load()
    except RuleStoreError as e:
        console.print(f"[red]Could not load forwarding:[/red] {e}")
        raise typer.Exit(1)
    return manager


@forwarding_app.command("list")
def forwarding_list(account: AccountOption = None) -> None:
    """List forwardings and conditional forwarding rules."""
    manager = open_forwarding(account)

    table = Table(title="Forwarding")
    table.add_column("Kind", style="dim")
    table.add_column("Source", style="cyan")
    table.add_column("Destination / Rule")
    table.add_column("Enabled", width=7)

    for f in manager.external_forwardings:
        table.add_row("external", f.source_email, f.forward_to_email, "✓" if f.enabled else "✗")
    for f in manager.account_forwardings:
        table.add_row("account", f.source_email, f.target_email, "✓" if f.enabled else "✗")
    for r in sorted(manager.conditional_rules, key=lambda r: r.priority or 0):
        table.add_row("rule", r.source_email, r.name, "✓" if r.enabled else "✗")

    if not table.row_count:
        console.print("[yellow]No forwarding configured[/yellow]")
        return
    console.print(table)


@forwarding_app.command("test")
def forwarding_test(
    message_file: Annotated[Path, typer.Argument(help="JMAP Email object (JSON or YAML)")],
    source: Annotated[
        str | None, typer.Option("--source", "-s", help="Source mailbox address")
    ] = None,
    account: AccountOption = None,
) -> None:
    """Show which forwarding rules would apply to a message (dry run)."""
    manager = open_forwarding(account)
    email = _read_message(message_file)

    matches = manager.evaluate(email, source_email=source)
    if not matches:
        console.print("[yellow]No forwarding rules match[/yellow]")
        return

    for match in matches:
        console.print(f"[cyan]{match.rule.name}[/cyan]")
        for intent in match.intents:
            action = getattr(intent.action, "value", intent.action)
            target = f" → {intent.target}" if intent.target else ""
            console.print(f"  → [green]{action}[/green]{target}")
