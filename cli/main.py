"""
Angkor Compliance Access Control - CLI
======================================

Command-line interface for administering access policies and testing
permission decisions.

Features:
- User, attribute and factory assignment management
- Role hierarchy, attribute policy and field table administration
- Access decision testing through all four evaluation stages
- Audit log analysis

Built with Typer and Rich.
"""

import json
import logging
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.panel import Panel
from rich.tree import Tree
from rich import box

# Initialize CLI app and console
app = typer.Typer(
    name="angkor-access",
    help="Angkor Compliance - permission evaluation and policy administration",
    add_completion=False
)

console = Console()

# Sub-commands
users_app = typer.Typer(help="Manage users, attributes and factory assignments")
roles_app = typer.Typer(help="Manage the role hierarchy")
policies_app = typer.Typer(help="Manage attribute and permission policies")
fields_app = typer.Typer(help="Manage field-level permission tables")
records_app = typer.Typer(help="Manage compliance record ownership")
audit_app = typer.Typer(help="View access decision audit logs")
test_app = typer.Typer(help="Test access decisions")

app.add_typer(users_app, name="users")
app.add_typer(roles_app, name="roles")
app.add_typer(policies_app, name="policies")
app.add_typer(fields_app, name="fields")
app.add_typer(records_app, name="records")
app.add_typer(audit_app, name="audit")
app.add_typer(test_app, name="test")


def configure_logging(level: str):
    """Route library logging through Rich."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True
    )


def get_store():
    from core.policy_store import PolicyStore
    return PolicyStore()


def get_users():
    from core.user_repository import UserRepository
    return UserRepository()


def get_evaluator():
    from core.evaluator import PermissionEvaluator
    from core.settings import Settings
    return PermissionEvaluator.from_settings(Settings.from_env())


def print_banner():
    """Display application banner."""
    banner = """
    ╔═══════════════════════════════════════════════════════════╗
    ║            ANGKOR COMPLIANCE ACCESS CONTROL               ║
    ║                                                           ║
    ║     RBAC  ->  ABAC  ->  Field-level  ->  Record-level     ║
    ╚═══════════════════════════════════════════════════════════╝
    """
    console.print(Panel(banner, style="bold blue"))


def _parse_value(raw: str):
    """Attribute values may be given as JSON (lists, null); anything else is a string."""
    try:
        return json.loads(raw)
    except ValueError:
        return raw


# ============================================================================
# Database Commands
# ============================================================================

@app.command()
def init():
    """Initialize the database with schema."""
    from models.database import init_db
    init_db()
    console.print("[green]Database initialized successfully![/green]")


@app.command()
def reset():
    """Reset database (WARNING: destroys all data)."""
    if typer.confirm("This will delete all data. Are you sure?"):
        from models.database import reset_db
        reset_db()
        console.print("[yellow]Database reset complete.[/yellow]")


@app.command()
def demo():
    """Load demo tenants, users, records and default policies."""
    from scenarios import load_demo_data
    counts = load_demo_data()
    console.print("[green]Demo data loaded successfully![/green]")
    console.print(
        f"  {counts['users']} users, {counts['records']} records, "
        f"{counts['roles']} roles, {counts['attribute_policies']} attribute policies"
    )
    console.print("\nTry these commands to explore:")
    console.print("  [cyan]python main.py users list[/cyan]")
    console.print("  [cyan]python main.py roles list[/cyan]")
    console.print("  [cyan]python main.py test access --user dara --action write --resource user --field password[/cyan]")


# ============================================================================
# User Commands
# ============================================================================

@users_app.command("list")
def list_users():
    """List all users in the system."""
    users = get_users().list_users()

    table = Table(title="Platform Users", box=box.ROUNDED)
    table.add_column("ID", style="cyan")
    table.add_column("Full Name")
    table.add_column("Role", style="green")
    table.add_column("Tenant")
    table.add_column("Factories")
    table.add_column("Status", justify="center")

    for user in users:
        status = "[green]Active[/green]" if user.is_active else "[red]Inactive[/red]"
        table.add_row(
            user.user_id,
            user.full_name or "-",
            user.role,
            user.tenant_id or "-",
            ", ".join(user.assigned_factories) or "-",
            status
        )

    console.print(table)


@users_app.command("create")
def create_user(
    user_id: str = typer.Option(..., "--id", help="User id"),
    role: str = typer.Option("worker", help="Role name"),
    tenant: str = typer.Option(None, help="Tenant id"),
    factory: List[str] = typer.Option([], "--factory", "-f", help="Assigned factory (repeatable)"),
    full_name: str = typer.Option(None, help="Full name"),
    email: str = typer.Option(None, help="Email address")
):
    """Create a new user."""
    user = get_users().create_user(
        user_id, role, tenant_id=tenant, email=email,
        full_name=full_name, assigned_factories=factory
    )
    console.print(f"[green]Created user: {user.user_id} ({user.role})[/green]")


@users_app.command("show")
def show_user(user_id: str = typer.Argument(..., help="User id to show")):
    """Show a user's role, effective permissions and attributes."""
    summary = get_evaluator().get_effective_permissions(user_id)
    if summary is None:
        console.print(f"[red]User '{user_id}' not found[/red]")
        raise typer.Exit(code=1)

    user_info = f"""
[bold]User:[/bold] {summary['user_id']}
[bold]Role:[/bold] {summary['role']} (level {summary['level']})
[bold]Scope:[/bold] {summary['scope']}
[bold]Tenant:[/bold] {summary['tenant_id'] or 'N/A'}
[bold]Factories:[/bold] {', '.join(summary['assigned_factories']) or 'N/A'}
"""
    console.print(Panel(user_info, title="User Information", box=box.ROUNDED))

    tree = Tree("[bold]Effective Permissions[/bold]")
    for token in summary['permissions']:
        tree.add(f"[green]✓[/green] {token}")
    if summary['inherits']:
        tree.add(f"[dim]inherits: {', '.join(summary['inherits'])}[/dim]")
    console.print(tree)

    attrs_table = Table(title="User Attributes (ABAC)", box=box.SIMPLE)
    attrs_table.add_column("Attribute", style="cyan")
    attrs_table.add_column("Value", style="green")
    for name, value in summary['attributes'].items():
        attrs_table.add_row(name, json.dumps(value) if not isinstance(value, str) else value)
    console.print(attrs_table)


@users_app.command("set-attr")
def set_user_attribute(
    user_id: str = typer.Argument(..., help="User id"),
    attribute: str = typer.Option(..., "--attr", "-a", help="Attribute name"),
    value: str = typer.Option(..., "--value", "-v", help="Attribute value (JSON accepted)")
):
    """Set a user attribute for ABAC policies."""
    users = get_users()
    if users.get_user(user_id) is None:
        console.print(f"[red]User '{user_id}' not found[/red]")
        raise typer.Exit(code=1)

    users.set_attribute(user_id, attribute, _parse_value(value))
    console.print(f"[green]Set {user_id}.{attribute} = {value}[/green]")


@users_app.command("assign-factory")
def assign_factory(
    user_id: str = typer.Argument(..., help="User id"),
    factory_id: str = typer.Option(..., "--factory", "-f", help="Factory id")
):
    """Assign a factory to a user."""
    users = get_users()
    if users.get_user(user_id) is None:
        console.print(f"[red]User '{user_id}' not found[/red]")
        raise typer.Exit(code=1)

    if users.assign_factory(user_id, factory_id):
        console.print(f"[green]Assigned factory '{factory_id}' to '{user_id}'[/green]")
    else:
        console.print(f"[yellow]'{user_id}' is already assigned to '{factory_id}'[/yellow]")


# ============================================================================
# Role Commands
# ============================================================================

@roles_app.command("list")
def list_roles():
    """List the role hierarchy, most privileged first."""
    store = get_store()
    entries = sorted(store.role_hierarchy.values(), key=lambda e: (e.level, e.role))

    table = Table(title="Role Hierarchy", box=box.ROUNDED)
    table.add_column("Level", style="cyan", justify="right")
    table.add_column("Role", style="green")
    table.add_column("Permissions")
    table.add_column("Inherits")
    table.add_column("Scope")

    for entry in entries:
        table.add_row(
            str(entry.level),
            entry.role,
            ", ".join(entry.permissions) or "-",
            ", ".join(entry.inherits) or "-",
            entry.scope
        )

    console.print(table)


@roles_app.command("hierarchy")
def show_hierarchy(role_name: str = typer.Argument(..., help="Role name")):
    """Show what a role inherits and which roles inherit it."""
    from core.rbac_engine import RBACEngine

    store = get_store()
    if store.get_role(role_name) is None:
        console.print(f"[yellow]Role '{role_name}' is not configured; it resolves to the fallback role[/yellow]")

    entry = RBACEngine(store).resolve_role_or_default(role_name)
    tree = Tree(f"[bold cyan]{entry.role}[/bold cyan] (level {entry.level}, {entry.scope})")

    if entry.inherits:
        parents = tree.add("[yellow]Inherits From[/yellow]")
        for inherited in entry.inherits:
            inherited_entry = store.get_role(inherited)
            tokens = ", ".join(inherited_entry.permissions) if inherited_entry else "unknown role"
            parents.add(f"[green]{inherited}[/green] [dim]({tokens})[/dim]")
    else:
        tree.add("[dim]No inherited roles[/dim]")

    children = [e.role for e in store.role_hierarchy.values() if entry.role in e.inherits]
    if children:
        branch = tree.add("[yellow]Inherited By[/yellow]")
        for child in sorted(children):
            branch.add(f"[blue]{child}[/blue]")
    else:
        tree.add("[dim]Not inherited by any role[/dim]")

    console.print(tree)


@roles_app.command("set")
def set_role(
    role: str = typer.Option(..., "--role", "-r", help="Role name"),
    level: int = typer.Option(..., help="Level (1 = most privileged)"),
    permission: List[str] = typer.Option([], "--permission", "-p", help="Permission token (repeatable)"),
    inherit: List[str] = typer.Option([], "--inherit", "-i", help="Inherited role (repeatable)"),
    scope: str = typer.Option("own-records", help="global, assigned-factories or own-records")
):
    """Create or replace a role hierarchy entry."""
    from core.exceptions import PolicyConfigurationError
    from core.policies import RoleHierarchyEntry

    try:
        entry = RoleHierarchyEntry.from_document({
            'role': role,
            'level': level,
            'inherits': inherit,
            'permissions': permission,
            'scope': scope
        })
    except PolicyConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        for error in e.errors:
            console.print(f"  [red]- {error}[/red]")
        raise typer.Exit(code=1)

    get_store().save_role_hierarchy(entry)
    console.print(f"[green]Saved role '{role}'[/green]")


# ============================================================================
# Policy Commands
# ============================================================================

@policies_app.command("list")
def list_policies():
    """List attribute policies and administrative permission policies."""
    store = get_store()

    table = Table(title="Attribute Policies", box=box.ROUNDED)
    table.add_column("Name", style="green")
    table.add_column("Kind")
    table.add_column("Levels / Windows")

    for name, policy in sorted(store.attribute_policies.items()):
        keys = policy.levels if policy.kind == 'levels' else tuple(policy.windows)
        table.add_row(name, policy.kind, " -> ".join(keys))
    console.print(table)

    permission_policies = store.list_permission_policies()
    if permission_policies:
        table = Table(title="Permission Policies", box=box.ROUNDED)
        table.add_column("ID", style="cyan")
        table.add_column("Name", style="green")
        table.add_column("Type")
        table.add_column("Scope")
        table.add_column("Status", justify="center")
        for policy in permission_policies:
            table.add_row(policy['id'], policy['name'], policy['type'], policy['scope'], policy['status'])
        console.print(table)


@policies_app.command("show")
def show_policy(name: str = typer.Argument(..., help="Attribute policy name")):
    """Show an attribute policy document."""
    policy = get_store().attribute_policy(name)
    if policy is None:
        console.print(f"[red]Policy '{name}' not found[/red]")
        raise typer.Exit(code=1)

    console.print(Panel(f"[bold]{policy.name}[/bold] ({policy.kind})", title="Policy Details", box=box.ROUNDED))
    console.print_json(json.dumps(policy.to_document()))


@policies_app.command("set")
def set_policy(path: str = typer.Argument(..., help="JSON file holding an attribute policy document")):
    """Validate and store an attribute policy document."""
    from core.exceptions import PolicyConfigurationError

    with open(path) as f:
        document = json.load(f)

    try:
        policy = get_store().save_attribute_policy(document)
    except PolicyConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        for error in e.errors:
            console.print(f"  [red]- {error}[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]Saved attribute policy '{policy.name}'[/green]")


@policies_app.command("create")
def create_permission_policy(
    name: str = typer.Option(..., help="Policy name"),
    policy_type: str = typer.Option(..., "--type", "-t", help="rbac, abac, field or record"),
    rules: str = typer.Option(..., help="Policy rules as JSON"),
    scope: str = typer.Option(..., help="Policy scope"),
    created_by: str = typer.Option(None, help="Creating user id")
):
    """Create an administrative permission policy."""
    from core.exceptions import PolicyConfigurationError

    try:
        policy_id = get_store().create_permission_policy(
            name, policy_type, json.loads(rules), scope, created_by
        )
    except ValueError as e:
        console.print(f"[red]Rules are not valid JSON: {e}[/red]")
        raise typer.Exit(code=1)
    except PolicyConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        for error in e.errors:
            console.print(f"  [red]- {error}[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]Created permission policy: {policy_id}[/green]")


# ============================================================================
# Field Commands
# ============================================================================

@fields_app.command("show")
def show_fields(
    role: str = typer.Option(..., "--role", "-r", help="Role name"),
    resource: str = typer.Option(..., "--resource", "-R", help="Resource type")
):
    """Show the effective field table for a role and resource."""
    table_data = get_store().field_permissions(role, resource)
    if not table_data:
        console.print(f"[yellow]No field restrictions for {role} on {resource}[/yellow]")
        return

    table = Table(title=f"Field Permissions: {role} / {resource}", box=box.ROUNDED)
    table.add_column("Field", style="cyan")
    table.add_column("Allowed Actions", style="green")
    for field_name, actions in sorted(table_data.items()):
        table.add_row(field_name, ", ".join(actions) or "[red]none[/red]")
    console.print(table)


@fields_app.command("set")
def set_fields(
    role: str = typer.Option(..., "--role", "-r", help="Role name"),
    resource: str = typer.Option(..., "--resource", "-R", help="Resource type"),
    field_entries: List[str] = typer.Option(
        ..., "--field", "-f", help="field=action,action (repeatable; empty list allowed)"
    )
):
    """Store a field table override for a role and resource."""
    table_data = {}
    for entry in field_entries:
        field_name, sep, actions = entry.partition('=')
        if not sep or not field_name:
            console.print(f"[red]Invalid field entry '{entry}', expected field=action,action[/red]")
            raise typer.Exit(code=1)
        table_data[field_name] = [a for a in actions.split(',') if a]

    get_store().save_field_permissions(role, resource, table_data)
    console.print(f"[green]Saved field permissions for {role} on {resource}[/green]")


# ============================================================================
# Record Commands
# ============================================================================

@records_app.command("register")
def register_record(
    resource: str = typer.Option(..., "--resource", "-R", help="Resource type"),
    record_id: str = typer.Option(..., "--id", help="Record id"),
    created_by: str = typer.Option(None, help="Creating user id"),
    owner: str = typer.Option(None, help="Owning user id"),
    factory: str = typer.Option(None, help="Factory id"),
    tenant: str = typer.Option(None, help="Tenant id")
):
    """Register ownership and placement of a compliance record."""
    get_users().register_record(resource, record_id, created_by, owner, factory, tenant)
    console.print(f"[green]Registered {resource}/{record_id}[/green]")


@records_app.command("list")
def list_records(resource: str = typer.Option(None, "--resource", "-R", help="Filter by resource type")):
    """List registered compliance records."""
    records = get_users().list_records(resource)

    table = Table(title="Compliance Records", box=box.ROUNDED)
    table.add_column("Resource", style="cyan")
    table.add_column("Record", style="green")
    table.add_column("Created By")
    table.add_column("Owner")
    table.add_column("Factory")
    table.add_column("Tenant")
    for r in records:
        table.add_row(
            r['resource_type'], r['record_id'], r['created_by'] or "-",
            r['owner_id'] or "-", r['factory_id'] or "-", r['tenant_id'] or "-"
        )
    console.print(table)


# ============================================================================
# Test Commands
# ============================================================================

@test_app.command("access")
def test_access(
    user_id: str = typer.Option(..., "--user", "-u", help="User id"),
    action: str = typer.Option(..., "--action", "-a", help="Action (read, write, delete...)"),
    resource: str = typer.Option(..., "--resource", "-r", help="Resource type"),
    confidentiality: str = typer.Option(None, help="public, internal, confidential, restricted"),
    sensitivity: str = typer.Option(None, help="low, medium, high, critical"),
    field_name: List[str] = typer.Option([], "--field", "-f", help="Requested field (repeatable)"),
    record_id: str = typer.Option(None, "--record", help="Record id"),
    factory_id: str = typer.Option(None, "--factory", help="Record factory id"),
    tenant_id: str = typer.Option(None, "--tenant", help="Record tenant id"),
    location: str = typer.Option(None, help="Resource location")
):
    """Test an access decision through all four evaluation stages."""
    from core.policies import AccessContext

    context = AccessContext(
        confidentiality=confidentiality,
        sensitivity=sensitivity,
        fields=tuple(field_name),
        record_id=record_id,
        factory_id=factory_id,
        tenant_id=tenant_id,
        location=location
    )
    result = get_evaluator().check_access(user_id, action, resource, context)

    details = (
        f"User: {user_id}\n"
        f"Action: {action}\n"
        f"Resource: {resource}\n"
        f"Context: {json.dumps(context.to_dict()) if context.to_dict() else 'none'}\n\n"
        f"Reason: {result.reason}"
    )
    if result.allowed:
        console.print(Panel(f"[bold green]ACCESS GRANTED[/bold green]\n\n{details}",
                            title="Access Decision", box=box.DOUBLE))
    else:
        console.print(Panel(f"[bold red]ACCESS DENIED[/bold red] ({result.check})\n\n{details}",
                            title="Access Decision", box=box.DOUBLE))


@test_app.command("scenario")
def run_scenario(
    scenario_name: str = typer.Argument("all", help="Scenario to run: rbac, abac, field, record, all")
):
    """Run predefined walkthrough scenarios against the demo data."""
    from scenarios import run_scenarios
    failures = run_scenarios(scenario_name)
    if failures:
        raise typer.Exit(code=1)


# ============================================================================
# Audit Commands
# ============================================================================

@audit_app.command("logs")
def view_logs(
    limit: int = typer.Option(20, "--limit", "-l", help="Number of logs to show"),
    user_id: str = typer.Option(None, "--user", "-u", help="Filter by user id"),
    decision: str = typer.Option(None, "--decision", "-d", help="Filter by decision (PERMIT/DENY)")
):
    """View audit logs."""
    from core.audit import AuditLogger
    from models.entities import AccessDecision

    dec = None
    if decision:
        dec = AccessDecision.PERMIT if decision.upper() == "PERMIT" else AccessDecision.DENY

    logs = AuditLogger().get_logs(user_id=user_id, decision=dec, limit=limit)

    table = Table(title="Audit Logs", box=box.ROUNDED)
    table.add_column("Time", style="dim")
    table.add_column("User", style="cyan")
    table.add_column("Action")
    table.add_column("Resource")
    table.add_column("Decision")
    table.add_column("Stage")
    table.add_column("Reason")

    for log in logs:
        dec_style = "green" if log['decision'] == "PERMIT" else "red"
        table.add_row(
            (log['timestamp'] or "-")[11:19],
            log['user_id'] or "-",
            log['action'],
            log['resource_type'] or "-",
            f"[{dec_style}]{log['decision']}[/{dec_style}]",
            log['failed_check'] or "-",
            (log['decision_reason'] or "-")[:40]
        )

    console.print(table)


@audit_app.command("stats")
def audit_stats(hours: int = typer.Option(24, help="Analysis period in hours")):
    """Show access decision statistics."""
    from core.audit import AuditLogger

    stats = AuditLogger().get_statistics(hours=hours)
    by_check = "\n".join(
        f"  {stage}: {count}" for stage, count in stats['denials_by_check'].items()
    )

    console.print(Panel(
        f"""
[bold]Period:[/bold] Last {stats['period_hours']} hours

[bold]Total Decisions:[/bold] {stats['total_decisions']}
[bold]Permits:[/bold] [green]{stats['permits']}[/green] ({stats['permit_rate']:.1%})
[bold]Denials:[/bold] [red]{stats['denials']}[/red] ({stats['denial_rate']:.1%})

[bold]Unique Users:[/bold] {stats['unique_users']}
[bold]Unique Resources:[/bold] {stats['unique_resources']}

[bold]Denials By Stage:[/bold]
{by_check}
""",
        title="Access Control Statistics",
        box=box.ROUNDED
    ))


@audit_app.command("denials")
def recent_denials(hours: int = typer.Option(24, help="Look back period")):
    """Show recent access denials."""
    from core.audit import AuditLogger

    denials = AuditLogger().get_recent_denials(hours=hours)
    if not denials:
        console.print("[green]No access denials in the specified period.[/green]")
        return

    table = Table(title=f"Access Denials (Last {hours}h)", box=box.ROUNDED)
    table.add_column("Time", style="dim")
    table.add_column("User", style="cyan")
    table.add_column("Action", style="yellow")
    table.add_column("Resource")
    table.add_column("Stage")
    table.add_column("Reason")

    for log in denials:
        table.add_row(
            (log['timestamp'] or "-")[:19].replace("T", " "),
            log['user_id'] or "-",
            log['action'],
            log['resource_type'] or "-",
            log['failed_check'] or "-",
            (log['decision_reason'] or "-")[:40]
        )

    console.print(table)


@audit_app.command("export")
def export_logs(
    output: str = typer.Option("audit_export.json", "--output", "-o", help="Output file"),
    format: str = typer.Option("json", "--format", "-f", help="Format: json or csv")
):
    """Export audit logs."""
    from core.audit import AuditLogger

    try:
        data = AuditLogger().export_logs(format=format)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)

    with open(output, 'w') as f:
        f.write(data)

    console.print(f"[green]Exported audit logs to {output}[/green]")


# ============================================================================
# Main Entry Point
# ============================================================================

@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """
    Angkor Compliance Access Control

    Layered permission evaluation for the compliance platform: role
    permissions, attribute policies, field tables and record ownership.
    """
    from core.settings import Settings
    configure_logging(Settings.from_env().log_level)

    if ctx.invoked_subcommand is None:
        print_banner()
        console.print("\nUse [cyan]--help[/cyan] to see available commands.\n")
        console.print("Quick Start:")
        console.print("  1. [cyan]python main.py init[/cyan]        - Initialize database")
        console.print("  2. [cyan]python main.py demo[/cyan]        - Load demo data")
        console.print("  3. [cyan]python main.py users list[/cyan]  - View users")
        console.print("  4. [cyan]python main.py test scenario[/cyan] - Run walkthroughs")
        console.print()


if __name__ == "__main__":
    app()
