"""
Scenario Walkthroughs
=====================

Runs the demo data through the permission evaluator and prints expected
versus actual decisions. Each scenario targets one evaluation stage:

1. rbac   - role tokens and one-level inheritance
2. abac   - confidentiality, sensitivity, business hours, location
3. field  - field tables per role and resource
4. record - ownership, assigned factories, tenant boundaries

The clock is fixed so time-based results do not depend on when the
walkthrough is run: 10:00 or 20:00 in Phnom Penh.
"""

from datetime import datetime, timezone
from typing import Optional

from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich import box
from sqlalchemy.orm import sessionmaker

from core.audit import AuditLogger
from core.evaluator import PermissionEvaluator
from core.policy_store import PolicyStore
from core.settings import Settings
from core.user_repository import UserRepository

console = Console()

# 03:00 and 13:00 UTC are 10:00 and 20:00 in Asia/Phnom_Penh (UTC+7)
BUSINESS_HOURS = datetime(2024, 6, 3, 3, 0, tzinfo=timezone.utc)
AFTER_HOURS = datetime(2024, 6, 3, 13, 0, tzinfo=timezone.utc)

SCENARIOS = {
    'rbac': (
        "Role tokens and inheritance",
        [
            # (user, action, resource, context, clock, expected)
            ('sokha', 'delete', 'document', {}, BUSINESS_HOURS, True),
            ('bopha', 'write', 'case', {}, BUSINESS_HOURS, False),
            ('sreymom', 'read-limited', 'case', {}, BUSINESS_HOURS, True),
            ('rithy', 'delete', 'document', {}, BUSINESS_HOURS, False),
        ]
    ),
    'abac': (
        "Confidentiality, sensitivity, business hours and location",
        [
            ('dara', 'read', 'document', {'confidentiality': 'restricted'}, BUSINESS_HOURS, False),
            ('sreymom', 'read', 'document', {'confidentiality': 'confidential'}, BUSINESS_HOURS, False),
            ('dara', 'read', 'document', {'confidentiality': 'confidential', 'sensitivity': 'high'},
             BUSINESS_HOURS, True),
            ('dara', 'delete', 'cap', {}, AFTER_HOURS, False),
            ('dara', 'read', 'cap', {}, AFTER_HOURS, True),
            ('sreymom', 'read', 'document', {'location': 'PP-02'}, BUSINESS_HOURS, False),
            ('dara', 'read', 'document', {'location': 'SR-01'}, BUSINESS_HOURS, True),
        ]
    ),
    'field': (
        "Field tables per role and resource",
        [
            ('dara', 'write', 'user', {'fields': ['password']}, BUSINESS_HOURS, False),
            ('dara', 'write', 'user', {'fields': ['name', 'email']}, BUSINESS_HOURS, True),
            ('sreymom', 'read', 'factory', {'fields': ['name']}, BUSINESS_HOURS, True),
            ('rithy', 'read', 'case',
             {'confidentiality': 'public', 'sensitivity': 'low', 'fields': ['complainant']},
             BUSINESS_HOURS, False),
            ('rithy', 'read', 'case',
             {'confidentiality': 'public', 'sensitivity': 'low', 'fields': ['summary']},
             BUSINESS_HOURS, True),
        ]
    ),
    'record': (
        "Ownership, assigned factories and tenant boundaries",
        [
            ('bopha', 'read-limited', 'case', {'recordId': 'GRV-2024-001'}, BUSINESS_HOURS, True),
            ('bopha', 'read-limited', 'case',
             {'recordId': 'GRV-2024-002', 'factoryId': 'SR-01', 'tenantId': 'tenant-mekong'},
             BUSINESS_HOURS, False),
            ('sreymom', 'read', 'case', {'recordId': 'GRV-2024-001', 'factoryId': 'PP-01'},
             BUSINESS_HOURS, True),
            ('dara', 'read', 'document',
             {'recordId': 'DOC-SR-PAYROLL', 'factoryId': 'SR-01', 'tenantId': 'tenant-mekong'},
             BUSINESS_HOURS, False),
            ('dara', 'read', 'cap', {'recordId': 'CAP-2024-014', 'factoryId': 'PP-02'},
             BUSINESS_HOURS, True),
        ]
    ),
}


def run_scenarios(scenario_name: str = "all", session_factory: Optional[sessionmaker] = None) -> int:
    """
    Run walkthrough scenarios against the loaded demo data.

    Args:
        scenario_name: rbac, abac, field, record or all

    Returns:
        Number of cases whose decision did not match the expectation;
        an unknown scenario name counts as one failure
    """
    console.print(Panel(
        "[bold]Permission Evaluation Scenarios[/bold]\n\n"
        "Each case runs through RBAC, ABAC, field-level and record-level checks;\n"
        "the first denial decides.",
        title="Angkor Compliance",
        box=box.DOUBLE
    ))

    if scenario_name == "all":
        names = list(SCENARIOS)
    elif scenario_name in SCENARIOS:
        names = [scenario_name]
    else:
        console.print(f"[red]Unknown scenario: {scenario_name}[/red]")
        console.print(f"Available: {', '.join(SCENARIOS)}, all")
        return 1

    store = PolicyStore(session_factory)
    users = UserRepository(session_factory)
    audit = AuditLogger(session_factory)

    failures = 0
    for name in names:
        title, cases = SCENARIOS[name]
        console.print(f"\n[bold cyan]{'=' * 60}[/bold cyan]")
        failures += _run_cases(title, cases, store, users, audit)
    return failures


def _run_cases(title, cases, store, users, audit) -> int:
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("User", style="cyan")
    table.add_column("Action")
    table.add_column("Resource")
    table.add_column("Context")
    table.add_column("Clock")
    table.add_column("Expected")
    table.add_column("Actual")
    table.add_column("Result")
    table.add_column("Reason")

    passed = 0
    failed = 0
    settings = Settings(cache_enabled=False)

    for user_id, action, resource, context, moment, expected in cases:
        evaluator = PermissionEvaluator(
            store, users, audit=audit, clock=lambda moment=moment: moment, settings=settings
        )
        result = evaluator.check_access(user_id, action, resource, context)

        if result.allowed == expected:
            outcome = "[green]PASS[/green]"
            passed += 1
        else:
            outcome = "[red]FAIL[/red]"
            failed += 1

        table.add_row(
            user_id,
            action,
            resource,
            ", ".join(f"{k}={v}" for k, v in context.items()) or "-",
            "10:00" if moment is BUSINESS_HOURS else "20:00",
            "[green]PERMIT[/green]" if expected else "[red]DENY[/red]",
            "[green]PERMIT[/green]" if result.allowed else "[red]DENY[/red]",
            outcome,
            result.reason
        )

    console.print(table)
    console.print(f"\nResults: [green]{passed} passed[/green], [red]{failed} failed[/red]")
    return failed


if __name__ == "__main__":
    run_scenarios("all")
