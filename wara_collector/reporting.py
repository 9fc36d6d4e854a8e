import json
import logging
from datetime import datetime, timezone

from rich.console import Console
from rich.table import Table

from .config import COLLECTOR_VERSION, REPORT_FILENAME_TEMPLATE

_console = Console()

REPORT_SECTIONS = (
    'impactedResources',
    'resourceType',
    'advisory',
    'outages',
    'retirements',
    'supportTickets',
    'serviceHealth',
)

def build_report(tenant_id, scope, tags, started_at, impacted_resources, resource_types, advisory,
                 outages, retirements, support_tickets, service_health):
    """Assembles the combined collector output. Every section is a list of plain dicts."""
    return {
        'scriptDetails': {
            'version': COLLECTOR_VERSION,
            'tenantId': tenant_id,
            'subscriptionIds': sorted(scope.subscriptions),
            'resourceGroups': sorted(scope.resource_groups),
            'resourceIds': sorted(scope.resource_ids),
            'tags': list(tags or []),
            'startTime': started_at.isoformat(),
            'endTime': datetime.now(timezone.utc).isoformat(),
        },
        'impactedResources': [r.to_dict() for r in impacted_resources],
        'resourceType': [r.to_dict() for r in resource_types],
        'advisory': [r.to_dict() for r in advisory],
        'outages': [r.to_dict() for r in outages],
        'retirements': [r.to_dict() for r in retirements],
        'supportTickets': [r.to_dict() for r in support_tickets],
        'serviceHealth': [r.to_dict() for r in service_health],
    }

def default_report_filename(now=None):
    now = now or datetime.now()
    return REPORT_FILENAME_TEMPLATE.format(timestamp=now.strftime("%Y-%m-%d-%H-%M"))

def write_json_report(report, filename):
    """Writes the report as indented JSON and returns the filename."""
    logger = logging.getLogger()
    with open(filename, 'w', encoding='utf-8') as f:
        json.dump(report, f, indent=2, default=str)
    logger.info(f"Report written to {filename}")
    return filename

def print_summary(report, console: Console = _console, top_types=10):
    """Prints per-section counts and the most common resource types."""
    table = Table(title="WARA Collection Summary", show_header=True, header_style="bold blue")
    table.add_column("Section", style="cyan")
    table.add_column("Records", justify="right", style="green")
    for section in REPORT_SECTIONS:
        table.add_row(section, str(len(report.get(section, []))))
    console.print(table)

    resource_types = sorted(report.get('resourceType', []), key=lambda r: r['numberOfResources'], reverse=True)
    if resource_types:
        types_table = Table(title=f"Top {min(top_types, len(resource_types))} Resource Types", show_header=True, header_style="bold blue")
        types_table.add_column("Resource Type", style="cyan")
        types_table.add_column("Count", justify="right", style="green")
        types_table.add_column("In APRL/Advisor", justify="center")
        for row in resource_types[:top_types]:
            covered = row['availableInAPRLOrAdvisor']
            style = "green" if covered == "Yes" else "yellow"
            types_table.add_row(row['resourceType'], str(row['numberOfResources']), f"[{style}]{covered}[/]")
        console.print(types_table)
