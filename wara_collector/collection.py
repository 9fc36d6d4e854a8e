import logging
from typing import Iterable, List, Set, Tuple

from azure.core.exceptions import HttpResponseError
from rich.console import Console

from .clients import run_arg_query
from .config import OUTAGE_LOOKBACK_DAYS, SUPPORT_TICKET_LOOKBACK_DAYS, HIGH_AVAILABILITY_CATEGORY
from .models import Outage, RecommendationDefinition, Resource, Retirement, ServiceHealthAlert, SupportTicket
from .scope import TagFilter, build_tag_query

_console = Console()

# --- Inventory ---

INVENTORY_QUERY = """
resources
| project id, name, type = tolower(type), location, subscriptionId, resourceGroup
| union (
    resourcecontainers
    | where type =~ 'microsoft.resources/subscriptions'
    | project id, name, type = 'microsoft.subscription/subscriptions', location = 'global', subscriptionId, resourceGroup = ''
)
"""

def list_all_resources(credential, subscriptions, console: Console = _console) -> List[Resource]:
    """Lists every resource (and the subscriptions themselves) via ARG."""
    logger = logging.getLogger()
    logger.info("📦 Collecting resource inventory (using ARG)...")
    console.print("\n📦 Collecting resource inventory (using ARG)...")
    resources = []
    try:
        rows = run_arg_query(credential, INVENTORY_QUERY, subscriptions)
        resources = [Resource.from_row(row) for row in rows if row.get('id')]
        console.print(f"  :white_check_mark: Total resources found: {len(resources)}")
    except Exception as e:
        logger.error(f"Error listing resources using ARG: {e}", exc_info=True)
        console.print(f"  [bold red]Error listing resources (ARG):[/] {e}")
    return resources

# --- APRL Queries ---

def run_aprl_queries(credential, subscriptions, catalog: Iterable[RecommendationDefinition],
                     resource_types: Set[str], console: Console = _console) -> List[dict]:
    """Runs each active, automated APRL query whose resource type exists in the inventory.

    Returns the raw matched rows. A failing query is logged and skipped.
    """
    logger = logging.getLogger()
    logger.info("🔎 Running APRL recommendation queries (using ARG)...")
    console.print("\n🔎 Running APRL recommendation queries (using ARG)...")
    present_types = {t.lower() for t in resource_types}
    runnable = [
        r for r in catalog
        if r.automation_available and r.is_active and r.query and r.resource_type.lower() in present_types
    ]
    logger.info(f"{len(runnable)} APRL queries apply to the resource types in scope.")

    matches = []
    failed = 0
    for recommendation in runnable:
        try:
            rows = run_arg_query(credential, recommendation.query, subscriptions)
        except HttpResponseError as e:
            failed += 1
            logger.error(f"APRL query for recommendation {recommendation.guid} failed: {e}", exc_info=True)
            continue
        for row in rows:
            if not row.get('recommendationId'):
                row = dict(row, recommendationId=recommendation.guid)
            matches.append(row)
        logger.debug(f"Recommendation {recommendation.guid} matched {len(rows)} resource(s).")

    if failed:
        console.print(f"  [yellow]Warning:[/] {failed} APRL quer{'y' if failed == 1 else 'ies'} failed, see log for details.")
    if not matches:
        console.print("  :heavy_check_mark: No resources matched APRL queries.")
    else:
        console.print(f"  :warning: Found {len(matches)} APRL recommendation match(es).")
    return matches

# --- Advisor ---

def build_advisor_query(other_recommendations: Iterable[str]) -> str:
    others = ", ".join(f"'{type_id}'" for type_id in other_recommendations)
    condition = f"tostring(properties.category) == '{HIGH_AVAILABILITY_CATEGORY}'"
    if others:
        condition = f"{condition} or tostring(properties.recommendationTypeId) in~ ({others})"
    return f"""
advisorresources
| where type == 'microsoft.advisor/recommendations'
| where {condition}
| project recommendationId = tostring(properties.recommendationTypeId),
          type = tolower(tostring(properties.impactedField)),
          name = tostring(properties.impactedValue),
          id = tolower(tostring(properties.resourceMetadata.resourceId)),
          subscriptionId,
          category = tostring(properties.category),
          impact = tostring(properties.impact),
          description = tostring(properties.shortDescription.problem)
"""

def get_advisor_recommendations(credential, subscriptions, other_recommendations, console: Console = _console) -> List[dict]:
    """Reliability (and APRL-referenced) Advisor recommendations as raw rows."""
    logger = logging.getLogger()
    logger.info("💡 Collecting Advisor recommendations (using ARG)...")
    console.print("\n💡 Collecting Advisor recommendations (using ARG)...")
    rows = []
    try:
        rows = run_arg_query(credential, build_advisor_query(other_recommendations), subscriptions)
        if not rows:
            console.print("  :heavy_check_mark: No Advisor recommendations found.")
        else:
            console.print(f"  :warning: Found {len(rows)} Advisor recommendation(s).")
    except Exception as e:
        logger.error(f"Error collecting Advisor recommendations using ARG: {e}", exc_info=True)
        console.print(f"  [bold red]Error collecting Advisor recommendations (ARG):[/] {e}")
    return rows

# --- Service Health & Support ---

OUTAGES_QUERY = f"""
servicehealthresources
| where type =~ 'Microsoft.ResourceHealth/events'
| extend eventType = tostring(properties.EventType), status = tostring(properties.Status),
         lastUpdate = todatetime(tolong(properties.LastUpdateTime))
| where eventType == 'ServiceIssue' and lastUpdate > ago({OUTAGE_LOOKBACK_DAYS}d)
| project trackingId = name, subscriptionId, eventType, status,
          title = tostring(properties.Title),
          impactStartTime = todatetime(tolong(properties.ImpactStartTime)),
          impactMitigationTime = todatetime(tolong(properties.ImpactMitigationTime)),
          impactedServices = tostring(properties.Impact),
          summary = tostring(properties.Summary)
"""

RETIREMENTS_QUERY = """
servicehealthresources
| where type =~ 'Microsoft.ResourceHealth/events'
| extend eventSubType = tostring(properties.EventSubType)
| where eventSubType == 'Retirement'
| project trackingId = name, subscriptionId,
          status = tostring(properties.Status),
          title = tostring(properties.Title),
          impactedServices = tostring(properties.Impact),
          lastUpdateTime = todatetime(tolong(properties.LastUpdateTime)),
          summary = tostring(properties.Summary)
"""

SUPPORT_TICKETS_QUERY = f"""
supportresources
| where type =~ 'microsoft.support/supporttickets'
| extend createdDate = todatetime(properties.CreatedDate)
| where createdDate > ago({SUPPORT_TICKET_LOOKBACK_DAYS}d)
| project supportTicketId = tostring(properties.SupportTicketId),
          severity = tostring(properties.Severity),
          status = tostring(properties.Status),
          supportPlanType = tostring(properties.SupportPlanType),
          creationDate = createdDate,
          modifiedDate = todatetime(properties.ModifiedDate),
          title = tostring(properties.Title),
          relatedResource = tostring(properties.TechnicalTicketDetails.ResourceId)
"""

SERVICE_HEALTH_QUERY = """
resources
| where type =~ 'microsoft.insights/activitylogalerts'
| where tostring(properties.condition) contains 'ServiceHealth'
| project name, subscriptionId, resourceGroup,
          enabled = tostring(properties.enabled),
          conditions = properties.condition.allOf,
          actionGroups = properties.actions.actionGroups
"""

def _condition_values(conditions, field_name):
    """Collects 'equals'/'containsAny' values of the alert conditions on one field."""
    values = []
    for condition in conditions or []:
        if not isinstance(condition, dict):
            continue
        if condition.get('field') == field_name:
            if condition.get('equals'):
                values.append(str(condition['equals']))
            values.extend(str(v) for v in condition.get('containsAny') or [])
        for nested in condition.get('anyOf') or []:
            if isinstance(nested, dict) and nested.get('field') == field_name and nested.get('equals'):
                values.append(str(nested['equals']))
    return values

def _action_group_names(action_groups):
    names = []
    for group in action_groups or []:
        group_id = group.get('actionGroupId') if isinstance(group, dict) else None
        if group_id:
            names.append(group_id.rstrip('/').rsplit('/', 1)[-1])
    return ", ".join(names)

def _str(row, key):
    value = row.get(key)
    return "" if value is None else str(value)

def _collect(credential, subscriptions, query, label, console: Console) -> List[dict]:
    logger = logging.getLogger()
    logger.info(f"Collecting {label} (using ARG)...")
    console.print(f"\n🩺 Collecting {label} (using ARG)...")
    try:
        rows = run_arg_query(credential, query, subscriptions)
        console.print(f"  :white_check_mark: Found {len(rows)} {label}.")
        return rows
    except Exception as e:
        logger.error(f"Error collecting {label} using ARG: {e}", exc_info=True)
        console.print(f"  [bold red]Error collecting {label} (ARG):[/] {e}")
        return []

def get_outages(credential, subscriptions, console: Console = _console) -> List[Outage]:
    rows = _collect(credential, subscriptions, OUTAGES_QUERY, "service outages", console)
    return [
        Outage(
            tracking_id=_str(row, 'trackingId'),
            subscription_id=_str(row, 'subscriptionId'),
            event_type=_str(row, 'eventType'),
            status=_str(row, 'status'),
            title=_str(row, 'title'),
            impact_start_time=_str(row, 'impactStartTime'),
            impact_mitigation_time=_str(row, 'impactMitigationTime'),
            impacted_services=_str(row, 'impactedServices'),
            summary=_str(row, 'summary'),
        )
        for row in rows
    ]

def get_retirements(credential, subscriptions, console: Console = _console) -> List[Retirement]:
    rows = _collect(credential, subscriptions, RETIREMENTS_QUERY, "service retirements", console)
    return [
        Retirement(
            tracking_id=_str(row, 'trackingId'),
            subscription_id=_str(row, 'subscriptionId'),
            status=_str(row, 'status'),
            title=_str(row, 'title'),
            impacted_services=_str(row, 'impactedServices'),
            last_update_time=_str(row, 'lastUpdateTime'),
            summary=_str(row, 'summary'),
        )
        for row in rows
    ]

def get_support_tickets(credential, subscriptions, console: Console = _console) -> List[SupportTicket]:
    rows = _collect(credential, subscriptions, SUPPORT_TICKETS_QUERY, "support tickets", console)
    return [
        SupportTicket(
            ticket_id=_str(row, 'supportTicketId'),
            severity=_str(row, 'severity'),
            status=_str(row, 'status'),
            support_plan_type=_str(row, 'supportPlanType'),
            creation_date=_str(row, 'creationDate'),
            modified_date=_str(row, 'modifiedDate'),
            title=_str(row, 'title'),
            related_resource=_str(row, 'relatedResource'),
        )
        for row in rows
    ]

def get_service_health_alerts(credential, subscriptions, console: Console = _console) -> List[ServiceHealthAlert]:
    rows = _collect(credential, subscriptions, SERVICE_HEALTH_QUERY, "service health alerts", console)
    alerts = []
    for row in rows:
        conditions = row.get('conditions')
        alerts.append(ServiceHealthAlert(
            name=_str(row, 'name'),
            subscription_id=_str(row, 'subscriptionId'),
            resource_group=_str(row, 'resourceGroup'),
            enabled=_str(row, 'enabled'),
            event_type=", ".join(_condition_values(conditions, 'properties.incidentType')) or 'All',
            services=", ".join(_condition_values(conditions, 'properties.impactedServices[*].ServiceName')) or 'All',
            regions=", ".join(_condition_values(conditions, 'properties.impactedServices[*].ImpactedRegions[*].RegionName')) or 'All',
            action_group=_action_group_names(row.get('actionGroups')),
        ))
    return alerts

# --- Tags ---

def get_tagged_ids(credential, subscriptions, tag_filters: List[TagFilter], console: Console = _console) -> Tuple[Set[str], Set[str]]:
    """Returns (resource_group_ids, resource_ids) whose tags match every filter."""
    logger = logging.getLogger()
    console.print("\n🏷  Resolving tag filters (using ARG)...")
    try:
        rg_rows = run_arg_query(credential, build_tag_query(tag_filters, "resourcecontainers"), subscriptions)
        resource_rows = run_arg_query(credential, build_tag_query(tag_filters, "resources"), subscriptions)
    except Exception as e:
        logger.error(f"Error resolving tag filters using ARG: {e}", exc_info=True)
        console.print(f"  [bold red]Error resolving tag filters (ARG):[/] {e}")
        return set(), set()

    rg_ids = {row['id'].lower() for row in rg_rows if row.get('id')}
    resource_ids = {row['id'].lower() for row in resource_rows if row.get('id')}
    logger.info(f"Tag filters matched {len(rg_ids)} resource group(s) and {len(resource_ids)} resource(s).")
    console.print(f"  :white_check_mark: Tags matched {len(rg_ids)} resource group(s) and {len(resource_ids)} resource(s).")
    return rg_ids, resource_ids
