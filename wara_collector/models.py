from dataclasses import dataclass
from typing import Any, Dict

from .config import UNKNOWN, DEFAULT_SELECTOR
from .utils import first_non_empty, parse_resource_id

# --- Inventory & Catalog ---

@dataclass(frozen=True)
class Resource:
    id: str
    type: str
    location: str
    subscription_id: str
    resource_group: str
    name: str = ""

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Resource":
        """Builds a Resource from an ARG inventory row, filling gaps from the id."""
        resource_id = row.get('id') or ''
        parsed_sub, parsed_rg = parse_resource_id(resource_id)
        return cls(
            id=resource_id,
            type=first_non_empty(row.get('type')),
            location=first_non_empty(row.get('location')),
            subscription_id=first_non_empty(row.get('subscriptionId'), parsed_sub),
            resource_group=first_non_empty(row.get('resourceGroup'), parsed_rg),
            name=row.get('name') or resource_id.rsplit('/', 1)[-1],
        )


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('true', 'yes', '1')
    return bool(value)


@dataclass(frozen=True)
class RecommendationDefinition:
    guid: str
    resource_type: str
    automation_available: bool
    state: str
    query: str = ""
    category: str = ""
    recommendation_type_id: str = ""
    description: str = ""
    impact: str = ""
    learn_more_link: str = ""

    @property
    def is_active(self) -> bool:
        return (self.state or '').lower() == 'active'

    @classmethod
    def from_catalog_entry(cls, entry: Dict[str, Any]) -> "RecommendationDefinition":
        links = entry.get('learnMoreLink') or []
        if isinstance(links, list):
            links = links[0].get('url', '') if links and isinstance(links[0], dict) else ''
        return cls(
            guid=entry.get('aprlGuid') or '',
            resource_type=entry.get('recommendationResourceType') or '',
            automation_available=_as_bool(entry.get('automationAvailable')),
            state=entry.get('recommendationMetadataState') or '',
            query=entry.get('query') or '',
            category=entry.get('category') or entry.get('recommendationControl') or '',
            recommendation_type_id=entry.get('recommendationTypeId') or '',
            description=entry.get('description') or '',
            impact=entry.get('recommendationImpact') or '',
            learn_more_link=links,
        )


@dataclass(frozen=True)
class AdvisorMetadata:
    id: str
    recommendation_category: str

# --- Derived Records ---

@dataclass
class ImpactedResourceRecord:
    """One row of the impactedResources section (automated hits and manual validations alike)."""
    validation_action: str
    recommendation_id: str
    name: str
    id: str
    type: str
    location: str
    subscription_id: str
    resource_group: str
    param1: str = ""
    param2: str = ""
    param3: str = ""
    param4: str = ""
    param5: str = ""
    check_name: str = ""
    selector: str = DEFAULT_SELECTOR

    def to_dict(self) -> Dict[str, Any]:
        return {
            'validationAction': self.validation_action,
            'recommendationId': self.recommendation_id,
            'name': self.name,
            'id': self.id,
            'type': self.type,
            'location': self.location,
            'subscriptionId': self.subscription_id,
            'resourceGroup': self.resource_group,
            'param1': self.param1,
            'param2': self.param2,
            'param3': self.param3,
            'param4': self.param4,
            'param5': self.param5,
            'checkName': self.check_name,
            'selector': self.selector,
        }

# Manual-validation rows share the impacted shape
ValidationResourceRecord = ImpactedResourceRecord


@dataclass
class ResourceTypeSummary:
    resource_type: str
    number_of_resources: int
    available_in_aprl_or_advisor: str
    assessment_owner: str
    status: str
    notes: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'resourceType': self.resource_type,
            'numberOfResources': self.number_of_resources,
            'availableInAPRLOrAdvisor': self.available_in_aprl_or_advisor,
            'assessmentOwner': self.assessment_owner,
            'status': self.status,
            'notes': self.notes,
        }


@dataclass
class AdvisorRecord:
    recommendation_id: str
    type: str
    name: str
    id: str
    location: str
    subscription_id: str
    resource_group: str
    category: str = UNKNOWN
    impact: str = UNKNOWN
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'recommendationId': self.recommendation_id,
            'type': self.type,
            'name': self.name,
            'id': self.id,
            'location': self.location,
            'subscriptionId': self.subscription_id,
            'resourceGroup': self.resource_group,
            'category': self.category,
            'impact': self.impact,
            'description': self.description,
        }

# --- Service Health & Support ---

@dataclass
class Outage:
    tracking_id: str
    subscription_id: str
    event_type: str
    status: str
    title: str
    impact_start_time: str
    impact_mitigation_time: str
    impacted_services: str
    summary: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'trackingId': self.tracking_id,
            'subscriptionId': self.subscription_id,
            'eventType': self.event_type,
            'status': self.status,
            'title': self.title,
            'impactStartTime': self.impact_start_time,
            'impactMitigationTime': self.impact_mitigation_time,
            'impactedServices': self.impacted_services,
            'summary': self.summary,
        }


@dataclass
class Retirement:
    tracking_id: str
    subscription_id: str
    status: str
    title: str
    impacted_services: str
    last_update_time: str
    summary: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'trackingId': self.tracking_id,
            'subscriptionId': self.subscription_id,
            'status': self.status,
            'title': self.title,
            'impactedServices': self.impacted_services,
            'lastUpdateTime': self.last_update_time,
            'summary': self.summary,
        }


@dataclass
class SupportTicket:
    ticket_id: str
    severity: str
    status: str
    support_plan_type: str
    creation_date: str
    modified_date: str
    title: str
    related_resource: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'supportTicketId': self.ticket_id,
            'severity': self.severity,
            'status': self.status,
            'supportPlanType': self.support_plan_type,
            'creationDate': self.creation_date,
            'modifiedDate': self.modified_date,
            'title': self.title,
            'relatedResource': self.related_resource,
        }


@dataclass
class ServiceHealthAlert:
    name: str
    subscription_id: str
    resource_group: str
    enabled: str
    event_type: str
    services: str
    regions: str
    action_group: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'subscriptionId': self.subscription_id,
            'resourceGroup': self.resource_group,
            'enabled': self.enabled,
            'eventType': self.event_type,
            'services': self.services,
            'regions': self.regions,
            'actionGroup': self.action_group,
        }
