import logging
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, Set

from .config import (
    ACTION_APRL_QUERY,
    ACTION_UNDER_DEVELOPMENT,
    ACTION_CANNOT_VALIDATE_WITH_ARG,
    ACTION_AUTOMATION_UNAVAILABLE,
    ACTION_QUERY_MISSING,
    ACTION_UNSUPPORTED_TYPE,
    ASSESSMENT_OWNER,
    SUMMARY_STATUS,
    DEFAULT_SELECTOR,
    HIGH_AVAILABILITY_CATEGORY,
    UNKNOWN,
)
from .models import (
    AdvisorMetadata,
    AdvisorRecord,
    ImpactedResourceRecord,
    RecommendationDefinition,
    Resource,
    ResourceTypeSummary,
    ValidationResourceRecord,
)
from .utils import first_non_empty, parse_resource_id

# --- Indexes ---

def build_resource_index(resources: Iterable[Resource]) -> Dict[str, Resource]:
    """Maps lower-cased resource id -> Resource. Duplicate ids: last one wins."""
    index = {}
    for resource in resources:
        if resource.id:
            index[resource.id.lower()] = resource
    return index

def build_catalog_index(catalog: Iterable[RecommendationDefinition]) -> Dict[str, RecommendationDefinition]:
    """Maps lower-cased APRL guid -> RecommendationDefinition. Duplicate guids: last one wins."""
    index = {}
    for recommendation in catalog:
        if recommendation.guid:
            index[recommendation.guid.lower()] = recommendation
    return index

# --- Impacted Resources ---

def _text(value) -> str:
    return "" if value is None else str(value)

def _resolve_placement(resource_id, resource: Optional[Resource]):
    """(location, subscription_id, resource_group) from the index, or from the id path."""
    parsed_sub, parsed_rg = parse_resource_id(resource_id)
    if resource is None:
        return UNKNOWN, parsed_sub, parsed_rg
    return (
        first_non_empty(resource.location),
        first_non_empty(resource.subscription_id, parsed_sub),
        first_non_empty(resource.resource_group, parsed_rg),
    )

def build_impacted_resources(matches: Iterable[dict], resource_index: Dict[str, Resource],
                             catalog_index: Dict[str, RecommendationDefinition]) -> List[ImpactedResourceRecord]:
    """Joins raw APRL query hits against the inventory and the catalog.

    One record per match. Every field has a fallback, so malformed rows
    never stop the run.
    """
    logger = logging.getLogger()
    records = []
    for match in matches:
        if not isinstance(match, dict):
            logger.warning(f"Skipping query result that is not a row: {match!r}")
            continue
        recommendation_id = _text(match.get('recommendationId'))
        resource_id = _text(match.get('id'))
        recommendation = catalog_index.get(recommendation_id.lower())
        resource = resource_index.get(resource_id.lower())
        location, subscription_id, resource_group = _resolve_placement(resource_id, resource)

        records.append(ImpactedResourceRecord(
            validation_action=ACTION_APRL_QUERY,
            recommendation_id=first_non_empty(recommendation_id),
            name=first_non_empty(match.get('name'), resource.name if resource else None),
            id=first_non_empty(resource_id),
            type=first_non_empty(
                recommendation.resource_type if recommendation else None,
                resource.type if resource else None,
            ),
            location=location,
            subscription_id=subscription_id,
            resource_group=resource_group,
            param1=_text(match.get('param1')),
            param2=_text(match.get('param2')),
            param3=_text(match.get('param3')),
            param4=_text(match.get('param4')),
            param5=_text(match.get('param5')),
            check_name=_text(match.get('checkName')),
            selector=first_non_empty(match.get('selector'), default=DEFAULT_SELECTOR),
        ))
    logger.debug(f"Built {len(records)} impacted resource record(s).")
    return records

def build_advisor_records(rows: Iterable[dict], resource_index: Dict[str, Resource]) -> List[AdvisorRecord]:
    """Normalizes Advisor rows through the same fallback chain as APRL hits."""
    records = []
    for row in rows:
        resource_id = _text(row.get('id'))
        resource = resource_index.get(resource_id.lower())
        location, subscription_id, resource_group = _resolve_placement(resource_id, resource)
        records.append(AdvisorRecord(
            recommendation_id=first_non_empty(row.get('recommendationId')),
            type=first_non_empty(row.get('type'), resource.type if resource else None),
            name=first_non_empty(row.get('name'), resource.name if resource else None),
            id=first_non_empty(resource_id),
            location=location,
            subscription_id=first_non_empty(row.get('subscriptionId'), subscription_id),
            resource_group=resource_group,
            category=first_non_empty(row.get('category')),
            impact=first_non_empty(row.get('impact')),
            description=_text(row.get('description')),
        ))
    return records

# --- Validation Resources ---

def select_validation_action(query: str) -> str:
    """Picks the manual-validation action from the catalog entry's query text."""
    text = (query or '').lower()
    if 'development' in text:
        return ACTION_UNDER_DEVELOPMENT
    if 'cannot-be-validated-with-arg' in text:
        return ACTION_CANNOT_VALIDATE_WITH_ARG
    if 'azure resource graph' in text:
        return ACTION_AUTOMATION_UNAVAILABLE
    return ACTION_QUERY_MISSING

def resources_to_validate(impacted: Iterable[ImpactedResourceRecord], inventory: Iterable[Resource]) -> List[Resource]:
    """Impacted resources plus inventory, one entry per id (first occurrence kept)."""
    unique = OrderedDict()
    for record in impacted:
        key = (record.id or '').lower()
        if key and key not in unique:
            unique[key] = Resource(
                id=record.id,
                type=record.type,
                location=record.location,
                subscription_id=record.subscription_id,
                resource_group=record.resource_group,
                name=record.name,
            )
    for resource in inventory:
        key = (resource.id or '').lower()
        if key and key not in unique:
            unique[key] = resource
    return list(unique.values())

def _manual_recommendations_by_type(catalog: Iterable[RecommendationDefinition]) -> Dict[str, List[RecommendationDefinition]]:
    by_type = {}
    for recommendation in catalog:
        if recommendation.automation_available or not recommendation.is_active:
            continue
        if recommendation.recommendation_type_id:
            continue
        by_type.setdefault(recommendation.resource_type.lower(), []).append(recommendation)
    return by_type

def _validation_record(resource: Resource, recommendation_id: str, action: str) -> ValidationResourceRecord:
    return ValidationResourceRecord(
        validation_action=action,
        recommendation_id=recommendation_id,
        name=first_non_empty(resource.name),
        id=resource.id,
        type=first_non_empty(resource.type),
        location=first_non_empty(resource.location),
        subscription_id=first_non_empty(resource.subscription_id),
        resource_group=first_non_empty(resource.resource_group),
    )

def build_validation_resources(resources: Iterable[Resource], catalog: Iterable[RecommendationDefinition],
                               special_types: Set[str],
                               impacted: Iterable[ImpactedResourceRecord] = ()) -> List[ValidationResourceRecord]:
    """Emits manual-validation records for resources without automated coverage.

    For each resource:

    1. every active, non-automated catalog entry of the same type with no
       Advisor type id becomes one record, tagged by ``select_validation_action``;
    2. otherwise a special (uncovered) type gets a single "unsupported" record;
    3. otherwise an error is logged and the resource is skipped.

    Resources that already have an automated hit in ``impacted`` only go
    through step 1.
    """
    logger = logging.getLogger()
    manual_by_type = _manual_recommendations_by_type(catalog)
    special = {t.lower() for t in special_types}
    impacted = list(impacted)
    automated_ids = {(r.id or '').lower() for r in impacted}
    seen_pairs = {((r.id or '').lower(), (r.recommendation_id or '').lower()) for r in impacted}
    reported = set()

    records = []
    for resource in resources:
        resource_key = (resource.id or '').lower()
        resource_type = (resource.type or '').lower()
        manual = manual_by_type.get(resource_type, [])

        if manual:
            for recommendation in manual:
                pair = (resource_key, recommendation.guid.lower())
                if pair in seen_pairs:
                    continue
                seen_pairs.add(pair)
                records.append(_validation_record(resource, recommendation.guid, select_validation_action(recommendation.query)))
        elif resource_key in automated_ids:
            continue
        elif resource_type in special:
            pair = (resource_key, '')
            if pair not in seen_pairs:
                seen_pairs.add(pair)
                records.append(_validation_record(resource, '', ACTION_UNSUPPORTED_TYPE))
        elif resource_key not in reported:
            reported.add(resource_key)
            logger.error(f"No recommendation found for resource type {resource.type} with id {resource.id}")

    logger.info(f"Built {len(records)} validation resource record(s); {len(reported)} resource(s) without any recommendation.")
    return records

# --- Summaries ---

def summarize_resource_types(records: Iterable, special_types: Set[str]) -> List[ResourceTypeSummary]:
    """Counts records per resource type and flags whether APRL/Advisor covers the type."""
    special = {t.lower() for t in special_types}
    counts = OrderedDict()
    spelling = {}
    for record in records:
        resource_type = first_non_empty(record.type)
        key = resource_type.lower()
        spelling.setdefault(key, resource_type)
        counts[key] = counts.get(key, 0) + 1

    return [
        ResourceTypeSummary(
            resource_type=spelling[key],
            number_of_resources=count,
            available_in_aprl_or_advisor="No" if key in special else "Yes",
            assessment_owner=ASSESSMENT_OWNER,
            status=SUMMARY_STATUS,
        )
        for key, count in counts.items()
    ]

def compute_other_recommendations(catalog: Iterable[RecommendationDefinition],
                                  advisor_metadata: Iterable[AdvisorMetadata]) -> List[str]:
    """Advisor type ids referenced by the catalog that Advisor does not file under HighAvailability."""
    high_availability = {
        m.id.lower() for m in advisor_metadata
        if (m.recommendation_category or '').lower() == HIGH_AVAILABILITY_CATEGORY.lower()
    }
    others = []
    seen = set()
    for recommendation in catalog:
        type_id = (recommendation.recommendation_type_id or '').lower()
        if not type_id or type_id in high_availability or type_id in seen:
            continue
        seen.add(type_id)
        others.append(type_id)
    return others
