import logging
from datetime import datetime, timezone

from rich.console import Console

from . import analysis, catalog, collection, reporting
from .config import CollectorParameterError
from .scope import Scope, apply_filters, filter_by_scope, filter_by_tags, is_global, parse_tag_filters

_console = Console()

def validate_parameters(tenant_id, scope: Scope):
    """Raises CollectorParameterError unless a tenant and at least one scope entry are given."""
    if not tenant_id or not str(tenant_id).strip():
        raise CollectorParameterError("A tenant id is required (--tenant-id, config file [tenantid] or AZURE_TENANT_ID).")
    if scope is None or scope.is_empty:
        raise CollectorParameterError("At least one subscription, resource group or resource id is required.")

def run_collection(credential, tenant_id, scope: Scope, tags=None, catalog_source=None,
                   special_types_source=None, subscriptions=None, console: Console = _console):
    """Runs one full WARA collection and returns the combined report dict.

    Stages: catalogs, inventory, APRL queries, manual validation, Advisor,
    service health / support, resource type summary.

    `subscriptions` restricts the ARG queries (e.g. to the ones the credential
    can see); it defaults to every subscription the scope touches.
    """
    logger = logging.getLogger()
    validate_parameters(tenant_id, scope)
    tag_filters = parse_tag_filters(tags or [])
    started_at = datetime.now(timezone.utc)
    if subscriptions is None:
        subscriptions = scope.query_subscriptions
    if not subscriptions:
        raise CollectorParameterError("None of the subscriptions in scope are accessible.")
    logger.info(f"Starting WARA collection for tenant {tenant_id} across {len(subscriptions)} subscription(s).")

    # --- Catalogs ---
    console.print("\n[bold blue]--- Loading Recommendation Catalogs ---[/]")
    recommendations = catalog.load_recommendations(catalog_source, console=console)
    special_types = catalog.load_special_types(special_types_source, console=console)
    advisor_metadata = catalog.fetch_advisor_metadata(credential, console=console)
    catalog_index = analysis.build_catalog_index(recommendations)

    # --- Inventory ---
    console.print("\n[bold blue]--- Collecting Resources ---[/]")
    all_resources = collection.list_all_resources(credential, subscriptions, console=console)
    resource_index = analysis.build_resource_index(all_resources)
    inventory = filter_by_scope(all_resources, scope)
    logger.info(f"{len(inventory)} of {len(all_resources)} resource(s) are in scope.")

    tagged_ids = None
    if tag_filters:
        tagged_ids = collection.get_tagged_ids(credential, subscriptions, tag_filters, console=console)
        inventory = filter_by_tags(inventory, *tagged_ids)
        logger.info(f"{len(inventory)} resource(s) remain after tag filtering.")

    # --- APRL ---
    # Subscription rows never survive scope/tag filtering; their queries still run
    resource_types = {r.type for r in inventory} | {r.type for r in all_resources if is_global(r)}
    matches = collection.run_aprl_queries(credential, subscriptions, recommendations, resource_types, console=console)
    impacted = analysis.build_impacted_resources(matches, resource_index, catalog_index)
    impacted = apply_filters(impacted, scope, tagged_ids)
    logger.info(f"{len(impacted)} APRL impacted resource record(s) after filtering.")

    # --- Manual Validation ---
    to_validate = analysis.resources_to_validate(
        [r for r in impacted if not is_global(r)],
        [r for r in inventory if not is_global(r)],
    )
    validation = analysis.build_validation_resources(to_validate, recommendations, special_types, impacted=impacted)

    # --- Advisor ---
    other_recommendations = analysis.compute_other_recommendations(recommendations, advisor_metadata)
    advisor_rows = collection.get_advisor_recommendations(credential, subscriptions, other_recommendations, console=console)
    advisory = analysis.build_advisor_records(advisor_rows, resource_index)
    advisory = apply_filters(advisory, scope, tagged_ids)
    logger.info(f"{len(advisory)} Advisor record(s) after filtering.")

    # --- Service Health & Support ---
    outages = collection.get_outages(credential, subscriptions, console=console)
    retirements = collection.get_retirements(credential, subscriptions, console=console)
    support_tickets = collection.get_support_tickets(credential, subscriptions, console=console)
    service_health = collection.get_service_health_alerts(credential, subscriptions, console=console)

    # --- Summary ---
    impacted_resources = impacted + validation
    resource_type_summary = analysis.summarize_resource_types(impacted_resources + advisory, special_types)

    report = reporting.build_report(
        tenant_id=tenant_id,
        scope=scope,
        tags=tags,
        started_at=started_at,
        impacted_resources=impacted_resources,
        resource_types=resource_type_summary,
        advisory=advisory,
        outages=outages,
        retirements=retirements,
        support_tickets=support_tickets,
        service_health=service_health,
    )
    logger.info(f"Collection finished: {len(impacted_resources)} impacted/validation record(s), {len(advisory)} Advisor record(s).")
    return report
