import os
import argparse
import logging
import sys
from rich.console import Console

from wara_collector import (
    clients,
    config,
    utils,
    reporting,
    orchestrator,
)
from wara_collector.catalog import CatalogError
from wara_collector.scope import parse_scope

console = Console()

def merge_arguments(args):
    """Combines CLI arguments with the optional config file. CLI values win."""
    file_values = config.load_config_file(args.config_file) if args.config_file else {}
    tenant_id = args.tenant_id or next(iter(file_values.get('tenantid', [])), None) or os.environ.get("AZURE_TENANT_ID")
    return {
        'tenant_id': tenant_id,
        'subscription_ids': args.subscription_ids or file_values.get('subscriptionids', []),
        'resource_groups': args.resource_groups or file_values.get('resourcegroups', []),
        'resource_ids': args.resource_ids or [],
        'tags': args.tags or file_values.get('tags', []),
    }

def main():
    parser = argparse.ArgumentParser(description="Collect Azure Well-Architected Reliability Assessment (WARA) data.")
    parser.add_argument("--tenant-id", help="Entra ID tenant to assess (falls back to the config file, then AZURE_TENANT_ID).")
    parser.add_argument("--subscription-ids", nargs="*", default=[], help="Subscriptions to assess, as GUIDs or /subscriptions/<id> paths.")
    parser.add_argument("--resource-groups", nargs="*", default=[], help="Resource groups to assess, as /subscriptions/<id>/resourceGroups/<name> paths.")
    parser.add_argument("--resource-ids", nargs="*", default=[], help="Individual resource ids to assess.")
    parser.add_argument("--tags", nargs="*", default=[], help="Tag filters such as 'env==prod||staging' or 'tier!=dev'.")
    parser.add_argument("--config-file", help="Config file with [tenantid], [subscriptionids], [resourcegroups] and [tags] sections.")
    parser.add_argument("--catalog-file", help="Local APRL recommendations.json to use instead of downloading it.")
    parser.add_argument("--special-types-file", help="Local WARAinScopeResTypes.csv to use instead of downloading it.")
    parser.add_argument("--output", help="Output JSON filename (default: WARA_File_<timestamp>.json).")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    args = parser.parse_args()

    log_level = logging.DEBUG if args.debug else logging.WARNING
    logger = utils.setup_logger(level=log_level, filename=config.LOG_FILENAME)
    logger.info("--- Collector Execution Started ---")
    logger.info(f"Arguments: {args}")

    try:
        params = merge_arguments(args)
        scope = parse_scope(params['subscription_ids'], params['resource_groups'], params['resource_ids'])
        orchestrator.validate_parameters(params['tenant_id'], scope)
    except config.CollectorParameterError as e:
        logger.error(f"Invalid parameters: {e}")
        console.print(f"[bold red]Invalid parameters:[/] {e}")
        sys.exit(1)

    credential = clients.get_azure_credentials(params['tenant_id'], console=console)
    if not credential:
        console.print("[bold red]Failed to authenticate. Exiting.[/]")
        sys.exit(1)

    subscriptions = clients.check_subscriptions(credential, scope.query_subscriptions, console=console)
    if not subscriptions:
        logger.error("None of the subscriptions in scope are accessible with the current credential.")
        console.print("[bold red]No accessible subscriptions in scope. Exiting.[/]")
        sys.exit(1)

    try:
        report = orchestrator.run_collection(
            credential=credential,
            tenant_id=params['tenant_id'],
            scope=scope,
            tags=params['tags'],
            catalog_source=args.catalog_file,
            special_types_source=args.special_types_file,
            subscriptions=subscriptions,
            console=console,
        )
    except (config.CollectorParameterError, CatalogError) as e:
        logger.error(f"Collection aborted: {e}", exc_info=args.debug)
        console.print(f"[bold red]Collection aborted:[/] {e}")
        sys.exit(1)

    console.print("\n[bold green]:mag: Collection complete.[/]")
    reporting.print_summary(report, console=console)

    output = args.output or reporting.default_report_filename()
    reporting.write_json_report(report, output)
    console.print(f"\n[bold green]🎉 Report written to {output}[/bold green]")
    logger.info("--- Collector Execution Finished ---")


if __name__ == "__main__":
    main()
