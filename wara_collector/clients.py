import logging
from azure.identity import AzureCliCredential, ChainedTokenCredential, DefaultAzureCredential
from azure.mgmt.resource import SubscriptionClient
from azure.mgmt.resourcegraph import ResourceGraphClient
from azure.mgmt.resourcegraph.models import QueryRequest, QueryRequestOptions
from rich.console import Console

from .config import ARG_PAGE_SIZE

_console = Console()

def get_azure_credentials(tenant_id, console: Console = _console):
    """Authenticates against the given tenant. Returns None on failure."""
    logger = logging.getLogger()
    try:
        with console.status(f"[cyan]Authenticating with Azure tenant {tenant_id}...[/]"):
            credential = ChainedTokenCredential(
                AzureCliCredential(tenant_id=tenant_id),
                DefaultAzureCredential(exclude_cli_credential=True),
            )
            # Fail fast: resolve a token now rather than on the first query
            credential.get_token("https://management.azure.com/.default")

        console.print(":white_check_mark: [bold green]Authenticated successfully.[/]")
        logger.info(f"Authenticated successfully for tenant ID: {tenant_id}")
        return credential

    except Exception as e:
        logger.error(f"Authentication failed for tenant {tenant_id}: {e}", exc_info=True)
        console.print(f"[bold red]Authentication failed:[/] {e}")
        return None

def check_subscriptions(credential, subscription_ids, console: Console = _console):
    """Warns about scoped subscriptions the credential cannot see. Returns the visible ones."""
    logger = logging.getLogger()
    wanted = [s.lower() for s in subscription_ids]
    try:
        subscription_client = SubscriptionClient(credential)
        with console.status("[cyan]Listing accessible subscriptions...[/]"):
            visible = {sub.subscription_id.lower(): sub.display_name for sub in subscription_client.subscriptions.list()}
    except Exception as e:
        logger.error(f"Could not list subscriptions: {e}", exc_info=True)
        console.print(f"[yellow]Warning:[/] Could not list subscriptions, continuing with the requested scope. ({e})")
        return wanted

    accessible = []
    for sub_id in wanted:
        if sub_id in visible:
            console.print(f"  Using subscription: [bold cyan]{visible[sub_id]}[/] ({sub_id})")
            accessible.append(sub_id)
        else:
            logger.warning(f"Subscription {sub_id} is not accessible with the current credential.")
            console.print(f"  [yellow]Warning:[/] Subscription {sub_id} is not accessible and will be skipped.")
    return accessible

def run_arg_query(credential, query, subscriptions, page_size=ARG_PAGE_SIZE):
    """Runs a Resource Graph query across subscriptions and returns every row, following skip tokens."""
    logger = logging.getLogger()
    arg_client = ResourceGraphClient(credential)
    rows = []
    skip_token = None
    while True:
        options = QueryRequestOptions(top=page_size, result_format="objectArray")
        if skip_token:
            options.skip_token = skip_token
        query_request = QueryRequest(subscriptions=list(subscriptions), query=query, options=options)

        logger.debug(f"Executing ARG query (skip_token={skip_token}): {query}")
        query_response = arg_client.resources(query_request)
        if query_response.data:
            rows.extend(query_response.data)

        skip_token = getattr(query_response, "skip_token", None)
        if not skip_token:
            break
    logger.debug(f"ARG query returned {len(rows)} records.")
    return rows
