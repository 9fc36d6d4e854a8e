import pytest
from unittest.mock import MagicMock

from rich.console import Console

from wara_collector.config import (
    ACTION_APRL_QUERY,
    ACTION_UNDER_DEVELOPMENT,
    ACTION_UNSUPPORTED_TYPE,
    CollectorParameterError,
)
from wara_collector.models import RecommendationDefinition, Resource
from wara_collector.orchestrator import run_collection, validate_parameters
from wara_collector.scope import Scope, parse_scope

TENANT = "00000000-0000-0000-0000-000000000000"
VM_TYPE = "microsoft.compute/virtualmachines"
STORAGE_TYPE = "microsoft.storage/storageaccounts"
AVS_TYPE = "microsoft.avs/privateclouds"

# --- Test Data ---

def make_resource(name, resource_type, sub="sub-1", rg="rg1"):
    return Resource(
        id=f"/subscriptions/{sub}/resourceGroups/{rg}/providers/{resource_type}/{name}",
        type=resource_type,
        location="eastus",
        subscription_id=sub,
        resource_group=rg,
        name=name,
    )

VM1 = make_resource("vm1", VM_TYPE)
SA1 = make_resource("sa1", STORAGE_TYPE)
PC1 = make_resource("pc1", AVS_TYPE, rg="rg2")
VM2 = make_resource("vm2", VM_TYPE, sub="sub-2")
SUB1 = Resource(id="/subscriptions/sub-1", type="microsoft.subscription/subscriptions", location="global",
                subscription_id="sub-1", resource_group="Unknown", name="Prod")

CATALOG = [
    RecommendationDefinition(guid="rec-vm", resource_type="Microsoft.Compute/virtualMachines",
                             automation_available=True, state="Active", query="vm query"),
    RecommendationDefinition(guid="rec-sa", resource_type="Microsoft.Storage/storageAccounts",
                             automation_available=False, state="Active", query="// under-development"),
]

ADVISOR_ROWS = [
    {"recommendationId": "adv-vm", "type": VM_TYPE, "name": "vm1", "id": VM1.id.lower(), "subscriptionId": "sub-1",
     "category": "HighAvailability", "impact": "High", "description": "Use availability zones"},
    {"recommendationId": "adv-vm2", "type": VM_TYPE, "name": "vm2", "id": VM2.id.lower(), "subscriptionId": "sub-2",
     "category": "HighAvailability", "impact": "High", "description": "Use availability zones"},
    {"recommendationId": "adv-sub", "type": "microsoft.subscriptions/subscriptions", "name": "sub-2",
     "id": "/subscriptions/sub-2", "subscriptionId": "sub-2",
     "category": "HighAvailability", "impact": "Medium", "description": "Create service health alerts"},
]

@pytest.fixture
def mock_console():
    return MagicMock(spec=Console)

@pytest.fixture
def patched_sources(mocker):
    """Replaces every external collaborator with canned data."""
    mocks = {
        "load_recommendations": mocker.patch("wara_collector.catalog.load_recommendations", return_value=CATALOG),
        "load_special_types": mocker.patch("wara_collector.catalog.load_special_types", return_value={AVS_TYPE}),
        "fetch_advisor_metadata": mocker.patch("wara_collector.catalog.fetch_advisor_metadata", return_value=[]),
        "list_all_resources": mocker.patch("wara_collector.collection.list_all_resources",
                                           return_value=[VM1, SA1, PC1, VM2, SUB1]),
        "run_aprl_queries": mocker.patch("wara_collector.collection.run_aprl_queries", return_value=[
            {"recommendationId": "rec-vm", "name": "vm1", "id": VM1.id},
            {"recommendationId": "rec-vm", "name": "vm2", "id": VM2.id},
        ]),
        "get_advisor_recommendations": mocker.patch("wara_collector.collection.get_advisor_recommendations",
                                                    return_value=ADVISOR_ROWS),
        "get_tagged_ids": mocker.patch("wara_collector.collection.get_tagged_ids"),
        "get_outages": mocker.patch("wara_collector.collection.get_outages", return_value=[]),
        "get_retirements": mocker.patch("wara_collector.collection.get_retirements", return_value=[]),
        "get_support_tickets": mocker.patch("wara_collector.collection.get_support_tickets", return_value=[]),
        "get_service_health_alerts": mocker.patch("wara_collector.collection.get_service_health_alerts", return_value=[]),
    }
    return mocks

# --- Parameter Validation ---

def test_validate_parameters_requires_tenant():
    with pytest.raises(CollectorParameterError):
        validate_parameters("", parse_scope(subscription_ids=["/subscriptions/sub-1"]))

def test_validate_parameters_requires_scope():
    with pytest.raises(CollectorParameterError):
        validate_parameters(TENANT, Scope())

def test_run_collection_missing_tenant_fails_before_processing(patched_sources, mock_console):
    with pytest.raises(CollectorParameterError):
        run_collection(MagicMock(), None, parse_scope(subscription_ids=["/subscriptions/sub-1"]), console=mock_console)
    patched_sources["load_recommendations"].assert_not_called()
    patched_sources["list_all_resources"].assert_not_called()

# --- End-to-end Collection ---

def test_run_collection_subscription_scope(patched_sources, mock_console):
    credential = MagicMock()
    report = run_collection(credential, TENANT, parse_scope(subscription_ids=["/subscriptions/sub-1"]), console=mock_console)

    impacted = report["impactedResources"]
    by_action = {}
    for row in impacted:
        by_action.setdefault(row["validationAction"], []).append(row)

    # APRL hit for vm1 only; vm2 lives in another subscription
    assert [r["name"] for r in by_action[ACTION_APRL_QUERY]] == ["vm1"]
    assert by_action[ACTION_APRL_QUERY][0]["type"] == "Microsoft.Compute/virtualMachines"
    # Manual-only storage recommendation and the uncovered AVS type
    assert [(r["name"], r["recommendationId"]) for r in by_action[ACTION_UNDER_DEVELOPMENT]] == [("sa1", "rec-sa")]
    assert [r["name"] for r in by_action[ACTION_UNSUPPORTED_TYPE]] == ["pc1"]
    assert len(impacted) == 3

    # Global Advisor finding for sub-2 survives, resource-scoped one for vm2 does not
    assert sorted(r["recommendationId"] for r in report["advisory"]) == ["adv-sub", "adv-vm"]

    summary = {r["resourceType"].lower(): r for r in report["resourceType"]}
    assert summary[VM_TYPE]["numberOfResources"] == 2
    assert summary[STORAGE_TYPE]["numberOfResources"] == 1
    assert summary[AVS_TYPE]["availableInAPRLOrAdvisor"] == "No"
    assert summary["microsoft.subscriptions/subscriptions"]["numberOfResources"] == 1
    assert sum(r["numberOfResources"] for r in report["resourceType"]) == len(impacted) + len(report["advisory"])

    assert report["scriptDetails"]["tenantId"] == TENANT
    assert report["scriptDetails"]["subscriptionIds"] == ["sub-1"]
    for section in ("outages", "retirements", "supportTickets", "serviceHealth"):
        assert report[section] == []

    patched_sources["get_tagged_ids"].assert_not_called()
    patched_sources["list_all_resources"].assert_called_once_with(credential, ["sub-1"], console=mock_console)

def test_run_collection_resource_group_scope(patched_sources, mock_console):
    report = run_collection(
        MagicMock(), TENANT, parse_scope(resource_groups=["/subscriptions/sub-1/resourceGroups/rg2"]), console=mock_console,
    )

    assert [r["name"] for r in report["impactedResources"]] == ["pc1"]
    assert [r["recommendationId"] for r in report["advisory"]] == ["adv-sub"]

def test_run_collection_applies_tag_filters(patched_sources, mock_console):
    patched_sources["get_tagged_ids"].return_value = ({"/subscriptions/sub-1/resourcegroups/rg2"}, {SA1.id.lower()})

    report = run_collection(
        MagicMock(), TENANT, parse_scope(subscription_ids=["/subscriptions/sub-1"]), tags=["env==prod"],
        console=mock_console,
    )

    names = sorted(r["name"] for r in report["impactedResources"])
    assert names == ["pc1", "sa1"]
    assert [r["recommendationId"] for r in report["advisory"]] == ["adv-sub"]
    assert report["scriptDetails"]["tags"] == ["env==prod"]
    tag_filters = patched_sources["get_tagged_ids"].call_args[0][2]
    assert tag_filters[0].key == "env"

# --- Subscription-level APRL Recommendations ---

SUB_TYPE = "microsoft.subscription/subscriptions"
SUB_REC = RecommendationDefinition(guid="rec-sub", resource_type="Microsoft.Subscription/Subscriptions",
                                   automation_available=True, state="Active", query="subscription query")

def subscription_aware_aprl(credential, subscriptions, catalog, resource_types, console=None):
    """Only returns the subscription hit when the subscription type is queried."""
    if SUB_TYPE in {t.lower() for t in resource_types}:
        return [{"recommendationId": "rec-sub", "name": "Prod", "id": "/subscriptions/sub-1"}]
    return []

@pytest.fixture
def subscription_catalog(patched_sources):
    patched_sources["load_recommendations"].return_value = CATALOG + [SUB_REC]
    patched_sources["run_aprl_queries"].side_effect = subscription_aware_aprl
    return patched_sources

def aprl_rows(report):
    return [r for r in report["impactedResources"] if r["validationAction"] == ACTION_APRL_QUERY]

def test_run_collection_keeps_subscription_findings_under_resource_group_scope(subscription_catalog, mock_console):
    report = run_collection(
        MagicMock(), TENANT, parse_scope(resource_groups=["/subscriptions/sub-1/resourceGroups/rg2"]), console=mock_console,
    )

    queried_types = subscription_catalog["run_aprl_queries"].call_args[0][3]
    assert SUB_TYPE in {t.lower() for t in queried_types}
    assert [(r["recommendationId"], r["id"]) for r in aprl_rows(report)] == [("rec-sub", "/subscriptions/sub-1")]
    assert aprl_rows(report)[0]["subscriptionId"] == "sub-1"
    assert sorted(r["name"] for r in report["impactedResources"]) == ["Prod", "pc1"]

def test_run_collection_keeps_subscription_findings_under_tag_filters(subscription_catalog, mock_console):
    subscription_catalog["get_tagged_ids"].return_value = ({"/subscriptions/sub-1/resourcegroups/rg2"}, {SA1.id.lower()})

    report = run_collection(
        MagicMock(), TENANT, parse_scope(subscription_ids=["/subscriptions/sub-1"]), tags=["env==prod"],
        console=mock_console,
    )

    queried_types = {t.lower() for t in subscription_catalog["run_aprl_queries"].call_args[0][3]}
    assert queried_types == {SUB_TYPE, STORAGE_TYPE, AVS_TYPE}
    assert [r["recommendationId"] for r in aprl_rows(report)] == ["rec-sub"]
    assert sorted(r["name"] for r in report["impactedResources"]) == ["Prod", "pc1", "sa1"]
    # Global rows are not pushed through manual validation
    assert not [r for r in report["impactedResources"]
                if r["validationAction"] != ACTION_APRL_QUERY and r["id"] == "/subscriptions/sub-1"]

# --- Query Subscriptions ---

def test_run_collection_uses_given_subscriptions(patched_sources, mock_console):
    credential = MagicMock()
    scope = parse_scope(subscription_ids=["/subscriptions/sub-1", "/subscriptions/sub-3"])

    run_collection(credential, TENANT, scope, subscriptions=["sub-1"], console=mock_console)

    patched_sources["list_all_resources"].assert_called_once_with(credential, ["sub-1"], console=mock_console)
    assert patched_sources["run_aprl_queries"].call_args[0][1] == ["sub-1"]
    patched_sources["get_outages"].assert_called_once_with(credential, ["sub-1"], console=mock_console)

def test_run_collection_without_accessible_subscriptions_fails(patched_sources, mock_console):
    with pytest.raises(CollectorParameterError):
        run_collection(MagicMock(), TENANT, parse_scope(subscription_ids=["/subscriptions/sub-1"]),
                       subscriptions=[], console=mock_console)
    patched_sources["load_recommendations"].assert_not_called()
