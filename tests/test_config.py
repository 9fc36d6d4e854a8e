import argparse
import logging
import json
import pytest
from datetime import datetime, timezone
from unittest.mock import MagicMock

from rich.console import Console
from rich.logging import RichHandler

import collector
from wara_collector.config import QUIET_LOGGERS, CollectorParameterError, load_config_file
from wara_collector.models import ImpactedResourceRecord, ResourceTypeSummary
from wara_collector.reporting import build_report, default_report_filename, print_summary, write_json_report
from wara_collector.scope import parse_scope
from wara_collector.utils import setup_logger

CONFIG_TEXT = """
# WARA collector configuration
[tenantid]
00000000-0000-0000-0000-000000000000

[subscriptionids]
/subscriptions/11111111-1111-1111-1111-111111111111
/subscriptions/22222222-2222-2222-2222-222222222222

[ResourceGroups]
/subscriptions/33333333-3333-3333-3333-333333333333/resourceGroups/rg-prod

[tags]
env==prod||staging

[unknown]
ignored
"""

def write_config(tmp_path):
    path = tmp_path / "config.txt"
    path.write_text(CONFIG_TEXT, encoding="utf-8")
    return str(path)

# --- Config File ---

def test_load_config_file_reads_sections(tmp_path):
    values = load_config_file(write_config(tmp_path))

    assert values["tenantid"] == ["00000000-0000-0000-0000-000000000000"]
    assert len(values["subscriptionids"]) == 2
    assert values["resourcegroups"] == ["/subscriptions/33333333-3333-3333-3333-333333333333/resourceGroups/rg-prod"]
    assert values["tags"] == ["env==prod||staging"]
    assert "unknown" not in values

def test_load_config_file_missing_file(tmp_path):
    with pytest.raises(CollectorParameterError):
        load_config_file(str(tmp_path / "missing.txt"))

def test_merge_arguments_cli_wins_over_config_file(tmp_path, monkeypatch):
    monkeypatch.delenv("AZURE_TENANT_ID", raising=False)
    args = argparse.Namespace(
        config_file=write_config(tmp_path),
        tenant_id=None,
        subscription_ids=["/subscriptions/44444444-4444-4444-4444-444444444444"],
        resource_groups=[],
        resource_ids=[],
        tags=[],
    )

    params = collector.merge_arguments(args)

    assert params["tenant_id"] == "00000000-0000-0000-0000-000000000000"
    assert params["subscription_ids"] == ["/subscriptions/44444444-4444-4444-4444-444444444444"]
    assert params["resource_groups"] == ["/subscriptions/33333333-3333-3333-3333-333333333333/resourceGroups/rg-prod"]
    assert params["tags"] == ["env==prod||staging"]

def test_merge_arguments_falls_back_to_environment(monkeypatch):
    monkeypatch.setenv("AZURE_TENANT_ID", "env-tenant")
    args = argparse.Namespace(config_file=None, tenant_id=None, subscription_ids=[], resource_groups=[], resource_ids=[], tags=[])
    assert collector.merge_arguments(args)["tenant_id"] == "env-tenant"

# --- Reporting ---

def make_report():
    record = ImpactedResourceRecord(
        validation_action="APRL - Queries", recommendation_id="rec-1", name="vm1",
        id="/subscriptions/sub-1/resourceGroups/rg1/providers/microsoft.compute/virtualmachines/vm1",
        type="microsoft.compute/virtualmachines", location="eastus", subscription_id="sub-1", resource_group="rg1",
    )
    summary = ResourceTypeSummary("microsoft.compute/virtualmachines", 1, "Yes", "APRL", "Active")
    return build_report(
        tenant_id="tenant-1",
        scope=parse_scope(subscription_ids=["/subscriptions/sub-1"]),
        tags=["env==prod"],
        started_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        impacted_resources=[record],
        resource_types=[summary],
        advisory=[],
        outages=[],
        retirements=[],
        support_tickets=[],
        service_health=[],
    )

def test_build_report_has_every_section():
    report = make_report()
    assert list(report.keys()) == [
        "scriptDetails", "impactedResources", "resourceType", "advisory",
        "outages", "retirements", "supportTickets", "serviceHealth",
    ]
    assert report["impactedResources"][0]["validationAction"] == "APRL - Queries"
    assert report["impactedResources"][0]["subscriptionId"] == "sub-1"
    assert report["resourceType"][0]["assessmentOwner"] == "APRL"
    assert report["scriptDetails"]["startTime"] == "2026-01-01T00:00:00+00:00"

def test_write_json_report(tmp_path):
    path = tmp_path / "report.json"
    write_json_report(make_report(), str(path))
    written = json.loads(path.read_text(encoding="utf-8"))
    assert written["scriptDetails"]["tenantId"] == "tenant-1"
    assert len(written["impactedResources"]) == 1

def test_default_report_filename():
    assert default_report_filename(datetime(2026, 3, 4, 5, 6)) == "WARA_File_2026-03-04-05-06.json"

def test_print_summary_prints_tables():
    mock_console = MagicMock(spec=Console)
    print_summary(make_report(), console=mock_console)
    assert mock_console.print.call_count == 2

# --- CLI ---

@pytest.fixture
def cli_mocks(mocker, monkeypatch, tmp_path):
    monkeypatch.delenv("AZURE_TENANT_ID", raising=False)
    monkeypatch.setattr("sys.argv", [
        "collector.py", "--tenant-id", "tenant-1",
        "--subscription-ids", "/subscriptions/sub-1", "/subscriptions/sub-2",
        "--output", str(tmp_path / "out.json"),
    ])
    return {
        "setup_logger": mocker.patch("collector.utils.setup_logger", return_value=MagicMock()),
        "get_azure_credentials": mocker.patch("collector.clients.get_azure_credentials", return_value=MagicMock()),
        "check_subscriptions": mocker.patch("collector.clients.check_subscriptions", return_value=["sub-1"]),
        "run_collection": mocker.patch("collector.orchestrator.run_collection", return_value=make_report()),
        "print_summary": mocker.patch("collector.reporting.print_summary"),
        "write_json_report": mocker.patch("collector.reporting.write_json_report"),
    }

def test_main_collects_only_accessible_subscriptions(cli_mocks):
    collector.main()

    cli_mocks["check_subscriptions"].assert_called_once()
    assert cli_mocks["check_subscriptions"].call_args[0][1] == ["sub-1", "sub-2"]
    assert cli_mocks["run_collection"].call_args[1]["subscriptions"] == ["sub-1"]
    cli_mocks["write_json_report"].assert_called_once()

def test_main_exits_when_no_subscription_is_accessible(cli_mocks):
    cli_mocks["check_subscriptions"].return_value = []

    with pytest.raises(SystemExit) as exc_info:
        collector.main()

    assert exc_info.value.code == 1
    cli_mocks["run_collection"].assert_not_called()

# --- Logging ---

@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    saved_quiet = {name: logging.getLogger(name).level for name in QUIET_LOGGERS}
    yield root
    for handler in root.handlers:
        if handler not in saved_handlers:
            handler.close()
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)
    for name, level in saved_quiet.items():
        logging.getLogger(name).setLevel(level)

def test_setup_logger_writes_file_and_quiets_sdk_loggers(tmp_path, restore_root_logger):
    log_file = tmp_path / "collector.log"

    logger = setup_logger(level=logging.INFO, filename=str(log_file))
    logger.info("collection started")

    assert {type(h) for h in logger.handlers} == {logging.FileHandler, RichHandler}
    for name in QUIET_LOGGERS:
        assert logging.getLogger(name).level == logging.WARNING
    for handler in logger.handlers:
        handler.flush()
    assert "collection started" in log_file.read_text(encoding="utf-8")

def test_setup_logger_debug_keeps_sdk_loggers_verbose(tmp_path, restore_root_logger):
    setup_logger(level=logging.DEBUG, filename=str(tmp_path / "collector.log"))
    assert logging.getLogger("azure.identity").level == logging.DEBUG
