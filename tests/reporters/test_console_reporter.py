# tests/reporters/test_console_reporter.py
"""
Unit tests for the ConsoleReporter class.
"""
from unittest.mock import MagicMock, call

import pytest

from costverify.models.comparison import ComparisonResult, ControllerConsistencyResult
from costverify.reporters.console_reporter import ConsoleReporter


def _result(field, passed, namespace="prod"):
    return ComparisonResult(
        resource="cpu",
        namespace=namespace,
        field=field,
        prometheus_value=1.0,
        api_value=1.0 if passed else 2.0,
        diff_percent=0.0 if passed else 50.0,
        tolerance=0.07,
        passed=passed,
    )


@pytest.fixture
def mocked_rich(mocker):
    mock_console_class = mocker.patch("costverify.reporters.console_reporter.Console")
    mock_table_class = mocker.patch("costverify.reporters.console_reporter.Table")
    mock_console_class.return_value = MagicMock()
    mock_table_class.return_value = MagicMock()
    return mock_console_class.return_value, mock_table_class


def test_reporter_lists_only_failures_by_default(mocked_rich):
    console, table_class = mocked_rich
    table = table_class.return_value

    ConsoleReporter().report([_result("cpuCores", True), _result("cpuCoreHours", False)])

    assert table_class.call_args.kwargs.get("title") == "Allocation API vs Prometheus"
    assert table.add_column.call_args_list[0] == call("Resource", style="cyan")
    assert table.add_row.call_count == 1
    row = table.add_row.call_args.args
    assert row[:3] == ("cpu", "prod", "cpuCoreHours")
    assert row[5] == "50.00"
    console.print.assert_any_call(table)
    console.print.assert_called_with("2 check(s), 1 failure(s).", style="bold red")


def test_reporter_show_diff_lists_all_rows_sorted(mocked_rich):
    _, table_class = mocked_rich
    table = table_class.return_value

    ConsoleReporter().report(
        [_result("ramBytes", True, namespace="b"), _result("cpuCores", True, namespace="a")], show_diff=True
    )

    namespaces = [c.args[1] for c in table.add_row.call_args_list]
    assert namespaces == ["a", "b"]


def test_reporter_all_passing_prints_summary_only(mocked_rich):
    console, table_class = mocked_rich

    ConsoleReporter().report([_result("cpuCores", True)])

    table_class.assert_not_called()
    console.print.assert_called_once_with("1 check(s), 0 failure(s).", style="bold green")


def test_reporter_with_no_results(mocked_rich):
    console, _ = mocked_rich
    ConsoleReporter().report([])
    console.print.assert_called_once_with("No namespaces were compared.", style="yellow")


def test_controller_report_lists_disagreements(mocked_rich):
    console, table_class = mocked_rich
    table = table_class.return_value
    result = ControllerConsistencyResult(
        controller_kind="DaemonSet",
        window="1h",
        prometheus_pods={"ds-a": "kube-system", "ds-b": "monitoring"},
        allocation_pods={"ds-a": "default", "ds-c": "monitoring"},
    )

    ConsoleReporter().report_controllers([result])

    row = table.add_row.call_args.args
    assert row == ("DaemonSet", "1h", "2", "2", "ds-c", "ds-a", "[bold red]Fail[/bold red]")
    console.print.assert_called_with("1 check(s), 1 failure(s).", style="bold red")


def test_controller_report_with_no_results(mocked_rich):
    console, table_class = mocked_rich
    ConsoleReporter().report_controllers([])
    table_class.assert_not_called()
    console.print.assert_called_once_with("No controller kinds were checked.", style="yellow")
