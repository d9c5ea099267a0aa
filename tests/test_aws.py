"""
Tests for the CloudWatch and Lambda adapters using stubbed boto3 clients.
"""
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

pytest.importorskip("boto3")
from botocore.exceptions import ClientError

from conftest import START
from lambda_autofix.exceptions import (
    AliasUpdateError,
    ApplyFailedError,
    PublishError,
    ReadError,
    SignalUnavailableError,
    SnapshotError,
)
from lambda_autofix.integrations.aws import (
    CloudWatchSignalSource,
    CodeBuilder,
    LambdaControlPlane,
    MAX_VERSION_DESCRIPTION,
    normalize_configuration,
)
from lambda_autofix.models import (
    FixSyntax,
    ManualReview,
    RaiseMemory,
    RaiseTimeout,
    UpdateDependencies,
)

WINDOW = timedelta(minutes=15)


def client_error(code, operation="Operation"):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


def function_configuration(version="3", timeout=30, memory=512):
    return {
        "FunctionName": "orders-api",
        "Version": version,
        "Timeout": timeout,
        "MemorySize": memory,
        "Runtime": "python3.12",
        "Handler": "app.handler",
        "CodeSha256": "abc=",
    }


@pytest.fixture
def cloudwatch():
    return MagicMock()


@pytest.fixture
def logs():
    return MagicMock()


@pytest.fixture
def source(cloudwatch, logs):
    return CloudWatchSignalSource(
        cloudwatch_client=cloudwatch, logs_client=logs, clock=lambda: START
    )


@pytest.fixture
def lambda_client():
    client = MagicMock()
    client.get_alias.return_value = {"Name": "PROD", "FunctionVersion": "3"}
    client.get_function_configuration.return_value = function_configuration()
    client.publish_version.return_value = {"Version": "4"}
    client.update_function_code.return_value = {"CodeSha256": "new="}
    return client


@pytest.fixture
def plane(lambda_client):
    return LambdaControlPlane(client=lambda_client, wait_for_update=False)


def test_normalize_configuration():
    config = normalize_configuration(function_configuration(timeout=60, memory=1024))

    assert config["timeout"] == 60
    assert config["memory_size"] == 1024
    assert config["version"] == "3"


class TestCloudWatchSignalSource:
    @pytest.mark.asyncio
    async def test_error_window_sums_periods(self, source, cloudwatch):
        cloudwatch.get_metric_data.return_value = {
            "MetricDataResults": [
                {"Id": "errors", "Values": [2.0, 3.0, 1.0]},
                {"Id": "invocations", "Values": [10.0, 20.0]},
            ]
        }

        window = await source.get_error_window("orders-api", WINDOW)

        assert window.error_count == 6
        assert window.total_invocations == 30
        kwargs = cloudwatch.get_metric_data.call_args.kwargs
        assert kwargs["StartTime"] == START - WINDOW
        assert kwargs["EndTime"] == START
        dimensions = kwargs["MetricDataQueries"][0]["MetricStat"]["Metric"]["Dimensions"]
        assert dimensions == [{"Name": "FunctionName", "Value": "orders-api"}]

    @pytest.mark.asyncio
    async def test_error_window_no_data(self, source, cloudwatch):
        cloudwatch.get_metric_data.return_value = {"MetricDataResults": []}

        window = await source.get_error_window("orders-api", WINDOW)

        assert window.error_count == 0
        assert window.total_invocations == 0

    @pytest.mark.asyncio
    async def test_error_window_failure(self, source, cloudwatch):
        cloudwatch.get_metric_data.side_effect = client_error("ThrottlingException")

        with pytest.raises(SignalUnavailableError) as exc_info:
            await source.get_error_window("orders-api", WINDOW)
        assert exc_info.value.resource_id == "orders-api"

    @pytest.mark.asyncio
    async def test_diagnostics(self, source, logs):
        logs.filter_log_events.return_value = {
            "events": [
                {"timestamp": 1704110400000, "message": "Task timed out", "logStreamName": "s1"},
                {"timestamp": 1704110401000, "message": "Task timed out", "logStreamName": "s2"},
            ]
        }

        samples = await source.get_diagnostics("orders-api", WINDOW, "ERROR", 50)

        assert [s.stream for s in samples] == ["s1", "s2"]
        assert samples[0].timestamp == START
        kwargs = logs.filter_log_events.call_args.kwargs
        assert kwargs["logGroupName"] == "/aws/lambda/orders-api"
        assert kwargs["startTime"] == int((START - WINDOW).timestamp() * 1000)
        assert kwargs["endTime"] == int(START.timestamp() * 1000)
        assert kwargs["filterPattern"] == "ERROR"
        assert kwargs["limit"] == 50

    @pytest.mark.asyncio
    async def test_diagnostics_respects_limit(self, source, logs):
        logs.filter_log_events.return_value = {
            "events": [{"timestamp": 1704110400000, "message": f"e{i}"} for i in range(5)]
        }

        samples = await source.get_diagnostics("orders-api", WINDOW, "", 2)

        assert len(samples) == 2
        assert "filterPattern" not in logs.filter_log_events.call_args.kwargs

    @pytest.mark.asyncio
    async def test_missing_log_group(self, source, logs):
        logs.filter_log_events.side_effect = client_error("ResourceNotFoundException")

        assert await source.get_diagnostics("orders-api", WINDOW, "ERROR", 50) == []

    @pytest.mark.asyncio
    async def test_diagnostics_failure(self, source, logs):
        logs.filter_log_events.side_effect = client_error("AccessDeniedException")

        with pytest.raises(SignalUnavailableError):
            await source.get_diagnostics("orders-api", WINDOW, "ERROR", 50)


class TestLambdaControlPlane:
    @pytest.mark.asyncio
    async def test_snapshot(self, plane, lambda_client):
        snapshot = await plane.snapshot("orders-api", "PROD")

        assert snapshot.revision == "3"
        assert snapshot.configuration["timeout"] == 30
        lambda_client.get_function_configuration.assert_called_with(
            FunctionName="orders-api", Qualifier="3"
        )

    @pytest.mark.asyncio
    async def test_snapshot_failure(self, plane, lambda_client):
        lambda_client.get_alias.side_effect = client_error("ResourceNotFoundException")

        with pytest.raises(SnapshotError):
            await plane.snapshot("orders-api", "PROD")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("action,params", [
        (RaiseTimeout(seconds=300), {"Timeout": 300}),
        (RaiseMemory(megabytes=1024), {"MemorySize": 1024}),
    ])
    async def test_apply_configuration(self, plane, lambda_client, action, params):
        result = await plane.apply_action("orders-api", action)

        lambda_client.update_function_configuration.assert_called_once_with(
            FunctionName="orders-api", **params
        )
        assert result.detail == params
        assert result.action_kind == action.kind

    @pytest.mark.asyncio
    async def test_apply_waits_for_update(self, lambda_client):
        plane = LambdaControlPlane(client=lambda_client)

        await plane.apply_action("orders-api", RaiseTimeout(seconds=60))

        lambda_client.get_waiter.assert_called_once_with("function_updated_v2")
        lambda_client.get_waiter.return_value.wait.assert_called_once_with(FunctionName="orders-api")

    @pytest.mark.asyncio
    async def test_apply_configuration_failure(self, plane, lambda_client):
        lambda_client.update_function_configuration.side_effect = client_error(
            "ResourceConflictException"
        )

        with pytest.raises(ApplyFailedError):
            await plane.apply_action("orders-api", RaiseTimeout(seconds=60))

    @pytest.mark.asyncio
    async def test_code_change_without_builder(self, plane):
        with pytest.raises(ApplyFailedError, match="no code builder"):
            await plane.apply_action("orders-api", UpdateDependencies(packages=["requests"]))

    @pytest.mark.asyncio
    async def test_code_change_with_builder(self, lambda_client):
        builder = MagicMock(spec=CodeBuilder)
        builder.build.return_value = b"zip-bytes"
        plane = LambdaControlPlane(client=lambda_client, code_builder=builder, wait_for_update=False)
        action = UpdateDependencies(packages=["requests"])

        result = await plane.apply_action("orders-api", action)

        builder.build.assert_called_once()
        assert builder.build.call_args.args[1] == action
        lambda_client.update_function_code.assert_called_once_with(
            FunctionName="orders-api", ZipFile=b"zip-bytes"
        )
        assert result.detail == {"code_sha256": "new="}

    @pytest.mark.asyncio
    async def test_code_builder_failure(self, lambda_client):
        builder = MagicMock(spec=CodeBuilder)
        builder.build.side_effect = RuntimeError("compiler crashed")
        plane = LambdaControlPlane(client=lambda_client, code_builder=builder, wait_for_update=False)

        with pytest.raises(ApplyFailedError, match="compiler crashed"):
            await plane.apply_action("orders-api", FixSyntax())
        lambda_client.update_function_code.assert_not_called()

    @pytest.mark.asyncio
    async def test_manual_action_rejected(self, plane):
        with pytest.raises(ApplyFailedError, match="cannot be applied"):
            await plane.apply_action("orders-api", ManualReview())

    @pytest.mark.asyncio
    async def test_publish_truncates_description(self, plane, lambda_client):
        version = await plane.publish("orders-api", "x" * 400)

        assert version == "4"
        description = lambda_client.publish_version.call_args.kwargs["Description"]
        assert len(description) == MAX_VERSION_DESCRIPTION

    @pytest.mark.asyncio
    async def test_publish_failure(self, plane, lambda_client):
        lambda_client.publish_version.side_effect = client_error("ServiceException")

        with pytest.raises(PublishError):
            await plane.publish("orders-api", "Auto-fix")

    @pytest.mark.asyncio
    async def test_set_alias(self, plane, lambda_client):
        await plane.set_alias("orders-api", "PROD", "4")

        lambda_client.update_alias.assert_called_once_with(
            FunctionName="orders-api", Name="PROD", FunctionVersion="4"
        )

    @pytest.mark.asyncio
    async def test_set_alias_failure(self, plane, lambda_client):
        lambda_client.update_alias.side_effect = client_error("TooManyRequestsException")

        with pytest.raises(AliasUpdateError):
            await plane.set_alias("orders-api", "PROD", "4")

    @pytest.mark.asyncio
    async def test_read(self, plane, lambda_client):
        lambda_client.get_alias.return_value = {"Name": "PROD", "FunctionVersion": "4"}
        lambda_client.get_function_configuration.return_value = function_configuration(
            version="4", timeout=300
        )

        state = await plane.read("orders-api", "PROD")

        assert state.revision == "4"
        assert state.configuration["timeout"] == 300

    @pytest.mark.asyncio
    async def test_read_failure(self, plane, lambda_client):
        lambda_client.get_function_configuration.side_effect = client_error("ServiceException")

        with pytest.raises(ReadError):
            await plane.read("orders-api", "PROD")
