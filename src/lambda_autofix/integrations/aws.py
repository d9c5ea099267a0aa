"""
AWS adapters: CloudWatch signals and the Lambda control plane.

boto3 is an optional dependency (``pip install 'lambda-autofix[aws]'``) and is
imported when an adapter is constructed. Blocking SDK calls run in worker
threads via ``asyncio.to_thread`` so attempts for different functions
overlap.

Classes:
    CloudWatchSignalSource: Error counts from metrics, diagnostics from logs
    LambdaControlPlane: Versions, aliases and configuration of a function
    CodeBuilder: Produces a deployment package for code changes
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Type

from ..constants import DEFAULT_REGION, METRIC_PERIOD_SECONDS
from ..exceptions import (
    AliasUpdateError,
    ApplyFailedError,
    ControlPlaneError,
    PublishError,
    ReadError,
    SignalUnavailableError,
    SnapshotError,
)
from ..models import (
    ApplyResult,
    CodeChange,
    ConfigurationChange,
    DiagnosticSample,
    ErrorWindow,
    RemediationActionBase,
    ResourceState,
    Snapshot,
)
from ..utils import utc_now
from .base import ControlPlane, SignalSource

logger = logging.getLogger(__name__)

LOG_GROUP_PREFIX = "/aws/lambda/"

# Configuration keys used by the remediation actions -> Lambda API fields
AWS_PROPERTIES = {
    "timeout": "Timeout",
    "memory_size": "MemorySize",
}

MAX_VERSION_DESCRIPTION = 256


def _import_boto3():
    try:
        import boto3
        from botocore.exceptions import BotoCoreError, ClientError
    except ImportError:
        raise ImportError(
            "boto3 required for AWS integration. Install with: pip install 'lambda-autofix[aws]'"
        )
    return boto3, (BotoCoreError, ClientError)


def _make_client(boto3, service: str, region: str, profile_name: Optional[str]):
    if profile_name:
        session = boto3.Session(profile_name=profile_name)
        return session.client(service, region_name=region)
    return boto3.client(service, region_name=region)


def _error_code(error: Exception) -> Optional[str]:
    response = getattr(error, "response", None) or {}
    return response.get("Error", {}).get("Code")


def normalize_configuration(response: Dict[str, Any]) -> Dict[str, Any]:
    """Map a GetFunctionConfiguration response to configuration keys."""
    return {
        "timeout": response.get("Timeout"),
        "memory_size": response.get("MemorySize"),
        "runtime": response.get("Runtime"),
        "handler": response.get("Handler"),
        "code_sha256": response.get("CodeSha256"),
        "version": response.get("Version"),
    }


class CodeBuilder(ABC):
    """Builds a deployment package that carries a code change."""

    @abstractmethod
    def build(
        self,
        resource_id: str,
        action: CodeChange,
        configuration: Dict[str, Any]
    ) -> bytes:
        """
        Return the zipped deployment package implementing ``action``.

        Args:
            resource_id: Function name
            action: Code change to implement
            configuration: Current working-copy configuration
        """
        pass


class CloudWatchSignalSource(SignalSource):
    """
    Signal source reading ``AWS/Lambda`` metrics and function log groups.

    Example:
        >>> source = CloudWatchSignalSource(region="us-west-2")
        >>> window = await source.get_error_window("orders-api", timedelta(minutes=15))
    """

    def __init__(
        self,
        region: str = DEFAULT_REGION,
        cloudwatch_client: Any = None,
        logs_client: Any = None,
        profile_name: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        boto3, self._aws_errors = _import_boto3()
        self.region = region
        self.cloudwatch = cloudwatch_client or _make_client(boto3, "cloudwatch", region, profile_name)
        self.logs = logs_client or _make_client(boto3, "logs", region, profile_name)
        self._clock = clock

        logger.info(f"Initialized CloudWatch signal source in {region}")

    @staticmethod
    def _metric_query(query_id: str, metric_name: str, resource_id: str) -> Dict[str, Any]:
        return {
            "Id": query_id,
            "MetricStat": {
                "Metric": {
                    "Namespace": "AWS/Lambda",
                    "MetricName": metric_name,
                    "Dimensions": [{"Name": "FunctionName", "Value": resource_id}],
                },
                "Period": METRIC_PERIOD_SECONDS,
                "Stat": "Sum",
            },
            "ReturnData": True,
        }

    async def get_error_window(self, resource_id: str, window: timedelta) -> ErrorWindow:
        end_time = self._clock()
        start_time = end_time - window

        try:
            response = await asyncio.to_thread(
                self.cloudwatch.get_metric_data,
                MetricDataQueries=[
                    self._metric_query("errors", "Errors", resource_id),
                    self._metric_query("invocations", "Invocations", resource_id),
                ],
                StartTime=start_time,
                EndTime=end_time,
            )
        except self._aws_errors as e:
            raise SignalUnavailableError(resource_id, f"get_metric_data: {e}") from e

        totals = {
            result["Id"]: sum(result.get("Values", []))
            for result in response.get("MetricDataResults", [])
        }
        return ErrorWindow(
            error_count=int(totals.get("errors", 0)),
            total_invocations=int(totals.get("invocations", 0)),
        )

    async def get_diagnostics(
        self,
        resource_id: str,
        window: timedelta,
        filter_pattern: str,
        limit: int
    ) -> List[DiagnosticSample]:
        end_time = self._clock()
        start_time = end_time - window
        log_group = f"{LOG_GROUP_PREFIX}{resource_id}"

        # CloudWatch requires milliseconds
        params = {
            "logGroupName": log_group,
            "startTime": int(start_time.timestamp() * 1000),
            "endTime": int(end_time.timestamp() * 1000),
            "limit": limit,
        }
        if filter_pattern:
            params["filterPattern"] = filter_pattern

        try:
            response = await asyncio.to_thread(self.logs.filter_log_events, **params)
        except self._aws_errors as e:
            if _error_code(e) == "ResourceNotFoundException":
                logger.warning(f"Log group {log_group} does not exist")
                return []
            raise SignalUnavailableError(resource_id, f"filter_log_events: {e}") from e

        return [
            DiagnosticSample(
                timestamp=event.get("timestamp"),
                message=event.get("message", ""),
                stream=event.get("logStreamName", "unknown"),
            )
            for event in response.get("events", [])[:limit]
        ]


class LambdaControlPlane(ControlPlane):
    """
    Control plane over Lambda versions and aliases.

    The unpublished working copy is ``$LATEST``; ``publish`` creates a
    numbered version and ``set_alias`` moves the alias to it.

    Args:
        region: AWS region
        client: Pre-built Lambda client
        code_builder: Builds deployment packages for code changes; without
            one, code changes fail at apply time
        profile_name: Optional AWS profile name
        wait_for_update: Wait for the ``function_updated_v2`` waiter after
            every configuration or code update
    """

    def __init__(
        self,
        region: str = DEFAULT_REGION,
        client: Any = None,
        code_builder: Optional[CodeBuilder] = None,
        profile_name: Optional[str] = None,
        wait_for_update: bool = True
    ):
        boto3, self._aws_errors = _import_boto3()
        self.region = region
        self.client = client or _make_client(boto3, "lambda", region, profile_name)
        self.code_builder = code_builder
        self.wait_for_update = wait_for_update

        logger.info(f"Initialized Lambda control plane in {region}")

    async def _call(
        self,
        error_cls: Type[ControlPlaneError],
        resource_id: str,
        method: str,
        **kwargs: Any
    ) -> Any:
        func = getattr(self.client, method)
        try:
            return await asyncio.to_thread(func, **kwargs)
        except self._aws_errors as e:
            raise error_cls(resource_id, f"{method}: {e}") from e

    async def _wait_until_updated(self, resource_id: str) -> None:
        if not self.wait_for_update:
            return
        waiter = self.client.get_waiter("function_updated_v2")
        try:
            await asyncio.to_thread(waiter.wait, FunctionName=resource_id)
        except self._aws_errors as e:
            raise ApplyFailedError(resource_id, f"function did not finish updating: {e}") from e

    async def _alias_state(self, error_cls, resource_id: str, alias: str) -> Dict[str, Any]:
        alias_info = await self._call(
            error_cls, resource_id, "get_alias", FunctionName=resource_id, Name=alias
        )
        version = alias_info["FunctionVersion"]
        configuration = await self._call(
            error_cls,
            resource_id,
            "get_function_configuration",
            FunctionName=resource_id,
            Qualifier=version,
        )
        return {"revision": version, "configuration": normalize_configuration(configuration)}

    async def snapshot(self, resource_id: str, alias: str) -> Snapshot:
        state = await self._alias_state(SnapshotError, resource_id, alias)
        return Snapshot(
            resource_id=resource_id,
            alias=alias,
            revision=state["revision"],
            configuration=state["configuration"],
            captured_at=utc_now(),
        )

    async def apply_action(self, resource_id: str, action: RemediationActionBase) -> ApplyResult:
        if isinstance(action, ConfigurationChange):
            field_name = AWS_PROPERTIES.get(action.target_property)
            if field_name is None:
                raise ApplyFailedError(resource_id, f"unsupported property '{action.target_property}'")
            params = {field_name: action.expected_value}
            await self._call(
                ApplyFailedError,
                resource_id,
                "update_function_configuration",
                FunctionName=resource_id,
                **params,
            )
            await self._wait_until_updated(resource_id)
            logger.info(f"Updated {resource_id} {params}")
            return ApplyResult(resource_id=resource_id, action_kind=action.kind, detail=params)

        if isinstance(action, CodeChange):
            if self.code_builder is None:
                raise ApplyFailedError(resource_id, f"no code builder configured for '{action.kind}'")
            current = await self._call(
                ApplyFailedError, resource_id, "get_function_configuration", FunctionName=resource_id
            )
            try:
                package = await asyncio.to_thread(
                    self.code_builder.build, resource_id, action, normalize_configuration(current)
                )
            except Exception as e:
                raise ApplyFailedError(resource_id, f"building deployment package failed: {e}") from e
            response = await self._call(
                ApplyFailedError,
                resource_id,
                "update_function_code",
                FunctionName=resource_id,
                ZipFile=package,
            )
            await self._wait_until_updated(resource_id)
            detail = {"code_sha256": response.get("CodeSha256")}
            logger.info(f"Updated {resource_id} code ({action.kind})")
            return ApplyResult(resource_id=resource_id, action_kind=action.kind, detail=detail)

        raise ApplyFailedError(resource_id, f"action '{action.kind}' cannot be applied automatically")

    async def publish(self, resource_id: str, description: str) -> str:
        response = await self._call(
            PublishError,
            resource_id,
            "publish_version",
            FunctionName=resource_id,
            Description=description[:MAX_VERSION_DESCRIPTION],
        )
        version = response["Version"]
        logger.info(f"Published {resource_id} version {version}")
        return version

    async def set_alias(self, resource_id: str, alias: str, revision: str) -> None:
        await self._call(
            AliasUpdateError,
            resource_id,
            "update_alias",
            FunctionName=resource_id,
            Name=alias,
            FunctionVersion=revision,
        )
        logger.info(f"Pointed {resource_id} alias {alias} at version {revision}")

    async def read(self, resource_id: str, alias: str) -> ResourceState:
        state = await self._alias_state(ReadError, resource_id, alias)
        return ResourceState(
            resource_id=resource_id,
            alias=alias,
            revision=state["revision"],
            configuration=state["configuration"],
        )
