"""
Recurring trigger service backed by AWS EventBridge Scheduler.

boto3 is synchronous; every call runs in a worker thread through anyio so the
event loop is never blocked.
"""

import json
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, Protocol, TypeVar

import anyio
import boto3
from botocore.exceptions import BotoCoreError, ClientError

from voicejournal.scheduling.config import SchedulerConfig
from voicejournal.shared.exceptions import UpstreamError
from voicejournal.shared.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

NOT_FOUND_CODE = "ResourceNotFoundException"


@dataclass(frozen=True)
class TriggerSpec:
    """Desired state of one user's recurring trigger."""

    name: str
    expression: str
    payload: dict[str, Any] = field(default_factory=dict)
    description: str = ""


class TriggerService(Protocol):
    """External recurring-trigger store."""

    async def exists(self, name: str) -> bool:
        """Whether a trigger with this name exists."""
        ...

    async def create(self, spec: TriggerSpec) -> str:
        """Create a trigger and return its handle."""
        ...

    async def update(self, spec: TriggerSpec) -> str:
        """Replace an existing trigger and return its handle."""
        ...

    async def delete(self, name: str) -> bool:
        """Delete a trigger; False when it did not exist."""
        ...


def build_scheduler_client(config: SchedulerConfig) -> Any:
    return boto3.client("scheduler", region_name=config.aws_region)


def _is_not_found(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") == NOT_FOUND_CODE


class EventBridgeTriggerService:
    """TriggerService implementation over the ``scheduler`` boto3 client."""

    def __init__(self, config: SchedulerConfig, client: Any | None = None) -> None:
        """Initialize the service.

        Args:
            config: Scheduler configuration (group, target and role ARNs).
            client: Optional pre-built boto3 ``scheduler`` client.
        """
        self._config = config
        self._client = client or build_scheduler_client(config)

    async def _call(self, operation: str, fn: Callable[..., T], **kwargs: Any) -> T:
        try:
            return await anyio.to_thread.run_sync(partial(fn, **kwargs))
        except ClientError as e:
            if _is_not_found(e):
                raise
            code = e.response.get("Error", {}).get("Code")
            logger.error(
                "Trigger service call failed",
                extra={"operation": operation, "error_code": code},
            )
            raise UpstreamError(
                message=f"Trigger service {operation} failed",
                details={"operation": operation, "code": code},
            ) from e
        except BotoCoreError as e:
            logger.error("Trigger service unreachable", extra={"operation": operation})
            raise UpstreamError(
                message=f"Trigger service {operation} failed",
                details={"operation": operation},
            ) from e

    def _schedule_params(self, spec: TriggerSpec) -> dict[str, Any]:
        return {
            "Name": spec.name,
            "GroupName": self._config.schedule_group,
            "ScheduleExpression": spec.expression,
            "ScheduleExpressionTimezone": "UTC",
            "FlexibleTimeWindow": {"Mode": "OFF"},
            "Target": {
                "Arn": self._config.target_arn,
                "RoleArn": self._config.role_arn,
                "Input": json.dumps(spec.payload),
            },
            "State": "ENABLED",
            "Description": spec.description,
        }

    async def exists(self, name: str) -> bool:
        try:
            await self._call(
                "get_schedule",
                self._client.get_schedule,
                Name=name,
                GroupName=self._config.schedule_group,
            )
        except ClientError:
            return False
        return True

    async def create(self, spec: TriggerSpec) -> str:
        logger.info("Creating schedule", extra={"schedule_name": spec.name, "expression": spec.expression})
        try:
            response = await self._call(
                "create_schedule",
                self._client.create_schedule,
                **self._schedule_params(spec),
            )
        except ClientError as e:
            raise UpstreamError(message="Trigger service create_schedule failed") from e
        return response["ScheduleArn"]

    async def update(self, spec: TriggerSpec) -> str:
        logger.info("Updating schedule", extra={"schedule_name": spec.name, "expression": spec.expression})
        try:
            response = await self._call(
                "update_schedule",
                self._client.update_schedule,
                **self._schedule_params(spec),
            )
        except ClientError as e:
            raise UpstreamError(message="Trigger service update_schedule failed") from e
        return response["ScheduleArn"]

    async def delete(self, name: str) -> bool:
        logger.info("Deleting schedule", extra={"schedule_name": name})
        try:
            await self._call(
                "delete_schedule",
                self._client.delete_schedule,
                Name=name,
                GroupName=self._config.schedule_group,
            )
        except ClientError:
            logger.info("Schedule not found (already deleted?)", extra={"schedule_name": name})
            return False
        return True
