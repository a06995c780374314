"""
Task layer for schemasync.

Turns each difference into exactly one remote mutation and executes
batches of them. Tasks are keyed by class and column name, so running the
same batch against an already reconciled store is harmless.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from itertools import groupby
from typing import Any, Dict, List, Optional

from ..exceptions import GatewayAPIError, TaskError
from ..gateway.base import (
    CreateClassData,
    CreateColumnData,
    SchemaGateway,
    UpdateColumnData,
)
from .differences import (
    ClassPermissionsMismatch,
    ColumnMismatch,
    Difference,
    MissingClass,
    MissingColumn,
)
from .model import (
    ACL,
    ClassDefinition,
    ColumnSchema,
    ColumnType,
    PermissionSet,
    permissions_to_wire,
)


logger = logging.getLogger(__name__)


class Task(ABC):
    """A single remote mutation."""

    class_name: str

    @abstractmethod
    def describe(self) -> Dict[str, Any]:
        """Plain dict view for display."""

    @abstractmethod
    async def run(self, gateway: SchemaGateway) -> None:
        """Apply the mutation through the gateway."""


@dataclass
class CreateClassTask(Task):
    """Create a class with its kind, permissions and default ACL."""

    definition: ClassDefinition
    default_acl: ACL

    @property
    def class_name(self) -> str:
        return self.definition.name

    def describe(self) -> Dict[str, Any]:
        return {
            "task": "CreateClass",
            "className": self.class_name,
            "type": self.definition.kind.value,
            "defaultACL": self.default_acl,
            "permissions": permissions_to_wire(self.definition.schema.permissions),
        }

    async def run(self, gateway: SchemaGateway) -> None:
        await gateway.create_class(
            CreateClassData(
                name=self.class_name,
                kind=self.definition.kind,
                default_acl=self.default_acl,
                permissions=self.definition.schema.permissions,
            )
        )


@dataclass
class CreateColumnTask(Task):
    class_name: str
    column: ColumnSchema

    def describe(self) -> Dict[str, Any]:
        return {
            "task": "CreateColumn",
            "className": self.class_name,
            "column": self.column.describe(),
        }

    async def run(self, gateway: SchemaGateway) -> None:
        column = self.column
        await gateway.create_column(
            self.class_name,
            CreateColumnData(
                name=column.name,
                type=column.type,
                hidden=column.hidden,
                readonly=column.readonly,
                required=column.required,
                comment=column.comment,
                default=column.encode_default(),
                auto_increment=column.auto_increment,
                target_class_name=column.target_class_name,
            ),
        )


@dataclass
class UpdateColumnTask(Task):
    """
    Bring a column's mutable metadata in line; type options are untouched.

    A declared default on the ``ACL`` column is the class's default ACL
    template, which the store changes through its own mutation.
    """

    class_name: str
    column: ColumnSchema

    def describe(self) -> Dict[str, Any]:
        return {
            "task": "UpdateColumn",
            "className": self.class_name,
            "column": self.column.describe(),
        }

    async def run(self, gateway: SchemaGateway) -> None:
        column = self.column
        if column.type == ColumnType.ACL and column.default is not None:
            await gateway.update_class_default_acl(self.class_name, column.default)
            return
        await gateway.update_column(
            self.class_name,
            column.name,
            UpdateColumnData(
                hidden=column.hidden,
                readonly=column.readonly,
                required=column.required,
                comment=column.comment,
                default=column.encode_default(),
            ),
        )


@dataclass
class UpdateClassPermissionsTask(Task):
    class_name: str
    permissions: PermissionSet

    def describe(self) -> Dict[str, Any]:
        return {
            "task": "UpdateClassPermissions",
            "className": self.class_name,
            "permissions": permissions_to_wire(self.permissions),
        }

    async def run(self, gateway: SchemaGateway) -> None:
        await gateway.update_class_permissions(self.class_name, self.permissions)


def create_task(difference: Difference, default_acl: ACL) -> Task:
    """
    Map a difference to the task that resolves it.

    Args:
        difference: Difference produced by the diff engine
        default_acl: ACL template for new classes whose ACL column has no default

    Raises:
        TaskError: If the difference kind is unknown
    """
    if isinstance(difference, MissingClass):
        acl = difference.definition.schema.default_acl
        return CreateClassTask(
            definition=difference.definition,
            default_acl=acl if acl is not None else default_acl,
        )
    if isinstance(difference, MissingColumn):
        return CreateColumnTask(difference.class_name, difference.column)
    if isinstance(difference, ClassPermissionsMismatch):
        return UpdateClassPermissionsTask(difference.class_name, difference.expected)
    if isinstance(difference, ColumnMismatch):
        return UpdateColumnTask(difference.class_name, difference.expected)
    raise TaskError(
        f"No task for difference {difference!r}",
        details={"type": type(difference).__name__},
    )


@dataclass
class TaskOutcome:
    """Result of running one task."""

    task: Task
    success: bool
    error: Optional[str] = None
    response_body: Any = None
    execution_time_ms: Optional[float] = None

    @property
    def has_error(self) -> bool:
        return not self.success


class TaskExecutor:
    """
    Runs task batches against a gateway.

    Tasks are grouped by consecutive class name. Within a group a
    ``CreateClassTask`` runs first and alone, then the remaining tasks run
    with bounded concurrency. Groups run one after another. A failing task
    is recorded in its outcome and never stops the batch.
    """

    def __init__(self, gateway: SchemaGateway, concurrency: int = 1):
        self.gateway = gateway
        self.concurrency = max(1, concurrency)

    async def execute(self, tasks: List[Task]) -> List[TaskOutcome]:
        """Execute tasks; outcomes come back in task order."""
        outcomes: List[TaskOutcome] = []
        semaphore = asyncio.Semaphore(self.concurrency)

        for class_name, group in groupby(tasks, key=lambda task: task.class_name):
            group = list(group)
            logger.debug(f"Running {len(group)} task(s) for {class_name}")

            creations = [t for t in group if isinstance(t, CreateClassTask)]
            for task in creations:
                outcome = await self._run_task(task)
                if not outcome.success:
                    logger.warning(
                        f"Creating {class_name} failed; its remaining tasks "
                        f"will most likely fail too"
                    )
                outcomes.append(outcome)

            async def run_bounded(task: Task) -> TaskOutcome:
                async with semaphore:
                    return await self._run_task(task)

            rest = [t for t in group if not isinstance(t, CreateClassTask)]
            outcomes.extend(await asyncio.gather(*(run_bounded(t) for t in rest)))

        failed = sum(1 for outcome in outcomes if not outcome.success)
        logger.info(f"Executed {len(outcomes)} task(s), {failed} failed")
        return outcomes

    async def _run_task(self, task: Task) -> TaskOutcome:
        start_time = time.time()
        try:
            await task.run(self.gateway)
        except Exception as e:
            logger.error(f"Task {task.describe()} failed: {e}")
            return TaskOutcome(
                task=task,
                success=False,
                error=str(e),
                response_body=e.response_body if isinstance(e, GatewayAPIError) else None,
                execution_time_ms=(time.time() - start_time) * 1000,
            )

        return TaskOutcome(
            task=task,
            success=True,
            execution_time_ms=(time.time() - start_time) * 1000,
        )
