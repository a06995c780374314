"""
Schema reconciliation core logic for schemasync.

Coordinates the diff engine and the task executor so the remote schema
store ends up matching the local class definitions.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional

from ..config import ReconcileConfig
from ..gateway.base import SchemaGateway
from .diff import DiffResult, SchemaDiffer, gather_or_cancel
from .model import ClassDefinition
from .tasks import Task, TaskExecutor, TaskOutcome, create_task


logger = logging.getLogger(__name__)


class ReconciliationStatus(str, Enum):
    """Status of reconciliation operations."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    CONFLICT = "conflict"
    DRY_RUN = "dry_run"


@dataclass
class ReconciliationResult:
    """Result of a push."""

    status: ReconciliationStatus
    diff: DiffResult
    tasks: List[Task] = field(default_factory=list)
    outcomes: List[TaskOutcome] = field(default_factory=list)
    execution_time_ms: float = 0.0

    @property
    def successful_tasks(self) -> int:
        """Count of tasks that were applied."""
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed_tasks(self) -> int:
        """Count of tasks that failed."""
        return sum(1 for o in self.outcomes if not o.success)

    @property
    def failures(self) -> List[TaskOutcome]:
        return [o for o in self.outcomes if not o.success]

    @property
    def ok(self) -> bool:
        return self.status in (ReconciliationStatus.SUCCESS, ReconciliationStatus.DRY_RUN)


class SchemaReconciler:
    """
    Core schema reconciliation engine for schemasync.

    Pushes local class definitions to the remote store:
    - Diff local against remote state
    - Refuse to touch anything while conflicts exist
    - Turn each difference into one task and execute the batch
    """

    def __init__(
        self,
        gateway: SchemaGateway,
        config: Optional[ReconcileConfig] = None,
    ):
        self.gateway = gateway
        self.config = config or ReconcileConfig()
        self.differ = SchemaDiffer(gateway, self.config.fetch_concurrency)
        self.executor = TaskExecutor(gateway, self.config.task_concurrency)

    async def diff(self, definitions: Iterable[ClassDefinition]) -> DiffResult:
        return await self.differ.compute(definitions)

    def plan(self, diff: DiffResult) -> List[Task]:
        """Tasks for every difference, in emission order."""
        return [create_task(d, self.config.default_acl) for d in diff.differences]

    async def push(
        self, definitions: Iterable[ClassDefinition], dry_run: bool = False
    ) -> ReconciliationResult:
        """
        Reconcile the remote store with local definitions.

        Args:
            definitions: Local class definitions
            dry_run: Compute and report differences without executing tasks

        Returns:
            ReconciliationResult; status CONFLICT means nothing was executed
        """
        start_time = asyncio.get_event_loop().time()
        diff = await self.diff(definitions)

        def finish(status: ReconciliationStatus, **kwargs) -> ReconciliationResult:
            elapsed = (asyncio.get_event_loop().time() - start_time) * 1000
            return ReconciliationResult(
                status=status, diff=diff, execution_time_ms=elapsed, **kwargs
            )

        if not diff.can_apply:
            logger.warning(
                f"Push refused: {len(diff.conflicts)} conflict(s) need manual resolution"
            )
            return finish(ReconciliationStatus.CONFLICT)

        tasks = self.plan(diff)
        if dry_run:
            logger.info(f"Dry run: {len(tasks)} task(s) would be executed")
            return finish(ReconciliationStatus.DRY_RUN, tasks=tasks)

        if not tasks:
            logger.info("Remote schema is up to date")
            return finish(ReconciliationStatus.SUCCESS)

        outcomes = await self.executor.execute(tasks)
        failed = sum(1 for o in outcomes if not o.success)
        if failed == 0:
            status = ReconciliationStatus.SUCCESS
        elif failed == len(outcomes):
            status = ReconciliationStatus.FAILED
        else:
            status = ReconciliationStatus.PARTIAL

        logger.info(f"Push finished with status {status.value}")
        return finish(status, tasks=tasks, outcomes=outcomes)

    async def pull(
        self, class_names: Optional[List[str]] = None
    ) -> List[ClassDefinition]:
        """
        Fetch remote class definitions.

        Args:
            class_names: Classes to fetch; every remote class when omitted

        Returns:
            Class definitions in the order requested (or listed remotely)
        """
        if not class_names:
            class_names = [item.name for item in await self.gateway.list_classes()]

        semaphore = asyncio.Semaphore(self.config.fetch_concurrency)

        async def fetch(name: str) -> ClassDefinition:
            async with semaphore:
                logger.debug(f"Pulling {name}")
                return await self.gateway.get_class_schema(name)

        definitions = await gather_or_cancel(fetch(n) for n in class_names)
        logger.info(f"Pulled {len(definitions)} class(es)")
        return definitions
