"""
Diff engine for schemasync.

Compares local class definitions against the remote schema store and
produces two disjoint channels: differences that tasks can apply, and
conflicts that must be resolved by hand. Nothing is persisted between
runs; every call recomputes from current local and remote state.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Dict, Iterable, List, Optional, TypeVar

from ..exceptions import ConflictError
from ..gateway.base import SchemaGateway
from .differences import (
    ClassPermissionsMismatch,
    ColumnMismatch,
    Conflict,
    Difference,
    MissingClass,
    MissingColumn,
    auto_increment_conflict,
    class_type_conflict,
    column_type_conflict,
    pointer_target_conflict,
)
from .model import ClassDefinition, ClassKind, ColumnSchema, ColumnType


logger = logging.getLogger(__name__)

T = TypeVar("T")


async def gather_or_cancel(aws: Iterable[Awaitable[T]]) -> List[T]:
    """
    Like ``asyncio.gather`` but on the first failure every sibling that is
    still pending gets cancelled and awaited before the error propagates.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


@dataclass
class DiffResult:
    """Outcome of a diff computation."""

    differences: List[Difference] = field(default_factory=list)
    conflicts: List[Conflict] = field(default_factory=list)

    @property
    def can_apply(self) -> bool:
        """Tasks may only run when there is no conflict at all."""
        return not self.conflicts

    @property
    def is_empty(self) -> bool:
        return not self.differences and not self.conflicts

    def raise_for_conflicts(self) -> None:
        if self.conflicts:
            raise ConflictError(self.conflicts)


class SchemaDiffer:
    """
    Computes differences and conflicts between local and remote schema.

    Remote fetch failures propagate: a diff built on partial remote state
    cannot be trusted.
    """

    def __init__(self, gateway: SchemaGateway, fetch_concurrency: int = 4):
        self.gateway = gateway
        self.fetch_concurrency = max(1, fetch_concurrency)

    async def compute(self, definitions: Iterable[ClassDefinition]) -> DiffResult:
        """
        Diff local class definitions against the remote store.

        Args:
            definitions: Local class definitions, processed in name order

        Returns:
            DiffResult with ordered differences and all conflicts found
        """
        local = sorted(definitions, key=lambda d: d.name)
        result = DiffResult()

        remote_index = await self._fetch_class_index()
        existing = self._partition(local, remote_index, result)

        remote_definitions = await self._fetch_remote_definitions(
            [definition.name for definition in existing]
        )
        for definition, remote in zip(existing, remote_definitions):
            self._compare_class(definition, remote, result)

        logger.info(
            f"Diff complete: {len(result.differences)} difference(s), "
            f"{len(result.conflicts)} conflict(s) across {len(local)} class(es)"
        )
        return result

    async def _fetch_class_index(self) -> Dict[str, ClassKind]:
        classes = await self.gateway.list_classes()
        logger.debug(f"Remote store has {len(classes)} class(es)")
        return {item.name: item.kind for item in classes}

    def _partition(
        self,
        local: List[ClassDefinition],
        remote_index: Dict[str, ClassKind],
        result: DiffResult,
    ) -> List[ClassDefinition]:
        """Emit new-class differences and class type conflicts; return the rest."""
        existing = []
        for definition in local:
            remote_kind = remote_index.get(definition.name)
            if remote_kind is None:
                result.differences.append(MissingClass(definition))
                # Reserved columns come into being with the class itself
                for column in definition.creatable_columns():
                    result.differences.append(MissingColumn(definition.name, column))
            elif remote_kind != definition.kind:
                result.conflicts.append(
                    class_type_conflict(
                        definition.name, definition.kind.value, remote_kind.value
                    )
                )
            else:
                existing.append(definition)
        return existing

    async def _fetch_remote_definitions(
        self, class_names: List[str]
    ) -> List[ClassDefinition]:
        """Fetch remote schemas with bounded concurrency, keeping input order."""
        semaphore = asyncio.Semaphore(self.fetch_concurrency)

        async def fetch(name: str) -> ClassDefinition:
            async with semaphore:
                logger.debug(f"Fetching remote schema of {name}")
                return await self.gateway.get_class_schema(name)

        return await gather_or_cancel(fetch(name) for name in class_names)

    def _compare_class(
        self, local: ClassDefinition, remote: ClassDefinition, result: DiffResult
    ) -> None:
        if local.schema.permissions != remote.schema.permissions:
            result.differences.append(
                ClassPermissionsMismatch(
                    class_name=local.name,
                    current=remote.schema.permissions,
                    expected=local.schema.permissions,
                )
            )

        for name in sorted(local.columns):
            local_column = local.columns[name]
            remote_column = remote.columns.get(name)
            unsupported_type = remote.unsupported_columns.get(name)
            if unsupported_type is not None:
                result.conflicts.append(
                    column_type_conflict(
                        local.name, name, local_column.type.value, unsupported_type
                    )
                )
                continue
            if remote_column is None:
                result.differences.append(MissingColumn(local.name, local_column))
                continue
            self._compare_column(local.name, local_column, remote_column, result)
        # Remote-only columns are left alone: deletion is never inferred.

    def _compare_column(
        self,
        class_name: str,
        local: ColumnSchema,
        remote: ColumnSchema,
        result: DiffResult,
    ) -> None:
        conflict = self._check_column_conflict(class_name, local, remote)
        if conflict is not None:
            result.conflicts.append(conflict)
            return

        if local.metadata() != remote.metadata():
            result.differences.append(
                ColumnMismatch(class_name=class_name, current=remote, expected=local)
            )

    def _check_column_conflict(
        self, class_name: str, local: ColumnSchema, remote: ColumnSchema
    ) -> Optional[Conflict]:
        """Type identity first, then the type-specific checks."""
        if local.type != remote.type:
            return column_type_conflict(
                class_name, local.name, local.type.value, remote.type.value
            )
        if local.type == ColumnType.NUMBER and local.auto_increment != remote.auto_increment:
            return auto_increment_conflict(
                class_name, local.name, local.auto_increment, remote.auto_increment
            )
        if (
            local.type == ColumnType.POINTER
            and local.target_class_name != remote.target_class_name
        ):
            return pointer_target_conflict(
                class_name, local.name, local.target_class_name, remote.target_class_name
            )
        return None

