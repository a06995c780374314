"""
Differences and conflicts produced by the diff engine.

A difference is a safe, applicable discrepancy between local and remote
schema; each one maps to exactly one task. A conflict is a discrepancy
that must be resolved by hand and blocks the whole push.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

from .model import (
    ClassDefinition,
    ColumnSchema,
    PermissionSet,
    permissions_to_wire,
)


class DifferenceType(str, Enum):
    """Kinds of applicable differences."""

    MISSING_CLASS = "MissingClass"
    MISSING_COLUMN = "MissingColumn"
    CLASS_PERMISSIONS_MISMATCH = "ClassPermissionsMismatch"
    COLUMN_MISMATCH = "ColumnMismatch"


class ConflictType(str, Enum):
    """Kinds of blocking conflicts."""

    CLASS_TYPE = "ClassTypeConflict"
    COLUMN_TYPE = "ColumnTypeConflict"
    NUMBER_AUTO_INCREMENT = "NumberAutoIncrementConflict"
    POINTER_TARGET_CLASS = "PointerTargetClassConflict"


@dataclass(frozen=True)
class MissingClass:
    definition: ClassDefinition

    difference_type = DifferenceType.MISSING_CLASS

    @property
    def class_name(self) -> str:
        return self.definition.name

    def describe(self) -> Dict[str, Any]:
        return {
            "difference": self.difference_type.value,
            "className": self.class_name,
            "type": self.definition.kind.value,
            "permissions": permissions_to_wire(self.definition.schema.permissions),
        }


@dataclass(frozen=True)
class MissingColumn:
    class_name: str
    column: ColumnSchema

    difference_type = DifferenceType.MISSING_COLUMN

    def describe(self) -> Dict[str, Any]:
        return {
            "difference": self.difference_type.value,
            "className": self.class_name,
            "column": self.column.describe(),
        }


@dataclass(frozen=True)
class ClassPermissionsMismatch:
    class_name: str
    current: PermissionSet
    expected: PermissionSet

    difference_type = DifferenceType.CLASS_PERMISSIONS_MISMATCH

    def describe(self) -> Dict[str, Any]:
        return {
            "difference": self.difference_type.value,
            "className": self.class_name,
            "current": permissions_to_wire(self.current),
            "expected": permissions_to_wire(self.expected),
        }


@dataclass(frozen=True)
class ColumnMismatch:
    class_name: str
    current: ColumnSchema
    expected: ColumnSchema

    difference_type = DifferenceType.COLUMN_MISMATCH

    @property
    def column_name(self) -> str:
        return self.expected.name

    def changed_attributes(self) -> Dict[str, Any]:
        """Attribute name -> (current, expected) for every differing attribute."""
        current = self.current.metadata()
        expected = self.expected.metadata()
        return {
            key: (current[key], expected[key])
            for key in expected
            if current[key] != expected[key]
        }

    def describe(self) -> Dict[str, Any]:
        return {
            "difference": self.difference_type.value,
            "className": self.class_name,
            "column": self.column_name,
            "current": self.current.metadata(),
            "expected": self.expected.metadata(),
        }


Difference = Union[MissingClass, MissingColumn, ClassPermissionsMismatch, ColumnMismatch]


@dataclass(frozen=True)
class Conflict:
    """A local/remote disagreement that cannot be applied automatically."""

    conflict_type: ConflictType
    class_name: str
    local: Any
    remote: Any
    column: Optional[str] = None

    @property
    def location(self) -> str:
        if self.column:
            return f"{self.class_name}.{self.column}"
        return self.class_name

    def describe(self) -> Dict[str, Any]:
        data = {"conflict": self.conflict_type.value, "className": self.class_name}
        if self.column:
            data["column"] = self.column
        data["local"] = self.local
        data["remote"] = self.remote
        return data

    def __str__(self) -> str:
        return (
            f"{self.conflict_type.value} at {self.location}: "
            f"local={self.local!r}, remote={self.remote!r}"
        )


def class_type_conflict(class_name: str, local: str, remote: str) -> Conflict:
    return Conflict(ConflictType.CLASS_TYPE, class_name, local, remote)


def column_type_conflict(class_name: str, column: str, local: str, remote: str) -> Conflict:
    return Conflict(ConflictType.COLUMN_TYPE, class_name, local, remote, column)


def auto_increment_conflict(
    class_name: str, column: str, local: bool, remote: bool
) -> Conflict:
    return Conflict(ConflictType.NUMBER_AUTO_INCREMENT, class_name, local, remote, column)


def pointer_target_conflict(
    class_name: str, column: str, local: str, remote: str
) -> Conflict:
    return Conflict(ConflictType.POINTER_TARGET_CLASS, class_name, local, remote, column)
