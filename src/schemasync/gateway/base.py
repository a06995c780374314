"""
Abstract base class for remote schema gateways.

The diff engine reads through a gateway and tasks mutate through it;
neither knows how the remote store is reached.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from ..schema.model import ACL, ClassDefinition, ClassKind, ColumnType, PermissionSet


@dataclass(frozen=True)
class ClassListItem:
    """Entry of the remote class index."""

    name: str
    kind: ClassKind


@dataclass(frozen=True)
class CreateClassData:
    name: str
    kind: ClassKind
    default_acl: ACL
    permissions: PermissionSet


@dataclass(frozen=True)
class CreateColumnData:
    name: str
    type: ColumnType
    hidden: bool = False
    readonly: bool = False
    required: bool = False
    comment: str = ""
    default: Optional[str] = None  # wire-encoded
    auto_increment: Optional[bool] = None  # Number
    target_class_name: Optional[str] = None  # Pointer


@dataclass(frozen=True)
class UpdateColumnData:
    hidden: bool
    readonly: bool
    required: bool
    comment: str
    default: Optional[str] = None  # wire-encoded; None clears the remote default


class SchemaGateway(ABC):
    """
    Interface to a remote, mutable schema store.

    All mutations are keyed by class and column name. Implementations raise
    ``GatewayError`` (or a subclass) on any failure.
    """

    @abstractmethod
    async def list_classes(self) -> List[ClassListItem]:
        """Return the name and kind of every remote class."""

    @abstractmethod
    async def get_class_schema(self, name: str) -> ClassDefinition:
        """Return the full remote schema of one class."""

    @abstractmethod
    async def create_class(self, data: CreateClassData) -> None:
        """Create a class with its kind, permissions and default ACL."""

    @abstractmethod
    async def create_column(self, class_name: str, data: CreateColumnData) -> None:
        """Create a column in an existing class."""

    @abstractmethod
    async def update_column(
        self, class_name: str, column: str, data: UpdateColumnData
    ) -> None:
        """Update the mutable metadata of a column."""

    @abstractmethod
    async def update_class_permissions(
        self, class_name: str, permissions: PermissionSet
    ) -> None:
        """Replace the whole permission set of a class."""

    @abstractmethod
    async def update_class_default_acl(self, class_name: str, default_acl: ACL) -> None:
        """Replace the default ACL of a class."""

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        """Release connections; a no-op unless overridden."""
        pass
