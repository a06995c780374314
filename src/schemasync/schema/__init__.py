"""
Schema package for schemasync.

This package provides:
- The typed schema model (classes, columns, permissions, ACLs)
- The schema file codec
- Difference and conflict records

The diff engine, task layer and reconciler live in ``diff``, ``tasks``
and ``reconciler``.
"""

from .model import (
    Action,
    ClassDefinition,
    ClassKind,
    ClassSchema,
    ColumnAttributes,
    ColumnSchema,
    ColumnType,
    Everyone,
    NumberOptions,
    PointerOptions,
    RolesAndUsers,
    SignedInUsersOnly,
)
from .codec import encode_document, load_schema_file, parse_document, write_schema_file
from .differences import (
    ClassPermissionsMismatch,
    ColumnMismatch,
    Conflict,
    ConflictType,
    MissingClass,
    MissingColumn,
)

__all__ = [
    "Action",
    "ClassDefinition",
    "ClassKind",
    "ClassSchema",
    "ColumnAttributes",
    "ColumnSchema",
    "ColumnType",
    "Everyone",
    "NumberOptions",
    "PointerOptions",
    "RolesAndUsers",
    "SignedInUsersOnly",
    "encode_document",
    "load_schema_file",
    "parse_document",
    "write_schema_file",
    "ClassPermissionsMismatch",
    "ColumnMismatch",
    "Conflict",
    "ConflictType",
    "MissingClass",
    "MissingColumn",
]
