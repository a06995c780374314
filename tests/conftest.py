"""
Pytest configuration and shared fixtures for schemasync tests.

Provides an in-memory schema gateway plus sample schema documents used
across the unit tests.
"""

import copy
import json
from dataclasses import replace
from typing import Any, Dict, List, Optional, Tuple

import pytest

from schemasync.config import GatewayConfig, ReconcileConfig, SchemaSyncConfig
from schemasync.exceptions import GatewayAPIError
from schemasync.gateway.base import (
    ClassListItem,
    CreateClassData,
    CreateColumnData,
    SchemaGateway,
    UpdateColumnData,
)
from schemasync.schema.codec import parse_document
from schemasync.schema.model import (
    ACL,
    ClassDefinition,
    ClassSchema,
    ColumnAttributes,
    ColumnSchema,
    ColumnType,
    NumberOptions,
    PermissionSet,
    PointerOptions,
)


# ============================================================================
# In-memory gateway
# ============================================================================

def _decode_default(column_type: ColumnType, value: Optional[str]) -> Any:
    if value is None:
        return None
    if column_type == ColumnType.STRING:
        return value
    if column_type == ColumnType.DATE:
        return {"__type": "Date", "iso": value}
    return json.loads(value)


class InMemoryGateway(SchemaGateway):
    """
    Schema gateway backed by a dict.

    Records every call in ``calls`` and raises the exception registered in
    ``failures`` for a given (operation, class name) pair.
    """

    def __init__(self, classes: Optional[List[ClassDefinition]] = None):
        self.classes: Dict[str, ClassDefinition] = {
            definition.name: definition for definition in classes or []
        }
        self.calls: List[Tuple[Any, ...]] = []
        self.failures: Dict[Tuple[str, str], Exception] = {}
        self.closed = False

    def fail(self, operation: str, class_name: str, error: Optional[Exception] = None):
        self.failures[(operation, class_name)] = error or GatewayAPIError(
            f"{operation} failed", status_code=400, response_body={"error": "boom"}
        )

    def _check(self, operation: str, class_name: str, *args: Any) -> None:
        self.calls.append((operation, class_name) + args)
        error = self.failures.get((operation, class_name))
        if error is not None:
            raise error

    def _get(self, class_name: str) -> ClassDefinition:
        if class_name not in self.classes:
            raise GatewayAPIError(
                f"Class {class_name} not found",
                status_code=404,
                response_body={"code": 103, "error": "Class not found"},
            )
        return self.classes[class_name]

    async def list_classes(self) -> List[ClassListItem]:
        self.calls.append(("list_classes",))
        return [
            ClassListItem(name=d.name, kind=d.kind)
            for d in sorted(self.classes.values(), key=lambda d: d.name)
        ]

    async def get_class_schema(self, name: str) -> ClassDefinition:
        self._check("get_class_schema", name)
        return self._get(name)

    async def create_class(self, data: CreateClassData) -> None:
        self._check("create_class", data.name, data)
        columns = {
            "objectId": ColumnSchema("objectId", ColumnType.STRING),
            "ACL": ColumnSchema("ACL", ColumnType.ACL, default=copy.deepcopy(data.default_acl)),
            "createdAt": ColumnSchema("createdAt", ColumnType.DATE),
            "updatedAt": ColumnSchema("updatedAt", ColumnType.DATE),
        }
        self.classes[data.name] = ClassDefinition(
            schema=ClassSchema(
                name=data.name,
                kind=data.kind,
                permissions=dict(data.permissions),
                default_acl=copy.deepcopy(data.default_acl),
            ),
            columns=columns,
        )

    async def create_column(self, class_name: str, data: CreateColumnData) -> None:
        self._check("create_column", class_name, data)
        definition = self._get(class_name)
        options = None
        if data.type == ColumnType.NUMBER:
            options = NumberOptions(auto_increment=bool(data.auto_increment))
        elif data.type == ColumnType.POINTER:
            options = PointerOptions(target_class_name=data.target_class_name)
        definition.columns[data.name] = ColumnSchema(
            name=data.name,
            type=data.type,
            attributes=ColumnAttributes(
                hidden=data.hidden,
                readonly=data.readonly,
                required=data.required,
                comment=data.comment,
            ),
            default=_decode_default(data.type, data.default),
            options=options,
        )

    async def update_column(
        self, class_name: str, column: str, data: UpdateColumnData
    ) -> None:
        self._check("update_column", class_name, column, data)
        definition = self._get(class_name)
        current = definition.columns[column]
        definition.columns[column] = replace(
            current,
            attributes=ColumnAttributes(
                hidden=data.hidden,
                readonly=data.readonly,
                required=data.required,
                comment=data.comment,
            ),
            default=_decode_default(current.type, data.default),
        )

    async def update_class_permissions(
        self, class_name: str, permissions: PermissionSet
    ) -> None:
        self._check("update_class_permissions", class_name, permissions)
        definition = self._get(class_name)
        self.classes[class_name] = replace(
            definition,
            schema=replace(definition.schema, permissions=dict(permissions)),
        )

    async def update_class_default_acl(self, class_name: str, default_acl: ACL) -> None:
        self._check("update_class_default_acl", class_name, default_acl)
        definition = self._get(class_name)
        definition.columns["ACL"] = replace(definition.columns["ACL"], default=default_acl)
        self.classes[class_name] = replace(
            definition, schema=replace(definition.schema, default_acl=default_acl)
        )

    async def close(self) -> None:
        self.closed = True


# ============================================================================
# Sample documents
# ============================================================================

@pytest.fixture
def article_document() -> Dict[str, Any]:
    """Article class declaring a required title and a plain counter."""
    return {
        "schema": {
            "title": {"type": "String", "required": True},
            "views": {"type": "Number"},
        }
    }


@pytest.fixture
def full_document() -> Dict[str, Any]:
    """A document exercising every column type and permission shape."""
    return {
        "name": "Post",
        "type": "normal",
        "schema": {
            "objectId": {"type": "String"},
            "ACL": {
                "type": "ACL",
                "default": {"*": {"read": True}, "role:admin": {"read": True, "write": True}},
            },
            "title": {"type": "String", "required": True, "comment": "Headline", "default": "untitled"},
            "views": {"type": "Number", "auto_increment": True},
            "score": {"type": "Number", "default": 1.5},
            "published": {"type": "Boolean", "default": False},
            "publishedAt": {
                "type": "Date",
                "default": {"__type": "Date", "iso": "2024-01-01T00:00:00.000Z"},
            },
            "cover": {
                "type": "File",
                "default": {"__type": "Pointer", "className": "_File", "objectId": "f1"},
            },
            "tags": {"type": "Array", "default": ["a", "b"]},
            "extra": {"type": "Object", "hidden": True, "default": {"k": 1}},
            "location": {
                "type": "GeoPoint",
                "default": {"__type": "GeoPoint", "latitude": 39.9, "longitude": 116.4},
            },
            "author": {"type": "Pointer", "className": "_User", "read_only": True},
            "anything": {"type": "Any", "default": 3},
            "createdAt": {"type": "Date"},
            "updatedAt": {"type": "Date"},
        },
        "permissions": {
            "add_fields": {"roles": [], "users": []},
            "create": {"onlySignInUsers": True},
            "delete": {"roles": ["admin"], "users": ["u1"]},
            "update": {"*": True},
            "find": {"*": True},
            "get": {"*": True},
        },
    }


@pytest.fixture
def article(article_document) -> ClassDefinition:
    return parse_document(article_document, fallback_name="Article")


@pytest.fixture
def gateway() -> InMemoryGateway:
    return InMemoryGateway()


@pytest.fixture
def reconcile_config() -> ReconcileConfig:
    return ReconcileConfig()


@pytest.fixture
def sample_config() -> SchemaSyncConfig:
    return SchemaSyncConfig(
        console_url="https://console.example.com",
        app_id="test-app",
        access_token="test-token",
        gateway=GatewayConfig(timeout=5, max_retries=2, retry_delay=0.0),
    )


def make_remote(document: Dict[str, Any], name: str) -> ClassDefinition:
    """Build a remote class definition the way the store would hold it."""
    return parse_document(document, fallback_name=name)
