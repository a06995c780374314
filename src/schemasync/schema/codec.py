"""
Schema file codec for schemasync.

Parses local JSON schema documents into the schema model with strict
validation, and encodes the model back into the canonical on-disk form
used by ``pull``.
"""

import copy
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Annotated, Any, Dict, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictFloat, StrictInt, StrictStr
from pydantic import ValidationError as PydanticValidationError
from pydantic import field_validator, model_validator

from ..exceptions import ValidationError
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
    Permission,
    PermissionSet,
    PointerOptions,
    RolesAndUsers,
    SignedInUsersOnly,
    ACL,
    normalize_acl,
    permissions_to_wire,
)


logger = logging.getLogger(__name__)

Number = Union[StrictInt, StrictFloat]


class _StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


# Permissions: each shape forbids extra keys, so a value naming more than
# one shape (or none) matches nothing.

class EveryoneDocument(_StrictModel):
    everyone: Literal[True] = Field(alias="*")


class SignedInUsersDocument(_StrictModel):
    onlySignInUsers: Literal[True]


class RolesAndUsersDocument(_StrictModel):
    roles: List[StrictStr]
    users: List[StrictStr]


PermissionDocument = Union[RolesAndUsersDocument, SignedInUsersDocument, EveryoneDocument]


class PermissionsDocument(_StrictModel):
    add_fields: Optional[PermissionDocument] = None
    create: Optional[PermissionDocument] = None
    delete: Optional[PermissionDocument] = None
    update: Optional[PermissionDocument] = None
    find: Optional[PermissionDocument] = None
    get: Optional[PermissionDocument] = None


class ACLEntryDocument(_StrictModel):
    read: Optional[Literal[True]] = None
    write: Optional[Literal[True]] = None

    @model_validator(mode="after")
    def check_grants(self) -> "ACLEntryDocument":
        if not self.read and not self.write:
            raise ValueError("ACL entry must grant read or write")
        return self


# Default value shapes

class DateValue(_StrictModel):
    value_type: Literal["Date"] = Field(alias="__type")
    iso: StrictStr

    @field_validator("iso")
    @classmethod
    def check_iso(cls, v: str) -> str:
        try:
            datetime.fromisoformat(v.replace("Z", "+00:00"))
        except ValueError:
            raise ValueError(f"not an ISO-8601 timestamp: {v!r}")
        return v


class FileValue(_StrictModel):
    value_type: Literal["Pointer"] = Field(alias="__type")
    className: Literal["_File"]
    objectId: StrictStr


class PointerValue(_StrictModel):
    value_type: Literal["Pointer"] = Field(alias="__type")
    className: StrictStr
    objectId: StrictStr


class GeoPointValue(_StrictModel):
    value_type: Literal["GeoPoint"] = Field(alias="__type")
    latitude: Number
    longitude: Number


# Columns

class _ColumnDocument(_StrictModel):
    hidden: StrictBool = False
    read_only: StrictBool = False
    required: StrictBool = False
    comment: StrictStr = ""


class StringColumnDocument(_ColumnDocument):
    type: Literal["String"]
    default: Optional[StrictStr] = None


class NumberColumnDocument(_ColumnDocument):
    type: Literal["Number"]
    auto_increment: StrictBool = False
    default: Optional[Number] = None


class BooleanColumnDocument(_ColumnDocument):
    type: Literal["Boolean"]
    default: Optional[StrictBool] = None


class DateColumnDocument(_ColumnDocument):
    type: Literal["Date"]
    default: Optional[DateValue] = None


class FileColumnDocument(_ColumnDocument):
    type: Literal["File"]
    default: Optional[FileValue] = None


class ArrayColumnDocument(_ColumnDocument):
    type: Literal["Array"]
    default: Optional[List[Any]] = None


class ObjectColumnDocument(_ColumnDocument):
    type: Literal["Object"]
    default: Optional[Dict[str, Any]] = None


class GeoPointColumnDocument(_ColumnDocument):
    type: Literal["GeoPoint"]
    default: Optional[GeoPointValue] = None


class PointerColumnDocument(_ColumnDocument):
    type: Literal["Pointer"]
    className: StrictStr
    default: Optional[PointerValue] = None


class AnyColumnDocument(_ColumnDocument):
    type: Literal["Any"]
    default: Any = None


class ACLColumnDocument(_ColumnDocument):
    type: Literal["ACL"]
    default: Optional[Dict[str, ACLEntryDocument]] = None


ColumnDocument = Annotated[
    Union[
        StringColumnDocument,
        NumberColumnDocument,
        BooleanColumnDocument,
        DateColumnDocument,
        FileColumnDocument,
        ArrayColumnDocument,
        ObjectColumnDocument,
        GeoPointColumnDocument,
        PointerColumnDocument,
        AnyColumnDocument,
        ACLColumnDocument,
    ],
    Field(discriminator="type"),
]


class SchemaDocument(_StrictModel):
    """A local class schema file."""

    name: Optional[StrictStr] = None
    type: Literal["normal", "log"] = "normal"
    columns: Dict[str, ColumnDocument] = Field(alias="schema")
    permissions: PermissionsDocument = Field(default_factory=PermissionsDocument)


def _format_errors(error: PydanticValidationError) -> str:
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        messages.append(f"{location}: {item['msg']}" if location else item["msg"])
    return "; ".join(messages)


def _to_permission(document: PermissionDocument) -> Permission:
    if isinstance(document, EveryoneDocument):
        return Everyone()
    if isinstance(document, SignedInUsersDocument):
        return SignedInUsersOnly()
    return RolesAndUsers(roles=tuple(document.roles), users=tuple(document.users))


def _to_permission_set(document: PermissionsDocument) -> PermissionSet:
    permissions: PermissionSet = {}
    for action in Action:
        value = getattr(document, action.value)
        if value is not None:
            permissions[action] = _to_permission(value)
    return permissions


def _to_column(name: str, document: _ColumnDocument, raw_default: Any) -> ColumnSchema:
    options = None
    if isinstance(document, NumberColumnDocument):
        options = NumberOptions(auto_increment=document.auto_increment)
    elif isinstance(document, PointerColumnDocument):
        options = PointerOptions(target_class_name=document.className)

    default = copy.deepcopy(raw_default)
    if isinstance(document, ACLColumnDocument) and default is not None:
        default = normalize_acl(default)

    return ColumnSchema(
        name=name,
        type=ColumnType(document.type),
        attributes=ColumnAttributes(
            hidden=document.hidden,
            readonly=document.read_only,
            required=document.required,
            comment=document.comment,
        ),
        default=default,
        options=options,
    )


def parse_permissions(raw: Dict[str, Any], strict: bool = True) -> PermissionSet:
    """
    Validate a permissions object.

    With ``strict=False`` keys that are not known actions are dropped
    instead of rejected, which is what remote responses need.
    """
    if not strict:
        actions = {action.value for action in Action}
        raw = {k: v for k, v in raw.items() if k in actions}
    try:
        document = PermissionsDocument.model_validate(raw)
    except PydanticValidationError as e:
        raise ValidationError(f"invalid permissions: {_format_errors(e)}", cause=e)
    return _to_permission_set(document)


def parse_document(
    document: Any, fallback_name: Optional[str] = None
) -> ClassDefinition:
    """
    Parse a schema document into a class definition.

    Args:
        document: Decoded JSON document
        fallback_name: Class name to use when the document has no ``name``

    Raises:
        ValidationError: On any structural or type-shape problem
    """
    try:
        parsed = SchemaDocument.model_validate(document)
    except PydanticValidationError as e:
        raise ValidationError(_format_errors(e), cause=e)

    name = parsed.name or fallback_name
    if not name:
        raise ValidationError("class name missing and no fallback name given")

    raw_columns = document["schema"]
    columns = {
        column_name: _to_column(
            column_name, column_document, raw_columns[column_name].get("default")
        )
        for column_name, column_document in parsed.columns.items()
    }

    acl_column = columns.get("ACL")
    default_acl: Optional[ACL] = None
    if acl_column is not None and acl_column.type == ColumnType.ACL:
        default_acl = acl_column.default

    class_schema = ClassSchema(
        name=name,
        kind=ClassKind(parsed.type),
        permissions=_to_permission_set(parsed.permissions),
        default_acl=default_acl,
    )
    return ClassDefinition(schema=class_schema, columns=columns)


def encode_column(column: ColumnSchema) -> Dict[str, Any]:
    """Encode one column, omitting zero-valued optional fields."""
    data: Dict[str, Any] = {"type": column.type.value}
    if column.hidden:
        data["hidden"] = True
    if column.readonly:
        data["read_only"] = True
    if column.required:
        data["required"] = True
    if column.comment:
        data["comment"] = column.comment
    if column.auto_increment:
        data["auto_increment"] = True
    if column.target_class_name is not None:
        data["className"] = column.target_class_name
    if column.default is not None:
        data["default"] = copy.deepcopy(column.default)
    return data


def encode_document(
    definition: ClassDefinition, include_name: bool = False
) -> Dict[str, Any]:
    """
    Encode a class definition into its canonical document form.

    Columns come out as objectId, ACL, the rest sorted by name, createdAt,
    updatedAt. ``type`` is left out for normal classes.
    """
    result: Dict[str, Any] = {}
    if include_name:
        result["name"] = definition.name
    if definition.kind != ClassKind.NORMAL:
        result["type"] = definition.kind.value
    result["schema"] = {
        column.name: encode_column(column) for column in definition.ordered_columns()
    }
    permissions = permissions_to_wire(definition.schema.permissions)
    if permissions:
        result["permissions"] = permissions
    return result


def load_schema_file(path: Union[str, Path]) -> ClassDefinition:
    """
    Read and parse a schema file; the file stem is the fallback class name.

    Raises:
        ValidationError: Carrying the file path, for unreadable files,
            malformed JSON and invalid documents alike
    """
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ValidationError(f"cannot read file: {e}", path=str(path), cause=e)
    except UnicodeDecodeError as e:
        raise ValidationError(f"file is not valid UTF-8: {e}", path=str(path), cause=e)

    try:
        document = json.loads(content)
    except json.JSONDecodeError as e:
        raise ValidationError(f"invalid JSON: {e}", path=str(path), cause=e)

    try:
        definition = parse_document(document, fallback_name=path.stem)
    except ValidationError as e:
        raise ValidationError(e.message, path=str(path), cause=e.cause)

    logger.debug(f"Loaded {definition.name} from {path}")
    return definition


def load_schema_files(paths: Iterable[Union[str, Path]]) -> List[ClassDefinition]:
    """Load several schema files, stopping at the first invalid one."""
    return [load_schema_file(path) for path in paths]


def write_schema_file(definition: ClassDefinition, directory: Union[str, Path]) -> Path:
    """Write the canonical document for a class to ``<directory>/<name>.json``."""
    path = Path(directory) / f"{definition.name}.json"
    content = json.dumps(encode_document(definition), indent=2, ensure_ascii=False)
    path.write_text(content + "\n", encoding="utf-8")
    logger.debug(f"Wrote {definition.name} to {path}")
    return path
