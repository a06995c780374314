"""
Typed schema model for schemasync.

Classes, columns, permissions and ACLs as they are compared by the diff
engine. Instances are built fresh on every run, either from local schema
files (see ``codec``) or from the remote store (see ``gateway``), and are
never mutated afterwards.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


class ClassKind(str, Enum):
    """Storage kind of a class."""

    NORMAL = "normal"
    LOG = "log"


class Action(str, Enum):
    """Class-level actions gated by permissions, in canonical order."""

    ADD_FIELDS = "add_fields"
    CREATE = "create"
    DELETE = "delete"
    UPDATE = "update"
    FIND = "find"
    GET = "get"


class ColumnType(str, Enum):
    """Supported column types."""

    STRING = "String"
    NUMBER = "Number"
    BOOLEAN = "Boolean"
    DATE = "Date"
    FILE = "File"
    ARRAY = "Array"
    OBJECT = "Object"
    GEO_POINT = "GeoPoint"
    POINTER = "Pointer"
    ANY = "Any"
    ACL = "ACL"


# Created by the remote store together with the class itself
RESERVED_COLUMNS = ("objectId", "ACL", "createdAt", "updatedAt")
LEADING_COLUMNS = ("objectId", "ACL")
TRAILING_COLUMNS = ("createdAt", "updatedAt")


@dataclass(frozen=True)
class Everyone:
    """Anyone may perform the action."""

    def to_wire(self) -> Dict[str, Any]:
        return {"*": True}


@dataclass(frozen=True)
class SignedInUsersOnly:
    """Only signed-in users may perform the action."""

    def to_wire(self) -> Dict[str, Any]:
        return {"onlySignInUsers": True}


@dataclass(frozen=True)
class RolesAndUsers:
    """Only the listed roles and users may perform the action."""

    roles: Tuple[str, ...] = ()
    users: Tuple[str, ...] = ()

    def to_wire(self) -> Dict[str, Any]:
        return {"roles": list(self.roles), "users": list(self.users)}


Permission = Union[Everyone, SignedInUsersOnly, RolesAndUsers]
PermissionSet = Dict[Action, Permission]

# subject (role name, user id or "*") -> {"read": True, "write": True}
ACL = Dict[str, Dict[str, bool]]


def permissions_to_wire(permissions: PermissionSet) -> Dict[str, Any]:
    """Render a permission set in canonical action order."""
    return {
        action.value: permissions[action].to_wire()
        for action in Action
        if action in permissions
    }


def normalize_acl(acl: Dict[str, Dict[str, Any]]) -> ACL:
    """Keep only granted capabilities; drop subjects that end up empty."""
    normalized: ACL = {}
    for subject, access in acl.items():
        granted = {
            capability: True
            for capability in ("read", "write")
            if access.get(capability) is True
        }
        if granted:
            normalized[subject] = granted
    return normalized


@dataclass(frozen=True)
class ColumnAttributes:
    """Metadata shared by every column type."""

    hidden: bool = False
    readonly: bool = False
    required: bool = False
    comment: str = ""

    def __post_init__(self):
        # A missing comment and an empty one are the same thing
        if self.comment is None:
            object.__setattr__(self, "comment", "")


@dataclass(frozen=True)
class NumberOptions:
    """Extra settings of Number columns."""

    auto_increment: bool = False


@dataclass(frozen=True)
class PointerOptions:
    """Extra settings of Pointer columns."""

    target_class_name: str


ColumnOptions = Union[NumberOptions, PointerOptions]


@dataclass(frozen=True)
class ColumnSchema:
    """A single column: common attributes plus a per-type extension."""

    name: str
    type: ColumnType
    attributes: ColumnAttributes = field(default_factory=ColumnAttributes)
    default: Any = None
    options: Optional[ColumnOptions] = None

    def __post_init__(self):
        object.__setattr__(self, "type", ColumnType(self.type))
        if self.type == ColumnType.NUMBER:
            if self.options is None:
                object.__setattr__(self, "options", NumberOptions())
            elif not isinstance(self.options, NumberOptions):
                raise ValueError(f"Number column {self.name} needs NumberOptions")
        elif self.type == ColumnType.POINTER:
            if not isinstance(self.options, PointerOptions):
                raise ValueError(f"Pointer column {self.name} needs PointerOptions")
        elif self.options is not None:
            raise ValueError(
                f"{self.type.value} column {self.name} takes no type options"
            )

    @property
    def hidden(self) -> bool:
        return self.attributes.hidden

    @property
    def readonly(self) -> bool:
        return self.attributes.readonly

    @property
    def required(self) -> bool:
        return self.attributes.required

    @property
    def comment(self) -> str:
        return self.attributes.comment

    @property
    def auto_increment(self) -> Optional[bool]:
        """Auto-increment flag for Number columns, None for other types."""
        if isinstance(self.options, NumberOptions):
            return self.options.auto_increment
        return None

    @property
    def target_class_name(self) -> Optional[str]:
        """Referenced class for Pointer columns, None for other types."""
        if isinstance(self.options, PointerOptions):
            return self.options.target_class_name
        return None

    @property
    def has_default(self) -> bool:
        return self.default is not None

    @property
    def is_reserved(self) -> bool:
        return self.name in RESERVED_COLUMNS

    def metadata(self) -> Dict[str, Any]:
        """The attributes an update can change, used for drift comparison."""
        return {
            "hidden": self.hidden,
            "readonly": self.readonly,
            "required": self.required,
            "comment": self.comment,
            "default": self.default,
        }

    def encode_default(self) -> Optional[str]:
        """
        Encode the default value the way the remote store expects it.

        Date defaults are sent as their ISO string, String defaults as-is,
        everything else as compact JSON. Returns None without a default.
        """
        if self.default is None:
            return None
        if self.type == ColumnType.DATE:
            return self.default["iso"]
        if self.type == ColumnType.STRING:
            return self.default
        return json.dumps(self.default, separators=(",", ":"), ensure_ascii=False)

    def describe(self) -> Dict[str, Any]:
        """Plain dict view for display."""
        data: Dict[str, Any] = {"name": self.name, "type": self.type.value}
        data.update(self.metadata())
        if self.auto_increment is not None:
            data["autoIncrement"] = self.auto_increment
        if self.target_class_name is not None:
            data["targetClassName"] = self.target_class_name
        return data


@dataclass(frozen=True)
class ClassSchema:
    """Class-level schema: identity, kind, permissions and default ACL."""

    name: str
    kind: ClassKind = ClassKind.NORMAL
    permissions: PermissionSet = field(default_factory=dict)
    default_acl: Optional[ACL] = None

    def __post_init__(self):
        object.__setattr__(self, "kind", ClassKind(self.kind))


def sort_columns(columns: Dict[str, ColumnSchema]) -> List[ColumnSchema]:
    """
    Canonical column order: objectId, ACL, the remaining columns sorted by
    name, then createdAt and updatedAt.
    """
    leading = [columns[name] for name in LEADING_COLUMNS if name in columns]
    trailing = [columns[name] for name in TRAILING_COLUMNS if name in columns]
    middle = [
        columns[name]
        for name in sorted(columns)
        if name not in LEADING_COLUMNS and name not in TRAILING_COLUMNS
    ]
    return leading + middle + trailing


@dataclass(frozen=True)
class ClassDefinition:
    """
    A class schema together with its columns, keyed by column name.

    ``unsupported_columns`` maps remote columns whose type this tool cannot
    model (e.g. ``Relation``) to their raw type name. It is only ever filled
    from remote state.
    """

    schema: ClassSchema
    columns: Dict[str, ColumnSchema] = field(default_factory=dict)
    unsupported_columns: Dict[str, str] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.schema.name

    @property
    def kind(self) -> ClassKind:
        return self.schema.kind

    def ordered_columns(self) -> List[ColumnSchema]:
        return sort_columns(self.columns)

    def creatable_columns(self) -> List[ColumnSchema]:
        """Non-reserved columns in lexicographic name order."""
        return [
            self.columns[name]
            for name in sorted(self.columns)
            if name not in RESERVED_COLUMNS
        ]
