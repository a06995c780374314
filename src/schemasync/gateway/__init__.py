"""
Remote schema store gateways.
"""

from .base import (
    ClassListItem,
    CreateClassData,
    CreateColumnData,
    SchemaGateway,
    UpdateColumnData,
)
from .leancloud_client import LeanCloudGateway

__all__ = [
    "ClassListItem",
    "CreateClassData",
    "CreateColumnData",
    "SchemaGateway",
    "UpdateColumnData",
    "LeanCloudGateway",
]
