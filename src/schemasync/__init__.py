"""
schemasync: declarative schema reconciliation for LeanCloud-style stores.

schemasync compares one JSON schema file per class against the live
schema of a remote store, reports conflicts that need a human, and
applies everything else as ordered, idempotent remote mutations.
"""

__version__ = "0.1.0"
__author__ = "schemasync Contributors"

from .config import SchemaSyncConfig
from .exceptions import (
    ConfigurationError,
    ConflictError,
    GatewayAPIError,
    GatewayError,
    SchemaSyncError,
    TaskError,
    ValidationError,
)
from .schema.reconciler import ReconciliationResult, ReconciliationStatus, SchemaReconciler
from .gateway import LeanCloudGateway, SchemaGateway

__all__ = [
    "__version__",
    "SchemaSyncConfig",
    "SchemaSyncError",
    "ConfigurationError",
    "ConflictError",
    "GatewayAPIError",
    "GatewayError",
    "TaskError",
    "ValidationError",
    "ReconciliationResult",
    "ReconciliationStatus",
    "SchemaReconciler",
    "LeanCloudGateway",
    "SchemaGateway",
]
