from .assets import (
    AssetDeleter,
    AssetDeletionError,
    HttpAssetDeleter,
    LoggingAssetDeleter,
    best_effort_delete,
    clean_refs,
)
from .service import DEFAULT_BATCH_LIMIT, DEFAULT_CHECK_INTERVAL, DEFAULT_RETENTION, RetentionPurger

__all__ = [
    "AssetDeleter",
    "AssetDeletionError",
    "DEFAULT_BATCH_LIMIT",
    "DEFAULT_CHECK_INTERVAL",
    "DEFAULT_RETENTION",
    "HttpAssetDeleter",
    "LoggingAssetDeleter",
    "RetentionPurger",
    "best_effort_delete",
    "clean_refs",
]
