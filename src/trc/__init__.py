from .service import TrashRestoreService, validate_ids

__all__ = ["TrashRestoreService", "validate_ids"]
