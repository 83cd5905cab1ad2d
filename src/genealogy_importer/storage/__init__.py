"""Persistence of imported workspaces."""

from genealogy_importer.storage.database import (
    GenealogyDatabase,
    IntegrityViolation,
    StorageError,
)

__all__ = ["GenealogyDatabase", "IntegrityViolation", "StorageError"]
