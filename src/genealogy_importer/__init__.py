"""
GEDCOM Importer

Parses, validates and imports GEDCOM genealogy files into isolated
workspaces of people and family unions.
"""

__version__ = "0.1.0"

from genealogy_importer.core.gedcom import GedcomTree, ParseError, parse
from genealogy_importer.core.models import (
    Actor,
    Couple,
    ImportResult,
    ImportStatistics,
    Person,
    ValidationReport,
    Workspace,
)
from genealogy_importer.validation.validator import GedcomValidator, validate
from genealogy_importer.storage.database import GenealogyDatabase, StorageError
from genealogy_importer.importer.gedcom_import import (
    GedcomImporter,
    GedcomImportError,
    import_gedcom,
)

__all__ = [
    "parse",
    "validate",
    "import_gedcom",
    "GedcomTree",
    "ParseError",
    "GedcomValidator",
    "GedcomImporter",
    "GedcomImportError",
    "GenealogyDatabase",
    "StorageError",
    "Actor",
    "Couple",
    "ImportResult",
    "ImportStatistics",
    "Person",
    "ValidationReport",
    "Workspace",
]
