"""Import of GEDCOM files into new workspaces."""

from genealogy_importer.importer.gedcom_import import (
    GedcomImporter,
    GedcomImportError,
    RecordOutcome,
    import_gedcom,
)

__all__ = ["GedcomImporter", "GedcomImportError", "RecordOutcome", "import_gedcom"]
