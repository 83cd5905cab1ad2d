"""Read-only validation of GEDCOM files before import."""

from genealogy_importer.validation.signatures import ContentScanner, SignatureMatch
from genealogy_importer.validation.validator import GedcomValidator, validate

__all__ = [
    "ContentScanner",
    "SignatureMatch",
    "GedcomValidator",
    "validate",
]
