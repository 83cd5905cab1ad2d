"""Core GEDCOM parsing, record extraction and data models."""

from genealogy_importer.core.models import (
    Sex,
    Severity,
    Actor,
    Workspace,
    Person,
    Couple,
    ImportStatistics,
    ImportResult,
    HeaderInfo,
    ValidationIssue,
    ValidationStats,
    ValidationReport,
)
from genealogy_importer.core.gedcom import (
    GedcomParser,
    GedcomTree,
    ParseDiagnostic,
    ParseError,
    RecordNode,
    parse,
)
from genealogy_importer.core.records import FamilyRecord, IndividualRecord
from genealogy_importer.core.dates import parse_gedcom_date

__all__ = [
    "Sex",
    "Severity",
    "Actor",
    "Workspace",
    "Person",
    "Couple",
    "ImportStatistics",
    "ImportResult",
    "HeaderInfo",
    "ValidationIssue",
    "ValidationStats",
    "ValidationReport",
    "GedcomParser",
    "GedcomTree",
    "ParseDiagnostic",
    "ParseError",
    "RecordNode",
    "parse",
    "FamilyRecord",
    "IndividualRecord",
    "parse_gedcom_date",
]
