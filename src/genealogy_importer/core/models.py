"""
Core data models for GEDCOM ingestion.

These models describe:
- The workspace an import creates and the actor who owns it
- Persisted Person and Couple entities
- Import statistics and results
- Validation reports (issues, warnings, recommendations)
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, model_validator


class Sex(str, Enum):
    """Sex codes stored on a Person."""
    MALE = "M"
    FEMALE = "F"
    OTHER = "X"  # Unknown or other (GEDCOM U / X)


class Severity(str, Enum):
    """Severity of a validation finding."""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class Actor(BaseModel):
    """The user on whose behalf an import runs."""
    id: str
    name: str | None = None
    email: str | None = None


class Workspace(BaseModel):
    """
    An isolated container of imported genealogical data.

    Every import creates a new workspace owned by the importing actor.
    """
    id: int | None = None
    owner_id: str
    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(None, max_length=255)
    original_filename: str | None = None
    personal: bool = False
    created_at: datetime = Field(default_factory=datetime.now)


class Person(BaseModel):
    """
    Individual person persisted from a GEDCOM INDI record.

    Birth and death are stored either as an exact date or, when no
    exact date resolves, as a bare year.
    """
    id: int | None = None
    workspace_id: int
    gedcom_id: str | None = None  # @I###@ format

    firstname: str | None = Field(None, max_length=255)
    surname: str | None = Field(None, max_length=255)
    birthname: str | None = Field(None, max_length=255)
    nickname: str | None = Field(None, max_length=255)
    sex: Sex | None = None

    dob: date | None = None
    yob: int | None = None
    pob: str | None = Field(None, max_length=255)
    dod: date | None = None
    yod: int | None = None
    pod: str | None = Field(None, max_length=255)

    father_id: int | None = None
    mother_id: int | None = None
    parents_id: int | None = None

    @model_validator(mode="after")
    def prefer_exact_dates(self) -> "Person":
        """Drop the bare year when an exact date is known."""
        if self.dob is not None:
            self.yob = None
        if self.dod is not None:
            self.yod = None
        return self

    @property
    def name(self) -> str:
        """Display name: firstname followed by surname."""
        return " ".join(p for p in (self.firstname, self.surname) if p)

    @property
    def birth_year(self) -> int | None:
        if self.dob:
            return self.dob.year
        return self.yob

    @property
    def death_year(self) -> int | None:
        if self.dod:
            return self.dod.year
        return self.yod


class Couple(BaseModel):
    """
    A union of up to two partners.

    The pair is unordered; at most one side may be missing and
    both sides may never be the same person.
    """
    id: int | None = None
    workspace_id: int
    gedcom_id: str | None = None  # @F###@ format
    person1_id: int | None = None
    person2_id: int | None = None
    is_married: bool = False
    has_ended: bool = False
    date_start: date | None = None
    date_end: date | None = None

    @model_validator(mode="after")
    def validate_partners(self) -> "Couple":
        if self.person1_id is None and self.person2_id is None:
            raise ValueError("Couple must have at least one partner")
        if self.person1_id is not None and self.person1_id == self.person2_id:
            raise ValueError("Couple partners must be different persons")
        return self

    @property
    def partner_ids(self) -> frozenset[int | None]:
        """Unordered partner pair."""
        return frozenset((self.person1_id, self.person2_id))


class ImportStatistics(BaseModel):
    """Monotonically increasing counters for an import run."""
    individuals: int = 0
    families: int = 0
    errors: int = 0

    def record_individual(self) -> None:
        self.individuals += 1

    def record_family(self) -> None:
        self.families += 1

    def record_error(self) -> None:
        self.errors += 1


class ImportResult(BaseModel):
    """Outcome of a committed import run."""
    success: bool
    workspace: Workspace
    statistics: ImportStatistics


class HeaderInfo(BaseModel):
    """Metadata read from the HEAD record."""
    version: str | None = None  # HEAD.GEDC.VERS
    source: str | None = None  # HEAD.SOUR
    encoding: str | None = None  # HEAD.CHAR


class ValidationIssue(BaseModel):
    """A single validation finding."""
    type: str  # critical, content, reference, data, format, ...
    category: str  # file_structure, version, broken_reference, ...
    message: str
    location: str
    severity: Severity
    suggestion: str | None = None


class ValidationStats(BaseModel):
    """Snapshot of what the validator observed."""
    individuals: int = 0
    families: int = 0
    version: str | None = None
    source: str | None = None
    encoding: str | None = None
    file_size: int | None = None
    lines: int = 0


class ValidationReport(BaseModel):
    """
    Advisory report produced by the validator.

    ``valid`` and ``can_import`` hold iff no issues (errors) were found.
    """
    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)
    stats: ValidationStats = Field(default_factory=ValidationStats)
    recommendations: list[str] = Field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.issues

    @property
    def can_import(self) -> bool:
        return self.valid

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)

    def categories(self, kind: Literal["issues", "warnings"] = "issues") -> set[str]:
        """Categories that fired among issues or warnings."""
        return {item.category for item in getattr(self, kind)}

    def to_dict(self) -> dict:
        """Plain-dict form including the derived flags."""
        data = self.model_dump(mode="json")
        data["valid"] = self.valid
        data["can_import"] = self.can_import
        data["has_warnings"] = self.has_warnings
        return data
