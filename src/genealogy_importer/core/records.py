"""
Pre-entity views of INDI and FAM records.

These read a RecordNode subtree into plain structures the importer turns
into persisted Person and Couple entities.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from genealogy_importer.core.gedcom import RecordNode
from genealogy_importer.core.models import Sex

# "Given /Surname/ Suffix"; the closing slash is often missing in the wild
_NAME_PATTERN = re.compile(r"^([^/]*)/([^/]*)/?")

BIRTH_NAME_TYPES = {"BIRTH", "MAIDEN"}

SEX_CODES = {
    "M": Sex.MALE,
    "F": Sex.FEMALE,
    "U": Sex.OTHER,
    "X": Sex.OTHER,
}


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = " ".join(value.split())
    return value or None


def split_name(full_name: str | None) -> tuple[str | None, str | None]:
    """
    Decompose a GEDCOM name into (given, surname).

    The segment between slashes is the surname and the text before it the
    given name. A name without slashes is a given name only.
    """
    if not full_name:
        return None, None
    match = _NAME_PATTERN.match(full_name)
    if not match:
        return _clean(full_name), None
    return _clean(match.group(1)), _clean(match.group(2))


def map_sex(code: str | None) -> Sex | None:
    """Map a GEDCOM SEX value: M, F, U/X (unknown or other), else None."""
    if not code:
        return None
    return SEX_CODES.get(code.strip().upper())


@dataclass
class EventRecord:
    """Date and place of a BIRT/DEAT/MARR/DIV sub-event."""
    tag: str
    date: str | None = None
    place: str | None = None

    @classmethod
    def from_node(cls, node: RecordNode | None) -> EventRecord | None:
        if node is None:
            return None
        return cls(
            tag=node.tag,
            date=_clean(node.get_value("DATE")),
            place=_clean(node.get_value("PLAC")),
        )


@dataclass
class NameRecord:
    """One NAME structure with its explicit components."""
    full: str | None = None
    given: str | None = None
    surname: str | None = None
    nickname: str | None = None
    name_type: str | None = None

    @classmethod
    def from_node(cls, node: RecordNode) -> NameRecord:
        return cls(
            full=node.value,
            given=_clean(node.get_value("GIVN")),
            surname=_clean(node.get_value("SURN")),
            nickname=_clean(node.get_value("NICK")),
            name_type=_clean(node.get_value("TYPE")),
        )

    @property
    def has_surname_delimiters(self) -> bool:
        return bool(self.full) and bool(re.search(r"/.*/", self.full))

    def resolved(self) -> tuple[str | None, str | None]:
        """(given, surname), explicit GIVN/SURN overriding the decomposed form."""
        given, surname = split_name(self.full)
        return self.given or given, self.surname or surname


@dataclass
class IndividualRecord:
    """An INDI record read into its importable parts."""
    xref: str
    names: list[NameRecord] = field(default_factory=list)
    sex: str | None = None
    birth: EventRecord | None = None
    death: EventRecord | None = None
    child_of: list[str] = field(default_factory=list)  # FAMC
    spouse_of: list[str] = field(default_factory=list)  # FAMS

    @classmethod
    def from_node(cls, node: RecordNode) -> IndividualRecord:
        return cls(
            xref=node.xref or "",
            names=[NameRecord.from_node(n) for n in node.all("NAME")],
            sex=_clean(node.get_value("SEX")),
            birth=EventRecord.from_node(node.first("BIRT")),
            death=EventRecord.from_node(node.first("DEAT")),
            child_of=[v.strip() for v in node.get_all_values("FAMC")],
            spouse_of=[v.strip() for v in node.get_all_values("FAMS")],
        )

    @property
    def primary_name(self) -> NameRecord | None:
        return self.names[0] if self.names else None

    def name_parts(self) -> dict[str, str | None]:
        """firstname, surname, nickname and birthname for the Person."""
        parts: dict[str, str | None] = {
            "firstname": None,
            "surname": None,
            "nickname": None,
            "birthname": None,
        }
        primary = self.primary_name
        if primary is None:
            return parts

        parts["firstname"], parts["surname"] = primary.resolved()
        parts["nickname"] = primary.nickname

        for name in self.names:
            if name.name_type and name.name_type.upper() in BIRTH_NAME_TYPES:
                birth_surname = name.resolved()[1]
                if birth_surname:
                    parts["birthname"] = birth_surname
                    break
        return parts


@dataclass
class FamilyRecord:
    """A FAM record read into its importable parts."""
    xref: str
    husband: str | None = None
    wife: str | None = None
    children: list[str] = field(default_factory=list)
    marriage: EventRecord | None = None
    divorce: EventRecord | None = None

    @classmethod
    def from_node(cls, node: RecordNode) -> FamilyRecord:
        husband = _clean(node.get_value("HUSB"))
        wife = _clean(node.get_value("WIFE"))
        return cls(
            xref=node.xref or "",
            husband=husband,
            wife=wife,
            children=[v.strip() for v in node.get_all_values("CHIL")],
            marriage=EventRecord.from_node(node.first("MARR")),
            divorce=EventRecord.from_node(node.first("DIV")),
        )

    @property
    def spouses(self) -> list[str]:
        return [ref for ref in (self.husband, self.wife) if ref]

    @property
    def is_empty(self) -> bool:
        return not self.spouses and not self.children
