"""Content-safety scanning of GEDCOM field values."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Iterator

from genealogy_importer.core.gedcom import RecordNode


@dataclass
class SignatureMatch:
    """A field value that matched a malicious-payload signature."""
    family: str  # script, code, sql, nested_gedcom
    pattern: str
    node: RecordNode
    record: RecordNode


class ContentScanner:
    """
    Matches field values against signatures for obviously malicious payloads.

    Signatures are grouped in families (script tags, code-open markers,
    SQL fragments, nested GEDCOM). Each node reports at most one match.
    """

    def __init__(self, signatures: dict[str, list[str]]):
        self._compiled = [
            (family, pattern, re.compile(pattern, re.IGNORECASE))
            for family, patterns in signatures.items()
            for pattern in patterns
        ]

    @property
    def families(self) -> list[str]:
        return sorted({family for family, _, _ in self._compiled})

    def match(self, value: str | None) -> tuple[str, str] | None:
        """(family, pattern) of the first signature found in value."""
        if not value:
            return None
        for family, pattern, regex in self._compiled:
            if regex.search(value):
                return family, pattern
        return None

    def scan(self, records: Iterable[RecordNode]) -> Iterator[SignatureMatch]:
        """Yield matches across every node of the given records."""
        for record in records:
            for node in record.walk():
                found = self.match(node.value)
                if found:
                    yield SignatureMatch(found[0], found[1], node, record)
