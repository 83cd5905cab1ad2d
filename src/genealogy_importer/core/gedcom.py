"""
GEDCOM 5.5 record parser.

Handles:
- Decoding according to the declared HEAD.CHAR encoding
- Line grammar: LEVEL [XREF] TAG [VALUE]
- Tree construction from level numbers, with best-effort recovery
- CONT/CONC continuation lines folded into the preceding value
- Indexes of INDI and FAM records by cross-reference id

Content problems never raise; they are recorded as diagnostics for the
validator. Only an unreadable file raises ParseError.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Iterator

from genealogy_importer.core.encoding import decode_gedcom
from genealogy_importer.core.models import HeaderInfo

if TYPE_CHECKING:
    from genealogy_importer.core.records import FamilyRecord, IndividualRecord

logger = logging.getLogger("genealogy_importer.core.gedcom")

CONTINUATION_TAGS = {"CONT", "CONC"}

# Level-0 record types defined by GEDCOM 5.5 / 5.5.1
KNOWN_RECORD_TAGS = {
    "HEAD", "TRLR", "INDI", "FAM", "SOUR", "REPO", "NOTE", "OBJE", "SUBM", "SUBN",
}

# Tags introduced by GEDCOM 7.0 that 5.5 readers do not understand
NEWER_FORMAT_TAGS = {
    "SCHMA", "SNOTE", "EXID", "UID", "CREA", "SDATE", "PHRASE",
    "INIL", "CROP", "MIME", "TRAN", "NO",
}

_LINE_PATTERN = re.compile(r"^(\d+)\s+(?:(@[^@\s]+@)\s+)?(\S+)(?:[ \t](.*))?$")


class ParseError(Exception):
    """A GEDCOM file could not be read."""
    def __init__(self, path: str | Path, message: str):
        self.path = str(path)
        self.message = message
        super().__init__(f"Cannot read GEDCOM file {self.path}: {message}")


@dataclass
class GedcomLine:
    """A single parsed GEDCOM line."""
    level: int
    tag: str
    value: str | None = None
    xref: str | None = None  # @I123@ style ID
    line_number: int = 0

    @classmethod
    def parse(cls, line: str, line_number: int = 0) -> GedcomLine | None:
        """Parse a GEDCOM line, None if it does not match the grammar."""
        # Only leading whitespace and line terminators are insignificant;
        # trailing spaces may belong to a CONC value.
        line = line.lstrip().rstrip("\r\n")
        if not line:
            return None

        match = _LINE_PATTERN.match(line)
        if not match:
            return None

        value = match.group(4)
        return cls(
            level=int(match.group(1)),
            xref=match.group(2),
            tag=match.group(3).upper(),
            value=value if value else None,
            line_number=line_number,
        )


@dataclass
class RecordNode:
    """A GEDCOM line with its subordinate lines."""
    level: int
    tag: str
    xref: str | None = None
    value: str | None = None
    children: list[RecordNode] = field(default_factory=list)
    line_number: int = 0

    def first(self, tag: str) -> RecordNode | None:
        """First child with the given tag."""
        for child in self.children:
            if child.tag == tag:
                return child
        return None

    def all(self, tag: str) -> list[RecordNode]:
        """All children with the given tag, in document order."""
        return [child for child in self.children if child.tag == tag]

    def get_value(self, *path: str) -> str | None:
        """Get value at a path of tags like ('GEDC', 'VERS')."""
        node: RecordNode | None = self
        for tag in path:
            node = node.first(tag)
            if node is None:
                return None
        return node.value

    def get_all_values(self, tag: str) -> list[str]:
        """Non-empty values of every child with the given tag."""
        return [child.value for child in self.all(tag) if child.value]

    def walk(self) -> Iterator[RecordNode]:
        """This node and all descendants, depth first in document order."""
        yield self
        for child in self.children:
            yield from child.walk()

    def append_value(self, text: str | None, newline: bool) -> None:
        """Extend the value with a CONT (newline) or CONC (direct) line."""
        text = text or ""
        if newline:
            self.value = (self.value or "") + "\n" + text
        else:
            self.value = (self.value or "") + text


@dataclass
class ParseDiagnostic:
    """A structural anomaly recovered from during parsing."""
    line_number: int | None
    kind: str  # malformed_line, level_jump, duplicate_xref, encoding, ...
    message: str


@dataclass
class GedcomTree:
    """Parsed GEDCOM document: level-0 records plus derived indexes."""
    records: list[RecordNode] = field(default_factory=list)
    individuals: dict[str, RecordNode] = field(default_factory=dict)
    families: dict[str, RecordNode] = field(default_factory=dict)
    # INDI/FAM roots left out of the indexes (duplicate or missing xref)
    rejected: list[RecordNode] = field(default_factory=list)
    diagnostics: list[ParseDiagnostic] = field(default_factory=list)

    source_path: Path | None = None
    file_size: int | None = None
    encoding: str | None = None  # codec actually used
    has_bom: bool = False
    line_count: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.records

    @property
    def head(self) -> RecordNode | None:
        for record in self.records:
            if record.tag == "HEAD":
                return record
        return None

    @property
    def header(self) -> HeaderInfo:
        """Version, source application and charset from HEAD."""
        head = self.head
        if head is None:
            return HeaderInfo()
        return HeaderInfo(
            version=head.get_value("GEDC", "VERS"),
            source=head.get_value("SOUR"),
            encoding=head.get_value("CHAR"),
        )

    def iter_nodes(self) -> Iterator[RecordNode]:
        """Every node of every record in document order."""
        for record in self.records:
            yield from record.walk()

    def node_count(self) -> int:
        return sum(1 for _ in self.iter_nodes())

    def diagnostics_of(self, *kinds: str) -> list[ParseDiagnostic]:
        return [d for d in self.diagnostics if d.kind in kinds]

    def individual_records(self) -> Iterator[IndividualRecord]:
        from genealogy_importer.core.records import IndividualRecord
        for node in self.individuals.values():
            yield IndividualRecord.from_node(node)

    def family_records(self) -> Iterator[FamilyRecord]:
        from genealogy_importer.core.records import FamilyRecord
        for node in self.families.values():
            yield FamilyRecord.from_node(node)


class GedcomParser:
    """
    Builds a GedcomTree from GEDCOM text.

    Tree construction keeps a stack of open ancestors keyed by their
    declared level. A line at level L pops every entry at level >= L and
    attaches under what remains on top.
    """

    def __init__(self) -> None:
        self._reset()

    def _reset(self) -> None:
        self.tree = GedcomTree()
        self._stack: list[tuple[int, RecordNode]] = []
        self._previous_level: int | None = None
        self._xrefs: set[str] = set()

    def parse_file(self, path: str | Path) -> GedcomTree:
        """Read, decode and parse a GEDCOM file."""
        path = Path(path)
        logger.info(f"Parsing GEDCOM file: {path}")
        try:
            raw = path.read_bytes()
        except OSError as e:
            logger.error(f"Cannot read GEDCOM file {path}: {e}")
            raise ParseError(path, e.strerror or str(e)) from e

        decoded = decode_gedcom(raw)
        tree = self.parse_text(decoded.text)
        tree.source_path = path
        tree.file_size = len(raw)
        tree.encoding = decoded.codec
        tree.has_bom = decoded.has_bom

        if decoded.has_bom:
            tree.diagnostics.insert(0, ParseDiagnostic(
                1, "bom", "File starts with a byte order mark",
            ))
        for note in decoded.notes:
            tree.diagnostics.append(ParseDiagnostic(None, "encoding", note))

        logger.info(
            f"Parsed {tree.line_count} lines into {len(tree.records)} records "
            f"({len(tree.individuals)} individuals, {len(tree.families)} families, "
            f"{len(tree.diagnostics)} diagnostics)"
        )
        return tree

    def parse_text(self, text: str) -> GedcomTree:
        """Parse already-decoded GEDCOM text."""
        self._reset()
        text = text.lstrip("\ufeff")

        for line_number, raw_line in enumerate(text.splitlines(), start=1):
            if not raw_line.strip():
                continue
            self.tree.line_count += 1

            parsed = GedcomLine.parse(raw_line, line_number)
            if parsed is None:
                self._diagnose(line_number, "malformed_line",
                               f"Line does not match GEDCOM grammar: {raw_line.strip()[:40]}")
                continue
            self._feed(parsed)

        tree = self.tree
        self._reset()
        return tree

    def _feed(self, line: GedcomLine) -> None:
        """Attach one parsed line to the tree."""
        if line.tag in CONTINUATION_TAGS:
            self._continue_value(line)
            return

        if self._previous_level is not None and line.level > self._previous_level + 1:
            self._diagnose(line.line_number, "level_jump",
                           f"Level jumps from {self._previous_level} to {line.level}")
        self._previous_level = line.level

        while self._stack and self._stack[-1][0] >= line.level:
            self._stack.pop()

        if line.level == 0:
            node = RecordNode(0, line.tag, line.xref, line.value, line_number=line.line_number)
            self._add_record(node)
        elif not self._stack:
            self._diagnose(line.line_number, "orphan_line",
                           f"Level {line.level} {line.tag} line has no enclosing record")
            return
        else:
            parent = self._stack[-1][1]
            node = RecordNode(parent.level + 1, line.tag, line.xref, line.value,
                              line_number=line.line_number)
            parent.children.append(node)

        if line.tag in NEWER_FORMAT_TAGS:
            self._diagnose(line.line_number, "newer_format",
                           f"Tag {line.tag} is only defined in GEDCOM 7.0")

        self._stack.append((line.level, node))

    def _continue_value(self, line: GedcomLine) -> None:
        """Fold a CONT/CONC line into the value of its parent line."""
        while self._stack and self._stack[-1][0] >= line.level:
            self._stack.pop()
        if not self._stack:
            self._diagnose(line.line_number, "orphan_continuation",
                           f"{line.tag} line has nothing to continue")
            return
        declared, target = self._stack[-1]
        if line.level != declared + 1:
            self._diagnose(line.line_number, "level_jump",
                           f"{line.tag} at level {line.level} continues a level {declared} line")
        target.append_value(line.value, newline=line.tag == "CONT")

    def _add_record(self, node: RecordNode) -> None:
        self.tree.records.append(node)

        if node.tag not in KNOWN_RECORD_TAGS and not node.tag.startswith("_") \
                and node.tag not in NEWER_FORMAT_TAGS:
            self._diagnose(node.line_number, "unknown_record",
                           f"Unknown record type {node.tag}")

        index = None
        if node.tag == "INDI":
            index = self.tree.individuals
        elif node.tag == "FAM":
            index = self.tree.families

        if node.xref:
            if node.xref in self._xrefs:
                self._diagnose(node.line_number, "duplicate_xref",
                               f"Duplicate ID: {node.xref}")
                if index is not None:
                    self.tree.rejected.append(node)
                return
            self._xrefs.add(node.xref)

        if index is None:
            return

        if not node.xref:
            self._diagnose(node.line_number, "malformed_line",
                           f"{node.tag} record has no cross-reference id")
            self.tree.rejected.append(node)
        else:
            index[node.xref] = node

    def _diagnose(self, line_number: int | None, kind: str, message: str) -> None:
        logger.debug(f"line {line_number}: {kind}: {message}")
        self.tree.diagnostics.append(ParseDiagnostic(line_number, kind, message))


def parse(path: str | Path) -> GedcomTree:
    """Parse a GEDCOM file into a tree. Raises ParseError only on I/O failure."""
    return GedcomParser().parse_file(path)
