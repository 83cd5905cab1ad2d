"""
GEDCOM graph importer.

Builds a new workspace with its Person and Couple graph from a GEDCOM
file, in one transaction around four passes:

    0. create the workspace and attach the actor as administrator
    1. one Person per INDI record
    2. one Couple per FAM record whose spouses resolve
    3. link children to their parents and parent couple

A failure in a single record is rolled back to that record's savepoint,
counted and logged; the run continues. Only infrastructure failures
(unreadable file, unavailable database) abort and roll back everything.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from pydantic import ValidationError

from genealogy_importer.core.dates import parse_gedcom_date, resolve_event_date
from genealogy_importer.core.gedcom import GedcomTree, ParseError, RecordNode, parse
from genealogy_importer.core.models import (
    Actor,
    Couple,
    ImportResult,
    ImportStatistics,
    Person,
    Workspace,
)
from genealogy_importer.core.records import FamilyRecord, IndividualRecord, map_sex
from genealogy_importer.storage.database import (
    GenealogyDatabase,
    IntegrityViolation,
    StorageError,
)

logger = logging.getLogger("genealogy_importer.importer")

OWNER_ROLE = "administrator"

AuditHook = Callable[[str, Actor, dict[str, Any]], None]


class GedcomImportError(Exception):
    """An import run could not complete and was rolled back."""
    def __init__(self, message: str, path: str | Path | None = None):
        self.message = message
        self.path = str(path) if path is not None else None
        super().__init__(message)


@dataclass
class RecordOutcome:
    """Result of importing a single INDI or FAM record (or child link)."""
    xref: str
    ok: bool
    error: str | None = None

    @classmethod
    def success(cls, xref: str) -> RecordOutcome:
        return cls(xref, True)

    @classmethod
    def failure(cls, xref: str, error: str) -> RecordOutcome:
        return cls(xref, False, error)


@dataclass
class _ImportRun:
    """Mutable state of one import run."""
    workspace: Workspace
    statistics: ImportStatistics = field(default_factory=ImportStatistics)
    persons: dict[str, int] = field(default_factory=dict)  # INDI xref -> Person id
    couples: dict[str, int] = field(default_factory=dict)  # FAM xref -> Couple id
    outcomes: list[RecordOutcome] = field(default_factory=list)


class GedcomImporter:
    """
    Imports GEDCOM files into new workspaces.

    Example:
        importer = GedcomImporter(database)
        result = importer.import_file("Smith family", None, "smith.ged", actor, path)
        print(result.statistics.individuals)
    """

    def __init__(self, database: GenealogyDatabase, audit: AuditHook | None = None):
        self.database = database
        self.audit = audit

    def import_file(
        self,
        workspace_name: str,
        description: str | None,
        original_filename: str | None,
        actor: Actor,
        path: str | Path,
    ) -> ImportResult:
        """
        Import a GEDCOM file into a new workspace owned by actor.

        Per-record problems are counted in the returned statistics; the
        result is still successful. Raises GedcomImportError when the
        file cannot be read or the database fails, in which case nothing
        of the run is persisted.
        """
        path = Path(path)
        logger.info(f"Starting GEDCOM import of {path} into workspace '{workspace_name}'")

        try:
            workspace = Workspace(
                owner_id=actor.id,
                name=workspace_name,
                description=description,
                original_filename=original_filename,
            )
        except ValidationError as e:
            raise GedcomImportError(f"Cannot create workspace: {e}", path) from e

        try:
            tree = parse(path)
        except ParseError as e:
            raise GedcomImportError(str(e), path) from e

        try:
            with self.database.transaction():
                run = _ImportRun(workspace=self._create_workspace(workspace, actor))
                self._import_individuals(tree, run)
                self._import_families(tree, run)
                self._link_children(tree, run)
        except StorageError as e:
            logger.error(f"GEDCOM import of {path} failed, rolled back: {e}", exc_info=True)
            raise GedcomImportError(f"GEDCOM import failed: {e}", path) from e

        stats = run.statistics
        logger.info(
            f"GEDCOM import completed: workspace {run.workspace.id}, "
            f"{stats.individuals} individuals, {stats.families} families, {stats.errors} errors"
        )

        if self.audit:
            self.audit("gedcom_import", actor, {
                "workspace_id": run.workspace.id,
                "workspace_name": run.workspace.name,
                "original_filename": original_filename,
                "individuals": stats.individuals,
                "families": stats.families,
                "errors": stats.errors,
            })

        return ImportResult(success=True, workspace=run.workspace, statistics=stats)

    # =========================================
    # Pass 0: workspace
    # =========================================

    def _create_workspace(self, workspace: Workspace, actor: Actor) -> Workspace:
        workspace = self.database.create_workspace(workspace)
        self.database.add_member(workspace.id, actor.id, OWNER_ROLE, actor_name=actor.name)
        logger.debug(f"Created workspace {workspace.id} owned by {actor.id}")
        return workspace

    def _record(self, run: _ImportRun, outcome: RecordOutcome) -> bool:
        run.outcomes.append(outcome)
        if not outcome.ok:
            run.statistics.record_error()
            logger.warning(f"Skipped {outcome.xref}: {outcome.error}")
        return outcome.ok

    def _reject(self, tree: GedcomTree, tag: str, run: _ImportRun) -> int:
        """Count roots the parser could not index as failed records."""
        nodes = [node for node in tree.rejected if node.tag == tag]
        for node in nodes:
            reason = "Duplicate cross-reference id" if node.xref else "Missing cross-reference id"
            self._record(run, RecordOutcome.failure(
                node.xref or f"line {node.line_number}", f"{reason} for {tag} record",
            ))
        return len(nodes)

    # =========================================
    # Pass 1: individuals
    # =========================================

    def _import_individuals(self, tree: GedcomTree, run: _ImportRun) -> None:
        for xref, node in tree.individuals.items():
            if self._record(run, self._import_individual(node, run)):
                run.statistics.record_individual()
        rejected = self._reject(tree, "INDI", run)
        logger.info(
            f"Imported {run.statistics.individuals} of "
            f"{len(tree.individuals) + rejected} individuals"
        )

    def _import_individual(self, node: RecordNode, run: _ImportRun) -> RecordOutcome:
        xref = node.xref or ""
        try:
            person = self.build_person(IndividualRecord.from_node(node), run.workspace.id)
            with self.database.savepoint("individual"):
                person = self.database.add_person(person)
        except (ValidationError, IntegrityViolation) as e:
            return RecordOutcome.failure(xref, f"Cannot import individual: {e}")

        run.persons[xref] = person.id
        return RecordOutcome.success(xref)

    @staticmethod
    def build_person(individual: IndividualRecord, workspace_id: int) -> Person:
        """Construct (but do not persist) the Person for an INDI record."""
        parts = individual.name_parts()
        birth = individual.birth
        death = individual.death
        dob, yob = resolve_event_date(birth.date if birth else None)
        dod, yod = resolve_event_date(death.date if death else None)

        return Person(
            workspace_id=workspace_id,
            gedcom_id=individual.xref or None,
            firstname=parts["firstname"],
            surname=parts["surname"],
            birthname=parts["birthname"],
            nickname=parts["nickname"],
            sex=map_sex(individual.sex),
            dob=dob,
            yob=yob,
            pob=birth.place if birth else None,
            dod=dod,
            yod=yod,
            pod=death.place if death else None,
        )

    # =========================================
    # Pass 2: families
    # =========================================

    def _import_families(self, tree: GedcomTree, run: _ImportRun) -> None:
        for xref, node in tree.families.items():
            if self._record(run, self._import_family(node, run)):
                run.statistics.record_family()
        rejected = self._reject(tree, "FAM", run)
        logger.info(
            f"Imported {run.statistics.families} of {len(tree.families) + rejected} families"
        )

    def _import_family(self, node: RecordNode, run: _ImportRun) -> RecordOutcome:
        family = FamilyRecord.from_node(node)
        husband = run.persons.get(family.husband) if family.husband else None
        wife = run.persons.get(family.wife) if family.wife else None

        if husband is None and wife is None:
            return RecordOutcome.failure(
                family.xref,
                f"Family has no resolvable spouse (HUSB {family.husband}, WIFE {family.wife})",
            )

        try:
            couple = self.build_couple(family, husband, wife, run.workspace.id)
            with self.database.savepoint("family"):
                couple = self.database.add_couple(couple)
        except (ValidationError, IntegrityViolation) as e:
            return RecordOutcome.failure(family.xref, f"Cannot import family: {e}")

        run.couples[family.xref] = couple.id
        return RecordOutcome.success(family.xref)

    @staticmethod
    def build_couple(family: FamilyRecord, husband_id: int | None,
                     wife_id: int | None, workspace_id: int) -> Couple:
        """Construct (but do not persist) the Couple for a FAM record."""
        marriage = family.marriage
        divorce = family.divorce
        return Couple(
            workspace_id=workspace_id,
            gedcom_id=family.xref or None,
            person1_id=husband_id,
            person2_id=wife_id,
            is_married=marriage is not None,
            has_ended=divorce is not None,
            date_start=parse_gedcom_date(marriage.date) if marriage else None,
            date_end=parse_gedcom_date(divorce.date) if divorce else None,
        )

    # =========================================
    # Pass 3: parent-child links
    # =========================================

    def _link_children(self, tree: GedcomTree, run: _ImportRun) -> None:
        linked = 0
        for xref, node in tree.families.items():
            family = FamilyRecord.from_node(node)
            if not family.children:
                continue

            father = run.persons.get(family.husband) if family.husband else None
            mother = run.persons.get(family.wife) if family.wife else None
            if father is None and mother is None:
                # Already counted as a failed family in pass 2
                continue

            couple_id = run.couples.get(xref)
            if couple_id is None:
                couple = self.database.find_couple(run.workspace.id, father, mother)
                couple_id = couple.id if couple else None

            for child_xref in family.children:
                if self._record(run, self._link_child(child_xref, father, mother, couple_id, run)):
                    linked += 1

        logger.info(f"Linked {linked} children to their parents")

    def _link_child(self, child_xref: str, father: int | None, mother: int | None,
                    couple_id: int | None, run: _ImportRun) -> RecordOutcome:
        child = run.persons.get(child_xref)
        if child is None:
            return RecordOutcome.failure(child_xref, "Child does not resolve to an imported individual")
        try:
            with self.database.savepoint("child"):
                self.database.link_child(child, father, mother, couple_id)
        except IntegrityViolation as e:
            return RecordOutcome.failure(child_xref, f"Cannot link child: {e}")
        return RecordOutcome.success(child_xref)


def import_gedcom(
    database: GenealogyDatabase,
    workspace_name: str,
    description: str | None,
    original_filename: str | None,
    actor: Actor,
    path: str | Path,
    audit: AuditHook | None = None,
) -> ImportResult:
    """Import a GEDCOM file into a new workspace of the given database."""
    importer = GedcomImporter(database, audit=audit)
    return importer.import_file(workspace_name, description, original_filename, actor, path)
