"""Tests for the GEDCOM graph importer."""

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path

import pytest

from genealogy_importer.core.models import Actor, Sex
from genealogy_importer.importer.gedcom_import import (
    GedcomImporter,
    GedcomImportError,
    RecordOutcome,
    import_gedcom,
)
from genealogy_importer.storage.database import GenealogyDatabase, StorageError


def run_import(importer: GedcomImporter, actor: Actor, path: Path, name: str = "Family tree"):
    return importer.import_file(name, "Imported for tests", path.name, actor, path)


def persons_by_gedcom_id(database: GenealogyDatabase, workspace_id: int) -> dict:
    return {p.gedcom_id: p for p in database.list_persons(workspace_id)}


class TestImportScenarios:
    """End-to-end import scenarios."""

    def test_single_individual(self, importer, database, actor, write_gedcom, gedcom_body):
        path = write_gedcom(gedcom_body("0 @I1@ INDI\n1 NAME John /Smith/\n1 SEX M\n"))
        result = run_import(importer, actor, path)

        assert result.success
        stats = result.statistics
        assert (stats.individuals, stats.families, stats.errors) == (1, 0, 0)

        person = database.list_persons(result.workspace.id)[0]
        assert person.firstname == "John"
        assert person.surname == "Smith"
        assert person.sex is Sex.MALE
        assert person.gedcom_id == "@I1@"

    def test_sample_family(self, importer, database, actor, sample_gedcom_file: Path):
        result = run_import(importer, actor, sample_gedcom_file, name="Herinckx")
        workspace_id = result.workspace.id
        stats = result.statistics
        assert (stats.individuals, stats.families, stats.errors) == (3, 1, 0)

        people = persons_by_gedcom_id(database, workspace_id)
        jean, marie, victor = people["@I001@"], people["@I002@"], people["@I003@"]
        assert jean.firstname == "Jean Joseph"
        assert jean.dob == date(1895, 3, 15)
        assert jean.pob == "Tervuren, Brabant, Belgium"
        assert jean.dod == date(1962, 8, 22)
        assert marie.surname == "DE SMET"

        couple = database.list_couples(workspace_id)[0]
        assert couple.person1_id == jean.id
        assert couple.person2_id == marie.id
        assert couple.is_married
        assert couple.date_start == date(1890, 6, 12)
        assert (victor.father_id, victor.mother_id, victor.parents_id) == (
            jean.id, marie.id, couple.id,
        )

    def test_workspace_owned_by_actor(self, importer, database, actor, sample_gedcom_file: Path):
        result = run_import(importer, actor, sample_gedcom_file)
        workspace = database.get_workspace(result.workspace.id)

        assert workspace.name == "Family tree"
        assert workspace.description == "Imported for tests"
        assert workspace.original_filename == "test_family.ged"
        assert workspace.owner_id == actor.id
        assert database.list_members(workspace.id) == [
            {"actor_id": actor.id, "actor_name": actor.name, "role": "administrator"},
        ]

    def test_dangling_husband(self, importer, database, actor, write_gedcom, gedcom_body):
        """Test a family whose only spouse is missing is skipped."""
        path = write_gedcom(gedcom_body(
            "0 @I1@ INDI\n1 NAME Jane /Doe/\n1 SEX F\n"
            "0 @F1@ FAM\n1 HUSB @I9@\n"
        ))
        result = run_import(importer, actor, path)

        assert result.success
        assert (result.statistics.individuals, result.statistics.families) == (1, 0)
        assert result.statistics.errors == 1
        assert database.list_couples(result.workspace.id) == []

    def test_marriage_and_divorce(self, importer, database, actor, write_gedcom, gedcom_body):
        path = write_gedcom(gedcom_body(
            "0 @I1@ INDI\n1 NAME John /Smith/\n1 SEX M\n1 FAMS @F1@\n"
            "0 @I2@ INDI\n1 NAME Jane /Doe/\n1 SEX F\n1 FAMS @F1@\n"
            "0 @F1@ FAM\n1 HUSB @I1@\n1 WIFE @I2@\n"
            "1 MARR\n2 DATE 14 FEB 1990\n"
            "1 DIV\n2 DATE 30 SEP 2005\n"
        ))
        result = run_import(importer, actor, path)
        couple = database.list_couples(result.workspace.id)[0]

        assert couple.is_married is True
        assert couple.has_ended is True
        assert couple.date_start == date(1990, 2, 14)
        assert couple.date_end == date(2005, 9, 30)

    def test_partner_in_two_families(self, importer, database, actor, write_gedcom, gedcom_body):
        """Test two unions of one husband keep their children apart."""
        path = write_gedcom(gedcom_body(
            "0 @I1@ INDI\n1 NAME John /Smith/\n1 SEX M\n"
            "0 @I2@ INDI\n1 NAME Anne /First/\n1 SEX F\n"
            "0 @I3@ INDI\n1 NAME Beth /Second/\n1 SEX F\n"
            "0 @I4@ INDI\n1 NAME Carl /Smith/\n1 SEX M\n"
            "0 @I5@ INDI\n1 NAME Dora /Smith/\n1 SEX F\n"
            "0 @F1@ FAM\n1 HUSB @I1@\n1 WIFE @I2@\n1 CHIL @I4@\n"
            "0 @F2@ FAM\n1 HUSB @I1@\n1 WIFE @I3@\n1 CHIL @I5@\n"
        ))
        result = run_import(importer, actor, path)
        workspace_id = result.workspace.id
        assert (result.statistics.families, result.statistics.errors) == (2, 0)

        people = persons_by_gedcom_id(database, workspace_id)
        couples = {c.gedcom_id: c for c in database.list_couples(workspace_id)}
        first, second = couples["@F1@"], couples["@F2@"]
        assert first.id != second.id
        assert first.partner_ids == {people["@I1@"].id, people["@I2@"].id}
        assert second.partner_ids == {people["@I1@"].id, people["@I3@"].id}

        carl, dora = people["@I4@"], people["@I5@"]
        assert (carl.mother_id, carl.parents_id) == (people["@I2@"].id, first.id)
        assert (dora.mother_id, dora.parents_id) == (people["@I3@"].id, second.id)
        assert carl.father_id == dora.father_id == people["@I1@"].id


class TestPerRecordErrors:
    """Tests for partial-failure tolerance."""

    def test_bad_individual_skipped(self, importer, database, actor, write_gedcom, gedcom_body, caplog):
        long_name = "x" * 300
        path = write_gedcom(gedcom_body(
            f"0 @I1@ INDI\n1 NAME {long_name} /Smith/\n"
            "0 @I2@ INDI\n1 NAME Jane /Doe/\n"
        ))
        with caplog.at_level(logging.WARNING, logger="genealogy_importer"):
            result = run_import(importer, actor, path)

        assert (result.statistics.individuals, result.statistics.errors) == (1, 1)
        assert [p.gedcom_id for p in database.list_persons(result.workspace.id)] == ["@I2@"]
        assert "Skipped @I1@" in caplog.text

    def test_individual_total(self, importer, actor, write_gedcom, gedcom_body):
        """Test individuals equals INDI records minus those that failed."""
        path = write_gedcom(gedcom_body(
            "0 @I1@ INDI\n1 NAME A /B/\n"
            f"0 @I2@ INDI\n1 NAME C /{'y' * 256}/\n"
            "0 @I3@ INDI\n"
            "0 @I4@ INDI\n1 NAME D /E/\n"
        ))
        stats = run_import(importer, actor, path).statistics
        assert stats.individuals == 3
        assert stats.individuals + stats.errors == 4

    def test_unindexed_individuals_counted(self, importer, database, actor, write_gedcom,
                                           gedcom_body, caplog):
        """Test INDI roots with a duplicate or missing id count as errors."""
        path = write_gedcom(gedcom_body(
            "0 @I1@ INDI\n1 NAME A /B/\n"
            "0 @I1@ INDI\n1 NAME C /D/\n"
            "0 INDI\n1 NAME E /F/\n"
        ))
        with caplog.at_level(logging.WARNING, logger="genealogy_importer"):
            result = run_import(importer, actor, path)
        stats = result.statistics

        assert (stats.individuals, stats.errors) == (1, 2)
        assert stats.individuals + stats.errors == 3
        assert [p.firstname for p in database.list_persons(result.workspace.id)] == ["A"]
        assert "Skipped @I1@: Duplicate cross-reference id for INDI record" in caplog.text
        assert "Skipped line 10: Missing cross-reference id for INDI record" in caplog.text

    def test_unindexed_families_counted(self, importer, actor, write_gedcom, gedcom_body):
        path = write_gedcom(gedcom_body(
            "0 @I1@ INDI\n1 NAME A /B/\n"
            "0 @F1@ FAM\n1 HUSB @I1@\n"
            "0 @F1@ FAM\n1 WIFE @I1@\n"
            "0 FAM\n1 WIFE @I1@\n"
        ))
        stats = run_import(importer, actor, path).statistics
        assert (stats.individuals, stats.families, stats.errors) == (1, 1, 2)

    def test_same_person_as_both_spouses(self, importer, database, actor, write_gedcom, gedcom_body):
        path = write_gedcom(gedcom_body(
            "0 @I1@ INDI\n1 NAME Pat /Smith/\n"
            "0 @F1@ FAM\n1 HUSB @I1@\n1 WIFE @I1@\n"
        ))
        result = run_import(importer, actor, path)

        assert (result.statistics.families, result.statistics.errors) == (0, 1)
        assert database.list_couples(result.workspace.id) == []

    def test_unresolvable_child(self, importer, database, actor, write_gedcom, gedcom_body):
        """Test a missing child is counted and its siblings still linked."""
        path = write_gedcom(gedcom_body(
            "0 @I1@ INDI\n1 NAME John /Smith/\n"
            "0 @I2@ INDI\n1 NAME Jane /Doe/\n"
            "0 @I3@ INDI\n1 NAME Kid /Smith/\n"
            "0 @F1@ FAM\n1 HUSB @I1@\n1 WIFE @I2@\n1 CHIL @I9@\n1 CHIL @I3@\n"
        ))
        result = run_import(importer, actor, path)

        assert (result.statistics.families, result.statistics.errors) == (1, 1)
        kid = persons_by_gedcom_id(database, result.workspace.id)["@I3@"]
        assert kid.parents_id is not None

    def test_single_parent_family(self, importer, database, actor, write_gedcom, gedcom_body):
        path = write_gedcom(gedcom_body(
            "0 @I1@ INDI\n1 NAME Jane /Doe/\n1 SEX F\n"
            "0 @I2@ INDI\n1 NAME Kid /Doe/\n"
            "0 @F1@ FAM\n1 WIFE @I1@\n1 CHIL @I2@\n"
        ))
        result = run_import(importer, actor, path)
        people = persons_by_gedcom_id(database, result.workspace.id)
        couple = database.list_couples(result.workspace.id)[0]
        kid = people["@I2@"]

        assert couple.person1_id is None
        assert couple.person2_id == people["@I1@"].id
        assert (kid.father_id, kid.mother_id, kid.parents_id) == (None, people["@I1@"].id, couple.id)

    def test_parents_match_couple(self, importer, database, actor, sample_gedcom_file: Path):
        """Test every parents_id couple is exactly the father/mother pair."""
        result = run_import(importer, actor, sample_gedcom_file)
        couples = {c.id: c for c in database.list_couples(result.workspace.id)}
        for person in database.list_persons(result.workspace.id):
            if person.parents_id is not None:
                pair = couples[person.parents_id].partner_ids
                assert pair == {person.father_id, person.mother_id}


class TestPersonConstruction:
    """Tests for Person field mapping."""

    def test_year_fallback(self, importer, database, actor, write_gedcom, gedcom_body):
        path = write_gedcom(gedcom_body(
            "0 @I1@ INDI\n1 NAME Old /Timer/\n1 SEX U\n"
            "1 BIRT\n2 DATE BET 1850 AND 1860\n2 PLAC Ghent\n"
            "1 DEAT Y\n"
        ))
        result = run_import(importer, actor, path)
        person = database.list_persons(result.workspace.id)[0]

        assert person.dob is None
        assert person.yob == 1850
        assert person.pob == "Ghent"
        assert person.dod is None
        assert person.yod is None
        assert person.sex is Sex.OTHER

    def test_birth_name_and_nickname(self, importer, database, actor, write_gedcom, gedcom_body):
        path = write_gedcom(gedcom_body(
            "0 @I1@ INDI\n"
            "1 NAME Mary /Jones/\n2 NICK Molly\n"
            "1 NAME Mary /Brown/\n2 TYPE birth\n"
            "1 SEX F\n"
        ))
        result = run_import(importer, actor, path)
        person = database.list_persons(result.workspace.id)[0]

        assert (person.firstname, person.surname) == ("Mary", "Jones")
        assert person.nickname == "Molly"
        assert person.birthname == "Brown"


class TestTransactionContract:
    """Tests for all-or-nothing behaviour on infrastructure failure."""

    def count(self, database: GenealogyDatabase, table: str) -> int:
        return database.conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]

    def test_missing_file(self, importer, database, actor, tmp_path: Path):
        with pytest.raises(GedcomImportError):
            run_import(importer, actor, tmp_path / "missing.ged")
        assert self.count(database, "workspaces") == 0

    def test_invalid_workspace_name(self, importer, actor, sample_gedcom_file: Path):
        with pytest.raises(GedcomImportError):
            run_import(importer, actor, sample_gedcom_file, name="")

    def test_storage_failure_rolls_back(self, importer, database, actor, sample_gedcom_file: Path,
                                        monkeypatch):
        def broken_add_couple(couple):
            raise StorageError("insert into couples", "disk I/O error")

        monkeypatch.setattr(database, "add_couple", broken_add_couple)

        with pytest.raises(GedcomImportError) as exc_info:
            run_import(importer, actor, sample_gedcom_file)

        assert isinstance(exc_info.value.__cause__, StorageError)
        assert self.count(database, "workspaces") == 0
        assert self.count(database, "persons") == 0
        assert not database.in_transaction

    def test_audit_hook(self, database, actor, sample_gedcom_file: Path):
        events = []
        importer = GedcomImporter(database, audit=lambda *args: events.append(args))
        result = run_import(importer, actor, sample_gedcom_file)

        assert len(events) == 1
        event, audited_actor, details = events[0]
        assert event == "gedcom_import"
        assert audited_actor == actor
        assert details["workspace_id"] == result.workspace.id
        assert details["individuals"] == 3

    def test_import_gedcom_function(self, database, actor, sample_gedcom_file: Path):
        result = import_gedcom(database, "Tree", None, "family.ged", actor, sample_gedcom_file)
        assert result.success
        assert database.get_statistics(result.workspace.id)["persons"] == 3

    def test_separate_runs_use_separate_workspaces(self, importer, database, actor,
                                                   sample_gedcom_file: Path):
        first = run_import(importer, actor, sample_gedcom_file)
        second = run_import(importer, actor, sample_gedcom_file)

        assert first.workspace.id != second.workspace.id
        assert len(database.list_persons(first.workspace.id)) == 3
        assert len(database.list_persons(second.workspace.id)) == 3


class TestRecordOutcome:
    """Tests for RecordOutcome."""

    def test_factories(self):
        assert RecordOutcome.success("@I1@") == RecordOutcome("@I1@", True, None)
        failed = RecordOutcome.failure("@F1@", "no spouse")
        assert not failed.ok
        assert failed.error == "no spouse"
