"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Generator

import pytest

from genealogy_importer.config import ImporterSettings, load_settings
from genealogy_importer.core.models import Actor
from genealogy_importer.importer.gedcom_import import GedcomImporter
from genealogy_importer.storage.database import GenealogyDatabase


# =============================================================================
# GEDCOM Fixtures
# =============================================================================

@pytest.fixture
def sample_gedcom_content() -> str:
    """Sample minimal GEDCOM file content."""
    return """0 HEAD
1 SOUR Genealogy Importer
2 VERS 0.1.0
1 GEDC
2 VERS 5.5.1
2 FORM LINEAGE-LINKED
1 CHAR UTF-8
0 @I001@ INDI
1 NAME Jean Joseph /HERINCKX/
1 SEX M
1 BIRT
2 DATE 15 MAR 1895
2 PLAC Tervuren, Brabant, Belgium
1 DEAT
2 DATE 22 AUG 1962
2 PLAC Detroit, Wayne, Michigan, USA
1 FAMS @F001@
0 @I002@ INDI
1 NAME Marie Catherine /DE SMET/
1 SEX F
1 FAMS @F001@
0 @I003@ INDI
1 NAME Victor /HERINCKX/
1 SEX M
1 FAMC @F001@
0 @F001@ FAM
1 HUSB @I001@
1 WIFE @I002@
1 CHIL @I003@
1 MARR
2 DATE 12 JUN 1890
2 PLAC Overijse, Brabant, Belgium
0 TRLR
"""


@pytest.fixture
def sample_gedcom_file(tmp_path: Path, sample_gedcom_content: str) -> Path:
    """Create a temporary GEDCOM file."""
    gedcom_path = tmp_path / "test_family.ged"
    gedcom_path.write_text(sample_gedcom_content, encoding="utf-8")
    return gedcom_path


@pytest.fixture
def write_gedcom(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing GEDCOM text (or bytes) to a temporary file."""
    def _write(content: str | bytes, name: str = "upload.ged") -> Path:
        path = tmp_path / name
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
        return path
    return _write


HEADER = """0 HEAD
1 SOUR Test
1 GEDC
2 VERS 5.5.1
1 CHAR UTF-8
"""


@pytest.fixture
def gedcom_body() -> Callable[[str], str]:
    """Wrap record lines in a valid header and trailer."""
    def _wrap(body: str) -> str:
        return HEADER + body.strip("\n") + "\n0 TRLR\n"
    return _wrap


# =============================================================================
# Settings Fixtures
# =============================================================================

@pytest.fixture
def settings() -> ImporterSettings:
    """Bundled default settings."""
    return load_settings()


# =============================================================================
# Storage Fixtures
# =============================================================================

@pytest.fixture
def database() -> Generator[GenealogyDatabase, None, None]:
    """An initialized in-memory database."""
    db = GenealogyDatabase(":memory:")
    db.connect()
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def actor() -> Actor:
    """The user running imports."""
    return Actor(id="user-42", name="Ada Genealogist", email="ada@example.org")


@pytest.fixture
def importer(database: GenealogyDatabase) -> GedcomImporter:
    """Importer bound to the in-memory database."""
    return GedcomImporter(database)
