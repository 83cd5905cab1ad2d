"""
Upload pre-conditions checked by callers before validation and import.

The library core trusts its input path; these checks belong to whoever
accepts files from users (the CLI here).
"""

from __future__ import annotations

import re
from pathlib import Path

from genealogy_importer.config import ImporterSettings
from genealogy_importer.core.encoding import UTF16_BOMS
from genealogy_importer.validation.signatures import ContentScanner

BINARY_SNIFF_BYTES = 8192

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_TRAVERSAL = re.compile(r"(^|[\\/])\.\.([\\/]|$)|%2e%2e", re.IGNORECASE)


def check_filename(filename: str) -> list[str]:
    """Problems with a user-supplied filename."""
    problems = []
    if _CONTROL_CHARS.search(filename):
        problems.append("Filename contains control characters")
    if _TRAVERSAL.search(filename) or "/" in filename or "\\" in filename:
        problems.append("Filename must not contain path components")
    return problems


def check_upload(path: str | Path, settings: ImporterSettings,
                 original_filename: str | None = None) -> list[str]:
    """
    Check an uploaded GEDCOM file against the caller-side allow-lists.

    Args:
        path: Where the upload is stored
        settings: Supplies allowed extensions and the size limit
        original_filename: Name the user gave the file, defaults to path's name

    Returns:
        Human-readable problems; empty when the upload is acceptable
    """
    path = Path(path)
    filename = original_filename or path.name
    problems = check_filename(filename)

    suffix = Path(filename).suffix.lower()
    allowed = [ext.lower() for ext in settings.allowed_extensions]
    if suffix not in allowed:
        problems.append(
            f"File type '{suffix or filename}' is not allowed; expected one of {', '.join(allowed)}"
        )

    if not path.is_file():
        problems.append(f"File not found: {path}")
        return problems

    size = path.stat().st_size
    if size > settings.max_file_size:
        problems.append(f"File is {size} bytes, larger than the {settings.max_file_size} byte limit")
        return problems

    with open(path, "rb") as f:
        head = f.read(BINARY_SNIFF_BYTES)
    if b"\x00" in head and not head.startswith(UTF16_BOMS):
        problems.append("File appears to be binary, not GEDCOM text")

    return problems


def check_text_field(label: str, value: str | None, scanner: ContentScanner) -> list[str]:
    """Screen a free-text form value such as a workspace name."""
    if not value:
        return []
    if _CONTROL_CHARS.search(value):
        return [f"The {label} contains control characters"]
    if scanner.match(value):
        return [f"The {label} contains content not suitable for genealogy data"]
    return []
