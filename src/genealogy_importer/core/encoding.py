"""
Character-set handling for GEDCOM input.

GEDCOM files declare their encoding in ``HEAD.CHAR``. The declaration is
read from a Latin-1 sniff of the start of the file (the header is plain
ASCII in every supported charset), mapped to a Python codec and used to
decode the whole file. Unsupported charsets degrade to best-effort
decoding instead of failing.
"""

from __future__ import annotations

import codecs
import re
from dataclasses import dataclass, field

UTF8_BOM = codecs.BOM_UTF8
UTF16_BOMS = (codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)

SNIFF_BYTES = 4096

# GEDCOM CHAR values -> Python codecs
CHARSET_CODECS = {
    "UTF-8": "utf-8",
    "UTF8": "utf-8",
    "UNICODE": "utf-16",
    "UTF-16": "utf-16",
    "ASCII": "utf-8",  # ASCII is a strict subset
    "ANSI": "cp1252",
    "WINDOWS-1252": "cp1252",
    "CP1252": "cp1252",
    "IBMPC": "cp437",
    "IBM WINDOWS": "cp1252",
    "LATIN1": "latin-1",
    "ISO-8859-1": "latin-1",
    "ISO8859-1": "latin-1",
}

_CHAR_LINE = re.compile(r"^\s*1\s+CHAR\s+(.+?)\s*$", re.MULTILINE)


@dataclass
class DecodedText:
    """Result of decoding a GEDCOM byte stream."""
    text: str
    codec: str
    declared: str | None = None
    has_bom: bool = False
    notes: list[str] = field(default_factory=list)


def sniff_declared_charset(raw: bytes) -> str | None:
    """Read the HEAD.CHAR value from the first bytes of a file."""
    head = raw[:SNIFF_BYTES]
    if head.startswith(UTF16_BOMS):
        try:
            sample = head.decode("utf-16", errors="ignore")
        except UnicodeError:
            return None
    else:
        sample = head.decode("latin-1")
    match = _CHAR_LINE.search(sample)
    if not match:
        return None
    return match.group(1).strip()


def codec_for(declared: str | None) -> str | None:
    """Map a declared GEDCOM charset to a Python codec, None if unsupported."""
    if not declared:
        return "utf-8"
    return CHARSET_CODECS.get(declared.strip().upper())


def decode_gedcom(raw: bytes) -> DecodedText:
    """
    Decode raw GEDCOM bytes.

    Handles:
    - UTF-8 BOM (stripped and flagged)
    - UTF-16 BOMs (decoded as UTF-16 regardless of declaration)
    - Declared charsets from HEAD.CHAR
    - Unsupported charsets and invalid bytes (best-effort with notes)
    """
    declared = sniff_declared_charset(raw)
    notes: list[str] = []

    if raw.startswith(UTF8_BOM):
        text, codec, extra = _decode_with_fallback(raw[len(UTF8_BOM):], "utf-8")
        return DecodedText(text, codec, declared, has_bom=True, notes=extra)

    if raw.startswith(UTF16_BOMS):
        text, codec, extra = _decode_with_fallback(raw, "utf-16")
        return DecodedText(text.lstrip("\ufeff"), codec, declared, has_bom=True, notes=extra)

    codec = codec_for(declared)
    if codec is None:
        notes.append(
            f"Unsupported character set '{declared}', decoding on a best-effort basis"
        )
        codec = "utf-8"
    elif codec == "utf-16":
        # UNICODE without a BOM is almost always mislabelled UTF-8
        codec = "utf-8"

    text, used, extra = _decode_with_fallback(raw, codec)
    notes.extend(extra)
    return DecodedText(text, used, declared, has_bom=False, notes=notes)


def _decode_with_fallback(raw: bytes, codec: str) -> tuple[str, str, list[str]]:
    """Decode strictly, then fall back to Latin-1 or replacement decoding."""
    try:
        return raw.decode(codec), codec, []
    except UnicodeDecodeError as e:
        note = f"Invalid {codec} byte sequence at offset {e.start}"

    if codec == "utf-8":
        # Latin-1 never fails; only use it when the bytes are clearly not UTF-8
        replaced = raw.decode("utf-8", errors="replace")
        if replaced.count("\ufffd") > max(1, len(replaced) // 200):
            return raw.decode("latin-1"), "latin-1", [f"{note}, decoded as latin-1"]
        return replaced, codec, [f"{note}, invalid bytes replaced"]

    return raw.decode(codec, errors="replace"), codec, [f"{note}, invalid bytes replaced"]
