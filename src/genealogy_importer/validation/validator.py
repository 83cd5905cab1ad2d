"""
Structural and content validation of GEDCOM files.

Read-only: the validator inspects a parsed tree and produces an advisory
ValidationReport. It never persists anything and keeps no state between
calls, so it is safe to call repeatedly or concurrently.

Checks, in order:
1. File structure (non-empty, HEAD first, TRLR last, BOM, parse anomalies)
2. Header semantics (GEDCOM version, source application, charset)
3. Volume (no individuals, very large files)
4. Individual records (names, surname delimiters, sex)
5. Family records (spouses and children)
6. Referential integrity (FAMC/FAMS, HUSB/WIFE/CHIL)
7. Content safety (malicious payload signatures)
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from genealogy_importer.config import ImporterSettings, load_settings
from genealogy_importer.core.gedcom import GedcomTree, ParseError, parse
from genealogy_importer.core.models import (
    Severity,
    ValidationIssue,
    ValidationReport,
    ValidationStats,
)
from genealogy_importer.core.records import IndividualRecord
from genealogy_importer.validation.signatures import ContentScanner

logger = logging.getLogger("genealogy_importer.validation")

EXPORT_AS_55 = (
    "Try exporting from your genealogy software using GEDCOM 5.5 format."
)

SIGNATURE_LABELS = {
    "script": "an embedded script",
    "code": "embedded program code",
    "sql": "a database command",
    "nested_gedcom": "nested GEDCOM records",
}

# Parser diagnostics -> (severity, type, category)
DIAGNOSTIC_RULES = {
    "malformed_line": (Severity.ERROR, "structure", "parsing"),
    "orphan_line": (Severity.ERROR, "structure", "parsing"),
    "orphan_continuation": (Severity.ERROR, "structure", "parsing"),
    "duplicate_xref": (Severity.ERROR, "reference", "duplicate_id"),
    "level_jump": (Severity.WARNING, "structure", "file_structure"),
    "encoding": (Severity.WARNING, "encoding", "encoding"),
}


class GedcomValidator:
    """
    Validates GEDCOM files before import.

    Produces issues (errors that block import), warnings (including
    informational notices) and deterministic recommendations.
    """

    def __init__(self, settings: ImporterSettings | None = None):
        self.settings = settings or load_settings()
        self.scanner = ContentScanner(self.settings.signatures)

    def validate(self, source: str | Path | GedcomTree) -> ValidationReport:
        """
        Validate a GEDCOM file or an already parsed tree.

        Malformed content becomes issues and warnings; only an unreadable
        file raises ParseError.
        """
        report = ValidationReport()

        if isinstance(source, GedcomTree):
            tree = source
            logger.info(f"Starting GEDCOM validation: {tree.source_path or '<tree>'}")
        else:
            path = Path(source)
            logger.info(f"Starting GEDCOM validation: {path}")
            try:
                size = path.stat().st_size
            except OSError as e:
                raise ParseError(path, e.strerror or str(e)) from e
            report.stats.file_size = size
            if size > self.settings.max_file_size:
                self._issue(
                    report, "critical", "size",
                    f"File is {size} bytes, larger than the {self.settings.max_file_size} byte limit",
                    "file_level",
                )
                return self._finish(report)
            tree = parse(path)

        report.stats.file_size = tree.file_size
        report.stats.lines = tree.line_count

        self._check_file_structure(tree, report)
        if not tree.is_empty:
            self._check_diagnostics(tree, report)
            self._check_header(tree, report)
            self._check_volume(tree, report)
            self._check_individuals(tree, report)
            self._check_families(tree, report)
            self._check_references(tree, report)
            self._check_content(tree, report)

        return self._finish(report)

    def _finish(self, report: ValidationReport) -> ValidationReport:
        report.recommendations = self._recommendations(report)
        logger.info(
            f"GEDCOM validation completed: valid={report.valid}, "
            f"{len(report.issues)} issues, {len(report.warnings)} warnings"
        )
        return report

    # =========================================
    # Recording helpers
    # =========================================

    @staticmethod
    def _issue(report: ValidationReport, type_: str, category: str, message: str,
               location: str, suggestion: str | None = None) -> None:
        report.issues.append(ValidationIssue(
            type=type_,
            category=category,
            message=message,
            location=location,
            severity=Severity.ERROR,
            suggestion=suggestion,
        ))

    @staticmethod
    def _warn(report: ValidationReport, type_: str, category: str, message: str,
              location: str, suggestion: str | None = None,
              severity: Severity = Severity.WARNING) -> ValidationIssue:
        warning = ValidationIssue(
            type=type_,
            category=category,
            message=message,
            location=location,
            severity=severity,
            suggestion=suggestion,
        )
        report.warnings.append(warning)
        return warning

    # =========================================
    # 1. File structure
    # =========================================

    def _check_file_structure(self, tree: GedcomTree, report: ValidationReport) -> None:
        if tree.is_empty:
            message = "File is empty" if not tree.line_count else "No valid lines found in file"
            self._issue(report, "critical", "file_structure", message, "file_level")
            return

        if tree.has_bom:
            self._warn(
                report, "encoding", "file_structure",
                "File contains UTF-8 BOM which may cause parsing issues",
                "file_header",
                "Consider removing BOM or using UTF-8 without BOM encoding",
            )

        first = tree.records[0]
        if first.tag != "HEAD":
            self._issue(
                report, "critical", "file_structure",
                f'Invalid GEDCOM header. Expected "0 HEAD", found: {first.tag}',
                f"line_{first.line_number}",
            )

        last = tree.records[-1]
        if last.tag != "TRLR":
            self._warn(
                report, "structure", "file_structure",
                'Missing or invalid GEDCOM trailer. Expected "0 TRLR"',
                "file_end",
                'GEDCOM files should end with "0 TRLR"',
            )

    def _check_diagnostics(self, tree: GedcomTree, report: ValidationReport) -> None:
        """Surface parser anomalies; newer-format failures become version issues."""
        newer = tree.diagnostics_of("newer_format")
        if newer:
            tags = sorted({d.message.split()[1] for d in newer})
            self._issue(
                report, "critical", "version",
                f"GEDCOM contains newer format fields that are not supported: {', '.join(tags)}",
                "file_level",
                "This appears to be a GEDCOM 7.0 file. Please export your family tree "
                "using GEDCOM 5.5 format for compatibility.",
            )

        for diagnostic in tree.diagnostics_of("unknown_record"):
            self._issue(
                report, "critical", "version",
                f"GEDCOM version compatibility issue: {diagnostic.message}",
                f"line_{diagnostic.line_number}",
                "This file appears to use GEDCOM features not supported by the "
                "current parser. " + EXPORT_AS_55,
            )

        reported = 0
        remaining = 0
        for diagnostic in tree.diagnostics:
            rule = DIAGNOSTIC_RULES.get(diagnostic.kind)
            if rule is None:
                continue
            if reported >= self.settings.max_reported_diagnostics:
                remaining += 1
                continue
            reported += 1

            severity, type_, category = rule
            location = f"line_{diagnostic.line_number}" if diagnostic.line_number else "file_level"
            if severity is Severity.ERROR:
                self._issue(report, type_, category, diagnostic.message, location)
            else:
                self._warn(report, type_, category, diagnostic.message, location)

        if remaining:
            self._warn(
                report, "validation", "parsing",
                f"{remaining} further parsing problems were not listed individually",
                "file_level",
            )

    # =========================================
    # 2. Header
    # =========================================

    def _check_header(self, tree: GedcomTree, report: ValidationReport) -> None:
        header = tree.header
        report.stats.version = header.version
        report.stats.source = header.source
        report.stats.encoding = header.encoding

        if header.version and not self.settings.is_version_supported(header.version):
            self._warn(
                report, "compatibility", "version",
                f"GEDCOM version {header.version} may have compatibility issues. "
                "Recommended: 5.5.x",
                "header",
                "Consider exporting from your genealogy software using GEDCOM 5.5 format",
            )

        if header.encoding and header.encoding.strip().upper() not in ("UTF-8", "UTF8"):
            self._warn(
                report, "encoding", "encoding",
                f"Character encoding '{header.encoding}' may cause display issues. "
                "UTF-8 recommended.",
                "header",
                "Export GEDCOM using UTF-8 encoding if possible",
            )

    # =========================================
    # 3. Volume
    # =========================================

    def _check_volume(self, tree: GedcomTree, report: ValidationReport) -> None:
        report.stats.individuals = len(tree.individuals)
        report.stats.families = len(tree.families)

        if report.stats.individuals == 0:
            self._issue(
                report, "content", "data",
                "No individuals found in GEDCOM file",
                "file_level",
            )
        elif report.stats.individuals > self.settings.max_individuals:
            self._warn(
                report, "performance", "size",
                f"Large number of individuals ({report.stats.individuals}). "
                "Import may take significant time.",
                "file_level",
                "Consider importing during low-traffic periods",
                severity=Severity.INFO,
            )

    # =========================================
    # 4. Individuals
    # =========================================

    def _check_individuals(self, tree: GedcomTree, report: ValidationReport) -> None:
        issue_count = 0
        for individual in tree.individual_records():
            issue_count += self._check_individual(individual, report)

            if issue_count > self.settings.max_individual_issues:
                self._warn(
                    report, "validation", "data_quality",
                    f"Validation stopped after {self.settings.max_individual_issues} "
                    "individual issues. There may be more data quality problems.",
                    "individuals",
                    "Review and clean data in source application before import",
                )
                break

    def _check_individual(self, individual: IndividualRecord, report: ValidationReport) -> int:
        """Record findings for one individual and return how many there were."""
        location = f"individual_{individual.xref}"
        found = 0

        if not individual.names:
            self._warn(
                report, "data", "missing_data",
                f"Individual {individual.xref} has no name records",
                location,
                "Add name information for better genealogy records",
            )
            found += 1
        for name in individual.names:
            if name.full and not name.has_surname_delimiters:
                self._warn(
                    report, "format", "name_format",
                    f"Individual {individual.xref} has name without surname "
                    f"delimiters: {name.full}",
                    location,
                    "GEDCOM names should use /Surname/ format",
                    severity=Severity.INFO,
                )
                found += 1

        if not individual.sex:
            self._warn(
                report, "data", "missing_data",
                f"Individual {individual.xref} has no sex/gender specified",
                location,
                "Adding sex information helps with family relationship validation",
                severity=Severity.INFO,
            )
            found += 1

        return found

    # =========================================
    # 5. Families
    # =========================================

    def _check_families(self, tree: GedcomTree, report: ValidationReport) -> None:
        for family in tree.family_records():
            if family.spouses:
                continue
            xref = family.xref
            location = f"family_{xref}"
            if family.children:
                self._warn(
                    report, "data", "family_structure",
                    f"Family {xref} has children but no spouses defined",
                    location,
                    "Families should have at least one spouse defined",
                )
            else:
                self._warn(
                    report, "data", "family_structure",
                    f"Family {xref} has no members (no spouses or children)",
                    location,
                    "Consider removing empty family records",
                )

    # =========================================
    # 6. References
    # =========================================

    def _check_references(self, tree: GedcomTree, report: ValidationReport) -> None:
        for individual in tree.individual_records():
            xref = individual.xref
            for tag, refs in (("FAMC", individual.child_of), ("FAMS", individual.spouse_of)):
                for family_id in refs:
                    if family_id not in tree.families:
                        self._issue(
                            report, "reference", "broken_reference",
                            f"Individual {xref} references non-existent family "
                            f"{family_id} ({tag})",
                            f"individual_{xref}",
                        )

        for family in tree.family_records():
            xref = family.xref
            members = [("HUSB", family.husband), ("WIFE", family.wife)]
            members += [("CHIL", child) for child in family.children]
            for tag, person_id in members:
                if person_id and person_id not in tree.individuals:
                    self._issue(
                        report, "reference", "broken_reference",
                        f"Family {xref} references non-existent individual "
                        f"{person_id} ({tag})",
                        f"family_{xref}",
                    )

    # =========================================
    # 7. Content safety
    # =========================================

    def _check_content(self, tree: GedcomTree, report: ValidationReport) -> None:
        found = 0
        for match in self.scanner.scan(tree.records):
            found += 1
            if found > self.settings.max_security_findings:
                continue
            owner = match.record.xref or match.record.tag
            self._issue(
                report, "security", "security",
                f"Field {match.node.tag} of {owner} contains "
                f"{SIGNATURE_LABELS.get(match.family, match.family)}",
                f"line_{match.node.line_number}",
                "Remove the suspicious content in your genealogy software and re-export",
            )

        if found > self.settings.max_security_findings:
            self._issue(
                report, "security", "security",
                f"{found - self.settings.max_security_findings} further suspicious "
                "field values were not listed individually",
                "file_level",
            )

    # =========================================
    # Recommendations
    # =========================================

    def _recommendations(self, report: ValidationReport) -> list[str]:
        """Deterministic advice derived from which categories fired."""
        recommendations = []
        issue_types = report.categories("issues")
        warning_types = report.categories("warnings")
        stats = report.stats

        if not report.issues and not report.warnings:
            recommendations.append("File appears to be valid and ready for import.")

        if report.issues:
            recommendations.append("Fix critical issues before attempting import to ensure success.")

        if "security" in issue_types:
            recommendations.append(
                "Suspicious content was found in field values. Do not import this file "
                "until its origin has been verified."
            )

        if "size" in issue_types:
            recommendations.append("Split the file into smaller exports before importing.")

        if "parsing" in issue_types or "duplicate_id" in issue_types:
            recommendations.append(
                "Repair malformed lines and duplicate record IDs in your genealogy software, "
                "then export again."
            )

        if "broken_reference" in issue_types:
            recommendations.append(
                "Repair broken family/individual references in your genealogy software."
            )

        if "version" in warning_types or "version" in issue_types:
            recommendations.append("Export using GEDCOM 5.5 format for best compatibility.")
            recommendations.append(
                "In Family Tree Maker: File → Export → GEDCOM, then select version 5.5."
            )

        if "encoding" in warning_types:
            recommendations.append("Use UTF-8 encoding when exporting GEDCOM files.")

        if "name_format" in warning_types:
            recommendations.append(
                "Ensure surnames are properly formatted with /Surname/ delimiters."
            )

        if stats.individuals > self.settings.large_import_threshold:
            recommendations.append("Large import - consider importing during off-peak hours.")

        source = (stats.source or "").lower()
        if "family tree maker" in source or "ftm" in source:
            recommendations.append(
                "Family Tree Maker detected: Ensure you are exporting in GEDCOM 5.5 "
                "format for compatibility."
            )

        if stats.version and _version_tuple(stats.version) >= (6, 0):
            recommendations.append(
                f"GEDCOM version {stats.version} detected: This newer format may cause "
                "import issues. Please export using GEDCOM 5.5."
            )

        return recommendations


def _version_tuple(version: str) -> tuple[int, ...]:
    """Leading numeric components of a version string, e.g. '7.0.1' -> (7, 0, 1)."""
    parts = []
    for piece in version.strip().split("."):
        match = re.match(r"\d+", piece)
        if not match:
            break
        parts.append(int(match.group()))
    return tuple(parts)


def validate(source: str | Path | GedcomTree,
             settings: ImporterSettings | None = None) -> ValidationReport:
    """Validate a GEDCOM file or parsed tree with the given or default settings."""
    return GedcomValidator(settings).validate(source)
