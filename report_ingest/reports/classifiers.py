"""Report type and institution classification for worksheets."""

import re
from dataclasses import dataclass
from typing import FrozenSet, List, Optional, Sequence, Tuple

from structlog import get_logger

from report_ingest.database.models import Institution, ReportType
from report_ingest.exceptions import ClassificationConflict, log_error_with_context
from report_ingest.processors.workbook import RawSheet
from report_ingest.reports.normalization import row_text

logger = get_logger()

SIGNATURE_ROWS = 50

AGING_MARKERS = ("< 10", "<10", "DAYS", "10-15", "10 - 15", "15-21", "15 - 21")

_WHITESPACE = re.compile(r"\s+")

# JSB is always tried before JUD within the same source text
INSTITUTION_PATTERNS = [
    (Institution.JSB, re.compile(r"(?<![A-Z0-9])J\s?S\s?B(?![A-Z0-9])")),
    (Institution.JUD, re.compile(r"(?<![A-Z0-9])J\s?U\s?D(?![A-Z0-9])")),
]


@dataclass(frozen=True)
class ReportSignature:
    """Flattened view of the leading rows of a sheet."""
    text: str
    tokens: FrozenSet[str]
    max_columns: int
    row_count: int

    @classmethod
    def from_sheet(cls, sheet: RawSheet, limit: int = SIGNATURE_ROWS) -> "ReportSignature":
        rows = sheet.rows[:limit]
        text = _WHITESPACE.sub(" ", " ".join(row_text(row) for row in rows)).strip()
        return cls(
            text=text,
            tokens=frozenset(text.split()),
            max_columns=max((len(row) for row in rows), default=0),
            row_count=sheet.row_count
        )

    def contains(self, keyword: str) -> bool:
        return keyword in self.text


@dataclass(frozen=True)
class ClassificationRule:
    """All of `all_of` present, plus one keyword from each `any_of` group."""
    name: str
    report_type: ReportType
    all_of: Tuple[str, ...] = ()
    any_of: Tuple[Tuple[str, ...], ...] = ()

    def matches(self, signature: ReportSignature) -> bool:
        if not all(signature.contains(k) for k in self.all_of):
            return False
        return all(any(signature.contains(k) for k in group) for group in self.any_of)


# Evaluated top to bottom; the aging override must stay first.
CLASSIFICATION_RULES: List[ClassificationRule] = [
    ClassificationRule(
        name="outstanding_aging_override",
        report_type=ReportType.OUTSTANDING,
        all_of=("DEALER",),
        any_of=(("PENDING", "OUTSTANDING"), AGING_MARKERS),
    ),
    ClassificationRule(name="pjp_user_id", report_type=ReportType.PJP, all_of=("USER ID",)),
    ClassificationRule(
        name="collection_voucher",
        report_type=ReportType.COLLECTION,
        all_of=("VOUCHER", "PARTY", "DATE"),
    ),
    ClassificationRule(
        name="projection_vs_actual",
        report_type=ReportType.PROJECTION_VS_ACTUAL,
        all_of=("ACTUAL ORDER", "DO DONE"),
    ),
    ClassificationRule(
        name="projection_zone_dealer",
        report_type=ReportType.PROJECTION,
        all_of=("ZONE", "DEALER", "AMOUNT"),
    ),
    ClassificationRule(
        name="outstanding_security_deposit",
        report_type=ReportType.OUTSTANDING,
        all_of=("SECURITY", "PENDING"),
    ),
]

# Subject hints, most specific phrase first
SUBJECT_HINTS: List[Tuple[Tuple[str, ...], ReportType]] = [
    (("PROJECTION VS ACTUAL", "VS ACTUAL"), ReportType.PROJECTION_VS_ACTUAL),
    (("PJP",), ReportType.PJP),
    (("OUTSTANDING", "AGEING", "AGING"), ReportType.OUTSTANDING),
    (("PROJECTION",), ReportType.PROJECTION),
    (("COLLECTION",), ReportType.COLLECTION),
]


@dataclass(frozen=True)
class ClassifiedSheet:
    """A worksheet with its decided report type and institution."""
    sheet: RawSheet
    report_type: ReportType
    institution: Optional[Institution]


def detect_institution(sources: Sequence[Optional[str]]) -> Optional[Institution]:
    """First institution marker found, scanning sources in order."""
    for source in sources:
        if not source:
            continue
        text = str(source).upper()
        for institution, pattern in INSTITUTION_PATTERNS:
            if pattern.search(text):
                return institution
    return None


class ReportClassifier:
    """Decide the report type of a worksheet from its structure and mail subject."""

    def __init__(self, rules: Optional[List[ClassificationRule]] = None):
        self.rules = rules if rules is not None else CLASSIFICATION_RULES

    def classify_structure(self, sheet: RawSheet) -> ReportType:
        return self.classify_signature(ReportSignature.from_sheet(sheet), sheet.name)

    def classify_signature(self, signature: ReportSignature, sheet_name: Optional[str] = None) -> ReportType:
        for rule in self.rules:
            if rule.matches(signature):
                logger.debug("classification_rule_matched", sheet=sheet_name, rule=rule.name)
                return rule.report_type
        return ReportType.UNKNOWN

    @staticmethod
    def hint_from_subject(subject: Optional[str]) -> ReportType:
        if not subject:
            return ReportType.UNKNOWN
        text = _WHITESPACE.sub(" ", subject.upper())
        for keywords, report_type in SUBJECT_HINTS:
            if any(k in text for k in keywords):
                return report_type
        return ReportType.UNKNOWN

    @staticmethod
    def reconcile(structural: ReportType, hint: ReportType, sheet_name: Optional[str] = None) -> ReportType:
        """
        Combine the structural decision with the subject hint.

        The structural decision wins any disagreement; a conflict is only logged.
        """
        if structural == hint:
            return structural
        if hint == ReportType.UNKNOWN:
            return structural
        if structural == ReportType.UNKNOWN:
            return hint

        log_error_with_context(
            logger,
            ClassificationConflict(structural.value, hint.value, sheet_name=sheet_name)
        )
        return structural

    def classify(
        self,
        sheet: RawSheet,
        subject: Optional[str] = None,
        file_name: Optional[str] = None
    ) -> ClassifiedSheet:
        signature = ReportSignature.from_sheet(sheet)
        structural = self.classify_signature(signature, sheet.name)
        hint = self.hint_from_subject(subject)
        report_type = self.reconcile(structural, hint, sheet_name=sheet.name)

        institution = detect_institution([subject, file_name, signature.text])

        logger.info(
            "sheet_classified",
            sheet=sheet.name,
            report_type=report_type.value,
            structural=structural.value,
            hint=hint.value,
            institution=institution.value if institution else None
        )
        return ClassifiedSheet(
            sheet=sheet,
            report_type=report_type,
            institution=institution
        )
