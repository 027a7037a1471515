"""Structural grammar validation for generated psychiatric notes.

A note moves through three stages: raw text, a ``SectionedNote`` produced by
header matching, and a ``ValidationReport`` produced by the section checks.
Every check returns its own report; ``validate_note`` concatenates them.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from scribe.smarttools.models import Link, Wildcard
from scribe.smarttools.parser import parse
from scribe.utils.log_events import log_event
from scribe.validate.grammar_loader import load_grammar
from scribe.validate.models import NoteGrammar, ValidationReport

if TYPE_CHECKING:
    from scribe.vocab.catalog import VocabularyCatalog

logger = logging.getLogger("scribe.validate")

_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")

_HPI_TEMPORAL_RE = re.compile(
    r"\b(?:days?|weeks?|months?|years?|started|began|since|ago|onset)\b", re.IGNORECASE
)
_HPI_SEVERITY_RE = re.compile(
    r"\b(?:mild|moderate|severe|significant|minimal|marked)\b", re.IGNORECASE
)
_HPI_IMPACT_RE = re.compile(
    r"\b(?:work|school|relationships?|function(?:ing)?|ADLs?|sleep|appetite)\b", re.IGNORECASE
)

_HOSPITALIZATION_RE = re.compile(r"hospital|inpatient|admitted|admission", re.IGNORECASE)
_SELF_HARM_RE = re.compile(
    r"suicide\s*attempt|overdose|tried\s+to\s+(?:kill|end)|self[-\s]?harm|cutting",
    re.IGNORECASE,
)
_DENIAL_RE = re.compile(r"\b(?:denies|denied|no history of|no prior|no previous)\b", re.IGNORECASE)
_VERIFY_FIELDS = ("Hospitalizations", "Suicide attempts", "Self-harm history")
_UNVERIFIED_VALUE_PREFIXES = ("***", "denies", "none")

_ONE_LINER_RE = re.compile(
    r"^[A-Z][a-z]+\s+[A-Z][a-z]+\s+is\s+an?\s+\d+[-\s]year[-\s]old", re.IGNORECASE
)
_BIOLOGICAL_RE = re.compile(r"biological|genetic|medical|neurobiolog", re.IGNORECASE)
_PSYCHOLOGICAL_RE = re.compile(r"psychological|cognitive|personality", re.IGNORECASE)
_SOCIAL_RE = re.compile(r"social|environmental|support", re.IGNORECASE)
_ICD10_RE = re.compile(r"\b[FG]\d{2}(?:\.[0-9A-Z]{1,4})?\b")
_REASONING_RE = re.compile(
    r"\b(?:because|however|given|whereas|although|rather than|less likely|more likely)\b",
    re.IGNORECASE,
)
_TREATMENT_OPENINGS = ("plan is to", "the treatment plan", "treatment will")

_DURATION_RE = re.compile(r"\b\d+\s*minutes?\b", re.IGNORECASE)
_TIMEFRAME_RE = re.compile(r"\b\d+\s*(?:-\s*\d+\s*)?(?:days?|weeks?|months?)\b", re.IGNORECASE)
_MEDICATION_ACTION_RE = re.compile(
    r"\b(?:start|continue|increase|decrease|discontinue|taper|hold)\b", re.IGNORECASE
)
_SAFETY_NET_PHRASE = "sooner if needed"

_BULLET_RE = re.compile(r"^[ \t]*[-*•·][ \t]+", re.MULTILINE)
_NUMBERED_RE = re.compile(r"^[ \t]*\d+[.)][ \t]+", re.MULTILINE)
_BLOCK_LEAD_RE = re.compile(r"^[ \t*]+")
_BLOCK_TAIL_RE = re.compile(r"(?:\s*\n[ \t]*\d+[.)])?[\s*•·-]*$")


@dataclass(frozen=True)
class NoteSection:
    """Text between one recognized header and the next (or end of note)."""

    name: str
    header_start: int
    content_start: int
    end: int
    content: str


@dataclass(frozen=True)
class SectionedNote:
    """A note split on recognized headers."""

    text: str
    sections: tuple[NoteSection, ...]

    def find(self, names: Iterable[str]) -> NoteSection | None:
        wanted = {name.casefold() for name in names}
        for section in self.sections:
            if section.name.casefold() in wanted:
                return section
        return None

    @property
    def names(self) -> list[str]:
        return [section.name for section in self.sections]


class NoteGrammarValidator:
    """Apply a ``NoteGrammar`` to generated note text.

    Only headers listed in ``grammar.section_headers`` split sections. A line
    that looks like a header but is not listed stays inside the preceding
    section.
    """

    def __init__(self, grammar: NoteGrammar) -> None:
        self._grammar = grammar
        self._canonical = {header.casefold(): header for header in grammar.section_headers}
        alternatives = "|".join(re.escape(header) for header in grammar.section_headers)
        self._header_re = re.compile(
            rf"^[ \t]*({alternatives})[ \t]*:?[ \t]*$", re.IGNORECASE | re.MULTILINE
        )

        self._label_owner = {
            label.casefold(): subheader.name
            for subheader in grammar.plan_subheaders
            for label in subheader.labels
        }
        # Longest first so "Referral to Therapy:" wins over "Therapy:".
        labels = sorted(self._label_owner, key=len, reverse=True)
        self._subheader_re = re.compile(
            rf"(?<![A-Za-z0-9])(?:{'|'.join(re.escape(label) for label in labels)})",
            re.IGNORECASE,
        )
        self._signature_re = re.compile(
            rf"^[ \t]*{re.escape(grammar.signature_line)}[ \t]*$", re.MULTILINE
        )

    @property
    def grammar(self) -> NoteGrammar:
        return self._grammar

    def split_sections(self, text: str) -> SectionedNote:
        matches = list(self._header_re.finditer(text))
        sections: list[NoteSection] = []
        for index, match in enumerate(matches):
            end = matches[index + 1].start() if index + 1 < len(matches) else len(text)
            sections.append(
                NoteSection(
                    name=self._canonical[match.group(1).casefold()],
                    header_start=match.start(),
                    content_start=match.end(),
                    end=end,
                    content=text[match.end() : end].strip(),
                )
            )
        return SectionedNote(text=text, sections=tuple(sections))

    def validate_hpi(self, text: str) -> ValidationReport:
        errors: list[str] = []
        warnings: list[str] = []

        paragraphs = self._paragraphs(text)
        if len(paragraphs) < 2 and len(text.strip()) < self._grammar.hpi_min_chars:
            errors.append(
                "HPI appears over-condensed. Should be 2-3 detailed paragraphs with rich "
                "clinical detail"
            )

        if not _HPI_TEMPORAL_RE.search(text):
            warnings.append("HPI should include temporal information (when symptoms started/changed)")
        if not _HPI_SEVERITY_RE.search(text):
            warnings.append("HPI should describe severity of symptoms")
        if not _HPI_IMPACT_RE.search(text):
            warnings.append("HPI should describe functional impact")

        return ValidationReport.from_messages(errors, warnings, section="History of Present Illness")

    def validate_psychiatric_history(self, text: str) -> ValidationReport:
        """Safety nudges only; this check never produces errors."""

        warnings: list[str] = []
        has_denial = _DENIAL_RE.search(text) is not None
        has_wildcard = any(isinstance(item, Wildcard) for item in parse(text))
        acknowledged = has_denial or has_wildcard

        if _HOSPITALIZATION_RE.search(text) and not acknowledged:
            warnings.append(
                "Psychiatric History mentions hospitalizations - verify these were EXPLICITLY "
                "stated by patient"
            )
        if _SELF_HARM_RE.search(text) and not acknowledged:
            warnings.append(
                "Psychiatric History mentions suicide attempts or self-harm - verify these were "
                "EXPLICITLY stated, not inferred"
            )

        for field_name in _VERIFY_FIELDS:
            match = re.search(
                rf"^[ \t]*{re.escape(field_name)}[ \t]*:[ \t]*(.*)$",
                text,
                re.IGNORECASE | re.MULTILINE,
            )
            if match is None:
                continue
            value = match.group(1).strip().lower()
            if value and not value.startswith(_UNVERIFIED_VALUE_PREFIXES):
                warnings.append(
                    f"Verify {field_name} information was explicitly stated by patient, "
                    "not inferred"
                )

        return ValidationReport.from_messages([], warnings, section="Psychiatric History")

    def validate_formulation(self, text: str) -> ValidationReport:
        """Check the four-paragraph formulation shape.

        A wrong paragraph count is reported as a single error and no
        per-paragraph checks run.
        """

        errors: list[str] = []
        warnings: list[str] = []
        section = "Formulation"

        paragraphs = self._paragraphs(text)
        if len(paragraphs) != 4:
            errors.append(
                f"Formulation must have EXACTLY 4 paragraphs (found {len(paragraphs)}). "
                "Each paragraph must be separated by a blank line."
            )
            return ValidationReport.from_messages(errors, warnings, section=section)

        one_liner, diagnosis, differential, treatment = paragraphs

        if not _ONE_LINER_RE.search(one_liner):
            errors.append(
                'Paragraph 1 must start with "[First name] [Last name] is a [age] year old..."'
            )
        lowered = one_liner.lower()
        if "presents for" not in lowered and "who presents" not in lowered:
            warnings.append('Paragraph 1 should include "who presents for [reason]"')

        if "most consistent with" not in diagnosis.lower():
            errors.append(
                'Paragraph 2 must state the primary diagnosis ("diagnosis is most consistent '
                'with ...")'
            )
        missing_domains = [
            name
            for name, pattern in (
                ("biological", _BIOLOGICAL_RE),
                ("psychological", _PSYCHOLOGICAL_RE),
                ("social", _SOCIAL_RE),
            )
            if not pattern.search(diagnosis)
        ]
        if missing_domains:
            errors.append(
                "Paragraph 2 MUST explicitly address ALL three domains: biological, "
                f"psychological, and social factors (missing: {', '.join(missing_domains)})"
            )
        if not _ICD10_RE.search(diagnosis):
            warnings.append("Paragraph 2 should include ICD-10 code (e.g., F32.1)")

        lowered = differential.lower()
        if not lowered.startswith("also considered") and "differential diagnosis" not in lowered:
            errors.append(
                'Paragraph 3 must start with "Also considered" or include "differential diagnosis"'
            )
        if not _REASONING_RE.search(differential):
            errors.append(
                "Paragraph 3 must provide specific reasoning for each differential diagnosis"
            )

        if not treatment.lower().startswith(_TREATMENT_OPENINGS):
            errors.append(
                'Paragraph 4 must start with "Plan is to...", "The treatment plan..." or '
                '"Treatment will..."'
            )
        if not treatment.endswith(":"):
            warnings.append("Paragraph 4 should end with a colon to transition to the Plan section")

        return ValidationReport.from_messages(errors, warnings, section=section)

    def validate_plan(self, text: str) -> ValidationReport:
        errors: list[str] = []
        warnings: list[str] = []
        signature = self._grammar.signature_line

        blocks = self._plan_blocks(text)
        for subheader in self._grammar.plan_subheaders:
            if subheader.name not in blocks:
                errors.append(f"Missing required Plan section: {subheader.name}")

        has_signature = any(line.strip() == signature for line in text.splitlines())
        if not has_signature:
            errors.append(f"Missing required Plan section: Signature ({signature})")

        medications = blocks.get(self._grammar.medications.name)
        if medications is not None and not _MEDICATION_ACTION_RE.search(medications):
            warnings.append(
                "Medications should start with action words: Start, Continue, Increase, "
                "Decrease, etc."
            )

        therapy = blocks.get(self._grammar.therapy_conducted.name)
        if therapy is not None and not _DURATION_RE.search(therapy):
            errors.append("Therapy section must include session duration in minutes")

        follow_up = blocks.get(self._grammar.follow_up.name)
        if follow_up is not None:
            if _SAFETY_NET_PHRASE not in follow_up.lower():
                errors.append('Follow-up must include "or sooner if needed"')
            if not _TIMEFRAME_RE.search(follow_up):
                warnings.append(
                    'Follow-up should specify a timeframe (e.g., "2 weeks", "1 month")'
                )

        if has_signature and _last_nonblank_line(text) != signature:
            errors.append(self._signature_placement_error())

        return ValidationReport.from_messages(errors, warnings, section="Plan")

    def validate_formatting(
        self, text: str, sectioned: SectionedNote | None = None
    ) -> ValidationReport:
        """Whole-note checks: prose before the Plan, converted links, spacing."""

        errors: list[str] = []
        warnings: list[str] = []

        sectioned = sectioned or self.split_sections(text)
        plan = sectioned.find(self._grammar.plan_sections)
        before_plan = text[: plan.header_start] if plan is not None else text

        if _BULLET_RE.search(before_plan):
            errors.append("Bullet points found outside Plan section. Use paragraph format only.")
        if _NUMBERED_RE.search(before_plan):
            errors.append("Numbered lists found outside Plan section. Use paragraph format only.")

        links = [item.text for item in parse(text) if isinstance(item, Link)]
        if links:
            errors.append(
                f"Found unconverted SmartLinks: {', '.join(links)}. "
                "All @id@ should be converted to .id"
            )

        max_blank = self._grammar.max_blank_lines
        if re.search(rf"\n(?:[ \t]*\n){{{max_blank + 1},}}", text):
            warnings.append(
                f"More than {max_blank} consecutive blank lines found. "
                "Use single blank lines between sections."
            )

        return ValidationReport.from_messages(errors, warnings, section="Formatting")

    def validate_note(self, text: str) -> ValidationReport:
        """Run every applicable check and aggregate the results."""

        sectioned = self.split_sections(text)
        reports: list[ValidationReport] = []

        hpi = sectioned.find(self._grammar.hpi_sections)
        if hpi is not None:
            reports.append(self.validate_hpi(hpi.content))

        history = sectioned.find(self._grammar.psychiatric_history_sections)
        if history is not None:
            reports.append(self.validate_psychiatric_history(history.content))

        formulation = sectioned.find(self._grammar.formulation_sections)
        if formulation is not None:
            reports.append(self.validate_formulation(formulation.content))
        else:
            reports.append(
                ValidationReport.from_messages(["Formulation section not found"], section="Formulation")
            )

        plan = sectioned.find(self._grammar.plan_sections)
        if plan is not None:
            plan_report = self.validate_plan(plan.content)
            reports.append(plan_report)
            if self._needs_note_signature_error(text, plan_report):
                reports.append(
                    ValidationReport.from_messages(
                        [self._signature_placement_error()], section="Plan"
                    )
                )
        else:
            reports.append(ValidationReport.from_messages(["Plan section not found"], section="Plan"))

        reports.append(self.validate_formatting(text, sectioned))

        report = ValidationReport.merge(reports)
        log_event(
            logger,
            logging.INFO,
            "note_validated",
            valid=report.valid,
            error_count=len(report.errors),
            warning_count=len(report.warnings),
            sections=sectioned.names,
        )
        return report

    def _paragraphs(self, text: str) -> list[str]:
        minimum = self._grammar.min_paragraph_chars
        return [
            paragraph
            for paragraph in (part.strip() for part in _PARAGRAPH_SPLIT_RE.split(text))
            if len(paragraph) > minimum
        ]

    def _plan_blocks(self, text: str) -> dict[str, str]:
        """Map each Plan sub-header name to the text of its first block.

        Labels are found anywhere in the text, so bulleted, bold and inline
        sub-headers all count. A block runs from the end of its label to the
        next label or signature line.
        """

        labels = [
            (match.start(), match.end(), self._label_owner[match.group(0).casefold()])
            for match in self._subheader_re.finditer(text)
        ]
        boundaries = sorted(
            [start for start, _, _ in labels]
            + [match.start() for match in self._signature_re.finditer(text)]
        )

        blocks: dict[str, str] = {}
        for start, end, name in labels:
            if name in blocks:
                continue
            stop = next((position for position in boundaries if position > start), len(text))
            blocks[name] = _clean_block(text[end:stop])
        return blocks

    def _needs_note_signature_error(self, text: str, plan_report: ValidationReport) -> bool:
        signature = self._grammar.signature_line
        if _last_nonblank_line(text) == signature:
            return False
        already_reported = {
            self._signature_placement_error(),
            f"Missing required Plan section: Signature ({signature})",
        }
        return not already_reported.intersection(plan_report.errors)

    def _signature_placement_error(self) -> str:
        return f'Plan must end with "{self._grammar.signature_line}" as the last line'


def validate_generated_note(
    text: str,
    grammar: NoteGrammar | None = None,
    catalog: VocabularyCatalog | None = None,
) -> ValidationReport:
    """Validate LLM output; adds SmartList selection checks when a catalog is given."""

    validator = NoteGrammarValidator(grammar or load_grammar())
    report = validator.validate_note(text)
    if catalog is None:
        return report
    return ValidationReport.merge([report, catalog.validate_selections_in_text(text)])


def summarize_report(report: ValidationReport) -> str:
    if report.valid and not report.warnings:
        return "Note passed all validation checks"

    lines = ["Note passed validation" if report.valid else "Note validation FAILED"]
    if report.errors:
        lines.append("")
        lines.append(f"Errors ({len(report.errors)}):")
        lines.extend(f"  {index}. {error}" for index, error in enumerate(report.errors, start=1))
    if report.warnings:
        lines.append("")
        lines.append(f"Warnings ({len(report.warnings)}):")
        lines.extend(
            f"  {index}. {warning}" for index, warning in enumerate(report.warnings, start=1)
        )
    return "\n".join(lines)


def _clean_block(raw: str) -> str:
    """Drop bold markers after the label and the next item's bullet."""

    trimmed = _BLOCK_LEAD_RE.sub("", _BLOCK_TAIL_RE.sub("", raw))
    return "\n".join(line.strip() for line in trimmed.splitlines() if line.strip())


def _last_nonblank_line(text: str) -> str | None:
    for line in reversed(text.splitlines()):
        if line.strip():
            return line.strip()
    return None
