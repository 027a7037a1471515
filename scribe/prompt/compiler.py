"""Deterministic prompt compilation from a template, a transcript and prior context.

The compiled text depends only on the request, the manifest wording and the
catalog snapshot. Wall-clock time is recorded on the result as metadata and
never enters the text or its hash.
"""

from __future__ import annotations

import hashlib
import logging
import math
from collections.abc import Callable
from datetime import datetime, timezone

from scribe.prompt.manifest_loader import load_manifest
from scribe.prompt.models import (
    CompiledPrompt,
    CompileError,
    CompileRequest,
    PriorNoteFacts,
    PromptManifest,
    Template,
)
from scribe.prompt.prior_note import extract_prior_facts, format_prior_facts, has_minimum_facts
from scribe.smarttools.models import VocabularyRef
from scribe.smarttools.parser import parse
from scribe.utils.log_events import log_event
from scribe.validate.models import NoteGrammar
from scribe.vocab.catalog import VocabularyCatalog

logger = logging.getLogger("scribe.prompt")

CONTENT_HASH_LENGTH = 16


def content_hash(text: str) -> str:
    """Truncated SHA-256 of the UTF-8 text, for provenance and cache keys."""

    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:CONTENT_HASH_LENGTH]


def prompt_stats(text: str) -> dict[str, int]:
    characters = len(text)
    return {
        "characters": characters,
        "words": len(text.split()),
        "estimated_tokens": math.ceil(characters / 4),
        "sections": text.count("===") // 2,
    }


class PromptCompiler:
    def __init__(
        self,
        catalog: VocabularyCatalog,
        manifest: PromptManifest | None = None,
        grammar: NoteGrammar | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._catalog = catalog
        self._manifest = manifest or load_manifest()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        if grammar is not None:
            self._plan_headers = list(grammar.plan_sections)
            self._stop_headers = list(grammar.section_headers)
        else:
            self._plan_headers = list(self._manifest.prior_note.plan_headers)
            self._stop_headers = list(self._manifest.prior_note.stop_headers)

    @property
    def manifest(self) -> PromptManifest:
        return self._manifest

    def compile(self, request: CompileRequest) -> CompiledPrompt | CompileError:
        error = _check_request(request)
        if error is not None:
            log_event(
                logger,
                logging.WARNING,
                "prompt_compile_rejected",
                template_id=request.template.id,
                code=error.code,
            )
            return error

        template = request.template
        warnings: list[str] = []
        vocabulary_ids = self._collect_vocabulary_ids(template, warnings)
        definitions = self._catalog.render_many_for_prompt(vocabulary_ids)

        visit_type = request.effective_visit_type
        is_follow_up = self._manifest.is_follow_up(visit_type)
        facts = self._extract_facts(request, is_follow_up, warnings)

        blocks: dict[str, str] = {
            "role": f"ROLE:\n{self._manifest.role.strip()}",
            "task": f"TASK:\n{self._manifest.task.strip()}",
            "smarttools_rules": self._smarttools_rules(template.setting),
        }
        if facts is not None:
            blocks["follow_up"] = self._follow_up_block(facts)
        if definitions:
            blocks["vocabulary_definitions"] = definitions.rstrip("\n")
        if request.patient_context and request.patient_context.strip():
            blocks["patient_context"] = self._patient_context_block(request.patient_context)
        blocks["template"] = self._template_block(template, visit_type)
        if request.prior_note and request.prior_note.strip() and facts is None:
            blocks["prior_note"] = (
                "PREVIOUS NOTE (for context only - do not copy verbatim):\n"
                f"{request.prior_note.strip()}"
            )
        if request.historical_notes:
            blocks["historical_notes"] = _historical_notes_block(request.historical_notes)
        blocks["transcript"] = f"TRANSCRIPT:\n{request.transcript.strip()}"
        blocks["output_instructions"] = self._output_instructions(facts)

        text = "\n\n".join(blocks.values()) + "\n"
        digest = content_hash(text)
        compiled = CompiledPrompt(
            text=text,
            content_hash=digest,
            section_breakdown=blocks,
            word_count=len(text.split()),
            warnings=warnings,
            template_id=template.id,
            visit_type=visit_type,
            is_follow_up=is_follow_up,
            vocabulary_ids=vocabulary_ids,
            prior_facts=facts,
            compiled_at=self._clock(),
        )
        log_event(
            logger,
            logging.INFO,
            "prompt_compiled",
            template_id=template.id,
            content_hash=digest,
            vocabulary_count=len(vocabulary_ids),
            word_count=compiled.word_count,
            is_follow_up=is_follow_up,
            warning_count=len(warnings),
        )
        return compiled

    def _collect_vocabulary_ids(self, template: Template, warnings: list[str]) -> list[str]:
        """Catalog ids referenced by the template, first-seen order."""

        ids: list[str] = []
        for section in template.sections:
            for occurrence in parse(section.content):
                if not isinstance(occurrence, VocabularyRef):
                    continue
                vocabulary = self._catalog.resolve_ref(occurrence.vocab_id, occurrence.label)
                if vocabulary is None:
                    message = (
                        f"SmartList {occurrence.label.strip()} ({occurrence.vocab_id}) "
                        "not found in catalog"
                    )
                    if message not in warnings:
                        warnings.append(message)
                        log_event(
                            logger,
                            logging.WARNING,
                            "vocabulary_unresolved",
                            template_id=template.id,
                            section=section.name,
                            vocab_id=occurrence.vocab_id,
                            label=occurrence.label.strip(),
                        )
                    continue
                if vocabulary.id not in ids:
                    ids.append(vocabulary.id)
        return ids

    def _extract_facts(
        self, request: CompileRequest, is_follow_up: bool, warnings: list[str]
    ) -> PriorNoteFacts | None:
        if not (is_follow_up and request.prior_facts_enabled and request.prior_note):
            return None
        facts = extract_prior_facts(
            request.prior_note,
            plan_headers=self._plan_headers,
            stop_headers=self._stop_headers,
        )
        if facts == PriorNoteFacts():
            warnings.append("No facts could be extracted from the previous note")
            return None
        if not has_minimum_facts(facts):
            warnings.append("Patient name not found in the previous note")
        return facts

    def _smarttools_rules(self, setting: str | None) -> str:
        rules = self._manifest.smarttools_rules.strip()
        examples = self._manifest.smartlink_examples.get(setting or "", [])
        if not examples:
            return rules
        lines = [rules, "", "SMARTLINK EXAMPLES FOR THIS SETTING:"]
        lines.extend(f"  {example}" for example in examples)
        return "\n".join(lines)

    def _follow_up_block(self, facts: PriorNoteFacts) -> str:
        lines = [
            "FOLLOW-UP VISIT INSTRUCTIONS:",
            "This is a follow-up visit. Key information has been extracted from the previous note.",
            "Use these values verbatim. Do not re-derive them from the transcript.",
            "",
            "EXTRACTED FROM PREVIOUS NOTE:",
            format_prior_facts(facts),
            "",
            "CRITICAL FOLLOW-UP RULES:",
        ]
        if facts.patient_name:
            lines.append(
                f"1. Patient Name: Use the extracted name directly ({facts.patient_name}) - "
                "DO NOT use @FNAME@ or @LNAME@"
            )
        else:
            lines.append("1. Patient Name: Use @FNAME@ and @LNAME@ as in the template")
        if facts.provider_name:
            lines.append(
                f"2. Provider: Use the extracted provider name directly ({facts.provider_name}) - "
                "DO NOT use .provider"
            )
        else:
            lines.append("2. Provider: Use .provider as normal")
        lines.append("3. Date: Use today's date in the format shown in the template")
        if facts.plan_section:
            lines.extend(
                [
                    "4. PLAN SECTION - VERY IMPORTANT:",
                    "   - START with the previous plan shown above as your baseline",
                    "   - MODIFY only the specific parts discussed in the transcript",
                    "   - PRESERVE medications, therapy, labs, follow-up schedule UNLESS explicitly changed",
                    "   - DO NOT regenerate the entire plan from scratch",
                ]
            )
        return "\n".join(lines)

    def _patient_context_block(self, context: str) -> str:
        block = f"PATIENT CLINICAL CONTEXT:\n{context.strip()}"
        note = self._manifest.patient_context_note.strip()
        if note:
            block += f"\n\n{note}"
        return block

    def _template_block(self, template: Template, visit_type: str | None) -> str:
        guidance = {name.casefold(): text for name, text in self._manifest.section_guidance.items()}
        lines = [f"TEMPLATE: {template.name}"]
        if template.setting:
            lines.append(f"Setting: {template.setting}")
        if visit_type:
            lines.append(f"Visit Type: {visit_type}")
        lines.extend(["", "=== TEMPLATE SECTIONS ===", ""])

        for section in template.sections:
            lines.append(f"--- {section.name} ---")
            lines.append("Content Template:")
            lines.append(section.content.strip())
            if section.exemplar and section.exemplar.strip():
                lines.extend(["", "Exemplar (tone and style guide):", section.exemplar.strip()])
            section_guidance = guidance.get(section.name.casefold())
            if section_guidance:
                lines.extend(["", "Section Instructions:", section_guidance.strip()])
            lines.append("")

        lines.append("=== END TEMPLATE SECTIONS ===")
        return "\n".join(lines)

    def _output_instructions(self, facts: PriorNoteFacts | None) -> str:
        parts = ["OUTPUT INSTRUCTIONS:", self._manifest.output_instructions.strip()]
        if facts is not None:
            reminder = "Use the EXTRACTED patient name and provider directly."
            if facts.plan_section:
                reminder += " For the Plan section, start with the previous plan and modify only what changed."
            parts.append(reminder)
        return "\n".join(parts)


def compile_prompt(
    request: CompileRequest,
    catalog: VocabularyCatalog,
    *,
    manifest: PromptManifest | None = None,
    grammar: NoteGrammar | None = None,
) -> CompiledPrompt | CompileError:
    return PromptCompiler(catalog, manifest, grammar).compile(request)


def _check_request(request: CompileRequest) -> CompileError | None:
    sections = request.template.sections
    if not sections:
        return CompileError(
            code="empty_template",
            message=f"Template {request.template.id} has no sections",
        )

    seen: set[str] = set()
    for section in sections:
        key = section.name.strip().casefold()
        if key in seen:
            return CompileError(
                code="duplicate_section",
                message=f"Template {request.template.id} repeats section {section.name!r}",
            )
        seen.add(key)

    if not request.transcript.strip():
        return CompileError(code="empty_transcript", message="Transcript is empty")
    return None


def _historical_notes_block(notes: tuple[str, ...]) -> str:
    lines = ["HISTORICAL NOTES (oldest first, for context only - do not copy verbatim):"]
    for number, note in enumerate(notes, start=1):
        lines.extend(["", f"--- Historical Note {number} ---", note.strip()])
    return "\n".join(lines)
