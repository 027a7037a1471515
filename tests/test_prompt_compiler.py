from __future__ import annotations

import hashlib
from datetime import datetime, timedelta, timezone

import pytest

from scribe.prompt.compiler import PromptCompiler, compile_prompt, content_hash, prompt_stats
from scribe.prompt.manifest_loader import load_manifest
from scribe.prompt.models import (
    CompiledPrompt,
    CompileError,
    CompileRequest,
    PromptManifest,
    Template,
    TemplateSection,
)
from scribe.validate.grammar_loader import load_grammar
from scribe.vocab.catalog import VocabularyCatalog
from scribe.vocab.models import VocabularyList, VocabularyOption

TRANSCRIPT = "Doctor: How has your mood been?\nPatient: Pretty anxious lately."

PRIOR_NOTE = """Patient: Jane Doe
Provider: Rufus Sweeney, MD
Date of Service: 03/14/2024

Formulation
Jane Doe is a 34 year old woman.

Plan
Medications: Continue sertraline 100 mg daily.
Follow-up: Return in 6 weeks or sooner if needed.
"""


def _catalog() -> VocabularyCatalog:
    return VocabularyCatalog(
        [
            VocabularyList(
                id="1001",
                aliases=("Mood",),
                options=(
                    VocabularyOption(text="Euthymic", order=1, is_default=True),
                    VocabularyOption(text="Anxious", order=2),
                ),
            ),
            VocabularyList(
                id="1002",
                aliases=("Sleep Quality",),
                options=(
                    VocabularyOption(text="Good quality"),
                    VocabularyOption(text="Poor quality", order=1),
                ),
            ),
        ]
    )


def _template(*sections: TemplateSection, visit_type: str | None = "Intake") -> Template:
    if not sections:
        sections = (
            TemplateSection(
                order=2,
                name="Mental Status Examination",
                content="Mood: {Mood:1001}. Appetite: {Appetite:9999}. Again {Mood:1001}.",
            ),
            TemplateSection(
                order=1,
                name="History of Present Illness",
                content="@FNAME@ is a @age@ year old who reports ***.",
                exemplar="Jane reports low mood for three months.",
            ),
        )
    return Template(
        id="rcc_intake_v1",
        name="RCC Intake",
        setting="HMHI Downtown RCC",
        visit_type=visit_type,
        sections=sections,
    )


def _compile(request: CompileRequest, **kwargs: object) -> CompiledPrompt:
    result = PromptCompiler(_catalog(), **kwargs).compile(request)  # type: ignore[arg-type]
    assert isinstance(result, CompiledPrompt)
    return result


def test_compile_is_deterministic() -> None:
    request = CompileRequest(template=_template(), transcript=TRANSCRIPT, prior_note="Old note.")
    ticks = iter(datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(hours=n) for n in range(5))

    first = _compile(request, clock=lambda: next(ticks))
    second = _compile(request, clock=lambda: next(ticks))

    assert first.text == second.text
    assert first.content_hash == second.content_hash
    assert first.compiled_at != second.compiled_at


def test_content_hash_is_truncated_sha256() -> None:
    result = _compile(CompileRequest(template=_template(), transcript=TRANSCRIPT))

    assert result.content_hash == hashlib.sha256(result.text.encode("utf-8")).hexdigest()[:16]
    assert content_hash(result.text) == result.content_hash


def test_blocks_follow_fixed_order() -> None:
    request = CompileRequest(
        template=_template(),
        transcript=TRANSCRIPT,
        prior_note="Old note.",
        patient_context="Diagnoses: MDD",
        historical_notes=("Older note one.", "Older note two."),
    )

    result = _compile(request)

    assert list(result.section_breakdown) == [
        "role",
        "task",
        "smarttools_rules",
        "vocabulary_definitions",
        "patient_context",
        "template",
        "prior_note",
        "historical_notes",
        "transcript",
        "output_instructions",
    ]
    positions = [result.text.index(block) for block in result.section_breakdown.values()]
    assert positions == sorted(positions)
    assert result.text.startswith("ROLE:\n")
    assert "--- Historical Note 2 ---\nOlder note two." in result.text


def test_vocabulary_ids_resolved_and_unknown_dropped() -> None:
    result = _compile(CompileRequest(template=_template(), transcript=TRANSCRIPT))

    assert result.vocabulary_ids == ["1001"]
    assert result.warnings == ["SmartList Appetite (9999) not found in catalog"]
    definitions = result.section_breakdown["vocabulary_definitions"]
    assert '"Euthymic" [DEFAULT]' in definitions
    assert "SmartList: Appetite" not in definitions


def test_vocabulary_ref_resolved_by_label_when_id_unknown() -> None:
    template = _template(
        TemplateSection(order=1, name="Mental Status Examination", content="{Mood:5555}")
    )

    result = _compile(CompileRequest(template=template, transcript=TRANSCRIPT))

    assert result.vocabulary_ids == ["1001"]
    assert result.warnings == []


def test_template_without_vocabulary_has_no_definitions_block() -> None:
    template = _template(TemplateSection(order=1, name="History of Present Illness", content="***"))

    result = _compile(CompileRequest(template=template, transcript=TRANSCRIPT))

    assert "vocabulary_definitions" not in result.section_breakdown
    assert "SMARTLIST DEFINITIONS" not in result.text


def test_template_sections_ordered_with_exemplar_and_guidance() -> None:
    result = _compile(CompileRequest(template=_template(), transcript=TRANSCRIPT))
    block = result.section_breakdown["template"]

    assert block.index("--- History of Present Illness ---") < block.index(
        "--- Mental Status Examination ---"
    )
    assert "Exemplar (tone and style guide):\nJane reports low mood for three months." in block
    assert "Section Instructions:" in block
    assert "Setting: HMHI Downtown RCC" in block
    assert "SMARTLINK EXAMPLES FOR THIS SETTING:" in result.section_breakdown["smarttools_rules"]


def test_follow_up_extracts_facts_and_supersedes_prior_note() -> None:
    request = CompileRequest(
        template=_template(visit_type="Follow-up"),
        transcript=TRANSCRIPT,
        prior_note=PRIOR_NOTE,
        historical_notes=("Older note.",),
    )

    result = _compile(request)

    assert result.is_follow_up
    assert result.prior_facts is not None
    assert result.prior_facts.patient_first_name == "Jane"
    assert result.prior_facts.plan_section == (
        "Medications: Continue sertraline 100 mg daily.\n"
        "Follow-up: Return in 6 weeks or sooner if needed."
    )
    follow_up = result.section_breakdown["follow_up"]
    assert "Use these values verbatim" in follow_up
    assert "Patient Name: Jane Doe" in follow_up
    assert "4. PLAN SECTION - VERY IMPORTANT:" in follow_up
    assert "prior_note" not in result.section_breakdown
    assert "historical_notes" in result.section_breakdown
    keys = list(result.section_breakdown)
    assert keys.index("smarttools_rules") < keys.index("follow_up") < keys.index("template")


def test_follow_up_plan_stops_at_grammar_headers() -> None:
    grammar = load_grammar(signature_line="Rufus Sweeney, MD")
    prior = PRIOR_NOTE + "\nMental Status Examination\nCalm and cooperative.\n"
    request = CompileRequest(
        template=_template(visit_type="Follow-up"), transcript=TRANSCRIPT, prior_note=prior
    )

    result = _compile(request, grammar=grammar)

    assert result.prior_facts is not None
    assert "Calm and cooperative." not in (result.prior_facts.plan_section or "")


def test_request_visit_type_overrides_template() -> None:
    request = CompileRequest(
        template=_template(visit_type="Intake"),
        transcript=TRANSCRIPT,
        prior_note=PRIOR_NOTE,
        visit_type="Transfer of Care",
    )

    result = _compile(request)

    assert result.visit_type == "Transfer of Care"
    assert result.is_follow_up


def test_prior_facts_disabled_keeps_prior_note() -> None:
    request = CompileRequest(
        template=_template(visit_type="Follow-up"),
        transcript=TRANSCRIPT,
        prior_note=PRIOR_NOTE,
        prior_facts_enabled=False,
    )

    result = _compile(request)

    assert result.prior_facts is None
    assert "follow_up" not in result.section_breakdown
    assert result.section_breakdown["prior_note"].startswith(
        "PREVIOUS NOTE (for context only - do not copy verbatim):"
    )


def test_intake_never_extracts_facts() -> None:
    request = CompileRequest(template=_template(), transcript=TRANSCRIPT, prior_note=PRIOR_NOTE)

    result = _compile(request)

    assert not result.is_follow_up
    assert result.prior_facts is None
    assert "prior_note" in result.section_breakdown


def test_follow_up_without_extractable_facts_falls_back_to_prior_note() -> None:
    request = CompileRequest(
        template=_template(visit_type="Follow-up"),
        transcript=TRANSCRIPT,
        prior_note="Brief free-text note.",
    )

    result = _compile(request)

    assert result.prior_facts is None
    assert "prior_note" in result.section_breakdown
    assert result.warnings[-1] == "No facts could be extracted from the previous note"


@pytest.mark.parametrize(
    ("request_kwargs", "code"),
    [
        ({"template": Template(id="t", name="Empty"), "transcript": TRANSCRIPT}, "empty_template"),
        (
            {
                "template": Template(
                    id="t",
                    name="Dup",
                    sections=(
                        TemplateSection(order=1, name="Plan", content="a"),
                        TemplateSection(order=2, name="plan", content="b"),
                    ),
                ),
                "transcript": TRANSCRIPT,
            },
            "duplicate_section",
        ),
        ({"template": _template(), "transcript": "   \n"}, "empty_transcript"),
    ],
)
def test_compile_errors_are_values(request_kwargs: dict[str, object], code: str) -> None:
    result = compile_prompt(CompileRequest(**request_kwargs), _catalog())  # type: ignore[arg-type]

    assert isinstance(result, CompileError)
    assert result.code == code


def test_custom_manifest_wording_is_used() -> None:
    manifest = PromptManifest(
        role="Custom role.",
        task="Custom task.",
        smarttools_rules="Custom rules.",
        output_instructions="Custom output.",
    )

    result = _compile(
        CompileRequest(template=_template(), transcript=TRANSCRIPT), manifest=manifest
    )

    assert result.text.startswith("ROLE:\nCustom role.\n\nTASK:\nCustom task.\n\nCustom rules.")
    assert result.text.endswith("OUTPUT INSTRUCTIONS:\nCustom output.\n")


def test_default_manifest_loads() -> None:
    assert load_manifest().follow_up_visit_types == ["Follow-up", "Transfer of Care"]


def test_prompt_stats() -> None:
    stats = prompt_stats("=== A ===\nfour words here ok")

    assert stats == {"characters": 28, "words": 7, "estimated_tokens": 7, "sections": 1}
