"""Human-readable summaries for CLI output."""

from __future__ import annotations

from scribe.prompt.models import CompiledPrompt
from scribe.validate.models import ValidationReport
from scribe.validate.note_validator import summarize_report


def render_validation_summary(report: ValidationReport) -> str:
    """Render one-screen validation summary."""

    lines: list[str] = []
    lines.append("validation_summary:")
    lines.append(f"result={'PASSED' if report.valid else 'FAILED'}")
    lines.append(f"errors={len(report.errors)} warnings={len(report.warnings)}")
    lines.append(summarize_report(report))
    return "\n".join(lines)


def render_compile_summary(compiled: CompiledPrompt) -> str:
    lines: list[str] = []
    lines.append("compile_summary:")
    lines.append(f"template={compiled.template_id} visit_type={compiled.visit_type or 'none'}")
    lines.append(f"content_hash={compiled.content_hash} words={compiled.word_count}")
    lines.append("blocks: " + ", ".join(compiled.section_breakdown))
    if compiled.vocabulary_ids:
        lines.append("smartlists: " + ", ".join(compiled.vocabulary_ids))
    else:
        lines.append("smartlists: none")
    if compiled.prior_facts is not None:
        lines.append("prior_facts: extracted")
    for warning in compiled.warnings:
        lines.append(f"warning: {warning}")
    return "\n".join(lines)
