"""Data models for prompt compilation inputs, outputs and wording."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TemplateSection(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    order: int
    name: str = Field(min_length=1)
    content: str
    exemplar: str | None = None


class Template(BaseModel):
    """Read-only note template; sections are kept sorted by ``order``."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(min_length=1)
    name: str
    setting: str | None = None
    visit_type: str | None = None
    sections: tuple[TemplateSection, ...] = ()

    @field_validator("sections")
    @classmethod
    def _sort_sections(cls, value: tuple[TemplateSection, ...]) -> tuple[TemplateSection, ...]:
        return tuple(sorted(value, key=lambda section: section.order))


class CompileRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    template: Template
    transcript: str
    prior_note: str | None = None
    prior_facts_enabled: bool = True
    visit_type: str | None = None
    patient_context: str | None = None
    historical_notes: tuple[str, ...] = ()

    @property
    def effective_visit_type(self) -> str | None:
        return self.visit_type or self.template.visit_type


class PriorNoteFacts(BaseModel):
    """Best-effort facts pulled from a previous visit's note."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    patient_first_name: str | None = None
    patient_last_name: str | None = None
    provider_name: str | None = None
    date_of_service: str | None = None
    plan_section: str | None = None

    @property
    def patient_name(self) -> str | None:
        if self.patient_first_name and self.patient_last_name:
            return f"{self.patient_first_name} {self.patient_last_name}"
        return None


class CompiledPrompt(BaseModel):
    """Compiled prompt text and provenance.

    Only ``text`` and ``content_hash`` are deterministic; ``compiled_at`` is
    metadata.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    text: str
    content_hash: str
    section_breakdown: dict[str, str]
    word_count: int
    warnings: list[str] = Field(default_factory=list)
    template_id: str
    visit_type: str | None = None
    is_follow_up: bool = False
    vocabulary_ids: list[str] = Field(default_factory=list)
    prior_facts: PriorNoteFacts | None = None
    compiled_at: datetime


class CompileError(BaseModel):
    """Structured compile failure; returned instead of raised."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    code: Literal["empty_template", "duplicate_section", "empty_transcript"]
    message: str


class PriorNoteRules(BaseModel):
    model_config = ConfigDict(extra="forbid")

    plan_headers: list[str] = Field(default_factory=lambda: ["Plan"], min_length=1)
    stop_headers: list[str] = Field(default_factory=list)


class PromptManifest(BaseModel):
    """Prompt wording and visit-type configuration, loaded from YAML."""

    model_config = ConfigDict(extra="forbid")

    version: int = 1
    role: str = Field(min_length=1)
    task: str = Field(min_length=1)
    smarttools_rules: str = Field(min_length=1)
    output_instructions: str = Field(min_length=1)
    follow_up_visit_types: list[str] = Field(
        default_factory=lambda: ["Follow-up", "Transfer of Care"]
    )
    patient_context_note: str = ""
    section_guidance: dict[str, str] = Field(default_factory=dict)
    smartlink_examples: dict[str, list[str]] = Field(default_factory=dict)
    prior_note: PriorNoteRules = Field(default_factory=PriorNoteRules)

    def is_follow_up(self, visit_type: str | None) -> bool:
        if not visit_type:
            return False
        folded = visit_type.casefold()
        return any(folded == item.casefold() for item in self.follow_up_visit_types)
