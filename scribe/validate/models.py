"""Data models for note grammar configuration and validation reports."""

from __future__ import annotations

from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ValidationReport(BaseModel):
    """Validation outcome for one section or a whole note.

    Rules:
    - valid == (len(errors) == 0)
    - errors are hard failures, warnings never affect ``valid``
    """

    model_config = ConfigDict(extra="forbid")

    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    section: str | None = None

    @classmethod
    def from_messages(
        cls,
        errors: Iterable[str],
        warnings: Iterable[str] = (),
        *,
        section: str | None = None,
    ) -> ValidationReport:
        error_list = list(errors)
        return cls(
            valid=not error_list,
            errors=error_list,
            warnings=list(warnings),
            section=section,
        )

    @classmethod
    def merge(
        cls, reports: Iterable[ValidationReport], *, section: str | None = None
    ) -> ValidationReport:
        errors: list[str] = []
        warnings: list[str] = []
        for report in reports:
            errors.extend(report.errors)
            warnings.extend(report.warnings)
        return cls.from_messages(errors, warnings, section=section)


class PlanSubheader(BaseModel):
    """One required Plan sub-block and the label variants that introduce it."""

    model_config = ConfigDict(extra="forbid")

    name: str
    labels: list[str] = Field(min_length=1)


class NoteGrammar(BaseModel):
    """Structural grammar for generated notes, loaded from YAML."""

    model_config = ConfigDict(extra="forbid")

    section_headers: list[str] = Field(min_length=1)
    hpi_sections: list[str] = Field(default_factory=list)
    psychiatric_history_sections: list[str] = Field(default_factory=list)
    formulation_sections: list[str] = Field(default_factory=list)
    plan_sections: list[str] = Field(default_factory=list)
    signature_line: str = Field(min_length=1)
    medications: PlanSubheader
    psychotherapy_referral: PlanSubheader
    therapy_conducted: PlanSubheader
    follow_up: PlanSubheader
    hpi_min_chars: int = Field(default=300, ge=0)
    min_paragraph_chars: int = Field(default=20, ge=0)
    max_blank_lines: int = Field(default=2, ge=1)

    @field_validator("signature_line")
    @classmethod
    def _strip_signature(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("signature_line must not be blank")
        return stripped

    @model_validator(mode="after")
    def _roles_use_known_headers(self) -> NoteGrammar:
        known = {header.casefold() for header in self.section_headers}
        for role in (
            "hpi_sections",
            "psychiatric_history_sections",
            "formulation_sections",
            "plan_sections",
        ):
            unknown = [name for name in getattr(self, role) if name.casefold() not in known]
            if unknown:
                raise ValueError(f"{role} references unknown section headers: {unknown}")
        return self

    @property
    def plan_subheaders(self) -> list[PlanSubheader]:
        return [
            self.medications,
            self.psychotherapy_referral,
            self.therapy_conducted,
            self.follow_up,
        ]
