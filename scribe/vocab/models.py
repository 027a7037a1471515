"""Data models for SmartList vocabularies and selection events."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class VocabularyOption(BaseModel):
    """One allowed SmartList value."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    text: str = Field(min_length=1)
    order: int = Field(default=0, ge=0)
    is_default: bool = False


class VocabularyList(BaseModel):
    """Controlled vocabulary keyed by a stable id.

    Rules:
    - aliases are stripped, de-duplicated and non-empty; aliases[0] is the display name
    - options are non-empty, unique by text and kept sorted by ``order``
    - at most one option is the default
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(min_length=1)
    aliases: tuple[str, ...] = Field(min_length=1)
    group_name: str | None = None
    options: tuple[VocabularyOption, ...] = Field(min_length=1)

    @field_validator("id")
    @classmethod
    def _strip_id(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("id must not be blank")
        return stripped

    @field_validator("aliases")
    @classmethod
    def _normalize_aliases(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        seen: dict[str, None] = {}
        for alias in value:
            stripped = alias.strip()
            if stripped:
                seen.setdefault(stripped, None)
        if not seen:
            raise ValueError("at least one non-blank alias is required")
        return tuple(seen)

    @field_validator("group_name")
    @classmethod
    def _blank_group_is_none(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value.strip()

    @field_validator("options")
    @classmethod
    def _sort_options(cls, value: tuple[VocabularyOption, ...]) -> tuple[VocabularyOption, ...]:
        return tuple(sorted(value, key=lambda option: option.order))

    @model_validator(mode="after")
    def _check_options(self) -> VocabularyList:
        texts = [option.text for option in self.options]
        duplicates = sorted({text for text in texts if texts.count(text) > 1})
        if duplicates:
            raise ValueError(f"duplicate option text in list {self.id}: {duplicates}")
        defaults = [option.text for option in self.options if option.is_default]
        if len(defaults) > 1:
            raise ValueError(f"list {self.id} has more than one default option: {defaults}")
        return self

    @property
    def display_name(self) -> str:
        return self.aliases[0]

    @property
    def option_texts(self) -> list[str]:
        return [option.text for option in self.options]

    @property
    def default_option(self) -> VocabularyOption | None:
        for option in self.options:
            if option.is_default:
                return option
        return None

    def allows(self, value: str) -> bool:
        return any(option.text == value for option in self.options)


class CatalogConfig(BaseModel):
    """On-disk catalog structure used to seed a ``VocabularyCatalog``."""

    model_config = ConfigDict(extra="forbid")

    version: int = 1
    vocabularies: list[VocabularyList] = Field(default_factory=list)


class SelectionEvent(BaseModel):
    """One accepted SmartList selection in the append-only log."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    vocab_id: str
    value: str
    timestamp: datetime
    context: str | None = None


class InvalidSelection(BaseModel):
    """Rejected selection; returned to the caller instead of raising."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    vocab_id: str
    value: str
    reason: Literal["unknown_vocabulary", "value_not_allowed"]
    message: str
    allowed: tuple[str, ...] = ()
