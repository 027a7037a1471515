"""Data models for SmartTools markup occurrences."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Literal, Union

MarkupKind = Literal["link", "alias", "wildcard", "vocabulary_ref"]


@dataclass(frozen=True)
class Link:
    """SmartLink reference such as ``@FNAME@``, resolved downstream."""

    kind: ClassVar[MarkupKind] = "link"

    start: int
    end: int
    text: str
    identifier: str


@dataclass(frozen=True)
class Alias:
    """DotPhrase reference such as ``.FNAME`` in native insertion syntax."""

    kind: ClassVar[MarkupKind] = "alias"

    start: int
    end: int
    text: str
    identifier: str


@dataclass(frozen=True)
class Wildcard:
    """Positional ``***`` fill point."""

    kind: ClassVar[MarkupKind] = "wildcard"

    start: int
    end: int
    text: str = "***"


@dataclass(frozen=True)
class VocabularyRef:
    """SmartList reference, unselected ``{Label:id}`` or selected ``{Label:id:: "x"}``."""

    kind: ClassVar[MarkupKind] = "vocabulary_ref"

    start: int
    end: int
    text: str
    label: str
    vocab_id: str
    selection: str | None = None

    @property
    def is_selected(self) -> bool:
        return self.selection is not None


MarkupOccurrence = Union[Link, Alias, Wildcard, VocabularyRef]


@dataclass(frozen=True)
class MarkupCounts:
    """Per-kind occurrence counts."""

    links: int = 0
    aliases: int = 0
    wildcards: int = 0
    vocabulary_refs: int = 0

    @property
    def total(self) -> int:
        return self.links + self.aliases + self.wildcards + self.vocabulary_refs


@dataclass(frozen=True)
class HighlightSpan:
    """Merged, kind-tagged span used for highlighting and rendering."""

    start: int
    end: int
    kind: MarkupKind
    identifier: str | None = None


@dataclass(frozen=True)
class SelectionParts:
    """Decomposed VocabularyRef; ``value`` is None for the unselected form."""

    label: str
    vocab_id: str
    value: str | None = None


@dataclass(frozen=True)
class MarkupSummary:
    """Counts plus identifier lists for one text."""

    counts: MarkupCounts
    link_identifiers: tuple[str, ...] = ()
    alias_identifiers: tuple[str, ...] = ()
    vocabulary_refs: tuple[SelectionParts, ...] = ()

    @property
    def has_wildcards(self) -> bool:
        return self.counts.wildcards > 0
