"""Pure text transformations over parsed SmartTools occurrences.

Every function accepts an optional, already-parsed occurrence list for the
same text and parses the text itself otherwise. Malformed fragments are not
occurrences, so they pass through unchanged; nothing here raises on odd input.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping, Sequence

from scribe.smarttools.models import (
    Alias,
    Link,
    MarkupOccurrence,
    MarkupSummary,
    SelectionParts,
    VocabularyRef,
    Wildcard,
)
from scribe.smarttools.parser import count_markup, parse

_SPACED_LINK_RE = re.compile(r"@\s+([A-Za-z0-9_]+)\s+@")
_SPACED_VOCABULARY_REF_RE = re.compile(r"\{\s*([^:}]+?)\s*:\s*(\d+)\s*\}")
_ASTERISK_RUN_RE = re.compile(r"\*{4,}")


def links_to_aliases(text: str, occurrences: Sequence[MarkupOccurrence] | None = None) -> str:
    """Rewrite every ``@id@`` to ``.id``.

    ``aliases_to_links`` undoes this only when the alias can be read back
    unchanged: the identifier starts with a letter, the Link does not follow
    a digit, and no identifier character follows the closing ``@``. For
    example ``@FNAME@s`` becomes ``.FNAMEs`` and ``@1st@`` becomes ``.1st``,
    which is not an alias at all.
    """

    return _rewrite(
        text,
        occurrences,
        lambda item: f".{item.identifier}" if isinstance(item, Link) else None,
    )


def aliases_to_links(text: str, occurrences: Sequence[MarkupOccurrence] | None = None) -> str:
    """Rewrite every ``.id`` to ``@id@``."""

    return _rewrite(
        text,
        occurrences,
        lambda item: f"@{item.identifier}@" if isinstance(item, Alias) else None,
    )


def format_selection(label: str, vocab_id: str, value: str) -> str:
    """Build the selected SmartList form ``{label:id:: "value"}``."""

    return f'{{{label}:{vocab_id}:: "{value}"}}'


def parse_selection(text: str) -> SelectionParts | None:
    """Decompose the first SmartList reference in ``text``."""

    for occurrence in parse(text):
        if isinstance(occurrence, VocabularyRef):
            return SelectionParts(
                label=occurrence.label,
                vocab_id=occurrence.vocab_id,
                value=occurrence.selection,
            )
    return None


def substitute_wildcards(
    text: str,
    replacements: Sequence[str],
    occurrences: Sequence[MarkupOccurrence] | None = None,
) -> str:
    """Fill wildcards in document order; unmatched wildcards stay as ``***``."""

    remaining = iter(replacements)

    def _replace(item: MarkupOccurrence) -> str | None:
        if not isinstance(item, Wildcard):
            return None
        return next(remaining, None)

    return _rewrite(text, occurrences, _replace)


def substitute_wildcards_in_section(
    text: str,
    replacements_by_section: Mapping[str, str],
    section_name: str,
) -> str:
    """Fill every wildcard of one section with that section's replacement text."""

    replacement = replacements_by_section.get(section_name)
    if not replacement:
        return text
    return _rewrite(
        text,
        None,
        lambda item: replacement if isinstance(item, Wildcard) else None,
    )


def resolve_vocabulary_refs(
    text: str,
    selections: Mapping[str, str],
    occurrences: Sequence[MarkupOccurrence] | None = None,
) -> str:
    """Rewrite unselected SmartLists whose id has a selection.

    Already-selected references are never touched, so repeated calls with the
    same selections are no-ops.
    """

    def _replace(item: MarkupOccurrence) -> str | None:
        if not isinstance(item, VocabularyRef) or item.is_selected:
            return None
        value = selections.get(item.vocab_id)
        if value is None:
            return None
        return format_selection(item.label, item.vocab_id, value)

    return _rewrite(text, occurrences, _replace)


def find_unselected_vocabulary_refs(
    text: str, occurrences: Sequence[MarkupOccurrence] | None = None
) -> list[SelectionParts]:
    """List SmartLists that still lack a selection."""

    items = parse(text) if occurrences is None else occurrences
    return [
        SelectionParts(label=item.label, vocab_id=item.vocab_id)
        for item in items
        if isinstance(item, VocabularyRef) and not item.is_selected
    ]


def normalize_markup(text: str) -> str:
    """Tidy hand-typed markup before parsing.

    Collapses whitespace inside ``@ id @`` and ``{ Label : 123 }`` and folds
    runs of four or more asterisks into a single wildcard.
    """

    result = _SPACED_LINK_RE.sub(r"@\1@", text)
    result = _SPACED_VOCABULARY_REF_RE.sub(r"{\1:\2}", result)
    return _ASTERISK_RUN_RE.sub("***", result)


def transform_for_output(text: str, selections: Mapping[str, str] | None = None) -> str:
    """Convert links to aliases, then apply any SmartList selections."""

    result = links_to_aliases(text)
    if selections:
        result = resolve_vocabulary_refs(result, selections)
    return result


def summarize_markup(text: str) -> MarkupSummary:
    occurrences = parse(text)
    return MarkupSummary(
        counts=count_markup(text, occurrences),
        link_identifiers=tuple(item.identifier for item in occurrences if isinstance(item, Link)),
        alias_identifiers=tuple(
            item.identifier for item in occurrences if isinstance(item, Alias)
        ),
        vocabulary_refs=tuple(
            SelectionParts(label=item.label, vocab_id=item.vocab_id, value=item.selection)
            for item in occurrences
            if isinstance(item, VocabularyRef)
        ),
    )


def _rewrite(
    text: str,
    occurrences: Sequence[MarkupOccurrence] | None,
    replace: Callable[[MarkupOccurrence], str | None],
) -> str:
    items = parse(text) if occurrences is None else sorted(occurrences, key=lambda o: o.start)
    pieces: list[str] = []
    cursor = 0
    for item in items:
        replacement = replace(item)
        if replacement is None:
            continue
        pieces.append(text[cursor : item.start])
        pieces.append(replacement)
        cursor = item.end
    pieces.append(text[cursor:])
    return "".join(pieces)
