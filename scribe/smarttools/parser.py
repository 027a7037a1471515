"""SmartTools markup parser.

Recognized elements:
- SmartLink ``@identifier@`` -> ``Link``
- DotPhrase ``.identifier`` (never after a digit, so ``3.14`` is not one) -> ``Alias``
- Wildcard ``***`` (exactly three asterisks) -> ``Wildcard``
- SmartList ``{Label:123}`` / ``{Label:123:: "value"}`` -> ``VocabularyRef``

The text is scanned once, left to right, with a single combined pattern. At a
given offset the kinds are tried in the order Link, Alias, Wildcard,
VocabularyRef and the first match wins; scanning resumes after the match, so
occurrence spans never overlap.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from scribe.smarttools.models import (
    Alias,
    HighlightSpan,
    Link,
    MarkupCounts,
    MarkupKind,
    MarkupOccurrence,
    VocabularyRef,
    Wildcard,
)

_LINK = r"@(?P<link_id>[A-Za-z0-9_]+)@"
_ALIAS = r"(?<![0-9])\.(?P<alias_id>[A-Za-z][A-Za-z0-9_]*)"
_WILDCARD = r"(?<!\*)\*\*\*(?!\*)"
_VOCABULARY_REF = r'\{(?P<label>[^:}]+):(?P<vocab_id>\d+)(?:::\s*"(?P<selection>[^"]+)")?\}'

_MARKUP_RE = re.compile(
    rf"(?P<link>{_LINK})"
    rf"|(?P<alias>{_ALIAS})"
    rf"|(?P<wildcard>{_WILDCARD})"
    rf"|(?P<vocabulary_ref>{_VOCABULARY_REF})"
)
_LINK_RE = re.compile(_LINK)
_VOCABULARY_REF_RE = re.compile(_VOCABULARY_REF)


def parse(text: str) -> list[MarkupOccurrence]:
    """Parse SmartTools markup into position-ordered, non-overlapping occurrences."""

    occurrences: list[MarkupOccurrence] = []
    for match in _MARKUP_RE.finditer(text):
        start, end = match.span()
        token = match.group(0)
        if match.group("link") is not None:
            occurrences.append(
                Link(start=start, end=end, text=token, identifier=match.group("link_id"))
            )
        elif match.group("alias") is not None:
            occurrences.append(
                Alias(start=start, end=end, text=token, identifier=match.group("alias_id"))
            )
        elif match.group("wildcard") is not None:
            occurrences.append(Wildcard(start=start, end=end, text=token))
        else:
            occurrences.append(
                VocabularyRef(
                    start=start,
                    end=end,
                    text=token,
                    label=match.group("label").strip(),
                    vocab_id=match.group("vocab_id"),
                    selection=match.group("selection"),
                )
            )
    return occurrences


def extract_identifiers(text: str, kind: MarkupKind) -> list[str]:
    """Return unique identifiers of one kind in first-seen order.

    VocabularyRefs contribute their vocabulary id; wildcards have none.
    """

    seen: dict[str, None] = {}
    for occurrence in parse(text):
        if occurrence.kind != kind:
            continue
        if isinstance(occurrence, (Link, Alias)):
            seen.setdefault(occurrence.identifier, None)
        elif isinstance(occurrence, VocabularyRef):
            seen.setdefault(occurrence.vocab_id, None)
    return list(seen)


def extract_link_identifiers(text: str) -> list[str]:
    return extract_identifiers(text, "link")


def extract_vocabulary_ids(text: str) -> list[str]:
    return extract_identifiers(text, "vocabulary_ref")


def contains_markup(text: str) -> bool:
    return _MARKUP_RE.search(text) is not None


def count_markup(
    text: str, occurrences: Sequence[MarkupOccurrence] | None = None
) -> MarkupCounts:
    """Count occurrences by kind."""

    items = parse(text) if occurrences is None else occurrences
    counts = {"link": 0, "alias": 0, "wildcard": 0, "vocabulary_ref": 0}
    for occurrence in items:
        counts[occurrence.kind] += 1
    return MarkupCounts(
        links=counts["link"],
        aliases=counts["alias"],
        wildcards=counts["wildcard"],
        vocabulary_refs=counts["vocabulary_ref"],
    )


def highlight_positions(text: str) -> list[HighlightSpan]:
    """Return a merged, position-sorted view across all kinds."""

    spans: list[HighlightSpan] = []
    for occurrence in parse(text):
        identifier: str | None
        if isinstance(occurrence, (Link, Alias)):
            identifier = occurrence.identifier
        elif isinstance(occurrence, VocabularyRef):
            identifier = f"{occurrence.label}:{occurrence.vocab_id}"
        else:
            identifier = None
        spans.append(
            HighlightSpan(
                start=occurrence.start,
                end=occurrence.end,
                kind=occurrence.kind,
                identifier=identifier,
            )
        )
    return sorted(spans, key=lambda item: item.start)


def is_valid_link(text: str) -> bool:
    return _LINK_RE.fullmatch(text) is not None


def is_valid_vocabulary_ref(text: str) -> bool:
    return _VOCABULARY_REF_RE.fullmatch(text) is not None
