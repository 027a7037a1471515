from __future__ import annotations

from scribe.smarttools.models import SelectionParts
from scribe.smarttools.parser import parse
from scribe.smarttools.transformer import (
    aliases_to_links,
    find_unselected_vocabulary_refs,
    format_selection,
    links_to_aliases,
    normalize_markup,
    parse_selection,
    resolve_vocabulary_refs,
    substitute_wildcards,
    substitute_wildcards_in_section,
    summarize_markup,
    transform_for_output,
)


def test_links_to_aliases_and_back() -> None:
    converted = links_to_aliases("@FNAME@ is @age@")

    assert converted == ".FNAME is .age"
    assert aliases_to_links(converted) == "@FNAME@ is @age@"


def test_links_round_trip_only_when_alias_reads_back() -> None:
    assert links_to_aliases("@FNAME@s chart") == ".FNAMEs chart"
    assert aliases_to_links(".FNAMEs chart") == "@FNAMEs@ chart"
    assert links_to_aliases("@1st@") == ".1st"
    assert aliases_to_links(".1st") == ".1st"
    assert aliases_to_links(links_to_aliases("@FNAME@'s chart")) == "@FNAME@'s chart"


def test_links_to_aliases_accepts_pre_parsed_occurrences() -> None:
    text = "Seen by @provider@ on @DATE@"

    assert links_to_aliases(text, parse(text)) == "Seen by .provider on .DATE"


def test_format_and_parse_selection() -> None:
    selected = format_selection("Mood", "1001", "Anxious")

    assert selected == '{Mood:1001:: "Anxious"}'
    assert parse_selection(selected) == SelectionParts(label="Mood", vocab_id="1001", value="Anxious")
    assert parse_selection("{Mood:1001}") == SelectionParts(label="Mood", vocab_id="1001")
    assert parse_selection("no markup here") is None


def test_substitute_wildcards_preserves_unfilled() -> None:
    result = substitute_wildcards("A *** B *** C ***", ["one", "two"])

    assert result == "A one B two C ***"


def test_substitute_wildcards_in_section() -> None:
    text = "Sleep: *** Appetite: ***"

    assert substitute_wildcards_in_section(text, {"HPI": "normal"}, "HPI") == (
        "Sleep: normal Appetite: normal"
    )
    assert substitute_wildcards_in_section(text, {"HPI": "normal"}, "Plan") == text


def test_resolve_vocabulary_refs_is_idempotent() -> None:
    text = "Mood: {Mood:1001}. Sleep: {Sleep Quality:1002}."
    selections = {"1001": "Anxious"}

    once = resolve_vocabulary_refs(text, selections)
    twice = resolve_vocabulary_refs(once, selections)

    assert once == 'Mood: {Mood:1001:: "Anxious"}. Sleep: {Sleep Quality:1002}.'
    assert twice == once


def test_resolve_never_overwrites_existing_selection() -> None:
    text = '{Mood:1001:: "Depressed"}'

    assert resolve_vocabulary_refs(text, {"1001": "Anxious"}) == text


def test_find_unselected_vocabulary_refs() -> None:
    text = '{Mood:1001:: "Anxious"} {Affect:1002} {Sleep Quality:1003}'

    assert find_unselected_vocabulary_refs(text) == [
        SelectionParts(label="Affect", vocab_id="1002"),
        SelectionParts(label="Sleep Quality", vocab_id="1003"),
    ]


def test_normalize_markup() -> None:
    text = "@ FNAME @ and { Mood : 1001 } and ******"

    assert normalize_markup(text) == "@FNAME@ and {Mood:1001} and ***"


def test_transform_for_output_leaves_no_links() -> None:
    result = transform_for_output("@FNAME@ mood {Mood:1001}", {"1001": "Euthymic"})

    assert result == '.FNAME mood {Mood:1001:: "Euthymic"}'
    summary = summarize_markup(result)
    assert summary.counts.links == 0
    assert summary.alias_identifiers == ("FNAME",)
    assert summary.vocabulary_refs[0].value == "Euthymic"
    assert not summary.has_wildcards
