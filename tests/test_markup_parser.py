from __future__ import annotations

from scribe.smarttools.models import Alias, Link, VocabularyRef, Wildcard
from scribe.smarttools.parser import (
    contains_markup,
    count_markup,
    extract_identifiers,
    extract_link_identifiers,
    extract_vocabulary_ids,
    highlight_positions,
    is_valid_link,
    is_valid_vocabulary_ref,
    parse,
)


def test_parse_each_kind_with_exact_spans() -> None:
    text = "Name: @FNAME@ age .age note *** mood {Mood:1001}"

    result = parse(text)

    assert [type(item) for item in result] == [Link, Alias, Wildcard, VocabularyRef]
    for item in result:
        assert text[item.start : item.end] == item.text
    assert result[0].identifier == "FNAME"
    assert result[1].identifier == "age"
    assert result[3].label == "Mood"
    assert result[3].vocab_id == "1001"
    assert result[3].selection is None


def test_parse_selected_vocabulary_ref() -> None:
    result = parse('Mood: {Mood:1001:: "Anxious"}')

    assert len(result) == 1
    ref = result[0]
    assert isinstance(ref, VocabularyRef)
    assert ref.selection == "Anxious"
    assert ref.is_selected


def test_alias_not_matched_after_digit() -> None:
    assert parse("Dose 3.14 mg and 0.5mg") == []


def test_wildcard_requires_exactly_three_asterisks() -> None:
    assert parse("** and **** and *****") == []
    assert count_markup("*** then ***").wildcards == 2


def test_spans_never_overlap() -> None:
    text = "@a@@b@ .x.y *** {L:1}{M:2}"

    result = parse(text)

    for previous, current in zip(result, result[1:]):
        assert previous.end <= current.start


def test_link_inside_vocabulary_label_is_absorbed_by_earlier_ref() -> None:
    result = parse("{Mood @x@:1001}")

    assert len(result) == 1
    assert isinstance(result[0], VocabularyRef)


def test_malformed_fragments_are_not_occurrences() -> None:
    assert parse("@unterminated and {Mood:abc} and {Mood:12") == []


def test_extract_identifiers_unique_in_first_seen_order() -> None:
    text = "@B@ @A@ @B@ .C {X:2} {Y:1} {Z:2}"

    assert extract_link_identifiers(text) == ["B", "A"]
    assert extract_identifiers(text, "alias") == ["C"]
    assert extract_vocabulary_ids(text) == ["2", "1"]
    assert extract_identifiers(text, "wildcard") == []


def test_contains_markup_and_counts() -> None:
    assert contains_markup("plain .text")
    assert not contains_markup("plain text 3.5")

    counts = count_markup("@A@ .b *** {L:1} {M:2}")

    assert counts.links == 1
    assert counts.aliases == 1
    assert counts.wildcards == 1
    assert counts.vocabulary_refs == 2
    assert counts.total == 5


def test_highlight_positions_sorted_and_tagged() -> None:
    spans = highlight_positions("{Mood:1} then @X@ then ***")

    assert [span.kind for span in spans] == ["vocabulary_ref", "link", "wildcard"]
    assert spans[0].identifier == "Mood:1"
    assert spans[1].identifier == "X"
    assert spans[2].identifier is None
    assert [span.start for span in spans] == sorted(span.start for span in spans)


def test_fullmatch_validators() -> None:
    assert is_valid_link("@FNAME@")
    assert not is_valid_link("@FNAME@ extra")
    assert is_valid_vocabulary_ref('{Mood:1001:: "Euthymic"}')
    assert not is_valid_vocabulary_ref("{Mood:one}")
