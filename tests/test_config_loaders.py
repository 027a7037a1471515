from __future__ import annotations

from pathlib import Path

import pytest

from scribe.prompt.manifest_loader import load_manifest
from scribe.validate.grammar_loader import SIGNATURE_ENV_VAR, load_grammar
from scribe.vocab.loader import load_catalog, load_catalog_config


def test_load_default_catalog() -> None:
    catalog = load_catalog()

    mood = catalog.lookup_by_alias("Mood")
    assert mood is not None
    assert mood.id == "304120108"
    assert catalog.default_value("304120108") == "Euthymic"
    assert catalog.resolve("304120106").display_name == "Sleep Quality"


def test_load_catalog_config_raises_for_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="Catalog file not found"):
        load_catalog_config(tmp_path / "missing.yaml")


def test_load_catalog_config_raises_for_non_mapping(tmp_path: Path) -> None:
    path = tmp_path / "catalog.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ValueError, match="must contain a mapping"):
        load_catalog_config(path)


def test_load_catalog_config_raises_for_invalid_schema(tmp_path: Path) -> None:
    path = tmp_path / "catalog.yaml"
    path.write_text(
        """
vocabularies:
  - id: "1"
    aliases: [Mood]
    options: []
""",
        encoding="utf-8",
    )

    with pytest.raises(ValueError, match="Invalid catalog schema"):
        load_catalog_config(path)


def test_load_catalog_raises_for_duplicate_ids(tmp_path: Path) -> None:
    path = tmp_path / "catalog.yaml"
    path.write_text(
        """
vocabularies:
  - id: "1"
    aliases: [Mood]
    options: [{text: Euthymic}]
  - id: "1"
    aliases: [Humor]
    options: [{text: Euthymic}]
""",
        encoding="utf-8",
    )

    with pytest.raises(ValueError, match="Invalid catalog contents"):
        load_catalog(path)


def test_load_grammar_with_explicit_signature() -> None:
    grammar = load_grammar(signature_line="  Rufus Sweeney, MD  ")

    assert grammar.signature_line == "Rufus Sweeney, MD"
    assert "Formulation" in grammar.formulation_sections
    assert [item.name for item in grammar.plan_subheaders] == [
        "Medications",
        "Psychotherapy Referral",
        "Therapy Conducted",
        "Follow-up",
    ]


def test_load_grammar_reads_signature_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(SIGNATURE_ENV_VAR, "Jane Roe, DO")

    assert load_grammar().signature_line == "Jane Roe, DO"


def test_load_grammar_requires_signature(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(SIGNATURE_ENV_VAR, raising=False)

    with pytest.raises(ValueError, match="SIGNING_CLINICIAN"):
        load_grammar()


def test_load_grammar_rejects_unknown_role_header(tmp_path: Path) -> None:
    path = tmp_path / "grammar.yaml"
    path.write_text(
        """
section_headers: [Plan]
formulation_sections: [Formulation]
plan_sections: [Plan]
signature_line: Dr. Test
medications: {name: Medications, labels: ["Medications:"]}
psychotherapy_referral: {name: Psychotherapy Referral, labels: ["Referral:"]}
therapy_conducted: {name: Therapy Conducted, labels: ["Therapy:"]}
follow_up: {name: Follow-up, labels: ["Follow-up:"]}
""",
        encoding="utf-8",
    )

    with pytest.raises(ValueError, match="Invalid grammar schema"):
        load_grammar(path)


def test_load_grammar_raises_for_invalid_yaml(tmp_path: Path) -> None:
    path = tmp_path / "grammar.yaml"
    path.write_text("section_headers: [Plan\n", encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid YAML in grammar file"):
        load_grammar(path, signature_line="Dr. Test")


def test_load_default_manifest() -> None:
    manifest = load_manifest()

    assert manifest.is_follow_up("follow-up")
    assert manifest.is_follow_up("Transfer of Care")
    assert not manifest.is_follow_up("Intake")
    assert not manifest.is_follow_up(None)
    assert "Formulation" in manifest.section_guidance


def test_load_manifest_raises_for_missing_field(tmp_path: Path) -> None:
    path = tmp_path / "manifest.yaml"
    path.write_text("role: x\ntask: y\n", encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid manifest schema"):
        load_manifest(path)
