"""Grammar loading utilities for note validation."""

from __future__ import annotations

import os
from pathlib import Path

import yaml  # type: ignore[import-untyped]
from pydantic import ValidationError

from scribe.validate.models import NoteGrammar

SIGNATURE_ENV_VAR = "SCRIBE_SIGNATURE_LINE"
_SIGNATURE_TOKEN = "SIGNING_CLINICIAN"


def load_grammar(path: Path | None = None, *, signature_line: str | None = None) -> NoteGrammar:
    """Load and validate note grammar from YAML.

    The bundled grammar ships the ``SIGNING_CLINICIAN`` token instead of a real
    signature. It is replaced by ``signature_line`` when given, otherwise by the
    ``SCRIBE_SIGNATURE_LINE`` environment variable; an unresolved token is an
    error because the Plan closing rule cannot be checked without it.
    """

    grammar_path = path or Path(__file__).with_name("grammar.yaml")

    try:
        raw = yaml.safe_load(grammar_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ValueError(f"Grammar file not found: {grammar_path}") from exc
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in grammar file: {grammar_path}") from exc

    if not isinstance(raw, dict):
        raise ValueError(f"Grammar file must contain a mapping: {grammar_path}")

    normalized = _resolve_signature(raw, grammar_path, signature_line)

    try:
        return NoteGrammar.model_validate(normalized)
    except ValidationError as exc:
        raise ValueError(f"Invalid grammar schema: {grammar_path}") from exc


def _resolve_signature(
    raw: dict[object, object], grammar_path: Path, signature_line: str | None
) -> dict[object, object]:
    normalized = dict(raw)
    if signature_line is not None:
        normalized["signature_line"] = signature_line
        return normalized

    if normalized.get("signature_line") != _SIGNATURE_TOKEN:
        return normalized

    from_env = os.environ.get(SIGNATURE_ENV_VAR, "").strip()
    if not from_env:
        raise ValueError(
            f"Grammar {grammar_path} uses the {_SIGNATURE_TOKEN} token; pass signature_line "
            f"or set {SIGNATURE_ENV_VAR}."
        )
    normalized["signature_line"] = from_env
    return normalized
