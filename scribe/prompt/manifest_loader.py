"""Prompt manifest loading."""

from __future__ import annotations

from pathlib import Path

import yaml  # type: ignore[import-untyped]
from pydantic import ValidationError

from scribe.prompt.models import PromptManifest


def load_manifest(path: Path | None = None) -> PromptManifest:
    """Load and validate prompt wording from YAML."""

    manifest_path = path or Path(__file__).with_name("manifest.yaml")

    try:
        raw = yaml.safe_load(manifest_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ValueError(f"Manifest file not found: {manifest_path}") from exc
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in manifest file: {manifest_path}") from exc

    if not isinstance(raw, dict):
        raise ValueError(f"Manifest file must contain a mapping: {manifest_path}")

    try:
        return PromptManifest.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid manifest schema: {manifest_path}") from exc
