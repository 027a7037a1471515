"""Catalog loading from the vocabulary configuration source."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import yaml  # type: ignore[import-untyped]
from pydantic import ValidationError

from scribe.vocab.catalog import VocabularyCatalog
from scribe.vocab.models import CatalogConfig


def load_catalog_config(path: Path | None = None) -> CatalogConfig:
    """Load and validate a catalog definition from YAML (or JSON)."""

    config_path = path or Path(__file__).with_name("catalog.yaml")

    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ValueError(f"Catalog file not found: {config_path}") from exc
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in catalog file: {config_path}") from exc

    if not isinstance(raw, dict):
        raise ValueError(f"Catalog file must contain a mapping: {config_path}")

    try:
        return CatalogConfig.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid catalog schema: {config_path}: {exc}") from exc


def load_catalog(
    path: Path | None = None, *, clock: Callable[[], datetime] | None = None
) -> VocabularyCatalog:
    """Build a ``VocabularyCatalog`` from a catalog file."""

    config = load_catalog_config(path)
    try:
        return VocabularyCatalog.from_config(config, clock=clock)
    except ValueError as exc:
        raise ValueError(f"Invalid catalog contents: {path or 'catalog.yaml'}: {exc}") from exc
