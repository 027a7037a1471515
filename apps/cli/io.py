"""CLI I/O helpers: input loading and atomic output writing."""

from __future__ import annotations

import importlib
import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from scribe.prompt.models import Template

yaml = importlib.import_module("yaml")


@dataclass(frozen=True)
class CompileOutputPaths:
    """Fixed output artifact paths for one compile run."""

    prompt: Path
    metadata: Path


def build_compile_paths(out_dir: Path) -> CompileOutputPaths:
    return CompileOutputPaths(
        prompt=out_dir / "out.prompt.txt",
        metadata=out_dir / "out.prompt.json",
    )


def existing_output_files(paths: CompileOutputPaths) -> list[Path]:
    return [path for path in (paths.prompt, paths.metadata) if path.exists()]


def read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8")


def load_template(path: Path) -> Template:
    """Load a note template from YAML (or JSON)."""

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ValueError(f"Template file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in template file: {path}") from exc

    if not isinstance(raw, dict):
        raise ValueError(f"Template file must contain a mapping: {path}")

    try:
        return Template.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid template schema: {path}") from exc


def write_text_atomic(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        newline="",
        dir=path.parent,
        delete=False,
        prefix=f"{path.name}.",
        suffix=".tmp",
    ) as tmp:
        tmp_path = Path(tmp.name)
        tmp.write(text)

    tmp_path.replace(path)


def write_json_atomic(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=path.parent,
        delete=False,
        prefix=f"{path.name}.",
        suffix=".tmp",
    ) as tmp:
        tmp_path = Path(tmp.name)
        json.dump(payload, tmp, ensure_ascii=False, sort_keys=True, separators=(",", ":"))

    tmp_path.replace(path)


def write_yaml_atomic(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, raw_tmp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=f"{path.name}.",
        suffix=".tmp",
    )
    os.close(fd)
    tmp_path = Path(raw_tmp_path)

    try:
        with tmp_path.open("w", encoding="utf-8") as handle:
            yaml.safe_dump(payload, handle, allow_unicode=True, sort_keys=False)
        tmp_path.replace(path)
    except Exception:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)
        raise
