"""Regex extraction of reusable facts from a previous visit's note."""

from __future__ import annotations

import re
from collections.abc import Sequence

from scribe.prompt.models import PriorNoteFacts

_PATIENT_RE = re.compile(r"Patient:[ \t]*([A-Z][a-z]+)[ \t]+([A-Z][a-z]+)", re.IGNORECASE)
_PROVIDER_RE = re.compile(r"Provider:[ \t]*([^\n]+)", re.IGNORECASE)
_DATE_OF_SERVICE_RE = re.compile(r"Date of Service:[ \t]*([^\n]+)", re.IGNORECASE)
_SEPARATOR_RE = re.compile(r"^\s*-{3,}\s*$")


def extract_prior_facts(
    text: str,
    *,
    plan_headers: Sequence[str] = ("Plan",),
    stop_headers: Sequence[str] = (),
) -> PriorNoteFacts:
    """Pull patient name, provider, date of service and Plan text.

    Every field is optional; a note with none of the markers yields an empty
    ``PriorNoteFacts``.
    """

    first_name = last_name = None
    match = _PATIENT_RE.search(text)
    if match:
        first_name, last_name = match.group(1), match.group(2)

    return PriorNoteFacts(
        patient_first_name=first_name,
        patient_last_name=last_name,
        provider_name=_first_value(_PROVIDER_RE, text),
        date_of_service=_first_value(_DATE_OF_SERVICE_RE, text),
        plan_section=extract_plan_section(text, plan_headers=plan_headers, stop_headers=stop_headers),
    )


def extract_plan_section(
    text: str,
    *,
    plan_headers: Sequence[str] = ("Plan",),
    stop_headers: Sequence[str] = (),
) -> str | None:
    """Return the Plan body with lines trimmed and blank lines dropped.

    The body runs from a line holding only a plan header (optionally followed
    by a colon) to the next stop header, a ``---`` separator or the end.
    """

    plan_names = {_header_key(name) for name in plan_headers}
    stop_names = {_header_key(name) for name in stop_headers} - plan_names

    collected: list[str] | None = None
    for line in text.splitlines():
        key = _header_key(line)
        if collected is None:
            if key in plan_names:
                collected = []
            continue
        if key in stop_names or _SEPARATOR_RE.match(line):
            break
        stripped = line.strip()
        if stripped:
            collected.append(stripped)

    if not collected:
        return None
    return "\n".join(collected)


def has_minimum_facts(facts: PriorNoteFacts) -> bool:
    return facts.patient_name is not None


def format_prior_facts(facts: PriorNoteFacts) -> str:
    lines: list[str] = []
    if facts.patient_name:
        lines.append(f"Patient Name: {facts.patient_name}")
    if facts.provider_name:
        lines.append(f"Provider: {facts.provider_name}")
    if facts.date_of_service:
        lines.append(f"Previous Date of Service: {facts.date_of_service}")
    if facts.plan_section:
        lines.append("")
        lines.append("Previous Plan (baseline to modify):")
        lines.append(facts.plan_section)
    return "\n".join(lines)


def _first_value(pattern: re.Pattern[str], text: str) -> str | None:
    match = pattern.search(text)
    if not match:
        return None
    return match.group(1).strip() or None


def _header_key(line: str) -> str:
    return line.strip().rstrip(":").strip().casefold()
