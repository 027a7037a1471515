"""CSV import/export for SmartList catalogs.

One row per option; list metadata is repeated on every row of the list:

    list_id,display_name,aliases,group,option_text,option_order,is_default

``aliases`` holds extra aliases joined with ``|`` (the display name is always
the first alias and is not repeated there).
"""

from __future__ import annotations

import csv
import io
from collections.abc import Iterable

from pydantic import ValidationError

from scribe.utils.errors import CatalogImportError
from scribe.vocab.models import VocabularyList, VocabularyOption

TABULAR_COLUMNS = (
    "list_id",
    "display_name",
    "aliases",
    "group",
    "option_text",
    "option_order",
    "is_default",
)
_ALIAS_SEPARATOR = "|"
_TRUE_VALUES = {"true", "1", "yes", "y"}
_FALSE_VALUES = {"false", "0", "no", "n", ""}


def dump_lists_csv(lists: Iterable[VocabularyList]) -> str:
    """Serialize vocabulary lists to CSV text."""

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(TABULAR_COLUMNS)
    for vocabulary in lists:
        extra_aliases = _ALIAS_SEPARATOR.join(vocabulary.aliases[1:])
        for option in vocabulary.options:
            writer.writerow(
                (
                    vocabulary.id,
                    vocabulary.display_name,
                    extra_aliases,
                    vocabulary.group_name or "",
                    option.text,
                    option.order,
                    "true" if option.is_default else "false",
                )
            )
    return buffer.getvalue()


def load_lists_csv(text: str) -> list[VocabularyList]:
    """Parse CSV text into validated vocabulary lists, in first-seen order.

    Raises:
        CatalogImportError: On a missing header, malformed row, inconsistent
            list metadata or a list that fails model validation.
    """

    reader = csv.DictReader(io.StringIO(text))
    if reader.fieldnames is None:
        raise CatalogImportError("CSV input is empty")
    missing_columns = [column for column in TABULAR_COLUMNS if column not in reader.fieldnames]
    if missing_columns:
        raise CatalogImportError(f"CSV header is missing columns: {missing_columns}")

    metadata: dict[str, tuple[str, tuple[str, ...], str]] = {}
    options: dict[str, list[VocabularyOption]] = {}

    for row in reader:
        line = reader.line_num
        if all(not (value or "").strip() for value in row.values() if isinstance(value, str)):
            continue

        list_id = (row["list_id"] or "").strip()
        display_name = (row["display_name"] or "").strip()
        if not list_id:
            raise CatalogImportError("list_id is required", line=line)
        if not display_name:
            raise CatalogImportError("display_name is required", line=line)

        extra_aliases = tuple(
            alias.strip()
            for alias in (row["aliases"] or "").split(_ALIAS_SEPARATOR)
            if alias.strip()
        )
        row_metadata = (display_name, extra_aliases, (row["group"] or "").strip())
        known = metadata.setdefault(list_id, row_metadata)
        if known != row_metadata:
            raise CatalogImportError(
                f"list {list_id} has inconsistent metadata across rows", line=line
            )

        try:
            option = VocabularyOption(
                text=row["option_text"] or "",
                order=_parse_order(row["option_order"]),
                is_default=_parse_flag(row["is_default"]),
            )
        except (ValueError, ValidationError) as exc:
            raise CatalogImportError(f"invalid option for list {list_id}: {exc}", line=line) from exc
        options.setdefault(list_id, []).append(option)

    lists: list[VocabularyList] = []
    for list_id, (display_name, extra_aliases, group) in metadata.items():
        try:
            lists.append(
                VocabularyList(
                    id=list_id,
                    aliases=(display_name, *extra_aliases),
                    group_name=group or None,
                    options=tuple(options[list_id]),
                )
            )
        except ValidationError as exc:
            raise CatalogImportError(f"invalid list {list_id}: {exc}") from exc
    return lists


def _parse_order(raw: str | None) -> int:
    value = (raw or "").strip()
    if not value:
        return 0
    return int(value)


def _parse_flag(raw: str | None) -> bool:
    value = (raw or "").strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"is_default must be true or false, got {raw!r}")
