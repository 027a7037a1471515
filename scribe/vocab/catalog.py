"""In-memory SmartList catalog with selection history and prompt rendering.

The index is an immutable snapshot. Writers (imports, list replacement,
selection recording) are serialized by a lock and publish a new snapshot with
a single attribute assignment, so readers always see either the old or the
new state, never a partial one.
"""

from __future__ import annotations

import logging
import re
import threading
from collections import Counter
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from types import MappingProxyType

from scribe.smarttools.models import VocabularyRef
from scribe.smarttools.parser import parse
from scribe.utils.errors import CatalogImportError
from scribe.utils.log_events import log_event
from scribe.validate.models import ValidationReport
from scribe.vocab.models import CatalogConfig, InvalidSelection, SelectionEvent, VocabularyList
from scribe.vocab.tabular import dump_lists_csv, load_lists_csv

logger = logging.getLogger("scribe.vocab")

SELECTED_VALUE_PLACEHOLDER = "selected value"
_SELECTION_FRAGMENT_RE = re.compile(r"\{[^:}\n]+:\d+::[^}\n]*\}?")


@dataclass(frozen=True)
class _CatalogIndex:
    lists: tuple[VocabularyList, ...]
    by_id: Mapping[str, VocabularyList]
    by_alias: Mapping[str, VocabularyList]


def _build_index(lists: Iterable[VocabularyList]) -> _CatalogIndex:
    ordered: list[VocabularyList] = []
    by_id: dict[str, VocabularyList] = {}
    by_alias: dict[str, VocabularyList] = {}

    for vocabulary in lists:
        if vocabulary.id in by_id:
            raise CatalogImportError(f"Duplicate vocabulary id: {vocabulary.id}")
        by_id[vocabulary.id] = vocabulary
        ordered.append(vocabulary)
        for alias in vocabulary.aliases:
            existing = by_alias.get(alias)
            if existing is not None and existing.id != vocabulary.id:
                raise CatalogImportError(
                    f"Alias {alias!r} is used by vocabularies {existing.id} and {vocabulary.id}"
                )
            by_alias[alias] = vocabulary

    return _CatalogIndex(
        lists=tuple(ordered),
        by_id=MappingProxyType(by_id),
        by_alias=MappingProxyType(by_alias),
    )


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class VocabularyCatalog:
    """Owns SmartList definitions and the per-list selection log."""

    def __init__(
        self,
        lists: Iterable[VocabularyList] = (),
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._write_lock = threading.Lock()
        self._clock = clock or _utc_now
        self._index = _build_index(lists)
        self._log: Mapping[str, tuple[SelectionEvent, ...]] = MappingProxyType({})

    @classmethod
    def from_config(
        cls, config: CatalogConfig, *, clock: Callable[[], datetime] | None = None
    ) -> VocabularyCatalog:
        return cls(config.vocabularies, clock=clock)

    def __len__(self) -> int:
        return len(self._index.lists)

    # Lookups

    def lookup_by_id(self, vocab_id: str) -> VocabularyList | None:
        return self._index.by_id.get(vocab_id)

    def lookup_by_alias(self, alias: str) -> VocabularyList | None:
        return self._index.by_alias.get(alias)

    def resolve(self, key: str) -> VocabularyList | None:
        """Find a list by stable id first, then by alias."""

        index = self._index
        return index.by_id.get(key) or index.by_alias.get(key)

    def resolve_ref(self, vocab_id: str, label: str) -> VocabularyList | None:
        """Resolve a ``{Label:id}`` reference by id, then by its trimmed label.

        Both lookups read the same snapshot.
        """

        index = self._index
        return index.by_id.get(vocab_id) or index.by_alias.get(label.strip())

    def all_lists(self) -> list[VocabularyList]:
        return list(self._index.lists)

    def list_by_group(self, group_name: str) -> list[VocabularyList]:
        return [item for item in self._index.lists if item.group_name == group_name]

    def groups(self) -> dict[str, list[str]]:
        """Map each group name to the ids of its lists, in catalog order."""

        grouped: dict[str, list[str]] = {}
        for vocabulary in self._index.lists:
            if vocabulary.group_name is not None:
                grouped.setdefault(vocabulary.group_name, []).append(vocabulary.id)
        return grouped

    # Selection log

    def record_selection(
        self, vocab_id: str, value: str, context: str | None = None
    ) -> SelectionEvent | InvalidSelection:
        """Append a selection if ``value`` is one of the list's option texts.

        Returns the stored event, or an ``InvalidSelection`` describing why the
        value was rejected. The log is untouched on rejection.
        """

        with self._write_lock:
            vocabulary = self.resolve(vocab_id)
            if vocabulary is None:
                log_event(
                    logger,
                    logging.WARNING,
                    "selection_rejected",
                    vocab_id=vocab_id,
                    reason="unknown_vocabulary",
                )
                return InvalidSelection(
                    vocab_id=vocab_id,
                    value=value,
                    reason="unknown_vocabulary",
                    message=f"SmartList {vocab_id} not found",
                )
            if not vocabulary.allows(value):
                allowed = tuple(vocabulary.option_texts)
                log_event(
                    logger,
                    logging.WARNING,
                    "selection_rejected",
                    vocab_id=vocabulary.id,
                    reason="value_not_allowed",
                )
                return InvalidSelection(
                    vocab_id=vocabulary.id,
                    value=value,
                    reason="value_not_allowed",
                    message=(
                        f'Invalid value "{value}" for SmartList {vocabulary.display_name} '
                        f"({vocabulary.id}). Allowed values: {', '.join(allowed)}"
                    ),
                    allowed=allowed,
                )

            event = SelectionEvent(
                vocab_id=vocabulary.id,
                value=value,
                timestamp=self._clock(),
                context=context,
            )
            updated = dict(self._log)
            updated[vocabulary.id] = (*updated.get(vocabulary.id, ()), event)
            self._log = MappingProxyType(updated)
            return event

    def selections(self, vocab_id: str) -> tuple[SelectionEvent, ...]:
        vocabulary = self.resolve(vocab_id)
        key = vocabulary.id if vocabulary is not None else vocab_id
        return self._log.get(key, ())

    def recent_selections(self, vocab_id: str, limit: int = 10) -> list[SelectionEvent]:
        """Newest-first selection events for one list."""

        events = self.selections(vocab_id)
        ordered = sorted(
            enumerate(events), key=lambda item: (item[1].timestamp, item[0]), reverse=True
        )
        return [event for _, event in ordered[:limit]]

    def most_frequent(self, vocab_id: str) -> str | None:
        """Most often recorded value; ties go to the value recorded first."""

        events = self.selections(vocab_id)
        if not events:
            return None
        counts = Counter(event.value for event in events)
        return counts.most_common(1)[0][0]

    def default_value(self, vocab_id: str) -> str | None:
        vocabulary = self.resolve(vocab_id)
        if vocabulary is None or vocabulary.default_option is None:
            return None
        return vocabulary.default_option.text

    # Prompt rendering

    def render_for_prompt(self, vocab_id: str) -> str:
        """Describe one list for an LLM: allowed values and the selected-form syntax."""

        vocabulary = self.resolve(vocab_id)
        if vocabulary is None:
            log_event(logger, logging.WARNING, "render_unknown_vocabulary", vocab_id=vocab_id)
            return ""

        default_value = self.default_value(vocabulary.id)
        most_common = self.most_frequent(vocabulary.id)
        placeholder = f"{{{vocabulary.display_name}:{vocabulary.id}}}"
        selected_form = (
            f'{{{vocabulary.display_name}:{vocabulary.id}:: "{SELECTED_VALUE_PLACEHOLDER}"}}'
        )

        lines = [
            f"SmartList: {vocabulary.display_name} (ID: {vocabulary.id})",
            f"Template placeholder: {placeholder}",
            "Allowed values (choose exactly one, copy the text exactly):",
        ]
        for option in vocabulary.options:
            annotation = ""
            if option.is_default:
                annotation += " [DEFAULT]"
            if option.text == most_common:
                annotation += " [MOST COMMON]"
            lines.append(f'  - "{option.text}"{annotation}')

        lines.append("")
        lines.append(f"When you see {placeholder} in the template:")
        lines.append("  -> Select the value best supported by the transcript")
        lines.append(f"  -> Write the selection as {selected_form}")
        lines.append("  -> Never write a value that is not in the allowed list")
        if default_value is not None:
            lines.append(f'  -> If unsure, prefer "{default_value}"')
        return "\n".join(lines) + "\n"

    def render_many_for_prompt(self, vocab_ids: Sequence[str]) -> str:
        """Render a definitions block for several lists, or ``""`` when none render."""

        blocks = [block for block in (self.render_for_prompt(key) for key in vocab_ids) if block]
        log_event(
            logger,
            logging.DEBUG,
            "render_definitions",
            requested=len(vocab_ids),
            rendered=len(blocks),
        )
        if not blocks:
            return ""

        parts = [
            "=== SMARTLIST DEFINITIONS ===",
            "",
            "The following SmartLists appear in the template. "
            "Select values based on the transcript content.",
            "",
            "\n---\n\n".join(blocks),
            "=== END SMARTLIST DEFINITIONS ===",
        ]
        return "\n".join(parts) + "\n"

    # Post-generation enforcement

    def validate_selections_in_text(self, text: str) -> ValidationReport:
        """Check every selected SmartList in ``text`` against the catalog.

        Fragments that start a selected form but do not parse (an empty or
        unquoted value) are reported as errors too.
        """

        errors: list[str] = []
        warnings: list[str] = []
        refs = [item for item in parse(text) if isinstance(item, VocabularyRef)]
        for occurrence in refs:
            if not occurrence.is_selected:
                warnings.append(
                    f"SmartList {occurrence.label} ({occurrence.vocab_id}) has no selection"
                )
                continue
            vocabulary = self.lookup_by_id(occurrence.vocab_id)
            if vocabulary is None:
                errors.append(f"Unknown SmartList with ID {occurrence.vocab_id}")
                continue
            if not vocabulary.allows(occurrence.selection or ""):
                allowed = ", ".join(f'"{option}"' for option in vocabulary.option_texts)
                errors.append(
                    f'Invalid value "{occurrence.selection}" for SmartList '
                    f"{occurrence.label} ({occurrence.vocab_id}). Allowed: {allowed}"
                )
        for fragment in _SELECTION_FRAGMENT_RE.finditer(text):
            if any(ref.start <= fragment.start() < ref.end for ref in refs):
                continue
            errors.append(
                f"Malformed SmartList selection {fragment.group(0)}. "
                'Use {Label:id:: "value"} with a non-empty quoted value'
            )
        return ValidationReport.from_messages(errors, warnings, section="SmartLists")

    # Bulk import/export

    def export_tabular(self) -> str:
        return dump_lists_csv(self._index.lists)

    def import_tabular(self, text: str) -> int:
        """Replace the whole catalog from CSV text; returns the number of lists.

        Raises:
            CatalogImportError: When the input is malformed. The current
                catalog is left unchanged.
        """

        index = _build_index(load_lists_csv(text))
        self._swap_index(index)
        return len(index.lists)

    def replace_lists(self, lists: Iterable[VocabularyList]) -> None:
        """Replace the whole catalog from already validated lists.

        Raises:
            CatalogImportError: On duplicate ids or an alias shared by two
                lists. The current catalog is left unchanged.
        """

        self._swap_index(_build_index(lists))

    def _swap_index(self, index: _CatalogIndex) -> None:
        with self._write_lock:
            self._index = index
        log_event(logger, logging.INFO, "catalog_replaced", list_count=len(index.lists))
