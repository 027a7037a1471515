"""Custom exceptions for core logic."""

from __future__ import annotations


class CatalogImportError(ValueError):
    """Raised when vocabulary lists cannot be loaded into a catalog.

    Covers malformed tabular input as well as lists that conflict with each
    other. The catalog keeps its previous index when this is raised.
    """

    def __init__(self, message: str, *, line: int | None = None) -> None:
        super().__init__(message if line is None else f"line {line}: {message}")
        self.line = line
