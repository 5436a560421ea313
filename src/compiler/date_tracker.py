"""
Date-field tracker.

The running set of field names believed to hold date values while a
pipeline is walked stage by stage.  Seeded from the primary collection's
schema snapshot, then updated by the sanitizer after each stage.  Lives
only for one sanitize pass.
"""
from __future__ import annotations

from typing import Iterable, Iterator

from src.compiler.plan import SchemaSnapshot
from src.core.logging import get_logger

logger = get_logger(__name__)


class DateFieldSet:
    """Mutable set of date-typed field names.

    A name outside the seeding snapshot can only enter through ``track``
    with the stage that proved it produces a date; those names are listed
    in ``introduced_by_stages``.
    """

    def __init__(self, fields: Iterable[str] = (), schema_fields: Iterable[str] | None = None):
        self._fields: set[str] = set(fields)
        self._schema_fields = set(self._fields if schema_fields is None else schema_fields)
        self._introduced: dict[str, str] = {}

    @classmethod
    def seed(cls, snapshot: SchemaSnapshot | None) -> "DateFieldSet":
        """Start from every snapshot field whose type reads as a date/timestamp."""
        if snapshot is None:
            return cls()
        seeded = snapshot.date_fields()
        if seeded:
            logger.info(
                "Seeded date fields for %s: %s",
                snapshot.collection_name, ", ".join(sorted(seeded)),
            )
        return cls(seeded, schema_fields=snapshot.fields.keys())

    # ── Mutation ────────────────────────────────────────

    def track(self, name: str, source: str) -> None:
        if name in self._fields:
            return
        self._fields.add(name)
        if name not in self._schema_fields:
            self._introduced[name] = source
        logger.debug("Tracking date field '%s' (from %s)", name, source)

    def untrack(self, name: str, source: str) -> None:
        if name not in self._fields:
            return
        self._fields.discard(name)
        self._introduced.pop(name, None)
        logger.debug("Untracking date field '%s' (redefined by %s)", name, source)

    # ── Read access ─────────────────────────────────────

    def __contains__(self, name: object) -> bool:
        return name in self._fields

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._fields))

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        return f"DateFieldSet({sorted(self._fields)!r})"

    @property
    def introduced_by_stages(self) -> dict[str, str]:
        """Tracked names that are not schema fields -> the stage that introduced them."""
        return dict(self._introduced)

    def copy(self) -> "DateFieldSet":
        clone = DateFieldSet(self._fields, schema_fields=self._schema_fields)
        clone._introduced = dict(self._introduced)
        return clone
