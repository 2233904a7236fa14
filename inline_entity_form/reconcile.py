from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from .errors import PersistenceError
from .state import Row, RowStateStore
from .storage import EntityStorage

logger = logging.getLogger(__name__)

TRANSIENT_KEYS = ("_weight", "_original_delta", "needs_save", "entity")


class Reconciler:
    """Turns a widget's rows into the parent field's final value list.

    Dirty child records are saved and queued deletions are carried out on
    the way, so this only runs on the parent form's final submission.
    """

    def __init__(self, storage: EntityStorage, *, sort_by_weight: bool = True):
        self.storage = storage
        self.sort_by_weight = sort_by_weight

    def reconcile(
        self,
        store: RowStateStore,
        ief_id: str,
        posted_weights: Optional[Mapping[int, Any]] = None,
    ) -> list[dict]:
        if not store.has(ief_id):
            return []
        instance = store.get_instance(ief_id)
        if posted_weights:
            store.update_weights(ief_id, posted_weights)

        rows = store.get_rows(ief_id)
        for delta, row in enumerate(rows):
            row.original_delta = delta
        if self.sort_by_weight:
            rows = sorted(rows, key=lambda row: row.weight)

        for row in rows:
            if row.entity is None or not row.needs_save:
                continue
            try:
                self.storage.save(row.entity)
            except PersistenceError as exc:
                exc.delta = row.original_delta
                logger.warning("Saving row %s of %s failed: %s", row.original_delta, ief_id, exc)
                raise
            store.clear_needs_save(ief_id, row.key)

        while instance.pending_deletion:
            record_id = instance.pending_deletion[0]
            self.storage.delete(record_id)
            instance.pending_deletion.pop(0)
            logger.info("Deleted %r removed from %s", record_id, ief_id)

        values = self.massage_values(rows)

        instance.original_deltas = {}
        items = []
        for value in values:
            item = {key: item for key, item in value.items() if key not in TRANSIENT_KEYS}
            if is_empty_item(item):
                continue
            instance.original_deltas[len(items)] = value.get("_original_delta", len(items))
            items.append(item)
        return items

    def massage_values(self, rows: list[Row]) -> list[dict]:
        """Converts rows into reference values, sorted by weight."""
        values = []
        for row in rows:
            if row.entity is None:
                continue
            values.append(
                {
                    "target_id": row.entity.pk,
                    "_weight": row.weight,
                    "_original_delta": row.original_delta,
                }
            )
        if self.sort_by_weight:
            values.sort(key=lambda value: value["_weight"])
        return values


def is_empty_item(item: Mapping[str, Any]) -> bool:
    return all(value in (None, "", [], {}) for value in item.values())
