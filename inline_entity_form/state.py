from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, fields
from typing import Any, Iterable, Mapping, Optional

from django.db import models

from .errors import StaleInstance

logger = logging.getLogger(__name__)


class FormMode(models.TextChoices):
    NONE = "none", "None"
    EDIT = "edit", "Edit"
    REMOVE = "remove", "Remove"
    ADD = "add", "Add"
    ADD_EXISTING = "add_existing", "Add existing"


ROW_FORM_MODES = {FormMode.EDIT, FormMode.REMOVE, FormMode.ADD}
WIDGET_FORM_MODES = {FormMode.ADD, FormMode.ADD_EXISTING}


class MatchOperator(models.TextChoices):
    STARTS_WITH = "STARTS_WITH", "Starts with"
    CONTAINS = "CONTAINS", "Contains"


@dataclass(frozen=True)
class WidgetSettings:
    allow_existing: bool = False
    match_operator: str = MatchOperator.CONTAINS
    delete_references: bool = False
    override_labels: bool = False
    label_singular: str = ""
    label_plural: str = ""

    @classmethod
    def from_mapping(cls, values: Optional[Mapping[str, Any]] = None) -> "WidgetSettings":
        values = values or {}
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in values.items() if key in known})

    def as_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class FieldDefinition:
    name: str
    target_type: str
    target_bundles: tuple[str, ...] = ()
    cardinality: int = 0
    required: bool = False
    parent_entity_type: str = ""
    parent_bundle: str = ""
    label: str = ""

    @property
    def unlimited(self) -> bool:
        return self.cardinality <= 0


def cardinality_reached(field: Optional[FieldDefinition], count: int) -> bool:
    return field is not None and not field.unlimited and count >= field.cardinality


@dataclass
class Row:
    key: int
    entity: Any = None
    weight: int = 0
    form_mode: str = FormMode.NONE
    needs_save: bool = False
    original_delta: Optional[int] = None

    @property
    def has_open_form(self) -> bool:
        return self.form_mode != FormMode.NONE


@dataclass
class WidgetInstance:
    id: str
    settings: WidgetSettings
    field_path: tuple[str, ...]
    field: Optional[FieldDefinition] = None
    exclusive_row_forms: bool = False
    rows: dict[int, Row] = dataclasses.field(default_factory=dict)
    next_key: int = 0
    loaded: bool = False
    form: str = FormMode.NONE
    form_settings: dict = dataclasses.field(default_factory=dict)
    pending_deletion: list = dataclasses.field(default_factory=list)
    original_deltas: dict[int, int] = dataclasses.field(default_factory=dict)

    def open_row_forms(self) -> list[Row]:
        return [row for row in self.rows.values() if row.has_open_form]


class RowStateStore:
    """Per-submission state for every inline entity form on one page.

    The store lives for one form submission cycle: it is created on first
    render, survives validation failures and re-renders, and is discarded
    once the parent form is saved. Every operation is scoped by a widget
    instance id. Apart from ``init``, operations on an unknown id do
    nothing; callers that find an instance missing re-initialise it.
    """

    def __init__(self, build_id: str = ""):
        self.build_id = build_id
        self._instances: dict[str, WidgetInstance] = {}

    def __contains__(self, ief_id: str) -> bool:
        return ief_id in self._instances

    def has(self, ief_id: str) -> bool:
        return ief_id in self._instances

    def instance_ids(self) -> list[str]:
        return list(self._instances)

    def init(
        self,
        ief_id: str,
        settings: WidgetSettings,
        field_path: Iterable[str],
        field: Optional[FieldDefinition] = None,
        *,
        exclusive_row_forms: bool = False,
    ) -> WidgetInstance:
        instance = self._instances.get(ief_id)
        if instance is None:
            instance = WidgetInstance(
                id=ief_id,
                settings=settings,
                field_path=tuple(field_path),
                field=field,
                exclusive_row_forms=exclusive_row_forms,
            )
            self._instances[ief_id] = instance
        return instance

    def get_instance(self, ief_id: str) -> WidgetInstance:
        try:
            return self._instances[ief_id]
        except KeyError:
            raise StaleInstance(ief_id) from None

    def load_initial_rows(self, ief_id: str, existing: Iterable[Any]) -> None:
        instance = self._instances.get(ief_id)
        if instance is None or instance.loaded:
            return
        instance.loaded = True
        for delta, entity in enumerate(existing):
            if entity is None:
                continue
            instance.rows[instance.next_key] = Row(key=instance.next_key, entity=entity, weight=delta)
            instance.next_key += 1

    def get_rows(self, ief_id: str) -> list[Row]:
        instance = self._instances.get(ief_id)
        if instance is None:
            return []
        return list(instance.rows.values())

    def get_row(self, ief_id: str, key: int) -> Optional[Row]:
        instance = self._instances.get(ief_id)
        if instance is None:
            return None
        return instance.rows.get(key)

    def set_form_mode(
        self,
        ief_id: str,
        key: Optional[int],
        mode: str,
        form_settings: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """Open or close a form. ``key=None`` targets the widget-level form.

        ``form_settings`` (the bundle of an add form, say) is kept with an
        open widget-level form and cleared when it closes.

        Conflicting opens are ignored and reported by returning ``False``.
        """
        instance = self._instances.get(ief_id)
        if instance is None:
            return False
        mode = FormMode(mode)

        if key is None:
            if mode == FormMode.NONE:
                instance.form = FormMode.NONE
                instance.form_settings = {}
                return True
            if mode not in WIDGET_FORM_MODES:
                return False
            if instance.form != FormMode.NONE and instance.form != mode:
                logger.debug("Ignoring %s form on %s: %s form already open", mode, ief_id, instance.form)
                return False
            instance.form = mode
            instance.form_settings = dict(form_settings or {})
            return True

        row = instance.rows.get(key)
        if row is None:
            return False
        if mode == FormMode.NONE:
            row.form_mode = FormMode.NONE
            return True
        if mode not in ROW_FORM_MODES:
            return False
        if instance.form == FormMode.ADD:
            logger.debug("Ignoring %s form on row %s of %s: add form open", mode, key, ief_id)
            return False
        if instance.exclusive_row_forms:
            others = [other for other in instance.open_row_forms() if other.key != key]
            if others:
                logger.debug("Ignoring %s form on row %s of %s: row %s open", mode, key, ief_id, others[0].key)
                return False
        row.form_mode = mode
        return True

    def add_row(self, ief_id: str, entity: Any, *, needs_save: bool = False) -> Optional[int]:
        instance = self._instances.get(ief_id)
        if instance is None:
            return None
        key = instance.next_key
        instance.next_key += 1
        instance.rows[key] = Row(
            key=key,
            entity=entity,
            weight=len(instance.rows),
            needs_save=needs_save,
        )
        return key

    def remove_row(self, ief_id: str, key: int, *, delete: bool = False) -> None:
        instance = self._instances.get(ief_id)
        if instance is None:
            return
        row = instance.rows.pop(key, None)
        if row is None or not delete:
            return
        record_id = getattr(row.entity, "pk", None)
        if record_id is not None and record_id not in instance.pending_deletion:
            instance.pending_deletion.append(record_id)
            logger.info("Queued %r for deletion from %s", record_id, ief_id)

    def mark_needs_save(self, ief_id: str, key: int) -> None:
        row = self.get_row(ief_id, key)
        if row is not None:
            row.needs_save = True

    def clear_needs_save(self, ief_id: str, key: int) -> None:
        row = self.get_row(ief_id, key)
        if row is not None:
            row.needs_save = False

    def update_weights(self, ief_id: str, weights: Mapping[int, Any]) -> None:
        instance = self._instances.get(ief_id)
        if instance is None:
            return
        for key, weight in weights.items():
            row = instance.rows.get(key)
            if row is None:
                continue
            try:
                row.weight = int(weight)
            except (TypeError, ValueError):
                continue

    def discard(self, ief_id: str) -> None:
        self._instances.pop(ief_id, None)

    def clear(self) -> None:
        self._instances.clear()
