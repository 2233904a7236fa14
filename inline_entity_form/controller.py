from __future__ import annotations

import copy
import logging
import re
from dataclasses import dataclass, field
from typing import Mapping, Optional

from django.db import models

from .errors import AccessDenied, RowValidationError
from .handlers import EntityHandler
from .identity import element_name, wrapper_id
from .state import FormMode, RowStateStore, WidgetInstance, cardinality_reached
from .storage import EntityStorage

logger = logging.getLogger(__name__)

TRUTHY = {"1", "on", "true", "yes"}


class Action(models.TextChoices):
    OPEN_EDIT = "entity-edit", "Edit"
    OPEN_REMOVE = "entity-remove", "Remove"
    CONFIRM_REMOVE = "remove-confirm", "Remove"
    CANCEL_REMOVE = "remove-cancel", "Cancel"
    SAVE_ROW = "edit-submit", "Update"
    CANCEL_ROW = "edit-cancel", "Cancel"
    OPEN_ADD = "add", "Add new"
    OPEN_ADD_EXISTING = "add-existing", "Add existing"
    CLOSE_ADD = "add-submit", "Create"
    CANCEL_ADD = "add-cancel", "Cancel"
    ADD_REFERENCE = "reference-submit", "Add"
    CANCEL_REFERENCE = "reference-cancel", "Cancel"


ROW_ACTIONS = {
    Action.OPEN_EDIT,
    Action.OPEN_REMOVE,
    Action.CONFIRM_REMOVE,
    Action.CANCEL_REMOVE,
    Action.SAVE_ROW,
    Action.CANCEL_ROW,
}

_TRIGGER_RE = re.compile(r"^ief-(?P<id>[0-9a-f]{40})-(?P<action>[a-z-]+?)(?:-(?P<key>\d+))?$")


def trigger_name(ief_id: str, action: str, key: Optional[int] = None) -> str:
    name = f"ief-{ief_id}-{Action(action).value}"
    if key is not None:
        name = f"{name}-{key}"
    return name


def parse_trigger(name: str) -> Optional[tuple[str, Action, Optional[int]]]:
    """Map a posted button name back to ``(ief_id, action, row_key)``."""
    match = _TRIGGER_RE.match(name or "")
    if not match:
        return None
    try:
        action = Action(match.group("action"))
    except ValueError:
        return None
    key = match.group("key")
    key = int(key) if key is not None else None
    if (action in ROW_ACTIONS) != (key is not None):
        return None
    return match.group("id"), action, key


def find_trigger(data: Mapping) -> Optional[tuple[str, Action, Optional[int]]]:
    for name in data.keys():
        parsed = parse_trigger(name)
        if parsed is not None:
            return parsed
    return None


@dataclass
class ActionResult:
    action: Action
    applied: bool = False
    rebuild: bool = True
    wrapper_id: str = ""
    errors: list[str] = field(default_factory=list)
    bound_forms: dict = field(default_factory=dict)


def row_form_prefix(instance: WidgetInstance, key: int) -> str:
    return element_name(instance.field_path, "entities", key, "form")


def add_form_prefix(instance: WidgetInstance) -> str:
    return element_name(instance.field_path, "inline")


class RowController:
    """Applies one widget action to the store and asks for a re-render."""

    def __init__(self, store: RowStateStore, handler: EntityHandler, storage: EntityStorage):
        self.store = store
        self.handler = handler
        self.storage = storage
        self._handlers = {
            Action.OPEN_EDIT: self.open_edit,
            Action.OPEN_REMOVE: self.open_remove,
            Action.CONFIRM_REMOVE: self.confirm_remove,
            Action.CANCEL_REMOVE: self.cancel_row,
            Action.SAVE_ROW: self.save_row,
            Action.CANCEL_ROW: self.cancel_row,
            Action.OPEN_ADD: self.open_add,
            Action.OPEN_ADD_EXISTING: self.open_add_existing,
            Action.CLOSE_ADD: self.close_add,
            Action.CANCEL_ADD: self.cancel_add,
            Action.ADD_REFERENCE: self.add_reference,
            Action.CANCEL_REFERENCE: self.cancel_add,
        }

    def dispatch(self, ief_id: str, action: str, key: Optional[int] = None, data=None) -> ActionResult:
        action = Action(action)
        instance = self.store.get_instance(ief_id)
        result = ActionResult(action=action, wrapper_id=wrapper_id(ief_id))
        try:
            self._handlers[action](instance, key, data or {}, result)
        except AccessDenied as exc:
            logger.debug("Refused %s on %s: %s", action.value, ief_id, exc)
            result.applied = False
        return result

    def _require_access(self, entity, operation: str) -> None:
        if not self.storage.check_access(entity, operation):
            raise AccessDenied(operation, entity)

    def at_limit(self, instance: WidgetInstance) -> bool:
        count = sum(1 for row in instance.rows.values() if row.entity is not None)
        if cardinality_reached(instance.field, count):
            logger.debug("%s already holds %d rows, ignoring add", instance.id, count)
            return True
        return False

    def _row(self, instance: WidgetInstance, key: Optional[int]):
        row = instance.rows.get(key) if key is not None else None
        if row is None or row.entity is None:
            logger.debug("No row %s on %s, ignoring action", key, instance.id)
            return None
        return row

    def open_edit(self, instance, key, data, result):
        row = self._row(instance, key)
        if row is None:
            return
        if row.entity.pk is not None:
            self._require_access(row.entity, "update")
        result.applied = self.store.set_form_mode(instance.id, key, FormMode.EDIT)

    def open_remove(self, instance, key, data, result):
        row = self._row(instance, key)
        if row is None:
            return
        if row.entity.pk is not None and not instance.settings.allow_existing:
            self._require_access(row.entity, "delete")
        result.applied = self.store.set_form_mode(instance.id, key, FormMode.REMOVE)

    def confirm_remove(self, instance, key, data, result):
        row = self._row(instance, key)
        if row is None:
            return
        checkbox = element_name(instance.field_path, "entities", key, "delete")
        delete_requested = str(data.get(checkbox, "")).lower() in TRUTHY

        if row.entity.pk is None or (instance.settings.allow_existing and not delete_requested):
            self.store.remove_row(instance.id, key)
        else:
            self._require_access(row.entity, "delete")
            self.store.remove_row(instance.id, key, delete=True)
        result.applied = True

    def cancel_row(self, instance, key, data, result):
        row = instance.rows.get(key)
        if row is None:
            return
        # Rows never given a record are half-built and go away entirely.
        if row.entity is None:
            self.store.remove_row(instance.id, key)
        else:
            self.store.set_form_mode(instance.id, key, FormMode.NONE)
        result.applied = True

    def submit_row_form(self, instance: WidgetInstance, key: int, data) -> Optional[object]:
        """Validate a row's edit form; returns the bound form when invalid."""
        row = self._row(instance, key)
        if row is None:
            return None
        # ModelForm validation writes into its instance, so work on a copy
        # to leave the stored record untouched until the form is valid.
        form = self.handler.entity_form(copy.copy(row.entity), prefix=row_form_prefix(instance, key), data=data)
        if not form.is_valid():
            return form
        row.entity = form.save(commit=False)
        self.store.mark_needs_save(instance.id, key)
        return None

    def save_row(self, instance, key, data, result):
        row = self._row(instance, key)
        if row is None or row.form_mode != FormMode.EDIT:
            return
        if row.entity.pk is not None:
            self._require_access(row.entity, "update")
        form = self.submit_row_form(instance, key, data)
        if form is not None:
            result.bound_forms[row_form_prefix(instance, key)] = form
            result.errors.extend(_form_messages(form))
            return
        self.store.set_form_mode(instance.id, key, FormMode.NONE)
        result.applied = True

    def open_add(self, instance, key, data, result):
        if self.at_limit(instance):
            return
        bundles = list(instance.field.target_bundles) if instance.field else []
        bundle = data.get(element_name(instance.field_path, "actions", "bundle")) or (bundles[0] if bundles else "")
        if bundles and bundle not in bundles:
            logger.debug("Ignoring add form for unknown bundle %r on %s", bundle, instance.id)
            return
        result.applied = self.store.set_form_mode(instance.id, None, FormMode.ADD, {"bundle": bundle})

    def open_add_existing(self, instance, key, data, result):
        if self.at_limit(instance):
            return
        result.applied = self.store.set_form_mode(instance.id, None, FormMode.ADD_EXISTING)

    def submit_add_form(self, instance: WidgetInstance, data) -> Optional[object]:
        """Validate the widget's add form; returns the bound form when invalid."""
        entity = self.handler.create_entity(instance.form_settings.get("bundle", ""))
        form = self.handler.entity_form(entity, prefix=add_form_prefix(instance), data=data)
        if not form.is_valid():
            return form
        self.store.add_row(instance.id, form.save(commit=False), needs_save=True)
        return None

    def close_add(self, instance, key, data, result):
        if instance.form != FormMode.ADD or self.at_limit(instance):
            return
        form = self.submit_add_form(instance, data)
        if form is not None:
            result.bound_forms[add_form_prefix(instance)] = form
            result.errors.extend(_form_messages(form))
            return
        self._close_widget_form(instance)
        result.applied = True

    def cancel_add(self, instance, key, data, result):
        self._close_widget_form(instance)
        for row in list(instance.rows.values()):
            if row.entity is None:
                self.store.remove_row(instance.id, row.key)
        result.applied = True

    def add_reference(self, instance, key, data, result):
        if instance.form != FormMode.ADD_EXISTING or self.at_limit(instance):
            return
        labels = self.handler.labels()
        target_id = str(data.get(element_name(instance.field_path, "reference", "target_id"), "")).strip()
        entity = self.storage.load(target_id) if target_id else None
        if entity is None:
            result.errors.append(f"The selected {labels['singular']} is not valid.")
            return
        referenced = {str(row.entity.pk) for row in instance.rows.values() if row.entity is not None}
        if str(entity.pk) in referenced:
            result.errors.append(f"The selected {labels['singular']} has already been added.")
            return
        if entity.pk in instance.pending_deletion:
            # Added back before the parent was saved, so it must survive.
            instance.pending_deletion.remove(entity.pk)
        self.store.add_row(instance.id, entity)
        self._close_widget_form(instance)
        result.applied = True

    def _close_widget_form(self, instance: WidgetInstance) -> None:
        self.store.set_form_mode(instance.id, None, FormMode.NONE)


def _form_messages(form) -> list[str]:
    messages = []
    for name, errors in form.errors.items():
        label = form.fields[name].label if name in form.fields else ""
        for error in errors:
            messages.append(f"{label}: {error}" if label else str(error))
    return messages


def raise_for_form(form, delta: Optional[int] = None) -> None:
    if form is not None:
        raise RowValidationError(_form_messages(form), delta=delta)
