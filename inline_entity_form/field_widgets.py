from __future__ import annotations

import dataclasses
import logging
from typing import Any, Iterable, Mapping, Optional

from django.template.loader import render_to_string

from core.plugins import BaseFieldWidget

from .assembly import FormAssembler, RenderTree, should_auto_open_add, widget_labels
from .controller import ActionResult, RowController, add_form_prefix, find_trigger, raise_for_form
from .errors import RowValidationError
from .handlers import EntityHandler
from .identity import compute_id, element_name, widget_path
from .reconcile import Reconciler
from .state import FieldDefinition, FormMode, RowStateStore, WidgetInstance, WidgetSettings
from .storage import EntityStorage

logger = logging.getLogger(__name__)


class InlineEntityFormMultiple(BaseFieldWidget):
    slug = "inline_entity_form_multiple"
    label = "Inline entity form - Multiple value"
    field_types = ("entity_reference",)
    multiple_values = True
    template_name = "inline_entity_form/widget.html"
    exclusive_row_forms = False
    default_settings = WidgetSettings().as_dict()

    def __init__(
        self,
        field: FieldDefinition,
        handler: EntityHandler,
        storage: EntityStorage,
        settings: Optional[Mapping[str, Any]] = None,
        *,
        field_parents: Iterable[str] = (),
        bundle_labels: Optional[Mapping[str, str]] = None,
    ):
        self.field = field
        self.handler = handler
        self.storage = storage
        self.settings = WidgetSettings.from_mapping({**self.get_default_settings(), **(settings or {})})
        self.path = widget_path(field.name, field_parents)
        self.ief_id = compute_id(self.path)
        self.bundle_labels = bundle_labels

    def labels(self) -> dict[str, str]:
        return widget_labels(self.settings, self.handler)

    def controller(self, store: RowStateStore) -> RowController:
        return RowController(store, self.handler, self.storage)

    def reconciler(self) -> Reconciler:
        return Reconciler(self.storage, sort_by_weight=self.multiple_values)

    def prepare(self, store: RowStateStore, items: Iterable[Any] = ()) -> WidgetInstance:
        """Make sure the store holds this widget's instance and rows.

        Runs on every pass. The settings snapshot taken on the first pass is
        kept for the rest of the submission.
        """
        instance = store.init(
            self.ief_id,
            self.settings,
            self.path,
            self.field,
            exclusive_row_forms=self.exclusive_row_forms,
        )
        store.load_initial_rows(self.ief_id, items)
        if should_auto_open_add(instance):
            store.set_form_mode(self.ief_id, None, FormMode.ADD, {"bundle": self.field.target_bundles[0]})
        return instance

    def form_element(self, store: RowStateStore, items: Iterable[Any] = (), result: Optional[ActionResult] = None) -> RenderTree:
        self.prepare(store, items)
        assembler = FormAssembler(self.handler, self.storage, self.bundle_labels)
        if result is None:
            return assembler.assemble(store, self.ief_id)
        return assembler.assemble(store, self.ief_id, bound_forms=result.bound_forms, errors=result.errors)

    def render(self, store: RowStateStore, request=None, *, items: Iterable[Any] = (), result: Optional[ActionResult] = None) -> str:
        tree = self.form_element(store, items, result)
        return render_to_string(
            self.template_name,
            {"tree": tree, "widget": self, "build_id": store.build_id},
            request=request,
        )

    def owns_trigger(self, data: Mapping) -> bool:
        trigger = find_trigger(data)
        return trigger is not None and trigger[0] == self.ief_id

    def handle_action(self, store: RowStateStore, data: Mapping, items: Iterable[Any] = ()) -> Optional[ActionResult]:
        trigger = find_trigger(data)
        if trigger is None or trigger[0] != self.ief_id:
            return None
        _, action, key = trigger
        self.prepare(store, items)
        store.update_weights(self.ief_id, self.posted_weights(store, data))
        return self.controller(store).dispatch(self.ief_id, action, key, data)

    def posted_weights(self, store: RowStateStore, data: Mapping) -> dict[int, Any]:
        if not self.multiple_values:
            return {}
        weights = {}
        for row in store.get_rows(self.ief_id):
            name = element_name(self.path, "entities", row.key, "delta")
            if name in data:
                weights[row.key] = data.get(name)
        return weights

    def submit_open_forms(self, store: RowStateStore, data: Mapping) -> None:
        """Submit row and add forms still open when the parent form is saved."""
        instance = store.get_instance(self.ief_id)
        controller = self.controller(store)
        for delta, row in enumerate(store.get_rows(self.ief_id)):
            if row.form_mode == FormMode.EDIT:
                raise_for_form(controller.submit_row_form(instance, row.key, data), delta=delta)
                store.set_form_mode(self.ief_id, row.key, FormMode.NONE)
            elif row.form_mode == FormMode.REMOVE:
                store.set_form_mode(self.ief_id, row.key, FormMode.NONE)

        if instance.form == FormMode.ADD:
            prefix = f"{add_form_prefix(instance)}-"
            if any(str(name).startswith(prefix) for name in data.keys()) and not controller.at_limit(instance):
                raise_for_form(controller.submit_add_form(instance, data))
                store.set_form_mode(self.ief_id, None, FormMode.NONE)

    def validate(self, store: RowStateStore) -> None:
        rows = [row for row in store.get_rows(self.ief_id) if row.entity is not None]
        if self.field.required and not rows:
            label = self.field.label or self.field.name
            raise RowValidationError(f"{label} field is required.")

    def extract_form_values(self, store: RowStateStore, data: Mapping, items: Iterable[Any] = ()) -> list[dict]:
        self.prepare(store, items)
        store.update_weights(self.ief_id, self.posted_weights(store, data))
        self.submit_open_forms(store, data)
        self.validate(store)
        return self.reconciler().reconcile(store, self.ief_id)

    def display_position(self, store: RowStateStore, delta: int) -> int:
        if not store.has(self.ief_id):
            return delta
        return store.get_instance(self.ief_id).original_deltas.get(delta, delta)


class InlineEntityFormSingle(InlineEntityFormMultiple):
    """One referenced record, edited in place; no reordering or add-existing."""

    slug = "inline_entity_form_single"
    label = "Inline entity form - Single value"
    multiple_values = False
    exclusive_row_forms = True

    def __init__(self, field: FieldDefinition, handler, storage, settings=None, **kwargs):
        settings = {**(settings or {}), "allow_existing": False}
        field = dataclasses.replace(field, cardinality=1)
        super().__init__(field, handler, storage, settings, **kwargs)
