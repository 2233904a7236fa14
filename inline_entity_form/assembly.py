"""Projection of a widget's row state into a declarative render tree.

Nothing here writes to the store. Missing instances or rows produce an
empty tree rather than an error so a stale page can always be redrawn.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .controller import Action, add_form_prefix, row_form_prefix, trigger_name
from .handlers import EntityHandler
from .identity import element_name, wrapper_id
from .state import FormMode, Row, RowStateStore, WidgetInstance, cardinality_reached
from .storage import EntityStorage


@dataclass
class ActionButton:
    name: str
    label: str
    action: Action
    row_key: Optional[int] = None
    submit: bool = False


@dataclass
class SubForm:
    op: str
    prefix: str
    form: Any = None
    message: str = ""
    delete_field: str = ""
    reference_field: str = ""
    actions: list[ActionButton] = field(default_factory=list)


@dataclass
class RowElement:
    key: int
    delta: int
    entity: Any
    weight: int
    weight_field: str
    needs_save: bool
    columns: list[tuple[str, str]] = field(default_factory=list)
    actions: list[ActionButton] = field(default_factory=list)
    form: Optional[SubForm] = None


@dataclass
class RenderTree:
    ief_id: str
    wrapper_id: str
    element_type: str = "fieldset"
    title: str = ""
    required: bool = False
    labels: dict = field(default_factory=dict)
    table_fields: dict = field(default_factory=dict)
    rows: list[RowElement] = field(default_factory=list)
    weight_delta: int = 10
    cardinality_message: str = ""
    bundle_field: str = ""
    bundle_choices: list[tuple[str, str]] = field(default_factory=list)
    actions: list[ActionButton] = field(default_factory=list)
    form: Optional[SubForm] = None
    errors: list[str] = field(default_factory=list)

    def action_names(self) -> list[str]:
        names = [button.name for button in self.actions]
        for row in self.rows:
            names.extend(button.name for button in row.actions)
            if row.form:
                names.extend(button.name for button in row.form.actions)
        if self.form:
            names.extend(button.name for button in self.form.actions)
        return names


def widget_labels(settings, handler: EntityHandler) -> dict[str, str]:
    if settings.override_labels:
        return {"singular": settings.label_singular, "plural": settings.label_plural}
    return handler.labels()


def should_auto_open_add(instance: WidgetInstance) -> bool:
    """Whether an empty widget opens its add form without being asked.

    Only when adding a new record is the sole way to satisfy a required
    field, and never when the child is the same type and bundle as the
    parent, which would nest the same form forever.
    """
    field = instance.field
    if field is None or instance.rows or instance.form != FormMode.NONE:
        return False
    if len(field.target_bundles) != 1 or not field.required or instance.settings.allow_existing:
        return False
    if cardinality_reached(field, 0):
        return False
    bundle = field.target_bundles[0]
    return not (field.parent_entity_type == field.target_type and field.parent_bundle == bundle)


class FormAssembler:
    def __init__(self, handler: EntityHandler, storage: EntityStorage, bundle_labels: Optional[Mapping[str, str]] = None):
        self.handler = handler
        self.storage = storage
        self.bundle_labels = dict(bundle_labels or {})

    def assemble(
        self,
        store: RowStateStore,
        ief_id: str,
        *,
        bound_forms: Optional[Mapping[str, Any]] = None,
        errors: Optional[list[str]] = None,
    ) -> RenderTree:
        tree = RenderTree(ief_id=ief_id, wrapper_id=wrapper_id(ief_id), errors=list(errors or []))
        if not store.has(ief_id):
            return tree
        instance = store.get_instance(ief_id)
        bound_forms = bound_forms or {}
        field = instance.field
        labels = widget_labels(instance.settings, self.handler)
        bundles = list(field.target_bundles) if field else []

        tree.labels = labels
        tree.title = field.label if field else ""
        tree.required = bool(field and field.required)
        tree.table_fields = self.handler.table_fields(bundles)

        rows = [row for row in instance.rows.values() if row.entity is not None]
        tree.weight_delta = max(len(rows), 10)
        for delta, row in enumerate(rows):
            tree.rows.append(self._row_element(instance, row, delta, tree, labels, bound_forms))

        count = len(rows)
        if field and field.cardinality > 1:
            tree.cardinality_message = (
                f"You have added {count} out of {field.cardinality} allowed {labels['plural']}."
            )
        if cardinality_reached(field, count):
            return tree

        if instance.form == FormMode.NONE:
            if not instance.open_row_forms():
                tree.actions = self._widget_actions(instance, bundles, labels, tree)
            return tree

        tree.form = self._widget_form(instance, bundles, labels, bound_forms)
        if not rows:
            tree.element_type = "container"
        return tree

    def _row_element(self, instance, row: Row, delta, tree, labels, bound_forms) -> RowElement:
        element = RowElement(
            key=row.key,
            delta=delta,
            entity=row.entity,
            weight=row.weight,
            weight_field=element_name(instance.field_path, "entities", row.key, "delta"),
            needs_save=row.needs_save,
            columns=self.handler.summary(row.entity, tree.table_fields),
        )
        if row.form_mode == FormMode.EDIT:
            element.form = self._edit_form(instance, row, labels, bound_forms)
        elif row.form_mode == FormMode.REMOVE:
            element.form = self._remove_form(instance, row, labels)
        else:
            element.actions = self._row_actions(instance, row)
        return element

    def _row_actions(self, instance, row: Row) -> list[ActionButton]:
        actions = []
        saved = row.entity.pk is not None
        # Unsaved records have nothing to check access against.
        if not saved or self.storage.check_access(row.entity, "update"):
            actions.append(self._button(instance, Action.OPEN_EDIT, "Edit", row.key))
        # With allow_existing, remove means unlink and delete access is
        # checked on the remove form instead.
        if not saved or instance.settings.allow_existing or self.storage.check_access(row.entity, "delete"):
            actions.append(self._button(instance, Action.OPEN_REMOVE, "Remove", row.key))
        return actions

    def _edit_form(self, instance, row: Row, labels, bound_forms) -> SubForm:
        prefix = row_form_prefix(instance, row.key)
        form = bound_forms.get(prefix) or self.handler.entity_form(row.entity, prefix=prefix)
        return SubForm(
            op=FormMode.EDIT,
            prefix=prefix,
            form=form,
            actions=[
                self._button(instance, Action.SAVE_ROW, f"Update {labels['singular']}", row.key, submit=True),
                self._button(instance, Action.CANCEL_ROW, "Cancel", row.key),
            ],
        )

    def _remove_form(self, instance, row: Row, labels) -> SubForm:
        entity = row.entity
        label = str(entity) if entity is not None else ""
        if label:
            message = f"Are you sure you want to remove {label}?"
        else:
            message = f"Are you sure you want to remove this {labels['singular']}?"
        delete_field = ""
        if entity.pk is not None and instance.settings.allow_existing and self.storage.check_access(entity, "delete"):
            delete_field = element_name(instance.field_path, "entities", row.key, "delete")
        return SubForm(
            op=FormMode.REMOVE,
            prefix=row_form_prefix(instance, row.key),
            message=message,
            delete_field=delete_field,
            actions=[
                self._button(instance, Action.CONFIRM_REMOVE, "Remove", row.key, submit=True),
                self._button(instance, Action.CANCEL_REMOVE, "Cancel", row.key),
            ],
        )

    def _widget_actions(self, instance, bundles, labels, tree) -> list[ActionButton]:
        actions = []
        if bundles:
            tree.bundle_field = element_name(instance.field_path, "actions", "bundle")
            if len(bundles) > 1:
                tree.bundle_choices = [(bundle, self.bundle_labels.get(bundle, bundle)) for bundle in bundles]
            actions.append(self._button(instance, Action.OPEN_ADD, f"Add new {labels['singular']}"))
        if instance.settings.allow_existing:
            actions.append(self._button(instance, Action.OPEN_ADD_EXISTING, f"Add existing {labels['singular']}"))
        return actions

    def _widget_form(self, instance, bundles, labels, bound_forms) -> SubForm:
        if instance.form == FormMode.ADD_EXISTING:
            return SubForm(
                op=FormMode.ADD_EXISTING,
                prefix=element_name(instance.field_path, "reference"),
                reference_field=element_name(instance.field_path, "reference", "target_id"),
                actions=[
                    self._button(instance, Action.ADD_REFERENCE, f"Add {labels['singular']}", submit=True),
                    self._button(instance, Action.CANCEL_REFERENCE, "Cancel"),
                ],
            )

        prefix = add_form_prefix(instance)
        form = bound_forms.get(prefix)
        if form is None:
            bundle = instance.form_settings.get("bundle") or (bundles[0] if bundles else "")
            form = self.handler.entity_form(self.handler.create_entity(bundle), prefix=prefix)
        actions = [self._button(instance, Action.CLOSE_ADD, f"Create {labels['singular']}", submit=True)]
        field = instance.field
        # A required, empty, single-bundle field leaves nothing to cancel to.
        forced = (
            field is not None
            and field.required
            and not instance.settings.allow_existing
            and not instance.rows
            and len(bundles) == 1
        )
        if not forced:
            actions.append(self._button(instance, Action.CANCEL_ADD, "Cancel"))
        return SubForm(op=FormMode.ADD, prefix=prefix, form=form, actions=actions)

    def _button(self, instance, action: Action, label: str, key: Optional[int] = None, submit: bool = False):
        return ActionButton(
            name=trigger_name(instance.id, action, key),
            label=label,
            action=action,
            row_key=key,
            submit=submit,
        )
