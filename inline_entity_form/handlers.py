from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from django import forms
from django.apps import apps
from django.forms.models import modelform_factory

FIELD_CLASS = "mt-1 w-full rounded-2xl border border-[color:var(--admin-border)] bg-white px-3 py-2 text-sm shadow-sm focus:border-[color:var(--admin-accent)] focus:ring-[color:var(--admin-accent)]"


class EntityHandler(ABC):
    """Knows how to label, summarise and build forms for one entity type."""

    entity_type: str = ""

    @abstractmethod
    def labels(self) -> dict[str, str]: ...

    @abstractmethod
    def table_fields(self, bundles: Iterable[str]) -> dict[str, dict]: ...

    @abstractmethod
    def create_entity(self, bundle: str): ...

    @abstractmethod
    def entity_form(self, entity, *, prefix: str, data=None) -> forms.BaseForm: ...

    def summary(self, entity, table_fields: dict[str, dict]) -> list[tuple[str, str]]:
        columns = sorted(table_fields.items(), key=lambda item: item[1].get("weight", 0))
        row = []
        for name, definition in columns:
            if definition.get("type") == "label":
                value = str(entity)
            else:
                value = getattr(entity, name, "")
                if callable(value):
                    value = value()
            row.append((definition.get("label", name), "" if value is None else str(value)))
        return row


class ModelEntityHandler(EntityHandler):
    def __init__(self, model, *, fields: Optional[list[str]] = None, form_class=None, columns=None):
        if isinstance(model, str):
            model = apps.get_model(model)
        self.model = model
        self.entity_type = model._meta.label_lower
        self.fields = fields
        self.form_class = form_class
        self.columns = columns

    def labels(self) -> dict[str, str]:
        opts = self.model._meta
        return {
            "singular": str(opts.verbose_name),
            "plural": str(opts.verbose_name_plural),
        }

    def table_fields(self, bundles: Iterable[str]) -> dict[str, dict]:
        if self.columns is not None:
            return dict(self.columns)
        return {
            "label": {
                "type": "label",
                "label": str(self.model._meta.verbose_name).capitalize(),
                "weight": 1,
            }
        }

    def create_entity(self, bundle: str):
        return self.model()

    def get_form_class(self):
        if self.form_class is not None:
            return self.form_class
        fields = self.fields if self.fields is not None else "__all__"
        return modelform_factory(self.model, fields=fields)

    def entity_form(self, entity, *, prefix: str, data=None) -> forms.BaseForm:
        form = self.get_form_class()(data=data, instance=entity, prefix=prefix)
        for field in form.fields.values():
            if isinstance(field.widget, (forms.CheckboxInput, forms.CheckboxSelectMultiple)):
                continue
            field.widget.attrs.setdefault("class", FIELD_CLASS)
        return form
