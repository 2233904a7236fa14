from django import forms

from .state import MatchOperator, WidgetSettings


class InlineEntityFormSettingsForm(forms.Form):
    FIELD_CLASS = "mt-1 w-full rounded-2xl border border-[color:var(--admin-border)] bg-white px-3 py-2 text-sm shadow-sm focus:border-[color:var(--admin-accent)] focus:ring-[color:var(--admin-accent)]"
    CHECKBOX_CLASS = "h-4 w-4 rounded border-[color:var(--admin-border)] text-[color:var(--admin-accent)] focus:ring-[color:var(--admin-accent)]"

    allow_existing = forms.BooleanField(required=False)
    match_operator = forms.ChoiceField(
        label="Autocomplete matching",
        choices=MatchOperator.choices,
        initial=MatchOperator.CONTAINS,
        help_text="Contains can be slow on sites with thousands of records.",
    )
    delete_references = forms.BooleanField(required=False)
    override_labels = forms.BooleanField(required=False, label="Override labels")
    label_singular = forms.CharField(required=False, label="Singular label")
    label_plural = forms.CharField(required=False, label="Plural label")

    def __init__(self, *args, widget_type="inline_entity_form_multiple", labels=None, settings=None, **kwargs):
        if settings is not None and "initial" not in kwargs:
            kwargs["initial"] = WidgetSettings.from_mapping(settings).as_dict()
        super().__init__(*args, **kwargs)
        labels = labels or {"singular": "entity", "plural": "entities"}
        self.widget_type = widget_type

        self.fields["allow_existing"].label = f"Allow users to add existing {labels['plural']}."
        self.fields["delete_references"].label = (
            f"Delete referenced {labels['plural']} when the parent entity is deleted."
        )

        # The single widget has no autocomplete to add existing records with.
        if widget_type == "inline_entity_form_single":
            del self.fields["allow_existing"]
            del self.fields["match_operator"]

        for name, field in self.fields.items():
            if isinstance(field, forms.BooleanField):
                field.widget.attrs.setdefault("class", self.CHECKBOX_CLASS)
            else:
                field.widget.attrs.setdefault("class", self.FIELD_CLASS)

    def clean(self):
        cleaned_data = super().clean()
        if cleaned_data.get("override_labels"):
            for name in ("label_singular", "label_plural"):
                if not (cleaned_data.get(name) or "").strip():
                    self.add_error(name, "A label is required when overriding labels.")
        return cleaned_data

    def to_settings(self) -> WidgetSettings:
        values = dict(self.cleaned_data)
        if self.widget_type == "inline_entity_form_single":
            values["allow_existing"] = False
        return WidgetSettings.from_mapping(values)
