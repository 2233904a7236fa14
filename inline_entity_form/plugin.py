from core.plugins import BasePlugin


class InlineEntityFormPlugin(BasePlugin):
    name = "inline_entity_form"
    label = "Inline entity form"
    description = "Create, edit, remove and reorder referenced records inside the parent form."

    def get_field_widget_types(self):
        from .field_widgets import InlineEntityFormMultiple, InlineEntityFormSingle
        return [InlineEntityFormMultiple, InlineEntityFormSingle]
