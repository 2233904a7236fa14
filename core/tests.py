from django.test import SimpleTestCase

from core.plugins import BaseFieldWidget, BasePlugin, PluginRegistry, registry


class FakeWidget(BaseFieldWidget):
    slug = "fake"
    label = "Fake"
    field_types = ("string",)

    def render(self, store, request=None) -> str:
        return ""


class FakePlugin(BasePlugin):
    name = "fake"

    def get_field_widget_types(self):
        return [FakeWidget]


class PluginRegistryTests(SimpleTestCase):
    def test_lookup_and_choices_by_field_type(self):
        plugins = PluginRegistry()
        plugins.register(FakePlugin())

        self.assertIs(plugins.get_field_widget_type("fake"), FakeWidget)
        self.assertIsNone(plugins.get_field_widget_type("missing"))
        self.assertEqual(plugins.field_widget_choices("string"), [("fake", "Fake")])
        self.assertEqual(plugins.field_widget_choices("entity_reference"), [])

    def test_inline_entity_form_plugin_is_registered(self):
        self.assertIsNotNone(registry.get_plugin("inline_entity_form"))
        self.assertEqual(
            registry.field_widget_choices("entity_reference"),
            [
                ("inline_entity_form_multiple", "Inline entity form - Multiple value"),
                ("inline_entity_form_single", "Inline entity form - Single value"),
            ],
        )

    def test_default_settings_are_copies(self):
        widget_type = registry.get_field_widget_type("inline_entity_form_multiple")
        settings = widget_type.get_default_settings()
        settings["allow_existing"] = True
        self.assertFalse(widget_type.get_default_settings()["allow_existing"])
