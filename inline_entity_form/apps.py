from django.apps import AppConfig


class InlineEntityFormConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "inline_entity_form"

    def ready(self):
        from core.plugins import registry
        from .plugin import InlineEntityFormPlugin
        registry.register(InlineEntityFormPlugin())
