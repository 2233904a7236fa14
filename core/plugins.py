from __future__ import annotations

from abc import ABC, abstractmethod


class BaseFieldWidget(ABC):
    slug: str = ""
    label: str = ""
    field_types: tuple[str, ...] = ()
    multiple_values: bool = False
    default_settings: dict = {}

    @classmethod
    def get_default_settings(cls) -> dict:
        return dict(cls.default_settings)

    @abstractmethod
    def render(self, store, request=None) -> str: ...


class BasePlugin:
    name: str = ""
    label: str = ""
    version: str = "1.0.0"
    description: str = ""

    def get_field_widget_types(self) -> list[type[BaseFieldWidget]]:
        return []


class PluginRegistry:
    def __init__(self):
        self._plugins: dict[str, BasePlugin] = {}

    def register(self, plugin: BasePlugin) -> None:
        self._plugins[plugin.name] = plugin

    def all_plugins(self) -> list[BasePlugin]:
        return list(self._plugins.values())

    def get_plugin(self, name: str) -> BasePlugin | None:
        return self._plugins.get(name)

    def get_all_field_widget_types(self) -> list[type[BaseFieldWidget]]:
        types = []
        for plugin in self._plugins.values():
            types.extend(plugin.get_field_widget_types())
        return types

    def get_field_widget_type(self, slug: str) -> type[BaseFieldWidget] | None:
        for cls in self.get_all_field_widget_types():
            if cls.slug == slug:
                return cls
        return None

    def field_widget_choices(self, field_type: str | None = None) -> list[tuple[str, str]]:
        return [
            (cls.slug, cls.label)
            for cls in self.get_all_field_widget_types()
            if field_type is None or field_type in cls.field_types
        ]


registry = PluginRegistry()
