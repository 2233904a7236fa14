from django.contrib.auth.models import Group

from inline_entity_form.errors import PersistenceError
from inline_entity_form.field_widgets import InlineEntityFormMultiple
from inline_entity_form.handlers import ModelEntityHandler
from inline_entity_form.state import FieldDefinition
from inline_entity_form.storage import EntityStorage, ModelStorage


class Record:
    def __init__(self, pk=None, name=""):
        self.pk = pk
        self.name = name

    def __str__(self):
        return self.name

    def __repr__(self):
        return f"Record({self.pk!r}, {self.name!r})"


class MemoryStorage(EntityStorage):
    def __init__(self, records=(), denied=(), fail_on=()):
        self.records = {record.pk: record for record in records if record.pk is not None}
        self.denied = set(denied)
        self.fail_on = set(fail_on)
        self.saved = []
        self.deleted = []
        self._next_pk = 100

    def save(self, record):
        if record.name in self.fail_on:
            raise PersistenceError(f"Could not save {record.name}", record_id=record.pk)
        if record.pk is None:
            record.pk = self._next_pk
            self._next_pk += 1
        self.records[record.pk] = record
        self.saved.append(record.pk)
        return record.pk

    def delete(self, record_id):
        self.records.pop(record_id, None)
        self.deleted.append(record_id)

    def exists(self, record_id):
        return record_id in self.records

    def load(self, record_id):
        return self.records.get(record_id)

    def check_access(self, record, operation):
        return operation not in self.denied


def group_field(**overrides):
    values = {
        "name": "groups",
        "target_type": "auth.group",
        "target_bundles": ("group",),
        "cardinality": 0,
        "required": False,
        "parent_entity_type": "auth.user",
        "parent_bundle": "user",
        "label": "Groups",
    }
    values.update(overrides)
    return FieldDefinition(**values)


def group_widget(field=None, settings=None, user=None, widget_class=InlineEntityFormMultiple, storage=None):
    return widget_class(
        field or group_field(),
        ModelEntityHandler(Group, fields=["name"]),
        storage or ModelStorage(Group, user=user),
        settings,
    )
