from django.contrib.auth.models import Group
from django.test import TestCase

from inline_entity_form.controller import Action, trigger_name
from inline_entity_form.errors import PersistenceError, RowValidationError
from inline_entity_form.field_widgets import InlineEntityFormSingle
from inline_entity_form.state import FormMode, RowStateStore

from .utils import group_field, group_widget


class ExtractFormValuesTests(TestCase):
    def setUp(self):
        super().setUp()
        self.first = Group.objects.create(name="First")
        self.second = Group.objects.create(name="Second")
        self.store = RowStateStore()
        self.widget = group_widget()
        self.widget.prepare(self.store, [self.first, self.second])

    def test_posted_weights_reorder_values(self):
        data = {
            "groups-form-entities-0-delta": "4",
            "groups-form-entities-1-delta": "-2",
        }
        values = self.widget.extract_form_values(self.store, data)
        self.assertEqual(values, [{"target_id": self.second.pk}, {"target_id": self.first.pk}])

    def test_open_edit_form_is_submitted_with_parent(self):
        self.store.set_form_mode(self.widget.ief_id, 1, FormMode.EDIT)

        values = self.widget.extract_form_values(self.store, {"groups-form-entities-1-form-name": "Renamed"})

        self.assertEqual(len(values), 2)
        self.second.refresh_from_db()
        self.assertEqual(self.second.name, "Renamed")
        self.assertEqual(self.store.get_row(self.widget.ief_id, 1).form_mode, FormMode.NONE)

    def test_invalid_open_edit_form_reports_row(self):
        self.store.set_form_mode(self.widget.ief_id, 1, FormMode.EDIT)

        with self.assertRaises(RowValidationError) as ctx:
            self.widget.extract_form_values(self.store, {"groups-form-entities-1-form-name": ""})

        self.assertEqual(ctx.exception.delta, 1)
        self.assertTrue(ctx.exception.messages)

    def test_open_add_form_with_values_is_submitted(self):
        self.store.set_form_mode(self.widget.ief_id, None, FormMode.ADD, {"bundle": "group"})

        values = self.widget.extract_form_values(self.store, {"groups-form-inline-name": "Third"})

        third = Group.objects.get(name="Third")
        self.assertEqual(values[-1], {"target_id": third.pk})

    def test_add_form_past_limit_is_not_submitted(self):
        widget = group_widget(group_field(cardinality=2))
        store = RowStateStore()
        widget.prepare(store, [self.first, self.second])
        store.set_form_mode(widget.ief_id, None, FormMode.ADD, {"bundle": "group"})

        values = widget.extract_form_values(store, {"groups-form-inline-name": "Third"})

        self.assertEqual(len(values), 2)
        self.assertFalse(Group.objects.filter(name="Third").exists())

    def test_untouched_add_form_is_left_alone(self):
        self.store.set_form_mode(self.widget.ief_id, None, FormMode.ADD, {"bundle": "group"})
        values = self.widget.extract_form_values(self.store, {})
        self.assertEqual(len(values), 2)
        self.assertFalse(Group.objects.exclude(pk__in=[self.first.pk, self.second.pk]).exists())

    def test_required_field_without_rows_fails(self):
        widget = group_widget(group_field(required=True, target_bundles=("group", "team")))
        store = RowStateStore()

        with self.assertRaises(RowValidationError) as ctx:
            widget.extract_form_values(store, {})

        self.assertEqual(ctx.exception.messages, ["Groups field is required."])
        self.assertIsNone(ctx.exception.delta)

    def test_stale_state_is_reinitialised(self):
        values = self.widget.extract_form_values(RowStateStore(), {}, [self.first])
        self.assertEqual(values, [{"target_id": self.first.pk}])

    def test_display_position_after_reorder(self):
        self.widget.extract_form_values(
            self.store,
            {"groups-form-entities-0-delta": "1", "groups-form-entities-1-delta": "0"},
        )
        self.assertEqual(self.widget.display_position(self.store, 0), 1)
        self.assertEqual(self.widget.display_position(self.store, 1), 0)


class HandleActionTests(TestCase):
    def setUp(self):
        super().setUp()
        self.group = Group.objects.create(name="Editors")
        self.store = RowStateStore()
        self.widget = group_widget()

    def test_routes_own_trigger(self):
        data = {trigger_name(self.widget.ief_id, Action.OPEN_EDIT, 0): "Edit"}

        result = self.widget.handle_action(self.store, data, [self.group])

        self.assertTrue(result.applied)
        self.assertEqual(self.store.get_row(self.widget.ief_id, 0).form_mode, FormMode.EDIT)

    def test_ignores_other_widgets_triggers(self):
        other = group_widget(group_field(name="teams"))
        data = {trigger_name(other.ief_id, Action.OPEN_ADD): "Add"}

        self.assertFalse(self.widget.owns_trigger(data))
        self.assertIsNone(self.widget.handle_action(self.store, data, [self.group]))

    def test_weights_posted_with_action_are_kept(self):
        second = Group.objects.create(name="Writers")
        data = {
            trigger_name(self.widget.ief_id, Action.OPEN_ADD): "Add",
            "groups-form-entities-0-delta": "3",
            "groups-form-entities-1-delta": "1",
        }
        self.widget.handle_action(self.store, data, [self.group, second])
        weights = [row.weight for row in self.store.get_rows(self.widget.ief_id)]
        self.assertEqual(weights, [3, 1])

    def test_save_failure_is_tagged_with_row(self):
        class FailingStorage(type(self.widget.storage)):
            def save(self, record):
                raise PersistenceError("disk full", record_id=record.pk)

        widget = group_widget(storage=FailingStorage(Group))
        widget.prepare(self.store, [self.group])
        self.store.mark_needs_save(widget.ief_id, 0)

        with self.assertRaises(PersistenceError) as ctx:
            widget.extract_form_values(self.store, {})
        self.assertEqual(ctx.exception.delta, 0)


class RenderTests(TestCase):
    def test_render_includes_wrapper_rows_and_buttons(self):
        group = Group.objects.create(name="Editors")
        store = RowStateStore(build_id="form-abc")
        widget = group_widget()

        html = widget.render(store, items=[group])

        self.assertIn(f'id="inline-entity-form-{widget.ief_id}"', html)
        self.assertIn('value="form-abc"', html)
        self.assertIn("Editors", html)
        self.assertIn(trigger_name(widget.ief_id, Action.OPEN_EDIT, 0), html)
        self.assertIn(trigger_name(widget.ief_id, Action.OPEN_ADD), html)

    def test_single_widget_keeps_insertion_order(self):
        first = Group.objects.create(name="First")
        store = RowStateStore()
        widget = group_widget(widget_class=InlineEntityFormSingle)

        values = widget.extract_form_values(store, {"groups-form-entities-0-delta": "9"}, [first])

        self.assertEqual(values, [{"target_id": first.pk}])
        self.assertEqual(widget.posted_weights(store, {"groups-form-entities-0-delta": "9"}), {})
