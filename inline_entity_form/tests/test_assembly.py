import copy

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.test import TestCase

from inline_entity_form.assembly import FormAssembler, should_auto_open_add
from inline_entity_form.controller import Action
from inline_entity_form.field_widgets import InlineEntityFormSingle
from inline_entity_form.handlers import ModelEntityHandler
from inline_entity_form.state import FormMode, RowStateStore
from inline_entity_form.storage import ModelStorage

from .utils import group_field, group_widget


def widget_actions(tree):
    return [button.action for button in tree.actions]


class CardinalityTests(TestCase):
    def setUp(self):
        super().setUp()
        self.groups = [Group.objects.create(name=f"Group {index}") for index in range(3)]
        self.store = RowStateStore()

    def test_limit_reached_hides_add_controls(self):
        widget = group_widget(group_field(cardinality=2))

        tree = widget.form_element(self.store, self.groups[:2])

        self.assertEqual(tree.actions, [])
        self.assertIsNone(tree.form)
        self.assertEqual(tree.cardinality_message, "You have added 2 out of 2 allowed groups.")

    def test_below_limit_shows_add_controls(self):
        widget = group_widget(group_field(cardinality=2))
        tree = widget.form_element(self.store, self.groups[:1])
        self.assertEqual(widget_actions(tree), [Action.OPEN_ADD])
        self.assertEqual(tree.cardinality_message, "You have added 1 out of 2 allowed groups.")

    def test_unlimited_always_shows_add_controls(self):
        widget = group_widget(group_field(cardinality=0))
        tree = widget.form_element(self.store, self.groups)
        self.assertEqual(widget_actions(tree), [Action.OPEN_ADD])
        self.assertEqual(tree.cardinality_message, "")

    def test_single_value_has_no_count_message(self):
        widget = group_widget(group_field(cardinality=1))
        tree = widget.form_element(self.store, self.groups[:1])
        self.assertEqual(tree.cardinality_message, "")
        self.assertEqual(tree.actions, [])


class AutoOpenTests(TestCase):
    def test_required_single_bundle_field_opens_add_form(self):
        store = RowStateStore()
        widget = group_widget(group_field(required=True))

        tree = widget.form_element(store, [])

        self.assertEqual(store.get_instance(widget.ief_id).form, FormMode.ADD)
        self.assertEqual(store.get_instance(widget.ief_id).form_settings, {"bundle": "group"})
        self.assertEqual(tree.form.op, FormMode.ADD)
        self.assertEqual(tree.element_type, "container")
        # Nothing to cancel back to.
        self.assertEqual([button.action for button in tree.form.actions], [Action.CLOSE_ADD])

    def test_recursion_guard_blocks_auto_open(self):
        store = RowStateStore()
        field = group_field(required=True, parent_entity_type="auth.group", parent_bundle="group")
        widget = group_widget(field)

        tree = widget.form_element(store, [])

        self.assertEqual(store.get_instance(widget.ief_id).form, FormMode.NONE)
        self.assertIsNone(tree.form)
        self.assertEqual(widget_actions(tree), [Action.OPEN_ADD])

    def test_no_auto_open_when_optional_or_existing_allowed_or_many_bundles(self):
        cases = [
            (group_field(required=False), {}),
            (group_field(required=True), {"allow_existing": True}),
            (group_field(required=True, target_bundles=("group", "team")), {}),
        ]
        for field, settings in cases:
            store = RowStateStore()
            widget = group_widget(field, settings)
            widget.prepare(store, [])
            self.assertFalse(should_auto_open_add(store.get_instance(widget.ief_id)))
            self.assertEqual(store.get_instance(widget.ief_id).form, FormMode.NONE)


class RowRenderingTests(TestCase):
    def setUp(self):
        super().setUp()
        self.group = Group.objects.create(name="Editors")
        self.store = RowStateStore()

    def test_closed_rows_show_summary_and_actions(self):
        widget = group_widget()
        tree = widget.form_element(self.store, [self.group])

        row = tree.rows[0]
        self.assertEqual(row.columns, [("Group", "Editors")])
        self.assertEqual([button.action for button in row.actions], [Action.OPEN_EDIT, Action.OPEN_REMOVE])
        self.assertIsNone(row.form)
        self.assertEqual(row.weight_field, "groups-form-entities-0-delta")

    def test_edit_form_replaces_row_actions_and_hides_add(self):
        widget = group_widget()
        widget.prepare(self.store, [self.group])
        self.store.set_form_mode(widget.ief_id, 0, FormMode.EDIT)

        tree = widget.form_element(self.store)

        row = tree.rows[0]
        self.assertEqual(row.actions, [])
        self.assertEqual(row.form.op, FormMode.EDIT)
        self.assertEqual(row.form.form.prefix, "groups-form-entities-0-form")
        self.assertEqual([button.action for button in row.form.actions], [Action.SAVE_ROW, Action.CANCEL_ROW])
        self.assertEqual(tree.actions, [])

    def test_remove_form_message_and_delete_checkbox(self):
        widget = group_widget(settings={"allow_existing": True})
        widget.prepare(self.store, [self.group])
        self.store.set_form_mode(widget.ief_id, 0, FormMode.REMOVE)

        form = widget.form_element(self.store).rows[0].form

        self.assertEqual(form.message, "Are you sure you want to remove Editors?")
        self.assertEqual(form.delete_field, "groups-form-entities-0-delete")

    def test_remove_form_has_no_delete_checkbox_without_allow_existing(self):
        widget = group_widget()
        widget.prepare(self.store, [self.group])
        self.store.set_form_mode(widget.ief_id, 0, FormMode.REMOVE)
        self.assertEqual(widget.form_element(self.store).rows[0].form.delete_field, "")

    def test_permissions_hide_row_actions(self):
        user = get_user_model().objects.create_user(username="reader", password="password")
        widget = group_widget(user=user)
        draft = Group(name="Draft")
        widget.prepare(self.store, [self.group])
        self.store.add_row(widget.ief_id, draft, needs_save=True)

        tree = widget.form_element(self.store)

        self.assertEqual(tree.rows[0].actions, [])
        self.assertEqual([button.action for button in tree.rows[1].actions], [Action.OPEN_EDIT, Action.OPEN_REMOVE])
        self.assertTrue(tree.rows[1].needs_save)

    def test_allow_existing_keeps_remove_without_delete_permission(self):
        user = get_user_model().objects.create_user(username="reader", password="password")
        widget = group_widget(settings={"allow_existing": True}, user=user)
        tree = widget.form_element(self.store, [self.group])

        self.assertEqual([button.action for button in tree.rows[0].actions], [Action.OPEN_REMOVE])
        self.assertEqual(widget_actions(tree), [Action.OPEN_ADD, Action.OPEN_ADD_EXISTING])

    def test_override_labels(self):
        widget = group_widget(settings={"override_labels": True, "label_singular": "team", "label_plural": "teams"})
        tree = widget.form_element(self.store, [self.group])
        self.assertEqual(tree.actions[0].label, "Add new team")

    def test_bundle_choices_for_multiple_bundles(self):
        widget = group_widget(group_field(target_bundles=("group", "team")))
        tree = widget.form_element(self.store, [])
        self.assertEqual(tree.bundle_choices, [("group", "group"), ("team", "team")])
        self.assertEqual(tree.bundle_field, "groups-form-actions-bundle")

    def test_add_existing_form(self):
        widget = group_widget(settings={"allow_existing": True})
        widget.prepare(self.store, [self.group])
        self.store.set_form_mode(widget.ief_id, None, FormMode.ADD_EXISTING)

        tree = widget.form_element(self.store)

        self.assertEqual(tree.form.op, FormMode.ADD_EXISTING)
        self.assertEqual(tree.form.reference_field, "groups-form-reference-target_id")
        self.assertEqual(tree.element_type, "fieldset")

    def test_assembly_does_not_mutate_state(self):
        widget = group_widget(group_field(required=True))
        widget.prepare(self.store, [self.group])
        self.store.set_form_mode(widget.ief_id, 0, FormMode.REMOVE)
        instance = self.store.get_instance(widget.ief_id)
        before = copy.deepcopy(instance)

        assembler = FormAssembler(ModelEntityHandler(Group, fields=["name"]), ModelStorage(Group))
        assembler.assemble(self.store, widget.ief_id)
        assembler.assemble(self.store, widget.ief_id)

        self.assertEqual(instance, before)

    def test_unknown_instance_renders_empty_tree(self):
        assembler = FormAssembler(ModelEntityHandler(Group, fields=["name"]), ModelStorage(Group))
        tree = assembler.assemble(RowStateStore(), "d" * 40)
        self.assertEqual(tree.rows, [])
        self.assertEqual(tree.actions, [])
        self.assertEqual(tree.wrapper_id, f"inline-entity-form-{'d' * 40}")

    def test_single_widget_edits_one_row_at_a_time(self):
        widget = group_widget(widget_class=InlineEntityFormSingle)
        self.assertEqual(widget.field.cardinality, 1)
        self.assertFalse(widget.settings.allow_existing)

        tree = widget.form_element(self.store, [self.group])
        self.assertEqual(tree.actions, [])
        self.assertTrue(self.store.get_instance(widget.ief_id).exclusive_row_forms)
