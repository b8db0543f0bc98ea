import unittest

from sqlalchemy import inspect

from repokit.core.errors import ColumnNotFound, RelationNotFound
from repokit.services.projection import apply_projection, build_load_options, split_fields
from tests.base import Owner, RepositoryTestBase, Tag


class SplitFieldsTests(unittest.TestCase):
    def test_columns_and_relations_are_separated(self):
        columns, relations = split_fields(["flag", {"tags": ["label"]}, "name"])
        self.assertEqual(columns, ["flag", "name"])
        self.assertEqual(relations, [("tags", ["label"])])

    def test_integer_keys_are_positional_columns(self):
        columns, relations = split_fields({0: "flag", "tags": ["label"], 1: "name"})
        self.assertEqual(columns, ["flag", "name"])
        self.assertEqual(relations, [("tags", ["label"])])

    def test_input_is_not_mutated(self):
        fields = ["flag", {"tags": ["label"]}]
        split_fields(fields)
        self.assertEqual(fields, ["flag", {"tags": ["label"]}])

    def test_empty_fields(self):
        self.assertEqual(split_fields(None), ([], []))
        self.assertEqual(split_fields([]), ([], []))
        self.assertEqual(build_load_options(Owner, []), [])


class ApplyProjectionTests(RepositoryTestBase):
    def _owners(self, fields):
        return apply_projection(self.db.query(Owner), Owner, fields).order_by(Owner.id)

    def test_plain_columns_restrict_loaded_attributes(self):
        owner = self._owners(["name"]).first()
        state = inspect(owner)
        self.assertNotIn("name", state.unloaded)
        self.assertNotIn("id", state.unloaded)
        self.assertIn("age", state.unloaded)
        self.assertIn("flag", state.unloaded)

    def test_star_keeps_all_columns(self):
        owner = self._owners(["*", {"tags": []}]).first()
        state = inspect(owner)
        self.assertNotIn("age", state.unloaded)
        self.assertNotIn("tags", state.unloaded)
        self.assertEqual([tag.label for tag in owner.tags], ["red", "blue"])

    def test_nested_relation_loads_own_fields_and_foreign_key(self):
        owner = self._owners(["flag", {"tags": ["label"]}]).first()
        owner_state = inspect(owner)
        self.assertNotIn("flag", owner_state.unloaded)
        self.assertNotIn("id", owner_state.unloaded)
        self.assertIn("name", owner_state.unloaded)
        self.assertNotIn("tags", owner_state.unloaded)

        tag_state = inspect(owner.tags[0])
        self.assertNotIn("label", tag_state.unloaded)
        self.assertNotIn("owner_id", tag_state.unloaded)
        self.assertIn("color", tag_state.unloaded)

    def test_relations_nest_recursively(self):
        owner = self._owners([{"tags": ["label", {"notes": ["body"]}]}]).first()
        notes = owner.tags[0].notes
        self.assertEqual([note.body for note in notes], ["warm", "loud"])
        note_state = inspect(notes[0])
        self.assertNotIn("tag_id", note_state.unloaded)
        self.assertIn("author", note_state.unloaded)

    def test_belongs_to_keeps_local_foreign_key(self):
        tag = apply_projection(self.db.query(Tag), Tag, ["label", {"owner": ["name"]}]).order_by(Tag.id).first()
        state = inspect(tag)
        self.assertNotIn("owner_id", state.unloaded)
        self.assertIn("color", state.unloaded)
        self.assertEqual(tag.owner.name, "Alice")
        self.assertIn("age", inspect(tag.owner).unloaded)

    def test_belongs_to_many(self):
        owner = self._owners(["name", {"categories": ["name"]}]).first()
        self.assertEqual([category.name for category in owner.categories], ["music", "books"])

    def test_unknown_relation_raises_before_touching_the_query(self):
        q = self.db.query(Owner)
        with self.assertRaises(RelationNotFound):
            apply_projection(q, Owner, ["name", {"tags": ["label"]}, {"pets": []}])
        self.assertEqual(self.selects(), [])

    def test_unknown_nested_relation_raises(self):
        with self.assertRaises(RelationNotFound) as ctx:
            build_load_options(Owner, [{"tags": [{"stickers": []}]}])
        self.assertEqual(ctx.exception.relation, "stickers")

    def test_unknown_column_raises(self):
        with self.assertRaises(ColumnNotFound) as ctx:
            build_load_options(Owner, ["nickname"])
        self.assertEqual(ctx.exception.column, "nickname")


if __name__ == "__main__":
    unittest.main()
