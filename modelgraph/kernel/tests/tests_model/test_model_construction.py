"""
ModelGraph Model -- Construction Tests

Covers:
  - Defaults merged under supplied data, copied per instance
  - preprocess() applied before anything is stored
  - Explicit type / id overrides through opts
  - Automatic ids: per-class counter, collision skipping, custom generator
  - Missing id with automatic ids disabled
  - Construction emits no field patches
"""

import random

import pytest

from modelgraph.config import settings
from modelgraph.kernel.collection import Collection
from modelgraph.kernel.errors import MissingIdentifierError
from modelgraph.kernel.model import Model
from modelgraph.kernel.types import DEFAULT_TYPE, TYPE_PROP, ModelOpts

# ============================================================================
# Helpers
# ============================================================================


class Foo(Model):
    type = "foo"
    defaults = {"foo": 4, "tags": []}


class Camel(Model):
    type = "camel"

    @classmethod
    def preprocess(cls, raw_data):
        data = dict(raw_data)
        if "firstName" in data:
            data["first_name"] = data.pop("firstName")
        return data


class FooStore(Collection):
    types = [Foo, Camel]


# ============================================================================
# 1. Defaults and preprocess
# ============================================================================


class TestDefaults:
    def test_supplied_value_wins(self):
        store = FooStore()
        model = store.add({"id": 1, "foo": 1, "bar": 0}, "foo")
        assert model.foo == 1
        assert model.bar == 0

    def test_default_fills_missing_field(self):
        store = FooStore()
        model = store.add({"id": 2, "bar": 0}, "foo")
        assert model.foo == 4

    def test_defaults_are_copied_per_instance(self):
        a = Foo({"id": 1})
        b = Foo({"id": 2})
        a.tags.append("x")
        assert b.tags == []
        assert Foo.defaults["tags"] == []


class TestPreprocess:
    def test_preprocess_reshapes_input(self):
        model = Camel({"id": 1, "firstName": "Ada"})
        assert model.first_name == "Ada"
        assert model.get("firstName") is None

    def test_preprocess_does_not_mutate_caller_data(self):
        data = {"id": 1, "firstName": "Ada"}
        Camel(data)
        assert data == {"id": 1, "firstName": "Ada"}


# ============================================================================
# 2. Type and id overrides
# ============================================================================


class TestOverrides:
    def test_string_opts_sets_dynamic_type(self):
        model = Model({"id": 1}, "person")
        assert model.record_type == "person"
        assert model.to_js()[TYPE_PROP] == "person"

    def test_string_opts_ignored_for_static_type(self):
        model = Foo({"id": 1}, "bar")
        assert model.record_type == "foo"
        assert model.get(TYPE_PROP) is None

    def test_model_opts_sets_id(self):
        model = Model({"name": "x"}, ModelOpts(id=42))
        assert model.record_id == 42

    def test_mapping_opts_sets_type_and_id(self):
        model = Model({"name": "x"}, {"type": "thing", "id": "a"})
        assert model.record_type == "thing"
        assert model.record_id == "a"

    def test_untyped_model_has_default_type(self):
        model = Model({"id": 1})
        assert model.record_type == DEFAULT_TYPE

    def test_collection_as_second_argument(self):
        collection = Collection()
        model = Model({"id": 1}, collection)
        assert model.collection is collection
        # Constructing against a collection does not add to it
        assert model not in collection
        assert len(collection) == 0


# ============================================================================
# 3. Automatic ids
# ============================================================================


class TestAutoId:
    def test_autoincrement_skips_taken_ids(self):
        class AutoFoo(Model):
            type = "foo"
            id_attribute = "my_id"

        class AutoBar(Model):
            type = "bar"
            enable_auto_id = False

        class AutoBaz(Model):
            type = "baz"

            @classmethod
            def auto_id_function(cls):
                return random.random()

        class AutoStore(Collection):
            types = [AutoFoo, AutoBar, AutoBaz]

        store = AutoStore()
        store.add({"bar": 1}, "foo")
        store.add({"bar": 1}, "foo")
        foo10 = store.add({"my_id": 10, "bar": 1}, "foo")
        store.add({"bar": 1}, "foo")
        store.add({"my_id": 4, "bar": 1}, "foo")
        foo5 = store.add({"bar": 1}, "foo")

        assert len(store.foo) == 6
        assert [model.my_id for model in store.foo] == [1, 2, 10, 3, 4, 5]
        assert foo5.my_id == 5
        assert foo10.my_id == 10

        bar5 = store.add({"id": 5}, "bar")
        assert bar5.id == 5
        with pytest.raises(MissingIdentifierError):
            store.add({"foo": 1}, "bar")

        baz = store.add({}, "baz")
        assert 0 <= baz.id < 1

    def test_counter_is_per_class(self):
        class First(Model):
            type = "first"

        class Second(Model):
            type = "second"

        assert First({}).record_id == settings.AUTO_ID_START
        assert First({}).record_id == settings.AUTO_ID_START + 1
        assert Second({}).record_id == settings.AUTO_ID_START

    def test_declared_counter_start(self):
        class Numbered(Model):
            type = "numbered"
            autoincrement_value = 100

        assert Numbered({}).record_id == 100
        assert Numbered({}).record_id == 101

    def test_missing_id_without_auto_id(self):
        class Strict(Model):
            enable_auto_id = False

        with pytest.raises(MissingIdentifierError, match="id is required"):
            Strict({"name": "x"})

    def test_explicit_id_skips_generator(self):
        class Strict(Model):
            enable_auto_id = False

        assert Strict({"name": "x"}, ModelOpts(id=7)).record_id == 7


# ============================================================================
# 4. Silent construction
# ============================================================================


class TestSilentConstruction:
    def test_add_emits_single_model_patch(self, recorder):
        store = FooStore()
        store.patch_listen(recorder)
        store.add({"id": 1, "a": 1, "b": 2}, "foo")
        assert recorder.ops == [("add", "/foo/1")]

    def test_listener_sees_only_later_changes(self, recorder):
        model = Foo({"id": 1, "a": 1})
        model.patch_listen(recorder)
        model.a = 2
        assert recorder.ops == [("replace", "/a")]
