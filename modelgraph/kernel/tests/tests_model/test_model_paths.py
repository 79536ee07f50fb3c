"""
ModelGraph Model -- Nested Id and Type Path Tests

Covers:
  - id_attribute given as a path into nested data
  - Automatic ids and opts overrides written at the nested path
  - Collection keying and upserts by nested id
  - Write-once ids inside a nested mapping
  - type_attribute given as a path, including re-indexing on change
  - Path helpers
"""

import logging

import pytest

from modelgraph.kernel.collection import Collection
from modelgraph.kernel.errors import MissingIdentifierError
from modelgraph.kernel.model import Model
from modelgraph.kernel.types import ModelOpts, as_path, get_path, set_path

# ============================================================================
# Helpers
# ============================================================================


class Record(Model):
    type = "record"
    id_attribute = ("meta", "id")
    enable_auto_id = False


class Envelope(Model):
    type_attribute = ("meta", "kind")


class Archive(Collection):
    types = [Record, Envelope]


# ============================================================================
# 1. Nested ids
# ============================================================================


class TestNestedId:
    def test_record_id_read_from_path(self):
        model = Record({"meta": {"id": 1, "source": "api"}, "name": "a"})
        assert model.record_id == 1
        assert model.meta == {"id": 1, "source": "api"}

    def test_missing_id_names_path(self):
        with pytest.raises(MissingIdentifierError, match="meta.id is required"):
            Record({"name": "a"})

    def test_opts_id_written_at_path(self):
        model = Record({"name": "a"}, ModelOpts(id=7))
        assert model.record_id == 7
        assert model.meta == {"id": 7}

    def test_auto_id_written_at_path(self):
        class AutoRecord(Model):
            type = "auto_record"
            id_attribute = ("meta", "id")
            autoincrement_value = 50

        data = {"meta": {"source": "api"}}
        model = AutoRecord(data)

        assert model.record_id == 50
        assert model.meta == {"source": "api", "id": 50}
        assert data == {"meta": {"source": "api"}}

    def test_collection_keys_by_nested_id(self):
        store = Archive()
        model = store.add({"meta": {"id": 1}, "name": "a"}, "record")

        again = store.add({"meta": {"id": 1}, "name": "b"}, "record")

        assert again is model
        assert store.find("record", 1) is model
        assert model.name == "b"
        assert len(store) == 1

    def test_nested_id_is_write_once(self, caplog):
        store = Archive()
        model = store.add({"meta": {"id": 1}}, "record")

        with caplog.at_level(logging.WARNING, logger="modelgraph"):
            model.meta = {"id": 2, "source": "x"}

        assert model.record_id == 1
        assert model.meta == {"id": 1, "source": "x"}
        assert store.find("record", 1) is model
        assert "write-once" in caplog.text

    def test_other_nested_fields_update_silently(self, caplog):
        model = Record({"meta": {"id": 1}})
        with caplog.at_level(logging.WARNING, logger="modelgraph"):
            model.update({"meta": {"id": 1, "source": "x"}})
        assert model.meta == {"id": 1, "source": "x"}
        assert caplog.text == ""


# ============================================================================
# 2. Nested types
# ============================================================================


class TestNestedType:
    def test_record_type_read_from_path(self):
        store = Archive()
        model = store.add(Envelope({"id": 1, "meta": {"kind": "note"}}))

        assert model.record_type == "note"
        assert store.find("note", 1) is model

    def test_string_opts_written_at_path(self):
        model = Envelope({"id": 2}, "memo")
        assert model.record_type == "memo"
        assert model.meta == {"kind": "memo"}

    def test_changing_nested_type_reindexes(self):
        store = Archive()
        model = store.add(Envelope({"id": 1, "meta": {"kind": "note"}}))

        model.meta = {"kind": "memo"}

        assert store.find("memo", 1) is model
        assert store.find("note", 1) is None


# ============================================================================
# 3. Path helpers
# ============================================================================


class TestPathHelpers:
    def test_as_path(self):
        assert as_path("id") == ("id",)
        assert as_path(["meta", "id"]) == ("meta", "id")
        with pytest.raises(ValueError):
            as_path(())

    def test_get_path_missing_step(self):
        assert get_path({"meta": {"id": 1}}, ("meta", "id")) == 1
        assert get_path({"meta": None}, ("meta", "id")) is None
        assert get_path({"meta": {"id": 1}}, ()) == {"meta": {"id": 1}}

    def test_set_path_copies_intermediate_mappings(self):
        shared = {"source": "api"}
        data = {"meta": shared}

        set_path(data, ("meta", "id"), 3)

        assert data == {"meta": {"source": "api", "id": 3}}
        assert shared == {"source": "api"}
