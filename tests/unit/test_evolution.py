"""Tests for SchemaEvolutionCoordinator."""

import pytest

from dksink.converter.descriptor import build_record_descriptor
from dksink.converter.types import TypeRegistry
from dksink.exceptions import (
    MissingTableError,
    SchemaChangeError,
    SchemaEvolutionDisabledError,
)
from dksink.schema.cache import TableMetadataCache
from dksink.schema.evolution import SchemaEvolutionCoordinator
from dksink.types import SchemaEvolutionMode
from tests.helpers import (
    INT32,
    OPTIONAL_STRING,
    STRING,
    FakeDoris,
    make_change_record,
    row_schema,
)

REGISTRY = TypeRegistry.default()


def describe(*fields, **values):
    record = make_change_record(row_schema(*fields), after=values)
    return build_record_descriptor(record, REGISTRY)


def make_coordinator(doris, mode=SchemaEvolutionMode.BASIC, cache=None):
    return SchemaEvolutionCoordinator(
        catalog=doris.catalog,
        ddl=doris.ddl,
        database="shop",
        mode=mode,
        cache=cache,
    )


class TestExistence:
    """Tests for table existence resolution."""

    def test_missing_table_raises(self):
        doris = FakeDoris({})
        coordinator = make_coordinator(doris)
        with pytest.raises(MissingTableError) as exc_info:
            coordinator.ensure_schema("orders", describe(("id", INT32), id=1))
        assert exc_info.value.table_name == "orders"
        assert "orders" not in coordinator.cache
        doris.ddl.add_column.assert_not_called()

    def test_existence_is_memoized(self):
        doris = FakeDoris({"orders": [("id", "INT")]})
        coordinator = make_coordinator(doris)
        assert coordinator.has_table("orders")
        assert coordinator.has_table("orders")
        doris.catalog.table_exists.assert_called_once_with("shop", "orders")

    def test_missing_table_is_not_memoized(self):
        doris = FakeDoris({})
        coordinator = make_coordinator(doris)
        assert not coordinator.has_table("orders")
        doris.tables["orders"] = [("id", "INT")]
        assert coordinator.has_table("orders")


class TestEnsureSchema:
    """Tests for ensure_schema."""

    def test_nothing_missing_returns_empty(self):
        doris = FakeDoris({"orders": [("id", "INT"), ("name", "STRING")]})
        coordinator = make_coordinator(doris)
        added = coordinator.ensure_schema(
            "orders", describe(("id", INT32), ("name", STRING), id=1, name="a")
        )
        assert added == []
        assert coordinator.last_missing_fields == []
        doris.ddl.add_column.assert_not_called()

    def test_cache_hit_makes_no_calls(self):
        doris = FakeDoris({"orders": [("id", "INT"), ("name", "STRING")]})
        coordinator = make_coordinator(doris)
        record = describe(("id", INT32), ("name", STRING), id=1, name="a")
        coordinator.ensure_schema("orders", record)
        doris.reset_mocks()

        coordinator.ensure_schema("orders", record)

        assert doris.catalog.table_exists.call_count == 0
        assert doris.catalog.get_schema.call_count == 0
        assert doris.ddl.add_column.call_count == 0

    def test_adds_missing_columns_in_record_order(self):
        doris = FakeDoris({"orders": [("id", "INT")]})
        coordinator = make_coordinator(doris)
        record = describe(
            ("id", INT32), ("note", OPTIONAL_STRING), ("name", STRING), id=1, name="a"
        )

        added = coordinator.ensure_schema("orders", record)

        assert [f.name for f in added] == ["note", "name"]
        assert [c.args[1].name for c in doris.ddl.add_column.call_args_list] == [
            "note",
            "name",
        ]
        assert coordinator.cache.get("orders").column_names() == {"id", "note", "name"}

    def test_refreshes_cache_after_alteration(self):
        doris = FakeDoris({"orders": [("id", "INT")]})
        coordinator = make_coordinator(doris)
        coordinator.ensure_schema("orders", describe(("id", INT32), id=1))
        assert doris.catalog.get_schema.call_count == 1

        coordinator.ensure_schema(
            "orders", describe(("id", INT32), ("name", STRING), id=1, name="a")
        )

        assert doris.catalog.get_schema.call_count == 2
        assert coordinator.cache.get("orders").has_column("name")

    def test_disabled_evolution_raises_and_leaves_cache(self):
        doris = FakeDoris({"orders": [("id", "INT")]})
        coordinator = make_coordinator(doris, mode=SchemaEvolutionMode.NONE)
        coordinator.ensure_schema("orders", describe(("id", INT32), id=1))
        before = coordinator.cache.get("orders")

        with pytest.raises(SchemaEvolutionDisabledError) as exc_info:
            coordinator.ensure_schema(
                "orders", describe(("id", INT32), ("name", STRING), id=1, name="a")
            )

        assert exc_info.value.table_name == "orders"
        assert exc_info.value.field_names == ["name"]
        assert coordinator.cache.get("orders") is before
        doris.ddl.add_column.assert_not_called()

    def test_failed_alteration_leaves_cache(self):
        doris = FakeDoris({"orders": [("id", "INT")]})
        doris.ddl.add_column.side_effect = [
            None,
            SchemaChangeError("rejected", table_name="orders", field_name="b"),
        ]
        cache = TableMetadataCache()
        coordinator = make_coordinator(doris, cache=cache)
        coordinator.ensure_schema("orders", describe(("id", INT32), id=1))
        before = cache.get("orders")

        with pytest.raises(SchemaChangeError, match="rejected"):
            coordinator.ensure_schema(
                "orders",
                describe(("id", INT32), ("a", STRING), ("b", STRING), id=1, a="x", b="y"),
            )

        assert cache.get("orders") is before
        assert doris.ddl.add_column.call_count == 2

    def test_unexpected_ddl_failure_is_wrapped(self):
        doris = FakeDoris({"orders": [("id", "INT")]})
        doris.ddl.add_column.side_effect = RuntimeError("socket closed")
        coordinator = make_coordinator(doris)

        with pytest.raises(SchemaChangeError, match="socket closed") as exc_info:
            coordinator.ensure_schema(
                "orders", describe(("id", INT32), ("name", STRING), id=1, name="a")
            )
        assert exc_info.value.field_name == "name"

    def test_not_loaded_entry_triggers_fetch(self):
        doris = FakeDoris({"orders": [("id", "INT")]})
        cache = TableMetadataCache()
        cache.mark_exists("orders")
        coordinator = make_coordinator(doris, cache=cache)

        coordinator.ensure_schema("orders", describe(("id", INT32), id=1))

        doris.catalog.table_exists.assert_not_called()
        doris.catalog.get_schema.assert_called_once_with("shop", "orders")
        assert cache.is_loaded("orders")
