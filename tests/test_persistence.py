"""Tests for the hub writer."""

import logging

import pytest
from sqlalchemy.dialects import mysql, postgresql

from rsbsa_sync.errors import TransferError
from rsbsa_sync.persistence import TargetWriter, prepare_rows
from rsbsa_sync.schema import get_table_spec

from tests.conftest import fetch_all


class TestPrepareRows:
    def test_unknown_columns_are_dropped(self, caplog):
        spec = get_table_spec("farmers_livelihood")

        with caplog.at_level(logging.DEBUG, logger="rsbsa_sync"):
            rows = prepare_rows(spec, [{"rsbsa_no": "A", "livelihood": "FARMER", "legacy_flag": 1}])

        assert rows == [{"rsbsa_no": "A", "livelihood": "FARMER"}]
        assert "legacy_flag" in caplog.text

    def test_rows_without_key_are_dropped(self, caplog):
        spec = get_table_spec("farmers_livelihood")

        rows = prepare_rows(spec, [{"rsbsa_no": None, "livelihood": "X"}, {"rsbsa_no": "B"}])

        assert rows == [{"rsbsa_no": "B"}]
        assert "without rsbsa_no" in caplog.text

    def test_one_to_one_keeps_last_row_per_key(self):
        spec = get_table_spec("farmers_kyc2")

        rows = prepare_rows(
            spec,
            [
                {"rsbsa_no": "A", "religion": "first"},
                {"rsbsa_no": "B", "religion": "other"},
                {"rsbsa_no": "A", "religion": "second"},
            ],
        )

        assert rows == [
            {"rsbsa_no": "A", "religion": "second"},
            {"rsbsa_no": "B", "religion": "other"},
        ]

    def test_rows_share_one_column_set(self):
        spec = get_table_spec("farmers_fca")

        rows = prepare_rows(spec, [{"rsbsa_no": "A", "fca_name": "X"}, {"rsbsa_no": "B", "fca_id": "9"}])

        assert rows == [
            {"rsbsa_no": "A", "fca_id": None, "fca_name": "X"},
            {"rsbsa_no": "B", "fca_id": "9", "fca_name": None},
        ]


@pytest.fixture(params=[True, False], ids=["bulk", "update-or-insert"])
def writer(request, target_engine):
    return TargetWriter(target_engine, bulk_upsert=request.param, chunk_size=2)


class TestOneToOne:
    def test_inserts_then_updates_in_place(self, writer, target_engine):
        writer.upsert("farmers_kyc2", [{"rsbsa_no": "A", "religion": "OLD"}])
        written = writer.upsert(
            "farmers_kyc2",
            [{"rsbsa_no": "A", "religion": "NEW"}, {"rsbsa_no": "B", "religion": "OTHER"}],
        )

        rows = fetch_all(target_engine, "farmers_kyc2", order_by="rsbsa_no")
        assert written == 2
        assert [(row["rsbsa_no"], row["religion"]) for row in rows] == [("A", "NEW"), ("B", "OTHER")]

    def test_upsert_is_idempotent(self, writer, target_engine):
        payload = [{"rsbsa_no": "A", "first_name": "JUAN", "surname": "CRUZ"}]

        writer.upsert("farmers_kyc1", payload)
        first = fetch_all(target_engine, "farmers_kyc1")
        writer.upsert("farmers_kyc1", payload)

        assert fetch_all(target_engine, "farmers_kyc1") == first
        assert len(first) == 1

    def test_duplicate_source_rows_collapse(self, writer, target_engine):
        writer.upsert(
            "farmers_kyc3",
            [{"rsbsa_no": "A", "vtc_bgy_chair": "ONE"}, {"rsbsa_no": "A", "vtc_bgy_chair": "TWO"}],
        )

        rows = fetch_all(target_engine, "farmers_kyc3")
        assert [(row["rsbsa_no"], row["vtc_bgy_chair"]) for row in rows] == [("A", "TWO")]

    def test_key_only_rows(self, writer, target_engine):
        writer.upsert("farmers_kyc3", [{"rsbsa_no": "A"}])
        writer.upsert("farmers_kyc3", [{"rsbsa_no": "A"}])

        assert [row["rsbsa_no"] for row in fetch_all(target_engine, "farmers_kyc3")] == ["A"]


class TestOneToMany:
    def test_replaces_the_key_set(self, writer, target_engine):
        writer.upsert(
            "farmers_livelihood",
            [
                {"rsbsa_no": "K", "livelihood": "A"},
                {"rsbsa_no": "K", "livelihood": "B"},
                {"rsbsa_no": "OTHER", "livelihood": "KEEP"},
            ],
        )
        writer.upsert("farmers_livelihood", [{"rsbsa_no": "K", "livelihood": "C"}])

        rows = fetch_all(target_engine, "farmers_livelihood")
        by_key = sorted((row["rsbsa_no"], row["livelihood"]) for row in rows)
        assert by_key == [("K", "C"), ("OTHER", "KEEP")]

    def test_keys_beyond_one_delete_chunk(self, writer, target_engine):
        keys = ["K1", "K2", "K3", "K4", "K5"]
        writer.upsert("farmers_fca", [{"rsbsa_no": key, "fca_name": "OLD"} for key in keys])
        writer.upsert("farmers_fca", [{"rsbsa_no": key, "fca_name": "NEW"} for key in keys])

        rows = fetch_all(target_engine, "farmers_fca")
        assert sorted(row["rsbsa_no"] for row in rows) == keys
        assert {row["fca_name"] for row in rows} == {"NEW"}

    def test_parcels_replace_per_parcel_id(self, writer, target_engine):
        writer.upsert("farmparcel", [{"parcel_id": "P1", "desc_location": "OLD", "long": 120.0}])
        writer.upsert("farmparcel", [{"parcel_id": "P1", "desc_location": "NEW", "long": 121.0}])

        rows = fetch_all(target_engine, "farmparcel")
        assert [(row["parcel_id"], row["desc_location"], row["long"]) for row in rows] == [
            ("P1", "NEW", 121.0)
        ]

    def test_failed_insert_rolls_back_the_delete(self, target_engine):
        writer = TargetWriter(target_engine)
        writer.upsert("farmers_livelihood", [{"farmlivelihoodID": 1, "rsbsa_no": "K", "livelihood": "KEEP"}])

        with pytest.raises(TransferError) as excinfo:
            writer.upsert(
                "farmers_livelihood",
                [
                    {"farmlivelihoodID": 7, "rsbsa_no": "K", "livelihood": "A"},
                    {"farmlivelihoodID": 7, "rsbsa_no": "K", "livelihood": "B"},
                ],
            )

        assert excinfo.value.table == "farmers_livelihood"
        assert excinfo.value.entity_keys == ("K",)
        rows = fetch_all(target_engine, "farmers_livelihood")
        assert [(row["rsbsa_no"], row["livelihood"]) for row in rows] == [("K", "KEEP")]


def test_nothing_to_write(target_engine):
    writer = TargetWriter(target_engine)

    assert writer.upsert("farmers_fca", []) == 0
    assert writer.upsert("farmers_fca", [{"fca_name": "NO KEY"}]) == 0


def test_unknown_table_is_rejected(target_engine):
    with pytest.raises(ValueError):
        TargetWriter(target_engine).upsert("mystery", [{"rsbsa_no": "A"}])


class CapturingConnection:
    """Stands in for a live connection; records statements instead of running them."""

    def __init__(self, dialect):
        self.dialect = dialect
        self.executed = []

    def execute(self, statement, parameters=None):
        self.executed.append((statement, parameters))


def _captured_sql(dialect, rows, bulk_upsert=True):
    spec = get_table_spec("farmers_kyc2")
    conn = CapturingConnection(dialect)
    writer = TargetWriter(engine=None, bulk_upsert=bulk_upsert)

    writer._write_one_to_one(conn, spec, rows, [row["rsbsa_no"] for row in rows])

    (statement, parameters), = conn.executed
    assert parameters == rows
    return str(statement.compile(dialect=dialect))


class TestDialectUpserts:
    def test_mysql_updates_every_column_but_the_key(self):
        sql = _captured_sql(mysql.dialect(), [{"rsbsa_no": "A", "religion": "X", "pwd": 0}])

        head, _, tail = sql.partition("ON DUPLICATE KEY UPDATE")
        assert head.startswith("INSERT INTO farmers_kyc2")
        assert "religion = " in tail
        assert "pwd = " in tail
        assert "rsbsa_no" not in tail

    def test_mysql_key_only_rows_still_compile(self):
        sql = _captured_sql(mysql.dialect(), [{"rsbsa_no": "A"}])

        _, _, tail = sql.partition("ON DUPLICATE KEY UPDATE")
        assert "rsbsa_no = " in tail

    def test_postgresql_conflicts_on_the_key(self):
        sql = _captured_sql(postgresql.dialect(), [{"rsbsa_no": "A", "religion": "X"}])

        head, _, tail = sql.partition("ON CONFLICT (rsbsa_no) DO UPDATE SET")
        assert head.startswith("INSERT INTO farmers_kyc2")
        assert "religion = excluded.religion" in tail
        assert "rsbsa_no = " not in tail

    def test_postgresql_key_only_rows_do_nothing_on_conflict(self):
        sql = _captured_sql(postgresql.dialect(), [{"rsbsa_no": "A"}])

        assert "ON CONFLICT (rsbsa_no) DO NOTHING" in sql
        assert "DO UPDATE" not in sql
