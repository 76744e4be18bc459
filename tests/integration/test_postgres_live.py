import os
from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import DBAPIError

from partitioner.orchestration import RangePartitioner
from partitioner.settings import PartitionSettings

DATABASE_URL = os.getenv("PARTITIONER_TEST_DATABASE_URL")

pytestmark = pytest.mark.skipif(not DATABASE_URL, reason="PARTITIONER_TEST_DATABASE_URL not set")

TABLE = "partitioner_live_events"


@pytest.fixture
def engine():
    engine = create_engine(DATABASE_URL)
    with engine.begin() as conn:
        conn.execute(text(f"DROP TABLE IF EXISTS {TABLE} CASCADE"))
        conn.execute(text(f"DROP FUNCTION IF EXISTS {TABLE}_ins_trg_fn() CASCADE"))
        conn.execute(
            text(
                f"CREATE TABLE {TABLE} ("
                " id serial PRIMARY KEY,"
                " created_at timestamp without time zone NOT NULL,"
                " source text)"
            )
        )
        conn.execute(text(f"CREATE INDEX ix_{TABLE}_source ON {TABLE} (source)"))

    yield engine

    with engine.begin() as conn:
        conn.execute(text(f"DROP TABLE IF EXISTS {TABLE} CASCADE"))
        conn.execute(text(f"DROP FUNCTION IF EXISTS {TABLE}_ins_trg_fn() CASCADE"))
    engine.dispose()


@pytest.fixture
def partitioner(engine):
    settings = PartitionSettings(table=TABLE, column="created_at", bucket=timedelta(days=1))
    return RangePartitioner(settings, engine=engine)


def count_rows(engine, only_parent=False):
    only = "ONLY " if only_parent else ""
    with engine.connect() as conn:
        return conn.execute(text(f"SELECT count(*) FROM {only}{TABLE}")).scalar()


@pytest.mark.integration
def test_bootstrap_routes_and_rejects(engine, partitioner):
    reference = datetime(2024, 1, 5, 10)

    created = partitioner.prune_and_create_partitions(30, "days", 1, 1, reference=reference)

    assert created == 2
    partitions = partitioner.list_partitions()
    assert [p.range_less_than for p in partitions] == [datetime(2024, 1, 5), datetime(2024, 1, 6)]
    assert partitions[0].range_minimum is None

    with engine.begin() as conn:
        conn.execute(text(f"INSERT INTO {TABLE} (created_at, source) VALUES ('2024-01-05 09:00', 'a')"))
        conn.execute(text(f"INSERT INTO {TABLE} (created_at, source) VALUES ('2023-06-01 00:00', 'b')"))

    assert count_rows(engine) == 2
    assert count_rows(engine, only_parent=True) == 0

    # the oldest partition catches old rows
    with engine.connect() as conn:
        oldest = conn.execute(text(f"SELECT count(*) FROM {partitions[0].name}")).scalar()
        indexes = conn.execute(
            text("SELECT indexname FROM pg_indexes WHERE tablename = :name"), {"name": partitions[1].name}
        ).scalars().all()
    assert oldest == 1
    assert len(indexes) == 2

    with pytest.raises(DBAPIError, match="Date out of range"):
        with engine.begin() as conn:
            conn.execute(text(f"INSERT INTO {TABLE} (created_at, source) VALUES ('2030-01-01 00:00', 'c')"))


@pytest.mark.integration
def test_second_run_is_noop(partitioner):
    reference = datetime(2024, 1, 5, 10)
    partitioner.prune_and_create_partitions(30, "days", 1, 2, reference=reference)

    assert partitioner.prune_and_create_partitions(30, "days", 1, 2, reference=reference) == 0
    assert len(partitioner.list_partitions()) == 3


@pytest.mark.integration
def test_prune_demotes_successor(engine, partitioner):
    partitioner.prune_and_create_partitions(30, "days", 1, 2, reference=datetime(2024, 1, 1, 12))

    # two days later with one day of retention, the first two partitions go
    partitioner.prune_and_create_partitions(1, "days", 1, 2, reference=datetime(2024, 1, 3, 12))

    partitions = partitioner.list_partitions()
    assert partitions[0].range_less_than == datetime(2024, 1, 3)
    assert partitions[0].range_minimum is None
    assert [p.range_minimum for p in partitions[1:]] == [p.range_less_than for p in partitions[:-1]]


@pytest.mark.integration
def test_remove_all_keeps_rows(engine, partitioner):
    partitioner.prune_and_create_partitions(30, "days", 1, 2, reference=datetime(2024, 1, 5, 10))
    with engine.begin() as conn:
        for stamp in ("2024-01-04 10:00", "2024-01-05 10:00", "2024-01-06 10:00"):
            conn.execute(text(f"INSERT INTO {TABLE} (created_at) VALUES (:stamp)"), {"stamp": stamp})

    partitioner.remove_all_partitions()

    assert partitioner.list_partitions() == []
    assert count_rows(engine, only_parent=True) == 3

    # rows now stay in the parent
    with engine.begin() as conn:
        conn.execute(text(f"INSERT INTO {TABLE} (created_at) VALUES ('2030-01-01 00:00')"))
    assert count_rows(engine, only_parent=True) == 4


@pytest.mark.integration
def test_prune_preserving_rows(engine, partitioner):
    partitioner.prune_and_create_partitions(30, "days", 1, 2, reference=datetime(2024, 1, 1, 12))
    with engine.begin() as conn:
        for stamp in ("2023-12-31 10:00", "2024-01-01 10:00"):
            conn.execute(text(f"INSERT INTO {TABLE} (created_at) VALUES (:stamp)"), {"stamp": stamp})

    # the partition ending at 2024-01-01 expires, its row moves to the next one
    partitioner.prune_and_create_partitions(
        1, "days", 1, 2, reference=datetime(2024, 1, 2, 12), preserve_rows=True
    )

    partitions = partitioner.list_partitions()
    assert partitions[0].range_less_than == datetime(2024, 1, 2)
    assert count_rows(engine) == 2
    assert count_rows(engine, only_parent=True) == 0
    with engine.connect() as conn:
        assert conn.execute(text(f"SELECT count(*) FROM {partitions[0].name}")).scalar() == 2
