from datetime import datetime, timedelta

import pytest

from partitioner.backend import PartitionBackend
from partitioner.models import Partition, partition_name, validate_chain
from partitioner.settings import PartitionSettings
from partitioner.sql.ddl import build_routing_function

D1 = datetime(2024, 1, 1)
D2 = datetime(2024, 1, 2)
D3 = datetime(2024, 1, 3)


def make_chain(boundaries, table="events", column="created_at", schema="public"):
    """Builds a contiguous partition chain ending at each boundary, oldest unbounded."""
    chain = []
    lower = None
    for boundary in boundaries:
        chain.append(
            Partition(
                table=table,
                column=column,
                name=partition_name(table, boundary),
                range_less_than=boundary,
                range_minimum=lower,
                schema=schema,
            )
        )
        lower = boundary
    return chain


class InMemoryBackend(PartitionBackend):
    """
    Backend keeping partitions, rows and routing in memory. Records every mutating
    call in `calls` so tests can check ordering.
    """

    def __init__(self, partitions=None, rows=None):
        rows = rows or {}
        self.partitions = list(partitions or [])
        self.rows = {partition.name: list(rows.get(partition.name, [])) for partition in self.partitions}
        self.parent_rows = []
        self.routing_sql = None
        self.trigger_installed = bool(self.partitions)
        self.calls = []

    def list_partitions(self):
        chain = sorted(self.partitions, key=lambda partition: partition.range_less_than)
        validate_chain(chain)
        return chain

    def list_index_templates(self):
        return []

    def create_partition(self, name, lower, upper, templates):
        assert name not in self.rows, f"partition {name} created twice"
        partition = Partition("events", "created_at", name, upper, lower)
        self.partitions.append(partition)
        self.rows[name] = []
        self.calls.append(("create", name))
        return partition

    def install_routing(self, partitions, install_trigger=False):
        self.routing_sql = build_routing_function(partitions)
        if install_trigger:
            self.trigger_installed = True
        self.calls.append(("route", len(partitions)))

    def demote_partition(self, partition):
        demoted = Partition(partition.table, partition.column, partition.name, partition.range_less_than, None)
        self.partitions = [demoted if p.name == partition.name else p for p in self.partitions]
        self.calls.append(("demote", partition.name))
        return demoted

    def drop_partition(self, partition, preserve_rows=False):
        self.partitions = [p for p in self.partitions if p.name != partition.name]
        rows = self.rows.pop(partition.name)
        if preserve_rows:
            for row in rows:
                self.insert(row)
        self.calls.append(("drop", partition.name))

    def insert(self, row):
        """Inserts into the parent the way the routing trigger would, keyed on created_at."""
        if not self.trigger_installed:
            self.parent_rows.append(row)
            return

        chain = self.list_partitions()
        value = row["created_at"]
        for partition in reversed(chain[1:]):
            if partition.range_minimum <= value < partition.range_less_than:
                self.rows[partition.name].append(row)
                return
        if value < chain[0].range_less_than:
            self.rows[chain[0].name].append(row)
            return
        raise ValueError("Date out of range")

    def remove_all(self):
        self.trigger_installed = False
        self.routing_sql = None
        for partition in self.list_partitions():
            self.parent_rows.extend(self.rows.pop(partition.name))
        self.partitions = []
        self.calls.append(("remove_all", None))


# -------------
# Settings Fixtures
# ------------


@pytest.fixture
def settings():
    """Daily buckets on events.created_at."""
    return PartitionSettings(table="events", column="created_at", bucket=timedelta(days=1))


@pytest.fixture
def raw_config():
    """PARTITION_CONFIG as it comes out of the environment, numbers still strings."""
    return {
        "table": "events",
        "column": "created_at",
        "schema": "public",
        "bucket_duration": "1",
        "bucket_unit": "days",
        "past_count": "1",
        "future_count": "2",
        "retention_duration": "30",
        "retention_unit": "days",
    }


# -------------
# Partition Fixtures
# ------------


@pytest.fixture
def three_partitions():
    """Partitions ending at D1 < D2 < D3."""
    return make_chain([D1, D2, D3])


@pytest.fixture
def empty_backend():
    return InMemoryBackend()


@pytest.fixture
def catalog_rows():
    """pg_get_constraintdef output for three partitions, out of order like relname sorting may give."""
    return [
        {
            "partition_name": "events_p20240102_000000",
            "before_check": "CHECK ((created_at < '2024-01-02 00:00:00'::timestamp without time zone))",
            "on_or_after_check": "CHECK ((created_at >= '2024-01-01 00:00:00'::timestamp without time zone))",
        },
        {
            "partition_name": "events_p20240101_000000",
            "before_check": "CHECK ((created_at < '2024-01-01 00:00:00'::timestamp without time zone))",
            "on_or_after_check": None,
        },
        {
            "partition_name": "events_p20240103_000000",
            "before_check": "CHECK ((created_at < '2024-01-03 00:00:00'::timestamp without time zone))",
            "on_or_after_check": "CHECK ((created_at >= '2024-01-02 00:00:00'::timestamp without time zone))",
        },
    ]


@pytest.fixture
def index_rows():
    return [
        {
            "indexname": "events_pkey",
            "indexdef": "CREATE UNIQUE INDEX events_pkey ON public.events USING btree (id, created_at)",
        },
        {
            "indexname": "ix_source",
            "indexdef": "CREATE INDEX ix_source ON public.events USING btree (source)",
        },
    ]
