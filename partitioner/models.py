import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

import pytz

from partitioner.errors import SchemaConflict

# postgres truncates identifiers past this many bytes
MAX_IDENTIFIER_LENGTH = 63

# marks where the partition name goes inside an index template
PLACEHOLDER = "{partition}"

# quoted literal inside a constraint definition, e.g. '2024-01-02 00:00:00'
_QUOTED_LITERAL_RE = re.compile(r"'([^']+)'")


@dataclass(frozen=True)
class TimestampFormat:
    """
    Formatting policy for every boundary timestamp that ends up in SQL text or
    in a partition name. Passed explicitly to the planner, the catalog reader
    and the DDL builders so they always agree on one representation.

    Attributes:
        sql_format (str): strftime pattern for timestamp literals in SQL.
        name_format (str): strftime pattern for the partition name suffix.
        timezone: tz the database stores the naive timestamps in.
    """

    sql_format: str = "%Y-%m-%d %H:%M:%S"
    name_format: str = "%Y%m%d_%H%M%S"
    timezone: object = field(default=pytz.utc)

    def normalize(self, ts: datetime) -> datetime:
        """Returns ts as a naive datetime in the policy timezone. Naive input is taken as-is."""
        if ts.tzinfo is None:
            return ts
        return ts.astimezone(self.timezone).replace(tzinfo=None)

    def to_sql(self, ts: datetime) -> str:
        return self.normalize(ts).strftime(self.sql_format)

    def to_name_suffix(self, ts: datetime) -> str:
        return self.normalize(ts).strftime(self.name_format)

    def parse(self, value: str) -> datetime:
        return datetime.strptime(value, self.sql_format)

    def find_literal(self, definition: str) -> Optional[datetime]:
        """
        Extracts the first timestamp literal from a constraint definition such as
        ``CHECK ((created_at < '2024-01-02 00:00:00'::timestamp without time zone))``.

        Returns:
            datetime or None: None when no quoted literal parses with sql_format.
        """
        for match in _QUOTED_LITERAL_RE.finditer(definition or ""):
            try:
                return self.parse(match.group(1))
            except ValueError:
                continue
        return None


DEFAULT_FORMAT = TimestampFormat()


@dataclass(frozen=True)
class Partition:
    """
    One child table of the partitioned parent.

    Attributes:
        table (str): parent table name.
        column (str): partitioning column.
        name (str): child table name, derived from table and range_less_than.
        range_less_than (datetime): exclusive upper bound.
        range_minimum (datetime | None): inclusive lower bound, None for the oldest partition.
        schema (str): schema holding both parent and child.
    """

    table: str
    column: str
    name: str
    range_less_than: datetime
    range_minimum: Optional[datetime] = None
    schema: str = "public"


@dataclass(frozen=True)
class IndexTemplate:
    """A parent index definition with the index name abstracted to PLACEHOLDER."""

    source_name: str
    name_template: str
    unique: bool
    method_clause: str  # "USING btree (col, ...)" and anything after it

    def index_name(self, partition_name: str) -> str:
        return self.name_template.replace(PLACEHOLDER, partition_name)


@dataclass
class ReconcilePlan:
    keep: List[Partition] = field(default_factory=list)
    create: List[datetime] = field(default_factory=list)
    prune: List[Partition] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return not self.create and not self.prune

    @property
    def live_count(self) -> int:
        return len(self.keep) + len(self.create)


def validate_chain(partitions: List[Partition]) -> None:
    """
    Checks that partitions, in order, form one contiguous chain: only the first may
    have an open lower bound, and each lower bound equals the previous upper bound.

    Raises:
        SchemaConflict: naming the first partition that breaks the chain.
    """
    previous = None
    for partition in partitions:
        if partition.range_minimum is not None and partition.range_minimum >= partition.range_less_than:
            raise SchemaConflict(f"Partition {partition.name} has an empty range")

        if previous is not None and partition.range_minimum is None:
            raise SchemaConflict(
                f"Partition {partition.name} has no lower bound but is newer than {previous.name}"
            )
        if previous is not None and partition.range_minimum != previous.range_less_than:
            raise SchemaConflict(
                f"Partition {partition.name} starts at {partition.range_minimum} "
                f"but {previous.name} ends at {previous.range_less_than}"
            )
        previous = partition


# naming scheme. must stay stable across runs, partitions are matched by name
def partition_name(table: str, boundary: datetime, fmt: TimestampFormat = DEFAULT_FORMAT) -> str:
    return f"{table}_p{fmt.to_name_suffix(boundary)}"


def trigger_name(table: str) -> str:
    return f"ins_{table}_trg"


def routing_function_name(table: str) -> str:
    return f"{table}_ins_trg_fn"
