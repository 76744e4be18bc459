from dataclasses import dataclass, field
from datetime import datetime, timedelta

from partitioner.errors import InvalidArgument
from partitioner.models import DEFAULT_FORMAT, MAX_IDENTIFIER_LENGTH, TimestampFormat
from partitioner.planner import to_timedelta
from utils.logger import get_logger

# initialize logger
logger = get_logger(__name__)

# any timestamp works, the name suffix is fixed width
EXAMPLE_BOUNDARY = datetime(2000, 1, 1)


@dataclass(frozen=True)
class PartitionSettings:
    """
    Validated configuration for one partitioned table.

    Attributes:
        table (str): parent table name.
        column (str): timestamp column the table is partitioned on.
        schema (str): schema of the parent table.
        bucket (timedelta): width of one partition.
        past_count (int): default number of past partitions to keep planned.
        future_count (int): default number of partitions to create ahead.
        retention_duration (int): default retention, in retention_unit.
        retention_unit (str): unit of retention_duration.
        fmt (TimestampFormat): timestamp policy for SQL text and names.
    """

    table: str
    column: str
    schema: str = "public"
    bucket: timedelta = timedelta(days=1)
    past_count: int = 1
    future_count: int = 2
    retention_duration: int = 30
    retention_unit: str = "days"
    fmt: TimestampFormat = field(default=DEFAULT_FORMAT)

    def __post_init__(self):
        for key in ("table", "column", "schema"):
            value = getattr(self, key)
            if not isinstance(value, str) or not value.strip():
                raise InvalidArgument(f"Partition setting '{key}' must be a non-empty string")

        # longest derived name is the partition name: <table>_p<suffix>
        suffix_length = len(self.fmt.to_name_suffix(EXAMPLE_BOUNDARY))
        if len(self.table) + 2 + suffix_length > MAX_IDENTIFIER_LENGTH:
            raise InvalidArgument(f"Table name '{self.table}' is too long to derive partition names from")

        if not isinstance(self.bucket, timedelta) or self.bucket <= timedelta(0):
            raise InvalidArgument("Bucket duration must be > 0")
        if self.past_count < 0 or self.future_count < 0:
            raise InvalidArgument("Past and future partition counts must be >= 0")

        # validates duration and unit together
        to_timedelta(self.retention_duration, self.retention_unit)

    @property
    def retention(self) -> timedelta:
        return to_timedelta(self.retention_duration, self.retention_unit)

    @classmethod
    def from_config(cls, raw: dict, fmt: TimestampFormat = DEFAULT_FORMAT) -> "PartitionSettings":
        """
        Builds settings from the raw PARTITION_CONFIG dictionary.

        Parameters:
            raw (dict): values as read from the environment, numbers may still be strings.
            fmt (TimestampFormat): timestamp policy to carry along.

        Returns:
            PartitionSettings: validated settings.

        Raises:
            InvalidArgument: if any value is missing or malformed.
        """
        try:
            settings = cls(
                table=raw.get("table"),
                column=raw.get("column"),
                schema=raw.get("schema") or "public",
                bucket=to_timedelta(_as_int(raw, "bucket_duration"), raw.get("bucket_unit", "days")),
                past_count=_as_int(raw, "past_count"),
                future_count=_as_int(raw, "future_count"),
                retention_duration=_as_int(raw, "retention_duration"),
                retention_unit=raw.get("retention_unit", "days"),
                fmt=fmt,
            )
        except InvalidArgument as e:
            logger.error(f"Invalid partition configuration: {e}")
            raise

        logger.info(
            f"Partitioning {settings.schema}.{settings.table} on '{settings.column}' "
            f"in buckets of {settings.bucket}, retention {settings.retention}."
        )
        return settings


def _as_int(raw: dict, key: str) -> int:
    value = raw.get(key)
    if isinstance(value, bool):
        raise InvalidArgument(f"Partition setting '{key}' must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidArgument(f"Partition setting '{key}' must be an integer, got {value!r}") from None

