from datetime import datetime, timedelta

from partitioner.errors import InvalidArgument
from partitioner.models import DEFAULT_FORMAT, TimestampFormat
from utils.logger import get_logger

# initialize logger
logger = get_logger(__name__)

# boundaries are aligned to whole buckets counted from here
EPOCH = datetime(1970, 1, 1)

SUPPORTED_UNITS = ("seconds", "minutes", "hours", "days", "weeks")


# function to turn a (duration, unit) pair into a timedelta
def to_timedelta(duration: int, unit: str) -> timedelta:
    """
    Converts a configured duration into a timedelta.

    Parameters:
        duration (int): number of units, must be >= 0.
        unit (str): one of SUPPORTED_UNITS, singular or plural, any case.

    Returns:
        timedelta: the duration.

    Raises:
        InvalidArgument: for non-integer or negative durations and unknown units.
    """
    if isinstance(duration, bool) or not isinstance(duration, int):
        raise InvalidArgument(f"Duration must be an integer, got {duration!r}")
    if duration < 0:
        raise InvalidArgument("Duration must be >= 0")

    key = str(unit).strip().lower()
    if not key.endswith("s"):
        key += "s"
    if key not in SUPPORTED_UNITS:
        raise InvalidArgument(f"Unsupported time unit {unit!r}, expected one of {SUPPORTED_UNITS}")

    return timedelta(**{key: duration})


# function to compute the partition boundaries that should exist
def plan_boundaries(
    reference: datetime,
    bucket: timedelta,
    past_count: int,
    future_count: int,
    fmt: TimestampFormat = DEFAULT_FORMAT,
) -> list:
    """
    Computes the ordered upper-bound timestamps of the partitions that should exist
    around a reference point.

    The reference is truncated down to a whole bucket counted from the epoch (the
    anchor). The anchor itself is the upper bound of the newest past bucket, so
    past_count=1, future_count=1 with a reference inside day D gives [D, D+1].

    Parameters:
        reference (datetime): point in time to plan around. Aware values are converted to UTC.
        bucket (timedelta): width of one partition.
        past_count (int): number of boundaries at or before the anchor.
        future_count (int): number of boundaries after the anchor.
        fmt (TimestampFormat): timestamp policy.

    Returns:
        list: past_count + future_count strictly increasing naive datetimes.
    """
    if not isinstance(bucket, timedelta) or bucket <= timedelta(0):
        raise InvalidArgument(f"Bucket duration must be > 0, got {bucket!r}")
    if past_count < 0 or future_count < 0:
        raise InvalidArgument("Past and future partition counts must be >= 0")

    ref = fmt.normalize(reference)
    anchor = EPOCH + ((ref - EPOCH) // bucket) * bucket

    boundaries = [
        anchor + (i - past_count + 1) * bucket for i in range(past_count + future_count)
    ]
    logger.debug(f"Planned {len(boundaries)} boundaries around {fmt.to_sql(ref)}: anchor {fmt.to_sql(anchor)}")
    return boundaries


# function to compute the retention cutoff
def prune_cutoff(reference: datetime, retention: timedelta, fmt: TimestampFormat = DEFAULT_FORMAT) -> datetime:
    """Partitions whose upper bound is on or before the returned timestamp are expired."""
    if retention < timedelta(0):
        raise InvalidArgument("Retention must be >= 0")
    return fmt.normalize(reference) - retention
