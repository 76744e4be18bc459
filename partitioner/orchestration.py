from contextlib import contextmanager
from datetime import datetime

import pytz

from config import PARTITION_CONFIG
from partitioner.backend import InheritancePartitionBackend, PartitionBackend
from partitioner.connection import SqlExecutor, get_db_connection
from partitioner.errors import InvalidArgument
from partitioner.models import ReconcilePlan, partition_name
from partitioner.planner import plan_boundaries, prune_cutoff, to_timedelta
from partitioner.reconciler import reconcile
from partitioner.settings import PartitionSettings
from utils.logger import get_logger

logger = get_logger(__name__)


def _check_counts(past_count, future_count) -> None:
    for name, count in (("past_count", past_count), ("future_count", future_count)):
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise InvalidArgument(f"{name} must be an integer >= 0, got {count!r}")


# function to run the statements of a reconcile plan in order
def _apply_plan(
    backend: PartitionBackend, settings: PartitionSettings, plan: ReconcilePlan, preserve_rows: bool = False
) -> int:
    # create, each new partition starts where the previous live one ends
    templates = backend.list_index_templates() if plan.create else []
    live = list(plan.keep)
    lower = live[-1].range_less_than if live else None
    for boundary in plan.create:
        name = partition_name(settings.table, boundary, settings.fmt)
        live.append(backend.create_partition(name, lower, boundary, templates))
        lower = boundary

    # route. a table with nothing kept has no trigger yet, or lost it with its partitions
    backend.install_routing(live, install_trigger=not plan.keep)

    # demote, only after the new routing exists
    if plan.keep and plan.keep[0].range_minimum is not None:
        backend.demote_partition(plan.keep[0])

    # prune. preserved rows are re-inserted through the new routing
    for partition in plan.prune:
        backend.drop_partition(partition, preserve_rows=preserve_rows)

    logger.info(
        f"Repartitioned {settings.table}: created {len(plan.create)}, pruned {len(plan.prune)}, "
        f"{len(live)} partitions live."
    )
    return len(plan.create)


# function to run one reconciliation against a backend
def prune_and_create_partitions(
    backend: PartitionBackend,
    settings: PartitionSettings,
    retention_duration: int,
    unit: str,
    past_count: int,
    future_count: int,
    reference: datetime = None,
    preserve_rows: bool = False,
) -> int:
    """
    Prunes partitions older than the retention window, then makes sure the planned
    past and future partitions exist.

    Statements run strictly in this order: create new partitions (ascending), replace
    the routing function over everything that stays live, drop the lower bound of the
    oldest kept partition, drop the pruned partitions. The lower bound is only dropped
    once the new routing is in place.

    Parameters:
        backend (PartitionBackend): partitioning mechanism, bound to one transaction.
        settings (PartitionSettings): table configuration.
        retention_duration (int): how long partitions are kept, in unit.
        unit (str): unit of retention_duration.
        past_count (int): number of past partitions to plan.
        future_count (int): number of future partitions to plan.
        reference (datetime): point in time to plan around, defaults to now (UTC).
        preserve_rows (bool): copy each pruned partition's rows back into the parent
            before dropping it. The parent's trigger routes them, so they end up in
            the oldest live partition.

    Returns:
        int: number of partitions created.
    """
    # everything is validated before the catalog is touched
    retention = to_timedelta(retention_duration, unit)
    _check_counts(past_count, future_count)

    if reference is None:
        reference = datetime.now(pytz.utc)

    boundaries = plan_boundaries(reference, settings.bucket, past_count, future_count, settings.fmt)
    cutoff = prune_cutoff(reference, retention, settings.fmt)

    existing = backend.list_partitions()
    plan = reconcile(existing, boundaries, cutoff)

    if plan.is_noop:
        logger.info(f"There are no partitions to prune or create on table {settings.table}")
        return 0

    return _apply_plan(backend, settings, plan, preserve_rows=preserve_rows)


# function to add missing partitions without pruning anything
def create_partitions(
    backend: PartitionBackend,
    settings: PartitionSettings,
    past_count: int,
    future_count: int,
    reference: datetime = None,
) -> int:
    """
    Creates the planned partitions that do not exist yet and reroutes over the
    full chain. Existing partitions are never dropped or demoted.

    An empty table needs at least two planned boundaries. A partitioned table with
    nothing planned is left untouched.

    Returns:
        int: number of partitions created.
    """
    _check_counts(past_count, future_count)

    if reference is None:
        reference = datetime.now(pytz.utc)

    boundaries = plan_boundaries(reference, settings.bucket, past_count, future_count, settings.fmt)
    plan = reconcile(backend.list_partitions(), boundaries, None)

    if plan.is_noop:
        logger.info(f"There are no partitions to create on table {settings.table}")
        return 0

    return _apply_plan(backend, settings, plan)


# function to undo partitioning entirely
def remove_all_partitions(backend: PartitionBackend) -> None:
    """Drops trigger and routing function, then folds every partition's rows back into the parent."""
    backend.remove_all()


class RangePartitioner:
    """
    Operation surface for one partitioned table. Each mutating call runs in its own
    transaction, so a failed statement leaves the schema as it was.

    Parameters:
        settings (PartitionSettings): validated table configuration.
        engine (sqlalchemy.engine.Engine): database engine, defaults to get_db_connection().
        backend_class: PartitionBackend implementation to use.
    """

    def __init__(self, settings: PartitionSettings, engine=None, backend_class=InheritancePartitionBackend):
        self.settings = settings
        self.engine = engine if engine is not None else get_db_connection()
        self.backend_class = backend_class

    @contextmanager
    def _backend(self, read_only=False):
        # reads never commit, the connection rolls back on close
        connect = self.engine.connect if read_only else self.engine.begin
        with connect() as conn:
            yield self.backend_class(SqlExecutor(conn), self.settings)

    def prune_and_create_partitions(
        self,
        retention_duration: int = None,
        unit: str = None,
        past_count: int = None,
        future_count: int = None,
        reference: datetime = None,
        preserve_rows: bool = False,
    ) -> int:
        """Runs one reconciliation. Arguments left as None come from the settings."""
        if retention_duration is None:
            retention_duration = self.settings.retention_duration
        if unit is None:
            unit = self.settings.retention_unit
        if past_count is None:
            past_count = self.settings.past_count
        if future_count is None:
            future_count = self.settings.future_count

        try:
            with self._backend() as backend:
                return prune_and_create_partitions(
                    backend,
                    self.settings,
                    retention_duration,
                    unit,
                    past_count,
                    future_count,
                    reference=reference,
                    preserve_rows=preserve_rows,
                )
        except Exception as e:
            logger.error(f"Partition maintenance failed for {self.settings.table}: {str(e)}")
            raise

    def create_partitions(self, past_count: int = None, future_count: int = None, reference: datetime = None) -> int:
        """Adds missing partitions only. Arguments left as None come from the settings."""
        if past_count is None:
            past_count = self.settings.past_count
        if future_count is None:
            future_count = self.settings.future_count

        try:
            with self._backend() as backend:
                return create_partitions(backend, self.settings, past_count, future_count, reference=reference)
        except Exception as e:
            logger.error(f"Creating partitions failed for {self.settings.table}: {str(e)}")
            raise

    def list_partitions(self) -> list:
        with self._backend(read_only=True) as backend:
            return backend.list_partitions()

    def remove_all_partitions(self) -> None:
        try:
            with self._backend() as backend:
                remove_all_partitions(backend)
        except Exception as e:
            logger.error(f"Removing partitions failed for {self.settings.table}: {str(e)}")
            raise


def run_maintenance() -> int:
    """
    Runs one reconciliation for the table configured in the environment.
    """
    logger.info("Starting partition maintenance...")

    settings = PartitionSettings.from_config(PARTITION_CONFIG)
    created = RangePartitioner(settings).prune_and_create_partitions()

    logger.info(f"Partition maintenance completed, {created} partitions created.")
    return created


if __name__ == "__main__":
    run_maintenance()
