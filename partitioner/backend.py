from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from partitioner import catalog
from partitioner.models import IndexTemplate, Partition
from partitioner.sql.ddl import (
    build_create_statement,
    build_demote_statement,
    build_drop_statement,
    build_fold_back_statements,
    build_routing_function,
    build_teardown_statements,
    build_trigger_statement,
)
from utils.logger import get_logger

# initialize logger
logger = get_logger(__name__)


class PartitionBackend(ABC):
    """
    What the orchestrator needs from a partitioning mechanism. The reconciler only
    works on Partition values, so a backend can be swapped without touching it.
    """

    @abstractmethod
    def list_partitions(self) -> List[Partition]:
        """Live partitions, ascending by upper bound."""

    @abstractmethod
    def list_index_templates(self) -> List[IndexTemplate]:
        """Parent indexes every new partition must carry."""

    @abstractmethod
    def create_partition(
        self, name: str, lower: Optional[datetime], upper: datetime, templates: List[IndexTemplate]
    ) -> Partition:
        """Creates one partition and returns it."""

    @abstractmethod
    def install_routing(self, partitions: List[Partition], install_trigger: bool = False) -> None:
        """Replaces the routing over the full live chain."""

    @abstractmethod
    def demote_partition(self, partition: Partition) -> Partition:
        """Opens the lower bound of the oldest surviving partition."""

    @abstractmethod
    def drop_partition(self, partition: Partition, preserve_rows: bool = False) -> None:
        """Drops a pruned partition. preserve_rows copies its rows back through the parent first."""

    @abstractmethod
    def remove_all(self) -> None:
        """Undoes partitioning, folding every row back into the parent."""


class InheritancePartitionBackend(PartitionBackend):
    """
    Partitioning through table inheritance: each partition is a child table with
    range CHECK constraints and its own copy of the parent's indexes, and one
    trigger function on the parent routes inserts.

    Parameters:
        executor (SqlExecutor): statement executor bound to the run's transaction.
        settings (PartitionSettings): table, column, schema and timestamp policy.
    """

    def __init__(self, executor, settings):
        self.executor = executor
        self.settings = settings

    def list_partitions(self) -> List[Partition]:
        return catalog.list_partitions(
            self.executor,
            self.settings.table,
            self.settings.column,
            schema=self.settings.schema,
            fmt=self.settings.fmt,
        )

    def list_index_templates(self) -> List[IndexTemplate]:
        return catalog.list_index_definitions(self.executor, self.settings.table, schema=self.settings.schema)

    def create_partition(self, name, lower, upper, templates) -> Partition:
        logger.info(f"Adding partition {name} to table {self.settings.table}")
        self.executor.execute(
            build_create_statement(
                name,
                lower,
                upper,
                self.settings.table,
                self.settings.column,
                templates,
                schema=self.settings.schema,
                fmt=self.settings.fmt,
            )
        )
        return Partition(
            table=self.settings.table,
            column=self.settings.column,
            name=name,
            range_less_than=upper,
            range_minimum=lower,
            schema=self.settings.schema,
        )

    def install_routing(self, partitions, install_trigger=False) -> None:
        logger.info(f"Routing {self.settings.table} inserts over {len(partitions)} partitions")
        self.executor.execute(build_routing_function(partitions, fmt=self.settings.fmt))
        if install_trigger:
            logger.info(f"Installing insert trigger on {self.settings.table}")
            self.executor.execute(build_trigger_statement(self.settings.table, schema=self.settings.schema))

    def demote_partition(self, partition) -> Partition:
        logger.info(f"Dropping lower bound of oldest partition {partition.name} (was {partition.range_minimum})")
        self.executor.execute(build_demote_statement(partition))
        return Partition(
            table=partition.table,
            column=partition.column,
            name=partition.name,
            range_less_than=partition.range_less_than,
            range_minimum=None,
            schema=partition.schema,
        )

    def drop_partition(self, partition, preserve_rows=False) -> None:
        if not preserve_rows:
            logger.info(f"Dropping partition {partition.name} of table {self.settings.table}")
            self.executor.execute(build_drop_statement(partition))
            return

        logger.info(f"Dropping partition {partition.name} of table {self.settings.table}, rows go back to the parent")
        for statement in build_fold_back_statements(partition):
            self.executor.execute(statement)

    def remove_all(self) -> None:
        partitions = self.list_partitions()
        logger.info(f"Removing {len(partitions)} partitions from {self.settings.table}, rows go back to the parent")
        for statement in build_teardown_statements(self.settings.table, partitions, schema=self.settings.schema):
            self.executor.execute(statement)
