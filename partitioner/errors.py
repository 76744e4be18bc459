class PartitioningError(RuntimeError):
    """Base class for everything the partitioner raises on purpose."""


class InvalidArgument(PartitioningError, ValueError):
    """Raised for negative/zero durations, unknown units or malformed
    configuration. Always raised before any statement is issued."""


class InvalidPlan(PartitioningError):
    """Raised when a reconciliation cannot produce a routable partition chain,
    e.g. bootstrapping an empty table from a single boundary."""


class SchemaConflict(PartitioningError):
    """Raised when the live catalog breaks the partition chain invariants or
    holds an index definition that cannot be replicated onto a partition."""


class StatementFailure(PartitioningError):
    """Raised when the database rejects a DDL/DML statement.

    Parameters:
        statement (str): the SQL text that failed.
        cause (Exception): the driver/SQLAlchemy error.
    """

    def __init__(self, statement: str, cause: Exception):
        super().__init__(f"Statement failed: {cause}")
        self.statement = statement
        self.cause = cause


__all__ = [
    "PartitioningError",
    "InvalidArgument",
    "InvalidPlan",
    "SchemaConflict",
    "StatementFailure",
]
