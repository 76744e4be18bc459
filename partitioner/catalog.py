import re
from typing import List

from partitioner.errors import SchemaConflict
from partitioner.models import (
    DEFAULT_FORMAT,
    PLACEHOLDER,
    IndexTemplate,
    Partition,
    TimestampFormat,
    validate_chain,
)
from partitioner.sql.ddl import BEFORE_CHECK, ON_OR_AFTER_CHECK
from partitioner.sql.fragments import Identifier, QualifiedName
from utils.logger import get_logger

# initialize logger
logger = get_logger(__name__)

# children of the parent table together with their range constraints
list_partitions_sql = f"""
SELECT child.relname AS partition_name,
       pg_get_constraintdef(before_check.oid) AS before_check,
       pg_get_constraintdef(on_or_after_check.oid) AS on_or_after_check
FROM pg_inherits inheritance
JOIN pg_class parent ON inheritance.inhparent = parent.oid
JOIN pg_namespace parent_ns ON parent.relnamespace = parent_ns.oid
JOIN pg_class child ON inheritance.inhrelid = child.oid
JOIN pg_constraint before_check
  ON before_check.conrelid = child.oid AND before_check.conname = '{BEFORE_CHECK}'
LEFT JOIN pg_constraint on_or_after_check
  ON on_or_after_check.conrelid = child.oid AND on_or_after_check.conname = '{ON_OR_AFTER_CHECK}'
WHERE parent.relname = :table
  AND parent_ns.nspname = :schema
ORDER BY child.relname
"""

list_indexes_sql = """
SELECT indexname, indexdef
FROM pg_indexes
WHERE tablename = :table
  AND schemaname = :schema
ORDER BY indexname
"""

# e.g. CREATE UNIQUE INDEX events_pkey ON public.events USING btree (uuid, last_seen)
_INDEX_DEF_RE = re.compile(
    r'^CREATE (?P<unique>UNIQUE )?INDEX (?P<name>"(?:[^"]|"")+"|\S+) '
    r"ON (?:ONLY )?(?P<target>\S+) (?P<method>USING .+)$",
    re.DOTALL,
)


# function to list the partitions of a table
def list_partitions(
    executor, table: str, column: str, schema: str = "public", fmt: TimestampFormat = DEFAULT_FORMAT
) -> List[Partition]:
    """
    Reads every partition of a table from the live catalog.

    Parameters:
        executor (SqlExecutor): runs the catalog query, inside the caller's transaction.
        table (str): parent table.
        column (str): partitioning column, carried onto each Partition.
        schema (str): schema of the parent table.
        fmt (TimestampFormat): policy used to parse the constraint literals.

    Returns:
        list: Partition values sorted by range_less_than ascending, empty when the table is not partitioned.

    Raises:
        SchemaConflict: if a constraint cannot be parsed or the chain has a gap.
    """
    rows = executor.query(list_partitions_sql, {"table": table, "schema": schema})

    partitions = []
    for row in rows:
        name = row["partition_name"]
        upper = fmt.find_literal(row["before_check"])
        if upper is None:
            raise SchemaConflict(f"Cannot read upper bound of partition {name}: {row['before_check']!r}")

        lower = None
        if row.get("on_or_after_check") is not None:
            lower = fmt.find_literal(row["on_or_after_check"])
            if lower is None:
                raise SchemaConflict(
                    f"Cannot read lower bound of partition {name}: {row['on_or_after_check']!r}"
                )

        partitions.append(
            Partition(
                table=table,
                column=column,
                name=name,
                range_less_than=upper,
                range_minimum=lower,
                schema=schema,
            )
        )

    partitions.sort(key=lambda partition: partition.range_less_than)
    validate_chain(partitions)

    logger.info(f"Found {len(partitions)} partitions on {schema}.{table}.")
    return partitions


# function to read parent indexes as templates for new partitions
def list_index_definitions(executor, table: str, schema: str = "public") -> List[IndexTemplate]:
    """
    Reads the parent's index definitions and turns each into an IndexTemplate.

    Index names that contain the table name get the partition name in its place
    (events_pkey -> events_p20240102_000000_pkey); other names are prefixed with
    the partition name.

    Raises:
        SchemaConflict: if a definition is not a plain index on the parent table.
    """
    rows = executor.query(list_indexes_sql, {"table": table, "schema": schema})
    targets = {QualifiedName(table, schema).render(), Identifier(table).render()}

    templates = []
    for row in rows:
        definition = row["indexdef"]
        match = _INDEX_DEF_RE.match(definition or "")
        if match is None or match.group("target") not in targets:
            logger.error(f"Cannot replicate index {row['indexname']} of {schema}.{table}: {definition}")
            raise SchemaConflict(f"Index definition cannot be parameterized: {definition!r}")

        name = _unquote(match.group("name"))
        if table in name:
            name_template = name.replace(table, PLACEHOLDER, 1)
        else:
            name_template = f"{PLACEHOLDER}_{name}"

        templates.append(
            IndexTemplate(
                source_name=name,
                name_template=name_template,
                unique=match.group("unique") is not None,
                method_clause=match.group("method"),
            )
        )

    logger.info(f"Found {len(templates)} index definitions on {schema}.{table}.")
    return templates


def _unquote(name: str) -> str:
    if name.startswith('"') and name.endswith('"'):
        return name[1:-1].replace('""', '"')
    return name
