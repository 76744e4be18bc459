from datetime import datetime
from typing import List, Optional

from partitioner.errors import InvalidPlan, SchemaConflict
from partitioner.models import (
    DEFAULT_FORMAT,
    MAX_IDENTIFIER_LENGTH,
    IndexTemplate,
    Partition,
    TimestampFormat,
    routing_function_name,
    trigger_name,
    validate_chain,
)
from partitioner.sql.fragments import (
    CheckClause,
    Comparison,
    Identifier,
    QualifiedName,
    RangeTest,
    RowField,
    TimestampLiteral,
)

# constraint names, the catalog reader looks partitions up by these
BEFORE_CHECK = "before_check"
ON_OR_AFTER_CHECK = "on_or_after_check"

create_partition_sql = """
CREATE TABLE {partition} (
    {checks}
) INHERITS ({parent});
"""

create_index_sql = """
CREATE {unique}INDEX {index} ON {partition} {method_clause};
"""

# the newest range is tested first, most inserts are recent rows
routing_function_sql = """
CREATE OR REPLACE FUNCTION {function}()
RETURNS TRIGGER AS $$
BEGIN
    IF ( {newest_test} ) THEN
        INSERT INTO {newest} VALUES (NEW.*);
{interior_branches}    ELSIF ( {oldest_test} ) THEN
        INSERT INTO {oldest} VALUES (NEW.*);
    ELSE
        RAISE EXCEPTION 'Date out of range';
    END IF;
    RETURN NULL;
END;
$$
LANGUAGE plpgsql;
"""

routing_branch_sql = """    ELSIF ( {test} ) THEN
        INSERT INTO {partition} VALUES (NEW.*);
"""

install_trigger_sql = """
DROP TRIGGER IF EXISTS {trigger} ON {parent};
CREATE TRIGGER {trigger} BEFORE INSERT ON {parent}
    FOR EACH ROW EXECUTE PROCEDURE {function}();
"""

demote_partition_sql = """
ALTER TABLE {partition} DROP CONSTRAINT {constraint};
"""

drop_partition_sql = """
DROP TABLE {partition};
"""

# teardown, in execution order
drop_trigger_sql = """
DROP TRIGGER IF EXISTS {trigger} ON {parent};
"""

drop_routing_function_sql = """
DROP FUNCTION IF EXISTS {function}();
"""

detach_partition_sql = """
ALTER TABLE {partition} NO INHERIT {parent};
"""

copy_back_rows_sql = """
INSERT INTO {parent} SELECT * FROM {partition};
"""


def render_index(template: IndexTemplate, partition_name: str, schema: Optional[str] = None) -> str:
    """
    Renders one parent index definition onto a partition.

    Raises:
        SchemaConflict: if the derived index name would be truncated by postgres.
    """
    index_name = template.index_name(partition_name)
    if len(index_name.encode("utf-8")) > MAX_IDENTIFIER_LENGTH:
        raise SchemaConflict(
            f"Index name {index_name} derived from {template.source_name} is longer than "
            f"{MAX_IDENTIFIER_LENGTH} bytes"
        )

    return create_index_sql.format(
        unique="UNIQUE " if template.unique else "",
        index=Identifier(index_name),
        partition=QualifiedName(partition_name, schema),
        method_clause=template.method_clause,
    ).strip()


# function to build a partition's CREATE TABLE plus its indexes
def build_create_statement(
    partition_name: str,
    lower: Optional[datetime],
    upper: datetime,
    table: str,
    column: str,
    index_templates: List[IndexTemplate],
    schema: Optional[str] = None,
    fmt: TimestampFormat = DEFAULT_FORMAT,
) -> str:
    """
    Builds the statement creating one partition: a child table inheriting every
    column from the parent, range CHECK constraints, and a copy of each parent index.

    Parameters:
        partition_name (str): name of the new child table.
        lower (datetime | None): inclusive lower bound. None leaves the past unbounded.
        upper (datetime): exclusive upper bound.
        table (str): parent table.
        column (str): partitioning column.
        index_templates (list): IndexTemplate values read from the parent.
        schema (str | None): schema of parent and child.
        fmt (TimestampFormat): timestamp policy.

    Returns:
        str: semicolon-separated statements, table first.
    """
    checks = []
    if lower is not None:
        checks.append(
            CheckClause(
                Identifier(ON_OR_AFTER_CHECK),
                Comparison(Identifier(column), ">=", TimestampLiteral(lower, fmt)),
            )
        )
    checks.append(
        CheckClause(
            Identifier(BEFORE_CHECK),
            Comparison(Identifier(column), "<", TimestampLiteral(upper, fmt)),
        )
    )

    statements = [
        create_partition_sql.format(
            partition=QualifiedName(partition_name, schema),
            checks=",\n    ".join(check.render() for check in checks),
            parent=QualifiedName(table, schema),
        ).strip()
    ]
    statements.extend(render_index(template, partition_name, schema) for template in index_templates)
    return "\n".join(statements)


# function to build the routing function over the whole live chain
def build_routing_function(partitions: List[Partition], fmt: TimestampFormat = DEFAULT_FORMAT) -> str:
    """
    Builds the single trigger function that routes inserted rows to partitions.

    The cascade tests the newest partition's full range first, then every interior
    partition from newest to oldest, then sends anything below the oldest upper bound
    to the oldest partition. A row matching no branch raises 'Date out of range'.
    N partitions give N branch conditions.

    Parameters:
        partitions (list): the live chain after the operation, ascending.
        fmt (TimestampFormat): timestamp policy.

    Returns:
        str: a CREATE OR REPLACE FUNCTION statement.

    Raises:
        InvalidPlan: for fewer than two partitions.
        SchemaConflict: if the partitions do not form one contiguous chain.
    """
    if len(partitions) < 2:
        raise InvalidPlan(
            f"A routing function needs at least two partitions, got {len(partitions)}"
        )
    validate_chain(partitions)

    oldest, newest = partitions[0], partitions[-1]
    new_value = RowField(newest.column)

    def branch_condition(partition, lower=True):
        return RangeTest(
            new_value,
            upper=TimestampLiteral(partition.range_less_than, fmt),
            lower=TimestampLiteral(partition.range_minimum, fmt) if lower else None,
        ).render()

    interior_branches = "".join(
        routing_branch_sql.format(
            test=branch_condition(partition),
            partition=QualifiedName(partition.name, partition.schema),
        )
        for partition in reversed(partitions[1:-1])
    )

    return routing_function_sql.format(
        function=QualifiedName(routing_function_name(newest.table), newest.schema),
        newest_test=branch_condition(newest),
        newest=QualifiedName(newest.name, newest.schema),
        interior_branches=interior_branches,
        oldest_test=branch_condition(oldest, lower=False),
        oldest=QualifiedName(oldest.name, oldest.schema),
    ).strip()


def build_trigger_statement(table: str, schema: Optional[str] = None) -> str:
    """Drops and recreates the insert trigger, safe to run when it already exists."""
    return install_trigger_sql.format(
        trigger=Identifier(trigger_name(table)),
        parent=QualifiedName(table, schema),
        function=QualifiedName(routing_function_name(table), schema),
    ).strip()


def build_demote_statement(partition: Partition) -> str:
    return demote_partition_sql.format(
        partition=QualifiedName(partition.name, partition.schema),
        constraint=Identifier(ON_OR_AFTER_CHECK),
    ).strip()


def build_drop_statement(partition: Partition) -> str:
    return drop_partition_sql.format(partition=QualifiedName(partition.name, partition.schema)).strip()


# function to build the statements pruning a partition but keeping its rows
def build_fold_back_statements(partition: Partition) -> List[str]:
    """
    Detaches a pruned partition, copies its rows into the parent, then drops it.

    The copy goes through the parent's insert trigger when one is installed, so the
    rows land in whichever live partition the routing function sends them to (the
    oldest one for anything older than its upper bound).

    Returns:
        list: statements in execution order.
    """
    parent = QualifiedName(partition.table, partition.schema)
    child = QualifiedName(partition.name, partition.schema)
    return [
        detach_partition_sql.format(partition=child, parent=parent).strip(),
        copy_back_rows_sql.format(parent=parent, partition=child).strip(),
        drop_partition_sql.format(partition=child).strip(),
    ]


# function to build the full teardown sequence
def build_teardown_statements(table: str, partitions: List[Partition], schema: Optional[str] = None) -> List[str]:
    """
    Builds the statements that undo partitioning while keeping every row:
    drop the trigger and routing function, detach each partition, copy its rows
    into the parent, then drop the standalone partition tables.

    Returns:
        list: statements in execution order.
    """
    parent = QualifiedName(table, schema)
    children = [QualifiedName(partition.name, partition.schema) for partition in partitions]

    statements = [
        drop_trigger_sql.format(trigger=Identifier(trigger_name(table)), parent=parent),
        drop_routing_function_sql.format(function=QualifiedName(routing_function_name(table), schema)),
    ]
    statements += [detach_partition_sql.format(partition=child, parent=parent) for child in children]
    statements += [copy_back_rows_sql.format(parent=parent, partition=child) for child in children]
    statements += [drop_partition_sql.format(partition=child) for child in children]
    return [statement.strip() for statement in statements]
