from datetime import datetime
from typing import List, Optional

from partitioner.errors import InvalidPlan
from partitioner.models import Partition, ReconcilePlan
from utils.logger import get_logger

# initialize logger
logger = get_logger(__name__)


# function to diff the live partitions against the planned boundaries
def reconcile(
    existing: List[Partition], boundaries: List[datetime], prune_cutoff: Optional[datetime]
) -> ReconcilePlan:
    """
    Splits the work of one run into partitions to keep, boundaries to create and
    partitions to prune.

    - a partition whose upper bound is on or before prune_cutoff is pruned, any other is kept.
    - a planned boundary is created when no existing partition ends there and it lies
      beyond the newest existing upper bound. A boundary inside the existing chain
      would overlap a live partition, so it is skipped.

    Parameters:
        existing (list): live partitions, ascending, as read from the catalog.
        boundaries (list): planned upper bounds.
        prune_cutoff (datetime | None): retention cutoff, None keeps every existing partition.

    Returns:
        ReconcilePlan: keep and prune ascending, create ascending.

    Raises:
        InvalidPlan: when an empty table is planned with fewer than two boundaries, or
            when the live chain after the run would hold fewer than two partitions.
    """
    if not existing and len(boundaries) < 2:
        raise InvalidPlan("Must create multiple partitions when the table has none.")

    keep, prune = [], []
    for partition in existing:
        if prune_cutoff is not None and partition.range_less_than <= prune_cutoff:
            prune.append(partition)
            logger.info(f"Pruning partition {partition.name}: prune timestamp {prune_cutoff}")
        else:
            keep.append(partition)

    # an existing partition always wins over a planned one with the same boundary
    represented = {partition.range_less_than for partition in existing}
    newest = existing[-1].range_less_than if existing else None

    create = []
    for boundary in sorted(set(boundaries)):
        if boundary in represented:
            continue
        if newest is not None and boundary < newest:
            logger.debug(f"Skipping boundary {boundary}, it falls inside existing partition coverage.")
            continue
        create.append(boundary)

    plan = ReconcilePlan(keep=keep, create=create, prune=prune)
    if plan.is_noop:
        return plan

    if plan.live_count < 2:
        raise InvalidPlan(
            f"Run would leave {plan.live_count} live partitions, at least two are needed to route rows."
        )

    logger.info(f"Plan: keep {len(keep)}, create {len(create)}, prune {len(prune)} partitions.")
    return plan
