"""
Group Partitioner: Split the entrant pool into balanced round-robin groups.

Groups count:   fewest groups that respect max_per_group
Group sizes:    as even as possible (any two sizes differ by at most 1),
                larger groups first
Assignment:     injected seeding policy; default is contiguous blocks in
                input order (draw order is decided outside the engine)
"""

from __future__ import annotations

from math import ceil, floor
from typing import Callable, List, Sequence, TypeVar

from arenadraw.exceptions import InvalidGroupConfiguration

T = TypeVar("T")

SeedingPolicy = Callable[[Sequence[T], List[int]], List[List[T]]]


def compute_groups_count(item_count: int, max_per_group: int) -> int:
    """Fewest groups such that no group exceeds max_per_group."""
    if max_per_group <= 0:
        raise InvalidGroupConfiguration(f"max_per_group must be positive, got {max_per_group}")
    if item_count <= 0:
        return 0
    return ceil(item_count / max_per_group)


def compute_group_capacities(item_count: int, groups_count: int) -> List[int]:
    """
    First `item_count % groups_count` groups get one extra member.

    Examples:
    - 7 into 2  -> [4, 3]
    - 10 into 3 -> [4, 3, 3]
    """
    if groups_count <= 0:
        return []

    base_size = floor(item_count / groups_count)
    remainder = item_count % groups_count
    return [base_size + 1 if i < remainder else base_size for i in range(groups_count)]


def partition_sizes(item_count: int, min_per_group: int, max_per_group: int) -> List[int]:
    """
    Sizes of the fewest balanced groups within [min_per_group, max_per_group].

    Raises InvalidGroupConfiguration when the bounds cannot be met, e.g.
    5 items with bounds 3..4 (one group of 5 is too big, 3+2 too small).
    """
    if min_per_group > max_per_group:
        raise InvalidGroupConfiguration(
            f"min_per_group ({min_per_group}) exceeds max_per_group ({max_per_group})"
        )
    groups_count = compute_groups_count(item_count, max_per_group)
    capacities = compute_group_capacities(item_count, groups_count)
    if not capacities or min(capacities) < min_per_group:
        raise InvalidGroupConfiguration(
            f"Cannot split {item_count} into groups of {min_per_group}-{max_per_group} "
            f"(best balanced split: {capacities})"
        )
    return capacities


def contiguous_seeding(items: Sequence[T], capacities: List[int]) -> List[List[T]]:
    """
    Group 1: items[0:c1], Group 2: items[c1:c1+c2], ...

    No serpentine, no randomization.
    """
    groups: List[List[T]] = []
    start = 0
    for capacity in capacities:
        groups.append(list(items[start:start + capacity]))
        start += capacity
    return groups


def snake_seeding(items: Sequence[T], capacities: List[int]) -> List[List[T]]:
    """
    Serpentine assignment for ranked input: 1..g left to right, then back.

    With 8 items into 2 groups: A gets seeds 1,4,5,8 and B gets 2,3,6,7.
    Groups that are already full are skipped.
    """
    groups: List[List[T]] = [[] for _ in capacities]
    order = list(range(len(capacities)))
    forward = True
    remaining = list(items)
    while remaining:
        sweep = order if forward else list(reversed(order))
        for group_index in sweep:
            if not remaining:
                break
            if len(groups[group_index]) < capacities[group_index]:
                groups[group_index].append(remaining.pop(0))
        forward = not forward
    return groups


def partition_groups(
    items: Sequence[T],
    min_per_group: int,
    max_per_group: int,
    seeding: SeedingPolicy = contiguous_seeding,
) -> List[List[T]]:
    """Partition items (pairs or entrants) into balanced groups using the seeding policy."""
    capacities = partition_sizes(len(items), min_per_group, max_per_group)
    groups = seeding(items, capacities)
    if [len(g) for g in groups] != capacities:
        raise InvalidGroupConfiguration("Seeding policy did not respect the computed group capacities")
    return groups


SEEDING_POLICIES = {
    "contiguous": contiguous_seeding,
    "snake": snake_seeding,
}


def resolve_seeding(seeding) -> SeedingPolicy:
    """Accept a policy callable, a registered policy name, or None (contiguous)."""
    if seeding is None:
        return contiguous_seeding
    if callable(seeding):
        return seeding
    try:
        return SEEDING_POLICIES[seeding]
    except KeyError:
        raise ValueError(f"Unknown seeding policy: {seeding}") from None
