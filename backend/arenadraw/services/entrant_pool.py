"""
Entrant Pool: Eligibility checks and pair formation.

Entrants arrive already deduplicated and ordered by the registration layer
(random draw, ranking, manual order); this module never reorders them.
"""

from __future__ import annotations

from enum import Enum
from typing import FrozenSet, Iterable, List, Protocol, Sequence, Set, Tuple

from arenadraw.config import TournamentRules
from arenadraw.exceptions import InsufficientEntrants, OddEntrantCount, PartnerConflict
from arenadraw.models.tournament import PairingFormat


class HasEntrantId(Protocol):
    id: int
    eligible: bool


class EliminationPairingPolicy(str, Enum):
    best_with_best = "BEST_WITH_BEST"  # 1+2, 3+4, ...
    balanced = "BALANCED"  # 1+n, 2+(n-1), ...


def partner_key(a: int, b: int) -> FrozenSet[int]:
    """Unordered identity of a partnership."""
    return frozenset((a, b))


def normalize_forbidden(pairs: Iterable[Tuple[int, int]]) -> Set[FrozenSet[int]]:
    return {partner_key(a, b) for a, b in pairs}


def validate_entrant_pool(
    entrants: Sequence[HasEntrantId],
    rules: TournamentRules,
    pairing_format: PairingFormat,
) -> List[HasEntrantId]:
    """
    Return the eligible entrants in input order.

    Raises:
        InsufficientEntrants: fewer than rules.min_entrants eligible entrants
        OddEntrantCount: fixed-pair format with an odd eligible count
    """
    eligible = [e for e in entrants if e.eligible]
    if len(eligible) < rules.min_entrants:
        raise InsufficientEntrants(
            f"At least {rules.min_entrants} eligible entrants required, got {len(eligible)}"
        )
    if pairing_format == PairingFormat.fixed_pair and len(eligible) % 2 != 0:
        raise OddEntrantCount(f"Fixed-pair format needs an even number of entrants, got {len(eligible)}")
    return eligible


def form_fixed_pairs(
    entrant_ids: Sequence[int],
    forbidden_partners: Iterable[Tuple[int, int]] = (),
) -> List[Tuple[int, int]]:
    """
    Pair consecutive entrants: (e1, e2), (e3, e4), ...

    Returned tuples are normalized (lower id first).
    """
    if len(entrant_ids) % 2 != 0:
        raise OddEntrantCount(f"Cannot pair an odd number of entrants ({len(entrant_ids)})")
    forbidden = normalize_forbidden(forbidden_partners)
    pairs: List[Tuple[int, int]] = []
    for i in range(0, len(entrant_ids), 2):
        a, b = entrant_ids[i], entrant_ids[i + 1]
        if partner_key(a, b) in forbidden:
            raise PartnerConflict(f"Entrants {a} and {b} already partnered in an earlier stage")
        pairs.append((min(a, b), max(a, b)))
    return pairs


def form_elimination_pairs(
    qualified_ids: Sequence[int],
    policy: EliminationPairingPolicy = EliminationPairingPolicy.best_with_best,
) -> List[Tuple[int, int]]:
    """
    Build elimination pairs out of qualified individuals (rotating formats).

    qualified_ids must be ordered best first. Pairs come back ordered by
    strength so their index can be used as the bracket seed.
    """
    n = len(qualified_ids)
    if n < 4 or n % 2 != 0:
        raise InsufficientEntrants(f"Need an even number of at least 4 qualified entrants, got {n}")

    if policy == EliminationPairingPolicy.best_with_best:
        raw = [(qualified_ids[i], qualified_ids[i + 1]) for i in range(0, n, 2)]
    elif policy == EliminationPairingPolicy.balanced:
        raw = [(qualified_ids[i], qualified_ids[n - 1 - i]) for i in range(n // 2)]
    else:
        raise ValueError(f"Unknown elimination pairing policy: {policy}")

    return [(min(a, b), max(a, b)) for a, b in raw]
