"""
Pairing Generator: Match lists for one group.

Two algorithms behind one entry point (generate_pairings), selected by the
tournament's pairing format:

FIXED_PAIR        round robin between pairs (circle method; pool size 4
                  uses the preset order with 1v2 in the last round)
ROTATING_PARTNER  2-vs-2 rotation between individual entrants; partner
                  pairs come from a circle-method 1-factorization so no two
                  entrants partner twice, opponents are balanced greedily

All positions are 0-based draw positions inside the group. Output is fully
deterministic so regeneration before any result yields the same list.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple

from arenadraw.exceptions import InvalidGroupConfiguration, PartnerConflict
from arenadraw.models.tournament import PairingFormat
from arenadraw.services.rotation_tables import ROTATION_TABLES, SIT_OUTS_PER_ROUND, RotationTable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlannedMatch:
    """One scheduled match: each side is a tuple of group positions (1 for pairs, 2 for entrants)."""

    round_number: int
    sequence_in_round: int
    side_a: Tuple[int, ...]
    side_b: Tuple[int, ...]


@dataclass
class PairingPlan:
    pairing_format: PairingFormat
    group_size: int
    matches: List[PlannedMatch]
    source: str = "circle"  # "circle" | "preset" | "table"
    rounds: int = 0
    sit_outs: Dict[int, int] = field(default_factory=dict)  # position -> rounds sat out


# =============================================================================
# Fixed-pair round robin
# =============================================================================


def rr_round_count(group_size: int) -> int:
    """
    Return number of RR rounds for a group of n pairs.
    Even n: n-1 rounds. Odd n: n rounds (with BYE).
    """
    if group_size % 2 == 0:
        return group_size - 1
    return group_size


def rr_pairings_by_round(group_size: int) -> List[Tuple[int, int, int, int]]:
    """
    Round-robin pairings. Returns list of (round_index, sequence_in_round, idx_a, idx_b).

    Group size 4 uses exact preset order (1v2 last):
    - Round 1: 1v4, 2v3  -> (0,3), (1,2)
    - Round 2: 1v3, 2v4  -> (0,2), (1,3)
    - Round 3: 1v2, 3v4  -> (0,1), (2,3)

    Group size != 4: circle method.
    """
    if group_size == 4:
        return [
            (1, 1, 0, 3),
            (1, 2, 1, 2),
            (2, 1, 0, 2),
            (2, 2, 1, 3),
            (3, 1, 0, 1),
            (3, 2, 2, 3),
        ]

    n = group_size
    n2 = n + 1 if n % 2 == 1 else n  # Add BYE for odd n
    half = n2 // 2
    rounds_count = n2 - 1
    bye_idx = n if n % 2 == 1 else -1

    result: List[Tuple[int, int, int, int]] = []
    positions = list(range(n2))

    for round_num in range(1, rounds_count + 1):
        seq = 0
        for i in range(half):
            a, b = positions[i], positions[n2 - 1 - i]
            if a == bye_idx or b == bye_idx:
                continue
            seq += 1
            result.append((round_num, seq, min(a, b), max(a, b)))
        # Rotate: keep 0, move last to second, shift others
        positions = [positions[0]] + [positions[-1]] + positions[1:-1]

    return result


class FixedPairRoundRobin:
    pairing_format = PairingFormat.fixed_pair

    def generate(
        self,
        group_size: int,
        rounds: Optional[int] = None,
        forbidden_partners: Iterable[Tuple[int, int]] = (),
    ) -> PairingPlan:
        if group_size < 2:
            raise InvalidGroupConfiguration(f"A round robin needs at least 2 pairs, got {group_size}")
        matches = [
            PlannedMatch(round_number=r, sequence_in_round=s, side_a=(a,), side_b=(b,))
            for r, s, a, b in rr_pairings_by_round(group_size)
        ]
        return PairingPlan(
            pairing_format=self.pairing_format,
            group_size=group_size,
            matches=matches,
            source="preset" if group_size == 4 else "circle",
            rounds=rr_round_count(group_size),
        )


# =============================================================================
# Rotating-partner round robin
# =============================================================================


def circle_partner_rounds(group_size: int) -> List[List[Tuple[int, int]]]:
    """
    1-factorization of the complete graph on an even number of positions.

    Round r pairs positions[i] with positions[n-1-i]; position 0 stays put
    and the rest rotate. Across n-1 rounds every two positions are paired
    exactly once.
    """
    n = group_size
    positions = list(range(n))
    rounds: List[List[Tuple[int, int]]] = []
    for _ in range(n - 1):
        pairs = []
        for i in range(n // 2):
            a, b = positions[i], positions[n - 1 - i]
            pairs.append((min(a, b), max(a, b)))
        rounds.append(pairs)
        positions = [positions[0]] + [positions[-1]] + positions[1:-1]
    return rounds


def _opponent_cost(
    side_a: Tuple[int, int],
    side_b: Tuple[int, int],
    opponent_counts: Dict[FrozenSet[int], int],
) -> int:
    return sum(opponent_counts.get(frozenset((x, y)), 0) for x in side_a for y in side_b)


def group_partners_into_matches(
    partner_rounds: Sequence[Sequence[Tuple[int, int]]],
) -> List[PlannedMatch]:
    """
    Turn each round's partner pairs into 2-vs-2 matches.

    Greedy per round: take the first open partner pair and face it with the
    open pair that adds the fewest repeated opponent meetings (ties go to
    the earliest pair). Opponent repeats are minimized, never forbidden.
    """
    opponent_counts: Dict[FrozenSet[int], int] = {}
    matches: List[PlannedMatch] = []

    for round_number, partners in enumerate(partner_rounds, start=1):
        remaining = list(partners)
        seq = 0
        while len(remaining) >= 2:
            first = remaining.pop(0)
            best = min(
                range(len(remaining)),
                key=lambda j: (_opponent_cost(first, remaining[j], opponent_counts), j),
            )
            second = remaining.pop(best)
            for x in first:
                for y in second:
                    key = frozenset((x, y))
                    opponent_counts[key] = opponent_counts.get(key, 0) + 1
            seq += 1
            matches.append(
                PlannedMatch(round_number=round_number, sequence_in_round=seq, side_a=first, side_b=second)
            )
    return matches


def validate_rotation(
    matches: Sequence[PlannedMatch],
    group_size: int,
    forbidden_partners: Iterable[Tuple[int, int]] = (),
    sit_outs_per_round: int = 0,
) -> List[str]:
    """
    Check a rotating-partner schedule. Returns a list of problems (empty = valid).

    - every side is two distinct in-range positions
    - nobody plays twice in one round
    - each round leaves exactly sit_outs_per_round positions idle
    - no partnership repeats, and none is in forbidden_partners
    """
    errors: List[str] = []
    forbidden = {frozenset(p) for p in forbidden_partners}
    seen_partners: Dict[FrozenSet[int], int] = {}
    by_round: Dict[int, List[PlannedMatch]] = {}
    for m in matches:
        by_round.setdefault(m.round_number, []).append(m)

    for round_number in sorted(by_round):
        playing: Set[int] = set()
        for m in by_round[round_number]:
            for side in (m.side_a, m.side_b):
                if len(side) != 2 or side[0] == side[1]:
                    errors.append(f"Round {round_number}: malformed side {side}")
                    continue
                for p in side:
                    if p < 0 or p >= group_size:
                        errors.append(f"Round {round_number}: position {p} out of range 0-{group_size - 1}")
                    if p in playing:
                        errors.append(f"Round {round_number}: position {p} plays twice")
                    playing.add(p)
                key = frozenset(side)
                if key in forbidden:
                    errors.append(f"Round {round_number}: {tuple(sorted(key))} already partnered before this stage")
                if key in seen_partners:
                    errors.append(
                        f"Round {round_number}: {tuple(sorted(key))} already partnered in round {seen_partners[key]}"
                    )
                else:
                    seen_partners[key] = round_number
        idle = group_size - len(playing)
        if idle != sit_outs_per_round:
            errors.append(f"Round {round_number}: expected {sit_outs_per_round} idle, found {idle}")

    return errors


def _select_rounds(
    candidate_rounds: Sequence[Sequence],
    rounds: int,
    round_partners,
    forbidden: Set[FrozenSet[int]],
) -> Optional[List]:
    """First `rounds` candidate rounds whose partnerships avoid the forbidden set."""
    clean = [r for r in candidate_rounds if not any(frozenset(p) in forbidden for p in round_partners(r))]
    if len(clean) < rounds:
        return None
    return list(clean[:rounds])


def plan_from_table(
    table: RotationTable,
    rounds: int,
    forbidden: Set[FrozenSet[int]],
) -> Optional[List[PlannedMatch]]:
    selected = _select_rounds(
        table,
        rounds,
        lambda r: [side for match in r for side in match],
        forbidden,
    )
    if selected is None:
        return None
    matches: List[PlannedMatch] = []
    for round_number, table_round in enumerate(selected, start=1):
        for seq, (side_a, side_b) in enumerate(table_round, start=1):
            matches.append(
                PlannedMatch(
                    round_number=round_number,
                    sequence_in_round=seq,
                    side_a=tuple(sorted(side_a)),
                    side_b=tuple(sorted(side_b)),
                )
            )
    return matches


def _count_sit_outs(matches: Sequence[PlannedMatch], group_size: int, rounds: int) -> Dict[int, int]:
    played: Dict[int, int] = {p: 0 for p in range(group_size)}
    for m in matches:
        for p in m.side_a + m.side_b:
            played[p] += 1
    return {p: rounds - n for p, n in played.items()}


class RotatingPartnerRoundRobin:
    pairing_format = PairingFormat.rotating_partner

    def __init__(self, tables: Optional[Dict[int, RotationTable]] = None):
        self.tables = ROTATION_TABLES if tables is None else tables

    def full_round_count(self, group_size: int) -> int:
        if group_size % 4 == 0:
            return group_size - 1
        if group_size in self.tables:
            return len(self.tables[group_size])
        raise PartnerConflict(f"No repeat-free rotation is documented for a group of {group_size} entrants")

    def construct(self, group_size: int, rounds: int, forbidden: Set[FrozenSet[int]]) -> Optional[List[PlannedMatch]]:
        """Circle rotation for multiples of 4; None when the forbidden set leaves too few rounds."""
        selected = _select_rounds(circle_partner_rounds(group_size), rounds, lambda r: r, forbidden)
        if selected is None:
            return None
        return group_partners_into_matches(selected)

    def generate(
        self,
        group_size: int,
        rounds: Optional[int] = None,
        forbidden_partners: Iterable[Tuple[int, int]] = (),
    ) -> PairingPlan:
        if group_size < 4:
            raise InvalidGroupConfiguration(f"2-vs-2 rotation needs at least 4 entrants, got {group_size}")

        full = self.full_round_count(group_size)
        rounds = full if rounds is None else rounds
        if rounds < 1:
            raise InvalidGroupConfiguration(f"rounds must be at least 1, got {rounds}")
        if rounds > full:
            raise PartnerConflict(
                f"{rounds} rounds for {group_size} entrants would repeat partners (maximum {full})"
            )

        forbidden_list = list(forbidden_partners)
        forbidden = {frozenset(p) for p in forbidden_list}

        matches: Optional[List[PlannedMatch]] = None
        source = "circle"
        errors: List[str] = []

        if group_size % 4 == 0:
            matches = self.construct(group_size, rounds, forbidden)
            if matches is None:
                errors = ["partner history leaves too few repeat-free rounds"]
            else:
                errors = validate_rotation(matches, group_size, forbidden_list)
            if errors:
                logger.debug("Circle rotation rejected for %d entrants: %s", group_size, errors[:3])
                matches = None

        if matches is None and group_size in self.tables:
            table_matches = plan_from_table(self.tables[group_size], rounds, forbidden)
            if table_matches is not None:
                table_errors = validate_rotation(
                    table_matches, group_size, forbidden_list, SIT_OUTS_PER_ROUND.get(group_size, 0)
                )
                if not table_errors:
                    if group_size % 4 == 0:
                        logger.warning("Using documented rotation table for %d entrants", group_size)
                    matches = table_matches
                    source = "table"
                else:
                    errors.extend(table_errors)

        if matches is None:
            detail = "; ".join(errors[:3]) if errors else "no schedule available"
            raise PartnerConflict(
                f"No repeat-free partner rotation for {group_size} entrants over {rounds} rounds: {detail}"
            )

        return PairingPlan(
            pairing_format=self.pairing_format,
            group_size=group_size,
            matches=matches,
            source=source,
            rounds=rounds,
            sit_outs=_count_sit_outs(matches, group_size, rounds),
        )


PAIRING_STRATEGIES = {
    PairingFormat.fixed_pair: FixedPairRoundRobin(),
    PairingFormat.rotating_partner: RotatingPartnerRoundRobin(),
}


def generate_pairings(
    pairing_format: PairingFormat,
    group_size: int,
    rounds: Optional[int] = None,
    forbidden_partners: Iterable[Tuple[int, int]] = (),
) -> PairingPlan:
    """Generate the match plan for one group with the strategy registered for the format."""
    strategy = PAIRING_STRATEGIES.get(PairingFormat(pairing_format))
    if strategy is None:
        raise ValueError(f"Unknown pairing format: {pairing_format}")
    return strategy.generate(group_size, rounds=rounds, forbidden_partners=forbidden_partners)
