"""
Scoring/Points Assigner: Final placement tier -> points.

Bracket tournaments place competitors by the round they lost in; round-robin
only tournaments by their final overall position. Everyone else who took
part gets the participation tier.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from arenadraw.config import DEFAULT_POINTS_TABLE, DEFAULT_STANDING_TIERS
from arenadraw.exceptions import StageNotClosed
from arenadraw.services.bracket_builder import BracketTree, bracket_standings

CHAMPION = "champion"
RUNNER_UP = "runner_up"
SEMIFINALIST = "semifinalist"
QUARTERFINALIST = "quarterfinalist"
ROUND_OF_16 = "round_of_16"
PARTICIPATION = "participation"

TIERS = (CHAMPION, RUNNER_UP, SEMIFINALIST, QUARTERFINALIST, ROUND_OF_16, PARTICIPATION)

# Shared bracket place -> tier
BRACKET_PLACE_TIERS: Dict[int, str] = {
    1: CHAMPION,
    2: RUNNER_UP,
    3: SEMIFINALIST,
    5: QUARTERFINALIST,
    9: ROUND_OF_16,
}


@dataclass(frozen=True)
class Placement:
    competitor_id: int
    tier: str
    place: Optional[int] = None


class PointsTable:
    """Tier -> points. Tiers missing from the mapping score 0."""

    def __init__(self, points: Optional[Mapping[str, int]] = None):
        merged = dict(DEFAULT_POINTS_TABLE if points is None else points)
        unknown = sorted(set(merged) - set(TIERS))
        if unknown:
            raise ValueError(f"Unknown placement tier(s): {', '.join(unknown)}")
        self.points: Dict[str, int] = merged

    def points_for(self, tier: str) -> int:
        return int(self.points.get(tier, 0))

    def __repr__(self) -> str:
        return f"PointsTable({self.points!r})"


def placements_from_bracket(
    tree: BracketTree,
    participants: Iterable[int] = (),
) -> List[Placement]:
    """Placements once the final is decided; participants outside the bracket get participation."""
    if tree.champion is None:
        raise StageNotClosed("The final has not been played yet")

    placements: List[Placement] = []
    placed = set()
    for row in bracket_standings(tree):
        tier = BRACKET_PLACE_TIERS.get(row.place, PARTICIPATION)
        placements.append(Placement(competitor_id=row.competitor_id, tier=tier, place=row.place))
        placed.add(row.competitor_id)
    for cid in participants:
        if cid not in placed:
            placements.append(Placement(competitor_id=cid, tier=PARTICIPATION))
            placed.add(cid)
    return placements


def placements_from_standings(
    ranked_ids: Sequence[int],
    tiers: Optional[Mapping[int, str]] = None,
) -> List[Placement]:
    """Overall final order (best first) -> tiers by position; the rest get participation."""
    tiers = DEFAULT_STANDING_TIERS if tiers is None else tiers
    return [
        Placement(competitor_id=cid, tier=tiers.get(place, PARTICIPATION), place=place)
        for place, cid in enumerate(ranked_ids, start=1)
    ]


def score_placements(placements: Iterable[Placement], table: PointsTable) -> List[tuple]:
    """[(placement, points)] in the order given."""
    return [(p, table.points_for(p.tier)) for p in placements]
