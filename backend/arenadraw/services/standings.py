"""
Standings Calculator: Tie-break cascade over derived stats.

The cascade is an ordered list of criteria. The full field starts as one
tied bucket; each criterion only reorders members of a bucket the previous
criteria left tied, splitting it into smaller buckets. Criteria see the
tied bucket, which is what head-to-head needs (a mini round robin among
just the tied competitors).

Default order:
  1. wins               (desc)
  2. game_differential  (desc)
  3. head_to_head       (wins, then game differential, among the tied set)
  4. draw               (stable hash, reproducible for the same seed)

Every Standing records the criterion that separated it from the next row.
The calculation is a pure function of the completed matches.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from itertools import groupby
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from arenadraw.config import DEFAULT_TIEBREAK_CRITERIA, DRAW_SEED
from arenadraw.exceptions import AmbiguousStanding
from arenadraw.services.stats import CompetitorStat, HeadToHead, MatchRecord, compute_stats

DRAW = "draw"


@dataclass(frozen=True)
class StandingsContext:
    scope: str  # e.g. "group:12"; part of the draw hash
    draw_seed: str = DRAW_SEED


@dataclass
class Standing:
    rank: int
    competitor_id: int
    stat: CompetitorStat
    separated_by: Optional[str] = None  # criterion that split this row from the next one


class StatCriterion:
    """Higher value ranks first."""

    def __init__(self, name: str, getter: Callable[[CompetitorStat], int]):
        self.name = name
        self.getter = getter

    def rank_key(self, stat: CompetitorStat, tied: Sequence[int], ctx: StandingsContext) -> Tuple:
        return (-self.getter(stat),)


class HeadToHeadCriterion:
    name = "head_to_head"

    def rank_key(self, stat: CompetitorStat, tied: Sequence[int], ctx: StandingsContext) -> Tuple:
        wins = 0
        differential = 0
        for other in tied:
            if other == stat.competitor_id:
                continue
            h2h = stat.head_to_head.get(other, HeadToHead())
            wins += h2h.wins
            differential += h2h.games_won - h2h.games_lost
        return (-wins, -differential)


class DrawCriterion:
    name = DRAW

    def rank_key(self, stat: CompetitorStat, tied: Sequence[int], ctx: StandingsContext) -> Tuple:
        return (_stable_hash(ctx.draw_seed, ctx.scope, stat.competitor_id),)


def _stable_hash(draw_seed: str, scope: str, competitor_id: int) -> int:
    """Deterministic hash for the draw. Same inputs always yield same value."""
    s = f"{draw_seed}:{scope}:{competitor_id}"
    return int(hashlib.sha256(s.encode()).hexdigest()[:16], 16)


CRITERIA = {
    "wins": StatCriterion("wins", lambda s: s.wins),
    "points": StatCriterion("points", lambda s: s.points),
    "game_differential": StatCriterion("game_differential", lambda s: s.game_differential),
    "set_differential": StatCriterion("set_differential", lambda s: s.set_differential),
    "games_won": StatCriterion("games_won", lambda s: s.games_won),
    "head_to_head": HeadToHeadCriterion(),
    DRAW: DrawCriterion(),
}


def resolve_criteria(names: Optional[Iterable[str]] = None) -> List:
    """Map criterion names to strategies; the draw is always appended last if missing."""
    names = list(DEFAULT_TIEBREAK_CRITERIA if names is None else names)
    unknown = [n for n in names if n not in CRITERIA]
    if unknown:
        raise ValueError(f"Unknown tie-break criteria: {', '.join(unknown)}")
    if DRAW in names:
        names = [n for n in names if n != DRAW] + [DRAW]
    else:
        names.append(DRAW)
    return [CRITERIA[n] for n in names]


def _order_bucket(
    bucket: List[int],
    criteria: Sequence,
    stats: Dict[int, CompetitorStat],
    ctx: StandingsContext,
) -> Tuple[List[int], List[Optional[str]]]:
    """
    Order a tied bucket. Returns (ids, separators) where separators[i] names
    the criterion that split ids[i] from ids[i+1].
    """
    if len(bucket) == 1:
        return bucket, []
    if not criteria:
        raise AmbiguousStanding(f"Competitors {sorted(bucket)} remain tied after every criterion")

    criterion, rest = criteria[0], criteria[1:]
    keyed = sorted(
        ((criterion.rank_key(stats[cid], bucket, ctx), cid) for cid in bucket),
        key=lambda item: item[0],
    )

    ordered: List[int] = []
    separators: List[Optional[str]] = []
    for _, group in groupby(keyed, key=lambda item: item[0]):
        sub_bucket = [cid for _, cid in group]
        if ordered:
            separators.append(criterion.name)
        sub_ids, sub_separators = _order_bucket(sub_bucket, rest, stats, ctx)
        ordered.extend(sub_ids)
        separators.extend(sub_separators)
    return ordered, separators


def rank_stats(
    stats: Dict[int, CompetitorStat],
    criteria_names: Optional[Iterable[str]] = None,
    scope: str = "",
    draw_seed: str = DRAW_SEED,
) -> List[Standing]:
    criteria = resolve_criteria(criteria_names)
    ctx = StandingsContext(scope=scope, draw_seed=draw_seed)
    if not stats:
        return []

    ids, separators = _order_bucket(sorted(stats), criteria, stats, ctx)
    separators.append(None)
    return [
        Standing(rank=i + 1, competitor_id=cid, stat=stats[cid], separated_by=separators[i])
        for i, cid in enumerate(ids)
    ]


def compute_standings(
    competitor_ids: Sequence[int],
    records: Iterable[MatchRecord],
    criteria_names: Optional[Iterable[str]] = None,
    scope: str = "",
    draw_seed: str = DRAW_SEED,
) -> List[Standing]:
    """Fully ordered standings for one group from its match records."""
    stats = compute_stats(competitor_ids, records)
    return rank_stats(stats, criteria_names=criteria_names, scope=scope, draw_seed=draw_seed)
