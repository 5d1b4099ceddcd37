"""
Derived per-competitor statistics.

A competitor is a pair (fixed-pair groups, elimination) or an entrant
(rotating-partner groups). Stats are never stored: they are recomputed
from the completed matches of the ledger on every read, so a voided or
corrected result can never leave stale totals behind.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Sequence, Tuple

from arenadraw.services.set_rules import SIDE_A, SIDE_B, SetScore


@dataclass(frozen=True)
class MatchRecord:
    """Ledger row reduced to what statistics need."""

    match_id: int
    side_a: Tuple[int, ...]
    side_b: Tuple[int, ...]
    sets: Tuple[SetScore, ...] = ()
    winner_side: Optional[str] = None  # "A" | "B" once completed

    @property
    def completed(self) -> bool:
        return self.winner_side is not None

    def side_of(self, competitor_id: int) -> Optional[str]:
        if competitor_id in self.side_a:
            return SIDE_A
        if competitor_id in self.side_b:
            return SIDE_B
        return None

    def opponents_of(self, competitor_id: int) -> Tuple[int, ...]:
        side = self.side_of(competitor_id)
        if side == SIDE_A:
            return self.side_b
        if side == SIDE_B:
            return self.side_a
        return ()


@dataclass
class HeadToHead:
    wins: int = 0
    losses: int = 0
    games_won: int = 0
    games_lost: int = 0


@dataclass
class CompetitorStat:
    competitor_id: int
    played: int = 0
    wins: int = 0
    losses: int = 0
    sets_won: int = 0
    sets_lost: int = 0
    games_won: int = 0
    games_lost: int = 0
    head_to_head: Dict[int, HeadToHead] = field(default_factory=dict)

    @property
    def game_differential(self) -> int:
        return self.games_won - self.games_lost

    @property
    def set_differential(self) -> int:
        return self.sets_won - self.sets_lost

    @property
    def points(self) -> int:
        return 3 * self.wins

    def as_dict(self) -> Dict[str, int]:
        return {
            "played": self.played,
            "wins": self.wins,
            "losses": self.losses,
            "sets_won": self.sets_won,
            "sets_lost": self.sets_lost,
            "games_won": self.games_won,
            "games_lost": self.games_lost,
            "game_differential": self.game_differential,
            "set_differential": self.set_differential,
        }


def _side_totals(record: MatchRecord, side: str) -> Tuple[int, int, int, int]:
    """(sets_for, sets_against, games_for, games_against) for one side."""
    sets_a = sum(1 for s in record.sets if s.winner == SIDE_A)
    sets_b = sum(1 for s in record.sets if s.winner == SIDE_B)
    games_a = sum(s.a for s in record.sets)
    games_b = sum(s.b for s in record.sets)
    if side == SIDE_A:
        return sets_a, sets_b, games_a, games_b
    return sets_b, sets_a, games_b, games_a


def compute_stats(
    competitor_ids: Sequence[int],
    records: Iterable[MatchRecord],
) -> Dict[int, CompetitorStat]:
    """Aggregate completed records for the given competitors (zeros for those without results)."""
    stats: Dict[int, CompetitorStat] = {cid: CompetitorStat(competitor_id=cid) for cid in competitor_ids}

    for record in records:
        if not record.completed:
            continue
        for side, members in ((SIDE_A, record.side_a), (SIDE_B, record.side_b)):
            sets_for, sets_against, games_for, games_against = _side_totals(record, side)
            won = record.winner_side == side
            opponents = record.side_b if side == SIDE_A else record.side_a
            for cid in members:
                stat = stats.get(cid)
                if stat is None:
                    continue
                stat.played += 1
                stat.wins += 1 if won else 0
                stat.losses += 0 if won else 1
                stat.sets_won += sets_for
                stat.sets_lost += sets_against
                stat.games_won += games_for
                stat.games_lost += games_against
                for opponent in opponents:
                    h2h = stat.head_to_head.setdefault(opponent, HeadToHead())
                    h2h.wins += 1 if won else 0
                    h2h.losses += 0 if won else 1
                    h2h.games_won += games_for
                    h2h.games_lost += games_against

    return stats
