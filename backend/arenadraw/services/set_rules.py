"""
Set legality and match decision for tennis-style scoring.

A set is won by the side that:
  - reaches games_to_win with at least min_lead        (6-0 .. 6-4)
  - reaches games_to_win + 1 against games_to_win - 1  (7-5)
  - wins the tiebreak at games_to_win all               (7-6)

Tiebreak points, when given on a 7-6 set, must reach tiebreak_points with a
two-point lead and agree with the set winner.

Accepted input shapes:
  [{"a": 6, "b": 4}, {"a": 7, "b": 6, "tiebreak_a": 7, "tiebreak_b": 5}]
  [(6, 4), (7, 6)]
  "6-4 7-6"  /  "6-4, 7-6"
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from arenadraw.config import TournamentRules
from arenadraw.exceptions import InvalidSetResult

SIDE_A = "A"
SIDE_B = "B"


@dataclass(frozen=True)
class SetScore:
    a: int
    b: int
    tiebreak_a: Optional[int] = None
    tiebreak_b: Optional[int] = None

    @property
    def winner(self) -> Optional[str]:
        if self.a > self.b:
            return SIDE_A
        if self.b > self.a:
            return SIDE_B
        return None

    def to_json(self) -> Dict[str, int]:
        data = {"a": self.a, "b": self.b}
        if self.tiebreak_a is not None and self.tiebreak_b is not None:
            data["tiebreak_a"] = self.tiebreak_a
            data["tiebreak_b"] = self.tiebreak_b
        return data


@dataclass(frozen=True)
class MatchOutcome:
    sets: List[SetScore]
    winner_side: str
    sets_a: int
    sets_b: int
    games_a: int
    games_b: int


def coerce_sets(raw: Any) -> List[SetScore]:
    """Normalize any accepted input shape into SetScore objects."""
    if raw is None:
        raise InvalidSetResult("No sets given")
    if isinstance(raw, str):
        return _parse_score_string(raw)
    if isinstance(raw, dict):
        if "sets" in raw:
            return coerce_sets(raw["sets"])
        raise InvalidSetResult("Score object must contain a 'sets' list")

    sets: List[SetScore] = []
    for item in raw:
        if isinstance(item, SetScore):
            sets.append(item)
        elif isinstance(item, dict):
            try:
                sets.append(
                    SetScore(
                        a=int(item["a"]),
                        b=int(item["b"]),
                        tiebreak_a=_optional_int(item.get("tiebreak_a")),
                        tiebreak_b=_optional_int(item.get("tiebreak_b")),
                    )
                )
            except (KeyError, TypeError, ValueError) as exc:
                raise InvalidSetResult(f"Malformed set {item!r}") from exc
        elif isinstance(item, (list, tuple)) and len(item) in (2, 4):
            try:
                values = [int(v) for v in item]
            except (TypeError, ValueError) as exc:
                raise InvalidSetResult(f"Malformed set {item!r}") from exc
            sets.append(SetScore(*values))
        else:
            raise InvalidSetResult(f"Malformed set {item!r}")
    return sets


def _optional_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)


def _parse_score_string(raw: str) -> List[SetScore]:
    """Parse strings like '6-4', '6-3 4-6 7-5', '6-3, 4-6, 7-5'."""
    normalized = raw.replace(",", " ").strip()
    parts = normalized.split()
    if not parts:
        raise InvalidSetResult("Empty score string")

    sets: List[SetScore] = []
    for part in parts:
        pair = part.split("-")
        if len(pair) != 2:
            raise InvalidSetResult(f"Cannot parse set '{part}'")
        try:
            sets.append(SetScore(a=int(pair[0]), b=int(pair[1])))
        except ValueError as exc:
            raise InvalidSetResult(f"Cannot parse set '{part}'") from exc
    return sets


def validate_set(score: SetScore, rules: TournamentRules) -> str:
    """Return the winning side of a complete set or raise InvalidSetResult."""
    if score.a < 0 or score.b < 0:
        raise InvalidSetResult(f"Negative games in set {score.a}-{score.b}")
    if score.winner is None:
        raise InvalidSetResult(f"Set {score.a}-{score.b} has no winner")

    win, lose = max(score.a, score.b), min(score.a, score.b)
    g = rules.games_to_win

    if win == g and win - lose >= rules.min_lead:
        won_by_tiebreak = False
    elif win == g + 1 and lose == g - 1 and rules.min_lead == 2:
        won_by_tiebreak = False
    elif win == rules.tiebreak_games and lose == g:
        won_by_tiebreak = True
    else:
        raise InvalidSetResult(
            f"Set {score.a}-{score.b} is not a finished set "
            f"(first to {g} by {rules.min_lead}, tiebreak at {g}-{g})"
        )

    if score.tiebreak_a is not None or score.tiebreak_b is not None:
        if not won_by_tiebreak:
            raise InvalidSetResult(f"Tiebreak points given for set {score.a}-{score.b} without a tiebreak")
        _validate_tiebreak(score, rules)

    return score.winner


def _validate_tiebreak(score: SetScore, rules: TournamentRules) -> None:
    if score.tiebreak_a is None or score.tiebreak_b is None:
        raise InvalidSetResult("Tiebreak needs points for both sides")
    tb_win, tb_lose = max(score.tiebreak_a, score.tiebreak_b), min(score.tiebreak_a, score.tiebreak_b)
    if tb_lose < 0:
        raise InvalidSetResult("Negative tiebreak points")
    if tb_win < rules.tiebreak_points:
        raise InvalidSetResult(f"Tiebreak must reach {rules.tiebreak_points} points, got {tb_win}-{tb_lose}")
    if tb_win - tb_lose < 2:
        raise InvalidSetResult(f"Tiebreak must be won by 2 points, got {tb_win}-{tb_lose}")
    if tb_win > rules.tiebreak_points and tb_win - tb_lose != 2:
        raise InvalidSetResult(f"Tiebreak {tb_win}-{tb_lose} should have ended earlier")
    tb_winner = SIDE_A if score.tiebreak_a > score.tiebreak_b else SIDE_B
    if tb_winner != score.winner:
        raise InvalidSetResult(f"Tiebreak winner does not match set {score.a}-{score.b}")


def decide_match(raw_sets: Any, rules: TournamentRules) -> MatchOutcome:
    """
    Validate every set and decide the match.

    The match ends as soon as one side reaches rules.sets_to_win; sets
    recorded after that, or a score that never reaches it, are rejected.
    """
    sets = coerce_sets(raw_sets)
    if not sets:
        raise InvalidSetResult("No sets given")
    max_sets = 2 * rules.sets_to_win - 1
    if len(sets) > max_sets:
        raise InvalidSetResult(f"At most {max_sets} set(s) allowed, got {len(sets)}")

    won = {SIDE_A: 0, SIDE_B: 0}
    for index, score in enumerate(sets, start=1):
        if max(won.values()) >= rules.sets_to_win:
            raise InvalidSetResult(f"Set {index} recorded after the match was already decided")
        won[validate_set(score, rules)] += 1

    if max(won.values()) < rules.sets_to_win:
        raise InvalidSetResult(f"Neither side won {rules.sets_to_win} set(s): {won[SIDE_A]}-{won[SIDE_B]}")

    return MatchOutcome(
        sets=sets,
        winner_side=SIDE_A if won[SIDE_A] > won[SIDE_B] else SIDE_B,
        sets_a=won[SIDE_A],
        sets_b=won[SIDE_B],
        games_a=sum(s.a for s in sets),
        games_b=sum(s.b for s in sets),
    )


def sets_to_json(sets: Sequence[SetScore]) -> List[Dict[str, int]]:
    return [s.to_json() for s in sets]
