"""
Engine configuration.

Environment settings come from the process environment (optionally a .env
file). Tournament rules are a pydantic model whose defaults are the house
rules; each tournament may override any field through its rules_json.
"""

import os
from typing import Any, Dict, List, Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./arenadraw.db")
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() in ("true", "1", "yes")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
# Salt for the deterministic draw tie-break
DRAW_SEED = os.getenv("DRAW_SEED", "arenadraw")

KNOWN_TIEBREAK_CRITERIA = (
    "wins",
    "points",
    "game_differential",
    "set_differential",
    "games_won",
    "head_to_head",
    "draw",
)

# The classic beach tennis classification is
# ["points", "game_differential", "head_to_head", "set_differential", "games_won", "draw"]
DEFAULT_TIEBREAK_CRITERIA: List[str] = ["wins", "game_differential", "head_to_head", "draw"]

DEFAULT_POINTS_TABLE: Dict[str, int] = {
    "champion": 100,
    "runner_up": 70,
    "semifinalist": 50,
    "quarterfinalist": 30,
    "round_of_16": 20,
    "participation": 10,
}

# Round-robin-only tournaments: final group position -> tier
DEFAULT_STANDING_TIERS: Dict[int, str] = {
    1: "champion",
    2: "runner_up",
    3: "semifinalist",
}


class TournamentRules(BaseModel):
    model_config = ConfigDict(extra="forbid")

    min_entrants: int = Field(default=12, ge=2)
    min_per_group: int = Field(default=3, ge=2)
    max_per_group: int = Field(default=4, ge=2)
    games_to_win: int = Field(default=6, ge=1)
    min_lead: Literal[1, 2] = 2
    tiebreak_games: int = Field(default=7, ge=2)
    tiebreak_points: int = Field(default=7, ge=1)
    sets_to_win: int = Field(default=1, ge=1)
    # Rotating-partner groups: None = full rotation (size - 1 rounds)
    rotation_rounds: Optional[int] = Field(default=None, ge=1)
    qualifiers_per_group: int = Field(default=2, ge=1)
    # Rotating formats: how qualified individuals are paired for the bracket
    elimination_pairing: Literal["BEST_WITH_BEST", "BALANCED"] = "BEST_WITH_BEST"
    tiebreak_criteria: List[str] = Field(default_factory=lambda: list(DEFAULT_TIEBREAK_CRITERIA))
    points_table: Dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_POINTS_TABLE))
    standing_tiers: Dict[int, str] = Field(default_factory=lambda: dict(DEFAULT_STANDING_TIERS))

    @field_validator("tiebreak_criteria")
    @classmethod
    def validate_criteria(cls, v):
        unknown = [name for name in v if name not in KNOWN_TIEBREAK_CRITERIA]
        if unknown:
            raise ValueError(f"Unknown tie-break criteria: {', '.join(unknown)}")
        return v

    @field_validator("points_table")
    @classmethod
    def validate_points_table(cls, v):
        unknown = sorted(set(v) - set(DEFAULT_POINTS_TABLE))
        if unknown:
            raise ValueError(f"Unknown placement tier(s): {', '.join(unknown)}")
        if any(points < 0 for points in v.values()):
            raise ValueError("points must be >= 0")
        return v

    @field_validator("standing_tiers")
    @classmethod
    def validate_standing_tiers(cls, v):
        if any(place < 1 for place in v):
            raise ValueError("standing places start at 1")
        unknown = sorted(set(v.values()) - set(DEFAULT_POINTS_TABLE))
        if unknown:
            raise ValueError(f"Unknown placement tier(s): {', '.join(unknown)}")
        return v

    @model_validator(mode="after")
    def validate_ranges(self):
        if self.min_per_group > self.max_per_group:
            raise ValueError("min_per_group must be <= max_per_group")
        if self.tiebreak_games <= self.games_to_win:
            raise ValueError("tiebreak_games must be > games_to_win")
        return self

    @classmethod
    def from_overrides(cls, overrides: Optional[Dict[str, Any]]) -> "TournamentRules":
        """
        Build rules from defaults plus a tournament's rules_json.

        Raises:
            ValueError: unknown key or out-of-range value
        """
        try:
            return cls.model_validate(overrides or {})
        except ValidationError as exc:
            raise ValueError(f"Invalid tournament rules: {_describe(exc)}") from None


def _describe(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'rules'}: {err['msg']}" for err in exc.errors()
    )
