from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class PlacementAward(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    # Attributed to a pair (fixed-pair / elimination) or an entrant (rotating group stage)
    pair_id: Optional[int] = Field(default=None, foreign_key="pair.id")
    entrant_id: Optional[int] = Field(default=None, foreign_key="entrant.id")
    tier: str  # "champion" | "runner_up" | "semifinalist" | "quarterfinalist" | "round_of_16" | "participation"
    points: int
    awarded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
