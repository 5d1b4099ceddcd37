from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from arenadraw.models.tournament import Tournament

SKILL_LEVELS = ("beginner", "intermediate", "advanced")
GENDERS = ("male", "female")


class Entrant(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("tournament_id", "name", name="uq_tournament_entrant_name"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    name: str
    skill_level: str = Field(default="intermediate")  # one of SKILL_LEVELS
    gender: Optional[str] = Field(default=None)  # one of GENDERS
    eligible: bool = Field(default=True)
    seed: Optional[int] = Field(default=None)  # registration order / draw position (1-based)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    tournament: "Tournament" = Relationship(back_populates="entrants")
