from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import JSON, String
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from arenadraw.models.entrant import Entrant
    from arenadraw.models.group import Group
    from arenadraw.models.match import Match


class PairingFormat(str, Enum):
    fixed_pair = "FIXED_PAIR"
    rotating_partner = "ROTATING_PARTNER"


class Tournament(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    pairing_format: PairingFormat = Field(sa_column=Column(String, nullable=False))
    has_elimination: bool = Field(default=True)
    status: str = Field(default="registration")  # "registration" | "group_stage" | "elimination" | "closed"
    # Per-tournament overrides of TournamentRules (see arenadraw.config)
    rules_json: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Relationships
    entrants: List["Entrant"] = Relationship(back_populates="tournament")
    groups: List["Group"] = Relationship(back_populates="tournament")
    matches: List["Match"] = Relationship(back_populates="tournament")
