from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import JSON, UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from arenadraw.models.group import Group
    from arenadraw.models.tournament import Tournament

STATUS_PENDING = "pending"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"

MATCH_STATUSES = (STATUS_PENDING, STATUS_IN_PROGRESS, STATUS_COMPLETED)


class Match(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("tournament_id", "match_code", name="uq_tournament_match_code"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    group_id: Optional[int] = Field(default=None, foreign_key="group.id", index=True)  # null for elimination
    stage: str  # "GROUP" | "ELIMINATION"
    match_code: str  # "G1-R2-M1", "E-R1-M3"
    round_number: int
    sequence_in_round: int

    # Sides (nullable for elimination matches until advancement fills them)
    pair_a_id: Optional[int] = Field(default=None, foreign_key="pair.id")
    pair_b_id: Optional[int] = Field(default=None, foreign_key="pair.id")

    bracket_node_id: Optional[int] = Field(default=None, index=True)

    status: str = Field(default=STATUS_PENDING)  # "pending" | "in_progress" | "completed"
    # Ordered sets: [{"a": 6, "b": 4}, {"a": 7, "b": 6, "tiebreak_a": 7, "tiebreak_b": 5}]
    sets_json: Optional[List[Dict[str, Any]]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    winner_pair_id: Optional[int] = Field(default=None, foreign_key="pair.id")
    # Optimistic concurrency counter; every ledger write is a compare-and-set on it
    version: int = Field(default=0)

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)

    tournament: "Tournament" = Relationship(back_populates="matches")
    group: Optional["Group"] = Relationship(back_populates="matches")

    @property
    def is_completed(self) -> bool:
        return self.status == STATUS_COMPLETED

    @property
    def loser_pair_id(self) -> Optional[int]:
        if self.winner_pair_id is None:
            return None
        return self.pair_b_id if self.winner_pair_id == self.pair_a_id else self.pair_a_id
