from datetime import datetime, timezone
from typing import FrozenSet, Optional

from sqlalchemy import CheckConstraint
from sqlmodel import Field, SQLModel

STAGE_GROUP = "GROUP"
STAGE_ELIMINATION = "ELIMINATION"


class Pair(SQLModel, table=True):
    """
    Two entrants competing as one side.

    Identity is the unordered set of entrant ids; rows are stored with the
    lower id in entrant_a_id. Rotating-partner pairs are ephemeral and carry
    the id of the single match they belong to.
    """

    __table_args__ = (CheckConstraint("entrant_a_id < entrant_b_id", name="ck_pair_normalized"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    entrant_a_id: int = Field(foreign_key="entrant.id")
    entrant_b_id: int = Field(foreign_key="entrant.id")
    stage: str = Field(default=STAGE_GROUP)  # "GROUP" | "ELIMINATION"
    match_id: Optional[int] = Field(default=None, index=True)  # set for ephemeral pairs only
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def entrant_ids(self) -> FrozenSet[int]:
        return frozenset((self.entrant_a_id, self.entrant_b_id))

    @property
    def is_ephemeral(self) -> bool:
        return self.match_id is not None
