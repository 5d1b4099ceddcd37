from typing import Optional

from sqlalchemy import CheckConstraint
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, SQLModel


class PartnerHistory(SQLModel, table=True):
    """
    A partnership two entrants already played in an earlier stage.

    Stored normalized (entrant_a_id < entrant_b_id) so each partnership
    has exactly one row per tournament.
    """

    __table_args__ = (
        CheckConstraint("entrant_a_id < entrant_b_id", name="ck_partner_history_normalized"),
        SAUniqueConstraint("tournament_id", "entrant_a_id", "entrant_b_id", name="uq_partner_history"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    entrant_a_id: int = Field(foreign_key="entrant.id")
    entrant_b_id: int = Field(foreign_key="entrant.id")
