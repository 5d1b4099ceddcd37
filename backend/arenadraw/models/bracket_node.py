from typing import Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, SQLModel


class BracketNode(SQLModel, table=True):
    """
    One slot of the elimination tree.

    Links are plain integer ids (feeders and parent) so the tree can be
    serialized as a flat list of rows.
    """

    __table_args__ = (
        SAUniqueConstraint("tournament_id", "round_number", "position", name="uq_bracket_node_position"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    round_number: int  # 1 = first round, max = final
    position: int  # 0-based, top to bottom within the round

    feeder_a_node_id: Optional[int] = Field(default=None)
    feeder_b_node_id: Optional[int] = Field(default=None)
    parent_node_id: Optional[int] = Field(default=None)
    parent_slot: Optional[str] = Field(default=None)  # "A" | "B"

    # First-round seeds (null elsewhere or for an empty bye slot)
    seed_a: Optional[int] = Field(default=None)
    seed_b: Optional[int] = Field(default=None)

    pair_a_id: Optional[int] = Field(default=None, foreign_key="pair.id")
    pair_b_id: Optional[int] = Field(default=None, foreign_key="pair.id")
    is_bye: bool = Field(default=False)
    winner_pair_id: Optional[int] = Field(default=None, foreign_key="pair.id")
    match_id: Optional[int] = Field(default=None, foreign_key="match.id")
