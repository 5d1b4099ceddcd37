from datetime import datetime, timezone
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from arenadraw.models.match import Match
    from arenadraw.models.tournament import Tournament

GROUP_LETTERS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def group_name(label: int) -> str:
    """'Group A' for label 1, falling back to the number past Z."""
    if 1 <= label <= len(GROUP_LETTERS):
        return f"Group {GROUP_LETTERS[label - 1]}"
    return f"Group {label}"


class Group(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("tournament_id", "label", name="uq_tournament_group_label"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    label: int  # 1-based, stable
    name: str
    # Bumped on every pairing (re)generation; guarded with compare-and-set
    revision: int = Field(default=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    tournament: "Tournament" = Relationship(back_populates="groups")
    members: List["GroupMember"] = Relationship(
        back_populates="group", sa_relationship_kwargs={"order_by": "GroupMember.position"}
    )
    matches: List["Match"] = Relationship(back_populates="group")


class GroupMember(SQLModel, table=True):
    """Ordered slot in a group: a Pair (fixed-pair) or an Entrant (rotating-partner)."""

    __table_args__ = (SAUniqueConstraint("group_id", "position", name="uq_group_member_position"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    group_id: int = Field(foreign_key="group.id", index=True)
    position: int  # 0-based draw position within the group
    pair_id: Optional[int] = Field(default=None, foreign_key="pair.id")
    entrant_id: Optional[int] = Field(default=None, foreign_key="entrant.id")

    group: "Group" = Relationship(back_populates="members")

    @property
    def competitor_id(self) -> int:
        return self.pair_id if self.pair_id is not None else self.entrant_id
