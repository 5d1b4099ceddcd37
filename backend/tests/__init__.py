# Force SQLModel table registration at test discovery time
from arenadraw.models import (  # noqa: F401
    BracketNode,
    Entrant,
    Group,
    GroupMember,
    Match,
    Pair,
    PartnerHistory,
    PlacementAward,
    Tournament,
)
