from arenadraw.models.bracket_node import BracketNode
from arenadraw.models.entrant import Entrant
from arenadraw.models.group import Group, GroupMember
from arenadraw.models.match import Match
from arenadraw.models.pair import Pair
from arenadraw.models.partner_history import PartnerHistory
from arenadraw.models.placement_award import PlacementAward
from arenadraw.models.tournament import PairingFormat, Tournament

__all__ = [
    "Tournament",
    "PairingFormat",
    "Entrant",
    "PartnerHistory",
    "Pair",
    "Group",
    "GroupMember",
    "Match",
    "BracketNode",
    "PlacementAward",
]
