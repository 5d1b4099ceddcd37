"""
Elimination Bracket Builder: Seeded single-elimination tree.

The tree is an arena: a flat list of NodeSpec indexed by node_id, linked by
integer ids (feeders and parent). Round 1 holds bracket_size / 2 nodes, the
final is the single node of the last round.

Seeding follows the bracket fold: seeds 1 and 2 can only meet in the final,
1 and 4 / 2 and 3 only in the semifinals, and so on. Missing seeds become
byes, which always fall on the highest seeds because the fold pairs seed s
with seed bracket_size + 1 - s. Bye winners are placed in the parent slot
at build time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from arenadraw.exceptions import InvalidBracketSize
from arenadraw.services.set_rules import SIDE_A, SIDE_B
from arenadraw.services.standings import Standing

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Seed:
    seed: int
    competitor_id: int
    group_label: Optional[int] = None  # groups to keep apart in round 1


@dataclass
class NodeSpec:
    node_id: int
    round_number: int
    position: int
    feeder_a: Optional[int] = None
    feeder_b: Optional[int] = None
    parent: Optional[int] = None
    parent_slot: Optional[str] = None
    seed_a: Optional[Seed] = None
    seed_b: Optional[Seed] = None
    competitor_a: Optional[int] = None
    competitor_b: Optional[int] = None
    is_bye: bool = False
    winner: Optional[int] = None
    match_id: Optional[int] = None  # set once persisted

    @property
    def resolved(self) -> bool:
        return self.winner is not None

    @property
    def is_ready(self) -> bool:
        """Both sides known and still to be played."""
        return (
            not self.is_bye
            and self.winner is None
            and self.competitor_a is not None
            and self.competitor_b is not None
        )

    @property
    def loser(self) -> Optional[int]:
        if self.winner is None or self.is_bye:
            return None
        return self.competitor_b if self.winner == self.competitor_a else self.competitor_a


@dataclass
class BracketTree:
    bracket_size: int
    nodes: List[NodeSpec] = field(default_factory=list)

    @property
    def rounds(self) -> int:
        return self.bracket_size.bit_length() - 1

    @property
    def final(self) -> NodeSpec:
        return self.nodes[-1]

    @property
    def champion(self) -> Optional[int]:
        return self.final.winner

    def node(self, node_id: int) -> NodeSpec:
        return self.nodes[node_id]

    def round_nodes(self, round_number: int) -> List[NodeSpec]:
        return [n for n in self.nodes if n.round_number == round_number]

    def first_round_matchups(self) -> List[tuple]:
        """(seed_a, seed_b) numbers per round-1 node, None for an empty slot."""
        return [
            (n.seed_a.seed if n.seed_a else None, n.seed_b.seed if n.seed_b else None)
            for n in self.round_nodes(1)
        ]


def bracket_fold_positions(n: int) -> List[int]:
    """Standard bracket-fold positions for *n* entries.

    Returns a flat list of seed numbers in bracket position order.
    Consecutive pairs meet in round 1 if chalk holds:
      4-entry  -> [1, 4, 2, 3]
      8-entry  -> [1, 8, 4, 5, 3, 6, 2, 7]
      16-entry -> [1, 16, 8, 9, 4, 13, 5, 12, 3, 14, 6, 11, 7, 10, 2, 15]
    """
    if n == 2:
        return [1, 2]

    half = bracket_fold_positions(n // 2)

    expanded: List[int] = []
    for s in half:
        expanded.append(s)
        expanded.append(n + 1 - s)

    mid = len(expanded) // 2
    top = expanded[:mid]
    bot = expanded[mid:]
    if len(bot) >= 4:
        bot = bot[:-4] + bot[-2:] + bot[-4:-2]

    return top + bot


def round_name(round_number: int, bracket_size: int) -> str:
    competitors = bracket_size >> (round_number - 1)
    if competitors == 2:
        return "Final"
    if competitors == 4:
        return "Semifinal"
    if competitors == 8:
        return "Quarterfinal"
    return f"Round of {competitors}"


def _is_power_of_two(n: int) -> bool:
    return n >= 2 and n & (n - 1) == 0


def collect_qualifiers(
    standings_by_group: Mapping[int, Sequence[Standing]],
    qualifiers_per_group: int,
) -> List[Seed]:
    """
    Seed list from final group standings.

    All group winners come first, then all runners-up, and so on. Within one
    finishing position: more wins, better game differential, more games won,
    then the lower group label.
    """
    if qualifiers_per_group < 1:
        raise InvalidBracketSize(f"qualifiers_per_group must be at least 1, got {qualifiers_per_group}")

    ordered: List[Seed] = []
    next_seed = 1
    for place in range(qualifiers_per_group):
        tier = [
            (label, rows[place])
            for label, rows in standings_by_group.items()
            if place < len(rows)
        ]
        tier.sort(
            key=lambda item: (
                -item[1].stat.wins,
                -item[1].stat.game_differential,
                -item[1].stat.games_won,
                item[0],
            )
        )
        for label, standing in tier:
            ordered.append(Seed(seed=next_seed, competitor_id=standing.competitor_id, group_label=label))
            next_seed += 1
    return ordered


def _same_group(x: Optional[Seed], y: Optional[Seed]) -> bool:
    return (
        x is not None
        and y is not None
        and x.group_label is not None
        and x.group_label == y.group_label
    )


def _clashes(node: NodeSpec) -> bool:
    return _same_group(node.seed_a, node.seed_b)


def _avoid_same_group(first_round: List[NodeSpec]) -> int:
    """
    Swap lower seeds between round-1 matches until no match pits two
    competitors from the same group, where a swap exists. Returns swaps made.
    """
    swaps = 0
    for node in first_round:
        if not _clashes(node):
            continue
        candidates = []
        for other in first_round:
            # Bye nodes have no lower seed to trade
            if other is node or other.seed_a is None or other.seed_b is None:
                continue
            if _same_group(node.seed_a, other.seed_b) or _same_group(other.seed_a, node.seed_b):
                continue
            candidates.append((abs(other.seed_b.seed - node.seed_b.seed), other.position, other))
        if not candidates:
            logger.debug("No swap removes the same-group match at round-1 position %d", node.position)
            continue
        _, _, other = min(candidates, key=lambda c: (c[0], c[1]))
        logger.debug(
            "Swapping seeds %d and %d to avoid a same-group first round",
            node.seed_b.seed,
            other.seed_b.seed,
        )
        node.seed_b, other.seed_b = other.seed_b, node.seed_b
        swaps += 1
    return swaps


def _fill_parent(tree: BracketTree, node: NodeSpec, competitor_id: Optional[int]) -> None:
    if node.parent is None:
        return
    parent = tree.node(node.parent)
    if node.parent_slot == SIDE_A:
        parent.competitor_a = competitor_id
    else:
        parent.competitor_b = competitor_id


def build_bracket(seeds: Iterable[Seed], bracket_size: int) -> BracketTree:
    """
    Build the single-elimination tree for the given seeds.

    More seeds than slots keeps the top bracket_size seeds. At least
    bracket_size / 2 + 1 seeds are required so every round-1 node has a
    competitor.
    """
    if not _is_power_of_two(bracket_size):
        raise InvalidBracketSize(f"Bracket size must be a power of two >= 2, got {bracket_size}")

    ordered = sorted(seeds, key=lambda s: s.seed)[:bracket_size]
    if len(ordered) <= bracket_size // 2:
        raise InvalidBracketSize(
            f"{len(ordered)} qualifiers cannot fill a bracket of {bracket_size}; "
            f"need more than {bracket_size // 2}"
        )
    # Renumber so seeds are contiguous 1..n even if the input skipped numbers
    by_number: Dict[int, Seed] = {
        i: Seed(seed=i, competitor_id=s.competitor_id, group_label=s.group_label)
        for i, s in enumerate(ordered, start=1)
    }

    tree = BracketTree(bracket_size=bracket_size)
    positions = bracket_fold_positions(bracket_size)

    for pos in range(bracket_size // 2):
        tree.nodes.append(
            NodeSpec(
                node_id=len(tree.nodes),
                round_number=1,
                position=pos,
                seed_a=by_number.get(positions[2 * pos]),
                seed_b=by_number.get(positions[2 * pos + 1]),
            )
        )

    previous = list(tree.nodes)
    for round_number in range(2, tree.rounds + 1):
        current: List[NodeSpec] = []
        for pos in range(len(previous) // 2):
            child_a, child_b = previous[2 * pos], previous[2 * pos + 1]
            node = NodeSpec(
                node_id=len(tree.nodes),
                round_number=round_number,
                position=pos,
                feeder_a=child_a.node_id,
                feeder_b=child_b.node_id,
            )
            child_a.parent, child_a.parent_slot = node.node_id, SIDE_A
            child_b.parent, child_b.parent_slot = node.node_id, SIDE_B
            tree.nodes.append(node)
            current.append(node)
        previous = current

    first_round = tree.round_nodes(1)
    _avoid_same_group(first_round)

    for node in first_round:
        node.competitor_a = node.seed_a.competitor_id if node.seed_a else None
        node.competitor_b = node.seed_b.competitor_id if node.seed_b else None
        if node.seed_a is None or node.seed_b is None:
            node.is_bye = True
            node.winner = node.competitor_a if node.competitor_a is not None else node.competitor_b
            _fill_parent(tree, node, node.winner)

    byes = sum(1 for n in first_round if n.is_bye)
    logger.debug("Built %d-slot bracket for %d seeds with %d bye(s)", bracket_size, len(ordered), byes)
    return tree


def advance_winner(tree: BracketTree, node_id: int, winner: int) -> None:
    """Resolve a node and move the winner into the parent slot."""
    node = tree.node(node_id)
    if winner is None or winner not in (node.competitor_a, node.competitor_b):
        raise ValueError(f"Competitor {winner} is not playing at node {node_id}")
    node.winner = winner
    _fill_parent(tree, node, winner)


def withdraw_winner(tree: BracketTree, node_id: int) -> None:
    node = tree.node(node_id)
    if node.parent is not None and tree.node(node.parent).resolved:
        raise ValueError(f"Parent of node {node_id} is already resolved")
    node.winner = None
    _fill_parent(tree, node, None)


def round_ready(tree: BracketTree, round_number: int) -> bool:
    """A round is ready when both children of every node in it are resolved."""
    if round_number == 1:
        return True
    for node in tree.round_nodes(round_number):
        if not (tree.node(node.feeder_a).resolved and tree.node(node.feeder_b).resolved):
            return False
    return True


def ready_nodes(tree: BracketTree) -> List[NodeSpec]:
    return [n for n in tree.nodes if n.is_ready]


@dataclass(frozen=True)
class BracketPlacement:
    competitor_id: int
    place: Optional[int]  # 1, 2, 3, 5, 9, ... (shared); None while still alive
    round_reached: int  # last round played or entered
    eliminated: bool


def bracket_standings(tree: BracketTree) -> List[BracketPlacement]:
    """
    Rank bracket competitors by the round reached.

    A competitor beaten in a round with c competitors shares place c/2 + 1,
    so semifinal losers share 3rd and quarterfinal losers share 5th.
    """
    reached: Dict[int, int] = {}
    lost_in: Dict[int, int] = {}
    for node in tree.nodes:
        for cid in (node.competitor_a, node.competitor_b):
            if cid is not None:
                reached[cid] = max(reached.get(cid, 0), node.round_number)
        loser = node.loser
        if loser is not None:
            lost_in[loser] = node.round_number

    placements: List[BracketPlacement] = []
    for cid, round_number in reached.items():
        if cid in lost_in:
            competitors = tree.bracket_size >> (lost_in[cid] - 1)
            placements.append(BracketPlacement(cid, competitors // 2 + 1, lost_in[cid], True))
        elif cid == tree.champion:
            placements.append(BracketPlacement(cid, 1, tree.rounds, False))
        else:
            placements.append(BracketPlacement(cid, None, round_number, False))

    # Competitors still alive lead, deepest run first
    placements.sort(key=lambda p: (p.place or 0, -p.round_reached, p.competitor_id))
    return placements
