"""
Elimination advancement: when an elimination match is completed, move its
winner into the parent node and the parent match. Voiding reverses it.

The slot logic lives in the pure arena tree (bracket_builder.advance_winner
and withdraw_winner); the stored rows are rebuilt into a tree, updated there
and written back. Only pair_a_id/pair_b_id of the parent match change; its
status, sets and version are untouched. Callers own the transaction.
"""
import logging
from typing import Dict, List, Optional, Tuple

from sqlmodel import Session, select

from arenadraw.exceptions import BracketAlreadyInProgress, NotFound
from arenadraw.models.bracket_node import BracketNode
from arenadraw.models.match import STATUS_PENDING, Match
from arenadraw.services.bracket_builder import BracketTree, NodeSpec, Seed, advance_winner, withdraw_winner

logger = logging.getLogger(__name__)


def _load_tree(session: Session, match: Match) -> Tuple[List[BracketNode], BracketTree, int]:
    """Stored rows, the arena tree built from them and the arena id of the match's node."""
    rows = bracket_rows(session, match.tournament_id)
    for node_id, row in enumerate(rows):
        if match.bracket_node_id is not None and row.id == match.bracket_node_id:
            return rows, tree_from_rows(rows), node_id
    raise NotFound(f"Match {match.id} has no bracket node")


def _write_back(session: Session, rows: List[BracketNode], tree: BracketTree, node_id: int) -> Optional[BracketNode]:
    """Copy the node's winner and its parent's sides from the tree onto the rows and the parent match."""
    spec, row = tree.node(node_id), rows[node_id]
    row.winner_pair_id = spec.winner
    session.add(row)
    if spec.parent is None:
        return None

    parent_spec, parent = tree.node(spec.parent), rows[spec.parent]
    parent.pair_a_id = parent_spec.competitor_a
    parent.pair_b_id = parent_spec.competitor_b
    session.add(parent)
    if parent.match_id is not None:
        parent_match = session.get(Match, parent.match_id)
        parent_match.pair_a_id = parent_spec.competitor_a
        parent_match.pair_b_id = parent_spec.competitor_b
        session.add(parent_match)
    return parent


def apply_advancement(session: Session, match: Match) -> Optional[BracketNode]:
    """
    Resolve the match's node and fill the winner into the parent slot.
    Returns the parent node (None for the final). Idempotent.
    """
    rows, tree, node_id = _load_tree(session, match)
    advance_winner(tree, node_id, match.winner_pair_id)
    parent = _write_back(session, rows, tree, node_id)
    if parent is not None:
        logger.debug(
            "Pair %s advances from node %s into node %s slot %s",
            match.winner_pair_id,
            rows[node_id].id,
            parent.id,
            rows[node_id].parent_slot,
        )
    return parent


def withdraw_advancement(session: Session, match: Match) -> None:
    """
    Undo apply_advancement for a voided match.

    Raises:
        BracketAlreadyInProgress: the parent match has already started or finished
    """
    rows, tree, node_id = _load_tree(session, match)
    parent_id = tree.node(node_id).parent
    if parent_id is not None and rows[parent_id].match_id is not None:
        parent_match = session.get(Match, rows[parent_id].match_id)
        if parent_match.status != STATUS_PENDING:
            raise BracketAlreadyInProgress(
                f"Cannot void match {match.match_code}: {parent_match.match_code} is already {parent_match.status}"
            )
    withdraw_winner(tree, node_id)
    _write_back(session, rows, tree, node_id)


def bracket_rows(session: Session, tournament_id: int) -> List[BracketNode]:
    return session.exec(
        select(BracketNode)
        .where(BracketNode.tournament_id == tournament_id)
        .order_by(BracketNode.round_number, BracketNode.position)
    ).all()


def require_no_bracket(session: Session, tournament_id: int, action: str) -> None:
    """
    Group-stage changes are frozen while a bracket exists; it was seeded
    from the final group standings.

    Raises:
        BracketAlreadyInProgress
    """
    node = session.exec(select(BracketNode.id).where(BracketNode.tournament_id == tournament_id).limit(1)).first()
    if node is not None:
        raise BracketAlreadyInProgress(f"Cannot {action} while a bracket exists; discard the bracket first")


def tree_from_rows(rows: List[BracketNode]) -> BracketTree:
    """Rebuild the pure arena tree from stored rows; arena ids follow (round, position) order."""
    index: Dict[int, int] = {row.id: i for i, row in enumerate(rows)}
    first_round = sum(1 for row in rows if row.round_number == 1)
    tree = BracketTree(bracket_size=2 * first_round)
    for i, row in enumerate(rows):
        tree.nodes.append(
            NodeSpec(
                node_id=i,
                round_number=row.round_number,
                position=row.position,
                feeder_a=index.get(row.feeder_a_node_id),
                feeder_b=index.get(row.feeder_b_node_id),
                parent=index.get(row.parent_node_id),
                parent_slot=row.parent_slot,
                seed_a=Seed(row.seed_a, row.pair_a_id) if row.seed_a is not None else None,
                seed_b=Seed(row.seed_b, row.pair_b_id) if row.seed_b is not None else None,
                competitor_a=row.pair_a_id,
                competitor_b=row.pair_b_id,
                is_bye=row.is_bye,
                winner=row.winner_pair_id,
                match_id=row.match_id,
            )
        )
    return tree
