from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session

from arenadraw.database import get_session
from arenadraw.routes.errors import engine_errors
from arenadraw.services import stage_service
from arenadraw.services.bracket_builder import BracketTree, bracket_standings, ready_nodes, round_name, round_ready

router = APIRouter()


class BracketRequest(BaseModel):
    bracket_size: Optional[int] = None
    qualifiers_per_group: Optional[int] = None


class BracketNodeResponse(BaseModel):
    node_id: int
    round_number: int
    round_name: str
    position: int
    feeder_a: Optional[int] = None
    feeder_b: Optional[int] = None
    parent: Optional[int] = None
    parent_slot: Optional[str] = None
    seed_a: Optional[int] = None
    seed_b: Optional[int] = None
    pair_a_id: Optional[int] = None
    pair_b_id: Optional[int] = None
    is_bye: bool
    is_ready: bool
    winner_pair_id: Optional[int] = None
    match_id: Optional[int] = None


class BracketResponse(BaseModel):
    bracket_size: int
    rounds: int
    ready_rounds: List[int]
    # Matches with both sides known and no result yet
    ready_match_ids: List[int]
    champion_pair_id: Optional[int] = None
    nodes: List[BracketNodeResponse]


class BracketPlacementResponse(BaseModel):
    pair_id: int
    place: Optional[int] = None
    round_reached: int
    eliminated: bool


def tree_to_response(tree: BracketTree) -> BracketResponse:
    return BracketResponse(
        bracket_size=tree.bracket_size,
        rounds=tree.rounds,
        ready_rounds=[r for r in range(1, tree.rounds + 1) if round_ready(tree, r)],
        ready_match_ids=[n.match_id for n in ready_nodes(tree) if n.match_id is not None],
        champion_pair_id=tree.champion,
        nodes=[
            BracketNodeResponse(
                node_id=n.node_id,
                round_number=n.round_number,
                round_name=round_name(n.round_number, tree.bracket_size),
                position=n.position,
                feeder_a=n.feeder_a,
                feeder_b=n.feeder_b,
                parent=n.parent,
                parent_slot=n.parent_slot,
                seed_a=n.seed_a.seed if n.seed_a else None,
                seed_b=n.seed_b.seed if n.seed_b else None,
                pair_a_id=n.competitor_a,
                pair_b_id=n.competitor_b,
                is_bye=n.is_bye,
                is_ready=n.is_ready,
                winner_pair_id=n.winner,
                match_id=n.match_id,
            )
            for n in tree.nodes
        ],
    )


@router.post("/tournaments/{tournament_id}/bracket", response_model=BracketResponse, status_code=201)
def build_bracket(
    tournament_id: int,
    payload: Optional[BracketRequest] = None,
    session: Session = Depends(get_session),
):
    """Seed group qualifiers into the elimination bracket (rebuild allowed until the first result)."""
    payload = payload or BracketRequest()
    with engine_errors():
        tree = stage_service.build_bracket(
            session,
            tournament_id,
            bracket_size=payload.bracket_size,
            qualifiers_per_group=payload.qualifiers_per_group,
        )
    return tree_to_response(tree)


@router.get("/tournaments/{tournament_id}/bracket", response_model=BracketResponse)
def get_bracket(tournament_id: int, session: Session = Depends(get_session)):
    with engine_errors():
        tree = stage_service.get_bracket(session, tournament_id)
    return tree_to_response(tree)


@router.delete("/tournaments/{tournament_id}/bracket")
def discard_bracket(tournament_id: int, session: Session = Depends(get_session)):
    with engine_errors():
        removed = stage_service.discard_bracket(session, tournament_id)
    return {"nodes_removed": removed}


@router.get("/tournaments/{tournament_id}/bracket/standings", response_model=List[BracketPlacementResponse])
def get_bracket_standings(tournament_id: int, session: Session = Depends(get_session)):
    with engine_errors():
        tree = stage_service.get_bracket(session, tournament_id)
    return [
        BracketPlacementResponse(
            pair_id=p.competitor_id,
            place=p.place,
            round_reached=p.round_reached,
            eliminated=p.eliminated,
        )
        for p in bracket_standings(tree)
    ]
