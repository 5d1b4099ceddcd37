from typing import Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session

from arenadraw.database import get_session
from arenadraw.models.group import Group
from arenadraw.routes.errors import engine_errors
from arenadraw.routes.matches import MatchResponse, match_to_response
from arenadraw.services import stage_service
from arenadraw.services.standings import Standing

router = APIRouter()


class PartitionRequest(BaseModel):
    seeding: Optional[str] = None  # "contiguous" (default) | "snake"


class GroupMemberResponse(BaseModel):
    position: int
    pair_id: Optional[int] = None
    entrant_id: Optional[int] = None


class GroupResponse(BaseModel):
    id: int
    tournament_id: int
    label: int
    name: str
    revision: int
    members: List[GroupMemberResponse]


class StandingResponse(BaseModel):
    rank: int
    competitor_id: int
    separated_by: Optional[str] = None
    played: int
    wins: int
    losses: int
    sets_won: int
    sets_lost: int
    games_won: int
    games_lost: int
    game_differential: int
    set_differential: int
    head_to_head: Dict[int, Dict[str, int]]


def _group_to_response(session: Session, group: Group) -> GroupResponse:
    return GroupResponse(
        id=group.id,
        tournament_id=group.tournament_id,
        label=group.label,
        name=group.name,
        revision=group.revision,
        members=[
            GroupMemberResponse(position=m.position, pair_id=m.pair_id, entrant_id=m.entrant_id)
            for m in stage_service.group_members(session, group.id)
        ],
    )


def standing_to_response(s: Standing) -> StandingResponse:
    return StandingResponse(
        rank=s.rank,
        competitor_id=s.competitor_id,
        separated_by=s.separated_by,
        head_to_head={
            opponent: {
                "wins": h.wins,
                "losses": h.losses,
                "games_won": h.games_won,
                "games_lost": h.games_lost,
            }
            for opponent, h in s.stat.head_to_head.items()
        },
        **s.stat.as_dict(),
    )


@router.post("/tournaments/{tournament_id}/groups", response_model=List[GroupResponse], status_code=201)
def partition_groups(
    tournament_id: int,
    payload: Optional[PartitionRequest] = None,
    session: Session = Depends(get_session),
):
    """Draw the group stage from the registered entrants."""
    with engine_errors():
        groups = stage_service.partition_groups(session, tournament_id, payload.seeding if payload else None)
    return [_group_to_response(session, g) for g in groups]


@router.get("/tournaments/{tournament_id}/groups", response_model=List[GroupResponse])
def list_groups(tournament_id: int, session: Session = Depends(get_session)):
    with engine_errors():
        stage_service.get_tournament(session, tournament_id)
    return [_group_to_response(session, g) for g in stage_service.list_groups(session, tournament_id)]


@router.post("/groups/{group_id}/pairing", response_model=List[MatchResponse])
def generate_pairing(group_id: int, session: Session = Depends(get_session)):
    """Create (or, before any result, recreate) the group's matches."""
    with engine_errors():
        matches = stage_service.generate_pairing(session, group_id)
    return [match_to_response(m) for m in matches]


@router.get("/groups/{group_id}/matches", response_model=List[MatchResponse])
def list_group_matches(group_id: int, session: Session = Depends(get_session)):
    with engine_errors():
        stage_service.get_group(session, group_id)
    return [match_to_response(m) for m in stage_service.group_matches(session, group_id)]


@router.get("/groups/{group_id}/standings", response_model=List[StandingResponse])
def get_standings(group_id: int, session: Session = Depends(get_session)):
    with engine_errors():
        standings = stage_service.compute_standings(session, group_id)
    return [standing_to_response(s) for s in standings]
