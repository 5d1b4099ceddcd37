from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from sqlmodel import Session

from arenadraw.database import get_session
from arenadraw.routes.errors import engine_errors
from arenadraw.services import stage_service

router = APIRouter()


class PointsRequest(BaseModel):
    points_table: Optional[Dict[str, int]] = None


class PlacementAwardResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tournament_id: int
    pair_id: Optional[int] = None
    entrant_id: Optional[int] = None
    tier: str
    points: int
    awarded_at: datetime


@router.post("/tournaments/{tournament_id}/points", response_model=List[PlacementAwardResponse])
def assign_points(
    tournament_id: int,
    payload: Optional[PointsRequest] = None,
    session: Session = Depends(get_session),
):
    """Award placement points; calling again recomputes and overwrites."""
    with engine_errors():
        return stage_service.assign_points(session, tournament_id, payload.points_table if payload else None)


@router.get("/tournaments/{tournament_id}/points", response_model=List[PlacementAwardResponse])
def list_awards(tournament_id: int, session: Session = Depends(get_session)):
    with engine_errors():
        stage_service.get_tournament(session, tournament_id)
    return stage_service.list_awards(session, tournament_id)
