"""
Match results: start, record, void, correct, batch.

Result writes accept the match version the client last saw; a result typed
against an outdated view is refused with 409.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict
from sqlmodel import Session, col, select

from arenadraw.database import get_session
from arenadraw.models.match import Match
from arenadraw.routes.errors import engine_errors
from arenadraw.services import match_ledger

router = APIRouter()


class SetPayload(BaseModel):
    a: int
    b: int
    tiebreak_a: Optional[int] = None
    tiebreak_b: Optional[int] = None


class MatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tournament_id: int
    group_id: Optional[int] = None
    stage: str
    match_code: str
    round_number: int
    sequence_in_round: int
    pair_a_id: Optional[int] = None
    pair_b_id: Optional[int] = None
    bracket_node_id: Optional[int] = None
    status: str
    sets: List[SetPayload] = []
    winner_pair_id: Optional[int] = None
    version: int
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


def match_to_response(m: Match) -> MatchResponse:
    return MatchResponse(
        id=m.id,
        tournament_id=m.tournament_id,
        group_id=m.group_id,
        stage=m.stage,
        match_code=m.match_code,
        round_number=m.round_number,
        sequence_in_round=m.sequence_in_round,
        pair_a_id=m.pair_a_id,
        pair_b_id=m.pair_b_id,
        bracket_node_id=m.bracket_node_id,
        status=m.status,
        sets=[SetPayload(**s) for s in (m.sets_json or [])],
        winner_pair_id=m.winner_pair_id,
        version=m.version,
        started_at=m.started_at,
        completed_at=m.completed_at,
    )


class ResultSubmit(BaseModel):
    sets: List[SetPayload]
    expected_version: Optional[int] = None


class VersionGuard(BaseModel):
    expected_version: Optional[int] = None


class BatchEntry(BaseModel):
    match_id: Optional[int] = None
    sets: Optional[Any] = None
    expected_version: Optional[int] = None


class BatchItemResponse(BaseModel):
    index: int
    match_id: Optional[int] = None
    ok: bool
    error: Optional[str] = None
    error_type: Optional[str] = None
    match: Optional[MatchResponse] = None


def _sets(payload: ResultSubmit) -> List[Dict[str, Any]]:
    return [s.model_dump() for s in payload.sets]


@router.get("/matches/{match_id}", response_model=MatchResponse)
def get_match(match_id: int, session: Session = Depends(get_session)):
    with engine_errors():
        return match_to_response(match_ledger.get_match(session, match_id))


@router.post("/matches/{match_id}/start", response_model=MatchResponse)
def start_match(match_id: int, session: Session = Depends(get_session)):
    with engine_errors():
        return match_to_response(match_ledger.start_match(session, match_id))


@router.post("/matches/{match_id}/result", response_model=MatchResponse)
def record_result(match_id: int, payload: ResultSubmit, session: Session = Depends(get_session)):
    with engine_errors():
        match = match_ledger.record_result(session, match_id, _sets(payload), payload.expected_version)
    return match_to_response(match)


@router.put("/matches/{match_id}/result", response_model=MatchResponse)
def correct_result(match_id: int, payload: ResultSubmit, session: Session = Depends(get_session)):
    with engine_errors():
        match = match_ledger.correct_result(session, match_id, _sets(payload), payload.expected_version)
    return match_to_response(match)


@router.post("/matches/{match_id}/void", response_model=MatchResponse)
def void_result(
    match_id: int,
    payload: Optional[VersionGuard] = None,
    session: Session = Depends(get_session),
):
    expected = payload.expected_version if payload else None
    with engine_errors():
        match = match_ledger.void_result(session, match_id, expected)
    return match_to_response(match)


@router.post("/results/batch", response_model=List[BatchItemResponse])
def record_results_batch(payload: List[BatchEntry], session: Session = Depends(get_session)):
    """Per-item outcome; rejected entries never block the valid ones."""
    items = match_ledger.record_results_batch(session, [e.model_dump() for e in payload])
    return [
        BatchItemResponse(
            index=item.index,
            match_id=item.match_id,
            ok=item.ok,
            error=item.error,
            error_type=item.error_type,
            match=match_to_response(item.match) if item.match else None,
        )
        for item in items
    ]


@router.get("/tournaments/{tournament_id}/matches", response_model=List[MatchResponse])
def list_matches(tournament_id: int, stage: Optional[str] = None, session: Session = Depends(get_session)):
    with engine_errors():
        match_ledger.get_tournament(session, tournament_id)
    query = select(Match).where(Match.tournament_id == tournament_id)
    if stage:
        if stage not in ("GROUP", "ELIMINATION"):
            raise HTTPException(status_code=422, detail="stage must be GROUP or ELIMINATION")
        query = query.where(Match.stage == stage)
    query = query.order_by(col(Match.stage).desc(), Match.group_id, Match.round_number, Match.sequence_in_round)
    matches = session.exec(query).all()
    return [match_to_response(m) for m in matches]
