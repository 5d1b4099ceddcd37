from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, field_validator
from sqlmodel import Session, select

from arenadraw.config import TournamentRules
from arenadraw.database import get_session
from arenadraw.models.entrant import GENDERS, SKILL_LEVELS, Entrant
from arenadraw.models.partner_history import PartnerHistory
from arenadraw.models.tournament import PairingFormat, Tournament

router = APIRouter()


class TournamentCreate(BaseModel):
    name: str
    pairing_format: PairingFormat = PairingFormat.fixed_pair
    has_elimination: bool = True
    rules: Optional[Dict[str, Any]] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name is required")
        return v.strip()

    @field_validator("rules")
    @classmethod
    def validate_rules(cls, v):
        if v:
            TournamentRules.from_overrides(v)
        return v


class TournamentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    pairing_format: PairingFormat
    has_elimination: bool
    status: str
    rules_json: Optional[Dict[str, Any]] = None
    created_at: datetime


class EntrantCreate(BaseModel):
    name: str
    skill_level: str = "intermediate"
    gender: Optional[str] = None
    eligible: bool = True
    seed: Optional[int] = None

    @field_validator("skill_level")
    @classmethod
    def validate_skill_level(cls, v):
        if v not in SKILL_LEVELS:
            raise ValueError(f"skill_level must be one of {', '.join(SKILL_LEVELS)}")
        return v

    @field_validator("gender")
    @classmethod
    def validate_gender(cls, v):
        if v is not None and v not in GENDERS:
            raise ValueError(f"gender must be one of {', '.join(GENDERS)}")
        return v


class EntrantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tournament_id: int
    name: str
    skill_level: str
    gender: Optional[str] = None
    eligible: bool
    seed: Optional[int] = None


class PartnerHistoryCreate(BaseModel):
    entrant_a_id: int
    entrant_b_id: int


def _get_tournament_or_404(session: Session, tournament_id: int) -> Tournament:
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail="Tournament not found")
    return tournament


@router.post("/tournaments", response_model=TournamentResponse, status_code=201)
def create_tournament(payload: TournamentCreate, session: Session = Depends(get_session)):
    tournament = Tournament(
        name=payload.name,
        pairing_format=payload.pairing_format.value,
        has_elimination=payload.has_elimination,
        rules_json=payload.rules,
    )
    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    return tournament


@router.get("/tournaments/{tournament_id}", response_model=TournamentResponse)
def get_tournament(tournament_id: int, session: Session = Depends(get_session)):
    return _get_tournament_or_404(session, tournament_id)


@router.post(
    "/tournaments/{tournament_id}/entrants",
    response_model=List[EntrantResponse],
    status_code=201,
)
def add_entrants(
    tournament_id: int,
    payload: List[EntrantCreate],
    session: Session = Depends(get_session),
):
    """Register entrants in bulk. Entrants are frozen once groups are drawn."""
    tournament = _get_tournament_or_404(session, tournament_id)
    if tournament.status != "registration":
        raise HTTPException(status_code=409, detail="Entrants are frozen once the group stage starts")

    existing = set(session.exec(select(Entrant.name).where(Entrant.tournament_id == tournament_id)).all())
    names = [e.name for e in payload]
    duplicates = sorted({n for n in names if n in existing or names.count(n) > 1})
    if duplicates:
        raise HTTPException(status_code=422, detail=f"Duplicate entrant name(s): {', '.join(duplicates)}")

    entrants = [Entrant(tournament_id=tournament_id, **e.model_dump()) for e in payload]
    session.add_all(entrants)
    session.commit()
    for e in entrants:
        session.refresh(e)
    return entrants


@router.get("/tournaments/{tournament_id}/entrants", response_model=List[EntrantResponse])
def list_entrants(tournament_id: int, session: Session = Depends(get_session)):
    _get_tournament_or_404(session, tournament_id)
    return session.exec(select(Entrant).where(Entrant.tournament_id == tournament_id).order_by(Entrant.id)).all()


@router.post("/tournaments/{tournament_id}/partner-history", status_code=201)
def add_partner_history(
    tournament_id: int,
    payload: List[PartnerHistoryCreate],
    session: Session = Depends(get_session),
):
    """Record earlier partnerships so rotations and fixed pairs never repeat them."""
    _get_tournament_or_404(session, tournament_id)
    added = 0
    for item in payload:
        if item.entrant_a_id == item.entrant_b_id:
            raise HTTPException(status_code=422, detail="An entrant cannot partner themselves")
        a, b = sorted((item.entrant_a_id, item.entrant_b_id))
        exists = session.exec(
            select(PartnerHistory).where(
                PartnerHistory.tournament_id == tournament_id,
                PartnerHistory.entrant_a_id == a,
                PartnerHistory.entrant_b_id == b,
            )
        ).first()
        if not exists:
            session.add(PartnerHistory(tournament_id=tournament_id, entrant_a_id=a, entrant_b_id=b))
            added += 1
    session.commit()
    return {"added": added}
