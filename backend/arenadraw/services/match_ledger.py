"""
Match Ledger: The single source of truth for results.

Every write is a compare-and-set on Match.version:

    UPDATE match SET ..., version = v + 1 WHERE id = :id AND version = v

A writer whose pre-image is stale (another request completed, voided or
corrected the match first) matches zero rows and gets MatchAlreadyCompleted.
Callers may also pass the version they displayed (expected_version) so a
result typed against an outdated screen is refused the same way.

Stats and standings are never touched here; they are recomputed from the
completed matches on read.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import update
from sqlmodel import Session

from arenadraw.config import TournamentRules
from arenadraw.exceptions import EngineError, MatchAlreadyCompleted, MatchNotReady, NotFound
from arenadraw.models.match import STATUS_COMPLETED, STATUS_IN_PROGRESS, STATUS_PENDING, Match
from arenadraw.models.pair import STAGE_ELIMINATION, STAGE_GROUP
from arenadraw.models.tournament import Tournament
from arenadraw.services import advancement_service
from arenadraw.services.set_rules import SIDE_A, decide_match, sets_to_json

logger = logging.getLogger(__name__)


def get_tournament(session: Session, tournament_id: int) -> Tournament:
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise NotFound(f"Tournament {tournament_id} not found")
    return tournament


def tournament_rules(tournament: Tournament) -> TournamentRules:
    return TournamentRules.from_overrides(tournament.rules_json)


def get_match(session: Session, match_id: int) -> Match:
    match = session.get(Match, match_id)
    if not match:
        raise NotFound(f"Match {match_id} not found")
    return match


def _check_expected_version(match: Match, expected_version: Optional[int]) -> None:
    if expected_version is not None and expected_version != match.version:
        raise MatchAlreadyCompleted(
            f"Match {match.match_code} changed since version {expected_version} (now {match.version})"
        )


def _compare_and_set(session: Session, match: Match, **values: Any) -> Match:
    expected = match.version
    result = session.execute(
        update(Match)
        .where(Match.id == match.id, Match.version == expected)
        .values(version=expected + 1, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise MatchAlreadyCompleted(f"Match {match.match_code} was changed by another writer")
    session.refresh(match)
    return match


def _apply_record(session: Session, match: Match, raw_sets: Any) -> Match:
    if match.status == STATUS_COMPLETED:
        raise MatchAlreadyCompleted(f"Match {match.match_code} is already completed; void it first")
    if match.pair_a_id is None or match.pair_b_id is None:
        raise MatchNotReady(f"Match {match.match_code} is waiting for both sides")

    rules = tournament_rules(get_tournament(session, match.tournament_id))
    outcome = decide_match(raw_sets, rules)
    now = datetime.now(timezone.utc)

    _compare_and_set(
        session,
        match,
        status=STATUS_COMPLETED,
        sets_json=sets_to_json(outcome.sets),
        winner_pair_id=match.pair_a_id if outcome.winner_side == SIDE_A else match.pair_b_id,
        started_at=match.started_at or now,
        completed_at=now,
    )
    if match.stage == STAGE_ELIMINATION:
        advancement_service.apply_advancement(session, match)
    return match


def _apply_void(session: Session, match: Match) -> Match:
    if match.stage == STAGE_ELIMINATION and match.status == STATUS_COMPLETED:
        advancement_service.withdraw_advancement(session, match)
    return _compare_and_set(
        session,
        match,
        status=STATUS_PENDING,
        sets_json=None,
        winner_pair_id=None,
        started_at=None,
        completed_at=None,
    )


def record_result(
    session: Session,
    match_id: int,
    sets: Any,
    expected_version: Optional[int] = None,
) -> Match:
    """
    Validate the sets, complete the match and, for elimination matches,
    advance the winner.

    Raises:
        NotFound, InvalidSetResult, MatchNotReady, MatchAlreadyCompleted
    """
    match = get_match(session, match_id)
    _check_expected_version(match, expected_version)
    try:
        _apply_record(session, match, sets)
        session.commit()
    except Exception:
        session.rollback()
        raise
    session.refresh(match)
    logger.info("Recorded %s: %s, winner pair %s", match.match_code, match.sets_json, match.winner_pair_id)
    return match


def void_result(session: Session, match_id: int, expected_version: Optional[int] = None) -> Match:
    """
    Return a match to pending, clearing sets and winner. A pending match is
    returned unchanged.

    Raises:
        NotFound, MatchAlreadyCompleted (stale), BracketAlreadyInProgress (the
            parent bracket match has started, or a group result once a bracket exists)
    """
    match = get_match(session, match_id)
    _check_expected_version(match, expected_version)
    if match.status == STATUS_PENDING:
        return match
    if match.stage == STAGE_GROUP:
        advancement_service.require_no_bracket(session, match.tournament_id, "void a group result")
    try:
        _apply_void(session, match)
        session.commit()
    except Exception:
        session.rollback()
        raise
    session.refresh(match)
    logger.info("Voided %s", match.match_code)
    return match


def correct_result(
    session: Session,
    match_id: int,
    sets: Any,
    expected_version: Optional[int] = None,
) -> Match:
    """Void and re-record in one transaction; the old result stays if the new sets are invalid."""
    match = get_match(session, match_id)
    _check_expected_version(match, expected_version)
    if match.stage == STAGE_GROUP:
        advancement_service.require_no_bracket(session, match.tournament_id, "correct a group result")
    try:
        if match.status != STATUS_PENDING:
            _apply_void(session, match)
        _apply_record(session, match, sets)
        session.commit()
    except Exception:
        session.rollback()
        raise
    session.refresh(match)
    logger.info("Corrected %s: %s", match.match_code, match.sets_json)
    return match


def start_match(session: Session, match_id: int) -> Match:
    """pending -> in_progress. Starting an in-progress match is a no-op."""
    match = get_match(session, match_id)
    if match.status == STATUS_COMPLETED:
        raise MatchAlreadyCompleted(f"Match {match.match_code} is already completed")
    if match.status == STATUS_IN_PROGRESS:
        return match
    if match.pair_a_id is None or match.pair_b_id is None:
        raise MatchNotReady(f"Match {match.match_code} is waiting for both sides")
    try:
        _compare_and_set(session, match, status=STATUS_IN_PROGRESS, started_at=datetime.now(timezone.utc))
        session.commit()
    except Exception:
        session.rollback()
        raise
    session.refresh(match)
    logger.info("Started %s", match.match_code)
    return match


@dataclass
class BatchItemResult:
    index: int
    match_id: Optional[int]
    ok: bool
    error: Optional[str] = None
    error_type: Optional[str] = None
    match: Optional[Match] = None


def record_results_batch(session: Session, entries: Iterable[Dict[str, Any]]) -> List[BatchItemResult]:
    """
    Record many results; each entry is its own transaction.

    Entry shape: {"match_id": int, "sets": ..., "expected_version": int (optional)}.
    A malformed or rejected entry is reported in its item and does not stop
    the rest of the batch.
    """
    results: List[BatchItemResult] = []
    for index, entry in enumerate(entries):
        match_id = entry.get("match_id") if isinstance(entry, dict) else None
        if not isinstance(match_id, int) or "sets" not in entry:
            results.append(
                BatchItemResult(
                    index=index,
                    match_id=match_id,
                    ok=False,
                    error="Entry needs an integer match_id and sets",
                    error_type="InvalidSetResult",
                )
            )
            continue
        try:
            match = record_result(session, match_id, entry["sets"], entry.get("expected_version"))
        except EngineError as exc:
            results.append(
                BatchItemResult(index=index, match_id=match_id, ok=False, error=str(exc), error_type=type(exc).__name__)
            )
            continue
        results.append(BatchItemResult(index=index, match_id=match_id, ok=True, match=match))

    failed = sum(1 for r in results if not r.ok)
    logger.info("Batch of %d result(s): %d recorded, %d rejected", len(results), len(results) - failed, failed)
    return results
