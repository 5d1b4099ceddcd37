"""
Stage orchestration: The DB-backed engine operations.

    partition_groups     entrants -> pairs (fixed) -> groups
    generate_pairing     group -> pending matches
    record/void/correct  delegated to match_ledger
    compute_standings    group -> ordered standings (read-through)
    build_bracket        final group standings -> elimination tree + matches
    discard_bracket      remove the tree while no elimination result exists
    assign_points        closed stage -> placement awards (overwrite)

Generation steps run under a keyed in-process lock and re-check the database
state (completed matches, Group.revision) inside the transaction.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import delete, update
from sqlmodel import Session, col, func, select

from arenadraw import config
from arenadraw.exceptions import (
    BracketAlreadyInProgress,
    GroupAlreadyInProgress,
    IncompleteGroupStage,
    InvalidBracketSize,
    NotFound,
    StageNotClosed,
)
from arenadraw.models.bracket_node import BracketNode
from arenadraw.models.entrant import Entrant
from arenadraw.models.group import Group, GroupMember, group_name
from arenadraw.models.match import STATUS_COMPLETED, Match
from arenadraw.models.pair import STAGE_ELIMINATION, STAGE_GROUP, Pair
from arenadraw.models.partner_history import PartnerHistory
from arenadraw.models.placement_award import PlacementAward
from arenadraw.models.tournament import PairingFormat, Tournament
from arenadraw.services import advancement_service, standings as standings_calc
from arenadraw.services.bracket_builder import BracketTree, Seed, collect_qualifiers
from arenadraw.services.bracket_builder import build_bracket as build_bracket_tree
from arenadraw.services.entrant_pool import (
    EliminationPairingPolicy,
    form_elimination_pairs,
    form_fixed_pairs,
    validate_entrant_pool,
)
from arenadraw.services.group_partitioner import partition_groups as split_into_groups
from arenadraw.services.group_partitioner import resolve_seeding
from arenadraw.services.match_ledger import (  # noqa: F401  re-exported engine operations
    correct_result,
    get_tournament,
    record_result,
    record_results_batch,
    start_match,
    tournament_rules,
    void_result,
)
from arenadraw.services.pairing_generator import RotatingPartnerRoundRobin, generate_pairings
from arenadraw.services.points import (
    PARTICIPATION,
    Placement,
    PointsTable,
    placements_from_bracket,
    placements_from_standings,
    score_placements,
)
from arenadraw.services.set_rules import SIDE_A, SIDE_B, coerce_sets
from arenadraw.services.standings import Standing
from arenadraw.services.stats import MatchRecord
from arenadraw.utils.locks import keyed_lock

logger = logging.getLogger(__name__)

STATUS_GROUP_STAGE = "group_stage"
STATUS_ELIMINATION = "elimination"
STATUS_CLOSED = "closed"


def _is_rotating(tournament: Tournament) -> bool:
    return PairingFormat(tournament.pairing_format) == PairingFormat.rotating_partner


def get_group(session: Session, group_id: int) -> Group:
    group = session.get(Group, group_id)
    if not group:
        raise NotFound(f"Group {group_id} not found")
    return group


def list_groups(session: Session, tournament_id: int) -> List[Group]:
    return session.exec(
        select(Group).where(Group.tournament_id == tournament_id).order_by(Group.label)
    ).all()


def group_members(session: Session, group_id: int) -> List[GroupMember]:
    return session.exec(
        select(GroupMember).where(GroupMember.group_id == group_id).order_by(GroupMember.position)
    ).all()


def group_matches(session: Session, group_id: int) -> List[Match]:
    return session.exec(
        select(Match)
        .where(Match.group_id == group_id)
        .order_by(Match.round_number, Match.sequence_in_round)
    ).all()


def _completed_count(session: Session, *conditions) -> int:
    return session.exec(
        select(func.count(Match.id)).where(Match.status == STATUS_COMPLETED, *conditions)
    ).one()


def _forbidden_partners(session: Session, tournament_id: int) -> List[Tuple[int, int]]:
    rows = session.exec(select(PartnerHistory).where(PartnerHistory.tournament_id == tournament_id)).all()
    return [(r.entrant_a_id, r.entrant_b_id) for r in rows]


# =============================================================================
# Groups
# =============================================================================


def _delete_group_stage(session: Session, tournament_id: int) -> None:
    group_ids = [g.id for g in list_groups(session, tournament_id)]
    if group_ids:
        session.execute(delete(GroupMember).where(col(GroupMember.group_id).in_(group_ids)))
        session.execute(delete(Match).where(col(Match.group_id).in_(group_ids)))
        session.execute(delete(Group).where(col(Group.id).in_(group_ids)))
    session.execute(delete(Pair).where(Pair.tournament_id == tournament_id, Pair.stage == STAGE_GROUP))
    session.flush()


def partition_groups(session: Session, tournament_id: int, seeding: Any = None) -> List[Group]:
    """
    Split the eligible entrants into balanced groups.

    Fixed-pair tournaments first pair consecutive entrants (registration
    order: seed, then id) and group the pairs; rotating-partner tournaments
    group the entrants. Re-partitioning replaces the previous groups while no
    group match is completed.

    Raises:
        BracketAlreadyInProgress: a bracket exists for the tournament
        GroupAlreadyInProgress: a match is completed
    """
    seeding_policy = resolve_seeding(seeding)
    with keyed_lock(("tournament", tournament_id)):
        tournament = get_tournament(session, tournament_id)
        rules = tournament_rules(tournament)
        rotating = _is_rotating(tournament)

        advancement_service.require_no_bracket(session, tournament_id, "redraw the groups")
        if _completed_count(session, Match.tournament_id == tournament_id) > 0:
            raise GroupAlreadyInProgress("Groups cannot be redrawn once a result has been recorded")

        entrants = session.exec(
            select(Entrant)
            .where(Entrant.tournament_id == tournament_id)
            .order_by(col(Entrant.seed).is_(None), Entrant.seed, Entrant.id)
        ).all()
        eligible = validate_entrant_pool(entrants, rules, PairingFormat(tournament.pairing_format))

        try:
            _delete_group_stage(session, tournament_id)

            if rotating:
                items = [e.id for e in eligible]
            else:
                pairs = []
                for a, b in form_fixed_pairs([e.id for e in eligible], _forbidden_partners(session, tournament_id)):
                    pair = Pair(tournament_id=tournament_id, entrant_a_id=a, entrant_b_id=b, stage=STAGE_GROUP)
                    session.add(pair)
                    pairs.append(pair)
                session.flush()
                items = [p.id for p in pairs]

            buckets = split_into_groups(items, rules.min_per_group, rules.max_per_group, seeding_policy)
            if rotating:
                rotation = RotatingPartnerRoundRobin()
                for bucket in buckets:
                    rotation.full_round_count(len(bucket))

            groups: List[Group] = []
            for label, bucket in enumerate(buckets, start=1):
                group = Group(tournament_id=tournament_id, label=label, name=group_name(label))
                session.add(group)
                session.flush()
                for position, item in enumerate(bucket):
                    session.add(
                        GroupMember(
                            group_id=group.id,
                            position=position,
                            pair_id=None if rotating else item,
                            entrant_id=item if rotating else None,
                        )
                    )
                groups.append(group)

            tournament.status = STATUS_GROUP_STAGE
            session.add(tournament)
            session.commit()
        except Exception:
            session.rollback()
            raise

    for group in groups:
        session.refresh(group)
    logger.info(
        "Tournament %s: %d %s split into groups of %s",
        tournament_id,
        len(items),
        "entrants" if rotating else "pairs",
        [len(b) for b in buckets],
    )
    return groups


# =============================================================================
# Pairing
# =============================================================================


def _positions_of(members: Sequence[GroupMember]) -> Dict[int, int]:
    return {m.entrant_id: m.position for m in members if m.entrant_id is not None}


def generate_pairing(session: Session, group_id: int) -> List[Match]:
    """
    Create the group's pending matches. Regenerating before any result
    replaces them with the same list.

    Raises:
        BracketAlreadyInProgress: a bracket exists for the tournament
        GroupAlreadyInProgress: a group match is completed, or another writer
            regenerated the group concurrently
        PartnerConflict / InvalidGroupConfiguration: no valid schedule
    """
    with keyed_lock(("group", group_id)):
        group = get_group(session, group_id)
        tournament = get_tournament(session, group.tournament_id)
        rules = tournament_rules(tournament)
        rotating = _is_rotating(tournament)

        advancement_service.require_no_bracket(session, tournament.id, f"regenerate {group.name}")
        if _completed_count(session, Match.group_id == group_id) > 0:
            raise GroupAlreadyInProgress(f"{group.name} already has a completed match")

        members = group_members(session, group_id)
        size = len(members)
        rounds = None
        forbidden: List[Tuple[int, int]] = []
        if rotating:
            full = RotatingPartnerRoundRobin().full_round_count(size)
            if rules.rotation_rounds is not None and rules.rotation_rounds < full:
                rounds = rules.rotation_rounds
            positions = _positions_of(members)
            forbidden = [
                (positions[a], positions[b])
                for a, b in _forbidden_partners(session, tournament.id)
                if a in positions and b in positions
            ]

        plan = generate_pairings(PairingFormat(tournament.pairing_format), size, rounds, forbidden)
        expected_revision = group.revision

        try:
            old_ids = [m.id for m in group_matches(session, group_id)]
            if old_ids:
                session.execute(delete(Pair).where(col(Pair.match_id).in_(old_ids)))
                session.execute(delete(Match).where(col(Match.id).in_(old_ids)))
                session.flush()

            created: List[Match] = []
            for planned in plan.matches:
                match = Match(
                    tournament_id=tournament.id,
                    group_id=group_id,
                    stage=STAGE_GROUP,
                    match_code=f"G{group.label}-R{planned.round_number}-M{planned.sequence_in_round}",
                    round_number=planned.round_number,
                    sequence_in_round=planned.sequence_in_round,
                )
                if not rotating:
                    match.pair_a_id = members[planned.side_a[0]].pair_id
                    match.pair_b_id = members[planned.side_b[0]].pair_id
                session.add(match)
                session.flush()
                if rotating:
                    # Ephemeral pairs live exactly as long as their match
                    sides = []
                    for side in (planned.side_a, planned.side_b):
                        a, b = sorted(members[p].entrant_id for p in side)
                        pair = Pair(
                            tournament_id=tournament.id,
                            entrant_a_id=a,
                            entrant_b_id=b,
                            stage=STAGE_GROUP,
                            match_id=match.id,
                        )
                        session.add(pair)
                        sides.append(pair)
                    session.flush()
                    match.pair_a_id, match.pair_b_id = sides[0].id, sides[1].id
                    session.add(match)
                created.append(match)

            result = session.execute(
                update(Group)
                .where(Group.id == group_id, Group.revision == expected_revision)
                .values(revision=expected_revision + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise GroupAlreadyInProgress(f"{group.name} was regenerated by another request")
            session.commit()
        except Exception:
            session.rollback()
            raise

    logger.info(
        "%s: generated %d matches over %d rounds (%s)",
        group.name,
        len(created),
        plan.rounds,
        plan.source,
    )
    return group_matches(session, group_id)


# =============================================================================
# Standings
# =============================================================================


def _match_records(session: Session, matches: Sequence[Match], rotating: bool) -> List[MatchRecord]:
    records: List[MatchRecord] = []
    for m in matches:
        if m.status != STATUS_COMPLETED or m.pair_a_id is None or m.pair_b_id is None:
            continue
        if rotating:
            pair_a, pair_b = session.get(Pair, m.pair_a_id), session.get(Pair, m.pair_b_id)
            side_a = (pair_a.entrant_a_id, pair_a.entrant_b_id)
            side_b = (pair_b.entrant_a_id, pair_b.entrant_b_id)
        else:
            side_a, side_b = (m.pair_a_id,), (m.pair_b_id,)
        records.append(
            MatchRecord(
                match_id=m.id,
                side_a=side_a,
                side_b=side_b,
                sets=tuple(coerce_sets(m.sets_json or [])),
                winner_side=SIDE_A if m.winner_pair_id == m.pair_a_id else SIDE_B,
            )
        )
    return records


def compute_standings(session: Session, group_id: int) -> List[Standing]:
    """Fully ordered standings of one group, recomputed from its completed matches."""
    group = get_group(session, group_id)
    tournament = get_tournament(session, group.tournament_id)
    rules = tournament_rules(tournament)
    rotating = _is_rotating(tournament)

    members = group_members(session, group_id)
    competitor_ids = [m.competitor_id for m in members]
    records = _match_records(session, group_matches(session, group_id), rotating)
    return standings_calc.compute_standings(
        competitor_ids,
        records,
        criteria_names=rules.tiebreak_criteria,
        scope=f"group:{group.id}",
        draw_seed=config.DRAW_SEED,
    )


def standings_by_group(session: Session, tournament_id: int) -> Dict[int, List[Standing]]:
    return {g.label: compute_standings(session, g.id) for g in list_groups(session, tournament_id)}


def _require_group_stage_complete(session: Session, tournament_id: int) -> List[Group]:
    groups = list_groups(session, tournament_id)
    if not groups:
        raise IncompleteGroupStage("No groups have been drawn")
    for group in groups:
        matches = group_matches(session, group.id)
        if not matches:
            raise IncompleteGroupStage(f"{group.name} has no matches yet")
        open_matches = [m.match_code for m in matches if m.status != STATUS_COMPLETED]
        if open_matches:
            raise IncompleteGroupStage(f"{group.name} still has unresolved matches: {', '.join(open_matches)}")
    return groups


# =============================================================================
# Bracket
# =============================================================================


def _next_power_of_two(n: int) -> int:
    size = 2
    while size < n:
        size *= 2
    return size


def _elimination_matches(session: Session, tournament_id: int) -> List[Match]:
    return session.exec(
        select(Match)
        .where(Match.tournament_id == tournament_id, Match.stage == STAGE_ELIMINATION)
        .order_by(Match.round_number, Match.sequence_in_round)
    ).all()


def _delete_bracket(session: Session, tournament_id: int) -> int:
    rows = advancement_service.bracket_rows(session, tournament_id)
    session.execute(delete(BracketNode).where(BracketNode.tournament_id == tournament_id))
    session.execute(delete(Match).where(Match.tournament_id == tournament_id, Match.stage == STAGE_ELIMINATION))
    session.execute(delete(Pair).where(Pair.tournament_id == tournament_id, Pair.stage == STAGE_ELIMINATION))
    session.flush()
    return len(rows)


def _seed_pairs(
    session: Session,
    tournament: Tournament,
    qualifiers: List[Seed],
    policy: str,
) -> List[Seed]:
    """Rotating formats: pair the qualified individuals and seed the pairs by strength."""
    pair_ids = []
    for a, b in form_elimination_pairs([q.competitor_id for q in qualifiers], EliminationPairingPolicy(policy)):
        pair = Pair(tournament_id=tournament.id, entrant_a_id=a, entrant_b_id=b, stage=STAGE_ELIMINATION)
        session.add(pair)
        pair_ids.append(pair)
    session.flush()
    return [Seed(seed=i, competitor_id=p.id) for i, p in enumerate(pair_ids, start=1)]


def _persist_tree(session: Session, tournament_id: int, tree: BracketTree) -> None:
    rows: List[BracketNode] = []
    for spec in tree.nodes:
        row = BracketNode(
            tournament_id=tournament_id,
            round_number=spec.round_number,
            position=spec.position,
            seed_a=spec.seed_a.seed if spec.seed_a else None,
            seed_b=spec.seed_b.seed if spec.seed_b else None,
            pair_a_id=spec.competitor_a,
            pair_b_id=spec.competitor_b,
            is_bye=spec.is_bye,
            winner_pair_id=spec.winner,
            parent_slot=spec.parent_slot,
        )
        session.add(row)
        rows.append(row)
    session.flush()

    for spec, row in zip(tree.nodes, rows):
        row.feeder_a_node_id = rows[spec.feeder_a].id if spec.feeder_a is not None else None
        row.feeder_b_node_id = rows[spec.feeder_b].id if spec.feeder_b is not None else None
        row.parent_node_id = rows[spec.parent].id if spec.parent is not None else None
        if not spec.is_bye:
            match = Match(
                tournament_id=tournament_id,
                group_id=None,
                stage=STAGE_ELIMINATION,
                match_code=f"E-R{spec.round_number}-M{spec.position + 1}",
                round_number=spec.round_number,
                sequence_in_round=spec.position + 1,
                pair_a_id=spec.competitor_a,
                pair_b_id=spec.competitor_b,
                bracket_node_id=row.id,
            )
            session.add(match)
            session.flush()
            row.match_id = match.id
            spec.match_id = match.id
        session.add(row)
    session.flush()


def build_bracket(
    session: Session,
    tournament_id: int,
    bracket_size: Optional[int] = None,
    qualifiers_per_group: Optional[int] = None,
) -> BracketTree:
    """
    Seed the qualifiers of every group into a single-elimination bracket.

    bracket_size defaults to the smallest power of two holding every
    qualifier. Rebuilding replaces the tree while no elimination match is
    completed.

    Raises:
        IncompleteGroupStage, BracketAlreadyInProgress, InvalidBracketSize
    """
    with keyed_lock(("bracket", tournament_id)):
        tournament = get_tournament(session, tournament_id)
        if not tournament.has_elimination:
            raise InvalidBracketSize(f"Tournament {tournament_id} is round-robin only")
        rules = tournament_rules(tournament)
        qualifiers_per_group = qualifiers_per_group or rules.qualifiers_per_group

        _require_group_stage_complete(session, tournament_id)
        if _completed_count(session, Match.tournament_id == tournament_id, Match.stage == STAGE_ELIMINATION) > 0:
            raise BracketAlreadyInProgress("The bracket already has results; void them before rebuilding")

        qualifiers = collect_qualifiers(standings_by_group(session, tournament_id), qualifiers_per_group)

        try:
            replaced = _delete_bracket(session, tournament_id)
            if _is_rotating(tournament):
                seeds = _seed_pairs(session, tournament, qualifiers, rules.elimination_pairing)
            else:
                seeds = qualifiers
            size = bracket_size or _next_power_of_two(len(seeds))
            tree = build_bracket_tree(seeds, size)
            _persist_tree(session, tournament_id, tree)
            tournament.status = STATUS_ELIMINATION
            session.add(tournament)
            session.commit()
        except Exception:
            session.rollback()
            raise

    logger.info(
        "Tournament %s: %s %d-slot bracket for %d seeds",
        tournament_id,
        "rebuilt" if replaced else "built",
        size,
        len(seeds),
    )
    return get_bracket(session, tournament_id)


def discard_bracket(session: Session, tournament_id: int) -> int:
    """Delete the bracket and its matches. Returns the number of nodes removed."""
    with keyed_lock(("bracket", tournament_id)):
        tournament = get_tournament(session, tournament_id)
        if _completed_count(session, Match.tournament_id == tournament_id, Match.stage == STAGE_ELIMINATION) > 0:
            raise BracketAlreadyInProgress("The bracket already has results; void them before discarding")
        try:
            removed = _delete_bracket(session, tournament_id)
            tournament.status = STATUS_GROUP_STAGE
            session.add(tournament)
            session.commit()
        except Exception:
            session.rollback()
            raise
    logger.info("Tournament %s: discarded bracket (%d nodes)", tournament_id, removed)
    return removed


def get_bracket(session: Session, tournament_id: int) -> BracketTree:
    get_tournament(session, tournament_id)
    rows = advancement_service.bracket_rows(session, tournament_id)
    if not rows:
        raise NotFound(f"Tournament {tournament_id} has no bracket")
    return advancement_service.tree_from_rows(rows)


# =============================================================================
# Points
# =============================================================================


@dataclass
class _Competitor:
    pair_id: Optional[int] = None
    entrant_id: Optional[int] = None


def overall_order(session: Session, tournament_id: int) -> List[int]:
    """Round-robin-only final order: group winners first, then runners-up, ..."""
    by_group = standings_by_group(session, tournament_id)
    deepest = max((len(rows) for rows in by_group.values()), default=0)
    if deepest == 0:
        return []
    return [s.competitor_id for s in collect_qualifiers(by_group, deepest)]


def assign_points(
    session: Session,
    tournament_id: int,
    points_table: Optional[Dict[str, int]] = None,
) -> List[PlacementAward]:
    """
    Award points for the closed stage, replacing any previous awards.

    Raises:
        StageNotClosed: final not played, or (round-robin only) group matches open
    """
    tournament = get_tournament(session, tournament_id)
    rules = tournament_rules(tournament)
    table = PointsTable(points_table if points_table is not None else rules.points_table)
    rotating = _is_rotating(tournament)

    groups = list_groups(session, tournament_id)
    group_competitors: List[int] = []
    for group in groups:
        group_competitors.extend(m.competitor_id for m in group_members(session, group.id))

    def group_kind(cid: int) -> _Competitor:
        return _Competitor(entrant_id=cid) if rotating else _Competitor(pair_id=cid)

    attributed: List[Tuple[_Competitor, Placement]] = []
    if tournament.has_elimination:
        try:
            tree = get_bracket(session, tournament_id)
        except NotFound:
            raise StageNotClosed("The elimination bracket has not been built") from None
        if rotating:
            placements = placements_from_bracket(tree)
            attributed = [(_Competitor(pair_id=p.competitor_id), p) for p in placements]
            in_bracket = set()
            for p in placements:
                pair = session.get(Pair, p.competitor_id)
                in_bracket.update(pair.entrant_ids)
            attributed.extend(
                (group_kind(cid), Placement(competitor_id=cid, tier=PARTICIPATION))
                for cid in group_competitors
                if cid not in in_bracket
            )
        else:
            placements = placements_from_bracket(tree, participants=group_competitors)
            attributed = [(group_kind(p.competitor_id), p) for p in placements]
    else:
        try:
            _require_group_stage_complete(session, tournament_id)
        except IncompleteGroupStage as exc:
            raise StageNotClosed(str(exc)) from None
        placements = placements_from_standings(overall_order(session, tournament_id), rules.standing_tiers)
        attributed = [(group_kind(p.competitor_id), p) for p in placements]

    try:
        session.execute(delete(PlacementAward).where(PlacementAward.tournament_id == tournament_id))
        awards: List[PlacementAward] = []
        scored = score_placements([p for _, p in attributed], table)
        for (competitor, _), (placement, points) in zip(attributed, scored):
            award = PlacementAward(
                tournament_id=tournament_id,
                pair_id=competitor.pair_id,
                entrant_id=competitor.entrant_id,
                tier=placement.tier,
                points=points,
            )
            session.add(award)
            awards.append(award)
        tournament.status = STATUS_CLOSED
        session.add(tournament)
        session.commit()
    except Exception:
        session.rollback()
        raise

    for award in awards:
        session.refresh(award)
    logger.info("Tournament %s: assigned points to %d competitors", tournament_id, len(awards))
    return awards


def list_awards(session: Session, tournament_id: int) -> List[PlacementAward]:
    return session.exec(
        select(PlacementAward)
        .where(PlacementAward.tournament_id == tournament_id)
        .order_by(col(PlacementAward.points).desc(), PlacementAward.id)
    ).all()
