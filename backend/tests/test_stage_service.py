"""
DB-backed stage operations: partition, pairing, standings, bracket, points.

Fixed-pair tournaments of 12 entrants draw 6 pairs (E1+E2, E3+E4, ...) into
two groups of three. Group matches are played with "6-4", so side A (the
lower draw position) always wins and each group finishes in draw order.
"""
from collections import Counter

import pytest
from sqlmodel import Session, select

from arenadraw.exceptions import (
    BracketAlreadyInProgress,
    GroupAlreadyInProgress,
    IncompleteGroupStage,
    InsufficientEntrants,
    InvalidBracketSize,
    MatchNotReady,
    NotFound,
    OddEntrantCount,
    PartnerConflict,
    StageNotClosed,
)
from arenadraw.models.entrant import Entrant
from arenadraw.models.match import STATUS_PENDING, Match
from arenadraw.models.pair import STAGE_ELIMINATION, Pair
from arenadraw.models.partner_history import PartnerHistory
from arenadraw.models.placement_award import PlacementAward
from arenadraw.models.tournament import PairingFormat
from arenadraw.services import stage_service


def member_ids(session, group):
    return [m.competitor_id for m in stage_service.group_members(session, group.id)]


def draw_and_pair(session, tournament_id):
    groups = stage_service.partition_groups(session, tournament_id)
    for group in groups:
        stage_service.generate_pairing(session, group.id)
    return groups


def play_groups(session, tournament_id, sets="6-4"):
    for group in stage_service.list_groups(session, tournament_id):
        for match in stage_service.group_matches(session, group.id):
            if match.status != "completed":
                stage_service.record_result(session, match.id, sets)


def elimination_match(session, tournament_id, code):
    return session.exec(
        select(Match).where(Match.tournament_id == tournament_id, Match.match_code == code)
    ).one()


class TestPartition:
    def test_fixed_pairs_then_groups(self, session: Session, make_tournament):
        tournament = make_tournament(12)
        groups = stage_service.partition_groups(session, tournament.id)

        assert [g.name for g in groups] == ["Group A", "Group B"]
        assert [len(member_ids(session, g)) for g in groups] == [3, 3]
        pairs = session.exec(select(Pair).order_by(Pair.id)).all()
        names = {e.id: e.name for e in session.exec(select(Entrant)).all()}
        assert [(names[p.entrant_a_id], names[p.entrant_b_id]) for p in pairs][:2] == [("E1", "E2"), ("E3", "E4")]
        assert member_ids(session, groups[0]) == [p.id for p in pairs[:3]]
        session.refresh(tournament)
        assert tournament.status == "group_stage"

    def test_rotating_groups_entrants(self, session: Session, make_tournament):
        tournament = make_tournament(12, pairing_format=PairingFormat.rotating_partner)
        groups = stage_service.partition_groups(session, tournament.id)

        assert [len(member_ids(session, g)) for g in groups] == [4, 4, 4]
        members = stage_service.group_members(session, groups[0].id)
        assert all(m.entrant_id is not None and m.pair_id is None for m in members)
        assert session.exec(select(Pair)).all() == []

    def test_snake_seeding(self, session: Session, make_tournament):
        tournament = make_tournament(12, pairing_format=PairingFormat.rotating_partner)
        groups = stage_service.partition_groups(session, tournament.id, seeding="snake")
        seeds = {e.id: e.seed for e in session.exec(select(Entrant)).all()}
        assert [seeds[cid] for cid in member_ids(session, groups[0])] == [1, 6, 7, 12]

    def test_too_few_entrants(self, session: Session, make_tournament):
        tournament = make_tournament(10)
        with pytest.raises(InsufficientEntrants):
            stage_service.partition_groups(session, tournament.id)

    def test_odd_count_for_fixed_pairs(self, session: Session, make_tournament):
        tournament = make_tournament(13)
        with pytest.raises(OddEntrantCount):
            stage_service.partition_groups(session, tournament.id)

    def test_ineligible_entrants_skipped(self, session: Session, make_tournament):
        tournament = make_tournament(13)
        e13 = session.exec(select(Entrant).where(Entrant.name == "E13")).one()
        e13.eligible = False
        session.add(e13)
        session.commit()
        groups = stage_service.partition_groups(session, tournament.id)
        assert sum(len(member_ids(session, g)) for g in groups) == 6

    def test_partner_history_blocks_fixed_pair(self, session: Session, make_tournament):
        tournament = make_tournament(12)
        e1, e2 = session.exec(select(Entrant).order_by(Entrant.seed).limit(2)).all()
        session.add(PartnerHistory(tournament_id=tournament.id, entrant_a_id=e1.id, entrant_b_id=e2.id))
        session.commit()
        with pytest.raises(PartnerConflict):
            stage_service.partition_groups(session, tournament.id)

    def test_redraw_replaces_groups(self, session: Session, make_tournament):
        tournament = make_tournament(12)
        draw_and_pair(session, tournament.id)
        groups = stage_service.partition_groups(session, tournament.id)
        assert len(groups) == 2
        assert len(session.exec(select(Pair)).all()) == 6
        assert session.exec(select(Match)).all() == []

    def test_redraw_refused_after_result(self, session: Session, make_tournament):
        tournament = make_tournament(12)
        groups = draw_and_pair(session, tournament.id)
        match = stage_service.group_matches(session, groups[0].id)[0]
        stage_service.record_result(session, match.id, "6-4")
        with pytest.raises(GroupAlreadyInProgress):
            stage_service.partition_groups(session, tournament.id)

    def test_unknown_tournament(self, session: Session):
        with pytest.raises(NotFound):
            stage_service.partition_groups(session, 404)


class TestPairing:
    def test_fixed_round_robin_matches(self, session: Session, make_tournament):
        tournament = make_tournament(12)
        group = stage_service.partition_groups(session, tournament.id)[0]
        matches = stage_service.generate_pairing(session, group.id)

        assert [m.match_code for m in matches] == ["G1-R1-M1", "G1-R2-M1", "G1-R3-M1"]
        pairs = {frozenset((m.pair_a_id, m.pair_b_id)) for m in matches}
        ids = member_ids(session, group)
        assert pairs == {frozenset((a, b)) for i, a in enumerate(ids) for b in ids[i + 1:]}
        assert all(m.status == STATUS_PENDING for m in matches)

    def test_regeneration_is_idempotent(self, session: Session, make_tournament):
        tournament = make_tournament(12)
        group = stage_service.partition_groups(session, tournament.id)[0]
        first = [(m.match_code, m.pair_a_id, m.pair_b_id) for m in stage_service.generate_pairing(session, group.id)]
        second = [(m.match_code, m.pair_a_id, m.pair_b_id) for m in stage_service.generate_pairing(session, group.id)]

        assert first == second
        assert len(session.exec(select(Match)).all()) == 3
        session.refresh(group)
        assert group.revision == 2

    def test_regeneration_refused_after_result(self, session: Session, make_tournament):
        tournament = make_tournament(12)
        group = stage_service.partition_groups(session, tournament.id)[0]
        matches = stage_service.generate_pairing(session, group.id)
        stage_service.record_result(session, matches[0].id, "6-1")

        with pytest.raises(GroupAlreadyInProgress):
            stage_service.generate_pairing(session, group.id)

    def test_regeneration_allowed_again_after_void(self, session: Session, make_tournament):
        tournament = make_tournament(12)
        group = stage_service.partition_groups(session, tournament.id)[0]
        matches = stage_service.generate_pairing(session, group.id)
        stage_service.record_result(session, matches[0].id, "6-1")
        stage_service.void_result(session, matches[0].id)

        assert len(stage_service.generate_pairing(session, group.id)) == 3

    def test_rotating_rotation(self, session: Session, make_tournament):
        tournament = make_tournament(12, pairing_format=PairingFormat.rotating_partner)
        groups = draw_and_pair(session, tournament.id)

        for group in groups:
            matches = stage_service.group_matches(session, group.id)
            assert len(matches) == 3
            partnerships = []
            for m in matches:
                for pair_id in (m.pair_a_id, m.pair_b_id):
                    pair = session.get(Pair, pair_id)
                    assert pair.match_id == m.id
                    partnerships.append(pair.entrant_ids)
            assert len(partnerships) == len(set(partnerships)) == 6
            assert set().union(*partnerships) == set(member_ids(session, group))

    def test_rotating_regeneration_drops_old_pairs(self, session: Session, make_tournament):
        tournament = make_tournament(12, pairing_format=PairingFormat.rotating_partner)
        groups = draw_and_pair(session, tournament.id)
        before = len(session.exec(select(Pair)).all())
        stage_service.generate_pairing(session, groups[0].id)
        assert len(session.exec(select(Pair)).all()) == before == 18

    def test_rotating_partner_history_respected(self, session: Session, make_tournament):
        tournament = make_tournament(16, pairing_format=PairingFormat.rotating_partner, rules={"rotation_rounds": 2})
        groups = stage_service.partition_groups(session, tournament.id)
        a, b = member_ids(session, groups[0])[:2]
        session.add(PartnerHistory(tournament_id=tournament.id, entrant_a_id=a, entrant_b_id=b))
        session.commit()

        matches = stage_service.generate_pairing(session, groups[0].id)
        assert {m.round_number for m in matches} == {1, 2}
        partnerships = [session.get(Pair, pid).entrant_ids for m in matches for pid in (m.pair_a_id, m.pair_b_id)]
        assert frozenset((a, b)) not in partnerships

    def test_rotating_full_rotation_with_history_conflicts(self, session: Session, make_tournament):
        tournament = make_tournament(12, pairing_format=PairingFormat.rotating_partner)
        groups = stage_service.partition_groups(session, tournament.id)
        a, b = sorted(member_ids(session, groups[0])[:2])
        session.add(PartnerHistory(tournament_id=tournament.id, entrant_a_id=a, entrant_b_id=b))
        session.commit()

        with pytest.raises(PartnerConflict):
            stage_service.generate_pairing(session, groups[0].id)


class TestStandings:
    def test_group_finishes_in_draw_order(self, session: Session, make_tournament):
        tournament = make_tournament(12)
        groups = draw_and_pair(session, tournament.id)
        play_groups(session, tournament.id)

        for group in groups:
            standings = stage_service.compute_standings(session, group.id)
            assert [s.competitor_id for s in standings] == member_ids(session, group)
            assert [s.stat.wins for s in standings] == [2, 1, 0]

    def test_rotating_standings_rank_entrants(self, session: Session, make_tournament):
        tournament = make_tournament(12, pairing_format=PairingFormat.rotating_partner)
        groups = draw_and_pair(session, tournament.id)
        play_groups(session, tournament.id)

        standings = stage_service.compute_standings(session, groups[0].id)
        assert sorted(s.competitor_id for s in standings) == sorted(member_ids(session, groups[0]))
        assert all(s.stat.played == 3 for s in standings)
        # Each match credits two winners and two losers
        assert sum(s.stat.wins for s in standings) == 6

    def test_unknown_group(self, session: Session):
        with pytest.raises(NotFound):
            stage_service.compute_standings(session, 12345)


class TestBracket:
    def test_bracket_needs_finished_groups(self, session: Session, make_tournament):
        tournament = make_tournament(12)
        draw_and_pair(session, tournament.id)
        with pytest.raises(IncompleteGroupStage):
            stage_service.build_bracket(session, tournament.id)

    def test_round_robin_only_has_no_bracket(self, session: Session, make_tournament):
        tournament = make_tournament(12, has_elimination=False)
        draw_and_pair(session, tournament.id)
        play_groups(session, tournament.id)
        with pytest.raises(InvalidBracketSize):
            stage_service.build_bracket(session, tournament.id)

    def test_build_seeds_group_winners_apart(self, session: Session, make_tournament):
        tournament = make_tournament(12)
        groups = draw_and_pair(session, tournament.id)
        play_groups(session, tournament.id)
        a1, a2, _ = member_ids(session, groups[0])
        b1, b2, _ = member_ids(session, groups[1])

        tree = stage_service.build_bracket(session, tournament.id)

        assert tree.bracket_size == 4
        assert [(n.competitor_a, n.competitor_b) for n in tree.round_nodes(1)] == [(a1, b2), (b1, a2)]
        assert tree.final.competitor_a is None and tree.final.competitor_b is None
        codes = [m.match_code for m in stage_service._elimination_matches(session, tournament.id)]
        assert codes == ["E-R1-M1", "E-R1-M2", "E-R2-M1"]
        session.refresh(tournament)
        assert tournament.status == "elimination"

    def test_results_advance_and_void_withdraws(self, session: Session, make_tournament):
        tournament = make_tournament(12)
        groups = draw_and_pair(session, tournament.id)
        play_groups(session, tournament.id)
        a1, a2, _ = member_ids(session, groups[0])
        stage_service.build_bracket(session, tournament.id)
        semi_1 = elimination_match(session, tournament.id, "E-R1-M1")
        semi_2 = elimination_match(session, tournament.id, "E-R1-M2")
        final = elimination_match(session, tournament.id, "E-R2-M1")

        with pytest.raises(MatchNotReady):
            stage_service.record_result(session, final.id, "6-4")

        stage_service.record_result(session, semi_1.id, "6-4")
        stage_service.record_result(session, semi_2.id, "4-6")
        session.refresh(final)
        assert (final.pair_a_id, final.pair_b_id) == (a1, a2)
        assert stage_service.get_bracket(session, tournament.id).final.is_ready

        stage_service.void_result(session, semi_1.id)
        session.refresh(final)
        assert final.pair_a_id is None
        assert final.pair_b_id == a2

        stage_service.record_result(session, semi_1.id, "6-2")
        stage_service.start_match(session, final.id)
        with pytest.raises(BracketAlreadyInProgress):
            stage_service.void_result(session, semi_1.id)

        stage_service.record_result(session, final.id, "7-6")
        assert stage_service.get_bracket(session, tournament.id).champion == a1

    def test_rebuild_before_results_only(self, session: Session, make_tournament):
        tournament = make_tournament(12)
        draw_and_pair(session, tournament.id)
        play_groups(session, tournament.id)
        stage_service.build_bracket(session, tournament.id)
        # Three per group: six seeds, two byes
        rebuilt = stage_service.build_bracket(session, tournament.id, qualifiers_per_group=3)
        assert rebuilt.bracket_size == 8
        assert len(stage_service._elimination_matches(session, tournament.id)) == 5

        stage_service.record_result(session, elimination_match(session, tournament.id, "E-R1-M2").id, "6-4")
        with pytest.raises(BracketAlreadyInProgress):
            stage_service.build_bracket(session, tournament.id)
        with pytest.raises(BracketAlreadyInProgress):
            stage_service.discard_bracket(session, tournament.id)

    def test_discard(self, session: Session, make_tournament):
        tournament = make_tournament(12)
        draw_and_pair(session, tournament.id)
        play_groups(session, tournament.id)
        stage_service.build_bracket(session, tournament.id)

        assert stage_service.discard_bracket(session, tournament.id) == 3
        assert stage_service._elimination_matches(session, tournament.id) == []
        with pytest.raises(NotFound):
            stage_service.get_bracket(session, tournament.id)

    def test_group_stage_frozen_while_bracket_exists(self, session: Session, make_tournament):
        tournament = make_tournament(12)
        groups = draw_and_pair(session, tournament.id)
        play_groups(session, tournament.id)
        stage_service.build_bracket(session, tournament.id)
        group_match = stage_service.group_matches(session, groups[0].id)[0]

        with pytest.raises(BracketAlreadyInProgress):
            stage_service.void_result(session, group_match.id)
        with pytest.raises(BracketAlreadyInProgress):
            stage_service.correct_result(session, group_match.id, "4-6")
        with pytest.raises(BracketAlreadyInProgress):
            stage_service.generate_pairing(session, groups[0].id)
        with pytest.raises(BracketAlreadyInProgress):
            stage_service.partition_groups(session, tournament.id)

        session.refresh(group_match)
        assert group_match.status == "completed"
        assert group_match.sets_json == [{"a": 6, "b": 4}]
        assert len(stage_service._elimination_matches(session, tournament.id)) == 3

        # Discarding the bracket reopens the group stage
        stage_service.discard_bracket(session, tournament.id)
        corrected = stage_service.correct_result(session, group_match.id, "4-6")
        assert corrected.winner_pair_id == corrected.pair_b_id
        stage_service.void_result(session, group_match.id)
        with pytest.raises(IncompleteGroupStage):
            stage_service.build_bracket(session, tournament.id)

    def test_bracket_size_too_small(self, session: Session, make_tournament):
        tournament = make_tournament(12)
        draw_and_pair(session, tournament.id)
        play_groups(session, tournament.id)
        with pytest.raises(InvalidBracketSize):
            stage_service.build_bracket(session, tournament.id, bracket_size=16)

    def test_rotating_bracket_pairs_qualifiers(self, session: Session, make_tournament):
        tournament = make_tournament(12, pairing_format=PairingFormat.rotating_partner)
        draw_and_pair(session, tournament.id)
        play_groups(session, tournament.id)

        tree = stage_service.build_bracket(session, tournament.id)

        pairs = session.exec(select(Pair).where(Pair.stage == STAGE_ELIMINATION)).all()
        assert len(pairs) == 3
        assert tree.bracket_size == 4
        assert sum(1 for n in tree.round_nodes(1) if n.is_bye) == 1
        entrants = Counter(e for p in pairs for e in p.entrant_ids)
        assert set(entrants.values()) == {1}


class TestPoints:
    def _finish_fixed(self, session, tournament):
        draw_and_pair(session, tournament.id)
        play_groups(session, tournament.id)
        stage_service.build_bracket(session, tournament.id)
        for code in ("E-R1-M1", "E-R1-M2", "E-R2-M1"):
            stage_service.record_result(session, elimination_match(session, tournament.id, code).id, "6-3")

    def test_points_need_a_final(self, session: Session, make_tournament):
        tournament = make_tournament(12)
        draw_and_pair(session, tournament.id)
        play_groups(session, tournament.id)
        with pytest.raises(StageNotClosed):
            stage_service.assign_points(session, tournament.id)
        stage_service.build_bracket(session, tournament.id)
        with pytest.raises(StageNotClosed):
            stage_service.assign_points(session, tournament.id)

    def test_bracket_tiers(self, session: Session, make_tournament):
        tournament = make_tournament(12)
        self._finish_fixed(session, tournament)

        awards = stage_service.assign_points(session, tournament.id)

        tiers = Counter(a.tier for a in awards)
        assert tiers == Counter(champion=1, runner_up=1, semifinalist=2, participation=2)
        by_tier = {a.tier: a.points for a in awards}
        assert by_tier == {"champion": 100, "runner_up": 70, "semifinalist": 50, "participation": 10}
        session.refresh(tournament)
        assert tournament.status == "closed"

    def test_reassigning_overwrites(self, session: Session, make_tournament):
        tournament = make_tournament(12)
        self._finish_fixed(session, tournament)
        stage_service.assign_points(session, tournament.id)
        stage_service.assign_points(session, tournament.id, {"champion": 1000, "participation": 0})

        awards = session.exec(select(PlacementAward)).all()
        assert len(awards) == 6
        assert sorted(a.points for a in awards) == [0, 0, 0, 0, 0, 1000]
        assert stage_service.list_awards(session, tournament.id)[0].points == 1000

    def test_rules_points_table(self, session: Session, make_tournament):
        tournament = make_tournament(12, rules={"points_table": {"champion": 5, "runner_up": 3}})
        self._finish_fixed(session, tournament)
        awards = stage_service.assign_points(session, tournament.id)
        assert sorted(a.points for a in awards) == [0, 0, 0, 0, 3, 5]

    def test_round_robin_only(self, session: Session, make_tournament):
        tournament = make_tournament(12, has_elimination=False)
        groups = draw_and_pair(session, tournament.id)
        a1, a2, _ = member_ids(session, groups[0])
        b1, _, _ = member_ids(session, groups[1])

        with pytest.raises(StageNotClosed):
            stage_service.assign_points(session, tournament.id)

        play_groups(session, tournament.id)
        awards = stage_service.assign_points(session, tournament.id)

        tier_of = {a.pair_id: a.tier for a in awards}
        assert tier_of[a1] == "champion"
        assert tier_of[b1] == "runner_up"
        assert tier_of[a2] == "semifinalist"
        assert Counter(tier_of.values())["participation"] == 3

    def test_rotating_awards_pairs_and_entrants(self, session: Session, make_tournament):
        tournament = make_tournament(12, pairing_format=PairingFormat.rotating_partner)
        draw_and_pair(session, tournament.id)
        play_groups(session, tournament.id)
        stage_service.build_bracket(session, tournament.id)
        for code in ("E-R1-M2", "E-R2-M1"):
            stage_service.record_result(session, elimination_match(session, tournament.id, code).id, "6-3")

        awards = stage_service.assign_points(session, tournament.id)

        pair_awards = [a for a in awards if a.pair_id is not None]
        entrant_awards = [a for a in awards if a.entrant_id is not None]
        assert sorted(a.tier for a in pair_awards) == ["champion", "runner_up", "semifinalist"]
        assert len(entrant_awards) == 6
        assert {a.tier for a in entrant_awards} == {"participation"}
