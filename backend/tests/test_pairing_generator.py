"""
Pairing generator: fixed-pair round robin and rotating-partner 2-vs-2 rotation.
"""
import logging
from collections import Counter
from itertools import combinations

import pytest

from arenadraw.exceptions import InvalidGroupConfiguration, PartnerConflict
from arenadraw.models.tournament import PairingFormat
from arenadraw.services.pairing_generator import (
    RotatingPartnerRoundRobin,
    circle_partner_rounds,
    generate_pairings,
    plan_from_table,
    validate_rotation,
)
from arenadraw.services.rotation_tables import ROTATION_TABLES, SIT_OUTS_PER_ROUND


def _partners(plan):
    return [frozenset(side) for m in plan.matches for side in (m.side_a, m.side_b)]


class TestFixedPairRoundRobin:
    def test_every_matchup_exactly_once(self):
        for k in range(2, 11):
            plan = generate_pairings(PairingFormat.fixed_pair, k)
            matchups = [frozenset((m.side_a[0], m.side_b[0])) for m in plan.matches]
            assert len(matchups) == k * (k - 1) // 2
            assert set(matchups) == {frozenset(p) for p in combinations(range(k), 2)}

    def test_nobody_plays_twice_in_a_round(self):
        for k in range(2, 11):
            plan = generate_pairings(PairingFormat.fixed_pair, k)
            by_round = {}
            for m in plan.matches:
                by_round.setdefault(m.round_number, []).extend([m.side_a[0], m.side_b[0]])
            for positions in by_round.values():
                assert len(positions) == len(set(positions))

    def test_pool_of_four_preset_order(self):
        plan = generate_pairings(PairingFormat.fixed_pair, 4)
        assert [(m.round_number, m.side_a[0], m.side_b[0]) for m in plan.matches] == [
            (1, 0, 3),
            (1, 1, 2),
            (2, 0, 2),
            (2, 1, 3),
            (3, 0, 1),
            (3, 2, 3),
        ]
        assert plan.source == "preset"

    def test_deterministic(self):
        assert generate_pairings(PairingFormat.fixed_pair, 7).matches == generate_pairings(
            PairingFormat.fixed_pair, 7
        ).matches

    def test_single_pair_rejected(self):
        with pytest.raises(InvalidGroupConfiguration):
            generate_pairings(PairingFormat.fixed_pair, 1)


class TestRotatingPartner:
    @pytest.mark.parametrize("k", [4, 8, 12, 16, 20])
    def test_no_partner_repeats_full_rotation(self, k):
        plan = generate_pairings(PairingFormat.rotating_partner, k)
        partners = _partners(plan)
        assert plan.rounds == k - 1
        assert validate_rotation(plan.matches, k) == []
        assert len(partners) == len(set(partners))
        # Full rotation: everybody partners everybody exactly once
        assert set(partners) == {frozenset(p) for p in combinations(range(k), 2)}

    @pytest.mark.parametrize("k", [4, 8, 12, 16])
    def test_k_over_four_matches_per_round_nobody_idle(self, k):
        plan = generate_pairings(PairingFormat.rotating_partner, k)
        per_round = Counter(m.round_number for m in plan.matches)
        assert set(per_round.values()) == {k // 4}
        assert set(plan.sit_outs.values()) == {0}

    def test_king_of_the_beach_opponents(self):
        plan = generate_pairings(PairingFormat.rotating_partner, 4)
        faced = Counter()
        for m in plan.matches:
            for x in m.side_a:
                for y in m.side_b:
                    faced[frozenset((x, y))] += 1
        # 3 rounds: each entrant partners each other once and faces them twice
        assert set(faced.values()) == {2}
        assert len(faced) == 6

    def test_super_variant_reduced_rounds(self):
        plan = generate_pairings(PairingFormat.rotating_partner, 8, rounds=4)
        assert plan.rounds == 4
        assert {m.round_number for m in plan.matches} == {1, 2, 3, 4}
        assert validate_rotation(plan.matches, 8) == []

    def test_reduced_rounds_avoid_partner_history(self):
        plan = generate_pairings(PairingFormat.rotating_partner, 12, rounds=5, forbidden_partners=[(0, 11), (3, 4)])
        partners = set(_partners(plan))
        assert frozenset((0, 11)) not in partners
        assert frozenset((3, 4)) not in partners
        assert validate_rotation(plan.matches, 12, [(0, 11), (3, 4)]) == []

    def test_partner_history_blocks_full_rotation(self):
        with pytest.raises(PartnerConflict):
            generate_pairings(PairingFormat.rotating_partner, 8, forbidden_partners=[(2, 5)])

    def test_documented_table_replaces_circle(self, caplog):
        # (0,1) and (2,3) sit in different circle rounds but the same Super 8 table round
        with caplog.at_level(logging.WARNING):
            plan = generate_pairings(PairingFormat.rotating_partner, 8, rounds=6, forbidden_partners=[(0, 1), (2, 3)])
        assert plan.source == "table"
        assert validate_rotation(plan.matches, 8, [(0, 1), (2, 3)]) == []
        assert "documented rotation table" in caplog.text

    def test_super_12_table_replaces_circle(self, caplog):
        # (0,1) and (2,3) sit in circle rounds 11 and 4 but both in Super 12 round 1
        with caplog.at_level(logging.WARNING):
            plan = generate_pairings(PairingFormat.rotating_partner, 12, rounds=10, forbidden_partners=[(0, 1), (2, 3)])
        assert plan.source == "table"
        assert plan.rounds == 10
        assert len(plan.matches) == 30
        assert validate_rotation(plan.matches, 12, [(0, 1), (2, 3)]) == []
        assert "documented rotation table" in caplog.text

    @pytest.mark.parametrize("size", sorted(ROTATION_TABLES))
    def test_documented_tables_are_repeat_free(self, size):
        table = ROTATION_TABLES[size]
        matches = plan_from_table(table, len(table), set())
        assert validate_rotation(matches, size, sit_outs_per_round=SIT_OUTS_PER_ROUND[size]) == []
        partners = [frozenset(side) for m in matches for side in (m.side_a, m.side_b)]
        assert len(partners) == size * (size - 1) // 2

    def test_five_entrants_from_table(self):
        plan = generate_pairings(PairingFormat.rotating_partner, 5)
        assert plan.source == "table"
        assert plan.rounds == 5
        assert len(plan.matches) == 5
        assert validate_rotation(plan.matches, 5, sit_outs_per_round=1) == []
        assert set(plan.sit_outs.values()) == {1}

    def test_too_many_rounds(self):
        with pytest.raises(PartnerConflict):
            generate_pairings(PairingFormat.rotating_partner, 4, rounds=4)

    @pytest.mark.parametrize("k", [6, 7, 9, 10])
    def test_unsupported_sizes(self, k):
        with pytest.raises(PartnerConflict):
            generate_pairings(PairingFormat.rotating_partner, k)

    def test_too_small(self):
        with pytest.raises(InvalidGroupConfiguration):
            generate_pairings(PairingFormat.rotating_partner, 3)

    def test_custom_tables(self):
        rotation = RotatingPartnerRoundRobin(tables={})
        with pytest.raises(PartnerConflict):
            rotation.generate(5)

    def test_deterministic(self):
        assert generate_pairings(PairingFormat.rotating_partner, 12).matches == generate_pairings(
            PairingFormat.rotating_partner, 12
        ).matches


def test_circle_rounds_form_a_one_factorization():
    for n in (4, 6, 8, 10, 12):
        rounds = circle_partner_rounds(n)
        assert len(rounds) == n - 1
        for pairs in rounds:
            assert sorted(p for pair in pairs for p in pair) == list(range(n))
        all_pairs = [frozenset(p) for r in rounds for p in r]
        assert len(set(all_pairs)) == n * (n - 1) // 2


def test_validate_rotation_reports_repeats():
    from arenadraw.services.pairing_generator import PlannedMatch

    matches = [
        PlannedMatch(1, 1, (0, 1), (2, 3)),
        PlannedMatch(2, 1, (0, 1), (2, 3)),
    ]
    errors = validate_rotation(matches, 4)
    assert any("already partnered" in e for e in errors)
