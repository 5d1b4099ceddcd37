import pytest

from arenadraw.config import DEFAULT_POINTS_TABLE
from arenadraw.exceptions import StageNotClosed
from arenadraw.services.bracket_builder import Seed, advance_winner, build_bracket
from arenadraw.services.points import (
    CHAMPION,
    PARTICIPATION,
    QUARTERFINALIST,
    ROUND_OF_16,
    RUNNER_UP,
    SEMIFINALIST,
    PointsTable,
    placements_from_bracket,
    placements_from_standings,
    score_placements,
)


def finished_bracket(size):
    tree = build_bracket([Seed(seed=s, competitor_id=s) for s in range(1, size + 1)], size)
    for round_number in range(1, tree.rounds + 1):
        for node in tree.round_nodes(round_number):
            if node.is_ready:
                advance_winner(tree, node.node_id, min(node.competitor_a, node.competitor_b))
    return tree


class TestBracketPlacements:
    def test_tiers_for_eight(self):
        tiers = {p.competitor_id: p.tier for p in placements_from_bracket(finished_bracket(8))}
        assert tiers[1] == CHAMPION
        assert tiers[2] == RUNNER_UP
        assert tiers[3] == tiers[4] == SEMIFINALIST
        assert {tiers[c] for c in (5, 6, 7, 8)} == {QUARTERFINALIST}

    def test_round_of_sixteen(self):
        tiers = {p.competitor_id: p.tier for p in placements_from_bracket(finished_bracket(16))}
        assert {tiers[c] for c in range(9, 17)} == {ROUND_OF_16}

    def test_earlier_exits_get_participation(self):
        tiers = {p.competitor_id: p.tier for p in placements_from_bracket(finished_bracket(32))}
        assert {tiers[c] for c in range(17, 33)} == {PARTICIPATION}

    def test_non_qualifiers_participate(self):
        placements = placements_from_bracket(finished_bracket(4), participants=[1, 2, 3, 4, 50, 51])
        extra = [p for p in placements if p.competitor_id in (50, 51)]
        assert [(p.tier, p.place) for p in extra] == [(PARTICIPATION, None), (PARTICIPATION, None)]
        assert len(placements) == 6

    def test_final_must_be_played(self):
        tree = build_bracket([Seed(seed=s, competitor_id=s) for s in range(1, 5)], 4)
        with pytest.raises(StageNotClosed):
            placements_from_bracket(tree)


class TestStandingPlacements:
    def test_default_tiers(self):
        placements = placements_from_standings([7, 5, 9, 2])
        assert [(p.competitor_id, p.tier, p.place) for p in placements] == [
            (7, CHAMPION, 1),
            (5, RUNNER_UP, 2),
            (9, SEMIFINALIST, 3),
            (2, PARTICIPATION, 4),
        ]

    def test_custom_tiers(self):
        placements = placements_from_standings([7, 5], {1: CHAMPION})
        assert [p.tier for p in placements] == [CHAMPION, PARTICIPATION]


class TestPointsTable:
    def test_default_table(self):
        table = PointsTable()
        assert table.points_for(CHAMPION) == DEFAULT_POINTS_TABLE["champion"]
        assert table.points_for(PARTICIPATION) == DEFAULT_POINTS_TABLE["participation"]

    def test_missing_tier_scores_zero(self):
        assert PointsTable({"champion": 10}).points_for(RUNNER_UP) == 0

    def test_unknown_tier(self):
        with pytest.raises(ValueError, match="plate_winner"):
            PointsTable({"plate_winner": 5})

    def test_score_placements(self):
        table = PointsTable({"champion": 25, "runner_up": 18, "semifinalist": 15, "participation": 1})
        scored = score_placements(placements_from_bracket(finished_bracket(4)), table)
        assert [(p.competitor_id, pts) for p, pts in scored] == [(1, 25), (2, 18), (3, 15), (4, 15)]
