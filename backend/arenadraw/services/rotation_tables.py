"""
Documented rotating-partner schedules.

Each table is a list of rounds; each round is a list of matches
((a1, a2), (b1, b2)) over 0-based group positions. Tables are the
fallback for sizes the circle rotation does not cover and are validated
by the same checks as generated schedules before use.
"""

from typing import Dict, List, Tuple

Side = Tuple[int, int]
TableMatch = Tuple[Side, Side]
RotationTable = List[List[TableMatch]]

# Super 8: 8 entrants, 7 rounds, 2 matches per round, nobody sits out.
# Every entrant partners each other entrant exactly once.
SUPER_8_TABLE: RotationTable = [
    [((0, 1), (2, 3)), ((4, 5), (6, 7))],
    [((0, 2), (1, 3)), ((4, 6), (5, 7))],
    [((0, 3), (1, 2)), ((4, 7), (5, 6))],
    [((0, 4), (1, 5)), ((2, 6), (3, 7))],
    [((0, 5), (1, 4)), ((2, 7), (3, 6))],
    [((0, 6), (1, 7)), ((2, 4), (3, 5))],
    [((0, 7), (1, 6)), ((2, 5), (3, 4))],
]

# Super 12: 12 entrants, 11 rounds, 3 matches per round, nobody sits out.
# The patterned 1-factorization of K12 (round r pairs r with the fixed
# point and r-i with r+i mod 11), relabelled so round 1 is 0+1 v 2+3,
# 4+5 v 6+7, 8+9 v 10+11. Every entrant partners each other exactly once.
SUPER_12_TABLE: RotationTable = [
    [((0, 1), (2, 3)), ((4, 5), (6, 7)), ((8, 9), (10, 11))],
    [((1, 3), (0, 5)), ((2, 7), (4, 9)), ((6, 11), (8, 10))],
    [((1, 5), (3, 7)), ((0, 9), (2, 11)), ((4, 10), (6, 8))],
    [((1, 7), (5, 9)), ((3, 11), (0, 10)), ((2, 8), (4, 6))],
    [((1, 9), (7, 11)), ((5, 10), (3, 8)), ((0, 6), (2, 4))],
    [((1, 11), (9, 10)), ((7, 8), (5, 6)), ((3, 4), (0, 2))],
    [((1, 10), (8, 11)), ((6, 9), (4, 7)), ((2, 5), (0, 3))],
    [((1, 8), (6, 10)), ((4, 11), (2, 9)), ((0, 7), (3, 5))],
    [((1, 6), (4, 8)), ((2, 10), (0, 11)), ((3, 9), (5, 7))],
    [((1, 4), (2, 6)), ((0, 8), (3, 10)), ((5, 11), (7, 9))],
    [((1, 2), (0, 4)), ((3, 6), (5, 8)), ((7, 10), (9, 11))],
]

# 5 entrants: 5 rounds, one match per round, entrant r sits out round r+1.
# Round r plays (r+1, r+4) vs (r+2, r+3) mod 5, so all 10 partnerships
# occur exactly once and everybody sits out exactly once.
FIVE_ROTATION_TABLE: RotationTable = [
    [((1, 4), (2, 3))],
    [((0, 2), (3, 4))],
    [((1, 3), (0, 4))],
    [((2, 4), (0, 1))],
    [((0, 3), (1, 2))],
]

ROTATION_TABLES: Dict[int, RotationTable] = {
    5: FIVE_ROTATION_TABLE,
    8: SUPER_8_TABLE,
    12: SUPER_12_TABLE,
}

# Entrants sitting out each round, per table size
SIT_OUTS_PER_ROUND: Dict[int, int] = {
    5: 1,
    8: 0,
    12: 0,
}
