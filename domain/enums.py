# domain/enums.py
from __future__ import annotations

from enum import Enum


class TournamentType(str, Enum):
    SINGLE_STAGE = "single_stage"
    DOUBLE_STAGE = "double_stage"   # group stage, then elimination


class PlayFormat(str, Enum):
    SINGLES = "singles"
    DOUBLES = "doubles"


class TournamentStage(str, Enum):
    SETUP = "setup"
    GROUP_STAGE = "group_stage"
    ELIMINATION_STAGE = "elimination_stage"
    COMPLETED = "completed"


class MatchStage(str, Enum):
    PRE_ROUND = "pre_round"
    ELIMINATION = "elimination"


class MatchStatus(str, Enum):
    AWAITING = "awaiting"     # at least one slot TBD
    SCHEDULED = "scheduled"   # both slots filled, no result
    COMPLETED = "completed"


class PlacementMode(str, Enum):
    SEEDED_TOP_UP = "seeded_top_up"
    STANDARD_PAIRING = "standard_pairing"


class CascadePolicy(str, Enum):
    DESCENDANTS = "descendants"
    LATER_ROUNDS = "later_rounds"
