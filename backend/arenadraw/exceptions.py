"""
Engine error taxonomy.

Every failure is a local validation failure returned to the caller; the
engine never retries. Routes translate these into HTTP responses.
"""


class EngineError(Exception):
    """Base exception for bracket/standings engine errors"""
    pass


class NotFound(EngineError):
    """Referenced tournament, group, match or bracket does not exist"""
    pass


class InsufficientEntrants(EngineError):
    """Fewer eligible entrants than the configured minimum"""
    pass


class OddEntrantCount(InsufficientEntrants):
    """Fixed-pair formats need an even number of entrants"""
    pass


class InvalidGroupConfiguration(EngineError):
    """No partition satisfies the configured group-size bounds"""
    pass


class PartnerConflict(EngineError):
    """No repeat-free partner assignment exists for the group size/format"""
    pass


class GroupAlreadyInProgress(EngineError):
    """Pairing regeneration requested after a group match was completed"""
    pass


class BracketAlreadyInProgress(EngineError):
    """Bracket regeneration/discard requested after an elimination result exists"""
    pass


class MatchAlreadyCompleted(EngineError):
    """Match completed twice without a void, or a stale concurrent write"""
    pass


class InvalidSetResult(EngineError):
    """Games, lead or tiebreak rule violated, or the sets decide no winner"""
    pass


class IncompleteGroupStage(EngineError):
    """Bracket requested while a group still has unresolved matches"""
    pass


class StageNotClosed(EngineError):
    """Points requested before the stage has a final result for everyone"""
    pass


class AmbiguousStanding(RuntimeError):
    """Standings left two rows tied after the draw; internal invariant violation"""
    pass


class InvalidBracketSize(EngineError):
    """Bracket size is not a power of two or does not fit the qualifier count"""
    pass


class MatchNotReady(EngineError):
    """Result submitted for an elimination match whose sides are not both known yet"""
    pass
