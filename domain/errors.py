# domain/errors.py
from __future__ import annotations


class BracketError(Exception):
    pass


class InsufficientParticipantsError(BracketError):
    pass


class ResolutionError(BracketError):
    pass


class ConcurrencyConflictError(BracketError):
    pass


class StoreError(BracketError):
    pass


class TournamentNotFoundError(BracketError):
    pass


class MatchNotFoundError(BracketError):
    pass


class InvalidResultError(BracketError):
    pass


class BracketAlreadyExistsError(BracketError):
    pass


class StageTransitionError(BracketError):
    pass


class ParticipantError(BracketError):
    pass
