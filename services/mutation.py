# services/mutation.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

from domain.enums import MatchStatus, TournamentStage
from domain.errors import ConcurrencyConflictError, TournamentNotFoundError
from domain.models import BracketSnapshot, ChangeSet, Match, Participant
from services.advancement import Placement
from services.cache import BracketCache
from services.locks import TournamentLocks
from services.participant_stats import recompute_participant_stats

log = logging.getLogger(__name__)


class BracketStore(Protocol):
    async def load_snapshot(self, *, tournament_id: str) -> BracketSnapshot | None: ...

    async def apply(self, changes: ChangeSet) -> int: ...


@dataclass
class Plan:
    """What a planner did to its working copy of the bracket."""

    changed_ids: set[str] = field(default_factory=set)
    reset_ids: set[str] = field(default_factory=set)
    new_matches: list[Match] = field(default_factory=list)
    delete_matches: bool = False
    new_participants: list[Participant] = field(default_factory=list)
    delete_participant_ids: list[str] = field(default_factory=list)
    stage: Optional[TournamentStage] = None
    placement: Optional[Placement] = None


@dataclass(frozen=True)
class BracketUpdate:
    tournament_id: str
    version: int
    stage: TournamentStage
    changed_match_ids: tuple[str, ...] = ()
    reset_match_ids: tuple[str, ...] = ()
    placement: Optional[Placement] = None

    @property
    def changed(self) -> int:
        return len(self.changed_match_ids)


def _participant_key(p: Participant) -> tuple:
    return (p.seed_number, p.wins, p.losses, p.points_for, p.points_against, p.eliminated_round)


def result_stage(bracket: BracketSnapshot) -> Optional[TournamentStage]:
    """COMPLETED once the final has a winner, ELIMINATION_STAGE otherwise."""
    if bracket.tournament.current_stage not in (TournamentStage.ELIMINATION_STAGE, TournamentStage.COMPLETED):
        return None
    final_round = bracket.final_round()
    if final_round is None:
        return None
    final = bracket.round(final_round)
    if len(final) == 1 and final[0].status == MatchStatus.COMPLETED:
        return TournamentStage.COMPLETED
    return TournamentStage.ELIMINATION_STAGE


class MutationRunner:
    """
    Runs one planner against a fresh snapshot and persists what it changed.

    - serialized per tournament (TournamentLocks)
    - planner works on a clone; the store sees a single ChangeSet
    - version conflicts from other processes are retried from a fresh read
    """

    def __init__(
        self,
        store: BracketStore,
        *,
        locks: TournamentLocks | None = None,
        cache: BracketCache | None = None,
        retries: int = 3,
    ) -> None:
        self._store = store
        self._locks = locks or TournamentLocks()
        self._cache = cache
        self._retries = max(0, int(retries))

    @property
    def locks(self) -> TournamentLocks:
        return self._locks

    async def run(self, tournament_id: str, planner: Callable[[BracketSnapshot], Plan]) -> BracketUpdate:
        async with self._locks.hold(tournament_id):
            attempt = 0
            while True:
                try:
                    return await self._run_once(tournament_id, planner)
                except ConcurrencyConflictError:
                    if self._cache is not None:
                        self._cache.invalidate(tournament_id)
                    if attempt >= self._retries:
                        log.warning("Tournament %s: giving up after %d conflict(s)", tournament_id, attempt + 1)
                        raise
                    attempt += 1
                    log.warning("Tournament %s: concurrent write detected, retry %d/%d", tournament_id, attempt, self._retries)

    async def _run_once(self, tournament_id: str, planner: Callable[[BracketSnapshot], Plan]) -> BracketUpdate:
        snapshot = await self._store.load_snapshot(tournament_id=tournament_id)
        if snapshot is None:
            raise TournamentNotFoundError(f"Tournament not found: {tournament_id}")

        work = snapshot.clone()
        plan = planner(work)

        recompute_participant_stats(work)
        before = {p.participant_id: _participant_key(p) for p in snapshot.participants}
        new_ids = {p.participant_id for p in plan.new_participants}
        participant_updates = [
            p
            for p in work.participants
            if p.participant_id not in new_ids
            and p.participant_id in before
            and _participant_key(p) != before[p.participant_id]
        ]

        stage = plan.stage
        if stage is None:
            stage = result_stage(work)
        if stage == snapshot.tournament.current_stage:
            stage = None

        new_match_ids = {m.match_id for m in plan.new_matches}
        match_updates = []
        if not plan.delete_matches:
            for match_id in sorted(plan.changed_ids - new_match_ids):
                m = work.match_by_id(match_id)
                if m is not None:
                    match_updates.append(m)

        changes = ChangeSet(
            tournament_id=tournament_id,
            expected_version=snapshot.version,
            stage=stage,
            delete_matches=plan.delete_matches,
            new_matches=list(plan.new_matches),
            match_updates=match_updates,
            new_participants=list(plan.new_participants),
            participant_updates=participant_updates,
            delete_participant_ids=list(plan.delete_participant_ids),
        )

        changed = tuple(sorted(plan.changed_ids | new_match_ids))
        if changes.is_empty:
            if self._cache is not None:
                self._cache.put(snapshot)
            return BracketUpdate(
                tournament_id=tournament_id,
                version=snapshot.version,
                stage=snapshot.tournament.current_stage,
                placement=plan.placement,
            )

        version = await self._store.apply(changes)

        work.tournament.version = version
        if stage is not None:
            work.tournament.current_stage = stage
        if self._cache is not None:
            self._cache.put(work)

        return BracketUpdate(
            tournament_id=tournament_id,
            version=version,
            stage=work.tournament.current_stage,
            changed_match_ids=changed,
            reset_match_ids=tuple(sorted(plan.reset_ids)),
            placement=plan.placement,
        )
