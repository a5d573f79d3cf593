# services/bracket_service.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence, Union
from uuid import uuid4

from config import EngineConfig
from domain.enums import MatchStatus, TournamentStage
from domain.errors import (
    BracketAlreadyExistsError,
    InvalidResultError,
    MatchNotFoundError,
    StageTransitionError,
    TournamentNotFoundError,
)
from domain.lifecycle import check_transition, stage_before_bracket
from domain.models import BracketSnapshot, Match, MatchSkeleton, Pair, parse_bracket_position
from repositories.tournament_repo import TournamentRepo
from services.advancement import AdvancementEngine
from services.bracket_generator import generate_bracket
from services.cache import BracketCache
from services.locks import TournamentLocks
from services.mutation import BracketUpdate, MutationRunner, Plan
from services.result_editor import ResultEditor, apply_result

log = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def materialize(tournament_id: str, skeletons: Sequence[MatchSkeleton]) -> list[Match]:
    return [
        Match(
            match_id=uuid4().hex,
            tournament_id=tournament_id,
            stage=s.stage,
            round_number=s.round_number,
            match_number=s.match_number,
            participant1_id=s.participant1_id,
            participant2_id=s.participant2_id,
            status=s.status,
        )
        for s in skeletons
    ]


class BracketService:
    """
    Responsible for:
      - Generating / regenerating the bracket from the current seed order
      - Recording results and advancing winners
      - Editing past results (cascade invalidation, then re-advance)

    Notes:
      - Planning is pure (generator, AdvancementEngine, ResultEditor) and runs
        on a clone of a fresh store read; MutationRunner writes the outcome in
        one transaction.
      - A lone seed is never auto-advanced; it waits for its pre-round opponent.
    """

    def __init__(
        self,
        repo: TournamentRepo,
        *,
        engine_config: EngineConfig | None = None,
        locks: TournamentLocks | None = None,
        cache: BracketCache | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        cfg = engine_config or EngineConfig()
        self._repo = repo
        self._cfg = cfg
        self._cache = cache if cache is not None else (BracketCache() if cfg.cache_enabled else None)
        self._runner = MutationRunner(repo, locks=locks, cache=self._cache, retries=cfg.conflict_retries)
        self._engine = AdvancementEngine()
        self._editor = ResultEditor(self._engine, policy=cfg.cascade_policy)
        self._clock = clock

    @property
    def runner(self) -> MutationRunner:
        return self._runner

    @property
    def cache(self) -> Optional[BracketCache]:
        return self._cache

    # -------------------------
    # Reads
    # -------------------------

    async def get_snapshot(self, *, tournament_id: str) -> BracketSnapshot:
        if self._cache is not None:
            cached = self._cache.get(tournament_id)
            if cached is not None:
                return cached
        snap = await self._repo.load_snapshot(tournament_id=tournament_id)
        if snap is None:
            raise TournamentNotFoundError(f"Tournament not found: {tournament_id}")
        if self._cache is not None:
            self._cache.put(snap)
        return snap.clone()

    async def find_match(self, *, tournament_id: str, position: str) -> Match:
        parsed = parse_bracket_position(position)
        if parsed is None:
            raise MatchNotFoundError(f"Not a bracket position: {position!r} (expected something like R2M1).")
        m = await self._repo.find_match(tournament_id=tournament_id, round_number=parsed[0], match_number=parsed[1])
        if m is None:
            raise MatchNotFoundError(f"No match {position.upper()} in tournament {tournament_id}.")
        return m

    async def sync_with_store(self, *, tournament_id: str) -> int:
        """
        Reconcile the cached bracket with the store; returns how many matches
        differed (all of them when nothing was cached).
        """
        snap = await self._repo.load_snapshot(tournament_id=tournament_id)
        if snap is None:
            if self._cache is not None:
                self._cache.invalidate(tournament_id)
            raise TournamentNotFoundError(f"Tournament not found: {tournament_id}")
        if self._cache is None:
            return len(snap.matches)
        return len(self._cache.reconcile(snap))

    @staticmethod
    def preview(entrants: Sequence[Union[str, Pair]]) -> list[MatchSkeleton]:
        return generate_bracket(entrants)

    # -------------------------
    # Generation
    # -------------------------

    async def generate_bracket(self, *, tournament_id: str) -> BracketUpdate:
        def plan(work: BracketSnapshot) -> Plan:
            if work.matches:
                raise BracketAlreadyExistsError("Matches already exist for this tournament; regenerate instead.")
            t = work.tournament
            required = stage_before_bracket(t.tournament_type)
            if t.current_stage != required:
                raise StageTransitionError(
                    f"A {t.tournament_type.value} tournament must be in {required.value} before its bracket "
                    f"is generated (now {t.current_stage.value})."
                )
            new = materialize(tournament_id, generate_bracket(work.seed_order()))
            work.matches = new
            return Plan(new_matches=new, stage=TournamentStage.ELIMINATION_STAGE)

        update = await self._runner.run(tournament_id, plan)
        log.info("Generated bracket for tournament %s: %d matches", tournament_id, update.changed)
        return update

    async def regenerate_bracket(self, *, tournament_id: str) -> BracketUpdate:
        """Full reset: drop every match and rebuild from the current seed order."""

        def plan(work: BracketSnapshot) -> Plan:
            t = work.tournament
            if t.current_stage != TournamentStage.COMPLETED:
                check_transition(t.tournament_type, t.current_stage, TournamentStage.ELIMINATION_STAGE)
            new = materialize(tournament_id, generate_bracket(work.seed_order()))
            work.matches = new
            return Plan(new_matches=new, delete_matches=True, stage=TournamentStage.ELIMINATION_STAGE)

        update = await self._runner.run(tournament_id, plan)
        log.info("Regenerated bracket for tournament %s: %d matches", tournament_id, update.changed)
        return update

    # -------------------------
    # Results
    # -------------------------

    async def _tournament_of(self, match_id: str) -> str:
        m = await self._repo.get_match(match_id=match_id)
        if m is None:
            raise MatchNotFoundError(f"Match not found: {match_id}")
        return m.tournament_id

    async def record_result(
        self,
        *,
        match_id: str,
        participant1_score: int,
        participant2_score: int,
        winner_id: str,
    ) -> BracketUpdate:
        """
        Record a result and move the winner into the next round. A match that
        is already completed is treated as an edit.
        """
        tournament_id = await self._tournament_of(match_id)
        now = self._clock()

        def plan(work: BracketSnapshot) -> Plan:
            m = work.match_by_id(match_id)
            if m is None:
                raise MatchNotFoundError(f"Match not found: {match_id}")
            if m.status == MatchStatus.COMPLETED:
                return self._plan_edit(work, match_id, participant1_score, participant2_score, winner_id, now)
            if work.tournament.current_stage != TournamentStage.ELIMINATION_STAGE:
                raise InvalidResultError(
                    f"Results can only be recorded during the elimination stage (now {work.tournament.current_stage.value})."
                )

            apply_result(
                m,
                participant1_score=participant1_score,
                participant2_score=participant2_score,
                winner_id=winner_id,
                completed_at=now,
            )
            adv = self._engine.advance(work, match_id)
            return Plan(changed_ids={match_id} | adv.changed_ids, placement=adv.placement)

        update = await self._runner.run(tournament_id, plan)
        log.info("Recorded result for match %s in tournament %s (%d match(es) changed)", match_id, tournament_id, update.changed)
        return update

    async def edit_result(
        self,
        *,
        match_id: str,
        participant1_score: int,
        participant2_score: int,
        winner_id: str,
    ) -> BracketUpdate:
        tournament_id = await self._tournament_of(match_id)
        now = self._clock()

        def plan(work: BracketSnapshot) -> Plan:
            if work.match_by_id(match_id) is None:
                raise MatchNotFoundError(f"Match not found: {match_id}")
            return self._plan_edit(work, match_id, participant1_score, participant2_score, winner_id, now)

        update = await self._runner.run(tournament_id, plan)
        log.info(
            "Edited result for match %s in tournament %s (%d changed, %d reset)",
            match_id,
            tournament_id,
            update.changed,
            len(update.reset_match_ids),
        )
        return update

    def _plan_edit(
        self,
        work: BracketSnapshot,
        match_id: str,
        participant1_score: int,
        participant2_score: int,
        winner_id: str,
        now: datetime,
    ) -> Plan:
        if work.tournament.current_stage not in (TournamentStage.ELIMINATION_STAGE, TournamentStage.COMPLETED):
            raise InvalidResultError(
                f"Results cannot be edited while the tournament is in {work.tournament.current_stage.value}."
            )
        m = work.match_by_id(match_id)
        # Same result again: keep the original completion time.
        if (
            m is not None
            and m.status == MatchStatus.COMPLETED
            and m.winner_id == winner_id
            and m.participant1_score == participant1_score
            and m.participant2_score == participant2_score
        ):
            return Plan()

        out = self._editor.edit(
            work,
            match_id,
            participant1_score=participant1_score,
            participant2_score=participant2_score,
            winner_id=winner_id,
            completed_at=now,
        )
        placement = out.advancement.placement if out.advancement else None
        return Plan(changed_ids=set(out.changed_ids), reset_ids=set(out.reset_ids), placement=placement)
