"""Session context aggregate and the only functions allowed to change it.

Every function here is total and returns a new ``SessionContext``; the
controller swaps its reference and never edits fields in place. Keeping the
mutations here makes "one classification per trial" easy to audit: only
``close_trial`` appends a Trial record, and it refuses a closed trial.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from .config import SessionConfig
from .geometry import PieceKind, Square, is_reachable
from .scoring import CORRECT_OUTCOMES, Outcome, Response, Round, Trial, accuracy_score, classify
from .trials import RoundPlan


@dataclass(frozen=True, slots=True)
class SessionContext:
    round_number: int = 0
    remaining_in_round: int = 0
    origin: Square | None = None
    current_square: Square | None = None
    presented_at_s: float | None = None
    current_response: Response | None = None
    responded_at_s: float | None = None
    trial_open: bool = False
    score: int = 0
    incorrect_count: int = 0
    voice_enabled: bool = True
    countdown: int = 0
    rounds: tuple[Round, ...] = ()
    accuracy: float | None = None

    def round(self, number: int) -> Round | None:
        for rnd in self.rounds:
            if rnd.number == number:
                return rnd
        return None

    @property
    def current_round(self) -> Round | None:
        return self.round(self.round_number)

    @property
    def trial_index(self) -> int | None:
        rnd = self.current_round
        if rnd is None or self.current_square is None:
            return None
        return rnd.length - self.remaining_in_round

    @property
    def last_outcome(self) -> Outcome | None:
        rnd = self.current_round
        if rnd is None or not rnd.trials:
            return None
        return rnd.trials[-1].outcome


def initial_context(config: SessionConfig) -> SessionContext:
    return SessionContext(
        remaining_in_round=config.trials_per_round,
        voice_enabled=config.voice_enabled,
        countdown=config.countdown_from,
    )


def toggle_voice(ctx: SessionContext) -> SessionContext:
    return replace(ctx, voice_enabled=not ctx.voice_enabled)


def decrement_countdown(ctx: SessionContext) -> SessionContext:
    return replace(ctx, countdown=max(0, ctx.countdown - 1))


def reset_countdown(ctx: SessionContext, config: SessionConfig) -> SessionContext:
    return replace(ctx, countdown=config.countdown_from)


def begin_round(ctx: SessionContext, plan: RoundPlan, piece: PieceKind) -> SessionContext:
    number = ctx.round_number + 1
    # Target flags come from the geometry, never from the planner's bookkeeping.
    targets = tuple(is_reachable(piece, plan.origin, sq) for sq in plan.stimuli)
    rnd = Round(
        number=number,
        piece=piece,
        origin=plan.origin,
        stimuli=tuple(plan.stimuli),
        targets=targets,
    )
    return replace(
        ctx,
        round_number=number,
        remaining_in_round=len(plan.stimuli),
        origin=plan.origin,
        current_square=None,
        presented_at_s=None,
        current_response=None,
        responded_at_s=None,
        trial_open=False,
        rounds=ctx.rounds + (rnd,),
    )


def present_trial(ctx: SessionContext, now: float) -> SessionContext:
    rnd = ctx.current_round
    if rnd is None:
        raise RuntimeError("no round in progress")
    index = rnd.length - ctx.remaining_in_round
    return replace(
        ctx,
        current_square=rnd.stimuli[index],
        presented_at_s=float(now),
        current_response=None,
        responded_at_s=None,
        trial_open=True,
    )


def record_response(ctx: SessionContext, response: Response, now: float) -> SessionContext:
    if not ctx.trial_open or ctx.current_response is not None:
        return ctx
    return replace(ctx, current_response=Response(response), responded_at_s=float(now))


def close_trial(ctx: SessionContext) -> SessionContext:
    """Classify the current trial with whatever response it has right now."""

    rnd = ctx.current_round
    if not ctx.trial_open or rnd is None or ctx.presented_at_s is None:
        return ctx
    index = rnd.length - ctx.remaining_in_round
    is_target = rnd.targets[index]
    outcome = classify(is_target, ctx.current_response)
    response_time_s = None
    if ctx.responded_at_s is not None:
        response_time_s = max(0.0, ctx.responded_at_s - ctx.presented_at_s)
    trial = Trial(
        index=index,
        stimulus=rnd.stimuli[index],
        is_target=is_target,
        response=ctx.current_response,
        outcome=outcome,
        presented_at_s=ctx.presented_at_s,
        response_time_s=response_time_s,
    )
    rounds = tuple(r.with_trial(trial) if r.number == rnd.number else r for r in ctx.rounds)
    correct = outcome in CORRECT_OUTCOMES
    return replace(
        ctx,
        trial_open=False,
        rounds=rounds,
        score=ctx.score + (1 if correct else 0),
        incorrect_count=ctx.incorrect_count + (0 if correct else 1),
    )


def advance_trial(ctx: SessionContext) -> SessionContext:
    return replace(ctx, remaining_in_round=max(0, ctx.remaining_in_round - 1))


def finish_session(ctx: SessionContext) -> SessionContext:
    return replace(ctx, accuracy=accuracy_score(ctx.rounds))
