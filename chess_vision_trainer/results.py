from __future__ import annotations

from dataclasses import dataclass

from .context import SessionContext
from .scoring import OutcomeTally, Trial, accuracy_score, tally_outcomes


@dataclass(frozen=True, slots=True)
class SessionResult:
    """Summary + trial log for a finished session (kept in memory only)."""

    seed: int | None
    rounds_played: int
    trials: int
    accuracy: float
    tally: OutcomeTally
    mean_rt_ms: float | None
    median_rt_ms: float | None
    events: tuple[Trial, ...]


def session_result_from_context(ctx: SessionContext, *, seed: int | None = None) -> SessionResult:
    events = tuple(trial for rnd in ctx.rounds for trial in rnd.trials)
    rts_ms = sorted(
        int(round(t.response_time_s * 1000.0)) for t in events if t.response_time_s is not None
    )

    mean_ms: float | None
    median_ms: float | None
    if not rts_ms:
        mean_ms = None
        median_ms = None
    else:
        mean_ms = float(sum(rts_ms)) / float(len(rts_ms))
        mid = len(rts_ms) // 2
        if len(rts_ms) % 2 == 1:
            median_ms = float(rts_ms[mid])
        else:
            median_ms = float(rts_ms[mid - 1] + rts_ms[mid]) / 2.0

    accuracy = ctx.accuracy if ctx.accuracy is not None else accuracy_score(ctx.rounds)
    return SessionResult(
        seed=seed,
        rounds_played=len(ctx.rounds),
        trials=len(events),
        accuracy=float(accuracy),
        tally=tally_outcomes(ctx.rounds),
        mean_rt_ms=mean_ms,
        median_rt_ms=median_ms,
        events=events,
    )
