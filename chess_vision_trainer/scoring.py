from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from enum import StrEnum

from .core import round_half_up
from .geometry import PieceKind, Square


class Response(StrEnum):
    MATCH = "match"


class Outcome(StrEnum):
    HIT = "hit"
    FALSE_ALARM = "false_alarm"
    CORRECT_REJECTION = "correct_rejection"
    MISS = "miss"


CORRECT_OUTCOMES = frozenset({Outcome.HIT, Outcome.CORRECT_REJECTION})


@dataclass(frozen=True, slots=True)
class Trial:
    """Completed (classified) presentation of one stimulus."""

    index: int
    stimulus: Square
    is_target: bool
    response: Response | None
    outcome: Outcome
    presented_at_s: float
    response_time_s: float | None = None

    @property
    def is_correct(self) -> bool:
        return self.outcome in CORRECT_OUTCOMES


@dataclass(frozen=True, slots=True)
class Round:
    number: int  # 1-based
    piece: PieceKind
    origin: Square
    stimuli: tuple[Square, ...]
    targets: tuple[bool, ...]  # parallel to stimuli
    trials: tuple[Trial, ...] = ()

    def __post_init__(self) -> None:
        if len(self.stimuli) != len(self.targets):
            raise ValueError("stimuli and targets must have the same length")

    @property
    def length(self) -> int:
        return len(self.stimuli)

    @property
    def completed(self) -> bool:
        return len(self.trials) >= len(self.stimuli)

    def with_trial(self, trial: Trial) -> Round:
        return replace(self, trials=self.trials + (trial,))


def classify(is_target: bool, response: Response | None) -> Outcome:
    if response is Response.MATCH:
        return Outcome.HIT if is_target else Outcome.FALSE_ALARM
    return Outcome.MISS if is_target else Outcome.CORRECT_REJECTION


def _iter_trials(rounds: Iterable[Round]) -> Iterable[Trial]:
    for rnd in rounds:
        yield from rnd.trials


def accuracy_score(rounds: Iterable[Round]) -> float:
    """Percentage of classified trials that were hits or correct rejections.

    Rounded half-up to two decimals; 0.0 when nothing has been classified.
    """

    total = 0
    correct = 0
    for trial in _iter_trials(rounds):
        total += 1
        if trial.is_correct:
            correct += 1
    if total == 0:
        return 0.0
    return round_half_up(correct / total * 10000.0) / 100.0


@dataclass(frozen=True, slots=True)
class OutcomeTally:
    hits: int = 0
    false_alarms: int = 0
    correct_rejections: int = 0
    misses: int = 0

    @property
    def total(self) -> int:
        return self.hits + self.false_alarms + self.correct_rejections + self.misses

    @property
    def correct(self) -> int:
        return self.hits + self.correct_rejections

    @property
    def incorrect(self) -> int:
        return self.false_alarms + self.misses

    @property
    def hit_rate(self) -> float | None:
        signal = self.hits + self.misses
        return None if signal == 0 else self.hits / signal

    @property
    def false_alarm_rate(self) -> float | None:
        noise = self.false_alarms + self.correct_rejections
        return None if noise == 0 else self.false_alarms / noise


def tally_outcomes(rounds: Iterable[Round]) -> OutcomeTally:
    counts = {outcome: 0 for outcome in Outcome}
    for trial in _iter_trials(rounds):
        counts[trial.outcome] += 1
    return OutcomeTally(
        hits=counts[Outcome.HIT],
        false_alarms=counts[Outcome.FALSE_ALARM],
        correct_rejections=counts[Outcome.CORRECT_REJECTION],
        misses=counts[Outcome.MISS],
    )
