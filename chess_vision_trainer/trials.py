from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Protocol

from .core import SeededRng
from .geometry import ALL_SQUARES, PieceKind, Square, as_square, reachable_squares

DEFAULT_TARGET_RATIOS: tuple[float, ...] = (0.4, 0.6)


class RoundConfigError(ValueError):
    """Round parameters that cannot produce a duplicate-free stimulus sequence."""


@dataclass(frozen=True, slots=True)
class RoundPlan:
    origin: Square
    stimuli: tuple[Square, ...]


class RoundPlanner(Protocol):
    """Source of rounds for a session."""

    def next_round(self, *, piece: PieceKind, round_length: int) -> RoundPlan:
        ...


def _validate_ratios(ratios: tuple[float, ...]) -> None:
    if not ratios:
        raise RoundConfigError("target ratios must not be empty")
    for ratio in ratios:
        if not (0.0 <= float(ratio) <= 1.0):
            raise RoundConfigError(f"target ratio must be in [0.0, 1.0], got {ratio}")


def max_target_count(round_length: int, ratios: tuple[float, ...] = DEFAULT_TARGET_RATIOS) -> int:
    return max(int(math.floor(round_length * float(r))) for r in ratios)


def eligible_origins(
    piece: PieceKind,
    round_length: int,
    ratios: tuple[float, ...] = DEFAULT_TARGET_RATIOS,
) -> tuple[Square, ...]:
    """Origins with enough reachable squares for any target count the ratios allow."""

    _validate_ratios(ratios)
    needed = max_target_count(round_length, ratios)
    return tuple(sq for sq in ALL_SQUARES if len(reachable_squares(piece, sq)) >= needed)


def generate_round(
    piece: PieceKind,
    origin: Square | str,
    round_length: int,
    *,
    rng: SeededRng,
    ratios: tuple[float, ...] = DEFAULT_TARGET_RATIOS,
) -> tuple[Square, ...]:
    """Build a shuffled, duplicate-free stimulus sequence for one round."""

    origin_sq = as_square(origin)
    if round_length < 1:
        raise RoundConfigError("round_length must be >= 1")
    if round_length > len(ALL_SQUARES):
        raise RoundConfigError(f"round_length must be <= {len(ALL_SQUARES)}")
    _validate_ratios(ratios)

    # Sorted so the draw order only depends on the RNG stream.
    reachable = sorted(reachable_squares(piece, origin_sq))
    if max_target_count(round_length, ratios) > len(reachable):
        raise RoundConfigError(
            f"{piece} on {origin_sq} reaches {len(reachable)} squares; "
            f"round of {round_length} may need {max_target_count(round_length, ratios)} targets"
        )

    fraction = float(rng.choice(ratios))
    target_count = int(math.floor(round_length * fraction))

    selected: list[Square] = []
    chosen: set[Square] = set()
    while len(selected) < target_count:
        candidate = rng.choice(reachable)
        if candidate in chosen:
            continue
        selected.append(candidate)
        chosen.add(candidate)

    # Distractors may land on reachable squares by chance; that is allowed.
    while len(selected) < round_length:
        candidate = rng.choice(ALL_SQUARES)
        if candidate in chosen:
            continue
        selected.append(candidate)
        chosen.add(candidate)

    return tuple(rng.shuffled(selected))


class RandomRoundPlanner:
    """Deterministic planner: random eligible origin, then ``generate_round``."""

    def __init__(self, rng: SeededRng, *, ratios: tuple[float, ...] = DEFAULT_TARGET_RATIOS) -> None:
        self._rng = rng
        self._ratios = tuple(float(r) for r in ratios)

    def next_round(self, *, piece: PieceKind, round_length: int) -> RoundPlan:
        origins = eligible_origins(piece, round_length, self._ratios)
        if not origins:
            raise RoundConfigError(f"no origin lets a {piece} fill a round of {round_length}")
        origin = self._rng.choice(origins)
        stimuli = generate_round(piece, origin, round_length, rng=self._rng, ratios=self._ratios)
        return RoundPlan(origin=origin, stimuli=stimuli)
