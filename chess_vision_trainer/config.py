from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields

from .geometry import ALL_SQUARES, PieceKind
from .trials import DEFAULT_TARGET_RATIOS, RoundConfigError, eligible_origins

ENV_PREFIX = "CVT_"


@dataclass(frozen=True, slots=True)
class SessionConfig:
    rounds: int = 4
    trials_per_round: int = 5
    countdown_from: int = 3  # 0 skips the countdown
    countdown_interval_s: float = 1.0
    trial_window_s: float = 3.0
    pre_round_delay_s: float = 3.0
    piece: PieceKind = PieceKind.KNIGHT
    voice_enabled: bool = True
    target_ratios: tuple[float, ...] = DEFAULT_TARGET_RATIOS

    def __post_init__(self) -> None:
        if self.rounds < 1:
            raise ValueError("rounds must be >= 1")
        if self.trials_per_round < 1:
            raise ValueError("trials_per_round must be >= 1")
        if self.countdown_from < 0:
            raise ValueError("countdown_from must be >= 0")
        if self.countdown_interval_s <= 0.0:
            raise ValueError("countdown_interval_s must be > 0")
        if self.trial_window_s <= 0.0:
            raise ValueError("trial_window_s must be > 0")
        if self.pre_round_delay_s <= 0.0:
            raise ValueError("pre_round_delay_s must be > 0")
        if self.trials_per_round > len(ALL_SQUARES):
            raise RoundConfigError(f"trials_per_round must be <= {len(ALL_SQUARES)}")
        if not eligible_origins(PieceKind(self.piece), self.trials_per_round, self.target_ratios):
            raise RoundConfigError(
                f"no origin lets a {self.piece} fill a round of {self.trials_per_round} trials"
            )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> SessionConfig:
        """Build a config from ``CVT_*`` variables; unset variables keep defaults."""

        env = os.environ if environ is None else environ
        overrides: dict[str, object] = {}
        for f in fields(cls):
            if f.name == "target_ratios":
                continue
            key = f"{ENV_PREFIX}{f.name.upper()}"
            if f.name == "voice_enabled":
                key = f"{ENV_PREFIX}VOICE"
            raw = env.get(key)
            if raw is None or raw.strip() == "":
                continue
            overrides[f.name] = _parse_env_value(key, f.name, raw.strip())
        return cls(**overrides)  # type: ignore[arg-type]


_INT_FIELDS = frozenset({"rounds", "trials_per_round", "countdown_from"})
_FLOAT_FIELDS = frozenset({"countdown_interval_s", "trial_window_s", "pre_round_delay_s"})


def _parse_env_value(key: str, name: str, raw: str) -> object:
    try:
        if name in _INT_FIELDS:
            return int(raw)
        if name in _FLOAT_FIELDS:
            return float(raw)
        if name == "piece":
            return PieceKind(raw.lower())
    except ValueError as exc:
        raise ValueError(f"{key}: invalid value {raw!r}") from exc
    if name == "voice_enabled":
        lowered = raw.lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
        raise ValueError(f"{key}: invalid value {raw!r}")
    raise ValueError(f"{key}: unsupported setting")
