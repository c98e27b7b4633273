from __future__ import annotations

import os


def test_ui_smoke_start_respond_and_mute() -> None:
    # Headless SDL for CI.
    os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
    os.environ.setdefault("SDL_AUDIODRIVER", "dummy")

    import pygame

    from chess_vision_trainer.app import run
    from chess_vision_trainer.config import SessionConfig

    def key(k: int) -> None:
        pygame.event.post(pygame.event.Event(pygame.KEYDOWN, {"key": k, "unicode": ""}))

    def inject(frame: int) -> None:
        # Start, respond (ignored outside play), mute, then quit.
        if frame == 1:
            key(pygame.K_RETURN)
        elif frame == 2:
            key(pygame.K_l)
        elif frame == 3:
            key(pygame.K_v)
        elif frame == 6:
            key(pygame.K_ESCAPE)

    config = SessionConfig(countdown_from=0, pre_round_delay_s=0.05)
    assert run(max_frames=20, event_injector=inject, config=config) == 0
