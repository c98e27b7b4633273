"""Pygame UI shell for the Chess Vision Trainer.

The screen only reads ``SessionSnapshot`` values and sends events; all timing,
scoring, RNG and state live in the core modules.
"""

from __future__ import annotations

import random
from collections.abc import Callable
from typing import Protocol

import pygame

from .config import SessionConfig
from .geometry import ALL_SQUARES, Square, SquareColor, square_color
from .results import session_result_from_context
from .session import SessionController, SessionNode, SessionSnapshot, build_session
from .speech import OfflineTtsSpeaker
from .timers import RealClock

WINDOW_SIZE = (960, 540)
TARGET_FPS = 60

_BG = (3, 9, 78)
_PANEL = (8, 18, 104)
_BORDER = (226, 236, 255)
_TEXT = (238, 245, 255)
_LIGHT_SQ = (232, 220, 196)
_DARK_SQ = (150, 112, 82)
_ORIGIN = (70, 130, 220)
_STIMULUS = (245, 200, 40)
_BUTTON = {
    "idle": (90, 90, 120),
    "hit": (40, 170, 80),
    "false_alarm": (200, 50, 50),
}


class Screen(Protocol):
    def handle_event(self, event: pygame.event.Event) -> None: ...
    def update(self) -> None: ...
    def render(self, surface: pygame.Surface) -> None: ...


class App:
    def __init__(self, surface: pygame.Surface, font: pygame.font.Font) -> None:
        self._surface = surface
        self._font = font
        self._screens: list[Screen] = []
        self._running = True

    @property
    def running(self) -> bool:
        return self._running

    @property
    def font(self) -> pygame.font.Font:
        return self._font

    def push(self, screen: Screen) -> None:
        self._screens.append(screen)

    def quit(self) -> None:
        self._running = False

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.QUIT:
            self.quit()
            return
        if self._screens:
            self._screens[-1].handle_event(event)

    def update(self) -> None:
        if self._screens:
            self._screens[-1].update()

    def render(self) -> None:
        if self._screens:
            self._screens[-1].render(self._surface)


class TrainerScreen:
    def __init__(
        self,
        app: App,
        *,
        controller: SessionController,
        speaker: OfflineTtsSpeaker | None = None,
        seed: int | None = None,
    ) -> None:
        self._app = app
        self._controller = controller
        self._speaker = speaker
        self._seed = seed
        self._title_font = pygame.font.Font(None, 42)
        self._big_font = pygame.font.Font(None, 72)
        self._small_font = pygame.font.Font(None, 26)

    @property
    def controller(self) -> SessionController:
        return self._controller

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        snap = self._controller.snapshot()
        if event.key == pygame.K_ESCAPE:
            self._app.quit()
        elif event.key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
            if snap.matches(SessionNode.GAME_OVER):
                self._controller.restart()
            else:
                self._controller.start()
        elif event.key == pygame.K_l:
            if snap.matches(SessionNode.PLAYING):
                self._controller.respond()
        elif event.key == pygame.K_v:
            self._controller.toggle_voice()

    def update(self) -> None:
        self._controller.update()
        if self._speaker is not None:
            self._speaker.update()

    def render(self, surface: pygame.Surface) -> None:
        snap = self._controller.snapshot()
        w, h = surface.get_size()
        surface.fill(_BG)

        frame = pygame.Rect(16, 16, max(260, w - 32), max(220, h - 32))
        pygame.draw.rect(surface, _PANEL, frame)
        pygame.draw.rect(surface, _BORDER, frame, 2)

        title = self._title_font.render("Chess Vision Trainer", True, _TEXT)
        surface.blit(title, (frame.x + 16, frame.y + 12))

        if snap.state is SessionNode.IDLE:
            self._render_idle(surface, frame, snap)
        elif snap.state is SessionNode.COUNTDOWN:
            text = self._big_font.render(str(snap.context.countdown), True, _TEXT)
            surface.blit(text, text.get_rect(center=frame.center))
        elif snap.state is SessionNode.PLAYING:
            self._render_playing(surface, frame, snap)
        else:
            self._render_results(surface, frame, snap)

    def _render_idle(self, surface: pygame.Surface, frame: pygame.Rect, snap: SessionSnapshot) -> None:
        voice = "on" if snap.context.voice_enabled else "off"
        lines = [
            f"Press L whenever the square is one {self._controller.config.piece} move from the origin.",
            "",
            "Enter/Space: start    V: voice    Esc: quit",
            f"Voice: {voice}",
        ]
        self._blit_lines(surface, lines, frame.x + 24, frame.y + 80)

    def _render_playing(self, surface: pygame.Surface, frame: pygame.Rect, snap: SessionSnapshot) -> None:
        ctx = snap.context
        cfg = self._controller.config
        board_size = min(frame.h - 80, frame.w // 2)
        board = pygame.Rect(frame.x + 24, frame.y + 64, board_size, board_size)
        self._draw_board(surface, board, origin=ctx.origin, stimulus=ctx.current_square)

        x = board.right + 32
        origin = "-" if ctx.origin is None else ctx.origin.name
        current = "-" if ctx.current_square is None else ctx.current_square.name
        remaining = "-" if snap.time_remaining_s is None else f"{snap.time_remaining_s:.1f}s"
        lines = [
            f"Round: {ctx.round_number} / {cfg.rounds}",
            f"Origin: {cfg.piece} {origin}",
            f"Current square: {current}",
            f"Remaining in round: {ctx.remaining_in_round}",
            f"Score: {ctx.score}",
            f"Next: {remaining}",
        ]
        y = self._blit_lines(surface, lines, x, board.y)

        feedback = "idle"
        if snap.has_tag("hit"):
            feedback = "hit"
        elif snap.has_tag("false_alarm"):
            feedback = "false_alarm"
        button = pygame.Rect(x, y + 24, 180, 48)
        pygame.draw.rect(surface, _BUTTON[feedback], button)
        pygame.draw.rect(surface, _BORDER, button, 2)
        label = self._small_font.render("MATCH (L)", True, _TEXT)
        surface.blit(label, label.get_rect(center=button.center))

    def _render_results(self, surface: pygame.Surface, frame: pygame.Rect, snap: SessionSnapshot) -> None:
        result = session_result_from_context(snap.context, seed=self._seed)
        tally = result.tally
        rt = "n/a" if result.mean_rt_ms is None else f"{result.mean_rt_ms:.0f} ms"
        lines = [
            "Game over",
            "",
            f"Accuracy: {result.accuracy:.2f}%",
            f"Hits: {tally.hits}   Misses: {tally.misses}",
            f"False alarms: {tally.false_alarms}   Correct rejections: {tally.correct_rejections}",
            f"Mean RT: {rt}",
            "",
            "Press Enter to play again.",
        ]
        self._blit_lines(surface, lines, frame.x + 24, frame.y + 80)

    def _draw_board(
        self,
        surface: pygame.Surface,
        board: pygame.Rect,
        *,
        origin: Square | None,
        stimulus: Square | None,
    ) -> None:
        cell = board.w // 8
        for sq in ALL_SQUARES:
            # Rank 8 at the top, file a on the left.
            rect = pygame.Rect(board.x + sq.file_index * cell, board.y + (7 - sq.rank_index) * cell, cell, cell)
            color = _LIGHT_SQ if square_color(sq) is SquareColor.LIGHT else _DARK_SQ
            if sq == origin:
                color = _ORIGIN
            elif sq == stimulus:
                color = _STIMULUS
            pygame.draw.rect(surface, color, rect)
        pygame.draw.rect(surface, _BORDER, pygame.Rect(board.x, board.y, cell * 8, cell * 8), 1)

    def _blit_lines(self, surface: pygame.Surface, lines: list[str], x: int, y: int) -> int:
        for line in lines:
            if line:
                surface.blit(self._small_font.render(line, True, _TEXT), (x, y))
            y += 30
        return y


def _new_seed() -> int:
    return random.SystemRandom().randint(1, 2**31 - 1)


def run(
    *,
    max_frames: int | None = None,
    event_injector: Callable[[int], None] | None = None,
    config: SessionConfig | None = None,
) -> int:
    # Bad CVT_* values fail here, before pygame is initialised.
    cfg = config or SessionConfig.from_env()
    pygame.init()

    pygame.display.set_caption("Chess Vision Trainer")
    surface = pygame.display.set_mode(WINDOW_SIZE, pygame.RESIZABLE)

    font = pygame.font.Font(None, 36)
    clock = pygame.time.Clock()

    app = App(surface=surface, font=font)

    seed = _new_seed()
    speaker = OfflineTtsSpeaker()
    controller = build_session(clock=RealClock(), seed=seed, config=cfg, announcer=speaker)
    app.push(TrainerScreen(app, controller=controller, speaker=speaker, seed=seed))

    frame = 0
    try:
        while app.running:
            if event_injector is not None:
                event_injector(frame)

            for event in pygame.event.get():
                app.handle_event(event)

            app.update()
            app.render()

            pygame.display.flip()

            frame += 1
            if max_frames is not None and frame >= max_frames:
                break

            clock.tick(TARGET_FPS)
    finally:
        speaker.stop()
        pygame.quit()

    return 0
