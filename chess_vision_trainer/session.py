from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from . import context as ctxops
from .config import SessionConfig
from .context import SessionContext
from .core import SeededRng
from .geometry import PieceKind, Square
from .scoring import Outcome, Response
from .speech import Announcer, spoken_square
from .timers import Clock, TimerHandle, TimerSource
from .trials import RandomRoundPlanner, RoundPlanner

logger = logging.getLogger(__name__)


class SessionNode(StrEnum):
    ROOT = "root"
    IDLE = "idle"
    COUNTDOWN = "countdown"
    PLAYING = "playing"
    STARTING_ROUND = "startingRound"
    PLAYING_ROUND = "playingRound"
    WAITING_FOR_RESPONSE = "waitingForResponse"
    HIT = "hit"
    FALSE_ALARM = "falseAlarm"
    GAME_OVER = "gameOver"


class SessionEvent(StrEnum):
    START = "start"
    USER_RESPONSE = "user_response"
    TICK = "tick"
    ROUND_READY = "round_ready"
    RESTART = "restart"
    TOGGLE_VOICE = "toggle_voice"


_PARENT: dict[SessionNode, SessionNode] = {
    SessionNode.IDLE: SessionNode.ROOT,
    SessionNode.COUNTDOWN: SessionNode.ROOT,
    SessionNode.PLAYING: SessionNode.ROOT,
    SessionNode.GAME_OVER: SessionNode.ROOT,
    SessionNode.STARTING_ROUND: SessionNode.PLAYING,
    SessionNode.PLAYING_ROUND: SessionNode.PLAYING,
    SessionNode.WAITING_FOR_RESPONSE: SessionNode.PLAYING_ROUND,
    SessionNode.HIT: SessionNode.PLAYING_ROUND,
    SessionNode.FALSE_ALARM: SessionNode.PLAYING_ROUND,
}

_INITIAL_CHILD: dict[SessionNode, SessionNode] = {
    SessionNode.ROOT: SessionNode.IDLE,
    SessionNode.PLAYING: SessionNode.STARTING_ROUND,
    SessionNode.PLAYING_ROUND: SessionNode.WAITING_FOR_RESPONSE,
}

_TAGS: dict[SessionNode, frozenset[str]] = {
    SessionNode.HIT: frozenset({"hit"}),
    SessionNode.FALSE_ALARM: frozenset({"false_alarm"}),
}


def node_path(node: SessionNode) -> tuple[SessionNode, ...]:
    """Ancestors of ``node`` from just below the root down to ``node``."""

    path: list[SessionNode] = []
    cur = node
    while cur is not SessionNode.ROOT:
        path.append(cur)
        cur = _PARENT[cur]
    return tuple(reversed(path))


@dataclass(frozen=True, slots=True)
class SessionSnapshot:
    """View model for the presentation layer (pure data)."""

    state: SessionNode  # top-level: idle / countdown / playing / gameOver
    active: tuple[SessionNode, ...]
    tags: frozenset[str]
    context: SessionContext
    time_remaining_s: float | None = None

    def matches(self, node: SessionNode | str) -> bool:
        return SessionNode(node) in self.active

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags

    @property
    def value(self) -> str:
        return ".".join(n.value for n in self.active)


Guard = Callable[[Response | None], bool]
Effect = Callable[[Response | None], None]


@dataclass(frozen=True, slots=True)
class Transition:
    target: SessionNode | None  # None: stay put, effects only
    guard: Guard | None = None
    effects: tuple[Effect, ...] = ()


class SessionController:
    """Hierarchical state machine driving rounds, trials and classification.

    - Deterministic: rounds come from an injected planner (seeded by default).
    - Time is entirely via injected Clock; timers fire from ``update()``.
    - Events are processed one at a time, to completion.
    """

    def __init__(
        self,
        *,
        config: SessionConfig,
        clock: Clock,
        rng: SeededRng | None = None,
        planner: RoundPlanner | None = None,
        announcer: Announcer | None = None,
    ) -> None:
        if planner is None:
            if rng is None:
                raise ValueError("either rng or planner is required")
            planner = RandomRoundPlanner(rng, ratios=config.target_ratios)

        self._config = config
        self._piece = PieceKind(config.piece)
        self._clock = clock
        self._timers = TimerSource(clock)
        self._planner = planner
        self._announcer = announcer

        self._ctx = ctxops.initial_context(config)
        self._leaf = SessionNode.IDLE
        self._owned_timers: dict[SessionNode, TimerHandle] = {}
        self._listeners: list[Callable[[SessionSnapshot], None]] = []
        self._dispatching = False
        self._queue: list[tuple[SessionEvent, Response | None]] = []

        self._table = self._build_table()

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def context(self) -> SessionContext:
        return self._ctx

    @property
    def state(self) -> SessionNode:
        return node_path(self._leaf)[0]

    @property
    def leaf(self) -> SessionNode:
        return self._leaf

    def subscribe(self, listener: Callable[[SessionSnapshot], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # Inbound events

    def start(self) -> bool:
        return self.send(SessionEvent.START)

    def respond(self, response: Response = Response.MATCH) -> bool:
        return self.send(SessionEvent.USER_RESPONSE, response=response)

    def restart(self) -> bool:
        return self.send(SessionEvent.RESTART)

    def toggle_voice(self) -> bool:
        return self.send(SessionEvent.TOGGLE_VOICE)

    def update(self) -> int:
        """Fire due timers; returns the number of ticks delivered."""

        return self._timers.poll()

    def send(self, event: SessionEvent | str, *, response: Response | None = None) -> bool:
        """Deliver one event. Returns False when the current state ignores it."""

        evt = SessionEvent(event)
        if evt is SessionEvent.USER_RESPONSE and response is None:
            response = Response.MATCH
        if self._dispatching:
            # Raised from inside a transition; run after the current one completes.
            self._queue.append((evt, response))
            return True

        self._dispatching = True
        try:
            handled = self._dispatch(evt, response)
            while self._queue:
                queued_evt, queued_response = self._queue.pop(0)
                self._dispatch(queued_evt, queued_response)
        finally:
            self._dispatching = False
            self._queue.clear()
        if handled:
            self._notify()
        return handled

    def snapshot(self) -> SessionSnapshot:
        active = node_path(self._leaf)
        tags: frozenset[str] = frozenset()
        for node in active:
            tags = tags | _TAGS.get(node, frozenset())
        return SessionSnapshot(
            state=active[0],
            active=active,
            tags=tags,
            context=self._ctx,
            time_remaining_s=self._time_remaining_s(),
        )

    def active_timer_count(self) -> int:
        return len(self._timers.active_handles())

    # Table

    def _build_table(self) -> dict[tuple[SessionNode, SessionEvent], tuple[Transition, ...]]:
        n = SessionNode
        e = SessionEvent
        return {
            (n.ROOT, e.TOGGLE_VOICE): (Transition(target=None, effects=(self._toggle_voice,)),),
            (n.IDLE, e.START): (
                Transition(target=n.COUNTDOWN, guard=self._countdown_enabled),
                Transition(target=n.PLAYING),
            ),
            (n.COUNTDOWN, e.TICK): (
                Transition(
                    target=n.PLAYING,
                    guard=self._countdown_finishing,
                    effects=(self._decrement_countdown, self._reset_countdown),
                ),
                Transition(target=None, effects=(self._decrement_countdown,)),
            ),
            (n.STARTING_ROUND, e.ROUND_READY): (Transition(target=n.PLAYING_ROUND),),
            (n.WAITING_FOR_RESPONSE, e.USER_RESPONSE): (
                Transition(
                    target=n.HIT,
                    guard=self._response_is_hit,
                    effects=(self._record_response, self._close_trial),
                ),
                Transition(target=n.FALSE_ALARM, effects=(self._record_response, self._close_trial)),
            ),
            (n.PLAYING_ROUND, e.TICK): (
                Transition(
                    target=n.WAITING_FOR_RESPONSE,
                    guard=self._more_trials_remain,
                    effects=(self._close_trial, self._advance_trial, self._present_trial, self._announce_square),
                ),
                Transition(
                    target=n.GAME_OVER,
                    guard=self._all_rounds_played,
                    effects=(self._close_trial, self._finish_session),
                ),
                Transition(target=n.STARTING_ROUND, effects=(self._close_trial,)),
            ),
            (n.GAME_OVER, e.RESTART): (Transition(target=n.IDLE, effects=(self._reset_context,)),),
        }

    def _dispatch(self, event: SessionEvent, response: Response | None) -> bool:
        source = self._leaf
        while True:
            candidates = self._table.get((source, event))
            if candidates:
                for transition in candidates:
                    if transition.guard is None or transition.guard(response):
                        self._take(source, transition, event, response)
                        return True
            if source is SessionNode.ROOT:
                break
            source = _PARENT[source]
        logger.debug("ignored %s in %s", event.value, self._leaf.value)
        return False

    def _take(
        self,
        source: SessionNode,
        transition: Transition,
        event: SessionEvent,
        response: Response | None,
    ) -> None:
        if transition.target is None:
            for effect in transition.effects:
                effect(response)
            return

        target = transition.target
        domain = self._transition_domain(source, target)
        active = node_path(self._leaf)
        previous = self._leaf
        previous_ctx = self._ctx

        # Exit leaf-first, down to (not including) the domain.
        exiting = [node for node in active if self._is_below(node, domain)]
        for node in reversed(exiting):
            self._exit(node)

        entering = [node for node in node_path(target) if self._is_below(node, domain)]
        leaf = target
        while leaf in _INITIAL_CHILD:
            leaf = _INITIAL_CHILD[leaf]
            entering.append(leaf)

        try:
            for effect in transition.effects:
                effect(response)
            self._leaf = leaf
            logger.debug("%s: %s -> %s", event.value, previous.value, leaf.value)
            for node in entering:
                self._enter(node)
        except Exception:
            logger.warning("%s from %s failed; staying in %s", event.value, previous.value, previous.value)
            self._rollback(previous, previous_ctx, exiting, entering)
            raise

    def _rollback(
        self,
        leaf: SessionNode,
        ctx: SessionContext,
        exited: list[SessionNode],
        entered: list[SessionNode],
    ) -> None:
        for node in reversed(entered):
            self._exit(node)
        self._leaf = leaf
        self._ctx = ctx
        # Timers only; presenting and announcing already happened on the first entry.
        for node in exited:
            self._start_timer(node)

    @staticmethod
    def _is_below(node: SessionNode, ancestor: SessionNode) -> bool:
        if ancestor is SessionNode.ROOT:
            return node is not SessionNode.ROOT
        return ancestor in node_path(node)[:-1]

    def _transition_domain(self, source: SessionNode, target: SessionNode) -> SessionNode:
        # Targeting a descendant keeps the source active; otherwise the source is left too.
        if source is not target and self._is_below(target, source):
            return source
        cur = _PARENT.get(source, SessionNode.ROOT)
        while cur is not SessionNode.ROOT:
            if cur is target or self._is_below(target, cur):
                return cur
            cur = _PARENT[cur]
        return SessionNode.ROOT

    # Entry / exit

    def _enter(self, node: SessionNode) -> None:
        if node is SessionNode.STARTING_ROUND:
            self._begin_round()
            self._announce_origin(None)
        elif node is SessionNode.PLAYING_ROUND:
            self._present_trial(None)
            self._announce_square(None)
        self._start_timer(node)

    def _start_timer(self, node: SessionNode) -> None:
        if node is SessionNode.COUNTDOWN:
            self._own_timer(node, self._timers.every(self._config.countdown_interval_s, self._on_tick))
        elif node is SessionNode.STARTING_ROUND:
            self._own_timer(node, self._timers.after(self._config.pre_round_delay_s, self._on_round_ready))
        elif node is SessionNode.PLAYING_ROUND:
            self._own_timer(node, self._timers.every(self._config.trial_window_s, self._on_tick))

    def _exit(self, node: SessionNode) -> None:
        handle = self._owned_timers.pop(node, None)
        if handle is not None:
            handle.cancel()

    def _own_timer(self, node: SessionNode, handle: TimerHandle) -> None:
        previous = self._owned_timers.pop(node, None)
        if previous is not None:
            previous.cancel()
        self._owned_timers[node] = handle

    def _on_tick(self) -> None:
        self.send(SessionEvent.TICK)

    def _on_round_ready(self) -> None:
        self.send(SessionEvent.ROUND_READY)

    def _time_remaining_s(self) -> float | None:
        for node in (SessionNode.PLAYING_ROUND, SessionNode.STARTING_ROUND, SessionNode.COUNTDOWN):
            handle = self._owned_timers.get(node)
            if handle is not None and handle.next_due_s is not None:
                return max(0.0, handle.next_due_s - self._clock.now())
        return None

    # Guards

    def _countdown_enabled(self, _response: Response | None) -> bool:
        return self._config.countdown_from > 0

    def _countdown_finishing(self, _response: Response | None) -> bool:
        return self._ctx.countdown <= 1

    def _response_is_hit(self, response: Response | None) -> bool:
        rnd = self._ctx.current_round
        index = self._ctx.trial_index
        if rnd is None or index is None:
            return False
        return rnd.targets[index] and response is Response.MATCH

    def _more_trials_remain(self, _response: Response | None) -> bool:
        return self._ctx.remaining_in_round > 1

    def _all_rounds_played(self, _response: Response | None) -> bool:
        return self._ctx.round_number >= self._config.rounds

    # Effects

    def _toggle_voice(self, _response: Response | None) -> None:
        self._ctx = ctxops.toggle_voice(self._ctx)

    def _decrement_countdown(self, _response: Response | None) -> None:
        self._ctx = ctxops.decrement_countdown(self._ctx)

    def _reset_countdown(self, _response: Response | None) -> None:
        self._ctx = ctxops.reset_countdown(self._ctx, self._config)

    def _begin_round(self) -> None:
        plan = self._planner.next_round(piece=self._piece, round_length=self._config.trials_per_round)
        if len(plan.stimuli) != self._config.trials_per_round:
            raise ValueError(
                f"planner returned {len(plan.stimuli)} stimuli, expected {self._config.trials_per_round}"
            )
        self._ctx = ctxops.begin_round(self._ctx, plan, self._piece)
        logger.debug("round %d: %s on %s", self._ctx.round_number, self._piece.value, plan.origin)

    def _present_trial(self, _response: Response | None) -> None:
        self._ctx = ctxops.present_trial(self._ctx, self._clock.now())

    def _record_response(self, response: Response | None) -> None:
        self._ctx = ctxops.record_response(self._ctx, response or Response.MATCH, self._clock.now())

    def _close_trial(self, _response: Response | None) -> None:
        before = self._ctx
        self._ctx = ctxops.close_trial(self._ctx)
        if self._ctx is not before:
            outcome: Outcome | None = self._ctx.last_outcome
            logger.debug("trial %s on %s: %s", before.trial_index, before.current_square, outcome)

    def _advance_trial(self, _response: Response | None) -> None:
        self._ctx = ctxops.advance_trial(self._ctx)

    def _finish_session(self, _response: Response | None) -> None:
        self._ctx = ctxops.finish_session(self._ctx)
        logger.info("session complete: accuracy %.2f%%", self._ctx.accuracy or 0.0)

    def _reset_context(self, _response: Response | None) -> None:
        self._ctx = ctxops.initial_context(self._config)

    def _announce_origin(self, _response: Response | None) -> None:
        origin = self._ctx.origin
        if origin is not None:
            self._announce(f"{self._piece.value} {spoken_square(origin)}")

    def _announce_square(self, _response: Response | None) -> None:
        square: Square | None = self._ctx.current_square
        if square is not None:
            self._announce(spoken_square(square))

    def _announce(self, text: str) -> None:
        if self._announcer is None or not self._ctx.voice_enabled:
            return
        self._announcer.speak(text)

    def _notify(self) -> None:
        if not self._listeners:
            return
        snap = self.snapshot()
        for listener in list(self._listeners):
            listener(snap)


def build_session(
    *,
    clock: Clock,
    seed: int,
    config: SessionConfig | None = None,
    announcer: Announcer | None = None,
) -> SessionController:
    cfg = config or SessionConfig()
    return SessionController(config=cfg, clock=clock, rng=SeededRng(seed), announcer=announcer)
