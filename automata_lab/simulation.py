from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, FrozenSet, Optional, Tuple

from .automata import DFA, NFA, Automaton, FiredTransition, InvalidSymbolError
from .scheduling import Scheduler

log = logging.getLogger(__name__)

DEFAULT_SPEED_MS = 500


class Phase(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETE = "complete"


class Outcome(enum.Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    INVALID_SYMBOL = "invalid_symbol"
    NO_VALID_TRANSITION = "no_valid_transition"
    EMPTY_INPUT = "empty_input"


@dataclass(frozen=True)
class SimulationStep:
    """One entry of the playback path.

    Step 0 has an empty `symbol` and no originating configuration. DFA runs
    fill `state`/`from_state`; NFA runs fill `states`/`from_states` plus the
    transitions that fired and the states only reached through ε-closure.
    """

    symbol: str = ""
    state: Optional[str] = None
    from_state: Optional[str] = None
    states: FrozenSet[str] = frozenset()
    from_states: FrozenSet[str] = frozenset()
    processed_input: str = ""
    remaining_input: str = ""
    transitions: Tuple[FiredTransition, ...] = ()
    epsilon_states: FrozenSet[str] = frozenset()

    @property
    def configuration(self) -> FrozenSet[str]:
        if self.state is not None:
            return frozenset((self.state,))
        return self.states


@dataclass(frozen=True)
class SimulationState:
    is_running: bool = False
    is_paused: bool = False
    is_complete: bool = False
    current_step: int = 0
    current_state: Optional[str] = None
    current_states: Optional[FrozenSet[str]] = None
    processed_input: str = ""
    remaining_input: str = ""
    speed: int = DEFAULT_SPEED_MS
    path: Tuple[SimulationStep, ...] = ()

    @property
    def phase(self) -> Phase:
        if not self.is_running:
            return Phase.IDLE
        if self.is_complete:
            return Phase.COMPLETE
        if self.is_paused:
            return Phase.PAUSED
        return Phase.RUNNING

    @property
    def configuration(self) -> FrozenSet[str]:
        if self.current_state is not None:
            return frozenset((self.current_state,))
        return self.current_states or frozenset()


@dataclass(frozen=True)
class SimulationResult:
    visible: bool = False
    accepted: bool = False
    message: str = ""
    outcome: Optional[Outcome] = None

    @classmethod
    def hidden(cls) -> "SimulationResult":
        return cls()


def _check_speed(speed: int) -> int:
    if isinstance(speed, bool) or not isinstance(speed, int) or speed <= 0:
        raise ValueError(f"Step interval must be a positive number of milliseconds, got {speed!r}.")
    return speed


class Simulator:
    """Stepwise player for a DFA or NFA run.

    The simulator owns at most one pending tick. Every place that schedules a
    tick cancels the previous one first, and each tick remembers the
    generation it was scheduled in so a callback that slips past a
    cancellation does nothing.
    """

    def __init__(
        self,
        automaton: Automaton,
        scheduler: Scheduler,
        *,
        speed: int = DEFAULT_SPEED_MS,
        on_change: Optional[Callable[["Simulator"], None]] = None,
    ) -> None:
        self._check_automaton(automaton)
        self._automaton = automaton
        self._scheduler = scheduler
        self._on_change = on_change
        self._pending: Any = None
        self._generation = 0
        self._input = ""
        self._loading = False
        self._result = SimulationResult.hidden()
        self._state = self._idle_state(_check_speed(speed))

    @staticmethod
    def _check_automaton(automaton: Automaton) -> None:
        if not isinstance(automaton, (DFA, NFA)):
            raise TypeError("Simulator needs a DFA or an NFA.")

    # ---------------------------------------------------------------
    @property
    def automaton(self) -> Automaton:
        return self._automaton

    @property
    def state(self) -> SimulationState:
        return self._state

    @property
    def result(self) -> SimulationResult:
        return self._result

    @property
    def input_string(self) -> str:
        return self._input

    @property
    def is_loading(self) -> bool:
        return self._loading

    @property
    def has_pending_tick(self) -> bool:
        return self._pending is not None

    # ---------------------------------------------------------------
    def _initial_step(self) -> SimulationStep:
        automaton = self._automaton
        if isinstance(automaton, DFA):
            return SimulationStep(state=automaton.initial_state, remaining_input=self._input)
        closure = automaton.compute_epsilon_closure([automaton.initial_state])
        return SimulationStep(
            states=closure,
            remaining_input=self._input,
            epsilon_states=closure - {automaton.initial_state},
        )

    def _idle_state(self, speed: int) -> SimulationState:
        first = self._initial_step()
        if isinstance(self._automaton, DFA):
            return SimulationState(
                current_state=first.state, remaining_input=self._input, speed=speed
            )
        return SimulationState(
            current_states=first.states, remaining_input=self._input, speed=speed
        )

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self)

    def _cancel_pending(self) -> None:
        self._generation += 1
        if self._pending is not None:
            self._scheduler.cancel(self._pending)
            self._pending = None
            log.debug("Cancelled pending tick")

    def _schedule(self, delay_ms: int, action: Callable[[], None]) -> None:
        self._cancel_pending()
        generation = self._generation

        def fire() -> None:
            if generation != self._generation:
                log.debug("Ignoring stale tick from generation %d", generation)
                return
            self._pending = None
            action()

        self._pending = self._scheduler.call_later(delay_ms, fire)
        log.debug("Scheduled tick in %d ms", delay_ms)

    # ---------------------------------------------------------------
    def set_input(self, text: str) -> None:
        self._input = text
        if not self._state.is_running:
            self._state = replace(self._state, remaining_input=text)
            self._notify()

    def submit(self, text: str) -> bool:
        if self._state.is_running:
            self.stop()
        self.set_input(text)
        if not text:
            self._result = SimulationResult(
                visible=True,
                accepted=False,
                message="Please enter an input string to test.",
                outcome=Outcome.EMPTY_INPUT,
            )
            self._notify()
            return False
        self.start()
        return True

    def set_automaton(self, automaton: Automaton) -> None:
        self._check_automaton(automaton)
        self._automaton = automaton
        self.stop()

    def start(self) -> None:
        self._cancel_pending()
        first = self._initial_step()
        self._result = SimulationResult.hidden()
        self._state = SimulationState(
            is_running=True,
            current_state=first.state,
            current_states=None if first.state is not None else first.states,
            remaining_input=self._input,
            speed=self._state.speed,
            path=(first,),
        )
        self._loading = True
        log.debug("Simulation started on %r", self._input)
        self._notify()
        self._schedule(self._state.speed, self._first_tick)

    def _first_tick(self) -> None:
        self._loading = False
        self.step()

    def step(self) -> None:
        state = self._state
        if not state.is_running or state.is_paused or state.is_complete:
            return
        self._advance(schedule_next=True)

    def pause(self) -> None:
        state = self._state
        if not state.is_running or state.is_paused or state.is_complete:
            return
        self._cancel_pending()
        self._loading = False
        self._state = replace(state, is_paused=True)
        log.debug("Paused at step %d", state.current_step)
        self._notify()

    def resume(self) -> None:
        state = self._state
        if not state.is_running or not state.is_paused or state.is_complete:
            return
        self._state = replace(state, is_paused=False)
        self._notify()
        self.step()

    def step_forward(self) -> None:
        state = self._state
        if state.is_complete:
            return
        if not state.is_running:
            self.start()
            return
        if state.is_paused:
            self._advance(schedule_next=False)

    def step_backward(self) -> None:
        state = self._state
        if state.current_step <= 0 or not state.is_running:
            return
        path = state.path[:-1]
        previous = path[-1]
        self._state = replace(
            state,
            current_step=state.current_step - 1,
            current_state=previous.state,
            current_states=None if previous.state is not None else previous.states,
            processed_input=previous.processed_input,
            remaining_input=previous.remaining_input,
            is_complete=False,
            is_paused=True,
            path=path,
        )
        self._cancel_pending()
        self._result = SimulationResult.hidden()
        log.debug("Stepped back to step %d", self._state.current_step)
        self._notify()

    def stop(self) -> None:
        self._cancel_pending()
        self._loading = False
        self._state = self._idle_state(self._state.speed)
        self._result = SimulationResult.hidden()
        self._notify()

    def set_speed(self, speed: int) -> None:
        self._state = replace(self._state, speed=_check_speed(speed))
        self._notify()

    def cleanup(self) -> None:
        self._cancel_pending()
        self._loading = False

    # ---------------------------------------------------------------
    def _advance(self, *, schedule_next: bool) -> None:
        self._loading = False
        state = self._state
        if not state.remaining_input:
            self._finish_run()
            return

        symbol = state.remaining_input[0]
        try:
            step = self._next_step(state, symbol)
        except InvalidSymbolError as exc:
            self._complete(
                SimulationResult(True, False, str(exc), Outcome.INVALID_SYMBOL)
            )
            return
        if step is None:
            states = ", ".join(self._automaton.ordered(state.configuration))
            self._complete(
                SimulationResult(
                    True,
                    False,
                    f"Rejected! No valid transitions from states [{states}] on input '{symbol}'.",
                    Outcome.NO_VALID_TRANSITION,
                )
            )
            return

        self._state = replace(
            state,
            current_step=state.current_step + 1,
            current_state=step.state,
            current_states=None if step.state is not None else step.states,
            processed_input=step.processed_input,
            remaining_input=step.remaining_input,
            path=state.path + (step,),
        )
        log.debug("Step %d consumed %r", self._state.current_step, symbol)
        self._notify()
        if schedule_next:
            self._schedule(self._state.speed, self.step)

    def _next_step(self, state: SimulationState, symbol: str) -> Optional[SimulationStep]:
        automaton = self._automaton
        processed = state.processed_input + symbol
        remaining = state.remaining_input[1:]
        if isinstance(automaton, DFA):
            return SimulationStep(
                symbol=symbol,
                state=automaton.compute_next_state(state.current_state or "", symbol),
                from_state=state.current_state,
                processed_input=processed,
                remaining_input=remaining,
            )
        current = state.current_states or frozenset()
        moved = automaton.compute_next_states(current, symbol)  # type: ignore[union-attr]
        if not moved.states:
            return None
        return SimulationStep(
            symbol=symbol,
            states=moved.states,
            from_states=current,
            processed_input=processed,
            remaining_input=remaining,
            transitions=moved.transitions,
            epsilon_states=moved.epsilon_states,
        )

    def _finish_run(self) -> None:
        automaton = self._automaton
        state = self._state
        text = state.processed_input
        if isinstance(automaton, DFA):
            accepted = automaton.is_accepting_state(state.current_state or "")
            failure = (
                f'Rejected! Input "{text}" ends in state {state.current_state}, '
                "which is not an accepting state."
            )
        else:
            accepted = automaton.are_accepting_states(state.configuration)
            states = ", ".join(automaton.ordered(state.configuration))
            failure = (
                f'Rejected! Input "{text}" ends in states [{states}], '
                "none of which are accepting states."
            )
        if accepted:
            result = SimulationResult(
                True, True, f'Success! Input "{text}" is accepted.', Outcome.ACCEPTED
            )
        else:
            result = SimulationResult(True, False, failure, Outcome.REJECTED)
        self._complete(result)

    def _complete(self, result: SimulationResult) -> None:
        self._cancel_pending()
        self._result = result
        self._state = replace(self._state, is_complete=True)
        log.info("Simulation finished: %s", result.message)
        self._notify()
