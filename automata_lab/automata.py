from __future__ import annotations

from types import MappingProxyType
from typing import (
    AbstractSet,
    Any,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Mapping,
    NamedTuple,
    Optional,
    Sequence,
    Tuple,
)

EPSILON = "ε"


class AutomatonError(Exception):
    """Base class for everything that goes wrong with an automaton."""


class AutomatonValidationError(AutomatonError):
    """The definition breaks one of the structural invariants."""


class InvalidSymbolError(AutomatonError):
    """A symbol outside the declared alphabet was fed to the automaton."""

    def __init__(self, symbol: str) -> None:
        super().__init__(f"Error: Character '{symbol}' is not in the alphabet.")
        self.symbol = symbol


class FiredTransition(NamedTuple):
    from_state: str
    symbol: str
    to_state: str


class NextStates(NamedTuple):
    states: FrozenSet[str]
    transitions: Tuple[FiredTransition, ...]
    epsilon_states: FrozenSet[str]


class RunReport(NamedTuple):
    accepted: bool
    final_states: Tuple[str, ...]
    error: Optional[str] = None


class Automaton:
    """Immutable finite automaton value.

    Every editing method returns a fresh instance; the receiver is never
    touched, so old revisions can be kept around safely.
    """

    kind = "automaton"

    __slots__ = (
        "_states",
        "_alphabet",
        "_alphabet_set",
        "_initial_state",
        "_accepting_states",
        "_transitions",
        "_state_index",
    )

    def __init__(
        self,
        states: Sequence[str],
        alphabet: Sequence[str],
        transitions: Mapping[str, Mapping[str, Any]],
        initial_state: str,
        accepting_states: Iterable[str],
    ) -> None:
        self._states = tuple(self._normalize_state(s) for s in states)
        if not self._states:
            raise AutomatonValidationError("Need at least one state, shocker.")
        if len(set(self._states)) != len(self._states):
            raise AutomatonValidationError("State names gotta be unique.")

        self._alphabet = tuple(self._normalize_symbol(sym) for sym in alphabet)
        if len(set(self._alphabet)) != len(self._alphabet):
            raise AutomatonValidationError("Duplicate alphabet symbols? nope.")
        self._alphabet_set = frozenset(self._alphabet)
        self._check_alphabet()

        self._state_index = {state: idx for idx, state in enumerate(self._states)}

        self._initial_state = self._normalize_state(initial_state)
        if self._initial_state not in self._state_index:
            raise AutomatonValidationError(
                f"Initial state '{self._initial_state}' is not one of the declared states."
            )
        self._accepting_states = frozenset(self._normalize_state(s) for s in accepting_states)
        missing = [s for s in self._accepting_states if s not in self._state_index]
        if missing:
            raise AutomatonValidationError(
                f"Accepting states not declared: {', '.join(sorted(missing))}."
            )

        rows = self._build_transition_map(transitions)
        self._transitions = MappingProxyType(
            {state: MappingProxyType(rows[state]) for state in self._states}
        )

    # ---------------------------------------------------------------
    @staticmethod
    def _normalize_state(state: str) -> str:
        if not isinstance(state, str) or not state.strip():
            raise AutomatonValidationError("States must be non-empty strings.")
        return state.strip()

    @staticmethod
    def _normalize_symbol(symbol: str) -> str:
        if not isinstance(symbol, str) or not symbol.strip():
            raise AutomatonValidationError("Alphabet symbols must be non-empty strings.")
        return symbol.strip()

    def _check_alphabet(self) -> None:
        pass

    def _build_transition_map(
        self, transitions: Mapping[str, Mapping[str, Any]]
    ) -> Dict[str, Dict[str, Any]]:
        raise NotImplementedError

    def _require_state(self, state: str) -> str:
        if state not in self._state_index:
            raise AutomatonError(f"Unknown state '{state}'.")
        return state

    def _require_row(self, transitions: Mapping[str, Any], state: str) -> Mapping[str, Any]:
        norm_state = self._normalize_state(state)
        if norm_state not in self._state_index:
            raise AutomatonValidationError(
                f"State '{norm_state}' shows up in transitions but not in the state list."
            )
        mapping = transitions[state]
        if not isinstance(mapping, Mapping):
            raise AutomatonValidationError("Transitions per state must be mapping-like.")
        return mapping

    def _require_destination(self, destination: str) -> str:
        destination = self._normalize_state(destination)
        if destination not in self._state_index:
            raise AutomatonValidationError(f"Destination '{destination}' was never declared.")
        return destination

    # ---------------------------------------------------------------
    @property
    def states(self) -> Tuple[str, ...]:
        return self._states

    @property
    def alphabet(self) -> Tuple[str, ...]:
        return self._alphabet

    @property
    def initial_state(self) -> str:
        return self._initial_state

    @property
    def accepting_states(self) -> FrozenSet[str]:
        return self._accepting_states

    @property
    def transitions(self) -> Mapping[str, Mapping[str, Any]]:
        return self._transitions

    def has_symbol(self, symbol: str) -> bool:
        return symbol in self._alphabet_set

    def ordered(self, states: Iterable[str]) -> List[str]:
        """Return `states` in declaration order."""
        return sorted(
            (self._require_state(state) for state in set(states)),
            key=self._state_index.__getitem__,
        )

    def is_accepting_state(self, state: str) -> bool:
        return state in self._accepting_states

    def are_accepting_states(self, states: Iterable[str]) -> bool:
        return any(state in self._accepting_states for state in states)

    def accepts(self, input_symbols: Iterable[str]) -> bool:
        return self.process_input(input_symbols).accepted

    def process_input(self, input_symbols: Iterable[str]) -> RunReport:
        raise NotImplementedError

    # ---------------------------------------------------------------
    # Editing. All of these return a new automaton.
    def _config(self) -> Dict[str, Any]:
        return {
            "states": self._states,
            "alphabet": self._alphabet,
            "transitions": {state: dict(row) for state, row in self._transitions.items()},
            "initial_state": self._initial_state,
            "accepting_states": self._accepting_states,
        }

    def _replace(self, **changes: Any) -> "Automaton":
        config = self._config()
        config.update(changes)
        return type(self)(**config)

    def _without_targets(
        self, row: Mapping[str, Any], removed: AbstractSet[str], fallback: str
    ) -> Dict[str, Any]:
        raise NotImplementedError

    def _kept_columns(self) -> FrozenSet[str]:
        return frozenset()

    def with_states(self, states: Sequence[str]) -> "Automaton":
        names = tuple(self._normalize_state(s) for s in states)
        if not names:
            raise AutomatonValidationError("An automaton needs at least one state.")
        keep = set(names)
        removed = frozenset(s for s in self._states if s not in keep)
        fallback = names[0]
        transitions = {
            state: self._without_targets(row, removed, fallback)
            for state, row in self._transitions.items()
            if state in keep
        }
        initial = self._initial_state if self._initial_state in keep else fallback
        return self._replace(
            states=names,
            transitions=transitions,
            initial_state=initial,
            accepting_states=self._accepting_states & keep,
        )

    def add_state(self, state: str) -> "Automaton":
        state = self._normalize_state(state)
        if state in self._state_index:
            return self
        return self.with_states(self._states + (state,))

    def remove_state(self, state: str) -> "Automaton":
        state = self._normalize_state(state)
        if state not in self._state_index:
            return self
        if len(self._states) == 1:
            raise AutomatonValidationError("Cannot remove the only remaining state.")
        return self.with_states(tuple(s for s in self._states if s != state))

    def with_alphabet(self, alphabet: Sequence[str]) -> "Automaton":
        symbols = tuple(self._normalize_symbol(sym) for sym in alphabet)
        keep = set(symbols) | self._kept_columns()
        transitions = {
            state: {symbol: target for symbol, target in row.items() if symbol in keep}
            for state, row in self._transitions.items()
        }
        return self._replace(alphabet=symbols, transitions=transitions)

    def add_symbol(self, symbol: str) -> "Automaton":
        symbol = self._normalize_symbol(symbol)
        if symbol in self._alphabet_set:
            return self
        return self.with_alphabet(self._alphabet + (symbol,))

    def remove_symbol(self, symbol: str) -> "Automaton":
        symbol = self._normalize_symbol(symbol)
        if symbol not in self._alphabet_set:
            return self
        return self.with_alphabet(tuple(s for s in self._alphabet if s != symbol))

    def set_initial_state(self, state: str) -> "Automaton":
        state = self._normalize_state(state)
        if state not in self._state_index:
            raise AutomatonValidationError(f"Cannot make unknown state '{state}' initial.")
        return self._replace(initial_state=state)

    def set_accepting_states(self, states: Iterable[str]) -> "Automaton":
        return self._replace(accepting_states=frozenset(states))

    def toggle_accepting_state(self, state: str) -> "Automaton":
        state = self._normalize_state(state)
        if state not in self._state_index:
            raise AutomatonValidationError(f"Cannot toggle unknown state '{state}'.")
        return self._replace(accepting_states=self._accepting_states ^ {state})

    # ---------------------------------------------------------------
    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind,
            "states": list(self._states),
            "alphabet": list(self._alphabet),
            "transitions": {
                state: {symbol: self._dump_target(target) for symbol, target in row.items()}
                for state, row in self._transitions.items()
            },
            "initialState": self._initial_state,
            "acceptingStates": self.ordered(self._accepting_states),
        }

    def _dump_target(self, target: Any) -> Any:
        return target

    @staticmethod
    def from_dict(payload: Mapping[str, Any]) -> "Automaton":
        kind = str(payload.get("type", "")).lower()
        common = dict(
            states=payload["states"],
            alphabet=payload["alphabet"],
            transitions=payload.get("transitions") or {},
            initial_state=payload["initialState"],
            accepting_states=payload.get("acceptingStates") or [],
        )
        if kind == "dfa":
            return DFA(**common)
        if kind == "nfa":
            return NFA(
                epsilon_symbol=payload.get("epsilonSymbol", EPSILON),
                use_epsilon_transitions=payload.get("useEpsilonTransitions", True),
                **common,
            )
        raise AutomatonValidationError(f"Unknown automaton type '{kind}'.")

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.to_dict() == other.to_dict()  # type: ignore[union-attr]

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(states={list(self._states)!r}, "
            f"alphabet={list(self._alphabet)!r}, initial_state={self._initial_state!r}, "
            f"accepting_states={self.ordered(self._accepting_states)!r})"
        )


class DFA(Automaton):
    kind = "dfa"

    __slots__ = ()

    def _build_transition_map(
        self, transitions: Mapping[str, Mapping[str, Any]]
    ) -> Dict[str, Dict[str, str]]:
        result: Dict[str, Dict[str, str]] = {state: {} for state in self._states}
        for state, mapping in transitions.items():
            mapping = self._require_row(transitions, state)
            row = result[self._normalize_state(state)]
            for symbol, destination in mapping.items():
                norm_symbol = self._normalize_symbol(symbol)
                if norm_symbol not in self._alphabet_set:
                    raise AutomatonValidationError(
                        f"Symbol '{norm_symbol}' is not part of the alphabet."
                    )
                if not isinstance(destination, str):
                    raise AutomatonValidationError(
                        "DFA transitions must point to exactly one state."
                    )
                row[norm_symbol] = self._require_destination(destination)

        # Unset entries fall back to the first declared state.
        default = self._states[0]
        for row in result.values():
            for symbol in self._alphabet:
                row.setdefault(symbol, default)
        return result

    def _without_targets(
        self, row: Mapping[str, str], removed: AbstractSet[str], fallback: str
    ) -> Dict[str, str]:
        return {
            symbol: fallback if destination in removed else destination
            for symbol, destination in row.items()
        }

    def compute_next_state(self, state: str, symbol: str) -> str:
        if symbol not in self._alphabet_set:
            raise InvalidSymbolError(symbol)
        return self._transitions[self._require_state(state)][symbol]

    def set_transition(self, from_state: str, symbol: str, to_state: str) -> "DFA":
        from_state = self._require_state(self._normalize_state(from_state))
        symbol = self._normalize_symbol(symbol)
        if symbol not in self._alphabet_set:
            raise InvalidSymbolError(symbol)
        transitions = self._config()["transitions"]
        transitions[from_state][symbol] = self._require_destination(to_state)
        return self._replace(transitions=transitions)  # type: ignore[return-value]

    def process_input(self, input_symbols: Iterable[str]) -> RunReport:
        current = self._initial_state
        for symbol in input_symbols:
            try:
                current = self.compute_next_state(current, symbol)
            except InvalidSymbolError as exc:
                return RunReport(False, (current,), str(exc))
        return RunReport(self.is_accepting_state(current), (current,))


class NFA(Automaton):
    kind = "nfa"

    __slots__ = ("_epsilon_symbol", "_use_epsilon")

    def __init__(
        self,
        states: Sequence[str],
        alphabet: Sequence[str],
        transitions: Mapping[str, Mapping[str, Any]],
        initial_state: str,
        accepting_states: Iterable[str],
        epsilon_symbol: str = EPSILON,
        use_epsilon_transitions: bool = True,
    ) -> None:
        self._epsilon_symbol = self._normalize_symbol(epsilon_symbol)
        self._use_epsilon = bool(use_epsilon_transitions)
        super().__init__(states, alphabet, transitions, initial_state, accepting_states)

    @property
    def epsilon_symbol(self) -> str:
        return self._epsilon_symbol

    @property
    def use_epsilon_transitions(self) -> bool:
        return self._use_epsilon

    def _check_alphabet(self) -> None:
        if self._epsilon_symbol in self._alphabet_set:
            raise AutomatonValidationError("Epsilon symbol sneaked into the alphabet.")

    def _build_transition_map(
        self, transitions: Mapping[str, Mapping[str, Any]]
    ) -> Dict[str, Dict[str, FrozenSet[str]]]:
        result: Dict[str, Dict[str, FrozenSet[str]]] = {state: {} for state in self._states}
        for state in transitions:
            mapping = self._require_row(transitions, state)
            row = result[self._normalize_state(state)]
            for symbol, destinations in mapping.items():
                norm_symbol = self._normalize_symbol(symbol)
                if norm_symbol not in self._alphabet_set and norm_symbol != self._epsilon_symbol:
                    raise AutomatonValidationError(
                        f"Symbol '{norm_symbol}' is not part of the alphabet."
                    )
                if destinations is None:
                    targets: Iterable[str] = ()
                elif isinstance(destinations, str):
                    targets = (destinations,)
                else:
                    targets = destinations
                row[norm_symbol] = frozenset(self._require_destination(dst) for dst in targets)

        for row in result.values():
            for symbol in self._alphabet:
                row.setdefault(symbol, frozenset())
            row.setdefault(self._epsilon_symbol, frozenset())
        return result

    def _without_targets(
        self, row: Mapping[str, FrozenSet[str]], removed: AbstractSet[str], fallback: str
    ) -> Dict[str, FrozenSet[str]]:
        return {symbol: destinations - removed for symbol, destinations in row.items()}

    def _kept_columns(self) -> FrozenSet[str]:
        return frozenset((self._epsilon_symbol,))

    def _config(self) -> Dict[str, Any]:
        config = super()._config()
        config["epsilon_symbol"] = self._epsilon_symbol
        config["use_epsilon_transitions"] = self._use_epsilon
        return config

    def _dump_target(self, target: FrozenSet[str]) -> List[str]:
        return self.ordered(target)

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["epsilonSymbol"] = self._epsilon_symbol
        payload["useEpsilonTransitions"] = self._use_epsilon
        return payload

    # ---------------------------------------------------------------
    def compute_epsilon_closure(self, states: Iterable[str]) -> FrozenSet[str]:
        """Return every state reachable from `states` through ε-moves alone.

        The starting states are always part of the closure. With
        ε-transitions switched off the input set comes back unchanged.
        """
        start = frozenset(self._require_state(state) for state in states)
        if not self._use_epsilon:
            return start
        closure = set(start)
        stack = list(start)
        while stack:
            here = stack.pop()
            for nxt in self._transitions[here][self._epsilon_symbol]:
                if nxt not in closure:
                    closure.add(nxt)
                    stack.append(nxt)
        return frozenset(closure)

    def compute_next_states(self, states: Iterable[str], symbol: str) -> NextStates:
        if symbol not in self._alphabet_set:
            raise InvalidSymbolError(symbol)
        fired: List[FiredTransition] = []
        direct = set()
        for state in self.ordered(states):
            for target in self.ordered(self._transitions[state][symbol]):
                fired.append(FiredTransition(state, symbol, target))
                direct.add(target)
        closed = self.compute_epsilon_closure(direct)
        return NextStates(closed, tuple(fired), closed - direct)

    def add_transition(self, from_state: str, symbol: str, to_state: str) -> "NFA":
        from_state, symbol, to_state = self._check_edge(from_state, symbol, to_state)
        transitions = self._config()["transitions"]
        transitions[from_state][symbol] = transitions[from_state][symbol] | {to_state}
        return self._replace(transitions=transitions)  # type: ignore[return-value]

    def remove_transition(self, from_state: str, symbol: str, to_state: str) -> "NFA":
        from_state, symbol, to_state = self._check_edge(from_state, symbol, to_state)
        transitions = self._config()["transitions"]
        transitions[from_state][symbol] = transitions[from_state][symbol] - {to_state}
        return self._replace(transitions=transitions)  # type: ignore[return-value]

    def toggle_transition(self, from_state: str, symbol: str, to_state: str) -> "NFA":
        from_state, symbol, to_state = self._check_edge(from_state, symbol, to_state)
        if to_state in self._transitions[from_state][symbol]:
            return self.remove_transition(from_state, symbol, to_state)
        return self.add_transition(from_state, symbol, to_state)

    def set_use_epsilon_transitions(self, enabled: bool) -> "NFA":
        return self._replace(use_epsilon_transitions=bool(enabled))  # type: ignore[return-value]

    def _check_edge(self, from_state: str, symbol: str, to_state: str) -> Tuple[str, str, str]:
        from_state = self._require_state(self._normalize_state(from_state))
        to_state = self._require_destination(to_state)
        symbol = self._normalize_symbol(symbol)
        if symbol == self._epsilon_symbol:
            if not self._use_epsilon:
                raise AutomatonValidationError("Epsilon transitions are switched off.")
        elif symbol not in self._alphabet_set:
            raise InvalidSymbolError(symbol)
        return from_state, symbol, to_state

    def process_input(self, input_symbols: Iterable[str]) -> RunReport:
        current = self.compute_epsilon_closure([self._initial_state])
        for symbol in input_symbols:
            try:
                current = self.compute_next_states(current, symbol).states
            except InvalidSymbolError as exc:
                return RunReport(False, tuple(self.ordered(current)), str(exc))
            if not current:
                return RunReport(False, ())
        return RunReport(self.are_accepting_states(current), tuple(self.ordered(current)))
