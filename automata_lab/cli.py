from __future__ import annotations

import argparse
import json
import logging
import random
import re
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Mapping, Optional, Sequence, TextIO, Tuple

from .analysis import TestCase, run_test_cases, summarize_results
from .automata import DFA, EPSILON, NFA, Automaton, AutomatonError
from .cyk import (
    CYKResult,
    Grammar,
    GrammarError,
    convert_to_cnf,
    format_derivation,
    parse_cyk,
    random_derivation,
    validate_grammar,
)
from .graphviz import step_highlight, write_dot
from .scheduling import ManualScheduler
from .simulation import DEFAULT_SPEED_MS, SimulationStep, Simulator

log = logging.getLogger(__name__)

TOKEN_SPLIT_RE = re.compile(r"[\s,]+")
EMPTY_INPUT_LABEL = "<empty>"


@dataclass
class Session:
    automaton: Automaton
    automaton_type: str
    test_cases: List[TestCase] = field(default_factory=list)


def split_list(text: str) -> List[str]:
    """Split comma-separated text into trimmed, non-empty entries."""
    return [part.strip() for part in text.split(",") if part.strip()]


def build_session_from_payload(payload: Mapping[str, Any]) -> Session:
    if not isinstance(payload, Mapping):
        raise ValueError("Config payload must be a mapping.")
    data = dict(payload)

    automaton_type = str(data.get("type", "")).lower()
    if automaton_type not in {"dfa", "nfa"}:
        raise ValueError("Config field 'type' must be either 'dfa' or 'nfa'.")

    states = _require_string_sequence(data, "states")
    alphabet = _require_string_sequence(data, "alphabet")
    initial_state = _require_string(data, "start_state", "initialState")
    accepting_states = _require_string_sequence(data, "accept_states", "acceptingStates", default=[])

    transitions_obj = data.get("transitions", {})
    if not isinstance(transitions_obj, dict):
        raise ValueError("Config field 'transitions' must be an object.")

    if automaton_type == "dfa":
        transitions = _normalize_dfa_transitions_from_config(transitions_obj)
        automaton: Automaton = DFA(states, alphabet, transitions, initial_state, accepting_states)
    else:
        epsilon_symbol = _pick(data, "epsilon_symbol", "epsilonSymbol", default=EPSILON)
        if not isinstance(epsilon_symbol, str) or not epsilon_symbol:
            raise ValueError("Config field 'epsilon_symbol' must be a non-empty string.")
        use_epsilon = _pick(data, "use_epsilon_transitions", "useEpsilonTransitions", default=True)
        transitions = _normalize_nfa_transitions_from_config(transitions_obj)
        automaton = NFA(
            states,
            alphabet,
            transitions,
            initial_state,
            accepting_states,
            epsilon_symbol=epsilon_symbol,
            use_epsilon_transitions=bool(use_epsilon),
        )

    test_cases = _load_test_cases_from_payload(data.get("test_cases"))
    return Session(automaton=automaton, automaton_type=automaton_type, test_cases=test_cases)


def load_grammar(path: Path) -> Grammar:
    with open(path, "r", encoding="utf-8") as handle:
        payload = json.load(handle)
    grammar = Grammar.from_dict(payload)
    validate_grammar(grammar)
    return grammar


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Step through DFA/NFA runs and check strings against grammars with CYK."
    )
    parser.add_argument("--config", help="Path to a JSON file that defines the automaton.")
    parser.add_argument(
        "--simulate",
        action="append",
        default=[],
        metavar="TEXT",
        help="Input string to play back step by step (repeatable).",
    )
    parser.add_argument(
        "--speed",
        type=int,
        default=DEFAULT_SPEED_MS,
        help="Milliseconds between simulation steps.",
    )
    parser.add_argument(
        "--no-delay",
        action="store_true",
        help="Print every simulation step without waiting between them.",
    )
    parser.add_argument(
        "--tests",
        help="Optional JSON file containing additional test cases to execute.",
    )
    parser.add_argument(
        "--output-dir",
        help="Directory where DOT graph files will be written.",
    )
    parser.add_argument(
        "--base-name",
        default="automaton",
        help="Base filename used for generated DOT files.",
    )
    parser.add_argument("--grammar", help="Path to a JSON file that defines a grammar.")
    parser.add_argument(
        "--parse",
        action="append",
        default=[],
        metavar="TEXT",
        help="String to check against the grammar with CYK (repeatable).",
    )
    parser.add_argument(
        "--cnf",
        action="store_true",
        help="Apply the simplified CNF conversion before parsing.",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Refuse to parse with a grammar that is not in CNF.",
    )
    parser.add_argument(
        "--derive",
        action="store_true",
        help="Print a random derivation tree from the start symbol.",
    )
    parser.add_argument(
        "--max-depth",
        type=int,
        default=4,
        help="Depth limit for --derive.",
    )
    parser.add_argument("--seed", type=int, help="Random seed for --derive.")
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase log output (-v info, -vv debug).",
    )
    args = parser.parse_args(argv)
    if not args.config and not args.grammar:
        parser.error("Provide --config, --grammar, or both.")
    if args.speed <= 0:
        parser.error("--speed must be a positive number of milliseconds.")
    return args


def _configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def run(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    _configure_logging(args.verbose)
    try:
        if args.config:
            session = _build_session(args)
            _display_summary(session)
            _run_tests(session)
            simulations = [
                simulate_string(
                    session.automaton, text, speed=args.speed, delay=not args.no_delay
                )
                for text in args.simulate
            ]
            if args.output_dir:
                paths = write_graphs_for_session(
                    session, args.output_dir, args.base_name, simulations
                )
                print("\nDOT files written:")
                for path in paths:
                    print(f"  {path}")
        if args.grammar:
            grammar = load_grammar(Path(args.grammar))
            if args.cnf:
                grammar = convert_to_cnf(grammar)
            _run_parses(grammar, args.parse, strict=args.strict)
            if args.derive:
                tree = random_derivation(
                    grammar, max_depth=args.max_depth, rng=random.Random(args.seed)
                )
                print("\nRandom derivation")
                for line in format_derivation(tree, "  "):
                    print(line)
    except KeyboardInterrupt:
        print("\nAborted by user.", file=sys.stderr)
        return 130
    except (
        AutomatonError,
        GrammarError,
        ValueError,
        OSError,
    ) as exc:
        log.debug("Command failed", exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


def main() -> None:
    raise SystemExit(run())


def _build_session(args: argparse.Namespace) -> Session:
    with open(Path(args.config), "r", encoding="utf-8") as handle:
        payload = json.load(handle)
    if not isinstance(payload, dict):
        raise ValueError("Config file must define a JSON object.")
    session = build_session_from_payload(payload)
    if args.tests:
        session.test_cases.extend(_load_test_cases_from_file(Path(args.tests)))
    return session


def _display_summary(session: Session) -> None:
    automaton = session.automaton
    print("Automaton Summary")
    print(f"  Type: {session.automaton_type.upper()}")
    print(f"  States: {', '.join(automaton.states)}")
    alphabet_text = ", ".join(automaton.alphabet) if automaton.alphabet else "<empty>"
    print(f"  Alphabet: {alphabet_text}")
    print(f"  Initial state: {automaton.initial_state}")
    accepting = automaton.ordered(automaton.accepting_states)
    print(f"  Accepting states: {', '.join(accepting) if accepting else '<none>'}")
    if isinstance(automaton, NFA):
        toggle = "on" if automaton.use_epsilon_transitions else "off"
        print(f"  Epsilon transitions: {toggle} ({automaton.epsilon_symbol})")
    print("  Transition function:")
    for state in automaton.states:
        parts: List[str] = []
        for symbol, target in automaton.transitions[state].items():
            if isinstance(target, str):
                parts.append(f"{symbol}->{target}")
            elif target:
                parts.append(f"{symbol}->{'|'.join(automaton.ordered(target))}")
        print(f"    {state}: {', '.join(parts) if parts else '<none>'}")


def _run_tests(session: Session):
    if not session.test_cases:
        return []
    print("\nRunning test cases...")
    results = run_test_cases(session.automaton, session.test_cases)
    summary = summarize_results(results)
    print(f"  Passed {summary['passed']} of {summary['total']} test cases.")
    for result in results:
        tokens_text = " ".join(result.case.tokens) if result.case.tokens else EMPTY_INPUT_LABEL
        expected_text = "accept" if result.case.expected else "reject"
        actual_text = "accept" if result.actual else "reject"
        status = "PASS" if result.passed else "FAIL"
        label_prefix = f"{result.case.label}: " if result.case.label else ""
        note = f" ({result.error})" if result.error else ""
        print(
            f"    [{status}] {label_prefix}{tokens_text} -> expected {expected_text}, got {actual_text}{note}"
        )
    return results


class _StepPrinter:
    def __init__(self, out: TextIO) -> None:
        self._out = out
        self._printed = 0
        self._finished = False

    def __call__(self, simulator: Simulator) -> None:
        path = simulator.state.path
        if len(path) < self._printed:
            self._printed = len(path)
        for index, step in enumerate(path[self._printed:], start=self._printed):
            print(format_step(simulator.automaton, index, step), file=self._out)
        self._printed = len(path)
        if simulator.result.visible and not self._finished:
            self._finished = True
            print(f"  {simulator.result.message}", file=self._out)


def format_step(automaton: Automaton, index: int, step: SimulationStep) -> str:
    if step.state is not None:
        if index == 0:
            return f"  {index}. start in {step.state}"
        return f"  {index}. δ({step.from_state}, {step.symbol}) → {step.state}"
    reached = "{" + ", ".join(automaton.ordered(step.states)) + "}"
    if index == 0:
        line = f"  {index}. start in {reached}"
    else:
        origin = "{" + ", ".join(automaton.ordered(step.from_states)) + "}"
        line = f"  {index}. δ({origin}, {step.symbol}) → {reached}"
    if step.epsilon_states:
        line += f" (via ε: {', '.join(automaton.ordered(step.epsilon_states))})"
    return line


def simulate_string(
    automaton: Automaton,
    text: str,
    *,
    speed: int = DEFAULT_SPEED_MS,
    delay: bool = True,
    out: Optional[TextIO] = None,
) -> Simulator:
    """Play `text` through `automaton`, printing every step as it happens."""
    out = out or sys.stdout
    scheduler = ManualScheduler()
    simulator = Simulator(automaton, scheduler, speed=speed, on_change=_StepPrinter(out))
    print(f"\nSimulating {text!r}" if text else f"\nSimulating {EMPTY_INPUT_LABEL}", file=out)
    simulator.set_input(text)
    simulator.start()
    while True:
        wait = scheduler.next_delay()
        if wait is None:
            break
        if delay and wait > 0:
            time.sleep(wait / 1000.0)
        scheduler.run_next()
    return simulator


def write_graphs_for_session(
    session: Session,
    output_dir: Path | str,
    base_name: Optional[str],
    simulations: Sequence[Simulator] = (),
) -> List[Path]:
    out_dir = Path(output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    name = (base_name or "automaton").strip() or "automaton"

    written_paths: List[Path] = []
    plain_path = out_dir / f"{name}_{session.automaton_type}.dot"
    write_dot(session.automaton, str(plain_path))
    written_paths.append(plain_path)
    for index, simulator in enumerate(simulations, start=1):
        path = simulator.state.path
        if not path:
            continue
        states, edges = step_highlight(path[-1])
        run_path = out_dir / f"{name}_{session.automaton_type}_run{index}.dot"
        write_dot(
            session.automaton,
            str(run_path),
            highlight_states=states,
            highlight_edges=edges,
        )
        written_paths.append(run_path)
    return [path.resolve() for path in written_paths]


def _run_parses(grammar: Grammar, inputs: Sequence[str], *, strict: bool) -> List[CYKResult]:
    print("\nGrammar")
    print(f"  Start symbol: {grammar.start_symbol}")
    for production in grammar.productions:
        print(f"    {production}")
    results: List[CYKResult] = []
    for text in inputs:
        result = parse_cyk(grammar, text, strict=strict)
        results.append(result)
        verdict = "accepted" if result.accepted else "rejected"
        label = text if text else EMPTY_INPUT_LABEL
        print(f"\nCYK {label}: {verdict}")
        for line in format_cyk_table(result, text):
            print(f"  {line}")
    return results


def format_cyk_table(result: CYKResult, text: Sequence[str]) -> List[str]:
    lines: List[str] = []
    for i, row in enumerate(result.table):
        for j in range(i, len(row)):
            cell = row[j]
            if cell:
                span = "".join(text[i : j + 1])
                lines.append(f"[{i},{j}] {span}: {', '.join(cell)}")
    return lines


def _pick(payload: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in payload:
            return payload[key]
    return default


def _require_string_sequence(payload: Mapping[str, Any], *keys: str, default: Any = None) -> List[str]:
    value = _pick(payload, *keys, default=default)
    if isinstance(value, str):
        return split_list(value)
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError(f"Config field '{keys[0]}' must be a list of strings.")
    return [item.strip() for item in value if item.strip()]


def _require_string(payload: Mapping[str, Any], *keys: str) -> str:
    value = _pick(payload, *keys)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Config field '{keys[0]}' must be a non-empty string.")
    return value.strip()


def _normalize_dfa_transitions_from_config(
    transitions: Mapping[str, Any]
) -> dict[str, dict[str, str]]:
    normalized: dict[str, dict[str, str]] = {}
    for state, mapping in transitions.items():
        if not isinstance(mapping, dict):
            raise ValueError("DFA transition entries must be objects.")
        state_map: dict[str, str] = {}
        for symbol, destination in mapping.items():
            if isinstance(destination, str):
                state_map[str(symbol)] = destination
            elif (
                isinstance(destination, list)
                and len(destination) == 1
                and isinstance(destination[0], str)
            ):
                state_map[str(symbol)] = destination[0]
            else:
                raise ValueError(
                    f"DFA transition for state '{state}' and symbol '{symbol}' must be a single destination string."
                )
        normalized[str(state)] = state_map
    return normalized


def _normalize_nfa_transitions_from_config(
    transitions: Mapping[str, Any]
) -> dict[str, dict[str, List[str]]]:
    normalized: dict[str, dict[str, List[str]]] = {}
    for state, mapping in transitions.items():
        if not isinstance(mapping, dict):
            raise ValueError("NFA transition entries must be objects.")
        state_map: dict[str, List[str]] = {}
        for symbol, destinations in mapping.items():
            if destinations is None:
                state_map[str(symbol)] = []
            elif isinstance(destinations, str):
                state_map[str(symbol)] = split_list(destinations)
            elif isinstance(destinations, list):
                if not all(isinstance(dest, str) for dest in destinations):
                    raise ValueError("NFA transitions must list destination state names.")
                state_map[str(symbol)] = list(destinations)
            else:
                raise ValueError("NFA transition destinations must be strings or lists of strings.")
        normalized[str(state)] = state_map
    return normalized


def _load_test_cases_from_file(path: Path) -> List[TestCase]:
    with open(path, "r", encoding="utf-8") as handle:
        payload = json.load(handle)
    return _load_test_cases_from_payload(payload)


def _load_test_cases_from_payload(data: Any) -> List[TestCase]:
    if data is None:
        return []
    if isinstance(data, dict):
        entries = data.get("cases", [])
    else:
        entries = data
    if not isinstance(entries, list):
        raise ValueError("Test cases must be provided as a list.")
    cases: List[TestCase] = []
    for index, entry in enumerate(entries, start=1):
        if not isinstance(entry, dict):
            raise ValueError("Each test case must be an object with 'input' and 'expected'.")
        raw_tokens = entry.get("input", [])
        expected = bool(entry.get("expected", False))
        label = entry.get("label") or f"case {index}"
        tokens = _normalize_test_case_tokens(raw_tokens)
        cases.append(TestCase(tokens=tokens, expected=expected, label=label))
    return cases


def _normalize_test_case_tokens(raw_tokens: Any) -> Tuple[str, ...]:
    if isinstance(raw_tokens, str):
        raw = raw_tokens.strip()
        if not raw:
            return ()
        if TOKEN_SPLIT_RE.search(raw):
            return tuple(token for token in TOKEN_SPLIT_RE.split(raw) if token)
        return tuple(raw)
    if isinstance(raw_tokens, list):
        if not all(isinstance(token, str) for token in raw_tokens):
            raise ValueError("Test case symbols must be strings.")
        return tuple(token.strip() for token in raw_tokens)
    raise ValueError("Test case 'input' must be a string or a list of strings.")
