import io
import json
import os
import tempfile
from contextlib import redirect_stderr, redirect_stdout
from unittest import TestCase

from automata_lab.automata import DFA, NFA
from automata_lab.cli import build_session_from_payload, run, simulate_string, split_list

from .helpers import ends_with_ab_nfa

PARITY_CONFIG = {
    "type": "dfa",
    "states": ["q0", "q1"],
    "alphabet": ["0", "1"],
    "start_state": "q0",
    "accept_states": ["q0"],
    "transitions": {
        "q0": {"0": "q0", "1": "q1"},
        "q1": {"0": "q1", "1": "q0"},
    },
    "test_cases": [
        {"input": "11", "expected": True, "label": "even"},
        {"input": "1", "expected": False},
    ],
}

AB_GRAMMAR = {
    "nonTerminals": ["S", "A", "B"],
    "terminals": ["a", "b"],
    "productions": [
        {"from": "S", "to": "AB"},
        {"from": "A", "to": "a"},
        {"from": "B", "to": "b"},
    ],
    "startSymbol": "S",
}


class TestPayloads(TestCase):
    """Building sessions from JSON documents"""

    def test_snake_case_dfa(self):
        session = build_session_from_payload(PARITY_CONFIG)
        self.assertIsInstance(session.automaton, DFA)
        self.assertEqual(session.automaton_type, "dfa")
        self.assertEqual(len(session.test_cases), 2)
        self.assertEqual(session.test_cases[1].label, "case 2")
        self.assertEqual(session.test_cases[0].tokens, ("1", "1"))

    def test_camel_case_nfa_with_comma_lists(self):
        session = build_session_from_payload(
            {
                "type": "NFA",
                "states": "q0, q1, ,q2",
                "alphabet": "a,b",
                "initialState": "q0",
                "acceptingStates": "q2",
                "useEpsilonTransitions": False,
                "transitions": {"q0": {"a": "q1, q2", "ε": ["q2"]}, "q1": {"b": None}},
            }
        )
        nfa = session.automaton
        self.assertIsInstance(nfa, NFA)
        self.assertEqual(nfa.states, ("q0", "q1", "q2"))
        self.assertEqual(nfa.alphabet, ("a", "b"))
        self.assertEqual(nfa.transitions["q0"]["a"], {"q1", "q2"})
        self.assertFalse(nfa.use_epsilon_transitions)
        self.assertFalse(nfa.accepts(""))

    def test_bad_payloads(self):
        with self.assertRaises(ValueError):
            build_session_from_payload({"type": "pda"})
        with self.assertRaises(ValueError):
            build_session_from_payload(dict(PARITY_CONFIG, states=[1, 2]))
        with self.assertRaises(ValueError):
            build_session_from_payload(dict(PARITY_CONFIG, start_state=""))
        with self.assertRaises(ValueError):
            build_session_from_payload(
                dict(PARITY_CONFIG, transitions={"q0": {"0": ["q0", "q1"]}})
            )

    def test_split_list(self):
        self.assertEqual(split_list(" a, b ,,c "), ["a", "b", "c"])
        self.assertEqual(split_list(""), [])


class TestSimulateString(TestCase):
    """Printed playback"""

    def test_prints_steps_and_result(self):
        out = io.StringIO()
        simulator = simulate_string(ends_with_ab_nfa(), "ab", delay=False, out=out)
        lines = out.getvalue().splitlines()
        self.assertEqual(lines[1], "Simulating 'ab'")
        self.assertEqual(lines[2:], [
            "  0. start in {S0}",
            "  1. δ({S0}, a) → {S0, S1}",
            "  2. δ({S0, S1}, b) → {S0, S2}",
            '  Success! Input "ab" is accepted.',
        ])
        self.assertTrue(simulator.state.is_complete)


class TestRun(TestCase):
    """End-to-end command runs"""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = self._tmp.name

    def tearDown(self):
        self._tmp.cleanup()

    def _write(self, name, payload):
        path = os.path.join(self.tmp, name)
        with open(path, "w", encoding="utf-8") as handle:
            json.dump(payload, handle)
        return path

    def _run(self, argv):
        out, err = io.StringIO(), io.StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            code = run(argv)
        return code, out.getvalue(), err.getvalue()

    def test_config_with_tests_and_simulation(self):
        config = self._write("parity.json", PARITY_CONFIG)
        extra = self._write("extra.json", {"cases": [{"input": ["1", "0", "1"], "expected": True}]})
        code, out, err = self._run(
            ["--config", config, "--tests", extra, "--simulate", "11", "--no-delay"]
        )
        self.assertEqual(code, 0, err)
        self.assertIn("Automaton Summary", out)
        self.assertIn("Passed 3 of 3 test cases.", out)
        self.assertIn("[PASS] even: 1 1 -> expected accept, got accept", out)
        self.assertIn("1. δ(q0, 1) → q1", out)
        self.assertIn('Success! Input "11" is accepted.', out)

    def test_invalid_symbol_during_simulation(self):
        config = self._write("parity.json", PARITY_CONFIG)
        code, out, _ = self._run(["--config", config, "--simulate", "1a", "--no-delay"])
        self.assertEqual(code, 0)
        self.assertIn("Error: Character 'a' is not in the alphabet.", out)

    def test_dot_output(self):
        config = self._write("parity.json", PARITY_CONFIG)
        out_dir = os.path.join(self.tmp, "graphs")
        code, out, err = self._run(
            [
                "--config", config,
                "--simulate", "1",
                "--no-delay",
                "--output-dir", out_dir,
                "--base-name", "parity",
            ]
        )
        self.assertEqual(code, 0, err)
        self.assertEqual(
            sorted(os.listdir(out_dir)), ["parity_dfa.dot", "parity_dfa_run1.dot"]
        )
        with open(os.path.join(out_dir, "parity_dfa_run1.dot"), encoding="utf-8") as handle:
            self.assertIn('fillcolor="gold"', handle.read())

    def test_grammar_parsing(self):
        grammar = self._write("grammar.json", AB_GRAMMAR)
        code, out, err = self._run(["--grammar", grammar, "--parse", "ab", "--parse", "ba"])
        self.assertEqual(code, 0, err)
        self.assertIn("CYK ab: accepted", out)
        self.assertIn("[0,1] ab: S", out)
        self.assertIn("CYK ba: rejected", out)

    def test_random_derivation(self):
        grammar = self._write("grammar.json", AB_GRAMMAR)
        code, out, err = self._run(["--grammar", grammar, "--derive", "--seed", "3"])
        self.assertEqual(code, 0, err)
        self.assertIn("Random derivation\n  S\n    A\n      a\n    B\n      b\n", out)

    def test_grammar_strict_failure(self):
        grammar = self._write(
            "grammar.json",
            {
                "nonTerminals": ["S"],
                "terminals": ["a", "b"],
                "productions": [{"from": "S", "to": "aSb"}, {"from": "S", "to": "ab"}],
                "startSymbol": "S",
            },
        )
        code, _, err = self._run(["--grammar", grammar, "--parse", "ab", "--strict"])
        self.assertEqual(code, 1)
        self.assertIn("not in CNF", err)
        code, out, err = self._run(["--grammar", grammar, "--parse", "aabb", "--cnf", "--strict"])
        self.assertEqual(code, 0, err)
        self.assertIn("CYK aabb: accepted", out)

    def test_errors_are_reported(self):
        code, _, err = self._run(["--config", os.path.join(self.tmp, "missing.json")])
        self.assertEqual(code, 1)
        self.assertTrue(err.startswith("Error: "))
        broken = self._write("broken.json", dict(PARITY_CONFIG, start_state="q9"))
        code, _, err = self._run(["--config", broken])
        self.assertEqual(code, 1)
        self.assertIn("q9", err)

    def test_requires_an_input_document(self):
        with redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit):
                run([])
