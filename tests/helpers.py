from automata_lab.automata import DFA, NFA


def parity_dfa():
    """Accepts strings over {0,1} with an even number of 1s."""
    return DFA(
        states=["q0", "q1"],
        alphabet=["0", "1"],
        transitions={
            "q0": {"0": "q0", "1": "q1"},
            "q1": {"0": "q1", "1": "q0"},
        },
        initial_state="q0",
        accepting_states=["q0"],
    )


def epsilon_nfa():
    """q0 -ε-> q1, nothing else."""
    return NFA(
        states=["q0", "q1"],
        alphabet=["a"],
        transitions={"q0": {"ε": ["q1"]}},
        initial_state="q0",
        accepting_states=["q1"],
    )


def ends_with_ab_nfa():
    return NFA(
        states=["S0", "S1", "S2"],
        alphabet=["a", "b"],
        transitions={
            "S0": {"a": ["S0", "S1"], "b": ["S0"]},
            "S1": {"b": ["S2"]},
        },
        initial_state="S0",
        accepting_states=["S2"],
    )
