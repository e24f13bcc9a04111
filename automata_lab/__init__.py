from .automata import (
    EPSILON,
    Automaton,
    AutomatonError,
    AutomatonValidationError,
    DFA,
    InvalidSymbolError,
    NFA,
)
from .cli import build_session_from_payload, run
from .cyk import (
    DerivationNode,
    Grammar,
    Production,
    convert_to_cnf,
    is_chomsky_normal_form,
    parse_cyk,
    random_derivation,
    validate_grammar,
)
from .scheduling import AsyncioScheduler, ManualScheduler, Scheduler, TkScheduler
from .simulation import Outcome, Phase, SimulationResult, SimulationState, SimulationStep, Simulator

__all__ = [
    "EPSILON",
    "Automaton",
    "AutomatonError",
    "AutomatonValidationError",
    "DFA",
    "InvalidSymbolError",
    "NFA",
    "DerivationNode",
    "Grammar",
    "Production",
    "convert_to_cnf",
    "is_chomsky_normal_form",
    "parse_cyk",
    "random_derivation",
    "validate_grammar",
    "AsyncioScheduler",
    "ManualScheduler",
    "Scheduler",
    "TkScheduler",
    "Outcome",
    "Phase",
    "SimulationResult",
    "SimulationState",
    "SimulationStep",
    "Simulator",
    "build_session_from_payload",
    "run",
]
