from __future__ import annotations

from typing import AbstractSet, Dict, FrozenSet, Iterable, List, Tuple

from .automata import NFA, Automaton
from .simulation import SimulationStep


def automaton_to_dot(
    automaton: Automaton,
    *,
    graph_name: str = "Automaton",
    rankdir: str = "LR",
    highlight_states: AbstractSet[str] = frozenset(),
    highlight_edges: Iterable[Tuple[str, str]] = (),
) -> str:
    """Return a Graphviz DOT representation for the provided automaton.

    `highlight_states` is usually the current simulation configuration and
    `highlight_edges` the (source, destination) pairs of the last step.
    """
    highlight = set(highlight_edges)
    epsilon = automaton.epsilon_symbol if isinstance(automaton, NFA) else None

    lines: List[str] = [f'digraph "{graph_name}" {{']
    lines.append(f"  rankdir={rankdir};")
    lines.append("  node [shape=circle];")
    lines.append("  __start__ [shape=point];")
    lines.append(f'  __start__ -> "{automaton.initial_state}";')

    for state in automaton.states:
        attributes = ["shape=doublecircle" if automaton.is_accepting_state(state) else "shape=circle"]
        if state in highlight_states:
            attributes.append('style=filled')
            attributes.append('fillcolor="gold"')
        lines.append(f'  "{state}" [{", ".join(attributes)}];')

    for source, destination, labels in _collect_edges(automaton):
        attributes = [f'label="{", ".join(labels)}"']
        if epsilon is not None and labels == [epsilon]:
            attributes.append("style=dashed")
        if (source, destination) in highlight:
            attributes.append('color="red"')
            attributes.append('fontcolor="red"')
        lines.append(f'  "{source}" -> "{destination}" [{", ".join(attributes)}];')

    lines.append("}")
    return "\n".join(lines)


def step_highlight(step: SimulationStep) -> Tuple[FrozenSet[str], List[Tuple[str, str]]]:
    """Highlight sets for the configuration reached by `step`."""
    if step.state is not None:
        edges = [(step.from_state, step.state)] if step.from_state is not None else []
        return step.configuration, edges
    return step.configuration, [(t.from_state, t.to_state) for t in step.transitions]


def _collect_edges(automaton: Automaton) -> Iterable[Tuple[str, str, List[str]]]:
    grouped: Dict[Tuple[str, str], List[str]] = {}
    ignored = set()
    if isinstance(automaton, NFA) and not automaton.use_epsilon_transitions:
        ignored.add(automaton.epsilon_symbol)
    for state, mapping in automaton.transitions.items():
        for symbol, destinations in mapping.items():
            if symbol in ignored or not destinations:
                continue
            if isinstance(destinations, str):
                destinations = (destinations,)
            for destination in destinations:
                grouped.setdefault((state, destination), []).append(symbol)
    for (source, destination), labels in sorted(grouped.items()):
        labels.sort()
        yield source, destination, labels


def write_dot(automaton: Automaton, path: str, **kwargs) -> str:
    """Generate a DOT file at `path` and return the path."""
    dot = automaton_to_dot(automaton, **kwargs)
    with open(path, "w", encoding="utf-8") as handle:
        handle.write(dot + "\n")
    return path
