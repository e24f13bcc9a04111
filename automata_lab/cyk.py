"""CYK membership parsing for context-free grammars.

Productions are stored as tuples of symbols, so non-terminal names such as
``T_a`` or ``Y1`` work the same as single letters. The parser itself is pure:
it builds a fresh chart on every call and touches no shared state.
"""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .automata import EPSILON

log = logging.getLogger(__name__)


class GrammarError(Exception):
    """Base class for grammar problems."""


class InvalidGrammarError(GrammarError):
    """The grammar references undeclared symbols or is malformed."""


class NotInCNFError(GrammarError):
    """Raised by strict parsing when a production is not in Chomsky Normal Form."""


@dataclass(frozen=True)
class Production:
    left: str
    right: Tuple[str, ...]

    @property
    def is_epsilon(self) -> bool:
        return not self.right

    def to_dict(self) -> Dict[str, str]:
        return {"from": self.left, "to": "".join(self.right) or EPSILON}

    def __str__(self) -> str:
        return f"{self.left} → {' '.join(self.right) or EPSILON}"


def split_symbols(text: str, vocabulary: Iterable[str]) -> Tuple[str, ...]:
    """Split a production body into symbols.

    Whitespace separates symbols explicitly. Otherwise the longest declared
    symbol matching at each position wins, falling back to one character.
    """
    text = text.strip()
    if not text or text == EPSILON:
        return ()
    if any(ch.isspace() for ch in text):
        return tuple(part for part in text.split() if part != EPSILON)
    candidates = sorted({sym for sym in vocabulary if sym}, key=len, reverse=True)
    symbols: List[str] = []
    pos = 0
    while pos < len(text):
        for sym in candidates:
            if text.startswith(sym, pos):
                symbols.append(sym)
                pos += len(sym)
                break
        else:
            symbols.append(text[pos])
            pos += 1
    return tuple(symbols)


@dataclass(frozen=True)
class Grammar:
    non_terminals: Tuple[str, ...]
    terminals: Tuple[str, ...]
    productions: Tuple[Production, ...]
    start_symbol: str

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Grammar":
        if not isinstance(payload, Mapping):
            raise InvalidGrammarError("Grammar payload must be a mapping.")
        non_terminals = _require_symbols(payload, "nonTerminals")
        terminals = _require_symbols(payload, "terminals")
        start_symbol = payload.get("startSymbol")
        if not isinstance(start_symbol, str) or not start_symbol.strip():
            raise InvalidGrammarError("Start symbol is required.")

        raw_productions = payload.get("productions")
        if not isinstance(raw_productions, list):
            raise InvalidGrammarError("Productions must be a list.")
        vocabulary = list(non_terminals) + list(terminals)
        productions: List[Production] = []
        for entry in raw_productions:
            if not isinstance(entry, Mapping) or not entry.get("from") or entry.get("to") in (None, ""):
                raise InvalidGrammarError('Each production must have "from" and "to" properties.')
            body = entry["to"]
            if isinstance(body, str):
                right = split_symbols(body, vocabulary)
            elif isinstance(body, list) and all(isinstance(sym, str) for sym in body):
                right = tuple(sym for sym in body if sym != EPSILON)
            else:
                raise InvalidGrammarError('Production "to" must be a string or a list of symbols.')
            productions.append(Production(str(entry["from"]).strip(), right))
        return cls(non_terminals, terminals, tuple(productions), start_symbol.strip())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nonTerminals": list(self.non_terminals),
            "terminals": list(self.terminals),
            "productions": [production.to_dict() for production in self.productions],
            "startSymbol": self.start_symbol,
        }

    def productions_for(self, left: str) -> List[Production]:
        return [production for production in self.productions if production.left == left]


def _require_symbols(payload: Mapping[str, Any], key: str) -> Tuple[str, ...]:
    value = payload.get(key)
    if isinstance(value, str):
        value = [part for part in (piece.strip() for piece in value.split(",")) if part]
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise InvalidGrammarError(f"Grammar field '{key}' must be a list of strings.")
    return tuple(item.strip() for item in value if item.strip())


def validate_grammar(grammar: Grammar) -> None:
    """Raise `InvalidGrammarError` unless every symbol is declared."""
    non_terminals = set(grammar.non_terminals)
    terminals = set(grammar.terminals)
    if grammar.start_symbol not in non_terminals:
        raise InvalidGrammarError("Start symbol must be a non-terminal.")
    overlap = non_terminals & terminals
    if overlap:
        raise InvalidGrammarError(
            f"Symbols declared as both terminal and non-terminal: {', '.join(sorted(overlap))}."
        )
    for production in grammar.productions:
        if production.left not in non_terminals:
            raise InvalidGrammarError(
                f'Production "from" must be a non-terminal: {production.left}'
            )
        for symbol in production.right:
            if symbol not in non_terminals and symbol not in terminals:
                raise InvalidGrammarError(f"Unknown symbol in production: {symbol}")


def _cnf_violation(grammar: Grammar, production: Production) -> str:
    non_terminals = set(grammar.non_terminals)
    if production.left not in non_terminals:
        return "head is not a non-terminal"
    if len(production.right) == 1:
        if production.right[0] not in grammar.terminals:
            return "single-symbol body must be a terminal"
        return ""
    if len(production.right) == 2:
        if not all(symbol in non_terminals for symbol in production.right):
            return "binary body must contain two non-terminals"
        return ""
    return "body must have exactly one or two symbols"


def is_chomsky_normal_form(grammar: Grammar) -> bool:
    return not any(_cnf_violation(grammar, p) for p in grammar.productions)


def _fresh_name(prefix: str, taken: Set[str]) -> str:
    if prefix not in taken:
        taken.add(prefix)
        return prefix
    index = 1
    while f"{prefix}{index}" in taken:
        index += 1
    name = f"{prefix}{index}"
    taken.add(name)
    return name


def convert_to_cnf(grammar: Grammar) -> Grammar:
    """Simplified CNF transform.

    Drops ε-productions, splits long bodies into chains of fresh ``Y<n>``
    non-terminals and swaps terminals inside binary bodies for ``T_<a>``
    non-terminals. Unit productions between non-terminals are left alone,
    so the result is only guaranteed to be in CNF when the input had none.
    """
    taken = set(grammar.non_terminals) | set(grammar.terminals)
    non_terminals = list(grammar.non_terminals)
    terminals = set(grammar.terminals)

    binarised: List[Production] = []
    counter = 1
    for production in grammar.productions:
        if production.is_epsilon:
            continue
        body = production.right
        if len(body) <= 2:
            binarised.append(production)
            continue
        head = production.left
        for symbol in body[:-2]:
            while f"Y{counter}" in taken:
                counter += 1
            fresh = f"Y{counter}"
            taken.add(fresh)
            non_terminals.append(fresh)
            binarised.append(Production(head, (symbol, fresh)))
            head = fresh
        binarised.append(Production(head, body[-2:]))

    proxies: Dict[str, str] = {}
    result: List[Production] = []
    for production in binarised:
        if len(production.right) != 2:
            result.append(production)
            continue
        right: List[str] = []
        for symbol in production.right:
            if symbol in terminals:
                if symbol not in proxies:
                    proxy = _fresh_name(f"T_{symbol}", taken)
                    proxies[symbol] = proxy
                    non_terminals.append(proxy)
                    result.append(Production(proxy, (symbol,)))
                right.append(proxies[symbol])
            else:
                right.append(symbol)
        result.append(Production(production.left, tuple(right)))

    return Grammar(
        non_terminals=tuple(non_terminals),
        terminals=grammar.terminals,
        productions=tuple(result),
        start_symbol=grammar.start_symbol,
    )


@dataclass(frozen=True)
class DerivationNode:
    symbol: str
    children: Tuple["DerivationNode", ...] = ()

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def leaves(self) -> List[str]:
        if self.is_leaf:
            return [self.symbol]
        return [leaf for child in self.children for leaf in child.leaves()]

    def to_dict(self) -> Dict[str, Any]:
        return {"symbol": self.symbol, "children": [child.to_dict() for child in self.children]}


def random_derivation(
    grammar: Grammar,
    symbol: Optional[str] = None,
    *,
    max_depth: int = 4,
    rng: Optional[random.Random] = None,
) -> DerivationNode:
    """Expand `symbol` (the start symbol by default) with randomly chosen productions.

    Terminals, symbols without productions and anything at the depth limit
    become leaves, so the tree may stop at non-terminals. An ε body yields a
    single ``ε`` leaf.
    """
    rng = rng or random.Random()
    symbol = grammar.start_symbol if symbol is None else symbol
    if max_depth <= 0 or symbol in grammar.terminals:
        return DerivationNode(symbol)
    candidates = grammar.productions_for(symbol)
    if not candidates:
        return DerivationNode(symbol)
    production = rng.choice(candidates)
    if production.is_epsilon:
        return DerivationNode(symbol, (DerivationNode(EPSILON),))
    children = tuple(
        random_derivation(grammar, child, max_depth=max_depth - 1, rng=rng)
        for child in production.right
    )
    return DerivationNode(symbol, children)


def format_derivation(node: DerivationNode, indent: str = "") -> List[str]:
    lines = [f"{indent}{node.symbol}"]
    for child in node.children:
        lines.extend(format_derivation(child, indent + "  "))
    return lines


@dataclass(frozen=True)
class CYKResult:
    accepted: bool
    table: List[List[List[str]]]

    def cell(self, start: int, end: int) -> List[str]:
        return self.table[start][end]

    def to_dict(self) -> Dict[str, Any]:
        return {"accepted": self.accepted, "table": [[list(c) for c in row] for row in self.table]}


def parse_cyk(grammar: Grammar, text: Sequence[str], *, strict: bool = False) -> CYKResult:
    """Decide whether `grammar` derives `text` and return the full chart.

    Cell ``[i][j]`` lists the non-terminals deriving ``text[i..j]`` in the
    order they were first found. Only single-symbol and two-symbol bodies take
    part; anything else is skipped unless `strict` is set, in which case a
    `NotInCNFError` is raised up front. Empty input is always rejected.
    """
    symbols = list(text)
    n = len(symbols)
    if n == 0:
        return CYKResult(accepted=False, table=[])

    if strict:
        for production in grammar.productions:
            reason = _cnf_violation(grammar, production)
            if reason:
                raise NotInCNFError(f"Production {production} is not in CNF: {reason}.")

    units = [p for p in grammar.productions if len(p.right) == 1]
    binaries = [p for p in grammar.productions if len(p.right) == 2]

    table: List[List[List[str]]] = [[[] for _ in range(n)] for _ in range(n)]
    seen: List[List[Set[str]]] = [[set() for _ in range(n)] for _ in range(n)]

    def add(i: int, j: int, symbol: str) -> None:
        if symbol not in seen[i][j]:
            seen[i][j].add(symbol)
            table[i][j].append(symbol)

    for i, symbol in enumerate(symbols):
        for production in units:
            if production.right[0] == symbol:
                add(i, i, production.left)

    for length in range(2, n + 1):
        for i in range(n - length + 1):
            j = i + length - 1
            for k in range(i, j):
                left_cell = seen[i][k]
                right_cell = seen[k + 1][j]
                if not left_cell or not right_cell:
                    continue
                for production in binaries:
                    first, second = production.right
                    if first in left_cell and second in right_cell:
                        add(i, j, production.left)

    accepted = grammar.start_symbol in seen[0][n - 1]
    log.debug("CYK chart for %d symbol(s) built; accepted=%s", n, accepted)
    return CYKResult(accepted=accepted, table=table)
