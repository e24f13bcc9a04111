import random
from unittest import TestCase

from automata_lab.cyk import (
    DerivationNode,
    Grammar,
    InvalidGrammarError,
    NotInCNFError,
    Production,
    convert_to_cnf,
    format_derivation,
    is_chomsky_normal_form,
    parse_cyk,
    random_derivation,
    split_symbols,
    validate_grammar,
)


def ab_grammar():
    return Grammar.from_dict(
        {
            "nonTerminals": ["S", "A", "B"],
            "terminals": ["a", "b"],
            "productions": [
                {"from": "S", "to": "AB"},
                {"from": "A", "to": "a"},
                {"from": "B", "to": "b"},
            ],
            "startSymbol": "S",
        }
    )


def balanced_grammar():
    """a^n b^n for n >= 1, not yet in CNF."""
    return Grammar.from_dict(
        {
            "nonTerminals": "S",
            "terminals": "a, b",
            "productions": [
                {"from": "S", "to": "aSb"},
                {"from": "S", "to": "ab"},
            ],
            "startSymbol": "S",
        }
    )


class TestGrammarLoading(TestCase):
    """Parsing grammar documents"""

    def test_bodies_are_split_into_symbols(self):
        grammar = ab_grammar()
        self.assertEqual(grammar.productions[0], Production("S", ("A", "B")))
        self.assertEqual(str(grammar.productions[0]), "S → A B")

    def test_longest_match_and_epsilon(self):
        self.assertEqual(split_symbols("T_aY1", ["T_a", "Y1", "Y"]), ("T_a", "Y1"))
        self.assertEqual(split_symbols("A B", []), ("A", "B"))
        self.assertEqual(split_symbols("ε", ["A"]), ())
        self.assertEqual(split_symbols("xy", []), ("x", "y"))

    def test_list_bodies(self):
        grammar = Grammar.from_dict(
            {
                "nonTerminals": ["S", "T_a"],
                "terminals": ["a"],
                "productions": [{"from": "S", "to": ["T_a", "T_a"]}, {"from": "T_a", "to": ["a"]}],
                "startSymbol": "S",
            }
        )
        self.assertEqual(grammar.productions_for("S")[0].right, ("T_a", "T_a"))
        self.assertTrue(parse_cyk(grammar, "aa").accepted)

    def test_malformed_documents(self):
        with self.assertRaises(InvalidGrammarError):
            Grammar.from_dict({"nonTerminals": ["S"], "terminals": ["a"], "startSymbol": "S"})
        with self.assertRaises(InvalidGrammarError):
            Grammar.from_dict(
                {
                    "nonTerminals": ["S"],
                    "terminals": ["a"],
                    "productions": [{"from": "S"}],
                    "startSymbol": "S",
                }
            )
        with self.assertRaises(InvalidGrammarError):
            Grammar.from_dict({"nonTerminals": ["S"], "terminals": ["a"], "productions": []})

    def test_to_dict(self):
        payload = ab_grammar().to_dict()
        self.assertEqual(payload["startSymbol"], "S")
        self.assertEqual(payload["productions"][0], {"from": "S", "to": "AB"})


class TestValidation(TestCase):
    """Declared-symbol checks"""

    def test_valid(self):
        validate_grammar(ab_grammar())
        validate_grammar(balanced_grammar())

    def test_start_symbol_must_be_non_terminal(self):
        grammar = Grammar(("S",), ("a",), (Production("S", ("a",)),), "X")
        with self.assertRaises(InvalidGrammarError):
            validate_grammar(grammar)

    def test_unknown_symbols(self):
        grammar = Grammar(("S",), ("a",), (Production("S", ("a", "Q")),), "S")
        with self.assertRaises(InvalidGrammarError):
            validate_grammar(grammar)
        grammar = Grammar(("S",), ("a",), (Production("Q", ("a",)),), "S")
        with self.assertRaises(InvalidGrammarError):
            validate_grammar(grammar)

    def test_overlap(self):
        grammar = Grammar(("S", "a"), ("a",), (), "S")
        with self.assertRaises(InvalidGrammarError):
            validate_grammar(grammar)


class TestCYK(TestCase):
    """Membership checks and the chart"""

    def test_empty_input(self):
        result = parse_cyk(ab_grammar(), "")
        self.assertFalse(result.accepted)
        self.assertEqual(result.table, [])
        self.assertEqual(result.to_dict(), {"accepted": False, "table": []})

    def test_empty_input_skips_strict_check(self):
        grammar = Grammar(("S",), ("a",), (Production("S", ("a", "a", "a")),), "S")
        result = parse_cyk(grammar, "", strict=True)
        self.assertFalse(result.accepted)
        self.assertEqual(result.table, [])
        with self.assertRaises(NotInCNFError):
            parse_cyk(grammar, "aaa", strict=True)

    def test_ab(self):
        result = parse_cyk(ab_grammar(), "ab")
        self.assertTrue(result.accepted)
        self.assertIn("S", result.cell(0, 1))
        self.assertEqual(result.cell(0, 0), ["A"])
        self.assertEqual(result.cell(1, 1), ["B"])

    def test_ba(self):
        self.assertFalse(parse_cyk(ab_grammar(), "ba").accepted)

    def test_diagonal_lists_every_unit_head(self):
        grammar = Grammar(
            ("S", "A", "C"),
            ("a",),
            (
                Production("A", ("a",)),
                Production("C", ("a",)),
                Production("S", ("A", "C")),
            ),
            "S",
        )
        result = parse_cyk(grammar, "aa")
        self.assertEqual(result.cell(0, 0), ["A", "C"])
        self.assertEqual(result.cell(1, 1), ["A", "C"])
        self.assertEqual(result.cell(0, 1), ["S"])
        self.assertTrue(result.accepted)

    def test_cells_have_no_duplicates(self):
        grammar = Grammar(
            ("S",),
            ("a",),
            (Production("S", ("a",)), Production("S", ("S", "S"))),
            "S",
        )
        result = parse_cyk(grammar, "aaaa")
        self.assertEqual(result.cell(0, 3), ["S"])
        self.assertTrue(result.accepted)

    def test_non_cnf_productions_are_skipped(self):
        grammar = balanced_grammar()
        self.assertFalse(is_chomsky_normal_form(grammar))
        self.assertFalse(parse_cyk(grammar, "ab").accepted)
        with self.assertRaises(NotInCNFError):
            parse_cyk(grammar, "ab", strict=True)

    def test_strict_accepts_cnf(self):
        self.assertTrue(is_chomsky_normal_form(ab_grammar()))
        self.assertTrue(parse_cyk(ab_grammar(), "ab", strict=True).accepted)


class TestConvertToCNF(TestCase):
    """Simplified conversion"""

    def test_balanced_grammar(self):
        converted = convert_to_cnf(balanced_grammar())
        self.assertTrue(is_chomsky_normal_form(converted))
        self.assertEqual(converted.non_terminals, ("S", "Y1", "T_a", "T_b"))
        validate_grammar(converted)
        self.assertTrue(parse_cyk(converted, "ab").accepted)
        self.assertTrue(parse_cyk(converted, "aabb").accepted)
        self.assertTrue(parse_cyk(converted, "aaabbb", strict=True).accepted)
        self.assertFalse(parse_cyk(converted, "aab").accepted)
        self.assertFalse(parse_cyk(converted, "abab").accepted)

    def test_epsilon_productions_are_dropped(self):
        grammar = Grammar(
            ("S", "A"),
            ("a",),
            (Production("S", ()), Production("S", ("A", "A")), Production("A", ("a",))),
            "S",
        )
        converted = convert_to_cnf(grammar)
        self.assertNotIn(Production("S", ()), converted.productions)
        self.assertTrue(is_chomsky_normal_form(converted))

    def test_fresh_names_avoid_existing_symbols(self):
        grammar = Grammar(
            ("S", "Y1", "T_a"),
            ("a",),
            (Production("S", ("a", "a", "a")), Production("Y1", ("a",)), Production("T_a", ("a",))),
            "S",
        )
        converted = convert_to_cnf(grammar)
        self.assertIn("Y2", converted.non_terminals)
        self.assertIn("T_a1", converted.non_terminals)
        self.assertTrue(parse_cyk(converted, "aaa").accepted)


class TestRandomDerivation(TestCase):
    """Random derivation trees"""

    def test_cnf_grammar_derives_full_tree(self):
        tree = random_derivation(ab_grammar(), rng=random.Random(0))
        self.assertEqual(
            tree,
            DerivationNode("S", (
                DerivationNode("A", (DerivationNode("a"),)),
                DerivationNode("B", (DerivationNode("b"),)),
            )),
        )
        self.assertEqual(tree.leaves(), ["a", "b"])
        self.assertEqual(tree.to_dict()["children"][0]["symbol"], "A")

    def test_depth_limit_leaves_non_terminals(self):
        tree = random_derivation(ab_grammar(), max_depth=1, rng=random.Random(0))
        self.assertEqual([child.symbol for child in tree.children], ["A", "B"])
        self.assertTrue(all(child.is_leaf for child in tree.children))
        self.assertTrue(random_derivation(ab_grammar(), max_depth=0).is_leaf)

    def test_leaves_for_terminals_and_symbols_without_rules(self):
        grammar = Grammar(("S", "X"), ("a",), (Production("S", ("X", "a")),), "S")
        tree = random_derivation(grammar)
        self.assertEqual(tree.leaves(), ["X", "a"])
        self.assertEqual(random_derivation(grammar, "a"), DerivationNode("a"))

    def test_epsilon_body(self):
        grammar = Grammar(("S",), ("a",), (Production("S", ()),), "S")
        tree = random_derivation(grammar)
        self.assertEqual(tree.children, (DerivationNode("ε"),))

    def test_seeded_choices_repeat(self):
        grammar = balanced_grammar()
        first = random_derivation(grammar, max_depth=6, rng=random.Random(7))
        second = random_derivation(grammar, max_depth=6, rng=random.Random(7))
        self.assertEqual(first, second)
        leaves = first.leaves()
        self.assertEqual(leaves[0], "a")
        self.assertEqual(leaves[-1], "b")

    def test_format(self):
        tree = DerivationNode("S", (DerivationNode("A", (DerivationNode("a"),)),))
        self.assertEqual(format_derivation(tree), ["S", "  A", "    a"])
