"""Tests for copula structures and their compiled arena trees."""
import dataclasses
import unittest
import warnings

import torchnac as tn


def _scenario_c():
    left = tn.NestedCopula([tn.LeafCopula("gumbel", 2, 3.0), tn.LeafCopula("gumbel", 2, 4.0)], 2.0, m=1)
    right = tn.NestedCopula([tn.LeafCopula("gumbel", 3, 2.5)], 2.0, m=1)
    return tn.DoubleNestedCopula([left, right], 1.5)


class TestLeafCopula(unittest.TestCase):

    def test_construct(self):
        c = tn.LeafCopula("Clayton", 3, 2)
        self.assertIs(c.family, tn.clayton)
        self.assertEqual(c.n, 3)
        self.assertEqual(c.theta, 2.0)
        self.assertEqual(c.depth, 1)
        self.assertEqual(c.tree.d, 3)
        self.assertEqual(c.tree.root.n_free, 3)

    def test_invalid(self):
        with self.assertRaises(ValueError):
            tn.LeafCopula("clayton", 0, 2.0)
        with self.assertRaises(ValueError):
            tn.LeafCopula("student", 2, 2.0)
        with self.assertRaises(tn.DomainError):
            tn.LeafCopula("gumbel", 2, 0.9)

    def test_frozen(self):
        c = tn.LeafCopula("frank", 2, 3.0)
        with self.assertRaises(dataclasses.FrozenInstanceError):
            c.theta = 4.0
        self.assertEqual(c, tn.LeafCopula("frank", 2, 3.0))


class TestNestedCopula(unittest.TestCase):

    def test_dimension_and_layout(self):
        c = tn.NestedCopula([tn.LeafCopula("clayton", 2, 2.0), tn.LeafCopula("clayton", 2, 3.0)], 1.1, m=1)
        self.assertEqual(c.n, 5)
        self.assertEqual(c.depth, 2)
        self.assertIs(c.family, tn.clayton)
        tree = c.tree
        self.assertEqual(len(tree.nodes), 3)
        self.assertEqual(tree.root.children, (1, 2))
        self.assertEqual(tree.root.n_free, 1)
        self.assertEqual((tree.nodes[1].start, tree.nodes[1].stop), (0, 2))
        self.assertEqual((tree.nodes[2].start, tree.nodes[2].stop), (2, 4))
        self.assertEqual(tree.nodes[2].theta, 3.0)
        self.assertEqual(tree.parent_theta(2), 1.1)
        self.assertEqual(tree.parent_theta(0), 1.0)

    def test_nesting_condition(self):
        for fam, parent, phis in [("clayton", 2.5, (2.0, 3.0)), ("amh", 0.7, (0.6, 0.8)),
                                  ("frank", 4.0, (5.0, 3.0)), ("gumbel", 2.0, (1.5,))]:
            with self.subTest(family=fam):
                leaves = [tn.LeafCopula(fam, 2, p) for p in phis]
                with self.assertRaises(tn.NestingViolation):
                    tn.NestedCopula(leaves, parent)

    def test_equal_parameters_allowed(self):
        c = tn.NestedCopula([tn.LeafCopula("amh", 2, 0.5)], 0.5, m=2)
        self.assertEqual(c.n, 4)

    def test_invalid(self):
        leaf = tn.LeafCopula("frank", 2, 3.0)
        with self.assertRaises(ValueError):
            tn.NestedCopula([], 1.0)
        with self.assertRaises(ValueError):
            tn.NestedCopula([leaf, tn.LeafCopula("clayton", 2, 3.0)], 1.0)
        with self.assertRaises(TypeError):
            tn.NestedCopula([tn.NestedCopula([leaf], 2.0)], 1.0)
        with self.assertRaises(tn.DomainError):
            tn.NestedCopula([leaf], 1.0, m=-1)
        with self.assertRaises(tn.DomainError):
            tn.NestedCopula([leaf], -1.0)

    def test_clayton_warning(self):
        leaves = [tn.LeafCopula("clayton", 2, 2.0), tn.LeafCopula("clayton", 2, 800.0)]
        with self.assertWarns(tn.DegenerateWarning):
            c = tn.NestedCopula(leaves, 1.0)
        self.assertEqual(c.n, 4)
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            tn.NestedCopula(leaves, 1.0, controls=tn.NestingControls(warn_degenerate=False))


class TestDoubleNestedCopula(unittest.TestCase):

    def test_scenario_c(self):
        c = _scenario_c()
        self.assertEqual(c.n, 9)
        self.assertEqual(c.depth, 3)
        tree = c.tree
        self.assertEqual(tree.d, 9)
        self.assertEqual(len(tree.nodes), 6)
        # parents are stored before their children
        for i, node in enumerate(tree.nodes):
            for ci in node.children:
                self.assertGreater(ci, i)
                self.assertEqual(tree.nodes[ci].parent, i)
        spans = [(nd.start, nd.stop, nd.theta) for nd in tree.nodes]
        self.assertEqual(spans, [(0, 9, 1.5), (0, 5, 2.0), (0, 2, 3.0), (2, 4, 4.0), (5, 9, 2.0), (5, 8, 2.5)])

    def test_nesting_condition(self):
        left = tn.NestedCopula([tn.LeafCopula("gumbel", 2, 3.0)], 2.0)
        with self.assertRaises(tn.NestingViolation):
            tn.DoubleNestedCopula([left], 2.5)

    def test_gumbel_only(self):
        inner = tn.NestedCopula([tn.LeafCopula("clayton", 2, 3.0)], 2.0)
        with self.assertRaises(ValueError):
            tn.DoubleNestedCopula([inner], 1.0)
        with self.assertRaises(TypeError):
            tn.DoubleNestedCopula([tn.LeafCopula("gumbel", 2, 3.0)], 1.0)


class TestHierarchicalChain(unittest.TestCase):

    def test_scenario_b(self):
        c = tn.HierarchicalChain([5.0, 4.0, 3.0])
        self.assertEqual(c.n, 4)
        self.assertEqual(c.thetas, (5.0, 4.0, 3.0))
        self.assertIs(c.family, tn.gumbel)
        tree = c.tree
        self.assertEqual(tree.d, 4)
        self.assertEqual(c.depth, 3)
        spans = [(nd.start, nd.stop, nd.theta, nd.n_free) for nd in tree.nodes]
        self.assertEqual(spans, [(0, 4, 3.0, 1), (0, 3, 4.0, 1), (0, 2, 5.0, 2)])
        with self.assertRaises(tn.NestingViolation):
            tn.HierarchicalChain([3.0, 4.0, 5.0])

    def test_single_parameter(self):
        c = tn.HierarchicalChain([2.0])
        self.assertEqual(c.n, 2)
        self.assertEqual(c.depth, 1)

    def test_invalid(self):
        with self.assertRaises(ValueError):
            tn.HierarchicalChain([])
        with self.assertRaises(tn.DomainError):
            tn.HierarchicalChain([2.0, 0.5])
        with self.assertRaises(tn.NestingViolation):
            tn.HierarchicalChain([2.0, 2.0])


class TestFromCorrelation(unittest.TestCase):

    def test_chain_kendall(self):
        c = tn.HierarchicalChain.from_correlation([0.95, 0.5, 0.05])
        expected = (20.0, 2.0, 1.0 / 0.95)
        for got, ref in zip(c.thetas, expected):
            self.assertAlmostEqual(got, ref, places=9)

    def test_leaf_and_nested(self):
        leaf = tn.LeafCopula.from_correlation("clayton", 3, 0.5)
        self.assertAlmostEqual(leaf.theta, 2.0)
        nested = tn.NestedCopula.from_correlation([leaf], 0.2, m=1)
        self.assertAlmostEqual(nested.theta, 0.5)
        self.assertEqual(nested.n, 4)
        outer = tn.DoubleNestedCopula.from_correlation(
            [tn.NestedCopula.from_correlation([tn.LeafCopula.from_correlation("gumbel", 2, 0.6)], 0.4)], 0.2,
        )
        self.assertAlmostEqual(outer.theta, 1.25)

    def test_unattainable(self):
        with self.assertRaises(tn.DomainError):
            tn.LeafCopula.from_correlation("amh", 2, 0.4)
        with self.assertRaises(tn.DomainError):
            tn.HierarchicalChain.from_correlation([0.5, -0.1])


if __name__ == "__main__":
    unittest.main()
