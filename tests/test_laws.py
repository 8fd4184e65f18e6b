"""Monte Carlo checks of the auxiliary laws (Laplace transforms and moments)."""
import math
import unittest

import torch
import torchnac as tn
from torchnac import laws
from torchnac.controls import SimulationControls


def _gen(seed):
    g = torch.Generator()
    g.manual_seed(seed)
    return g


class TestUniform(unittest.TestCase):

    def test_open_interval(self):
        u = laws.uniform((1000, 3), generator=_gen(0))
        self.assertEqual(u.shape, (1000, 3))
        self.assertTrue(bool((u > 0).all() and (u < 1).all()))
        self.assertEqual(u.dtype, torch.float64)


class TestPositiveStable(unittest.TestCase):

    def test_laplace_transform(self):
        # E[exp(-s S)] = exp(-s^alpha)
        for alpha in (0.3, 0.5, 0.8):
            with self.subTest(alpha=alpha):
                s = laws.positive_stable(alpha, 200_000, generator=_gen(1))
                self.assertTrue(bool(torch.isfinite(s).all() and (s > 0).all()))
                for lt_arg in (0.5, 2.0):
                    emp = float(torch.exp(-lt_arg * s).mean())
                    self.assertAlmostEqual(emp, math.exp(-lt_arg ** alpha), delta=0.01)

    def test_alpha_one(self):
        s = laws.positive_stable(1.0, 10, generator=_gen(2))
        self.assertTrue(torch.equal(s, torch.ones(10, dtype=torch.float64)))

    def test_invalid_alpha(self):
        for alpha in (0.0, 1.5, -0.2):
            with self.subTest(alpha=alpha):
                with self.assertRaises(tn.DomainError):
                    laws.positive_stable(alpha, 5)


class TestTiltedStable(unittest.TestCase):

    def test_laplace_transform(self):
        # E[exp(-s X)] = exp(-V0 ((h + s)^alpha - h^alpha))
        alpha = 0.5
        for v0_val in (0.3, 2.0, 7.0):
            with self.subTest(v0=v0_val):
                v0 = torch.full((100_000,), v0_val, dtype=torch.float64)
                x = laws.tilted_stable(alpha, v0, generator=_gen(3))
                self.assertTrue(bool((x > 0).all()))
                emp = float(torch.exp(-x).mean())
                ref = math.exp(-v0_val * (2.0 ** alpha - 1.0))
                self.assertAlmostEqual(emp, ref, delta=0.01)

    def test_untilted_is_stable(self):
        x = laws.tilted_stable(0.6, torch.ones(100_000, dtype=torch.float64), h=0.0, generator=_gen(4))
        self.assertAlmostEqual(float(torch.exp(-x).mean()), math.exp(-1.0), delta=0.01)

    def test_alpha_one_returns_v0(self):
        v0 = torch.tensor([0.5, 1.0, 3.0], dtype=torch.float64)
        self.assertTrue(torch.equal(laws.tilted_stable(1.0, v0, generator=_gen(5)), v0))

    def test_small_piece_budget(self):
        v0 = torch.full((20_000,), 4.0, dtype=torch.float64)
        x = laws.tilted_stable(0.5, v0, generator=_gen(6), controls=SimulationControls(max_pieces=7))
        ref = math.exp(-4.0 * (2.0 ** 0.5 - 1.0))
        self.assertAlmostEqual(float(torch.exp(-x).mean()), ref, delta=0.015)


class TestLogSeries(unittest.TestCase):

    def test_moments(self):
        theta = 2.0
        v = laws.logseries(theta, 100_000, generator=_gen(7))
        self.assertTrue(bool((v >= 1).all()))
        self.assertTrue(torch.equal(v, torch.round(v)))
        self.assertAlmostEqual(float(v.mean()), math.expm1(theta) / theta, delta=0.06)
        p1 = -math.expm1(-theta) / theta
        self.assertAlmostEqual(float((v == 1).double().mean()), p1, delta=0.01)

    def test_table_shared_and_monotone(self):
        t1 = laws.logseries_table(3.25)
        t2 = laws.logseries_table(3.25)
        self.assertIs(t1, t2)
        cdf = t1.cdf(0.999)
        self.assertGreater(float(cdf[-1]), 0.999)
        self.assertTrue(bool((cdf[1:] >= cdf[:-1]).all()))
        self.assertAlmostEqual(float(cdf[0]), -math.expm1(-3.25) / 3.25, places=12)

    def test_table_grows_lazily(self):
        table = laws.LogSeriesTable(8.0)
        self.assertEqual(len(table), 0)
        table.cdf(0.5)
        n1 = len(table)
        table.cdf(1.0 - 1e-9)
        self.assertGreaterEqual(len(table), n1)

    def test_sample_inversion(self):
        table = laws.LogSeriesTable(1.0)
        cdf = table.cdf(0.99)
        c0, c1 = float(cdf[0]), float(cdf[1])
        u = torch.tensor([0.0, c0 / 2.0, c0, (c0 + c1) / 2.0], dtype=torch.float64)
        k = table.sample(u)
        self.assertEqual(k.tolist(), [1.0, 1.0, 2.0, 2.0])

    def test_invalid(self):
        with self.assertRaises(tn.DomainError):
            laws.LogSeriesTable(0.0)
        with self.assertRaises(tn.DomainError):
            laws.logseries_kemp(0.0, torch.tensor([0.5]), torch.tensor([0.5]))

    def test_cache_bounded(self):
        keep = laws.logseries_table(4.125)
        for i in range(laws._LOGSERIES_CACHE_MAX + 10):
            laws.logseries_table(0.5 + i / 1000.0)
            laws.logseries_table(4.125)
        self.assertLessEqual(len(laws._LOGSERIES_TABLES), laws._LOGSERIES_CACHE_MAX)
        self.assertIs(laws.logseries_table(4.125), keep)
        self.assertNotIn(0.5, laws._LOGSERIES_TABLES)


class TestLogSeriesKemp(unittest.TestCase):

    def test_matches_moderate_law(self):
        theta = 2.0
        g = _gen(70)
        u2 = laws.uniform(100_000, generator=g)
        u3 = laws.uniform(100_000, generator=g)
        v = laws.logseries_kemp(theta, u2, u3)
        self.assertTrue(bool((v >= 1).all()))
        self.assertTrue(torch.equal(v, torch.round(v)))
        self.assertAlmostEqual(float(v.mean()), math.expm1(theta) / theta, delta=0.06)
        self.assertAlmostEqual(float((v == 1).double().mean()), -math.expm1(-theta) / theta, delta=0.01)

    def test_high_theta(self):
        # p = 1 - exp(-30) is far beyond what a cdf table can cover
        theta = 30.0
        v = laws.logseries(theta, 100_000, generator=_gen(71))
        self.assertNotIn(theta, laws._LOGSERIES_TABLES)
        self.assertTrue(bool(torch.isfinite(v).all() and (v >= 1).all()))
        self.assertTrue(torch.equal(v, torch.round(v)))
        p = -math.expm1(-theta)
        self.assertAlmostEqual(float((v == 1).double().mean()), p / theta, delta=0.003)
        self.assertAlmostEqual(float((v == 2).double().mean()), p * p / (2.0 * theta), delta=0.002)
        harmonic = sum(p ** k / k for k in range(1, 101)) / theta
        self.assertAlmostEqual(float((v <= 100).double().mean()), harmonic, delta=0.005)
        # Laplace transform E[exp(-s V)] = -log(1 - p exp(-s)) / theta
        s = 0.5
        ref = -math.log1p(-p * math.exp(-s)) / theta
        self.assertAlmostEqual(float(torch.exp(-s * v).mean()), ref, delta=0.003)
        # far more mass beyond the default table cap than the table could hold
        self.assertGreater(float((v > (1 << 24)).double().mean()), 0.3)

    def test_switch_is_deterministic(self):
        c = SimulationControls(logseries_table_max_theta=1.0)
        a = laws.logseries(1.5, 1000, generator=_gen(72), controls=c)
        b = laws.logseries(1.5, 1000, generator=_gen(72), controls=c)
        self.assertTrue(torch.equal(a, b))
        self.assertFalse(torch.equal(a, laws.logseries(1.5, 1000, generator=_gen(72))))



class TestFrankInner(unittest.TestCase):

    def test_laplace_transform(self):
        theta, phi, s = 1.0, 3.0, 0.5
        alpha = theta / phi
        p0, p1 = -math.expm1(-theta), -math.expm1(-phi)
        for v0_val in (1.0, 3.0):
            with self.subTest(v0=v0_val):
                v0 = torch.full((50_000,), v0_val, dtype=torch.float64)
                w = laws.frank_inner(theta, phi, v0, generator=_gen(8))
                self.assertTrue(bool((w >= v0).all()))
                emp = float(torch.exp(-s * w).mean())
                ref = ((1.0 - (1.0 - math.exp(-s) * p1) ** alpha) / p0) ** v0_val
                self.assertAlmostEqual(emp, ref, delta=0.01)

    def test_equal_parameters(self):
        v0 = torch.tensor([1.0, 4.0, 9.0], dtype=torch.float64)
        self.assertTrue(torch.equal(laws.frank_inner(2.0, 2.0, v0, generator=_gen(9)), v0))

    def test_high_child_parameter(self):
        theta, phi, s = 2.0, 25.0, 0.5
        alpha = theta / phi
        p0, p1 = -math.expm1(-theta), -math.expm1(-phi)
        v0 = torch.ones(50_000, dtype=torch.float64)
        w = laws.frank_inner(theta, phi, v0, generator=_gen(73))
        self.assertTrue(bool(torch.isfinite(w).all() and (w >= 1).all()))
        ref = (1.0 - (1.0 - math.exp(-s) * p1) ** alpha) / p0
        self.assertAlmostEqual(float(torch.exp(-s * w).mean()), ref, delta=0.01)



class TestGeometricFamily(unittest.TestCase):

    def test_shifted_geometric(self):
        u = laws.uniform(100_000, generator=_gen(10))
        v = laws.shifted_geometric(0.5, u)
        self.assertTrue(bool((v >= 1).all()))
        self.assertAlmostEqual(float(v.mean()), 2.0, delta=0.03)
        self.assertAlmostEqual(float((v == 1).double().mean()), 0.5, delta=0.01)
        with self.assertRaises(tn.DomainError):
            laws.shifted_geometric(1.0, u)

    def test_negative_binomial(self):
        r = torch.full((100_000,), 3.0, dtype=torch.float64)
        w = laws.negative_binomial(r, 0.4, generator=_gen(11))
        self.assertTrue(bool((w >= 0).all()))
        self.assertAlmostEqual(float(w.mean()), 3.0 * 0.6 / 0.4, delta=0.06)
        self.assertAlmostEqual(float(w.var()), 3.0 * 0.6 / 0.16, delta=0.4)

    def test_negative_binomial_certain_success(self):
        r = torch.tensor([1.0, 5.0], dtype=torch.float64)
        self.assertTrue(torch.equal(laws.negative_binomial(r, 1.0), torch.zeros(2, dtype=torch.float64)))

    def test_negative_binomial_invalid(self):
        r = torch.ones(3, dtype=torch.float64)
        for p in (0.0, 1.5):
            with self.subTest(p=p):
                with self.assertRaises(tn.DomainError):
                    laws.negative_binomial(r, p)

    def test_amh_success_probability(self):
        self.assertAlmostEqual(laws.amh_success_probability(0.3, 0.6), 0.4 / 0.7)
        self.assertEqual(laws.amh_success_probability(0.5, 0.5), 1.0)
        with self.assertRaises(tn.DomainError):
            laws.amh_success_probability(0.6, 0.3)

    def test_amh_step_formula(self):
        from torchnac.steps import amh_step
        u = laws.uniform((1000, 2), generator=_gen(74))
        v0 = laws.shifted_geometric(0.4, laws.uniform(1000, generator=_gen(75)))
        # phi = theta gives W = 0 and the identity map
        self.assertTrue(torch.allclose(amh_step(u, 0.4, 0.4, v0, generator=_gen(76)), u, atol=1e-12))
        phi, theta = 0.7, 0.4
        x = amh_step(u, phi, theta, v0, generator=_gen(77))
        w = laws.negative_binomial(v0, (1.0 - phi) / (1.0 - theta), generator=_gen(77))
        e = -torch.log(u) / (v0 + w)[:, None]
        ref = (((torch.exp(e) - phi) * (1.0 - theta) + theta * (1.0 - phi)) / (1.0 - phi)) ** (-v0[:, None])
        self.assertTrue(torch.allclose(x, ref, rtol=1e-12))
        self.assertTrue(bool((x > 0).all() and (x <= 1).all()))


class TestGammaQuantile(unittest.TestCase):

    def test_inverts_gammainc(self):
        u = torch.tensor([1e-6, 0.1, 0.5, 0.9, 0.999], dtype=torch.float64)
        for a in (0.3, 1.0, 4.5):
            with self.subTest(shape=a):
                q = laws.gamma_quantile(a, u)
                back = torch.special.gammainc(torch.full_like(q, a), q)
                self.assertTrue(torch.allclose(back, u, rtol=1e-8, atol=1e-12))

    def test_exponential_case(self):
        u = torch.tensor([0.25, 0.5], dtype=torch.float64)
        q = laws.gamma_quantile(1.0, u)
        self.assertTrue(torch.allclose(q, -torch.log1p(-u), rtol=1e-10))

    def test_invalid(self):
        with self.assertRaises(tn.DomainError):
            laws.gamma_quantile(0.0, torch.tensor([0.5], dtype=torch.float64))


if __name__ == "__main__":
    unittest.main()
