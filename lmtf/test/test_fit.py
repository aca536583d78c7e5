####################################################################################################
# lmtf/test/test_fit.py
# Tests for the lmtf library's fit and optimize modules.

import unittest, logging
import numpy      as np
import pyrsistent as pyr
from lmtf.util     import (fit_options, LMTFInputError, LMTFInvariantError)
from lmtf.models   import (ModelVariant, expand_models, simulate_observations, variant_bounds,
                           local_bounds, parameter_count, predicted_thresholds, derive_guess,
                           max_log_gain)
from lmtf.optimize import (clamp_to_bounds, in_bounds, minimize_bounded, ols, wls,
                           robust_regression)
from lmtf.fit      import (ThresholdData, FitRecord, LocationFits, threshold_residuals,
                           global_error, location_errors, local_error, fit_record, model_test,
                           quick_fit, refine_fits, seed_guess, canonical_start,
                           check_nesting, symmetric_law_guesses, select_shared_models)
from .test_models  import (example_model, example_locations, random_params)

def example_data(locations=example_locations, model=example_model, ndirs=6,
                 tfs=(1, 2, 4, 8, 15, 25, 40)):
    # a grid of directions and frequencies at each location, with gains that fall with eccentricity
    (d, f) = np.meshgrid(np.linspace(0, np.pi, ndirs, endpoint=False), tfs)
    mdls = np.tile(model, (len(locations), 1))
    ecc = np.hypot(locations[:,0], locations[:,1]) / 10
    mdls[:,0] *= 10**(-0.04 * ecc)
    mdls[:,6] *= 10**(-0.06 * ecc)
    return ThresholdData(simulate_observations(mdls, locations, d.flatten(), f.flatten()))

class TestLMTFFit(unittest.TestCase):

    def test_threshold_data(self):
        logging.info('lmtf: Testing threshold data...')
        data = example_data()
        n = len(example_locations)
        self.assertEqual(len(data), n * 42)
        self.assertTrue(np.array_equal(data.locations, example_locations))
        self.assertTrue(np.array_equal(data.sample_counts, np.full(n, 42)))
        self.assertEqual(len(data.partition), n)
        self.assertTrue(np.all(data.location_index[data.partition[3]] == 3))
        self.assertIsNone(data.session)
        self.assertTrue(np.allclose(data.radius, np.hypot(data.L, data.M)))
        dom = data.domain
        self.assertEqual(dom[2], 1)
        self.assertEqual(dom[5], 40)
        self.assertTrue(np.allclose(dom[:2], -dom[3:5]))
        sub = data.subset([[0, 40], [20, 0]])
        self.assertTrue(np.array_equal(sub.locations, [[20, 0], [0, 40]]))
        self.assertTrue(np.array_equal(data.subset([1, 2]).locations, example_locations[1:3]))
        self.assertEqual(len(data.location(2)), 42)
        # a session column is carried along
        obs = np.column_stack([data.observations, np.ones(len(data))])
        self.assertTrue(np.all(ThresholdData(obs).session == 1))
        # malformed data
        with self.assertRaises(LMTFInputError): ThresholdData(np.ones((4, 5)))
        bad = np.array(data.observations)
        bad[0, 0:2] = 0
        with self.assertRaises(LMTFInputError): ThresholdData(bad)
        bad = np.array(data.observations)
        bad[0, 2] = np.nan
        with self.assertRaises(LMTFInputError): ThresholdData(bad)

    def test_oog_residuals(self):
        logging.info('lmtf: Testing out-of-gamut residuals...')
        m = example_model
        (L, M, tf) = (np.full(4, 0.6), np.full(4, 0.8), np.full(4, 3.0))
        pred = threshold_residuals(m, L, M, tf, np.ones(4), np.zeros(4, dtype=bool))
        pred = np.exp(pred)
        meas = pred * [0.5, 2, 0.5, 2]
        oog = np.array([False, False, True, True])
        r = threshold_residuals(m, L, M, tf, meas, oog)
        # an out-of-gamut prediction above the measured contrast costs nothing
        self.assertTrue(np.allclose(r, [np.log(2), -np.log(2), 0, -np.log(2)]))

    def test_global_local_agreement(self):
        logging.info('lmtf: Testing global/local error agreement...')
        data = example_data()
        rng = np.random.default_rng(4)
        opts = fit_options()
        for v in ModelVariant:
            for _ in range(3):
                p = random_params(v, len(data.locations), rng)
                rec = fit_record(data, v, p, opts)
                self.assertLessEqual(abs(global_error(p, v, data) - np.sum(rec.errors)), 1e-8)
                self.assertEqual(rec.local_models.shape, (len(data.locations), 13))
                self.assertEqual(rec.parameter_count, parameter_count(v, len(data.locations)))
        # the per-location errors computed directly agree as well
        errs = location_errors(expand_models(p, v, data.locations), data)
        self.assertTrue(np.allclose(np.sum(errs), global_error(p, v, data), rtol=0, atol=1e-8))

    def test_optimize(self):
        logging.info('lmtf: Testing bounded least squares...')
        (lb, ub) = (np.zeros(3), np.ones(3))
        x = clamp_to_bounds([-1, 0.5, np.nan], lb, ub)
        self.assertTrue(np.allclose(x, [0.001, 0.5, 0.5]))
        # only coordinates on or past a bound move; those just inside are left alone
        x = clamp_to_bounds([0, 0.0001, 1], lb, ub)
        self.assertTrue(np.allclose(x, [0.001, 0.0001, 0.999], rtol=1e-12, atol=0))
        self.assertTrue(np.array_equal(clamp_to_bounds([0.9995, 0.5, 0.25], lb, ub),
                                       [0.9995, 0.5, 0.25]))
        self.assertTrue(in_bounds(x, lb, ub))
        self.assertFalse(in_bounds([2, 0, 0], lb, ub))
        with self.assertRaises(ValueError): clamp_to_bounds([0, 0], lb, ub)
        # the minimum lies outside the box along the first axis
        target = np.array([1.5, 0.25, 0.75])
        res = minimize_bounded(lambda p: p - target, [0.5, 0.5, 0.5], (lb, ub))
        self.assertTrue(np.allclose(res.x, [1, 0.25, 0.75], atol=1e-6))
        self.assertAlmostEqual(res.error, 0.25, places=6)
        self.assertTrue(res.converged)
        self.assertGreater(res.start_error, res.error)
        # linear regressions
        X = np.column_stack([np.ones(6), np.arange(6.0)])
        y = 2 + 3 * np.arange(6.0)
        self.assertTrue(np.allclose(ols(X, y), [2, 3]))
        self.assertTrue(np.allclose(wls(X, y, [1, 2, 3, 1, 2, 3]), [2, 3]))
        X = np.column_stack([np.ones(12), np.arange(12.0)])
        y = 1 + 0.5 * np.arange(12.0)
        y[11] += 40
        self.assertLess(np.abs(robust_regression(X, y)[1] - 0.5),
                        np.abs(ols(X, y)[1] - 0.5))

    def test_model_test(self):
        logging.info('lmtf: Testing the global model fitter...')
        data = example_data(locations=example_locations[:3])
        opts = fit_options(optimizer_max_nfev=200)
        (lb, ub) = variant_bounds(ModelVariant.MODE0, 3)
        guess = (lb + ub) / 2
        (best, updated, msgs) = model_test(data, ModelVariant.MODE0, guess, options=opts)
        self.assertTrue(updated)
        self.assertIsInstance(best, FitRecord)
        self.assertIs(best.variant, ModelVariant.MODE0)
        self.assertTrue(in_bounds(best.parameters, lb, ub))
        self.assertLess(best.total_error, global_error(clamp_to_bounds(guess, lb, ub),
                                                       ModelVariant.MODE0, data))
        self.assertTrue(all(isinstance(m, str) for m in msgs))
        # the same fit again is not strictly better, so the stored best is kept
        (best2, updated2, _) = model_test(data, ModelVariant.MODE0, guess, best=best, options=opts)
        self.assertFalse(updated2)
        self.assertIs(best2, best)
        # the fitter refuses mismatched inputs
        with self.assertRaises(ValueError): model_test(data, ModelVariant.MODE1, guess, best=best)
        with self.assertRaises(ValueError): model_test(data, ModelVariant.MODE0, guess[:-1])
        # positional-law guesses are recorded as-is when they beat the best so far
        p2 = np.concatenate([best.parameters[:11], [1.2, 0, 0, 1.8, 0, 0]])
        rec2 = fit_record(data, ModelVariant.MODE2, p2, opts)
        worse = FitRecord(ModelVariant.MODE2, p2, rec2.local_models, rec2.errors + 1)
        (b, u, m) = model_test(data, ModelVariant.MODE2, p2, best=worse,
                               options=fit_options(optimizer_max_nfev=1))
        self.assertTrue(u)
        self.assertLessEqual(b.total_error, rec2.total_error)
        # a fit stopped by its evaluation limit is reported but its result is still used
        self.assertEqual(len(m), 1)
        self.assertIn('Fit of mode2 did not converge', m[0])
        self.assertTrue(np.isfinite(b.total_error))

    def test_local_fits(self):
        logging.info('lmtf: Testing per-location fits...')
        locs = example_locations[:3]
        data = example_data(locations=locs)
        # add a location with too few observations
        extra = np.array(data.raw[0][:5])
        extra[:, 4:6] = [70, 70]
        data = ThresholdData(np.vstack([data.observations, extra]))
        opts = fit_options(quickfit_starts=1, max_refinement_sweeps=2, optimizer_max_nfev=300)
        (fits, msgs) = quick_fit(data, opts)
        self.assertEqual(len(fits), 4)
        self.assertTrue(np.all(np.isfinite(fits.errors[:3])))
        self.assertTrue(np.isnan(fits.errors[3]))
        self.assertTrue(np.all(np.isnan(fits.models[3])))
        self.assertEqual(len(msgs), 1)
        self.assertIn('(70, 70)', msgs[0])
        (lb, ub) = local_bounds()
        for mdl in fits.models[:3]: self.assertTrue(in_bounds(mdl, lb, ub))
        # refinement starting from a poor common guess never increases any error
        data = data.subset(locs)
        start = np.tile(canonical_start(), (3, 1))
        errs0 = np.array([local_error(m, data.location(k)) for (k,m) in enumerate(start)])
        (models, errors, sweeps, msgs) = refine_fits(data, (start, errs0), opts)
        self.assertTrue(np.all(errors <= errs0))
        self.assertLessEqual(sweeps, 2)
        self.assertGreaterEqual(sweeps, 1)
        for (k,m) in enumerate(models):
            self.assertAlmostEqual(local_error(m, data.location(k)), errors[k])
        # a single permitted sweep is honored
        (models2, errors2, sweeps2, _) = refine_fits(data, LocationFits(models, errors),
                                                     fit_options(max_refinement_sweeps=1,
                                                                 optimizer_max_nfev=300))
        self.assertTrue(np.all(errors2 <= errors))
        self.assertEqual(sweeps2, 1)
        # the seed guess is a variant-1 vector with theta = pi/4 at every location
        (guess, seeds, _) = seed_guess(data, models, opts)
        self.assertEqual(len(guess), parameter_count(ModelVariant.MODE1, 3))
        self.assertEqual(seeds.shape, (2, 6))
        free = np.reshape(guess[10:], (3, 3))
        self.assertTrue(np.allclose(free[:,2], np.pi/4))
        self.assertTrue(np.array_equal(free[:,:2], models[:, [0, 6]]))
        self.assertTrue(np.array_equal(guess[:5], seeds[0,1:]))

    def test_regression_guesses(self):
        data = example_data()
        n = len(data.locations)
        p0 = random_params(ModelVariant.MODE0, n, np.random.default_rng(5))
        rec0 = fit_record(data, ModelVariant.MODE0, p0)
        gs = symmetric_law_guesses(data, rec0)
        self.assertEqual([k for (k,_) in gs], ['ols', 'wls', 'robust'])
        for (_, g) in gs:
            self.assertEqual(len(g), parameter_count(ModelVariant.MODE2, n))
            self.assertTrue(np.array_equal(g[:11], p0[:11]))

    def test_nesting(self):
        def rec(v, e):
            return FitRecord(v, np.zeros(parameter_count(v, 3)), np.zeros((3, 13)), [e, 0, 0])
        good = pyr.pmap({ModelVariant.MODE2: rec(ModelVariant.MODE2, 3.0),
                         ModelVariant.MODE3: rec(ModelVariant.MODE3, 2.0),
                         ModelVariant.MODE4: rec(ModelVariant.MODE4, 1.0),
                         ModelVariant.MODE5: rec(ModelVariant.MODE5, 1.5)})
        e = check_nesting(good)
        self.assertEqual(e[ModelVariant.MODE4], 1.0)
        # differences within the tolerance are allowed
        check_nesting(good.set(ModelVariant.MODE4, rec(ModelVariant.MODE4, 1.5 + 1e-9)))
        for (v, err) in [(ModelVariant.MODE4, 2.5), (ModelVariant.MODE3, 3.5),
                         (ModelVariant.MODE5, 0.5)]:
            with self.assertRaises(LMTFInvariantError) as cm:
                check_nesting(good.set(v, rec(v, err)))
            self.assertIn('errors', cm.exception.data)

    def test_extreme_gains(self):
        logging.info('lmtf: Testing positional laws with extreme gains...')
        locs = np.array([[20, 0], [0, 40], [100, 0]], dtype=float)
        data = example_data(locations=locs)
        shared = example_model[[1, 2, 3, 4, 5, 7, 8, 9, 10, 11, 12]]
        # a LUM gain of 10^189 at (100, 0); the vector lies inside the variant-2 bounds
        p2 = np.concatenate([shared, [9, 9, 9, 2, 0, 0]])
        (lb, ub) = variant_bounds(ModelVariant.MODE2, 3)
        self.assertTrue(in_bounds(p2, lb, ub))
        mdls = expand_models(p2, ModelVariant.MODE2, locs)
        self.assertTrue(np.all(np.isfinite(mdls)))
        th = predicted_thresholds(mdls[2], [1, 0, 1], [0, 1, 1], [4, 4, 4])
        self.assertTrue(np.all(np.isfinite(th)) and np.all(th > 0))
        self.assertTrue(np.isfinite(global_error(p2, ModelVariant.MODE2, data)))
        (best, updated, _) = model_test(data, ModelVariant.MODE2, p2,
                                        options=fit_options(optimizer_max_nfev=20))
        self.assertTrue(updated)
        self.assertTrue(np.isfinite(best.total_error))
        # at the upper bound of every coefficient the log gains are clipped
        mdls = expand_models(ub, ModelVariant.MODE2, [[300, 0], [0, 300]])
        self.assertTrue(np.allclose(mdls[0, [0, 6]], 10**max_log_gain))
        th = predicted_thresholds(mdls, [1, 0], [0, 1], [4, 4])
        self.assertTrue(np.all(np.isfinite(th)) and np.all(th > 0))

    def test_selection_loop(self):
        logging.info('lmtf: Testing the model selection loop...')
        locs = example_locations[:4]
        n = len(locs)
        data = example_data(locations=locs)
        opts = fit_options(max_selection_iterations=2, optimizer_max_nfev=50)
        p0 = derive_guess(np.tile(example_model, (n, 1)), ModelVariant.MODE0)
        rec0 = fit_record(data, ModelVariant.MODE0, p0, opts)
        guess = derive_guess(rec0.local_models, ModelVariant.MODE1)
        # a variant-0 fit with zero error can never be matched by variant 1, so every iteration
        # asks for another one until the cap is reached
        perfect = FitRecord(ModelVariant.MODE0, p0, rec0.local_models, np.zeros(n))
        (ledger, iters, msgs) = select_shared_models(data, guess,
                                                     ledger={ModelVariant.MODE0: perfect},
                                                     options=opts)
        self.assertEqual(iters, 2)
        self.assertIs(ledger[ModelVariant.MODE0], perfect)
        self.assertEqual(set(ledger.keys()),
                         {ModelVariant.MODE0, ModelVariant.MODE1, ModelVariant.MODE1P1,
                          ModelVariant.MODE1P2, ModelVariant.MODE2})
        refits = [m for m in msgs if m.startswith('Mode 0 model fit better than mode 1 model')]
        self.assertEqual(len(refits), 2)
        self.assertTrue(all('repeating fitting with new initial guesses' in m for m in refits))
        self.assertIn('maximum of 2 iterations', msgs[-1])
        # without the artificial fit the loop ends with the nested models in order, unless the
        # cap stopped it
        (ledger, iters, msgs) = select_shared_models(data, guess, options=opts)
        self.assertIn(iters, (1, 2))
        (e0, e1, e2) = [ledger[v].total_error
                        for v in (ModelVariant.MODE0, ModelVariant.MODE1, ModelVariant.MODE2)]
        if not any('maximum of 2 iterations' in m for m in msgs):
            self.assertLessEqual(e1, e0)
            self.assertLessEqual(e0, e2)
