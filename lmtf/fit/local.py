####################################################################################################
# lmtf/fit/local.py
# Independent fits of the local model at each retinal location, their cross-location refinement,
# and the single-mechanism seed fits that start the global model fits.

import logging
import numpy as np

from ..util     import (fit_options, note)
from ..models   import (local_bounds, seed_bounds, frequency_response, pack_params,
                        local_parameter_slots)
from ..optimize import (minimize_bounded, optimizer_options, clamp_to_bounds)
from .core       import LocationFits
from .objectives import (local_residuals, seed_residuals)

# Starting points of the LUM and RG mechanisms: (xi, zeta, n1, dn, logtau, logkappa)
lum_start = (20.0,  0.9,  3.0, -0.1, -2.0, np.log10(1.5))
rg_start  = (100.0, 0.1, 10.0, -0.1, -2.0, np.log10(1.1))
theta_start = np.pi / 4

def canonical_start():
    '''
    canonical_start() yields the default 13-parameter local model used as the first starting point
      of every per-location fit, clamped inside the local bounds.
    '''
    (lb, ub) = local_bounds()
    return clamp_to_bounds(lum_start + rg_start + (theta_start,), lb, ub)
def quickfit_starts(count, rng):
    '''
    quickfit_starts(count, rng) yields a (count x 13) matrix of starting points for a per-location
      fit: the canonical start followed by count - 1 points drawn uniformly inside the local bounds
      using the given numpy Generator.
    '''
    (lb, ub) = local_bounds()
    draws = rng.uniform(lb, ub, size=(count - 1, len(lb)))
    return np.vstack([canonical_start()[None,:], draws])

def _fit_location(sub, starts, opts, diagnostics, tag):
    (lb, ub) = local_bounds()
    best = None
    for x0 in starts:
        res = minimize_bounded(lambda p: local_residuals(p, sub), x0, (lb, ub), **opts)
        if diagnostics:
            logging.info('lmtf: %s: error %g -> %g (converged: %s)',
                         tag, res.start_error, res.error, res.converged)
        if best is None or res.error < best.error: best = res
    return best

def quick_fit(data, options=None, diagnostics=False):
    '''
    quick_fit(data) yields a tuple (fits, messages) of the independent fits of the 13-parameter local
      model at each location of the given ThresholdData object.

    The fits value is a LocationFits object with one row per location in data.locations. Each
    location is fit from the starting points given by quickfit_starts, and the best fit is kept.
    A location is degenerate when it has fewer than options['min_location_observations']
    observations or when its best error is not finite; its model and error are NaN and a warning
    is added to messages. Degenerate locations must be dropped by the caller.
    '''
    options = fit_options() if options is None else options
    opts = optimizer_options(options)
    rng = np.random.default_rng(options['quickfit_seed'])
    nloc = len(data.locations)
    models = np.full((nloc, len(local_bounds()[0])), np.nan)
    errors = np.full(nloc, np.nan)
    msgs = ()
    for (k,(x,y)) in enumerate(data.locations):
        starts = quickfit_starts(options['quickfit_starts'], rng)
        nobs = data.sample_counts[k]
        if nobs < options['min_location_observations']:
            msgs = note(msgs, 'Location (%g, %g) has only %d observations and was dropped',
                        x, y, nobs)
            continue
        best = _fit_location(data.location(k), starts, opts, diagnostics,
                             'quick fit at (%g, %g)' % (x, y))
        if not np.isfinite(best.error):
            msgs = note(msgs, 'Quick fit at location (%g, %g) failed and the location was dropped',
                        x, y)
            continue
        models[k] = best.x
        errors[k] = best.error
    logging.info('lmtf: quick fits complete at %d of %d locations',
                 np.sum(np.isfinite(errors)), nloc)
    return (LocationFits(models, errors), msgs)

def refine_fits(data, fits, options=None, diagnostics=False):
    '''
    refine_fits(data, fits) yields a tuple (models, errors, sweeps, messages) in which the given
      per-location fits have been improved by re-fitting each location starting from the models
      of the other locations.

    In each sweep, every location (the target) is re-fit starting from the model of every source
    location, itself included; a result replaces the target's model only if its error is strictly
    lower. The sources of the next sweep are the targets that improved, and the sweeps stop once a
    sweep improves nothing or options['max_refinement_sweeps'] sweeps have run (in which case a
    warning is added to messages). Errors therefore never increase.

    The fits argument may be a LocationFits object or a tuple (models, errors); the models matrix
    must have one row per location of data.
    '''
    options = fit_options() if options is None else options
    opts = optimizer_options(options)
    (models, errors) = (fits.models, fits.errors) if isinstance(fits, LocationFits) else fits
    models = np.array(models, dtype=np.float64)
    errors = np.array(errors, dtype=np.float64)
    if len(models) != len(data.locations) or len(errors) != len(models):
        raise ValueError('refine_fits requires one model and error per location')
    subs = [data.location(k) for k in range(len(models))]
    sources = list(range(len(models)))
    (sweeps, msgs) = (0, ())
    while len(sources) > 0:
        if sweeps >= options['max_refinement_sweeps']:
            msgs = note(msgs, 'Refinement stopped after the maximum of %d sweeps', sweeps)
            break
        sweeps += 1
        improved = []
        for (k,sub) in enumerate(subs):
            for src in sources:
                (x, y) = data.locations[k]
                tag = 'refinement of (%g, %g) from (%g, %g)' % (x, y, *data.locations[src])
                res = _fit_location(sub, [models[src]], opts, diagnostics, tag)
                if res.error < errors[k]:
                    logging.info('lmtf: fit at (%g, %g) improved from %g to %g by starting at '
                                 'the model of (%g, %g)', x, y, errors[k], res.error,
                                 *data.locations[src])
                    models[k] = res.x
                    errors[k] = res.error
                    if k not in improved: improved.append(k)
        sources = sorted(improved)
    logging.info('lmtf: refinement complete after %d sweeps', sweeps)
    return (models, errors, sweeps, msgs)

def seed_frequencies(data, count=40):
    '''
    seed_frequencies(data) yields the temporal frequencies at which the refined local models are
      sampled for the seed fits: count (default: 40) log-spaced frequencies between the lowest
      frequency in data and the 90th percentile of the in-gamut frequencies.
    '''
    tf = data.tf
    ingamut = tf[~data.oog]
    hi = np.percentile(ingamut, 90) if len(ingamut) > 0 else np.max(tf)
    lo = np.min(tf)
    if hi <= lo: hi = np.max(tf)
    return np.logspace(np.log10(lo), np.log10(hi), count)
def seed_guess(data, models, options=None, diagnostics=False):
    '''
    seed_guess(data, models) yields a tuple (guess, seeds, messages) where guess is the first
      starting point of the variant-1 global model and seeds is a (2 x 6) matrix of the LUM and RG
      single-mechanism fits it was built from.

    Every refined local model in the (n x 13) matrix models is sampled at the frequencies given by
    seed_frequencies; the samples of each mechanism are averaged across locations, weighted by the
    number of observations at each location; and a 6-parameter single-mechanism model is fit to
    each average. The fitted shape parameters become the shared parameters of the guess, and at
    each location the free parameters are the refined gains xi_lum and xi_rg and theta = pi/4.
    '''
    options = fit_options() if options is None else options
    opts = optimizer_options(options)
    models = np.asarray(models, dtype=np.float64)
    tfs = seed_frequencies(data, options['seed_frequency_count'])
    w = np.asarray(data.sample_counts, dtype=np.float64)
    (lb, ub) = seed_bounds()
    msgs = ()
    seeds = []
    for (name,sl,x0) in (('LUM', slice(0, 6), lum_start), ('RG', slice(6, 12), rg_start)):
        curves = np.array([frequency_response(mdl[sl], tfs) for mdl in models])
        wtavg = np.dot(w, curves) / np.sum(w)
        res = minimize_bounded(lambda p: seed_residuals(p, tfs, wtavg), x0, (lb, ub), **opts)
        if diagnostics:
            logging.info('lmtf: %s seed fit: error %g -> %g', name, res.start_error, res.error)
        if not res.converged:
            msgs = note(msgs, '%s seed fit did not converge: %s', name, res.message)
        seeds.append(res.x)
    seeds = np.array(seeds)
    xis = models[:, [local_parameter_slots['xi_lum'], local_parameter_slots['xi_rg']]]
    free = np.column_stack([xis, np.full(len(models), theta_start)])
    guess = pack_params(np.concatenate([seeds[0,1:], seeds[1,1:]]), free)
    return (guess, seeds, msgs)
