####################################################################################################
# lmtf/fit/model.py
# The fitting of a single global model variant to all locations at once.

import logging
import numpy as np

from ..util     import (fit_options, note, LMTFInvariantError)
from ..models   import (ModelVariant, variant_bounds, parameter_count, expand_models)
from ..optimize import (minimize_bounded, optimizer_options, in_bounds)
from .core       import FitRecord
from .objectives import (global_residuals, global_error, location_errors)

def fit_record(data, variant, params, options=None):
    '''
    fit_record(data, variant, params) yields the FitRecord of the given global parameter vector of
      the given model variant on the given ThresholdData object.

    The per-location errors are computed from the expanded local models one location at a time,
    and their sum is checked against the global error computed over all observations at once; if
    the two differ by more than options['error_tolerance'], or if either is not finite, an
    LMTFInvariantError is raised.
    '''
    options = fit_options() if options is None else options
    variant = ModelVariant.to_variant(variant)
    models = expand_models(params, variant, data.locations)
    errors = location_errors(models, data)
    glob = global_error(params, variant, data)
    tot = np.sum(errors)
    if not np.isfinite(glob) or not np.isfinite(tot):
        raise LMTFInvariantError('Non-finite error in fit of %s' % variant,
                                 {'variant': variant, 'parameters': params,
                                  'errors': errors, 'global_error': glob})
    if abs(glob - tot) > options['error_tolerance']:
        raise LMTFInvariantError('Global error (%r) and sum of local errors (%r) of %s disagree'
                                 % (glob, tot, variant),
                                 {'variant': variant, 'parameters': params,
                                  'errors': errors, 'global_error': glob})
    return FitRecord(variant, params, models, errors)

def model_test(data, variant, guess, best=None, options=None, diagnostics=False):
    '''
    model_test(data, variant, guess) fits the given global model variant to the given ThresholdData
      object starting from the given parameter vector and yields the tuple
      (best, updated, messages).

    The optional argument best may be the FitRecord of the best fit of the same variant found so
    far; the returned best is the new fit if its total error is strictly lower than that of best
    (or if best is None) and is best otherwise; updated is True when the returned record is new.
    For positional-law variants the guess itself is also evaluated, and it is recorded when it is
    within bounds and beats best, so that a seed taken from a nested model can never be lost by
    the optimizer.

    The guess is clamped strictly inside the variant's bounds before optimization. If the optimizer
    does not report convergence, a warning is added to messages and its result is still used. This
    function does not modify any of its arguments.

    The following options may be given:
      * options (default: None) is the map of fitting options; if None, fit_options() is used.
      * diagnostics (default: False) logs the start and final error of the fit.
    '''
    options = fit_options() if options is None else options
    variant = ModelVariant.to_variant(variant)
    if best is not None and best.variant is not variant:
        raise ValueError('Cannot compare a fit of %s to a fit of %s' % (variant, best.variant))
    n = len(data.locations)
    guess = np.asarray(guess, dtype=np.float64)
    if guess.shape != (parameter_count(variant, n),):
        raise ValueError('%s guess for %d locations must have %d elements'
                         % (variant, n, parameter_count(variant, n)))
    (lb, ub) = variant_bounds(variant, n)
    (updated, msgs) = (False, ())
    if variant.is_positional and in_bounds(guess, lb, ub):
        rec = fit_record(data, variant, guess, options)
        if best is None or rec.total_error < best.total_error:
            (best, updated) = (rec, True)
    res = minimize_bounded(lambda p: global_residuals(p, variant, data), guess, (lb, ub),
                           **optimizer_options(options))
    if diagnostics:
        logging.info('lmtf: %s fit: error %g -> %g (converged: %s, %d evaluations)',
                     variant, res.start_error, res.error, res.converged, res.nfev)
    if not res.converged:
        msgs = note(msgs, 'Fit of %s did not converge: %s', variant, res.message)
    rec = fit_record(data, variant, res.x, options)
    if best is None or rec.total_error < best.total_error:
        (best, updated) = (rec, True)
    return (best, updated, msgs)
