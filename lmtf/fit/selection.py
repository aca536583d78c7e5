####################################################################################################
# lmtf/fit/selection.py
# The sequence of global model fits and the loop that re-fits them until the nested models are
# consistent with one another.

import logging
import numpy      as np
import pyrsistent as pyr

from ..util     import (fit_options, note, LMTFInvariantError)
from ..models   import (ModelVariant, local_parameter_slots, positional_shared_slots,
                        law_coefficients, law_basis, positional_params, derive_guess)
from ..optimize import (ols, wls, robust_regression)
from .model     import model_test

regression_kinds = ('ols', 'wls', 'robust')
# columns of law_basis(): [1, r, r sin(2 phi), r cos(2 phi)]
_symmetric_columns = [0, 1, 3]
_tilted_columns    = [0, 1, 2, 3]

def regress(kind, X, y, weights=None):
    '''
    regress(kind, X, y) yields the coefficients of the linear regression of y on the columns of X
      using the given kind of regression: 'ols' (ordinary least squares), 'wls' (weighted least
      squares; requires the weights argument) or 'robust' (a soft-L1 robust fit).
    '''
    if   kind == 'ols':    return ols(X, y)
    elif kind == 'wls':    return wls(X, y, weights)
    elif kind == 'robust': return robust_regression(X, y)
    else: raise ValueError('Unrecognized regression kind: %s' % kind)

def _log_gains(record):
    models = record.local_models
    return (np.log10(models[:, local_parameter_slots['xi_lum']]),
            np.log10(models[:, local_parameter_slots['xi_rg']]))
def _shape(record):
    # the 11 shared values of a positional-law variant, taken from the first location
    return record.local_models[0, list(positional_shared_slots)]
def _canonical(lum_cols, b, rg_cols, a):
    c = np.zeros(8)
    c[lum_cols] = b
    c[[k + 4 for k in rg_cols]] = a
    return c
def _nested(record, variant):
    # the fit of one positional-law variant as a guess for another
    return positional_params(record.parameters[:len(positional_shared_slots)],
                             law_coefficients(record.variant, record.parameters), variant)

def _test(ledger, data, variant, guess, options, diagnostics):
    (best, updated, msgs) = model_test(data, variant, guess, ledger.get(variant),
                                       options=options, diagnostics=diagnostics)
    if updated:
        logging.info('lmtf: new best %s fit with total error %g', variant, best.total_error)
    return (ledger.set(variant, best), msgs)
def _total(ledger, variant):
    return ledger[variant].total_error

def symmetric_law_guesses(data, source):
    '''
    symmetric_law_guesses(data, source) yields a list of (kind, guess) starting points for the
      variant-2 model, one per regression kind, in which the log10 gains of the local models of the
      given source FitRecord are regressed on [1, r, r cos(2 phi)] and the shared values are taken
      from the source. The wls regression weights each location by its number of observations.
    '''
    basis = law_basis(data.locations)[:, _symmetric_columns]
    (ylum, yrg) = _log_gains(source)
    w = data.sample_counts
    return [(kind, positional_params(_shape(source),
                                     _canonical(_symmetric_columns, regress(kind, basis, ylum, w),
                                                _symmetric_columns, regress(kind, basis, yrg, w)),
                                     ModelVariant.MODE2))
            for kind in regression_kinds]

def select_shared_models(data, guess, ledger=None, options=None, diagnostics=False):
    '''
    select_shared_models(data, guess) fits the per-location variants 1, 1.1, 1.2, and 0 and the
      symmetric positional-law variant 2, starting from the given variant-1 guess, and yields the
      tuple (ledger, iterations, messages), where ledger is a persistent map of ModelVariant to the
      best FitRecord found for each variant.

    Each iteration fits variant 1 from the current guess; derives guesses for variants 1.1, 1.2,
    and 0 from the best variant-1 fit; derives new guesses for variants 1, 1.1, and 1.2 from the
    best variant-0 fit; and fits variant 2 from three regressions of the variant-0 gains.

    Variant 0 is nested in variant 1, so when the best variant-0 fit has a strictly lower error
    than the best variant-1 fit, the variant-1 fit is under-optimized and another iteration is run
    starting from the variant-0 fit. Likewise, when the best variant-2 fit has a strictly lower
    error than the best variant-0 fit, another iteration is run starting from the variant-2 fit.
    Each of these events adds a warning to messages. The loop stops when neither holds (ties stop
    the loop) or after options['max_selection_iterations'] iterations, with a warning.

    The optional argument ledger may give fits from an earlier run; they are replaced only by fits
    with strictly lower error.
    '''
    options = fit_options() if options is None else options
    ledger = pyr.m() if ledger is None else pyr.pmap(ledger)
    (iterations, msgs) = (0, ())
    while True:
        iterations += 1
        logging.info('lmtf: model selection iteration %d', iterations)
        (ledger, m) = _test(ledger, data, ModelVariant.MODE1, guess, options, diagnostics)
        msgs += m
        mdl1 = ledger[ModelVariant.MODE1].local_models
        for v in (ModelVariant.MODE1P1, ModelVariant.MODE1P2, ModelVariant.MODE0):
            (ledger, m) = _test(ledger, data, v, derive_guess(mdl1, v), options, diagnostics)
            msgs += m
        mdl0 = ledger[ModelVariant.MODE0].local_models
        for v in (ModelVariant.MODE1, ModelVariant.MODE1P1, ModelVariant.MODE1P2):
            (ledger, m) = _test(ledger, data, v, derive_guess(mdl0, v), options, diagnostics)
            msgs += m
        for (kind, g) in symmetric_law_guesses(data, ledger[ModelVariant.MODE0]):
            (ledger, m) = _test(ledger, data, ModelVariant.MODE2, g, options, diagnostics)
            msgs += m
        (e0, e1, e2) = [_total(ledger, v) for v in (ModelVariant.MODE0, ModelVariant.MODE1,
                                                     ModelVariant.MODE2)]
        again = False
        if e2 < e0:
            guess = derive_guess(ledger[ModelVariant.MODE2].local_models, ModelVariant.MODE1)
            msgs = note(msgs, 'Mode 2 model fit better than mode 0 model (%g < %g); repeating '
                        'fitting with new initial guesses', e2, e0)
            again = True
        if e0 < e1:
            guess = derive_guess(ledger[ModelVariant.MODE0].local_models, ModelVariant.MODE1)
            msgs = note(msgs, 'Mode 0 model fit better than mode 1 model (%g < %g); repeating '
                        'fitting with new initial guesses', e0, e1)
            again = True
        if not again: break
        if iterations >= options['max_selection_iterations']:
            msgs = note(msgs, 'Model selection stopped after the maximum of %d iterations',
                        iterations)
            break
    return (ledger, iterations, msgs)

def fit_positional_models(data, ledger, options=None, diagnostics=False):
    '''
    fit_positional_models(data, ledger) fits the tilted positional-law variants 3, 5, and 4 and
      yields the tuple (ledger, messages) with the updated ledger of best fits. The given ledger
      must contain fits of variants 0 and 2.

    Each variant is fit from several starting points, and the best result is kept:
      * variant 3: the variant-2 fit with zero LUM tilt; and ols, wls, and robust regressions of
        the variant-0 gains (LUM on [1, r, r sin 2phi, r cos 2phi], RG on [1, r, r cos 2phi])
        with the variant-0 shared values.
      * variant 5: the variant-3 fit; and joint ols, wls, and robust regressions of both variant-0
        gains with a common tilt coefficient, with the variant-2 shared values.
      * variant 4: the variant-5 fit with the RG tilt equal to the LUM tilt; ols, wls, and robust
        regressions of both variant-0 gains on the full basis with the variant-2 shared values;
        and the variant-3 fit with zero RG tilt.
    Because the nested fits are among the starting points, the variant-4 error cannot exceed the
    variant-3 or variant-5 error and the variant-3 error cannot exceed the variant-2 error.
    '''
    options = fit_options() if options is None else options
    ledger = pyr.pmap(ledger)
    (rec0, rec2) = (ledger[ModelVariant.MODE0], ledger[ModelVariant.MODE2])
    basis = law_basis(data.locations)
    (ylum, yrg) = _log_gains(rec0)
    w = np.asarray(data.sample_counts, dtype=np.float64)
    msgs = ()
    def run(ledger, msgs, variant, guesses):
        for g in guesses:
            (ledger, m) = _test(ledger, data, variant, g, options, diagnostics)
            msgs += m
        return (ledger, msgs)
    # variant 3: LUM tilt only
    g3 = [_nested(rec2, ModelVariant.MODE3)]
    for kind in regression_kinds:
        b = regress(kind, basis[:, _tilted_columns], ylum, w)
        a = regress(kind, basis[:, _symmetric_columns], yrg, w)
        g3.append(positional_params(_shape(rec0), _canonical(_tilted_columns, b,
                                                             _symmetric_columns, a),
                                    ModelVariant.MODE3))
    (ledger, msgs) = run(ledger, msgs, ModelVariant.MODE3, g3)
    # variant 5: yoked tilt; the joint design has columns b0 b1 b2 b3 a0 a1 a3
    z = np.zeros(len(basis))
    (one, r, rsin, rcos) = basis.T
    X = np.vstack([np.column_stack([one, r, rsin, rcos, z, z, z]),
                   np.column_stack([z, z, rsin, z, one, r, rcos])])
    Y = np.concatenate([ylum, yrg])
    W = np.concatenate([w, w])
    g5 = [_nested(ledger[ModelVariant.MODE3], ModelVariant.MODE5)]
    for kind in regression_kinds:
        c = np.zeros(8)
        c[[0, 1, 2, 3, 4, 5, 7]] = regress(kind, X, Y, W)
        g5.append(positional_params(_shape(rec2), c, ModelVariant.MODE5))
    (ledger, msgs) = run(ledger, msgs, ModelVariant.MODE5, g5)
    # variant 4: independent tilts
    g4 = [_nested(ledger[ModelVariant.MODE5], ModelVariant.MODE4)]
    for kind in regression_kinds:
        b = regress(kind, basis[:, _tilted_columns], ylum, w)
        a = regress(kind, basis[:, _tilted_columns], yrg, w)
        g4.append(positional_params(_shape(rec2), _canonical(_tilted_columns, b,
                                                             _tilted_columns, a),
                                    ModelVariant.MODE4))
    g4.append(_nested(ledger[ModelVariant.MODE3], ModelVariant.MODE4))
    (ledger, msgs) = run(ledger, msgs, ModelVariant.MODE4, g4)
    return (ledger, msgs)

def check_nesting(ledger, options=None):
    '''
    check_nesting(ledger) raises an LMTFInvariantError if the best fits in the given ledger violate
      the ordering of the nested positional-law models: E4 <= E3 <= E2 and E4 <= E5, where Ek is the
      total error of variant k, each within options['nesting_tolerance']. Otherwise yields the
      persistent map of these total errors.
    '''
    options = fit_options() if options is None else options
    tol = options['nesting_tolerance']
    e = pyr.pmap({v:ledger[v].total_error for v in (ModelVariant.MODE2, ModelVariant.MODE3,
                                                    ModelVariant.MODE4, ModelVariant.MODE5)})
    for (rich, nested) in ((ModelVariant.MODE4, ModelVariant.MODE3),
                           (ModelVariant.MODE3, ModelVariant.MODE2),
                           (ModelVariant.MODE4, ModelVariant.MODE5)):
        if e[rich] > e[nested] + tol:
            raise LMTFInvariantError('A constrained fit has lower error than a flexible fit: '
                                     '%s error %r exceeds %s error %r' %
                                     (rich, e[rich], nested, e[nested]),
                                     {'errors': {k.label:v for (k,v) in e.items()},
                                      'variant': rich, 'nested': nested})
    return e
