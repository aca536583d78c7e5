####################################################################################################
# lmtf/plans/modelfit.py
# The PIMMS calculation plan that fits the lmtf model hierarchy to a dataset.

import logging, pimms
import numpy      as np
import pyrsistent as pyr

from ..util   import (fit_options, note, check_locations, LMTFInputError)
from ..models import local_parameter_count
from ..fit    import (to_threshold_data, LocationFits, LMTFResult, local_error,
                      quick_fit, refine_fits, seed_guess,
                      select_shared_models, fit_positional_models, check_nesting)

def _location_key(x, y):
    return (float(x), float(y))
def prior_models(prior):
    '''
    prior_models(prior) yields a persistent map of (x, y) locations to 13-parameter local models
      from the given prior, which may be an LMTFResult (whose refined per-location fits are used),
      a mapping of (x, y) pairs to local models, or None (in which case None is yielded).
    '''
    if prior is None: return None
    if isinstance(prior, LMTFResult):
        return pyr.pmap({_location_key(*xy): mdl
                         for (xy,mdl) in zip(prior.locations, prior.refined_fits.models)})
    if not pimms.is_map(prior):
        raise LMTFInputError('prior must be an LMTFResult object or a mapping of locations to models')
    res = {}
    for (k,v) in prior.items():
        v = np.array(v, dtype=np.float64)
        if v.shape != (local_parameter_count,):
            raise LMTFInputError('prior model for location %s must have %d parameters'
                                 % (k, local_parameter_count))
        v.setflags(write=False)
        res[_location_key(*k)] = v
    return pyr.pmap(res)

@pimms.calc('settings')
def init_settings(options=None):
    '''
    init_settings is a calculator that merges the per-call options with the lmtf configuration.

    Afferent parameters:
     @ options May optionally give a mapping of configuration items (see lmtf.config) that
       override the configured values for this run only.

    Efferent values:
     @ settings A persistent map of every fitting option.
    '''
    return (fit_options(**({} if options is None else dict(options))),)
@pimms.calc('observations', 'known_models')
def init_observations(data, prior=None):
    '''
    init_observations is a calculator that validates the observations and the prior.

    Afferent parameters:
     @ data The (n x 6) or (n x 7) matrix of observations [L, M, TF, OOG, x, y(, session)] or a
       ThresholdData object.
     @ prior May optionally give an earlier LMTFResult or a mapping of (x, y) locations to local
       models; these models replace the quick per-location fits.

    Efferent values:
     @ observations The ThresholdData object of the data.
     @ known_models A persistent map of locations to prior local models, or None.
    '''
    return (to_threshold_data(data), prior_models(prior))
@pimms.calc('input_data', 'location_messages')
def calc_locations(observations, known_models):
    '''
    calc_locations is a calculator that selects the locations to be fit and checks that they can
    support the positional-law models. When prior models are given, locations without a prior
    model are dropped along with their observations.

    Efferent values:
     @ input_data The ThresholdData object of the observations at the retained locations.
     @ location_messages The tuple of warnings raised while selecting locations.
    '''
    msgs = ()
    data = observations
    if known_models is not None:
        keep = [k for (k,(x,y)) in enumerate(data.locations)
                if _location_key(x, y) in known_models]
        for (k,(x,y)) in enumerate(data.locations):
            if k not in keep:
                msgs = note(msgs, 'Location (%g, %g) has no prior model and was dropped', x, y)
        if len(keep) == 0: raise LMTFInputError('No observed location has a prior model')
        data = data.subset(keep)
    check_locations(data.locations)
    logging.info('lmtf: fitting %d observations at %d locations', len(data), len(data.locations))
    return (data, msgs)
@pimms.calc('quick_fits', 'quick_fit_messages')
def calc_quick_fits(input_data, known_models, settings, diagnostics=False):
    '''
    calc_quick_fits is a calculator that fits the local model independently at each location.

    Afferent parameters:
     @ diagnostics If True, every optimizer run is logged with its start and final error.

    Efferent values:
     @ quick_fits The LocationFits object of the quick fits (NaN at degenerate locations), or
       None when prior models are given.
     @ quick_fit_messages The tuple of warnings raised by the quick fits.
    '''
    if known_models is not None: return (None, ())
    return quick_fit(input_data, options=settings, diagnostics=diagnostics)
@pimms.calc('fit_data', 'initial_fits', 'quick_fits_kept')
def calc_fit_data(input_data, quick_fits, known_models):
    '''
    calc_fit_data is a calculator that drops the degenerate locations of the quick fits (or
    collects the prior models) and checks the remaining locations again.

    Efferent values:
     @ fit_data The ThresholdData object that all remaining fits use.
     @ initial_fits The LocationFits object that starts the cross-location refinement.
     @ quick_fits_kept The quick fits at the locations of fit_data, or None.
    '''
    if quick_fits is None:
        data = input_data
        models = np.array([known_models[_location_key(x, y)] for (x,y) in data.locations])
        errors = [local_error(mdl, data.location(k)) for (k,mdl) in enumerate(models)]
        fits = LocationFits(models, errors)
        return (data, fits, None)
    keep = np.where(np.isfinite(quick_fits.errors))[0]
    if len(keep) == len(quick_fits):
        data = input_data
    elif len(keep) == 0:
        raise LMTFInputError('Every location was degenerate')
    else:
        data = input_data.subset(keep)
    check_locations(data.locations)
    fits = LocationFits(quick_fits.models[keep], quick_fits.errors[keep])
    return (data, fits, fits)
@pimms.calc('refined_fits', 'refinement_sweeps', 'refinement_messages')
def calc_refined_fits(fit_data, initial_fits, settings, diagnostics=False):
    '''
    calc_refined_fits is a calculator that improves the per-location fits using each other's models
    as starting points.

    Efferent values:
     @ refined_fits The LocationFits object of the refined per-location fits.
     @ refinement_sweeps The number of refinement sweeps that were run.
     @ refinement_messages The tuple of warnings raised by the refinement.
    '''
    (models, errors, sweeps, msgs) = refine_fits(fit_data, initial_fits, options=settings,
                                                 diagnostics=diagnostics)
    return (LocationFits(models, errors), sweeps, msgs)
@pimms.calc('seed_fits', 'initial_guess', 'seed_messages')
def calc_seed_guess(fit_data, refined_fits, settings, diagnostics=False):
    '''
    calc_seed_guess is a calculator that builds the first variant-1 starting point from the refined
    per-location fits.

    Efferent values:
     @ seed_fits The (2 x 6) matrix of the LUM and RG single-mechanism seed fits.
     @ initial_guess The first variant-1 global parameter vector.
     @ seed_messages The tuple of warnings raised by the seed fits.
    '''
    (guess, seeds, msgs) = seed_guess(fit_data, refined_fits.models, options=settings,
                                      diagnostics=diagnostics)
    return (seeds, guess, msgs)
@pimms.calc('shared_fits', 'selection_iterations', 'selection_messages')
def calc_shared_models(fit_data, initial_guess, settings, diagnostics=False):
    '''
    calc_shared_models is a calculator that runs the model-selection loop over variants 0, 1, 1.1,
    1.2, and 2.

    Efferent values:
     @ shared_fits The persistent map of ModelVariant to best FitRecord after the loop.
     @ selection_iterations The number of iterations of the loop.
     @ selection_messages The tuple of warnings raised by the loop.
    '''
    return select_shared_models(fit_data, initial_guess, options=settings, diagnostics=diagnostics)
@pimms.calc('fits', 'positional_messages')
def calc_positional_models(fit_data, shared_fits, settings, diagnostics=False):
    '''
    calc_positional_models is a calculator that fits the tilted positional-law variants 3, 5, and 4.

    Efferent values:
     @ fits The persistent map of ModelVariant to best FitRecord for all eight variants.
     @ positional_messages The tuple of warnings raised by these fits.
    '''
    return fit_positional_models(fit_data, shared_fits, options=settings, diagnostics=diagnostics)
@pimms.calc('nested_errors')
def calc_nesting(fits, settings):
    '''
    calc_nesting is a calculator that verifies the ordering of the nested positional-law fits.

    Efferent values:
     @ nested_errors The persistent map of the total errors of variants 2 through 5.
    '''
    return (check_nesting(fits, options=settings),)
@pimms.calc('warnings')
def calc_warnings(location_messages, quick_fit_messages, refinement_messages, seed_messages,
                  selection_messages, positional_messages):
    '''
    calc_warnings is a calculator that collects the warnings of every stage in pipeline order.

    Efferent values:
     @ warnings The tuple of all warning messages.
    '''
    return (tuple(location_messages) + tuple(quick_fit_messages) + tuple(refinement_messages) +
            tuple(seed_messages) + tuple(selection_messages) + tuple(positional_messages),)
@pimms.calc('result')
def calc_result(fit_data, quick_fits_kept, refined_fits, fits, nested_errors, warnings):
    '''
    calc_result is a calculator that assembles the LMTFResult object.

    Efferent values:
     @ result The LMTFResult object of the run.
    '''
    res = LMTFResult(fit_data, quick_fits_kept, refined_fits, fits, warnings)
    logging.info('lmtf: fit complete; variant 5 total error %g, best variant by BIC: %s',
                 res.primary.total_error, res.best_variant)
    return (res,)

lmtf_plan = pimms.plan(settings=init_settings,
                       observations=init_observations,
                       locations=calc_locations,
                       quick_fits=calc_quick_fits,
                       fit_data=calc_fit_data,
                       refined_fits=calc_refined_fits,
                       seed_guess=calc_seed_guess,
                       shared_models=calc_shared_models,
                       positional_models=calc_positional_models,
                       nesting=calc_nesting,
                       warnings=calc_warnings,
                       result=calc_result)
