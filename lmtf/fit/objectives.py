####################################################################################################
# lmtf/fit/objectives.py
# The residual and error functions minimized by the lmtf fits.

import numpy as np

from ..models import (frequency_response, predicted_thresholds, expand_models)

_tiny = np.finfo(np.float64).tiny

def threshold_residuals(models, L, M, tf, radius, oog):
    '''
    threshold_residuals(models, L, M, tf, radius, oog) yields the vector of log threshold residuals,
      log(predicted) - log(radius), of the given observations under the given local model(s).

    The models argument may be a single 13-parameter model or an (n x 13) matrix with one row per
    observation. For out-of-gamut observations (oog true) the true threshold is known only to exceed
    the measured radius, so a prediction at or above the radius has a residual of 0.
    '''
    pred = predicted_thresholds(models, L, M, tf)
    r = np.log(pred) - np.log(radius)
    return np.where(oog, np.minimum(r, 0), r)

def seed_residuals(params, tfs, sensitivity):
    '''
    seed_residuals(params, tfs, sensitivity) yields log(f(tfs)) - log(sensitivity) where f is the
      single-mechanism frequency response with the given 6 parameters.
    '''
    f = frequency_response(params, tfs)
    return np.log(np.maximum(f, _tiny)) - np.log(sensitivity)
def seed_error(params, tfs, sensitivity):
    '''
    seed_error(params, tfs, sensitivity) yields the sum of squared seed_residuals.
    '''
    return np.sum(seed_residuals(params, tfs, sensitivity)**2)

def local_residuals(model, data):
    '''
    local_residuals(model, data) yields the log threshold residuals of the given 13-parameter local
      model for every observation in the given ThresholdData object.
    '''
    return threshold_residuals(model, data.L, data.M, data.tf, data.radius, data.oog)
def local_error(model, data):
    '''
    local_error(model, data) yields the sum of squared local_residuals of the given model and data.
    '''
    return np.sum(local_residuals(model, data)**2)

def global_residuals(params, variant, data):
    '''
    global_residuals(params, variant, data) yields the log threshold residuals of every observation
      in the given ThresholdData object under the given global parameter vector of the given model
      variant. The global model is expanded at each of data.locations and every observation is
      evaluated under the local model of its location.
    '''
    models = expand_models(params, variant, data.locations)
    return threshold_residuals(models[data.location_index],
                               data.L, data.M, data.tf, data.radius, data.oog)
def global_error(params, variant, data):
    '''
    global_error(params, variant, data) yields the sum of squared global_residuals.
    '''
    return np.sum(global_residuals(params, variant, data)**2)
def location_errors(models, data):
    '''
    location_errors(models, data) yields the vector of local_error values of each row of the
      (n x 13) models matrix on the observations at the corresponding location of data.
    '''
    models = np.asarray(models, dtype=np.float64)
    if len(models) != len(data.locations):
        raise ValueError('one model is required per location')
    return np.array([local_error(mdl, data.location(k)) for (k,mdl) in enumerate(models)])
