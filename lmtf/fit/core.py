####################################################################################################
# lmtf/fit/core.py
# Immutable containers for threshold observations and for the fits made to them.

import pimms
import numpy      as np
import pyrsistent as pyr

from ..util   import (LMTFInputError, unique_locations)
from ..models import (ModelVariant, local_parameter_count, expand_models, predicted_thresholds)

def _readonly(u, dtype=np.float64):
    u = np.array(u, dtype=dtype)
    u.setflags(write=False)
    return u

@pimms.immutable
class ThresholdData(object):
    '''
    ThresholdData is an immutable wrapper around a matrix of detection-threshold observations.

    Each row of the observations matrix is one threshold measurement:
      [L, M, TF, OOG, x, y] or [L, M, TF, OOG, x, y, session]
    where L and M are the L- and M-cone contrasts at threshold, TF is the temporal frequency in Hz,
    OOG is 1 if the threshold could not be reached within the display gamut (in which case (L, M)
    is the largest contrast shown), and (x, y) is the stimulus location in tenths of a degree of
    visual angle. The optional session column is carried along but not used by the fits.

    Retinal locations are the unique (x, y) pairs, in order of first appearance.
    '''
    def __init__(self, observations):
        self.observations = observations
    @pimms.param
    def observations(obs):
        '''
        data.observations is the read-only (n x 6) or (n x 7) matrix of threshold observations.
        '''
        try: obs = np.array(obs, dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise LMTFInputError('observations must be a numeric matrix: %s' % e)
        if len(obs.shape) != 2 or obs.shape[1] not in (6, 7):
            raise LMTFInputError('observations must be an (n x 6) or (n x 7) matrix; got shape %s'
                                 % (obs.shape,))
        if len(obs) == 0: raise LMTFInputError('no observations given')
        if not np.isfinite(obs[:,:6]).all():
            raise LMTFInputError('observations contain non-finite values')
        if np.any(np.hypot(obs[:,0], obs[:,1]) <= 0):
            raise LMTFInputError('observations contain zero-contrast thresholds')
        if np.any(obs[:,2] <= 0):
            raise LMTFInputError('observations contain non-positive temporal frequencies')
        obs.setflags(write=False)
        return obs
    @pimms.value
    def L(observations):  return observations[:,0]
    @pimms.value
    def M(observations):  return observations[:,1]
    @pimms.value
    def tf(observations): return observations[:,2]
    @pimms.value
    def oog(observations): return _readonly(observations[:,3] != 0, dtype=bool)
    @pimms.value
    def x(observations):  return observations[:,4]
    @pimms.value
    def y(observations):  return observations[:,5]
    @pimms.value
    def session(observations):
        '''
        data.session is the vector of session ids, or None if none were given.
        '''
        return observations[:,6] if observations.shape[1] == 7 else None
    @pimms.value
    def radius(L, M):
        '''
        data.radius is the threshold contrast of each observation: the length of its (L, M) vector.
        '''
        return _readonly(np.hypot(L, M))
    @pimms.value
    def direction(L, M):
        '''
        data.direction is the color direction atan2(M, L) of each observation, in radians.
        '''
        return _readonly(np.arctan2(M, L))
    @pimms.value
    def locations(x, y):
        '''
        data.locations is the (k x 2) matrix of unique retinal locations, in order of appearance.
        '''
        return unique_locations(x, y)
    @pimms.value
    def location_index(x, y, locations):
        '''
        data.location_index is the vector of row indices into data.locations, one per observation.
        '''
        xy = np.column_stack([x, y])
        (_, first, inv) = np.unique(xy, axis=0, return_index=True, return_inverse=True)
        rank = np.empty(len(first), dtype=int)
        rank[np.argsort(first)] = np.arange(len(first))
        return _readonly(rank[np.reshape(inv, -1)], dtype=int)
    @pimms.value
    def sample_counts(location_index, locations):
        '''
        data.sample_counts is the vector of the number of observations at each location.
        '''
        return _readonly(np.bincount(location_index, minlength=len(locations)), dtype=int)
    @pimms.value
    def partition(location_index, locations):
        '''
        data.partition is a tuple of index vectors, one per location, of the observations made at
        that location.
        '''
        return tuple([_readonly(np.where(location_index == k)[0], dtype=int)
                      for k in range(len(locations))])
    @pimms.value
    def raw(observations, partition):
        '''
        data.raw is a tuple of observation matrices, one per location.
        '''
        return tuple([_readonly(observations[ii]) for ii in partition])
    @pimms.value
    def domain(L, M, tf):
        '''
        data.domain is the bounding box of the observations:
          [-max|L|, -max|M|, min(TF), max|L|, max|M|, max(TF)].
        '''
        (l, m) = (np.max(np.abs(L)), np.max(np.abs(M)))
        return _readonly([-l, -m, np.min(tf), l, m, np.max(tf)])
    def __len__(self):
        return len(self.observations)
    def __repr__(self):
        return 'ThresholdData(<%d observations at %d locations>)' % (len(self), len(self.locations))
    def location(self, k):
        '''
        data.location(k) yields a ThresholdData object of the observations at the k'th location.
        '''
        return ThresholdData(self.raw[k])
    def subset(self, locations):
        '''
        data.subset(locations) yields a ThresholdData object containing only the observations made
          at the given locations, which may be a (k x 2) matrix of (x, y) pairs or a vector of
          location indices. If no observations remain, an LMTFInputError is raised.
        '''
        locations = np.asarray(locations)
        if len(locations.shape) == 1 and np.issubdtype(locations.dtype, np.integer):
            keep = np.isin(self.location_index, locations)
        else:
            locations = np.reshape(locations, (-1, 2))
            keep = np.zeros(len(self), dtype=bool)
            for (x,y) in locations: keep |= (self.x == x) & (self.y == y)
        return ThresholdData(self.observations[keep])
def to_threshold_data(data):
    '''
    to_threshold_data(data) yields data if it is already a ThresholdData object and otherwise yields
      ThresholdData(data).
    '''
    return data if isinstance(data, ThresholdData) else ThresholdData(data)

@pimms.immutable
class LocationFits(object):
    '''
    LocationFits is an immutable record of independent fits of the 13-parameter local model at each
    of a set of retinal locations: an (n x 13) matrix of models and a vector of their errors.
    '''
    def __init__(self, models, errors):
        self.models = models
        self.errors = errors
    @pimms.param
    def models(m):
        m = _readonly(m)
        if len(m.shape) != 2 or m.shape[1] != local_parameter_count:
            raise ValueError('models must be an (n x %d) matrix' % local_parameter_count)
        return m
    @pimms.param
    def errors(e): return _readonly(e)
    @pimms.value
    def total_error(errors): return float(np.sum(errors))
    @pimms.require
    def check_lengths(models, errors):
        if len(models) != len(errors): raise ValueError('models and errors must be equal length')
        return True
    def __len__(self):
        return len(self.errors)
    def __repr__(self):
        return 'LocationFits(<%d locations>, total_error=%g)' % (len(self), self.total_error)

@pimms.immutable
class FitRecord(object):
    '''
    FitRecord is an immutable record of one fit of a global model variant: the global parameter
    vector, the local models it expands to at each location, and the error at each location.

    The total error is the sum of the per-location errors.
    '''
    def __init__(self, variant, parameters, local_models, errors):
        self.variant = variant
        self.parameters = parameters
        self.local_models = local_models
        self.errors = errors
    @pimms.param
    def variant(v): return ModelVariant.to_variant(v)
    @pimms.param
    def parameters(p): return _readonly(p)
    @pimms.param
    def local_models(m): return _readonly(m)
    @pimms.param
    def errors(e): return _readonly(e)
    @pimms.value
    def total_error(errors):
        '''
        record.total_error is the sum of the per-location errors of the fit.
        '''
        return float(np.sum(errors))
    @pimms.value
    def parameter_count(parameters): return len(parameters)
    def __repr__(self):
        return 'FitRecord(%s, total_error=%g)' % (self.variant, self.total_error)

@pimms.immutable
class LMTFResult(object):
    '''
    LMTFResult is an immutable record of a complete fit of the lmtf model hierarchy to one dataset.

    The following members are available:
      * data: the ThresholdData object that was fit (after degenerate locations were dropped).
      * locations: the (n x 2) matrix of fit locations.
      * raw: the tuple of observation matrices, one per location.
      * quick_fits, refined_fits: LocationFits objects of the independent per-location fits before
        and after cross-location refinement.
      * fits: a persistent map of ModelVariant to the best FitRecord found for that variant.
      * domain: the bounding box [-max|L|, -max|M|, min TF, max|L|, max|M|, max TF] of the data.
      * warnings: the tuple of warning messages accumulated over the run.
      * primary: the FitRecord of variant 5, the model reported by default.
      * total_errors: a persistent map of ModelVariant to total error.
      * bic: a persistent map of ModelVariant to the Bayesian information criterion of its fit.
      * best_variant: the variant with the lowest BIC.
    '''
    def __init__(self, data, quick_fits, refined_fits, fits, warnings=()):
        self.data = data
        self.quick_fits = quick_fits
        self.refined_fits = refined_fits
        self.fits = fits
        self.warnings = warnings
    @pimms.param
    def data(d): return to_threshold_data(d)
    @pimms.param
    def quick_fits(q):
        if q is not None and not isinstance(q, LocationFits):
            raise ValueError('quick_fits must be a LocationFits object or None')
        return q
    @pimms.param
    def refined_fits(r):
        if not isinstance(r, LocationFits):
            raise ValueError('refined_fits must be a LocationFits object')
        return r
    @pimms.param
    def fits(f):
        return pyr.pmap({ModelVariant.to_variant(k):v for (k,v) in f.items()})
    @pimms.param
    def warnings(w): return tuple(w)
    @pimms.value
    def locations(data): return data.locations
    @pimms.value
    def raw(data): return data.raw
    @pimms.value
    def domain(data): return data.domain
    @pimms.value
    def primary(fits):
        '''
        result.primary is the FitRecord of the variant-5 model, or None if it was not fit.
        '''
        return fits.get(ModelVariant.MODE5)
    @pimms.value
    def total_errors(fits):
        return pyr.pmap({k:v.total_error for (k,v) in fits.items()})
    @pimms.value
    def bic(fits, data):
        '''
        result.bic is a persistent map of the Bayesian information criterion of each fit variant,
        n log(SSE/n) + k log(n), where n is the number of observations, SSE the total error, and k
        the number of global parameters.
        '''
        n = float(len(data))
        tiny = np.finfo(np.float64).tiny
        return pyr.pmap({k: n*np.log(max(v.total_error, tiny)/n) + v.parameter_count*np.log(n)
                         for (k,v) in fits.items()})
    @pimms.value
    def best_variant(bic):
        if len(bic) == 0: return None
        return min(bic.keys(), key=lambda k:(bic[k], k.value))
    def __repr__(self):
        return 'LMTFResult(<%d locations, %d variants>)' % (len(self.locations), len(self.fits))
    def predict(self, L, M, tf, x, y, variant=None):
        '''
        result.predict(L, M, tf, x, y) yields the predicted threshold radius for each observation
          direction (L, M), temporal frequency tf, and location (x, y) under the primary model.

        The optional argument variant may name another fit variant; per-location variants can only
        predict thresholds at the locations they were fit to.
        '''
        variant = ModelVariant.MODE5 if variant is None else ModelVariant.to_variant(variant)
        if variant not in self.fits: raise ValueError('Variant %s was not fit' % variant)
        rec = self.fits[variant]
        (L, M, tf, x, y) = np.broadcast_arrays(*[np.asarray(u, dtype=np.float64)
                                                 for u in (L, M, tf, x, y)])
        xy = np.column_stack([np.reshape(x, -1), np.reshape(y, -1)])
        if variant.is_positional:
            mdls = expand_models(rec.parameters, variant, xy)
        else:
            idx = []
            for (xx,yy) in xy:
                ii = np.where((self.locations[:,0] == xx) & (self.locations[:,1] == yy))[0]
                if len(ii) == 0:
                    raise ValueError('Location (%g, %g) was not fit by variant %s' % (xx, yy, variant))
                idx.append(ii[0])
            mdls = rec.local_models[idx]
        r = predicted_thresholds(mdls, np.reshape(L, -1), np.reshape(M, -1), np.reshape(tf, -1))
        return np.reshape(r, L.shape)
