####################################################################################################
# lmtf/models/variants.py
# The catalog of global model variants, their parameter bounds, and the expansion of a global
# parameter vector into one local model per retinal location.

import enum
import numpy      as np
import pyrsistent as pyr

from ..util        import location_polar
from .core         import (local_parameter_count, local_parameter_slots)

class ModelVariant(enum.Enum):
    '''
    ModelVariant enumerates the global models fit by lmtf, in order of their identifiers.

    Variants 0, 1, 1.1 and 1.2 share some local parameters across all locations and fit the rest
    independently at every location. Variants 2 through 5 share all non-gain parameters and
    describe the log10 gains of both mechanisms as laws of eccentricity and polar angle.
    '''
    MODE0   = 0
    MODE1   = 1
    MODE1P1 = 1.1
    MODE1P2 = 1.2
    MODE2   = 2
    MODE3   = 3
    MODE4   = 4
    MODE5   = 5
    @property
    def label(self):
        return 'mode' + str(self.value).replace('.', 'p')
    @property
    def is_positional(self):
        return self.value >= 2
    def __str__(self):
        return self.label
    @staticmethod
    def to_variant(v):
        '''
        ModelVariant.to_variant(v) yields the variant identified by v, which may be a ModelVariant,
          one of the numeric identifiers (0, 1, 1.1, ...), or a label such as 'mode1p1'.
        '''
        if isinstance(v, ModelVariant): return v
        if isinstance(v, str):
            for mv in ModelVariant:
                if mv.label == v.lower(): return mv
            raise ValueError('Unrecognized model variant: %s' % v)
        return ModelVariant(v)
per_location_variants = (ModelVariant.MODE0, ModelVariant.MODE1,
                         ModelVariant.MODE1P1, ModelVariant.MODE1P2)
positional_variants = (ModelVariant.MODE2, ModelVariant.MODE3,
                       ModelVariant.MODE4, ModelVariant.MODE5)

def _slots(*names):
    return tuple([local_parameter_slots[k] for k in names])
_shape_lum = ('zeta_lum', 'n1_lum', 'dn_lum', 'logtau_lum', 'logkappa_lum')
_shape_rg  = ('zeta_rg',  'n1_rg',  'dn_rg',  'logtau_rg',  'logkappa_rg')
# (shared slots, free per-location slots)
_per_location_layouts = pyr.pmap(
    {ModelVariant.MODE0:   (_slots(*(_shape_lum + _shape_rg + ('theta',))),
                            _slots('xi_lum', 'xi_rg')),
     ModelVariant.MODE1:   (_slots(*(_shape_lum + _shape_rg)),
                            _slots('xi_lum', 'xi_rg', 'theta')),
     ModelVariant.MODE1P1: (_slots(*(('zeta_lum', 'dn_lum', 'logtau_lum', 'logkappa_lum')
                                     + _shape_rg + ('theta',))),
                            _slots('xi_lum', 'n1_lum', 'xi_rg')),
     ModelVariant.MODE1P2: (_slots(*(_shape_lum
                                     + ('zeta_rg', 'dn_rg', 'logtau_rg', 'logkappa_rg', 'theta'))),
                            _slots('xi_lum', 'xi_rg', 'n1_rg'))})
positional_shared_slots = _slots(*(_shape_lum + _shape_rg + ('theta',)))
# Positional-law coefficients are stored in a canonical 8-slot form:
#  (b0, b1, b2, b3) for log10 xi_lum and (a0, a1, a2, a3) for log10 xi_rg, multiplying the basis
#  [1, r, r sin(2 phi), r cos(2 phi)]. Each variant fits a subset of these slots.
law_coefficient_names = ('b0', 'b1', 'b2', 'b3', 'a0', 'a1', 'a2', 'a3')
_law_layouts = pyr.pmap({ModelVariant.MODE2: (0, 1, 3, 4, 5, 7),
                         ModelVariant.MODE3: (0, 1, 2, 3, 4, 5, 7),
                         ModelVariant.MODE4: (0, 1, 2, 3, 4, 5, 6, 7),
                         ModelVariant.MODE5: (0, 1, 2, 3, 4, 5, 7)})
law_bound = 10.0
# log10 gains produced by a positional law are clipped to this magnitude so that the gains and the
# sensitivities built from them stay finite
max_log_gain = 300.0

def shared_slots(variant):
    '''
    shared_slots(variant) yields the tuple of local-model slots whose values are shared by all
      locations in the given model variant; these occupy the first entries of the global parameter
      vector, in order.
    '''
    variant = ModelVariant.to_variant(variant)
    if variant.is_positional: return positional_shared_slots
    return _per_location_layouts[variant][0]
def free_slots(variant):
    '''
    free_slots(variant) yields the tuple of local-model slots that are fit independently at each
      location by the given per-location model variant.
    '''
    variant = ModelVariant.to_variant(variant)
    if variant.is_positional:
        raise ValueError('Positional-law variant %s has no per-location parameters' % variant)
    return _per_location_layouts[variant][1]
def law_slots(variant):
    '''
    law_slots(variant) yields the canonical coefficient slots (indices into law_coefficient_names)
      that are fit by the given positional-law model variant.
    '''
    variant = ModelVariant.to_variant(variant)
    if not variant.is_positional:
        raise ValueError('Per-location variant %s has no positional-law coefficients' % variant)
    return _law_layouts[variant]
def parameter_count(variant, n_locations):
    '''
    parameter_count(variant, n) yields the length of the global parameter vector of the given model
      variant when fit to n locations.
    '''
    variant = ModelVariant.to_variant(variant)
    if variant.is_positional: return len(positional_shared_slots) + len(_law_layouts[variant])
    (sh, fr) = _per_location_layouts[variant]
    return len(sh) + n_locations * len(fr)

# Bounds ###########################################################################################
def _readonly(u):
    u = np.array(u, dtype=np.float64)
    u.setflags(write=False)
    return u
_mechanism_lower = (1.0,   0.0, 1.0,  0.0, -3.0, np.log10(1.00001))
_mechanism_upper = (500.0, 1.0, 10.0, 6.0, -1.0, 0.5)
_local_lower = _readonly(_mechanism_lower + _mechanism_lower + (0.0,))
_local_upper = _readonly(_mechanism_upper + _mechanism_upper + (np.pi/2,))

def local_bounds():
    '''
    local_bounds() yields the tuple (lower, upper) of read-only 13-element vectors that bound the
      parameters of a local model.
    '''
    return (_local_lower, _local_upper)
def seed_bounds():
    '''
    seed_bounds() yields the tuple (lower, upper) of read-only 6-element vectors that bound the
      parameters of a single mechanism (xi, zeta, n1, dn, logtau, logkappa).
    '''
    return (_local_lower[:6], _local_upper[:6])
def variant_bounds(variant, n_locations):
    '''
    variant_bounds(variant, n) yields the tuple (lower, upper) of vectors that bound the global
      parameter vector of the given model variant when fit to n locations.

    The shared parameters take the bounds of their local slots; per-location parameters take the
    bounds of their local slots, repeated for every location; positional-law coefficients are
    bounded by [-10, 10].
    '''
    variant = ModelVariant.to_variant(variant)
    (lb, ub) = local_bounds()
    if variant.is_positional:
        sh = list(positional_shared_slots)
        k = len(_law_layouts[variant])
        return (np.concatenate([lb[sh], np.full(k, -law_bound)]),
                np.concatenate([ub[sh], np.full(k,  law_bound)]))
    (sh, fr) = [list(u) for u in _per_location_layouts[variant]]
    return (np.concatenate([lb[sh], np.tile(lb[fr], n_locations)]),
            np.concatenate([ub[sh], np.tile(ub[fr], n_locations)]))

# Global to Local ##################################################################################
def law_coefficients(variant, params):
    '''
    law_coefficients(variant, params) yields the canonical 8-element coefficient vector
      (b0, b1, b2, b3, a0, a1, a2, a3) of the given positional-law global parameter vector.
      Coefficients that the variant does not fit are 0, except that in variant 5 the RG tilt a2
      is yoked to the LUM tilt b2.
    '''
    variant = ModelVariant.to_variant(variant)
    slots = law_slots(variant)
    p = np.asarray(params, dtype=np.float64)
    nsh = len(positional_shared_slots)
    if len(p) != nsh + len(slots):
        raise ValueError('%s parameter vector must have %d elements; %d given'
                         % (variant, nsh + len(slots), len(p)))
    c = np.zeros(len(law_coefficient_names))
    c[list(slots)] = p[nsh:]
    if variant is ModelVariant.MODE5: c[6] = c[2]
    return c
def law_basis(locations):
    '''
    law_basis(locations) yields the (n x 4) matrix [1, r, r sin(2 phi), r cos(2 phi)] of the
      positional-law basis at each row (x, y) of the given (n x 2) locations matrix.
    '''
    locations = np.reshape(np.asarray(locations, dtype=np.float64), (-1, 2))
    (phi, r) = location_polar(locations[:,0], locations[:,1])
    return np.column_stack([np.ones(len(r)), r, r*np.sin(2*phi), r*np.cos(2*phi)])
def expand_models(params, variant, locations):
    '''
    expand_models(params, variant, locations) yields the (n x 13) matrix of local models obtained
      by expanding the given global parameter vector of the given model variant at each row (x, y)
      of the (n x 2) locations matrix (in tenths of a degree).

    Per-location variants are expanded by assigning the shared values to their slots at every
    location and the i'th block of free values to the free slots of the i'th location; the number
    of locations must therefore match the parameter vector. Positional-law variants compute the
    mechanism gains from the law coefficients at each location; their log10 values are clipped to
    the interval [-max_log_gain, max_log_gain].
    '''
    variant = ModelVariant.to_variant(variant)
    locations = np.reshape(np.asarray(locations, dtype=np.float64), (-1, 2))
    n = len(locations)
    p = np.asarray(params, dtype=np.float64)
    nparams = parameter_count(variant, n)
    if len(p.shape) != 1 or len(p) != nparams:
        raise ValueError('%s parameter vector for %d locations must have %d elements; %s given'
                         % (variant, n, nparams, p.shape))
    out = np.zeros((n, local_parameter_count))
    sh = list(shared_slots(variant))
    out[:, sh] = p[:len(sh)]
    if variant.is_positional:
        c = law_coefficients(variant, p)
        basis = law_basis(locations)
        loggain = np.clip(np.dot(basis, np.reshape(c, (2, 4)).T), -max_log_gain, max_log_gain)
        out[:, local_parameter_slots['xi_lum']] = 10.0**loggain[:,0]
        out[:, local_parameter_slots['xi_rg']]  = 10.0**loggain[:,1]
    else:
        fr = list(free_slots(variant))
        out[:, fr] = np.reshape(p[len(sh):], (n, len(fr)))
    return out
def global_to_local(params, variant, x, y):
    '''
    global_to_local(params, variant, x, y) yields the 13-element local model at location (x, y) of
      the given positional-law global parameter vector. For per-location variants the parameter
      vector must describe exactly one location.
    '''
    return expand_models(params, variant, [[x, y]])[0]

# Re-parameterization ##############################################################################
def pack_params(shared, free):
    '''
    pack_params(shared, free) yields the global parameter vector made of the given shared values
      followed by the rows of the (n x k) matrix free (one row of per-location values per
      location), interleaved location by location.
    '''
    shared = np.asarray(shared, dtype=np.float64)
    free = np.asarray(free, dtype=np.float64)
    return np.concatenate([np.reshape(shared, -1), np.reshape(free, -1)])
def derive_guess(models, variant):
    '''
    derive_guess(models, variant) yields a starting global parameter vector for the given
      per-location model variant from the (n x 13) matrix of local models of some previously fit
      variant.

    Each shared slot takes the value of the first location when all locations agree on it and the
    mean across locations otherwise (i.e., when the source variant let that slot vary); free slots
    are copied from each location.
    '''
    variant = ModelVariant.to_variant(variant)
    models = np.asarray(models, dtype=np.float64)
    (sh, fr) = (list(shared_slots(variant)), list(free_slots(variant)))
    shared = []
    for k in sh:
        col = models[:,k]
        shared.append(col[0] if np.all(col == col[0]) else np.mean(col))
    return pack_params(shared, models[:, fr])
def positional_params(shared, coefficients, variant):
    '''
    positional_params(shared, coefficients, variant) yields the global parameter vector of the given
      positional-law variant made of the 11 given shared values followed by the entries of the
      canonical 8-element coefficient vector that the variant fits.

    Together with law_coefficients, this converts the fit of one positional-law variant into a
    starting point for another: coefficients absent from the source are 0 (or, from variant 5, the
    RG tilt equals the LUM tilt), so a nested source yields a guess with identical local models.
    '''
    variant = ModelVariant.to_variant(variant)
    c = np.asarray(coefficients, dtype=np.float64)
    if c.shape != (len(law_coefficient_names),):
        raise ValueError('coefficients must be a canonical %d-element vector'
                         % len(law_coefficient_names))
    shared = np.reshape(np.asarray(shared, dtype=np.float64), -1)
    if len(shared) != len(positional_shared_slots):
        raise ValueError('positional-law variants require %d shared values'
                         % len(positional_shared_slots))
    return np.concatenate([shared, c[list(law_slots(variant))]])
