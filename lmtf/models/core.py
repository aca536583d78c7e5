####################################################################################################
# lmtf/models/core.py
# The two-mechanism (LUM/RG) temporal frequency response model of detection thresholds.

import numpy      as np
import pyrsistent as pyr
import pimms

# The 13 parameters of a local (single-location) model, in storage order. Time constants are stored
# as log10 seconds; logkappa is the log10 ratio of the second to the first time constant.
local_parameter_names = ('xi_lum', 'zeta_lum', 'n1_lum', 'dn_lum', 'logtau_lum', 'logkappa_lum',
                         'xi_rg',  'zeta_rg',  'n1_rg',  'dn_rg',  'logtau_rg',  'logkappa_rg',
                         'theta')
local_parameter_slots = pyr.pmap({k:ii for (ii,k) in enumerate(local_parameter_names)})
local_parameter_count = len(local_parameter_names)
LUM = slice(0, 6)
RG  = slice(6, 12)
THETA = 12

def _lowpass(tau, n, tf):
    # (1 + i*2*pi*tau*tf)^-n evaluated in the log domain; the real part of the exponent is never
    # positive, so large n can only underflow to 0
    y = 2 * np.pi * tau * tf
    return np.exp(-n * (0.5 * np.log1p(y * y) + 1j * np.arctan(y)))
def frequency_response(params, tf):
    '''
    frequency_response(params, tf) yields the sensitivity of a single mechanism with the given
      6-element parameter vector (xi, zeta, n1, dn, logtau, logkappa) at the given temporal
      frequency or frequencies tf (in Hz).

    The sensitivity is the amplitude of a difference of two cascaded low-pass filters:
      xi * |(1 + 2 pi i tau1 tf)^-n1 - zeta (1 + 2 pi i tau2 tf)^-n2|
    where n2 = n1 + dn, tau1 = 10^logtau, and tau2 = tau1 * 10^logkappa.

    The params may also be an (N x 6) matrix, in which case tf must be broadcastable against a
    length-N vector and one sensitivity per row is returned.
    '''
    p = np.asarray(params, dtype=np.float64)
    tf = np.asarray(tf, dtype=np.float64)
    (xi, zeta, n1, dn, logtau, logkappa) = [p[...,k] for k in range(6)]
    tau1 = 10.0**logtau
    tau2 = 10.0**(logtau + logkappa)
    h = _lowpass(tau1, n1, tf) - zeta * _lowpass(tau2, n1 + dn, tf)
    return xi * np.abs(h)
def mechanism_sensitivities(model, tf):
    '''
    mechanism_sensitivities(model, tf) yields the tuple (lum, rg) of the sensitivities of the LUM
      and RG mechanisms of the given 13-parameter local model at the temporal frequencies tf.
    '''
    m = np.asarray(model, dtype=np.float64)
    return (frequency_response(m[...,LUM], tf), frequency_response(m[...,RG], tf))
def predicted_thresholds(model, L, M, tf):
    '''
    predicted_thresholds(model, L, M, tf) yields the predicted threshold, expressed as a vector
      length in the LM cone-contrast plane, for each observation direction (L, M) and temporal
      frequency tf under the given 13-parameter local model.

    The LUM mechanism is oriented at angle theta in the LM plane and the RG mechanism is orthogonal
    to it; their sensitivities combine quadratically, so that the threshold contour at each
    frequency is an ellipse:
      r = 1 / sqrt((f_lum cos(phi - theta))^2 + (f_rg sin(phi - theta))^2)
    where phi = atan2(M, L) is the color direction of the observation.

    The model may be an (N x 13) matrix with one row per observation.
    '''
    m = np.asarray(model, dtype=np.float64)
    (flum, frg) = mechanism_sensitivities(m, tf)
    d = np.arctan2(np.asarray(M, dtype=np.float64), np.asarray(L, dtype=np.float64)) - m[...,THETA]
    s = np.hypot(flum * np.cos(d), frg * np.sin(d))
    return 1.0 / np.maximum(s, np.finfo(np.float64).tiny)

def simulate_thresholds(model, directions, tfs, noise=0, rng=None, gamut=None):
    '''
    simulate_thresholds(model, directions, tfs) yields an (n x 4) matrix of synthetic observations
      [L, M, TF, OOG] at the given color directions (radians in the LM plane) and temporal
      frequencies (Hz), which must be vectors of equal length n, under the given 13-parameter
      local model.

    The following options may be given:
      * noise (default: 0) specifies the standard deviation of multiplicative log-normal noise that
        is applied to each threshold.
      * rng (default: None) specifies the numpy Generator used for the noise; if None, a Generator
        seeded with 0 is used.
      * gamut (default: None) may give the largest contrast that can be displayed; thresholds
        beyond it are clipped to it and flagged as out-of-gamut.
    '''
    directions = np.asarray(directions, dtype=np.float64)
    tfs = np.asarray(tfs, dtype=np.float64)
    if directions.shape != tfs.shape or len(directions.shape) != 1:
        raise ValueError('directions and tfs must be vectors of equal length')
    L = np.cos(directions)
    M = np.sin(directions)
    r = predicted_thresholds(model, L, M, tfs)
    if noise:
        if rng is None: rng = np.random.default_rng(0)
        r = r * np.exp(noise * rng.standard_normal(len(r)))
    oog = np.zeros(len(r))
    if gamut is not None:
        oog[r > gamut] = 1
        r = np.minimum(r, gamut)
    return np.column_stack([r*L, r*M, tfs, oog])
def simulate_observations(models, locations, directions, tfs, **kw):
    '''
    simulate_observations(models, locations, directions, tfs) yields an (n x 6) matrix of synthetic
      observations [L, M, TF, OOG, x, y] by calling simulate_thresholds for each row of the
      (k x 13) models matrix at the corresponding row of the (k x 2) locations matrix. The same
      directions and tfs are used at every location.

    All options accepted by simulate_thresholds are passed along; if no rng is given then a single
    Generator seeded with 0 is shared by all locations.
    '''
    models = np.asarray(models, dtype=np.float64)
    locations = np.asarray(locations, dtype=np.float64)
    if not pimms.is_matrix(models) or models.shape[1] != local_parameter_count:
        raise ValueError('models must be a (k x 13) matrix')
    if len(models) != len(locations):
        raise ValueError('models and locations must have the same number of rows')
    if kw.get('rng') is None: kw['rng'] = np.random.default_rng(0)
    rows = []
    for (mdl, xy) in zip(models, locations):
        obs = simulate_thresholds(mdl, directions, tfs, **kw)
        rows.append(np.column_stack([obs, np.tile(xy, (len(obs), 1))]))
    return np.vstack(rows)
def predicted_threshold(model, L, M, tf):
    '''
    predicted_threshold(model, L, M, tf) yields the single predicted threshold radius of the given
      13-parameter local model for one observation; see predicted_thresholds.
    '''
    return float(predicted_thresholds(model, L, M, tf))
