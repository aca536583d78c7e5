####################################################################################################
# lmtf/optimize/core.py
# Box-constrained nonlinear least squares and the linear regressions used to seed the global fits.

import logging, pimms
import numpy          as np
import scipy.optimize as spopt
import pyrsistent     as pyr

def clamp_to_bounds(x, lower, upper, margin=0.001):
    '''
    clamp_to_bounds(x, lower, upper) yields a copy of the vector x in which every element that lies
      on or beyond a bound of the box [lower, upper] has been moved inside the box to margin times
      the box width (default 0.001, i.e. 0.1%) from that bound. Elements strictly inside the box
      are unchanged. Non-finite elements are replaced by the center of their box.
    '''
    x = np.array(x, dtype=np.float64)
    lower = np.asarray(lower, dtype=np.float64)
    upper = np.asarray(upper, dtype=np.float64)
    if x.shape != lower.shape or x.shape != upper.shape:
        raise ValueError('x, lower, and upper must have the same shape')
    if np.any(upper <= lower): raise ValueError('all upper bounds must exceed their lower bounds')
    w = margin * (upper - lower)
    bad = ~np.isfinite(x)
    x[bad] = 0.5 * (lower[bad] + upper[bad])
    lo = x <= lower
    hi = x >= upper
    x[lo] = lower[lo] + w[lo]
    x[hi] = upper[hi] - w[hi]
    return x
def in_bounds(x, lower, upper):
    '''
    in_bounds(x, lower, upper) yields True if every element of x lies in the closed box
      [lower, upper] and False otherwise.
    '''
    x = np.asarray(x)
    return bool(np.all(x >= lower) and np.all(x <= upper))

@pimms.immutable
class OptimizationResult(object):
    '''
    OptimizationResult is an immutable record of a single bounded least-squares minimization: the
    solution vector x, its sum-of-squares error, the starting error, whether the optimizer reported
    convergence, and the optimizer's status code and message.
    '''
    def __init__(self, x, error, start_error, converged, status=None, message=None, nfev=None):
        self.x = x
        self.error = error
        self.start_error = start_error
        self.converged = converged
        self.status = status
        self.message = message
        self.nfev = nfev
    @pimms.param
    def x(u):
        u = np.array(u, dtype=np.float64)
        u.setflags(write=False)
        return u
    @pimms.param
    def error(e): return float(e)
    @pimms.param
    def start_error(e): return float(e)
    @pimms.param
    def converged(c): return bool(c)
    @pimms.param
    def status(s): return s
    @pimms.param
    def message(m): return m
    @pimms.param
    def nfev(n): return n
    def __repr__(self):
        return 'OptimizationResult(error=%g, start_error=%g, converged=%s)' % (
            self.error, self.start_error, self.converged)

def minimize_bounded(residuals, x0, bounds, **kwargs):
    '''
    minimize_bounded(residuals, x0, (lower, upper)) minimizes the sum of squares of the residual
      vector yielded by residuals(x), starting from x0 and keeping x inside the given box, and
      yields an OptimizationResult.

    The minimization is performed by scipy.optimize.least_squares using the trust-region-reflective
    method; x0 is first clamped strictly inside the box (see clamp_to_bounds) since the method
    requires a feasible interior start. Any additional options are passed along to least_squares;
    options whose value is None are dropped so that least_squares uses its defaults.

    An optimizer that stops on its evaluation limit (status 0) or reports failure is not an error:
    the best point found is returned with converged set to False.
    '''
    (lower, upper) = bounds
    x0 = clamp_to_bounds(x0, lower, upper)
    r0 = np.asarray(residuals(x0), dtype=np.float64)
    kwargs = pimms.merge({'method':'trf'}, {k:v for (k,v) in kwargs.items() if v is not None})
    res = spopt.least_squares(residuals, x0, bounds=(lower, upper), **kwargs)
    x = np.clip(res.x, lower, upper)
    err = np.sum(np.asarray(residuals(x), dtype=np.float64)**2)
    return OptimizationResult(x, err, np.sum(r0**2),
                              converged=(res.success and res.status != 0),
                              status=res.status, message=res.message, nfev=res.nfev)
def optimizer_options(options):
    '''
    optimizer_options(options) yields the keyword arguments for minimize_bounded that correspond to
      the optimizer items (optimizer_max_nfev, optimizer_ftol, etc.) of the given fitting-options
      map.
    '''
    return pyr.pmap({'max_nfev': options.get('optimizer_max_nfev'),
                     'ftol':     options.get('optimizer_ftol'),
                     'xtol':     options.get('optimizer_xtol'),
                     'gtol':     options.get('optimizer_gtol')})

# Linear regressions ###############################################################################
def ols(X, y):
    '''
    ols(X, y) yields the ordinary least-squares coefficient vector b minimizing |X b - y|^2.
    '''
    X = np.asarray(X, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    return np.linalg.lstsq(X, y, rcond=None)[0]
def wls(X, y, weights):
    '''
    wls(X, y, w) yields the weighted least-squares coefficient vector b minimizing
      sum(w * (X b - y)^2).
    '''
    X = np.asarray(X, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    w = np.sqrt(np.asarray(weights, dtype=np.float64))
    return np.linalg.lstsq(X * w[:,None], y * w, rcond=None)[0]
def robust_regression(X, y, f_scale=None):
    '''
    robust_regression(X, y) yields a coefficient vector b that fits X b to y while discounting
      outliers; the fit minimizes a soft-L1 loss of the residuals starting from the ordinary
      least-squares solution.

    The optional argument f_scale gives the residual scale at which the loss becomes linear; by
    default it is 1.4826 times the median absolute deviation of the OLS residuals (or 1 if that is
    0).
    '''
    X = np.asarray(X, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    b0 = ols(X, y)
    if f_scale is None:
        r = y - np.dot(X, b0)
        f_scale = 1.4826 * np.median(np.abs(r - np.median(r)))
        if not np.isfinite(f_scale) or f_scale <= 0: f_scale = 1.0
    res = spopt.least_squares(lambda b: np.dot(X, b) - y, b0, loss='soft_l1', f_scale=f_scale)
    if not res.success:
        logging.info('lmtf: robust regression did not converge: %s', res.message)
    return res.x
