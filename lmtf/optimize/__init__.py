####################################################################################################
# lmtf/optimize/__init__.py
# Bounded least-squares minimization and linear regression utilities.

'''
The lmtf.optimize package wraps scipy.optimize.least_squares for the box-constrained fits performed
by lmtf and provides the ordinary, weighted, and robust linear regressions used to seed the
positional-law models.
'''

from .core import (clamp_to_bounds, in_bounds, OptimizationResult, minimize_bounded,
                   optimizer_options, ols, wls, robust_regression)
