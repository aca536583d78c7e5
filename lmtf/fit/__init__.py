####################################################################################################
# lmtf/fit/__init__.py
# Fitting of the lmtf model hierarchy to threshold observations.

from .core       import (ThresholdData, to_threshold_data, LocationFits, FitRecord, LMTFResult)
from .objectives import (threshold_residuals, seed_residuals, seed_error,
                         local_residuals, local_error, global_residuals, global_error,
                         location_errors)
from .local      import (lum_start, rg_start, theta_start, canonical_start, quickfit_starts,
                         quick_fit, refine_fits, seed_frequencies, seed_guess)
from .model      import (fit_record, model_test)
from .selection  import (regression_kinds, regress, symmetric_law_guesses,
                         select_shared_models, fit_positional_models, check_nesting)
