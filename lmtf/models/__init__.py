####################################################################################################
# lmtf/models/__init__.py
# The temporal contrast sensitivity models fit by lmtf.

'''
The lmtf.models package contains the two-mechanism frequency-response model of detection
thresholds (lmtf.models.core) and the catalog of global model variants that describe how that
model varies across retinal locations (lmtf.models.variants).
'''

from .core     import (local_parameter_names, local_parameter_slots, local_parameter_count,
                       frequency_response, mechanism_sensitivities, predicted_thresholds,
                       predicted_threshold, simulate_thresholds, simulate_observations)
from .variants import (ModelVariant, per_location_variants, positional_variants,
                       law_coefficient_names, positional_shared_slots, shared_slots, max_log_gain,
                       free_slots, law_slots,
                       parameter_count, local_bounds, seed_bounds, variant_bounds,
                       law_coefficients, law_basis, expand_models, global_to_local,
                       positional_params, pack_params, derive_guess)
