####################################################################################################
# __init__.py

'''Fitting of temporal contrast sensitivity models across the visual field.'''

submodules = ('lmtf.util.conf',
              'lmtf.util.core',
              'lmtf.util',
              'lmtf.models.core',
              'lmtf.models.variants',
              'lmtf.models',
              'lmtf.optimize.core',
              'lmtf.optimize',
              'lmtf.fit.core',
              'lmtf.fit.objectives',
              'lmtf.fit.local',
              'lmtf.fit.model',
              'lmtf.fit.selection',
              'lmtf.fit',
              'lmtf.plans.modelfit',
              'lmtf.plans')
'''lmtf.submodules is a tuple of all the sub-modules of lmtf in a loadable order.'''

def reload_lmtf():
    '''
    reload_lmtf() reloads all of the modules of lmtf and returns the reloaded lmtf module. This is
    similar to reload(lmtf) except that it reloads all the lmtf submodules prior to reloading lmtf.
    '''
    import sys
    from importlib import reload
    for mdl in submodules:
        if mdl in sys.modules:
            sys.modules[mdl] = reload(sys.modules[mdl])
    return reload(sys.modules['lmtf'])

from   .util     import (config, fit_options, LMTFError, LMTFInputError, LMTFInvariantError)
from   .models   import (ModelVariant, frequency_response, predicted_thresholds,
                         simulate_thresholds, simulate_observations, expand_models,
                         global_to_local, variant_bounds)
from   .fit      import (ThresholdData, FitRecord, LocationFits, LMTFResult, model_test)
from   .plans    import (fit_lmtf, lmtf_plan)
from . import util
from . import models
from . import optimize
from . import fit
from . import plans

# Version information...
__version__ = '0.1.0'
