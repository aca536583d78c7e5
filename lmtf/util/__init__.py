# -*- coding: utf-8 -*-
####################################################################################################
# lmtf/util/__init__.py
# This file defines the general tools that are available as part of lmtf.

from .conf import (config, loadrc, saverc, fit_options)
from .core import (LMTFError, LMTFInputError, LMTFInvariantError, note,
                   unique_locations, location_polar, are_collinear, check_locations)
