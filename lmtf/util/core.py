# -*- coding: utf-8 -*-
####################################################################################################
# lmtf/util/core.py
# Error types and small retinal-geometry utilities shared by the lmtf sub-packages.

import logging, pimms
import numpy      as np
import pyrsistent as pyr

# Errors ###########################################################################################
class LMTFError(Exception):
    """Base class for the fatal errors raised by the lmtf fitting pipeline.

    Every `LMTFError` carries a persistent mapping, `data`, of the values that
    were being processed when the error was detected (parameter vectors, error
    values, locations, etc.) so that the caller can log or inspect them.
    """
    def __init__(self, message, data=None):
        Exception.__init__(self, message)
        self.data = pyr.m() if data is None else pyr.pmap(data)
class LMTFInputError(LMTFError, ValueError):
    """Raised when the observations cannot identify the models (too few or collinear locations).
    """
    pass
class LMTFInvariantError(LMTFError, RuntimeError):
    """Raised when an internal consistency check of a fit fails.

    The global and per-location error sums must agree, and a richer model must
    never fit worse than a model nested inside it; a violation indicates an
    optimizer or expansion defect and stops the run.
    """
    pass

def note(messages, msg, *args):
    '''
    note(messages, msg, *args) formats msg % args, logs it as an lmtf warning, and yields the tuple
      messages with the formatted message appended.
    '''
    if args: msg = msg % args
    logging.warning('lmtf: %s', msg)
    return tuple(messages) + (msg,)

# Retinal Geometry #################################################################################
def unique_locations(x, y):
    '''
    unique_locations(x, y) yields an (n x 2) read-only array of the unique (x,y) pairs in the given
      coordinate vectors, in order of first appearance.
    '''
    xy = np.column_stack([np.asarray(x, dtype=np.float64), np.asarray(y, dtype=np.float64)])
    if len(xy) == 0: return np.zeros((0,2))
    (_, idx) = np.unique(xy, axis=0, return_index=True)
    u = xy[np.sort(idx)]
    u.setflags(write=False)
    return u
def location_polar(x, y):
    '''
    location_polar(x, y) yields (phi, r), the polar angle (radians) and eccentricity (degrees of
      visual angle) of the given stimulus location(s), which must be given in tenths of a degree.

    The horizontal coordinate is mirrored (|x| is used): the left and right visual hemifields are
    assumed to be symmetric.
    '''
    x = np.abs(np.asarray(x, dtype=np.float64)) / 10.0
    y = np.asarray(y, dtype=np.float64) / 10.0
    return (np.arctan2(y, x), np.hypot(x, y))
def are_collinear(locations):
    '''
    are_collinear(locations) yields True if the given (n x 2) matrix of locations all lie on a
      single line (or a single point) and False otherwise.

    Any line counts, not only lines through the fixation point (0, 0): the rank test is made on the
    locations after their centroid is subtracted. This is stricter than a rank test on the raw
    coordinates, which only detects locations along a line through the origin; a layout such as
    [[5, 0], [10, 1], [15, 2]] is rejected here even though its raw coordinates have rank 2.
    '''
    xy = np.asarray(locations, dtype=np.float64)
    if len(xy) < 3: return True
    xy = xy - np.mean(xy, axis=0)
    return np.linalg.matrix_rank(xy) < 2
def check_locations(locations):
    '''
    check_locations(locations) raises an LMTFInputError if the given (n x 2) matrix of unique
      locations cannot support the positional-law models: fewer than 3 locations or collinear
      locations. Otherwise yields the locations.
    '''
    locations = np.asarray(locations)
    if not pimms.is_matrix(locations) or locations.shape[1] != 2:
        raise LMTFInputError('locations must be an (n x 2) matrix')
    if len(locations) < 3:
        raise LMTFInputError('Fewer than 3 retinal locations sampled; %d found' % len(locations),
                             {'locations': locations})
    if are_collinear(locations):
        raise LMTFInputError('Only collinear retinal locations sampled',
                             {'locations': locations})
    return locations
