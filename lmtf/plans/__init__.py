####################################################################################################
# lmtf/plans/__init__.py
# The PIMMS calculation plans of lmtf.

from .modelfit import (lmtf_plan, prior_models)

def fit_lmtf(data, prior=None, diagnostics=False, yield_imap=False, **options):
    '''
    fit_lmtf(data) fits the complete lmtf model hierarchy to the given threshold observations and
      yields an LMTFResult object.

    The data may be an (n x 6) or (n x 7) matrix whose rows are [L, M, TF, OOG, x, y(, session)] or
    a ThresholdData object. The calculations are those of lmtf.plans.lmtf_plan: the local model is
    fit independently at each location; these fits are refined by starting each location at the
    others' models; and the global model variants are fit and re-fit until the nested variants are
    consistent.

    An LMTFInputError is raised if fewer than 3 distinct locations (or only collinear locations)
    remain, and an LMTFInvariantError is raised if an internal consistency check fails.
    Recoverable problems are reported in the warnings member of the result.

    The following options may be given:
     * prior (default: None) may give an earlier LMTFResult or a mapping of (x, y) locations to
       13-parameter local models; these models are used in place of the quick per-location fits,
       and locations without a prior model are dropped.
     * diagnostics (default: False) logs the start and final error of every optimizer run at the
       INFO level.
     * yield_imap (default: False) yields the (lazy) imap of the plan instead of the result.
    Any other option must be the name of a configuration item (see lmtf.config) and overrides its
    configured value for this call only; e.g., fit_lmtf(data, max_selection_iterations=3).
    '''
    imap = lmtf_plan(data=data, prior=prior, diagnostics=diagnostics, options=options)
    if yield_imap: return imap
    return imap['result']
