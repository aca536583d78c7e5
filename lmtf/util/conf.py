# -*- coding: utf-8 -*-
####################################################################################################
# lmtf/util/conf.py
# Contains configuration code for setting up the fitting environment.

import os, json, warnings, six, pimms

def loadrc(filename):
    """Loads a JSON-format file with the given filename or raises an error.

    `loadrc(filename)` returns a dict object decoded from the given `filename`,
    which must represent a JSON-format file. If the filename does not exist or
    does not contain a valid JSON dict, then an error is raised.

    Parameters
    ----------
    filename : str
        The name of the file to be loaded; may include variable and user
        expansion codes.

    Returns
    -------
    dict
        A dictionary of the JSON contents of the file.

    Raises
    ------
    ValueError
        If the given `filename` does not exist or does not contain a JSON dict.
    """
    filename = os.path.expanduser(os.path.expandvars(filename))
    if not os.path.isfile(filename): raise ValueError('Filename %s does not exist' % filename)
    with open(filename, 'r') as fl:
        dat = json.load(fl)
    try: dat = dict(dat)
    except Exception: dat = None
    if dat is None: raise ValueError('Given file %s does not contain a dictionary' % filename)
    return dat
def saverc(filename, dat, overwrite=False):
    """Saves the given configuration object to a file in JSON format.

    `saverc(filename, dat)` saves the given configuration dictionary `dat` to
    the given `filename` in JSON format. If `dat` is not a dictionary or if
    `filename` already exists or cannot be created, an error is raised.

    Parameters
    ----------
    filename : str
        The path to the file that should be saved; may contain user or variable
        expansion codes.
    dat : JSON-compatible dict
        The configuration dictionary that is to be saved.
    overwrite : boolean, optional
        Whether to overwrite the file if it already exists (default: `False`).

    Returns
    -------
    str
        The full path of the file that was saved.
    """
    filename = os.path.expanduser(os.path.expandvars(filename))
    if not overwrite and os.path.isfile(filename):
        raise ValueError('Given filename %s already exists' % filename)
    if not pimms.is_map(dat):
        try: dat = dict(dat)
        except Exception: raise ValueError('Given config data must be a dictionary')
    with open(filename, 'w') as fl:
        json.dump(dat, fl, sort_keys=True)
    return filename

# the private class that handles all the details...
class ConfigMeta(type):
    def __getitem__(cls,name):
        return cls._getitem(cls,name)
    def __setitem__(cls,name,val):
        return cls._setitem(cls,name,val)
    def __len__(cls):
        return cls._len(cls)
    def __iter__(cls):
        return cls._iter(cls)
    def __repr__(cls):
        return 'config(' + repr({k:cls[k] for k in cls.keys()}) + ')'

@six.add_metaclass(ConfigMeta)
class config(object):
    """Configuration dictionary class for lmtf.

    `lmtf.util.conf.config` is a class that manages configuration items for the
    fitting pipeline. This class reads in the user's lmtf-rc file on first use,
    which by default is in the user's home directory named `"~/.lmtfrc"`
    (though it may be altered by setting the environment variable `LMTFRC`).
    Environment variables that are associated with configurable variables always
    override the values in the RC file, and any direct set action overrides any
    previous value.

    To declare a configurable variable, you must use config.declare().
    """
    _rc = None
    @staticmethod
    def rc():
        """Returns the data imported from the lmtf RC file, if any.

        Returns
        -------
        dict
            A dictionary object of the loaded RC data; the key `'lmtfrc_loaded'`
            indicates whether a file was actually loaded.
        """
        if config._rc is None:
            lmtfrc_path = os.path.expanduser('~/.lmtfrc')
            if 'LMTFRC' in os.environ:
                lmtfrc_path = os.path.expanduser(os.path.expandvars(os.environ['LMTFRC']))
            if os.path.isfile(lmtfrc_path):
                try:
                    config._rc = loadrc(lmtfrc_path)
                    config._rc['lmtfrc_loaded'] = True
                except Exception as err:
                    warnings.warn('Could not load lmtf RC file: %s' % lmtfrc_path)
                    config._rc = {'lmtfrc_loaded':False,
                                  'lmtfrc_error': err}
            else:
                config._rc = {'lmtfrc_loaded':False}
            config._rc['lmtfrc'] = lmtfrc_path
        return config._rc
    _vars = {}
    @staticmethod
    def declare(name, filter=None, default_value=None):
        """Registers an lmtf configuration variable with the given name.

        `config.declare(name)` registers a configurable variable with the given
         name to the lmtf configuration system. This allows the variable to be
         looked up in the lmtf RC-file and the environment.

        The variable is looked up in the RC-file under the identical name and
        the environment variable (`'LMTF_' + name.upper()`) is searched for in
        the environment. The environment variable will always
        overwrite the RC-file value if both are provided. Note that all inputs
        from the environment or the RC-file are parsed as JSON inputs prior to
        being put in the config object itself.

        Parameters
        ----------
        name : str
            The name for the configuration variable that should be used to look
            up its value in the `config` dict.
        filter : function or None
            A function `f` that is passed the provided or loaded value of the
            configuration variable whenever the variable is changed; the new
            value that is then applied to the variable is `f(x)` instead of `x`.
            If the filter raises an error on a loaded value, the default value
            is used instead.
        default_value : object
            The default value that the configuration item should take if not
            provided in either the RC-file or the environment.

        Raises
        ------
        ValueError
            If multiple configuration items with the same name are declared.
        """
        if name in config._vars: raise ValueError('Multiple config items declared for %s' % name)
        config._vars[name] = ('LMTF_' + name.upper(), filter, default_value)
        return True
    _vals = {}
    @staticmethod
    def _getitem(self, name):
        if name not in config._vars: raise KeyError(name)
        if name not in config._vals:
            (envname, fltfn, dval) = config._vars[name]
            val = dval
            rcdat = config.rc()
            # see where it's defined:
            if envname in os.environ:
                val = os.environ[envname]
                try: val = json.loads(val)
                except Exception: pass # it's a string if it can't be json'ed
            elif name in rcdat: val = rcdat[name]
            if fltfn is not None:
                try: val = fltfn(val)
                except Exception: val = dval # failure--reset to default
            config._vals[name] = val
        return config._vals[name]
    @staticmethod
    def _setitem(self, name, val):
        if name not in config._vars:
            raise ValueError('Configurable lmtf key "%s" not declared' % name)
        fltfn = config._vars[name][1]
        config._vals[name] = val if fltfn is None else fltfn(val)
    @staticmethod
    def _iter(self): return six.iterkeys(config._vars)
    @staticmethod
    def _len(self): return len(config._vars)
    @staticmethod
    def keys(): return config._vars.keys()
    @staticmethod
    def values(): return map(lambda k:config[k], config.keys())
    @staticmethod
    def items(): return map(lambda k:(k,config[k]), config.keys())
    @staticmethod
    def todict(): return {k:config[k] for k in config.keys()}
    @staticmethod
    def reset(name=None):
        """Forgets the cached value of one or all configuration items.

        `config.reset(name)` causes the next lookup of `name` to re-read the
        environment and RC-file; `config.reset()` does this for every item.
        """
        if name is None: config._vals.clear()
        else: config._vals.pop(name, None)

# The configurable items used by the fitting pipeline ##############################################
def _to_positive_int(x):
    x = int(x)
    if x < 1: raise ValueError('value must be a positive integer')
    return x
def _to_nonnegative_int(x):
    x = int(x)
    if x < 0: raise ValueError('value must be a non-negative integer')
    return x
def _to_nonnegative_float(x):
    x = float(x)
    if not x >= 0: raise ValueError('value must be a non-negative number')
    return x
def _to_optional_int(x):
    return None if x is None else _to_positive_int(x)

config.declare('max_selection_iterations',  filter=_to_positive_int,      default_value=10)
config.declare('max_refinement_sweeps',     filter=_to_positive_int,      default_value=50)
config.declare('quickfit_starts',           filter=_to_positive_int,      default_value=4)
config.declare('quickfit_seed',             filter=_to_nonnegative_int,   default_value=0)
config.declare('min_location_observations', filter=_to_positive_int,      default_value=13)
config.declare('seed_frequency_count',      filter=_to_positive_int,      default_value=40)
config.declare('error_tolerance',           filter=_to_nonnegative_float, default_value=1e-8)
config.declare('nesting_tolerance',         filter=_to_nonnegative_float, default_value=1e-6)
config.declare('optimizer_max_nfev',        filter=_to_optional_int,      default_value=None)
config.declare('optimizer_ftol',            filter=_to_nonnegative_float, default_value=1e-8)
config.declare('optimizer_xtol',            filter=_to_nonnegative_float, default_value=1e-8)
config.declare('optimizer_gtol',            filter=_to_nonnegative_float, default_value=1e-8)

def fit_options(**overrides):
    """Returns a persistent map of the fitting options, merged with any overrides.

    `fit_options()` yields a `pyrsistent.PMap` whose keys are the names of all
    declared configuration items and whose values are their current values.
    `fit_options(k1=v1, ...)` replaces the given keys with the given values
    after passing them through the item's filter; unknown keys raise an error.
    """
    import pyrsistent as pyr
    opts = config.todict()
    for (k,v) in six.iteritems(overrides):
        if k not in config._vars: raise ValueError('Unrecognized fitting option: %s' % k)
        fltfn = config._vars[k][1]
        opts[k] = v if fltfn is None else fltfn(v)
    return pyr.pmap(opts)
