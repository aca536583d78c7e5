####################################################################################################
# lmtf/test/test_util.py
# Tests for the lmtf library's util module.

import unittest, os, tempfile, logging
import numpy      as np
import pyrsistent as pyr
import lmtf

class TestLMTFUtil(unittest.TestCase):

    def tearDown(self):
        for k in ('LMTF_QUICKFIT_STARTS', 'LMTF_NESTING_TOLERANCE', 'LMTFRC'):
            os.environ.pop(k, None)
        lmtf.config._rc = None
        lmtf.config.reset()

    def test_config(self):
        from lmtf.util import config
        logging.info('lmtf: Testing configuration...')
        self.assertEqual(config['max_selection_iterations'], 10)
        self.assertEqual(config['min_location_observations'], 13)
        self.assertIn('quickfit_starts', list(config.keys()))
        # environment variables are JSON-decoded and filtered
        os.environ['LMTF_QUICKFIT_STARTS'] = '7'
        config.reset('quickfit_starts')
        self.assertEqual(config['quickfit_starts'], 7)
        # malformed values fall back to the default
        os.environ['LMTF_NESTING_TOLERANCE'] = '"not a number"'
        config.reset('nesting_tolerance')
        self.assertEqual(config['nesting_tolerance'], 1e-6)
        # direct sets are filtered too
        config['quickfit_starts'] = '3'
        self.assertEqual(config['quickfit_starts'], 3)
        with self.assertRaises(ValueError): config['quickfit_starts'] = 0
        with self.assertRaises(ValueError): config['no_such_item'] = 1
        with self.assertRaises(KeyError): config['no_such_item']
        with self.assertRaises(ValueError): config.declare('quickfit_starts')

    def test_fit_options(self):
        from lmtf.util import fit_options
        opts = fit_options()
        self.assertIsInstance(opts, pyr.PMap)
        self.assertEqual(opts['quickfit_starts'], lmtf.config['quickfit_starts'])
        opts = fit_options(quickfit_starts='2', optimizer_max_nfev=None)
        self.assertEqual(opts['quickfit_starts'], 2)
        self.assertIsNone(opts['optimizer_max_nfev'])
        with self.assertRaises(ValueError): fit_options(no_such_option=1)
        with self.assertRaises(ValueError): fit_options(max_refinement_sweeps=-1)

    def test_rc_files(self):
        from lmtf.util import (loadrc, saverc)
        tmpdir = tempfile.mkdtemp()
        flnm = os.path.join(tmpdir, 'lmtfrc.json')
        self.assertEqual(saverc(flnm, {'quickfit_starts': 5}), flnm)
        self.assertEqual(loadrc(flnm), {'quickfit_starts': 5})
        with self.assertRaises(ValueError): saverc(flnm, {'quickfit_starts': 6})
        saverc(flnm, {'quickfit_starts': 6}, overwrite=True)
        self.assertEqual(loadrc(flnm)['quickfit_starts'], 6)
        with self.assertRaises(ValueError): loadrc(os.path.join(tmpdir, 'missing.json'))
        # items are read from the rc file named by LMTFRC under their own names, and the
        # environment still takes precedence over the file
        from lmtf.util import config
        os.environ['LMTFRC'] = flnm
        config._rc = None
        config.reset()
        self.assertTrue(config.rc()['lmtfrc_loaded'])
        self.assertEqual(config['quickfit_starts'], 6)
        os.environ['LMTF_QUICKFIT_STARTS'] = '2'
        config.reset('quickfit_starts')
        self.assertEqual(config['quickfit_starts'], 2)
        os.remove(flnm)
        os.rmdir(tmpdir)

    def test_locations(self):
        from lmtf.util import (unique_locations, location_polar, are_collinear, check_locations,
                               LMTFInputError)
        logging.info('lmtf: Testing location utilities...')
        x = [30, 0, 30, -20, 0, 30]
        y = [10, 5, 10,  40, 5, 10]
        u = unique_locations(x, y)
        self.assertTrue(np.array_equal(u, [[30, 10], [0, 5], [-20, 40]]))
        self.assertFalse(u.flags['WRITEABLE'])
        # mirror symmetry of x and units of tenths of a degree
        (phi, r) = location_polar([-30, 30], [40, 40])
        self.assertTrue(np.allclose(r, [5, 5]))
        self.assertTrue(np.allclose(phi, np.arctan2(4, 3)))
        self.assertTrue(are_collinear([[0, 0], [10, 10], [25, 25]]))
        self.assertTrue(are_collinear([[5, 0], [10, 1], [15, 2]]))
        # a line that misses the origin is rejected even though the raw coordinates have rank 2
        self.assertEqual(np.linalg.matrix_rank(np.array([[5, 0], [10, 1], [15, 2]])), 2)
        with self.assertRaises(LMTFInputError): check_locations([[5, 0], [10, 1], [15, 2]])
        self.assertFalse(are_collinear([[0, 0], [10, 0], [0, 10]]))
        with self.assertRaises(LMTFInputError): check_locations([[0, 0], [10, 0]])
        with self.assertRaises(LMTFInputError): check_locations([[0, 0], [10, 10], [20, 20]])
        with self.assertRaises(ValueError):     check_locations([[0, 0], [10, 10], [20, 20]])
        with self.assertRaises(LMTFInputError): check_locations([0, 1, 2])
        locs = check_locations([[0, 0], [10, 0], [0, 10]])
        self.assertEqual(len(locs), 3)

    def test_errors(self):
        from lmtf.util import (LMTFError, LMTFInputError, LMTFInvariantError, note)
        e = LMTFInvariantError('mismatch', {'error': 1.5})
        self.assertIsInstance(e, LMTFError)
        self.assertIsInstance(e, RuntimeError)
        self.assertEqual(e.data['error'], 1.5)
        self.assertEqual(len(LMTFInputError('bad').data), 0)
        msgs = note((), 'location %s dropped', 'A')
        msgs = note(msgs, 'done')
        self.assertEqual(msgs, ('location A dropped', 'done'))
