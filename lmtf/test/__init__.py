####################################################################################################
# lmtf/test/__init__.py
# Tests for the lmtf library.

import unittest, logging

from .test_util     import TestLMTFUtil
from .test_models   import TestLMTFModels
from .test_fit      import TestLMTFFit
from .test_pipeline import TestLMTFPipeline

logging.getLogger().setLevel(logging.INFO)

if __name__ == '__main__':
    unittest.main()
