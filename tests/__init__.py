# Pass regular log output to devnull; pytest catches log calls by other means

import logging
import os

logging.basicConfig(level=logging.DEBUG, stream=open(os.devnull, "w"))

# Adjust log level for certain modules
logging.getLogger("sympy").setLevel(logging.WARNING)

# .. Test-related variables ...................................................

TEST_CFG_DIR: str = os.path.join(os.path.dirname(__file__), "cfg")
"""Directory of the YAML configuration files used in the tests"""
