"""Configures the PlotfragLogger for the whole package"""

import logging
import os
from logging import getLogger

# Define the additional log levels
TRACE: int = 5
REMARK: int = 12
NOTE: int = 18
CAUTION: int = 23


class PlotfragLogger(logging.getLoggerClass()):
    """The custom plotfrag logging class with additional log levels"""

    def __init__(self, name, level=logging.NOTSET):
        super().__init__(name, level)

        logging.addLevelName(TRACE, "TRACE")
        logging.addLevelName(REMARK, "REMARK")
        logging.addLevelName(NOTE, "NOTE")
        logging.addLevelName(CAUTION, "CAUTION")

    def trace(self, msg, *args, **kwargs):
        if self.isEnabledFor(TRACE):
            self._log(TRACE, msg, args, **kwargs)

    def remark(self, msg, *args, **kwargs):
        if self.isEnabledFor(REMARK):
            self._log(REMARK, msg, args, **kwargs)

    def note(self, msg, *args, **kwargs):
        if self.isEnabledFor(NOTE):
            self._log(NOTE, msg, args, **kwargs)

    def caution(self, msg, *args, **kwargs):
        if self.isEnabledFor(CAUTION):
            self._log(CAUTION, msg, args, **kwargs)


# .............................................................................


# Determine the log format
_DEFAULT_LOG_FORMAT: str = "%(levelname)-8s %(module)-12s %(message)s"
_DEFAULT_LOG_LEVEL: int = logging.INFO

PLOTFRAG_LOG_FORMAT = os.getenv("PLOTFRAG_LOG_FORMAT", _DEFAULT_LOG_FORMAT)
PLOTFRAG_LOG_LEVEL = int(os.getenv("PLOTFRAG_LOG_LEVEL", _DEFAULT_LOG_LEVEL))

# Configure logging, valid for the whole module
logging.setLoggerClass(PlotfragLogger)
logging.basicConfig(
    format=PLOTFRAG_LOG_FORMAT,
    level=PLOTFRAG_LOG_LEVEL,
)
