'''
Inference and calibration for trained kernel machines.
'''

import logging

from . import math
from . import model
from . import estimators
from . import utilities

__version__ = '0.1'

logging.getLogger(__name__).addHandler(logging.NullHandler())
