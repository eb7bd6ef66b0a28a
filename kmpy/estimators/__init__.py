'''
'''

from .decision import DecisionFunction
from .calibrator import Calibrator
from .formula import formula
from .predictor import Predictor, Mode, select_mode
