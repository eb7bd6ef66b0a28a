'''
'''

from . import env
from .errors import ConfigurationError, InvalidKernel, FeatureIndexOutOfRange, CalibrationUnavailable
from .progressbar import Progressbar, ProgressCounter
from .sink import ResultSink, MemorySink, CallbackSink, confidence_name
