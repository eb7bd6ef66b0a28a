'''
Exceptions raised while interpreting kernel machines.
'''

from typing import Optional, Any

class ConfigurationError(ValueError):
    """Raised when a kernel machine is malformed, such that no prediction from it can be trusted."""

class InvalidKernel(ConfigurationError):
    """Raised when a kernel type is not one of linear, poly, rbf, sigmoid or precomputed."""

class FeatureIndexOutOfRange(IndexError):
    """Raised when an input row addresses a feature outside of ``[0, n_features)``.

    Parameters
    ----------
    index : int
        The offending feature index.
    n_features : int
        Dimensionality of the model.
    row_id : Optional[Any], default=None
        Identifier of the row, if known.
    """

    def __init__(self, index: int, n_features: int, row_id: Optional[Any] = None):
        self.index = index
        self.n_features = n_features
        self.row_id = row_id

        where = '' if row_id is None else f' in row {row_id}'
        super().__init__(f'Feature index {index}{where} is outside of [0, {n_features}).')

class CalibrationUnavailable(RuntimeError):
    """Raised when calibrated probabilities are requested from a model without `prob_a`/`prob_b`."""
