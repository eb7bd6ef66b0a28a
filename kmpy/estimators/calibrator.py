'''
Estimator turning pairwise decision values into calibrated class probabilities.
'''

import numpy as np
import torch
import sklearn

from ..math.sigmoid import sigmoid_predict, MIN_PROB
from ..math.coupling import pairwise_matrix, pairwise_coupling
from ..model.kernelmachine import KernelMachine
from ..utilities.errors import CalibrationUnavailable

from typing import Union, Optional

class Calibrator(sklearn.base.BaseEstimator):
    """Computes class probabilities from decision values by Platt scaling and pairwise coupling.

    Every pairwise decision value :math:`f_k` is first mapped to the
    probability that the first class of pair :math:`k` wins:

    .. math::
        r_k = \\frac{1}{1 + \\exp(A_k f_k + B_k)}

    clamped to :math:`[p_{min}, 1 - p_{min}]`. Pairwise probabilities are then
    coupled into one probability vector per sample (see :py:func:`~kmpy.math.pairwise_coupling`).

    Parameters
    ----------
    model : KernelMachine
        The kernel machine, which must carry `prob_a` and `prob_b`.
    min_prob : float, default=1e-7
        Lower bound of pairwise probabilities.
    max_iter : Optional[int], default=None
        Maximum number of coupling sweeps. If None, ``100 * n_classes``.

    Raises
    ------
    CalibrationUnavailable
        If `model` carries no calibration coefficients.
    """

    def __init__(self, model: KernelMachine, min_prob: float = MIN_PROB, max_iter: Optional[int] = None):
        if not model.has_calibration:
            raise CalibrationUnavailable('The model carries no calibration coefficients (prob_a, prob_b).')

        if not model.is_classification:
            raise CalibrationUnavailable(f'Models of type `{model.svm_type}` cannot be calibrated.')

        self.model = model
        self.min_prob = min_prob
        self.max_iter = max_iter

    def pairwise_proba(self, df: Union[np.ndarray, torch.Tensor]) -> Union[np.ndarray, torch.Tensor]:
        """Compute calibrated pairwise probabilities.

        Parameters
        ----------
        df : np.ndarray | torch.Tensor
            Decision values of shape ``(n_samples, n_pairs)``.

        Returns
        -------
        p : np.ndarray | torch.Tensor
            Probabilities of shape ``(n_samples, n_pairs)``.
        """

        return sigmoid_predict(df, self.model.prob_a, self.model.prob_b, min_prob = self.min_prob)

    def pairwise_matrix(self, df: Union[np.ndarray, torch.Tensor]) -> Union[np.ndarray, torch.Tensor]:
        """Compute the matrix of calibrated pairwise probabilities.

        Parameters
        ----------
        df : np.ndarray | torch.Tensor
            Decision values of shape ``(n_samples, n_pairs)``.

        Returns
        -------
        r : np.ndarray | torch.Tensor
            Matrix of shape ``(n_samples, n_classes, n_classes)``.
        """

        return pairwise_matrix(self.pairwise_proba(df), self.model.n_classes)

    def predict_proba(self, df: Union[np.ndarray, torch.Tensor]) -> Union[np.ndarray, torch.Tensor]:
        """Compute class probabilities.

        Parameters
        ----------
        df : np.ndarray | torch.Tensor
            Decision values of shape ``(n_samples, n_pairs)``.

        Returns
        -------
        p : np.ndarray | torch.Tensor
            Probabilities of shape ``(n_samples, n_classes)`` in the order of ``model.labels``.
        """

        return pairwise_coupling(self.pairwise_matrix(df), max_iter = self.max_iter, min_prob = self.min_prob)
