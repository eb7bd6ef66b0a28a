'''
Functions to compute Platt-scaled pairwise probabilities from decision values.
'''

import numpy as np
import torch
import scipy.special

from typing import Union

MIN_PROB = 1e-7

def _sigmoid_predict_numpy(df: np.ndarray, A: np.ndarray, B: np.ndarray, min_prob: float = MIN_PROB) -> np.ndarray:
    # 1 / (1 + exp(fApB)), evaluated without overflow
    p = scipy.special.expit(-(df * A + B))

    return np.clip(p, a_min = min_prob, a_max = 1.0 - min_prob)

def _sigmoid_predict_torch(df: torch.Tensor, A: torch.Tensor, B: torch.Tensor, min_prob: float = MIN_PROB) -> torch.Tensor:
    p = torch.sigmoid(-(df * A + B))

    return torch.clamp(p, min = min_prob, max = 1.0 - min_prob)

def sigmoid_predict(df: Union[np.ndarray, torch.Tensor], A: Union[np.ndarray, torch.Tensor], B: Union[np.ndarray, torch.Tensor], min_prob: float = MIN_PROB) -> Union[np.ndarray, torch.Tensor]:
    """Compute calibrated pairwise probabilities.

    Parameters
    ----------
    df : np.ndarray | torch.Tensor
        Decision values of shape ``(n_samples, n_pairs)``.
    A : np.ndarray | torch.Tensor
        Slopes of shape ``(n_pairs,)``.
    B : np.ndarray | torch.Tensor
        Offsets of shape ``(n_pairs,)``.
    min_prob : float, default=1e-7
        Probabilities are clamped to ``[min_prob, 1 - min_prob]``.

    Returns
    -------
    p : np.ndarray | torch.Tensor
        Probability that the first class of each pair wins, of shape ``(n_samples, n_pairs)``.

    Notes
    -----
    Probabilities are computed as:

    .. math::

        p = \\frac{1}{1 + \\exp(A f + B)}
    """

    if isinstance(df, torch.Tensor):
        A = torch.as_tensor(A, dtype = df.dtype, device = df.device)
        B = torch.as_tensor(B, dtype = df.dtype, device = df.device)

        return _sigmoid_predict_torch(df, A, B, min_prob = min_prob)
    elif isinstance(df, np.ndarray):
        return _sigmoid_predict_numpy(df, np.asarray(A), np.asarray(B), min_prob = min_prob)

    raise ValueError(f'`df` must be either np.ndarray or torch.Tensor, but got `{type(df)}`.')
