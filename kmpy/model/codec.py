'''
Conversion between sparse (index, value) storage and dense feature vectors.
'''

import numpy as np
import torch

from ..utilities.errors import FeatureIndexOutOfRange

from typing import Union, Tuple, Any, Optional, Hashable

def to_sparse(x: Union[np.ndarray, torch.Tensor]) -> Tuple[np.ndarray, np.ndarray]:
    """Obtain sparse storage of a dense vector.

    Parameters
    ----------
    x : np.ndarray | torch.Tensor
        Dense vector of shape ``(n_features,)``.

    Returns
    -------
    indices : np.ndarray
        Indices of non-zero entries, ascending.
    values : np.ndarray
        Values of non-zero entries.
    """

    if isinstance(x, torch.Tensor):
        x = x.detach().cpu().numpy()

    x = np.asarray(x, dtype = np.float64).ravel()
    indices = np.flatnonzero(x)

    return indices.astype(np.int64), x[indices]

def from_sparse(indices: Any, values: Any, n_features: int, row_id: Optional[Hashable] = None) -> np.ndarray:
    """Expand sparse storage into a dense vector.

    Parameters
    ----------
    indices : array-like
        Feature indices.
    values : array-like
        Values at `indices`. Repeated indices keep the last value.
    n_features : int
        Dimensionality of the dense vector.
    row_id : Optional[Hashable], default=None
        Identifier used when reporting errors.

    Returns
    -------
    x : np.ndarray
        Dense vector of shape ``(n_features,)``.

    Raises
    ------
    FeatureIndexOutOfRange
        If any index lies outside of ``[0, n_features)``.
    """

    indices = np.asarray(indices, dtype = np.int64).ravel()
    values = np.asarray(values, dtype = np.float64).ravel()

    if indices.shape[0] != values.shape[0]:
        raise ValueError(f'`indices` and `values` must have the same length, but got {indices.shape[0]} and {values.shape[0]}.')

    # check range
    bad = (indices < 0) | (indices >= n_features)
    if bad.any():
        raise FeatureIndexOutOfRange(int(indices[bad][0]), n_features, row_id = row_id)

    x = np.zeros((n_features,))
    x[indices] = values

    return x

def to_dense(row: Any, n_features: int, row_id: Optional[Hashable] = None) -> np.ndarray:
    """Interpret one input row as a dense feature vector.

    Parameters
    ----------
    row : Any
        Either a dense vector of length `n_features` (sequence, np.ndarray or
        torch.Tensor), a mapping ``{index: value}`` or a sequence of
        ``(index, value)`` pairs.
    n_features : int
        Dimensionality of the model.
    row_id : Optional[Hashable], default=None
        Identifier used when reporting errors.

    Returns
    -------
    x : np.ndarray
        Dense vector of shape ``(n_features,)``.

    Raises
    ------
    FeatureIndexOutOfRange
        If a sparse index, or the length of a dense row, exceeds the model's dimensionality.
    """

    # sparse mapping
    if isinstance(row, dict):
        return from_sparse(list(row.keys()), list(row.values()), n_features, row_id = row_id)

    if isinstance(row, torch.Tensor):
        row = row.detach().cpu().numpy()

    # dense arrays
    if isinstance(row, np.ndarray) and row.ndim == 1:
        if row.shape[0] > n_features:
            raise FeatureIndexOutOfRange(n_features, n_features, row_id = row_id)
        if row.shape[0] < n_features:
            raise ValueError(f'Dense rows must have {n_features} features, but row {row_id} has {row.shape[0]}.')

        return row.astype(np.float64)

    row = list(row)

    # sparse pairs
    if len(row) > 0 and all(isinstance(entry, (tuple, list, np.ndarray)) and len(entry) == 2 for entry in row):
        indices, values = zip(*row)

        return from_sparse(indices, values, n_features, row_id = row_id)

    if len(row) == 0:
        return np.zeros((n_features,))

    row = np.asarray(row, dtype = np.float64)

    if row.ndim != 1:
        raise ValueError(f'Rows must be one-dimensional, but row {row_id} has shape {row.shape}.')

    return to_dense(row, n_features, row_id = row_id)
