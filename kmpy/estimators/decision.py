'''
Estimators evaluating the decision function of a trained kernel machine.
'''

import numpy as np
import torch
import sklearn

from ..math.kernels import KernelType, kernel
from ..model.kernelmachine import KernelMachine
from ..utilities.errors import FeatureIndexOutOfRange

from typing import Union

def _check_X(X: Union[np.ndarray, torch.Tensor], model: KernelMachine) -> None:
    """Check that `X` is of shape ``(n_samples, n_features)``."""

    if X.ndim != 2:
        raise ValueError(f'`X` must be of shape (n_samples, n_features), but got {tuple(X.shape)}.')

    if X.shape[1] > model.n_features:
        raise FeatureIndexOutOfRange(model.n_features, model.n_features)

    if X.shape[1] < model.n_features:
        raise ValueError(f'`X` must have {model.n_features} features, but got {X.shape[1]}.')

class _DecisionFunction_numpy(sklearn.base.BaseEstimator):
    """Evaluates decision values using numpy backend.

    Parameters
    ----------
    model : KernelMachine
        The kernel machine.
    """

    def __init__(self, model: KernelMachine):
        self.model = model

    def decision_function(self, X: np.ndarray) -> np.ndarray:
        """Compute decision values.

        Parameters
        ----------
        X : np.ndarray
            Input rows of shape ``(n_samples, n_features)``.

        Returns
        -------
        df : np.ndarray
            Decision values of shape ``(n_samples, n_pairs)``.
        """

        model = self.model
        _check_X(X, model)

        # setup support vectors
        y = model.sample_indices_ if model.kernel == KernelType.PRECOMPUTED else model.sv_

        # compute kernel
        K = kernel(model.kernel, X.astype(np.float64, copy = False), y, model.gamma, model.coef0, model.degree)

        return K @ model.pair_coef_ + model.intercept[None,:]

    def vote(self, df: np.ndarray) -> np.ndarray:
        """Count one-versus-one votes.

        Parameters
        ----------
        df : np.ndarray
            Decision values of shape ``(n_samples, n_pairs)``.

        Returns
        -------
        idx : np.ndarray
            Index of the winning class per sample, of shape ``(n_samples,)``. Ties go to the lower index.
        """

        model = self.model

        if not model.is_classification:
            raise ValueError(f'Voting requires a classification model, but got `{model.svm_type}`.')

        # positive values vote for the first class of each pair
        i, j = model.pairs_[:,0], model.pairs_[:,1]
        winner = np.where(df > 0, i[None,:], j[None,:])

        # tally
        counts = np.zeros((df.shape[0], model.n_classes), dtype = np.int64)
        np.add.at(counts, (np.arange(df.shape[0])[:,None], winner), 1)

        return counts.argmax(axis = 1)

class _DecisionFunction_torch(sklearn.base.BaseEstimator):
    """Evaluates decision values using torch backend.

    Parameters
    ----------
    model : KernelMachine
        The kernel machine.
    """

    def __init__(self, model: KernelMachine):
        self.model = model

    def decision_function(self, X: torch.Tensor) -> torch.Tensor:
        """Compute decision values.

        Parameters
        ----------
        X : torch.Tensor
            Input rows of shape ``(n_samples, n_features)``.

        Returns
        -------
        df : torch.Tensor
            Decision values of shape ``(n_samples, n_pairs)``.
        """

        model = self.model
        _check_X(X, model)

        # move model to data
        if model.kernel == KernelType.PRECOMPUTED:
            y = torch.as_tensor(model.sample_indices_, dtype = torch.long, device = X.device)
        else:
            y = torch.as_tensor(model.sv_, dtype = X.dtype, device = X.device)

        W = torch.as_tensor(model.pair_coef_, dtype = X.dtype, device = X.device)
        b = torch.as_tensor(model.intercept, dtype = X.dtype, device = X.device)

        # compute kernel
        K = kernel(model.kernel, X, y, model.gamma, model.coef0, model.degree)

        return K @ W + b[None,:]

    def vote(self, df: torch.Tensor) -> torch.Tensor:
        """Count one-versus-one votes.

        Parameters
        ----------
        df : torch.Tensor
            Decision values of shape ``(n_samples, n_pairs)``.

        Returns
        -------
        idx : torch.Tensor
            Index of the winning class per sample, of shape ``(n_samples,)``. Ties go to the lower index.
        """

        model = self.model

        if not model.is_classification:
            raise ValueError(f'Voting requires a classification model, but got `{model.svm_type}`.')

        # positive values vote for the first class of each pair
        pairs = torch.as_tensor(model.pairs_, dtype = torch.long, device = df.device)
        winner = torch.where(df > 0, pairs[None,:,0], pairs[None,:,1])

        # tally
        counts = torch.zeros((df.shape[0], model.n_classes), dtype = torch.long, device = df.device)
        counts.scatter_add_(1, winner, torch.ones_like(winner))

        return counts.argmax(dim = 1)

class DecisionFunction(sklearn.base.BaseEstimator):
    """Evaluates the decision function of a kernel machine.

    For every input row :math:`x`, this computes one decision value per
    one-versus-one class pair :math:`k = (i, j)`:

    .. math::
        f_k(x) = \\sum_{s} \\alpha_{s,k} \\kappa(s, x) + b_k

    where only support vectors of classes :math:`i` and :math:`j` contribute.
    Positive values vote for class :math:`i`. Binary, regression and one-class
    models yield a single value per row; for one-class models, values
    :math:`\\geq 0` are inside of the learned boundary.

    Parameters
    ----------
    model : KernelMachine
        The kernel machine.

    See also
    --------
    kmpy.math.kernel : The kernel functions.
    kmpy.estimators.Predictor : Turns decision values into predictions.

    Examples
    --------
    >>> import numpy as np
    >>> from kmpy.model import KernelMachine, SupportVector
    >>> from kmpy.estimators import DecisionFunction
    >>> model = KernelMachine(
    >>>     kernel = 'linear', svm_type = 'epsilon_svr', n_features = 2, intercept = [0.0],
    >>>     support_vectors = [SupportVector([0], [1.0], [0.5]), SupportVector([1], [1.0], [-0.3])]
    >>> )
    >>> DecisionFunction(model).decision_function(np.array([[2.0, 2.0]]))
    array([[0.4]])
    """

    def __init__(self, model: KernelMachine):
        self.model = model

    def _get_estimator(self, X: Union[np.ndarray, torch.Tensor]) -> sklearn.base.BaseEstimator:
        """Obtain the backend for `X`."""

        if isinstance(X, torch.Tensor):
            return _DecisionFunction_torch(self.model)
        elif isinstance(X, np.ndarray):
            return _DecisionFunction_numpy(self.model)

        raise TypeError(f'`X` must be either torch.Tensor or np.ndarray, but got {type(X)}.')

    def decision_function(self, X: Union[np.ndarray, torch.Tensor]) -> Union[np.ndarray, torch.Tensor]:
        """Compute decision values.

        Parameters
        ----------
        X : np.ndarray | torch.Tensor
            Input rows of shape ``(n_samples, n_features)``.

        Returns
        -------
        df : np.ndarray | torch.Tensor
            Decision values of shape ``(n_samples, n_pairs)``.
        """

        return self._get_estimator(X).decision_function(X)

    def vote(self, df: Union[np.ndarray, torch.Tensor]) -> Union[np.ndarray, torch.Tensor]:
        """Count one-versus-one votes.

        Parameters
        ----------
        df : np.ndarray | torch.Tensor
            Decision values of shape ``(n_samples, n_pairs)``.

        Returns
        -------
        idx : np.ndarray | torch.Tensor
            Index of the winning class per sample. Ties go to the lower index.
        """

        return self._get_estimator(df).vote(df)
