'''
Functions to couple pairwise (one-versus-one) probabilities into class probabilities.
'''

import warnings

import numpy as np
import torch

from .sigmoid import MIN_PROB

from typing import Union, Optional

def _pairwise_matrix_numpy(p: np.ndarray, n_classes: int) -> np.ndarray:
    """Arrange pairwise probabilities as a matrix.

    Parameters
    ----------
    p : np.ndarray
        Probabilities of shape ``(n_samples, n_pairs)`` in pair order (0, 1), (0, 2), ..., (1, 2), ...
    n_classes : int
        Number of classes.

    Returns
    -------
    r : np.ndarray
        Matrix of shape ``(n_samples, n_classes, n_classes)`` where ``r[:,i,j] + r[:,j,i] = 1``.
    """

    i, j = np.triu_indices(n_classes, k = 1)

    r = np.zeros((p.shape[0], n_classes, n_classes), dtype = p.dtype)
    r[:,i,j] = p
    r[:,j,i] = 1.0 - p

    return r

def _pairwise_matrix_torch(p: torch.Tensor, n_classes: int) -> torch.Tensor:
    """Arrange pairwise probabilities as a matrix.

    Parameters
    ----------
    p : torch.Tensor
        Probabilities of shape ``(n_samples, n_pairs)`` in pair order (0, 1), (0, 2), ..., (1, 2), ...
    n_classes : int
        Number of classes.

    Returns
    -------
    r : torch.Tensor
        Matrix of shape ``(n_samples, n_classes, n_classes)`` where ``r[:,i,j] + r[:,j,i] = 1``.
    """

    i, j = torch.triu_indices(n_classes, n_classes, offset = 1, device = p.device)

    r = torch.zeros((p.shape[0], n_classes, n_classes), dtype = p.dtype, device = p.device)
    r[:,i,j] = p
    r[:,j,i] = 1.0 - p

    return r

def pairwise_matrix(p: Union[np.ndarray, torch.Tensor], n_classes: int) -> Union[np.ndarray, torch.Tensor]:
    """Arrange pairwise probabilities as a matrix.

    Parameters
    ----------
    p : np.ndarray | torch.Tensor
        Probabilities of shape ``(n_samples, n_pairs)`` in pair order (0, 1), (0, 2), ..., (1, 2), ...
    n_classes : int
        Number of classes.

    Returns
    -------
    r : np.ndarray | torch.Tensor
        Matrix of shape ``(n_samples, n_classes, n_classes)``.
    """

    # check pairs
    if p.shape[-1] != n_classes * (n_classes - 1) // 2:
        raise ValueError(f'Expected {n_classes * (n_classes - 1) // 2} pairs for {n_classes} classes, but got {p.shape[-1]}.')

    if isinstance(p, torch.Tensor):
        return _pairwise_matrix_torch(p, n_classes)
    elif isinstance(p, np.ndarray):
        return _pairwise_matrix_numpy(p, n_classes)

    raise ValueError(f'`p` must be either np.ndarray or torch.Tensor, but got `{type(p)}`.')

def _valid_rows_numpy(r: np.ndarray, tol: float) -> np.ndarray:
    # pairs must be finite and complementary
    i, j = np.triu_indices(r.shape[1], k = 1)
    upper, lower = r[:,i,j], r[:,j,i]

    finite = np.isfinite(upper).all(axis = 1) & np.isfinite(lower).all(axis = 1)
    symmetric = (np.abs(upper + lower - 1.0) <= tol).all(axis = 1)

    return finite & symmetric

def _valid_rows_torch(r: torch.Tensor, tol: float) -> torch.Tensor:
    i, j = torch.triu_indices(r.shape[1], r.shape[1], offset = 1, device = r.device)
    upper, lower = r[:,i,j], r[:,j,i]

    finite = torch.isfinite(upper).all(dim = 1) & torch.isfinite(lower).all(dim = 1)
    symmetric = ((upper + lower - 1.0).abs() <= tol).all(dim = 1)

    return finite & symmetric

def _pairwise_coupling_numpy(r: np.ndarray, max_iter: Optional[int] = None, min_prob: float = MIN_PROB, tol: float = 1e-6) -> np.ndarray:
    """Compute class probabilities from a pairwise probability matrix.

    Parameters
    ----------
    r : np.ndarray
        Pairwise probabilities of shape ``(n_samples, n_classes, n_classes)``.
    max_iter : Optional[int], default=None
        Maximum number of sweeps. If None, ``100 * n_classes``.
    min_prob : float, default=1e-7
        Pairwise probabilities are clamped to ``[min_prob, 1 - min_prob]``.
    tol : float, default=1e-6
        Tolerance for ``r[i,j] + r[j,i] = 1``.

    Returns
    -------
    p : np.ndarray
        Class probabilities of shape ``(n_samples, n_classes)``.
    """

    # check n_samples and n_classes
    N, K = r.shape[0], r.shape[1]

    # setup outputs
    p = np.full((N, K), 1.0 / K)

    if K < 2 or N == 0:
        return p

    # malformed rows keep the uniform distribution
    valid = _valid_rows_numpy(r, tol)
    if not valid.all():
        warnings.warn(f'Malformed pairwise probabilities in {int((~valid).sum())} sample(s), falling back to uniform probabilities.')

    r = np.clip(np.nan_to_num(r), a_min = min_prob, a_max = 1.0 - min_prob)

    # setup Q, where Q[t,t] = sum_{j!=t} r[j,t]^2 and Q[t,j] = -r[j,t] r[t,j]
    rT = r.swapaxes(1, 2)
    diagonal = np.arange(K)
    Q = -rT * r
    Q[:,diagonal,diagonal] = 0.0
    Q[:,diagonal,diagonal] = (rT ** 2).sum(axis = 2) - rT[:,diagonal,diagonal] ** 2

    # setup stopping criterion
    eps = 0.005 / K
    max_iter = 100 * K if max_iter is None else max_iter
    active = valid.copy()

    for _ in range(max_iter):
        # compute Qp and p'Qp
        Qp = np.einsum('ntj,nj->nt', Q, p)
        pQp = (p * Qp).sum(axis = 1)

        # check optimality per sample
        error = np.abs(Qp - pQp[:,None]).max(axis = 1)
        active &= error >= eps

        if not active.any():
            break

        # sweep over classes
        for t in range(K):
            diff = np.where(active, (pQp - Qp[:,t]) / Q[:,t,t], 0.0)
            scale = 1.0 + diff

            p[:,t] += diff
            pQp = (pQp + diff * (diff * Q[:,t,t] + 2.0 * Qp[:,t])) / scale ** 2
            Qp = (Qp + diff[:,None] * Q[:,t,:]) / scale[:,None]
            p /= scale[:,None]
    else:
        warnings.warn(f'Pairwise coupling did not converge within {max_iter} iterations for {int(active.sum())} sample(s).')

    return p

def _pairwise_coupling_torch(r: torch.Tensor, max_iter: Optional[int] = None, min_prob: float = MIN_PROB, tol: float = 1e-6) -> torch.Tensor:
    """Compute class probabilities from a pairwise probability matrix.

    Parameters
    ----------
    r : torch.Tensor
        Pairwise probabilities of shape ``(n_samples, n_classes, n_classes)``.
    max_iter : Optional[int], default=None
        Maximum number of sweeps. If None, ``100 * n_classes``.
    min_prob : float, default=1e-7
        Pairwise probabilities are clamped to ``[min_prob, 1 - min_prob]``.
    tol : float, default=1e-6
        Tolerance for ``r[i,j] + r[j,i] = 1``.

    Returns
    -------
    p : torch.Tensor
        Class probabilities of shape ``(n_samples, n_classes)``.
    """

    # check type and device
    dtype = r.dtype
    device = r.device

    # check n_samples and n_classes
    N, K = r.shape[0], r.shape[1]

    # setup outputs
    p = torch.full((N, K), 1.0 / K, dtype = dtype, device = device)

    if K < 2 or N == 0:
        return p

    # malformed rows keep the uniform distribution
    valid = _valid_rows_torch(r, tol)
    if not bool(valid.all()):
        warnings.warn(f'Malformed pairwise probabilities in {int((~valid).sum())} sample(s), falling back to uniform probabilities.')

    r = torch.clamp(torch.nan_to_num(r), min = min_prob, max = 1.0 - min_prob)

    # setup Q
    rT = r.transpose(1, 2)
    diagonal = torch.arange(K, device = device)
    Q = -rT * r
    Q[:,diagonal,diagonal] = 0.0
    Q[:,diagonal,diagonal] = (rT ** 2).sum(dim = 2) - rT[:,diagonal,diagonal] ** 2

    # setup stopping criterion
    eps = 0.005 / K
    max_iter = 100 * K if max_iter is None else max_iter
    active = valid.clone()
    zeros = torch.zeros((N,), dtype = dtype, device = device)

    for _ in range(max_iter):
        # compute Qp and p'Qp
        Qp = torch.einsum('ntj,nj->nt', Q, p)
        pQp = (p * Qp).sum(dim = 1)

        # check optimality per sample
        error = (Qp - pQp[:,None]).abs().max(dim = 1).values
        active &= error >= eps

        if not bool(active.any()):
            break

        # sweep over classes
        for t in range(K):
            diff = torch.where(active, (pQp - Qp[:,t]) / Q[:,t,t], zeros)
            scale = 1.0 + diff

            p[:,t] += diff
            pQp = (pQp + diff * (diff * Q[:,t,t] + 2.0 * Qp[:,t])) / scale ** 2
            Qp = (Qp + diff[:,None] * Q[:,t,:]) / scale[:,None]
            p /= scale[:,None]
    else:
        warnings.warn(f'Pairwise coupling did not converge within {max_iter} iterations for {int(active.sum())} sample(s).')

    return p

def pairwise_coupling(r: Union[np.ndarray, torch.Tensor], max_iter: Optional[int] = None, min_prob: float = MIN_PROB, tol: float = 1e-6) -> Union[np.ndarray, torch.Tensor]:
    """Compute class probabilities from pairwise probabilities.

    Parameters
    ----------
    r : np.ndarray | torch.Tensor
        Pairwise probabilities of shape ``(n_samples, n_classes, n_classes)``, where
        ``r[:,i,j]`` is the probability of class ``i`` beating class ``j``. The
        diagonal is ignored.
    max_iter : Optional[int], default=None
        Maximum number of sweeps. If None, ``100 * n_classes``.
    min_prob : float, default=1e-7
        Pairwise probabilities are clamped to ``[min_prob, 1 - min_prob]``.
    tol : float, default=1e-6
        Tolerance for ``r[i,j] + r[j,i] = 1``. Samples violating it, or holding
        non-finite values, receive uniform probabilities.

    Returns
    -------
    p : np.ndarray | torch.Tensor
        Class probabilities of shape ``(n_samples, n_classes)``.

    Notes
    -----
    Probabilities solve the quadratic problem (method 2 in [1]_):

    .. math::

        \\min_p \\frac{1}{2} p^T Q p \\quad \\text{s.t.} \\quad \\sum_i p_i = 1, \\quad p_i \\geq 0

    with :math:`Q_{tt} = \\sum_{j \\neq t} r_{jt}^2` and :math:`Q_{tj} = -r_{jt} r_{tj}`. Starting
    from :math:`p_i = 1 / K`, each :math:`p_t` is updated in turn and the vector is
    renormalised, until :math:`\\max_t \\lvert (Qp)_t - p^TQp\\rvert < 0.005 / K` or
    `max_iter` sweeps have been performed, in which case a warning is issued and the
    current estimate is returned.

    References
    ----------
    .. [1] Wu, T.F., Lin, C.J., & Weng, R.C. (2004). Probability estimates for multi-class classification by pairwise coupling. Journal of Machine Learning Research, 5, 975-1005.
    """

    if isinstance(r, torch.Tensor):
        return _pairwise_coupling_torch(r, max_iter = max_iter, min_prob = min_prob, tol = tol)
    elif isinstance(r, np.ndarray):
        return _pairwise_coupling_numpy(r.astype(np.float64, copy = False), max_iter = max_iter, min_prob = min_prob, tol = tol)

    raise ValueError(f'`r` must be either np.ndarray or torch.Tensor, but got `{type(r)}`.')
