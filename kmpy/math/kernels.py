'''
Kernel functions evaluated between input rows and support vectors.
'''

import enum

import numpy as np
import torch

from ..utilities.errors import InvalidKernel

from typing import Union, Any

class KernelType(str, enum.Enum):
    """The closed set of kernels a kernel machine may use."""

    LINEAR = 'linear'
    POLY = 'poly'
    RBF = 'rbf'
    SIGMOID = 'sigmoid'
    PRECOMPUTED = 'precomputed'

    @classmethod
    def parse(cls, kernel: Union[str, "KernelType"]) -> "KernelType":
        """Obtain the kernel type from its name.

        Parameters
        ----------
        kernel : str | KernelType
            Name of the kernel (case-insensitive) or a kernel type.

        Returns
        -------
        kernel : KernelType
            The kernel type.

        Raises
        ------
        InvalidKernel
            If `kernel` is not a known kernel.
        """

        if isinstance(kernel, cls):
            return kernel

        try:
            return cls(str(kernel).lower())
        except ValueError:
            raise InvalidKernel(f'Unknown kernel `{kernel}`. Expected one of {[k.value for k in cls]}.')

def _kernel_linear_numpy(x: np.ndarray, y: np.ndarray, *args: Any) -> np.ndarray:
    return x @ y.T

def _kernel_linear_torch(x: torch.Tensor, y: torch.Tensor, *args: Any) -> torch.Tensor:
    return x @ y.T

def _kernel_poly_numpy(x: np.ndarray, y: np.ndarray, γ: float, coef0: float, degree: float) -> np.ndarray:
    return (γ * (x @ y.T) + coef0) ** degree

def _kernel_poly_torch(x: torch.Tensor, y: torch.Tensor, γ: float, coef0: float, degree: float) -> torch.Tensor:
    return (γ * (x @ y.T) + coef0) ** degree

def _kernel_rbf_numpy(x: np.ndarray, y: np.ndarray, γ: float, *args: Any) -> np.ndarray:
    # squared distances, clipped against round-off
    K = (x * x).sum(axis = 1, keepdims = True) + (y * y).sum(axis = 1, keepdims = True).T - (2.0 * (x @ y.T))
    return np.exp(-γ * np.clip(K, a_min = 0.0, a_max = None))

def _kernel_rbf_torch(x: torch.Tensor, y: torch.Tensor, γ: float, *args: Any) -> torch.Tensor:
    K = (x * x).sum(1, keepdim = True) + (y * y).sum(1, keepdim = True).T - (2.0 * (x @ y.T))
    K.clamp_(min = 0.0)
    K.mul_(-γ).exp_()

    return K

def _kernel_sigmoid_numpy(x: np.ndarray, y: np.ndarray, γ: float, coef0: float, *args: Any) -> np.ndarray:
    return np.tanh(γ * (x @ y.T) + coef0)

def _kernel_sigmoid_torch(x: torch.Tensor, y: torch.Tensor, γ: float, coef0: float, *args: Any) -> torch.Tensor:
    return torch.tanh(γ * (x @ y.T) + coef0)

def _kernel_precomputed_numpy(x: np.ndarray, y: np.ndarray, *args: Any) -> np.ndarray:
    return x[:, y]

def _kernel_precomputed_torch(x: torch.Tensor, y: torch.Tensor, *args: Any) -> torch.Tensor:
    return x[:, y]

KERNELS_NUMPY = {
    KernelType.LINEAR: _kernel_linear_numpy,
    KernelType.POLY: _kernel_poly_numpy,
    KernelType.RBF: _kernel_rbf_numpy,
    KernelType.SIGMOID: _kernel_sigmoid_numpy,
    KernelType.PRECOMPUTED: _kernel_precomputed_numpy,
}

KERNELS_TORCH = {
    KernelType.LINEAR: _kernel_linear_torch,
    KernelType.POLY: _kernel_poly_torch,
    KernelType.RBF: _kernel_rbf_torch,
    KernelType.SIGMOID: _kernel_sigmoid_torch,
    KernelType.PRECOMPUTED: _kernel_precomputed_torch,
}

def kernel(kind: Union[str, KernelType], x: Union[np.ndarray, torch.Tensor], y: Union[np.ndarray, torch.Tensor], γ: float = 1.0, coef0: float = 0.0, degree: float = 3) -> Union[np.ndarray, torch.Tensor]:
    """Compute the kernel matrix between rows of `x` and rows of `y`.

    Parameters
    ----------
    kind : str | KernelType
        Which kernel to use (linear, poly, rbf, sigmoid, precomputed).
    x : np.ndarray | torch.Tensor
        Input rows of shape ``(n_samples, n_features)``.
    y : np.ndarray | torch.Tensor
        Support vectors of shape ``(n_vectors, n_features)`` or, for precomputed
        kernels, the integer column of each support vector of shape ``(n_vectors,)``.
    γ : float, default=1.0
        Gamma parameter for poly, rbf and sigmoid.
    coef0 : float, default=0.0
        Offset for poly and sigmoid.
    degree : float, default=3
        Degree for poly.

    Returns
    -------
    k : np.ndarray | torch.Tensor
        Kernel matrix of shape ``(n_samples, n_vectors)``.

    Notes
    -----
    The kernels are computed as:

    .. math::

        \\kappa_{linear}(x, y) = x y^T

        \\kappa_{poly}(x, y) = (\\gamma x y^T + c_0)^d

        \\kappa_{rbf}(x, y) = \\exp(-\\gamma \\lvert\\lvert x - y\\rvert\\rvert^2)

        \\kappa_{sigmoid}(x, y) = \\tanh(\\gamma x y^T + c_0)

    For precomputed kernels, `x` already holds kernel values against the
    training samples and the kernel reduces to a column lookup.
    """

    kind = KernelType.parse(kind)

    if isinstance(x, torch.Tensor) & isinstance(y, torch.Tensor):
        return KERNELS_TORCH[kind](x, y, γ, coef0, degree)
    elif isinstance(x, np.ndarray) & isinstance(y, np.ndarray):
        return KERNELS_NUMPY[kind](x, y, γ, coef0, degree)

    raise ValueError(f'`x` and `y` must be of the same type, but got `{type(x)}` and `{type(y)}` instead.')
