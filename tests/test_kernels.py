'''
A series of unit tests for kmpy.math.kernel
'''

import pytest

import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
import kmpy as km

import numpy as np
import torch
from sklearn.metrics.pairwise import linear_kernel, polynomial_kernel, rbf_kernel, sigmoid_kernel

# setup tolerance for np.allclose
_ALLCLOSE_RTOL = 1e-6
_ALLCLOSE_ATOL = 1e-8

# kernel, gamma, coef0, degree, reference
KERNELS = [
    ('linear', 1.0, 0.0, 3, lambda x, y: linear_kernel(x, y)),
    ('poly', 0.5, 1.0, 3, lambda x, y: polynomial_kernel(x, y, degree = 3, gamma = 0.5, coef0 = 1.0)),
    ('poly', 0.2, 0.0, 2, lambda x, y: polynomial_kernel(x, y, degree = 2, gamma = 0.2, coef0 = 0.0)),
    ('rbf', 0.3, 0.0, 3, lambda x, y: rbf_kernel(x, y, gamma = 0.3)),
    ('sigmoid', 0.1, -0.5, 3, lambda x, y: sigmoid_kernel(x, y, gamma = 0.1, coef0 = -0.5)),
]

'''
Setup fixtures
'''

def _xy():
    '''
    Generate data for testing.
    '''

    return np.random.normal(size = (20, 5)), np.random.normal(size = (7, 5))

@pytest.mark.parametrize('kind,gamma,coef0,degree,f_sk', KERNELS)
def test_kernel_numpy(kind, gamma, coef0, degree, f_sk):
    '''
    Make sure kernels match sklearn using numpy backend.
    '''

    x, y = _xy()
    K = km.math.kernel(kind, x, y, gamma, coef0, degree)

    assert K.shape == (20, 7)
    assert np.allclose(K, f_sk(x, y), rtol = _ALLCLOSE_RTOL, atol = _ALLCLOSE_ATOL)

@pytest.mark.parametrize('kind,gamma,coef0,degree,f_sk', KERNELS)
def test_kernel_torch(kind, gamma, coef0, degree, f_sk):
    '''
    Make sure kernels match sklearn using torch backend.
    '''

    x, y = _xy()
    K = km.math.kernel(kind, torch.from_numpy(x), torch.from_numpy(y), gamma, coef0, degree)

    assert isinstance(K, torch.Tensor)
    assert np.allclose(K.cpu().numpy(), f_sk(x, y), rtol = _ALLCLOSE_RTOL, atol = _ALLCLOSE_ATOL)

def test_kernel_precomputed():
    '''
    Make sure precomputed kernels look up columns of the input.
    '''

    x = np.random.normal(size = (3, 10))
    y = np.array([1, 4, 4])

    assert np.allclose(km.math.kernel('precomputed', x, y), x[:,[1, 4, 4]])

    K = km.math.kernel('precomputed', torch.from_numpy(x), torch.from_numpy(y))
    assert np.allclose(K.numpy(), x[:,[1, 4, 4]])

def test_kernel_type_parse():
    '''
    Make sure kernel types parse from strings and reject unknown kernels.
    '''

    assert km.math.KernelType.parse('RBF') == km.math.KernelType.RBF
    assert km.math.KernelType.parse(km.math.KernelType.POLY) == km.math.KernelType.POLY

    with pytest.raises(km.utilities.InvalidKernel):
        km.math.KernelType.parse('laplacian')

    # unknown kernels are configuration errors
    with pytest.raises(km.utilities.ConfigurationError):
        km.math.kernel('laplacian', np.zeros((1, 1)), np.zeros((1, 1)))

def test_kernel_mixed_types():
    '''
    Make sure mixing backends fails.
    '''

    with pytest.raises(ValueError):
        km.math.kernel('linear', np.zeros((2, 3)), torch.zeros((2, 3)))
