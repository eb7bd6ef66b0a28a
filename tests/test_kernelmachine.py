'''
A series of unit tests for kmpy.model.KernelMachine
'''

import pytest

import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
import kmpy as km

import numpy as np
import scipy.sparse
from sklearn.datasets import load_iris, make_regression
from sklearn.linear_model import LogisticRegression
from sklearn.svm import SVC, NuSVC, SVR, OneClassSVM

'''
Setup fixtures
'''

def _model_3C(**kwargs):
    '''
    Generate a three-class model with one support vector per class.
    '''

    opts = dict(
        kernel = 'linear',
        support_vectors = [
            km.model.SupportVector([0], [1.0], [0.5, 0.25]),
            km.model.SupportVector([1], [1.0], [-0.5, 0.75]),
            km.model.SupportVector([0, 1], [1.0, 1.0], [-0.25, -0.75]),
        ],
        intercept = [0.1, 0.2, 0.3],
        n_features = 2,
        labels = ['a', 'b', 'c'],
        n_support = [1, 1, 1],
    )
    opts.update(kwargs)

    return km.model.KernelMachine(**opts)

def test_support_vector():
    '''
    Make sure support vectors expose target and magnitude.
    '''

    sv = km.model.SupportVector.from_dense([0.0, 2.0, 0.0], [-0.5])

    assert sv.indices.tolist() == [1]
    assert sv.y == -1.0
    assert sv.alpha == 0.5
    assert np.allclose(sv.to_dense(3), [0.0, 2.0, 0.0])

    with pytest.raises(km.utilities.ConfigurationError):
        km.model.SupportVector([0, 1], [1.0], [1.0])

def test_pair_coefficients():
    '''
    Make sure coefficients are laid out per one-versus-one pair.
    '''

    model = _model_3C()

    assert model.n_classes == 3
    assert model.n_pairs == 3
    assert model.pairs_.tolist() == [[0, 1], [0, 2], [1, 2]]
    assert np.allclose(model.pair_coef_, [[0.5, 0.25, 0.0], [-0.5, 0.0, 0.75], [0.0, -0.25, -0.75]])
    assert np.allclose(model.sv_, [[1.0, 0.0], [0.0, 1.0], [1.0, 1.0]])
    assert model.dual_coef_.shape == (2, 3)

def test_accessors():
    '''
    Make sure accessors return support vector data and bias.
    '''

    model = _model_3C()

    assert model.get_number_of_support_vectors() == 3
    assert np.allclose(model.get_support_vector(2), [1.0, 1.0])
    assert model.get_attribute_value(1, 1) == 1.0
    assert model.get_bias() == 0.1
    assert not model.has_calibration

def test_summary():
    '''
    Make sure summaries list kernel, classes and support vectors.
    '''

    summary = str(_model_3C())

    assert 'kernel: linear' in summary
    assert 'number of classes: 3' in summary
    assert 'number of support vectors for class b: 1' in summary

    regression = km.model.KernelMachine(
        kernel = 'rbf', svm_type = 'epsilon_svr', n_features = 1, intercept = [0.0],
        support_vectors = [km.model.SupportVector([0], [1.0], [1.0])]
    )

    assert 'number of support vectors: 1' in regression.summary()

@pytest.mark.parametrize('kwargs', [
    dict(intercept = [0.1, 0.2]),
    dict(n_support = [1, 1, 2]),
    dict(n_support = [1, 2]),
    dict(labels = ['a']),
    dict(labels = None),
    dict(n_features = 1),
    dict(svm_type = 'lasso'),
    dict(prob_a = [1.0, 1.0, 1.0]),
    dict(prob_a = [1.0], prob_b = [1.0]),
    dict(support_vectors = [
        km.model.SupportVector([0], [1.0], [0.5]),
        km.model.SupportVector([1], [1.0], [-0.5, 0.75]),
        km.model.SupportVector([0, 1], [1.0, 1.0], [-0.25, -0.75]),
    ]),
])
def test_configuration_errors(kwargs):
    '''
    Make sure inconsistent models are rejected.
    '''

    with pytest.raises(km.utilities.ConfigurationError):
        _model_3C(**kwargs)

def test_invalid_kernel():
    '''
    Make sure unknown kernels are rejected.
    '''

    with pytest.raises(km.utilities.InvalidKernel):
        _model_3C(kernel = 'laplacian')

def test_precomputed_requires_sample_index():
    '''
    Make sure precomputed kernels need training sample indices.
    '''

    with pytest.raises(km.utilities.ConfigurationError):
        km.model.KernelMachine(
            kernel = 'precomputed', svm_type = 'epsilon_svr', n_features = 4, intercept = [0.0],
            support_vectors = [km.model.SupportVector([], [], [1.0])]
        )

    model = km.model.KernelMachine(
        kernel = 'precomputed', svm_type = 'epsilon_svr', n_features = 4, intercept = [0.0],
        support_vectors = [km.model.SupportVector([], [], [1.0], sample_index = 3)]
    )

    assert model.sample_indices_.tolist() == [3]

def test_from_sklearn_multiclass():
    '''
    Make sure multiclass classifiers are imported.
    '''

    X, y = load_iris(return_X_y = True)
    clf = SVC(kernel = 'rbf', probability = True, random_state = 0).fit(X, y)
    model = km.model.KernelMachine.from_sklearn(clf)

    assert model.svm_type == 'c_svc'
    assert model.kernel == km.math.KernelType.RBF
    assert model.labels.tolist() == [0, 1, 2]
    assert model.n_support.tolist() == clf.n_support_.tolist()
    assert model.n_pairs == 3
    assert model.has_calibration
    assert np.isclose(model.gamma, clf._gamma)
    assert np.allclose(model.sv_, clf.support_vectors_)
    assert np.allclose(model.dual_coef_, clf.dual_coef_)

@pytest.mark.parametrize('Xy', ['multiclass', 'binary'])
def test_from_sklearn_uncalibrated(Xy):
    '''
    Make sure classifiers fitted with default arguments carry no calibration.
    '''

    X, y = load_iris(return_X_y = True)
    X, y = (X[y < 2], y[y < 2]) if Xy == 'binary' else (X, y)

    model = km.model.KernelMachine.from_sklearn(SVC().fit(X, y))

    assert not model.has_calibration
    assert model.prob_a is None and model.prob_b is None
    assert model.n_pairs == (1 if Xy == 'binary' else 3)

    with pytest.raises(km.utilities.CalibrationUnavailable):
        km.estimators.Calibrator(model)

def test_from_sklearn_binary():
    '''
    Make sure binary classifiers are imported with libsvm signs.
    '''

    X, y = load_iris(return_X_y = True)
    X, y = X[y < 2], y[y < 2]
    clf = NuSVC(kernel = 'linear').fit(X, y)
    model = km.model.KernelMachine.from_sklearn(clf)

    assert model.svm_type == 'nu_svc'
    assert not model.has_calibration
    assert np.allclose(model.dual_coef_, -clf.dual_coef_)
    assert np.allclose(model.intercept, -clf.intercept_)

def test_from_sklearn_sparse():
    '''
    Make sure sparse training data is imported.
    '''

    X, y = load_iris(return_X_y = True)
    clf = SVC(kernel = 'poly', degree = 2).fit(scipy.sparse.csr_matrix(X), y)
    model = km.model.KernelMachine.from_sklearn(clf)

    assert model.degree == 2
    assert np.allclose(model.sv_, clf.support_vectors_.toarray())

@pytest.mark.parametrize('estimator,svm_type', [
    (SVR(), 'epsilon_svr'),
    (OneClassSVM(nu = 0.2), 'one_class'),
])
def test_from_sklearn_single_output(estimator, svm_type):
    '''
    Make sure regression and one-class models are imported.
    '''

    X, y = make_regression(n_samples = 60, n_features = 4, random_state = 0)
    estimator.fit(X, y)
    model = km.model.KernelMachine.from_sklearn(estimator)

    assert model.svm_type == svm_type
    assert not model.is_classification
    assert model.n_pairs == 1
    assert model.intercept.shape == (1,)
    assert model.labels is None

def test_from_sklearn_errors():
    '''
    Make sure unsupported estimators are rejected.
    '''

    X, y = load_iris(return_X_y = True)

    with pytest.raises(km.utilities.ConfigurationError):
        km.model.KernelMachine.from_sklearn(LogisticRegression().fit(X, y))

    with pytest.raises(km.utilities.ConfigurationError):
        km.model.KernelMachine.from_sklearn(SVC())
