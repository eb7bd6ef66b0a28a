'''
A series of unit tests for kmpy.estimators.formula
'''

import pytest

import sys
import os
import math

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
import kmpy as km

import numpy as np
from sklearn.datasets import load_iris, make_regression
from sklearn.svm import SVC, SVR

'''
Setup fixtures
'''

def _linear_model(coef, intercept: float = 0.0):
    '''
    Generate a regression model with one unit support vector per coefficient.
    '''

    return km.model.KernelMachine(
        kernel = 'linear', svm_type = 'epsilon_svr', n_features = len(coef), intercept = [intercept],
        support_vectors = [km.model.SupportVector([j], [1.0], [c]) for j, c in enumerate(coef)]
    )

def _evaluate(formula: str, x: np.ndarray, names = None) -> float:
    '''
    Evaluate a formula at `x`.
    '''

    names = [f'x{j}' for j in range(x.shape[0])] if names is None else names
    scope = {'pow': pow, 'tanh': math.tanh, **{name: float(v) for name, v in zip(names, x)}}

    return eval(formula, {'__builtins__': {}}, scope)

def test_formula_linear():
    '''
    Make sure linear formulas collapse into feature weights.
    '''

    model = _linear_model([0.5, -0.3])
    formula = km.estimators.formula(model)

    assert formula == '0.5 * x0 - 0.3 * x1'
    assert np.isclose(_evaluate(formula, np.array([2.0, 2.0])), 0.4)

def test_formula_names():
    '''
    Make sure feature names are used.
    '''

    assert km.estimators.formula(_linear_model([0.5, -0.3]), feature_names = ['age', 'height']) == '0.5 * age - 0.3 * height'

    with pytest.raises(ValueError):
        km.estimators.formula(_linear_model([0.5, -0.3]), feature_names = ['age'])

def test_formula_signs():
    '''
    Make sure signs, omitted terms and intercepts are formatted.
    '''

    # negative first term
    assert km.estimators.formula(_linear_model([-0.5, 0.0], intercept = 1.5)) == '-0.5 * x0 + 1.5'

    # negligible terms vanish
    assert km.estimators.formula(_linear_model([1e-12, 2.0], intercept = -1.0)) == '2.0 * x1 - 1.0'

    # intercept only
    assert km.estimators.formula(_linear_model([0.0, 0.0], intercept = -1.5)) == '-1.5'

    # nothing at all
    assert km.estimators.formula(_linear_model([0.0, 0.0])) == '0.0'

@pytest.mark.parametrize('kernel', ['poly', 'sigmoid', 'linear'])
def test_formula_matches_decision(kernel):
    '''
    Make sure formulas evaluate to the decision function.
    '''

    X, y = make_regression(n_samples = 30, n_features = 3, random_state = 0)
    X = X / X.std()
    y = y / y.std()

    clf = SVR(kernel = kernel, degree = 2, coef0 = 0.5, gamma = 0.3).fit(X, y)
    model = km.model.KernelMachine.from_sklearn(clf)
    formula = km.estimators.formula(model)

    for i in range(5):
        assert np.isclose(_evaluate(formula, X[i]), clf.predict(X[i:i+1])[0], rtol = 1e-6, atol = 1e-8)

def test_formula_pairs():
    '''
    Make sure every one-versus-one pair can be written out.
    '''

    X, y = load_iris(return_X_y = True)
    clf = SVC(kernel = 'linear', decision_function_shape = 'ovo').fit(X, y)
    model = km.model.KernelMachine.from_sklearn(clf)
    df = clf.decision_function(X[:5])

    names = ['sl', 'sw', 'pl', 'pw']

    for pair in range(model.n_pairs):
        formula = km.estimators.formula(model, feature_names = names, pair = pair)

        for i in range(5):
            assert np.isclose(_evaluate(formula, X[i], names = names), df[i,pair], rtol = 1e-6, atol = 1e-8)

    with pytest.raises(IndexError):
        km.estimators.formula(model, pair = 3)

@pytest.mark.parametrize('kernel,message', [
    ('rbf', 'RBF kernel, no formula possible.'),
    ('precomputed', 'Precomputed kernel, no formula possible.'),
])
def test_formula_unavailable(kernel, message):
    '''
    Make sure kernels that cannot be expanded explain why.
    '''

    X, y = load_iris(return_X_y = True)
    X = X @ X.T if kernel == 'precomputed' else X

    model = km.model.KernelMachine.from_sklearn(SVC(kernel = kernel).fit(X, y))

    assert km.estimators.formula(model) == message
