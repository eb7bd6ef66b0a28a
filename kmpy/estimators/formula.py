'''
Functions to write the decision function of a kernel machine as an algebraic formula.
'''

import numpy as np

from ..math.kernels import KernelType
from ..model.kernelmachine import KernelMachine

from typing import List, Tuple, Optional, Sequence, Callable

EPS = 1e-10

NO_FORMULA = {
    KernelType.RBF: 'RBF kernel, no formula possible.',
    KernelType.PRECOMPUTED: 'Precomputed kernel, no formula possible.',
}

def _number(value: float) -> str:
    return repr(float(value))

def _join(terms: Sequence[Tuple[float, Optional[str]]], eps: float = EPS) -> str:
    """Join signed terms into an expression.

    Parameters
    ----------
    terms : Sequence[Tuple[float, Optional[str]]]
        Coefficient and body of every term. Terms without body are bare numbers.
    eps : float, default=1e-10
        Coefficients with absolute value up to `eps` are omitted.

    Returns
    -------
    expression : str
        The expression, or ``'0.0'`` if every term was omitted.
    """

    out = []

    for coefficient, body in terms:
        if abs(coefficient) <= eps:
            continue

        text = _number(abs(coefficient)) if body is None else f'{_number(abs(coefficient))} * {body}'

        if len(out) == 0:
            out.append(text if coefficient > 0 else f'-{text}')
        else:
            out.append((' + ' if coefficient > 0 else ' - ') + text)

    return ''.join(out) if len(out) > 0 else '0.0'

def _inner(model: KernelMachine, x: np.ndarray, names: Sequence[str], eps: float) -> str:
    """Format ``gamma * (<x, features>) + coef0``."""

    offset = f' + {_number(model.coef0)}' if model.coef0 >= 0 else f' - {_number(abs(model.coef0))}'

    return f'{_number(model.gamma)} * ({_join(list(zip(x, names)), eps = eps)}){offset}'

def _degree(model: KernelMachine) -> str:
    return str(int(model.degree)) if float(model.degree).is_integer() else _number(model.degree)

def _formula_linear(model: KernelMachine, W: np.ndarray, b: float, names: Sequence[str], eps: float) -> str:
    # collapse support vectors into one weight per feature
    w = W @ model.sv_

    return _join(list(zip(w, names)) + [(b, None)], eps = eps)

def _formula_poly(model: KernelMachine, W: np.ndarray, b: float, names: Sequence[str], eps: float) -> str:
    terms = [
        (W[s], f'pow({_inner(model, model.sv_[s], names, eps)}, {_degree(model)})')
        for s in range(W.shape[0])
    ]

    return _join(terms + [(b, None)], eps = eps)

def _formula_sigmoid(model: KernelMachine, W: np.ndarray, b: float, names: Sequence[str], eps: float) -> str:
    terms = [
        (W[s], f'tanh({_inner(model, model.sv_[s], names, eps)})')
        for s in range(W.shape[0])
    ]

    return _join(terms + [(b, None)], eps = eps)

FORMULAS = {
    KernelType.LINEAR: _formula_linear,
    KernelType.POLY: _formula_poly,
    KernelType.SIGMOID: _formula_sigmoid,
}

def formula(model: KernelMachine, feature_names: Optional[Sequence[str]] = None, pair: int = 0, eps: float = EPS) -> str:
    """Write the decision function of one class pair as a formula.

    Parameters
    ----------
    model : KernelMachine
        The kernel machine.
    feature_names : Optional[Sequence[str]], default=None
        Name of every feature. If None, features are called ``x0``, ``x1``, ...
    pair : int, default=0
        Which one-versus-one pair to write out (always 0 for binary, regression
        and one-class models).
    eps : float, default=1e-10
        Terms with coefficients up to `eps` in absolute value are omitted.

    Returns
    -------
    formula : str
        The formula. For rbf and precomputed kernels, which cannot be
        expanded, an explanatory message is returned instead.

    Notes
    -----
    For linear kernels, support vectors collapse into one weight per feature:

    .. math::
        f(x) = \\sum_j w_j x_j + b, \\quad w_j = \\sum_s \\alpha_s y_s s_j

    For poly and sigmoid kernels, every support vector contributes a term
    ``alpha * pow(gamma * (<s, x>) + coef0, degree)`` or
    ``alpha * tanh(gamma * (<s, x>) + coef0)``, respectively. The first term
    carries no sign if positive; every later term is joined by ``' + '`` or
    ``' - '`` and written with its absolute value. The intercept comes last.
    The result is a valid Python expression given ``pow``, ``tanh`` and the
    feature names.

    Examples
    --------
    >>> from kmpy.model import KernelMachine, SupportVector
    >>> from kmpy.estimators import formula
    >>> model = KernelMachine(
    >>>     kernel = 'linear', svm_type = 'epsilon_svr', n_features = 2, intercept = [0.0],
    >>>     support_vectors = [SupportVector([0], [1.0], [0.5]), SupportVector([1], [1.0], [-0.3])]
    >>> )
    >>> formula(model, feature_names = ['a', 'b'])
    '0.5 * a - 0.3 * b'
    """

    if model.kernel in NO_FORMULA:
        return NO_FORMULA[model.kernel]

    # check names
    if feature_names is None:
        feature_names = [f'x{j}' for j in range(model.n_features)]

    if len(feature_names) != model.n_features:
        raise ValueError(f'Expected {model.n_features} feature names, but got {len(feature_names)}.')

    # check pair
    if not (0 <= pair < model.n_pairs):
        raise IndexError(f'`pair` must be in [0, {model.n_pairs}), but got {pair}.')

    W = model.pair_coef_[:,pair]
    b = float(model.intercept[pair])

    return FORMULAS[model.kernel](model, W, b, list(feature_names), eps)
