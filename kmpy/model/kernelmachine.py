'''
Containers describing a trained kernel machine.
'''

import logging

from dataclasses import dataclass, field

import numpy as np
import scipy.sparse
import sklearn

from ..math.kernels import KernelType
from ..utilities.errors import ConfigurationError
from .codec import from_sparse, to_sparse

from typing import Union, Any, List, Tuple, Optional, Sequence

logger = logging.getLogger(__name__)

SVM_TYPES = ('c_svc', 'nu_svc', 'one_class', 'epsilon_svr', 'nu_svr')
CLASSIFICATION_TYPES = ('c_svc', 'nu_svc')

@dataclass(frozen = True, eq = False)
class SupportVector:
    """A support vector in sparse storage.

    Parameters
    ----------
    indices : np.ndarray
        Feature indices of non-zero entries.
    values : np.ndarray
        Values of non-zero entries.
    coef : np.ndarray
        Dual coefficients of shape ``(max(n_classes - 1, 1),)``, already
        multiplied by the target sign. For multiclass models, the support
        vector of class ``c`` uses ``coef[j - 1]`` against classes ``j > c`` and
        ``coef[j]`` against classes ``j < c``.
    sample_index : Optional[int], default=None
        Index of the training sample (required for precomputed kernels).
    """

    indices: np.ndarray
    values: np.ndarray
    coef: np.ndarray
    sample_index: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, 'indices', np.asarray(self.indices, dtype = np.int64).ravel())
        object.__setattr__(self, 'values', np.asarray(self.values, dtype = np.float64).ravel())
        object.__setattr__(self, 'coef', np.atleast_1d(np.asarray(self.coef, dtype = np.float64)).ravel())

        if self.indices.shape[0] != self.values.shape[0]:
            raise ConfigurationError(f'Support vector has {self.indices.shape[0]} indices but {self.values.shape[0]} values.')

    @classmethod
    def from_dense(cls, x: Any, coef: Any, sample_index: Optional[int] = None) -> "SupportVector":
        """Create a support vector from a dense vector."""

        indices, values = to_sparse(np.asarray(x, dtype = np.float64))

        return cls(indices, values, coef, sample_index = sample_index)

    @property
    def alpha(self) -> float:
        """Magnitude of the (first) dual coefficient."""

        return float(abs(self.coef[0]))

    @property
    def y(self) -> float:
        """Sign of the (first) dual coefficient, i.e. the target of this vector."""

        return 1.0 if self.coef[0] >= 0 else -1.0

    def to_dense(self, n_features: int) -> np.ndarray:
        """Expand into a dense vector of shape ``(n_features,)``.

        Raises
        ------
        FeatureIndexOutOfRange
            If an index lies outside of ``[0, n_features)``.
        """

        return from_sparse(self.indices, self.values, n_features)

@dataclass(frozen = True, eq = False)
class KernelMachine:
    """A trained kernel machine, as produced by libsvm-style training.

    Instances are immutable and may be shared between threads.

    Parameters
    ----------
    kernel : str | KernelType
        Kernel type (linear, poly, rbf, sigmoid, precomputed).
    support_vectors : Sequence[SupportVector]
        Support vectors. For classification, grouped by class in the order of `labels`.
    intercept : array-like
        Intercepts of shape ``(n_pairs,)``, added to the weighted kernel sum.
    n_features : int
        Dimensionality of input rows (the number of training samples for precomputed kernels).
    svm_type : {'c_svc', 'nu_svc', 'one_class', 'epsilon_svr', 'nu_svr'}, default='c_svc'
        Model type.
    labels : Optional[array-like], default=None
        Class labels of shape ``(n_classes,)``; required for classification.
    n_support : Optional[array-like], default=None
        Number of support vectors per class; required for classification.
    gamma : float, default=1.0
        Gamma parameter for poly, rbf and sigmoid.
    coef0 : float, default=0.0
        Offset for poly and sigmoid.
    degree : int, default=3
        Degree for poly.
    prob_a : Optional[array-like], default=None
        Platt slopes of shape ``(n_pairs,)``.
    prob_b : Optional[array-like], default=None
        Platt offsets of shape ``(n_pairs,)``.

    Attributes
    ----------
    sv_ : np.ndarray
        Dense support vectors of shape ``(n_vectors, n_features)`` (empty for precomputed kernels).
    sample_indices_ : np.ndarray
        Training sample index per support vector (precomputed kernels only).
    dual_coef_ : np.ndarray
        Dual coefficients of shape ``(max(n_classes - 1, 1), n_vectors)``.
    pair_coef_ : np.ndarray
        Coefficients of shape ``(n_vectors, n_pairs)`` such that the decision values
        are ``K @ pair_coef_ + intercept``.
    pairs_ : np.ndarray
        Class indices of shape ``(n_pairs, 2)`` for every one-versus-one pair.

    Raises
    ------
    ConfigurationError
        If any of the shapes are inconsistent, or a support vector exceeds ``n_features``.
    InvalidKernel
        If `kernel` is unknown.

    Notes
    -----
    For pair ``k = (i, j)``, the decision value is

    .. math::

        f_k(x) = \\sum_{s \\in S_i} \\alpha_{s,j-1} \\kappa(s, x) + \\sum_{s \\in S_j} \\alpha_{s,i} \\kappa(s, x) + b_k

    and a positive value is a vote for class ``i``. Binary, regression and
    one-class models have a single decision value.
    """

    kernel: Union[str, KernelType]
    support_vectors: Tuple[SupportVector, ...]
    intercept: np.ndarray
    n_features: int
    svm_type: str = 'c_svc'
    labels: Optional[np.ndarray] = None
    n_support: Optional[np.ndarray] = None
    gamma: float = 1.0
    coef0: float = 0.0
    degree: int = 3
    prob_a: Optional[np.ndarray] = None
    prob_b: Optional[np.ndarray] = None

    sv_: np.ndarray = field(init = False, repr = False, compare = False)
    sample_indices_: np.ndarray = field(init = False, repr = False, compare = False)
    dual_coef_: np.ndarray = field(init = False, repr = False, compare = False)
    pair_coef_: np.ndarray = field(init = False, repr = False, compare = False)
    pairs_: np.ndarray = field(init = False, repr = False, compare = False)

    def __post_init__(self):
        # normalise inputs
        setattr_ = lambda name, value: object.__setattr__(self, name, value)
        setattr_('kernel', KernelType.parse(self.kernel))
        setattr_('support_vectors', tuple(self.support_vectors))
        setattr_('intercept', np.atleast_1d(np.asarray(self.intercept, dtype = np.float64)).ravel())
        setattr_('n_features', int(self.n_features))

        if self.svm_type not in SVM_TYPES:
            raise ConfigurationError(f'Unknown svm_type `{self.svm_type}`. Expected one of {list(SVM_TYPES)}.')

        if self.n_features < 0:
            raise ConfigurationError(f'`n_features` must be non-negative, but got {self.n_features}.')

        for name in ('prob_a', 'prob_b'):
            value = getattr(self, name)
            if value is not None:
                setattr_(name, np.atleast_1d(np.asarray(value, dtype = np.float64)).ravel())

        if self.labels is not None:
            setattr_('labels', np.asarray(self.labels))

        if self.n_support is not None:
            setattr_('n_support', np.asarray(self.n_support, dtype = np.int64).ravel())

        self._check()

        # setup dense storage
        n_vectors = len(self.support_vectors)

        if self.kernel == KernelType.PRECOMPUTED:
            setattr_('sv_', np.zeros((n_vectors, 0)))
            setattr_('sample_indices_', np.array([sv.sample_index for sv in self.support_vectors], dtype = np.int64))
        else:
            setattr_('sv_', np.stack([sv.to_dense(self.n_features) for sv in self.support_vectors]) if n_vectors > 0 else np.zeros((0, self.n_features)))
            setattr_('sample_indices_', np.zeros((0,), dtype = np.int64))

        dual_coef = np.stack([sv.coef for sv in self.support_vectors], axis = 1) if n_vectors > 0 else np.zeros((max(self.n_classes - 1, 1), 0))
        setattr_('dual_coef_', dual_coef)

        # setup pairs and per-pair coefficients
        if self.is_classification:
            i, j = np.triu_indices(self.n_classes, k = 1)
            pairs = np.stack((i, j), axis = 1)

            starts = np.concatenate(([0], np.cumsum(self.n_support)))
            W = np.zeros((n_vectors, pairs.shape[0]))

            for k, (a, b) in enumerate(pairs):
                W[starts[a]:starts[a + 1], k] = dual_coef[b - 1, starts[a]:starts[a + 1]]
                W[starts[b]:starts[b + 1], k] = dual_coef[a, starts[b]:starts[b + 1]]
        else:
            pairs = np.zeros((0, 2), dtype = np.int64)
            W = dual_coef[:1].T.copy()

        setattr_('pairs_', pairs)
        setattr_('pair_coef_', W)

        logger.debug('Loaded %s model with %s kernel, %d support vectors and %d features.', self.svm_type, self.kernel.value, n_vectors, self.n_features)

    def _check(self):
        """Validate shapes, raising ConfigurationError."""

        n_vectors = len(self.support_vectors)

        if self.is_classification:
            if self.labels is None or self.n_support is None:
                raise ConfigurationError('Classification models require `labels` and `n_support`.')

            if self.labels.shape[0] < 2:
                raise ConfigurationError(f'Classification models require at least two classes, but got {self.labels.shape[0]}.')

            if self.n_support.shape[0] != self.n_classes:
                raise ConfigurationError(f'Expected {self.n_classes} entries in `n_support`, but got {self.n_support.shape[0]}.')

            if (self.n_support < 0).any() or self.n_support.sum() != n_vectors:
                raise ConfigurationError(f'`n_support` must sum to the number of support vectors ({n_vectors}), but got {self.n_support.tolist()}.')

        n_pairs = self.n_pairs
        if self.intercept.shape[0] != n_pairs:
            raise ConfigurationError(f'Expected {n_pairs} intercept(s) for {self.n_classes} classes, but got {self.intercept.shape[0]}.')

        # calibration is all or nothing
        if (self.prob_a is None) != (self.prob_b is None):
            raise ConfigurationError('`prob_a` and `prob_b` must either both be supplied or both be omitted.')

        if self.prob_a is not None and (self.prob_a.shape[0] != n_pairs or self.prob_b.shape[0] != n_pairs):
            raise ConfigurationError(f'Expected {n_pairs} calibration coefficient(s), but got {self.prob_a.shape[0]} and {self.prob_b.shape[0]}.')

        n_coef = max(self.n_classes - 1, 1)
        for s, sv in enumerate(self.support_vectors):
            if sv.coef.shape[0] != n_coef:
                raise ConfigurationError(f'Support vector {s} has {sv.coef.shape[0]} coefficient(s), but expected {n_coef}.')

            if self.kernel == KernelType.PRECOMPUTED:
                if sv.sample_index is None or not (0 <= sv.sample_index < self.n_features):
                    raise ConfigurationError(f'Support vector {s} requires a `sample_index` in [0, {self.n_features}) for precomputed kernels, but got {sv.sample_index}.')
            elif sv.indices.shape[0] > 0 and (sv.indices.min() < 0 or sv.indices.max() >= self.n_features):
                raise ConfigurationError(f'Support vector {s} addresses features outside of [0, {self.n_features}).')

    @property
    def is_classification(self) -> bool:
        """Whether the model predicts categorical labels."""

        return self.svm_type in CLASSIFICATION_TYPES

    @property
    def is_one_class(self) -> bool:
        """Whether the model is a one-class (novelty) model."""

        return self.svm_type == 'one_class'

    @property
    def n_classes(self) -> int:
        """Number of classes (2 for regression and one-class models, as in libsvm)."""

        if self.is_classification and self.labels is not None:
            return int(self.labels.shape[0])

        return 2

    @property
    def n_pairs(self) -> int:
        """Number of decision values per row."""

        if self.is_classification:
            return self.n_classes * (self.n_classes - 1) // 2

        return 1

    @property
    def has_calibration(self) -> bool:
        """Whether Platt coefficients are available."""

        return self.prob_a is not None and self.prob_b is not None

    def get_number_of_support_vectors(self) -> int:
        return len(self.support_vectors)

    def get_support_vector(self, index: int) -> np.ndarray:
        """Dense coordinates of support vector `index`."""

        return self.sv_[index].copy()

    def get_attribute_value(self, index: int, attribute: int) -> float:
        """Coordinate `attribute` of support vector `index`."""

        return float(self.sv_[index, attribute])

    def get_bias(self) -> float:
        """The first intercept, or 0.0 if there is none."""

        return float(self.intercept[0]) if self.intercept.shape[0] > 0 else 0.0

    def summary(self) -> str:
        """Human-readable description of the model.

        Returns
        -------
        summary : str
            Kernel, number of classes and number of support vectors (per class, for classification).
        """

        lines = [
            f'kernel: {self.kernel.value}',
            f'number of classes: {self.n_classes}',
        ]

        if self.is_classification:
            for label, n in zip(self.labels, self.n_support):
                lines.append(f'number of support vectors for class {label}: {n}')
        else:
            lines.append(f'number of support vectors: {len(self.support_vectors)}')

        return '\n'.join(lines)

    def __str__(self) -> str:
        return self.summary()

    @classmethod
    def from_sklearn(cls, estimator: sklearn.base.BaseEstimator) -> "KernelMachine":
        """Create a kernel machine from a fitted scikit-learn SVM.

        Parameters
        ----------
        estimator : sklearn.svm.SVC | sklearn.svm.NuSVC | sklearn.svm.OneClassSVM | sklearn.svm.SVR | sklearn.svm.NuSVR
            The fitted estimator.

        Returns
        -------
        model : KernelMachine
            The kernel machine. For binary classifiers, coefficients are negated
            such that positive decision values vote for ``classes_[0]``, as in libsvm.

        Raises
        ------
        ConfigurationError
            If the estimator is not fitted, not supported, or uses a callable kernel.
        """

        impl = getattr(estimator, '_impl', None)
        if impl not in SVM_TYPES:
            raise ConfigurationError(f'Unsupported estimator `{type(estimator).__name__}`.')

        if not hasattr(estimator, 'dual_coef_'):
            raise ConfigurationError(f'`{type(estimator).__name__}` has not been fitted yet.')

        if callable(estimator.kernel):
            raise ConfigurationError('Callable kernels cannot be interpreted.')

        # grab coefficients
        dual_coef = estimator.dual_coef_
        dual_coef = dual_coef.toarray() if scipy.sparse.issparse(dual_coef) else np.asarray(dual_coef)
        dual_coef = np.array(dual_coef, dtype = np.float64)
        intercept = np.array(estimator.intercept_, dtype = np.float64).ravel()

        labels, n_support, prob_a, prob_b = None, None, None, None

        if impl in CLASSIFICATION_TYPES:
            labels = np.asarray(estimator.classes_)
            n_support = np.asarray(estimator.n_support_)

            # undo the sign flip of binary models
            if labels.shape[0] == 2:
                dual_coef = -dual_coef
                intercept = -intercept

            # calibration is known from the fitted state, which is empty without it
            probA_ = getattr(estimator, 'probA_', None)
            probB_ = getattr(estimator, 'probB_', None)

            if probA_ is not None and probB_ is not None and np.asarray(probA_).size > 0:
                prob_a = np.asarray(probA_, dtype = np.float64)
                prob_b = np.asarray(probB_, dtype = np.float64)

        # collect support vectors
        kernel = KernelType.parse(estimator.kernel)
        support = np.asarray(estimator.support_)

        n_features = int(estimator.shape_fit_[1])

        if kernel == KernelType.PRECOMPUTED:
            support_vectors = [
                SupportVector(np.zeros((0,)), np.zeros((0,)), dual_coef[:,s], sample_index = int(support[s]))
                for s in range(support.shape[0])
            ]
        else:
            # sparse storage keeps only non-zero coordinates
            X_sv = scipy.sparse.csr_matrix(estimator.support_vectors_)
            X_sv.eliminate_zeros()

            support_vectors = []
            for s in range(X_sv.shape[0]):
                start, end = X_sv.indptr[s], X_sv.indptr[s + 1]
                support_vectors.append(
                    SupportVector(X_sv.indices[start:end], X_sv.data[start:end], dual_coef[:,s], sample_index = int(support[s]))
                )

        return cls(
            kernel = kernel,
            support_vectors = support_vectors,
            intercept = intercept,
            n_features = n_features,
            svm_type = impl,
            labels = labels,
            n_support = n_support,
            gamma = float(estimator._gamma),
            coef0 = float(estimator.coef0),
            degree = int(estimator.degree),
            prob_a = prob_a,
            prob_b = prob_b,
        )
