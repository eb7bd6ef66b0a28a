'''
Estimator orchestrating predictions from a trained kernel machine.
'''

import enum
import logging

import numpy as np
import torch
import sklearn
import scipy.special

from joblib import Parallel, delayed

from .decision import DecisionFunction
from .calibrator import Calibrator
from .formula import formula
from ..model.codec import to_dense
from ..model.kernelmachine import KernelMachine
from ..utilities import env
from ..utilities.errors import CalibrationUnavailable, FeatureIndexOutOfRange
from ..utilities.progressbar import Progressbar, ProgressCounter
from ..utilities.sink import ResultSink, MemorySink

from typing import Union, Any, Dict, List, Tuple, Optional, Sequence, Callable, Iterable

logger = logging.getLogger(__name__)

INSIDE = 'inside'
OUTSIDE = 'outside'

class Mode(str, enum.Enum):
    """Inference modes, selected per model."""

    ONE_CLASS = 'one_class'
    BINARY_SIMPLE = 'binary_simple'
    MULTICLASS_CALIBRATED = 'multiclass_calibrated'
    MULTICLASS_UNCALIBRATED = 'multiclass_uncalibrated'
    REGRESSION = 'regression'

def select_mode(model: KernelMachine, calibrated: Optional[bool] = None) -> Mode:
    """Select the inference mode of a model.

    Parameters
    ----------
    model : KernelMachine
        The kernel machine.
    calibrated : Optional[bool], default=None
        Whether to use calibrated probabilities. If None, they are used whenever
        the model carries them. If True, they are required. If False, they are
        ignored.

    Returns
    -------
    mode : Mode
        The inference mode.

    Raises
    ------
    CalibrationUnavailable
        If `calibrated` is True but the model cannot produce calibrated probabilities.
    """

    if calibrated and not (model.is_classification and model.has_calibration):
        raise CalibrationUnavailable(f'Calibrated probabilities were requested, but this {model.svm_type} model carries no calibration coefficients.')

    if model.is_one_class:
        return Mode.ONE_CLASS

    if not model.is_classification:
        return Mode.REGRESSION

    if model.has_calibration and calibrated is not False:
        return Mode.MULTICLASS_CALIBRATED

    if model.n_classes == 2:
        return Mode.BINARY_SIMPLE

    return Mode.MULTICLASS_UNCALIBRATED

def _item(value: Any) -> Any:
    return value.item() if isinstance(value, np.generic) else value

class Predictor(sklearn.base.BaseEstimator):
    """Produces predictions and confidences from a trained kernel machine.

    The inference mode is selected from the model at construction and again
    whenever :py:meth:`set_params` changes `model` or `calibrated`:

    - ``ONE_CLASS``: rows with a decision value :math:`f \\geq 0` are ``inside``,
      all others ``outside``. The only confidence, ``inside``, is the raw
      decision value: it is unbounded and not a probability.
    - ``MULTICLASS_CALIBRATED``: classification models with Platt coefficients
      (including binary ones) report calibrated class probabilities as
      confidences. The label is either the most probable class or the winner
      of one-versus-one voting (see :py:attr:`confidence_for_multiclass`).
    - ``BINARY_SIMPLE``: binary models without calibration report
      :math:`1 / (1 + e^{-f})` for the first class and :math:`1 / (1 + e^{f})`
      for the second.
    - ``MULTICLASS_UNCALIBRATED``: other classification models predict by
      voting and report a confidence of 1.0 for the winner only.
    - ``REGRESSION``: the decision value is the prediction; no confidences.

    Parameters
    ----------
    model : KernelMachine
        The kernel machine.
    confidence_for_multiclass : bool, default=True
        With calibrated probabilities, predict the most probable class (True) or the
        winner of one-versus-one voting (False).
    calibrated : Optional[bool], default=None
        Whether to use calibrated probabilities. If None, they are used when available.
        If True, they are required.
    n_jobs : Optional[int], default=None
        Number of worker threads for :py:meth:`transform`. If None, ``KMPY_N_JOBS`` or 1.
    batch_size : Optional[int], default=None
        Rows per work item in :py:meth:`transform`. If None, ``KMPY_BATCH_SIZE`` or 2000.
    progress_steps : Optional[int], default=None
        Rows between progress notifications. If None, ``KMPY_PROGRESS_STEPS`` or 2000.
    verbose : Optional[bool], default=None
        Whether to show a progress bar. If None, ``KMPY_VERBOSE`` or False.

    Attributes
    ----------
    mode_ : Mode
        The inference mode.
    decision_ : kmpy.estimators.DecisionFunction
        The decision function evaluator.
    calibrator_ : Optional[kmpy.estimators.Calibrator]
        The calibrator, if ``mode_`` is ``MULTICLASS_CALIBRATED``.

    Raises
    ------
    CalibrationUnavailable
        If `calibrated` is True but the model carries no calibration coefficients.

    See also
    --------
    kmpy.estimators.DecisionFunction, kmpy.estimators.Calibrator : The components used by this class.
    kmpy.utilities.MemorySink : Default sink of :py:meth:`transform`.

    Examples
    --------
    >>> from sklearn.datasets import load_iris
    >>> from sklearn.svm import SVC
    >>> from kmpy.model import KernelMachine
    >>> from kmpy.estimators import Predictor
    >>> X, y = load_iris(return_X_y = True)
    >>> model = KernelMachine.from_sklearn(SVC(probability = True, random_state = 0).fit(X, y))
    >>> predictor = Predictor(model)
    >>> predictor.mode_
    <Mode.MULTICLASS_CALIBRATED: 'multiclass_calibrated'>
    >>> sink = predictor.transform(X[:2])
    >>> sink.to_frame().columns.tolist()
    ['prediction', 'confidence(0)', 'confidence(1)', 'confidence(2)']
    """

    def __init__(self, model: KernelMachine, confidence_for_multiclass: bool = True, calibrated: Optional[bool] = None, n_jobs: Optional[int] = None, batch_size: Optional[int] = None, progress_steps: Optional[int] = None, verbose: Optional[bool] = None):
        self.model = model
        self.confidence_for_multiclass = confidence_for_multiclass
        self.calibrated = calibrated
        self.n_jobs = n_jobs
        self.batch_size = batch_size
        self.progress_steps = progress_steps
        self.verbose = verbose

        self._setup()

    def _setup(self):
        """Select the mode and components for the current `model` and `calibrated`."""

        self.mode_ = select_mode(self.model, calibrated = self.calibrated)
        self.decision_ = DecisionFunction(self.model)
        self.calibrator_ = Calibrator(self.model) if self.mode_ == Mode.MULTICLASS_CALIBRATED else None

        logger.debug('Selected %s mode for %s model.', self.mode_.value, self.model.svm_type)

    def set_params(self, **params: Any) -> "Predictor":
        """Set parameters, selecting the mode again.

        Raises
        ------
        CalibrationUnavailable
            If the new parameters require calibration the model does not carry.
        """

        super().set_params(**params)
        self._setup()

        return self

    def _check_X(self, X: Any) -> Union[np.ndarray, torch.Tensor]:
        """Obtain `X` as a numpy or torch matrix."""

        if not isinstance(X, (np.ndarray, torch.Tensor)):
            X = np.asarray(X, dtype = np.float64)

        if X.ndim == 1:
            raise ValueError(f'`X` must be of shape (n_samples, n_features), but got {tuple(X.shape)}. Use X[None,:] for single rows.')

        return X

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

        return self.decision_.decision_function(self._check_X(X))

    def _class_indices(self, df: Union[np.ndarray, torch.Tensor], proba: Optional[Union[np.ndarray, torch.Tensor]] = None) -> Union[np.ndarray, torch.Tensor]:
        """Index of the predicted class per sample (classification modes only)."""

        if self.mode_ == Mode.BINARY_SIMPLE:
            return (df[:,0] <= 0).long() if isinstance(df, torch.Tensor) else (df[:,0] <= 0).astype(np.int64)

        if self.mode_ == Mode.MULTICLASS_CALIBRATED and self.confidence_for_multiclass:
            return proba.argmax(dim = 1) if isinstance(proba, torch.Tensor) else proba.argmax(axis = 1)

        return self.decision_.vote(df)

    def _proba(self, df: Union[np.ndarray, torch.Tensor]) -> Union[np.ndarray, torch.Tensor]:
        """Class probabilities from decision values (classification modes only)."""

        if self.mode_ == Mode.MULTICLASS_CALIBRATED:
            return self.calibrator_.predict_proba(df)

        if self.mode_ == Mode.BINARY_SIMPLE:
            if isinstance(df, torch.Tensor):
                return torch.stack((torch.sigmoid(df[:,0]), torch.sigmoid(-df[:,0])), dim = 1)

            return np.stack((scipy.special.expit(df[:,0]), scipy.special.expit(-df[:,0])), axis = 1)

        # voting only yields the winner
        idx = self.decision_.vote(df)

        if isinstance(df, torch.Tensor):
            return torch.nn.functional.one_hot(idx, num_classes = self.model.n_classes).to(df.dtype)

        return np.eye(self.model.n_classes)[idx]

    def predict_proba(self, X: Union[np.ndarray, torch.Tensor]) -> Union[np.ndarray, torch.Tensor]:
        """Compute class probabilities.

        Parameters
        ----------
        X : np.ndarray | torch.Tensor
            Input rows of shape ``(n_samples, n_features)``.

        Returns
        -------
        p : np.ndarray | torch.Tensor
            Probabilities of shape ``(n_samples, n_classes)`` in the order of
            ``model.labels``.

        .. warning::
            Only ``MULTICLASS_CALIBRATED`` yields calibrated probabilities.
            ``BINARY_SIMPLE`` squashes the decision value and
            ``MULTICLASS_UNCALIBRATED`` returns one-hot vectors of the vote winner.
        """

        if not self.model.is_classification:
            raise ValueError(f'Models of type `{self.model.svm_type}` do not produce class probabilities.')

        return self._proba(self.decision_function(X))

    def predict(self, X: Union[np.ndarray, torch.Tensor]) -> Union[np.ndarray, torch.Tensor]:
        """Predict labels.

        Parameters
        ----------
        X : np.ndarray | torch.Tensor
            Input rows of shape ``(n_samples, n_features)``.

        Returns
        -------
        y_h : np.ndarray | torch.Tensor
            Predictions of shape ``(n_samples,)``. For the torch backend, categorical
            labels that are not numeric (including ``inside``/``outside``) are returned
            as np.ndarray.
        """

        df = self.decision_function(X)

        # regression
        if self.mode_ == Mode.REGRESSION:
            return df[:,0]

        # one-class boundary is inclusive
        if self.mode_ == Mode.ONE_CLASS:
            inside = df[:,0] >= 0
            inside = inside.cpu().numpy() if isinstance(inside, torch.Tensor) else inside

            return np.where(inside, INSIDE, OUTSIDE)

        # classification
        proba = self.calibrator_.predict_proba(df) if self.mode_ == Mode.MULTICLASS_CALIBRATED else None
        idx = self._class_indices(df, proba = proba)

        if isinstance(idx, torch.Tensor):
            labels = self.model.labels

            if np.issubdtype(labels.dtype, np.number):
                return torch.as_tensor(labels, device = idx.device)[idx]

            return labels[idx.cpu().numpy()]

        return self.model.labels[idx]

    def _outputs(self, df: np.ndarray) -> List[Tuple[Any, Dict[str, float]]]:
        """Labels and confidences per row, from numpy decision values."""

        labels = self.model.labels

        if self.mode_ == Mode.REGRESSION:
            return [(float(v), {}) for v in df[:,0]]

        if self.mode_ == Mode.ONE_CLASS:
            return [(INSIDE if v >= 0 else OUTSIDE, {INSIDE: float(v)}) for v in df[:,0]]

        proba = self._proba(df)
        idx = self._class_indices(df, proba = proba)

        if self.mode_ == Mode.MULTICLASS_UNCALIBRATED:
            # legacy behaviour: only the winner receives a confidence
            return [(_item(labels[i]), {str(labels[i]): 1.0}) for i in idx]

        names = [str(label) for label in labels]

        return [
            (_item(labels[i]), {name: float(p) for name, p in zip(names, proba[r])})
            for r, i in enumerate(idx)
        ]

    def _transform_chunk(self, rows: Sequence[Any], row_ids: range, sink: ResultSink, counter: ProgressCounter, cancel: Optional[Any], skip_invalid: bool) -> int:
        """Predict and emit rows `row_ids`, stopping early on cancellation.

        Returns
        -------
        n_emitted : int
            Number of rows emitted.
        """

        n_emitted = 0

        for row_id in row_ids:
            # cancellation is checked between rows
            if cancel is not None and cancel.is_set():
                break

            try:
                x = to_dense(rows[row_id], self.model.n_features, row_id = row_id)
            except FeatureIndexOutOfRange as e:
                if not skip_invalid:
                    raise

                logger.warning('Skipping row %s: %s', row_id, e)
                counter.update()
                continue

            label, confidences = self._outputs(self.decision_.decision_function(x[None,:]))[0]
            sink.emit(row_id, label, confidences)
            counter.update()
            n_emitted += 1

        return n_emitted

    def transform(self, X: Union[np.ndarray, torch.Tensor, Iterable[Any]], sink: Optional[ResultSink] = None, observer: Optional[Callable[[int], None]] = None, cancel: Optional[Any] = None, skip_invalid: bool = True) -> ResultSink:
        """Predict every row and emit it to a sink.

        Parameters
        ----------
        X : np.ndarray | torch.Tensor | Iterable[Any]
            Input rows, either as a matrix of shape ``(n_samples, n_features)`` or as
            an iterable of rows, where every row is a dense vector, a sequence of
            ``(index, value)`` pairs or a mapping ``{index: value}``.
        sink : Optional[ResultSink], default=None
            Receives ``(row_id, label, confidences)`` per row, where ``row_id`` is
            the position of the row in `X`. If None, a new :py:class:`~kmpy.utilities.MemorySink`.
        observer : Optional[Callable[[int], None]], default=None
            Receives the number of completed rows every ``progress_steps`` rows and at the end.
        cancel : Optional[threading.Event], default=None
            If set, remaining rows are not processed. Rows emitted before remain.
        skip_invalid : bool, default=True
            Whether rows addressing features outside of the model are skipped (and
            logged) or raise :py:class:`~kmpy.utilities.FeatureIndexOutOfRange`.

        Returns
        -------
        sink : ResultSink
            The sink.
        """

        # setup rows
        if isinstance(X, torch.Tensor):
            X = X.detach().cpu().numpy()

        rows = X if isinstance(X, np.ndarray) else list(X)

        if isinstance(rows, np.ndarray) and rows.ndim != 2:
            raise ValueError(f'`X` must be of shape (n_samples, n_features), but got {rows.shape}.')

        # setup config
        n_jobs = env.get_int('KMPY_N_JOBS', flag = self.n_jobs)
        batch_size = env.get_int('KMPY_BATCH_SIZE', flag = self.batch_size, minimum = 1)
        steps = env.get_int('KMPY_PROGRESS_STEPS', flag = self.progress_steps, minimum = 1)
        verbose = env.is_enabled('KMPY_VERBOSE', flag = self.verbose)

        # setup outputs
        sink = MemorySink() if sink is None else sink
        counter = ProgressCounter(observer = observer, steps = steps)

        n = len(rows)
        chunks = [range(s, min(s + batch_size, n)) for s in range(0, n, batch_size)]

        # predict
        context = Progressbar(enabled = verbose, desc = "Predicting...", total = len(chunks))
        with context as progress_bar:
            n_emitted = Parallel(n_jobs = n_jobs, require = 'sharedmem')(
                delayed(self._transform_chunk)(
                    rows,
                    chunk,
                    sink,
                    counter,
                    cancel,
                    skip_invalid
                )
                for chunk in chunks
            )

        completed = counter.close()

        if cancel is not None and cancel.is_set():
            logger.info('Prediction cancelled after %d of %d rows.', completed, n)

        logger.debug('Emitted %d of %d rows.', sum(n_emitted), n)

        return sink

    def formula(self, feature_names: Optional[Sequence[str]] = None, pair: int = 0) -> str:
        """Write the decision function as a formula.

        Parameters
        ----------
        feature_names : Optional[Sequence[str]], default=None
            Name of every feature. If None, ``x0``, ``x1``, ...
        pair : int, default=0
            Which one-versus-one pair to write out.

        Returns
        -------
        formula : str
            The formula, or an explanatory message for rbf and precomputed kernels.

        See also
        --------
        kmpy.estimators.formula : The underlying function.
        """

        return formula(self.model, feature_names = feature_names, pair = pair)
