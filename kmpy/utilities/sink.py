'''
Result sinks receiving one prediction (and its confidences) per row.
'''

import threading
import pandas as pd

from typing import Any, Dict, Callable, Hashable

def confidence_name(label: Any) -> str:
    """Name of the confidence column for `label`, e.g. ``confidence(inside)``."""

    return f'confidence({label})'

class ResultSink:
    """Base class for sinks.

    Implementations must tolerate concurrent calls to :py:meth:`emit` from
    several worker threads.
    """

    def emit(self, row_id: Hashable, label: Any, confidences: Dict[str, float]) -> None:
        """Receive the prediction for one row.

        Parameters
        ----------
        row_id : Hashable
            Identifier of the row (its position in the input).
        label : Any
            Predicted label (categorical) or value (regression).
        confidences : Dict[str, float]
            Zero or more confidence values keyed by class label.
        """

        raise NotImplementedError('This method is not implemented in the base class.')

class MemorySink(ResultSink):
    """Collects predictions in memory.

    Attributes
    ----------
    rows_ : Dict[Hashable, Tuple[Any, Dict[str, float]]]
        Emitted rows by row identifier.
    """

    def __init__(self):
        self.rows_ = {}
        self._lock = threading.Lock()

    def emit(self, row_id: Hashable, label: Any, confidences: Dict[str, float]) -> None:
        with self._lock:
            if row_id in self.rows_:
                raise ValueError(f'Row {row_id} was emitted twice.')

            self.rows_[row_id] = (label, dict(confidences))

    def __len__(self) -> int:
        return len(self.rows_)

    def __contains__(self, row_id: Hashable) -> bool:
        return row_id in self.rows_

    def __getitem__(self, row_id: Hashable):
        return self.rows_[row_id]

    def labels(self) -> Dict[Hashable, Any]:
        """Predicted labels by row identifier."""

        with self._lock:
            return {row_id: label for row_id, (label, _) in self.rows_.items()}

    def to_frame(self) -> pd.DataFrame:
        """Export emitted rows as a data frame.

        Returns
        -------
        df : pd.DataFrame
            One row per emitted row, indexed and sorted by row identifier, with
            a ``prediction`` column and one ``confidence(<label>)`` column per
            confidence seen. Confidences a row did not emit are NaN.
        """

        with self._lock:
            records = {
                row_id: {'prediction': label, **{confidence_name(k): v for k, v in confidences.items()}}
                for row_id, (label, confidences) in self.rows_.items()
            }

        df = pd.DataFrame.from_dict(records, orient = 'index')

        if 'prediction' not in df.columns:
            df['prediction'] = pd.Series(dtype = object)

        return df.sort_index()

class CallbackSink(ResultSink):
    """Forwards every row to a callable, one call at a time.

    Parameters
    ----------
    f : Callable[[Hashable, Any, Dict[str, float]], None]
        Receives ``(row_id, label, confidences)``.
    """

    def __init__(self, f: Callable[[Hashable, Any, Dict[str, float]], None]):
        self.f = f
        self._lock = threading.Lock()

    def emit(self, row_id: Hashable, label: Any, confidences: Dict[str, float]) -> None:
        with self._lock:
            self.f(row_id, label, confidences)
