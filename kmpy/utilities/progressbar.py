'''
Progress reporting for row-wise inference: a tqdm bar over joblib batches and a
thread-safe row counter that notifies an observer.
'''

import joblib
import threading
import contextlib
from tqdm.auto import tqdm

from typing import Union, Optional, Callable

@contextlib.contextmanager
def tqdm_joblib(tqdm_object):
    """
    Context manager to patch joblib to report into tqdm progress bar given as argument
    """

    class TqdmBatchCompletionCallback(joblib.parallel.BatchCompletionCallBack):
        def __call__(self, *args, **kwargs):
            tqdm_object.update(n = self.batch_size)
            return super().__call__(*args, **kwargs)

    old_batch_callback = joblib.parallel.BatchCompletionCallBack
    joblib.parallel.BatchCompletionCallBack = TqdmBatchCompletionCallback
    try:
        yield tqdm_object
    finally:
        joblib.parallel.BatchCompletionCallBack = old_batch_callback
        tqdm_object.close()

class Progressbar:
    """Simple class for progress bars that can be enabled or disabled.

    Parameters
    ----------
    enabled : bool | int, default=True
        Either whether to enable the progressbar or, if int, at which position to place it for tqdm.
    **kwargs : Any
        Additional arguments for tqdm.
    """

    def __new__(cls, enabled: Union[bool, int] = True, **kwargs):
        """Instantiate the progressbar, either as tqdm or dummy.

        Parameters
        ----------
        enabled : bool | int, default=True
            Whether to enable the progress bar.
        kwargs : Any
            Additional arguments for tqdm.

        Returns
        -------
        Union[tqdm, Progressbar]
            The progressbar context.
        """

        # check position argument
        if 'position' not in kwargs:
            kwargs['position'] = max(int(enabled) - 1, 0)

        # check leave argument
        if 'leave' not in kwargs:
            kwargs['leave'] = kwargs['position'] == 0

        # check enabled
        if enabled:
            return tqdm_joblib(tqdm(**kwargs))

        return super().__new__(cls)

    def __enter__(self) -> "Progressbar":
        """Vacant."""

        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Vacant."""

        pass

class ProgressCounter:
    """Counts completed rows across worker threads and notifies an observer.

    The observer is called with the running total whenever a multiple of
    ``steps`` is crossed and, through :py:meth:`close`, once more with the
    final total if that was not a multiple of ``steps``. Calls happen while
    holding the counter's lock, so observed totals are strictly increasing.

    Parameters
    ----------
    observer : Optional[Callable[[int], None]], default=None
        Receives completed-row counts.
    steps : int, default=2000
        Number of rows between notifications.

    Attributes
    ----------
    completed : int
        Number of rows completed so far.
    """

    def __init__(self, observer: Optional[Callable[[int], None]] = None, steps: int = 2000):
        if steps < 1:
            raise ValueError(f'`steps` must be positive, but got {steps}.')

        self.observer = observer
        self.steps = steps
        self.completed = 0
        self._reported = 0
        self._lock = threading.Lock()

    def update(self, n: int = 1) -> int:
        """Add `n` completed rows.

        Parameters
        ----------
        n : int, default=1
            Rows completed.

        Returns
        -------
        completed : int
            Running total after this update.
        """

        with self._lock:
            before = self.completed
            self.completed += n

            if self.observer is not None and self.completed // self.steps > before // self.steps:
                self._reported = self.completed
                self.observer(self.completed)

            return self.completed

    def close(self) -> int:
        """Report the final total, if it has not been reported yet.

        Returns
        -------
        completed : int
            Number of rows completed.
        """

        with self._lock:
            if self.observer is not None and self._reported != self.completed:
                self._reported = self.completed
                self.observer(self.completed)

            return self.completed
