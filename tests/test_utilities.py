'''
A series of unit tests for kmpy.utilities
'''

import pytest

import sys
import os
import threading

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
import kmpy as km

import numpy as np
import pandas as pd

def test_env_get_int(monkeypatch):
    '''
    Make sure integer settings resolve flag, environment and defaults.
    '''

    monkeypatch.delenv('KMPY_BATCH_SIZE', raising = False)
    assert km.utilities.env.get_int('KMPY_BATCH_SIZE') == 2000

    monkeypatch.setenv('KMPY_BATCH_SIZE', '64')
    assert km.utilities.env.get_int('KMPY_BATCH_SIZE') == 64
    assert km.utilities.env.get_int('KMPY_BATCH_SIZE', flag = 8) == 8

    monkeypatch.setenv('KMPY_BATCH_SIZE', 'many')
    with pytest.raises(ValueError):
        km.utilities.env.get_int('KMPY_BATCH_SIZE')

    with pytest.raises(ValueError):
        km.utilities.env.get_int('KMPY_BATCH_SIZE', flag = 0, minimum = 1)

def test_env_is_enabled(monkeypatch):
    '''
    Make sure boolean settings resolve flag, environment and defaults.
    '''

    monkeypatch.delenv('KMPY_VERBOSE', raising = False)
    assert not km.utilities.env.is_enabled('KMPY_VERBOSE')
    assert km.utilities.env.is_enabled('KMPY_VERBOSE', default = True)

    monkeypatch.setenv('KMPY_VERBOSE', 'Yes')
    assert km.utilities.env.is_enabled('KMPY_VERBOSE')
    assert not km.utilities.env.is_enabled('KMPY_VERBOSE', flag = False)

def test_memory_sink():
    '''
    Make sure memory sinks collect rows once each.
    '''

    sink = km.utilities.MemorySink()
    sink.emit(1, 'b', {'a': 0.25, 'b': 0.75})
    sink.emit(0, 'a', {'a': 0.5, 'b': 0.5})

    assert len(sink) == 2
    assert 1 in sink
    assert sink.labels() == {1: 'b', 0: 'a'}

    with pytest.raises(ValueError):
        sink.emit(1, 'a', {})

    df = sink.to_frame()

    assert isinstance(df, pd.DataFrame)
    assert df.index.tolist() == [0, 1]
    assert df['prediction'].tolist() == ['a', 'b']
    assert df['confidence(b)'].tolist() == [0.5, 0.75]

def test_memory_sink_empty():
    '''
    Make sure empty sinks export an empty frame.
    '''

    df = km.utilities.MemorySink().to_frame()

    assert len(df) == 0
    assert 'prediction' in df.columns

def test_callback_sink():
    '''
    Make sure callback sinks forward rows.
    '''

    rows = []
    sink = km.utilities.CallbackSink(lambda row_id, label, confidences: rows.append((row_id, label, confidences)))
    sink.emit('r0', 1.5, {})

    assert rows == [('r0', 1.5, {})]

    with pytest.raises(NotImplementedError):
        km.utilities.ResultSink().emit(0, 'a', {})

def test_confidence_name():
    '''
    Make sure confidence columns are named after labels.
    '''

    assert km.utilities.confidence_name('inside') == 'confidence(inside)'
    assert km.utilities.confidence_name(2) == 'confidence(2)'

def test_progress_counter():
    '''
    Make sure progress is reported every few rows and at the end.
    '''

    counts = []
    counter = km.utilities.ProgressCounter(observer = counts.append, steps = 3)

    for _ in range(7):
        counter.update()

    assert counts == [3, 6]
    assert counter.close() == 7
    assert counts == [3, 6, 7]

    # nothing new to report
    counter.close()
    assert counts == [3, 6, 7]

    with pytest.raises(ValueError):
        km.utilities.ProgressCounter(steps = 0)

def test_progress_counter_threads():
    '''
    Make sure concurrent updates are counted exactly once and reported in order.
    '''

    counts = []
    counter = km.utilities.ProgressCounter(observer = counts.append, steps = 100)

    def _work():
        for _ in range(1000):
            counter.update()

    threads = [threading.Thread(target = _work) for _ in range(8)]
    for thread in threads: thread.start()
    for thread in threads: thread.join()

    assert counter.close() == 8000
    assert counts == list(range(100, 8001, 100))

def test_feature_index_out_of_range():
    '''
    Make sure out-of-range errors are index errors that carry context.
    '''

    e = km.utilities.FeatureIndexOutOfRange(12, 10, row_id = 3)

    assert isinstance(e, IndexError)
    assert (e.index, e.n_features, e.row_id) == (12, 10, 3)
    assert str(e) == 'Feature index 12 in row 3 is outside of [0, 10).'

    assert issubclass(km.utilities.InvalidKernel, km.utilities.ConfigurationError)
    assert issubclass(km.utilities.ConfigurationError, ValueError)
