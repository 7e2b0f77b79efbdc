import math

import numpy as np
import pytest

from ctcpy.distribution import Distribution
from ctcpy.pruning import _norm_ppf, add_errors, estimated_errors


def test_norm_ppf():
    assert np.isclose(_norm_ppf(0.975), 1.959964, atol=1e-5)
    assert np.isclose(_norm_ppf(0.5), 0.0, atol=1e-9)
    assert np.isclose(_norm_ppf(0.75), 0.674490, atol=1e-5)


def test_add_errors_without_errors():
    assert np.isclose(add_errors(1, 0, 0.25), 0.75)
    assert np.isclose(add_errors(6, 0, 0.25), 6 * (1 - 0.25 ** (1 / 6)))


def test_add_errors_interpolates_below_one_error():
    low = add_errors(10, 0, 0.25)
    high = add_errors(10, 1, 0.25)
    assert np.isclose(add_errors(10, 0.5, 0.25), low + 0.5 * (high - low))


def test_add_errors_when_errors_reach_total():
    assert add_errors(2, 2, 0.25) == 0.0
    assert np.isclose(add_errors(3, 2.6, 0.25), 0.4)


def test_add_errors_grows_with_confidence():
    # smaller confidence factor, more pessimistic estimate
    assert add_errors(20, 3, 0.1) > add_errors(20, 3, 0.25)
    assert add_errors(0, 0, 0.25) == 0.0


def test_add_errors_matches_upper_limit():
    N, e, cf = 14.0, 5.0, 0.25
    z = _norm_ppf(1 - cf)
    f = (e + 0.5) / N
    r = (f + z * z / (2 * N) + z * math.sqrt(f / N - f * f / N + z * z / (4 * N * N))) / (1 + z * z / N)
    assert np.isclose(add_errors(N, e, cf), r * N - e)


def test_estimated_errors():
    assert estimated_errors(Distribution([[0.0, 0.0]]), 0.25) == 0.0
    dist = Distribution([[6.0, 2.0]])
    assert np.isclose(estimated_errors(dist, 0.25), 2 + add_errors(8, 2, 0.25))
