import math

import numpy as np

from ctcpy.dataset import Dataset
from ctcpy.distribution import Distribution
from ctcpy.split import (C45SplitCriterion, NominalSplit, NoSplit, NumericSplit,
                         _info_gain, _split_info)


def _numeric(values, labels):
    X = np.asarray(values, dtype=float).reshape(-1, 1)
    return Dataset.from_arrays(X, np.asarray(labels))


def test_pure_node_is_not_split():
    data = _numeric([1, 2, 3, 4, 5, 6], [0, 0, 0, 0, 0, 0])
    cand = C45SplitCriterion(data).select(data)
    assert isinstance(cand.model, NoSplit)
    assert not cand.is_split


def test_small_node_is_not_split():
    data = _numeric([1, 2, 3], [0, 1, 1])
    cand = C45SplitCriterion(data, min_leaf=2).select(data)
    assert isinstance(cand.model, NoSplit)


def test_mdl_correction_lowers_the_gain():
    data = _numeric(range(1, 9), [0, 0, 0, 0, 1, 1, 1, 1])
    plain = C45SplitCriterion(data, use_mdl_correction=False).select(data)
    mdl = C45SplitCriterion(data).select(data)
    assert np.isclose(plain.info_gain, 1.0)
    # five thresholds leave at least two rows on each side
    assert np.isclose(mdl.info_gain, 1.0 - math.log2(5) / 8)
    assert plain.model == mdl.model == NumericSplit(0, 4.0)


def test_partition_spreads_missing_rows():
    X = np.array([[1.0], [2.0], [3.0], [4.0], [np.nan]])
    data = Dataset.from_arrays(X, np.array([0, 0, 1, 1, 0]))
    model = NumericSplit(0, 2.0)
    dist = Distribution.from_split(data, model)
    assert np.allclose(dist.per_class_per_bag, [[2.5, 0.0], [0.5, 2.0]])
    left, right = model.partition(data)
    assert left.n_rows == 3 and right.n_rows == 3
    assert np.isclose(left.sum_of_weights, 2.5)
    assert np.isclose(right.sum_of_weights, 2.5)


def test_unknown_values_scale_the_gain():
    bags = np.array([[2.0, 0.0], [0.0, 2.0]])
    assert np.isclose(_info_gain(bags, 4.0), 1.0)
    assert np.isclose(_info_gain(bags, 8.0), 0.5)
    # the unknown weight counts as an extra bag
    assert np.isclose(_split_info(bags, 8.0), 1.5)


def test_nominal_split_needs_two_populated_branches():
    X = np.array([["a"], ["a"], ["a"], ["b"], ["a"], ["a"]], dtype=object)
    data = Dataset.from_arrays(X, np.array([0, 0, 0, 1, 1, 1]), categorical_features=[0])
    assert C45SplitCriterion(data, min_leaf=2).select(data).model == NoSplit()
    cand = C45SplitCriterion(data, min_leaf=1).select(data)
    assert cand.model == NominalSplit(0, 2)


def test_many_valued_nominal_attributes():
    ids = np.array([[str(i)] for i in range(10)], dtype=object)
    y = np.array([0, 1] * 5)
    only_ids = Dataset.from_arrays(ids, y, categorical_features=[0])
    assert C45SplitCriterion(only_ids)._multi_val

    mixed = np.hstack([ids, np.arange(10, dtype=float).reshape(-1, 1).astype(object)])
    data = Dataset.from_arrays(mixed, y, categorical_features=[0])
    assert not C45SplitCriterion(data)._multi_val


def test_force_evaluates_given_model():
    data = _numeric(range(1, 9), [0, 0, 0, 0, 1, 1, 1, 1])
    crit = C45SplitCriterion(data)
    cand = crit.force(data, NumericSplit(0, 2.0))
    assert np.allclose(cand.distribution.per_class_per_bag, [[2, 0], [2, 4]])
    assert cand.gain_ratio > 0
    leaf = crit.force(data, NoSplit())
    assert leaf.distribution.n_bags == 1 and leaf.info_gain == 0.0
