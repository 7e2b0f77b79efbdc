import math

import numpy as np
import pytest
from ctcpy import ConfigurationError, Dataset, Resampler, ResamplingPolicy, SampleSet
from ctcpy.resampling import _round_half_up


def _imbalanced(n_major=90, n_minor=10, seed=0):
    rng = np.random.RandomState(seed)
    X = rng.normal(size=(n_major + n_minor, 2))
    y = np.array(["major"] * n_major + ["minor"] * n_minor, dtype=object)
    return Dataset.from_arrays(X, y)


def _three_classes(sizes=(30, 20, 10)):
    X = np.arange(sum(sizes), dtype=float).reshape(-1, 1)
    y = np.concatenate([[k] * s for k, s in enumerate(sizes)])
    return Dataset.from_arrays(X, y)


def test_default_policy_balances_two_classes():
    data = _imbalanced()
    samples = Resampler(ResamplingPolicy()).generate(data, random_state=1)
    assert isinstance(samples, SampleSet)
    # 10 minority rows, majority reduced to match; coverage of the majority decides
    assert list(samples.class_bag_sizes) == [10, 10]
    assert len(samples) == math.ceil(math.log(0.01) / math.log(1 - 10 / 90)) == 40
    assert samples.n_samples_by_coverage == 40
    for s in samples:
        assert list(s.class_counts()) == [10, 10]
    assert samples.true_coverage >= 0.99 - 1e-9


def test_samples_are_reproducible():
    data = _imbalanced()
    a = Resampler(ResamplingPolicy(n_samples=5)).generate(data, random_state=7)
    b = Resampler(ResamplingPolicy(n_samples=5)).generate(data, random_state=7)
    for sa, sb in zip(a, b):
        assert np.array_equal(sa.X, sb.X)


def test_stratified_keeps_class_proportions():
    data = _imbalanced()
    policy = ResamplingPolicy(minority_distribution="stratified", bag_size_percent=50)
    samples = Resampler(policy).generate(data, random_state=1)
    assert list(samples.class_bag_sizes) == [45, 5]
    assert samples.bag_size == 50
    assert len(samples) == math.ceil(math.log(0.01) / math.log(0.5))
    for s in samples:
        assert list(s.class_counts()) == [45, 5]
        # subsampling never repeats a row
        assert len(np.unique(s.X[:, 0])) == s.n_rows


def test_stratified_subsamples_of_seventy_percent():
    X = np.arange(100, dtype=float).reshape(-1, 1)
    y = np.array([0] * 60 + [1] * 40)
    data = Dataset.from_arrays(X, y)
    policy = ResamplingPolicy(minority_distribution="stratified", bag_size_percent=70,
                              replacement=False, n_samples=5)
    samples = Resampler(policy).generate(data, random_state=1)
    assert len(samples) == 5
    assert list(samples.class_bag_sizes) == [42, 28]
    rows = []
    for s in samples:
        assert s.n_rows == 70
        assert list(s.class_counts()) == [42, 28]
        rows.append(np.sort(s.X[:, 0]))
    # row values are the row ids, so equal sets mean identical samples
    for i in range(len(rows)):
        for j in range(i + 1, len(rows)):
            assert not np.array_equal(rows[i], rows[j])


def test_coverage_reached_for_free_distribution():
    data = _imbalanced()
    for pct in (20, 50, 90):
        policy = ResamplingPolicy(minority_distribution="free", bag_size_percent=pct)
        samples = Resampler(policy).generate(data, random_state=3)
        assert samples.true_coverage >= 0.99 - 1e-9
        assert all(s.n_rows == 100 * pct // 100 for s in samples)


def test_replacement_with_stratified_distribution():
    data = _imbalanced()
    policy = ResamplingPolicy(replacement=True, minority_distribution="stratified",
                              bag_size_percent=100)
    samples = Resampler(policy).generate(data, random_state=2)
    # ratio 1 with replacement: ceil(-ln(0.01) / 1)
    assert len(samples) == 5
    assert all(s.n_rows == 100 for s in samples)
    assert np.isclose(samples.true_coverage, 1 - math.exp(-5))


def test_full_bag_without_replacement_is_reduced():
    data = _imbalanced()
    policy = ResamplingPolicy(minority_distribution="free", bag_size_percent=100)
    samples = Resampler(policy).generate(data, random_state=1)
    assert samples.bag_size == 75
    assert any("reduced" in d for d in samples.diagnostics)


def test_unchanged_distribution_at_max_size_is_reduced():
    X = np.arange(40, dtype=float).reshape(-1, 1)
    y = np.array([0] * 20 + [1] * 20)
    data = Dataset.from_arrays(X, y)
    samples = Resampler(ResamplingPolicy()).generate(data, random_state=1)
    # 75% of 40 rows, half of them minority
    assert samples.bag_size == 30
    assert sorted(samples.class_bag_sizes) == [15, 15]
    assert samples.diagnostics


def test_minimum_number_of_samples():
    data = _imbalanced()
    policy = ResamplingPolicy(minority_distribution="free", bag_size_percent=50, coverage=10)
    samples = Resampler(policy).generate(data, random_state=1)
    assert samples.n_samples_by_coverage == 1
    assert len(samples) == 3
    assert any("below 3" in d for d in samples.diagnostics)


def test_fixed_number_of_samples():
    data = _imbalanced()
    samples = Resampler(ResamplingPolicy(n_samples=7)).generate(data, random_state=1)
    assert len(samples) == 7
    assert samples.n_samples_by_coverage == 0


def test_minority_percentage_for_two_classes():
    data = _imbalanced()
    policy = ResamplingPolicy(minority_distribution=25.0, bag_size_percent=30)
    samples = Resampler(policy).generate(data, random_state=1)
    # 30 rows per sample, 25% of them minority
    assert list(samples.class_bag_sizes) == [30 - _round_half_up(7.5), _round_half_up(7.5)]


def test_min_class_bag_size():
    data = _imbalanced()
    policy = ResamplingPolicy(minority_distribution=50.0, bag_size_percent="min_class")
    samples = Resampler(policy).generate(data, random_state=1)
    assert list(samples.class_bag_sizes) == [5, 5]


def test_more_than_two_classes_use_minority_size():
    data = _three_classes()
    samples = Resampler(ResamplingPolicy()).generate(data, random_state=1)
    assert list(samples.class_bag_sizes) == [10, 10, 10]
    for s in samples:
        assert list(s.class_counts()) == [10, 10, 10]


def test_more_than_two_classes_need_fifty_percent():
    data = _three_classes()
    with pytest.raises(ConfigurationError):
        Resampler(ResamplingPolicy(minority_distribution=30.0)).generate(data, random_state=1)


def test_tiny_class_is_oversampled():
    X = np.arange(101, dtype=float).reshape(-1, 1)
    y = np.array([0] * 100 + [1])
    data = Dataset.from_arrays(X, y)
    samples = Resampler(ResamplingPolicy(), min_leaf=2).generate(data, random_state=1)
    # floor is max(ceil(2% of 101), 2) = 3 rows
    assert samples.class_bag_sizes[1] == 3
    assert any("oversampled" in d for d in samples.diagnostics)


def test_not_enough_rows_raises():
    data = _imbalanced()
    # 95% minority in 80 rows needs 76 minority rows
    policy = ResamplingPolicy(minority_distribution=95.0, bag_size_percent=80)
    with pytest.raises(ConfigurationError):
        Resampler(policy).generate(data, random_state=1)


def test_rows_with_missing_class_are_dropped():
    X = np.arange(12, dtype=float).reshape(-1, 1)
    y = np.array([0, 1] * 5 + [None, None], dtype=object)
    data = Dataset.from_arrays(X, y)
    samples = Resampler(ResamplingPolicy(n_samples=3)).generate(data, random_state=1)
    for s in samples:
        assert (s.y >= 0).all()


def test_empty_data_gives_empty_samples():
    data = _imbalanced().empty()
    samples = Resampler(ResamplingPolicy(n_samples=3)).generate(data, random_state=1)
    assert len(samples) == 3
    assert all(s.n_rows == 0 for s in samples)
    assert samples.true_coverage == 0.0
    assert samples.diagnostics


@pytest.mark.parametrize("params", [
    {"replacement": True},
    {"replacement": True, "minority_distribution": 30.0},
    {"minority_distribution": "stratified"},
    {"minority_distribution": "free", "bag_size_percent": "min_class"},
    {"bag_size_percent": 0},
    {"bag_size_percent": 101},
    {"bag_size_percent": "huge"},
    {"minority_distribution": 0.0},
    {"minority_distribution": 100.0},
    {"minority_distribution": "balanced", "bag_size_percent": 50},
    {"coverage": 100.0},
    {"n_samples": 0},
])
def test_invalid_policies(params):
    with pytest.raises(ConfigurationError):
        ResamplingPolicy(**params)


def test_number_of_samples_formulas():
    r = Resampler(ResamplingPolicy(coverage=95))
    assert r.number_of_samples([0.5, 0.25], replacement=False) == math.ceil(
        math.log(0.05) / math.log(0.75))
    assert r.number_of_samples([0.5, 0.25], replacement=True) == math.ceil(
        -math.log(0.05) / 0.25)
    assert r.number_of_samples([0.0], replacement=False) == 0
    assert r.number_of_samples([1.0], replacement=False) == 1
