import numpy as np
import pytest
from sklearn.datasets import load_breast_cancer, load_iris

from ctcpy import (ConfigurationError, ConsolidatedTreeClassifier,
                   PartiallyConsolidatedTreeClassifier)
from ctcpy.consolidated import PRIORITY_CRITERIA
from ctcpy.partial import truncate_by_weight


def _iris():
    return load_iris(return_X_y=True)


def test_consolidated_classifier_on_iris():
    X, y = _iris()
    clf = ConsolidatedTreeClassifier().fit(X, y)
    assert clf.score(X, y) > 0.9
    assert clf.n_samples_ == clf.get_measure("n_samples")
    assert clf.true_coverage_ >= 0.99
    assert clf.get_measure("achieved_coverage") == clf.true_coverage_
    assert clf.get_measure("samples_used_for_coverage") == clf.n_samples_by_coverage_
    # balanced classes at maximum size: the bag size had to be reduced
    assert clf.diagnostics_
    assert "True coverage" in clf.summary()


def test_consolidated_classifier_forgets_training_rows():
    X, y = _iris()
    clf = ConsolidatedTreeClassifier().fit(X, y)
    for node in clf.tree_.nodes:
        assert node.data is None
        assert all(s.data is None for s in node.shadows)


@pytest.mark.parametrize("load", [load_iris, load_breast_cancer])
@pytest.mark.parametrize("criterion", PRIORITY_CRITERIA)
def test_full_consolidation_matches_consolidated_tree(criterion, load):
    X, y = load(return_X_y=True)
    ctc = ConsolidatedTreeClassifier().fit(X, y)
    pct = PartiallyConsolidatedTreeClassifier(priority_criterion=criterion,
                                              consolidation_percent=100).fit(X, y)
    assert pct.n_truncated_leaves_ == 0
    assert np.allclose(pct.predict_proba(X), ctc.predict_proba(X))
    assert pct.get_measure("tree_size") == ctc.get_measure("tree_size")


def test_zero_consolidation_is_bagging():
    X, y = _iris()
    clf = PartiallyConsolidatedTreeClassifier(consolidation_percent=0).fit(X, y)
    tree = clf.tree_
    assert tree.n_nodes == 1
    root = tree.nodes[0]
    assert root.is_leaf and root.truncated
    assert all(s.graft is not None for s in root.shadows)
    assert clf.n_inner_nodes_kept_ == 0
    assert clf.score(X, y) > 0.9
    # every tree is a full C4.5 tree, so the shadow trees are larger than one node
    assert clf.get_measure("mean_tree_size") > 1


def test_partial_consolidation_default():
    X, y = _iris()
    clf = PartiallyConsolidatedTreeClassifier().fit(X, y)
    proba = clf.predict_proba(X)
    assert proba.shape == (150, 3)
    assert np.allclose(proba.sum(axis=1), 1.0)
    assert clf.n_inner_nodes_kept_ <= max(clf.n_inner_nodes_target_, 0)
    stats = clf.shadow_stats()
    assert len(stats) == clf.n_samples_
    sizes = [s.tree_size for s in stats]
    assert clf.get_measure("max_tree_size") == max(sizes)
    assert clf.get_measure("min_tree_size") == min(sizes)
    assert np.isclose(clf.get_measure("mean_tree_size"), np.mean(sizes))
    assert np.isclose(clf.get_measure("std_tree_size"), np.std(sizes, ddof=1))
    assert "Partial consolidation" in clf.summary()


@pytest.mark.parametrize("criterion", ["level_by_level", "preorder", "size",
                                       "gain_ratio", "normalized_gain_ratio"])
def test_priority_criteria(criterion):
    X, y = _iris()
    clf = PartiallyConsolidatedTreeClassifier(priority_criterion=criterion,
                                              consolidation_percent=50).fit(X, y)
    assert clf.score(X, y) > 0.9
    if criterion == "level_by_level":
        assert clf.tree_.depth <= clf.n_inner_nodes_target_
    else:
        assert clf.tree_.n_inner_nodes <= clf.n_inner_nodes_target_


def test_absolute_budget():
    X, y = _iris()
    clf = PartiallyConsolidatedTreeClassifier(priority_criterion="preorder",
                                              consolidation_budget_mode="absolute",
                                              consolidation_percent=1).fit(X, y)
    assert clf.n_inner_nodes_target_ == 1
    assert clf.tree_.n_inner_nodes <= 1


def test_majority_vote():
    X, y = _iris()
    clf = PartiallyConsolidatedTreeClassifier(consolidation_percent=0, vote="majority").fit(X, y)
    proba = clf.predict_proba(X[:5])
    # hard votes of N trees
    assert np.allclose(proba * clf.n_samples_, np.round(proba * clf.n_samples_))


def test_parallel_completion_matches_sequential():
    X, y = _iris()
    seq = PartiallyConsolidatedTreeClassifier(consolidation_percent=0).fit(X, y)
    par = PartiallyConsolidatedTreeClassifier(consolidation_percent=0, n_jobs=2).fit(X, y)
    assert np.allclose(seq.predict_proba(X), par.predict_proba(X))


def test_truncate_by_weight_keeps_heaviest_nodes():
    X, y = _iris()
    tree = ConsolidatedTreeClassifier().fit(X, y).tree_
    inner = tree.n_inner_nodes
    assert inner >= 2
    root_weight = tree.nodes[0].distribution.total
    kept = truncate_by_weight(tree, 1)
    assert kept == 1
    assert tree.n_inner_nodes == 1
    assert tree.nodes[0].distribution.total == root_weight
    assert tree.truncated_leaves()


@pytest.mark.parametrize("params", [
    {"consolidation_percent": 120},
    {"consolidation_percent": -1},
    {"priority_criterion": "random"},
    {"consolidation_budget_mode": "relative"},
    {"consolidation_budget_mode": "absolute", "consolidation_percent": 2.7},
    {"vote": "soft"},
    {"replacement": True},
    {"cf": 0.9},
])
def test_configuration_errors_come_before_data_errors(params):
    # X and y have different lengths, which would be a data error
    X = np.zeros((4, 2))
    y = np.array([0, 1])
    with pytest.raises(ConfigurationError):
        PartiallyConsolidatedTreeClassifier(**params).fit(X, y)


def test_get_params_round_trip():
    clf = PartiallyConsolidatedTreeClassifier(consolidation_percent=35, vote="majority")
    params = clf.get_params()
    assert params["consolidation_percent"] == 35
    assert params["vote"] == "majority"
    assert PartiallyConsolidatedTreeClassifier(**params).get_params() == params


@pytest.mark.parametrize("estimator", [ConsolidatedTreeClassifier,
                                       PartiallyConsolidatedTreeClassifier])
def test_no_known_class_gives_an_empty_leaf(estimator):
    X = np.array([[1.0], [2.0], [3.0]])
    y = np.array([None, None, np.nan], dtype=object)
    clf = estimator().fit(X, y)
    assert clf.tree_.n_nodes == 1
    assert clf.tree_.nodes[0].distribution.is_empty()
    assert any("Original data size is 0" in d for d in clf.diagnostics_)
    assert len(clf.classes_) == 0
    assert clf.predict_proba(X).shape == (3, 0)
    with pytest.raises(ValueError):
        clf.predict(X)


def test_absolute_budget_is_a_node_count():
    X, y = _iris()
    clf = PartiallyConsolidatedTreeClassifier(priority_criterion="size",
                                              consolidation_budget_mode="absolute",
                                              consolidation_percent=2.0).fit(X, y)
    assert clf.n_inner_nodes_target_ == 2
    assert clf.tree_.n_inner_nodes <= 2
