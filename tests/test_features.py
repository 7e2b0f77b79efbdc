import numpy as np
import pytest
from ctcpy import C45Classifier

def test_sample_weights():
    # Heavier rows of class 0 keep it the majority at the root
    X = np.array([[1, 1], [1, 1], [2, 2], [2, 2], [1, 1], [2, 2]])
    y = np.array([0, 0, 1, 1, 0, 1])
    w = np.array([1, 2, 1, 1, 3, 1])

    clf = C45Classifier()
    clf.fit(X, y, sample_weight=w)

    assert np.allclose(clf.tree_.distribution.per_class, [6.0, 3.0])
    assert clf.predict([[1, 1]])[0] == 0
    assert clf.predict([[2, 2]])[0] == 1

def test_sample_weight_length_checked():
    X = np.array([[1], [2], [3]])
    y = np.array([0, 1, 1])
    with pytest.raises(ValueError):
        C45Classifier().fit(X, y, sample_weight=[1.0, 2.0])

def test_missing_values_propagation():
    # Feature 0 is the split.
    # Value < 5 -> Class 0
    # Value > 5 -> Class 1
    # Missing -> Distributed
    X = np.array([
        [2.0], [3.0], [4.0], # Class 0
        [6.0], [7.0], [8.0], # Class 1
        [np.nan]             # Missing
    ])
    y = np.array([0, 0, 0, 1, 1, 1, 0])

    clf = C45Classifier(min_samples_leaf=1)
    clf.fit(X, y)

    # Predict on knowns
    assert clf.predict([[2.0]])[0] == 0
    assert clf.predict([[8.0]])[0] == 1

    # The missing row went half to each branch, so a missing value at
    # prediction time mixes both leaves about evenly
    probs = clf.predict_proba([[np.nan]])[0]
    assert np.allclose(probs, [0.5, 0.5], atol=0.1)

def test_missing_values_as_none_in_object_arrays():
    X = np.array([[1.0, 'A'], [2.0, None], [None, 'B'], [4.0, 'B'],
                  [1.5, 'A'], [3.5, 'B']], dtype=object)
    y = np.array(['no', 'no', 'yes', 'yes', 'no', 'yes'])
    clf = C45Classifier(min_samples_leaf=1, categorical_features=[1])
    clf.fit(X, y)
    proba = clf.predict_proba([[None, None], [1.0, 'A'], [4.0, 'unseen']])
    assert proba.shape == (3, 2)
    assert np.allclose(proba.sum(axis=1), 1.0)
    assert set(clf.predict(X)) <= {'no', 'yes'}

def test_rows_with_missing_class_are_ignored():
    X = np.array([[1.0], [2.0], [3.0], [4.0], [5.0]])
    y = np.array([0, 0, 1, 1, None], dtype=object)
    clf = C45Classifier()
    clf.fit(X, y)
    assert list(clf.classes_) == [0, 1]
    assert np.isclose(clf.tree_.distribution.total, 4.0)
