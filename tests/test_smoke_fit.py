import numpy as np
from ctcpy import (C45Classifier, ConsolidatedTreeClassifier,
                   PartiallyConsolidatedTreeClassifier)

def test_classifier_smoke():
    X = np.array([[1,'A'],[2,'A'],[3,'B'],[4,'B']], dtype=object)
    y = np.array([0,0,1,1])
    clf = C45Classifier(categorical_features=[1], feature_names=['num','cat'])
    clf.fit(X,y)
    _ = clf.predict(X)
    _ = clf.get_measure("tree_size")

def test_consolidated_smoke():
    X = np.array([[1,'A'],[2,'A'],[3,'B'],[4,'B']], dtype=object)
    y = np.array([0,0,1,1])
    clf = ConsolidatedTreeClassifier(categorical_features=[1], feature_names=['num','cat'])
    clf.fit(X,y)
    _ = clf.predict(X)
    _ = clf.summary()

def test_partially_consolidated_smoke():
    X = np.array([[1,'A'],[2,'A'],[3,'B'],[4,'B']], dtype=object)
    y = np.array([0,0,1,1])
    clf = PartiallyConsolidatedTreeClassifier(categorical_features=[1], feature_names=['num','cat'])
    clf.fit(X,y)
    _ = clf.predict(X)
    _ = clf.summary()
