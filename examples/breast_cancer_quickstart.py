import numpy as np
from time import perf_counter
from sklearn.datasets import load_breast_cancer
from sklearn.model_selection import train_test_split
from ctcpy import C45Classifier, ConsolidatedTreeClassifier

data = load_breast_cancer()
X_tr, X_te, y_tr, y_te = train_test_split(
    data.data, data.target, test_size=0.3, stratify=data.target, random_state=42)
feats = list(data.feature_names)

for clf in (
    C45Classifier(feature_names=feats),
    ConsolidatedTreeClassifier(minority_distribution=50, coverage=99, feature_names=feats),
    ConsolidatedTreeClassifier(minority_distribution="stratified", feature_names=feats),
):
    t0 = perf_counter(); clf.fit(X_tr, y_tr); t = perf_counter() - t0
    print(f"{type(clf).__name__}: fit {t:.3f} s, "
          f"accuracy {clf.score(X_te, y_te):.3f}, "
          f"{int(clf.get_measure('tree_size'))} nodes, "
          f"{int(clf.get_measure('leaf_count'))} leaves")
    if hasattr(clf, "summary"):
        print(clf.summary())

# missing values go down every branch, weighted by the training share
row = X_te[0].astype(object)
row[np.argsort(-X_te[0])[:3]] = None
print("distribution with 3 missing values:", clf.predict_distribution(row))
