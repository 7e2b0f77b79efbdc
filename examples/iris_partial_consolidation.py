from sklearn.datasets import load_iris
from sklearn.model_selection import cross_val_score
from ctcpy import PartiallyConsolidatedTreeClassifier

X, y = load_iris(return_X_y=True)

for pct in (0, 20, 50, 100):
    clf = PartiallyConsolidatedTreeClassifier(consolidation_percent=pct, n_jobs=-1)
    scores = cross_val_score(clf, X, y, cv=5)
    clf.fit(X, y)
    print(f"{pct:>3}% consolidated: cv accuracy {scores.mean():.3f}, "
          f"{int(clf.get_measure('consolidated_inner_nodes'))} shared internal nodes, "
          f"mean tree size {clf.get_measure('mean_tree_size'):.1f}")

clf = PartiallyConsolidatedTreeClassifier(priority_criterion="gain_ratio", consolidation_percent=50)
clf.fit(X, y)
print(clf.summary())
for name in clf.enumerate_measures():
    print(f"  {name}: {clf.get_measure(name):g}")
