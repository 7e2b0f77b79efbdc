# ctcpy/__init__.py
"""
ctcpy: Consolidated and partially consolidated C4.5 trees (scikit-learn style).

Exports:
    - C45Classifier
    - ConsolidatedTreeClassifier
    - PartiallyConsolidatedTreeClassifier
    - ResamplingPolicy, Resampler, SampleSet
    - Dataset
    - ConfigurationError
"""
from .dataset import Dataset
from .estimators import (C45Classifier, ConsolidatedTreeClassifier,
                         PartiallyConsolidatedTreeClassifier)
from .exceptions import ConfigurationError
from .resampling import Resampler, ResamplingPolicy, SampleSet

__all__ = [
    "C45Classifier",
    "ConsolidatedTreeClassifier",
    "PartiallyConsolidatedTreeClassifier",
    "ResamplingPolicy",
    "Resampler",
    "SampleSet",
    "Dataset",
    "ConfigurationError",
]
__version__ = "0.1.0"
