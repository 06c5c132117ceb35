"""Pluggable classification of discovered services into display names."""

from .base import BaseClassifier, Classification, classifier_aliases, classify
from .registry import (
    DEFAULT_CLASSIFIERS,
    discover_classifiers,
    get_classifier_class,
    load_classifiers,
)

__all__ = [
    "BaseClassifier",
    "Classification",
    "DEFAULT_CLASSIFIERS",
    "classifier_aliases",
    "classify",
    "discover_classifiers",
    "get_classifier_class",
    "load_classifiers",
]
