"""Lookup of classifier classes by alias or dotted import path."""

import difflib
import functools
import importlib
import inspect
import re
from typing import Dict, List, Optional, Sequence, Type

from . import builtin
from .base import BaseClassifier

DEFAULT_CLASSIFIERS: List[str] = [
    "apple_tv",
    "google_cast",
    "philips_hue",
    "canon",
    "apple_host",
    "hostname",
]

_WORD_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def _normalize(alias: str) -> str:
    return alias.strip().lower().replace("-", "_")


def default_alias(cls: Type[BaseClassifier]) -> str:
    """
    Brief: Snake-case class name without the "Classifier" suffix.

    Inputs:
      - cls: classifier class

    Outputs:
      - str: e.g. "google_cast" for GoogleCastClassifier
    """
    name = cls.__name__.removesuffix("Classifier")
    return _WORD_BOUNDARY.sub("_", name).lower()


@functools.lru_cache(maxsize=1)
def discover_classifiers() -> Dict[str, Type[BaseClassifier]]:
    """
    Brief: Map every alias of the built-in classifiers to its class.

    Inputs:
      - None

    Outputs:
      - Dict[str, Type[BaseClassifier]]: normalized alias -> class

    Example:
        >>> discover_classifiers()["cast"].__name__
        'GoogleCastClassifier'
    """
    registry: Dict[str, Type[BaseClassifier]] = {}
    for _, cls in inspect.getmembers(builtin, inspect.isclass):
        if not issubclass(cls, BaseClassifier) or cls is BaseClassifier:
            continue
        for alias in (default_alias(cls), *cls.get_aliases()):
            registry[_normalize(alias)] = cls
    return registry


def get_classifier_class(
    identifier: str,
    registry: Optional[Dict[str, Type[BaseClassifier]]] = None,
) -> Type[BaseClassifier]:
    """
    Brief: Resolve a config entry to a classifier class.

    Inputs:
      - identifier: alias ("cast") or dotted path ("pkg.mod.MyClassifier")
      - registry: alias table (defaults to discover_classifiers())

    Outputs:
      - Type[BaseClassifier]

    Raises:
      - KeyError: unknown alias (message lists close matches)
      - TypeError: the dotted path names something that is not a classifier
      - ImportError / AttributeError: the dotted path cannot be imported
    """
    ident = identifier.strip()
    if "." in ident:
        modname, _, classname = ident.rpartition(".")
        cls = getattr(importlib.import_module(modname), classname)
        if not (inspect.isclass(cls) and issubclass(cls, BaseClassifier)):
            raise TypeError(f"{identifier} is not a BaseClassifier subclass")
        return cls

    reg = registry or discover_classifiers()
    key = _normalize(ident)
    if key not in reg:
        suggestions = difflib.get_close_matches(key, list(reg), n=3)
        raise KeyError(
            f"Unknown classifier alias '{identifier}'. Did you mean: {', '.join(suggestions) or 'none'}?"
        )
    return reg[key]


def load_classifiers(identifiers: Sequence[str]) -> List[BaseClassifier]:
    """Instantiate classifiers in the given order."""
    return [get_classifier_class(ident)() for ident in identifiers]
