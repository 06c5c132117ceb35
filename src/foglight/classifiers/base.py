from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import ClassVar, Iterable, Optional, Sequence, Tuple

from foglight.codec import TYPE_A, TYPE_TXT, ResourceRecord, TXTRecord
from foglight.descriptor import ServiceDescriptor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Classification:
    """Brief: Human-readable identification of a discovered device.

    Inputs (constructor fields):
      - model_name: product/model label (e.g. "Chromecast")
      - family_name: user-assigned device name (e.g. "Living Room")

    Outputs:
      - Classification instance

    Example:
      >>> Classification("Chromecast", "Living Room").display_name
      'Chromecast (Living Room)'
    """

    model_name: Optional[str] = None
    family_name: Optional[str] = None

    @property
    def display_name(self) -> Optional[str]:
        if self.model_name and self.family_name:
            return f"{self.model_name} ({self.family_name})"
        return self.model_name or self.family_name


class BaseClassifier:
    """
    Brief: Base class for descriptor classifiers.

    Inputs:
      - None (subclasses may accept keyword configuration)

    Outputs:
      - BaseClassifier instance

    Notes:
      - classify() must be quick and must not mutate the descriptor.
      - Return None when the classifier does not recognize the device.
    """

    aliases: ClassVar[Sequence[str]] = ()

    @classmethod
    def get_aliases(cls) -> Sequence[str]:
        return tuple(getattr(cls, "aliases", ()))

    def classify(self, descriptor: ServiceDescriptor) -> Optional[Classification]:
        raise NotImplementedError


def classifier_aliases(*aliases: str):
    """Brief: Decorator to set registry aliases on a classifier class.

    Inputs:
      - *aliases: alias strings

    Outputs:
      - Callable applying the aliases to the class and returning it

    Example:
        >>> @classifier_aliases("cast")
        ... class GoogleCastClassifier(BaseClassifier):
        ...     pass
        >>> GoogleCastClassifier.aliases
        ('cast',)
    """

    def _wrap(cls: type) -> type:
        cls.aliases = tuple(aliases)
        return cls

    return _wrap


def txt_records(descriptor: ServiceDescriptor) -> Iterable[Tuple[ResourceRecord, TXTRecord]]:
    for rr in descriptor.message.records_of_type(TYPE_TXT):
        if isinstance(rr.rdata, TXTRecord):
            yield rr, rr.rdata


def first_txt(descriptor: ServiceDescriptor) -> Optional[Tuple[ResourceRecord, TXTRecord]]:
    return next(iter(txt_records(descriptor)), None)


def first_a_name(descriptor: ServiceDescriptor) -> Optional[str]:
    records = descriptor.message.records_of_type(TYPE_A)
    return records[0].name if records else None


def classify(
    descriptor: ServiceDescriptor,
    classifiers: Sequence[BaseClassifier],
) -> Optional[Classification]:
    """
    Brief: Run classifiers in order and merge their answers.

    Inputs:
      - descriptor: ServiceDescriptor to identify
      - classifiers: ordered classifier instances

    Outputs:
      - Classification whose model_name comes from the first classifier that
        supplies one and whose family_name comes from the first that supplies
        one; None when nothing matched

    Notes:
      - A classifier that raises is logged and skipped.
    """
    model: Optional[str] = None
    family: Optional[str] = None
    for classifier in classifiers:
        try:
            result = classifier.classify(descriptor)
        except Exception:
            logger.exception("Classifier %s failed for %s", type(classifier).__name__, descriptor.address)
            continue
        if result is None:
            continue
        if family is None and result.family_name:
            family = result.family_name
        if model is None and result.model_name:
            model = result.model_name
            break
    if model is None and family is None:
        return None
    return Classification(model_name=model, family_name=family)
