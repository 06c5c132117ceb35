"""Built-in classifiers for common DNS-SD responders.

Each classifier looks at the record set a responder sent back and recognizes
one vendor's conventions. The TXT-based ones only consider the owner name of
the first TXT record in the message, since that names the advertised service
instance.
"""

from __future__ import annotations

from typing import Optional

from foglight.descriptor import ServiceDescriptor

from .base import (
    BaseClassifier,
    Classification,
    classifier_aliases,
    first_a_name,
    first_txt,
    txt_records,
)


class AppleTvClassifier(BaseClassifier):
    """Apple TV: instance name contains "Apple TV"; `_device-info` TXT carries the model."""

    def classify(self, descriptor: ServiceDescriptor) -> Optional[Classification]:
        first = first_txt(descriptor)
        if first is None or "Apple TV" not in first[0].name:
            return None
        for rr, txt in txt_records(descriptor):
            model = txt.get("model")
            if "_device-info" in rr.name and model:
                return Classification(model_name=f"Apple TV {model}")
        return Classification(model_name="Apple TV")


@classifier_aliases("cast", "chromecast")
class GoogleCastClassifier(BaseClassifier):
    """Google Cast: `md` is the model, `fn` the friendly name."""

    def classify(self, descriptor: ServiceDescriptor) -> Optional[Classification]:
        first = first_txt(descriptor)
        if first is None or "_googlecast" not in first[0].name:
            return None
        txt = first[1]
        model = txt.get("md") or None
        family = txt.get("fn") or None
        if model is None and family is None:
            return None
        return Classification(model_name=model, family_name=family)


@classifier_aliases("hue")
class PhilipsHueClassifier(BaseClassifier):
    def classify(self, descriptor: ServiceDescriptor) -> Optional[Classification]:
        first = first_txt(descriptor)
        if first is None or "Philips hue" not in first[0].name:
            return None
        md = first[1].get("md")
        return Classification(model_name=f"Philips hue {md}" if md else "Philips hue")


class CanonClassifier(BaseClassifier):
    def classify(self, descriptor: ServiceDescriptor) -> Optional[Classification]:
        first = first_txt(descriptor)
        if first is None or "Canon" not in first[0].name:
            return None
        ty = first[1].get("ty")
        return Classification(model_name=ty) if ty else None


class AppleHostClassifier(BaseClassifier):
    """Apple devices recognizable from their A record host name."""

    def classify(self, descriptor: ServiceDescriptor) -> Optional[Classification]:
        name = first_a_name(descriptor)
        if not name:
            return None
        if "Apple-TV" in name:
            return Classification(model_name="Apple TV")
        if "iPad" in name:
            return Classification(model_name="iPad")
        return None


class HostnameClassifier(BaseClassifier):
    """Fallback: a first fqdn label containing a space is usually a product name."""

    def classify(self, descriptor: ServiceDescriptor) -> Optional[Classification]:
        if descriptor.fqdn == descriptor.address:
            return None
        hostname = descriptor.fqdn.split(".")[0]
        if hostname and " " in hostname:
            return Classification(model_name=hostname)
        return None
