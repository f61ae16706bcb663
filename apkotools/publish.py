"""Options and argument parsing for publishing built images."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List

_ANNOTATION_KEY = re.compile(r"[a-z0-9\-.]+")


@dataclass
class PublishOptions:
    """Settings that only apply when publishing an image."""

    local: bool = False
    tags: List[str] = field(default_factory=list)


PublishOption = Callable[[PublishOptions], None]


def with_local(local: bool) -> PublishOption:
    """Option that chooses whether to publish only to the local Docker daemon."""

    def apply(options: PublishOptions) -> None:
        options.local = local

    return apply


def with_tags(*args: str) -> PublishOption:
    """Option that sets the tags to publish under."""
    tags = list(args)

    def apply(options: PublishOptions) -> None:
        options.tags = list(tags)

    return apply


def apply_publish_options(options: Iterable[PublishOption]) -> PublishOptions:
    """Build publish settings by applying options in order; later ones win."""
    result = PublishOptions()
    for option in options:
        option(result)
    return result


def parse_annotations(raw_annotations: Iterable[str]) -> Dict[str, str]:
    """Parse ``key:value`` annotation strings into a mapping.

    Raises ValueError for a missing colon, a repeated key, a malformed key or
    an empty value.
    """
    annotations: Dict[str, str] = {}
    for raw in raw_annotations:
        key, sep, value = raw.partition(":")
        if not sep:
            raise ValueError(f"unable to parse annotation: {raw}")
        if key in annotations:
            raise ValueError(f"annotation {key} defined more than once")
        if not _ANNOTATION_KEY.fullmatch(key):
            raise ValueError(f"annotation key malformed: {key}")
        if value == "":
            raise ValueError(f"annotation {key} value is empty")
        annotations[key] = value
    return annotations