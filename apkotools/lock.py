"""Helpers for writing lock files that pin resolved packages and repositories."""

from __future__ import annotations

from typing import Optional, Tuple

_HTTPS = "https://"
_HTTP = "http://"


def remove_label(value: str) -> str:
    """Strip leading ``@label`` tags from a repository string.

    Raises ValueError for empty input or when a label is not followed by a URL.
    """
    if value == "":
        raise ValueError("input is empty")
    while value.startswith("@"):
        parts = value.split(" ", 1)
        if len(parts) < 2:
            raise ValueError("input does not follow the format '@label url'")
        value = parts[1]
    return value


def strip_url_scheme(url: str) -> str:
    """Remove a leading ``https://`` and then a leading ``http://``."""
    if url.startswith(_HTTPS):
        url = url[len(_HTTPS):]
    if url.startswith(_HTTP):
        url = url[len(_HTTP):]
    return url


def lock_ranges(
    signature_size: int, control_size: int, data_size: int
) -> Tuple[Optional[str], str, str]:
    """Return the HTTP byte ranges of the signature, control and data sections.

    The signature range is None when the package carries no signature.
    """
    control_start = signature_size
    data_start = signature_size + control_size
    control = f"bytes={control_start}-{data_start - 1}"
    data = f"bytes={data_start}-{data_start + data_size - 1}"
    signature = f"bytes=0-{signature_size - 1}" if signature_size != 0 else None
    return signature, control, data