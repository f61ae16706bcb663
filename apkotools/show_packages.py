"""Formatting of resolved package lists for display."""

from __future__ import annotations

import logging
import re
from typing import Callable, Iterable, Iterator, List, Mapping, Tuple, Union

log = logging.getLogger(__name__)

FORMAT_NAME_SPACE_VERSION = "{{ .Name }} {{ .Version }}"
FORMAT_NAME_SPACE_VERSION_WITH_SOURCE = "{{ .Name }} {{ .Version }} {{ .Source }}"
FORMAT_NAME_EQUALS_VERSION = "{{ .Name }}={{ .Version }}"
FORMAT_NAME_EQUALS_VERSION_WITH_SOURCE = "{{ .Name }}={{ .Version }} {{ .Source }}"
FORMAT_NAME_BRACKETS_VERSION = "{{ .Name }} ({{ .Version }})"
FORMAT_NAME_BRACKETS_VERSION_WITH_SOURCE = "{{ .Name }} ({{ .Version }}) {{ .Source }}"
FORMAT_PKG_LOCK = "- {{ .Name }}={{ .Version }}"
FORMAT_PKG_LOCK_WITH_SOURCE = "- {{ .Name }}={{ .Version }} # {{ .Source }}"
DEFAULT_FORMAT = FORMAT_NAME_SPACE_VERSION

FORMATS = {
    "name-version": FORMAT_NAME_SPACE_VERSION,
    "name-version-source": FORMAT_NAME_SPACE_VERSION_WITH_SOURCE,
    "name=version": FORMAT_NAME_EQUALS_VERSION,
    "name=version-source": FORMAT_NAME_EQUALS_VERSION_WITH_SOURCE,
    "name-(version)": FORMAT_NAME_BRACKETS_VERSION,
    "name-(version)-source": FORMAT_NAME_BRACKETS_VERSION_WITH_SOURCE,
    "packagelock": FORMAT_PKG_LOCK,
    "packagelock-source": FORMAT_PKG_LOCK_WITH_SOURCE,
}

_FIELDS = ("Name", "Version", "Source")
_ACTION = re.compile(r"\{\{(.*?)\}\}", re.S)
_FIELD_REF = re.compile(r"\.([A-Za-z_][A-Za-z0-9_]*)")

_Piece = Union[str, Tuple[str]]
PackageEntry = Tuple[str, str, str]


def resolve_format(name: str) -> str:
    """Return the template for a named format, or the argument itself as a template."""
    return FORMATS.get(name, name)


def _parse(template: str) -> List[_Piece]:
    pieces: List[_Piece] = []
    trim_next = False
    position = 0
    for match in _ACTION.finditer(template):
        text = template[position:match.start()]
        if "{{" in text:
            raise ValueError("failed to parse format: unexpected '{{' in text")
        body = match.group(1)
        trim_left = len(body) >= 2 and body[0] == "-" and body[1].isspace()
        trim_right = len(body) >= 2 and body[-1] == "-" and body[-2].isspace()
        if trim_left:
            body = body[1:]
        if trim_right:
            body = body[:-1]
        if trim_next:
            text = text.lstrip()
        if trim_left:
            text = text.rstrip()
        if text:
            pieces.append(text)
        ref = _FIELD_REF.fullmatch(body.strip())
        if ref is None:
            raise ValueError(f"failed to parse format: unsupported action {match.group(0)!r}")
        pieces.append((ref.group(1),))
        trim_next = trim_right
        position = match.end()
    tail = template[position:]
    if "{{" in tail:
        raise ValueError("failed to parse format: unclosed action")
    if trim_next:
        tail = tail.lstrip()
    if tail:
        pieces.append(tail)
    return pieces


def _compile(template: str) -> Callable[[str, str, str], str]:
    pieces = _parse(template)

    def render(name: str, version: str, source: str) -> str:
        values = {"Name": name, "Version": version, "Source": source}
        out = []
        for piece in pieces:
            if isinstance(piece, tuple):
                field = piece[0]
                if field not in _FIELDS:
                    raise ValueError(
                        f"failed to execute template: can't evaluate field {field}"
                    )
                out.append(values[field])
            else:
                out.append(piece)
        return "".join(out)

    return render


def format_package(template: str, name: str, version: str, source: str) -> str:
    """Render one package with a template using ``.Name``, ``.Version`` and ``.Source``."""
    return _compile(template)(name, version, source)


def format_packages(
    template: str, lists: Mapping[str, Iterable[PackageEntry]]
) -> Iterator[str]:
    """Yield one rendered line per package, architecture by architecture.

    ``lists`` maps an architecture to ``(name, version, source)`` entries. The
    template is checked before any output is produced.
    """
    render = _compile(template)
    multiple = len(lists) != 1
    for arch, packages in lists.items():
        if multiple:
            log.info("packages for %s", arch)
        for name, version, source in packages:
            yield render(name, version, source)