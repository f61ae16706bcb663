"""Reading and writing APKINDEX package indexes."""

from __future__ import annotations

import base64
import gzip
import io
import os
import re
import tarfile
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import BinaryIO, List, Optional, Union

APKINDEX_FILENAME = "APKINDEX"
DESCRIPTION_FILENAME = "DESCRIPTION"
SIGNATURE_PREFIX = ".SIGN."

DEFAULT_KEYRING_PATH = "/etc/apk/keys"
DEFAULT_SYSTEM_KEYRING_PATH = "/usr/share/apk/keys/"
INDEX_FILENAME = "APKINDEX.tar.gz"
REPOS_FILE_PATH = "etc/apk/repositories"
ARCH_FILE_PATH = "etc/apk/arch"
KEYS_DIR_PATH = "etc/apk/keys"
WORLD_FILE_PATH = "etc/apk/world"
INSTALLED_FILE_PATH = "lib/apk/db/installed"
SCRIPTS_FILE_PATH = "lib/apk/db/scripts.tar"
SCRIPTS_TAR_PERMS = 0o644
TRIGGERS_FILE_PATH = "lib/apk/db/triggers"
PAX_RECORDS_CHECKSUM_KEY = "APK-TOOLS.checksum.SHA1"
ALPINE_RELEASES_URL = "https://alpinelinux.org/releases.json"
XATTR_TAR_PAX_RECORDS_PREFIX = "SCHILY.xattr."

_MAX_LINE_BYTES = 1024 * 1024
_UINT64_MAX = 2**64 - 1
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_STRING_FIELDS = {
    "P": "name",
    "V": "version",
    "A": "arch",
    "L": "license",
    "T": "description",
    "o": "origin",
    "m": "maintainer",
    "U": "url",
    "c": "repo_commit",
}
_LIST_FIELDS = {"D": "dependencies", "p": "provides", "i": "install_if"}
_UINT_FIELDS = {
    "S": ("size", "size field"),
    "I": ("installed_size", "installed size field"),
    "k": ("provider_priority", "provider priority field"),
}


@dataclass
class Package:
    """One package entry of an APKINDEX."""

    name: str = ""
    version: str = ""
    arch: str = ""
    description: str = ""
    license: str = ""
    origin: str = ""
    maintainer: str = ""
    url: str = ""
    checksum: bytes = b""
    dependencies: List[str] = field(default_factory=list)
    provides: List[str] = field(default_factory=list)
    install_if: List[str] = field(default_factory=list)
    size: int = 0
    installed_size: int = 0
    provider_priority: int = 0
    build_time: Optional[datetime] = None
    build_date: int = 0
    repo_commit: str = ""

    def checksum_string(self) -> str:
        """The checksum in index form: "Q1" followed by base64 of the SHA1."""
        return "Q1" + base64.b64encode(self.checksum).decode("ascii")


@dataclass
class ApkIndex:
    """A parsed APKINDEX archive."""

    signature: bytes = b""
    description: str = ""
    packages: List[Package] = field(default_factory=list)


def _split_repeated_field(value: str) -> List[str]:
    return value.split(" ") if value else []


def _parse_uint(value: str, what: str) -> int:
    if re.fullmatch(r"[0-9]+", value) and int(value) <= _UINT64_MAX:
        return int(value)
    raise ValueError(f"cannot parse {what} {value}")


def _parse_build_time(value: str) -> int:
    if re.fullmatch(r"[+-]?[0-9]+", value):
        number = int(value)
        if _INT64_MIN <= number <= _INT64_MAX:
            return number
    raise ValueError(f"cannot parse build time {value}")


def _read_text(source: Union[str, bytes, bytearray, BinaryIO]) -> str:
    if hasattr(source, "read"):
        source = source.read()
    if isinstance(source, (bytes, bytearray, memoryview)):
        return bytes(source).decode("utf-8", errors="surrogateescape")
    return source


def _lines(text: str):
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    for line in lines:
        if line.endswith("\r"):
            line = line[:-1]
        if len(line.encode("utf-8", errors="surrogateescape")) > _MAX_LINE_BYTES:
            raise ValueError("token too long")
        yield line


def parse_package_index(source) -> List[Package]:
    """Parse an uncompressed APKINDEX from text, bytes or a readable stream.

    Entries are separated by blank lines; an entry not followed by a blank
    line is not returned.
    """
    packages: List[Package] = []
    pkg = Package()
    line_number = 1
    for line in _lines(_read_text(source)):
        if not line:
            if pkg.name:
                packages.append(pkg)
            pkg = Package()
            continue
        if len(line) < 2:
            raise ValueError(
                f"cannot parse line {line_number}: expected len >= 2, saw {line!r}"
            )
        if line[1] != ":":
            raise ValueError(f'cannot parse line {line_number}: expected ":" not found')

        token, value = line[0], line[2:]
        if token in _STRING_FIELDS:
            setattr(pkg, _STRING_FIELDS[token], value)
        elif token in _LIST_FIELDS:
            setattr(pkg, _LIST_FIELDS[token], _split_repeated_field(value))
        elif token in _UINT_FIELDS:
            attr, what = _UINT_FIELDS[token]
            setattr(pkg, attr, _parse_uint(value, what))
        elif token == "t":
            seconds = _parse_build_time(value)
            pkg.build_date = seconds
            try:
                pkg.build_time = _EPOCH + timedelta(seconds=seconds)
            except OverflowError:
                pkg.build_time = None
        elif token == "C" and value.startswith("Q1"):
            pkg.checksum = base64.b64decode(value[2:], validate=True)
        line_number += 1
    return packages


def _read_archive(archive) -> bytes:
    if isinstance(archive, (bytes, bytearray, memoryview)):
        return bytes(archive)
    if isinstance(archive, (str, os.PathLike)):
        return Path(archive).read_bytes()
    return archive.read()


def index_from_archive(archive) -> ApkIndex:
    """Read an APKINDEX.tar.gz given as bytes, a path or a binary stream."""
    data = gzip.decompress(_read_archive(archive))
    index = ApkIndex()
    with tarfile.open(fileobj=io.BytesIO(data), mode="r:") as tar:
        for member in tar:
            handle = tar.extractfile(member)
            contents = handle.read() if handle is not None else b""
            if member.name == APKINDEX_FILENAME:
                index.packages = parse_package_index(contents)
            elif member.name == DESCRIPTION_FILENAME:
                index.description = contents.decode("utf-8", errors="surrogateescape")
            elif member.name.startswith(SIGNATURE_PREFIX):
                index.signature = contents
            else:
                raise ValueError(f"unexpected file found in APKINDEX: {member.name}")
    return index


def _unix_seconds(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment - _EPOCH) // timedelta(seconds=1)


def render_package(package: Package) -> str:
    """Render one package as an APKINDEX entry, including the blank separator line."""
    lines = [
        f"C:{package.checksum_string()}",
        f"P:{package.name}",
        f"V:{package.version}",
    ]
    if package.arch:
        lines.append(f"A:{package.arch}")
    if package.size:
        lines.append(f"S:{package.size}")
    if package.installed_size:
        lines.append(f"I:{package.installed_size}")
    lines.append(f"T:{package.description}")
    if package.url:
        lines.append(f"U:{package.url}")
    if package.license:
        lines.append(f"L:{package.license}")
    if package.origin:
        lines.append(f"o:{package.origin}")
    if package.maintainer:
        lines.append(f"m:{package.maintainer}")
    if package.build_time is not None:
        lines.append(f"t:{_unix_seconds(package.build_time)}")
    if package.repo_commit:
        lines.append(f"c:{package.repo_commit}")
    if package.dependencies:
        lines.append("D:" + " ".join(package.dependencies))
    if package.install_if:
        lines.append("i:[" + " ".join(package.install_if) + "]")
    if package.provides:
        lines.append("p:" + " ".join(package.provides))
    if package.provider_priority:
        lines.append(f"k:{package.provider_priority}")
    return "\n".join(lines) + "\n\n"


def archive_from_index(index: ApkIndex) -> bytes:
    """Build a gzip-compressed tar holding APKINDEX and DESCRIPTION for an index."""
    contents = "".join(render_package(pkg) for pkg in index.packages if pkg.name)
    items = [
        (APKINDEX_FILENAME, contents.encode("utf-8", errors="surrogateescape")),
        (DESCRIPTION_FILENAME, index.description.encode("utf-8", errors="surrogateescape")),
    ]
    buffer = io.BytesIO()
    with gzip.GzipFile(fileobj=buffer, mode="wb", mtime=0) as gz, tarfile.open(
        fileobj=gz, mode="w"
    ) as tar:
        for name, payload in items:
            info = tarfile.TarInfo(name)
            info.size = len(payload)
            info.mode = 0o644
            info.mtime = 0
            tar.addfile(info, io.BytesIO(payload))
    return buffer.getvalue()