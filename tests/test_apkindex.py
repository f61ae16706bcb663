import gzip
import io
import tarfile
from datetime import datetime, timezone

import pytest

from apkotools.apkindex import (
    ApkIndex,
    Package,
    archive_from_index,
    index_from_archive,
    parse_package_index,
    render_package,
)

SINGLE = """C:Q1Deb0jNytkrjPW4N/eKLZ43BwOlw=
P:a-pkg
V:1.2.3-r1
A:x86_64
S:9180
I:40960
T:A sample package
U:http://a.package.org
L:Apache-2.0
o:a-pkg
m:maintainer <[email]>
t:1600096848
c:af13bd168c9d86ede4ad1be5c4ceac79253a7e26
D:so:libc.musl-x86_64.so.1
p:thing1 thing2
i:abc xyz
k:9001

"""

MULTIPLE = """C:Q1Pi7+Lp0TdU9DNxeZKvFbOSjmncw=
P:a-pkg
V:1.2.3-r1
A:x86_64
S:9180
I:40960
T:A sample package
U:http://a.package.org
L:Apache-2.0
o:a-pkg
m:maintainer <[email]>
t:1600096848
c:af13bd168c9d86ede4ad1be5c4ceac79253a7e26
D:so:libc.musl-x86_64.so.1
p:thing1 thing2
i:abc xyz
k:9001

C:Q1Pi7+Lp0TdU9DNxeZKvFbOSjmncw=
P:b-pkg
V:1.1.1-r1
A:x86_64
S:5243
I:11392
T:Another package
U:http://b.package.org
L:Apache-2.0
o:b-pkg
m:maintainer <[email]>
t:1600096848
c:af13bd168c9d86ede4ad1be5c4ceac79253a7e26
D:so:libc.musl-x86_64.so.1
p:thing3 thing4
i:def uvw
k:9002

"""

NO_INSTALL_IF = """C:Q1Deb0jNytkrjPW4N/eKLZ43BwOlw=
P:a-pkg
V:1.2.3-r1
A:x86_64
S:9180
I:40960
T:A sample package
U:http://a.package.org
L:Apache-2.0
o:a-pkg
m:maintainer <[email]>
t:1600096848
c:af13bd168c9d86ede4ad1be5c4ceac79253a7e26
D:so:libc.musl-x86_64.so.1

"""


def _make_archive(members):
    buffer = io.BytesIO()
    with gzip.GzipFile(fileobj=buffer, mode="wb", mtime=0) as gz, tarfile.open(
        fileobj=gz, mode="w"
    ) as tar:
        for name, payload in members:
            info = tarfile.TarInfo(name)
            info.size = len(payload)
            tar.addfile(info, io.BytesIO(payload))
    return buffer.getvalue()


def _read_members(archive):
    with tarfile.open(fileobj=io.BytesIO(gzip.decompress(archive)), mode="r:") as tar:
        return {m.name: tar.extractfile(m).read() for m in tar}


def test_single_package():
    packages = parse_package_index(io.StringIO(SINGLE))
    assert len(packages) == 1
    pkg = packages[0]
    assert pkg.name == "a-pkg"
    assert pkg.version == "1.2.3-r1"
    assert pkg.arch == "x86_64"
    assert pkg.license == "Apache-2.0"
    assert pkg.description == "A sample package"
    assert pkg.origin == "a-pkg"
    assert pkg.maintainer == "maintainer <[email]>"
    assert pkg.url == "http://a.package.org"
    assert pkg.dependencies == ["so:libc.musl-x86_64.so.1"]
    assert pkg.provides == ["thing1", "thing2"]
    assert pkg.install_if == ["abc", "xyz"]
    assert pkg.size == 9180
    assert pkg.installed_size == 40960
    assert pkg.provider_priority == 9001
    assert pkg.checksum == bytes(
        [
            0xD, 0xE6, 0xF4, 0x8C, 0xDC, 0xAD, 0x92, 0xB8, 0xCF, 0x5B,
            0x83, 0x7F, 0x78, 0xA2, 0xD9, 0xE3, 0x70, 0x70, 0x3A, 0x5C,
        ]
    )
    assert pkg.checksum.hex() == "0de6f48cdcad92b8cf5b837f78a2d9e370703a5c"


def test_build_time_parsed():
    pkg = parse_package_index(SINGLE)[0]
    assert pkg.build_date == 1600096848
    assert pkg.build_time == datetime.fromtimestamp(1600096848, tz=timezone.utc)


def test_checksum_string_round_trip():
    pkg = parse_package_index(SINGLE)[0]
    assert pkg.checksum_string() == "Q1Deb0jNytkrjPW4N/eKLZ43BwOlw="


def test_multiple_packages():
    packages = parse_package_index(io.BytesIO(MULTIPLE.encode()))
    assert len(packages) == 2
    assert packages[0].name == "a-pkg"
    assert packages[1].name == "b-pkg"


def test_single_package_only_reader():
    packages = parse_package_index(io.StringIO(NO_INSTALL_IF))
    assert len(packages) == 1


def test_empty_repeated_fields():
    text = SINGLE.replace("D:so:libc.musl-x86_64.so.1\n", "D:\n").replace(
        "p:thing1 thing2\n", "p:\n"
    )
    packages = parse_package_index(text)
    assert len(packages) == 1
    assert packages[0].provides == []
    assert packages[0].dependencies == []


def test_entry_without_trailing_blank_line_is_dropped():
    assert parse_package_index("P:a-pkg\nV:1.0-r0\n") == []


def test_short_line_rejected():
    with pytest.raises(ValueError, match="expected len >= 2"):
        parse_package_index("P:a\nX\n\n")


def test_missing_colon_rejected():
    with pytest.raises(ValueError, match='expected ":" not found'):
        parse_package_index("P=a\n\n")


@pytest.mark.parametrize(
    ("line", "message"),
    [
        ("S:abc", "size field"),
        ("I:-1", "installed size field"),
        ("k:x", "provider priority field"),
        ("t:soon", "build time"),
    ],
)
def test_bad_numbers_rejected(line, message):
    with pytest.raises(ValueError, match=message):
        parse_package_index(f"P:a\n{line}\n\n")


def test_render_round_trips_text():
    pkg = parse_package_index(NO_INSTALL_IF)[0]
    assert render_package(pkg) == NO_INSTALL_IF


def test_render_then_parse_preserves_fields():
    pkg = parse_package_index(SINGLE)[0]
    reparsed = parse_package_index(render_package(pkg))[0]
    assert reparsed.name == pkg.name
    assert reparsed.provides == pkg.provides
    assert reparsed.checksum == pkg.checksum
    assert reparsed.build_time == pkg.build_time
    assert reparsed.provider_priority == pkg.provider_priority


def test_parse_from_archive():
    archive = _make_archive(
        [
            (".SIGN.RSA.signer.rsa.pub", b"signature-bytes"),
            ("DESCRIPTION", b"v3.16"),
            ("APKINDEX", MULTIPLE.encode()),
        ]
    )
    index = index_from_archive(io.BytesIO(archive))
    assert index.description == "v3.16"
    assert index.signature == b"signature-bytes"
    assert [p.name for p in index.packages] == ["a-pkg", "b-pkg"]


def test_parse_from_archive_path(tmp_path):
    path = tmp_path / "APKINDEX.tar.gz"
    path.write_bytes(_make_archive([("APKINDEX", SINGLE.encode())]))
    index = index_from_archive(path)
    assert len(index.packages) == 1
    assert index.signature == b""


def test_unexpected_file_in_archive():
    archive = _make_archive([("APKINDEX", b""), ("extra.txt", b"x")])
    with pytest.raises(ValueError, match="unexpected file found in APKINDEX: extra.txt"):
        index_from_archive(archive)


def test_archive_from_index_contents():
    index = ApkIndex(description="v3.16", packages=parse_package_index(NO_INSTALL_IF))
    members = _read_members(archive_from_index(index))
    assert members["APKINDEX"] == NO_INSTALL_IF.encode()
    assert members["DESCRIPTION"] == b"v3.16"


def test_archive_from_index_skips_nameless_packages():
    index = ApkIndex(packages=[Package(version="1.0"), Package(name="kept", version="2.0")])
    round_tripped = index_from_archive(archive_from_index(index))
    assert [p.name for p in round_tripped.packages] == ["kept"]


def test_archive_round_trip():
    original = index_from_archive(
        _make_archive([("DESCRIPTION", b"desc"), ("APKINDEX", MULTIPLE.encode())])
    )
    rebuilt = index_from_archive(archive_from_index(original))
    assert rebuilt.description == original.description
    assert [(p.name, p.version, p.size) for p in rebuilt.packages] == [
        (p.name, p.version, p.size) for p in original.packages
    ]