import pytest

from apkotools.show_packages import (
    DEFAULT_FORMAT,
    FORMATS,
    format_package,
    format_packages,
    resolve_format,
)


def test_resolve_known_format():
    assert resolve_format("name=version") == "{{ .Name }}={{ .Version }}"
    assert resolve_format("packagelock-source") == "- {{ .Name }}={{ .Version }} # {{ .Source }}"


def test_resolve_unknown_format_is_template():
    custom = "{{ .Source }}"
    assert resolve_format(custom) == custom


def test_default_format_is_name_version():
    assert resolve_format("name-version") == DEFAULT_FORMAT


def test_format_package_fields():
    line = format_package(FORMATS["name-(version)-source"], "busybox", "1.36.1-r0", "repo/busybox.apk")
    assert line == "busybox (1.36.1-r0) repo/busybox.apk"


def test_format_package_packagelock():
    assert format_package(FORMATS["packagelock"], "zlib", "1.3-r2", "src") == "- zlib=1.3-r2"


def test_trim_markers():
    assert format_package("{{ .Name }} ,  {{- .Version }}", "a", "b", "c") == "a ,b"


def test_unknown_field_fails():
    with pytest.raises(ValueError, match="Arch"):
        format_package("{{ .Arch }}", "a", "b", "c")


def test_unclosed_action_fails():
    with pytest.raises(ValueError, match="parse"):
        format_package("{{ .Name ", "a", "b", "c")


def test_invalid_template_fails_before_output():
    with pytest.raises(ValueError):
        list(format_packages("{{ if }}", {}))


def test_format_packages_order_and_count():
    lists = {
        "x86_64": [("a", "1", "s1"), ("b", "2", "s2")],
        "aarch64": [("c", "3", "s3")],
    }
    lines = list(format_packages(FORMATS["name=version"], lists))
    assert lines == ["a=1", "b=2", "c=3"]


def test_format_packages_each_line_contains_source():
    lists = {"x86_64": [("a", "1", "src-a"), ("b", "2", "src-b")]}
    lines = list(format_packages(FORMATS["name-version-source"], lists))
    assert [line.split(" ")[-1] for line in lines] == ["src-a", "src-b"]