[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "apkotools"
version = "0.1.0"
description = "APK index parsing, download caching, lock-file helpers and dependency graph rendering for apk-based images"
requires-python = ">=3.10"
keywords = ["apk", "apkindex", "alpine", "oci", "lockfile", "packaging", "graphviz"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Archiving :: Packaging",
]
dependencies = [
    "requests",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["apkotools"]

[tool.pytest.ini_options]
addopts = "-ra"
