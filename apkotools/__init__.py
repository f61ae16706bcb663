"""APK index parsing, download caching, lock-file and publish helpers, package listings and dependency graphs."""

__version__ = "0.1.0"