"""Mapping of platform architecture names to APK architecture names."""

_ARCH_TO_APK = {
    "i386": "x86",
    "386": "x86",
    "amd64": "x86_64",
    "arm64": "aarch64",
    "arm/v6": "armhf",
    "arm/v7": "armv7",
}


def arch_to_apk(name: str) -> str:
    """Return the APK name for a platform architecture; unknown names pass through."""
    return _ARCH_TO_APK.get(name, name)