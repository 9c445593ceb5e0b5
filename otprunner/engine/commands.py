"""Engine command lines for the build and serve phases."""

from __future__ import annotations

import math
import os

from otprunner.config import RunnerSettings, settings as default_settings
from otprunner.models.engine import get_engine_profile
from otprunner.models.manifest import Manifest


def total_memory_bytes() -> int:
    """Physical memory of this host in bytes."""
    return os.sysconf("SC_PAGE_SIZE") * os.sysconf("SC_PHYS_PAGES")


def engine_memory_kb(
    total_bytes: int,
    *,
    reserved_kb: int,
    min_kb: int,
) -> int:
    """Heap for the engine: everything but the OS reserve, with a floor."""
    return max(math.floor(total_bytes / 1000 - reserved_kb + 0.5), min_kb)


def base_engine_args(
    jar_file: str,
    *,
    total_bytes: int | None = None,
    settings: RunnerSettings | None = None,
) -> list[str]:
    """JVM arguments shared by every engine invocation."""
    settings = settings or default_settings
    if total_bytes is None:
        total_bytes = total_memory_bytes()
    memory = engine_memory_kb(
        total_bytes,
        reserved_kb=settings.reserved_system_memory_kb,
        min_kb=settings.min_engine_memory_kb,
    )
    return ["-jar", f"-Xmx{memory}k", jar_file]


def _render_flags(flags: tuple[str, ...], manifest: Manifest) -> list[str]:
    values = {
        "target_folder": str(manifest.target_folder),
        "base_folder": manifest.base_folder,
        "router_name": manifest.router_name,
    }
    return [flag.format(**values) for flag in flags]


def build_args(manifest: Manifest, **kwargs) -> list[str]:
    """Arguments for a graph build with the manifest's engine version."""
    profile = get_engine_profile(manifest.otp_version)
    return base_engine_args(manifest.jar_file, **kwargs) + _render_flags(
        profile.build_flags, manifest
    )


def serve_args(manifest: Manifest, **kwargs) -> list[str]:
    """Arguments for starting a server with the manifest's engine version."""
    profile = get_engine_profile(manifest.otp_version)
    return base_engine_args(manifest.jar_file, **kwargs) + _render_flags(
        profile.serve_flags, manifest
    )
