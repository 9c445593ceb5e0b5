"""Engine profiles — per-version command-line and log conventions.

Everything that differs between OTP major versions is data in
``ENGINE_PROFILES`` rather than branches in the supervisors, so
supporting a new major version means adding a row here.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from otprunner.models.manifest import OtpVersion


class LogMarker(BaseModel):
    """A fixed substring looked for in engine output.

    ``pattern`` may contain ``{router_name}``, filled in per run by
    ``render``.
    """

    model_config = ConfigDict(frozen=True)

    label: str
    pattern: str

    def render(self, **values: str) -> str:
        return self.pattern.format(**values)


class EngineProfile(BaseModel):
    """Command-line and log conventions of one engine major version.

    Flag templates may reference ``{target_folder}``, ``{base_folder}``
    and ``{router_name}``.
    """

    model_config = ConfigDict(frozen=True)

    version: OtpVersion
    graph_filename: str
    router_subfolder: bool
    build_flags: tuple[str, ...]
    serve_flags: tuple[str, ...]
    # Serve is ready only once every one of these has been seen.
    ready_markers: tuple[LogMarker, ...]
    # Any one of these fails the serve phase immediately.
    failure_markers: tuple[LogMarker, ...]


_LISTENING = LogMarker(label="listening", pattern="Grizzly server running")
_ROUTER_REGISTRATION_FAILED = LogMarker(
    label="router registration failure",
    pattern="Can't register router ID '{router_name}', no graph.",
)

ENGINE_PROFILES: dict[OtpVersion, EngineProfile] = {
    OtpVersion.V1: EngineProfile(
        version=OtpVersion.V1,
        graph_filename="Graph.obj",
        router_subfolder=True,
        build_flags=("--build", "{target_folder}"),
        serve_flags=(
            "--server",
            "--graphs",
            "{base_folder}",
            "--router",
            "{router_name}",
        ),
        ready_markers=(
            _LISTENING,
            LogMarker(label="graph loaded", pattern="Main graph read."),
        ),
        failure_markers=(_ROUTER_REGISTRATION_FAILED,),
    ),
    OtpVersion.V2: EngineProfile(
        version=OtpVersion.V2,
        graph_filename="graph.obj",
        router_subfolder=False,
        build_flags=(
            "--build",
            "--save",
            "--abortOnUnknownConfig",
            "{target_folder}",
        ),
        serve_flags=("--load", "{target_folder}"),
        ready_markers=(
            _LISTENING,
            LogMarker(label="graph loaded", pattern="Transit loaded."),
        ),
        failure_markers=(_ROUTER_REGISTRATION_FAILED,),
    ),
}


def get_engine_profile(version: OtpVersion) -> EngineProfile:
    """Return the profile for *version*."""
    return ENGINE_PROFILES[version]
