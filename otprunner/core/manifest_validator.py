"""Manifest validation — raw manifest.json input to a validated ``Manifest``.

Schema validation and defaulting are delegated to the pydantic model; this
module adds the cross-field rules a schema cannot express and reports
every violation at once, never one at a time.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlsplit

from pydantic import ValidationError

from otprunner.models.manifest import Manifest

logger = logging.getLogger(__name__)

ERROR_HEADER = "The following errors were found in the manifest.json file:"
VALID_DOWNLOAD_SCHEMES: tuple[str, ...] = ("http:", "https:", "s3:")

RawManifest = str | bytes | Mapping[str, Any]


class ConfigValidationError(ValueError):
    """Raised when a manifest violates the schema or a cross-field rule.

    Parameters
    ----------
    errors:
        Every violation found, in the order they were detected.
    manifest:
        The schema-valid manifest, when there is one, adjusted so the
        failure path does not attempt uploads that cannot succeed.
    """

    def __init__(self, errors: list[str], manifest: Manifest | None = None) -> None:
        self.errors = list(errors)
        self.manifest = manifest
        super().__init__(ERROR_HEADER + "\n\n" + "\n".join(self.errors))


def load_manifest(raw: str | bytes) -> dict[str, Any]:
    """Parse manifest JSON text into a mapping."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigValidationError([f"manifest.json is not valid JSON: {exc}"]) from exc
    if not isinstance(data, dict):
        raise ConfigValidationError(["manifest.json must contain a JSON object"])
    return data


def validate_manifest(raw: RawManifest) -> Manifest:
    """Validate *raw* and return the fully defaulted manifest.

    Raises
    ------
    ConfigValidationError
        With every schema and cross-field violation found.
    """
    data = load_manifest(raw) if isinstance(raw, (str, bytes)) else dict(raw)

    errors: list[str] = []
    manifest: Manifest | None = None
    try:
        manifest = Manifest.model_validate(data)
    except ValidationError as exc:
        errors.extend(_format_schema_error(err) for err in exc.errors())

    view = manifest.model_dump(by_alias=True) if manifest is not None else data
    rule_errors, clear_runner_log_upload = _check_rules(view)
    errors.extend(rule_errors)

    if manifest is not None and clear_runner_log_upload:
        manifest = manifest.model_copy(update={"upload_otp_runner_logs": False})

    if errors:
        raise ConfigValidationError(errors, manifest=manifest)

    logger.info("manifest is valid!")
    return manifest


def _format_schema_error(err: Mapping[str, Any]) -> str:
    loc = ".".join(str(part) for part in err.get("loc", ()))
    return f"`{loc}` {err.get('msg', 'is invalid')}" if loc else str(err.get("msg"))


def _scheme(uri: Any) -> str:
    return f"{urlsplit(str(uri)).scheme.lower()}:"


def _check_rules(view: Mapping[str, Any]) -> tuple[list[str], bool]:
    """Apply the cross-field rules to camelCase manifest values.

    Returns the violations and whether ``uploadOtpRunnerLogs`` must be
    cleared on the manifest attached to the error.
    """
    errors: list[str] = []
    build_graph = bool(view.get("buildGraph"))
    run_server = bool(view.get("runServer"))
    graph_obj_uri = view.get("graphObjUri")

    if not build_graph and not run_server:
        errors.append("At least one of `buildGraph` or `runServer` must be set to true")

    downloads = view.get("baseFolderDownloads") or []
    if build_graph and not downloads:
        errors.append(
            "`baseFolderDownloads` must be populated for graph build (need inputs)"
        )

    for item in downloads if isinstance(downloads, list) else []:
        uri = item.get("uri") if isinstance(item, Mapping) else None
        if uri is None:
            continue
        scheme = _scheme(uri)
        if scheme not in VALID_DOWNLOAD_SCHEMES:
            supported = ", ".join(f"`{s}`" for s in VALID_DOWNLOAD_SCHEMES)
            errors.append(
                f"The URI `{uri}` is unsupported. Supported schemes are: "
                f"{supported}. Provided scheme: `{scheme}`"
            )

    if not build_graph and not graph_obj_uri:
        errors.append("`graphObjUri` must be defined in run-server-only mode")

    if view.get("uploadGraph") and (not graph_obj_uri or _scheme(graph_obj_uri) != "s3:"):
        errors.append(
            "`graphObjUri` must be an AWS S3 URI in order to upload Graph.obj file"
        )

    clear_runner_log_upload = False
    if not view.get("s3UploadPath"):
        for key, value in view.items():
            # uploadGraph targets graphObjUri, not s3UploadPath
            if not key.startswith("upload") or key == "uploadGraph" or not value:
                continue
            errors.append(f"`s3UploadPath` must be defined if `{key}` is set to true")
            if key == "uploadOtpRunnerLogs":
                clear_runner_log_upload = True

    return errors, clear_runner_log_upload
