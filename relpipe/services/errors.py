"""Error payload shared by every pipeline job."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from relpipe.core.errors import ErrorCode

PipelineErrorKind = Literal[
    # user
    "invalid_event",
    "config_invalid",
    # environment
    "checkout_failed",
    "toolchain_missing",
    "toolchain_install_failed",
    "host_unsupported",
    # build
    "compile_failed",
    "lock_mismatch",
    "output_missing",
    # upload
    "upload_failed",
    "upload_auth_failed",
    "asset_exists",
    "endpoint_expired",
    # registry
    "registry_auth_failed",
    "version_exists",
    "manifest_invalid",
    "registry_failed",
    # internal
    "job_crashed",
    "dependency_failed",
]

ErrorCategory = Literal["user", "environment", "build", "upload", "registry", "internal"]

_CATEGORIES: dict[str, ErrorCategory] = {
    "invalid_event": "user",
    "config_invalid": "user",
    "checkout_failed": "environment",
    "toolchain_missing": "environment",
    "toolchain_install_failed": "environment",
    "host_unsupported": "environment",
    "compile_failed": "build",
    "lock_mismatch": "build",
    "output_missing": "build",
    "upload_failed": "upload",
    "upload_auth_failed": "upload",
    "asset_exists": "upload",
    "endpoint_expired": "upload",
    "registry_auth_failed": "registry",
    "version_exists": "registry",
    "manifest_invalid": "registry",
    "registry_failed": "registry",
    "job_crashed": "internal",
    "dependency_failed": "internal",
}

_EXIT_CODES: dict[ErrorCategory, ErrorCode] = {
    "user": ErrorCode.USER_ERROR,
    "environment": ErrorCode.ENV_ERROR,
    "build": ErrorCode.BUILD_ERROR,
    "upload": ErrorCode.UPLOAD_ERROR,
    "registry": ErrorCode.REGISTRY_ERROR,
    "internal": ErrorCode.INTERNAL_ERROR,
}


@dataclass(frozen=True, slots=True)
class PipelineError:
    kind: PipelineErrorKind
    message: str
    hint: str | None = None

    @property
    def category(self) -> ErrorCategory:
        return _CATEGORIES[self.kind]

    @property
    def exit_code(self) -> ErrorCode:
        return _EXIT_CODES[self.category]

    def pretty(self) -> str:
        if self.hint:
            return f"{self.message} (hint: {self.hint})"
        return self.message
