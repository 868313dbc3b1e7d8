"""Asset publisher: attach a built binary to the release.

One POST per asset to the release's upload endpoint, with no retry and no
read-back. A second upload under the same name is rejected by the release
service (``asset_exists``) instead of overwriting.
"""

from __future__ import annotations

import json

from relpipe.core.result import Err, Ok, Result
from relpipe.core.secrets import Secret
from relpipe.core.structured import as_str_dict, get_int, get_str
from relpipe.output.console import ConsoleProtocol, Style
from relpipe.services.errors import PipelineError
from relpipe.services.event import expand_upload_url
from relpipe.services.http import HttpClient, HttpError, HttpResponse
from relpipe.services.model import BuildArtifact, ReleaseAsset, ReleaseEvent

_GITHUB_ACCEPT = "application/vnd.github+json"
_GITHUB_API_VERSION = "2022-11-28"


class AssetPublisher:
    def __init__(self, *, token: Secret | None, http: HttpClient) -> None:
        self._token = token
        self._http = http

    def publish(
        self,
        artifact: BuildArtifact,
        *,
        event: ReleaseEvent,
        console: ConsoleProtocol,
        dry_run: bool = False,
    ) -> Result[ReleaseAsset, PipelineError]:
        name = artifact.target.asset_name
        content_type = artifact.content_type
        url = expand_upload_url(event.upload_url, name=name)

        console.print(f"POST {url} ({content_type})", Style.DIM)
        if dry_run:
            return Ok(
                ReleaseAsset(
                    name=name,
                    content_type=content_type,
                    size=artifact.size,
                    release_id=event.release_id,
                )
            )

        if not self._token:
            return Err(
                PipelineError(
                    kind="upload_auth_failed",
                    message="no upload token provided",
                    hint="Set GITHUB_TOKEN (or upload.token_env)",
                )
            )

        try:
            data = artifact.path.read_bytes()
        except OSError as e:
            return Err(
                PipelineError(
                    kind="upload_failed",
                    message=f"cannot read artifact {artifact.path}: {e}",
                )
            )

        headers = {
            "Authorization": f"Bearer {self._token.reveal()}",
            "Accept": _GITHUB_ACCEPT,
            "X-GitHub-Api-Version": _GITHUB_API_VERSION,
            "Content-Type": content_type,
            "Content-Length": str(len(data)),
        }
        result = self._http.post_bytes(url, data, headers)
        if isinstance(result, Err):
            return Err(_classify_upload_error(result.error, name))

        return Ok(_parse_asset(result.value, name, content_type, len(data), event.release_id))


def _parse_asset(
    response: HttpResponse, name: str, content_type: str, size: int, release_id: int
) -> ReleaseAsset:
    try:
        obj: object = json.loads(response.text) if response.body else None
    except json.JSONDecodeError:
        obj = None
    data = as_str_dict(obj) or {}
    return ReleaseAsset(
        name=get_str(data, "name") or name,
        content_type=get_str(data, "content_type") or content_type,
        size=get_int(data, "size") or size,
        release_id=release_id,
        url=get_str(data, "browser_download_url"),
    )


def _classify_upload_error(error: HttpError, name: str) -> PipelineError:
    if error.status == 422 and "already_exists" in error.body:
        return PipelineError(
            kind="asset_exists",
            message=f"release already has an asset named {name}",
            hint="Delete the existing asset before re-running this job",
        )
    if error.status in (401, 403):
        return PipelineError(
            kind="upload_auth_failed",
            message=f"upload of {name} was not authorized ({error.status})",
            hint="Check the upload token's contents:write permission",
        )
    if error.status in (404, 410):
        return PipelineError(
            kind="endpoint_expired",
            message=f"release upload endpoint no longer accepts uploads ({error.status})",
            hint="The release may have been deleted",
        )
    return PipelineError(kind="upload_failed", message=f"upload of {name} failed: {error}")
