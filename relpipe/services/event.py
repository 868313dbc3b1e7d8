"""Reading the triggering release event.

The payload is the JSON GitHub delivers for ``release`` events (webhook body
or the file behind ``GITHUB_EVENT_PATH``). Only ``action == "published"``
starts a pipeline; every other action parses fine and is ignored later.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from urllib.parse import quote

from relpipe.core.result import Err, Ok, Result
from relpipe.core.structured import as_str_dict, get_int, get_str, get_table
from relpipe.services.errors import PipelineError
from relpipe.services.model import ReleaseEvent

__all__ = ["parse_event", "read_event", "expand_upload_url"]

# RFC 6570 form-style query expansion as used by GitHub: `assets{?name,label}`
_TEMPLATE_RE = re.compile(r"\{\?([^}]*)\}$")


def parse_event(payload: object) -> Result[ReleaseEvent, PipelineError]:
    data = as_str_dict(payload)
    if data is None:
        return Err(PipelineError(kind="invalid_event", message="event payload must be an object"))

    release = get_table(data, "release")
    if release is None:
        return Err(
            PipelineError(
                kind="invalid_event",
                message="not a release event (missing 'release')",
            )
        )

    action = get_str(data, "action") or ""
    tag = get_str(release, "tag_name")
    if tag is None:
        return Err(PipelineError(kind="invalid_event", message="release.tag_name is missing"))

    release_id = get_int(release, "id")
    if release_id is None:
        return Err(PipelineError(kind="invalid_event", message="release.id is missing"))

    repository: str | None = None
    clone_url: str | None = None
    repo_tbl = get_table(data, "repository")
    if repo_tbl is not None:
        repository = get_str(repo_tbl, "full_name")
        clone_url = get_str(repo_tbl, "clone_url")

    return Ok(
        ReleaseEvent(
            action=action,
            tag=tag,
            release_id=release_id,
            # Empty means "no endpoint": the orchestrator ignores such events.
            upload_url=get_str(release, "upload_url") or "",
            repository=repository,
            clone_url=clone_url,
        )
    )


def read_event(path: Path) -> Result[ReleaseEvent, PipelineError]:
    try:
        payload: object = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return Err(PipelineError(kind="invalid_event", message=f"event file not found: {path}"))
    except (OSError, UnicodeDecodeError) as e:
        return Err(PipelineError(kind="invalid_event", message=f"cannot read event file: {e}"))
    except json.JSONDecodeError as e:
        return Err(
            PipelineError(kind="invalid_event", message=f"invalid JSON in event file: {e}")
        )
    return parse_event(payload)


def expand_upload_url(upload_url: str, *, name: str, label: str | None = None) -> str:
    """Fill the ``{?name,label}`` template of a release upload endpoint.

    Variables without a value are dropped, as RFC 6570 specifies. A URL
    without a template gets ``name`` appended as a query parameter.
    """
    values = {"name": name, "label": label}
    match = _TEMPLATE_RE.search(upload_url)
    if match is None:
        base = upload_url
        wanted = ["name", "label"]
    else:
        base = upload_url[: match.start()]
        wanted = [v.strip() for v in match.group(1).split(",") if v.strip()]

    pairs = [
        f"{key}={quote(value, safe='')}"
        for key in wanted
        if (value := values.get(key)) is not None
    ]
    if not pairs:
        return base
    sep = "&" if "?" in base else "?"
    return f"{base}{sep}{'&'.join(pairs)}"
