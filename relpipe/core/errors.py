"""Process exit codes.

One code per failure category of a pipeline run. The values are part of the
CLI contract and must stay stable:
- 0: every job succeeded (or the event was ignored)
- 1: user error (bad event payload, bad config)
- 2: environment error (checkout, toolchain, host cannot build the target)
- 3: build error (compile failure, lock mismatch)
- 4: upload error (release asset upload)
- 6: registry error (auth, duplicate version, manifest)
- 7: internal error (a job crashed)
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    OK = 0
    USER_ERROR = 1
    ENV_ERROR = 2
    BUILD_ERROR = 3
    UPLOAD_ERROR = 4
    REGISTRY_ERROR = 6
    INTERNAL_ERROR = 7
