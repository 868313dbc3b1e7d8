"""Core types: results, exit codes, secrets, configuration."""

from .errors import ErrorCode
from .result import Err, Ok, Result
from .secrets import Secret

__all__ = [
    "ErrorCode",
    "Err",
    "Ok",
    "Result",
    "Secret",
]
