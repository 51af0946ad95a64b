from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")

INVALID_INPUT = "invalid_input"
PAYLOAD_TOO_LARGE = "payload_too_large"
NOT_FOUND = "not_found"
INTERNAL = "internal"

# payload_too_large is a kind of invalid input
CLIENT_ERROR_CODES = {INVALID_INPUT, PAYLOAD_TOO_LARGE}


@dataclass
class Result(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @staticmethod
    def success(value: T) -> "Result[T]":
        return Result(ok=True, value=value)

    @staticmethod
    def failure(error: str, code: str = INTERNAL) -> "Result[T]":
        return Result(ok=False, error=error, error_code=code)

    @property
    def is_client_error(self) -> bool:
        return not self.ok and self.error_code in CLIENT_ERROR_CODES
