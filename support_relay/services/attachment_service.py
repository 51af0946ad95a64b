import base64
import mimetypes
from dataclasses import dataclass
from typing import Optional

from support_relay.services.result import INVALID_INPUT, PAYLOAD_TOO_LARGE, Result

DEFAULT_MIMETYPE = "application/octet-stream"


@dataclass(frozen=True)
class Attachment:
    filename: str
    mimetype: str
    size: int
    data: str  # data:<mime>;base64,<payload>


def _format_limit(max_bytes: int) -> str:
    if max_bytes % (1024 * 1024) == 0:
        return f"{max_bytes // (1024 * 1024)}MB"
    return f"{max_bytes} bytes"


def build_data_uri(mimetype: str, raw: bytes) -> str:
    return f"data:{mimetype};base64,{base64.b64encode(raw).decode('ascii')}"


def encode_attachment(
    filename: Optional[str],
    mimetype: Optional[str],
    raw: bytes,
    max_bytes: int,
) -> Result[Attachment]:
    """Validate an uploaded file and encode it for inline storage."""
    if not filename:
        return Result.failure("Attachment filename is required", INVALID_INPUT)
    if len(raw) > max_bytes:
        return Result.failure(
            f"File size too large. Maximum size is {_format_limit(max_bytes)}.",
            PAYLOAD_TOO_LARGE,
        )

    resolved_mimetype = mimetype or mimetypes.guess_type(filename)[0] or DEFAULT_MIMETYPE
    return Result.success(
        Attachment(
            filename=filename,
            mimetype=resolved_mimetype,
            size=len(raw),
            data=build_data_uri(resolved_mimetype, raw),
        )
    )
