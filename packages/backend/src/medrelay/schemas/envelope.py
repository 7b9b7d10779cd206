"""Wire envelopes — request decoding and event encoding.

Learn: Every frame is one JSON object.
- Request:  {"type": "...", "params": {..., "ref": "optional"}}
- Event:    {"event": "...", "data": ...}

The "ref" a client puts in params is echoed back in data.ref of the
matching response, so a client with several requests in flight on one
connection can pair them up. Push events carry no ref.
"""

import json
from typing import Any, Optional

from pydantic import BaseModel, ValidationError

from medrelay.errors import ProtocolError


class Request(BaseModel):
    type: str
    params: dict[str, Any] = {}

    @property
    def ref(self) -> Optional[Any]:
        return self.params.get("ref")


def decode_request(frame: str | bytes) -> Request:
    """Parse one inbound frame. Raises ProtocolError on anything malformed."""
    if isinstance(frame, (bytes, bytearray)):
        try:
            frame = frame.decode("utf-8")
        except UnicodeDecodeError:
            raise ProtocolError()
    try:
        payload = json.loads(frame)
    except (TypeError, json.JSONDecodeError):
        raise ProtocolError()
    if not isinstance(payload, dict):
        raise ProtocolError()
    if payload.get("params") is None:
        payload["params"] = {}
    try:
        return Request.model_validate(payload)
    except ValidationError:
        raise ProtocolError()


def correlated(ref: Optional[Any], **data: Any) -> dict[str, Any]:
    """Build response data, echoing ref only when the client supplied one."""
    if ref is not None:
        data = {"ref": ref, **data}
    return data


def encode_event(event: str, data: Any = None) -> str:
    """Serialize an outgoing event envelope."""
    return json.dumps(
        {"event": event, "data": {} if data is None else data},
        default=str,
    )
