"""Payload encoding for delayq tasks."""

import json
from typing import Any

from pydantic import BaseModel

from delayq.engine.store.base import SerializationError


def encode_payload(payload: Any) -> bytes:
    """
    Encode a payload to JSON bytes.

    Pydantic models are dumped with their own serializer.

    Raises:
        SerializationError: If the value is not representable as JSON
    """
    try:
        if isinstance(payload, BaseModel):
            return payload.model_dump_json().encode()
        return json.dumps(payload, separators=(",", ":"), allow_nan=False).encode()
    except (TypeError, ValueError) as e:
        raise SerializationError(
            f"Payload of type {type(payload).__name__} is not serializable: {e}"
        ) from e


def decode_payload(data: bytes) -> Any:
    """Decode JSON payload bytes back into Python values."""
    return json.loads(data)
