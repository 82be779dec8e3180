"""
MODULE OVERVIEW:
The wire codec for broker message bodies.

WHAT IS HAPPENING HERE:
Two entrada shapes share the same queue. A body with `mensagemId` is a direct
message, a body with `id` is a record-based notification. Anything else, and
any body that is not UTF-8 JSON, is a DecodeError: the processor rejects it
without requeue instead of letting it bounce around the broker forever.
"""
import json
from json import JSONDecodeError
from typing import Any

from pydantic import BaseModel, ValidationError

from notify_shared.errors import DecodeError
from notify_shared.models import DirectEnvelope, EntradaEnvelope, RecordEnvelope, StatusEnvelope


def encode(envelope: BaseModel) -> bytes:
    return envelope.model_dump_json(by_alias=True).encode("utf-8")


def _load_object(body: bytes) -> dict[str, Any]:
    try:
        data = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, JSONDecodeError) as e:
        raise DecodeError(f"body is not UTF-8 JSON: {e}") from e
    if not isinstance(data, dict):
        raise DecodeError(f"expected a JSON object, got {type(data).__name__}")
    return data


def decode_entrada(body: bytes) -> EntradaEnvelope:
    data = _load_object(body)
    if "mensagemId" in data:
        model = DirectEnvelope
    elif "id" in data:
        model = RecordEnvelope
    else:
        raise DecodeError("envelope has neither 'mensagemId' nor 'id'")
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise DecodeError(f"invalid {model.__name__}: {e.errors()[0]['msg']}") from e


def decode_status(body: bytes) -> StatusEnvelope:
    data = _load_object(body)
    try:
        return StatusEnvelope.model_validate(data)
    except ValidationError as e:
        raise DecodeError(f"invalid StatusEnvelope: {e.errors()[0]['msg']}") from e
