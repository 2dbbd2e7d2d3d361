"""
envelope.py
-----------------------------------------------------
Decodificación del sobre binario (msgpack) que guarda el
stream en el campo "data" de cada entrada:

  {"__bec_codec__": {encoder_name, type_name,
                     data: {log_type, log_msg, metadata}}}

Solo se decodifica; el ingestor nunca re‑codifica sobres.
-----------------------------------------------------
"""

from typing import Any, Iterable

import msgpack
from msgpack.exceptions import UnpackException
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from log_ingestor.json_logger import SERVICE, log_event
from log_ingestor.log_models import LogMsg, error_log_msg

CODEC_KEY = "__bec_codec__"


class EnvelopeDecodeError(Exception):
    """Un valor del stream no es un sobre válido."""


class LogMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    log_type: str
    log_msg: LogMsg
    metadata: Any = Field(default_factory=dict)


class EnvelopeBody(BaseModel):
    model_config = ConfigDict(frozen=True)

    encoder_name: str
    type_name: str
    data: LogMessage


class Envelope(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    codec: EnvelopeBody = Field(alias=CODEC_KEY)


def decode_envelope(raw: Any) -> Envelope:
    """bytes msgpack → Envelope. Cualquier otro tipo de valor es un error."""
    if not isinstance(raw, (bytes, bytearray, memoryview)):
        raise EnvelopeDecodeError(
            f"Log message data not binary-data! ({type(raw).__name__})"
        )
    try:
        unpacked = msgpack.unpackb(bytes(raw), raw=False)
    except (ValueError, UnpackException) as e:
        raise EnvelopeDecodeError(f"msgpack framing error: {e}") from e
    try:
        return Envelope.model_validate(unpacked)
    except ValidationError as e:
        raise EnvelopeDecodeError(
            f"envelope shape error: {e.error_count()} validation errors"
        ) from e


def extract_records(envelopes: Iterable[Envelope]) -> list[LogMsg]:
    return [e.codec.data.log_msg for e in envelopes]


def decode_batch(values: Iterable[Any]) -> list[LogMsg]:
    """Todo o nada: un solo valor inválido invalida el lote completo."""
    return extract_records([decode_envelope(v) for v in values])


def decode_each(values: Iterable[Any]) -> list[LogMsg]:
    """Por entrada: cada valor inválido se sustituye por un centinela."""
    records = []
    for value in values:
        try:
            records.append(decode_envelope(value).codec.data.log_msg)
        except EnvelopeDecodeError as e:
            log_event(SERVICE, "WARNING", "entry_decode_failed", str(e))
            records.append(error_log_msg())
    return records
