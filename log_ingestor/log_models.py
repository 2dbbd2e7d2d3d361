"""
log_models.py
-----------------------------------------------------
Modelos del registro de log que emite el logger de la
aplicación (loguru serializado) y viaja por el stream.
Inmutables una vez decodificados.
-----------------------------------------------------
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

ERROR_MESSAGE = "Error processing log messages from Redis!"
EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class Elapsed(_Frozen):
    repr: str
    seconds: float


class File(_Frozen):
    name: str
    path: str


class LogLevel(_Frozen):
    icon: str
    name: str
    no: int


class NameId(_Frozen):
    name: str
    id: int


class Timestamp(_Frozen):
    repr: str
    timestamp: float

    def as_rfc3339(self) -> str:
        """
        Epoch (segundos enteros, se trunca la fracción) → RFC3339 en UTC.
        NaN, inf o fuera de rango (p. ej. milisegundos) → epoch 0.
        """
        try:
            ts = datetime.fromtimestamp(int(self.timestamp), tz=timezone.utc)
        except (ValueError, OverflowError, OSError):
            ts = EPOCH
        return ts.isoformat()


class LogRecord(_Frozen):
    elapsed: Elapsed
    exception: Optional[Any] = None
    extra: Any = Field(default_factory=dict)
    file: File
    function: str
    level: LogLevel
    line: int
    message: str
    module: str
    name: str
    process: NameId
    thread: NameId
    time: Timestamp


class LogMsg(_Frozen):
    """Unidad que cruza la cola: record + servicio de origen + texto renderizado."""

    record: LogRecord
    service_name: str
    text: Optional[str] = None


def error_log_msg() -> LogMsg:
    """Registro centinela que sustituye a un lote que no se pudo decodificar."""
    return LogMsg(
        record=LogRecord(
            elapsed=Elapsed(repr="", seconds=0.0),
            exception=None,
            extra={},
            file=File(name="", path=""),
            function="",
            level=LogLevel(icon="", name="ERROR", no=100),
            line=0,
            message=ERROR_MESSAGE,
            module="",
            name="",
            process=NameId(name="", id=0),
            thread=NameId(name="", id=0),
            time=Timestamp(repr="", timestamp=0.0),
        ),
        service_name="",
        text="",
    )
