"""
redis_reader.py
-----------------------------------------------------
Productor: lee el stream "info/log" como miembro de un
consumer group, decodifica los sobres msgpack y empuja
los LogMsg resultantes al canal del indexador.

  Uninitialized → GroupEnsured → Polling ⇄ Polling → Stopped

✔ BUSYGROUP al crear el grupo = reinicio normal (rejoin).
✔ Lote mal formado → un único registro centinela ERROR.
✔ Canal sin consumidor → el bucle termina limpio.
-----------------------------------------------------
"""

import asyncio
import enum

import redis.asyncio as aioredis
from redis.exceptions import RedisError, ResponseError

from log_ingestor.config import RedisConfig
from log_ingestor.envelope import EnvelopeDecodeError, decode_batch, decode_each
from log_ingestor.json_logger import SERVICE, log_event
from log_ingestor.log_models import LogMsg, error_log_msg
from log_ingestor.log_queue import LogChannel

LOGGING_ENDPOINT = "info/log"
READ_NEW = ">"
GROUP_START_ID = "0"
DATA_FIELD = "data"

KEY_MISMATCH = "We got a response for request with one key, there must be one key!"
NO_DATA = "Uh oh, log message contained no data"


class ReaderSetupError(Exception):
    """Sin conexión, grupo o consumidor no hay lector posible (fatal)."""


class StreamReadError(Exception):
    """Respuesta de XREADGROUP inutilizable en este ciclo (no fatal)."""


class ReaderState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    GROUP_ENSURED = "group_ensured"
    POLLING = "polling"
    STOPPED = "stopped"


def _matches(key, name: str) -> bool:
    return key == name or key == name.encode()


def _field(fields, name: str):
    if not fields:
        return None
    if name in fields:
        return fields[name]
    return fields.get(name.encode())


def _stream_entries(reply, stream: str):
    """
    Normaliza la respuesta de XREADGROUP a [(id, campos), ...].
    RESP2 → [[stream, [entradas]]]   RESP3 → {stream: [[entradas]]}
    None si la respuesta no trae el stream pedido.
    """
    if isinstance(reply, dict):
        items = reply.items()
    else:
        items = ((item[0], item[1]) for item in reply)

    for key, entries in items:
        if not _matches(key, stream):
            continue
        if entries and isinstance(entries[0], list):
            entries = entries[0]
        return list(entries or [])
    return None


class RedisLogReader:
    def __init__(self, config: RedisConfig, channel: LogChannel, client=None,
                 error_backoff: float = 1.0):
        self.config = config
        self.channel = channel
        self.client = client
        self.error_backoff = error_backoff
        self.state = ReaderState.UNINITIALIZED
        self._owns_client = client is None

    # ============================================================
    # Arranque
    # ============================================================
    async def connect(self):
        url = self.config.url.full_url()
        try:
            self.client = aioredis.from_url(url)
            await self.client.ping()
        except (RedisError, ValueError) as e:
            raise ReaderSetupError(f"Could not connect to Redis at {url}!") from e
        log_event(SERVICE, "INFO", "redis_connected", f"Connected to Redis at {url}")

    async def setup_consumer_group(self):
        group, consumer = self.config.consumer_group, self.config.consumer_id
        try:
            await self.client.xgroup_create(
                LOGGING_ENDPOINT, group, id=GROUP_START_ID, mkstream=True
            )
            log_event(SERVICE, "INFO", "group_created",
                      f"Created consumer group {group}", group=group)
        except ResponseError as e:
            if not str(e).startswith("BUSYGROUP"):
                raise ReaderSetupError(
                    f"Failed to create Redis consumer group {group}!"
                ) from e
            log_event(SERVICE, "INFO", "group_rejoin",
                      f"Group {group} already exists, rejoining with ID {consumer}",
                      group=group, consumer=consumer)
        except RedisError as e:
            raise ReaderSetupError(f"Failed to create Redis consumer group {group}!") from e

        try:
            await self.client.xgroup_createconsumer(LOGGING_ENDPOINT, group, consumer)
        except RedisError as e:
            raise ReaderSetupError(
                f"Failed to create Redis consumer ID {consumer} in group {group}!"
            ) from e
        self.state = ReaderState.GROUP_ENSURED

    # ============================================================
    # Lectura
    # ============================================================
    async def read_logs(self):
        """
        Un XREADGROUP de entradas nuevas.
        Devuelve (último id | None, ids, valores del campo "data").
        """
        reply = await self.client.xreadgroup(
            self.config.consumer_group,
            self.config.consumer_id,
            {LOGGING_ENDPOINT: READ_NEW},
            count=self.config.chunk_size,
            block=self.config.blocktime_millis,
        )
        if not reply:
            return None, [], []

        entries = _stream_entries(reply, LOGGING_ENDPOINT)
        if entries is None:
            raise StreamReadError(KEY_MISMATCH)

        ids, values = [], []
        for entry_id, fields in entries:
            value = _field(fields, DATA_FIELD)
            if value is None:
                raise StreamReadError(NO_DATA)
            ids.append(entry_id)
            values.append(value)
        last_id = ids[-1] if ids else None
        return last_id, ids, values

    def decode(self, values) -> list[LogMsg]:
        if self.config.per_entry_decode:
            return decode_each(values)
        try:
            return decode_batch(values)
        except EnvelopeDecodeError as e:
            log_event(SERVICE, "ERROR", "batch_decode_failed",
                      f"Replacing batch of {len(values)} entries with an error record: {e}")
            return [error_log_msg()]

    async def poll_once(self) -> bool:
        """Un ciclo de lectura. False = el canal ya no tiene consumidor."""
        try:
            last_id, ids, values = await self.read_logs()
        except StreamReadError as e:
            log_event(SERVICE, "ERROR", "stream_read_error",
                      f"Replacing read cycle with an error record: {e}")
            return self.channel.push(error_log_msg())
        except RedisError as e:
            log_event(SERVICE, "ERROR", "redis_error", f"{type(e).__name__}: {e}")
            await asyncio.sleep(self.error_backoff)
            return True

        if last_id is None:
            return True

        for record in self.decode(values):
            if not self.channel.push(record):
                return False

        if self.config.ack_entries:
            await self.ack(ids)
        return True

    async def ack(self, ids):
        try:
            await self.client.xack(LOGGING_ENDPOINT, self.config.consumer_group, *ids)
        except RedisError as e:
            log_event(SERVICE, "ERROR", "ack_failed",
                      f"Could not acknowledge {len(ids)} entries: {e}")

    # ============================================================
    # Bucle principal
    # ============================================================
    async def run(self):
        try:
            if self.client is None:
                await self.connect()
            await self.setup_consumer_group()
            self.state = ReaderState.POLLING
            while not self.channel.receiver_closed:
                if not await self.poll_once():
                    break
            log_event(SERVICE, "INFO", "reader_stopped", "Receiver dropped, stopping...")
        finally:
            self.state = ReaderState.STOPPED
            self.channel.close_sender()
            await self.close()

    async def close(self):
        if self._owns_client and self.client is not None:
            await self.client.aclose()
            self.client = None
