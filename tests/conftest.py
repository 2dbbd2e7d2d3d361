import asyncio

import msgpack
import pytest

from log_ingestor.config import ElasticConfig, RedisConfig
from log_ingestor.log_models import (
    Elapsed,
    File,
    LogLevel,
    LogMsg,
    LogRecord,
    NameId,
    Timestamp,
)

STREAM = b"info/log"


def make_msg(message="hello", level="INFO", service="scan_server", timestamp=0.0,
             exception=None) -> LogMsg:
    return LogMsg(
        record=LogRecord(
            elapsed=Elapsed(repr="0:00:01.5", seconds=1.5),
            exception=exception,
            extra={"user": "e21536"},
            file=File(name="scan.py", path="/opt/bec/scan.py"),
            function="run",
            level=LogLevel(icon="ℹ️", name=level, no=20),
            line=42,
            message=message,
            module="scan",
            name="bec_server.scan",
            process=NameId(name="MainProcess", id=1234),
            thread=NameId(name="MainThread", id=5678),
            time=Timestamp(repr="2024-01-01 00:00:00", timestamp=timestamp),
        ),
        service_name=service,
        text=f"{level} | {message}",
    )


def pack(msg: LogMsg) -> bytes:
    """Sobre msgpack tal como lo escribe el logger de la aplicación."""
    return msgpack.packb(
        {
            "__bec_codec__": {
                "encoder_name": "BECMessage",
                "type_name": "LogMessage",
                "data": {
                    "log_type": msg.record.level.name.lower(),
                    "log_msg": msg.model_dump(),
                    "metadata": {},
                },
            }
        }
    )


def stream_reply(*values, start=1):
    """Respuesta RESP2 de XREADGROUP con un valor "data" por entrada."""
    entries = [
        (f"{start + i}-0".encode(), {b"data": value})
        for i, value in enumerate(values)
    ]
    return [[STREAM, entries]]


class FakeRedis:
    """Cliente redis.asyncio mínimo para el lector."""

    def __init__(self, replies=None, group_error=None, consumer_error=None,
                 when_exhausted=None):
        self.replies = list(replies or [])
        self.group_error = group_error
        self.consumer_error = consumer_error
        self.when_exhausted = when_exhausted
        self.calls = []
        self.acked = []
        self.closed = False

    async def ping(self):
        return True

    async def xgroup_create(self, name, groupname, id="$", mkstream=False):
        self.calls.append(("xgroup_create", name, groupname, id))
        if self.group_error is not None:
            raise self.group_error

    async def xgroup_createconsumer(self, name, groupname, consumername):
        self.calls.append(("xgroup_createconsumer", name, groupname, consumername))
        if self.consumer_error is not None:
            raise self.consumer_error

    async def xreadgroup(self, groupname, consumername, streams, count=None,
                         block=None, noack=False):
        self.calls.append(("xreadgroup", groupname, consumername, streams, count, block))
        await asyncio.sleep(0)
        if self.replies:
            reply = self.replies.pop(0)
            if callable(reply):
                reply = reply()
            if isinstance(reply, Exception):
                raise reply
            return reply
        if self.when_exhausted is not None:
            raise self.when_exhausted
        return []

    async def xack(self, name, groupname, *ids):
        self.acked.extend(ids)
        return len(ids)

    async def aclose(self):
        self.closed = True


class FakeElastic:
    """AsyncElasticsearch mínimo: guarda cada llamada a bulk()."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.bulk_calls = []
        self.closed = False

    async def bulk(self, operations, index):
        self.bulk_calls.append({"operations": operations, "index": index})
        await asyncio.sleep(0)
        if self.responses:
            response = self.responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response
        return {"took": 3, "errors": False, "items": []}

    async def close(self):
        self.closed = True


@pytest.fixture
def redis_config():
    return RedisConfig(url={"url": "redis://localhost", "port": 6379}, chunk_size=10,
                       blocktime_millis=10)


@pytest.fixture
def elastic_config():
    return ElasticConfig(url={"url": "http://localhost", "port": 9200},
                         api_key="dGVzdDprZXk=", chunk_size=10, index="test-logs")
