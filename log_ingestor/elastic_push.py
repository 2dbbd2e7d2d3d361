"""
elastic_push.py
-----------------------------------------------------
Consumidor: vacía el canal en lotes de `chunk_size` y
los indexa en Elastic con una sola llamada _bulk por lote.

Cuerpo bulk: {"create": {}}, doc, {"create": {}}, doc, ...
Un fallo de envío se registra; qué pasa después lo decide
la RetryPolicy (por defecto: descartar el lote).
-----------------------------------------------------
"""

from urllib.parse import urlparse

from elasticsearch import ApiError, AsyncElasticsearch, TransportError

from log_ingestor.config import ElasticConfig
from log_ingestor.json_logger import SERVICE, log_event
from log_ingestor.log_models import LogMsg
from log_ingestor.log_queue import LogChannel
from log_ingestor.retry_policy import RetryPolicy, policy_from_config

CREATE_ACTION = {"create": {}}


class IndexerSetupError(Exception):
    """No se puede construir el cliente Elastic (fatal)."""


def elastic_client(config: ElasticConfig) -> AsyncElasticsearch:
    url = config.url.full_url()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise IndexerSetupError(f"Invalid Elastic URL: {url}")
    # https → sin validación de certificados
    tls = {"verify_certs": False, "ssl_show_warn": False} if parsed.scheme == "https" else {}
    try:
        return AsyncElasticsearch(url, **tls, **config.credentials.client_kwargs())
    except ValueError as e:
        raise IndexerSetupError(f"Failed to connect to Elastic at {url}: {e}") from e


def json_from_logmsg(msg: LogMsg) -> dict:
    """LogMsg → documento que ingiere Elastic (contrato con el índice)."""
    record = msg.record
    doc = {
        "@timestamp": record.time.as_rfc3339(),
        "file": record.file.model_dump(),
        "function": record.function,
        "message": record.message,
        "log_type": record.level.name,
        "line": record.line,
        "module": record.module,
        "service_name": msg.service_name,
        "proc_id": record.process.id,
    }
    if record.exception is not None:
        doc["exception"] = record.exception
    return doc


def make_json_body(msgs: list[LogMsg]) -> list[dict]:
    body = []
    for msg in msgs:
        body.append(dict(CREATE_ACTION))
        body.append(json_from_logmsg(msg))
    return body


def _failed_items(response: dict) -> int:
    if not response.get("errors"):
        return 0
    return sum(
        1
        for item in response.get("items", [])
        for result in item.values()
        if isinstance(result, dict) and result.get("error")
    )


class ElasticBulkIndexer:
    def __init__(self, config: ElasticConfig, channel: LogChannel, client=None,
                 retry_policy: RetryPolicy | None = None):
        self.config = config
        self.channel = channel
        self.client = client
        self.retry_policy = retry_policy or policy_from_config(config.retry)
        self._owns_client = client is None

    async def send(self, batch: list[LogMsg]) -> bool:
        """Un único intento de _bulk. True si Elastic aceptó la petición."""
        body = make_json_body(batch)
        if not body:
            return True
        try:
            response = await self.client.bulk(operations=body, index=self.config.index)
        except ApiError as e:
            log_event(SERVICE, "ERROR", "bulk_failed",
                      f"sent {len(batch)} logs to elastic, response OK: False",
                      status=e.status_code, error=str(e))
            return False
        except TransportError as e:
            log_event(SERVICE, "ERROR", "bulk_failed",
                      f"sent {len(batch)} logs to elastic, response OK: False",
                      status=None, error=f"{type(e).__name__}: {e}")
            return False

        result = getattr(response, "body", response)
        log_event(SERVICE, "INFO", "bulk_sent",
                  f"sent {len(batch)} logs to elastic, response OK: True",
                  index=self.config.index, took=result.get("took"))
        failed = _failed_items(result)
        if failed:
            log_event(SERVICE, "WARNING", "bulk_item_errors",
                      f"{failed} of {len(batch)} documents were rejected by elastic")
        return True

    async def flush(self, batch: list[LogMsg]) -> bool:
        if not batch:
            return True
        return await self.retry_policy.submit(self.send, batch)

    async def run(self):
        try:
            if self.client is None:
                self.client = elastic_client(self.config)
            while True:
                batch = await self.channel.pull_batch(self.config.chunk_size)
                if not batch:
                    break
                try:
                    await self.flush(batch)
                except Exception as e:
                    log_event(SERVICE, "ERROR", "batch_failed",
                              f"Dropping batch of {len(batch)} logs: {type(e).__name__}: {e}")
            log_event(SERVICE, "INFO", "indexer_stopped",
                      "Producer dropped, consumer exiting")
        finally:
            self.channel.close_receiver()
            await self.close()

    async def close(self):
        if self._owns_client and self.client is not None:
            await self.client.close()
            self.client = None
