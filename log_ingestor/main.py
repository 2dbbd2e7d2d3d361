"""
Log Ingestor – Redis stream → Elasticsearch
------------------------------------------------------------
Dos bucles cooperativos unidos por un único canal en memoria:
  ▪ RedisLogReader      lee "info/log" y decodifica los sobres.
  ▪ ElasticBulkIndexer  agrupa y envía por _bulk.
El lector corre como tarea, el indexador en primer plano; se
esperan ambos antes de salir.
------------------------------------------------------------
"""

import argparse
import asyncio
import sys
from pathlib import Path

from log_ingestor.config import ConfigError, IngestorConfig, load_config
from log_ingestor.elastic_push import ElasticBulkIndexer, IndexerSetupError
from log_ingestor.json_logger import SERVICE, log_event
from log_ingestor.log_queue import LogChannel
from log_ingestor.redis_reader import ReaderSetupError, RedisLogReader


async def main_loop(config: IngestorConfig):
    log_event(SERVICE, "INFO", "starting", "Starting log ingestor",
              redis=config.redis.url.full_url(), elastic=config.elastic.url.full_url(),
              index=config.elastic.index)

    channel = LogChannel()
    reader = RedisLogReader(config.redis, channel)
    indexer = ElasticBulkIndexer(config.elastic, channel)

    producer = asyncio.create_task(reader.run())
    try:
        await indexer.run()
    except BaseException:
        producer.cancel()
        raise
    await producer


def run_with_config(filename) -> None:
    """Bloquea para siempre (o hasta que se cierre el stream)."""
    config = load_config(filename)
    asyncio.run(main_loop(config))


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="log-ingestor",
        description="Move structured logs from a Redis stream into Elasticsearch",
    )
    parser.add_argument("-c", "--config", type=Path, required=True,
                        help="Path to the YAML config file")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    if not args.config.exists():
        print(f"Error, config file not found at {args.config}", file=sys.stderr)
        return 1

    try:
        config = load_config(args.config)
    except ConfigError as e:
        log_event(SERVICE, "CRITICAL", "config_error", str(e))
        return 1

    try:
        asyncio.run(main_loop(config))
    except (ReaderSetupError, IndexerSetupError) as e:
        cause = f" ({e.__cause__})" if e.__cause__ else ""
        log_event(SERVICE, "CRITICAL", "setup_failed", f"{e}{cause}")
        return 1
    except KeyboardInterrupt:
        log_event(SERVICE, "INFO", "interrupted", "Interrupted, exiting")
    return 0


if __name__ == "__main__":
    sys.exit(main())
