"""
retry_policy.py
-----------------------------------------------------
Qué hacer cuando falla un envío bulk a Elastic.
  ▪ DropPolicy     → un intento, se registra y se descarta (por defecto)
  ▪ BackoffPolicy  → reintentos con backoff exponencial acotado
                     y fichero dead‑letter (JSONL) opcional
-----------------------------------------------------
"""

import asyncio
import os
from typing import Awaitable, Callable, Optional

from log_ingestor.config import RetryConfig
from log_ingestor.json_logger import SERVICE, log_event
from log_ingestor.log_models import LogMsg

Send = Callable[[list[LogMsg]], Awaitable[bool]]


class RetryPolicy:
    async def submit(self, send: Send, batch: list[LogMsg]) -> bool:
        raise NotImplementedError


class DropPolicy(RetryPolicy):
    async def submit(self, send: Send, batch: list[LogMsg]) -> bool:
        ok = await send(batch)
        if not ok:
            log_event(SERVICE, "WARNING", "batch_dropped",
                      f"Dropping batch of {len(batch)} logs after one attempt")
        return ok


class BackoffPolicy(RetryPolicy):
    def __init__(self, max_attempts: int = 3, base_delay: float = 0.5,
                 max_delay: float = 10.0, dead_letter_path: Optional[str] = None,
                 sleep=asyncio.sleep):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.dead_letter_path = dead_letter_path
        self._sleep = sleep

    def delay(self, attempt: int) -> float:
        """Espera antes del reintento `attempt` (1 = primer reintento)."""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)

    async def submit(self, send: Send, batch: list[LogMsg]) -> bool:
        for attempt in range(1, self.max_attempts + 1):
            if await send(batch):
                return True
            if attempt < self.max_attempts:
                wait = self.delay(attempt)
                log_event(SERVICE, "WARNING", "bulk_retry",
                          f"Bulk write failed, retrying in {wait:.2f}s",
                          attempt=attempt, max_attempts=self.max_attempts)
                await self._sleep(wait)

        log_event(SERVICE, "ERROR", "batch_dropped",
                  f"Dropping batch of {len(batch)} logs after {self.max_attempts} attempts")
        if self.dead_letter_path:
            await asyncio.to_thread(self.dead_letter, batch)
        return False

    def dead_letter(self, batch: list[LogMsg]) -> bool:
        try:
            parent = os.path.dirname(self.dead_letter_path)
            if parent:
                os.makedirs(parent, exist_ok=True)
            with open(self.dead_letter_path, "a", encoding="utf-8") as f:
                for msg in batch:
                    f.write(msg.model_dump_json() + "\n")
        except OSError as e:
            log_event(SERVICE, "ERROR", "dead_letter_failed",
                      f"Could not write {len(batch)} logs to {self.dead_letter_path}: {e}")
            return False
        log_event(SERVICE, "INFO", "dead_letter",
                  f"Wrote {len(batch)} logs to {self.dead_letter_path}")
        return True


def policy_from_config(config: RetryConfig) -> RetryPolicy:
    if config.strategy == "backoff":
        return BackoffPolicy(
            max_attempts=config.max_attempts,
            base_delay=config.base_delay,
            max_delay=config.max_delay,
            dead_letter_path=config.dead_letter_path,
        )
    return DropPolicy()
