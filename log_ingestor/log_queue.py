"""
log_queue.py
-----------------------------------------------------
Canal en memoria entre el lector Redis y el indexador Elastic.
FIFO, sin límite, un productor y un consumidor.
  ▪ push() nunca bloquea; devuelve False si el consumidor ya no está.
  ▪ pull_batch() espera solo si la cola está vacía.
  ▪ [] con el productor cerrado = fin del stream.
-----------------------------------------------------
"""

import asyncio

from log_ingestor.log_models import LogMsg

_CLOSED = object()


class LogChannel:
    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._sender_closed = False
        self._receiver_closed = False

    @property
    def sender_closed(self) -> bool:
        return self._sender_closed

    @property
    def receiver_closed(self) -> bool:
        return self._receiver_closed

    def push(self, msg: LogMsg) -> bool:
        if self._receiver_closed or self._sender_closed:
            return False
        self._queue.put_nowait(msg)
        return True

    async def pull_batch(self, max_n: int) -> list[LogMsg]:
        if max_n < 1:
            raise ValueError("max_n must be >= 1")
        if self._receiver_closed:
            return []
        if self._sender_closed and self._queue.empty():
            return []

        first = await self._queue.get()
        if first is _CLOSED:
            return []

        batch = [first]
        while len(batch) < max_n:
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            if item is _CLOSED:
                break
            batch.append(item)
        return batch

    def close_sender(self):
        """El lector terminó: despierta al consumidor si está esperando."""
        if self._sender_closed:
            return
        self._sender_closed = True
        self._queue.put_nowait(_CLOSED)

    def close_receiver(self):
        """El indexador terminó: descarta lo pendiente y rechaza nuevos push."""
        self._receiver_closed = True
        while not self._queue.empty():
            self._queue.get_nowait()
