"""
json_logger.py
-----------------------------------------------------
Logs estructurados del ingestor → stdout (+ archivo local opcional).
Una línea JSON por evento, mismo formato que el resto de servicios:
  timestamp · service · level · event · message · extras
-----------------------------------------------------
"""

import datetime
import json
import os

SERVICE = "log_ingestor"

LEVELS = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40, "CRITICAL": 50}


def _threshold() -> int:
    return LEVELS.get(os.getenv("LOG_LEVEL", "INFO").upper(), 20)


def _log_file() -> str | None:
    log_dir = os.getenv("LOG_DIR")
    if not log_dir:
        return None
    os.makedirs(log_dir, exist_ok=True)
    return os.path.join(log_dir, "ingestor.log")


def log_event(service: str, level: str, event: str, message: str, **extras):
    """
    Emite un log estructurado.
    level: DEBUG | INFO | WARNING | ERROR | CRITICAL
    Devuelve la entrada, o None si queda por debajo de LOG_LEVEL.
    """
    level = level.upper()
    if LEVELS.get(level, 20) < _threshold():
        return None

    entry = {
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "service": service,
        "level": level,
        "event": event,
        "message": message,
        "extras": extras,
    }
    line = json.dumps(entry, ensure_ascii=False, default=str)

    # --- salida visible ---
    print(line, flush=True)

    path = _log_file()
    if path:
        with open(path, "a", encoding="utf-8") as f:
            f.write(line + "\n")
    return entry
