"""Logging setup for the gateway.

- PlainFormatter on stderr for local runs
- SupabaseHandler ships JSONFormatter entries to the "logs" table in batches
  when a Supabase client is available
"""

import atexit
import logging
import re
import sys
import threading
from queue import Empty, Queue
from typing import Optional

_TAG_PATTERN = re.compile(r"\[([A-Z_]+)\]\s*(.*)", re.DOTALL)


def split_tag(message: str) -> tuple:
    """Split "[TAG] text" into ("TAG", "text"); untagged messages get None."""
    match = _TAG_PATTERN.match(message)
    if match:
        return match.group(1), match.group(2)
    return None, message


class JSONFormatter(logging.Formatter):
    """Turns a record into the row stored by SupabaseHandler."""

    def __init__(self, service_name: str = "ticket-oauth-gateway"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> dict:
        tag, message = split_tag(record.getMessage())
        entry = {
            "service": self.service_name,
            "level": record.levelname,
            "tag": tag,
            "message": message,
            "module": record.module,
            "extra": {"function": record.funcName, "line": record.lineno},
        }
        if record.exc_info:
            entry["extra"]["exception"] = self.formatException(record.exc_info)
        return entry


class PlainFormatter(logging.Formatter):
    def __init__(self):
        super().__init__(fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                         datefmt="%Y-%m-%d %H:%M:%S")


class SupabaseHandler(logging.Handler):
    """Buffers log rows and inserts them into Supabase.

    A flush happens every flush_interval seconds, when batch_size rows are
    queued, and once more on close.
    """

    def __init__(self, supabase_client, service_name: str, batch_size: int = 20, flush_interval: float = 10.0):
        super().__init__()
        self.supabase = supabase_client
        self.service_name = service_name
        self.batch_size = batch_size
        self.flush_interval = flush_interval

        self._queue: Queue = Queue()
        self._shutdown = threading.Event()
        self._flush_thread = threading.Thread(target=self._flush_worker, daemon=True)
        self._flush_thread.start()
        atexit.register(self.close)

    def emit(self, record: logging.LogRecord):
        try:
            formatter = self.formatter if isinstance(self.formatter, JSONFormatter) else JSONFormatter(self.service_name)
            self._queue.put(formatter.format(record))
            if self._queue.qsize() >= self.batch_size:
                self.flush()
        except Exception:
            self.handleError(record)

    def _flush_worker(self):
        while not self._shutdown.wait(self.flush_interval):
            if not self._queue.empty():
                self.flush()

    def flush(self):
        rows = []
        while len(rows) < self.batch_size * 2:
            try:
                rows.append(self._queue.get_nowait())
            except Empty:
                break
        if not rows or not self.supabase:
            return
        try:
            self.supabase.table("logs").insert(rows).execute()
        except Exception as e:
            # stderr only; logging here would recurse into this handler
            print(f"[WARNING] Failed to send logs to Supabase: {e}", file=sys.stderr)

    def close(self):
        self._shutdown.set()
        self.flush()
        super().close()


_supabase_handler: Optional[SupabaseHandler] = None


def setup_logging(service_name: str = "ticket-oauth-gateway", supabase_client=None,
                  level: str = "INFO") -> logging.Logger:
    """Configure the root logger.

    Args:
        service_name: Value of the "service" column in shipped rows.
        supabase_client: Optional Supabase client for remote log collection.
        level: Root log level name.

    Returns:
        The root logger.
    """
    global _supabase_handler

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(PlainFormatter())
    root_logger.addHandler(stderr_handler)

    if supabase_client:
        try:
            _supabase_handler = SupabaseHandler(supabase_client, service_name)
            _supabase_handler.setLevel(logging.INFO)
            _supabase_handler.setFormatter(JSONFormatter(service_name))
            root_logger.addHandler(_supabase_handler)
        except Exception as e:
            print(f"[WARNING] Supabase logging setup failed: {e}", file=sys.stderr)
            _supabase_handler = None

    # httpx logs every ADE round trip at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    if _supabase_handler:
        logger.info(f"[STARTUP] Supabase logging enabled for {service_name}")
    else:
        logger.info("[STARTUP] Supabase logging disabled (no client)")
    return root_logger


def flush_logs():
    """Push any queued rows to Supabase now."""
    if _supabase_handler:
        _supabase_handler.flush()
