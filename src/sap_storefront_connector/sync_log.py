"""
Log de sincronización consultable.

Cada entrada se escribe en el logger del módulo y en un LogSink
(memoria o archivo JSON Lines).
"""
import json
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

from pydantic import BaseModel, Field

from .models import LogEntry

logger = logging.getLogger(__name__)

LOG_TYPES = ("info", "error", "warning", "debug", "sync", "product", "stock", "customer", "order")

LEVELS = {
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "debug": logging.DEBUG,
}


class LogFilter(BaseModel):
    """Filtros de consulta del log"""
    type: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    search: Optional[str] = Field(default=None, description="Texto contenido en el mensaje")
    older_than: Optional[datetime] = Field(default=None, description="Sólo entradas anteriores a esta fecha")
    limit: int = 100
    offset: int = 0

    def matches(self, entry: LogEntry) -> bool:
        if self.type and entry.type != self.type:
            return False
        if self.date_from and entry.created_at < self.date_from:
            return False
        if self.date_to and entry.created_at > self.date_to:
            return False
        if self.older_than and entry.created_at >= self.older_than:
            return False
        if self.search and self.search.lower() not in entry.message.lower():
            return False
        return True


class LogSink(Protocol):
    def append(self, entry: LogEntry) -> LogEntry:
        ...

    def query(self, filters: LogFilter) -> list[LogEntry]:
        ...

    def count(self, filters: LogFilter) -> int:
        ...

    def clear(self, filters: LogFilter) -> int:
        ...


class MemoryLogSink:
    """Log en memoria"""

    def __init__(self):
        self.entries: list[LogEntry] = []
        self._next_id = 1

    def append(self, entry: LogEntry) -> LogEntry:
        entry.id = self._next_id
        self._next_id += 1
        self.entries.append(entry)
        return entry

    def query(self, filters: LogFilter) -> list[LogEntry]:
        matching = [e for e in self.entries if filters.matches(e)]
        matching.sort(key=lambda e: (e.created_at, e.id), reverse=True)
        return matching[filters.offset:filters.offset + filters.limit]

    def count(self, filters: LogFilter) -> int:
        return sum(1 for e in self.entries if filters.matches(e))

    def clear(self, filters: LogFilter) -> int:
        kept = [e for e in self.entries if not filters.matches(e)]
        removed = len(self.entries) - len(kept)
        self.entries = kept
        return removed


class JsonlLogSink(MemoryLogSink):
    """
    Log en un archivo JSON Lines.

    Las entradas nuevas se añaden al final; clear() reescribe el archivo.
    """

    def __init__(self, path: Path):
        super().__init__()
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return

        with open(self.path, 'r', encoding='utf-8') as f:
            for line_number, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    self.entries.append(LogEntry.model_validate_json(line))
                except ValueError as e:
                    logger.warning(f"Línea {line_number} del log {self.path} inválida: {e}")

        self._next_id = max((e.id for e in self.entries), default=0) + 1

    def append(self, entry: LogEntry) -> LogEntry:
        entry = super().append(entry)
        with open(self.path, 'a', encoding='utf-8') as f:
            f.write(entry.model_dump_json() + "\n")
        return entry

    def clear(self, filters: LogFilter) -> int:
        removed = super().clear(filters)
        with open(self.path, 'w', encoding='utf-8') as f:
            for entry in self.entries:
                f.write(entry.model_dump_json() + "\n")
        return removed


class SyncLogger:
    """
    Registra eventos de sincronización en el logger y en el sink.

    Las entradas debug sólo llegan al sink con debug_mode activo.
    """

    def __init__(
        self,
        sink: Optional[LogSink] = None,
        debug_mode: bool = False,
        retention_days: int = 30,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.sink = sink or MemoryLogSink()
        self.debug_mode = debug_mode
        self.retention_days = retention_days
        self.clock = clock

    def log(self, type: str, message: str, context: Optional[dict[str, Any]] = None) -> None:
        if type not in LOG_TYPES:
            logger.warning(f"Tipo de log desconocido: {type}. Se registra como info.")
            type = "info"

        if context:
            logger.log(LEVELS.get(type, logging.INFO), f"[{type}] {message} {json.dumps(context, ensure_ascii=False, default=str)}")
        else:
            logger.log(LEVELS.get(type, logging.INFO), f"[{type}] {message}")

        if type == "debug" and not self.debug_mode:
            return

        self.sink.append(LogEntry(type=type, message=message, context=context or None, created_at=self.clock()))

    def info(self, message: str, context: Optional[dict[str, Any]] = None) -> None:
        self.log("info", message, context)

    def error(self, message: str, context: Optional[dict[str, Any]] = None) -> None:
        self.log("error", message, context)

    def warning(self, message: str, context: Optional[dict[str, Any]] = None) -> None:
        self.log("warning", message, context)

    def debug(self, message: str, context: Optional[dict[str, Any]] = None) -> None:
        self.log("debug", message, context)

    def get_logs(
        self,
        type: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        search: Optional[str] = None,
        limit: int = 100,
        offset: int = 0
    ) -> list[LogEntry]:
        """Entradas más recientes primero"""
        return self.sink.query(LogFilter(
            type=type,
            date_from=date_from,
            date_to=date_to,
            search=search,
            limit=limit,
            offset=offset
        ))

    def get_log_count(self, type: Optional[str] = None) -> int:
        return self.sink.count(LogFilter(type=type))

    def clear_logs(self, type: Optional[str] = None, days_old: Optional[int] = None) -> int:
        """
        Borra entradas del log.

        Args:
            type: Sólo entradas de este tipo
            days_old: Sólo entradas con más de estos días

        Returns:
            Número de entradas borradas
        """
        older_than = self.clock() - timedelta(days=days_old) if days_old else None
        removed = self.sink.clear(LogFilter(type=type, older_than=older_than))
        logger.info(f"Log de sincronización: {removed} entradas borradas")
        return removed

    def cleanup(self) -> int:
        """Conserva sólo los últimos días de log"""
        return self.clear_logs(days_old=self.retention_days)
