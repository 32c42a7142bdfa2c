from datetime import datetime, timedelta

from sap_storefront_connector.sync_log import JsonlLogSink, MemoryLogSink, SyncLogger


class SteppingClock:
    """Reloj que avanza un minuto en cada llamada"""

    def __init__(self, start):
        self.current = start

    def __call__(self):
        value = self.current
        self.current += timedelta(minutes=1)
        return value


def test_debug_entries_need_debug_mode():
    quiet = SyncLogger(sink=MemoryLogSink(), debug_mode=False)
    verbose = SyncLogger(sink=MemoryLogSink(), debug_mode=True)

    for sync_logger in (quiet, verbose):
        sync_logger.debug("detalle")
        sync_logger.info("resumen")

    assert [e.type for e in quiet.sink.entries] == ["info"]
    assert [e.type for e in verbose.sink.entries] == ["debug", "info"]


def test_unknown_type_is_stored_as_info():
    sync_logger = SyncLogger()

    sync_logger.log("banana", "mensaje")

    assert sync_logger.sink.entries[0].type == "info"


def test_get_logs_newest_first_with_filters():
    sync_logger = SyncLogger(clock=SteppingClock(datetime(2024, 5, 1, 8, 0)))
    sync_logger.log("order", "Pedido 1 sincronizado", {"order_id": 1})
    sync_logger.error("Pedido 2 fallido")
    sync_logger.log("order", "Pedido 3 sincronizado")

    orders = sync_logger.get_logs(type="order")
    assert [e.message for e in orders] == ["Pedido 3 sincronizado", "Pedido 1 sincronizado"]
    assert orders[1].context == {"order_id": 1}

    assert [e.message for e in sync_logger.get_logs(search="FALLIDO")] == ["Pedido 2 fallido"]
    assert len(sync_logger.get_logs(date_from=datetime(2024, 5, 1, 8, 1))) == 2
    assert len(sync_logger.get_logs(limit=1, offset=1)) == 1
    assert sync_logger.get_log_count() == 3
    assert sync_logger.get_log_count("error") == 1


def test_clear_logs_by_age_and_type():
    clock = SteppingClock(datetime(2024, 4, 1))
    sync_logger = SyncLogger(clock=clock, retention_days=30)
    sync_logger.info("viejo")
    clock.current = datetime(2024, 5, 1)
    sync_logger.error("reciente")
    sync_logger.info("reciente info")

    clock.current = datetime(2024, 5, 2)
    assert sync_logger.cleanup() == 1
    assert sync_logger.clear_logs(type="error") == 1
    assert [e.message for e in sync_logger.get_logs()] == ["reciente info"]


def test_jsonl_sink_persists_entries(tmp_path):
    path = tmp_path / "logs" / "sync_log.jsonl"
    first = SyncLogger(sink=JsonlLogSink(path))
    first.info("uno")
    first.log("stock", "dos", {"total": 3})

    reloaded = SyncLogger(sink=JsonlLogSink(path))
    entries = reloaded.get_logs()

    assert [e.message for e in entries] == ["dos", "uno"]
    assert entries[0].context == {"total": 3}

    reloaded.clear_logs(type="info")
    assert len(path.read_text(encoding="utf-8").strip().splitlines()) == 1
    reloaded.info("tres")
    assert max(e.id for e in JsonlLogSink(path).entries) == 3
