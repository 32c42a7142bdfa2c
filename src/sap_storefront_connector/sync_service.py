"""
Servicio de sincronización entre SAP Business One y la tienda.
"""
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from .customer_sync import CustomerSync
from .models import ApiResult, SyncResult, SyncSummary
from .order_mapper import OrderMapper, OrderMappingConfig
from .order_sync import OrderSync
from .product_sync import ProductSync
from .sap_client import SAPClient
from .session import FileSessionStore, SessionManager
from .stock_sync import StockSync
from .storefront import InMemoryStorefront, JsonOptionStore, JsonStorefront, OptionStore
from .sync_log import JsonlLogSink, SyncLogger
from .config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

SYNC_TYPES = ("products", "stock", "customers")

TRANSACTION_META_KEYS = ("_simplepay_transaction_id", "_transaction_id")


class SyncLockRegistry:
    """
    Exclusión no bloqueante por nombre (tipo de sincronización o pedido).

    Sólo se guardan los nombres en ejecución; al terminar se liberan.
    """

    def __init__(self):
        self._running: set[str] = set()
        self._guard = threading.Lock()

    def is_running(self, name: str) -> bool:
        with self._guard:
            return name in self._running

    def __len__(self) -> int:
        with self._guard:
            return len(self._running)

    @contextmanager
    def hold(self, name: str) -> Iterator[bool]:
        """Entrega True si se obtuvo el lock, False si ya había una ejecución"""
        with self._guard:
            acquired = name not in self._running
            if acquired:
                self._running.add(name)
        try:
            yield acquired
        finally:
            if acquired:
                with self._guard:
                    self._running.discard(name)


class SyncService:
    """
    Servicio que orquesta todas las sincronizaciones con SAP.

    Este servicio:
    1. Ejecuta las sincronizaciones programadas (diaria y horaria)
    2. Atiende los eventos de la tienda (checkout, pedido, pago)
    3. Impide dos ejecuciones simultáneas del mismo tipo
    """

    def __init__(
        self,
        client: SAPClient,
        storefront: InMemoryStorefront,
        options: OptionStore,
        config: Optional[Settings] = None,
        sync_logger: Optional[SyncLogger] = None,
        order_mapping: Optional[OrderMappingConfig] = None
    ):
        """Inicializa el servicio de sincronización"""
        self.client = client
        self.storefront = storefront
        self.options = options
        self.config = config or default_settings
        self.sync_logger = sync_logger or SyncLogger(debug_mode=self.config.DEBUG_MODE)
        self.locks = SyncLockRegistry()

        self.product_sync = ProductSync(
            client, storefront.catalog, storefront.categories, options,
            config=self.config, sync_logger=self.sync_logger
        )
        self.stock_sync = StockSync(
            client, storefront.catalog, options,
            config=self.config, sync_logger=self.sync_logger
        )
        self.customer_sync = CustomerSync(
            client, storefront.customers, storefront.orders, options,
            config=self.config, sync_logger=self.sync_logger
        )
        self.order_sync = OrderSync(
            client, storefront.orders, self.customer_sync,
            config=self.config, sync_logger=self.sync_logger,
            mapper=OrderMapper(order_mapping or OrderMappingConfig.from_settings(self.config))
        )

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "SyncService":
        """
        Construye el servicio con el estado en archivos bajo STATE_DIR.
        """
        config = config or default_settings
        state_dir = Path(config.STATE_DIR)

        session_manager = SessionManager(config=config, store=FileSessionStore(state_dir / "session.json"))
        sync_logger = SyncLogger(
            sink=JsonlLogSink(state_dir / "sync_log.jsonl"),
            debug_mode=config.DEBUG_MODE,
            retention_days=config.LOG_RETENTION_DAYS
        )
        return cls(
            client=SAPClient(session_manager, config=config),
            storefront=JsonStorefront(state_dir / "storefront.json"),
            options=JsonOptionStore(state_dir / "options.json"),
            config=config,
            sync_logger=sync_logger
        )

    def _run_exclusive(self, sync_type: str, run) -> SyncSummary:
        with self.locks.hold(sync_type) as acquired:
            if not acquired:
                self.sync_logger.warning(f"Sincronización de {sync_type} ya en curso. Se ignora el disparo.")
                return SyncSummary(
                    sync_type=sync_type,
                    already_running=True,
                    error_message="Sincronización ya en curso"
                )

            try:
                return run()
            except Exception as e:
                logger.exception(f"Error inesperado en la sincronización de {sync_type}: {e}")
                self.sync_logger.error(f"Sincronización de {sync_type} abortada", {"error": str(e)})
                return SyncSummary(sync_type=sync_type, error_message=str(e))

    # --- Disparadores programados ---

    def run_daily_sync(self) -> list[SyncSummary]:
        """Productos y después clientes, si la sincronización está activa"""
        if not self.config.SYNC_ENABLED:
            logger.info("Sincronización diaria desactivada (SYNC_ENABLED=false)")
            return []

        self.sync_logger.log("sync", "Iniciando sincronización diaria")
        summaries = [
            self.run_manual_sync("products"),
            self.run_manual_sync("customers"),
        ]
        self.sync_logger.cleanup()
        return summaries

    def run_hourly_stock_sync(self) -> Optional[SyncSummary]:
        if not self.config.STOCK_SYNC_ENABLED:
            logger.info("Sincronización de stock desactivada (STOCK_SYNC_ENABLED=false)")
            return None
        return self.run_manual_sync("stock")

    def run_manual_sync(self, sync_type: str, since_date: Optional[str] = None) -> SyncSummary:
        """
        Ejecuta una sincronización de un tipo concreto.

        Args:
            sync_type: products, stock o customers
            since_date: Fecha YYYY-MM-DD para sincronización incremental

        Raises:
            ValueError: Si el tipo no existe
        """
        syncs = {
            "products": self.product_sync,
            "stock": self.stock_sync,
            "customers": self.customer_sync,
        }
        if sync_type not in syncs:
            raise ValueError(f"Tipo de sincronización desconocido: {sync_type}. Válidos: {', '.join(SYNC_TYPES)}")

        return self._run_exclusive(sync_type, lambda: syncs[sync_type].sync_all(since_date))

    # --- Eventos de la tienda ---

    def sync_order(self, order_id: int) -> SyncResult:
        with self.locks.hold(f"order:{order_id}") as acquired:
            if not acquired:
                self.sync_logger.warning(f"Pedido {order_id} ya se está sincronizando")
                return SyncResult(success=False, message="Sincronización ya en curso", key=str(order_id))
            return self.order_sync.sync_order(order_id)

    def preview_order(self, order_id: int) -> Optional[ApiResult]:
        """Documento calculado por SAP, bajo el mismo lock que el envío del pedido"""
        with self.locks.hold(f"order:{order_id}") as acquired:
            if not acquired:
                self.sync_logger.warning(f"Pedido {order_id} ya se está sincronizando")
                return None
            return self.order_sync.preview_order(order_id)

    def on_order_processing(self, order_id: int) -> Optional[SyncResult]:
        if not self.config.ORDER_SYNC_ENABLED:
            return None
        return self.sync_order(order_id)

    def on_checkout_processed(self, order_id: int) -> Optional[SyncResult]:
        """Alta o actualización del cliente del pedido en SAP"""
        if not self.config.SYNC_ENABLED:
            return None

        order = self.storefront.orders.get(order_id)
        if order is None:
            self.sync_logger.error(f"Pedido no encontrado: {order_id}")
            return SyncResult(success=False, message="Pedido no encontrado", key=str(order_id))

        try:
            if order.is_guest:
                return self.customer_sync.sync_guest_to_sap(order)
            return self.customer_sync.sync_customer_to_sap(order.customer_id, order)
        except Exception as e:
            logger.exception(f"Error inesperado al sincronizar el cliente del pedido {order_id}: {e}")
            return SyncResult(success=False, message=f"Error inesperado: {str(e)}", key=str(order_id))

    def on_customer_created(self, customer_id: int) -> Optional[SyncResult]:
        return self._customer_changed(customer_id)

    def on_customer_updated(self, customer_id: int) -> Optional[SyncResult]:
        return self._customer_changed(customer_id)

    def _customer_changed(self, customer_id: int) -> Optional[SyncResult]:
        if not self.config.SYNC_ENABLED:
            return None
        try:
            return self.customer_sync.sync_customer_to_sap(customer_id)
        except Exception as e:
            logger.exception(f"Error inesperado al sincronizar el cliente {customer_id}: {e}")
            return SyncResult(success=False, message=f"Error inesperado: {str(e)}", key=str(customer_id))

    def on_payment_complete(self, order_id: int) -> bool:
        """Envía a SAP el identificador de la transacción de pago"""
        order = self.storefront.orders.get(order_id)
        if order is None:
            return False

        transaction_id = order.transaction_id
        for meta_key in TRANSACTION_META_KEYS:
            transaction_id = transaction_id or order.get_meta(meta_key)
        if not transaction_id:
            return False

        return self.order_sync.update_transaction_id(order_id, str(transaction_id))

    # --- Estado ---

    def test_connections(self) -> dict:
        """
        Prueba la conexión con SAP.

        Returns:
            dict con el estado de la conexión
        """
        logger.info("Probando conexión con SAP...")

        try:
            sap_ok = self.client.test_connection()
            sap_message = "Conexión exitosa" if sap_ok else "Autenticación fallida"
        except Exception as e:
            sap_ok = False
            sap_message = f"Error: {str(e)}"

        result = {
            "sap": {
                "status": "OK" if sap_ok else "ERROR",
                "url": self.config.SAP_URL,
                "company_db": self.config.SAP_COMPANY_DB,
                "message": sap_message
            },
            "overall": "OK" if sap_ok else "ERROR"
        }

        logger.info(f"Test de conexiones completado: {result['overall']}")
        return result

    def last_sync_info(self) -> dict:
        """Fecha de la última ejecución de cada sincronización"""
        return {
            "products": self.options.get_option(ProductSync.CHECKPOINT),
            "stock": self.options.get_option(StockSync.CHECKPOINT),
            "customers": self.options.get_option(CustomerSync.CHECKPOINT),
            "running": [name for name in SYNC_TYPES if self.locks.is_running(name)],
        }

    def close(self) -> None:
        """Guarda el estado de la tienda (la sesión de SAP se conserva en caché)"""
        self.storefront.flush()
