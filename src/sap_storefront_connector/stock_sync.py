"""
Sincronización de niveles de stock de SAP hacia la tienda.
"""
import logging
import time
from datetime import datetime
from typing import Callable, Optional

from .models import SapItem, SyncResult, SyncSummary
from .sap_client import SAPClient
from .stock_mapper import available_stock, stock_metadata, stock_totals
from .storefront import CatalogStore, OptionStore
from .sync_log import SyncLogger
from .config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class StockSync:
    """
    Actualiza cantidad y estado de stock de los productos existentes.

    Los artículos sin producto en la tienda se omiten: el stock nunca crea productos.
    """

    SYNC_TYPE = "stock"
    CHECKPOINT = "last_stock_sync"

    def __init__(
        self,
        client: SAPClient,
        catalog: CatalogStore,
        options: OptionStore,
        config: Optional[Settings] = None,
        sync_logger: Optional[SyncLogger] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.client = client
        self.catalog = catalog
        self.options = options
        self.config = config or default_settings
        self.sync_logger = sync_logger or SyncLogger()
        self.clock = clock

    def sync_all(self, since_date: Optional[str] = None) -> SyncSummary:
        """
        Sincroniza el stock de todos los artículos web.

        since_date se acepta por simetría con el resto de sincronizaciones,
        pero el stock siempre se lee completo.
        """
        start_time = time.time()
        self.sync_logger.log("stock", "Iniciando sincronización de stock")

        items = self.client.get_item_stock()
        if not items.ok:
            self.sync_logger.error(f"No se pudo obtener el stock de SAP: {items.error.message}")
            return SyncSummary(
                sync_type=self.SYNC_TYPE,
                error_message=items.error.message,
                total_time_seconds=round(time.time() - start_time, 2)
            )

        summary = SyncSummary(sync_type=self.SYNC_TYPE, total=len(items.data))
        for item in items.data:
            summary.add(self.sync_one(item))

        self.options.update_option(self.CHECKPOINT, self.clock().strftime("%Y-%m-%d %H:%M:%S"))
        summary.total_time_seconds = round(time.time() - start_time, 2)

        self.sync_logger.log("stock", "Sincronización de stock completada", {
            "total": summary.total,
            "synced": summary.synced,
            "errors": summary.errors,
            "skipped": summary.skipped,
        })
        return summary

    def sync_one(self, item: SapItem) -> SyncResult:
        """Actualiza el stock de un artículo; nunca lanza excepción"""
        try:
            product_id = self.catalog.find_by_sku(item.item_code)
            if not product_id:
                self.sync_logger.debug(f"Stock omitido, producto inexistente: {item.item_code}")
                return SyncResult(
                    success=False,
                    skipped=True,
                    message="Producto no encontrado en la tienda",
                    key=item.item_code
                )

            figures = stock_totals(item.warehouse_info)
            self.catalog.set_stock_level(product_id, figures.available, figures.is_in_stock)
            self.catalog.set_metadata(product_id, stock_metadata(figures, self.clock()))

            self.sync_logger.debug(f"Stock actualizado: {item.item_code} = {figures.available}")
            return SyncResult(success=True, message=f"Stock actualizado: {figures.available}", key=item.item_code)

        except Exception as e:
            logger.exception(f"Error inesperado al sincronizar stock de {item.item_code}: {e}")
            self.sync_logger.error(f"Error al sincronizar stock: {item.item_code}", {"error": str(e)})
            return SyncResult(success=False, message=f"Error inesperado: {str(e)}", key=item.item_code)

    def get_realtime_stock(self, item_code: str) -> Optional[int]:
        """
        Stock disponible consultado en SAP en este momento.

        Returns:
            Cantidad disponible o None si SAP no responde
        """
        result = self.client.get_item(item_code)
        if not result.ok:
            self.sync_logger.warning(f"No se pudo consultar el stock de {item_code}: {result.error.message}")
            return None
        return available_stock(result.data.warehouse_info)

    def check_availability(self, sku: str, quantity: float) -> bool:
        """
        Comprueba si hay stock para una cantidad.

        Con REALTIME_STOCK_CHECK desactivado (o SAP sin respuesta) se usa el
        stock guardado en la tienda.
        """
        if self.config.REALTIME_STOCK_CHECK:
            realtime = self.get_realtime_stock(sku)
            if realtime is not None:
                return quantity <= realtime

        product_id = self.catalog.find_by_sku(sku)
        if not product_id:
            return False
        product = self.catalog.get_product(product_id)
        return quantity <= (product or {}).get("stock_quantity", 0)
