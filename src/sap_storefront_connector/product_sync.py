"""
Sincronización de artículos de SAP hacia el catálogo de la tienda.
"""
import logging
import time
from datetime import datetime
from typing import Callable, Optional

from .category_resolver import CategoryResolver
from .models import ApiResult, MappingStatus, ProductData, SapItem, SyncResult, SyncSummary
from .product_mapper import AttributeSpec, DEFAULT_ATTRIBUTE_MAP, ProductMapper, lookup_tables_for
from .sap_client import SAPClient
from .storefront import CatalogStore, CategoryStore, OptionStore
from .sync_log import SyncLogger
from .config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class ProductSync:
    """
    Crea o actualiza productos de la tienda a partir de los artículos web de SAP.

    La jerarquía y las tablas de códigos se cargan una vez por ejecución.
    """

    SYNC_TYPE = "products"
    CHECKPOINT = "last_product_sync"

    def __init__(
        self,
        client: SAPClient,
        catalog: CatalogStore,
        categories: CategoryStore,
        options: OptionStore,
        config: Optional[Settings] = None,
        sync_logger: Optional[SyncLogger] = None,
        attribute_map: Optional[list[AttributeSpec]] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.client = client
        self.catalog = catalog
        self.categories = categories
        self.options = options
        self.config = config or default_settings
        self.sync_logger = sync_logger or SyncLogger()
        self.attribute_map = attribute_map if attribute_map is not None else DEFAULT_ATTRIBUTE_MAP
        self.clock = clock
        self.mapper: Optional[ProductMapper] = None

    def prepare(self) -> ProductMapper:
        """Carga jerarquía y tablas de códigos y construye el mapper de la ejecución"""
        hierarchy = self.client.get_web_hierarchy()
        if hierarchy.ok:
            entries = hierarchy.data
        else:
            self.sync_logger.error(f"No se pudo cargar la jerarquía: {hierarchy.error.message}")
            entries = []

        resolver = CategoryResolver(
            self.categories,
            entries,
            slug_prefix=self.config.CATEGORY_SLUG_PREFIX,
            sync_logger=self.sync_logger
        )

        self.mapper = ProductMapper(
            resolver=resolver,
            lookup_tables=self.load_lookup_tables(),
            attribute_map=self.attribute_map,
            price_list=self.config.SAP_PRICE_LIST,
            hierarchy_field=self.config.HIERARCHY_FIELD,
            sync_logger=self.sync_logger
        )
        return self.mapper

    def load_lookup_tables(self) -> dict[str, dict[str, str]]:
        """Tablas de usuario código -> nombre; las que fallan se omiten"""
        tables = {}
        for table in lookup_tables_for(self.attribute_map):
            result = self.client.get_user_table(table)
            if not result.ok:
                self.sync_logger.warning(f"No se pudo cargar la tabla {table}: {result.error.message}")
                continue
            tables[table] = {
                str(row.get("Code")): row.get("Name") or str(row.get("Code"))
                for row in result.data
                if row.get("Code") is not None
            }
        return tables

    def sync_all(self, since_date: Optional[str] = None) -> SyncSummary:
        """
        Sincroniza todos los artículos web (o los modificados desde una fecha).

        Args:
            since_date: Fecha YYYY-MM-DD para sincronización incremental

        Returns:
            SyncSummary con el resultado de la sincronización
        """
        start_time = time.time()
        self.sync_logger.log("sync", "Iniciando sincronización de productos", {"since_date": since_date})

        self.prepare()

        items = self.client.get_web_items(since_date)
        if not items.ok:
            self.sync_logger.error(f"No se pudieron obtener los artículos de SAP: {items.error.message}")
            return SyncSummary(
                sync_type=self.SYNC_TYPE,
                error_message=items.error.message,
                total_time_seconds=round(time.time() - start_time, 2)
            )

        summary = SyncSummary(sync_type=self.SYNC_TYPE, total=len(items.data))
        for item in items.data:
            summary.add(self.sync_one(item))

        self.save_last_sync_time()
        summary.total_time_seconds = round(time.time() - start_time, 2)

        self.sync_logger.log("sync", "Sincronización de productos completada", {
            "total": summary.total,
            "synced": summary.synced,
            "errors": summary.errors,
            "skipped": summary.skipped,
        })
        return summary

    def sync_changed(self) -> SyncSummary:
        """Sincroniza sólo lo modificado desde la última ejecución"""
        return self.sync_all(self.options.get_option(self.CHECKPOINT))

    def get_products_to_sync(self) -> ApiResult:
        return self.client.get_web_items(self.options.get_option(self.CHECKPOINT))

    def save_last_sync_time(self) -> None:
        self.options.update_option(self.CHECKPOINT, self.clock().strftime("%Y-%m-%d"))

    def sync_one(self, item: SapItem) -> SyncResult:
        """
        Sincroniza un solo artículo.

        Returns:
            SyncResult; nunca lanza excepción
        """
        mapper = self.mapper or self.prepare()

        try:
            mapping = mapper.map(item)
            if mapping.status == MappingStatus.SKIPPED:
                self.sync_logger.debug(mapping.reason)
                return SyncResult(success=False, skipped=True, message=mapping.reason, key=item.item_code)
            if mapping.status == MappingStatus.FAILED:
                self.sync_logger.error(f"Error al mapear el producto {item.item_code}: {mapping.reason}")
                return SyncResult(success=False, message=mapping.reason, key=item.item_code)

            product_id = self.apply(mapping.data)

            self.sync_logger.log("product", f"Producto sincronizado: {mapping.key}", {
                "product_id": product_id,
                "name": mapping.data.name,
            })
            return SyncResult(success=True, message="Producto sincronizado", key=mapping.key)

        except Exception as e:
            logger.exception(f"Error inesperado al sincronizar el producto {item.item_code}: {e}")
            self.sync_logger.error(f"Error al sincronizar el producto: {item.item_code}", {"error": str(e)})
            return SyncResult(success=False, message=f"Error inesperado: {str(e)}", key=item.item_code)

    def apply(self, data: ProductData) -> int:
        """Escribe el producto mapeado en el catálogo"""
        fields = {"sku": data.sku, "name": data.name}
        if data.regular_price is not None:
            fields["regular_price"] = data.regular_price
        if data.weight is not None:
            fields["weight"] = data.weight

        product_id = self.catalog.upsert(self.catalog.find_by_sku(data.sku), fields)

        if data.category_ids:
            self.catalog.set_categories(product_id, data.category_ids)
        self.catalog.set_stock_level(product_id, data.stock.available, data.stock.is_in_stock)
        self.catalog.set_metadata(product_id, data.metadata)
        if data.attributes:
            self.catalog.set_attributes(product_id, data.attributes)

        return product_id
