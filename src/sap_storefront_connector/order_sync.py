"""
Envío de pedidos de la tienda a SAP como pedidos de venta.
"""
import logging
from datetime import datetime
from typing import Callable, Optional

from .customer_sync import CARD_CODE_META, CustomerSync
from .models import ApiResult, MappingStatus, StorefrontOrder, SyncResult, SyncSummary
from .order_mapper import OrderMapper, OrderMappingConfig
from .sap_client import SAPClient
from .storefront import OrderStore
from .sync_log import SyncLogger
from .config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

DOC_ENTRY_META = "_sap_doc_entry"
DOC_NUM_META = "_sap_doc_num"
SYNCED_AT_META = "_sap_synced_at"
TRANSACTION_META = "_sap_simple_id"


class OrderSync:
    """
    Crea el pedido de venta en SAP como mucho una vez por pedido.

    Si el pedido ya tiene _sap_doc_entry no se hace ninguna llamada a SAP.
    """

    SYNC_TYPE = "orders"

    def __init__(
        self,
        client: SAPClient,
        orders: OrderStore,
        customer_sync: CustomerSync,
        config: Optional[Settings] = None,
        sync_logger: Optional[SyncLogger] = None,
        mapper: Optional[OrderMapper] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.client = client
        self.orders = orders
        self.customer_sync = customer_sync
        self.config = config or default_settings
        self.sync_logger = sync_logger or SyncLogger()
        self.mapper = mapper or OrderMapper(OrderMappingConfig.from_settings(self.config))
        self.clock = clock

    def sync_all(self, order_ids: list[int]) -> SyncSummary:
        """Sincroniza una lista de pedidos; los ya enviados cuentan como sincronizados"""
        summary = SyncSummary(sync_type=self.SYNC_TYPE, total=len(order_ids))
        for order_id in order_ids:
            summary.add(self.sync_order(order_id))
        return summary

    def sync_order(self, order_id: int) -> SyncResult:
        order = self.orders.get(order_id)
        if order is None:
            self.sync_logger.error(f"Pedido no encontrado: {order_id}")
            return SyncResult(success=False, message="Pedido no encontrado", key=str(order_id))
        return self.sync_one(order)

    def sync_one(self, order: StorefrontOrder) -> SyncResult:
        """
        Envía un pedido a SAP.

        Returns:
            SyncResult con el DocEntry en remote_id; nunca lanza excepción
        """
        key = str(order.id)

        doc_entry = order.get_meta(DOC_ENTRY_META)
        if doc_entry:
            self.sync_logger.debug(f"Pedido ya sincronizado: {order.id} (DocEntry: {doc_entry})")
            return SyncResult(success=True, message="Pedido ya sincronizado", key=key, remote_id=str(doc_entry))

        try:
            card_code = self.get_or_create_customer(order)
            if not card_code:
                self.sync_logger.error(f"No se pudo obtener/crear el cliente del pedido: {order.id}")
                return SyncResult(success=False, message="No se pudo obtener/crear el cliente", key=key)

            mapping = self.mapper.build(order, card_code)
            if mapping.status != MappingStatus.MAPPED:
                self.sync_logger.error(mapping.reason, {"order_id": order.id})
                order.add_note(f"Sincronización con SAP fallida: {mapping.reason}")
                self.orders.save(order)
                return SyncResult(success=False, message=mapping.reason, key=key)

            result = self.client.create_order(mapping.data)
            if not result.ok:
                self.sync_logger.error(f"No se pudo crear el pedido en SAP: {result.error.message}", {
                    "order_id": order.id,
                    "order_data": mapping.data,
                })
                order.add_note(f"Sincronización con SAP fallida: {result.error.message}")
                self.orders.save(order)
                return SyncResult(success=False, message=result.error.message, key=key)

            data = result.data if isinstance(result.data, dict) else {}
            doc_entry = data.get("DocEntry")
            doc_num = data.get("DocNum")
            if not doc_entry:
                message = "SAP no devolvió DocEntry para el pedido creado"
                self.sync_logger.error(message, {
                    "order_id": order.id,
                    "response": result.data,
                })
                order.add_note(f"Sincronización con SAP fallida: {message}")
                self.orders.save(order)
                return SyncResult(success=False, message=message, key=key)

            order.update_meta(DOC_ENTRY_META, doc_entry)
            order.update_meta(DOC_NUM_META, doc_num)
            order.update_meta(SYNCED_AT_META, self.clock().strftime("%Y-%m-%d %H:%M:%S"))
            order.add_note(f"Pedido creado en SAP - DocEntry: {doc_entry}, DocNum: {doc_num}")
            self.orders.save(order)

            self.sync_logger.log("order", "Pedido sincronizado con SAP", {
                "order_id": order.id,
                "doc_entry": doc_entry,
                "doc_num": doc_num,
            })
            return SyncResult(success=True, message="Pedido creado en SAP", key=key, remote_id=str(doc_entry))

        except Exception as e:
            logger.exception(f"Error inesperado al sincronizar el pedido {order.id}: {e}")
            self.sync_logger.error(f"Error al sincronizar el pedido: {order.id}", {"error": str(e)})
            return SyncResult(success=False, message=f"Error inesperado: {str(e)}", key=key)

    def get_or_create_customer(self, order: StorefrontOrder) -> Optional[str]:
        """CardCode del pedido, creando el socio en SAP si hace falta"""
        if not order.is_guest:
            card_code = self.customer_sync.get_card_code(order.customer_id)
            if card_code:
                return card_code
            result = self.customer_sync.sync_customer_to_sap(order.customer_id, order)
            return result.remote_id if result.success else None

        card_code = order.get_meta(CARD_CODE_META)
        if card_code:
            return card_code
        result = self.customer_sync.sync_guest_to_sap(order)
        return result.remote_id if result.success else None

    def update_transaction_id(self, order_id: int, transaction_id: str) -> bool:
        """
        Escribe el identificador de la transacción de pago en el pedido de SAP.

        Returns:
            True si SAP aceptó la actualización
        """
        order = self.orders.get(order_id)
        if order is None:
            return False

        doc_entry = order.get_meta(DOC_ENTRY_META)
        if not doc_entry:
            return False

        result = self.client.update_order(doc_entry, {"U_SimpleID": transaction_id})
        if not result.ok:
            self.sync_logger.error(f"No se pudo actualizar la transacción en SAP: {result.error.message}", {
                "order_id": order_id,
                "doc_entry": doc_entry,
            })
            return False

        order.update_meta(TRANSACTION_META, transaction_id)
        order.add_note(f"Identificador de pago actualizado en SAP: {transaction_id}")
        self.orders.save(order)

        self.sync_logger.log("order", "Identificador de pago actualizado en SAP", {
            "order_id": order_id,
            "doc_entry": doc_entry,
            "transaction_id": transaction_id,
        })
        return True

    def preview_order(self, order_id: int) -> Optional[ApiResult]:
        """
        Documento calculado por SAP sin crearlo.

        Returns:
            ApiResult de OrdersService_Preview o None si no hay pedido o cliente
        """
        order = self.orders.get(order_id)
        if order is None:
            return None

        card_code = self.get_or_create_customer(order)
        if not card_code:
            return None

        mapping = self.mapper.build(order, card_code, include_custom_fields=False)
        if not mapping.is_mapped:
            return None
        return self.client.preview_order(mapping.data)
