"""
Sincronización de clientes en ambos sentidos.

SAP -> tienda: importación de socios de negocio (clientes) con email.
Tienda -> SAP: alta o actualización del socio de un cliente o invitado.
"""
import logging
import time
from datetime import datetime
from typing import Callable, Optional

from .customer_mapper import CustomerMapper, PartnerDefaults
from .models import ApiResult, BusinessPartner, MappingStatus, StorefrontCustomer, StorefrontOrder, SyncResult, SyncSummary
from .sap_client import SAPClient
from .storefront import CustomerStore, OptionStore, OrderStore
from .sync_log import SyncLogger
from .config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

CARD_CODE_META = "_sap_card_code"


class CustomerSync:
    """
    Mantiene la referencia cruzada cliente <-> socio de negocio (_sap_card_code).
    """

    SYNC_TYPE = "customers"
    CHECKPOINT = "last_customer_sync"

    def __init__(
        self,
        client: SAPClient,
        customers: CustomerStore,
        orders: OrderStore,
        options: OptionStore,
        config: Optional[Settings] = None,
        sync_logger: Optional[SyncLogger] = None,
        mapper: Optional[CustomerMapper] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.client = client
        self.customers = customers
        self.orders = orders
        self.options = options
        self.config = config or default_settings
        self.sync_logger = sync_logger or SyncLogger()
        self.mapper = mapper or CustomerMapper(PartnerDefaults.from_settings(self.config))
        self.clock = clock

    # --- SAP -> tienda ---

    def sync_all(self, since_date: Optional[str] = None) -> SyncSummary:
        """
        Importa los clientes de SAP (todos o los modificados desde una fecha).

        Returns:
            SyncSummary con el resultado de la sincronización
        """
        start_time = time.time()
        self.sync_logger.log("customer", "Iniciando sincronización de clientes desde SAP", {"since_date": since_date})

        partners = self.client.get_customers(since_date)
        if not partners.ok:
            self.sync_logger.error(f"No se pudieron obtener los clientes de SAP: {partners.error.message}")
            return SyncSummary(
                sync_type=self.SYNC_TYPE,
                error_message=partners.error.message,
                total_time_seconds=round(time.time() - start_time, 2)
            )

        summary = SyncSummary(sync_type=self.SYNC_TYPE, total=len(partners.data))
        for partner in partners.data:
            summary.add(self.sync_one(partner))

        self.options.update_option(self.CHECKPOINT, self.clock().strftime("%Y-%m-%d"))
        summary.total_time_seconds = round(time.time() - start_time, 2)

        self.sync_logger.log("customer", "Sincronización de clientes completada", {
            "total": summary.total,
            "synced": summary.synced,
            "errors": summary.errors,
            "skipped": summary.skipped,
        })
        return summary

    def sync_changed(self) -> SyncSummary:
        return self.sync_all(self.options.get_option(self.CHECKPOINT))

    def sync_one(self, partner: BusinessPartner) -> SyncResult:
        """Importa un socio de SAP a la tienda; nunca lanza excepción"""
        try:
            mapping = self.mapper.map_partner(partner)
            if mapping.status == MappingStatus.SKIPPED:
                self.sync_logger.debug(f"Cliente sin email omitido: {partner.card_code}")
                return SyncResult(success=False, skipped=True, message=mapping.reason, key=partner.card_code)

            email = mapping.data["email"]
            customer_id = self.customers.find_by_email(email)
            created = customer_id is None
            if created:
                customer_id = self.customers.create(email)

            customer = self.customers.get(customer_id)
            self.customers.save(self.mapper.apply_partner(customer, mapping.data))

            return SyncResult(
                success=True,
                message="Cliente creado" if created else "Cliente actualizado",
                key=partner.card_code,
                remote_id=partner.card_code
            )

        except Exception as e:
            logger.exception(f"Error inesperado al importar el cliente {partner.card_code}: {e}")
            self.sync_logger.error(f"Error al importar el cliente: {partner.card_code}", {"error": str(e)})
            return SyncResult(success=False, message=f"Error inesperado: {str(e)}", key=partner.card_code)

    # --- tienda -> SAP ---

    def get_card_code(self, customer_id: int) -> Optional[str]:
        customer = self.customers.get(customer_id)
        if customer is None:
            return None
        return customer.meta.get(CARD_CODE_META) or None

    def find_partner(self, email: str = "", tax_id: str = "") -> ApiResult:
        """
        Busca un socio existente por email y después por número fiscal.

        Returns:
            ApiResult con el CardCode o None si no existe
        """
        if email:
            found = self.client.get_customer_by_email(email)
            if not found.ok:
                return found
            if found.data and found.data.get("CardCode"):
                return ApiResult.success(found.data["CardCode"])

        if tax_id:
            found = self.client.get_customer_by_tax_id(tax_id)
            if not found.ok:
                return found
            if found.data and found.data.get("CardCode"):
                return ApiResult.success(found.data["CardCode"])

        return ApiResult.success(None)

    def sync_customer_to_sap(self, customer_id: int, order: Optional[StorefrontOrder] = None) -> SyncResult:
        """
        Alta o actualización del socio de un cliente registrado.

        Con referencia cruzada sólo se actualiza la persona de contacto. Sin ella
        se busca el socio por email y número fiscal y, si no existe, se crea.

        Returns:
            SyncResult con el CardCode en remote_id
        """
        key = str(customer_id)
        customer = self.customers.get(customer_id)
        if customer is None:
            self.sync_logger.error(f"Cliente no encontrado: {customer_id}")
            return SyncResult(success=False, message="Cliente no encontrado", key=key)

        card_code = customer.meta.get(CARD_CODE_META)
        if card_code:
            return self._update_partner(card_code, customer, order)

        found = self.find_partner(customer.email or customer.billing.email, customer.tax_id)
        if not found.ok:
            self.sync_logger.error(f"Error al buscar el cliente {customer_id} en SAP: {found.error.message}")
            return SyncResult(success=False, message=found.error.message, key=key)

        if found.data:
            self.customers.set_metadata(customer_id, {CARD_CODE_META: found.data})
            self.sync_logger.log("customer", "Cliente vinculado a un socio existente en SAP", {
                "customer_id": customer_id,
                "card_code": found.data,
            })
            return SyncResult(success=True, message="Cliente vinculado", key=key, remote_id=found.data)

        card_code = self.mapper.web_card_code(customer_id)
        payload = self.mapper.build_partner(customer, card_code, order)
        created = self._create_partner(card_code, payload)
        if not created.ok:
            self.sync_logger.error(f"No se pudo crear el cliente en SAP: {created.error.message}", {
                "customer_id": customer_id,
            })
            return SyncResult(success=False, message=created.error.message, key=key)

        self.customers.set_metadata(customer_id, {CARD_CODE_META: card_code})
        self.sync_logger.log("customer", "Cliente creado en SAP", {
            "customer_id": customer_id,
            "card_code": card_code,
        })
        return SyncResult(success=True, message="Cliente creado en SAP", key=key, remote_id=card_code)

    def sync_guest_to_sap(self, order: StorefrontOrder) -> SyncResult:
        """
        Socio de negocio para un pedido de invitado.

        Se reutiliza la referencia del pedido o un socio con el mismo email o
        número fiscal; si no hay ninguno se crea uno GUEST.
        """
        key = str(order.id)
        card_code = order.get_meta(CARD_CODE_META)
        if card_code:
            return SyncResult(success=True, message="Invitado ya vinculado", key=key, remote_id=card_code)

        found = self.find_partner(order.billing.email, order.tax_id)
        if not found.ok:
            self.sync_logger.error(f"Error al buscar el invitado del pedido {order.id} en SAP: {found.error.message}")
            return SyncResult(success=False, message=found.error.message, key=key)

        if found.data:
            card_code = found.data
            message = "Invitado vinculado a un socio existente"
        else:
            card_code = self.mapper.guest_card_code(order.id)
            created = self._create_partner(card_code, self.mapper.build_guest_partner(order, card_code))
            if not created.ok:
                self.sync_logger.error(f"No se pudo crear el invitado en SAP: {created.error.message}", {
                    "order_id": order.id,
                })
                return SyncResult(success=False, message=created.error.message, key=key)
            message = "Invitado creado en SAP"

        order.update_meta(CARD_CODE_META, card_code)
        self.orders.save(order)

        self.sync_logger.log("customer", message, {"order_id": order.id, "card_code": card_code})
        return SyncResult(success=True, message=message, key=key, remote_id=card_code)

    def _create_partner(self, card_code: str, payload: dict) -> ApiResult:
        """Crea el socio; si ya existía con ese CardCode se adopta"""
        created = self.client.create_customer(payload)
        if created.ok:
            return created

        existing = self.client.get_customer(card_code)
        if existing.ok:
            self.sync_logger.warning(f"El socio {card_code} ya existía en SAP. Se reutiliza.")
            return existing
        return created

    def _update_partner(
        self,
        card_code: str,
        customer: StorefrontCustomer,
        order: Optional[StorefrontOrder] = None
    ) -> SyncResult:
        key = str(customer.id)
        result = self.client.update_customer(card_code, self.mapper.build_partner_update(customer, order))
        if not result.ok:
            self.sync_logger.error(f"No se pudo actualizar el cliente en SAP: {result.error.message}", {
                "card_code": card_code,
            })
            return SyncResult(success=False, message=result.error.message, key=key, remote_id=card_code)

        self.sync_logger.log("customer", "Cliente actualizado en SAP", {"card_code": card_code})
        return SyncResult(success=True, message="Cliente actualizado en SAP", key=key, remote_id=card_code)
