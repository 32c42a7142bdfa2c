"""
Mapeo de pedidos de la tienda a pedidos de venta (Orders) de SAP.
"""
import logging
from datetime import timedelta
from typing import Any, Optional

from pydantic import BaseModel, Field

from .models import MappingResult, OrderLine, StorefrontOrder
from .config import Settings

logger = logging.getLogger(__name__)

CUSTOMER_NOTE_MAX_LENGTH = 254


class OrderMappingConfig(BaseModel):
    """
    Tablas de códigos de negocio para pedidos.

    Se construyen desde Settings y cualquier tabla se puede reemplazar.
    """
    payment_methods: dict[str, int] = Field(default_factory=dict, description="Método de pago -> PaymentGroupCode")
    shipping_methods: dict[str, int] = Field(default_factory=dict, description="Método de envío -> TransportationCode")
    tax_classes: dict[str, str] = Field(default_factory=dict, description="Clase de impuesto -> TaxCode")
    default_payment_terms: int = -1
    default_shipping_type: int = 4
    default_tax_code: str = "K27"
    shipping_item_code: Optional[str] = "SHIPPING"
    due_days: int = 7

    @classmethod
    def from_settings(cls, config: Settings, **overrides) -> "OrderMappingConfig":
        values = {
            "payment_methods": dict(config.PAYMENT_METHOD_MAPPING),
            "shipping_methods": dict(config.SHIPPING_METHOD_MAPPING),
            "tax_classes": dict(config.TAX_CLASS_MAPPING),
            "default_payment_terms": config.DEFAULT_PAYMENT_TERMS,
            "default_shipping_type": config.DEFAULT_SHIPPING_TYPE,
            "default_tax_code": config.DEFAULT_TAX_CODE,
            "shipping_item_code": config.SHIPPING_ITEM_CODE or None,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


class OrderMapper:
    """Construye el documento de pedido de SAP"""

    def __init__(self, config: Optional[OrderMappingConfig] = None):
        self.config = config or OrderMappingConfig()

    def payment_group_code(self, payment_method: str) -> int:
        return self.config.payment_methods.get(payment_method, self.config.default_payment_terms)

    def transportation_code(self, shipping_method: str) -> int:
        return self.config.shipping_methods.get(shipping_method, self.config.default_shipping_type)

    def tax_code(self, tax_class: str) -> str:
        return self.config.tax_classes.get(tax_class or "", self.config.default_tax_code)

    @staticmethod
    def comments(order: StorefrontOrder) -> str:
        comments = [f"Webshop rendelés #{order.order_number}"]
        if order.customer_note:
            comments.append(f"Vevő megjegyzése: {order.customer_note}")
        return "\n".join(comments)

    def build_line(self, line: OrderLine) -> Optional[dict[str, Any]]:
        """Línea del documento; None para líneas sin SKU"""
        sku = (line.sku or "").strip()
        if not sku:
            return None

        # Precio unitario sin impuestos y antes de descuentos
        unit_price = line.subtotal / line.quantity if line.quantity else 0.0

        document_line = {
            "ItemCode": sku,
            "Quantity": line.quantity,
            "UnitPrice": unit_price,
            "TaxCode": self.tax_code(line.tax_class),
        }

        discount = line.subtotal - line.total
        if discount > 0 and line.subtotal > 0:
            document_line["DiscountPercent"] = discount / line.subtotal * 100

        return document_line

    def build(self, order: StorefrontOrder, card_code: str, include_custom_fields: bool = True) -> MappingResult:
        """
        Construye el payload de Orders para un pedido.

        Args:
            order: Pedido de la tienda
            card_code: Socio de negocio de SAP
            include_custom_fields: Añadir U_SimpleID y U_CustomerNote

        Returns:
            MappingResult con el payload o failed si ninguna línea tiene SKU
        """
        lines = []
        for line in order.lines:
            document_line = self.build_line(line)
            if document_line is None:
                logger.debug(f"Pedido {order.id}: línea sin SKU omitida ({line.name})")
                continue
            lines.append(document_line)

        if not lines:
            return MappingResult.failed(f"El pedido {order.id} no tiene líneas con SKU", key=str(order.id))

        if order.shipping_total > 0 and self.config.shipping_item_code:
            lines.append({
                "ItemCode": self.config.shipping_item_code,
                "Quantity": 1,
                "UnitPrice": order.shipping_total,
                "TaxCode": self.config.default_tax_code,
            })

        payload = {
            "CardCode": card_code,
            "DocDate": order.created_at.strftime("%Y-%m-%d"),
            "DocDueDate": (order.created_at + timedelta(days=self.config.due_days)).strftime("%Y-%m-%d"),
            "Comments": self.comments(order),
            "DocumentLines": lines,
            "PaymentGroupCode": self.payment_group_code(order.payment_method),
        }

        if order.shipping_method:
            payload["TransportationCode"] = self.transportation_code(order.shipping_method)

        if include_custom_fields:
            if order.transaction_id:
                payload["U_SimpleID"] = order.transaction_id
            if order.customer_note:
                payload["U_CustomerNote"] = order.customer_note[:CUSTOMER_NOTE_MAX_LENGTH]

        return MappingResult.mapped(payload, key=str(order.id))
