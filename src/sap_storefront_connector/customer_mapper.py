"""
Mapeo entre socios de negocio de SAP y clientes de la tienda.
"""
import logging
from typing import Any, Optional

from pydantic import BaseModel

from .models import Address, BusinessPartner, MappingResult, StorefrontCustomer, StorefrontOrder
from .config import Settings

logger = logging.getLogger(__name__)

BILLING = "billing"
SHIPPING = "shipping"

ADDRESS_NAMES = {
    BILLING: "Számlázási cím",
    SHIPPING: "Szállítási cím",
}

ADDRESS_TYPES = {
    BILLING: "bo_BillTo",
    SHIPPING: "bo_ShipTo",
}

CONTACT_NAME = "WEB"


class PartnerDefaults(BaseModel):
    """Valores fijos de los socios creados desde la tienda"""
    currency: str = "Ft"
    payment_terms: int = -1
    shipping_type: Optional[int] = 4
    country: str = "HU"
    web_prefix: str = "WEB"
    guest_prefix: str = "GUEST"
    padding: int = 6

    @classmethod
    def from_settings(cls, config: Settings) -> "PartnerDefaults":
        return cls(
            currency=config.CURRENCY,
            payment_terms=config.DEFAULT_PAYMENT_TERMS,
            shipping_type=config.DEFAULT_SHIPPING_TYPE or None,
            country=config.DEFAULT_COUNTRY,
            web_prefix=config.WEB_CARD_CODE_PREFIX,
            guest_prefix=config.GUEST_CARD_CODE_PREFIX,
            padding=config.CARD_CODE_PADDING
        )


def card_code_for(prefix: str, identifier: int, padding: int = 6) -> str:
    """Ej: card_code_for("WEB", 42) -> "WEB000042" """
    return f"{prefix}{str(identifier).zfill(padding)}"


def full_name(first_name: str, last_name: str) -> str:
    return f"{first_name} {last_name}".strip()


class CustomerMapper:
    """
    Construye los payloads de SAP para clientes y aplica socios de SAP a la tienda.
    """

    def __init__(self, defaults: Optional[PartnerDefaults] = None):
        self.defaults = defaults or PartnerDefaults()

    # --- SAP -> tienda ---

    def map_partner(self, partner: BusinessPartner) -> MappingResult:
        """
        Datos a escribir en la cuenta de la tienda para un socio de SAP.

        Sin email el socio se omite.
        """
        email = partner.primary_email
        if not email:
            return MappingResult.skipped(f"Socio sin email: {partner.card_code}", key=partner.card_code)

        billing = None
        shipping = None
        for address in partner.bp_addresses or []:
            mapped = Address(
                address_1=address.street or "",
                city=address.city or "",
                postcode=address.zip_code or "",
                country=address.country or self.defaults.country
            )
            if address.is_billing:
                billing = mapped
            else:
                shipping = mapped

        return MappingResult.mapped({
            "email": email.strip(),
            "card_code": partner.card_code,
            "company": partner.card_name or "",
            "phone": partner.phone1 or "",
            "billing": billing,
            "shipping": shipping,
        }, key=partner.card_code)

    def apply_partner(self, customer: StorefrontCustomer, data: dict[str, Any]) -> StorefrontCustomer:
        """Escribe referencia cruzada, empresa, teléfono y direcciones en el cliente"""
        customer.meta["_sap_card_code"] = data["card_code"]

        billing = data.get("billing")
        if billing is not None:
            customer.billing = customer.billing.model_copy(update=billing.model_dump(exclude={
                "first_name", "last_name", "company", "address_2", "email", "phone"
            }))
        shipping = data.get("shipping")
        if shipping is not None:
            customer.shipping = customer.shipping.model_copy(update=shipping.model_dump(exclude={
                "first_name", "last_name", "company", "address_2", "email", "phone"
            }))

        customer.billing.company = data["company"]
        customer.billing.phone = data["phone"]
        return customer

    # --- tienda -> SAP ---

    def web_card_code(self, customer_id: int) -> str:
        return card_code_for(self.defaults.web_prefix, customer_id, self.defaults.padding)

    def guest_card_code(self, order_id: int) -> str:
        return card_code_for(self.defaults.guest_prefix, order_id, self.defaults.padding)

    def build_contact(self, customer: StorefrontCustomer, order: Optional[StorefrontOrder] = None) -> dict[str, Any]:
        """Persona de contacto; los huecos del perfil se completan con el pedido"""
        first_name = customer.billing.first_name or customer.first_name
        last_name = customer.billing.last_name or customer.last_name
        email = customer.email or customer.billing.email
        phone = customer.billing.phone

        if order is not None:
            first_name = first_name or order.billing.first_name
            last_name = last_name or order.billing.last_name
            email = email or order.billing.email
            phone = phone or order.billing.phone

        return {
            "Active": "tYES",
            "FirstName": first_name,
            "LastName": last_name,
            "E_Mail": email,
            "MobilePhone": phone,
        }

    def build_address(self, address: Address, kind: str) -> Optional[dict[str, Any]]:
        """Dirección del perfil; None si falta calle o ciudad"""
        if not address.address_1 or not address.city:
            return None

        street = address.address_1
        if address.address_2:
            street += f" {address.address_2}"

        return {
            "AddressName": ADDRESS_NAMES[kind],
            "Street": street,
            "ZipCode": address.postcode,
            "City": address.city,
            "Country": address.country or self.defaults.country,
            "AddressType": ADDRESS_TYPES[kind],
        }

    def build_address_from_order(self, order: StorefrontOrder, kind: str) -> dict[str, Any]:
        """Dirección del pedido; los campos vacíos se rellenan con N/A"""
        address = order.billing if kind == BILLING else order.shipping

        street = address.address_1
        if address.address_2:
            street += f" {address.address_2}"

        return {
            "AddressName": ADDRESS_NAMES[kind],
            "Street": street or "N/A",
            "ZipCode": address.postcode or "N/A",
            "City": address.city or "N/A",
            "Country": address.country or self.defaults.country,
            "AddressType": ADDRESS_TYPES[kind],
        }

    def _base_payload(self, card_code: str, card_name: str, phone: str) -> dict[str, Any]:
        payload = {
            "CardCode": card_code,
            "CardName": card_name,
            "CardType": "cCustomer",
            "Phone1": phone,
            "Currency": self.defaults.currency,
            "PayTermsGrpCode": self.defaults.payment_terms,
        }
        if self.defaults.shipping_type:
            payload["ShippingType"] = self.defaults.shipping_type
        return payload

    def build_partner(
        self,
        customer: StorefrontCustomer,
        card_code: str,
        order: Optional[StorefrontOrder] = None
    ) -> dict[str, Any]:
        """Payload completo de un cliente registrado"""
        billing = customer.billing
        card_name = billing.company or full_name(
            billing.first_name or customer.first_name,
            billing.last_name or customer.last_name
        )
        if not card_name and order is not None:
            card_name = order.billing.company or full_name(order.billing.first_name, order.billing.last_name)

        payload = self._base_payload(card_code, card_name or customer.email, billing.phone)

        contact = self.build_contact(customer, order)
        contact["CardCode"] = card_code
        contact["Name"] = CONTACT_NAME
        payload["ContactEmployees"] = [contact]

        addresses = [
            address for address in (
                self.build_address(customer.billing, BILLING),
                self.build_address(customer.shipping, SHIPPING),
            ) if address
        ]
        if not addresses and order is not None:
            addresses = [
                self.build_address_from_order(order, BILLING),
                self.build_address_from_order(order, SHIPPING),
            ]
        payload["BPAddresses"] = addresses

        return payload

    def build_guest_partner(self, order: StorefrontOrder, card_code: str) -> dict[str, Any]:
        """Payload completo de un invitado, todo desde el pedido"""
        billing = order.billing
        card_name = billing.company or full_name(billing.first_name, billing.last_name) or billing.email

        payload = self._base_payload(card_code, card_name, billing.phone)
        payload["ContactEmployees"] = [{
            "CardCode": card_code,
            "Name": CONTACT_NAME,
            "Active": "tYES",
            "FirstName": billing.first_name,
            "LastName": billing.last_name,
            "E_Mail": billing.email,
            "MobilePhone": billing.phone,
        }]
        payload["BPAddresses"] = [
            self.build_address_from_order(order, BILLING),
            self.build_address_from_order(order, SHIPPING),
        ]
        return payload

    def build_partner_update(
        self,
        customer: StorefrontCustomer,
        order: Optional[StorefrontOrder] = None
    ) -> dict[str, Any]:
        """Actualización parcial: sólo la persona de contacto, nunca las direcciones"""
        return {"ContactEmployees": [self.build_contact(customer, order)]}
