"""
Modelos Pydantic para validación de datos del conector SAP - Tienda.

Las entidades de SAP se decodifican de forma tolerante: claves ausentes o
nulas toman valores por defecto en lugar de fallar.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


# --- Resultados de la API de SAP ---

class ApiErrorKind(str, Enum):
    """Tipos de error del cliente SAP"""
    AUTH_FAILED = "auth_failed"
    SESSION_EXPIRED = "session_expired"
    UPSTREAM = "upstream"
    TRANSPORT = "transport"


class ApiError(BaseModel):
    """Error devuelto como valor por el cliente SAP"""
    kind: ApiErrorKind = Field(description="Tipo de error")
    message: str = Field(description="Mensaje descriptivo")
    status_code: Optional[int] = Field(default=None, description="Código HTTP si aplica")
    response_body: Optional[str] = Field(default=None, description="Cuerpo de la respuesta para diagnóstico")


class SAPApiError(Exception):
    """Excepción para quien prefiera errores en lugar de valores"""

    def __init__(self, error: ApiError):
        super().__init__(error.message)
        self.error = error

    @property
    def kind(self) -> ApiErrorKind:
        return self.error.kind

    @property
    def status_code(self) -> Optional[int]:
        return self.error.status_code


class ApiResult(BaseModel):
    """
    Resultado de una llamada a SAP: datos o error, nunca ambos.
    """
    data: Any = Field(default=None, description="JSON de la respuesta")
    error: Optional[ApiError] = Field(default=None, description="Error si la llamada falló")

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, data: Any = None) -> "ApiResult":
        return cls(data=data)

    @classmethod
    def failure(
        cls,
        kind: ApiErrorKind,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None
    ) -> "ApiResult":
        return cls(error=ApiError(
            kind=kind,
            message=message,
            status_code=status_code,
            response_body=response_body
        ))

    def unwrap(self) -> Any:
        """Retorna los datos o lanza SAPApiError"""
        if self.error is not None:
            raise SAPApiError(self.error)
        return self.data


class SapSession(BaseModel):
    """Sesión autenticada del Service Layer"""
    session_token: str = Field(description="Valor de la cookie B1SESSION")
    cookies: dict[str, str] = Field(default_factory=dict, description="Cookies de la sesión")
    expires_at: float = Field(description="Expiración (epoch en segundos)")

    def is_valid(self, now: float, grace: int = 300) -> bool:
        """La sesión es válida sólo antes del margen de gracia"""
        return bool(self.session_token) and now < self.expires_at - grace

    def cookie_header(self) -> str:
        return "; ".join(f"{name}={value}" for name, value in self.cookies.items())


# --- Entidades de SAP ---

class SapEntity(BaseModel):
    """Base para entidades de SAP (acepta alias y campos extra)"""

    class Config:
        """Configuración del modelo"""
        populate_by_name = True
        extra = "allow"


class ItemPrice(SapEntity):
    """Precio de un artículo en una lista de precios"""
    price_list: Optional[int] = Field(default=None, alias="PriceList")
    price: Optional[float] = Field(default=None, alias="Price")


class WarehouseInfo(SapEntity):
    """Stock de un artículo en un almacén"""
    warehouse_code: Optional[str] = Field(default=None, alias="WarehouseCode")
    in_stock: Optional[float] = Field(default=0, alias="InStock")
    committed: Optional[float] = Field(default=0, alias="Committed")
    ordered: Optional[float] = Field(default=0, alias="Ordered")


class SapItem(SapEntity):
    """
    Artículo de SAP (Items).
    """
    item_code: str = Field(alias="ItemCode", description="Código único del artículo (SKU)")
    item_name: Optional[str] = Field(default=None, alias="ItemName")
    sales_unit: Optional[str] = Field(default=None, alias="SalesUnit")
    sales_unit_weight: Optional[float] = Field(default=None, alias="SalesUnitWeight")
    update_date: Optional[str] = Field(default=None, alias="UpdateDate")
    update_time: Optional[str] = Field(default=None, alias="UpdateTime")
    item_prices: Optional[list[ItemPrice]] = Field(default=None, alias="ItemPrices")
    warehouse_info: Optional[list[WarehouseInfo]] = Field(default=None, alias="ItemWarehouseInfoCollection")

    class Config:
        """Configuración del modelo"""
        populate_by_name = True
        extra = "allow"
        json_schema_extra = {
            "example": {
                "ItemCode": "DOBOZ-300",
                "ItemName": "Doboz 300x200x150",
                "ItemPrices": [{"PriceList": 1, "Price": 250.0}],
                "ItemWarehouseInfoCollection": [
                    {"WarehouseCode": "01", "InStock": 10, "Committed": 3, "Ordered": 0}
                ],
                "U_Webhierarchy": "A1"
            }
        }

    @property
    def custom_fields(self) -> dict[str, Any]:
        """Campos definidos por el usuario (prefijo U_)"""
        return {k: v for k, v in (self.model_extra or {}).items() if k.startswith("U_")}

    def get_field(self, name: str) -> Any:
        return (self.model_extra or {}).get(name)


class CategoryStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"


class HierarchyEntry(SapEntity):
    """Fila de la tabla plana de jerarquía web"""
    code: str = Field(alias="Code")
    name: str = Field(default="", alias="Name")
    parent_code: Optional[str] = Field(default=None, alias="U_Recipient")
    level: Optional[int] = Field(default=1, alias="U_Level")
    status: Optional[str] = Field(default="O", alias="U_Status")

    @property
    def category_status(self) -> CategoryStatus:
        return CategoryStatus.ACTIVE if (self.status or "O") == "O" else CategoryStatus.INACTIVE


class ContactEmployee(SapEntity):
    name: Optional[str] = Field(default=None, alias="Name")
    first_name: Optional[str] = Field(default=None, alias="FirstName")
    last_name: Optional[str] = Field(default=None, alias="LastName")
    e_mail: Optional[str] = Field(default=None, alias="E_Mail")
    mobile_phone: Optional[str] = Field(default=None, alias="MobilePhone")


class BPAddress(SapEntity):
    address_name: Optional[str] = Field(default=None, alias="AddressName")
    address_type: Optional[str] = Field(default=None, alias="AddressType")
    street: Optional[str] = Field(default=None, alias="Street")
    city: Optional[str] = Field(default=None, alias="City")
    zip_code: Optional[str] = Field(default=None, alias="ZipCode")
    country: Optional[str] = Field(default=None, alias="Country")

    @property
    def is_billing(self) -> bool:
        return self.address_type == "bo_BillTo"


class BusinessPartner(SapEntity):
    """
    Socio de negocio de SAP (BusinessPartners).
    """
    card_code: str = Field(alias="CardCode", description="Código único del socio")
    card_name: Optional[str] = Field(default=None, alias="CardName")
    email_address: Optional[str] = Field(default=None, alias="EmailAddress")
    phone1: Optional[str] = Field(default=None, alias="Phone1")
    tax_id: Optional[str] = Field(default=None, alias="UnifiedFederalTaxID")
    contact_employees: Optional[list[ContactEmployee]] = Field(default=None, alias="ContactEmployees")
    bp_addresses: Optional[list[BPAddress]] = Field(default=None, alias="BPAddresses")

    @property
    def primary_email(self) -> Optional[str]:
        """Primer email de contacto no vacío, si no el email general"""
        for contact in self.contact_employees or []:
            if contact.e_mail:
                return contact.e_mail
        return self.email_address or None


# --- Entidades de la tienda ---

class Address(BaseModel):
    """Dirección de facturación o envío en la tienda"""
    first_name: str = ""
    last_name: str = ""
    company: str = ""
    address_1: str = ""
    address_2: str = ""
    city: str = ""
    postcode: str = ""
    country: str = ""
    email: str = ""
    phone: str = ""


class StorefrontCustomer(BaseModel):
    """Cliente registrado de la tienda"""
    id: int = Field(description="ID del cliente en la tienda")
    email: str = Field(default="", description="Email de la cuenta")
    first_name: str = ""
    last_name: str = ""
    tax_id: str = Field(default="", description="Número fiscal")
    billing: Address = Field(default_factory=Address)
    shipping: Address = Field(default_factory=Address)
    meta: dict[str, Any] = Field(default_factory=dict)


class OrderLine(BaseModel):
    """Línea de pedido de la tienda"""
    product_id: Optional[int] = None
    sku: Optional[str] = Field(default=None, description="SKU del producto (vacío = línea no sincronizable)")
    name: str = ""
    quantity: float = Field(default=1, description="Cantidad pedida")
    subtotal: float = Field(default=0, description="Importe sin impuestos antes de descuentos")
    total: float = Field(default=0, description="Importe sin impuestos después de descuentos")
    tax_class: str = Field(default="", description="Clase de impuesto (vacío = estándar)")


class StorefrontOrder(BaseModel):
    """
    Pedido de la tienda.
    """
    id: int = Field(description="ID del pedido")
    number: str = Field(default="", description="Número de pedido visible")
    customer_id: int = Field(default=0, description="ID de cliente (0 = invitado)")
    status: str = "pending"
    created_at: datetime = Field(default_factory=datetime.now)
    billing: Address = Field(default_factory=Address)
    shipping: Address = Field(default_factory=Address)
    lines: list[OrderLine] = Field(default_factory=list)
    payment_method: str = ""
    shipping_method: Optional[str] = None
    shipping_total: float = 0
    customer_note: str = ""
    transaction_id: str = ""
    tax_id: str = Field(default="", description="Número fiscal indicado en el checkout")
    meta: dict[str, Any] = Field(default_factory=dict)
    notes: list[str] = Field(default_factory=list)

    @property
    def is_guest(self) -> bool:
        return not self.customer_id

    @property
    def order_number(self) -> str:
        return self.number or str(self.id)

    def get_meta(self, key: str, default: Any = None) -> Any:
        return self.meta.get(key, default)

    def update_meta(self, key: str, value: Any) -> None:
        self.meta[key] = value

    def add_note(self, note: str) -> None:
        self.notes.append(note)


class ProductAttribute(BaseModel):
    """Atributo visible de un producto"""
    name: str
    options: list[str] = Field(default_factory=list)
    position: int = 0
    visible: bool = True
    variation: bool = False


class StockFigures(BaseModel):
    """Totales de stock calculados sobre todos los almacenes"""
    in_stock: float = 0
    committed: float = 0
    ordered: float = 0
    available: int = 0

    @property
    def is_in_stock(self) -> bool:
        return self.available > 0


class ProductData(BaseModel):
    """Producto mapeado desde SAP listo para aplicar en la tienda"""
    sku: str
    name: str = ""
    regular_price: Optional[float] = None
    weight: Optional[float] = None
    stock: StockFigures = Field(default_factory=StockFigures)
    category_ids: list[int] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    attributes: list[ProductAttribute] = Field(default_factory=list)


# --- Resultados de mapeo y sincronización ---

class MappingStatus(str, Enum):
    MAPPED = "mapped"
    SKIPPED = "skipped"
    FAILED = "failed"


class MappingResult(BaseModel):
    """
    Resultado de mapear un registro: los fallos y omisiones son datos.
    """
    status: MappingStatus
    key: Optional[str] = Field(default=None, description="Clave del registro (ItemCode, CardCode...)")
    data: Any = None
    reason: str = ""

    @property
    def is_mapped(self) -> bool:
        return self.status == MappingStatus.MAPPED

    @classmethod
    def mapped(cls, data: Any, key: Optional[str] = None) -> "MappingResult":
        return cls(status=MappingStatus.MAPPED, key=key, data=data)

    @classmethod
    def skipped(cls, reason: str, key: Optional[str] = None) -> "MappingResult":
        return cls(status=MappingStatus.SKIPPED, key=key, reason=reason)

    @classmethod
    def failed(cls, reason: str, key: Optional[str] = None) -> "MappingResult":
        return cls(status=MappingStatus.FAILED, key=key, reason=reason)


class SyncResult(BaseModel):
    """
    Modelo para el resultado de sincronizar una entidad.
    """
    success: bool = Field(description="Indica si la operación fue exitosa")
    message: str = Field(description="Mensaje descriptivo del resultado")
    key: Optional[str] = Field(default=None, description="Clave de la entidad procesada")
    skipped: bool = Field(default=False, description="Registro omitido intencionalmente")
    remote_id: Optional[str] = Field(default=None, description="Identificador en SAP (CardCode, DocEntry)")


class SyncSummary(BaseModel):
    """
    Modelo para el resumen de una sincronización completa.
    """
    sync_type: str = Field(description="Tipo de sincronización (products, stock, customers, orders)")
    total: int = Field(default=0, description="Total de entidades procesadas")
    synced: int = Field(default=0, description="Entidades sincronizadas exitosamente")
    errors: int = Field(default=0, description="Entidades que fallaron")
    skipped: int = Field(default=0, description="Entidades omitidas (sin email, sin producto...)")
    results: list[SyncResult] = Field(default_factory=list, description="Resultados individuales")
    error_message: Optional[str] = Field(default=None, description="Error que impidió la ejecución")
    already_running: bool = Field(default=False, description="Otra ejecución del mismo tipo estaba en curso")
    total_time_seconds: float = Field(default=0.0, description="Tiempo total de sincronización")

    def add(self, result: SyncResult) -> None:
        self.results.append(result)
        if result.skipped:
            self.skipped += 1
        elif result.success:
            self.synced += 1
        else:
            self.errors += 1


class LogEntry(BaseModel):
    """Entrada del log de sincronización"""
    id: int = 0
    type: str = Field(description="Tipo: info, error, warning, debug, sync, product, stock, customer, order")
    message: str
    context: Optional[dict[str, Any]] = None
    created_at: datetime = Field(default_factory=datetime.now)
