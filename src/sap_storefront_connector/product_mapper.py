"""
Mapeo de artículos de SAP a productos de la tienda.
"""
import logging
from typing import Any, Optional

from pydantic import BaseModel

from .category_resolver import CategoryResolver
from .models import MappingResult, ProductAttribute, ProductData, SapItem
from .stock_mapper import stock_totals
from .sync_log import SyncLogger

logger = logging.getLogger(__name__)


class AttributeSpec(BaseModel):
    """Campo de usuario de SAP mostrado como atributo del producto"""
    field: str
    label: str
    table: Optional[str] = None


# Orden declarado = orden de los atributos en la tienda
DEFAULT_ATTRIBUTE_MAP = [
    AttributeSpec(field="U_Alapanyag", label="Alapanyag", table="CPH_ALAPANYAG"),
    AttributeSpec(field="U_Anyagminoseg", label="Anyagminőség", table="CPH_ANYAGMINOSEG"),
    AttributeSpec(field="U_Hullamtipus", label="Hullámtípus", table="CPH_HULLAMTIPUS"),
    AttributeSpec(field="U_Kivitel", label="Kivitel", table="CPH_KIVITEL"),
    AttributeSpec(field="U_ZarasTipus", label="Zárás típusa", table="CPH_ZARASTIPUS"),
    AttributeSpec(field="U_PantolasTipusa", label="Pántolás típusa", table="CPH_PANTTIPUS"),
    AttributeSpec(field="U_PantszallagTipusa", label="Pántszalag típusa", table="CPH_PANTSZALAGTIP"),
    AttributeSpec(field="U_PantolasIranya", label="Pántolás iránya", table="CPH_PANTIRANY"),
    AttributeSpec(field="U_Szin", label="Szín"),
    AttributeSpec(field="U_Vastagsag_mm", label="Vastagság (mm)"),
    AttributeSpec(field="U_Vastagsag_my", label="Vastagság (my)"),
    AttributeSpec(field="U_BelsoMeret", label="Belső méret (mm)"),
    AttributeSpec(field="U_KulsoMeret", label="Külső méret (mm)"),
    AttributeSpec(field="U_SzalagSzelesseg", label="Szalag szélesség (mm)"),
    AttributeSpec(field="U_KekercsHosszusag", label="Tekercs hosszúság (m)"),
    AttributeSpec(field="U_FajlagosTomeg", label="Fajlagos tömeg (g/m2)"),
]


def lookup_tables_for(attribute_map: list[AttributeSpec]) -> list[str]:
    """Tablas de usuario referenciadas, sin repetir y en orden"""
    tables = []
    for spec in attribute_map:
        if spec.table and spec.table not in tables:
            tables.append(spec.table)
    return tables


def is_empty(value: Any) -> bool:
    return value is None or value == ""


class ProductMapper:
    """
    Convierte un SapItem en ProductData.

    Las tablas de códigos (código -> nombre) se cargan una vez por ejecución
    y se pasan ya resueltas.
    """

    def __init__(
        self,
        resolver: Optional[CategoryResolver] = None,
        lookup_tables: Optional[dict[str, dict[str, str]]] = None,
        attribute_map: Optional[list[AttributeSpec]] = None,
        price_list: int = 1,
        hierarchy_field: str = "U_Webhierarchy",
        sync_logger: Optional[SyncLogger] = None
    ):
        self.resolver = resolver
        self.lookup_tables = lookup_tables or {}
        self.attribute_map = attribute_map if attribute_map is not None else DEFAULT_ATTRIBUTE_MAP
        self.price_list = price_list
        self.hierarchy_field = hierarchy_field
        self.sync_logger = sync_logger or SyncLogger()

    def map(self, item: SapItem) -> MappingResult:
        item_code = (item.item_code or "").strip()
        if not item_code:
            return MappingResult.skipped("Artículo sin ItemCode")

        data = ProductData(
            sku=item_code,
            name=item.item_name or item_code,
            regular_price=self.price_for(item),
            weight=item.sales_unit_weight or None,
            stock=stock_totals(item.warehouse_info),
            category_ids=self.categories_for(item),
            metadata=self.metadata_for(item),
            attributes=self.attributes_for(item)
        )
        return MappingResult.mapped(data, key=item_code)

    def price_for(self, item: SapItem) -> Optional[float]:
        """Precio de la lista configurada; None deja el precio sin tocar"""
        for price in item.item_prices or []:
            if price.price_list == self.price_list:
                return price.price
        return None

    def categories_for(self, item: SapItem) -> list[int]:
        code = str(item.get_field(self.hierarchy_field) or "").strip()
        if not code:
            self.sync_logger.debug(f"Producto {item.item_code} sin jerarquía asignada")
            return []

        if self.resolver is None:
            return []

        category_id = self.resolver.resolve(code)
        if not category_id:
            self.sync_logger.warning(
                f"Producto {item.item_code} sin categoría para la jerarquía: {code}"
            )
            return []

        return [category_id]

    def metadata_for(self, item: SapItem) -> dict[str, Any]:
        metadata = {
            f"_sap_{field.lower()}": value
            for field, value in item.custom_fields.items()
            if not is_empty(value)
        }
        metadata["_sap_item_code"] = item.item_code
        metadata["_sap_update_date"] = item.update_date or ""
        metadata["_sap_update_time"] = item.update_time or ""
        metadata["_sap_sales_unit"] = item.sales_unit or ""

        youtube = item.get_field("U_YoutubeVideo")
        if not is_empty(youtube):
            metadata["_sap_youtube_video"] = youtube

        return metadata

    def attributes_for(self, item: SapItem) -> list[ProductAttribute]:
        attributes = []
        for spec in self.attribute_map:
            value = item.get_field(spec.field)
            if is_empty(value):
                continue

            label = str(value)
            if spec.table:
                label = self.lookup_tables.get(spec.table, {}).get(label, label)

            attributes.append(ProductAttribute(
                name=spec.label,
                options=[label],
                position=len(attributes)
            ))
        return attributes
