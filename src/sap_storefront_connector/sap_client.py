"""
Cliente para interactuar con el Service Layer (REST/OData) de SAP Business One.
"""
import logging
from datetime import date
from typing import Any, Optional, Type
from urllib.parse import parse_qsl, quote

import requests
from pydantic import BaseModel, ValidationError

from .models import ApiErrorKind, ApiResult, BusinessPartner, HierarchyEntry, SapItem
from .session import SessionManager
from .config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

# Campos de artículo que se leen para la tienda
WEB_ITEM_FIELDS = [
    "ItemCode", "ItemName", "SalesUnit", "SalesUnitWeight", "UpdateDate", "UpdateTime", "U_Webhierarchy",
    "U_AlagutMerete", "U_Alapanyag", "U_Anyagminoseg", "U_AsztalMagassag", "U_BelsoMeret",
    "U_BemelegedesiIdo", "U_Benyulas", "U_CseveBelsAtmero", "U_CseveSuly", "U_ElnyujtasMerteke",
    "U_Energiafelhaszn", "U_FajlagosTomeg", "U_Feszitoero", "U_GepMerete", "U_HegesztesiIdo",
    "U_HegVarratSzellesseg", "U_HegesztFoiaVastagsag", "SalesLengthUnit", "U_Hullamtipus",
    "U_KapocsMerete", "U_Kivitel", "U_KulsoMeret", "U_KisebbMagassag", "SalesHeightUnit",
    "U_MaxTekercsAtmero", "U_MaxCsomagMeret", "U_Nyomas", "U_PantolasErossege", "U_PantolasIranya",
    "U_PantolasSebessege", "U_PantolasTipusa", "U_PantszallagTipusa", "U_PantszallagVastagsag",
    "U_RagasztorudAtmero", "U_Sebesseg", "U_Szakitoszilardsag", "U_SzalagSzelesseg", "SalesUnitWidth",
    "U_Szin", "U_KekercsHosszusag", "U_Vastagsag_mm", "U_Vastagsag_my", "U_YoutubeVideo", "U_ZarasTipus",
    "ItemPrices", "ItemWarehouseInfoCollection",
]

BODY_METHODS = ("POST", "PATCH", "PUT")

# Caracteres que no se codifican en valores OData
ODATA_SAFE = "'"


def odata_literal(value: Any) -> str:
    """Literal de texto OData: comillas simples duplicadas"""
    return "'" + str(value).replace("'", "''") + "'"


def entity_key(value: Any) -> str:
    """Clave de entidad para Collection('key') o Collection(intKey)"""
    if isinstance(value, int):
        return str(value)
    return quote(odata_literal(value), safe=ODATA_SAFE)


def build_odata_query(params: dict[str, Any]) -> str:
    """
    Construye el query string OData.

    Las claves van tal cual (se conserva el $ inicial); los valores se
    codifican dejando la comilla simple literal y el espacio como %20.
    """
    return "&".join(f"{key}={quote(str(value), safe=ODATA_SAFE)}" for key, value in params.items())


def date_filter(since_date: str) -> str:
    return f"UpdateDate ge '{since_date}T00:00:00'"


class SAPClient:
    """
    Cliente para el Service Layer de SAP.

    Todas las operaciones retornan ApiResult: los errores se devuelven como
    valores y no como excepciones.
    """

    def __init__(self, session_manager: Optional[SessionManager] = None, config: Optional[Settings] = None):
        """Inicializa el cliente de SAP"""
        self.config = config or (session_manager.config if session_manager else default_settings)
        self.session_manager = session_manager or SessionManager(config=self.config)
        self.http = self.session_manager.http

    # --- Capa HTTP ---

    def build_url(self, endpoint: str, params: Optional[dict] = None) -> str:
        url = f"{self.config.api_base_url}{endpoint.lstrip('/')}"
        if params:
            url += "?" + build_odata_query(params)
        return url

    def normalize_next_link(self, next_link: str) -> tuple[str, dict[str, str]]:
        """
        Convierte un enlace de continuación en endpoint y parámetros.

        Se descarta todo hasta el segmento raíz versionado inclusive.
        """
        marker = self.config.SAP_API_ROOT
        path = next_link
        if marker in path:
            path = path[path.index(marker) + len(marker):]
        path = path.lstrip("/")

        endpoint, _, query = path.partition("?")
        # Un '+' literal del enlace no es un espacio
        return endpoint, dict(parse_qsl(query.replace("+", "%2B"), keep_blank_values=True))

    def request(
        self,
        endpoint: str,
        method: str = "GET",
        body: Any = None,
        params: Optional[dict] = None,
        retry_on_401: bool = True,
        raw: bool = False
    ) -> ApiResult:
        """
        Ejecuta una llamada autenticada al Service Layer.

        Args:
            endpoint: Ruta relativa a la raíz de la API (ej: "Items('A1')")
            method: Método HTTP
            body: Cuerpo JSON para POST/PATCH/PUT
            params: Parámetros OData ($select, $filter...)
            raw: Retornar el cuerpo sin interpretar (ej: PDF)

        Returns:
            ApiResult con el JSON de la respuesta ({} si vacía), los bytes
            del cuerpo si raw, o el error
        """
        auth = self.session_manager.ensure_session()
        if not auth.ok:
            return ApiResult.failure(
                ApiErrorKind.AUTH_FAILED,
                f"No se pudo autenticar con SAP: {auth.error.message}",
                status_code=auth.error.status_code,
                response_body=auth.error.response_body
            )

        url = self.build_url(endpoint, params)
        logger.debug(f"SAP API Request: {method} {url}")

        try:
            response = self.http.request(
                method,
                url,
                headers={
                    "Content-Type": "application/json",
                    "Cookie": self.session_manager.cookie_header()
                },
                json=body if method in BODY_METHODS else None,
                timeout=self.config.SAP_REQUEST_TIMEOUT,
                verify=self.config.SAP_VERIFY_SSL
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Error de red en {method} {endpoint}: {e}")
            return ApiResult.failure(ApiErrorKind.TRANSPORT, f"Error de conexión: {e}")

        if response.status_code == 401:
            if not retry_on_401:
                logger.error(f"Sesión de SAP rechazada tras re-autenticar: {method} {endpoint}")
                return ApiResult.failure(
                    ApiErrorKind.SESSION_EXPIRED,
                    "Sesión de SAP expirada y no se pudo re-autenticar",
                    status_code=401,
                    response_body=response.text
                )

            logger.info("Sesión de SAP expirada (401). Re-autenticando...")
            self.session_manager.invalidate()
            login = self.session_manager.login()
            if not login.ok:
                return ApiResult.failure(
                    ApiErrorKind.SESSION_EXPIRED,
                    "Sesión de SAP expirada y no se pudo re-autenticar",
                    status_code=401,
                    response_body=login.error.response_body
                )
            return self.request(endpoint, method, body, params, retry_on_401=False, raw=raw)

        data = self._parse_json(response)

        if response.status_code >= 400:
            message = self._error_message(data) or "Error desconocido"
            logger.error(f"Error de SAP en {method} {endpoint} (HTTP {response.status_code}): {message}")
            logger.debug(f"Respuesta de SAP: {response.text}")
            return ApiResult.failure(
                ApiErrorKind.UPSTREAM,
                message,
                status_code=response.status_code,
                response_body=response.text
            )

        if raw:
            return ApiResult.success(response.content)

        return ApiResult.success(data if data is not None else {})

    @staticmethod
    def _error_message(data: Any) -> Optional[str]:
        """Mensaje de error.message.value (v1) o error.message (v2)"""
        error = data.get("error") if isinstance(data, dict) else None
        if not isinstance(error, dict):
            return None
        message = error.get("message")
        if isinstance(message, dict):
            message = message.get("value")
        return message or None

    @staticmethod
    def _parse_json(response) -> Any:
        if not response.text:
            return {}
        try:
            return response.json()
        except ValueError:
            return None

    def get(self, endpoint: str, params: Optional[dict] = None) -> ApiResult:
        return self.request(endpoint, "GET", params=params)

    def post(self, endpoint: str, body: Any = None) -> ApiResult:
        return self.request(endpoint, "POST", body=body if body is not None else {})

    def patch(self, endpoint: str, body: Any = None) -> ApiResult:
        return self.request(endpoint, "PATCH", body=body if body is not None else {})

    def put(self, endpoint: str, body: Any = None) -> ApiResult:
        return self.request(endpoint, "PUT", body=body if body is not None else {})

    def get_all(self, endpoint: str, params: Optional[dict] = None, limit: Optional[int] = None) -> ApiResult:
        """
        Obtiene todos los registros de una colección siguiendo la paginación.

        Usa $skip/$top, salvo cuando la respuesta trae enlace de continuación
        (@odata.nextLink u odata.nextLink): entonces se usa sólo ese enlace.

        Args:
            endpoint: Colección (ej: "Items")
            params: Parámetros OData
            limit: Máximo de registros (el resultado se trunca)

        Returns:
            ApiResult con la lista de registros
        """
        limit = limit or self.config.SAP_FETCH_LIMIT
        page_size = self.config.SAP_PAGE_SIZE
        skip = 0
        following_link = False
        records: list = []

        next_endpoint, next_params = endpoint, self._page_params(params, skip, page_size)
        logger.debug(f"Iniciando lectura paginada: {endpoint}")

        while True:
            result = self.get(next_endpoint, next_params)
            if not result.ok:
                logger.error(f"Error de paginación en {next_endpoint} (skip={skip}): {result.error.message}")
                return result

            data = result.data if isinstance(result.data, dict) else {}
            batch = data.get("value") or []
            records.extend(batch)
            logger.debug(f"Lote leído: skip={skip}, recibidos={len(batch)}, total={len(records)}")

            if len(records) >= limit:
                break

            next_link = data.get("@odata.nextLink") or data.get("odata.nextLink")
            if next_link:
                following_link = True
                next_endpoint, next_params = self.normalize_next_link(next_link)
                continue

            # Tras seguir un enlace, su ausencia marca el final
            if following_link or len(batch) < page_size:
                break

            skip += page_size
            next_endpoint, next_params = endpoint, self._page_params(params, skip, page_size)

        logger.debug(f"Lectura paginada completa: {endpoint}, total={len(records)}")
        return ApiResult.success(records[:limit])

    @staticmethod
    def _page_params(params: Optional[dict], skip: int, page_size: int) -> dict:
        page = dict(params or {})
        page.setdefault("$skip", str(skip))
        page.setdefault("$top", str(page_size))
        return page

    @staticmethod
    def _parse_many(model: Type[BaseModel], result: ApiResult) -> ApiResult:
        """Convierte registros a modelos omitiendo los que no validan"""
        if not result.ok:
            return result

        parsed = []
        for record in result.data or []:
            try:
                parsed.append(model.model_validate(record))
            except ValidationError as e:
                logger.warning(f"Registro de SAP inválido para {model.__name__}: {e}")
        return ApiResult.success(parsed)

    @staticmethod
    def _parse_one(model: Type[BaseModel], result: ApiResult) -> ApiResult:
        if not result.ok:
            return result
        try:
            return ApiResult.success(model.model_validate(result.data))
        except ValidationError as e:
            return ApiResult.failure(ApiErrorKind.UPSTREAM, f"Respuesta de SAP inválida: {e}")

    @staticmethod
    def _first_row(result: ApiResult) -> ApiResult:
        if not result.ok:
            return result
        rows = (result.data or {}).get("value") or []
        return ApiResult.success(rows[0] if rows else None)

    # --- Artículos ---

    def get_items(
        self,
        select: Optional[str] = None,
        filter: Optional[str] = None,
        orderby: Optional[str] = None
    ) -> ApiResult:
        params = {}
        if select:
            params["$select"] = select
        if filter:
            params["$filter"] = filter
        if orderby:
            params["$orderby"] = orderby
        return self._parse_many(SapItem, self.get_all("Items", params))

    def get_item(self, item_code: str) -> ApiResult:
        return self._parse_one(SapItem, self.get(f"Items({entity_key(item_code)})"))

    def get_web_items(self, since_date: Optional[str] = None) -> ApiResult:
        """
        Artículos publicados en la tienda con todos sus atributos.

        Args:
            since_date: Fecha YYYY-MM-DD para lectura incremental
        """
        item_filter = self.config.WEB_ITEM_FILTER
        if since_date:
            item_filter += f" and {date_filter(since_date)}"
        return self.get_items(",".join(WEB_ITEM_FIELDS), item_filter, "ItemCode")

    def get_item_stock(self) -> ApiResult:
        return self.get_items("ItemCode,ItemWarehouseInfoCollection", self.config.WEB_ITEM_FILTER)

    def get_web_hierarchy(self) -> ApiResult:
        return self._parse_many(HierarchyEntry, self.get_all(self.config.HIERARCHY_TABLE))

    def get_user_table(self, table_name: str) -> ApiResult:
        return self.get_all(f"U_{table_name}")

    def export_pdf(self, doc_code: str, doc_key: int, object_id: int) -> ApiResult:
        """
        Exporta un documento con su informe Crystal (ExportPDFData).

        Returns:
            ApiResult con los bytes del PDF
        """
        body = [
            {"name": "DocKey@", "type": "xsd:decimal", "value": [[doc_key]]},
            {"name": "ObjectId@", "type": "xsd:decimal", "value": [[object_id]]},
        ]
        return self.request("ExportPDFData", "POST", body=body, params={"DocCode": doc_code}, raw=True)

    def get_customer_item_price(
        self,
        card_code: str,
        item_code: str,
        quantity: float = 1,
        price_date: Optional[date] = None
    ) -> ApiResult:
        body = {
            "ItemPriceParams": {
                "CardCode": card_code,
                "ItemCode": item_code,
                "Currency": self.config.CURRENCY,
                "Date": (price_date or date.today()).isoformat(),
                "InventoryQuantity": quantity,
            }
        }
        return self.post("CompanyService_GetItemPrice", body)

    # --- Socios de negocio ---

    def get_customers(self, since_date: Optional[str] = None) -> ApiResult:
        customer_filter = f"CardType eq {odata_literal('cCustomer')}"
        if since_date:
            customer_filter += f" and {date_filter(since_date)}"
        return self._parse_many(BusinessPartner, self.get_all("BusinessPartners", {"$filter": customer_filter}))

    def get_customer(self, card_code: str) -> ApiResult:
        return self._parse_one(BusinessPartner, self.get(f"BusinessPartners({entity_key(card_code)})"))

    def get_customer_by_tax_id(self, tax_id: str) -> ApiResult:
        """Primer socio con ese número fiscal ({"CardCode": ...}) o None"""
        params = {
            "$select": "CardCode",
            "$filter": f"UnifiedFederalTaxID eq {odata_literal(tax_id)}",
        }
        return self._first_row(self.get("BusinessPartners", params))

    def get_customer_by_email(self, email: str) -> ApiResult:
        """Primer socio con ese email según la vista SQL ({"CardCode": ...}) o None"""
        params = {
            "$filter": f"E_MailL eq {odata_literal(email)}",
            "$select": "CardCode",
        }
        return self._first_row(self.get(self.config.EMAIL_LOOKUP_VIEW, params))

    def create_customer(self, data: dict) -> ApiResult:
        return self.post("BusinessPartners", data)

    def update_customer(self, card_code: str, data: dict) -> ApiResult:
        return self.patch(f"BusinessPartners({entity_key(card_code)})", data)

    # --- Pedidos ---

    def create_order(self, data: dict) -> ApiResult:
        return self.post("Orders", data)

    def update_order(self, doc_entry: int, data: dict) -> ApiResult:
        return self.patch(f"Orders({int(doc_entry)})", data)

    def get_order(self, doc_entry: int) -> ApiResult:
        return self.get(f"Orders({int(doc_entry)})")

    def get_orders_by_customer(self, card_code: str) -> ApiResult:
        return self.get_all("Orders", {"$filter": f"CardCode eq {odata_literal(card_code)}"})

    def preview_order(self, data: dict) -> ApiResult:
        """Calcula el documento sin crearlo"""
        return self.post("OrdersService_Preview", {"Document": data})

    # --- Datos maestros ---

    def get_countries(self) -> ApiResult:
        return self.get_all("Countries", {"$select": "Code,Name"})

    def get_payment_terms(self) -> ApiResult:
        return self.get_all("PaymentTermsTypes", {"$select": "GroupNumber,PaymentTermsGroupName"})

    def get_shipping_types(self) -> ApiResult:
        return self.get_all("ShippingTypes", {"$select": "Code,Name"})

    def test_connection(self) -> bool:
        """
        Prueba la conexión con SAP (login y logout).

        Returns:
            True si la conexión es exitosa
        """
        result = self.session_manager.login()
        if not result.ok:
            logger.error(f"✗ Error al conectar con SAP: {result.error.message}")
            return False

        self.session_manager.logout()
        logger.info("✓ Conexión exitosa con SAP")
        return True
