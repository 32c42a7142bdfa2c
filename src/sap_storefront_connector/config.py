"""
Configuración del conector SAP Business One - Tienda.

Carga las variables de entorno necesarias para la operación del conector.
"""
from pydantic_settings import BaseSettings
from pydantic import Field, validator


class Settings(BaseSettings):
    """
    Configuración de la aplicación cargada desde variables de entorno.
    """
    # Conexión con SAP Service Layer
    SAP_URL: str = Field(
        default="https://localhost:50000",
        description="URL base del Service Layer (ej: https://sap.empresa.com:50000)"
    )
    SAP_COMPANY_DB: str = Field(
        default="",
        description="Base de datos de la compañía en SAP"
    )
    SAP_USERNAME: str = Field(default="", description="Usuario del Service Layer")
    SAP_PASSWORD: str = Field(default="", description="Contraseña del Service Layer")
    SAP_API_ROOT: str = Field(
        default="/b1s/v2/",
        description="Segmento raíz versionado de la API"
    )
    SAP_VERIFY_SSL: bool = Field(
        default=False,
        description="Verificar el certificado TLS (SAP suele usar certificado autofirmado)"
    )
    SAP_AUTH_TIMEOUT: int = Field(default=30, description="Timeout de login/logout en segundos")
    SAP_REQUEST_TIMEOUT: int = Field(default=60, description="Timeout de llamadas de datos en segundos")
    SAP_PAGE_SIZE: int = Field(default=500, description="Tamaño de página ($top) para paginación")
    SAP_FETCH_LIMIT: int = Field(default=10000, description="Máximo de registros por consulta paginada")
    SAP_SESSION_LIFETIME: int = Field(default=1800, description="Duración de la sesión SAP en segundos")
    SAP_SESSION_GRACE: int = Field(default=300, description="Margen antes de expirar para renovar sesión")
    SAP_SESSION_CACHE_TTL: int = Field(default=1500, description="TTL de la sesión cacheada en segundos")

    # Interruptores de sincronización
    SYNC_ENABLED: bool = Field(default=False, description="Sincronización diaria de productos y clientes")
    STOCK_SYNC_ENABLED: bool = Field(default=True, description="Sincronización horaria de stock")
    ORDER_SYNC_ENABLED: bool = Field(default=True, description="Envío de pedidos a SAP")
    REALTIME_STOCK_CHECK: bool = Field(default=False, description="Consulta de stock en tiempo real")
    DEBUG_MODE: bool = Field(default=False, description="Guardar entradas debug en el log de sincronización")

    # Códigos de negocio
    SAP_PRICE_LIST: int = Field(default=1, description="Lista de precios usada para el precio de venta")
    DEFAULT_SHIPPING_TYPE: int = Field(default=4, description="Tipo de envío SAP por defecto")
    DEFAULT_PAYMENT_TERMS: int = Field(default=-1, description="Condición de pago SAP por defecto")
    SHIPPING_ITEM_CODE: str = Field(
        default="SHIPPING",
        description="Artículo SAP para la línea de envío (vacío = sin línea de envío)"
    )
    DEFAULT_TAX_CODE: str = Field(default="K27", description="Código de impuesto por defecto")
    PAYMENT_METHOD_MAPPING: dict[str, int] = Field(
        default_factory=lambda: {
            "bacs": 1,
            "cod": 2,
            "simplepay": 1,
            "stripe": 1,
            "paypal": 1,
        },
        description="Método de pago de la tienda -> PaymentGroupCode de SAP"
    )
    SHIPPING_METHOD_MAPPING: dict[str, int] = Field(
        default_factory=lambda: {
            "flat_rate": 3,
            "free_shipping": 3,
            "local_pickup": 1,
        },
        description="Método de envío de la tienda -> TransportationCode de SAP"
    )
    TAX_CLASS_MAPPING: dict[str, str] = Field(
        default_factory=lambda: {
            "": "K27",
            "reduced-rate": "K5",
            "zero-rate": "K0",
        },
        description="Clase de impuesto de la tienda -> TaxCode de SAP"
    )
    CURRENCY: str = Field(default="Ft", description="Moneda de los socios de negocio creados")
    DEFAULT_COUNTRY: str = Field(default="HU", description="País por defecto de las direcciones")
    WEB_CARD_CODE_PREFIX: str = Field(default="WEB", description="Prefijo de CardCode para clientes registrados")
    GUEST_CARD_CODE_PREFIX: str = Field(default="GUEST", description="Prefijo de CardCode para invitados")
    CARD_CODE_PADDING: int = Field(default=6, description="Dígitos del identificador numérico del CardCode")
    WEB_ITEM_FILTER: str = Field(
        default="U_MOS_InSe eq 'Y'",
        description="Filtro OData de artículos publicados en la tienda"
    )
    HIERARCHY_FIELD: str = Field(default="U_Webhierarchy", description="Campo de jerarquía web del artículo")
    HIERARCHY_TABLE: str = Field(default="WEBHIERARCHY", description="Tabla de jerarquía de categorías")
    CATEGORY_SLUG_PREFIX: str = Field(default="sap-", description="Prefijo del slug de categorías")
    EMAIL_LOOKUP_VIEW: str = Field(
        default="view.svc/CPH_TargyalopartnermailB1SLQuery",
        description="Vista SQL para buscar socios de negocio por email"
    )

    # Estado local y logging
    STATE_DIR: str = Field(
        default=".sap_sync",
        description="Directorio de sesión, checkpoints, logs y tienda local"
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Nivel de logging (DEBUG, INFO, WARNING, ERROR)"
    )
    LOG_RETENTION_DAYS: int = Field(default=30, description="Días de log de sincronización a conservar")

    @validator('SAP_URL')
    def validate_sap_url(cls, v):
        """Valida que la URL de SAP tenga el formato correcto"""
        if not v.startswith(('https://', 'http://')):
            raise ValueError("SAP_URL debe comenzar con https:// o http://")
        return v.rstrip('/')

    @validator('SAP_API_ROOT')
    def validate_api_root(cls, v):
        """Normaliza el segmento raíz a la forma /b1s/v2/"""
        return '/' + v.strip('/') + '/'

    @validator('LOG_LEVEL')
    def validate_log_level(cls, v):
        """Valida que el nivel de log sea válido"""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL debe ser uno de: {valid_levels}")
        return v.upper()

    @property
    def api_base_url(self) -> str:
        """URL completa hasta el segmento raíz versionado"""
        return f"{self.SAP_URL}{self.SAP_API_ROOT}"

    class Config:
        """Configuración de Pydantic Settings"""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


# Instancia global de configuración
settings = Settings()
