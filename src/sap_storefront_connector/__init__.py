"""
Conector SAP Business One - Tienda.

Sincroniza productos, stock, clientes y pedidos entre el Service Layer de
SAP Business One y una tienda online.
"""
from .config import settings, Settings
from .session import SessionManager, InMemorySessionStore, FileSessionStore, SAPAuthError
from .sap_client import SAPClient, build_odata_query
from .sync_service import SyncService
from .sync_log import SyncLogger, MemoryLogSink, JsonlLogSink
from .storefront import InMemoryStorefront, JsonStorefront, JsonOptionStore, CategoryConflictError
from .category_resolver import CategoryResolver, HierarchyCycleError
from .models import (
    ApiError,
    ApiErrorKind,
    ApiResult,
    SAPApiError,
    SapItem,
    BusinessPartner,
    HierarchyEntry,
    StorefrontCustomer,
    StorefrontOrder,
    MappingResult,
    SyncResult,
    SyncSummary,
)

__version__ = "1.0.0"
__all__ = [
    "settings",
    "Settings",
    "SessionManager",
    "InMemorySessionStore",
    "FileSessionStore",
    "SAPAuthError",
    "SAPClient",
    "build_odata_query",
    "SyncService",
    "SyncLogger",
    "MemoryLogSink",
    "JsonlLogSink",
    "InMemoryStorefront",
    "JsonStorefront",
    "JsonOptionStore",
    "CategoryConflictError",
    "CategoryResolver",
    "HierarchyCycleError",
    "ApiError",
    "ApiErrorKind",
    "ApiResult",
    "SAPApiError",
    "SapItem",
    "BusinessPartner",
    "HierarchyEntry",
    "StorefrontCustomer",
    "StorefrontOrder",
    "MappingResult",
    "SyncResult",
    "SyncSummary",
]
