"""
Resolución del árbol de categorías a partir de la jerarquía web plana de SAP.
"""
import logging
from typing import Optional

from .models import CategoryStatus, HierarchyEntry
from .storefront import CategoryConflictError, CategoryStore
from .sync_log import SyncLogger

logger = logging.getLogger(__name__)


class HierarchyCycleError(Exception):
    """La cadena de padres de la jerarquía vuelve sobre sí misma"""

    def __init__(self, code: str, path: list[str]):
        super().__init__(f"Ciclo en la jerarquía: {' -> '.join(path + [code])}")
        self.code = code
        self.path = path


class CategoryResolver:
    """
    Crea bajo demanda las categorías de la tienda para códigos de jerarquía.

    La identidad en la tienda es el slug determinista <prefijo><código>,
    por lo que resolver dos veces el mismo código no crea duplicados.
    """

    def __init__(
        self,
        categories: CategoryStore,
        entries: list[HierarchyEntry],
        slug_prefix: str = "sap-",
        sync_logger: Optional[SyncLogger] = None
    ):
        self.categories = categories
        self.slug_prefix = slug_prefix
        self.sync_logger = sync_logger or SyncLogger()
        self.hierarchy: dict[str, HierarchyEntry] = {entry.code: entry for entry in entries}
        self.sync_logger.info(f"Jerarquía cargada: {len(self.hierarchy)} elementos")

    def slug_for(self, code: str) -> str:
        return f"{self.slug_prefix}{code}"

    def resolve(self, code: str) -> Optional[int]:
        """
        Retorna el ID de categoría para el código, creándola si hace falta.

        Returns:
            ID de la categoría o None (código desconocido, inactivo o en ciclo)
        """
        try:
            return self._resolve(code.strip(), [])
        except HierarchyCycleError as e:
            self.sync_logger.error(str(e), {"code": e.code, "path": e.path})
            return None

    def _resolve(self, code: str, path: list[str]) -> Optional[int]:
        if code in path:
            raise HierarchyCycleError(code, path)

        entry = self.hierarchy.get(code)
        if entry is None:
            self.sync_logger.warning(
                f"Código de jerarquía no encontrado: {code}",
                {"available": sorted(self.hierarchy)}
            )
            return None

        if entry.category_status != CategoryStatus.ACTIVE:
            self.sync_logger.debug(f"Jerarquía inactiva: {code}")
            return None

        slug = self.slug_for(code)
        existing = self.categories.find_by_slug(slug)
        if existing:
            return existing

        parent_id = 0
        if entry.parent_code:
            if entry.parent_code in self.hierarchy:
                parent_id = self._resolve(entry.parent_code, path + [code]) or 0
                self.sync_logger.debug(f"Categoría padre resuelta: {entry.parent_code} -> {parent_id}")
            else:
                self.sync_logger.warning(f"Jerarquía padre no encontrada: {entry.parent_code}")

        try:
            category_id = self.categories.create(entry.name, slug, parent_id)
        except CategoryConflictError as e:
            existing = e.existing_id or self.categories.find_by_name(entry.name)
            if existing:
                self.sync_logger.debug(f"La categoría ya existe por nombre: {entry.name} -> {existing}")
                return existing
            self.sync_logger.error(f"No se pudo crear la categoría: {entry.name}", {"code": code, "error": str(e)})
            return None

        self.sync_logger.info(f"Categoría creada: {entry.name} (id: {category_id})")
        return category_id
