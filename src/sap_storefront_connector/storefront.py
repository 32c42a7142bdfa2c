"""
Contratos de acceso a la tienda e implementaciones en memoria y en JSON.

La persistencia real de la tienda es externa al conector; el conector sólo
usa estos accesores.
"""
import json
import logging
import shutil
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Protocol

from .models import ProductAttribute, StorefrontCustomer, StorefrontOrder

logger = logging.getLogger(__name__)


class CategoryConflictError(Exception):
    """Ya existe una categoría con ese nombre bajo el mismo padre"""

    def __init__(self, name: str, existing_id: Optional[int] = None):
        super().__init__(f"La categoría '{name}' ya existe")
        self.name = name
        self.existing_id = existing_id


class CatalogStore(Protocol):
    def find_by_sku(self, sku: str) -> Optional[int]:
        ...

    def get_product(self, product_id: int) -> Optional[dict[str, Any]]:
        ...

    def upsert(self, product_id: Optional[int], fields: dict[str, Any]) -> int:
        ...

    def set_stock_level(self, product_id: int, quantity: int, in_stock: bool) -> None:
        ...

    def set_categories(self, product_id: int, category_ids: list[int]) -> None:
        ...

    def set_attributes(self, product_id: int, attributes: list[ProductAttribute]) -> None:
        ...

    def set_metadata(self, product_id: int, metadata: dict[str, Any]) -> None:
        ...


class CategoryStore(Protocol):
    def find_by_slug(self, slug: str) -> Optional[int]:
        ...

    def find_by_name(self, name: str) -> Optional[int]:
        ...

    def create(self, name: str, slug: str, parent_id: int = 0) -> int:
        """Raises CategoryConflictError si el nombre ya existe"""
        ...


class CustomerStore(Protocol):
    def find_by_email(self, email: str) -> Optional[int]:
        ...

    def create(self, email: str) -> int:
        ...

    def get(self, customer_id: int) -> Optional[StorefrontCustomer]:
        ...

    def save(self, customer: StorefrontCustomer) -> None:
        ...

    def set_metadata(self, customer_id: int, metadata: dict[str, Any]) -> None:
        ...


class OrderStore(Protocol):
    def get(self, order_id: int) -> Optional[StorefrontOrder]:
        ...

    def save(self, order: StorefrontOrder) -> None:
        ...


class OptionStore(Protocol):
    def get_option(self, key: str, default: Any = None) -> Any:
        ...

    def update_option(self, key: str, value: Any) -> None:
        ...


# --- Implementaciones en memoria ---

class InMemoryCatalog:
    """Catálogo de productos en memoria"""

    def __init__(self):
        self.products: dict[int, dict[str, Any]] = {}
        self._next_id = 1

    def find_by_sku(self, sku: str) -> Optional[int]:
        for product_id, product in self.products.items():
            if product.get("sku") == sku:
                return product_id
        return None

    def get_product(self, product_id: int) -> Optional[dict[str, Any]]:
        return self.products.get(product_id)

    def upsert(self, product_id: Optional[int], fields: dict[str, Any]) -> int:
        if product_id is None or product_id not in self.products:
            product_id = self._next_id
            self._next_id += 1
            self.products[product_id] = {
                "id": product_id,
                "status": "publish",
                "stock_quantity": 0,
                "in_stock": False,
                "category_ids": [],
                "attributes": [],
                "meta": {},
            }
        self.products[product_id].update(fields)
        return product_id

    def set_stock_level(self, product_id: int, quantity: int, in_stock: bool) -> None:
        product = self.products[product_id]
        product["stock_quantity"] = quantity
        product["in_stock"] = in_stock
        product["manage_stock"] = True

    def set_categories(self, product_id: int, category_ids: list[int]) -> None:
        self.products[product_id]["category_ids"] = list(category_ids)

    def set_attributes(self, product_id: int, attributes: list[ProductAttribute]) -> None:
        self.products[product_id]["attributes"] = [a.model_dump() for a in attributes]

    def set_metadata(self, product_id: int, metadata: dict[str, Any]) -> None:
        self.products[product_id]["meta"].update(metadata)


class InMemoryCategories:
    """Árbol de categorías en memoria"""

    def __init__(self):
        self.categories: dict[int, dict[str, Any]] = {}
        self._next_id = 1

    def find_by_slug(self, slug: str) -> Optional[int]:
        for category_id, category in self.categories.items():
            if category["slug"] == slug:
                return category_id
        return None

    def find_by_name(self, name: str) -> Optional[int]:
        for category_id, category in self.categories.items():
            if category["name"] == name:
                return category_id
        return None

    def get_category(self, category_id: int) -> Optional[dict[str, Any]]:
        return self.categories.get(category_id)

    def create(self, name: str, slug: str, parent_id: int = 0) -> int:
        for category_id, category in self.categories.items():
            if category["name"] == name and category["parent_id"] == parent_id:
                raise CategoryConflictError(name, category_id)

        category_id = self._next_id
        self._next_id += 1
        self.categories[category_id] = {
            "id": category_id,
            "name": name,
            "slug": slug,
            "parent_id": parent_id,
        }
        return category_id


class InMemoryCustomers:
    """Cuentas de cliente en memoria"""

    def __init__(self):
        self.customers: dict[int, StorefrontCustomer] = {}
        self._next_id = 1

    def find_by_email(self, email: str) -> Optional[int]:
        email = email.strip().lower()
        for customer_id, customer in self.customers.items():
            if customer.email.lower() == email:
                return customer_id
        return None

    def create(self, email: str) -> int:
        customer_id = self._next_id
        self._next_id += 1
        self.customers[customer_id] = StorefrontCustomer(id=customer_id, email=email)
        return customer_id

    def add(self, customer: StorefrontCustomer) -> None:
        self.customers[customer.id] = customer
        self._next_id = max(self._next_id, customer.id + 1)

    def get(self, customer_id: int) -> Optional[StorefrontCustomer]:
        return self.customers.get(customer_id)

    def save(self, customer: StorefrontCustomer) -> None:
        self.customers[customer.id] = customer

    def set_metadata(self, customer_id: int, metadata: dict[str, Any]) -> None:
        self.customers[customer_id].meta.update(metadata)


class InMemoryOrders:
    """Pedidos en memoria"""

    def __init__(self):
        self.orders: dict[int, StorefrontOrder] = {}

    def add(self, order: StorefrontOrder) -> None:
        self.orders[order.id] = order

    def get(self, order_id: int) -> Optional[StorefrontOrder]:
        return self.orders.get(order_id)

    def save(self, order: StorefrontOrder) -> None:
        self.orders[order.id] = order


class InMemoryOptions:
    def __init__(self, values: Optional[dict[str, Any]] = None):
        self.values: dict[str, Any] = dict(values or {})

    def get_option(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def update_option(self, key: str, value: Any) -> None:
        self.values[key] = value


class InMemoryStorefront:
    """
    Tienda completa en memoria: catálogo, categorías, clientes y pedidos.
    """

    def __init__(self):
        self.catalog = InMemoryCatalog()
        self.categories = InMemoryCategories()
        self.customers = InMemoryCustomers()
        self.orders = InMemoryOrders()

    def flush(self) -> None:
        """Nada que persistir en memoria"""
        pass


# --- Persistencia en archivos JSON ---

class JsonFile:
    """
    Archivo JSON con backups rotados y permisos restrictivos.
    """

    MAX_BACKUPS = 3

    def __init__(self, path: Path):
        self.path = Path(path)
        self.backup_path = Path(f"{self.path}.backup")
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def read(self) -> Optional[dict]:
        if not self.path.exists():
            return None

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Archivo {self.path} corrupto: {e}. Se ignorará.")
            return None

    def write(self, data: dict) -> None:
        self.create_backup()

        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False, default=str)

        # Permisos restrictivos
        self.path.chmod(0o600)

    def create_backup(self) -> bool:
        """Crea backup del archivo antes de actualizar"""
        if not self.path.exists():
            return True

        try:
            # Backup con timestamp
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
            shutil.copy2(self.path, Path(f"{self.backup_path}.{timestamp}"))

            # Rotar backups antiguos
            backups = sorted(self.path.parent.glob(f"{self.backup_path.name}.*"))
            for old_backup in backups[:-self.MAX_BACKUPS]:
                old_backup.unlink()
                logger.debug(f"Backup antiguo eliminado: {old_backup}")
            return True

        except OSError as e:
            logger.warning(f"Error al crear backup de {self.path}: {e}")
            return False


class JsonOptionStore:
    """Opciones persistentes (checkpoints de sincronización)"""

    def __init__(self, path: Path):
        self.file = JsonFile(path)
        self.values: dict[str, Any] = self.file.read() or {}

    def get_option(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def update_option(self, key: str, value: Any) -> None:
        self.values[key] = value
        self.file.write(self.values)
        logger.debug(f"Opción guardada: {key}={value}")


class JsonStorefront(InMemoryStorefront):
    """
    Tienda en memoria respaldada por un archivo JSON.

    Se carga al construirla y se guarda con flush().
    """

    def __init__(self, path: Path):
        super().__init__()
        self.file = JsonFile(path)
        self.load()

    def load(self) -> None:
        data = self.file.read()
        if not data:
            logger.info(f"No existe tienda local en {self.file.path}. Se empieza vacía.")
            return

        for product in data.get("products", []):
            self.catalog.products[product["id"]] = product
        for category in data.get("categories", []):
            self.categories.categories[category["id"]] = category
        for customer in data.get("customers", []):
            self.customers.add(StorefrontCustomer(**customer))
        for order in data.get("orders", []):
            self.orders.add(StorefrontOrder(**order))

        self.catalog._next_id = max(self.catalog.products, default=0) + 1
        self.categories._next_id = max(self.categories.categories, default=0) + 1

        logger.info(
            f"Tienda local cargada: {len(self.catalog.products)} productos, "
            f"{len(self.categories.categories)} categorías, {len(self.customers.customers)} clientes, "
            f"{len(self.orders.orders)} pedidos"
        )

    def flush(self) -> None:
        data = {
            "products": list(self.catalog.products.values()),
            "categories": list(self.categories.categories.values()),
            "customers": [c.model_dump(mode="json") for c in self.customers.customers.values()],
            "orders": [o.model_dump(mode="json") for o in self.orders.orders.values()],
        }
        self.file.write(data)
        logger.debug(f"Tienda local guardada en {self.file.path}")


