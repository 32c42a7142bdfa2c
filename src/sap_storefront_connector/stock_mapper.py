"""
Cálculo de stock disponible a partir de la información por almacén de SAP.
"""
from datetime import datetime
from typing import Any, Iterable, Optional

from .models import StockFigures, WarehouseInfo


def available_stock(warehouses: Optional[Iterable[WarehouseInfo]]) -> int:
    """
    Stock disponible: suma por almacén de max(0, InStock - Committed).

    Un almacén sobre-comprometido no resta stock de los demás.
    """
    total = 0.0
    for warehouse in warehouses or []:
        total += max(0.0, (warehouse.in_stock or 0) - (warehouse.committed or 0))
    return int(total)


def stock_totals(warehouses: Optional[Iterable[WarehouseInfo]]) -> StockFigures:
    """Totales de todos los almacenes más el disponible calculado"""
    warehouses = list(warehouses or [])
    return StockFigures(
        in_stock=sum(w.in_stock or 0 for w in warehouses),
        committed=sum(w.committed or 0 for w in warehouses),
        ordered=sum(w.ordered or 0 for w in warehouses),
        available=available_stock(warehouses)
    )


def stock_metadata(figures: StockFigures, updated_at: Optional[datetime] = None) -> dict[str, Any]:
    return {
        "_sap_stock_in_stock": figures.in_stock,
        "_sap_stock_ordered": figures.ordered,
        "_sap_stock_committed": figures.committed,
        "_sap_stock_available": figures.available,
        "_sap_stock_updated": (updated_at or datetime.now()).strftime("%Y-%m-%d %H:%M:%S"),
    }
