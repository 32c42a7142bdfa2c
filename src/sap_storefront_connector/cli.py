"""
CLI para ejecutar las sincronizaciones con SAP desde línea de comandos.

Los disparadores programados (cron, systemd timers) llaman a los comandos
'daily' y 'hourly'.
"""
import sys
import logging
from datetime import datetime
from typing import Optional

from .models import SyncSummary
from .sync_service import SYNC_TYPES, SyncService
from .config import settings

# Configurar logging para CLI
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def _banner(title: str) -> None:
    print("\n" + "=" * 60)
    print(title)
    print("=" * 60 + "\n")


def _print_summary(summary: SyncSummary, verbose: bool = False) -> int:
    """Muestra un resumen y retorna el código de salida"""
    if summary.already_running:
        print(f"⚠️  La sincronización de {summary.sync_type} ya está en curso.")
        return 1

    if summary.error_message and not summary.total:
        print(f"❌ ERROR: {summary.error_message}")
        return 1

    print(f"Total procesados:  {summary.total}")
    print(f"Sincronizados:     {summary.synced}")
    print(f"Errores:           {summary.errors}")
    print(f"Omitidos:          {summary.skipped}")
    print(f"Tiempo total:      {summary.total_time_seconds:.2f}s")
    print()

    shown = summary.results if verbose else [r for r in summary.results if not r.success and not r.skipped]
    if shown:
        print("-" * 60)
        print("DETALLES" if verbose else "ENTIDADES FALLIDAS")
        print("-" * 60 + "\n")
        for result in shown:
            status_icon = "✓" if result.success else ("-" if result.skipped else "✗")
            print(f"{status_icon} {result.key}: {result.message}")
        print()

    return 0 if summary.errors == 0 else 1


def test_connections(service: SyncService) -> int:
    """Prueba la conexión con SAP"""
    _banner("PROBANDO CONEXIONES")

    result = service.test_connections()

    sap_status = result["sap"]
    print(f"SAP ({sap_status['url']}, DB: {sap_status['company_db']}):")
    print(f"  Estado: {sap_status['status']}")
    print(f"  Mensaje: {sap_status['message']}")
    print()

    print("-" * 60)
    print(f"RESULTADO GENERAL: {result['overall']}")
    print("-" * 60)

    return 0 if result["overall"] == "OK" else 1


def run_sync(service: SyncService, sync_type: str, since: Optional[str] = None, verbose: bool = False) -> int:
    """Ejecuta una sincronización manual"""
    _banner(f"SINCRONIZACIÓN DE {sync_type.upper()} SAP → TIENDA")

    print(f"SAP: {settings.SAP_URL}")
    if since:
        print(f"Modificados desde: {since}")
    print()

    summary = service.run_manual_sync(sync_type, since_date=since)
    return _print_summary(summary, verbose)


def sync_order(service: SyncService, order_id: int) -> int:
    """Envía un pedido a SAP"""
    _banner(f"SINCRONIZACIÓN DEL PEDIDO {order_id} → SAP")

    result = service.sync_order(order_id)
    status_icon = "✓" if result.success else "✗"
    print(f"{status_icon} {result.message}")
    if result.remote_id:
        print(f"  DocEntry: {result.remote_id}")
    print()

    return 0 if result.success else 1


def preview_order(service: SyncService, order_id: int) -> int:
    """Muestra el documento que SAP calcularía para un pedido"""
    _banner(f"PREVIEW DEL PEDIDO {order_id}")

    result = service.preview_order(order_id)
    if result is None:
        print("❌ Pedido no encontrado, sin cliente en SAP o ya en sincronización.")
        return 1
    if not result.ok:
        print(f"❌ Error de SAP: {result.error.message}")
        return 1

    document = result.data or {}
    print(f"Total del documento: {document.get('DocTotal')}")
    print(f"Impuestos:           {document.get('VatSum')}")
    for line in document.get("DocumentLines") or []:
        print(f"  {line.get('ItemCode')}: {line.get('Quantity')} x {line.get('Price')} = {line.get('LineTotal')}")
    print()
    return 0


def run_daily(service: SyncService) -> int:
    _banner("SINCRONIZACIÓN DIARIA")

    summaries = service.run_daily_sync()
    if not summaries:
        print("Sincronización diaria desactivada (SYNC_ENABLED).")
        return 0

    exit_code = 0
    for summary in summaries:
        print(f"--- {summary.sync_type} ---")
        exit_code = max(exit_code, _print_summary(summary))
    return exit_code


def run_hourly(service: SyncService) -> int:
    _banner("SINCRONIZACIÓN HORARIA DE STOCK")

    summary = service.run_hourly_stock_sync()
    if summary is None:
        print("Sincronización de stock desactivada (STOCK_SYNC_ENABLED).")
        return 0
    return _print_summary(summary)


def show_status(service: SyncService) -> int:
    _banner("ESTADO DE SINCRONIZACIÓN")

    info = service.last_sync_info()
    print(f"Productos:  {info['products'] or 'Nunca'}")
    print(f"Stock:      {info['stock'] or 'Nunca'}")
    print(f"Clientes:   {info['customers'] or 'Nunca'}")
    print()
    return 0


def show_logs(
    service: SyncService,
    log_type: Optional[str] = None,
    search: Optional[str] = None,
    date_from: Optional[str] = None,
    limit: int = 50
) -> int:
    """Muestra las entradas más recientes del log de sincronización"""
    _banner("LOG DE SINCRONIZACIÓN")

    entries = service.sync_logger.get_logs(
        type=log_type,
        search=search,
        date_from=datetime.fromisoformat(date_from) if date_from else None,
        limit=limit
    )
    if not entries:
        print("No hay entradas.")
        return 0

    for entry in entries:
        print(f"{entry.created_at:%Y-%m-%d %H:%M:%S} [{entry.type:<8}] {entry.message}")
        if entry.context:
            print(f"    {entry.context}")

    print()
    print(f"Mostrando {len(entries)} de {service.sync_logger.get_log_count(log_type)} entradas")
    return 0


def clear_logs(service: SyncService, log_type: Optional[str] = None, days: Optional[int] = None) -> int:
    removed = service.sync_logger.clear_logs(type=log_type, days_old=days)
    print(f"✓ {removed} entradas eliminadas del log.")
    return 0


def logout(service: SyncService) -> int:
    service.client.session_manager.logout()
    print("✓ Sesión de SAP cerrada.")
    return 0


def main(argv: Optional[list[str]] = None):
    """Punto de entrada del CLI"""
    import argparse

    parser = argparse.ArgumentParser(
        description="Conector SAP Business One - Tienda",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Ejemplos:
  %(prog)s test                          Probar conexión con SAP
  %(prog)s sync products                 Sincronizar todos los productos
  %(prog)s sync products --since 2024-01-01
  %(prog)s sync stock --verbose          Sincronizar stock con detalles
  %(prog)s sync-order 1234               Enviar un pedido a SAP
  %(prog)s daily                         Sincronización diaria (productos + clientes)
  %(prog)s hourly                        Sincronización horaria (stock)
  %(prog)s logs --type error             Ver errores recientes
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Comando a ejecutar')

    # Comando 'test'
    subparsers.add_parser('test', help='Probar conexión con SAP')

    # Comando 'sync'
    sync_parser = subparsers.add_parser('sync', help='Sincronización manual de un tipo')
    sync_parser.add_argument('type', choices=SYNC_TYPES, help='Tipo de sincronización')
    sync_parser.add_argument('--since', help='Sólo modificados desde esta fecha (YYYY-MM-DD)')
    sync_parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Mostrar detalles de cada entidad'
    )

    # Comando 'sync-order'
    order_parser = subparsers.add_parser('sync-order', help='Enviar un pedido a SAP')
    order_parser.add_argument('order_id', type=int, help='ID del pedido en la tienda')

    # Comando 'preview-order'
    preview_parser = subparsers.add_parser('preview-order', help='Documento calculado por SAP sin crearlo')
    preview_parser.add_argument('order_id', type=int, help='ID del pedido en la tienda')

    # Comandos programados
    subparsers.add_parser('daily', help='Sincronización diaria (productos y clientes)')
    subparsers.add_parser('hourly', help='Sincronización horaria de stock')
    subparsers.add_parser('status', help='Última ejecución de cada sincronización')

    # Comando 'logs'
    logs_parser = subparsers.add_parser('logs', help='Ver el log de sincronización')
    logs_parser.add_argument('--type', dest='log_type', help='Filtrar por tipo (error, order, stock...)')
    logs_parser.add_argument('--search', help='Texto contenido en el mensaje')
    logs_parser.add_argument('--from', dest='date_from', help='Desde esta fecha (YYYY-MM-DD)')
    logs_parser.add_argument('--limit', type=int, default=50, help='Máximo de entradas')

    # Comando 'clear-logs'
    clear_parser = subparsers.add_parser('clear-logs', help='Borrar entradas del log')
    clear_parser.add_argument('--type', dest='log_type', help='Sólo entradas de este tipo')
    clear_parser.add_argument('--days', type=int, help='Sólo entradas con más de estos días')

    # Comando 'logout'
    subparsers.add_parser('logout', help='Cerrar la sesión de SAP')

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        service = SyncService.from_settings(settings)
    except Exception as e:
        print(f"\n❌ ERROR AL INICIALIZAR:")
        print(f"   {e}")
        logger.exception("Error al inicializar el servicio")
        return 1

    try:
        if args.command == 'test':
            return test_connections(service)
        elif args.command == 'sync':
            return run_sync(service, args.type, since=args.since, verbose=args.verbose)
        elif args.command == 'sync-order':
            return sync_order(service, args.order_id)
        elif args.command == 'preview-order':
            return preview_order(service, args.order_id)
        elif args.command == 'daily':
            return run_daily(service)
        elif args.command == 'hourly':
            return run_hourly(service)
        elif args.command == 'status':
            return show_status(service)
        elif args.command == 'logs':
            return show_logs(service, args.log_type, args.search, args.date_from, args.limit)
        elif args.command == 'clear-logs':
            return clear_logs(service, args.log_type, args.days)
        elif args.command == 'logout':
            return logout(service)

    except Exception as e:
        print(f"\n❌ ERROR INESPERADO:")
        print(f"   {e}")
        logger.exception("Error durante la ejecución del comando")
        print()
        return 1

    finally:
        service.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
