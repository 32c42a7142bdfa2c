from unittest.mock import MagicMock, patch

from sap_storefront_connector import cli
from sap_storefront_connector.models import SyncResult, SyncSummary
from sap_storefront_connector.sync_service import SyncService


def run_cli(argv, service):
    with patch.object(cli.SyncService, "from_settings", return_value=service):
        return cli.main(argv)


def test_no_command_prints_help():
    assert cli.main([]) == 1


def test_sync_command_reports_summary(capsys):
    service = MagicMock(spec=SyncService)
    service.run_manual_sync.return_value = SyncSummary(
        sync_type="stock", total=2, synced=1, skipped=1,
        results=[SyncResult(success=False, skipped=True, message="Producto no encontrado en la tienda", key="X")]
    )

    assert run_cli(["sync", "stock"], service) == 0

    service.run_manual_sync.assert_called_once_with("stock", since_date=None)
    service.close.assert_called_once()
    assert "Omitidos:          1" in capsys.readouterr().out


def test_sync_command_fails_when_already_running():
    service = MagicMock(spec=SyncService)
    service.run_manual_sync.return_value = SyncSummary(sync_type="products", already_running=True)

    assert run_cli(["sync", "products", "--since", "2024-01-01"], service) == 1
    service.run_manual_sync.assert_called_once_with("products", since_date="2024-01-01")


def test_sync_order_command(capsys):
    service = MagicMock(spec=SyncService)
    service.sync_order.return_value = SyncResult(success=True, message="Pedido creado en SAP", key="7", remote_id="812")

    assert run_cli(["sync-order", "7"], service) == 0
    assert "DocEntry: 812" in capsys.readouterr().out


def test_unexpected_error_returns_1_and_closes():
    service = MagicMock(spec=SyncService)
    service.last_sync_info.side_effect = RuntimeError("disco lleno")

    assert run_cli(["status"], service) == 1
    service.close.assert_called_once()


def test_preview_order_goes_through_the_service(capsys):
    service = MagicMock(spec=SyncService)
    service.preview_order.return_value = None

    assert run_cli(["preview-order", "5"], service) == 1

    service.preview_order.assert_called_once_with(5)
    assert "ya en sincronización" in capsys.readouterr().out
