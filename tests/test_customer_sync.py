from datetime import datetime
from unittest.mock import patch

import pytest

from sap_storefront_connector.customer_mapper import CustomerMapper, PartnerDefaults, card_code_for
from sap_storefront_connector.customer_sync import CARD_CODE_META, CustomerSync
from sap_storefront_connector.models import (
    Address,
    ApiErrorKind,
    ApiResult,
    BusinessPartner,
    StorefrontCustomer,
    StorefrontOrder,
)


@pytest.fixture
def customer():
    return StorefrontCustomer(
        id=42,
        email="anna@example.hu",
        first_name="Anna",
        last_name="Kovács",
        tax_id="12345678-1-42",
        billing=Address(first_name="Anna", last_name="Kovács", address_1="Fő utca 1", address_2="2. em.",
                        city="Budapest", postcode="1011", country="HU", phone="+3612345"),
    )


@pytest.fixture
def guest_order():
    return StorefrontOrder(
        id=1001,
        customer_id=0,
        billing=Address(first_name="Béla", last_name="Nagy", email="bela@example.hu", phone="+3670",
                        address_1="Kossuth tér 3", city="Szeged", postcode="6720"),
    )


@pytest.fixture
def customer_sync(mock_client, storefront, options, config, sync_logger):
    return CustomerSync(
        mock_client,
        storefront.customers,
        storefront.orders,
        options,
        config=config,
        sync_logger=sync_logger,
        clock=lambda: datetime(2024, 5, 1, 2, 0)
    )


def test_card_code_padding():
    assert card_code_for("WEB", 42) == "WEB000042"
    assert card_code_for("GUEST", 1234567) == "GUEST1234567"


def test_build_partner_for_registered_customer(customer):
    payload = CustomerMapper(PartnerDefaults()).build_partner(customer, "WEB000042")

    assert payload["CardCode"] == "WEB000042"
    assert payload["CardName"] == "Anna Kovács"
    assert payload["CardType"] == "cCustomer"
    assert payload["Currency"] == "Ft"
    assert payload["PayTermsGrpCode"] == -1
    assert payload["ShippingType"] == 4
    assert payload["ContactEmployees"][0]["Name"] == "WEB"
    assert payload["ContactEmployees"][0]["E_Mail"] == "anna@example.hu"
    assert payload["BPAddresses"] == [{
        "AddressName": "Számlázási cím",
        "Street": "Fő utca 1 2. em.",
        "ZipCode": "1011",
        "City": "Budapest",
        "Country": "HU",
        "AddressType": "bo_BillTo",
    }]


def test_build_partner_falls_back_to_order_addresses(guest_order):
    customer = StorefrontCustomer(id=7, email="bela@example.hu")

    payload = CustomerMapper().build_partner(customer, "WEB000007", guest_order)

    assert payload["CardName"] == "Béla Nagy"
    assert [a["AddressType"] for a in payload["BPAddresses"]] == ["bo_BillTo", "bo_ShipTo"]
    assert payload["BPAddresses"][1]["Street"] == "N/A"
    assert payload["BPAddresses"][1]["Country"] == "HU"


def test_partner_update_only_touches_contact(customer):
    update = CustomerMapper().build_partner_update(customer)

    assert list(update) == ["ContactEmployees"]


def test_map_partner_without_email_is_skipped():
    partner = BusinessPartner(CardCode="C001", CardName="Névtelen Kft.")

    assert not CustomerMapper().map_partner(partner).is_mapped


def test_import_creates_and_updates_store_customers(customer_sync, mock_client, storefront, options):
    mock_client.get_customers.return_value = ApiResult.success([
        BusinessPartner.model_validate({
            "CardCode": "C001",
            "CardName": "Doboz Kft.",
            "Phone1": "+361111",
            "ContactEmployees": [{"Name": "WEB", "E_Mail": "info@doboz.hu"}],
            "BPAddresses": [{"AddressType": "bo_BillTo", "Street": "Váci út 10", "City": "Budapest", "ZipCode": "1132"}],
        }),
        BusinessPartner(CardCode="C002"),
    ])

    summary = customer_sync.sync_all()

    assert summary.synced == 1
    assert summary.skipped == 1
    customer_id = storefront.customers.find_by_email("info@doboz.hu")
    imported = storefront.customers.get(customer_id)
    assert imported.meta[CARD_CODE_META] == "C001"
    assert imported.billing.company == "Doboz Kft."
    assert imported.billing.address_1 == "Váci út 10"
    assert options.get_option("last_customer_sync") == "2024-05-01"

    customer_sync.sync_all()
    assert len(storefront.customers.customers) == 1


def test_registered_customer_is_created_in_sap(customer_sync, mock_client, storefront, customer):
    storefront.customers.add(customer)
    mock_client.get_customer_by_email.return_value = ApiResult.success(None)
    mock_client.get_customer_by_tax_id.return_value = ApiResult.success(None)
    mock_client.create_customer.return_value = ApiResult.success({"CardCode": "WEB000042"})

    result = customer_sync.sync_customer_to_sap(42)

    assert result.success
    assert result.remote_id == "WEB000042"
    assert storefront.customers.get(42).meta[CARD_CODE_META] == "WEB000042"
    mock_client.get_customer_by_email.assert_called_once_with("anna@example.hu")
    mock_client.get_customer_by_tax_id.assert_called_once_with("12345678-1-42")


def test_registered_customer_is_linked_to_existing_partner(customer_sync, mock_client, storefront, customer):
    storefront.customers.add(customer)
    mock_client.get_customer_by_email.return_value = ApiResult.success({"CardCode": "C777"})

    result = customer_sync.sync_customer_to_sap(42)

    assert result.remote_id == "C777"
    assert storefront.customers.get(42).meta[CARD_CODE_META] == "C777"
    mock_client.create_customer.assert_not_called()
    mock_client.get_customer_by_tax_id.assert_not_called()


def test_linked_customer_gets_partial_update(customer_sync, mock_client, storefront, customer):
    customer.meta[CARD_CODE_META] = "WEB000042"
    storefront.customers.add(customer)
    mock_client.update_customer.return_value = ApiResult.success({})

    result = customer_sync.sync_customer_to_sap(42)

    assert result.success
    card_code, payload = mock_client.update_customer.call_args.args
    assert card_code == "WEB000042"
    assert "BPAddresses" not in payload
    mock_client.create_customer.assert_not_called()


def test_lookup_error_aborts_without_creating(customer_sync, mock_client, storefront, customer):
    storefront.customers.add(customer)
    mock_client.get_customer_by_email.return_value = ApiResult.failure(ApiErrorKind.TRANSPORT, "sin red")

    result = customer_sync.sync_customer_to_sap(42)

    assert not result.success
    mock_client.create_customer.assert_not_called()
    assert CARD_CODE_META not in storefront.customers.get(42).meta


def test_existing_card_code_is_adopted_when_create_fails(customer_sync, mock_client, storefront, customer):
    storefront.customers.add(customer)
    mock_client.get_customer_by_email.return_value = ApiResult.success(None)
    mock_client.get_customer_by_tax_id.return_value = ApiResult.success(None)
    mock_client.create_customer.return_value = ApiResult.failure(ApiErrorKind.UPSTREAM, "already exists")
    mock_client.get_customer.return_value = ApiResult.success(BusinessPartner(CardCode="WEB000042"))

    result = customer_sync.sync_customer_to_sap(42)

    assert result.success
    assert result.remote_id == "WEB000042"


def test_guest_partner_is_created_and_stored_on_order(customer_sync, mock_client, storefront, guest_order):
    storefront.orders.add(guest_order)
    mock_client.get_customer_by_email.return_value = ApiResult.success(None)
    mock_client.create_customer.return_value = ApiResult.success({"CardCode": "GUEST001001"})

    result = customer_sync.sync_guest_to_sap(guest_order)

    assert result.remote_id == "GUEST001001"
    assert storefront.orders.get(1001).get_meta(CARD_CODE_META) == "GUEST001001"
    payload = mock_client.create_customer.call_args.args[0]
    assert payload["CardName"] == "Béla Nagy"
    assert payload["ContactEmployees"][0]["E_Mail"] == "bela@example.hu"
    mock_client.get_customer_by_tax_id.assert_not_called()


def test_guest_with_known_email_reuses_partner(customer_sync, mock_client, storefront, guest_order):
    storefront.orders.add(guest_order)
    mock_client.get_customer_by_email.return_value = ApiResult.success({"CardCode": "C001"})

    result = customer_sync.sync_guest_to_sap(guest_order)

    assert result.remote_id == "C001"
    mock_client.create_customer.assert_not_called()


def test_store_error_on_one_partner_is_counted_and_logged(customer_sync, mock_client, storefront, log_sink):
    mock_client.get_customers.return_value = ApiResult.success([
        BusinessPartner(CardCode="C001", EmailAddress="a@doboz.hu"),
        BusinessPartner(CardCode="C002", EmailAddress="roto@doboz.hu"),
        BusinessPartner(CardCode="C003", EmailAddress="c@doboz.hu"),
    ])
    create = storefront.customers.create

    def failing_create(email):
        if email == "roto@doboz.hu":
            raise RuntimeError("email duplicado")
        return create(email)

    with patch.object(storefront.customers, "create", side_effect=failing_create):
        summary = customer_sync.sync_all()

    assert summary.synced == 2
    assert summary.errors == 1
    assert storefront.customers.find_by_email("c@doboz.hu") is not None
    errors = [e for e in log_sink.entries if e.type == "error"]
    assert [e.message for e in errors] == ["Error al importar el cliente: C002"]
