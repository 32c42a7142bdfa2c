import requests

from sap_storefront_connector.models import ApiErrorKind, ApiResult, SAPApiError
from sap_storefront_connector.sap_client import build_odata_query, entity_key, odata_literal

from conftest import FakeResponse


def page(count, start=0, **extra):
    payload = {"value": [{"ItemCode": f"I{start + i}"} for i in range(count)]}
    payload.update(extra)
    return FakeResponse(200, payload)


def test_odata_query_keeps_quotes_and_encodes_spaces():
    query = build_odata_query({"$filter": "CardType eq 'cCustomer'", "$top": 500})
    assert query == "$filter=CardType%20eq%20'cCustomer'&$top=500"


def test_odata_literal_doubles_single_quotes():
    assert odata_literal("O'Neil") == "'O''Neil'"
    assert entity_key("DOBOZ-300") == "'DOBOZ-300'"
    assert entity_key(42) == "42"


def test_customer_filter_reaches_the_wire(client, http):
    http.on("GET", "BusinessPartners", FakeResponse(200, {"value": []}))

    result = client.get_customers()

    assert result.ok
    call = http.data_calls[0]
    assert call.url.startswith("https://sap.test:50000/b1s/v2/BusinessPartners?")
    assert "$filter=CardType%20eq%20'cCustomer'" in call.url
    assert call.headers["Cookie"] == "B1SESSION=token-1; ROUTEID=.node1"
    assert call.json is None
    assert call.timeout == 60


def test_get_all_follows_skip_top_pages(client, http):
    http.on("GET", "Items", page(500), page(500, 500), page(137, 1000))

    result = client.get_all("Items")

    assert result.ok
    assert len(result.data) == 1137
    assert len(http.data_calls) == 3
    assert "$skip=0&$top=500" in http.data_calls[0].url
    assert "$skip=500&$top=500" in http.data_calls[1].url
    assert "$skip=1000&$top=500" in http.data_calls[2].url


def test_get_all_follows_next_link(client, http):
    http.on(
        "GET", "Items",
        page(2, **{"@odata.nextLink": "/b1s/v2/Items?$skip=2"}),
        page(1, 2),
    )

    result = client.get_all("Items")

    assert [r["ItemCode"] for r in result.data] == ["I0", "I1", "I2"]
    assert http.data_calls[1].path == "Items?$skip=2"


def test_get_all_accepts_legacy_next_link_key(client, http):
    http.on(
        "GET", "Items",
        page(1, **{"odata.nextLink": "Items?$skip=1"}),
        page(1, 1),
    )

    assert len(client.get_all("Items").data) == 2


def test_get_all_truncates_to_limit(client, http):
    http.on("GET", "Items", page(5))

    result = client.get_all("Items", limit=3)

    assert len(result.data) == 3
    assert len(http.data_calls) == 1


def test_get_all_propagates_page_error(client, http):
    http.on("GET", "Items", page(500), FakeResponse(500, {"error": {"message": {"value": "DB down"}}}))

    result = client.get_all("Items")

    assert not result.ok
    assert result.error.message == "DB down"


def test_401_reauthenticates_and_retries_once(client, http):
    http.on("GET", "Items", FakeResponse(401, text="expired"), page(1))

    result = client.get("Items")

    assert result.ok
    assert len(http.login_calls) == 2
    assert len(http.data_calls) == 2


def test_second_401_returns_session_expired(client, http):
    http.on("GET", "Items", FakeResponse(401, text="expired"))

    result = client.get("Items")

    assert not result.ok
    assert result.error.kind == ApiErrorKind.SESSION_EXPIRED
    assert len(http.data_calls) == 2


def test_upstream_error_message_is_extracted(client, http):
    http.on("POST", "Orders", FakeResponse(400, {"error": {"code": -10, "message": {"lang": "en-us", "value": "Invalid item"}}}))
    http.on("PATCH", "BusinessPartners", FakeResponse(400, {"error": {"code": "200", "message": "Field too long"}}))

    order = client.create_order({"CardCode": "WEB000001"})
    partner = client.update_customer("WEB000001", {"CardName": "x" * 200})

    assert order.error.kind == ApiErrorKind.UPSTREAM
    assert order.error.status_code == 400
    assert order.error.message == "Invalid item"
    assert partner.error.message == "Field too long"
    assert http.data_calls[0].json == {"CardCode": "WEB000001"}


def test_transport_error_is_returned_as_value(client, http):
    http.on("GET", "Items", requests.exceptions.ConnectTimeout("timeout"))

    result = client.get("Items")

    assert result.error.kind == ApiErrorKind.TRANSPORT


def test_auth_failure_short_circuits_request(client, http):
    http.login_responses = [FakeResponse(401, text="bad password")]

    result = client.get("Items")

    assert result.error.kind == ApiErrorKind.AUTH_FAILED
    assert http.data_calls == []


def test_empty_body_becomes_empty_dict(client, http):
    http.on("PATCH", "Orders", FakeResponse(204))

    result = client.update_order(15, {"U_SimpleID": "T-1"})

    assert result.ok
    assert result.data == {}
    assert http.data_calls[0].path == "Orders(15)"


def test_unwrap_raises_on_error():
    result = ApiResult.failure(ApiErrorKind.UPSTREAM, "boom", status_code=500)

    try:
        result.unwrap()
    except SAPApiError as e:
        assert e.kind == ApiErrorKind.UPSTREAM
        assert e.status_code == 500
    else:
        raise AssertionError("unwrap debía lanzar SAPApiError")


def test_get_items_skips_invalid_records(client, http):
    http.on("GET", "Items", FakeResponse(200, {"value": [{"ItemCode": "A"}, {"ItemName": "sin código"}]}))

    result = client.get_items(select="ItemCode")

    assert [item.item_code for item in result.data] == ["A"]


def test_lookup_by_email_returns_first_row(client, http):
    http.on("GET", "view.svc/", FakeResponse(200, {"value": [{"CardCode": "C001"}, {"CardCode": "C002"}]}))
    http.on("GET", "BusinessPartners", FakeResponse(200, {"value": []}))

    by_email = client.get_customer_by_email("a@b.hu")
    by_tax = client.get_customer_by_tax_id("12345678-1-42")

    assert by_email.data == {"CardCode": "C001"}
    assert by_tax.ok and by_tax.data is None
    assert "E_MailL%20eq%20'a%40b.hu'" in http.data_calls[0].url


def test_preview_order_wraps_document(client, http):
    http.on("POST", "OrdersService_Preview", FakeResponse(200, {"DocTotal": 1270}))

    result = client.preview_order({"CardCode": "C001"})

    assert result.data == {"DocTotal": 1270}
    assert http.data_calls[0].json == {"Document": {"CardCode": "C001"}}


def test_normalize_next_link_strips_api_root(client):
    endpoint, params = client.normalize_next_link(
        "https://sap.test:50000/b1s/v2/BusinessPartners?$filter=CardType%20eq%20'cCustomer'&$skip=20"
    )
    assert endpoint == "BusinessPartners"
    assert params == {"$filter": "CardType eq 'cCustomer'", "$skip": "20"}


def test_test_connection_logs_in_and_out(client, http):
    assert client.test_connection() is True
    assert [c.path for c in http.calls] == ["Login", "Logout"]


def test_next_link_page_ends_paging_without_refetch(client, http):
    http.on(
        "GET", "Items",
        page(500, **{"@odata.nextLink": "/b1s/v2/Items?$skip=500"}),
        page(500, 500),
    )

    result = client.get_all("Items")

    codes = [r["ItemCode"] for r in result.data]
    assert len(codes) == 1000
    assert len(set(codes)) == 1000
    assert len(http.data_calls) == 2


def test_normalize_next_link_keeps_literal_plus(client):
    _, params = client.normalize_next_link("/b1s/v2/Items?$filter=ItemName%20eq%20'a+b'&$skip=20")
    assert params["$filter"] == "ItemName eq 'a+b'"


def test_web_items_date_filter_reaches_the_wire(client, http):
    http.on("GET", "Items", FakeResponse(200, {"value": []}))

    client.get_web_items("2024-04-01")

    url = http.data_calls[0].url
    assert "$filter=U_MOS_InSe%20eq%20'Y'%20and%20UpdateDate%20ge%20'2024-04-01T00:00:00'" in url
    assert "$orderby=ItemCode" in url


def test_customers_date_filter_reaches_the_wire(client, http):
    http.on("GET", "BusinessPartners", FakeResponse(200, {"value": []}))

    client.get_customers("2024-04-01")

    url = http.data_calls[0].url
    assert "$filter=CardType%20eq%20'cCustomer'%20and%20UpdateDate%20ge%20'2024-04-01T00:00:00'" in url


def test_export_pdf_returns_raw_bytes(client, http):
    http.on("POST", "ExportPDFData", FakeResponse(200, text="%PDF-1.4"))

    result = client.export_pdf("RDR2", 812, 17)

    assert result.ok
    assert result.data == b"%PDF-1.4"
    call = http.data_calls[0]
    assert call.path == "ExportPDFData?DocCode=RDR2"
    assert call.json == [
        {"name": "DocKey@", "type": "xsd:decimal", "value": [[812]]},
        {"name": "ObjectId@", "type": "xsd:decimal", "value": [[17]]},
    ]


def test_export_pdf_error_is_returned_as_value(client, http):
    http.on("POST", "ExportPDFData", FakeResponse(400, {"error": {"message": {"value": "Informe no asignado"}}}))

    result = client.export_pdf("RDR2", 812, 17)

    assert not result.ok
    assert result.error.message == "Informe no asignado"
