from unittest.mock import MagicMock

import pytest
import requests

from hipergallery.interaction import CartItem
from hipergallery.prints import NOT_CONFIGURED, PrintClient, ShippingAddress, build_order, sku_for


def make_item(size="Small", frame="none"):
    return CartItem(artwork_id="1", title="Cosmic Dreams", image_url="https://img/1.jpg",
                    size=size, frame=frame, total=89.0)


def make_client(status=200, body=None, ok=True):
    response = MagicMock(ok=ok, status_code=status)
    response.json.return_value = body or {}
    session = MagicMock()
    session.request.return_value = response
    return PrintClient("key", "https://prints.test/v4.0/", session=session), session


ADDRESS = ShippingAddress(name="Ada", line1="1 Main St", city="Lisbon", postal_code="1000", country="PT", state="LX")


class TestSku:
    def test_canvas_and_framed(self):
        assert sku_for("Large", framed=False) == "GLOBAL-FAC-36X36"
        assert sku_for("Grand", framed=True) == "GLOBAL-CFPM-40X40"

    def test_unknown_size(self):
        with pytest.raises(ValueError):
            sku_for("Huge", framed=False)


class TestBuildOrder:
    def test_payload_shape(self):
        order = build_order([make_item(), make_item("Medium", "gold")], ADDRESS, "ada@test.art", "HIPER-1")
        assert order["merchantReference"] == "HIPER-1"
        assert order["recipient"]["address"] == {
            "line1": "1 Main St",
            "townOrCity": "Lisbon",
            "postalOrZipCode": "1000",
            "countryCode": "PT",
            "stateOrCounty": "LX",
        }
        plain, framed = order["items"]
        assert plain["sku"] == "GLOBAL-FAC-12X12"
        assert "attributes" not in plain
        assert framed["attributes"] == {"frameColour": "antique_gold"}
        assert framed["assets"] == [{"printArea": "default", "url": "https://img/1.jpg"}]

    def test_generated_reference(self):
        assert build_order([make_item()], ADDRESS, None)["merchantReference"].startswith("HIPER-")


class TestPrintClient:
    def test_not_configured(self):
        client = PrintClient(None, "https://prints.test", session=MagicMock())
        assert not client.configured
        result = client.create_order({})
        assert not result.success and result.error == NOT_CONFIGURED
        client.http.request.assert_not_called()

    def test_create_order(self):
        client, session = make_client(body={"order": {"id": "ord_1", "status": {"stage": "InProgress"}}})
        result = client.create_order({"items": []})
        assert result.success
        assert (result.order_id, result.status) == ("ord_1", "InProgress")
        method, url = session.request.call_args.args
        assert (method, url) == ("POST", "https://prints.test/v4.0/orders")
        assert session.request.call_args.kwargs["headers"]["X-API-Key"] == "key"

    def test_rejected_order(self):
        client, _ = make_client(status=400, ok=False, body={"message": "invalid sku"})
        result = client.create_order({})
        assert not result.success
        assert result.error == "invalid sku"

    def test_network_error(self):
        client, session = make_client()
        session.request.side_effect = requests.ConnectionError("down")
        result = client.create_order({})
        assert not result.success
        assert "Network error" in result.error

    def test_order_status(self):
        body = {"order": {"id": "ord_1", "status": {"stage": "Complete"}, "shipments": [{"carrier": "DHL"}]}}
        client, session = make_client(body=body)
        result = client.get_order_status("ord_1")
        assert result.status == "Complete"
        assert result.data["shipments"] == [{"carrier": "DHL"}]
        assert session.request.call_args.args == ("GET", "https://prints.test/v4.0/orders/ord_1")

    def test_shipping_quote(self):
        client, session = make_client(body={"quotes": [{"shipmentMethod": "Standard"}]})
        result = client.get_shipping_quote("PT", ["GLOBAL-FAC-12X12"])
        assert result.data == {"quotes": [{"shipmentMethod": "Standard"}]}
        sent = session.request.call_args.kwargs["json"]
        assert sent["destinationCountryCode"] == "PT"
        assert sent["items"] == [{"sku": "GLOBAL-FAC-12X12", "copies": 1}]
