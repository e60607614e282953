"""Print-on-demand orders through the Prodigi API."""
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from .interaction import CartItem

logger = logging.getLogger(__name__)

# Giclee fine art canvas and classic framed prints, by size.
PRODIGI_SKUS = {
    "canvas": {
        "Small": "GLOBAL-FAC-12X12",
        "Medium": "GLOBAL-FAC-24X24",
        "Large": "GLOBAL-FAC-36X36",
        "Grand": "GLOBAL-FAC-48X48",
    },
    "framed": {
        "Small": "GLOBAL-CFPM-12X12",
        "Medium": "GLOBAL-CFPM-24X24",
        "Large": "GLOBAL-CFPM-36X36",
        "Grand": "GLOBAL-CFPM-40X40",  # largest framed size offered
    },
}

FRAME_COLOURS = {
    "black": "black",
    "white": "white",
    "natural": "natural",
    "walnut": "brown",
    "gold": "antique_gold",
}

NOT_CONFIGURED = "Print fulfillment not configured"


@dataclass
class ShippingAddress:
    name: str
    line1: str
    city: str
    postal_code: str
    country: str
    line2: Optional[str] = None
    state: Optional[str] = None


@dataclass
class PrintResult:
    success: bool
    order_id: Optional[str] = None
    status: Optional[str] = None
    error: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


def sku_for(size: str, framed: bool) -> str:
    table = PRODIGI_SKUS["framed" if framed else "canvas"]
    try:
        return table[size]
    except KeyError:
        raise ValueError(f"no print product for size {size!r}") from None


def build_order(
    items: List[CartItem],
    address: ShippingAddress,
    email: Optional[str],
    reference: Optional[str] = None,
) -> dict:
    order_items = []
    for item in items:
        entry = {
            "sku": sku_for(item.size, item.framed),
            "copies": 1,
            "sizing": "fillPrintArea",
            "assets": [{"printArea": "default", "url": item.image_url}],
        }
        if item.framed and item.frame in FRAME_COLOURS:
            entry["attributes"] = {"frameColour": FRAME_COLOURS[item.frame]}
        order_items.append(entry)

    recipient_address = {
        "line1": address.line1,
        "townOrCity": address.city,
        "postalOrZipCode": address.postal_code,
        "countryCode": address.country,
    }
    if address.line2:
        recipient_address["line2"] = address.line2
    if address.state:
        recipient_address["stateOrCounty"] = address.state

    return {
        "merchantReference": reference or f"HIPER-{int(time.time() * 1000)}",
        "shippingMethod": "Standard",
        "recipient": {"name": address.name, "email": email, "address": recipient_address},
        "items": order_items,
    }


class PrintClient:
    def __init__(self, api_key: Optional[str], api_url: str, timeout: float = 20, session=None):
        self.api_key = api_key
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.http = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> dict:
        return {"X-API-Key": self.api_key or "", "Content-Type": "application/json"}

    def _call(self, method: str, path: str, payload: Optional[dict] = None):
        r = self.http.request(
            method, f"{self.api_url}{path}", json=payload, headers=self._headers(), timeout=self.timeout
        )
        try:
            data = r.json()
        except ValueError:
            data = {}
        return r, data

    def create_order(self, order: dict) -> PrintResult:
        if not self.configured:
            logger.warning("Prodigi API key not configured")
            return PrintResult(False, error=NOT_CONFIGURED)
        try:
            r, data = self._call("POST", "/orders", order)
        except requests.RequestException as exc:
            logger.error("Prodigi order request failed: %s", exc)
            return PrintResult(False, error="Network error connecting to print service")
        if not r.ok:
            logger.error("Prodigi order rejected (%s): %s", r.status_code, data)
            return PrintResult(False, error=data.get("message") or "Failed to create print order", data=data)
        placed = data.get("order") or {}
        return PrintResult(
            True,
            order_id=placed.get("id"),
            status=(placed.get("status") or {}).get("stage"),
            data=placed,
        )

    def get_order_status(self, order_id: str) -> PrintResult:
        if not self.configured:
            return PrintResult(False, error=NOT_CONFIGURED)
        try:
            r, data = self._call("GET", f"/orders/{order_id}")
        except requests.RequestException as exc:
            logger.error("Prodigi status check failed: %s", exc)
            return PrintResult(False, error="Failed to check order status")
        if not r.ok:
            return PrintResult(False, error=data.get("message") or f"status {r.status_code}")
        placed = data.get("order") or {}
        return PrintResult(
            True,
            order_id=placed.get("id", order_id),
            status=(placed.get("status") or {}).get("stage"),
            data={"order": placed, "shipments": placed.get("shipments") or []},
        )

    def get_shipping_quote(self, country: str, skus: List[str]) -> PrintResult:
        if not self.configured:
            return PrintResult(False, error=NOT_CONFIGURED)
        payload = {
            "shippingMethod": "Standard",
            "destinationCountryCode": country,
            "items": [{"sku": sku, "copies": 1} for sku in skus],
        }
        try:
            r, data = self._call("POST", "/quotes", payload)
        except requests.RequestException as exc:
            logger.error("Prodigi quote request failed: %s", exc)
            return PrintResult(False, error="Failed to get shipping quote")
        if not r.ok:
            return PrintResult(False, error=data.get("message") or f"status {r.status_code}")
        return PrintResult(True, data={"quotes": data.get("quotes", [])})
