"""
JSON wire codec for calculation requests and results.

Request fields (camelCase):
    shippingAddress{country, stateProvince, county, city, postalCode},
    billingAddress{...}, items[]{itemId, sku, quantity, unitPrice, subtotal,
    taxCategory, isExempt, description}, shippingAmount, customerId, orderId.

Decimals are accepted as strings, ints, or ``Decimal`` (``parse_request_json``
parses JSON numbers straight to Decimal).  Python floats are rejected: a
float has already lost the exact value.  Results render every decimal as a
string.

Malformed payloads raise ``RequestValidationError`` naming the offending
field path.
"""

from __future__ import annotations

import json
from decimal import Decimal, InvalidOperation
from typing import Any

from tax_kernel.domain.dtos import (
    AppliedTax,
    TaxableItem,
    TaxBreakdown,
    TaxCalculationRequest,
    TaxCalculationResult,
    TaxedItem,
)
from tax_kernel.domain.values import Address, TaxCategory
from tax_kernel.exceptions import RequestValidationError


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def parse_request_json(text: str) -> TaxCalculationRequest:
    """Decode a JSON document (numbers parsed as Decimal) into a request."""
    try:
        data = json.loads(text, parse_float=Decimal)
    except json.JSONDecodeError as exc:
        raise RequestValidationError(f"Request is not valid JSON: {exc}") from exc
    return request_from_dict(data)


def _decimal(value: Any, field: str) -> Decimal:
    if isinstance(value, bool) or isinstance(value, float):
        raise RequestValidationError(
            f"{field} must be a decimal string or integer, got {type(value).__name__}",
            field=field,
        )
    if isinstance(value, Decimal):
        parsed = value
    elif isinstance(value, (int, str)):
        try:
            parsed = Decimal(str(value).strip())
        except InvalidOperation:
            parsed = None
    else:
        parsed = None
    if parsed is None or not parsed.is_finite():
        raise RequestValidationError(f"{field} is not a valid decimal: {value!r}", field=field)
    return parsed


def _int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise RequestValidationError(f"{field} must be an integer", field=field)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise RequestValidationError(f"{field} must be an integer, got {value!r}", field=field)


def _optional_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    return str(value)


def _category(value: Any, field: str) -> TaxCategory:
    if value is None:
        return TaxCategory.GENERAL
    try:
        return TaxCategory(str(value).strip().lower())
    except ValueError:
        raise RequestValidationError(
            f"{field} must be one of {[c.value.upper() for c in TaxCategory]}, got {value!r}",
            field=field,
        ) from None


def address_from_dict(data: Any, field: str = "shippingAddress") -> Address | None:
    if data is None:
        return None
    if not isinstance(data, dict):
        raise RequestValidationError(f"{field} must be an object", field=field)
    return Address(
        country=str(data.get("country") or "").strip(),
        state_province=_optional_str(data, "stateProvince"),
        county=_optional_str(data, "county"),
        city=_optional_str(data, "city"),
        postal_code=_optional_str(data, "postalCode"),
        line1=_optional_str(data, "line1"),
        line2=_optional_str(data, "line2"),
    )


def item_from_dict(data: Any, index: int) -> TaxableItem:
    path = f"items[{index}]"
    if not isinstance(data, dict):
        raise RequestValidationError(f"{path} must be an object", field=path)
    quantity = _int(data.get("quantity", 1), f"{path}.quantity")
    unit_price = _decimal(data.get("unitPrice", 0), f"{path}.unitPrice")
    if "subtotal" in data and data["subtotal"] is not None:
        subtotal = _decimal(data["subtotal"], f"{path}.subtotal")
    else:
        subtotal = unit_price * quantity
    return TaxableItem(
        item_id=str(data.get("itemId") or f"item-{index + 1}"),
        sku=str(data.get("sku") or ""),
        quantity=quantity,
        unit_price=unit_price,
        subtotal=subtotal,
        category=_category(data.get("taxCategory"), f"{path}.taxCategory"),
        is_exempt=bool(data.get("isExempt", False)),
        description=_optional_str(data, "description"),
    )


def request_from_dict(data: Any) -> TaxCalculationRequest:
    """
    Build a request from a decoded JSON object.

    Only structure and types are checked here; business validation
    (country present, non-empty items, non-negative values) happens in the
    service before any I/O.
    """
    if not isinstance(data, dict):
        raise RequestValidationError("Request must be a JSON object")
    items = data.get("items") or []
    if not isinstance(items, list):
        raise RequestValidationError("items must be an array", field="items")
    shipping = data.get("shippingAmount")
    return TaxCalculationRequest(
        shipping_address=address_from_dict(data.get("shippingAddress")),
        billing_address=address_from_dict(data.get("billingAddress"), "billingAddress"),
        items=tuple(item_from_dict(item, i) for i, item in enumerate(items)),
        shipping_amount=_decimal(shipping, "shippingAmount") if shipping is not None else Decimal("0"),
        order_id=_optional_str(data, "orderId"),
        customer_id=_optional_str(data, "customerId"),
    )


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def applied_tax_to_dict(tax: AppliedTax) -> dict[str, Any]:
    payload = {
        "jurisdictionCode": tax.jurisdiction_code,
        "jurisdictionName": tax.jurisdiction_name,
        "taxRateName": tax.tax_rate_name,
        "taxType": tax.tax_type.value.upper(),
        "rate": str(tax.rate),
        "taxableAmount": str(tax.taxable_amount),
        "taxAmount": str(tax.tax_amount),
        "isCompound": tax.is_compound,
    }
    if tax.exemption_certificate is not None:
        payload["exemptionCertificate"] = tax.exemption_certificate
    return payload


def taxed_item_to_dict(item: TaxedItem) -> dict[str, Any]:
    return {
        "itemId": item.item_id,
        "sku": item.sku,
        "quantity": item.quantity,
        "unitPrice": str(item.unit_price),
        "subtotal": str(item.subtotal),
        "taxCategory": item.category.value.upper(),
        "taxAmount": str(item.tax_amount),
        "taxes": [applied_tax_to_dict(t) for t in item.taxes],
    }


def breakdown_to_dict(breakdown: TaxBreakdown) -> dict[str, Any]:
    return {
        "jurisdictionCode": breakdown.jurisdiction_code,
        "jurisdictionName": breakdown.jurisdiction_name,
        "jurisdictionType": (
            breakdown.jurisdiction_type.value.upper()
            if breakdown.jurisdiction_type is not None else None
        ),
        "totalTaxAmount": str(breakdown.total_tax_amount),
        "rates": [applied_tax_to_dict(t) for t in breakdown.rates],
    }


def result_to_dict(result: TaxCalculationResult) -> dict[str, Any]:
    """Encode a result as a JSON-ready dict (decimals as strings)."""
    payload: dict[str, Any] = {
        "orderId": result.order_id,
        "items": [taxed_item_to_dict(item) for item in result.items],
        "shippingTax": str(result.shipping_tax),
        "totalTax": str(result.total_tax),
        "subtotal": str(result.subtotal),
        "totalAmount": str(result.total_amount),
        "effectiveTaxRate": str(result.effective_tax_rate),
        "breakdowns": [breakdown_to_dict(b) for b in result.breakdowns],
        "jurisdictionsUsed": list(result.jurisdictions_used),
        "calculatedAt": result.calculated_at.isoformat(),
    }
    if result.shipping is not None:
        payload["shipping"] = {
            "amount": str(result.shipping.amount),
            "taxAmount": str(result.shipping.tax_amount),
            "taxes": [applied_tax_to_dict(t) for t in result.shipping.taxes],
        }
    return payload
