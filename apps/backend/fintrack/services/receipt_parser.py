"""Turn free-form model output into :class:`ReceiptData`.

Vision models answer with JSON that is often wrapped in markdown fences or
surrounded by prose, and the shape varies: a full receipt object, a bare list
of line items, or a single item object. All three are normalised here.
"""

from __future__ import annotations

import json
import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from fintrack.errors import ExtractionError
from fintrack.schemas import ReceiptData, ReceiptItem


DEFAULT_MERCHANT = "Receipt Scan"
DEFAULT_ITEM_CATEGORY = "General Merchandise"

_FENCED_JSON = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?```", re.IGNORECASE)
_OBJECT_BLOCK = re.compile(r"\{[\s\S]*\}")
_ARRAY_BLOCK = re.compile(r"\[[\s\S]*\]")


def extract_json_text(text: str) -> str:
    """Return the JSON payload embedded in ``text``."""
    stripped = text.strip()
    if "```" in stripped:
        match = _FENCED_JSON.search(stripped)
        if match:
            return match.group(1).strip()
        # unterminated fence
        return re.sub(r"```(?:json)?", "", stripped, flags=re.IGNORECASE).strip()
    if stripped[:1] in ("{", "["):
        return stripped
    array = _ARRAY_BLOCK.search(stripped)
    obj = _OBJECT_BLOCK.search(stripped)
    if array and (not obj or array.start() < obj.start()):
        return array.group(0)
    if obj:
        return obj.group(0)
    return stripped


def _abs_amount(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        return Decimal("0")
    try:
        return abs(Decimal(str(value)))
    except (InvalidOperation, ValueError):
        return Decimal("0")


def _item_from_entry(entry: dict[str, Any]) -> ReceiptItem:
    return ReceiptItem(
        name=entry.get("description") or entry.get("name") or "Unknown Item",
        price=_abs_amount(entry.get("amount", entry.get("price"))),
        quantity=Decimal("1"),
        category=entry.get("category") or DEFAULT_ITEM_CATEGORY,
    )


def _receipt_from_items(entries: list[Any], today: date) -> ReceiptData:
    rows = [e for e in entries if isinstance(e, dict)]
    items = [_item_from_entry(e) for e in rows]
    total = sum((item.price for item in items), Decimal("0"))
    first_date = rows[0].get("date") if rows else None
    return ReceiptData(
        merchant=DEFAULT_MERCHANT,
        date=first_date or today,
        total=total,
        items=items,
        category=DEFAULT_ITEM_CATEGORY,
    )


def _receipt_from_single(entry: dict[str, Any], today: date) -> ReceiptData:
    item = _item_from_entry(entry)
    return ReceiptData(
        merchant=entry.get("merchant") or DEFAULT_MERCHANT,
        date=entry.get("date") or today,
        total=item.price,
        items=[item],
        category=entry.get("category") or DEFAULT_ITEM_CATEGORY,
    )


def parse_receipt_text(text: str, *, today: date) -> ReceiptData:
    """Parse raw model output into a receipt.

    Raises :class:`ExtractionError` when no valid JSON can be recovered or the
    recovered JSON does not describe a receipt.
    """
    payload_text = extract_json_text(text)
    try:
        payload = json.loads(payload_text)
    except json.JSONDecodeError as exc:
        raise ExtractionError("The model response was not valid JSON") from exc

    try:
        if isinstance(payload, list):
            return _receipt_from_items(payload, today)
        if isinstance(payload, dict):
            if isinstance(payload.get("items"), list):
                data = dict(payload)
                data.setdefault("date", today)
                data["date"] = data["date"] or today
                return ReceiptData.model_validate(data)
            return _receipt_from_single(payload, today)
    except PydanticValidationError as exc:
        raise ExtractionError(f"Receipt data is malformed: {exc.errors()[0]['msg']}") from exc
    raise ExtractionError("The model response did not contain a receipt")
