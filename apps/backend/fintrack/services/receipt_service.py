from __future__ import annotations

import base64
import logging
from datetime import date
from decimal import Decimal

import httpx
from sqlalchemy.orm import Session

from fintrack import models
from fintrack.core.config import settings
from fintrack.errors import ExtractionError, ValidationError
from fintrack.schemas import ReceiptData
from fintrack.services.gateway import PersistenceGateway, TransactionMaterializer
from fintrack.services.receipt_parser import parse_receipt_text


logger = logging.getLogger(__name__)

RECEIPT_PROMPT = (
    "Extract the purchase from this receipt. Respond with JSON only, shaped as "
    '{"merchant": str, "date": "YYYY-MM-DD", "total": number, '
    '"items": [{"name": str, "price": number, "quantity": number, "category": str}], '
    '"taxAmount": number, "tipAmount": number, "paymentMethod": str}.'
)


class GeminiReceiptClient:
    """Minimal client for the Gemini ``generateContent`` endpoint."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ValidationError("A Gemini API key is required for receipt scanning")
        self.api_key = api_key
        self.model = model or settings.GEMINI_MODEL
        self.base_url = (base_url or settings.GEMINI_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.GEMINI_TIMEOUT_SECONDS
        self.transport = transport

    @classmethod
    def from_settings(cls) -> "GeminiReceiptClient":
        return cls(settings.GEMINI_API_KEY or "")

    def generate(self, image: bytes, *, mime_type: str = "image/jpeg", prompt: str = RECEIPT_PROMPT) -> str:
        payload = {
            "contents": [
                {
                    "parts": [
                        {"text": prompt},
                        {"inline_data": {"mime_type": mime_type, "data": base64.b64encode(image).decode("ascii")}},
                    ]
                }
            ],
            "generationConfig": {"temperature": 0.2, "maxOutputTokens": 2048, "topP": 0.9, "topK": 40},
        }
        url = f"{self.base_url}/models/{self.model}:generateContent"
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(url, params={"key": self.api_key}, json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            logger.warning("gemini request failed with status %s", exc.response.status_code)
            raise ExtractionError(f"Gemini API error: {exc.response.status_code}") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise ExtractionError("Gemini API request failed") from exc

        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            text = None
        if not text:
            raise ExtractionError("No text found in the Gemini API response")
        return text


class ReceiptService:
    def __init__(self, db: Session, *, user_id: int, client: GeminiReceiptClient | None = None) -> None:
        self.db = db
        self.user_id = user_id
        self.client = client
        self.materializer = TransactionMaterializer(PersistenceGateway(db, user_id=user_id))

    def scan(self, image: bytes, *, mime_type: str = "image/jpeg", today: date | None = None) -> ReceiptData:
        if not image:
            raise ValidationError("Receipt image is empty")
        client = self.client or GeminiReceiptClient.from_settings()
        text = client.generate(image, mime_type=mime_type)
        return parse_receipt_text(text, today=today or models.today_local())

    def import_items(self, receipt: ReceiptData, *, category_id: str | None = None) -> list[models.Transaction]:
        """Create one expense per receipt line item.

        Each insert commits on its own; a failure stops the import and leaves
        the already created rows in place.
        """
        if not receipt.items:
            raise ValidationError("Receipt has no items to import")
        created: list[models.Transaction] = []
        for item in receipt.items:
            amount = (item.price * item.quantity).quantize(Decimal("0.01"))
            if amount <= 0:
                logger.info("skipping zero amount receipt item %r", item.name)
                continue
            created.append(
                self.materializer.create(
                    {
                        "description": item.name,
                        "amount": amount,
                        "transaction_date": receipt.date,
                        "transaction_type": models.TxnType.EXPENSE,
                        "category_id": category_id,
                        "notes": f"Imported from receipt: {receipt.merchant}",
                    }
                )
            )
        return created
