# finance_api/services/receipts.py
"""Receipt ingestion: image -> extracted fields -> Receipt row -> (optionally) a Transaction.

Extraction results are hints only. The caller confirms amount, category and
date when turning a receipt into a transaction; nothing here validates money
movement on the strength of OCR output.
"""
import io
import json
import logging
import re
import uuid
from dataclasses import asdict, dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Protocol, Tuple

import pytesseract
from dateutil import parser as dateparser
from PIL import Image, ImageFilter, ImageOps, UnidentifiedImageError
from sqlalchemy.orm import Session

from finance_api.core.errors import Conflict, NotFound, ValidationError
from finance_api.db import models
from finance_api.db.session import atomic
from finance_api.services import ledger
from finance_api.services.blob_store import BlobStore

logger = logging.getLogger(__name__)


@dataclass
class ExtractedReceipt:
    merchant_name: str
    amount: Optional[Decimal]
    date: Optional[date]
    suggested_category: str
    confidence: float
    line_items: List[Dict[str, Any]] = field(default_factory=list)
    raw_text: str = ""

    def to_payload(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["amount"] = str(self.amount) if self.amount is not None else None
        payload["date"] = self.date.isoformat() if self.date else None
        return payload


class ReceiptExtractionError(Exception):
    pass


class ReceiptExtractor(Protocol):
    def extract(self, image_bytes: bytes) -> ExtractedReceipt:
        ...


# ------------------------------------------------------------ text heuristics

# Number detection regex: matches 1,234.56 or 1234.56 or 1 234,56 etc.
_NUMBER_RE = re.compile(
    r"(?<!\w)(?:[£$€¥₹]\s*)?([0-9]{1,3}(?:[ ,][0-9]{3})*(?:[.,][0-9]{2})|[0-9]+(?:[.,][0-9]{2}))"
)

_TOTAL_RE = re.compile(r"\b(total|amount|balance|grand total|amount due|total due|net)\b", re.I)

# Simple date regex candidates (ISO, D/M/Y, D Mon YYYY)
_DATE_RE = re.compile(
    r"(\d{4}[-/]\d{1,2}[-/]\d{1,2}|\d{1,2}[-/]\d{1,2}[-/]\d{2,4}|\d{1,2}\s+(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*\s+\d{4})",
    re.I,
)

_CATEGORY_KEYWORDS: List[Tuple[str, Tuple[str, ...]]] = [
    ("Groceries", ("grocery", "market", "supermarket", "walmart", "target", "costco")),
    ("Entertainment", ("restaurant", "cafe", "pizza", "mcdonald", "starbucks", "food")),
    ("Transportation", ("gas", "fuel", "shell", "bp", "chevron", "exxon")),
    ("Healthcare", ("pharmacy", "cvs", "walgreens", "drug")),
]


def normalize_amount(token: str) -> Optional[Decimal]:
    """
    Normalize numeric token like '1,234.56' or '1 234,56' to a two-place Decimal.
    Returns None on failure.
    """
    if not token:
        return None
    s = token.replace("\u00a0", "").replace(" ", "")
    # both separators: whichever comes last is the decimal point
    if "," in s and "." in s:
        if s.rfind(".") > s.rfind(","):
            s = s.replace(",", "")
        else:
            s = s.replace(".", "").replace(",", ".")
    elif "," in s and re.match(r"^[0-9]+,[0-9]{2}$", s):
        s = s.replace(",", ".")
    else:
        s = s.replace(",", "")
    try:
        return abs(Decimal(s)).quantize(Decimal("0.01"))
    except InvalidOperation:
        return None


def extract_total(text: str) -> Optional[Decimal]:
    """
    Scan bottom-up for lines containing 'total'/'amount' words and a number.
    Fallback: the largest number-like token found.
    """
    if not text:
        return None
    lines = [ln.strip() for ln in text.splitlines() if ln.strip()]

    for ln in reversed(lines):
        if _TOTAL_RE.search(ln):
            m = _NUMBER_RE.search(ln)
            if m:
                value = normalize_amount(m.group(1))
                if value is not None:
                    return value
                logger.debug("failed to parse total candidate '%s' from line '%s'", m.group(1), ln)

    numbers = [v for v in (normalize_amount(m.group(1)) for m in _NUMBER_RE.finditer(text)) if v is not None]
    return max(numbers) if numbers else None


def extract_date(text: str) -> Optional[date]:
    """Find the first date-looking token and parse it (day-first for D/M/Y forms)."""
    if not text:
        return None
    m = _DATE_RE.search(text)
    if not m:
        return None
    candidate = m.group(1)
    try:
        return dateparser.parse(candidate, dayfirst=not re.match(r"^\d{4}", candidate)).date()
    except (ValueError, OverflowError):
        logger.debug("dateparser failed on %s", candidate)
        return None


def extract_merchant(lines: List[str]) -> str:
    # first line usually carries the merchant, unless it is numbers/punctuation only
    if lines and not re.match(r"^[\d\W]+$", lines[0]):
        return lines[0]
    return "Unknown Merchant"


def extract_line_items(lines: List[str]) -> List[Dict[str, Any]]:
    items = []
    for ln in lines[1:]:
        if _TOTAL_RE.search(ln) or _DATE_RE.search(ln):
            continue
        m = None
        for m in _NUMBER_RE.finditer(ln):
            pass
        if m is None:
            continue
        name = ln[: m.start()].strip(" .:-\t$£€¥₹")
        price = normalize_amount(m.group(1))
        if name and price is not None:
            items.append({"name": name, "quantity": "1", "price": str(price)})
    return items


def suggest_category(merchant_name: str) -> str:
    name = (merchant_name or "").lower()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(k in name for k in keywords):
            return category
    return "Other"


def parse_receipt_text(text: str, confidence: float = 0.0) -> ExtractedReceipt:
    lines = [ln.strip() for ln in (text or "").splitlines() if ln.strip()]
    merchant = extract_merchant(lines)
    return ExtractedReceipt(
        merchant_name=merchant,
        amount=extract_total(text or ""),
        date=extract_date(text or ""),
        suggested_category=suggest_category(merchant),
        confidence=confidence,
        line_items=extract_line_items(lines),
        raw_text="\n".join(lines[:200]),
    )


# ------------------------------------------------------------------ tesseract

def preprocess_image_for_ocr(img: "Image.Image") -> "Image.Image":
    """
    Preprocess a PIL image in-memory to improve OCR accuracy:
      - auto-orient (if EXIF)
      - convert to L (grayscale)
      - upscale small images
      - mild denoise and autocontrast
    """
    img = ImageOps.exif_transpose(img)
    if img.mode not in ("RGB", "RGBA", "L"):
        img = img.convert("RGB")
    gray = img.convert("L")

    w, h = gray.size
    if w < 600:
        scale = max(1, int(600 / max(1, w)))
        gray = gray.resize((w * scale, h * scale), Image.Resampling.LANCZOS)

    gray = gray.filter(ImageFilter.MedianFilter(size=3))
    return ImageOps.autocontrast(gray)


class TesseractReceiptExtractor:
    """Local OCR provider: Pillow preprocessing + Tesseract + text heuristics."""

    def __init__(self, tesseract_cmd: Optional[str] = None, lang: str = "eng"):
        self.lang = lang
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
            logger.debug("Configured pytesseract command: %s", tesseract_cmd)

    def extract(self, image_bytes: bytes) -> ExtractedReceipt:
        try:
            with Image.open(io.BytesIO(image_bytes)) as img:
                processed = preprocess_image_for_ocr(img.copy())
            data = pytesseract.image_to_data(processed, lang=self.lang, output_type=pytesseract.Output.DICT)
        except UnidentifiedImageError as exc:
            raise ReceiptExtractionError("Unreadable image") from exc
        except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError, OSError) as exc:
            logger.exception("OCR failed")
            raise ReceiptExtractionError(f"OCR failed: {exc}") from exc

        # rebuild lines from word boxes and average the word confidences
        lines: Dict[Tuple[int, int, int], List[str]] = {}
        confidences = []
        for i, word in enumerate(data.get("text", [])):
            if not word or not word.strip():
                continue
            key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
            lines.setdefault(key, []).append(word.strip())
            conf = float(data["conf"][i])
            if conf >= 0:
                confidences.append(conf)
        text = "\n".join(" ".join(words) for _, words in sorted(lines.items()))
        confidence = round(sum(confidences) / len(confidences) / 100, 4) if confidences else 0.0
        return parse_receipt_text(text, confidence=confidence)


# ------------------------------------------------------------------ ingestion

def _extension(filename: str) -> str:
    _, _, ext = (filename or "").rpartition(".")
    ext = re.sub(r"[^a-z0-9]", "", ext.lower())
    return ext or "jpg"


def upload_receipt(
    db: Session,
    user_id: int,
    filename: str,
    content: bytes,
    content_type: Optional[str],
    extractor: ReceiptExtractor,
    blob_store: BlobStore,
    max_bytes: int,
) -> Tuple[models.Receipt, ExtractedReceipt]:
    if not content:
        raise ValidationError("No receipt image provided")
    if not (content_type or "").startswith("image/"):
        raise ValidationError("Only image files are allowed")
    if len(content) > max_bytes:
        raise ValidationError("File size too large")

    key = f"{user_id}/{uuid.uuid4().hex}.{_extension(filename)}"
    url = blob_store.put(content, key)

    try:
        extracted = extractor.extract(content)
    except ReceiptExtractionError as exc:
        blob_store.delete(key)
        logger.warning("Receipt extraction failed for user %s: %s", user_id, exc)
        raise ValidationError(f"Failed to process receipt: {exc}")

    try:
        with atomic(db):
            receipt = models.Receipt(
                user_id=user_id,
                merchant_name=extracted.merchant_name,
                amount=extracted.amount,
                receipt_date=extracted.date,
                suggested_category=extracted.suggested_category,
                confidence=extracted.confidence,
                image_key=key,
                image_url=url,
                raw_payload=json.dumps(extracted.to_payload(), ensure_ascii=False),
            )
            db.add(receipt)
    except Exception:
        blob_store.delete(key)
        raise
    db.refresh(receipt)
    logger.info("Receipt %s stored for user %s (confidence %.2f)", receipt.id, user_id, extracted.confidence)
    return receipt, extracted


def get_receipt(db: Session, user_id: int, receipt_id: int) -> models.Receipt:
    receipt = (
        db.query(models.Receipt)
        .filter(models.Receipt.id == receipt_id, models.Receipt.user_id == user_id)
        .first()
    )
    if receipt is None:
        raise NotFound("Receipt not found")
    return receipt


def list_receipts(db: Session, user_id: int, page: int = 1, limit: int = 10) -> Tuple[List[models.Receipt], int]:
    q = db.query(models.Receipt).filter(models.Receipt.user_id == user_id)
    total = q.count()
    items = (
        q.order_by(models.Receipt.created_at.desc(), models.Receipt.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total


def create_transaction_from_receipt(
    db: Session,
    user_id: int,
    receipt_id: int,
    account_id: int,
    category_id: int,
    amount,
    description: str,
    transaction_date: date,
    notes: Optional[str] = None,
) -> models.Transaction:
    receipt = get_receipt(db, user_id, receipt_id)
    if receipt.transaction_created:
        raise Conflict("A transaction has already been created from this receipt")
    return ledger.create_transaction(
        db,
        user_id=user_id,
        account_id=account_id,
        category_id=category_id,
        type=models.TransactionType.EXPENSE,
        amount=amount,
        description=description,
        transaction_date=transaction_date,
        notes=notes,
        receipt=receipt,
    )


def delete_receipt(db: Session, user_id: int, receipt_id: int, blob_store: BlobStore) -> None:
    receipt = get_receipt(db, user_id, receipt_id)
    key = receipt.image_key
    with atomic(db):
        db.delete(receipt)

    # the row is gone; a leftover file is only logged
    try:
        blob_store.delete(key)
    except OSError:
        logger.exception("Failed to delete receipt image %s", key)
    logger.info("Receipt %s deleted by user %s", receipt_id, user_id)
