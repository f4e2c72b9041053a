# finance_api/api/v1/receipts.py
import logging
import os

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from sqlalchemy.orm import Session

from finance_api.api.v1.deps import get_blob_store, get_current_user, get_extractor, get_settings
from finance_api.core.config import SimpleSettings
from finance_api.db import models
from finance_api.db.session import get_db
from finance_api.schemas.common import ok, pagination
from finance_api.schemas.receipt import ReceiptOut, ReceiptTransactionCreate
from finance_api.schemas.transaction import TransactionOut
from finance_api.services import receipts as receipt_service
from finance_api.services.blob_store import BlobStore
from finance_api.services.receipts import ReceiptExtractor

logger = logging.getLogger(__name__)
router = APIRouter(tags=["receipts"])


@router.post("/upload", status_code=status.HTTP_201_CREATED)
def upload_receipt(
    file: UploadFile = File(...),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    extractor: ReceiptExtractor = Depends(get_extractor),
    blob_store: BlobStore = Depends(get_blob_store),
    settings: SimpleSettings = Depends(get_settings),
):
    filename = os.path.basename(file.filename or "")
    try:
        # read one byte past the limit so oversize files are detected without reading them whole
        content = file.file.read(settings.MAX_UPLOAD_BYTES + 1)
    finally:
        file.file.close()

    receipt, extracted = receipt_service.upload_receipt(
        db,
        user_id=current_user.id,
        filename=filename,
        content=content,
        content_type=file.content_type,
        extractor=extractor,
        blob_store=blob_store,
        max_bytes=settings.MAX_UPLOAD_BYTES,
    )
    data = ReceiptOut.model_validate(receipt).model_dump()
    data["line_items"] = extracted.line_items
    return ok(data, "Receipt processed successfully")


@router.get("")
def list_receipts(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    items, total = receipt_service.list_receipts(db, current_user.id, page, limit)
    return ok({
        "receipts": [ReceiptOut.model_validate(r) for r in items],
        "pagination": pagination(total, page, limit),
    })


@router.get("/{receipt_id}")
def get_receipt(receipt_id: int, current_user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ok(ReceiptOut.model_validate(receipt_service.get_receipt(db, current_user.id, receipt_id)))


@router.post("/{receipt_id}/create-transaction", status_code=status.HTTP_201_CREATED)
def create_transaction_from_receipt(
    receipt_id: int,
    payload: ReceiptTransactionCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    txn = receipt_service.create_transaction_from_receipt(
        db,
        user_id=current_user.id,
        receipt_id=receipt_id,
        account_id=payload.account_id,
        category_id=payload.category_id,
        amount=payload.amount,
        description=payload.description,
        transaction_date=payload.transaction_date,
        notes=payload.notes,
    )
    return ok(TransactionOut.model_validate(txn), "Transaction created from receipt successfully")


@router.delete("/{receipt_id}")
def delete_receipt(
    receipt_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
):
    receipt_service.delete_receipt(db, current_user.id, receipt_id, blob_store)
    return ok(message="Receipt deleted successfully")
