# finance_api/api/v1/accounts.py
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from finance_api.api.v1.deps import get_current_user
from finance_api.db import models
from finance_api.db.session import get_db
from finance_api.schemas.account import AccountCreate, AccountOut, AccountTypeOut
from finance_api.schemas.common import ok
from finance_api.services import accounts as account_service
from finance_api.services import reports as report_service

router = APIRouter(tags=["accounts"])


@router.get("")
def list_accounts(
    active_only: bool = Query(False),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    items = account_service.get_accounts_for_user(db, current_user.id, active_only=active_only)
    return ok([AccountOut.model_validate(a) for a in items])


@router.get("/types")
def list_account_types(current_user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ok([AccountTypeOut.model_validate(t) for t in account_service.list_account_types(db)])


@router.get("/reconciliation")
def reconcile(current_user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Persisted balances next to balances re-derived from ledger history."""
    return ok(report_service.ledger_balances(db, current_user.id))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_account(
    payload: AccountCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    account = account_service.create_account(db, current_user.id, payload.name, payload.type_id)
    return ok(AccountOut.model_validate(account), "Account created successfully")


@router.get("/{account_id}")
def get_account(account_id: int, current_user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ok(AccountOut.model_validate(account_service.get_account(db, account_id, current_user.id)))


@router.post("/{account_id}/deactivate")
def deactivate_account(
    account_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    account = account_service.deactivate_account(db, current_user.id, account_id)
    return ok(AccountOut.model_validate(account), "Account deactivated")


@router.delete("/{account_id}")
def delete_account(account_id: int, current_user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    account_service.delete_account(db, current_user.id, account_id)
    return ok(message="Account deleted successfully")
