# finance_api/api/v1/users.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from finance_api.api.v1.deps import get_current_user
from finance_api.db import models
from finance_api.db.session import get_db
from finance_api.schemas.auth import ProfileUpdate, UserOut, UserSummary
from finance_api.schemas.common import ok
from finance_api.services import users as user_service

router = APIRouter(tags=["users"])


@router.get("")
def list_users(current_user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Active users other than the caller, for choosing a transfer recipient."""
    users = [u for u in user_service.list_active_users(db) if u.id != current_user.id]
    return ok([UserSummary.model_validate(u) for u in users])


@router.get("/me")
def get_me(current_user: models.User = Depends(get_current_user)):
    return ok(UserOut.model_validate(current_user))


@router.put("/profile")
def update_profile(
    payload: ProfileUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user = user_service.update_profile(db, current_user.id, full_name=payload.full_name, email=payload.email)
    return ok(UserOut.model_validate(user), "Profile updated successfully")


@router.get("/stats")
def get_stats(current_user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    return ok(user_service.user_stats(db, current_user.id))


@router.delete("/account")
def deactivate(current_user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    user_service.deactivate_user(db, current_user.id)
    return ok(None, "Account deactivated successfully")
