from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from backend.app.api.deps import get_actor, get_db
from backend.app.schemas.users import UserCreate, UserDetail, UserRead, UserUpdate
from backend.services import users
from backend.services.access import Actor

router = APIRouter(prefix="/users")


@router.get("", response_model=list[UserRead])
def list_users(db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return [UserRead.model_validate(u) for u in users.list_users(db, actor)]


@router.get("/{user_id}", response_model=UserDetail)
def get_user(user_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return UserDetail.model_validate(users.get_user(db, actor, user_id))


@router.post("", response_model=UserRead, status_code=201)
def create_user(payload: UserCreate, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    user = users.create_user(
        db,
        actor,
        name=payload.name,
        email=payload.email,
        role=payload.role,
        active=payload.active,
    )
    return UserRead.model_validate(user)


@router.put("/{user_id}", response_model=UserRead)
def update_user(
    user_id: int,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    changes = {k: getattr(payload, k) for k in payload.model_fields_set}
    return UserRead.model_validate(users.update_user(db, actor, user_id, **changes))


@router.delete("/{user_id}", status_code=204)
def delete_user(user_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    users.delete_user(db, actor, user_id)
    return Response(status_code=204)
