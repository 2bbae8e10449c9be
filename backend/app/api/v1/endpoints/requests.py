from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from backend.app.api.deps import get_actor, get_db
from backend.app.schemas.workflow import (
    RequestCreate,
    RequestRead,
    RequestStats,
    RequestStatusUpdate,
    RequestUpdate,
)
from backend.services import request_workflow
from backend.services.access import ANY_ROLE, Actor, require_role

router = APIRouter(prefix="/requests")


def _read(db: Session, request_id: int) -> RequestRead:
    return RequestRead.model_validate(request_workflow.get_request(db, request_id))


@router.get("", response_model=list[RequestRead])
def list_requests(db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    require_role(actor, ANY_ROLE, "list requests")
    return [RequestRead.model_validate(r) for r in request_workflow.list_requests(db)]


@router.get("/stats", response_model=RequestStats)
def request_stats(db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    require_role(actor, ANY_ROLE, "read request stats")
    return request_workflow.request_stats(db)


@router.get("/{request_id}", response_model=RequestRead)
def get_request(request_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    require_role(actor, ANY_ROLE, "read requests")
    return _read(db, request_id)


@router.post("", response_model=RequestRead, status_code=201)
def create_request(payload: RequestCreate, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    req = request_workflow.create_request(
        db,
        actor,
        product_id=payload.product_id,
        quantity=payload.quantity,
        reason=payload.reason,
        user_id=payload.user_id,
    )
    return _read(db, req.id)


@router.put("/{request_id}", response_model=RequestRead)
def update_request(
    request_id: int,
    payload: RequestUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    changes = {k: getattr(payload, k) for k in payload.model_fields_set}
    request_workflow.update_request(db, actor, request_id, **changes)
    return _read(db, request_id)


@router.put("/{request_id}/status", response_model=RequestRead)
def set_request_status(
    request_id: int,
    payload: RequestStatusUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    request_workflow.set_request_status(db, actor, request_id, payload.status)
    return _read(db, request_id)


@router.delete("/{request_id}", status_code=204)
def delete_request(request_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    request_workflow.delete_request(db, actor, request_id)
    return Response(status_code=204)
