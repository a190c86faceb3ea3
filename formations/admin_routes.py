"""Admin console API: login plus CRUD over every managed table."""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, Request, Response
from sqlalchemy.orm import Session

from formations.auth import TOKEN_COOKIE, authenticate_admin, generate_token, require_admin
from formations.database import get_db
from formations.errors import AuthFailure, InvalidInput
from formations.models import ORDER_STATUSES
from formations.repository import RESOURCES, EntityRepository, OrderRepository, Resource
from formations.schemas import LoginRequest, OrderActionRequest

logger = logging.getLogger(__name__)

auth_router = APIRouter(prefix="/api/admin", tags=["admin"])


@auth_router.post("/login")
def login(body: LoginRequest, request: Request, response: Response, db: Session = Depends(get_db)):
    if not body.username or not body.password:
        raise InvalidInput("Username and password are required")

    user = authenticate_admin(db, body.username, body.password)
    if user is None:
        logger.warning("admin login failed username=%s", body.username)
        raise AuthFailure("Invalid credentials")

    settings = request.app.state.settings
    token = generate_token(user, settings)
    response.set_cookie(
        TOKEN_COOKIE,
        token,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        max_age=settings.jwt_expires_hours * 3600,
        path="/",
    )
    logger.info("admin login user_id=%s", user.id)
    return {
        "success": True,
        "token": token,
        "user": {"id": user.id, "email": user.email, "full_name": user.full_name, "role": user.role},
    }


@auth_router.post("/logout")
def logout(response: Response):
    response.delete_cookie(TOKEN_COOKIE, path="/")
    return {"success": True}


def build_resource_router(resource: Resource) -> APIRouter:
    """list/get/update for every resource, plus create/delete where it allows them."""
    router = APIRouter(
        prefix=f"/api/admin/{resource.name}",
        tags=["admin"],
        dependencies=[Depends(require_admin)],
    )

    @router.get("")
    def list_items(
        request: Request,
        search: Optional[str] = None,
        page: int = Query(1, ge=1),
        limit: int = Query(50, ge=1, le=200),
        db: Session = Depends(get_db),
    ):
        filters = {name: request.query_params.get(name) for name in resource.filters}
        return EntityRepository(db, resource).list(filters, search=search, page=page, limit=limit)

    @router.get("/{item_id}")
    def get_item(item_id: str, db: Session = Depends(get_db)):
        return EntityRepository(db, resource).get(item_id)

    @router.patch("/{item_id}")
    def update_item(item_id: str, fields: dict[str, Any] = Body(...), db: Session = Depends(get_db)):
        return EntityRepository(db, resource).update(item_id, fields)

    if resource.can_create:

        @router.post("", status_code=201)
        def create_item(fields: dict[str, Any] = Body(...), db: Session = Depends(get_db)):
            return EntityRepository(db, resource).create(fields)

    if resource.deletable:

        @router.delete("/{item_id}")
        def delete_item(item_id: str, db: Session = Depends(get_db)):
            EntityRepository(db, resource).delete(item_id)
            return {"success": True, "message": f"{resource.label} deleted successfully"}

    return router


orders_router = APIRouter(prefix="/api/admin/orders", tags=["admin"], dependencies=[Depends(require_admin)])


@orders_router.get("")
def list_orders(
    status: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    return OrderRepository(db).list({"payment_status": status}, search=search, page=page, limit=limit)


@orders_router.post("")
def order_action(body: OrderActionRequest, db: Session = Depends(get_db)):
    if body.action == "stats":
        return OrderRepository(db).statistics()
    raise InvalidInput("Invalid action")


@orders_router.get("/{order_id}")
def get_order(order_id: str, db: Session = Depends(get_db)):
    return OrderRepository(db).get(order_id)


@orders_router.patch("/{order_id}")
def update_order(order_id: str, fields: dict[str, Any] = Body(...), db: Session = Depends(get_db)):
    status = fields.get("payment_status")
    if status is not None and status not in ORDER_STATUSES:
        raise InvalidInput(f"payment_status must be one of: {', '.join(ORDER_STATUSES)}")
    return OrderRepository(db).update(order_id, fields)


standalone_router = APIRouter(
    prefix="/api/admin/standalone-services", tags=["admin"], dependencies=[Depends(require_admin)]
)


@standalone_router.get("")
def list_standalone_services(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    return OrderRepository(db).standalone_services(limit=limit, offset=offset)


def admin_routers() -> list[APIRouter]:
    routers = [auth_router, orders_router, standalone_router]
    return routers + [build_resource_router(resource) for resource in RESOURCES]
