from fastapi import APIRouter, Depends, status, Query
from typing import Optional
from uuid import UUID

from factory_erp.dependencies.dbDependecies import db_dependency
from factory_erp.modules.auth.dependencies import AuthDependencies, BILLING_ROLES, DELETE_ROLES, READ_ROLES
from factory_erp.modules.auth.schemas import AuthContext
from factory_erp.modules.taxes.service import HSNService
from factory_erp.modules.taxes.schemas import HSNCreate, HSNUpdate, HSNOut, HSNList

hsn_router = APIRouter(prefix="/hsn", tags=["HSN"])


@hsn_router.get("/", response_model=HSNList)
def list_hsn_codes(
    db: db_dependency,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    search: Optional[str] = Query(None, description="Search by code or description"),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(READ_ROLES))
):
    """
    List registered HSN codes with their default GST rate
    """
    service = HSNService(db)
    return service.list_hsn(limit, offset, search)


@hsn_router.post("/", response_model=HSNOut, status_code=status.HTTP_201_CREATED)
def create_hsn_code(
    hsn_data: HSNCreate,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    """
    Register an HSN code

    The default rate only prefills invoice items; the rate sent on an item wins.
    """
    service = HSNService(db)
    return service.create_hsn(hsn_data)


@hsn_router.get("/{code}", response_model=HSNOut)
def get_hsn_code(
    code: str,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(READ_ROLES))
):
    service = HSNService(db)
    return service.get_by_code(code)


@hsn_router.put("/{hsn_id}", response_model=HSNOut)
def update_hsn_code(
    hsn_id: UUID,
    hsn_update: HSNUpdate,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    service = HSNService(db)
    return service.update_hsn(hsn_id, hsn_update)


@hsn_router.delete("/{hsn_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_hsn_code(
    hsn_id: UUID,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_role(DELETE_ROLES))
):
    """
    Remove an HSN code from the registry

    Existing invoices keep the code on their items.
    """
    service = HSNService(db)
    service.delete_hsn(hsn_id)
