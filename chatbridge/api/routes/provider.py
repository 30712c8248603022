"""
Provider configuration and blacklist endpoints.

- GET    /api/providers
- GET    /api/tenants/{tenant_id}/provider
- POST   /api/tenants/{tenant_id}/provider/test
- GET    /api/tenants/{tenant_id}/blacklist
- POST   /api/tenants/{tenant_id}/blacklist
- DELETE /api/tenants/{tenant_id}/blacklist/{address}
"""

from typing import Any

from fastapi import APIRouter, Depends, Request, status

from chatbridge.api.dependencies import get_outbound_service, get_services
from chatbridge.api.schemas import BlacklistEntryRead, BlacklistRequest, TestConnectionRequest
from chatbridge.domain.errors import NotFoundError
from chatbridge.domain.models import ConnectionTestResult, ProviderConfigView
from chatbridge.services.outbound_service import OutboundService

router = APIRouter(prefix="/api", tags=["Provider"])


@router.get("/providers", summary="Supported Providers")
async def supported_providers(request: Request) -> dict[str, Any]:
    factory = get_services(request).factory
    return {"providers": factory.get_supported_providers()}


@router.get("/tenants/{tenant_id}/provider", response_model=ProviderConfigView)
async def provider_info(
    tenant_id: int, outbound: OutboundService = Depends(get_outbound_service)
) -> ProviderConfigView:
    """The tenant's provider configuration without secrets."""
    return await outbound.provider_info(tenant_id)


@router.post("/tenants/{tenant_id}/provider/test", response_model=ConnectionTestResult)
async def test_connection(
    tenant_id: int,
    request: TestConnectionRequest | None = None,
    outbound: OutboundService = Depends(get_outbound_service),
) -> ConnectionTestResult:
    test_address = request.test_address if request is not None else None
    return await outbound.test_connection(tenant_id, test_address)


@router.get("/tenants/{tenant_id}/blacklist", response_model=list[BlacklistEntryRead])
async def list_blacklist(
    tenant_id: int, outbound: OutboundService = Depends(get_outbound_service)
) -> list[BlacklistEntryRead]:
    entries = await outbound.list_blacklist(tenant_id)
    return [BlacklistEntryRead.model_validate(entry) for entry in entries]


@router.post(
    "/tenants/{tenant_id}/blacklist",
    response_model=BlacklistEntryRead,
    status_code=status.HTTP_201_CREATED,
)
async def add_to_blacklist(
    tenant_id: int,
    request: BlacklistRequest,
    outbound: OutboundService = Depends(get_outbound_service),
) -> BlacklistEntryRead:
    entry = await outbound.add_to_blacklist(tenant_id, request.address, request.reason)
    return BlacklistEntryRead.model_validate(entry)


@router.delete("/tenants/{tenant_id}/blacklist/{address}")
async def remove_from_blacklist(
    tenant_id: int,
    address: str,
    outbound: OutboundService = Depends(get_outbound_service),
) -> dict[str, Any]:
    if not await outbound.remove_from_blacklist(tenant_id, address):
        raise NotFoundError(f"{address} is not blacklisted")
    return {"removed": True, "address": address}
