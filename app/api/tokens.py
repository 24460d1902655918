from datetime import datetime

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel

from app.api.deps import get_store, require_self_or_role
from app.core.errors import NotFound
from app.core.security import Principal
from app.db.store import CredentialRecord, CredentialStore

router = APIRouter()

ADMIN_ROLE = "ADMIN"


class TokenOutput(BaseModel):
    id: str
    subject: str
    binding_context: str
    enabled: bool
    expires_at: datetime


class TokenPage(BaseModel):
    content: list[TokenOutput]
    size: int
    page: int
    total_elements: int
    total_pages: int


def _out(r: CredentialRecord) -> TokenOutput:
    return TokenOutput(
        id=r.id,
        subject=r.subject,
        binding_context=r.binding_context,
        enabled=r.enabled,
        expires_at=r.expires_at,
    )


@router.get("/{username}/access-tokens", response_model=TokenPage)
async def list_access_tokens(
    username: str,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    sort: str | None = Query(None),
    principal: Principal = Depends(require_self_or_role(ADMIN_ROLE)),
    store: CredentialStore = Depends(get_store),
):
    res = await store.find_by_subject(username, page=page, size=size, sort=sort)
    return TokenPage(
        content=[_out(r) for r in res.content],
        size=res.size,
        page=res.page,
        total_elements=res.total_elements,
        total_pages=res.total_pages,
    )


@router.delete("/{username}/access-tokens/{token_id}", status_code=204)
async def revoke_access_token(
    username: str,
    token_id: str,
    principal: Principal = Depends(require_self_or_role(ADMIN_ROLE)),
    store: CredentialStore = Depends(get_store),
):
    record = await store.get(token_id)
    if record.subject != username:
        raise NotFound(f"credential {token_id} does not belong to {username}")
    await store.disable(token_id)
    return Response(status_code=204)
