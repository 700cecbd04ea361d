"""Tenant resolution for the HTTP layer.

Every request is scoped to a tenant through the X-API-Key header, looked up in
the api_keys collection.
"""
from typing import Optional
from fastapi import Depends, Header, HTTPException
from .store import SkillStore, get_store


def get_tenant_from_apikey(
    x_api_key: Optional[str] = Header(default=None, alias="X-API-Key"),
    store: SkillStore = Depends(get_store),
) -> Optional[str]:
    if not x_api_key:
        return None
    rec = store.db["api_keys"].find_one({"key": x_api_key, "active": True})
    if not rec:
        raise HTTPException(status_code=401, detail="bad_api_key")
    return str(rec.get("tenant_id")) if rec.get("tenant_id") else None


def require_tenant(tenant_id: Optional[str] = Depends(get_tenant_from_apikey)) -> str:
    if not tenant_id:
        raise HTTPException(status_code=401, detail="tenant_required")
    return tenant_id
