"""Tenant utilities: create tenant, create API key.

Stored in Mongo with minimal fields. The tenant domain is used to synthesize
emails for users created during batch ingestion.
"""
import secrets
import time
from typing import Optional

from .store import SkillStore


def create_tenant(store: SkillStore, name: str, domain: Optional[str] = None) -> str:
    now = int(time.time())
    rec = {"name": name, "domain": (domain or "").strip().lower() or None, "created_at": now}
    ins = store.db["tenants"].insert_one(rec)
    return str(ins.inserted_id)


def create_api_key(store: SkillStore, tenant_id: str, name: str = "default") -> dict:
    key = secrets.token_urlsafe(32)
    now = int(time.time())
    rec = {"tenant_id": tenant_id, "name": name, "key": key, "active": True, "created_at": now}
    store.db["api_keys"].insert_one(rec)
    return {"key": key, "created_at": now}


def main(argv=None, store: Optional[SkillStore] = None) -> dict:
    """Provision a tenant and an API key for the X-API-Key header.

    python -m skillmine.scripts.tenants --name Acme --domain acme.com
    python -m skillmine.scripts.tenants --tenant-id <id> --key-name ci
    """
    import argparse

    parser = argparse.ArgumentParser(description='Create a tenant and/or an API key')
    parser.add_argument('--name', help='Tenant name (creates a new tenant)')
    parser.add_argument('--domain', help='Email domain for users created by batch jobs')
    parser.add_argument('--tenant-id', help='Existing tenant to issue a key for')
    parser.add_argument('--key-name', default='default', help='Label stored with the API key')
    args = parser.parse_args(argv)

    if not args.name and not args.tenant_id:
        parser.error('one of --name or --tenant-id is required')
    if store is None:
        from .store import get_store
        store = get_store()

    tenant_id = args.tenant_id or create_tenant(store, args.name, args.domain)
    key = create_api_key(store, tenant_id, name=args.key_name)
    print(f"tenant_id: {tenant_id}")
    print(f"api_key:   {key['key']}")
    return {"tenant_id": tenant_id, "key": key["key"]}


if __name__ == "__main__":
    main()
