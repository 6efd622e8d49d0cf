#!/usr/bin/env python3
"""CLI script to provision a new tenant and its owner account.

Usage:
    uv run python scripts/provision_tenant.py --slug yoga-with-ana --name "Yoga with Ana" \
        --owner-email ana@example.com --owner-password changeme123

Connects directly to the database using DATABASE_URL from environment or .env file.
Creates the tenant schema with all tables and RLS, registers the tenant in
shared.tenants with default booking settings, creates the owner login, and
stamps the new schema at the head of the tenant migration branch.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

# Ensure project root is on sys.path so we can import src.cally
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

# Load .env from project root
load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))


def stamp_schema(schema_name: str) -> None:
    """Mark a schema created from the models as migrated to the tenant branch head."""
    from alembic import command
    from alembic.config import Config

    config = Config(os.path.join(os.path.dirname(__file__), "..", "alembic.ini"))
    config.cmd_opts = argparse.Namespace(x=[f"schema={schema_name}"])
    command.stamp(config, "tenant@head")


async def provision(slug: str, name: str, owner_email: str, owner_password: str) -> str:
    """Provision a tenant through the same path as signup. Returns the schema name."""
    from src.cally.core.database import close_db, get_shared_session, init_db
    from src.cally.tenants.provisioning import TenantProvisioner
    from src.cally.tenants.repository import TenantRepository

    await init_db()

    print(f"Provisioning tenant: slug={slug}, name={name}")
    provisioner = TenantProvisioner(TenantRepository(session_factory=get_shared_session))
    try:
        tenant, user = await provisioner.provision(
            slug=slug,
            business_name=name,
            owner_email=owner_email,
            password=owner_password,
        )
    finally:
        await close_db()

    print("Tenant provisioned successfully:")
    print(f"  ID:     {tenant.id}")
    print(f"  Slug:   {tenant.slug}")
    print(f"  Schema: {tenant.schema_name}")
    print(f"  Owner:  {user.email}")
    return tenant.schema_name


def main() -> None:
    parser = argparse.ArgumentParser(description="Provision a new tenant")
    parser.add_argument("--slug", required=True, help="Tenant slug (e.g., yoga-with-ana)")
    parser.add_argument("--name", required=True, help="Business display name")
    parser.add_argument("--owner-email", required=True, help="Owner login email")
    parser.add_argument("--owner-password", required=True, help="Owner login password (8+ chars)")
    parser.add_argument(
        "--no-stamp",
        action="store_true",
        help="Skip stamping the schema's alembic_version",
    )
    args = parser.parse_args()

    if len(args.owner_password) < 8:
        parser.error("--owner-password must be at least 8 characters")

    schema_name = asyncio.run(provision(args.slug, args.name, args.owner_email, args.owner_password))

    if not args.no_stamp:
        stamp_schema(schema_name)
        print(f"  Stamped {schema_name} at tenant@head")


if __name__ == "__main__":
    main()
