"""Tenant module -- tenants, owner accounts and per-tenant settings.

Provides the shared-schema Tenant and User models, TenantRepository with a
Redis lookup cache, schema provisioning, typed settings sections and the
landing page document models.
"""
