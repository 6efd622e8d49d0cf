"""Ads module -- campaigns and the per-tenant ad credit ledger.

Provides SQLAlchemy models, Pydantic schemas and AdRepository, which
applies every balance change and its ledger entry in one transaction.
"""
