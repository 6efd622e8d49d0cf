"""Booking lifecycle module -- refunds, status-change emails and visitor cancellation.

Provides RefundService (claimed, idempotent Stripe refunds), BookingNotifier
for confirmation / cancellation emails, and the visitor cancellation policy
and service behind signed cancel links.
"""
