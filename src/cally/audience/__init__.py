"""Audience module -- landing page subscribers and per-date waitlists."""
