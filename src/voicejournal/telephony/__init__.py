"""Telephony providers: webhook verification, normalization and outbound calls."""
