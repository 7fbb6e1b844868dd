"""
Voice journal service.

Places daily phone calls to users, tracks each call's lifecycle from
telephony webhooks, and turns transcribed recordings into journal entries.
"""

__version__ = "0.1.0"
