"""Conversational session engine for WhatsApp commerce and care bots."""

__version__ = "0.1.0"
