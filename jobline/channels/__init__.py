"""Telephony transports."""

from .base import CallChannel

__all__ = ["CallChannel"]
