"""Exceptions shared by the call flows, the transport and the store."""

from __future__ import annotations


class CallEnded(Exception):
    """The call is over; unwind without playing anything else."""


class CallHangup(CallEnded):
    """The caller hung up (or the provider tore the call down)."""


class CallTimeout(CallEnded):
    """No input arrived within the session inactivity timeout."""


class Cancelled(Exception):
    """The caller pressed the cancel digit on a read that honours it."""


class StoreError(Exception):
    """A write or read against the backing store failed."""


class DirectoryError(Exception):
    """The provider's list-membership API failed or answered with an error."""


class PaymentError(Exception):
    """The charge could not be attempted (infrastructure failure)."""
