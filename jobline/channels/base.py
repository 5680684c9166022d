"""CallChannel ABC: the telephony transport as seen by the call flows.

Different providers deliver caller input differently (webhook round-trips,
media streams, a scripted test double).  The CallChannel interface lets the
rest of the IVR stack work with four operations only:

  read      play a prompt, then suspend until input, hang-up or timeout
  announce  queue a prompt with no capture (played before the next action)
  transfer  hand the call to another extension; ends this session's dialog
  hangup    end the call

Implementors never touch storage.
"""

from abc import ABC, abstractmethod
from typing import Any

from jobline.prompts import PromptSpec, ReadRequest


class CallChannel(ABC):
    """Abstract telephony transport for a single call."""

    @abstractmethod
    async def read(self, prompts: PromptSpec, request: ReadRequest) -> str:
        """Play ``prompts`` and return what the caller entered.

        Returns the digits, recording reference or transcript; an empty
        string when the caller entered nothing.  When ``request.allow_cancel``
        is set and the caller pressed ``*``, returns ``"*"`` verbatim.

        Raises:
            CallHangup: the caller hung up while the read was outstanding.
            CallTimeout: no input within the session inactivity timeout.
        """

    @abstractmethod
    async def announce(self, prompts: PromptSpec) -> None:
        """Queue a prompt that plays before the next read/transfer/hangup."""

    @abstractmethod
    async def transfer(self, destination: str) -> None:
        """Route the call into another extension of the provider."""

    @abstractmethod
    async def hangup(self) -> None:
        """End the call after any queued announcements."""

    @abstractmethod
    async def get_caller_info(self) -> dict[str, Any]:
        """Return caller metadata.

        Keys: ``call_id``, ``phone_number``, ``extension`` and
        ``transport``; providers may add more.
        """

    @abstractmethod
    async def close(self) -> None:
        """Release transport resources.  Safe to call multiple times."""
