"""Menu states and the base class every call flow derives from."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum

from jobline.collector import FieldCollector
from jobline.session import CallSession


class MenuState(str, Enum):
    """One state per extension, plus the terminal state."""

    MAIN = "main"
    JOBS = "jobs"
    POST = "post"
    SUBSCRIBE = "subscribe"
    CONTACT = "contact"
    UNSUBSCRIBE = "unsubscribe"
    END = "end"


class Flow(ABC):
    """A subflow the router delegates to.

    ``run`` returns the next state: usually MAIN, or END after a transfer
    or hang-up.  Flows raise ``Cancelled`` to abandon whatever they were
    collecting; the router treats that as a return to MAIN.
    """

    state: MenuState

    def __init__(self, session: CallSession) -> None:
        self.session = session
        self.collector = FieldCollector(session)

    @abstractmethod
    async def run(self) -> MenuState:
        """Drive the flow to completion and return the next state."""
