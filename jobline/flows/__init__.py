"""Call flows, one per menu state."""

from .base import Flow, MenuState
from .contact import ContactFlow
from .jobs import JobsFlow
from .post_job import PostJobFlow
from .subscribe import SubscribeFlow
from .unsubscribe import UnsubscribeFlow

FLOWS: dict[MenuState, type[Flow]] = {
    MenuState.JOBS: JobsFlow,
    MenuState.POST: PostJobFlow,
    MenuState.SUBSCRIBE: SubscribeFlow,
    MenuState.CONTACT: ContactFlow,
    MenuState.UNSUBSCRIBE: UnsubscribeFlow,
}

__all__ = [
    "FLOWS",
    "ContactFlow",
    "Flow",
    "JobsFlow",
    "MenuState",
    "PostJobFlow",
    "SubscribeFlow",
    "UnsubscribeFlow",
]
