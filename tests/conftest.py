"""Shared fixtures: a scripted call channel and session factories."""

from __future__ import annotations

from collections import deque
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

import pytest

from jobline.channels.base import CallChannel
from jobline.config import Settings
from jobline.errors import CallHangup
from jobline.prompts import PromptSpec, ReadRequest, SegmentKind
from jobline.session import CallSession
from jobline.stores.memory import MemoryStore

# 2026-03-10 11:00 in Jerusalem
NOW = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)
CALLER = "0501234567"


def audio_names(prompts: PromptSpec) -> list[str]:
    return [s.data for s in prompts if s.kind == SegmentKind.AUDIO]


class ScriptedChannel(CallChannel):
    """CallChannel that answers reads from a fixed script.

    Every read, announcement and transfer is recorded.  When the script
    runs out the caller "hangs up".
    """

    def __init__(self, answers: Iterable[str] = ()) -> None:
        self.answers = deque(answers)
        self.reads: list[tuple[PromptSpec, ReadRequest]] = []
        self.announcements: list[PromptSpec] = []
        self.transfers: list[str] = []
        self.hung_up = False
        self.closed = False

    async def read(self, prompts: PromptSpec, request: ReadRequest) -> str:
        self.reads.append((prompts, request))
        if not self.answers:
            raise CallHangup("scripted")
        return self.answers.popleft()

    async def announce(self, prompts: PromptSpec) -> None:
        self.announcements.append(prompts)

    async def transfer(self, destination: str) -> None:
        self.transfers.append(destination)

    async def hangup(self) -> None:
        self.hung_up = True

    async def get_caller_info(self) -> dict[str, Any]:
        return {"call_id": "test", "phone_number": CALLER, "extension": "", "transport": "scripted"}

    async def close(self) -> None:
        self.closed = True

    # ── Assertions helpers ─────────────────────────────────────

    @property
    def slots(self) -> list[str]:
        return [request.slot for _, request in self.reads]

    @property
    def announced(self) -> list[str]:
        """Audio file names of every announcement, in order."""
        return [name for prompts in self.announcements for name in audio_names(prompts)]

    @property
    def prompted(self) -> list[str]:
        """Audio file names played before reads, in order."""
        return [name for prompts, _ in self.reads for name in audio_names(prompts)]

    def heard(self, name: str) -> bool:
        return name in self.announced or name in self.prompted


@pytest.fixture
def config():
    return Settings(_env_file=None, timezone="Asia/Jerusalem")


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def make_session(config, store):
    """Build a CallSession over a ScriptedChannel."""

    def _make(
        answers: Iterable[str] = (),
        *,
        caller_phone: str = CALLER,
        extension: str = "",
        call_id: str = "call-1",
        store: Optional[MemoryStore] = store,
        **kwargs: Any,
    ) -> CallSession:
        return CallSession(
            ScriptedChannel(answers),
            store,
            call_id=call_id,
            caller_phone=caller_phone,
            extension=extension,
            config=kwargs.pop("config", config),
            clock=lambda: NOW,
            **kwargs,
        )

    return _make
