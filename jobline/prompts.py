"""Prompt segments and read requests: the vocabulary of the read primitive.

A prompt is an ordered tuple of segments played back-to-back before the
provider captures input.  Four segment kinds exist:

  audio   a pre-recorded file uploaded to the provider (by file name)
  number  a number the provider reads naturally ("sixty")
  text    free text synthesized by the provider's TTS
  digits  a digit group read one digit at a time (phone numbers)

Every flow step builds a fresh PromptSpec; nothing mutates one after
construction.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union


class SegmentKind(str, Enum):
    AUDIO = "audio"
    NUMBER = "number"
    TEXT = "text"
    DIGITS = "digits"


@dataclass(frozen=True)
class Segment:
    """One piece of a prompt."""

    kind: SegmentKind
    data: str


PromptSpec = tuple[Segment, ...]
PromptPart = Union[Segment, PromptSpec, None]


def audio(name: str) -> Segment:
    """Reference a pre-recorded audio file, with or without ``.wav``."""
    if name.endswith(".wav"):
        name = name[: -len(".wav")]
    return Segment(SegmentKind.AUDIO, name)


def number(value: int | float | str) -> Segment:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return Segment(SegmentKind.NUMBER, str(value))


def text(value: str) -> Segment:
    return Segment(SegmentKind.TEXT, value)


def digits(value: str) -> Segment:
    return Segment(SegmentKind.DIGITS, value)


def prompt(*parts: PromptPart) -> PromptSpec:
    """Flatten segments and nested prompts into one PromptSpec.

    ``None`` parts are skipped so optional pieces can be inlined::

        prompt(audio("027"), text(title), date_parts or None)
    """
    segments: list[Segment] = []
    for part in parts:
        if part is None:
            continue
        if isinstance(part, Segment):
            segments.append(part)
        else:
            segments.extend(part)
    return tuple(segments)


class ReadMode(str, Enum):
    TAP = "tap"          # DTMF digits
    RECORD = "record"    # voice recording, result is a file reference
    STT = "stt"          # speech-to-text, result is the transcript


CANCEL_DIGIT = "*"


@dataclass(frozen=True)
class ReadRequest:
    """What to capture at one suspension point.

    ``slot`` names the value (it shows up in logs and events).  When
    ``allow_cancel`` is set, a caller pressing ``*`` aborts this read and the
    digit comes back verbatim.
    """

    slot: str
    mode: ReadMode = ReadMode.TAP
    max_digits: int = 1
    min_digits: int = 1
    allow_cancel: bool = True
    seconds_to_wait: int = 7

    @classmethod
    def digit(cls, slot: str, allow_cancel: bool = True) -> "ReadRequest":
        return cls(slot=slot, max_digits=1, min_digits=1, allow_cancel=allow_cancel)

    @classmethod
    def number(cls, slot: str, max_digits: int = 5) -> "ReadRequest":
        return cls(slot=slot, max_digits=max_digits, min_digits=1)

    @classmethod
    def speech(cls, slot: str) -> "ReadRequest":
        return cls(slot=slot, mode=ReadMode.STT, max_digits=0, min_digits=0, allow_cancel=False)

    @classmethod
    def recording(cls, slot: str) -> "ReadRequest":
        return cls(slot=slot, mode=ReadMode.RECORD, max_digits=0, min_digits=0, allow_cancel=False)
