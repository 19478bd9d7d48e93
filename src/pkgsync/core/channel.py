"""Progress and prompt channel between the engine and whatever renders it.

The engine never prints or reads input directly. It emits typed messages
to a ``Channel`` and awaits answers from it:

- ``LogLine``: one line of command output or status text.
- ``Section``: a heading that starts a new phase of a run.
- ``PromptRequest``: a question with a closed set of answers.

``ConsoleChannel`` is the default and talks to the terminal with Rich.
``QueueChannel`` hands messages to an embedding UI through asyncio queues.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Sequence, Union

from rich.console import Console
from rich.markup import escape
from rich.prompt import Prompt

YES = "yes"
NO = "no"
QUIT = "quit"

# Single-letter shorthands accepted from humans.
_ALIASES = {"y": YES, "n": NO, "q": QUIT}


@dataclass(frozen=True)
class LogLine:
    text: str
    style: str | None = None


@dataclass(frozen=True)
class Section:
    title: str


@dataclass(frozen=True)
class PromptRequest:
    question: str
    choices: tuple[str, ...]
    default: str | None = None


Message = Union[LogLine, Section, PromptRequest]


def normalise_answer(answer: str, choices: Sequence[str], default: str | None = None) -> str:
    """Map free-form input onto one of ``choices``.

    Unknown input falls back to ``default``, or to the last choice, which
    callers order so that it is the safe one (``no`` or ``quit``).
    """
    value = (answer or "").strip().lower()
    value = _ALIASES.get(value, value)
    if value in choices:
        return value
    return default if default in choices else choices[-1]


class Channel(ABC):
    """Base channel. Subclasses decide where messages go."""

    @abstractmethod
    def send(self, message: Message) -> None:
        """Deliver one message."""

    @abstractmethod
    async def ask(
        self, question: str, choices: Sequence[str] = (YES, NO), default: str | None = None
    ) -> str:
        """Ask ``question`` and return one of ``choices``."""

    def emit(self, text: str, style: str | None = None) -> None:
        self.send(LogLine(text, style))

    def section(self, title: str) -> None:
        self.send(Section(title))


class ConsoleChannel(Channel):
    """Render to the terminal and prompt on stdin."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(highlight=False)

    def send(self, message: Message) -> None:
        if isinstance(message, Section):
            self.console.print(f"\n[bold cyan]=== {escape(message.title)} ===[/bold cyan]\n")
        elif isinstance(message, LogLine):
            self.console.print(message.text, style=message.style, markup=False)

    async def ask(
        self, question: str, choices: Sequence[str] = (YES, NO), default: str | None = None
    ) -> str:
        answer = await asyncio.to_thread(
            Prompt.ask,
            escape(f"{question} [{'/'.join(choices)}]"),
            console=self.console,
            choices=[*choices, *(k for k, v in _ALIASES.items() if v in choices)],
            default=default,
            case_sensitive=False,
            show_choices=False,
        )
        return normalise_answer(answer, choices, default)


class QueueChannel(Channel):
    """Message-passing channel for an embedding UI.

    Messages go out on ``outbound``; answers to a ``PromptRequest`` are
    expected on ``inbound`` in the order the requests were sent.
    """

    def __init__(self) -> None:
        self.outbound: asyncio.Queue[Message] = asyncio.Queue()
        self.inbound: asyncio.Queue[str] = asyncio.Queue()

    def send(self, message: Message) -> None:
        self.outbound.put_nowait(message)

    async def ask(
        self, question: str, choices: Sequence[str] = (YES, NO), default: str | None = None
    ) -> str:
        self.send(PromptRequest(question, tuple(choices), default))
        answer = await self.inbound.get()
        return normalise_answer(answer, choices, default)


class NullChannel(Channel):
    """Discard output and answer every prompt with a fixed reply."""

    def __init__(self, answer: str = NO) -> None:
        self.answer = answer

    def send(self, message: Message) -> None:
        pass

    async def ask(
        self, question: str, choices: Sequence[str] = (YES, NO), default: str | None = None
    ) -> str:
        return normalise_answer(self.answer, choices, default)
