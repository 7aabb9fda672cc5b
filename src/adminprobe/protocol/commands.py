"""Admin console commands sent from the harness to the server.

One command per text frame: a literal followed by space separated
arguments, nothing else.

Grammar:
    auth <token>
    subscribe <eventName>        (eventName in {adddoc, rmdoc})
    load url=<documentURL>       (sent on a document channel)
    active_users_count
    active_docs_count
    documents
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Action(str, Enum):
    """Command literals."""

    AUTH = "auth"
    SUBSCRIBE = "subscribe"
    LOAD = "load"
    ACTIVE_USERS_COUNT = "active_users_count"
    ACTIVE_DOCS_COUNT = "active_docs_count"
    DOCUMENTS = "documents"


class AdminEvent(str, Enum):
    """Notifications an admin channel can subscribe to."""

    ADDDOC = "adddoc"
    RMDOC = "rmdoc"


@dataclass(frozen=True)
class Command:
    """A single admin console command.

    Attributes:
        action: Command literal
        args: Arguments, already rendered as tokens
    """

    action: Action
    args: tuple[str, ...] = ()

    def to_text(self) -> str:
        """Render the command as one text frame."""
        for arg in self.args:
            if not arg or any(c.isspace() for c in arg):
                raise ValueError(f"Invalid argument for {self.action.value}: {arg!r}")
        return " ".join((self.action.value, *self.args))


# Factory functions for the commands the harness sends


def make_auth(credential: str) -> Command:
    """Create ``auth <credential>``, e.g. ``auth jwt=<token>``."""
    return Command(Action.AUTH, (credential,))


def make_subscribe(event: AdminEvent | str) -> Command:
    """Create ``subscribe <event>``.

    Raises:
        ValueError: If ``event`` is not a known notification
    """
    return Command(Action.SUBSCRIBE, (AdminEvent(event).value,))


def make_load(document_url: str) -> Command:
    """Create ``load url=<document_url>``."""
    return Command(Action.LOAD, (f"url={document_url}",))


def make_query(action: Action) -> Command:
    """Create an argument-less query (counters, ``documents``).

    Raises:
        ValueError: If ``action`` takes arguments
    """
    if action not in (Action.ACTIVE_USERS_COUNT, Action.ACTIVE_DOCS_COUNT, Action.DOCUMENTS):
        raise ValueError(f"Not a query action: {action.value}")
    return Command(action)
