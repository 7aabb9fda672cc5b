"""Admin console message decoding.

The admin console speaks loosely structured text: one message per frame,
whitespace separated tokens, the first token naming the message kind.
This module turns raw frames into tokens and checks them against the shape
a test step expects.

Message Shapes (server -> harness):
    NotAuthenticated
    InvalidAuthToken
    adddoc <pid> <basename> <extra...>      (at least 5 tokens)
    rmdoc <pid> <reason>
    active_users_count <n>
    active_docs_count <n>

A shape violation raises DecodeError. A well formed message carrying the
wrong value raises ExpectationError. Both are ValueErrors, and both end a
run as a failed step.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum


# Plain ASCII decimal, optionally negative
_INTEGER = re.compile(r"-?[0-9]+")


class DecodeError(ValueError):
    """Message present but does not match the expected shape."""


class ExpectationError(ValueError):
    """Message is well formed but carries an unexpected value."""


class MessageKind(str, Enum):
    """Kinds of messages sent from the admin console to the harness."""

    NOT_AUTHENTICATED = "NotAuthenticated"
    INVALID_AUTH_TOKEN = "InvalidAuthToken"
    ADDDOC = "adddoc"
    RMDOC = "rmdoc"
    ACTIVE_USERS_COUNT = "active_users_count"
    ACTIVE_DOCS_COUNT = "active_docs_count"


def tokenize(raw: str) -> list[str]:
    """Split a raw message into whitespace separated tokens.

    Empty fields are discarded and every token is trimmed, so
    ``tokenize("  a   b  ") == ["a", "b"]``.
    """
    return raw.split()


@dataclass(frozen=True)
class ProtocolMessage:
    """A raw text message and its tokens.

    Attributes:
        raw: Message text as received
        tokens: Whitespace separated tokens, in order
    """

    raw: str
    tokens: tuple[str, ...]

    @classmethod
    def from_text(cls, raw: str) -> ProtocolMessage:
        """Tokenize a raw message."""
        return cls(raw=raw, tokens=tuple(tokenize(raw)))

    @property
    def kind(self) -> str:
        """Message kind (token 0), empty for a blank message."""
        return self.tokens[0] if self.tokens else ""

    def integer(self, position: int) -> int:
        """Parse the token at ``position`` as a base 10 integer.

        Raises:
            DecodeError: If the token is missing or not an integer
        """
        try:
            token = self.tokens[position]
        except IndexError:
            raise DecodeError(f"{self.kind}: no token at position {position}") from None
        if not _INTEGER.fullmatch(token):
            raise DecodeError(
                f"{self.kind}: expected integer at position {position}, got {token!r}"
            )
        return int(token, 10)

    def __len__(self) -> int:
        return len(self.tokens)


@dataclass(frozen=True)
class MessageShape:
    """Expected shape of a message.

    Attributes:
        kind: Required literal at position 0
        count: Exact token count, None to only check min_count
        min_count: Minimum token count
        literals: Further required literals keyed by position
        integers: Positions that must parse as integers
    """

    kind: str
    count: int | None = None
    min_count: int = 1
    literals: Mapping[int, str] = field(default_factory=dict)
    integers: tuple[int, ...] = ()

    def decode(self, raw: str) -> ProtocolMessage:
        """Tokenize ``raw`` and check it against this shape.

        Raises:
            DecodeError: On the first violated constraint
        """
        message = ProtocolMessage.from_text(raw)
        if self.count is not None and len(message) != self.count:
            raise DecodeError(
                f"{self.kind}: expected {self.count} tokens, got {len(message)} in {raw!r}"
            )
        if len(message) < self.min_count:
            raise DecodeError(
                f"{self.kind}: expected at least {self.min_count} tokens, "
                f"got {len(message)} in {raw!r}"
            )
        if message.kind != self.kind:
            raise DecodeError(f"expected {self.kind!r} message, got {message.kind!r}")
        for position, literal in self.literals.items():
            if message.tokens[position] != literal:
                raise DecodeError(
                    f"{self.kind}: expected {literal!r} at position {position}, "
                    f"got {message.tokens[position]!r}"
                )
        for position in self.integers:
            message.integer(position)
        return message


NOT_AUTHENTICATED = MessageShape(MessageKind.NOT_AUTHENTICATED.value, count=1)
INVALID_AUTH_TOKEN = MessageShape(MessageKind.INVALID_AUTH_TOKEN.value, count=1)
ADDDOC = MessageShape(MessageKind.ADDDOC.value, min_count=5, integers=(1,))
RMDOC = MessageShape(MessageKind.RMDOC.value, count=3, integers=(1,))
ACTIVE_USERS_COUNT = MessageShape(MessageKind.ACTIVE_USERS_COUNT.value, count=2, integers=(1,))
ACTIVE_DOCS_COUNT = MessageShape(MessageKind.ACTIVE_DOCS_COUNT.value, count=2, integers=(1,))

_COUNT_SHAPES: dict[MessageKind, MessageShape] = {
    MessageKind.ACTIVE_USERS_COUNT: ACTIVE_USERS_COUNT,
    MessageKind.ACTIVE_DOCS_COUNT: ACTIVE_DOCS_COUNT,
}


@dataclass(frozen=True)
class AddDocNotice:
    """Decoded ``adddoc`` notification.

    Attributes:
        pid: Process id the server assigned to the document
        basename: Document file name
        extra: Remaining tokens (session id, memory usage, ...)
    """

    pid: int
    basename: str
    extra: tuple[str, ...] = ()


@dataclass(frozen=True)
class RmDocNotice:
    """Decoded ``rmdoc`` notification."""

    pid: int
    reason: str


def decode_not_authenticated(raw: str) -> ProtocolMessage:
    """Decode the reply to a command sent before authenticating."""
    return NOT_AUTHENTICATED.decode(raw)


def decode_invalid_auth_token(raw: str) -> ProtocolMessage:
    """Decode the reply to ``auth`` with a bad token."""
    return INVALID_AUTH_TOKEN.decode(raw)


def decode_adddoc(raw: str, basename: str) -> AddDocNotice:
    """Decode an ``adddoc`` notification for the document ``basename``.

    Raises:
        DecodeError: If the message is not an adddoc for ``basename``
    """
    shape = MessageShape(
        ADDDOC.kind, min_count=ADDDOC.min_count, literals={2: basename}, integers=(1,)
    )
    message = shape.decode(raw)
    return AddDocNotice(
        pid=message.integer(1),
        basename=message.tokens[2],
        extra=message.tokens[3:],
    )


def decode_rmdoc(raw: str) -> RmDocNotice:
    """Decode an ``rmdoc`` notification."""
    message = RMDOC.decode(raw)
    return RmDocNotice(pid=message.integer(1), reason=message.tokens[2])


def decode_count(raw: str, kind: MessageKind | str) -> int:
    """Decode an ``active_users_count`` or ``active_docs_count`` reply.

    Raises:
        ValueError: If ``kind`` is not a counter kind
        DecodeError: If the reply is malformed
    """
    shape = _COUNT_SHAPES.get(MessageKind(kind))
    if shape is None:
        raise ValueError(f"Not a counter message kind: {kind}")
    return shape.decode(raw).integer(1)


def expect_count(raw: str, kind: MessageKind | str, expected: int) -> int:
    """Decode a counter reply and compare it with ``expected``.

    Raises:
        DecodeError: If the reply is malformed
        ExpectationError: If the reported count differs
    """
    actual = decode_count(raw, kind)
    if actual != expected:
        raise ExpectationError(
            f"Incorrect {MessageKind(kind).value}, expected: {expected}, actual: {actual}"
        )
    return actual
