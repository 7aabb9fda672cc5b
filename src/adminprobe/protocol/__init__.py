"""Admin console protocol: command grammar and message decoding.

This package defines the text commands the harness sends and the
shapes of the replies and notifications it expects back.
"""

from adminprobe.protocol.codec import (
    AddDocNotice,
    DecodeError,
    ExpectationError,
    MessageKind,
    MessageShape,
    ProtocolMessage,
    RmDocNotice,
    decode_adddoc,
    decode_count,
    decode_invalid_auth_token,
    decode_not_authenticated,
    decode_rmdoc,
    expect_count,
    tokenize,
)
from adminprobe.protocol.commands import (
    Action,
    AdminEvent,
    Command,
    make_auth,
    make_load,
    make_query,
    make_subscribe,
)

__all__ = [
    # Decoding
    "tokenize",
    "ProtocolMessage",
    "MessageShape",
    "MessageKind",
    "AddDocNotice",
    "RmDocNotice",
    "DecodeError",
    "ExpectationError",
    "decode_not_authenticated",
    "decode_invalid_auth_token",
    "decode_adddoc",
    "decode_rmdoc",
    "decode_count",
    "expect_count",
    # Commands
    "Action",
    "AdminEvent",
    "Command",
    "make_auth",
    "make_subscribe",
    "make_load",
    "make_query",
]
