"""Ground-truth bookkeeping of the channels the harness has open.

The registry counts active users (document views with a server-assigned
pid) and active documents (distinct document URLs with at least one such
view). These counters are compared with the values the server reports
for ``active_users_count`` and ``active_docs_count``.

Channel Lifecycle:
    open_document_channel()   assign_pid()        close_channel()
              │                    │                     │
              ▼                    ▼                     ▼
        ┌──────────┐         ┌──────────┐          ┌──────────┐
        │ OPENED   │────────▶│ ACTIVE   │─────────▶│ CLOSED   │
        └──────────┘         └──────────┘          └──────────┘

Only the driver thread mutates the registry.
"""

from __future__ import annotations

import itertools
from collections import Counter
from dataclasses import dataclass
from enum import Enum

import structlog

log = structlog.get_logger()


class ChannelRole(str, Enum):
    """What a channel is connected to."""

    ADMIN = "admin"
    DOCUMENT = "document"


@dataclass
class Channel:
    """One logical connection opened by the harness.

    Attributes:
        id: Registry-local identifier
        role: Admin or document channel
        doc_url: Document URL for document channels
        pid: Process id learned from the adddoc notification
        closed: Whether close_channel() has been called
    """

    id: int
    role: ChannelRole
    doc_url: str | None = None
    pid: int | None = None
    closed: bool = False

    @property
    def active(self) -> bool:
        """Whether this channel currently counts as a user."""
        return self.role == ChannelRole.DOCUMENT and self.pid is not None and not self.closed


class ConnectionRegistry:
    """Expected active user and document counts.

    Example:
        >>> registry = ConnectionRegistry()
        >>> view = registry.open_document_channel("file:///tmp/hello.odt")
        >>> registry.assign_pid(view, 4242)
        >>> registry.active_user_count, registry.active_document_count
        (1, 1)
    """

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._channels: list[Channel] = []
        self._views_per_url: Counter[str] = Counter()
        self._users = 0
        self._documents = 0
        self._admin: Channel | None = None

    @property
    def active_user_count(self) -> int:
        """Expected ``active_users_count``."""
        return self._users

    @property
    def active_document_count(self) -> int:
        """Expected ``active_docs_count``."""
        return self._documents

    @property
    def admin_channel(self) -> Channel | None:
        """Most recently opened admin channel."""
        return self._admin

    @property
    def channels(self) -> list[Channel]:
        """All channels in opening order, closed ones included."""
        return list(self._channels)

    def reset(self) -> None:
        """Forget every channel and zero the counters."""
        self._channels.clear()
        self._views_per_url.clear()
        self._users = 0
        self._documents = 0
        self._admin = None
        log.debug("Registry reset")

    def open_admin_channel(self) -> Channel:
        """Record a new admin channel. Admin channels are not counted."""
        if self._admin is not None:
            self._admin.closed = True
        channel = Channel(id=next(self._ids), role=ChannelRole.ADMIN)
        self._channels.append(channel)
        self._admin = channel
        return channel

    def open_document_channel(self, doc_url: str) -> Channel:
        """Record a new document channel that has no pid yet."""
        channel = Channel(id=next(self._ids), role=ChannelRole.DOCUMENT, doc_url=doc_url)
        self._channels.append(channel)
        log.debug("Document channel opened", channel=channel.id, url=doc_url)
        return channel

    def assign_pid(self, channel: Channel, pid: int) -> None:
        """Attach the server-assigned pid and count the channel as a user.

        The first active channel for a URL also counts as a document.

        Raises:
            ValueError: If the channel is not an open, pid-less document channel
        """
        if channel.role != ChannelRole.DOCUMENT:
            raise ValueError(f"Channel {channel.id} is not a document channel")
        if channel.closed:
            raise ValueError(f"Channel {channel.id} is closed")
        if channel.pid is not None:
            raise ValueError(f"Channel {channel.id} already has pid {channel.pid}")

        assert channel.doc_url is not None
        channel.pid = pid
        self._users += 1
        self._views_per_url[channel.doc_url] += 1
        if self._views_per_url[channel.doc_url] == 1:
            self._documents += 1
        log.debug(
            "Pid assigned",
            channel=channel.id,
            pid=pid,
            users=self._users,
            documents=self._documents,
        )

    def close_channel(self, channel: Channel) -> None:
        """Mark a channel closed and update the counters.

        Closing the last active channel of a URL removes the document.
        Closing an already closed channel does nothing.
        """
        if channel.closed:
            return
        was_active = channel.active
        channel.closed = True
        if channel is self._admin:
            self._admin = None
        if not was_active:
            return

        assert channel.doc_url is not None
        self._users -= 1
        self._views_per_url[channel.doc_url] -= 1
        if self._views_per_url[channel.doc_url] == 0:
            del self._views_per_url[channel.doc_url]
            self._documents -= 1
        log.debug(
            "Document channel closed",
            channel=channel.id,
            pid=channel.pid,
            users=self._users,
            documents=self._documents,
        )

    def channels_with_pid(self, pid: int) -> list[Channel]:
        """Active channels carrying ``pid``.

        Views of the same document share one server process, so more than
        one channel can match.
        """
        return [c for c in self._channels if c.active and c.pid == pid]
