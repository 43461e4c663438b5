"""Session state shared by the message handlers: servers, channels and messages."""

from __future__ import annotations

import enum
import string
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, NoReturn

FROM_INFO = "--"
FROM_ERROR = "-!!-"
FROM_UNKNOWN = "-??-"
FROM_JOIN = ">"
FROM_PART = "<"
FROM_QUIT = "<"

_UPPER = string.ascii_uppercase
_LOWER = string.ascii_lowercase

_CASEMAPS = {
    "ascii": str.maketrans(_UPPER, _LOWER),
    "strict-rfc1459": str.maketrans(_UPPER + "[]\\", _LOWER + "{}|"),
    "rfc1459": str.maketrans(_UPPER + "[]\\~", _LOWER + "{}|^"),
}


def _casefold(text: str, casemapping: str) -> str:
    """Fold a nick or channel name according to an IRC casemapping."""
    return text.translate(_CASEMAPS.get(casemapping, _CASEMAPS["rfc1459"]))


def _now() -> datetime:
    return datetime.now().astimezone()


class HandlerError(Exception):
    """A message could not be handled; the reason was written to a buffer."""


class ChannelType(enum.Enum):
    SERVER = "server"
    CHANNEL = "channel"
    PRIVMSG = "privmsg"


class LineKind(enum.Enum):
    DEFAULT = "default"
    CHAT = "chat"
    PINGED = "pinged"
    JOIN = "join"
    PART = "part"
    QUIT = "quit"
    NICK = "nick"


@dataclass(frozen=True)
class Line:
    """One line written to a channel buffer."""

    sender: str
    text: str
    kind: LineKind = LineKind.DEFAULT


@dataclass
class IrcMessage:
    """A parsed IRC message whose parameters are consumed one at a time."""

    command: str
    params: str = ""
    sender: str | None = None
    host: str | None = None
    tags: str | None = None

    def next_param(self) -> str | None:
        """Consume and return the next parameter, or None when there is none."""
        rest = self.params.lstrip(" ")
        if not rest:
            self.params = ""
            return None
        if rest.startswith(":"):
            self.params = ""
            return rest[1:]
        token, _, remainder = rest.partition(" ")
        self.params = remainder
        return token

    def split(self) -> tuple[str | None, str | None]:
        """Consume the remaining parameters as (middle params, trailing)."""
        rest = self.params.lstrip(" ")
        self.params = ""
        if rest.startswith(":"):
            return None, rest[1:]
        index = rest.find(" :")
        if index == -1:
            return rest.strip(" ") or None, None
        return rest[:index].strip(" ") or None, rest[index + 2:]


def parse_message(line: str) -> IrcMessage:
    """Parse a raw IRC line into an IrcMessage."""
    text = line.rstrip("\r\n").lstrip(" ")
    tags = None
    if text.startswith("@"):
        tags, _, text = text[1:].partition(" ")
        text = text.lstrip(" ")
    sender = host = None
    if text.startswith(":"):
        prefix, _, text = text[1:].partition(" ")
        name, sep, host_part = prefix.partition("!")
        sender = name or None
        host = host_part if sep else None
        text = text.lstrip(" ")
    command, _, params = text.partition(" ")
    if not command:
        raise ValueError("message has no command")
    return IrcMessage(command=command, params=params, sender=sender, host=host, tags=tags)


@dataclass(eq=False)
class Channel:
    """A buffer of lines: a server buffer, a channel or a private conversation."""

    name: str
    type: ChannelType = ChannelType.CHANNEL
    server: Server | None = field(default=None, repr=False)
    lines: list[Line] = field(default_factory=list, repr=False)
    joined: bool = False
    parted: bool = False
    key: str | None = None
    pinged: bool = False
    users: dict[str, Any] = field(default_factory=dict, repr=False)
    modes: Any = None
    mode_str: str = ""

    def add_line(self, sender: str, text: str, kind: LineKind = LineKind.DEFAULT) -> Line:
        """Append a line to the buffer and return it."""
        line = Line(sender, text, kind)
        self.lines.append(line)
        return line

    def part(self) -> None:
        """Mark the channel as parted and forget its users."""
        self.parted = True
        self.joined = False
        self.users.clear()


@dataclass(eq=False)
class Server:
    """One server connection with its buffers and outgoing messages."""

    host: str
    port: str = "6667"
    username: str = ""
    realname: str = ""
    nick: str = ""
    nicks: list[str] = field(default_factory=list)
    casemapping: str = "rfc1459"
    registered: bool = False
    quitting: bool = False
    mode: str | None = None
    caps: set[str] = field(default_factory=set)
    channels: list[Channel] = field(default_factory=list, repr=False)
    sent: list[str] = field(default_factory=list, repr=False)
    transport: Callable[[str], None] | None = field(default=None, repr=False)
    clock: Callable[[], datetime] = field(default=_now, repr=False)
    current: Channel | None = field(default=None, repr=False)
    usermodes: Any = None
    mode_str: str = ""
    mode_config: Any = None
    channel: Channel = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.channel = Channel(self.host, ChannelType.SERVER, server=self)

    def get_channel(self, name: str) -> Channel | None:
        """Find a channel by name under the server's casemapping."""
        folded = _casefold(name, self.casemapping)
        return next(
            (c for c in self.channels if _casefold(c.name, self.casemapping) == folded),
            None,
        )

    def add_channel(self, channel: Channel) -> Channel:
        """Attach a channel to this server and return it."""
        channel.server = self
        self.channels.append(channel)
        return channel

    def info(self, text: str) -> None:
        self.channel.add_line(FROM_INFO, text)

    def error(self, text: str) -> None:
        self.channel.add_line(FROM_ERROR, text)

    def fail(self, text: str) -> NoReturn:
        """Report an error on the server buffer and raise HandlerError."""
        self.error(text)
        raise HandlerError(text)

    def send(self, text: str) -> None:
        """Send one message to the server."""
        if self.transport is not None:
            try:
                self.transport(text)
            except OSError as exc:
                self.fail(f"Send fail: {exc}")
        self.sent.append(text)

    def set_nick(self, nick: str) -> None:
        self.nick = nick