"""Outgoing traffic typed by the user: plain messages and slash commands."""

from __future__ import annotations

import string
from datetime import datetime, timedelta, timezone
from typing import Callable, NoReturn, Optional

from .ctcp import CLIENT_VERSION, _strsep, _trim
from .session import FROM_ERROR, Channel, ChannelType, HandlerError, LineKind, Server

DEFAULT_PART_MESSAGE = CLIENT_VERSION
CAP_VERSION = "302"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_NICK_SPECIAL = frozenset("[]\\`_^{|}")
_NICK_FIRST = frozenset(string.ascii_letters) | _NICK_SPECIAL
_NICK_REST = _NICK_FIRST | frozenset(string.digits) | {"-"}

_Command = Callable[[Server, Channel, Optional[str]], None]


def _fail(channel: Channel, text: str) -> NoReturn:
    channel.add_line(FROM_ERROR, text)
    raise HandlerError(text)


def _is_nick(name: str) -> bool:
    return bool(name) and name[0] in _NICK_FIRST and set(name[1:]) <= _NICK_REST


def _target(channel: Channel, args: str | None) -> str | None:
    target, _ = _strsep(args)
    if target:
        return target
    if channel.type is ChannelType.PRIVMSG:
        return channel.name
    return None


def _require_channel(channel: Channel) -> None:
    if channel.type is not ChannelType.CHANNEL:
        _fail(channel, "This is not a channel")


def _away(server: Server, channel: Channel, args: str | None) -> None:
    args = _trim(args)
    server.send(f"AWAY :{args}" if args else "AWAY")


def _notice(server: Server, channel: Channel, args: str | None) -> None:
    target, text = _strsep(args)
    if not target or not text:
        _fail(channel, "Usage: /notice <target> <message>")
    server.send(f"NOTICE {target} :{text}")


def _part(server: Server, channel: Channel, args: str | None) -> None:
    _require_channel(channel)
    server.send(f"PART {channel.name} :{_trim(args) or DEFAULT_PART_MESSAGE}")


def _privmsg(server: Server, channel: Channel, args: str | None) -> None:
    target, text = _strsep(args)
    if not target or not text:
        _fail(channel, "Usage: /privmsg <target> <message>")
    for name in target.split(","):
        destination = server.get_channel(name)
        if destination is None:
            kind = ChannelType.PRIVMSG if _is_nick(name) else ChannelType.CHANNEL
            destination = server.add_channel(Channel(name, kind))
        destination.add_line(server.nick, text, LineKind.CHAT)
    server.send(f"PRIVMSG {target} :{text}")


def _quit(server: Server, channel: Channel, args: str | None) -> None:
    server.quitting = True
    server.send(f"QUIT :{_trim(args) or DEFAULT_PART_MESSAGE}")


def _topic(server: Server, channel: Channel, args: str | None) -> None:
    _require_channel(channel)
    args = _trim(args)
    server.send(f"TOPIC {channel.name} :{args}" if args else f"TOPIC {channel.name}")


def _topic_unset(server: Server, channel: Channel, args: str | None) -> None:
    _require_channel(channel)
    if _trim(args):
        _fail(channel, "Usage: /topic-unset")
    server.send(f"TOPIC {channel.name} :")


def _ctcp_action(server: Server, channel: Channel, args: str | None) -> None:
    target, rest = _strsep(args)
    text = _trim(rest)
    if not target or not text:
        _fail(channel, "Usage: /ctcp-action <target> <text>")
    server.send(f"PRIVMSG {target} :\x01ACTION {text}\x01")


def _ctcp_query(name: str) -> _Command:
    def handler(server: Server, channel: Channel, args: str | None) -> None:
        target = _target(channel, args)
        if target is None:
            _fail(channel, f"Usage: /ctcp-{name.lower()} <target>")
        server.send(f"PRIVMSG {target} :\x01{name}\x01")

    return handler


def _ctcp_ping(server: Server, channel: Channel, args: str | None) -> None:
    target = _target(channel, args)
    if target is None:
        _fail(channel, "Usage: /ctcp-ping <target>")
    now = server.clock()
    if now.tzinfo is None:
        now = now.astimezone()
    seconds, micros = divmod((now - _EPOCH) // timedelta(microseconds=1), 1_000_000)
    server.send(f"PRIVMSG {target} :\x01PING {seconds} {micros}\x01")


def _cap_ls(server: Server, channel: Channel, args: str | None) -> None:
    if _trim(args):
        _fail(channel, "Usage: /cap-ls")
    server.send(f"CAP LS {CAP_VERSION}")


def _cap_list(server: Server, channel: Channel, args: str | None) -> None:
    if _trim(args):
        _fail(channel, "Usage: /cap-list")
    server.send("CAP LIST")


_COMMANDS: dict[str, _Command] = {
    "AWAY": _away,
    "NOTICE": _notice,
    "PART": _part,
    "PRIVMSG": _privmsg,
    "QUIT": _quit,
    "TOPIC": _topic,
    "TOPIC-UNSET": _topic_unset,
    "CTCP-ACTION": _ctcp_action,
    "CTCP-CLIENTINFO": _ctcp_query("CLIENTINFO"),
    "CTCP-FINGER": _ctcp_query("FINGER"),
    "CTCP-PING": _ctcp_ping,
    "CTCP-SOURCE": _ctcp_query("SOURCE"),
    "CTCP-TIME": _ctcp_query("TIME"),
    "CTCP-USERINFO": _ctcp_query("USERINFO"),
    "CTCP-VERSION": _ctcp_query("VERSION"),
    "CAP-LS": _cap_ls,
    "CAP-LIST": _cap_list,
}


def send_command(server: Server | None, channel: Channel, text: str) -> None:
    """Run a slash command (given without its '/'); raises HandlerError on failure."""
    if server is None:
        _fail(channel, "This is not a server")
    if not server.registered:
        _fail(channel, "Not registered with server")
    command, rest = (None, None) if text.startswith(" ") else _strsep(text)
    if command is None:
        _fail(channel, "Messages beginning with '/' require a command")
    command = command.upper()
    args = _trim(rest)
    handler = _COMMANDS.get(command)
    if handler is not None:
        handler(server, channel, args)
        return
    server.send(f"{command} {args}" if args else command)


def send_message(server: Server | None, channel: Channel, text: str) -> None:
    """Send a chat message to a channel or private conversation."""
    if server is None:
        _fail(channel, "This is not a server")
    if not server.registered:
        _fail(channel, "Not registered with server")
    if channel.type not in (ChannelType.CHANNEL, ChannelType.PRIVMSG):
        _fail(channel, "This is not a channel")
    if channel.type is ChannelType.CHANNEL and (not channel.joined or channel.parted):
        _fail(channel, "Not on channel")
    if not text:
        _fail(channel, "Message is empty")
    server.send(f"PRIVMSG {channel.name} :{text}")
    channel.add_line(server.nick, text, LineKind.CHAT)