"""Handling of CTCP requests (in PRIVMSG) and responses (in NOTICE)."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, NamedTuple, Optional

from .session import Channel, ChannelType, Server, _casefold

CLIENTINFO = "ACTION CLIENTINFO FINGER PING SOURCE TIME USERINFO VERSION"
CLIENT_VERSION = "ircflow v0.1.7"
SOURCE_INFO = "https://example.com/ircflow"

_ULONG_MAX = 2**64 - 1
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_DIGITS = frozenset("0123456789")


def is_ctcp(message: str) -> bool:
    return message.startswith("\x01")


def _strsep(text: str | None) -> tuple[str | None, str | None]:
    if text is None:
        return None, None
    stripped = text.lstrip(" ")
    if not stripped:
        return None, ""
    token, _, rest = stripped.partition(" ")
    return token, rest


def _trim(text: str | None) -> str | None:
    if text is None:
        return None
    return text.strip(" ") or None


def _parse(server: Server, sender: str | None, message: str) -> tuple[str, str, str | None]:
    if sender is None:
        server.fail("Received CTCP from unknown sender")
    if not is_ctcp(message):
        server.fail(f"Received malformed CTCP from {sender}")
    body = message[1:].split("\x01", 1)[0]
    command, rest = _strsep(body)
    if command is None:
        server.fail(f"Received empty CTCP from {sender}")
    return sender, command.upper(), _trim(rest)


def _log_request(server: Server, name: str, sender: str, args: str | None) -> None:
    if args:
        server.info(f"CTCP {name} from {sender} ({args})")
    else:
        server.info(f"CTCP {name} from {sender}")


def _notice(server: Server, sender: str, body: str) -> None:
    server.send(f"NOTICE {sender} :\x01{body}\x01")


def _request_action(server: Server, sender: str, target: str | None, args: str | None) -> None:
    if target is None:
        server.fail("CTCP ACTION: target is NULL")
    if _casefold(target, server.casemapping) == _casefold(server.nick, server.casemapping):
        channel = server.get_channel(sender)
        if channel is None:
            channel = server.add_channel(Channel(sender, ChannelType.PRIVMSG))
            channel.pinged = True
    else:
        channel = server.get_channel(target)
        if channel is None:
            server.fail(f"CTCP ACTION: target '{target}' not found")
    channel.add_line("*", f"{sender} {args}" if args else sender)


def _request_clientinfo(server, sender, target, args):
    _log_request(server, "CLIENTINFO", sender, args)
    _notice(server, sender, f"CLIENTINFO {CLIENTINFO}")


def _request_finger(server, sender, target, args):
    _log_request(server, "FINGER", sender, args)
    _notice(server, sender, f"FINGER {CLIENT_VERSION}")


def _request_ping(server, sender, target, args):
    _log_request(server, "PING", sender, args)
    _notice(server, sender, f"PING {args}" if args else "PING")


def _request_source(server, sender, target, args):
    _log_request(server, "SOURCE", sender, args)
    _notice(server, sender, f"SOURCE {SOURCE_INFO}")


def _request_time(server, sender, target, args):
    _log_request(server, "TIME", sender, args)
    stamp = server.clock().strftime("%Y-%m-%dT%H:%M:%S")
    _notice(server, sender, f"TIME {stamp}")


def _request_userinfo(server, sender, target, args):
    _log_request(server, "USERINFO", sender, args)
    _notice(server, sender, f"USERINFO {server.nick} ({server.realname})")


def _request_version(server, sender, target, args):
    _log_request(server, "VERSION", sender, args)
    _notice(server, sender, f"VERSION {CLIENT_VERSION}")


def _text_response(name: str) -> Callable[[Server, str, Optional[str], Optional[str]], None]:
    def handler(server, sender, target, args):
        if not args:
            server.fail(f"CTCP {name} response from {sender}: empty message")
        server.info(f"CTCP {name} response from {sender}: {args}")

    return handler


def _response_ping(server: Server, sender: str, target: str | None, args: str | None) -> None:
    prefix = f"CTCP PING response from {sender}"
    sec, rest = _strsep(args)
    if sec is None:
        server.fail(f"{prefix}: sec is NULL")
    usec, _ = _strsep(rest)
    if usec is None:
        server.fail(f"{prefix}: usec is NULL")
    if not set(sec) <= _DIGITS:
        server.fail(f"{prefix}: sec is invalid")
    if not set(usec) <= _DIGITS:
        server.fail(f"{prefix}: usec is invalid")

    now = server.clock()
    if now.tzinfo is None:
        now = now.astimezone()
    t2_sec, t2_usec = divmod((now - _EPOCH) // timedelta(microseconds=1), 1_000_000)

    t1_sec, t1_usec = int(sec), int(usec)
    if t1_sec > _ULONG_MAX or t1_usec > _ULONG_MAX:
        server.fail(f"{prefix}: failed to parse timestamp")
    if t1_usec > 999_999 or t1_sec > t2_sec or (t1_sec == t2_sec and t1_usec > t2_usec):
        server.fail(f"{prefix}: invalid timestamp")

    elapsed = (t2_usec + 1_000_000 * t2_sec) - (t1_usec + 1_000_000 * t1_sec)
    whole, fraction = divmod(elapsed, 1_000_000)
    server.info(f"{prefix}: {whole}.{fraction}s")


class _Handler(NamedTuple):
    request: Callable[[Server, str, Optional[str], Optional[str]], None]
    response: Optional[Callable[[Server, str, Optional[str], Optional[str]], None]]


_HANDLERS = {
    "ACTION": _Handler(_request_action, None),
    "CLIENTINFO": _Handler(_request_clientinfo, _text_response("CLIENTINFO")),
    "FINGER": _Handler(_request_finger, _text_response("FINGER")),
    "PING": _Handler(_request_ping, _response_ping),
    "SOURCE": _Handler(_request_source, _text_response("SOURCE")),
    "TIME": _Handler(_request_time, _text_response("TIME")),
    "USERINFO": _Handler(_request_userinfo, _text_response("USERINFO")),
    "VERSION": _Handler(_request_version, _text_response("VERSION")),
}


def ctcp_request(server: Server, sender: str | None, target: str | None, message: str) -> None:
    """Handle a CTCP request; raises HandlerError on failure."""
    sender, command, args = _parse(server, sender, message)
    handler = _HANDLERS.get(command)
    if handler is None:
        server.fail(f"Received unsupported CTCP request '{command}' from {sender}")
    handler.request(server, sender, target, args)


def ctcp_response(server: Server, sender: str | None, target: str | None, message: str) -> None:
    """Handle a CTCP response; raises HandlerError on failure."""
    sender, command, args = _parse(server, sender, message)
    handler = _HANDLERS.get(command)
    if handler is None or handler.response is None:
        server.fail(f"Received unsupported CTCP response '{command}' from {sender}")
    handler.response(server, sender, target, args)