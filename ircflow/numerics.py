"""Handling of numeric replies received from the server."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable

from .modes import _chanmodes, _config, ModeSet, recv_chanmodes, recv_usermodes
from .session import (
    FROM_ERROR,
    FROM_INFO,
    FROM_UNKNOWN,
    ChannelType,
    HandlerError,
    IrcMessage,
    Server,
    _casefold,
)

FILTER_ALWAYS = 2**32 - 1

_ULONG_MAX = 2**64 - 1
_EPOCH = datetime(1970, 1, 1)
_SPACE = " \t\n\r\f\v"

_Numeric = Callable[[Server, IrcMessage], None]


def threshold_filtered(threshold: int, count: int) -> bool:
    """Whether a message should be hidden for a channel with `count` users."""
    if threshold == FILTER_ALWAYS:
        return True
    if threshold == 0:
        return False
    return threshold < count


def _generic(server: Server, message: IrcMessage, command: str | None, sender: str) -> None:
    """Write a message as '[command] [params] ~ trailing' to the server buffer."""
    if command is None and not message.params.strip(" "):
        raise HandlerError("message has no parameters")
    params, trailing = message.split()
    text = ""
    if command:
        text += f"[{command}]"
    if params:
        text += (" " if command else "") + f"[{params}]"
    if trailing is not None:
        if command or params:
            text += " ~ "
        text += trailing
    server.channel.add_line(sender, text)


def _generic_error(server: Server, message: IrcMessage) -> None:
    _generic(server, message, None, FROM_ERROR)


def _generic_info(server: Server, message: IrcMessage) -> None:
    _generic(server, message, None, FROM_INFO)


def _generic_unknown(server: Server, message: IrcMessage) -> None:
    _generic(server, message, message.command, FROM_UNKNOWN)


def _strtoul(text: str) -> int:
    """Parse an unsigned long the way strtoul does with base 0."""
    rest = text.lstrip(_SPACE)
    negative = False
    if rest[:1] in ("+", "-"):
        negative = rest[0] == "-"
        rest = rest[1:]
    if rest[:2].lower() == "0x" and rest[2:3] and rest[2] in "0123456789abcdefABCDEF":
        base, rest, valid = 16, rest[2:], "0123456789abcdefABCDEF"
    elif rest.startswith("0"):
        base, valid = 8, "01234567"
    else:
        base, valid = 10, "0123456789"
    digits = ""
    for char in rest:
        if char not in valid:
            break
        digits += char
    value = int(digits, base) if digits else 0
    if value > _ULONG_MAX:
        raise OverflowError("Numerical result out of range")
    return (-value) % 2**64 if negative else value


def _timestamp(server: Server, name: str, text: str) -> str:
    try:
        value = _strtoul(text)
    except OverflowError as exc:
        server.fail(f"{name}: strtoul error: {exc}")
    if value >= 2**63:
        value -= 2**64
    try:
        moment = _EPOCH + timedelta(seconds=value)
    except OverflowError:
        server.fail(f"{name}: strftime error")
    return moment.isoformat(timespec="seconds")


def _require(server: Server, message: IrcMessage, error: str) -> str:
    value = message.next_param()
    if value is None:
        server.fail(error)
    return value


def _numeric_001(server: Server, message: IrcMessage) -> None:
    """001 :<Welcome message>"""
    server.registered = True
    _, trailing = message.split()
    if trailing is not None:
        server.info(trailing)
    server.info(f"You are known as {server.nick}")
    if server.mode:
        server.send(f"MODE {server.nick} +{server.mode}")
    for channel in server.channels:
        if channel.type is ChannelType.CHANNEL and not channel.parted:
            key = f" {channel.key}" if channel.key else ""
            server.send(f"JOIN {channel.name}{key}")


def _numeric_004(server: Server, message: IrcMessage) -> None:
    """004 1*<params> [:message]"""
    params, trailing = message.split()
    params = params or ""
    server.info(f"{params} ~ {trailing}" if trailing is not None else params)


def _numeric_005(server: Server, message: IrcMessage) -> None:
    """005 1*<params> [:message]"""
    params, trailing = message.split()
    params = params or ""
    if trailing is not None:
        server.info(f"{params} ~ {trailing}")
    else:
        server.info(f"{params} ~ are supported by this server")


def _numeric_221(server: Server, message: IrcMessage) -> None:
    """221 <modestring>"""
    recv_usermodes(server, message)


def _numeric_324(server: Server, message: IrcMessage) -> None:
    """324 <channel> 1*[<modestring> [<mode arguments>]]"""
    name = _require(server, message, "RPL_CHANNELMODEIS: channel is null")
    channel = server.get_channel(name)
    if channel is None:
        server.fail(f"RPL_CHANNELMODEIS: channel '{name}' not found")
    channel.key = None
    recv_chanmodes(server, channel, message)


def _numeric_328(server: Server, message: IrcMessage) -> None:
    """328 <channel> <url>"""
    name = _require(server, message, "RPL_CHANNEL_URL: channel is null")
    url = _require(server, message, "RPL_CHANNEL_URL: url is null")
    channel = server.get_channel(name)
    if channel is None:
        server.fail(f"RPL_CHANNEL_URL: channel '{name}' not found")
    channel.add_line(FROM_INFO, f'URL for {name} is: "{url}"')


def _numeric_329(server: Server, message: IrcMessage) -> None:
    """329 <channel> <time>"""
    name = _require(server, message, "RPL_CREATIONTIME: channel is null")
    time_str = _require(server, message, "RPL_CREATIONTIME: time is null")
    channel = server.get_channel(name)
    if channel is None:
        server.fail(f"RPL_CREATIONTIME: channel '{name}' not found")
    stamp = _timestamp(server, "RPL_CREATIONTIME", time_str)
    channel.add_line(FROM_INFO, f"Channel created {stamp}")


def _numeric_332(server: Server, message: IrcMessage) -> None:
    """332 <channel> :<topic>"""
    name = _require(server, message, "RPL_TOPIC: channel is null")
    topic = _require(server, message, "RPL_TOPIC: topic is null")
    channel = server.get_channel(name)
    if channel is None:
        server.fail(f"RPL_TOPIC: channel '{name}' not found")
    channel.add_line(FROM_INFO, f'Topic for {name} is "{topic}"')


def _numeric_333(server: Server, message: IrcMessage) -> None:
    """333 <channel> <nick> <time>"""
    name = _require(server, message, "RPL_TOPICWHOTIME: channel is null")
    nick = _require(server, message, "RPL_TOPICWHOTIME: nick is null")
    time_str = _require(server, message, "RPL_TOPICWHOTIME: time is null")
    channel = server.get_channel(name)
    if channel is None:
        server.fail(f"RPL_TOPICWHOTIME: channel '{name}' not found")
    stamp = _timestamp(server, "RPL_TOPICWHOTIME", time_str)
    channel.add_line(FROM_INFO, f"Topic set by {nick}, {stamp}")


def _numeric_353(server: Server, message: IrcMessage) -> None:
    """353 <type> <channel> 1*(<modes><nick>)"""
    kind = _require(server, message, "RPL_NAMEREPLY: type is null")
    name = _require(server, message, "RPL_NAMEREPLY: channel is null")
    nicks = _require(server, message, "RPL_NAMEREPLY: nicks is null")
    channel = server.get_channel(name)
    if channel is None:
        server.fail(f"RPL_NAMEREPLY: channel '{name}' not found")

    symbol = kind[:1]
    if symbol not in ("@", "*", "="):
        server.fail(f"RPL_NAMEREPLY: invalid channel type: '{symbol}'")

    cfg = _config(server)
    modes = _chanmodes(server, channel)
    secret_flag = {"@": "s", "*": "p"}.get(symbol)
    if secret_flag is not None:
        try:
            modes.apply(secret_flag, True)
        except ValueError:
            pass
    modes.prefix = symbol

    for token in nicks.split():
        prefixes = ModeSet(frozenset(cfg.prefix_flags))
        nick = token
        while nick and nick[0] in cfg.prefix_symbols:
            flag = cfg.prefix_flags[cfg.prefix_symbols.index(nick[0])]
            try:
                prefixes.apply(flag, True)
            except ValueError:
                pass
            nick = nick[1:]
        if not nick:
            server.fail(f"RPL_NAMEREPLY: invalid nick: '{token}'")
        folded = _casefold(nick, server.casemapping)
        if any(_casefold(n, server.casemapping) == folded for n in channel.users):
            server.fail(f"RPL_NAMEREPLY: duplicate nick: '{nick}'")
        channel.users[nick] = prefixes


def _no_such(label: str, default: str) -> _Numeric:
    def handler(server: Server, message: IrcMessage) -> None:
        name = _require(server, message, f"{label}: {'nick' if label == 'ERR_NOSUCHNICK' else 'chan'} is null")
        channel = server.get_channel(name) or server.channel
        text = message.next_param()
        channel.add_line(FROM_ERROR, f"[{name}] {text}" if text else f"[{name}] {default}")

    return handler


def _next_nick(server: Server) -> str:
    if server.nick in server.nicks:
        later = server.nicks[server.nicks.index(server.nick) + 1:]
        if later:
            return later[0]
    return f"{server.nick}_"


def _numeric_433(server: Server, message: IrcMessage) -> None:
    """433 <nick> :Nickname is already in use"""
    nick = _require(server, message, "ERR_NICKNAMEINUSE: nick is null")
    server.error(f"Nick '{nick}' in use")
    if nick == server.nick:
        server.set_nick(_next_nick(server))
        server.error(f"Trying again with '{server.nick}'")
        server.send(f"NICK {server.nick}")


_INFO = (
    2, 3, *range(200, 219), 234, *range(240, 248), *range(250, 260), 262, 263,
    265, 266, 301, 302, 303, 305, 306, 311, 312, 313, 314, 317, 319, 322, 325,
    341, 346, 348, 351, 352, 364, 367, 371, 372, 381, 391, 396, 704, 705,
)
_IGNORED = frozenset((
    219, 235, 315, 318, 323, 331, 347, 349, 365, 366, 368, 369, 374, 375, 376, 706,
))
_ERROR = (
    402, *range(404, 417), 421, 422, 423, 431, 432, 436, 437, 441, 442, 443, 451,
    *range(461, 468), *range(471, 479), *range(481, 486), 491, 501, 502,
)

_NUMERICS: dict[int, _Numeric] = {
    **{code: _generic_info for code in _INFO},
    **{code: _generic_error for code in _ERROR},
    1: _numeric_001,
    4: _numeric_004,
    5: _numeric_005,
    221: _numeric_221,
    324: _numeric_324,
    328: _numeric_328,
    329: _numeric_329,
    332: _numeric_332,
    333: _numeric_333,
    353: _numeric_353,
    401: _no_such("ERR_NOSUCHNICK", "No such nick/channel"),
    403: _no_such("ERR_NOSUCHCHANNEL", "No such channel"),
    433: _numeric_433,
}


def recv_numeric(server: Server, message: IrcMessage) -> None:
    """Handle ':server <code> <target> [args]'; raises HandlerError on failure."""
    command = message.command
    code = int(command) if len(command) == 3 and command.isascii() and command.isdigit() else 0
    if not code:
        server.fail(f"NUMERIC: '{command}' invalid")
    target = message.next_param()
    if target is None:
        server.fail("NUMERIC: target is null")
    if target != server.nick and target != "*":
        server.fail(f"NUMERIC: target '{target}' is invalid")
    if code in _IGNORED:
        return
    _NUMERICS.get(code, _generic_unknown)(server, message)