"""Dispatch of messages received from the server to their handlers."""

from __future__ import annotations

import string
from typing import Callable

from .ctcp import ctcp_request, ctcp_response, is_ctcp
from .modes import ModeSet, _config, recv_chanmodes, recv_usermodes
from .numerics import _generic_unknown, recv_numeric, threshold_filtered
from .session import (
    FROM_INFO,
    FROM_JOIN,
    FROM_PART,
    FROM_QUIT,
    Channel,
    ChannelType,
    IrcMessage,
    LineKind,
    Server,
    _casefold,
    parse_message,
)

# Per-event user count above which join/part/quit style noise is hidden.
# 0 never filters; numerics.FILTER_ALWAYS always filters.
FILTER_THRESHOLDS: dict[str, int] = {
    "account": 0,
    "away": 0,
    "chghost": 0,
    "join": 0,
    "nick": 0,
    "part": 0,
    "quit": 0,
}

_NICK_CHARS = frozenset(string.ascii_letters + string.digits + "[]\\`_^{|}-")

_Handler = Callable[[Server, IrcMessage], None]


def _filtered(event: str, channel: Channel) -> bool:
    return threshold_filtered(FILTER_THRESHOLDS.get(event, 0), len(channel.users))


def _require(server: Server, message: IrcMessage, error: str) -> str:
    value = message.next_param()
    if value is None:
        server.fail(error)
    return value


def _require_sender(server: Server, message: IrcMessage, error: str) -> str:
    if message.sender is None:
        server.fail(error)
    return message.sender


def _all_channels(server: Server) -> list[Channel]:
    return [server.channel, *server.channels]


def _find_user(server: Server, channel: Channel, nick: str) -> str | None:
    folded = _casefold(nick, server.casemapping)
    return next(
        (name for name in channel.users if _casefold(name, server.casemapping) == folded),
        None,
    )


def _add_user(server: Server, channel: Channel, nick: str) -> bool:
    if _find_user(server, channel, nick) is not None:
        return False
    channel.users[nick] = ModeSet(frozenset(_config(server).prefix_flags))
    return True


def _del_user(server: Server, channel: Channel, nick: str) -> bool:
    name = _find_user(server, channel, nick)
    if name is None:
        return False
    del channel.users[name]
    return True


def _pinged(casemapping: str, message: str, nick: str) -> bool:
    """Whether `nick` appears in `message` as a whole word."""
    if not nick:
        return False
    text = _casefold(message, casemapping)
    needle = _casefold(nick, casemapping)
    start = text.find(needle)
    while start != -1:
        end = start + len(needle)
        before_ok = start == 0 or text[start - 1] not in _NICK_CHARS
        after_ok = end == len(text) or text[end] not in _NICK_CHARS
        if before_ok and after_ok:
            return True
        start = text.find(needle, start + 1)
    return False


def _recv_error(server: Server, message: IrcMessage) -> None:
    """ERROR :<message>"""
    text = _require(server, message, "ERROR: message is null")
    server.channel.add_line(FROM_INFO if server.quitting else "ERROR", text)


def _recv_invite(server: Server, message: IrcMessage) -> None:
    """:nick!user@host INVITE <nick> <channel>"""
    sender = _require_sender(server, message, "INVITE: sender's nick is null")
    nick = _require(server, message, "INVITE: nick is null")
    name = _require(server, message, "INVITE: channel is null")
    if nick == server.nick:
        server.info(f"{sender} invited you to {name}")
        return
    channel = server.get_channel(name)
    if channel is None:
        server.fail(f"INVITE: channel '{name}' not found")
    channel.add_line(FROM_INFO, f"{sender} invited {nick} to {name}")


def _recv_join(server: Server, message: IrcMessage) -> None:
    """:nick!user@host JOIN <channel> [<account> :<realname>]"""
    sender = _require_sender(server, message, "JOIN: sender's nick is null")
    name = _require(server, message, "JOIN: channel is null")

    if sender == server.nick:
        channel = server.get_channel(name)
        if channel is None:
            channel = server.add_channel(Channel(name, ChannelType.CHANNEL))
            server.current = channel
        channel.joined = True
        channel.parted = False
        channel.add_line(FROM_JOIN, f"Joined {name}", LineKind.JOIN)
        server.send(f"MODE {name}")
        return

    channel = server.get_channel(name)
    if channel is None:
        server.fail(f"JOIN: channel '{name}' not found")

    filtered = _filtered("join", channel)

    if not _add_user(server, channel, sender):
        server.fail(f"JOIN: user '{sender}' already on channel '{name}'")

    if filtered:
        return

    who = f"{sender}!{message.host or ''}"
    if "extended-join" in server.caps:
        account = _require(server, message, "JOIN: account is null")
        realname = _require(server, message, "JOIN: realname is null")
        channel.add_line(FROM_JOIN, f"{who} has joined [{account} - {realname}]", LineKind.JOIN)
    else:
        channel.add_line(FROM_JOIN, f"{who} has joined", LineKind.JOIN)


def _recv_kick(server: Server, message: IrcMessage) -> None:
    """:nick!user@host KICK <channel> <user> [:message]"""
    sender = _require_sender(server, message, "KICK: sender's nick is null")
    name = _require(server, message, "KICK: channel is null")
    user = _require(server, message, "KICK: user is null")
    channel = server.get_channel(name)
    if channel is None:
        server.fail(f"KICK: channel '{name}' not found")

    reason = message.next_param()
    # A comment equal to the kicker's nick is the default, not a reason.
    if reason == sender:
        reason = None

    if user == server.nick:
        channel.part()
        text = f"Kicked by {sender} ({reason})" if reason else f"Kicked by {sender}"
        channel.add_line(FROM_INFO, text)
    else:
        if not _del_user(server, channel, user):
            server.fail(f"KICK: nick '{user}' not found in '{name}'")
        text = f"{sender} has kicked {user}"
        channel.add_line(FROM_INFO, f"{text} ({reason})" if reason else text)


def _recv_mode(server: Server, message: IrcMessage) -> None:
    """MODE <targ> 1*[<modestring> [<mode arguments>]]"""
    target = _require(server, message, "MODE: target nick is null")
    if target == server.nick:
        recv_usermodes(server, message)
        return
    channel = server.get_channel(target)
    if channel is None:
        server.fail(f"MODE: target '{target}' not found")
    recv_chanmodes(server, channel, message)


def _recv_nick(server: Server, message: IrcMessage) -> None:
    """:nick!user@host NICK <nick>"""
    sender = _require_sender(server, message, "NICK: old nick is null")
    nick = _require(server, message, "NICK: new nick is null")

    if sender == server.nick:
        server.set_nick(nick)
        server.channel.add_line(FROM_INFO, f"Your nick is now '{nick}'", LineKind.NICK)

    for channel in _all_channels(server):
        old = _find_user(server, channel, sender)
        if old is None:
            continue
        if _find_user(server, channel, nick) is not None:
            server.error(f"NICK: user '{nick}' already on channel '{channel.name}'")
        else:
            channel.users[nick] = channel.users.pop(old)
        if _filtered("nick", channel):
            continue
        channel.add_line(FROM_INFO, f"{sender}  >>  {nick}", LineKind.NICK)


def _recv_notice(server: Server, message: IrcMessage) -> None:
    """:nick!user@host NOTICE <target> :<message>"""
    sender = _require_sender(server, message, "NOTICE: sender's nick is null")
    target = _require(server, message, "NOTICE: target is null")
    text = _require(server, message, "NOTICE: message is null")
    if is_ctcp(text):
        ctcp_response(server, sender, target, text)
        return
    channel = server.get_channel(sender) or server.channel
    channel.add_line(sender, text, LineKind.CHAT)


def _recv_part(server: Server, message: IrcMessage) -> None:
    """:nick!user@host PART <channel> [:message]"""
    sender = _require_sender(server, message, "PART: sender's nick is null")
    name = _require(server, message, "PART: channel is null")
    reason = message.next_param()

    if sender == server.nick:
        # A channel that is gone was closed by the user; nothing to report.
        channel = server.get_channel(name)
        if channel is not None:
            text = f"you have parted ({reason})" if reason else "you have parted"
            channel.add_line(FROM_PART, text, LineKind.PART)
            channel.part()
        return

    channel = server.get_channel(name)
    if channel is None:
        server.fail(f"PART: channel '{name}' not found")

    filtered = _filtered("part", channel)

    if not _del_user(server, channel, sender):
        server.fail(f"PART: nick '{sender}' not found in '{name}'")

    if not filtered:
        who = f"{sender}!{message.host or ''}"
        text = f"{who} has parted ({reason})" if reason else f"{who} has parted"
        channel.add_line(FROM_PART, text)


def _recv_ping(server: Server, message: IrcMessage) -> None:
    """PING <server>"""
    origin = _require(server, message, "PING: server is null")
    server.send(f"PONG {origin}")


def _recv_pong(server: Server, message: IrcMessage) -> None:
    """PONG <server> [<server2>]"""
    return None


def _recv_privmsg(server: Server, message: IrcMessage) -> None:
    """:nick!user@host PRIVMSG <target> :<message>"""
    sender = _require_sender(server, message, "PRIVMSG: sender's nick is null")
    target = _require(server, message, "PRIVMSG: target is null")
    text = _require(server, message, "PRIVMSG: message is null")

    if is_ctcp(text):
        ctcp_request(server, sender, target, text)
        return

    urgent = False
    if target == server.nick:
        channel = server.get_channel(sender)
        if channel is None:
            channel = server.add_channel(Channel(sender, ChannelType.PRIVMSG))
        if channel is not server.current:
            urgent = True
    else:
        channel = server.get_channel(target)
        if channel is None:
            server.fail(f"PRIVMSG: channel '{target}' not found")

    if _pinged(server.casemapping, text, server.nick):
        if channel is not server.current:
            urgent = True
        channel.add_line(sender, text, LineKind.PINGED)
    else:
        channel.add_line(sender, text, LineKind.CHAT)

    if urgent:
        channel.pinged = True


def _recv_quit(server: Server, message: IrcMessage) -> None:
    """:nick!user@host QUIT [:message]"""
    sender = _require_sender(server, message, "QUIT: sender's nick is null")
    reason = message.next_param()
    who = f"{sender}!{message.host or ''}"
    text = f"{who} has quit ({reason})" if reason else f"{who} has quit"

    for channel in _all_channels(server):
        filtered = _filtered("quit", channel)
        if not _del_user(server, channel, sender) or filtered:
            continue
        channel.add_line(FROM_QUIT, text, LineKind.QUIT)


def _recv_topic(server: Server, message: IrcMessage) -> None:
    """:nick!user@host TOPIC <channel> [:topic]"""
    sender = _require_sender(server, message, "TOPIC: sender's nick is null")
    name = _require(server, message, "TOPIC: channel is null")
    topic = _require(server, message, "TOPIC: topic is null")
    channel = server.get_channel(name)
    if channel is None:
        server.fail(f"TOPIC: channel '{name}' not found")
    if topic:
        channel.add_line(FROM_INFO, f"{sender} has set the topic:")
        channel.add_line(FROM_INFO, f'"{topic}"')
    else:
        channel.add_line(FROM_INFO, f"{sender} has unset the topic")


def _visible_user_channels(server: Server, event: str, nick: str):
    for channel in _all_channels(server):
        if _filtered(event, channel):
            continue
        if _find_user(server, channel, nick) is None:
            continue
        yield channel


def _recv_account(server: Server, message: IrcMessage) -> None:
    """:nick!user@host ACCOUNT <account>"""
    sender = _require_sender(server, message, "ACCOUNT: sender's nick is null")
    account = _require(server, message, "ACCOUNT: account is null")
    if account == "*":
        text = f"{sender} has logged out"
    else:
        text = f"{sender} has logged in as {account}"
    for channel in _visible_user_channels(server, "account", sender):
        channel.add_line(FROM_INFO, text)


def _recv_away(server: Server, message: IrcMessage) -> None:
    """:nick!user@host AWAY [:message]"""
    sender = _require_sender(server, message, "AWAY: sender's nick is null")
    reason = message.next_param()
    if reason is not None:
        text = f"{sender} is now away: {reason}"
    else:
        text = f"{sender} is no longer away"
    for channel in _visible_user_channels(server, "away", sender):
        channel.add_line(FROM_INFO, text)


def _recv_chghost(server: Server, message: IrcMessage) -> None:
    """:nick!user@host CHGHOST <new_user> <new_host>"""
    sender = _require_sender(server, message, "CHGHOST: sender's nick is null")
    user = _require(server, message, "CHGHOST: user is null")
    host = _require(server, message, "CHGHOST: host is null")
    for channel in _visible_user_channels(server, "chghost", sender):
        channel.add_line(FROM_INFO, f"{sender} has changed user/host: {user}/{host}")


_HANDLERS: dict[str, _Handler] = {
    "ERROR": _recv_error,
    "INVITE": _recv_invite,
    "JOIN": _recv_join,
    "KICK": _recv_kick,
    "MODE": _recv_mode,
    "NICK": _recv_nick,
    "NOTICE": _recv_notice,
    "PART": _recv_part,
    "PING": _recv_ping,
    "PONG": _recv_pong,
    "PRIVMSG": _recv_privmsg,
    "QUIT": _recv_quit,
    "TOPIC": _recv_topic,
    "ACCOUNT": _recv_account,
    "AWAY": _recv_away,
    "CHGHOST": _recv_chghost,
}


def irc_recv(server: Server, message: IrcMessage) -> None:
    """Handle one received message; raises HandlerError on failure."""
    if message.command[:1] in tuple("0123456789"):
        recv_numeric(server, message)
        return
    handler = _HANDLERS.get(message.command)
    if handler is None:
        _generic_unknown(server, message)
        return
    handler(server, message)


def handle_line(server: Server, line: str) -> None:
    """Parse a raw line from the server and handle it."""
    irc_recv(server, parse_message(line))