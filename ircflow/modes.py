"""Channel and user mode configuration, mode sets and MODE message handling."""

from __future__ import annotations

import enum
import string
from dataclasses import dataclass, field

from .session import FROM_ERROR, FROM_INFO, Channel, HandlerError, IrcMessage, Server, _casefold

_LETTERS = frozenset(string.ascii_letters)

_SIGNS = {True: "+", False: "-"}


class FlagType(enum.Enum):
    CHANMODE = "chanmode"
    CHANMODE_PARAM = "chanmode_param"
    PREFIX = "prefix"
    INVALID = "invalid"


@dataclass(frozen=True)
class ModeConfig:
    """Which mode flags a server supports and which of them take arguments."""

    list_modes: str = "b"
    param_modes: str = "k"
    set_param_modes: str = "l"
    plain_modes: str = "imnpst"
    prefix_flags: str = "ov"
    prefix_symbols: str = "@+"
    user_modes: str = "iorw"

    @property
    def chanmode_flags(self) -> frozenset[str]:
        return frozenset(
            self.list_modes + self.param_modes + self.set_param_modes + self.plain_modes
        )

    def flag_type(self, flag: str, setting: bool) -> FlagType:
        """Classify a channel mode flag being set or unset."""
        if len(flag) != 1 or flag not in _LETTERS:
            return FlagType.INVALID
        if flag in self.prefix_flags:
            return FlagType.PREFIX
        if flag in self.list_modes or flag in self.param_modes:
            return FlagType.CHANMODE_PARAM
        if flag in self.set_param_modes:
            return FlagType.CHANMODE_PARAM if setting else FlagType.CHANMODE
        if flag in self.plain_modes:
            return FlagType.CHANMODE
        return FlagType.INVALID


@dataclass
class ModeSet:
    """A set of mode flags restricted to the allowed ones."""

    allowed: frozenset[str]
    transient: frozenset[str] = frozenset()
    flags: set[str] = field(default_factory=set)
    prefix: str = "="

    def apply(self, flag: str, setting: bool) -> None:
        """Set or unset a flag; raises ValueError for a flag that is not allowed."""
        if flag not in self.allowed:
            raise ValueError(f"invalid flag '{flag}'")
        if flag in self.transient:
            return
        if setting:
            self.flags.add(flag)
        else:
            self.flags.discard(flag)

    def render(self) -> str:
        """The set flags, lower case letters first."""
        return "".join(sorted(self.flags, key=lambda c: (c.isupper(), c)))

    def __contains__(self, flag: object) -> bool:
        return flag in self.flags


def _config(server: Server) -> ModeConfig:
    if server.mode_config is None:
        server.mode_config = ModeConfig()
    return server.mode_config


def _chanmodes(server: Server, channel: Channel) -> ModeSet:
    if channel.modes is None:
        cfg = _config(server)
        channel.modes = ModeSet(cfg.chanmode_flags, transient=frozenset(cfg.list_modes))
    return channel.modes


def _usermodes(server: Server) -> ModeSet:
    if server.usermodes is None:
        server.usermodes = ModeSet(frozenset(_config(server).user_modes))
    return server.usermodes


def _user_modes(server: Server, channel: Channel, nick: str) -> ModeSet | None:
    folded = _casefold(nick, server.casemapping)
    name = next(
        (n for n in channel.users if _casefold(n, server.casemapping) == folded), None
    )
    if name is None:
        return None
    modes = channel.users[name]
    if not isinstance(modes, ModeSet):
        modes = ModeSet(frozenset(_config(server).prefix_flags))
        channel.users[name] = modes
    return modes


def recv_chanmodes(server: Server, channel: Channel, message: IrcMessage) -> None:
    """Apply the mode strings and arguments remaining in a message to a channel."""
    cfg = _config(server)
    modes = _chanmodes(server, channel)
    who = f"{message.sender} set " if message.sender else ""

    modestring = message.next_param()
    if modestring is None:
        text = "MODE: modestring is null"
        channel.add_line(FROM_ERROR, text)
        raise HandlerError(text)

    while modestring is not None:
        setting: bool | None = None
        for flag in modestring:
            if flag in "+-":
                setting = flag == "+"
                continue
            if setting is None:
                channel.add_line(FROM_ERROR, "MODE: missing '+'/'-'")
                continue

            sign = _SIGNS[setting]
            kind = cfg.flag_type(flag, setting)
            if kind is FlagType.CHANMODE:
                try:
                    modes.apply(flag, setting)
                except ValueError:
                    server.error(f"MODE: invalid flag '{flag}'")
                else:
                    channel.add_line(
                        FROM_INFO, f"{who}{channel.name} mode: {sign}{flag}"
                    )
            elif kind is FlagType.CHANMODE_PARAM:
                arg = message.next_param()
                if arg is None:
                    channel.add_line(FROM_ERROR, f"MODE: flag '{flag}' expected argument")
                    continue
                if flag == "k":
                    channel.key = arg if setting else None
                try:
                    modes.apply(flag, setting)
                except ValueError:
                    server.error(f"MODE: invalid flag '{flag}'")
                else:
                    channel.add_line(
                        FROM_INFO,
                        f"{who}{channel.name} mode: {sign}{flag} {arg}",
                    )
            elif kind is FlagType.PREFIX:
                arg = message.next_param()
                if arg is None:
                    channel.add_line(FROM_ERROR, f"MODE: flag '{flag}' argument is null")
                    continue
                user = _user_modes(server, channel, arg)
                if user is None:
                    channel.add_line(
                        FROM_ERROR, f"MODE: flag '{flag}' user '{arg}' not found"
                    )
                    continue
                try:
                    user.apply(flag, setting)
                except ValueError:
                    server.error(f"MODE: invalid flag '{flag}'")
                else:
                    channel.add_line(
                        FROM_INFO, f"{who}user {arg} mode: {sign}{flag}"
                    )
            else:
                channel.add_line(FROM_ERROR, f"MODE: invalid flag '{flag}'")
        modestring = message.next_param()

    channel.mode_str = modes.render()


def recv_usermodes(server: Server, message: IrcMessage) -> None:
    """Apply the mode strings remaining in a message to the server's user modes."""
    modes = _usermodes(server)
    who = f"{message.sender} set " if message.sender else ""

    modestring = message.next_param()
    if modestring is None:
        server.fail("MODE: modestring is null")

    while modestring is not None:
        setting: bool | None = None
        for flag in modestring:
            if flag in "+-":
                setting = flag == "+"
                continue
            if setting is None:
                server.error("MODE: missing '+'/'-'")
                continue
            try:
                modes.apply(flag, setting)
            except ValueError:
                server.error(f"MODE: invalid flag '{flag}'")
            else:
                server.info(f"{who}mode: {_SIGNS[setting]}{flag}")
        modestring = message.next_param()

    server.mode_str = modes.render()