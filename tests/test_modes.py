import pytest

from ircflow.modes import FlagType, ModeConfig, ModeSet, recv_chanmodes, recv_usermodes
from ircflow.session import FROM_ERROR, FROM_INFO, Channel, HandlerError, Server, parse_message


def make():
    server = Server("h1", nick="me")
    chan = server.add_channel(Channel("#chan", joined=True))
    return server, chan


def mode_message(line):
    message = parse_message(line)
    message.next_param()
    return message


@pytest.mark.parametrize(
    "flag,setting,expected",
    [
        ("n", True, FlagType.CHANMODE),
        ("k", True, FlagType.CHANMODE_PARAM),
        ("k", False, FlagType.CHANMODE_PARAM),
        ("b", False, FlagType.CHANMODE_PARAM),
        ("l", True, FlagType.CHANMODE_PARAM),
        ("l", False, FlagType.CHANMODE),
        ("o", True, FlagType.PREFIX),
        ("Z", True, FlagType.INVALID),
        ("1", True, FlagType.INVALID),
    ],
)
def test_flag_type(flag, setting, expected):
    assert ModeConfig().flag_type(flag, setting) is expected


def test_modeset_round_trip():
    modes = ModeSet(frozenset("abcXY"))
    for flag in "Ycab":
        modes.apply(flag, True)
    assert modes.render() == "abcY"
    for flag in "Ycab":
        modes.apply(flag, False)
    assert modes.render() == ""


def test_modeset_rejects_and_transient():
    modes = ModeSet(frozenset("ab"), transient=frozenset("b"))
    with pytest.raises(ValueError):
        modes.apply("z", True)
    modes.apply("b", True)
    assert "b" not in modes
    assert modes.render() == ""


def test_chanmodes_set_and_unset():
    server, chan = make()
    recv_chanmodes(server, chan, mode_message(":nick!user@host MODE #chan +nt"))
    assert chan.mode_str == "nt"
    assert [line.sender for line in chan.lines] == [FROM_INFO, FROM_INFO]
    assert all(line.text.startswith("nick set #chan") for line in chan.lines)
    recv_chanmodes(server, chan, mode_message(":nick!user@host MODE #chan -t +s"))
    assert chan.mode_str == "ns"


def test_chanmodes_key():
    server, chan = make()
    recv_chanmodes(server, chan, mode_message("MODE #chan +k key1"))
    assert chan.key == "key1"
    assert "k" in chan.mode_str
    assert chan.lines[-1].text.endswith("key1")
    recv_chanmodes(server, chan, mode_message("MODE #chan -k key1"))
    assert chan.key is None
    assert "k" not in chan.mode_str


def test_chanmodes_missing_argument():
    server, chan = make()
    recv_chanmodes(server, chan, mode_message("MODE #chan +k"))
    assert chan.key is None
    assert chan.lines[-1].sender == FROM_ERROR
    assert chan.mode_str == ""


def test_chanmodes_missing_sign_per_param():
    server, chan = make()
    recv_chanmodes(server, chan, mode_message("MODE #chan +n t"))
    assert chan.lines[-1].text == "MODE: missing '+'/'-'"
    assert chan.mode_str == "n"


def test_chanmodes_modestring_null():
    server, chan = make()
    with pytest.raises(HandlerError):
        recv_chanmodes(server, chan, mode_message("MODE #chan"))
    assert chan.lines[-1].text == "MODE: modestring is null"


def test_chanmodes_invalid_flag():
    server, chan = make()
    recv_chanmodes(server, chan, mode_message("MODE #chan +Z"))
    assert chan.lines[-1].sender == FROM_ERROR
    assert "'Z'" in chan.lines[-1].text
    assert chan.mode_str == ""


def test_chanmodes_ban_not_stored():
    server, chan = make()
    recv_chanmodes(server, chan, mode_message("MODE #chan +b *!*@host"))
    assert chan.mode_str == ""
    assert chan.lines[-1].sender == FROM_INFO


def test_chanmodes_prefix_user():
    server, chan = make()
    chan.users["Alice"] = None
    recv_chanmodes(server, chan, mode_message(":nick!user@host MODE #chan +o alice"))
    assert "o" in chan.users["Alice"]
    recv_chanmodes(server, chan, mode_message("MODE #chan -o ALICE"))
    assert chan.users["Alice"].render() == ""


def test_chanmodes_prefix_user_not_found():
    server, chan = make()
    recv_chanmodes(server, chan, mode_message("MODE #chan +v bob"))
    assert chan.lines[-1].sender == FROM_ERROR
    assert "bob" in chan.lines[-1].text
    assert "bob" not in chan.users


def test_usermodes():
    server, _ = make()
    recv_usermodes(server, mode_message(":me MODE me +iw"))
    assert server.mode_str == "iw"
    recv_usermodes(server, mode_message(":me MODE me -i +x"))
    assert server.mode_str == "w"
    assert server.channel.lines[-1].sender == FROM_ERROR


def test_usermodes_missing_sign_and_null():
    server, _ = make()
    recv_usermodes(server, mode_message("MODE me i"))
    assert server.channel.lines[-1].text == "MODE: missing '+'/'-'"
    with pytest.raises(HandlerError):
        recv_usermodes(server, mode_message("MODE me"))
    assert server.channel.lines[-1].text == "MODE: modestring is null"