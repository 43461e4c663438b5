import pytest

from ircflow.numerics import FILTER_ALWAYS
from ircflow.recv import FILTER_THRESHOLDS, handle_line, irc_recv
from ircflow.session import (
    FROM_ERROR,
    FROM_INFO,
    FROM_UNKNOWN,
    Channel,
    ChannelType,
    HandlerError,
    LineKind,
    Server,
    parse_message,
)


@pytest.fixture
def server():
    srv = Server("irc.example.com", realname="r1", nick="me")
    chan = srv.add_channel(Channel("#chan", ChannelType.CHANNEL, joined=True))
    chan.users["alice"] = None
    other = srv.add_channel(Channel("#other", ChannelType.CHANNEL, joined=True))
    other.users["alice"] = None
    srv.add_channel(Channel("nick", ChannelType.PRIVMSG))
    return srv


def last(channel):
    return channel.lines[-1]


def test_ping_sends_pong(server):
    handle_line(server, "PING irc.example.com")
    assert server.sent == ["PONG irc.example.com"]


def test_ping_without_server_fails(server):
    with pytest.raises(HandlerError):
        handle_line(server, "PING")
    assert last(server.channel).text == "PING: server is null"


def test_pong_is_silent(server):
    handle_line(server, "PONG irc.example.com")
    assert server.sent == []
    assert server.channel.lines == []


def test_privmsg_to_channel(server):
    handle_line(server, ":alice!a@host PRIVMSG #chan :hello there")
    line = last(server.get_channel("#chan"))
    assert (line.sender, line.text, line.kind) == ("alice", "hello there", LineKind.CHAT)


def test_privmsg_to_me_opens_private_channel(server):
    handle_line(server, ":bob!b@host PRIVMSG me :hi")
    channel = server.get_channel("bob")
    assert channel.type is ChannelType.PRIVMSG
    assert channel.pinged is True
    assert last(channel).text == "hi"


def test_privmsg_mentioning_nick_is_pinged(server):
    handle_line(server, ":alice!a@host PRIVMSG #chan :hey me, look")
    channel = server.get_channel("#chan")
    assert last(channel).kind is LineKind.PINGED
    assert channel.pinged is True


def test_privmsg_nick_inside_word_not_pinged(server):
    handle_line(server, ":alice!a@host PRIVMSG #chan :meme time")
    assert last(server.get_channel("#chan")).kind is LineKind.CHAT


def test_privmsg_unknown_channel_fails(server):
    with pytest.raises(HandlerError):
        handle_line(server, ":alice!a@host PRIVMSG #nope :hi")
    assert last(server.channel).text == "PRIVMSG: channel '#nope' not found"


def test_privmsg_ctcp_dispatches_request(server):
    handle_line(server, ":nick!user@host PRIVMSG me :\x01PING 0\x01")
    assert server.sent == ["NOTICE nick :\x01PING 0\x01"]
    assert last(server.channel).text == "CTCP PING from nick (0)"


def test_notice_ctcp_dispatches_response(server):
    handle_line(server, ":nick!user@host NOTICE me :\x01TIME FOO BAR BAZ")
    assert last(server.channel).text == "CTCP TIME response from nick: FOO BAR BAZ"


def test_notice_plain_goes_to_server_buffer(server):
    handle_line(server, ":svc!s@host NOTICE me :welcome")
    line = last(server.channel)
    assert (line.sender, line.text) == ("svc", "welcome")


def test_join_self_creates_channel(server):
    handle_line(server, ":me!u@host JOIN #new")
    channel = server.get_channel("#new")
    assert channel.joined and not channel.parted
    assert server.current is channel
    assert last(channel).text == "Joined #new"
    assert server.sent == ["MODE #new"]


def test_join_other_adds_user(server):
    handle_line(server, ":bob!b@host JOIN #chan")
    channel = server.get_channel("#chan")
    assert "bob" in channel.users
    assert last(channel).text == "bob!b@host has joined"


def test_join_duplicate_fails(server):
    with pytest.raises(HandlerError):
        handle_line(server, ":ALICE!a@host JOIN #chan")
    assert last(server.channel).text == "JOIN: user 'ALICE' already on channel '#chan'"


def test_join_extended(server):
    server.caps.add("extended-join")
    handle_line(server, ":bob!b@host JOIN #chan acct :Bob Real")
    assert last(server.get_channel("#chan")).text == "bob!b@host has joined [acct - Bob Real]"


def test_join_filtered_still_adds_user(server, monkeypatch):
    monkeypatch.setitem(FILTER_THRESHOLDS, "join", FILTER_ALWAYS)
    channel = server.get_channel("#chan")
    before = len(channel.lines)
    handle_line(server, ":bob!b@host JOIN #chan")
    assert "bob" in channel.users
    assert len(channel.lines) == before


def test_part_other(server):
    handle_line(server, ":alice!a@host PART #chan :bye")
    channel = server.get_channel("#chan")
    assert "alice" not in channel.users
    assert last(channel).text == "alice!a@host has parted (bye)"


def test_part_unknown_nick_fails(server):
    with pytest.raises(HandlerError):
        handle_line(server, ":zed!z@host PART #chan")
    assert last(server.channel).text == "PART: nick 'zed' not found in '#chan'"


def test_part_self(server):
    handle_line(server, ":me!u@host PART #chan")
    channel = server.get_channel("#chan")
    assert channel.parted and not channel.joined
    assert last(channel).text == "you have parted"


def test_kick_self(server):
    handle_line(server, ":op!o@host KICK #chan me :go away")
    channel = server.get_channel("#chan")
    assert channel.parted
    assert last(channel).text == "Kicked by op (go away)"


def test_kick_other_default_comment(server):
    handle_line(server, ":op!o@host KICK #chan alice :op")
    channel = server.get_channel("#chan")
    assert "alice" not in channel.users
    assert last(channel).text == "op has kicked alice"


def test_quit_removes_user_everywhere(server):
    handle_line(server, ":alice!a@host QUIT :later")
    for name in ("#chan", "#other"):
        channel = server.get_channel(name)
        assert "alice" not in channel.users
        assert last(channel).kind is LineKind.QUIT
        assert last(channel).text == "alice!a@host has quit (later)"


def test_nick_change_of_self(server):
    handle_line(server, ":me!u@host NICK newme")
    assert server.nick == "newme"
    assert last(server.channel).text == "Your nick is now 'newme'"


def test_nick_change_renames_user(server):
    handle_line(server, ":alice!a@host NICK alicia")
    channel = server.get_channel("#chan")
    assert "alicia" in channel.users and "alice" not in channel.users
    assert last(channel).text == "alice  >>  alicia"


def test_topic_set_and_unset(server):
    channel = server.get_channel("#chan")
    handle_line(server, ":alice!a@host TOPIC #chan :new topic")
    assert [l.text for l in channel.lines[-2:]] == ["alice has set the topic:", '"new topic"']
    handle_line(server, ":alice!a@host TOPIC #chan :")
    assert last(channel).text == "alice has unset the topic"


def test_error_while_quitting(server):
    server.quitting = True
    handle_line(server, "ERROR :Closing link")
    line = last(server.channel)
    assert (line.sender, line.text) == (FROM_INFO, "Closing link")


def test_error_not_quitting(server):
    handle_line(server, "ERROR :Closing link")
    assert last(server.channel).sender == "ERROR"


def test_invite_me(server):
    handle_line(server, ":bob!b@host INVITE me #secret")
    assert last(server.channel).text == "bob invited you to #secret"


def test_account_away_chghost(server):
    channel = server.get_channel("#chan")
    handle_line(server, ":alice!a@host ACCOUNT *")
    assert last(channel).text == "alice has logged out"
    handle_line(server, ":alice!a@host AWAY :lunch")
    assert last(channel).text == "alice is now away: lunch"
    handle_line(server, ":alice!a@host AWAY")
    assert last(channel).text == "alice is no longer away"
    handle_line(server, ":alice!a@host CHGHOST u2 h2")
    assert last(channel).text == "alice has changed user/host: u2/h2"


def test_mode_channel_and_missing_target(server):
    handle_line(server, ":op!o@host MODE #chan +m")
    assert "m" in server.get_channel("#chan").mode_str
    with pytest.raises(HandlerError):
        handle_line(server, ":op!o@host MODE #nope +m")
    assert last(server.channel).text == "MODE: target '#nope' not found"


def test_unknown_command_generic(server):
    irc_recv(server, parse_message("FOO a b :c d"))
    line = last(server.channel)
    assert (line.sender, line.text) == (FROM_UNKNOWN, "[FOO] [a b] ~ c d")


def test_numeric_dispatch(server):
    handle_line(server, ":irc.example.com 001 me :Welcome")
    assert server.registered is True
    assert server.sent == ["JOIN #chan", "JOIN #other"]


def test_numeric_wrong_target(server):
    with pytest.raises(HandlerError):
        handle_line(server, ":irc.example.com 001 you :Welcome")
    assert last(server.channel).sender == FROM_ERROR
    assert last(server.channel).text == "NUMERIC: target 'you' is invalid"