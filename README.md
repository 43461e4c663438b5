# ircflow

`ircflow` is the protocol layer of an IRC client. It keeps the client's view of one
connection: the server, its channels, the users in them and their modes. It turns
lines received from the server into changes to that state and into text lines for
the user to read. It also turns what the user types into protocol messages.

`ircflow` does no networking. Every outgoing message goes through `Server.send`,
which has two effects:

- it always appends the message to `Server.sent`;
- if a `transport` callable was given, it calls that callable with the message as
  well.

If the transport raises `OSError`, the failure is reported as `Send fail: ...` and
`HandlerError` is raised.

## Example

```python
from ircflow.session import Server
from ircflow.recv import handle_line
from ircflow.send import send_message

server = Server("irc.example.com", nick="me")
handle_line(server, ":irc.example.com 001 me :Welcome")   # marks the server registered
handle_line(server, ":nick!user@host PRIVMSG me :hello")  # opens a private buffer "nick"

private = server.get_channel("nick")
print(private.lines[-1].text)          # "hello"

send_message(server, private, "hi there")
print(server.sent[-1])                 # "PRIVMSG nick :hi there"
```

## Modules

### `ircflow.session`

This module holds the state that the handlers share.

- `parse_message(line)` reads one raw line into an `IrcMessage`. The line may carry
  optional `@tags` and a `:nick!host` prefix.
- `IrcMessage.next_param()` takes the parameters one at a time. A parameter that
  starts with `:` takes the rest of the line.
- `IrcMessage.split()` takes everything that is left and returns it as
  `(middle params, trailing)`.
- `Server` holds:
  - the nick and the list of alternative nicks;
  - the casemapping, which is `rfc1459` by default (`ascii` and `strict-rfc1459`
    are also known);
  - the `registered` and `quitting` flags;
  - the enabled IRCv3 capabilities in `caps`;
  - its `channels`, plus a server buffer in `Server.channel`;
  - the current channel in `current`;
  - a `clock` callable, used for CTCP TIME and PING.
- `Server.get_channel(name)` looks up a channel case-insensitively, using the
  server's casemapping.
- `Server.add_channel(channel)` attaches a channel to the server.
- `Server.info(text)` and `Server.error(text)` write to the server buffer.
- `Server.fail(text)` writes an error line and raises `HandlerError`.
- `Channel` has a `ChannelType` (`SERVER`, `CHANNEL` or `PRIVMSG`) and a list of
  `Line` entries. Each entry has a sender, a text and a `LineKind`. A channel also
  records:
  - the `joined`, `parted` and `pinged` flags;
  - its key;
  - its users;
  - its modes.
- `Channel.part()` marks the channel as parted and clears its users.

### `ircflow.recv`

- `handle_line(server, line)` parses a line and dispatches it.
- `irc_recv(server, message)` dispatches a message that is already parsed.

The commands it handles are:

- ERROR, INVITE, JOIN, KICK, MODE, NICK, NOTICE, PART, PING, PONG, PRIVMSG, QUIT
  and TOPIC;
- the IRCv3 ACCOUNT, AWAY and CHGHOST notifications.

JOIN also handles the `extended-join` form when that name is in `Server.caps`.

Commands that start with a digit go to `recv_numeric`. Any other command is written
to the server buffer as `[COMMAND] [params] ~ trailing`.

`FILTER_THRESHOLDS` maps the events `account`, `away`, `chghost`, `join`, `nick`,
`part` and `quit` to a user-count threshold. The threshold controls when notices
for that event are hidden:

| Threshold value | Effect |
| --- | --- |
| `0` | Never hide the notice. |
| `numerics.FILTER_ALWAYS` | Always hide the notice. |
| Any other number | Hide the notice in channels with more users than this number. |

### `ircflow.numerics`

- `recv_numeric(server, message)` checks that the code has three digits. It also
  checks that the target is the server's nick or `*`. It then handles the reply:
  - welcome (001), which registers the server, sends the user mode if one is set
    and rejoins the channels;
  - server info (004, 005);
  - user and channel modes (221, 324);
  - channel URL, creation time, topic and topic setter (328, 329, 332, 333);
  - names replies (353);
  - no-such-nick and no-such-channel (401, 403);
  - nick in use (433), which moves on to the next entry in `Server.nicks` or
    appends `_`, and sends `NICK`.
- Many other informational and error numerics are written to the server buffer.
  End-of-list replies are ignored.
- `threshold_filtered(threshold, count)` is the test behind `FILTER_THRESHOLDS`.

### `ircflow.modes`

- `ModeConfig` describes the server's channel modes: list modes, modes that take a
  parameter, modes that take a parameter only when set, plain modes, prefix flags
  and symbols, and user modes.
- `ModeConfig.flag_type(flag, setting)` classifies a flag.
- `ModeSet.apply(flag, setting)` sets or clears a flag. It raises `ValueError` for a
  flag that is not allowed.
- `ModeSet.render()` returns the set flags, lower-case letters first.
- `recv_chanmodes(server, channel, message)` applies the rest of a MODE message to a
  channel. This covers the channel key, parameter modes and user prefix modes.
- `recv_usermodes(server, message)` applies the rest of a MODE message to the user's
  own modes.

### `ircflow.ctcp`

- `is_ctcp(message)` checks whether a message is a CTCP payload, that is, whether it
  starts with `\x01`.
- `ctcp_request(server, sender, target, message)` handles these requests:
  - ACTION writes the action to the channel or private buffer.
  - CLIENTINFO, FINGER, PING, SOURCE, TIME, USERINFO and VERSION are answered with a
    `NOTICE`.
- `ctcp_response(server, sender, target, message)` reports the replies that other
  clients send back. For PING it works out the round-trip time from the
  `<sec> <usec>` timestamp and the server's clock.

### `ircflow.send`

- `send_message(server, channel, text)` sends chat text to a channel or a private
  conversation and echoes it into the buffer. The server must be registered, and a
  channel must be joined and not parted.
- `send_command(server, channel, text)` runs a slash command. `text` is given
  without the leading `/`, and command names are not case-sensitive. It handles:
  - `away`, `notice`, `part`, `privmsg`, `quit`, `topic` and `topic-unset`;
  - `ctcp-action`, `ctcp-clientinfo`, `ctcp-finger`, `ctcp-ping`, `ctcp-source`,
    `ctcp-time`, `ctcp-userinfo` and `ctcp-version`;
  - `cap-ls` and `cap-list`.

  Any other command is sent to the server unchanged.

## Errors

A handler that cannot process its input writes an error line to the relevant buffer
and raises `ircflow.session.HandlerError`:

- receive handlers write it to the server buffer, or for some mode errors to the
  channel;
- send handlers write it to the channel that was passed in.

Handlers that succeed return `None`.

## What it does not do

- It opens no connections and has no event loop, so the caller reads lines and
  supplies a transport.
- It does not send the registration messages (NICK, USER) itself.
- It has no IRCv3 capability negotiation and no SASL authentication. Received
  `CAP`, `AUTHENTICATE` and 900–908 replies are written to the server buffer as
  unknown messages.
- It has no terminal interface, input line editing or scrollback rendering. Buffers
  are plain lists of `Line` objects.
- It stores nothing on disk and reads no configuration file.

## Requirements

Python 3.10 or newer. There are no runtime dependencies. To run the tests, install
the `test` extra, which provides pytest.