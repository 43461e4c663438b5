"""IRC client protocol handling: message parsing, session state, received messages and numerics, modes, CTCP and outgoing commands."""

__version__ = "0.1.7"