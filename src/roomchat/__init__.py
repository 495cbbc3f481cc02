""" Python implementation of a peer-to-peer chat room. Peers exchange short
    text messages in named rooms over a publish/subscribe transport; the
    session machinery turns a room subscription into a filtered, bounded
    message stream, and serializes that stream, user input, and peer list
    refreshes into a single loop driving the display.
"""

# Utility components.

from . import json
from . import context
from . import channel

# Submodules used by multiple other components.

from . import config
from . import envelope
from . import transport

# Primary public-facing interfaces.

from .config import Settings
from .context import Context
from .envelope import ChatEnvelope
from .room import Room, join
from .session import Session

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
