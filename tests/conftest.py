import pytest

import roomchat
from roomchat.transport import memory


@pytest.fixture
def context():
    context = roomchat.Context()
    yield context
    context.cancel()


@pytest.fixture
def network():
    return memory.Network()


@pytest.fixture
def settings():

    # A short refresh interval keeps the peer list tests quick.

    return roomchat.Settings(refresh_interval=0.05)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
