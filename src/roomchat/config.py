""" Tunable parameters for a chat session. A :class:`Settings` instance is an
    explicit value set passed to :func:`roomchat.room.join` and to
    :class:`roomchat.session.Session`; nothing here is process-wide state.
"""

from . import json


# Peers interoperate only if they derive exactly the same topic name for a
# room; changing the prefix partitions the network.

default_prefix = 'chat-room:'

minimum_input_capacity = 32


class Settings:
    """ Configuration for a single session. Keyword arguments override the
        defaults listed in :attr:`defaults`; anything else is rejected.

        :ivar prefix: Literal prefix prepended to the room name.
        :ivar queue_capacity: Inbound envelopes held before the receive
            thread blocks.
        :ivar input_capacity: Outbound lines held before the input surface
            blocks.
        :ivar refresh_interval: Seconds between peer list refreshes.
        :ivar label_length: Trailing characters of a peer id to display.
        :ivar quit_command: Input line that ends the session.
    """

    defaults = dict(
        prefix = default_prefix,
        queue_capacity = 128,
        input_capacity = minimum_input_capacity,
        refresh_interval = 1.0,
        label_length = 8,
        quit_command = '/quit',
    )

    types = dict(
        prefix = (str,),
        queue_capacity = (int,),
        input_capacity = (int,),
        refresh_interval = (int, float),
        label_length = (int,),
        quit_command = (str,),
    )

    def __init__(self, **kwargs):

        for key,value in self.defaults.items():
            setattr(self, key, value)

        for key,value in kwargs.items():
            if key not in self.defaults:
                raise ValueError('unknown setting: ' + repr(key))
            setattr(self, key, value)

        self.validate()


    def __repr__(self):
        values = ', '.join('%s=%r' % (key, value) for key,value in self.items())
        return 'Settings(' + values + ')'


    def __eq__(self, other):
        if isinstance(other, Settings):
            return dict(self.items()) == dict(other.items())
        return NotImplemented


    def items(self):
        for key in self.defaults.keys():
            yield (key, getattr(self, key))


    def topic(self, room_name):
        """ Return the pub/sub topic name for *room_name*.
        """

        return self.prefix + room_name


    def validate(self):
        """ Raise ValueError if any setting has the wrong type or an
            unusable value.
        """

        for key,allowed in self.types.items():
            value = getattr(self, key)

            # bool is a subclass of int; True is not a capacity.
            if isinstance(value, bool) or not isinstance(value, allowed):
                raise ValueError('setting %s has invalid type %s' % (key, type(value).__name__))

        if self.queue_capacity < 1:
            raise ValueError('queue_capacity must be at least 1')

        if self.input_capacity < minimum_input_capacity:
            raise ValueError('input_capacity must be at least %d' % (minimum_input_capacity))

        if self.refresh_interval <= 0:
            raise ValueError('refresh_interval must be positive')

        if self.label_length < 1:
            raise ValueError('label_length must be at least 1')

        if self.quit_command == '':
            raise ValueError('quit_command cannot be empty')


    @classmethod
    def load(cls, path):
        """ Return a :class:`Settings` instance populated from the JSON
            object in the file at *path*. Settings absent from the file keep
            their default values.
        """

        with open(path, 'rb') as file:
            contents = file.read()

        try:
            loaded = json.loads(contents)
        except (json.DecodeError, ValueError) as e:
            raise ValueError('invalid JSON in %s: %s' % (path, e)) from e

        if isinstance(loaded, dict):
            pass
        else:
            raise ValueError('%s must contain a JSON object' % (path))

        return cls(**loaded)


# end of class Settings


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
