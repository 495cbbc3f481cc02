""" The chat envelope: the unit of text exchanged between peers in a room,
    and its JSON representation on the wire. The field names on the wire are
    fixed, and shared with every other implementation participating in the
    same room:

        {"Message": <string>, "SenderID": <string>, "SenderNick": <string>}
"""

from dataclasses import dataclass

from . import json


TEXT = 'Message'
SENDER_ID = 'SenderID'
SENDER_NICK = 'SenderNick'


class EnvelopeError(ValueError):
    """ The bytes received are not a chat envelope.
    """

    pass



@dataclass(frozen=True)
class ChatEnvelope:
    """ One chat message. The *sender_id* is assigned by the transport and
        uniquely identifies the originating peer; the *sender_nick* is the
        display name the sender picked, which is not guaranteed to be unique.
    """

    text: str
    sender_id: str
    sender_nick: str


    def encode(self):
        return encode(self)


# end of class ChatEnvelope



def encode(envelope):
    """ Return the JSON encoding of *envelope* as bytes.
    """

    fields = dict()
    fields[TEXT] = envelope.text
    fields[SENDER_ID] = envelope.sender_id
    fields[SENDER_NICK] = envelope.sender_nick

    try:
        return json.dumps(fields)
    except (TypeError, ValueError) as e:
        raise EnvelopeError('cannot encode envelope: ' + str(e)) from e



def decode(data):
    """ Interpret *data*, a bytes or str instance, as a :class:`ChatEnvelope`.
        Unrecognized fields are ignored, and absent (or null) fields are
        treated as empty strings. An :class:`EnvelopeError` is raised if the
        *data* is not a JSON object, or if one of the envelope fields has a
        non-string value.
    """

    if isinstance(data, str):
        data = data.encode()

    try:
        fields = json.loads(data)
    except (json.DecodeError, ValueError) as e:
        raise EnvelopeError('invalid JSON: ' + str(e)) from e

    if isinstance(fields, dict):
        pass
    else:
        raise EnvelopeError('expected a JSON object, got ' + type(fields).__name__)

    text = _field(fields, TEXT)
    sender_id = _field(fields, SENDER_ID)
    sender_nick = _field(fields, SENDER_NICK)

    return ChatEnvelope(text, sender_id, sender_nick)



def _field(fields, name):

    value = fields.get(name)

    if value is None:
        return ''

    if isinstance(value, str):
        return value

    raise EnvelopeError("field '%s' is %s, not a string" % (name, type(value).__name__))


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
