""" JSON encoding for everything roomchat sends or reads: chat envelopes,
    transport heartbeats and settings files. :func:`dumps` always returns
    bytes. :func:`loads` accepts bytes or str, and raises
    :data:`DecodeError` for anything that cannot be decoded, including input
    nested too deeply to decode at all.
"""

import msgspec


DecodeError = msgspec.DecodeError

# Encoder and decoder instances are reused; building them once per call is
# measurably slower for small messages.

encoder = msgspec.json.Encoder()
decoder = msgspec.json.Decoder()


def dumps(value):
    return encoder.encode(value)


def loads(data):

    try:
        return decoder.decode(data)
    except RecursionError as e:
        # A peer can send arbitrarily deep nesting; that is malformed input,
        # not an interpreter failure.
        raise DecodeError('JSON nested too deeply to decode') from e


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
