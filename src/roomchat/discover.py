""" A simple broadcast UDP discovery method for chat peers on the local
    network. Every peer runs a :class:`Server`, answering any query with the
    port of its ZeroMQ PUB socket and its peer id; a :class:`Beacon` searches
    periodically and connects the local node to whatever answered.

    No other information is exchanged. Which rooms a peer is in is learned
    afterwards, through the transport's own heartbeat.
"""

import logging
import socket
import threading
import time

from .transport import TransportClosed

logger = logging.getLogger(__name__)

call = 'I heard it'
call = call.encode()

response = 'on the X:'
response = response.encode()

# There's nothing special about this port number, other than it is not
# privileged, and happens to be prime. It is effectively a shared secret.

default_port = 10103

broadcast_address = '255.255.255.255'


class Server:
    """ Listen for any queries on *port*; respond to any queries with the
        *request* port and *peer_id* we were provided, letting the caller
        know where to subscribe.
    """

    def __init__(self, request, peer_id, port=default_port):
        self.delay = 1
        self.port = port
        self.seen = dict()
        self.socket = None
        self.thread = None

        request = int(request)
        request = str(request) + ' ' + peer_id
        request = request.encode()
        self.response = response + request

        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        try:
            sock.bind(('', self.port))
        except OSError as e:
            sock.close()
            logger.warning("discovery server cannot bind port %d: %s", self.port, e)
            return

        # Wake up periodically to notice a cleanup() from another thread.
        sock.settimeout(0.5)

        self.socket = sock
        self.thread = threading.Thread(target=self.run, name='discover-server')
        self.thread.daemon = True
        self.thread.start()


    @property
    def listening(self):
        return self.socket is not None


    def cleanup(self):
        sock = self.socket
        self.socket = None

        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            sock.close()

        self.seen = dict()


    def run(self):

        while True:
            sock = self.socket
            if sock is None:
                break

            try:
                data, address = sock.recvfrom(4096)
            except socket.timeout:
                continue
            except OSError:
                break

            now = time.time()
            last_response = self.seen.get(address, 0)

            if last_response + self.delay > now:
                # Throttling responses to this client, we already corresponded
                # with them in recent memory.
                continue

            data = data.strip()
            if data == call and self.socket is not None:
                try:
                    sock.sendto(self.response, address)
                except OSError as e:
                    logger.debug("discovery reply to %s failed: %s", address, e)
                    continue
                self.seen[address] = now

        self.cleanup()


# end of class Server



def parse(data):
    """ Interpret a :class:`Server` response, returning a (port, peer_id)
        tuple. Raises ValueError if *data* is not a valid response.
    """

    data = data.strip()

    if data.startswith(response):
        pass
    else:
        raise ValueError('not a discovery response: ' + repr(data))

    answer = data[len(response):].decode()
    port, peer_id = answer.split(' ', 1)
    port = int(port)

    if peer_id == '':
        raise ValueError('discovery response has no peer id')

    return (port, peer_id)



def search(port=default_port, address=broadcast_address, wait=False, expiration=1):
    """ Find available :class:`Server` instances, returning a list of
        (address, port, peer_id) tuples. If *wait* is True, the search will
        delay returning until multiple instances have an opportunity to
        respond; otherwise, the fastest responding instances are returned
        with no additional delay. The query is broadcast unless another
        *address* is specified.
    """

    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
    sock.settimeout(expiration)

    found = list()

    try:
        timeouts = (TimeoutError, socket.timeout)
    except AttributeError:
        # socket.timeout was deprecated in 3.10, in favor of TimeoutError.
        timeouts = (TimeoutError,)

    try:
        sock.sendto(call, (address, port))
        start = time.time()
        elapsed = 0

        while elapsed < expiration:
            try:
                data, server = sock.recvfrom(4096)
            except timeouts:
                break
            except BlockingIOError:
                # We came back through the loop after setting the socket to be
                # non-blocking, having found at least one server response.
                break

            elapsed = time.time() - start

            try:
                request, peer_id = parse(data)
            except ValueError as e:
                logger.debug("ignoring discovery reply from %s: %s", server, e)
            else:
                found.append((server[0], request, peer_id))

                if wait == False:
                    # Give any simultaneous responders a chance to be
                    # counted, but don't wait around for anyone else.
                    sock.settimeout(0)
                    continue

            remaining = expiration - elapsed
            if remaining <= 0:
                break
            sock.settimeout(remaining)
    finally:
        sock.close()

    return found



class Beacon:
    """ Periodically :func:`search` for peers, connecting *node* (a
        :class:`roomchat.transport.zmq.Node`) to each one found, other than
        itself. The search repeats every *interval* seconds until
        :func:`stop` is called.
    """

    def __init__(self, node, port=default_port, address=broadcast_address, interval=5):

        self.node = node
        self.port = port
        self.address = address
        self.interval = interval
        self.found = dict()

        self.shutdown = threading.Event()
        self.thread = threading.Thread(target=self.run, name='discover-beacon')
        self.thread.daemon = True


    def start(self):
        self.thread.start()


    def stop(self):
        self.shutdown.set()


    def run(self):

        while self.shutdown.is_set() == False:
            try:
                self.search()
            except TransportClosed:
                break
            except OSError:
                logger.exception('discovery search failed')

            self.shutdown.wait(self.interval)


    def search(self):
        """ Run one search, and connect to any peers not seen before.
        """

        for address,request,peer_id in search(self.port, self.address, wait=True):
            if peer_id == self.node.peer_id:
                continue

            endpoint = (address, request)
            if self.found.get(peer_id) == endpoint:
                continue

            logger.debug("discovered %s at %s:%d", peer_id, address, request)
            self.found[peer_id] = endpoint
            self.node.connect(address, request)


# end of class Beacon


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
