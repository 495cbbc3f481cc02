"""Entry point: prompt for a nickname and a room, then chat."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import discover
from .config import Settings
from .context import Context
from .room import join
from .session import Session
from .transport import TransportError
from .transport.zmq import Node
from .ui import ChatUI

logger = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Chat with peers on the local network")
    parser.add_argument("--config", type=Path, default=None, help="JSON file with session settings")
    parser.add_argument("--port", type=int, default=None, help="Port for the ZeroMQ PUB socket")
    parser.add_argument(
        "--discovery-port", type=int, default=discover.default_port, help="UDP port used to find peers"
    )
    parser.add_argument("--log-level", default="WARNING", help="Logging level")
    parser.add_argument("--log-file", type=Path, default=None, help="Write log records to this file")
    return parser


def configure_logging(level: str = "WARNING", path: Optional[Path] = None) -> None:
    logging.basicConfig(
        level=level.upper(),
        filename=str(path) if path else None,
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def ask(prompt: str, default: str) -> str:
    print(prompt)
    try:
        answer = input().strip()
    except EOFError:
        answer = ""
    return answer or default


def main(argv: Optional[List[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)

    try:
        settings = Settings.load(args.config) if args.config else Settings()
    except (OSError, ValueError) as exc:
        print(f"cannot load settings: {exc}", file=sys.stderr)
        return 2

    configure_logging(args.log_level, args.log_file)

    nickname = ask("Enter Your Nickname: ", "anonymous")
    room_name = ask("Enter Your Room Name: ", "lobby")

    try:
        node = Node(port=args.port)
    except TransportError as exc:
        print(f"cannot start transport: {exc}", file=sys.stderr)
        return 1

    print("room:", room_name)
    print("nick:", nickname)
    print("host:", node.peer_id)

    server = discover.Server(node.port, node.peer_id, port=args.discovery_port)
    beacon = discover.Beacon(node, port=args.discovery_port)
    beacon.start()

    context = Context()

    try:
        room = join(context, node, node.peer_id, nickname, room_name, settings)
    except TransportError as exc:
        print(f"cannot join room {room_name}: {exc}", file=sys.stderr)
        beacon.stop()
        server.cleanup()
        node.close()
        return 1

    try:
        ui = ChatUI(room_name, nickname)
        session = Session(room, ui, settings, errors=ui.error)
        ui.run(session)
    except Exception as exc:
        print(f"error running text UI: {exc}", file=sys.stderr)
        logger.exception("text UI failed")
        return 1
    finally:
        context.cancel()
        room.close()
        beacon.stop()
        server.cleanup()
        node.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
