"""
PassVault Server
Accepts client connections and runs one session per connection on a worker pool
"""

import argparse
import logging
import socket
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import List, Union

from passvault.common.config import Settings, init_settings, load_settings
from passvault.common.errors import InvalidArgument, InvalidCommand, PassSecureError
from passvault.common.logger import setup_logger
from passvault.common.protocol import Command, CommandType
from passvault.session import ActiveUsers, Session
from passvault.storage.vault import VaultStore

logger = logging.getLogger(__name__)


def _required(command: Command, name: str) -> str:
    value = command.get_string(name)
    if not value:
        raise InvalidArgument(name)
    return value


def handle_register(session: Session, command: Command) -> None:
    session.register(_required(command, "username"), _required(command, "password"))


def handle_login(session: Session, command: Command) -> None:
    session.login(_required(command, "username"), _required(command, "password"))


def handle_add(session: Session, command: Command) -> None:
    session.add(
        _required(command, "name"),
        _required(command, "password"),
        command.get_bool("overwrite"),
    )


def handle_remove(session: Session, command: Command) -> None:
    session.remove(_required(command, "name"))


def handle_disconnect(session: Session, command: Command) -> None:
    session.disconnect()


def handle_noop(session: Session, command: Command) -> None:
    pass


# Commands that answer a single OK line on success
HANDLERS = {
    CommandType.PING: handle_noop,
    CommandType.REGISTER: handle_register,
    CommandType.LOGIN: handle_login,
    CommandType.ADD: handle_add,
    CommandType.REMOVE: handle_remove,
    CommandType.DISCONNECT: handle_disconnect,
    CommandType.QUIT: handle_noop,
}


def decode_line(raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidArgument("line is not valid UTF-8") from e


def dispatch(session: Session, line: Union[str, bytes]) -> List[str]:
    """
    Run one protocol line against a session.

    Args:
        session: The connection's session
        line: Raw line received from the client, as text or undecoded bytes

    Returns:
        Response lines: ["OK"], ["OK", payload] for GET, or ["NOK --message <code>"]
    """
    try:
        if isinstance(line, bytes):
            line = decode_line(line)
        command = Command.parse(line)

        if command.type == CommandType.GET:
            payload = session.get(_required(command, "name"))
            return [str(Command.ok()), payload]

        handler = HANDLERS.get(command.type)
        if handler is None:
            # GENERATE, HELP, OK and NOK are handled by the client
            raise InvalidCommand(command.type.value)

        handler(session, command)
        return [str(Command.ok())]

    except PassSecureError as e:
        logger.debug("Command rejected (%s): %s", e.code, e.detail)
        return [str(Command.nok(e))]


def is_terminal(line: Union[str, bytes]) -> bool:
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    return line.rstrip("\r\n").split(" ", 1)[0] == CommandType.QUIT.value


class VaultServer:
    """PassVault server handling multiple clients"""

    def __init__(self, settings: Settings, store: VaultStore = None):
        self.settings = settings
        self.store = store or VaultStore(settings.vault_root)
        self.active_users = ActiveUsers()
        self.server_socket = None
        self.executor = None
        # Blocks accept() while every worker is busy
        self._slots = threading.BoundedSemaphore(settings.workers)
        self._running = threading.Event()

    @property
    def address(self):
        return self.server_socket.getsockname() if self.server_socket else None

    def bind(self):
        """Create the listening socket"""
        self.server_socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.server_socket.bind((self.settings.host, self.settings.port))
        self.server_socket.listen(self.settings.workers)
        self.executor = ThreadPoolExecutor(
            max_workers=self.settings.workers, thread_name_prefix="passvault-worker"
        )
        logger.info("Server listening on %s:%s", *self.address[:2])
        logger.info("Vault root: %s (%d workers)", self.store.root, self.settings.workers)

    def start(self):
        """Start the server and serve until stopped"""
        if self.server_socket is None:
            self.bind()
        self._running.set()

        try:
            while self._running.is_set():
                self._slots.acquire()
                try:
                    client_socket, address = self.server_socket.accept()
                except OSError:
                    self._slots.release()
                    if not self._running.is_set():
                        break
                    raise
                logger.info("New connection from %s:%s", *address[:2])
                self.executor.submit(self._serve, client_socket, address)

        except KeyboardInterrupt:
            logger.warning("Server shutting down...")
        finally:
            self.cleanup()

    def _serve(self, client_socket, address):
        try:
            self.handle_client(client_socket, address)
        finally:
            self._slots.release()

    def handle_client(self, client_socket, address):
        """Handle individual client connection until EOF, QUIT or an I/O error"""
        session = Session(self.store, self.active_users)

        try:
            with client_socket, \
                    client_socket.makefile('rb') as socket_in, \
                    client_socket.makefile('w', encoding='utf-8', newline='\n') as socket_out:
                for line in socket_in:
                    for response in dispatch(session, line):
                        socket_out.write(response + "\n")
                    socket_out.flush()

                    if is_terminal(line):
                        break

        except OSError as e:
            logger.error("Connection error with %s:%s: %s", address[0], address[1], e)
        except Exception:
            logger.exception("Unexpected error handling %s:%s", address[0], address[1])
        finally:
            session.disconnect()
            logger.info("Connection closed with %s:%s", address[0], address[1])

    def stop(self):
        """Stop accepting connections"""
        self._running.clear()
        if self.server_socket:
            try:
                self.server_socket.shutdown(socket.SHUT_RDWR)
            except OSError as e:
                logger.debug("Listening socket shutdown: %s", e)
            self.server_socket.close()

    def cleanup(self):
        """Cleanup server resources"""
        if self.server_socket:
            self.server_socket.close()
        if self.executor:
            self.executor.shutdown(wait=False)
        logger.info("Server shutdown complete")


def parse_arguments(argv=None) -> Settings:
    """Build settings from the environment and command-line flags."""
    parser = argparse.ArgumentParser(description="Start the PassVault server.")
    parser.add_argument("-H", "--host", help="Interface to listen on.")
    parser.add_argument("-p", "--port", type=int, help="Port to use (default: 6433).")
    parser.add_argument("-v", "--vault", dest="vault_root",
                        help="Directory holding the user vaults (default: ./).")
    parser.add_argument("-t", "--workers", type=int,
                        help="Maximum number of concurrent connections (default: 5).")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR.")
    args = parser.parse_args(argv)
    return load_settings(**vars(args))


def main(argv=None):
    """Main entry point"""
    settings = init_settings(parse_arguments(argv))
    setup_logger(settings)
    server = VaultServer(settings)
    server.start()


if __name__ == "__main__":
    main()
