"""
PassVault Client
Connects to the server and runs the interactive command loop
"""

import argparse
import logging
import socket
import sys

from passvault.common.config import init_settings, load_settings
from passvault.common.errors import BadResponse, PassSecureError, SocketException
from passvault.common.generator import generate_password
from passvault.common.logger import setup_logger
from passvault.common.protocol import (
    MESSAGE_ARGUMENT, PASSWORD_ARGUMENT, Command, CommandType
)

logger = logging.getLogger(__name__)

BANNER = """
  ____                 __     __          _ _
 |  _ \\ __ _ ___ ___   \\ \\   / /_ _ _   _| | |_
 | |_) / _` / __/ __|___\\ \\ / / _` | | | | | __|
 |  __/ (_| \\__ \\__ \\_____\\ V / (_| | |_| | | |_
 |_|   \\__,_|___/___/      \\_/ \\__,_|\\__,_|_|\\__|

 Type "HELP" to get a list of commands
"""

HELP_TEXT = """
Usage : <COMMAND> --<argument> <value>

  REGISTER    Register a new user (requires --username and --password).
  LOGIN       Log in an existing user (requires --username and --password).
  ADD         Add a password to the vault (requires --name and --password)
              (optional --encryptionPassword, --overwrite).
  GET         Retrieve a password from the vault (requires --name)
              (optional --decryptionPassword).
  REMOVE      Remove a password from the vault (requires --name).
  DISCONNECT  Log out from the server.
  PING        Check connectivity with the server.
  GENERATE    Create a random password (optional --length, --special).
              With --store it is added to the vault (requires --name)
              (optional --overwrite, --encryptionPassword).
  HELP        Show this help message.
  QUIT        Close the connection.
"""


class Repl:
    """Interactive command loop driving the protocol over text streams"""

    def __init__(self, keyboard_in, socket_in, socket_out, out=None):
        """
        Args:
            keyboard_in: User input stream
            socket_in: Text stream reading server responses
            socket_out: Text stream writing to the server
            out: Where user-facing output goes (stdout by default)
        """
        self.keyboard_in = keyboard_in
        self.socket_in = socket_in
        self.socket_out = socket_out
        self.out = out or sys.stdout

    def echo(self, message: str = ""):
        print(message, file=self.out)

    def read_line(self) -> str:
        """Read one line from the server"""
        try:
            line = self.socket_in.readline()
        except OSError as e:
            raise SocketException(str(e)) from e
        if not line:
            raise SocketException("server closed the connection")
        return line.rstrip("\r\n")

    def is_accepted(self, response: Command) -> bool:
        if response.type == CommandType.NOK:
            self.echo(f"Error: {response.get_string(MESSAGE_ARGUMENT)}")
        return response.type == CommandType.OK

    def send_command(self, command: Command) -> bool:
        """
        Encrypt, send and validate one round trip.

        Returns:
            True on OK, False on NOK (already reported to the user)

        Raises:
            BadResponse: server answered something other than OK or NOK
            SocketException: transport failure
        """
        command.encrypt()
        try:
            self.socket_out.write(command.serialize() + "\n")
            self.socket_out.flush()
        except OSError as e:
            raise SocketException(str(e)) from e

        logger.debug("[>] Sent: %s", command.type.value)
        response = Command.parse(self.read_line())
        if response.type not in (CommandType.OK, CommandType.NOK):
            raise BadResponse(response.type.value)
        return self.is_accepted(response)

    def execute(self, command: Command) -> bool:
        """
        Run one parsed command.

        Returns:
            False once the user asked to quit
        """
        if command.type == CommandType.PING:
            if self.send_command(command):
                self.echo("PONG")

        elif command.type in (CommandType.REGISTER, CommandType.LOGIN,
                              CommandType.DISCONNECT, CommandType.ADD,
                              CommandType.REMOVE):
            self.send_command(command)

        elif command.type == CommandType.GET:
            if not self.send_command(command):
                return True
            password = command.decrypt(self.read_line())
            self.echo(f"Password : {password}")

        elif command.type == CommandType.GENERATE:
            generated = generate_password(command.get_int("length"), command.get_bool("special"))
            self.echo(f"Password : {generated}")
            if command.get_bool("store"):
                arguments = dict(command.arguments)
                arguments[PASSWORD_ARGUMENT] = generated
                self.send_command(Command(type=CommandType.ADD, arguments=arguments))

        elif command.type == CommandType.HELP:
            self.echo(HELP_TEXT)

        elif command.type == CommandType.QUIT:
            return False

        else:
            # OK / NOK are responses, not something a user sends
            raise BadResponse(command.type.value)

        return True

    def run(self) -> None:
        """Read commands until QUIT or end of input"""
        self.echo(BANNER)

        for line in self.keyboard_in:
            if not line.strip():
                continue
            try:
                if not self.execute(Command.parse(line)):
                    break
            except SocketException:
                raise
            except PassSecureError as e:
                print(e, file=sys.stderr)


class VaultClient:
    """PassVault Client"""

    def __init__(self, host='localhost', port=6433):
        self.host = host
        self.port = port
        self.socket = None

    def connect(self):
        """Connect to the server"""
        try:
            self.socket = socket.create_connection((self.host, self.port))
            logger.info("Connected to server at %s:%s", self.host, self.port)
            return True
        except OSError as e:
            logger.error("Connection failed: %s", e)
            return False

    def run(self, keyboard_in=None):
        """Main client workflow"""
        if not self.connect():
            return 1

        try:
            with self.socket.makefile('r', encoding='utf-8', newline='\n') as socket_in, \
                    self.socket.makefile('w', encoding='utf-8', newline='\n') as socket_out:
                Repl(keyboard_in or sys.stdin, socket_in, socket_out).run()
        except SocketException as e:
            logger.error("Connection lost: %s", e.detail)
            return 1
        except KeyboardInterrupt:
            logger.warning("Disconnecting...")
        finally:
            self.disconnect()
        return 0

    def disconnect(self):
        if self.socket:
            self.socket.close()
            logger.info("Closing connection")


def main(argv=None):
    """Main entry point"""
    parser = argparse.ArgumentParser(description="Start the PassVault client.")
    parser.add_argument("-H", "--host", help="Host to connect to (default: localhost).")
    parser.add_argument("-p", "--port", type=int, help="Port to use (default: 6433).")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR.")
    args = parser.parse_args(argv)

    settings = init_settings(load_settings(**vars(args)))
    setup_logger(settings)

    client = VaultClient(host=settings.host, port=settings.port)
    sys.exit(client.run())


if __name__ == "__main__":
    main()
