# Tests for the connection dispatcher
#
# Coverage:
#   - dispatch(): OK / NOK mapping for every command type
#   - Malformed lines answered with NOK, loop continues
#   - End-to-end over a loopback socket with a worker pool
#   - One live login per username across connections

import socket
import time

import pytest

from passvault.server import dispatch, is_terminal, parse_arguments


class TestDispatch:

    def test_scenario(self, session):
        lines = [
            "REGISTER --username alice --password hunter2",
            "DISCONNECT",
            "LOGIN --username alice --password hunter2",
            "ADD --name bank --password p4ss",
            "GET --name bank",
        ]
        responses = [dispatch(session, line) for line in lines]
        assert responses == [["OK"], ["OK"], ["OK"], ["OK"], ["OK", "p4ss"]]

    def test_ping(self, session):
        assert dispatch(session, "PING") == ["OK"]

    def test_unknown_command(self, session):
        assert dispatch(session, "FETCH --name bank") == ["NOK --message invalid_command"]

    def test_empty_line(self, session):
        assert dispatch(session, "\n") == ["NOK --message invalid_argument"]

    @pytest.mark.parametrize("line", ["GENERATE --length 10", "HELP", "OK", "NOK --message x"])
    def test_client_side_commands_are_rejected(self, session, line):
        assert dispatch(session, line) == ["NOK --message invalid_command"]

    @pytest.mark.parametrize("line", [
        "REGISTER --username alice",
        "LOGIN --password hunter2",
        "REGISTER --username  --password hunter2",
    ])
    def test_missing_credentials(self, session, line):
        assert dispatch(session, line) == ["NOK --message invalid_argument"]

    def test_anonymous_get(self, session):
        assert dispatch(session, "GET --name bank") == ["NOK --message unauthorized"]

    def test_missing_entry_name(self, session):
        dispatch(session, "REGISTER --username alice --password hunter2")
        assert dispatch(session, "ADD --password p4ss") == ["NOK --message invalid_argument"]

    def test_entry_errors(self, session):
        dispatch(session, "REGISTER --username alice --password hunter2")
        assert dispatch(session, "GET --name nothing") == ["NOK --message entry_not_found"]
        assert dispatch(session, "ADD --name site --password secret") == ["OK"]
        assert dispatch(session, "ADD --name site --password other") == [
            "NOK --message entry_already_exists"
        ]
        assert dispatch(session, "ADD --name site --password other --overwrite") == ["OK"]
        assert dispatch(session, "GET --name site") == ["OK", "other"]
        assert dispatch(session, "REMOVE --name site") == ["OK"]
        assert dispatch(session, "REMOVE --name site") == ["NOK --message entry_not_found"]

    def test_traversal(self, session):
        dispatch(session, "REGISTER --username alice --password hunter2")
        assert dispatch(session, "GET --name ../../x") == ["NOK --message unauthorized"]

    def test_authentication_errors(self, session):
        dispatch(session, "REGISTER --username alice --password hunter2")
        assert dispatch(session, "LOGIN --username alice --password hunter2") == [
            "NOK --message user_already_connected"
        ]
        dispatch(session, "DISCONNECT")
        assert dispatch(session, "LOGIN --username alice --password nope") == [
            "NOK --message invalid_credentials"
        ]
        assert dispatch(session, "REGISTER --username alice --password x") == [
            "NOK --message user_already_exists"
        ]

    def test_disconnect_when_anonymous(self, session):
        assert dispatch(session, "DISCONNECT") == ["OK"]

    def test_undecoded_lines(self, session):
        assert dispatch(session, b"PING\r\n") == ["OK"]
        assert dispatch(session, b"PING --x \xff\xfe\n") == ["NOK --message invalid_argument"]

    def test_nul_byte_in_arguments(self, session):
        assert dispatch(session, "REGISTER --username a\x00b --password pw") == [
            "NOK --message invalid_argument"
        ]
        dispatch(session, "REGISTER --username alice --password hunter2")
        assert dispatch(session, "GET --name a\x00b") == ["NOK --message invalid_argument"]

    def test_is_terminal(self):
        assert is_terminal("QUIT\n")
        assert is_terminal(b"QUIT\n")
        assert not is_terminal(b"\xffQUIT\n")
        assert not is_terminal("QUITE")
        assert not is_terminal("PING")


class Connection:
    """Line-oriented test client"""

    def __init__(self, address):
        self.sock = socket.create_connection(address, timeout=10)
        self.reader = self.sock.makefile("r", encoding="utf-8", newline="\n")
        self.writer = self.sock.makefile("w", encoding="utf-8", newline="\n")

    def send(self, line):
        self.writer.write(line + "\n")
        self.writer.flush()

    def recv(self):
        return self.reader.readline().rstrip("\n")

    def send_raw(self, data):
        self.sock.sendall(data)

    def request(self, line):
        self.send(line)
        return self.recv()

    def close(self):
        self.reader.close()
        self.writer.close()
        self.sock.close()


@pytest.fixture
def connect(server):
    opened = []

    def _connect():
        conn = Connection(server.address)
        opened.append(conn)
        return conn

    yield _connect
    for conn in opened:
        conn.close()


class TestOverSocket:

    def test_scenario(self, connect):
        conn = connect()
        assert conn.request("REGISTER --username alice --password hunter2") == "OK"
        assert conn.request("DISCONNECT") == "OK"
        assert conn.request("LOGIN --username alice --password hunter2") == "OK"
        assert conn.request("ADD --name bank --password p4ss") == "OK"
        assert conn.request("GET --name bank") == "OK"
        assert conn.recv() == "p4ss"

    def test_malformed_line_keeps_connection(self, connect):
        conn = connect()
        assert conn.request("garbage") == "NOK --message invalid_command"
        assert conn.request("PING") == "OK"

    def test_invalid_utf8_keeps_connection(self, connect):
        conn = connect()
        conn.send_raw(b"PING --x \xff\xfe\n")
        assert conn.recv() == "NOK --message invalid_argument"
        assert conn.request("PING") == "OK"

    def test_nul_byte_keeps_connection(self, connect):
        conn = connect()
        assert conn.request("REGISTER --username al\x00ice --password pw") == (
            "NOK --message invalid_argument"
        )
        assert conn.request("REGISTER --username alice --password pw") == "OK"
        assert conn.request("ADD --name a\x00b --password x") == "NOK --message invalid_argument"
        assert conn.request("PING") == "OK"

    def test_quit_closes_connection(self, connect):
        conn = connect()
        assert conn.request("QUIT") == "OK"
        assert conn.recv() == ""

    def test_one_login_per_user(self, connect):
        first = connect()
        assert first.request("REGISTER --username alice --password hunter2") == "OK"

        second = connect()
        assert second.request("LOGIN --username alice --password hunter2") == (
            "NOK --message user_already_connected"
        )

        assert first.request("QUIT") == "OK"
        assert first.recv() == ""
        assert second.request("LOGIN --username alice --password hunter2") == "OK"

    def test_close_releases_login(self, connect, server):
        first = connect()
        assert first.request("REGISTER --username alice --password hunter2") == "OK"
        first.close()

        second = connect()
        for _ in range(50):
            response = second.request("LOGIN --username alice --password hunter2")
            if response == "OK":
                break
            time.sleep(0.05)
        assert response == "OK"


class TestArguments:

    def test_cli_overrides(self, tmp_path):
        settings = parse_arguments(["--port", "7001", "--vault", str(tmp_path), "-t", "3"])
        assert settings.port == 7001
        assert settings.vault_root == tmp_path
        assert settings.workers == 3

    def test_defaults(self, monkeypatch):
        for name in ("SERVER_PORT", "PASSVAULT_WORKERS", "PASSVAULT_VAULT"):
            monkeypatch.delenv(name, raising=False)
        settings = parse_arguments([])
        assert settings.port == 6433
        assert settings.workers == 5
