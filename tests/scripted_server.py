"""Scripted in-process FTP server for unit tests.

A small, single-connection FTP server on raw sockets with an in-memory
filesystem. Individual commands can be given canned replies, and the
terminal 226 of a transfer can be suppressed to exercise completion
handling.
"""

import posixpath
import socket
import threading
from typing import Dict, List, Optional, Set


class ScriptedFTPServer:
    """
    Threaded FTP server for driving the client in tests.

    Usage:
        with ScriptedFTPServer(files={"/a.txt": b"hi"}) as server:
            client.connect(server.host, server.port, "alice", "secret")
            assert server.files["/a.txt"] == b"hi"
    """

    DEFAULT_USER = "alice"
    DEFAULT_PASS = "secret"

    def __init__(
        self,
        username: str = DEFAULT_USER,
        password: str = DEFAULT_PASS,
        files: Optional[Dict[str, bytes]] = None,
        dirs: Optional[Set[str]] = None,
    ):
        self.username = username
        self.password = password
        self.files: Dict[str, bytes] = dict(files or {})
        self.dirs: Set[str] = {"/"} | set(dirs or ())
        for path in self.files:
            self._add_parents(path)

        # Knobs
        self.greeting: List[str] = ["220 Scripted FTP server ready"]
        self.user_reply: Optional[str] = None
        self.replies: Dict[str, List[str]] = {}
        self.send_transfer_reply = True
        self.mdtm_value = "20240102030405"

        # Observations
        self.commands: List[str] = []
        self.connections = 0

        self.cwd = "/"
        self._listener: Optional[socket.socket] = None
        self._conn: Optional[socket.socket] = None
        self._data_listener: Optional[socket.socket] = None
        self._user: Optional[str] = None
        self._rename_from: Optional[str] = None
        self._thread: Optional[threading.Thread] = None
        self._running = False

    @property
    def host(self) -> str:
        return "127.0.0.1"

    @property
    def port(self) -> int:
        return self._listener.getsockname()[1]

    def verbs(self) -> List[str]:
        """Command verbs received so far, in order."""
        return [command.split(" ", 1)[0].upper() for command in self.commands]

    def start(self) -> None:
        self._listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._listener.bind((self.host, 0))
        self._listener.listen(1)
        self._listener.settimeout(0.2)
        self._running = True
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._running = False
        if self._conn is not None:
            try:
                self._conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
        if self._data_listener is not None:
            self._data_listener.close()
        if self._thread is not None:
            self._thread.join(timeout=2)
        if self._listener is not None:
            self._listener.close()

    def __enter__(self) -> "ScriptedFTPServer":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    # Server loop

    def _serve(self) -> None:
        while self._running:
            try:
                conn, _ = self._listener.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            self.connections += 1
            self.cwd = "/"
            self._conn = conn
            try:
                self._handle(conn)
            except OSError:
                pass
            finally:
                conn.close()
                self._conn = None

    def _handle(self, conn: socket.socket) -> None:
        for line in self.greeting:
            self._reply(line)

        reader = conn.makefile("rb")
        while self._running:
            raw = reader.readline()
            if not raw:
                return
            command = raw.decode("utf-8").rstrip("\r\n")
            self.commands.append(command)
            verb, _, arg = command.partition(" ")
            verb = verb.upper()

            if verb in self.replies:
                self._canned(verb)
                continue

            handler = getattr(self, f"_cmd_{verb.lower()}", None)
            if handler is None:
                self._reply("502 Command not implemented")
                continue
            if handler(arg) is False:
                return

    def _reply(self, line: str) -> None:
        self._conn.sendall(f"{line}\r\n".encode("utf-8"))

    def _canned(self, verb: str) -> None:
        for line in self.replies[verb]:
            self._reply(line)
        if verb in ("STOR", "RETR", "LIST") and self._data_listener is not None:
            # Let the client finish with the data connection, then drop it
            data = self._accept_data()
            if data is not None:
                if verb == "STOR":
                    self._drain(data)
                data.close()

    # Paths

    def _resolve(self, arg: str) -> str:
        return posixpath.normpath(posixpath.join(self.cwd, arg or "."))

    def _add_parents(self, path: str) -> None:
        parent = posixpath.dirname(path)
        while parent not in self.dirs:
            self.dirs.add(parent)
            parent = posixpath.dirname(parent)

    def _children(self, directory: str) -> List[str]:
        entries = [p for p in self.dirs | set(self.files) if p != "/" and posixpath.dirname(p) == directory]
        return sorted(entries)

    # Commands

    def _cmd_user(self, arg: str) -> None:
        self._user = arg
        self._reply(self.user_reply or f"331 Password required for {arg}")

    def _cmd_pass(self, arg: str) -> None:
        if self._user == self.username and arg == self.password:
            self._reply("230 User logged in")
        else:
            self._reply("530 Login incorrect")

    def _cmd_type(self, arg: str) -> None:
        self._reply(f"200 Type set to {arg}")

    def _cmd_noop(self, arg: str) -> None:
        self._reply("200 NOOP ok")

    def _cmd_pwd(self, arg: str) -> None:
        self._reply(f'257 "{self.cwd}" is the current directory')

    def _cmd_cwd(self, arg: str) -> None:
        path = self._resolve(arg)
        if path in self.dirs:
            self.cwd = path
            self._reply(f'250 "{path}" is the current directory')
        else:
            self._reply(f"550 {arg}: No such file or directory")

    def _cmd_mkd(self, arg: str) -> None:
        path = self._resolve(arg)
        if path in self.dirs or path in self.files:
            self._reply(f"550 {arg}: File exists")
        elif posixpath.dirname(path) not in self.dirs:
            self._reply(f"550 {arg}: No such file or directory")
        else:
            self.dirs.add(path)
            self._reply(f'257 "{path}" directory created')

    def _cmd_rmd(self, arg: str) -> None:
        path = self._resolve(arg)
        if path not in self.dirs or path == "/":
            self._reply(f"550 {arg}: No such directory")
        elif self._children(path):
            self._reply(f"550 {arg}: Directory not empty")
        else:
            self.dirs.discard(path)
            self._reply("250 Directory removed")

    def _cmd_dele(self, arg: str) -> None:
        path = self._resolve(arg)
        if self.files.pop(path, None) is None:
            self._reply(f"550 {arg}: No such file")
        else:
            self._reply("250 File deleted")

    def _cmd_rnfr(self, arg: str) -> None:
        path = self._resolve(arg)
        if path in self.files or path in self.dirs:
            self._rename_from = path
            self._reply("350 Ready for destination name")
        else:
            self._reply(f"550 {arg}: No such file or directory")

    def _cmd_rnto(self, arg: str) -> None:
        source, self._rename_from = self._rename_from, None
        if source is None:
            self._reply("503 Bad sequence of commands")
            return
        target = self._resolve(arg)
        if source in self.files:
            self.files[target] = self.files.pop(source)
        else:
            self.dirs.discard(source)
            self.dirs.add(target)
        self._reply("250 Rename successful")

    def _cmd_size(self, arg: str) -> None:
        path = self._resolve(arg)
        if path in self.files:
            self._reply(f"213 {len(self.files[path])}")
        else:
            self._reply(f"550 {arg}: No such file")

    def _cmd_mdtm(self, arg: str) -> None:
        path = self._resolve(arg)
        if path in self.files:
            self._reply(f"213 {self.mdtm_value}")
        else:
            self._reply(f"550 {arg}: No such file")

    def _cmd_site(self, arg: str) -> None:
        if arg.upper() == "HELP":
            self._reply("214-The following SITE commands are recognized")
            self._reply(" CHMOD HELP")
            self._reply("214 Help OK")
        else:
            self._reply(f"200 SITE {arg} ok")

    def _cmd_quit(self, arg: str) -> bool:
        self._reply("221 Goodbye")
        return False

    def _cmd_pasv(self, arg: str) -> None:
        if self._data_listener is not None:
            self._data_listener.close()
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        listener.bind((self.host, 0))
        listener.listen(1)
        listener.settimeout(5)
        self._data_listener = listener
        port = listener.getsockname()[1]
        self._reply(f"227 Entering Passive Mode (127,0,0,1,{port // 256},{port % 256}).")

    def _cmd_stor(self, arg: str) -> None:
        path = self._resolve(arg)
        if posixpath.dirname(path) not in self.dirs:
            self._reply(f"553 {arg}: No such file or directory")
            data = self._accept_data()
            if data is not None:
                self._drain(data)
                data.close()
            return
        data = self._accept_data()
        if data is None:
            return
        self._reply("150 Opening BINARY mode data connection")
        self.files[path] = self._drain(data)
        data.close()
        self._finish_transfer()

    def _cmd_retr(self, arg: str) -> None:
        path = self._resolve(arg)
        if path not in self.files:
            self._reply(f"550 {arg}: No such file")
            data = self._accept_data()
            if data is not None:
                data.close()
            return
        data = self._accept_data()
        if data is None:
            return
        self._reply(f"150 Opening BINARY mode data connection ({len(self.files[path])} bytes)")
        data.sendall(self.files[path])
        data.close()
        self._finish_transfer()

    def _cmd_list(self, arg: str) -> None:
        path = self._resolve(arg)
        data = self._accept_data()
        if data is None:
            return
        self._reply("150 Here comes the directory listing")
        lines = ["total 0"]
        for child in self._children(path):
            name = posixpath.basename(child)
            if child in self.dirs:
                lines.append(f"drwxr-xr-x    2 ftp      ftp          4096 Jan 01  2024 {name}")
            else:
                size = len(self.files[child])
                lines.append(f"-rw-r--r--    1 ftp      ftp      {size:>8} Jan 01  2024 {name}")
        data.sendall(("\r\n".join(lines) + "\r\n").encode("utf-8"))
        data.close()
        self._finish_transfer()

    # Data connection

    def _accept_data(self) -> Optional[socket.socket]:
        listener, self._data_listener = self._data_listener, None
        if listener is None:
            self._reply("425 Use PASV first")
            return None
        try:
            data, _ = listener.accept()
        except OSError:
            self._reply("425 Can't open data connection")
            return None
        finally:
            listener.close()
        data.settimeout(5)
        return data

    @staticmethod
    def _drain(data: socket.socket) -> bytes:
        chunks = []
        while True:
            chunk = data.recv(65536)
            if not chunk:
                return b"".join(chunks)
            chunks.append(chunk)

    def _finish_transfer(self) -> None:
        if self.send_transfer_reply:
            self._reply("226 Transfer complete")


def read_command(server_end: socket.socket) -> str:
    """Read one CRLF-terminated command from the server end of a socket pair."""
    data = b""
    while not data.endswith(b"\r\n"):
        chunk = server_end.recv(1)
        if not chunk:
            break
        data += chunk
    return data.decode("utf-8").rstrip("\r\n")
