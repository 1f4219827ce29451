import socket
from urllib.parse import urlparse


class RedisProtocolError(RuntimeError):
    pass


class RedisClient:
    """Minimal RESP client: one short-lived connection per command.

    AUTH and SELECT are pipelined ahead of the command in a single write.
    """

    def __init__(self, redis_url: str, timeout_s: float = 1.0) -> None:
        parsed = urlparse(redis_url)
        if parsed.scheme != "redis" or not parsed.hostname:
            raise ValueError("REDIS_URL must use redis:// scheme and include a host")

        self.host = parsed.hostname
        self.port = parsed.port or 6379
        self.db = int(parsed.path.removeprefix("/") or 0)
        self.password = parsed.password
        self.timeout_s = timeout_s

    def _preamble(self) -> list[tuple[str, ...]]:
        commands: list[tuple[str, ...]] = []
        if self.password:
            commands.append(("AUTH", self.password))
        if self.db:
            commands.append(("SELECT", str(self.db)))
        return commands

    def execute(self, *parts: str) -> object:
        commands = [*self._preamble(), parts]
        with socket.create_connection((self.host, self.port), timeout=self.timeout_s) as conn:
            conn.sendall(b"".join(encode_command(*command) for command in commands))
            reader = RespReader(conn)
            replies = [reader.reply() for _ in commands]
        return replies[-1]

    def ping(self) -> bool:
        return self.execute("PING") == "PONG"

    def delete(self, *keys: str) -> int:
        result = self.execute("DEL", *keys)
        if not isinstance(result, int):
            raise RedisProtocolError("Unexpected Redis DEL response")
        return result


def encode_command(*parts: str) -> bytes:
    chunks = [f"*{len(parts)}\r\n".encode()]
    for part in parts:
        data = str(part).encode()
        chunks.append(b"$%d\r\n%s\r\n" % (len(data), data))
    return b"".join(chunks)


class RespReader:
    """Buffered RESP2 reply decoder over a socket-like object."""

    def __init__(self, conn: socket.socket, chunk_size: int = 4096) -> None:
        self._conn = conn
        self._chunk_size = chunk_size
        self._buffer = bytearray()

    def _fill(self) -> None:
        chunk = self._conn.recv(self._chunk_size)
        if not chunk:
            raise RedisProtocolError("Redis connection closed")
        self._buffer.extend(chunk)

    def _line(self) -> bytes:
        end = self._buffer.find(b"\r\n")
        while end < 0:
            self._fill()
            end = self._buffer.find(b"\r\n")
        line = bytes(self._buffer[:end])
        del self._buffer[: end + 2]
        return line

    def _bulk(self, size: int) -> bytes:
        while len(self._buffer) < size + 2:
            self._fill()
        if self._buffer[size : size + 2] != b"\r\n":
            raise RedisProtocolError("Redis bulk reply missing terminator")
        data = bytes(self._buffer[:size])
        del self._buffer[: size + 2]
        return data

    def reply(self) -> object:
        line = self._line()
        kind, body = line[:1], line[1:]

        if kind == b"+":
            return body.decode()
        if kind == b"-":
            raise RedisProtocolError(body.decode())
        if kind == b":":
            return int(body)
        if kind == b"$":
            size = int(body)
            return None if size < 0 else self._bulk(size).decode()
        if kind == b"*":
            length = int(body)
            return None if length < 0 else [self.reply() for _ in range(length)]

        raise RedisProtocolError(f"Unsupported Redis reply type {kind!r}")
