"""Channel：handshake 成功后产出的、已校验并已连接的字节流句柄。"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from hotspot_attach.errors import ChannelClosedError
from hotspot_attach.pids import ResolvedPids
from hotspot_attach.primitives import AttachPrimitives

if TYPE_CHECKING:  # pragma: no cover
    from hotspot_attach.handshake import HandshakeReport

logger = logging.getLogger(__name__)


class Channel:
    """
    绑定到单个目标的双向字节流。

    说明：
    - 生命周期内独占一个 socket fd；只由 HandshakeEngine 在完整校验并连接后创建；
    - `close()` 幂等；关闭后的读写抛 `ChannelClosedError`。
    """

    def __init__(
        self,
        *,
        fd: int,
        socket_path: str,
        pids: ResolvedPids,
        primitives: AttachPrimitives,
        report: Optional["HandshakeReport"] = None,
    ) -> None:
        self._fd: Optional[int] = fd
        self._primitives = primitives
        self.socket_path = socket_path
        self.pids = pids
        self.report = report

    @property
    def closed(self) -> bool:
        return self._fd is None

    def _require_fd(self) -> int:
        if self._fd is None:
            raise ChannelClosedError(
                "Channel is closed",
                details={"socket_path": self.socket_path, "host_pid": self.pids.host.value},
            )
        return self._fd

    def fileno(self) -> int:
        """底层 fd（仅供 select/poll 等使用；所有权仍归 Channel）。"""

        return self._require_fd()

    def read(self, size: int = 8192) -> bytes:
        """读取最多 size 字节；对端关闭时返回 b""。"""

        return self._primitives.read(self._require_fd(), size)

    def write(self, data: bytes) -> int:
        """写入一次，返回实际写入的字节数。"""

        return self._primitives.write(self._require_fd(), data)

    def write_all(self, data: bytes) -> None:
        """写入全部数据（处理部分写）。"""

        view = memoryview(data)
        while view:
            n = self.write(bytes(view))
            view = view[n:]

    def close(self) -> None:
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        logger.debug("closing channel to %s (fd=%d)", self.socket_path, fd)
        self._primitives.close(fd)

    def __enter__(self) -> "Channel":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[no-untyped-def]
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<Channel {self.socket_path} host_pid={self.pids.host.value} {state}>"
