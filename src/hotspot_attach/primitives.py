"""
OS 原语边界（socket / signal / stat / 文件）。

说明：
- handshake engine 只依赖 `AttachPrimitives` 协议；测试可注入 fake 实现；
- `PosixPrimitives` 直接使用 `os` / `socket` / `signal`，不做额外语义包装，
  失败以 `OSError` 形式抛出，由调用方映射为 attach 错误类型。
"""

from __future__ import annotations

import os
import signal
import socket
from typing import Protocol, Tuple, runtime_checkable


@runtime_checkable
class AttachPrimitives(Protocol):
    """handshake 依赖的最小 OS 能力集合。"""

    def path_exists(self, path: str) -> bool: ...

    def create_trigger_file(self, path: str) -> bool: ...

    def canonical_path(self, path: str) -> str: ...

    def remove_file(self, path: str) -> None: ...

    def send_wake_signal(self, pid: int) -> None: ...

    def stat_owner_and_mode(self, path: str) -> Tuple[int, int]: ...

    def effective_uid(self) -> int: ...

    def open_unix_socket(self) -> int: ...

    def connect(self, fd: int, path: str) -> None: ...

    def read(self, fd: int, size: int) -> bytes: ...

    def write(self, fd: int, data: bytes) -> int: ...

    def close(self, fd: int) -> None: ...


class PosixPrimitives:
    """基于标准库的 POSIX 实现。"""

    def path_exists(self, path: str) -> bool:
        return os.path.exists(path)

    def create_trigger_file(self, path: str) -> bool:
        """
        创建 trigger file；返回本次是否真正创建了它。

        说明：
        - 创建时不做规范化：经 `/proc/<pid>/cwd` 的符号链接解析会破坏容器内的创建；
        - 文件已存在视为“trigger 已就位”，返回 False（不归本次所有，不得删除）。
        """

        try:
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        except FileExistsError:
            return False
        os.close(fd)
        return True

    def canonical_path(self, path: str) -> str:
        return os.path.realpath(path)

    def remove_file(self, path: str) -> None:
        os.unlink(path)

    def send_wake_signal(self, pid: int) -> None:
        os.kill(pid, signal.SIGQUIT)

    def stat_owner_and_mode(self, path: str) -> Tuple[int, int]:
        st = os.stat(path)
        return st.st_uid, st.st_mode

    def effective_uid(self) -> int:
        return os.geteuid()

    def open_unix_socket(self) -> int:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        return sock.detach()

    def connect(self, fd: int, path: str) -> None:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM, fileno=fd)
        try:
            sock.connect(path)
        finally:
            sock.detach()

    def read(self, fd: int, size: int) -> bytes:
        return os.read(fd, size)

    def write(self, fd: int, data: bytes) -> int:
        return os.write(fd, data)

    def close(self, fd: int) -> None:
        os.close(fd)
