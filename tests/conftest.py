from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

import pytest

from hotspot_attach.config.loader import AttachConfig, PathsConfig

SOCKET_MODE_0600 = 0o140600


class FakePrimitives:
    """内存版 OS 原语：记录所有调用，便于断言副作用。"""

    def __init__(self, *, euid: int = 1000) -> None:
        self.euid = euid
        self.files: Dict[str, Tuple[int, int]] = {}
        self.unwritable: Set[str] = set()
        self.unremovable: Set[str] = set()
        self.canonical: Dict[str, str] = {}
        self.created: List[str] = []
        self.removed: List[str] = []
        self.signals: List[int] = []
        self.stats: List[str] = []
        self.connects: List[Tuple[int, str]] = []
        self.closed: List[int] = []
        self.open_fds: Set[int] = set()
        self.signal_error: Optional[OSError] = None
        self.connect_error: Optional[OSError] = None
        self.inbox: List[bytes] = []
        self.sent = b""
        self.write_limit: Optional[int] = None
        self._next_fd = 10

    def add_socket(self, path: str, *, uid: Optional[int] = None, mode: int = SOCKET_MODE_0600) -> None:
        self.files[path] = (self.euid if uid is None else uid, mode)

    def path_exists(self, path: str) -> bool:
        return path in self.files

    def create_trigger_file(self, path: str) -> bool:
        if path in self.unwritable:
            raise PermissionError(13, "Permission denied", path)
        if path in self.files:
            return False
        self.files[path] = (self.euid, 0o100600)
        self.created.append(path)
        return True

    def canonical_path(self, path: str) -> str:
        return self.canonical.get(path, path)

    def remove_file(self, path: str) -> None:
        if path in self.unremovable:
            raise PermissionError(13, "Permission denied", path)
        if path not in self.files:
            raise FileNotFoundError(2, "No such file or directory", path)
        del self.files[path]
        self.removed.append(path)

    def send_wake_signal(self, pid: int) -> None:
        if self.signal_error is not None:
            raise self.signal_error
        self.signals.append(pid)

    def stat_owner_and_mode(self, path: str) -> Tuple[int, int]:
        self.stats.append(path)
        if path not in self.files:
            raise FileNotFoundError(2, "No such file or directory", path)
        return self.files[path]

    def effective_uid(self) -> int:
        return self.euid

    def open_unix_socket(self) -> int:
        fd = self._next_fd
        self._next_fd += 1
        self.open_fds.add(fd)
        return fd

    def connect(self, fd: int, path: str) -> None:
        self.connects.append((fd, path))
        if self.connect_error is not None:
            raise self.connect_error

    def read(self, fd: int, size: int) -> bytes:
        assert fd in self.open_fds
        if not self.inbox:
            return b""
        chunk = self.inbox.pop(0)
        return chunk[:size]

    def write(self, fd: int, data: bytes) -> int:
        assert fd in self.open_fds
        n = len(data) if self.write_limit is None else min(len(data), self.write_limit)
        self.sent += data[:n]
        return n

    def close(self, fd: int) -> None:
        self.open_fds.discard(fd)
        self.closed.append(fd)


class FakeSleep:
    """记录每次等待；累计达到 appear_after_ms 时让 socket 出现。"""

    def __init__(
        self,
        primitives: Optional[FakePrimitives] = None,
        *,
        socket_path: Optional[str] = None,
        appear_after_ms: Optional[int] = None,
    ) -> None:
        self._primitives = primitives
        self._socket_path = socket_path
        self._appear_after_ms = appear_after_ms
        self.calls_ms: List[int] = []

    @property
    def total_ms(self) -> int:
        return sum(self.calls_ms)

    def __call__(self, seconds: float) -> None:
        self.calls_ms.append(int(round(seconds * 1000)))
        if (
            self._primitives is not None
            and self._socket_path is not None
            and self._appear_after_ms is not None
            and self.total_ms >= self._appear_after_ms
        ):
            self._primitives.add_socket(self._socket_path)


def write_status(procfs_root: Path, pid: int, text: str) -> Path:
    d = procfs_root / str(pid)
    d.mkdir(parents=True, exist_ok=True)
    p = d / "status"
    p.write_text(text, encoding="utf-8")
    return p


@pytest.fixture
def procfs_root(tmp_path: Path) -> Path:
    root = tmp_path / "proc"
    root.mkdir()
    return root


@pytest.fixture
def config(procfs_root: Path) -> AttachConfig:
    return AttachConfig(paths=PathsConfig(procfs_root=str(procfs_root)))


@pytest.fixture
def fake_os() -> FakePrimitives:
    return FakePrimitives()
