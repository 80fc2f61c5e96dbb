"""
host pid / inner pid 的类型区分。

说明：
- host pid：调用方进程表里看到的 pid；用于 `/proc/<pid>/...` 目录遍历与发送信号；
- inner pid：目标进程在自己的 pid namespace 里看到的 pid；用于 socket/trigger 文件名；
- 两者是不同类型，禁止在 resolver 之后以一个含糊的 `pid: int` 在系统中流动。
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class HostPid:
    """调用方视角的目标 pid。"""

    value: int

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class InnerPid:
    """目标进程自身视角（最内层 pid namespace）的 pid。"""

    value: int

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class ResolvedPids:
    """一次 handshake 使用的 pid 对。"""

    host: HostPid
    inner: InnerPid

    @property
    def namespaced(self) -> bool:
        """目标是否运行在独立 pid namespace 中（host 与 inner 不同）。"""

        return self.host.value != self.inner.value
