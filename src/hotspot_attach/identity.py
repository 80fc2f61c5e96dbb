"""目标标识（origin + 原始 pid 字符串），构造期完成 pid 校验。"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from hotspot_attach.errors import InvalidIdentifierError
from hotspot_attach.pids import HostPid

_PID_RE = re.compile(r"^\+?[0-9]+$")
# 与 32 位有符号整数一致；超出即视为非法标识
_MAX_PID = 2**31 - 1


def parse_pid(raw_identifier: str) -> int:
    """
    将原始标识解析为正整数 pid。

    参数：
    - raw_identifier：调用方给出的目标标识

    异常：
    - InvalidIdentifierError：非数字、非正数或超出范围
    """

    text = raw_identifier if isinstance(raw_identifier, str) else ""
    if not _PID_RE.match(text):
        raise InvalidIdentifierError(
            f"Invalid process identifier: {raw_identifier!r}",
            details={"raw_identifier": str(raw_identifier)},
        )
    pid = int(text)
    if pid < 1 or pid > _MAX_PID:
        raise InvalidIdentifierError(
            f"Invalid process identifier: {raw_identifier!r}",
            details={"raw_identifier": raw_identifier},
        )
    return pid


@dataclass(frozen=True)
class TargetIdentity:
    """
    一次 attach 尝试的不可变标识。

    字段：
    - origin：发起方标签（通常是 provider 名称）
    - raw_identifier：原始 pid 字符串

    说明：
    - 只校验格式；进程是否存在留给 handshake 阶段判断。
    """

    origin: str
    raw_identifier: str
    _pid: int = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.origin, str) or not self.origin.strip():
            raise InvalidIdentifierError("origin tag must be a non-empty string", details={"origin": str(self.origin)})
        object.__setattr__(self, "_pid", parse_pid(self.raw_identifier))

    @property
    def host_pid(self) -> HostPid:
        """解析后的 host pid。"""

        return HostPid(self._pid)
