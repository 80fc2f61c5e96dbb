"""
attach 错误分类（异常类型）。

说明：
- 所有错误都是“单次 handshake 的终态”，engine 内部不做重试（唯一例外是轮询中的一次补发唤醒信号）；
- 每个错误都携带稳定的英文 `code/message` 与结构化 `details`（pid/path/elapsed_ms 等），
  便于调用方在不重跑的前提下定位问题。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict


@dataclass(frozen=True)
class AttachIssue:
    """结构化问题对象（可直接 JSON 输出）。"""

    code: str
    message: str
    details: Dict[str, Any]


class AttachError(Exception):
    """attach 错误基类（英文 `code/message/details`）。"""

    default_code = "ATTACH_ERROR"

    def __init__(self, message: str, *, code: str | None = None, details: Dict[str, Any] | None = None) -> None:
        """创建 attach 错误。

        参数：
        - `message`：英文错误消息
        - `code`：稳定错误码（缺省为子类的 `default_code`）
        - `details`：结构化上下文信息
        """

        super().__init__(message)
        self.code = code or self.default_code
        self.message = message
        self.details: Dict[str, Any] = details or {}

    def __str__(self) -> str:
        """返回用于日志的字符串表示。"""

        return f"{self.code}: {self.message}"

    def to_issue(self) -> AttachIssue:
        """把异常转换为可序列化问题对象。"""

        return AttachIssue(code=self.code, message=self.message, details=dict(self.details))


class InvalidIdentifierError(AttachError):
    """目标标识不是正整数 pid（构造期失败，不触碰 OS）。"""

    default_code = "INVALID_IDENTIFIER"


class SelfAttachError(AttachError):
    """试图 attach 到 pid 0 或当前进程自身，且未开启 allow_attach_self。"""

    default_code = "SELF_ATTACH_REFUSED"


class NamespaceResolutionError(AttachError):
    """进程 status 文件存在但无法读取/解析（区别于“进程不存在”）。"""

    default_code = "NAMESPACE_RESOLUTION_FAILED"


class TriggerCreationError(AttachError):
    """主位置与 fallback 位置都无法创建 trigger file。"""

    default_code = "TRIGGER_CREATION_FAILED"


class SignalDeliveryError(AttachError):
    """唤醒信号无法送达（进程不存在或权限不足）；立即终止，不进入轮询。"""

    default_code = "SIGNAL_DELIVERY_FAILED"


class HandshakeTimeoutError(AttachError):
    """在预算时间内 socket 始终没有出现。"""

    default_code = "HANDSHAKE_TIMEOUT"

    def __init__(self, message: str, *, socket_path: str, host_pid: int, elapsed_ms: int, timeout_ms: int) -> None:
        """创建超时错误。

        参数：
        - `socket_path`：等待的 socket 路径
        - `host_pid`：目标进程（host 视角）pid
        - `elapsed_ms`：累计等待时间
        - `timeout_ms`：本次 handshake 的预算
        """

        super().__init__(
            message,
            details={
                "socket_path": socket_path,
                "host_pid": host_pid,
                "elapsed_ms": elapsed_ms,
                "timeout_ms": timeout_ms,
            },
        )
        self.socket_path = socket_path
        self.host_pid = host_pid
        self.elapsed_ms = elapsed_ms
        self.timeout_ms = timeout_ms


class UntrustedSocketError(AttachError):
    """socket 的 owner/mode 校验失败（安全拒绝，不可绕过）。"""

    default_code = "UNTRUSTED_SOCKET"


class ConnectionFailedError(AttachError):
    """socket 存在且可信，但连接失败（例如残留 socket、目标在校验后退出）。"""

    default_code = "CONNECTION_FAILED"


class ChannelClosedError(AttachError):
    """在已关闭的 Channel 上读写。"""

    default_code = "CHANNEL_CLOSED"


class ProviderNotFoundError(AttachError):
    """provider registry 中不存在指定名称。"""

    default_code = "PROVIDER_NOT_FOUND"
