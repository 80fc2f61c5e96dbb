"""
pid namespace 解析：host pid -> inner pid。

读取 `<procfs_root>/<pid>/status` 中的 `NSpid:` 行；该行从左到右依次列出各层 namespace
中的 pid，最后一个即目标进程自身看到的 pid（最内层）。
"""

from __future__ import annotations

import logging
from pathlib import Path

from hotspot_attach.errors import NamespaceResolutionError
from hotspot_attach.pids import HostPid, InnerPid

logger = logging.getLogger(__name__)

NSPID_FIELD = "NSpid"


def status_file_path(host_pid: HostPid, *, procfs_root: str = "/proc") -> Path:
    """返回目标进程的 status 伪文件路径。"""

    return Path(procfs_root) / str(host_pid.value) / "status"


def parse_inner_pid(status_text: str, *, field: str = NSPID_FIELD) -> int | None:
    """
    从 status 文本中解析最内层 pid。

    返回：
    - int：找到字段时的最内层 pid
    - None：不存在该字段（老内核，例如 3.10）

    异常：
    - ValueError：字段存在但值为空或不是正整数
    """

    for line in status_text.splitlines():
        parts = line.split(":")
        if len(parts) != 2 or parts[0].strip() != field:
            continue
        values = parts[1].split()
        if not values:
            raise ValueError(f"empty {field} field")
        pid = int(values[-1])
        if pid < 1:
            raise ValueError(f"non-positive pid in {field} field: {pid}")
        return pid
    return None


def resolve_inner_pid(
    host_pid: HostPid,
    *,
    procfs_root: str = "/proc",
    field: str = NSPID_FIELD,
) -> InnerPid:
    """
    解析目标进程的 inner pid。

    参数：
    - host_pid：调用方视角的 pid
    - procfs_root：procfs 挂载点
    - field：status 中列出 namespace pid 的字段名

    返回：
    - InnerPid：status 不存在或无该字段时等于 host pid

    异常：
    - NamespaceResolutionError：status 存在但无法读取或字段格式错误
    """

    path = status_file_path(host_pid, procfs_root=procfs_root)
    if not path.exists():
        # 多半是错误的 pid；留给后续连接阶段报错
        logger.debug("no status file for pid %s at %s; using host pid", host_pid, path)
        return InnerPid(host_pid.value)

    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        # 目标在 exists() 与读取之间退出，与“status 不存在”同等处理
        logger.debug("status file for pid %s vanished; using host pid", host_pid)
        return InnerPid(host_pid.value)
    except OSError as exc:
        raise NamespaceResolutionError(
            "Unable to read process status",
            details={"host_pid": host_pid.value, "status_path": str(path), "reason": str(exc)},
        ) from exc

    try:
        inner = parse_inner_pid(text, field=field)
    except ValueError as exc:
        raise NamespaceResolutionError(
            "Unable to parse namespace",
            details={"host_pid": host_pid.value, "status_path": str(path), "reason": str(exc)},
        ) from exc

    if inner is None:
        logger.debug("no %s field for pid %s; using host pid", field, host_pid)
        return InnerPid(host_pid.value)
    logger.debug("resolved pid %s to inner pid %s", host_pid, inner)
    return InnerPid(inner)
