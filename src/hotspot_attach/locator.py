"""
socket / trigger file 路径计算与 trigger file 创建。

约定：
- 文件名始终用 inner pid；目录遍历始终用 host pid（经 `/proc/<host>/root` 与 `/proc/<host>/cwd`）；
- 路径只由 (host pid, inner pid, 配置) 决定，可复现、无缓存。
"""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass

from hotspot_attach.config.loader import PathsConfig
from hotspot_attach.errors import TriggerCreationError
from hotspot_attach.pids import ResolvedPids
from hotspot_attach.primitives import AttachPrimitives

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChannelLocation:
    """一次 handshake 的候选路径集合。"""

    socket_path: str
    trigger_path: str
    fallback_trigger_path: str


def _under(root: str, absolute: str) -> str:
    """将绝对路径拼接到另一个根下（`/proc/1/root` + `/tmp` -> `/proc/1/root/tmp`）。"""

    return posixpath.join(root, absolute.lstrip("/"))


class ChannelLocator:
    """按配置计算目标的 socket/trigger 路径。"""

    def __init__(self, paths: PathsConfig) -> None:
        self._paths = paths

    def _proc_dir(self, pids: ResolvedPids) -> str:
        return posixpath.join(self._paths.procfs_root, str(pids.host.value))

    def root_prefix(self, pids: ResolvedPids) -> str:
        """目标 mount namespace 的根视图（`/proc/<host>/root`）。"""

        return posixpath.join(self._proc_dir(pids), "root")

    def locate(self, pids: ResolvedPids) -> ChannelLocation:
        """
        计算 socket 路径与 trigger 路径（主位置 + fallback）。

        说明：
        - 主 trigger 位置在目标的 cwd 视图下（目标的信号处理器会检查这里）；
        - fallback：目标在独立 namespace 中时用其根视图下的 tmpdir，否则用调用方自己的 tmpdir。
        """

        socket_name = f".{self._paths.socket_prefix}{pids.inner.value}"
        trigger_name = f".{self._paths.trigger_prefix}{pids.inner.value}"
        target_tmp = _under(self.root_prefix(pids), self._paths.tmpdir)

        if pids.namespaced:
            fallback_dir = target_tmp
        else:
            fallback_dir = self._paths.tmpdir

        return ChannelLocation(
            socket_path=posixpath.join(target_tmp, socket_name),
            trigger_path=posixpath.join(self._proc_dir(pids), "cwd", trigger_name),
            fallback_trigger_path=posixpath.join(fallback_dir, trigger_name),
        )


@dataclass(frozen=True)
class TriggerFile:
    """
    trigger file 的放置结果。

    字段：
    - path：实际使用的（未规范化）路径；删除时优先使用
    - canonical_path：创建后解析得到的规范路径；仅在 `/proc/<pid>` 链接消失（目标已退出）时兜底删除
    - created：是否由本次尝试创建；为 False 时本次尝试不得删除它
    """

    path: str
    canonical_path: str
    created: bool


def create_trigger_file(location: ChannelLocation, primitives: AttachPrimitives) -> TriggerFile:
    """
    创建 trigger file（主位置失败时尝试 fallback 位置）。

    异常：
    - TriggerCreationError：主位置与 fallback 位置都失败
    """

    try:
        path = location.trigger_path
        created = primitives.create_trigger_file(path)
    except OSError as primary_exc:
        logger.warning(
            "cannot create trigger file %s (%s); falling back to %s",
            location.trigger_path,
            primary_exc,
            location.fallback_trigger_path,
        )
        try:
            path = location.fallback_trigger_path
            created = primitives.create_trigger_file(path)
        except OSError as exc:
            raise TriggerCreationError(
                "Unable to create attach trigger file",
                details={
                    "trigger_path": location.trigger_path,
                    "fallback_trigger_path": location.fallback_trigger_path,
                    "primary_reason": str(primary_exc),
                    "fallback_reason": str(exc),
                },
            ) from exc

    if not created:
        logger.debug("trigger file %s already present; leaving it to its creator", path)
    return TriggerFile(path=path, canonical_path=primitives.canonical_path(path), created=created)
