"""
Handshake engine：建立到目标 VM 的控制通道。

状态机：
    START -> DIRECT_CHECK -> (CONNECTED | TRIGGERING) -> POLLING -> (CONNECTED | TIMED_OUT | FAILED)

流程：
1) 拒绝 attach 到 pid 0 / 当前进程（除非 settings 允许）；
2) 解析 inner pid，计算 socket/trigger 路径；
3) socket 已存在：跳过唤醒，直接校验权限并连接；
4) 否则创建 trigger file，向 host pid 发送 SIGQUIT，线性退避轮询（100, 200, 300, ... ms）；
   累计等待超过预算一半仍未出现则补发一次信号；超过预算则超时；
   无论结果如何，本次创建的 trigger file 都会被删除；
5) 校验 socket owner/mode，连接；连接失败时先关闭 fd 再抛错。
"""

from __future__ import annotations

import logging
import os
import stat
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional

from hotspot_attach.channel import Channel
from hotspot_attach.config.loader import AttachConfig
from hotspot_attach.errors import (
    AttachError,
    ConnectionFailedError,
    HandshakeTimeoutError,
    SelfAttachError,
    SignalDeliveryError,
    UntrustedSocketError,
)
from hotspot_attach.identity import TargetIdentity
from hotspot_attach.locator import ChannelLocation, ChannelLocator, TriggerFile, create_trigger_file
from hotspot_attach.namespace import resolve_inner_pid
from hotspot_attach.pids import HostPid, ResolvedPids
from hotspot_attach.primitives import AttachPrimitives, PosixPrimitives
from hotspot_attach.timeout import resolve_allow_attach_self, resolve_attach_timeout_ms

logger = logging.getLogger(__name__)

_GROUP_OTHER_RW = stat.S_IRGRP | stat.S_IWGRP | stat.S_IROTH | stat.S_IWOTH


class HandshakeState(str, Enum):
    """handshake 状态（机器可消费）。"""

    START = "start"
    DIRECT_CHECK = "direct_check"
    TRIGGERING = "triggering"
    POLLING = "polling"
    CONNECTED = "connected"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass
class HandshakeReport:
    """单次 handshake 的诊断记录。"""

    state: HandshakeState = HandshakeState.START
    host_pid: Optional[int] = None
    inner_pid: Optional[int] = None
    socket_path: Optional[str] = None
    trigger_path: Optional[str] = None
    signals_sent: int = 0
    poll_iterations: int = 0
    elapsed_ms: int = 0
    timeout_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["state"] = self.state.value
        return d


class HandshakeEngine:
    """
    单目标 handshake 驱动器。

    参数：
    - config：路径约定与退避策略
    - settings：运行期覆盖项（`attach_timeout_ms` / `allow_attach_self`）
    - primitives：OS 原语（默认 PosixPrimitives）
    - own_pid：调用方自身 pid（默认当前进程）
    - sleep：阻塞等待函数（秒）；测试可注入 fake

    说明：
    - 一个 engine 同一时刻只驱动一次 attach；不同目标请各自调用（无共享可变状态）。
    """

    def __init__(
        self,
        *,
        config: Optional[AttachConfig] = None,
        settings: Optional[Mapping[str, str]] = None,
        primitives: Optional[AttachPrimitives] = None,
        own_pid: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config or AttachConfig()
        self._settings: Mapping[str, str] = dict(settings or {})
        self._primitives: AttachPrimitives = primitives or PosixPrimitives()
        self._own_pid = own_pid if own_pid is not None else os.getpid()
        self._sleep = sleep
        self._locator = ChannelLocator(self._config.paths)
        self.last_report: Optional[HandshakeReport] = None

    # ---- 公共入口 ----

    def resolve(self, identity: TargetIdentity) -> ResolvedPids:
        """解析 host/inner pid（只读取 status 伪文件）。"""

        host = identity.host_pid
        inner = resolve_inner_pid(
            host,
            procfs_root=self._config.paths.procfs_root,
            field=self._config.paths.status_field,
        )
        return ResolvedPids(host=host, inner=inner)

    def locate(self, identity: TargetIdentity) -> ChannelLocation:
        """计算目标的候选路径（不创建文件、不发送信号）。"""

        return self._locator.locate(self.resolve(identity))

    def attach(self, identity: TargetIdentity) -> Channel:
        """
        执行完整 handshake 并返回已连接的 Channel。

        异常：
        - SelfAttachError / NamespaceResolutionError / TriggerCreationError / SignalDeliveryError
        - HandshakeTimeoutError / UntrustedSocketError / ConnectionFailedError
        """

        report = HandshakeReport()
        self.last_report = report
        report.timeout_ms = resolve_attach_timeout_ms(
            self._settings, default_ms=self._config.handshake.default_timeout_ms
        )
        report.host_pid = identity.host_pid.value

        try:
            self._check_not_self(identity.host_pid)
            pids = self.resolve(identity)
            report.inner_pid = pids.inner.value
            location = self._locator.locate(pids)
            report.socket_path = location.socket_path
            logger.debug("attach target host_pid=%s inner_pid=%s socket=%s", pids.host, pids.inner, location.socket_path)

            report.state = HandshakeState.DIRECT_CHECK
            if not self._primitives.path_exists(location.socket_path):
                self._trigger_and_wait(pids, location, report)

            self._check_permissions(location.socket_path, pids)
            fd = self._connect(location.socket_path, pids)
        except AttachError:
            if report.state is not HandshakeState.TIMED_OUT:
                report.state = HandshakeState.FAILED
            raise

        report.state = HandshakeState.CONNECTED
        logger.info("attached to pid %s via %s", pids.host, location.socket_path)
        return Channel(
            fd=fd,
            socket_path=location.socket_path,
            pids=pids,
            primitives=self._primitives,
            report=report,
        )

    # ---- 各阶段 ----

    def _check_not_self(self, host: HostPid) -> None:
        """调用方与目标必须是不同进程。"""

        if resolve_allow_attach_self(self._settings):
            return
        if host.value == 0 or host.value == self._own_pid:
            raise SelfAttachError(
                "Can not attach to current VM",
                details={"host_pid": host.value, "own_pid": self._own_pid},
            )

    def _send_wake_signal(self, pids: ResolvedPids, report: HandshakeReport) -> None:
        """向 host pid 发送唤醒信号（永远不用 inner pid）。"""

        try:
            self._primitives.send_wake_signal(pids.host.value)
        except OSError as exc:
            raise SignalDeliveryError(
                f"Unable to signal process {pids.host.value}: {exc}",
                details={"host_pid": pids.host.value, "reason": str(exc)},
            ) from exc
        report.signals_sent += 1
        logger.info("sent wake signal to pid %s", pids.host)

    def _trigger_and_wait(self, pids: ResolvedPids, location: ChannelLocation, report: HandshakeReport) -> None:
        """TRIGGERING + POLLING；返回即表示 socket 已出现。"""

        report.state = HandshakeState.TRIGGERING
        trigger = create_trigger_file(location, self._primitives)
        report.trigger_path = trigger.path
        try:
            self._send_wake_signal(pids, report)

            report.state = HandshakeState.POLLING
            step_ms = self._config.handshake.delay_step_ms
            timeout_ms = report.timeout_ms
            resignal = self._config.handshake.resignal_at_half_timeout
            delay_ms = 0
            elapsed_ms = 0
            exists = False
            while True:
                # 每轮增加一个步长，降低轮询频率
                delay_ms += step_ms
                self._sleep(delay_ms / 1000.0)
                elapsed_ms += delay_ms
                report.poll_iterations += 1
                report.elapsed_ms = elapsed_ms

                exists = self._primitives.path_exists(location.socket_path)
                logger.debug("poll #%d: delay=%dms elapsed=%dms exists=%s", report.poll_iterations, delay_ms, elapsed_ms, exists)
                if not exists and resignal and elapsed_ms > timeout_ms / 2:
                    # 给目标最后一次机会（覆盖信号丢失或被合并的情况）
                    logger.info("socket %s still absent after %dms; re-sending wake signal", location.socket_path, elapsed_ms)
                    self._send_wake_signal(pids, report)
                    resignal = False
                if exists or elapsed_ms > timeout_ms:
                    break

            if not exists:
                report.state = HandshakeState.TIMED_OUT
                raise HandshakeTimeoutError(
                    f"Unable to open socket file {location.socket_path}: target process {pids.host.value} "
                    f"doesn't respond within {elapsed_ms}ms or HotSpot VM not loaded",
                    socket_path=location.socket_path,
                    host_pid=pids.host.value,
                    elapsed_ms=elapsed_ms,
                    timeout_ms=timeout_ms,
                )
        finally:
            if trigger.created:
                self._remove_trigger(trigger, pids)

    def _remove_trigger(self, trigger: TriggerFile, pids: ResolvedPids) -> None:
        """
        删除本次创建的 trigger file。

        说明：
        - 先用创建时的（未规范化）路径删除；
        - 该路径已不存在（`/proc/<pid>` 链接随目标退出而消失）时，才用规范路径兜底；
        - 目标在独立 mount namespace 中时，规范路径指向调用方视图里的另一个位置，不能使用。
        """

        candidates = [trigger.path]
        if not pids.namespaced and trigger.canonical_path != trigger.path:
            candidates.append(trigger.canonical_path)
        for path in candidates:
            try:
                self._primitives.remove_file(path)
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.warning("failed to remove trigger file %s: %s", path, exc)
            return

    def _check_permissions(self, socket_path: str, pids: ResolvedPids) -> None:
        """
        校验 socket owner 与访问权限，避免连接到他人预置在可预测路径上的 socket。

        规则：
        - owner 必须是调用方 euid（调用方为 root 时不限制 owner）；
        - 不得有任何 group/other 读写位。
        """

        try:
            owner, mode = self._primitives.stat_owner_and_mode(socket_path)
        except FileNotFoundError as exc:
            raise ConnectionFailedError(
                f"Socket file {socket_path} vanished before it could be validated",
                details={"socket_path": socket_path, "host_pid": pids.host.value, "reason": "socket_vanished"},
            ) from exc
        except OSError as exc:
            raise UntrustedSocketError(
                f"Unable to validate socket file {socket_path}: {exc}",
                details={"socket_path": socket_path, "host_pid": pids.host.value, "reason": "stat_failed"},
            ) from exc

        euid = self._primitives.effective_uid()
        details: Dict[str, Any] = {
            "socket_path": socket_path,
            "host_pid": pids.host.value,
            "owner_uid": owner,
            "caller_uid": euid,
            "mode": oct(stat.S_IMODE(mode)),
        }
        if owner != euid and euid != 0:
            raise UntrustedSocketError(
                f"file should be owned by the current user (which is {euid}) but is owned by {owner}",
                details=details,
            )
        if mode & _GROUP_OTHER_RW:
            raise UntrustedSocketError(
                f"file should only be readable and writable by the owner but has {stat.S_IMODE(mode):#05o} access",
                details=details,
            )

    def _connect(self, socket_path: str, pids: ResolvedPids) -> int:
        """打开并连接 socket；任何失败都先关闭 fd。"""

        details = {"socket_path": socket_path, "host_pid": pids.host.value}
        try:
            fd = self._primitives.open_unix_socket()
        except OSError as exc:
            raise ConnectionFailedError(f"Unable to open socket: {exc}", details={**details, "reason": str(exc)}) from exc
        try:
            self._primitives.connect(fd, socket_path)
        except OSError as exc:
            self._close_after_failure(fd)
            raise ConnectionFailedError(
                f"Unable to connect to {socket_path}: {exc}",
                details={**details, "reason": str(exc)},
            ) from exc
        return fd

    def _close_after_failure(self, fd: int) -> None:
        try:
            self._primitives.close(fd)
        except OSError as exc:
            logger.warning("failed to close fd %d after connect failure: %s", fd, exc)


def attach(
    raw_identifier: str,
    *,
    origin: str = "hotspot",
    config: Optional[AttachConfig] = None,
    settings: Optional[Mapping[str, str]] = None,
    primitives: Optional[AttachPrimitives] = None,
) -> Channel:
    """便捷入口：构造 identity 并执行一次 handshake。"""

    identity = TargetIdentity(origin=origin, raw_identifier=raw_identifier)
    engine = HandshakeEngine(config=config, settings=settings, primitives=primitives)
    return engine.attach(identity)
