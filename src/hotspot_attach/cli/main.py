"""
hotspot-attach CLI（probe/locate）。

约束：
- 使用 argparse（不引入第三方 CLI 依赖）
- stdout 输出机器可读 JSON；失败时也输出 JSON
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml
from pydantic import ValidationError

from hotspot_attach.config.loader import AttachConfig, load_effective_config
from hotspot_attach.errors import AttachError
from hotspot_attach.handshake import HandshakeEngine
from hotspot_attach.identity import TargetIdentity
from hotspot_attach.timeout import ALLOW_ATTACH_SELF_KEY, ATTACH_TIMEOUT_KEY, settings_from_env

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_ATTACH_FAILED = 2


def _dump_json_to_stdout(obj: Dict[str, Any], *, pretty: bool) -> None:
    """
    将 dict 输出为 JSON 到 stdout（末尾包含换行）。

    参数：
    - obj：待输出对象（必须可 JSON dumps）
    - pretty：是否启用 pretty-print（indent=2）
    """

    if pretty:
        text = json.dumps(obj, ensure_ascii=False, indent=2)
    else:
        text = json.dumps(obj, ensure_ascii=False, separators=(",", ":"))
    print(text)


def _error_payload(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"ok": False, "error": {"code": code, "message": message, "details": details or {}}}


def _build_parser() -> argparse.ArgumentParser:
    """构造 argparse parser（probe/locate 子命令）。"""

    parser = argparse.ArgumentParser(prog="hotspot-attach", description="Attach a control channel to a running HotSpot VM.")
    sub = parser.add_subparsers(dest="command", required=True)

    def _add_common_flags(p: argparse.ArgumentParser) -> None:
        """为子命令添加通用参数。"""

        p.add_argument("pid", help="Target process id.")
        p.add_argument("--config", action="append", default=[], help="Overlay config YAML path (repeatable).")
        p.add_argument("--pretty", action="store_true", help="Pretty-print JSON output.")
        p.add_argument(
            "--log-level",
            default="WARNING",
            type=str.upper,
            choices=["DEBUG", "INFO", "WARNING", "ERROR"],
            help="Logging level written to stderr (default: WARNING).",
        )

    probe = sub.add_parser("probe", help="Perform the attach handshake, then close the channel.")
    _add_common_flags(probe)
    probe.add_argument("--timeout-ms", default=None, help="Attach timeout override in ms (>0).")
    probe.add_argument("--allow-attach-self", action="store_true", help="Allow attaching to the current process.")

    locate = sub.add_parser("locate", help="Print socket and trigger paths without touching the target.")
    _add_common_flags(locate)
    return parser


def _load_config(paths: List[str]) -> AttachConfig:
    return load_effective_config([Path(p).expanduser() for p in paths])


def _build_settings(args: argparse.Namespace) -> Dict[str, str]:
    """env 覆盖项 + 命令行覆盖项（命令行优先）。"""

    settings = settings_from_env()
    if getattr(args, "timeout_ms", None) is not None:
        settings[ATTACH_TIMEOUT_KEY] = str(args.timeout_ms)
    if getattr(args, "allow_attach_self", False):
        settings[ALLOW_ATTACH_SELF_KEY] = "true"
    return settings


def _cmd_probe(args: argparse.Namespace, config: AttachConfig) -> int:
    engine = HandshakeEngine(config=config, settings=_build_settings(args))
    try:
        identity = TargetIdentity(origin="cli", raw_identifier=args.pid)
        with engine.attach(identity) as channel:
            report = channel.report
    except AttachError as exc:
        payload = _error_payload(exc.code, exc.message, exc.details)
        if engine.last_report is not None:
            payload["report"] = engine.last_report.to_dict()
        _dump_json_to_stdout(payload, pretty=args.pretty)
        return EXIT_ATTACH_FAILED
    _dump_json_to_stdout({"ok": True, "report": report.to_dict() if report else {}}, pretty=args.pretty)
    return EXIT_OK


def _cmd_locate(args: argparse.Namespace, config: AttachConfig) -> int:
    engine = HandshakeEngine(config=config)
    try:
        identity = TargetIdentity(origin="cli", raw_identifier=args.pid)
        pids = engine.resolve(identity)
        location = engine.locate(identity)
    except AttachError as exc:
        _dump_json_to_stdout(_error_payload(exc.code, exc.message, exc.details), pretty=args.pretty)
        return EXIT_ATTACH_FAILED
    _dump_json_to_stdout(
        {
            "ok": True,
            "host_pid": pids.host.value,
            "inner_pid": pids.inner.value,
            "socket_path": location.socket_path,
            "trigger_path": location.trigger_path,
            "fallback_trigger_path": location.fallback_trigger_path,
        },
        pretty=args.pretty,
    )
    return EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI 入口；返回进程退出码。"""

    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(level=args.log_level, stream=sys.stderr, format="%(levelname)s %(name)s: %(message)s")

    try:
        config = _load_config(args.config)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        # pydantic.ValidationError 是 ValueError 子类
        code = "CONFIG_INVALID" if isinstance(exc, (ValidationError, yaml.YAMLError)) else "CONFIG_LOAD_FAILED"
        _dump_json_to_stdout(_error_payload(code, "Config load failed.", {"reason": str(exc)}), pretty=args.pretty)
        return EXIT_CONFIG_ERROR

    if args.command == "probe":
        return _cmd_probe(args, config)
    return _cmd_locate(args, config)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
