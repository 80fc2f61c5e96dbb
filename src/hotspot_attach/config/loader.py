"""
配置加载器（YAML）。

设计目标：
- 支持加载多个 YAML，并按顺序做深度合并（后者覆盖前者）。
- 使用 pydantic 做 schema 校验；默认拒绝未知字段（避免拼写错误与误配置被静默吞掉）。
- 运行期覆盖项（超时/自我 attach）不在这里：见 `hotspot_attach.timeout`。
"""

from __future__ import annotations

from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping

import yaml
from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator

from hotspot_attach.config.defaults import load_default_config_dict


def _deep_merge(base: MutableMapping[str, Any], overlay: Mapping[str, Any]) -> MutableMapping[str, Any]:
    """
    深度合并两个 dict（overlay 覆盖 base）。

    合并规则：
    - dict + dict：递归合并
    - 其它类型：overlay 直接覆盖
    """

    for key, overlay_value in overlay.items():
        if key in base and isinstance(base[key], dict) and isinstance(overlay_value, Mapping):
            _deep_merge(base[key], overlay_value)  # type: ignore[arg-type]
            continue
        base[key] = deepcopy(overlay_value)
    return base


class HandshakeConfig(BaseModel):
    """handshake 轮询/退避策略。"""

    model_config = ConfigDict(extra="forbid")

    default_timeout_ms: int = Field(default=10_000, ge=1)
    delay_step_ms: int = Field(default=100, ge=1)
    # 启发式：补发信号只是对“信号丢失/合并”的尽力缓解，允许关闭
    resignal_at_half_timeout: StrictBool = True


class PathsConfig(BaseModel):
    """
    socket/trigger 路径约定。

    说明：
    - `tmpdir` 必须与目标 VM 一致（全局约定位置），否则无法发现目标；
    - `procfs_root` 仅在测试或非常规挂载下需要修改。
    """

    model_config = ConfigDict(extra="forbid")

    procfs_root: str = Field(default="/proc")
    tmpdir: str = Field(default="/tmp")
    socket_prefix: str = Field(default="java_pid")
    trigger_prefix: str = Field(default="attach_pid")
    status_field: str = Field(default="NSpid")

    @field_validator("procfs_root", "tmpdir")
    @classmethod
    def _validate_absolute(cls, value: str) -> str:
        """目录必须是绝对路径。"""

        if not value.startswith("/"):
            raise ValueError("paths.procfs_root/paths.tmpdir must be absolute paths")
        return value

    @field_validator("socket_prefix", "trigger_prefix", "status_field")
    @classmethod
    def _validate_token(cls, value: str) -> str:
        """文件名前缀/字段名不能为空，也不能包含路径分隔符。"""

        if not value.strip() or "/" in value:
            raise ValueError("paths prefixes and status_field must be non-empty and contain no '/'")
        return value


class AttachConfig(BaseModel):
    """配置根对象。"""

    model_config = ConfigDict(extra="forbid")

    config_version: int = Field(default=1, ge=1)
    handshake: HandshakeConfig = Field(default_factory=HandshakeConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)


def _load_yaml_file(path: Path) -> Dict[str, Any]:
    """读取 YAML 文件为 dict；空文件返回空 dict。"""

    if not path.exists():
        raise FileNotFoundError(f"config file not found: {path}")
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"config root must be a mapping(dict): {path}")
    return data


def load_config_dicts(config_dicts: list[Dict[str, Any]]) -> AttachConfig:
    """
    加载并合并多个 dict 配置，返回校验后的 `AttachConfig`。

    参数：
    - config_dicts：按顺序做深度合并（后者覆盖前者）
    """

    merged: Dict[str, Any] = {}
    for overlay in config_dicts:
        if not overlay:
            continue
        _deep_merge(merged, overlay)
    return AttachConfig.model_validate(merged)


def load_config(config_paths: list[Path]) -> AttachConfig:
    """
    加载并合并多个配置文件（不含内置默认配置）。

    参数：
    - config_paths：YAML 路径列表；按顺序合并（后者覆盖前者）
    """

    return load_config_dicts([_load_yaml_file(Path(p)) for p in config_paths])


def load_effective_config(overlay_paths: list[Path] | None = None) -> AttachConfig:
    """内置默认配置 + overlays（按顺序）。"""

    overlays: list[Dict[str, Any]] = [load_default_config_dict()]
    for p in overlay_paths or []:
        overlays.append(_load_yaml_file(Path(p)))
    return load_config_dicts(overlays)
