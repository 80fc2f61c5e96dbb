"""配置（YAML + pydantic 校验）。"""

from __future__ import annotations

from hotspot_attach.config.defaults import load_default_config_dict
from hotspot_attach.config.loader import AttachConfig, load_config, load_config_dicts, load_effective_config

__all__ = [
    "AttachConfig",
    "load_config",
    "load_config_dicts",
    "load_default_config_dict",
    "load_effective_config",
]
