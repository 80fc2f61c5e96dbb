"""
运行期覆盖项（settings source）与超时预算解析。

说明：
- settings 是一个字符串键的只读映射（`attach_timeout_ms` / `allow_attach_self`）；
- 覆盖值非法时一律回落到默认值，不抛异常；
- 预算在每次 handshake 开始时解析一次，过程中不再变化。
"""

from __future__ import annotations

import os
from typing import Dict, Mapping, Optional

DEFAULT_ATTACH_TIMEOUT_MS = 10_000

ATTACH_TIMEOUT_KEY = "attach_timeout_ms"
ALLOW_ATTACH_SELF_KEY = "allow_attach_self"

ENV_ATTACH_TIMEOUT_MS = "HOTSPOT_ATTACH_TIMEOUT_MS"
ENV_ALLOW_ATTACH_SELF = "HOTSPOT_ATTACH_ALLOW_ATTACH_SELF"


def _get_env_nonempty(key: str, *, env: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """读取 env 并返回非空白字符串（否则视为未设置）。"""

    v = (env if env is not None else os.environ).get(key)
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def settings_from_env(env: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """
    从环境变量构建 settings。

    参数：
    - env：环境映射（默认 os.environ）

    说明：
    - `HOTSPOT_ATTACH_ALLOW_ATTACH_SELF` 只要被设置（即使为空）就会进入 settings，
      因为“空值”本身表示开启。
    """

    source = env if env is not None else os.environ
    out: Dict[str, str] = {}
    timeout = _get_env_nonempty(ENV_ATTACH_TIMEOUT_MS, env=source)
    if timeout is not None:
        out[ATTACH_TIMEOUT_KEY] = timeout
    if ENV_ALLOW_ATTACH_SELF in source:
        out[ALLOW_ATTACH_SELF_KEY] = str(source[ENV_ALLOW_ATTACH_SELF]).strip()
    return out


def resolve_attach_timeout_ms(settings: Mapping[str, str], *, default_ms: int = DEFAULT_ATTACH_TIMEOUT_MS) -> int:
    """
    解析本次 handshake 的超时预算（毫秒）。

    参数：
    - settings：字符串键覆盖项
    - default_ms：缺省/非法/非正数时使用的预算

    返回：
    - 正整数毫秒
    """

    raw = settings.get(ATTACH_TIMEOUT_KEY)
    if raw is None:
        return default_ms
    try:
        value = int(str(raw).strip())
    except ValueError:
        return default_ms
    if value <= 0:
        return default_ms
    return value


def resolve_allow_attach_self(settings: Mapping[str, str]) -> bool:
    """空字符串或（不区分大小写的）`true` 表示允许 attach 到自身。"""

    raw = settings.get(ALLOW_ATTACH_SELF_KEY)
    if raw is None:
        return False
    s = str(raw).strip()
    return s == "" or s.lower() == "true"
