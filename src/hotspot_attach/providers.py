"""
AttachProvider 注册表。

说明：
- provider 以 `name` 唯一注册；重复注册直接报错（不做静默覆盖）；
- 内置 `HotSpotSocketProvider`：基于 Unix socket 的 HotSpot attach 机制。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, List, Mapping, Optional

from hotspot_attach.channel import Channel
from hotspot_attach.config.loader import AttachConfig
from hotspot_attach.errors import ProviderNotFoundError
from hotspot_attach.handshake import HandshakeEngine
from hotspot_attach.identity import TargetIdentity
from hotspot_attach.primitives import AttachPrimitives


class AttachProvider(ABC):
    """attach 后端基类。"""

    name: str = ""
    type: str = ""

    @abstractmethod
    def attach(self, raw_identifier: str) -> Channel:
        """按原始标识执行 attach 并返回已连接的 Channel。"""


class HotSpotSocketProvider(AttachProvider):
    """HotSpot（Linux Unix socket）provider。"""

    name = "hotspot"
    type = "socket"

    def __init__(
        self,
        *,
        config: Optional[AttachConfig] = None,
        settings: Optional[Mapping[str, str]] = None,
        primitives: Optional[AttachPrimitives] = None,
    ) -> None:
        self._engine = HandshakeEngine(config=config, settings=settings, primitives=primitives)

    @property
    def engine(self) -> HandshakeEngine:
        return self._engine

    def attach(self, raw_identifier: str) -> Channel:
        """以本 provider 名称作为 origin，构造 identity 并执行 handshake。"""

        return self._engine.attach(TargetIdentity(origin=self.name, raw_identifier=raw_identifier))


class ProviderRegistry:
    """provider 注册表（按注册顺序列出）。"""

    def __init__(self) -> None:
        self._providers: Dict[str, AttachProvider] = {}

    def register(self, provider: AttachProvider) -> None:
        """
        注册 provider。

        异常：
        - ValueError：name 为空或已注册
        """

        name = str(provider.name or "").strip()
        if not name:
            raise ValueError("provider name must be non-empty")
        if name in self._providers:
            raise ValueError(f"provider already registered: {name}")
        self._providers[name] = provider

    def get(self, name: str) -> AttachProvider:
        provider = self._providers.get(name)
        if provider is None:
            raise ProviderNotFoundError(
                f"Unknown attach provider: {name}",
                details={"name": name, "available": sorted(self._providers)},
            )
        return provider

    def list_providers(self) -> List[AttachProvider]:
        return list(self._providers.values())


def default_registry(
    *,
    config: Optional[AttachConfig] = None,
    settings: Optional[Mapping[str, str]] = None,
) -> ProviderRegistry:
    """返回已注册内置 provider 的注册表。"""

    registry = ProviderRegistry()
    registry.register(HotSpotSocketProvider(config=config, settings=settings))
    return registry
