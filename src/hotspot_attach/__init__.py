"""Public package API for hotspot_attach."""

from __future__ import annotations

from hotspot_attach.channel import Channel
from hotspot_attach.config.loader import AttachConfig, load_effective_config
from hotspot_attach.errors import (
    AttachError,
    AttachIssue,
    ChannelClosedError,
    ConnectionFailedError,
    HandshakeTimeoutError,
    InvalidIdentifierError,
    NamespaceResolutionError,
    ProviderNotFoundError,
    SelfAttachError,
    SignalDeliveryError,
    TriggerCreationError,
    UntrustedSocketError,
)
from hotspot_attach.handshake import HandshakeEngine, HandshakeReport, HandshakeState, attach
from hotspot_attach.identity import TargetIdentity
from hotspot_attach.pids import HostPid, InnerPid, ResolvedPids
from hotspot_attach.primitives import AttachPrimitives, PosixPrimitives
from hotspot_attach.providers import AttachProvider, HotSpotSocketProvider, ProviderRegistry, default_registry
from hotspot_attach.timeout import settings_from_env

__version__ = "0.1.0"

__all__ = [
    "AttachConfig",
    "AttachError",
    "AttachIssue",
    "AttachPrimitives",
    "AttachProvider",
    "Channel",
    "ChannelClosedError",
    "ConnectionFailedError",
    "HandshakeEngine",
    "HandshakeReport",
    "HandshakeState",
    "HandshakeTimeoutError",
    "HostPid",
    "HotSpotSocketProvider",
    "InnerPid",
    "InvalidIdentifierError",
    "NamespaceResolutionError",
    "PosixPrimitives",
    "ProviderNotFoundError",
    "ProviderRegistry",
    "ResolvedPids",
    "SelfAttachError",
    "SignalDeliveryError",
    "TargetIdentity",
    "TriggerCreationError",
    "UntrustedSocketError",
    "attach",
    "default_registry",
    "load_effective_config",
    "settings_from_env",
]
