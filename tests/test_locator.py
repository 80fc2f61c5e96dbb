from __future__ import annotations

import os
from pathlib import Path

import pytest

from conftest import FakePrimitives
from hotspot_attach.config.loader import PathsConfig
from hotspot_attach.errors import TriggerCreationError
from hotspot_attach.locator import ChannelLocator, create_trigger_file
from hotspot_attach.pids import HostPid, InnerPid, ResolvedPids
from hotspot_attach.primitives import PosixPrimitives


def _pids(host: int, inner: int) -> ResolvedPids:
    return ResolvedPids(host=HostPid(host), inner=InnerPid(inner))


def test_paths_for_non_namespaced_target() -> None:
    loc = ChannelLocator(PathsConfig()).locate(_pids(4242, 4242))
    assert loc.socket_path == "/proc/4242/root/tmp/.java_pid4242"
    assert loc.trigger_path == "/proc/4242/cwd/.attach_pid4242"
    assert loc.fallback_trigger_path == "/tmp/.attach_pid4242"


def test_paths_for_namespaced_target_use_inner_name_and_host_dir() -> None:
    loc = ChannelLocator(PathsConfig()).locate(_pids(100, 7))
    assert loc.socket_path == "/proc/100/root/tmp/.java_pid7"
    assert loc.trigger_path == "/proc/100/cwd/.attach_pid7"
    assert loc.fallback_trigger_path == "/proc/100/root/tmp/.attach_pid7"


def test_paths_are_deterministic() -> None:
    locator = ChannelLocator(PathsConfig(procfs_root="/host/proc", tmpdir="/var/tmp"))
    a = locator.locate(_pids(100, 7))
    b = locator.locate(_pids(100, 7))
    assert a == b
    assert a.socket_path == "/host/proc/100/root/var/tmp/.java_pid7"


def test_trigger_created_at_primary_location() -> None:
    fake = FakePrimitives()
    loc = ChannelLocator(PathsConfig()).locate(_pids(4242, 4242))
    trigger = create_trigger_file(loc, fake)
    assert trigger.path == loc.trigger_path
    assert trigger.created is True
    assert fake.created == [loc.trigger_path]


def test_existing_trigger_is_not_owned() -> None:
    fake = FakePrimitives()
    loc = ChannelLocator(PathsConfig()).locate(_pids(4242, 4242))
    fake.files[loc.trigger_path] = (fake.euid, 0o100600)
    trigger = create_trigger_file(loc, fake)
    assert trigger.path == loc.trigger_path
    assert trigger.created is False
    assert fake.created == []


@pytest.mark.parametrize(
    ("host", "inner", "expected"),
    [(4242, 4242, "/tmp/.attach_pid4242"), (100, 7, "/proc/100/root/tmp/.attach_pid7")],
)
def test_trigger_falls_back_when_cwd_unwritable(host: int, inner: int, expected: str) -> None:
    fake = FakePrimitives()
    loc = ChannelLocator(PathsConfig()).locate(_pids(host, inner))
    fake.unwritable.add(loc.trigger_path)
    assert create_trigger_file(loc, fake).path == expected
    assert fake.created == [expected]


def test_trigger_creation_error_when_both_locations_fail() -> None:
    fake = FakePrimitives()
    loc = ChannelLocator(PathsConfig()).locate(_pids(100, 7))
    fake.unwritable.update({loc.trigger_path, loc.fallback_trigger_path})
    with pytest.raises(TriggerCreationError) as ei:
        create_trigger_file(loc, fake)
    assert ei.value.details["trigger_path"] == loc.trigger_path
    assert ei.value.details["fallback_trigger_path"] == loc.fallback_trigger_path
    assert fake.created == []


@pytest.mark.skipif(os.name == "nt", reason="POSIX only")
def test_posix_trigger_creation_reports_ownership(tmp_path: Path) -> None:
    real_cwd = tmp_path / "workdir"
    real_cwd.mkdir()
    link = tmp_path / "cwd"
    link.symlink_to(real_cwd)
    trigger = str(link / ".attach_pid1")

    prims = PosixPrimitives()
    assert prims.create_trigger_file(trigger) is True
    assert (real_cwd / ".attach_pid1").exists()
    assert prims.canonical_path(trigger) == os.path.realpath(str(real_cwd / ".attach_pid1"))

    # 已存在：trigger 已就位，但不归本次所有
    assert prims.create_trigger_file(trigger) is False

    # 删除走未规范化的链接路径
    prims.remove_file(trigger)
    assert not (real_cwd / ".attach_pid1").exists()


@pytest.mark.skipif(os.name == "nt", reason="POSIX only")
def test_posix_trigger_creation_in_missing_dir_raises_oserror(tmp_path: Path) -> None:
    with pytest.raises(OSError):
        PosixPrimitives().create_trigger_file(str(tmp_path / "missing" / ".attach_pid1"))
