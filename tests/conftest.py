import os
import sys
from pathlib import Path
from typing import Any, Callable, Optional
from unittest.mock import MagicMock

import pytest
from easypy.aliasing import aliases

ROOT = Path(__file__).resolve().parents[1]
# Extend python import path to get ubiquity_flex package from here
sys.path += [ROOT.as_posix()]

from ubiquity_flex.configuration import Config
from ubiquity_flex.controller import Controller
from ubiquity_flex.flex_types import Volume
from ubiquity_flex.mounters import BackendKind
from ubiquity_flex.registry import BackendRegistry
from ubiquity_flex.unmount_lock import UnmountLock


# ----------------------------------------------------------------------------------------------------------------------
# Helper classes and decorators
# ----------------------------------------------------------------------------------------------------------------------


@aliases("mock", static=False)
class FakeClientMethod:
    """
    Method of FakeUbiquityClient that enhances all methods of decorated class with
    MagicMock capabilities eg: 'assert_called', 'call_args', 'assert_called_with' etc.
    """

    def __init__(self, return_value: Optional[Any] = None, func: Optional[Callable] = None):
        # Mock to store all execution calls
        self.mock = MagicMock()
        self.return_value = return_value
        self.func = func

    def __call__(self, *args, **kwargs) -> Any:
        self.mock(*args, **kwargs)
        if self.func:
            return self.func(*args, **kwargs)
        return self.return_value


class FakeUbiquityClient:
    """Simulate the Ubiquity server"""

    def __init__(self, volumes=(), configs=None, detach=None):
        """
        Args:
            volumes: Volumes known to the server.
            configs: Volume configs by volume name.
            detach: Optional replacement for the detach call, eg. to raise server errors.
        """
        self.volumes = {v.name: v for v in volumes}
        self.configs = configs or {}

        # Methods declaration
        self.activate = FakeClientMethod()
        self.attach = FakeClientMethod(return_value="")
        self.detach = FakeClientMethod(func=detach)
        self.get_volume = FakeClientMethod(func=lambda name: self.volumes[name])
        self.get_volume_config = FakeClientMethod(func=lambda name: dict(self.configs[name]))
        self.list_volumes = FakeClientMethod(func=lambda: list(self.volumes.values()))


class FakeMounter:
    """Mounter that 'mounts' by creating the target directory"""

    def __init__(self, config):
        self.config = config
        self.mount = MagicMock(side_effect=self._mount)
        self.unmount = MagicMock()
        self.action_after_detach = MagicMock()

    @staticmethod
    def _mount(mountpoint, volume_config):
        target = volume_config.get("mountpoint") or mountpoint
        os.makedirs(target, exist_ok=True)
        return target


# ----------------------------------------------------------------------------------------------------------------------
# Fixtures
# ----------------------------------------------------------------------------------------------------------------------


@pytest.fixture
def config(tmp_path):
    return Config(env=dict(
        FLEX_BLOCK_MOUNT_PATH=str(tmp_path / "ubiquity") + "/{wwn}",
        FLEX_UNMOUNT_LOCK=str(tmp_path / "ubiquity.unmount.lock"),
        FLEX_HOSTNAME="local-node",
        BACKENDS="scbe,spectrum-scale",
        LOG_PATH="",
    ))


@pytest.fixture
def pods_dir(tmp_path):
    """The kubelet volumes directory of a pod"""
    path = tmp_path / "pods" / "x" / "volumes" / "y"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def registry(config):
    return BackendRegistry(config, factories={kind: FakeMounter for kind in BackendKind})


@pytest.fixture
def fake_client():
    """
    FakeUbiquityClient factory.
    """

    def __wrapped(volumes=(), configs=None, detach=None):
        return FakeUbiquityClient(volumes=volumes, configs=configs, detach=detach)

    return __wrapped


@pytest.fixture
def controller(config, registry, fake_client):
    """
    Controller factory, wired to a fake server and fake mounters.
    """

    def __wrapped(client=None, **kwargs):
        client = client or fake_client(**kwargs)
        unmount_lock = UnmountLock(config.unmount_lock_path, interval=0.05)
        return Controller(config=config, client=client, registry=registry, unmount_lock=unmount_lock)

    return __wrapped


@pytest.fixture
def block_volume():
    return Volume(name="pvc-1", backend="scbe")


@pytest.fixture
def block_volume_config():
    return {"Wwn": "60050", "attach-to": "node-a", "fstype": "ext4"}
