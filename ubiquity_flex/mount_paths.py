"""
Kubelet expects the volume at its pod mount directory, mounters put the data elsewhere
(a per-WWN directory for block volumes, the fileset or NFS mountpoint otherwise).
The two are bridged by a symlink at the kubelet path, and the symlink target is all that
unmount has to go on later.
"""

import os

from plumbum import local, ProcessExecutionError

from .logging import logger
from .exceptions import NotASymlink, SymlinkFailed
from .flex_types import KUBERNETES_1_5


class MountPathResolver:

    def __init__(self, block_mount_template: str):
        self.block_mount_template = block_mount_template

    @property
    def block_mount_prefix(self) -> str:
        return self.block_mount_template.format(wwn="")

    def block_mount_path(self, wwn: str) -> str:
        return self.block_mount_template.format(wwn=wwn)

    def is_block_mount(self, path) -> bool:
        """Tell block-device mounts from filesystem mounts by where they live"""
        return str(path).startswith(self.block_mount_prefix)

    @staticmethod
    def normalize(mount_path) -> str:
        """Drop trailing slashes, which would make a symlink to a directory look like the directory"""
        return str(mount_path).rstrip("/") or "/"

    def resolve_link(self, mount_path) -> str:
        mount_path = self.normalize(mount_path)
        if not os.path.islink(mount_path):
            raise NotASymlink(mount_path=mount_path)
        return os.path.realpath(mount_path)

    def link_mounted(self, request, mounted_path) -> str:
        """Expose `mounted_path` at the mount path kubelet asked for"""
        mount_path = local.path(request.mount_path)

        if request.version == KUBERNETES_1_5:
            # kubelet 1.5 does not create the mount directory, nor its parent
            link_path = mount_path
            logger.debug(f"creating volume directory {mount_path.dirname}")
            mount_path.dirname.mkdir()
        else:
            # kubelet 1.6+ pre-creates the mount directory, which would block the symlink
            if self.is_block_mount(mounted_path):
                link_path = mount_path
            else:
                link_path = mount_path.dirname
            self._remove_mount_dir(mount_path)

        self.symlink(mounted_path, link_path)
        logger.info(f"Volume mounted successfully: {mounted_path} (linked from {link_path})")
        return str(link_path)

    def _remove_mount_dir(self, mount_path):
        logger.debug(f"removing folder {mount_path}")
        try:
            if os.path.islink(mount_path):
                os.remove(mount_path)
            else:
                os.rmdir(mount_path)
        except FileNotFoundError:
            pass

    def symlink(self, target, link_path):
        logger.debug(f"creating slink from {target} -> {link_path}")
        try:
            local["ln"]("-s", str(target), str(link_path))
        except ProcessExecutionError as exc:
            raise SymlinkFailed(target=target, link_path=link_path, detail=exc.stderr.strip()) from exc

    def remove_link(self, mount_path):
        mount_path = self.normalize(mount_path)
        logger.debug(f"removing the slink {mount_path}")
        os.remove(mount_path)
