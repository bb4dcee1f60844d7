"""
Node-local mount executors, one class per storage backend family.

The Ubiquity server attaches and detaches volumes on the storage side,
mounters do what is left on this node: discover devices, make filesystems,
and mount/unmount them.
"""

import os
from collections import deque
from enum import Enum

from plumbum import cmd, local, ProcessExecutionError
from plumbum.commands.processes import ProcessTimedOut

from .logging import logger
from .exceptions import CommandFailed, MounterNotFound, MountFailed, VolumeConfigError
from .utils import get_mount


class BackendKind(Enum):
    SCBE = "scbe"
    SPECTRUM_SCALE = "spectrum-scale"
    SPECTRUM_SCALE_NFS = "spectrum-scale-nfs"
    SOFTLAYER_NFS = "softlayer-nfs"

    @classmethod
    def parse(cls, backend):
        try:
            return cls(backend)
        except ValueError:
            raise MounterNotFound(backend=backend) from None


def _required(volume_config, key, volume_kind):
    if not (value := volume_config.get(key)):
        raise VolumeConfigError(volume=volume_config.get("Name", volume_kind), key=key)
    return value


class Mounter:

    ERROR_TAIL_LINES = 5

    def __init__(self, config):
        self.config = config

    def run(self, command, retcode=0):
        """Run an external command, bounded by the configured mounter timeout"""
        logger.debug(f"running: {command}")
        try:
            return command.run(retcode=retcode, timeout=self.config.mounter_timeout)
        except ProcessTimedOut as exc:
            raise CommandFailed(command=str(command), detail=f"timed out after {self.config.mounter_timeout}s") from exc
        except ProcessExecutionError as exc:
            raise CommandFailed(command=str(command), detail=exc.stderr.strip()) from exc

    def mount_fs(self, src, tgt, flags=(), fs_type=None):
        executable = cmd.mount
        if fs_type:
            executable = executable["-t", fs_type]
        flags = list(filter(None, flags))
        if flags:
            executable = executable["-o", ",".join(flags)]
        # the last stderr lines are kept, they are all kubelet gets to see on failure
        errors = deque(maxlen=self.ERROR_TAIL_LINES)
        popen = executable["-v", src, tgt].popen()
        try:
            for out, err in popen.iter_lines(retcode=None, timeout=self.config.mounter_timeout):
                if err:
                    errors.append(err.rstrip())
                logger.info(f"mount >> {(out or err).rstrip()}")
        except ProcessTimedOut as exc:
            raise MountFailed(detail=f"timed out after {self.config.mounter_timeout}s", src=src, tgt=tgt) from exc
        if returncode := popen.wait():
            detail = "\n".join(errors) or f"exit code {returncode}"
            raise MountFailed(detail=detail, src=src, tgt=tgt, mount_options=flags)

    def umount_fs(self, tgt):
        if not get_mount(str(tgt)):
            logger.info(f"{tgt} is not mounted")
            return
        self.run(cmd.umount["-v", tgt])
        logger.info(f"unmounted: {tgt}")

    def mount(self, mountpoint, volume_config) -> str:
        raise NotImplementedError

    def unmount(self, volume_config):
        raise NotImplementedError

    def action_after_detach(self, volume_config):
        pass


class ScbeMounter(Mounter):
    """Block volumes served over iSCSI/FC and exposed through device-mapper multipath"""

    DEFAULT_FS_TYPE = "ext4"

    def rescan(self):
        if self.config.skip_rescan_iscsi:
            logger.debug("skipping iscsi rescan")
        else:
            self.run(cmd.iscsiadm["-m", "session", "--rescan"], retcode=None)
        self.run(local["multipath"], retcode=None)

    def discover(self, wwn):
        """Return the multipath device that serves the given WWN"""
        _, out, _ = self.run(local["multipath"]["-ll"])
        wwn = wwn.lower()
        for line in out.splitlines():
            if wwn in line.lower() and not line.startswith((" ", "|", "`")):
                mpath = line.split()[0]
                return local.path("/dev/mapper") / mpath
        raise CommandFailed(command="multipath -ll", detail=f"no multipath device found for WWN {wwn}")

    def has_filesystem(self, device):
        retcode, _, _ = self.run(local["blkid"][device], retcode=None)
        return retcode == 0

    def mount(self, mountpoint, volume_config) -> str:
        wwn = _required(volume_config, "Wwn", "scbe")
        fs_type = volume_config.get("fstype") or self.DEFAULT_FS_TYPE
        self.rescan()
        device = self.discover(wwn)

        if not self.has_filesystem(device):
            logger.info(f"creating {fs_type} filesystem on {device}")
            self.run(local["mkfs"]["-t", fs_type, device])

        mountpoint = local.path(mountpoint)
        if get_mount(str(mountpoint)):
            logger.info(f"{device} is already mounted on {mountpoint}")
            return str(mountpoint)
        mountpoint.mkdir()
        self.mount_fs(device, mountpoint)
        logger.info(f"mounted: {device} on {mountpoint}")
        return str(mountpoint)

    def unmount(self, volume_config):
        wwn = _required(volume_config, "Wwn", "scbe")
        mountpoint = local.path(self.config.block_mount_template.format(wwn=wwn))
        device = self.discover(wwn)
        self.umount_fs(mountpoint)
        self.run(local["multipath"]["-f", device.name])
        if mountpoint.exists():
            os.rmdir(mountpoint)  # don't use plumbum's .delete to avoid the dangerous rmtree
        logger.info(f"cleaned up {device} ({wwn})")

    def action_after_detach(self, volume_config):
        self.rescan()


class SpectrumScaleMounter(Mounter):
    """Filesets of a cluster filesystem that is mounted on every node already"""

    def mount(self, mountpoint, volume_config) -> str:
        fileset_path = local.path(_required(volume_config, "mountpoint", "spectrum-scale"))
        if not fileset_path.exists():
            raise MountFailed(src=fileset_path, detail="fileset is not linked on this node")
        return str(fileset_path)

    def unmount(self, volume_config):
        # unlinking the fileset is done by the server on detach
        pass


class NfsMounter(Mounter):

    def mount(self, mountpoint, volume_config) -> str:
        nfs_share = _required(volume_config, "nfs_share", "nfs")
        target = local.path(_required(volume_config, "mountpoint", "nfs"))
        if found_mount := get_mount(str(target)):
            if found_mount.device != nfs_share:
                raise MountFailed(src=nfs_share, detail=f"{target} is already mounted from {found_mount.device}")
            logger.info(f"{nfs_share} is already mounted on {target}")
            return str(target)
        target.mkdir()
        self.mount_fs(nfs_share, target, flags=self.config.nfs_mount_options, fs_type="nfs")
        logger.info(f"mounted: {nfs_share} on {target}")
        return str(target)

    def unmount(self, volume_config):
        target = local.path(_required(volume_config, "mountpoint", "nfs"))
        self.umount_fs(target)
        if target.exists():
            os.rmdir(target)


MOUNTER_FACTORIES = {
    BackendKind.SCBE: ScbeMounter,
    BackendKind.SPECTRUM_SCALE: SpectrumScaleMounter,
    BackendKind.SPECTRUM_SCALE_NFS: NfsMounter,
    BackendKind.SOFTLAYER_NFS: NfsMounter,
}
