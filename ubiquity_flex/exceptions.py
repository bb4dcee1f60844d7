from easypy.exceptions import TException


class MissingOption(TException):
    template = "Required option {option!r} was not found in the {request} request"


class VolumeConfigError(TException):
    template = "Volume config of {volume!r} has no valid {key!r} entry"


class UbiquityError(TException):
    template = "Ubiquity call {call} failed: {err}"


class MounterNotFound(TException):
    template = "Mounter not found for backend: {backend}"


class MountFailed(TException):
    template = "Mounting {src} failed"


class CommandFailed(TException):
    template = "Command {command} failed"


class NotASymlink(TException):
    template = "Cannot execute umount because the mountPath [{mount_path}] is not a symlink as expected"


class SymlinkFailed(TException):
    template = "Failed to symlink {target} -> {link_path}"


class VolumeNotFound(TException):
    template = "Volume with mountpoint [{mountpoint}] was not found in the ubiquity volume list"
