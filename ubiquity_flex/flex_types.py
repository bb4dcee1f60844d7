from dataclasses import dataclass, field


KUBERNETES_1_5 = "1.5"
KUBERNETES_1_6_OR_LATER = "1.6+"

SUCCESS = "Success"
FAILURE = "Failure"
NOT_SUPPORTED = "Not supported"


@dataclass
class Response:
    """FlexVolume response envelope, printed as JSON for kubelet"""

    status: str
    message: str = ""
    device: str = ""
    attached: bool = False

    @classmethod
    def success(cls, **kwargs):
        return cls(status=SUCCESS, **kwargs)

    @classmethod
    def failure(cls, message):
        return cls(status=FAILURE, message=message)

    @classmethod
    def not_supported(cls):
        return cls(status=NOT_SUPPORTED)

    def to_dict(self):
        return dict(status=self.status, message=self.message, device=self.device, attached=self.attached)


@dataclass(frozen=True)
class Volume:
    name: str
    backend: str
    mountpoint: str = ""

    @classmethod
    def from_dict(cls, d):
        return cls(name=d.get("Name", ""), backend=d.get("Backend", ""), mountpoint=d.get("Mountpoint", ""))


@dataclass(frozen=True)
class ActivateRequest:
    backends: list = field(default_factory=list)


@dataclass(frozen=True)
class AttachRequest:
    name: str
    host: str = ""
    opts: dict = field(default_factory=dict)
    version: str = KUBERNETES_1_6_OR_LATER


@dataclass(frozen=True)
class DetachRequest:
    name: str
    host: str = ""
    version: str = KUBERNETES_1_6_OR_LATER


@dataclass(frozen=True)
class IsAttachedRequest:
    host: str
    name: str = ""
    opts: dict = field(default_factory=dict)


@dataclass(frozen=True)
class MountRequest:
    mount_path: str
    mount_device: str
    opts: dict = field(default_factory=dict)
    version: str = KUBERNETES_1_6_OR_LATER


@dataclass(frozen=True)
class UnmountRequest:
    mount_path: str


@dataclass(frozen=True)
class GetVolumeNameRequest:
    opts: dict = field(default_factory=dict)


@dataclass(frozen=True)
class WaitForAttachRequest:
    device: str = ""
    opts: dict = field(default_factory=dict)


@dataclass(frozen=True)
class MountDeviceRequest:
    mount_path: str = ""
    device: str = ""
    opts: dict = field(default_factory=dict)


@dataclass(frozen=True)
class UnmountDeviceRequest:
    mount_path: str = ""


class FlexVolumeDriver:
    """
    The FlexVolume call surface.
    Every call takes one request record and returns a `Response`.
    """

    def Init(self, request):
        raise NotImplementedError

    def TestConnectivity(self, request):
        raise NotImplementedError

    def Attach(self, request):
        raise NotImplementedError

    def Detach(self, request):
        raise NotImplementedError

    def IsAttached(self, request):
        raise NotImplementedError

    def Mount(self, request):
        raise NotImplementedError

    def Unmount(self, request):
        raise NotImplementedError

    def GetVolumeName(self, request):
        raise NotImplementedError

    def WaitForAttach(self, request):
        raise NotImplementedError

    def MountDevice(self, request):
        raise NotImplementedError

    def UnmountDevice(self, request):
        raise NotImplementedError
