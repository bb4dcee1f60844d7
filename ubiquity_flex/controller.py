import inspect
from dataclasses import replace
from functools import wraps
from pprint import pformat

from easypy.exceptions import TException

from .logging import logger
from .configuration import Config
from .exceptions import MissingOption, UbiquityError, VolumeNotFound
from .flex_types import (
    FlexVolumeDriver,
    Response,
    DetachRequest,
    IsAttachedRequest,
    KUBERNETES_1_5,
)
from .ubiquity_client import UbiquityClient, FILESET_NOT_LINKED
from .registry import BackendRegistry
from .attach_state import AttachStateResolver
from .mount_paths import MountPathResolver
from .unmount_lock import UnmountLock
from .utils import volume_name_from_path


################################################################
#
# Helpers
#
################################################################


class Instrumented:
    """
    Logs every FlexVolume call and turns any error into a Failure response,
    kubelet only understands the JSON envelope.
    """

    SILENCED = ["Init"]
    FAILURE_MESSAGES = {}

    @classmethod
    def logged(cls, func):

        method = func.__name__
        log = logger.debug if (method in cls.SILENCED) else logger.info
        failure_message = cls.FAILURE_MESSAGES.get(method)

        @wraps(func)
        def wrapper(self, request=None):
            log(f">>> {method}:")
            if request is not None:
                for line in pformat(request).splitlines():
                    log(f"({method})    {line}")

            try:
                ret = func(self, request)
            except TException as exc:
                logger.exception(f"Exception during {method}")
                ret = Response.failure(cls._render_failure(failure_message, request, exc.render(color=False)))
            except Exception as exc:
                logger.exception(f"Exception during {method}")
                ret = Response.failure(cls._render_failure(failure_message, request, f"[{method}]: {exc}"))

            log(f"<<< {method}:")
            for line in pformat(ret).splitlines():
                log(f"    {line}")
            log(f"--- {method}: Done")
            return ret

        return wrapper

    @staticmethod
    def _render_failure(failure_message, request, text):
        text = text.strip()
        if not failure_message:
            return text
        return f"{failure_message.format(request=request)}, Error: {text}"

    @classmethod
    def __init_subclass__(cls):
        for name, _ in inspect.getmembers(cls.__base__, inspect.isfunction):
            if name.startswith("_"):
                continue
            func = getattr(cls, name)
            setattr(cls, name, cls.logged(func))
        super().__init_subclass__()


################################################################
#
# Controller
#
################################################################


class Controller(FlexVolumeDriver, Instrumented):
    """
    Runs one FlexVolume call against the Ubiquity server and the backend mounters.

    Nothing is kept between calls: kubelet runs a fresh process for each one, so attachment
    state comes from the server and mount state from the symlinks on disk.
    """

    FAILURE_MESSAGES = dict(
        TestConnectivity="Test ubiquity failed",
        Attach="Failed to attach volume [{request.name}]",
        IsAttached="Failed to check IsAttached volume [{request.name}]",
        Detach="Failed to detach volume [{request.name}] from host [{request.host}]",
    )

    def __init__(self, config=None, client=None, registry=None, unmount_lock=None):
        self.config = config or Config()
        self.client = client or UbiquityClient(self.config)
        self.registry = registry or BackendRegistry(self.config)
        self.unmount_lock = unmount_lock or UnmountLock(self.config.unmount_lock_path)
        self.attach_state = AttachStateResolver(self.client)
        self.paths = MountPathResolver(self.config.block_mount_template)

    def Init(self, request=None):
        return Response.success()

    def TestConnectivity(self, request=None):
        backends = request.backends if request and request.backends else self.config.backends
        self.client.activate(backends)
        return Response.success()

    def Attach(self, request):
        # kubelet 1.5 does not pass the host
        host = request.host or self.config.hostname
        self.client.attach(request.name, host)
        return Response.success()

    def IsAttached(self, request):
        return Response.success(attached=self._is_attached(request))

    def Detach(self, request):
        if request.version == KUBERNETES_1_5:
            # done as part of unmount instead (see `_legacy_detach`)
            logger.debug("legacy detach (skipping)")
            return Response.success()
        self._detach(request, check_if_attached=True)
        return Response.success()

    def Mount(self, request):
        mounted_path = self._mount(request)
        self.paths.link_mounted(request, mounted_path)
        return Response.success()

    def Unmount(self, request):
        request = replace(request, mount_path=self.paths.normalize(request.mount_path))
        # rescans are expensive and must not overlap, so unmounts on this node run one at a time
        with self.unmount_lock.held(owner=request.mount_path):
            real_mount_point = self.paths.resolve_link(request.mount_path)
            if self.paths.is_block_mount(real_mount_point):
                self._unmount_block(request, real_mount_point)
            else:
                self._unmount_filesystem(request, real_mount_point)
            self._legacy_detach(request)
        return Response.success()

    def GetVolumeName(self, request=None):
        return Response.not_supported()

    def WaitForAttach(self, request=None):
        return Response.not_supported()

    def MountDevice(self, request=None):
        return Response.not_supported()

    def UnmountDevice(self, request=None):
        return Response.not_supported()

    # ----------------------------
    # Attachment

    def _is_attached(self, request) -> bool:
        if not (volume_name := request.opts.get("volumeName")):
            raise MissingOption(option="volumeName", request="isattached")
        attach_to = self.attach_state.resolve(volume_name)
        is_attached = request.host == attach_to
        logger.debug(f"host={request.host!r} attach_to={attach_to!r} is_attached={is_attached}")
        return is_attached

    def _detach(self, request, check_if_attached):
        if check_if_attached:
            is_attached_request = IsAttachedRequest(host=request.host, opts=dict(volumeName=request.name))
            if not self._is_attached(is_attached_request):
                logger.info(f"{request.name} is not attached to {request.host!r}, nothing to detach")
                return

        host = request.host
        if not host:
            # only when triggered by unmount. The server's record is trusted as is,
            # even if the volume has physically moved since.
            host = self.attach_state.resolve(request.name)

        self.client.detach(request.name, host)
        logger.info(f"{request.name} detached from {host}")

    def _after_detach(self, name):
        volume = self.client.get_volume(name)
        mounter = self.registry.get(volume.backend)
        volume_config = self.client.get_volume_config(name)
        mounter.action_after_detach(volume_config)

    def _legacy_detach(self, request):
        """Kubelet 1.5 never calls detach, so every unmount reconciles the attachment itself"""
        name = volume_name_from_path(request.mount_path)
        self._detach(DetachRequest(name=name), check_if_attached=False)
        self._after_detach(name)

    # ----------------------------
    # Mounting

    def _mount(self, request) -> str:
        name = request.mount_device
        volume_config = self.client.get_volume_config(name)
        volume = self.client.get_volume(name)
        mounter = self.registry.get(volume.backend)

        if not (wwn := request.opts.get("Wwn")):
            raise MissingOption(option="Wwn", request="mount")

        mountpoint = self.paths.block_mount_path(wwn)
        return mounter.mount(mountpoint, volume_config)

    def _unmount_block(self, request, real_mount_point):
        name = volume_name_from_path(request.mount_path)
        volume = self.client.get_volume(name)
        mounter = self.registry.get(volume.backend)
        volume_config = self.client.get_volume_config(name)
        mounter.unmount(volume_config)

        logger.info(f"Removing the slink [{request.mount_path}] to the real mountpoint [{real_mount_point}]")
        self.paths.remove_link(request.mount_path)

    def _unmount_filesystem(self, request, real_mount_point):
        volumes = self.client.list_volumes()
        try:
            volume = next(v for v in volumes if v.mountpoint == request.mount_path)
        except StopIteration:
            raise VolumeNotFound(mountpoint=request.mount_path, real_mount_point=real_mount_point) from None

        try:
            self.client.detach(volume.name)
        except UbiquityError as exc:
            if exc.err != FILESET_NOT_LINKED:
                raise
            logger.info(f"{volume.name} is not linked anymore, nothing to unmount")
