from threading import RLock

from .logging import logger
from .mounters import BackendKind, MOUNTER_FACTORIES


class BackendRegistry:
    """
    Lazily creates one mounter per backend kind and keeps it for the registry's lifetime.
    Safe to share between threads.
    """

    def __init__(self, config, factories=None):
        self.config = config
        self.factories = MOUNTER_FACTORIES if factories is None else factories
        self._mounters = {}
        self._lock = RLock()

    def get(self, backend):
        kind = backend if isinstance(backend, BackendKind) else BackendKind.parse(backend)
        with self._lock:
            if (mounter := self._mounters.get(kind)) is None:
                logger.debug(f"creating mounter for backend {kind.value}")
                mounter = self._mounters[kind] = self.factories[kind](self.config)
        return mounter
