from .logging import logger
from .exceptions import VolumeConfigError


ATTACH_TO_KEY = "attach-to"


class AttachStateResolver:
    def __init__(self, client):
        self.client = client

    def resolve(self, volume_name) -> str:
        """
        Return the host the server has recorded the volume as attached to.
        A missing or malformed record is an integrity error on the server side,
        not an indication that the volume is detached.
        """
        volume_config = self.client.get_volume_config(volume_name)
        attach_to = volume_config.get(ATTACH_TO_KEY)
        if not isinstance(attach_to, str):
            raise VolumeConfigError(volume=volume_name, key=ATTACH_TO_KEY, volume_config=volume_config)
        logger.debug(f"{volume_name} is attached to {attach_to!r}")
        return attach_to
