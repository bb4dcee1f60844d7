import logging
from plumbum import local


logger = logging.getLogger("ubiquity-flex")


def init_logging(level, path=None):
    # stdout carries the JSON response for kubelet, so logs never go there
    kwargs = {}
    if path:
        path = local.path(path)
        path.dirname.mkdir()
        kwargs["filename"] = str(path)
    logging.basicConfig(
        level=level.upper(),
        format="{asctime}|{levelname:7}|{process:6}|{name:15}| {message}",
        style="{",
        **kwargs,
    )
