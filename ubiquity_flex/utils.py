import json

from plumbum import local


def get_mount(target_path):
    import psutil
    for m in psutil.disk_partitions(all=True):
        if m.mountpoint == target_path:
            return m


def volume_name_from_path(mount_path) -> str:
    """Kubelet names the last component of the pod mount directory after the PV"""
    return local.path(mount_path).name


def parse_options(raw: str) -> dict:
    """
    Parse the JSON options kubelet passes on the command line.
    Values are normalized to strings, as kubelet sends them.
    """
    opts = json.loads(raw) if raw else {}
    if not isinstance(opts, dict):
        raise ValueError(f"expected a JSON object of options, got: {raw!r}")
    return {k: v if isinstance(v, str) else json.dumps(v) for k, v in opts.items()}
