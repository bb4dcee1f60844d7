import sys
import json
import argparse
from easypy.bunch import Bunch
from easypy.exceptions import TException


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Ubiquity FlexVolume driver")
    parser.set_defaults(func=lambda *_, **__: parser.print_help())

    subparsers = parser.add_subparsers()

    init_parse = subparsers.add_parser("init", help='Initialize the driver (called by kubelet)')
    init_parse.set_defaults(func=_call("Init", _init_request))

    test_parse = subparsers.add_parser("testubiquity", help='Test connectivity to the Ubiquity server')
    test_parse.set_defaults(func=_call("TestConnectivity", _activate_request))

    attach_parse = subparsers.add_parser("attach", help='Attach a volume to a host')
    attach_parse.add_argument("options", help="JSON options")
    attach_parse.add_argument("host", nargs="?", default="", help="Omitted by kubelet 1.5")
    attach_parse.set_defaults(func=_call("Attach", _attach_request))

    detach_parse = subparsers.add_parser("detach", help='Detach a volume from a host')
    detach_parse.add_argument("name")
    detach_parse.add_argument("host", nargs="?", default="", help="Omitted by kubelet 1.5")
    detach_parse.set_defaults(func=_call("Detach", _detach_request))

    isattached_parse = subparsers.add_parser("isattached", help='Check whether a volume is attached to a host')
    isattached_parse.add_argument("options", help="JSON options")
    isattached_parse.add_argument("host")
    isattached_parse.set_defaults(func=_call("IsAttached", _isattached_request))

    mount_parse = subparsers.add_parser("mount", help='Mount a volume for a pod')
    mount_parse.add_argument("mount_dir")
    mount_parse.add_argument("args", nargs="+", metavar="[device] options", help="kubelet 1.5 also passes the device")
    mount_parse.set_defaults(func=_call("Mount", _mount_request))

    unmount_parse = subparsers.add_parser("unmount", help='Unmount a volume from a pod')
    unmount_parse.add_argument("mount_dir")
    unmount_parse.set_defaults(func=_call("Unmount", _unmount_request))

    getvolumename_parse = subparsers.add_parser("getvolumename", help='Not supported')
    getvolumename_parse.add_argument("options", nargs="?", default="")
    getvolumename_parse.set_defaults(func=_call("GetVolumeName", _getvolumename_request))

    waitforattach_parse = subparsers.add_parser("waitforattach", help='Not supported')
    waitforattach_parse.add_argument("device", nargs="?", default="")
    waitforattach_parse.add_argument("options", nargs="?", default="")
    waitforattach_parse.set_defaults(func=_call("WaitForAttach", _waitforattach_request))

    mountdevice_parse = subparsers.add_parser("mountdevice", help='Not supported')
    mountdevice_parse.add_argument("mount_dir", nargs="?", default="")
    mountdevice_parse.add_argument("device", nargs="?", default="")
    mountdevice_parse.add_argument("options", nargs="?", default="")
    mountdevice_parse.set_defaults(func=_call("MountDevice", _mountdevice_request))

    unmountdevice_parse = subparsers.add_parser("unmountdevice", help='Not supported')
    unmountdevice_parse.add_argument("mount_dir", nargs="?", default="")
    unmountdevice_parse.set_defaults(func=_call("UnmountDevice", _unmountdevice_request))

    info_parse = subparsers.add_parser("info", help='Print versioning information for this driver')
    info_parse.add_argument("--output", default="json", choices=['json', 'yaml'], help="Output format")
    info_parse.set_defaults(func=_info)

    args = parser.parse_args(argv, namespace=Bunch())
    args.pop("func")(args)


def _call(method, make_request):
    """Build the request for `method` from the command line, run it and print the JSON response"""

    def run(args):
        from .configuration import Config
        from .controller import Controller
        from .flex_types import Response
        from .logging import logger, init_logging

        conf = Config()
        init_logging(level=conf.log_level, path=conf.log_file)
        try:
            request = make_request(args)
        except (ValueError, TException) as exc:
            logger.exception(f"Bad arguments for {method}")
            response = Response.failure(f"[{method}]: invalid arguments: {exc}")
        else:
            response = getattr(Controller(conf), method)(request)
        json.dump(response.to_dict(), sys.stdout)
        sys.stdout.write("\n")

    return run


def _volume_name(opts, *keys):
    from .exceptions import MissingOption
    for key in keys:
        if name := opts.get(key):
            return name
    raise MissingOption(option=keys[0], request="command line")


def _init_request(args):
    return None


def _activate_request(args):
    from .flex_types import ActivateRequest
    return ActivateRequest()


def _attach_request(args):
    from .flex_types import AttachRequest, KUBERNETES_1_5, KUBERNETES_1_6_OR_LATER
    from .utils import parse_options
    opts = parse_options(args.options)
    version = KUBERNETES_1_6_OR_LATER if args.host else KUBERNETES_1_5
    return AttachRequest(name=_volume_name(opts, "volumeName"), host=args.host, opts=opts, version=version)


def _detach_request(args):
    from .flex_types import DetachRequest, KUBERNETES_1_5, KUBERNETES_1_6_OR_LATER
    version = KUBERNETES_1_6_OR_LATER if args.host else KUBERNETES_1_5
    return DetachRequest(name=args.name, host=args.host, version=version)


def _isattached_request(args):
    from .flex_types import IsAttachedRequest
    from .utils import parse_options
    opts = parse_options(args.options)
    return IsAttachedRequest(host=args.host, name=opts.get("volumeName", ""), opts=opts)


def _mount_request(args):
    from .flex_types import MountRequest, KUBERNETES_1_5, KUBERNETES_1_6_OR_LATER
    from .utils import parse_options
    if len(args.args) == 1:
        [raw_options] = args.args
        opts = parse_options(raw_options)
        name = _volume_name(opts, "kubernetes.io/pvOrVolumeName", "volumeName")
        version = KUBERNETES_1_6_OR_LATER
    else:
        device, raw_options = args.args[:2]
        opts = parse_options(raw_options)
        name = device
        version = KUBERNETES_1_5
    return MountRequest(mount_path=args.mount_dir, mount_device=name, opts=opts, version=version)


def _unmount_request(args):
    from .flex_types import UnmountRequest
    return UnmountRequest(mount_path=args.mount_dir)


def _getvolumename_request(args):
    from .flex_types import GetVolumeNameRequest
    from .utils import parse_options
    return GetVolumeNameRequest(opts=parse_options(args.options))


def _waitforattach_request(args):
    from .flex_types import WaitForAttachRequest
    from .utils import parse_options
    return WaitForAttachRequest(device=args.device, opts=parse_options(args.options))


def _mountdevice_request(args):
    from .flex_types import MountDeviceRequest
    from .utils import parse_options
    return MountDeviceRequest(mount_path=args.mount_dir, device=args.device, opts=parse_options(args.options))


def _unmountdevice_request(args):
    from .flex_types import UnmountDeviceRequest
    return UnmountDeviceRequest(mount_path=args.mount_dir)


def _info(args):
    from . configuration import Config
    conf = Config()
    info = dict(name=conf.plugin_name, version=conf.plugin_version)
    if args.output == "yaml":
        import yaml
        yaml.dump(info, sys.stdout)
    elif args.output == "json":
        json.dump(info, sys.stdout)
    else:
        assert False, f"invalid output format: {args.output}"


if __name__ == '__main__':
    main()
