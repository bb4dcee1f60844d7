import json
from pprint import pformat

import requests
from requests.exceptions import RequestException
from requests.utils import default_user_agent

from easypy.bunch import Bunch

from .logging import logger
from .exceptions import UbiquityError
from .flex_types import Volume


FILESET_NOT_LINKED = "fileset not linked"


class UbiquityClient(requests.Session):
    """
    Client of the Ubiquity server REST API.
    Volume metadata and attachment records live on the server, this client only reads
    them and asks the server to attach/detach.
    """

    def __init__(self, config):
        super().__init__()
        self.config = config
        self.base_url = config.ubiquity_url
        self.headers["Accept"] = "application/json"
        self.headers["Content-Type"] = "application/json"
        self.headers["User-Agent"] = f"UbiquityFlex/{config.plugin_version} {default_user_agent()}"

    @property
    def credentials(self):
        return {"UserName": self.config.ubiquity_username, "Password": self.config.ubiquity_password}

    def request(self, verb, api_method, *args, data=None, **kwargs):
        verb = verb.upper()
        url = "/".join(str(p).strip("/") for p in [self.base_url, api_method, *args])
        call = f"[{verb}] {url}"
        logger.info(f">>> {call}")

        if data is not None:
            for line in pformat(data).splitlines():
                logger.debug(f"    {line}")
            kwargs["data"] = json.dumps(dict(data, CredentialInfo=self.credentials))

        kwargs.setdefault("timeout", self.config.ubiquity_timeout)

        try:
            ret = super().request(verb, url, verify=self.config.ssl_verify, **kwargs)
        except RequestException as exc:
            raise UbiquityError(call=call, err=str(exc)) from exc

        try:
            body = Bunch.from_dict(ret.json()) if ret.content else Bunch()
        except ValueError:
            body = Bunch(Err=ret.text.strip())

        if not ret.ok or body.get("Err"):
            raise UbiquityError(call=call, err=body.get("Err") or f"HTTP {ret.status_code}", status_code=ret.status_code)

        logger.info(f"<<< {call}")
        for line in pformat(body).splitlines():
            logger.debug(f"    {line}")
        return body

    def activate(self, backends):
        self.request("post", "activate", data={"Backends": list(backends)})

    def attach(self, name, host):
        ret = self.request("put", "volumes", name, "attach", data={"Name": name, "Host": host})
        return ret.get("Mountpoint", "")

    def detach(self, name, host=""):
        self.request("put", "volumes", name, "detach", data={"Name": name, "Host": host})

    def get_volume(self, name) -> Volume:
        ret = self.request("get", "volumes", name)
        return Volume.from_dict(ret.get("Volume") or {})

    def get_volume_config(self, name) -> dict:
        ret = self.request("get", "volumes", name, "config")
        return dict(ret.get("VolumeConfig") or {})

    def list_volumes(self):
        ret = self.request("get", "volumes")
        return [Volume.from_dict(v) for v in ret.get("Volumes") or []]
