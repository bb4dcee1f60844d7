import json
from unittest.mock import patch

import pytest
import requests

from ubiquity_flex.configuration import Config
from ubiquity_flex.exceptions import UbiquityError
from ubiquity_flex.flex_types import Volume
from ubiquity_flex.ubiquity_client import UbiquityClient, FILESET_NOT_LINKED


def make_response(status_code=200, body=None, text=None):
    resp = requests.Response()
    resp.status_code = status_code
    if text is not None:
        resp._content = text.encode()
    elif body is not None:
        resp._content = json.dumps(body).encode()
    else:
        resp._content = b""
    return resp


@pytest.fixture
def client_config():
    return Config(env=dict(
        UBIQUITY_ADDRESS="ubiquity.local",
        UBIQUITY_PORT="9999",
        UBIQUITY_USERNAME="admin",
        UBIQUITY_PASSWORD="secret",
        UBIQUITY_TIMEOUT="30",
        SSL_MODE="disable",
    ))


@pytest.fixture
def session_request():
    with patch("requests.Session.request") as mocked:
        yield mocked


class TestUbiquityClientSuite:

    def test_attach(self, client_config, session_request):
        """Test call routing, credentials and the returned mountpoint"""
        # Preparation
        session_request.return_value = make_response(body={"Mountpoint": "/ubiquity/60050", "Err": ""})
        client = UbiquityClient(client_config)

        # Execution
        mountpoint = client.attach("pvc-1", "node-a")

        # Assertion
        assert mountpoint == "/ubiquity/60050"
        args, kwargs = session_request.call_args
        assert args == ("PUT", "http://ubiquity.local:9999/ubiquity_storage/volumes/pvc-1/attach")
        assert kwargs["timeout"] == 30
        assert kwargs["verify"] is False
        assert json.loads(kwargs["data"]) == {
            "Name": "pvc-1",
            "Host": "node-a",
            "CredentialInfo": {"UserName": "admin", "Password": "secret"},
        }

    def test_verify_full(self, session_request):
        conf = Config(env=dict(SSL_MODE="verify-full", UBIQUITY_PLUGIN_VERIFY_CA="/etc/ubiquity/ca.crt"))
        session_request.return_value = make_response(body={"Volumes": []})
        client = UbiquityClient(conf)

        assert client.list_volumes() == []

        args, kwargs = session_request.call_args
        assert args == ("GET", "https://127.0.0.1:9999/ubiquity_storage/volumes")
        assert kwargs["verify"] == "/etc/ubiquity/ca.crt"
        assert kwargs["timeout"] is None
        assert "data" not in kwargs

    def test_activate(self, client_config, session_request):
        session_request.return_value = make_response(body={"Err": ""})
        client = UbiquityClient(client_config)

        client.activate(["scbe", "spectrum-scale"])

        args, kwargs = session_request.call_args
        assert args == ("POST", "http://ubiquity.local:9999/ubiquity_storage/activate")
        assert json.loads(kwargs["data"])["Backends"] == ["scbe", "spectrum-scale"]

    def test_volume_lookups(self, client_config, session_request):
        session_request.side_effect = [
            make_response(body={"Volume": {"Name": "pvc-1", "Backend": "scbe"}}),
            make_response(body={"VolumeConfig": {"Wwn": "60050", "attach-to": "node-a"}}),
            make_response(body={"Volumes": [
                {"Name": "pvc-1", "Backend": "scbe", "Mountpoint": "/ubiquity/60050"},
                {"Name": "pvc-2", "Backend": "spectrum-scale", "Mountpoint": "/gpfs/fs1/pvc-2"},
            ]}),
        ]
        client = UbiquityClient(client_config)

        assert client.get_volume("pvc-1") == Volume(name="pvc-1", backend="scbe")
        assert client.get_volume_config("pvc-1") == {"Wwn": "60050", "attach-to": "node-a"}
        assert client.list_volumes() == [
            Volume(name="pvc-1", backend="scbe", mountpoint="/ubiquity/60050"),
            Volume(name="pvc-2", backend="spectrum-scale", mountpoint="/gpfs/fs1/pvc-2"),
        ]
        assert session_request.call_args_list[1][0][1].endswith("/volumes/pvc-1/config")

    def test_error_field(self, client_config, session_request):
        """The server reports failures in the Err field, even with a 200 status"""
        session_request.return_value = make_response(body={"Err": FILESET_NOT_LINKED})
        client = UbiquityClient(client_config)

        with pytest.raises(UbiquityError) as exc:
            client.detach("pvc-1", "node-a")

        assert exc.value.err == FILESET_NOT_LINKED
        assert "volumes/pvc-1/detach" in exc.value.call

    @pytest.mark.parametrize("response, err", [
        (make_response(status_code=500), "HTTP 500"),
        (make_response(status_code=502, text="bad gateway\n"), "bad gateway"),
        (make_response(status_code=404, body={"Err": "volume not found"}), "volume not found"),
    ])
    def test_http_errors(self, client_config, session_request, response, err):
        session_request.return_value = response
        client = UbiquityClient(client_config)

        with pytest.raises(UbiquityError) as exc:
            client.get_volume("pvc-1")

        assert exc.value.err == err
        assert exc.value.status_code == response.status_code

    def test_connection_error(self, client_config, session_request):
        session_request.side_effect = requests.exceptions.ConnectionError("connection refused")
        client = UbiquityClient(client_config)

        with pytest.raises(UbiquityError) as exc:
            client.activate(["scbe"])

        assert "connection refused" in exc.value.err
        assert "Ubiquity call [POST]" in exc.value.render(color=False)
