import socket
from tempfile import gettempdir

from plumbum import local
from plumbum.typed_env import TypedEnv


class Config(TypedEnv):
    class Path(TypedEnv.Str):
        convert = staticmethod(local.path)

    plugin_name = "ubiquity-k8s-flex"
    plugin_version = "1.0.0"
    log_file_name = "ubiquity-k8s-flex.log"

    log_level = TypedEnv.Str("LOG_LEVEL", default="info")
    _log_path = TypedEnv.Str("LOG_PATH", default="/var/tmp")
    backends = TypedEnv.CSV("BACKENDS", default=[])

    ubiquity_address = TypedEnv.Str("UBIQUITY_ADDRESS", default="127.0.0.1")
    ubiquity_port = TypedEnv.Int("UBIQUITY_PORT", default=9999)
    ubiquity_username = TypedEnv.Str("UBIQUITY_USERNAME", default="")
    ubiquity_password = TypedEnv.Str("UBIQUITY_PASSWORD", default="")
    ssl_mode = TypedEnv.Str("SSL_MODE", default="require")
    ssl_ca_cert = Path(
        "UBIQUITY_PLUGIN_VERIFY_CA",
        default=local.path("/var/lib/ubiquity/ssl/public/ubiquity-trusted-ca.crt"),
    )
    ubiquity_timeout = TypedEnv.Int("UBIQUITY_TIMEOUT", default=None)  # seconds, None waits forever

    skip_rescan_iscsi = TypedEnv.Bool("SCBE_SKIP_RESCAN_ISCSI", default=False)

    block_mount_template = TypedEnv.Str("FLEX_BLOCK_MOUNT_PATH", default="/ubiquity/{wwn}")
    unmount_lock_path = Path(
        "FLEX_UNMOUNT_LOCK", default=local.path(gettempdir()) / "ubiquity.unmount.lock"
    )
    mounter_timeout = TypedEnv.Int("FLEX_MOUNTER_TIMEOUT", default=None)
    _nfs_mount_options = TypedEnv.Str("FLEX_NFS_MOUNT_OPTIONS", default="")  # For example: "vers=3,nolock"
    hostname = TypedEnv.Str("FLEX_HOSTNAME", default=socket.gethostname())

    @property
    def log_file(self):
        if not self._log_path:
            return None
        return local.path(self._log_path) / self.log_file_name

    @property
    def nfs_mount_options(self):
        s = self._nfs_mount_options.strip()
        return [p for p in s.split(",") if p]

    @property
    def ubiquity_url(self):
        scheme = "http" if self.ssl_mode == "disable" else "https"
        return f"{scheme}://{self.ubiquity_address}:{self.ubiquity_port}/ubiquity_storage"

    @property
    def ssl_verify(self):
        if self.ssl_mode == "verify-full":
            return str(self.ssl_ca_cert)
        return False
