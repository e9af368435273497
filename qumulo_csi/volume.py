"""Volume identity and its encoding into a CSI volume ID.

Nothing about a volume is stored outside the cluster: the volume ID carries
everything needed to find the volume again.

Volume ID format::

    v1:<server>:<restPort>//<storeRealPath>//<storeMountPath>//<name>

Both paths are canonical (no leading, trailing or repeated ``/``), so they
never contain ``//`` themselves and the root path is an empty segment.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .exceptions import InvalidArgument, InvalidVolumeId
from .utils import canonicalize_path, join_cluster_path

VOLUME_ID_VERSION = "v1"
FIELD_SEPARATOR = "//"

# Storage class parameters, compared case-insensitively.
PARAM_SERVER = "server"
PARAM_REST_PORT = "restport"
PARAM_STORE_REAL_PATH = "storerealpath"
PARAM_STORE_MOUNT_PATH = "storemountpath"
PARAM_STORE_EXPORT = "storeexport"

# Volume context keys handed to the node plugin.
CONTEXT_SERVER = "server"
CONTEXT_SHARE = "share"

# Names that would resolve to storeRealPath or its parent.
RESERVED_NAMES = frozenset([".", ".."])


@dataclass(frozen=True)
class QumuloVolume:
    """A volume provisioned by the controller."""

    # Address of the cluster.
    server: str
    # REST API port on the cluster.
    rest_port: int
    # Directory volumes are created under, canonical.
    store_real_path: str
    # Path that directory is reachable at from clients, canonical.
    store_mount_path: str
    # Directory name created under store_real_path.
    name: str

    @property
    def volume_id(self) -> str:
        return encode_volume_id(
            self.server,
            self.rest_port,
            self.store_real_path,
            self.store_mount_path,
            self.name,
        )

    @property
    def real_path(self) -> str:
        """Absolute path of the volume directory on the cluster."""
        return join_cluster_path(self.store_real_path, self.name)

    @property
    def share_path(self) -> str:
        """User-visible share path for the volume."""
        return join_cluster_path(self.store_mount_path, self.name)

    def volume_context(self) -> Dict[str, str]:
        return {CONTEXT_SERVER: self.server, CONTEXT_SHARE: self.share_path}


def encode_volume_id(
    server: str, rest_port: int, store_real_path: str, store_mount_path: str, name: str
) -> str:
    fields = [canonicalize_path(store_real_path), canonicalize_path(store_mount_path), name]
    return f"{VOLUME_ID_VERSION}:{server}:{int(rest_port)}{FIELD_SEPARATOR}" + FIELD_SEPARATOR.join(fields)


def _is_canonical(path: str) -> bool:
    return canonicalize_path(path) == path


def decode_volume_id(volume_id: Any) -> QumuloVolume:
    """Parse a volume ID produced by :func:`encode_volume_id`.

    Raises:
        InvalidVolumeId: For anything that is not exactly a valid token
    """
    error = InvalidVolumeId(f"Could not decode volume ID {volume_id!r}")

    if not isinstance(volume_id, str):
        raise error

    prefix = VOLUME_ID_VERSION + ":"
    if not volume_id.startswith(prefix):
        raise error

    header, separator, rest = volume_id[len(prefix):].partition(FIELD_SEPARATOR)
    if not separator:
        raise error

    header_fields = header.split(":")
    if len(header_fields) != 2:
        raise error
    server, port = header_fields
    if not server or "/" in server:
        raise error
    if not (port.isascii() and port.isdigit()):
        raise error

    fields = rest.split(FIELD_SEPARATOR)
    if len(fields) != 3:
        raise error
    store_real_path, store_mount_path, name = fields
    if not (_is_canonical(store_real_path) and _is_canonical(store_mount_path)):
        raise error
    if not name or "/" in name or name in RESERVED_NAMES:
        raise error

    return QumuloVolume(
        server=server,
        rest_port=int(port),
        store_real_path=store_real_path,
        store_mount_path=store_mount_path,
        name=name,
    )


@dataclass(frozen=True)
class PlacementParameters:
    """Validated storage class parameters for CreateVolume."""

    server: str
    rest_port: int
    store_real_path: str
    store_mount_path: Optional[str] = None
    store_export: Optional[str] = None

    def make_volume(self, name: str, store_mount_path: Optional[str] = None) -> QumuloVolume:
        """Build the volume for ``name``.

        ``store_mount_path`` overrides the configured mount path; it is used
        once an export has been resolved.

        Raises:
            InvalidArgument: ``name`` is empty, contains ``/`` or is reserved
        """
        if not name or "/" in name or name in RESERVED_NAMES:
            raise InvalidArgument(f"invalid volume name {name!r}")
        if store_mount_path is None:
            store_mount_path = self.store_mount_path
        if store_mount_path is None:
            store_mount_path = self.store_real_path
        return QumuloVolume(
            server=self.server,
            rest_port=self.rest_port,
            store_real_path=canonicalize_path(self.store_real_path),
            store_mount_path=canonicalize_path(store_mount_path),
            name=name,
        )


def _parse_port(value: str) -> int:
    try:
        port = int(value)
    except (TypeError, ValueError):
        raise InvalidArgument(f"invalid port {value!r}")
    if port <= 0 or port > 65535:
        raise InvalidArgument(f"invalid port {value!r}")
    return port


def parse_parameters(params: Optional[Dict[str, str]], default_port: int = 8000) -> PlacementParameters:
    """Validate CreateVolume parameters.

    Args:
        params: Storage class parameters, keys matched case-insensitively
        default_port: REST port used when restPort is absent

    Raises:
        InvalidArgument: Unknown key, bad port, or a missing/relative path
    """
    server = ""
    rest_port = default_port
    store_real_path = ""
    store_mount_path = None
    store_export = None

    for key, value in (params or {}).items():
        lowered = key.lower()
        if lowered == PARAM_SERVER:
            server = value
        elif lowered == PARAM_REST_PORT:
            rest_port = _parse_port(value)
        elif lowered == PARAM_STORE_REAL_PATH:
            store_real_path = value
        elif lowered == PARAM_STORE_MOUNT_PATH:
            store_mount_path = value
        elif lowered == PARAM_STORE_EXPORT:
            store_export = value
        else:
            raise InvalidArgument(f"invalid parameter {key!r}")

    if not server:
        raise InvalidArgument(f"{PARAM_SERVER} is a required parameter")
    if ":" in server or "/" in server:
        raise InvalidArgument(f"{PARAM_SERVER} ({server!r}) must be a host name or address")

    if not store_real_path:
        raise InvalidArgument(f"{PARAM_STORE_REAL_PATH} is a required parameter")
    if not store_real_path.startswith("/"):
        raise InvalidArgument(
            f"{PARAM_STORE_REAL_PATH} ({store_real_path!r}) must start with a '/'"
        )

    if store_mount_path is not None and store_export is not None:
        raise InvalidArgument(
            f"{PARAM_STORE_MOUNT_PATH} and {PARAM_STORE_EXPORT} are mutually exclusive"
        )

    if store_mount_path == "":
        store_mount_path = None
    if store_mount_path is not None and not store_mount_path.startswith("/"):
        raise InvalidArgument(
            f"{PARAM_STORE_MOUNT_PATH} ({store_mount_path!r}) must start with a '/'"
        )

    if store_export == "":
        raise InvalidArgument(f"{PARAM_STORE_EXPORT} must not be empty")

    return PlacementParameters(
        server=server,
        rest_port=rest_port,
        store_real_path=store_real_path,
        store_mount_path=store_mount_path,
        store_export=store_export,
    )
