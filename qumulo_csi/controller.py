"""Qumulo CSI controller service.

This module implements the CSI controller calls for volumes that are
directories on a Qumulo cluster, sized with a directory quota.
"""

from typing import Dict, List, Optional

import requests
from oslo_log import log as logging
from packaging.version import Version

from . import configuration as qumulo_config
from . import provisioning
from . import utils
from .client import QumuloRestClient
from .exceptions import (
    AlreadyExists,
    CredentialsMissing,
    FailedPrecondition,
    Internal,
    InvalidArgument,
    InvalidVolumeId,
    NotFound,
    RestError,
    Unimplemented,
    transform_rest_error,
)
from .models import (
    AccessMode,
    AccessType,
    ControllerCapability,
    ControllerExpandVolumeRequest,
    ControllerExpandVolumeResponse,
    ControllerGetCapabilitiesResponse,
    CreateVolumeRequest,
    CreateVolumeResponse,
    DeleteVolumeRequest,
    DeleteVolumeResponse,
    ValidateVolumeCapabilitiesConfirmed,
    ValidateVolumeCapabilitiesRequest,
    ValidateVolumeCapabilitiesResponse,
    Volume,
    VolumeCapability,
)
from .volume import (
    PARAM_STORE_REAL_PATH,
    RESERVED_NAMES,
    PlacementParameters,
    decode_volume_id,
    parse_parameters,
)

LOG = logging.getLogger(__name__)

SUPPORTED_ACCESS_MODES = frozenset(mode for mode in AccessMode if mode != AccessMode.UNKNOWN)

CONTROLLER_CAPABILITIES = (
    ControllerCapability.CREATE_DELETE_VOLUME,
    ControllerCapability.SINGLE_NODE_MULTI_WRITER,
    ControllerCapability.EXPAND_VOLUME,
)


class ControllerServer:
    """Qumulo CSI controller.

    Stateless: credentials arrive with every request and each call opens,
    uses and closes its own REST session, so one controller may serve
    concurrent calls for any number of clusters.
    """

    def __init__(self, configuration=None, session_factory=None):
        """Initialize the controller.

        Args:
            configuration: ``qumulo`` oslo.config group (default: a fresh
                group with default values)
            session_factory: Callable returning an HTTP session for each
                call (default: requests.Session)
        """
        if configuration is None:
            configuration = qumulo_config.get_configuration()
        self.configuration = configuration
        self.session_factory = session_factory or requests.Session

    # Connection

    def _connect(self, server: str, rest_port: int, secrets: Optional[Dict[str, str]]) -> QumuloRestClient:
        """Open a REST session and check the cluster version.

        Raises:
            CredentialsMissing: username or password secret is absent
            LoginFailed: cluster rejected the credentials
            FailedPrecondition: cluster is older than the minimum version
        """
        secrets = secrets or {}
        username = secrets.get("username")
        password = secrets.get("password")

        if not username or not password:
            raise CredentialsMissing("username and password secrets missing")

        client = QumuloRestClient(
            host=server,
            port=rest_port,
            username=username,
            password=password,
            timeout=self.configuration.qumulo_api_timeout,
            verify_ssl=self.configuration.qumulo_verify_ssl,
            session=self.session_factory(),
        )

        try:
            self._check_version(client)
        except Exception:
            client.close()
            raise

        return client

    def _check_version(self, client: QumuloRestClient) -> None:
        try:
            version_info = client.get_version_info()
        except RestError as e:
            raise transform_rest_error(e, {})

        version = utils.parse_cluster_version(version_info.get("revision_id"))
        minimum_version = Version(self.configuration.qumulo_minimum_version)

        if version < minimum_version:
            raise FailedPrecondition(
                f"Cluster version {version} must be >= {minimum_version}"
            )

    # Validation

    def _validate_volume_capabilities(self, caps: Optional[List[VolumeCapability]]) -> None:
        if not caps:
            raise InvalidArgument("volume capabilities must be provided")

        for cap in caps:
            self._validate_volume_capability(cap)

    def _validate_volume_capability(self, cap: Optional[VolumeCapability]) -> None:
        if cap is None:
            raise InvalidArgument("volume capability must be provided")

        if cap.access_mode is None:
            raise InvalidArgument("volume capability access mode not set")
        if cap.access_mode not in SUPPORTED_ACCESS_MODES:
            raise InvalidArgument(
                f"driver does not support access mode: {cap.access_mode.value}"
            )

        if cap.access_type is None:
            raise InvalidArgument("volume capability access type not set")
        if cap.access_type != AccessType.MOUNT:
            raise InvalidArgument(
                f"driver does not support access type: {cap.access_type.value}"
            )

    def _resolve_mount_path(self, client: QumuloRestClient, placement: PlacementParameters) -> Optional[str]:
        """Return the mount path implied by the storeExport parameter, if any."""
        if placement.store_export is None:
            return None

        try:
            export = provisioning.resolve_export(client, placement.store_export)
        except RestError as e:
            raise transform_rest_error(
                e, {404: NotFound(f"Export {placement.store_export!r} not found")}
            )

        LOG.debug(
            "Resolved export %s: export_path=%s, fs_path=%s",
            placement.store_export,
            export.export_path,
            export.fs_path,
        )
        return provisioning.export_mount_path(export, placement.store_real_path)

    # Volume lifecycle

    def create_volume(self, request: CreateVolumeRequest) -> CreateVolumeResponse:
        """Create a volume directory with a quota.

        Calling this again with the same name and parameters finds the
        existing directory and quota and succeeds.

        Raises:
            InvalidArgument: Malformed request or parameters
            NotFound: storeRealPath or storeExport does not exist
            AlreadyExists: A non-directory holds the volume name
        """
        name = request.name
        if not name:
            raise InvalidArgument("CreateVolume name must be provided")
        if "/" in name:
            raise InvalidArgument(f"CreateVolume name {name!r} must not contain '/'")
        if name in RESERVED_NAMES:
            raise InvalidArgument(f"CreateVolume name {name!r} is reserved")

        self._validate_volume_capabilities(request.volume_capabilities)

        quota_limit = utils.get_quota_limit(request.capacity_range)

        # To get this feature, we need some kind of clone in the product.
        if request.volume_content_source is not None:
            raise InvalidArgument("Volume source unsupported")

        placement = parse_parameters(
            request.parameters,
            default_port=self.configuration.qumulo_default_rest_port,
        )

        LOG.info(
            "Creating volume: %s (server=%s:%d, quota=%d bytes)",
            name,
            placement.server,
            placement.rest_port,
            quota_limit,
        )

        with self._connect(placement.server, placement.rest_port, request.secrets) as client:
            volume = placement.make_volume(name, self._resolve_mount_path(client, placement))
            store_real_path = utils.join_cluster_path(volume.store_real_path)

            try:
                attributes = provisioning.ensure_dir(client, store_real_path, volume.name)
            except RestError as e:
                raise transform_rest_error(
                    e,
                    {
                        404: NotFound(
                            f"{PARAM_STORE_REAL_PATH} directory {store_real_path!r} "
                            f"missing for volume {volume.volume_id!r}"
                        ),
                        409: AlreadyExists(
                            f"A non-directory entity exists at {volume.real_path!r} "
                            f"for volume {volume.volume_id!r}"
                        ),
                    },
                )

            try:
                provisioning.ensure_quota(client, attributes.id, quota_limit)
            except RestError as e:
                raise Internal(f"Failed to set quota on {volume.volume_id}: {e}")

            try:
                provisioning.change_mode(client, attributes.id, self.configuration.qumulo_volume_mode)
            except RestError as e:
                raise transform_rest_error(
                    e, {404: NotFound(f"Directory for volume {volume.volume_id!r} is missing")}
                )

        LOG.info("Created volume %s at %s", volume.volume_id, volume.real_path)

        # capacity_bytes of zero makes the provisioner use the requested size
        return CreateVolumeResponse(
            volume=Volume(
                volume_id=volume.volume_id,
                capacity_bytes=0,
                volume_context=volume.volume_context(),
            )
        )

    def delete_volume(self, request: DeleteVolumeRequest) -> DeleteVolumeResponse:
        """Tree-delete a volume directory.

        Deleting a volume that is already gone, or whose ID was not issued
        by this driver, succeeds.
        """
        volume_id = request.volume_id
        if not volume_id:
            raise InvalidArgument("Volume ID missing in request")

        try:
            volume = decode_volume_id(volume_id)
        except InvalidVolumeId as e:
            # An invalid ID should be treated as doesn't exist
            LOG.warning("Failed to get Qumulo volume for volume id %s deletion: %s", volume_id, e)
            return DeleteVolumeResponse()

        with self._connect(volume.server, volume.rest_port, request.secrets) as client:
            LOG.info("Removing subdirectory at %s with tree delete", volume.real_path)
            try:
                provisioning.recursive_delete(client, volume.real_path)
            except RestError as e:
                raise transform_rest_error(e, {})

        return DeleteVolumeResponse()

    def controller_expand_volume(
        self, request: ControllerExpandVolumeRequest
    ) -> ControllerExpandVolumeResponse:
        """Change the quota of an existing volume.

        Raises:
            InvalidArgument: Missing volume ID or bad capacity range
            NotFound: Undecodable ID or volume directory missing
        """
        volume_id = request.volume_id
        if not volume_id:
            raise InvalidArgument("Volume ID missing in request")

        try:
            volume = decode_volume_id(volume_id)
        except InvalidVolumeId:
            raise NotFound(f"Volume not found {volume_id!r}")

        quota_limit = utils.get_quota_limit(request.capacity_range)

        LOG.info("Expanding volume %s to %d bytes", volume_id, quota_limit)

        missing = {404: NotFound(f"Directory for volume {volume_id!r} is missing")}

        with self._connect(volume.server, volume.rest_port, request.secrets) as client:
            try:
                attributes = client.lookup(volume.real_path)
            except RestError as e:
                raise transform_rest_error(e, missing)

            try:
                provisioning.ensure_quota(client, attributes.id, quota_limit)
            except RestError as e:
                raise transform_rest_error(e, missing)

        return ControllerExpandVolumeResponse(
            capacity_bytes=quota_limit,
            node_expansion_required=False,
        )

    def validate_volume_capabilities(
        self, request: ValidateVolumeCapabilitiesRequest
    ) -> ValidateVolumeCapabilitiesResponse:
        """Confirm the requested capabilities without contacting the cluster."""
        if not request.volume_id:
            raise InvalidArgument("Volume ID missing in request")
        if not request.volume_capabilities:
            raise InvalidArgument("Volume capabilities missing in request")

        self._validate_volume_capabilities(request.volume_capabilities)

        return ValidateVolumeCapabilitiesResponse(
            confirmed=ValidateVolumeCapabilitiesConfirmed(
                volume_context=request.volume_context,
                volume_capabilities=request.volume_capabilities,
                parameters=request.parameters,
            ),
            message="",
        )

    def controller_get_capabilities(self, request=None) -> ControllerGetCapabilitiesResponse:
        return ControllerGetCapabilitiesResponse(capabilities=list(CONTROLLER_CAPABILITIES))

    # Unsupported calls

    def controller_publish_volume(self, request=None):
        raise Unimplemented("ControllerPublishVolume is not supported")

    def controller_unpublish_volume(self, request=None):
        raise Unimplemented("ControllerUnpublishVolume is not supported")

    def controller_get_volume(self, request=None):
        raise Unimplemented("ControllerGetVolume is not supported")

    def list_volumes(self, request=None):
        raise Unimplemented("ListVolumes is not supported")

    def get_capacity(self, request=None):
        raise Unimplemented("GetCapacity is not supported")

    def create_snapshot(self, request=None):
        raise Unimplemented("CreateSnapshot is not supported")

    def delete_snapshot(self, request=None):
        raise Unimplemented("DeleteSnapshot is not supported")

    def list_snapshots(self, request=None):
        raise Unimplemented("ListSnapshots is not supported")
