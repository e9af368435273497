"""Idempotent provisioning operations built on the REST client.

Orchestrators retry lifecycle calls after timeouts and may run two calls
for the same volume at once, so each operation here treats "already done"
as success and only surfaces genuine conflicts.
"""

from oslo_log import log as logging

from .client import ExportInfo, FileAttributes, QumuloRestClient
from .exceptions import InvalidArgument, RestError
from .utils import canonicalize_path, join_cluster_path

LOG = logging.getLogger(__name__)

FS_ENTRY_EXISTS_ERROR = "fs_entry_exists_error"
QUOTA_ALREADY_SET_ERROR = "api_quotas_quota_limit_already_set_error"
QUOTA_NOT_FOUND_ERROR = "api_quotas_quota_limit_not_found_error"


def ensure_dir(client: QumuloRestClient, parent_path: str, name: str) -> FileAttributes:
    """Create a directory, or, if it already exists, succeed.

    Args:
        client: Connected REST client
        parent_path: Absolute path of the parent directory
        name: Directory name

    Returns:
        Attributes of the new or existing directory

    Raises:
        RestError: 409 if a non-directory holds the name, 404 if the parent
            is missing, anything else the cluster reports
    """
    try:
        return client.create_dir(parent_path, name)
    except RestError as e:
        if not e.matches(409, FS_ENTRY_EXISTS_ERROR):
            raise
        conflict = e

    attributes = client.lookup(join_cluster_path(parent_path, name))
    if not attributes.is_directory:
        LOG.warning(
            "A non-directory exists at %s (%s)",
            join_cluster_path(parent_path, name),
            attributes.type,
        )
        raise conflict

    LOG.debug("Directory %s already exists", join_cluster_path(parent_path, name))
    return attributes


def ensure_quota(client: QumuloRestClient, entry_id: str, limit: int) -> None:
    """Set the quota on a directory, creating it or updating the existing one."""
    try:
        client.create_quota(entry_id, limit)
        return
    except RestError as e:
        if not e.matches(409, QUOTA_ALREADY_SET_ERROR):
            raise

    LOG.debug("Quota already set on %s, updating limit to %d", entry_id, limit)
    client.update_quota(entry_id, limit)


def change_mode(client: QumuloRestClient, path_or_id: str, mode: str) -> FileAttributes:
    return client.file_chmod(path_or_id, mode)


def recursive_delete(client: QumuloRestClient, path: str) -> None:
    """Tree-delete ``path``; a path that is already gone counts as deleted."""
    try:
        attributes = client.lookup(path)
    except RestError as e:
        if not e.matches(404):
            raise
        LOG.info("Nothing to delete at %s", path)
        return

    try:
        client.tree_delete_create(attributes.id)
    except RestError as e:
        if not e.matches(404):
            raise
        # something else deleted it
        LOG.info("%s was deleted concurrently", path)


def resolve_export(client: QumuloRestClient, export_ref: str) -> ExportInfo:
    """Look up an NFS export by export path or numeric ID.

    Raises:
        RestError: 404 if no such export exists
    """
    return client.export_get(export_ref)


def export_mount_path(export: ExportInfo, store_real_path: str) -> str:
    """Compute where ``store_real_path`` appears through ``export``.

    Args:
        export: Export whose fs_path contains the real path
        store_real_path: Canonical real path volumes are created under

    Returns:
        Canonical externally visible path

    Raises:
        InvalidArgument: If the real path lies outside the export
    """
    fs_parts = [p for p in canonicalize_path(export.fs_path).split("/") if p]
    real_parts = [p for p in canonicalize_path(store_real_path).split("/") if p]

    if real_parts[: len(fs_parts)] != fs_parts:
        raise InvalidArgument(
            f"storeRealPath {join_cluster_path(store_real_path)!r} is not inside export "
            f"{export.export_path!r} (fs_path {export.fs_path!r})"
        )

    relative = real_parts[len(fs_parts):]
    return canonicalize_path("/".join([canonicalize_path(export.export_path)] + relative))
