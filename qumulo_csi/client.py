"""REST API client for the Qumulo cluster management API."""

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union
from urllib.parse import quote

import requests
import urllib3
from oslo_log import log as logging
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .exceptions import (
    ApiConnectionError,
    ApiError,
    ApiTimeout,
    LoginFailed,
    RestError,
)

LOG = logging.getLogger(__name__)

FS_FILE_TYPE_DIRECTORY = "FS_FILE_TYPE_DIRECTORY"
FS_FILE_TYPE_FILE = "FS_FILE_TYPE_FILE"


@dataclass(frozen=True)
class FileAttributes:
    """Attributes the cluster reports for a filesystem entry."""

    id: str
    type: str
    mode: str
    path: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "FileAttributes":
        try:
            return cls(
                id=data["id"],
                type=data["type"],
                mode=data["mode"],
                path=data.get("path"),
                name=data.get("name"),
            )
        except KeyError as e:
            raise ApiError(f"File attributes response is missing {e}")

    @property
    def is_directory(self) -> bool:
        return self.type == FS_FILE_TYPE_DIRECTORY


@dataclass(frozen=True)
class ExportInfo:
    """An NFS export: the externally visible path and the directory behind it."""

    id: str
    export_path: str
    fs_path: str

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "ExportInfo":
        return cls(
            id=str(data.get("id", "")),
            export_path=data.get("export_path", ""),
            fs_path=data.get("fs_path", ""),
        )


def _ref(path_or_id: Union[str, int]) -> str:
    return quote(str(path_or_id), safe="")


def _decode(content: bytes) -> Dict[str, Any]:
    """Decode a JSON object response body; an empty body is an empty object.

    Raises:
        ApiError: Body is not a JSON object
    """
    if not content:
        return {}
    try:
        data = json.loads(content)
    except ValueError as e:
        raise ApiError(f"Unreadable response from cluster: {e}")
    if not isinstance(data, dict):
        raise ApiError(f"Unexpected response from cluster: {data!r}")
    return data


class QumuloRestClient:
    """REST API client for one Qumulo cluster.

    A client lives for a single lifecycle call. The bearer token is obtained
    lazily: the first request goes out unauthenticated, the 401 answer
    triggers a login, and the request is issued again. Only that one retry
    is ever made.
    """

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        timeout: int = 30,
        verify_ssl: bool = False,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the Qumulo REST client.

        Args:
            host: Cluster address (e.g., 10.1.1.5 or qumulo.example.com)
            port: Cluster REST API port
            username: Cluster user to log in as
            password: Password for username
            timeout: HTTP request timeout in seconds
            verify_ssl: Whether to verify the cluster TLS certificate
            session: HTTP session to use (default: a new requests.Session)
        """
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self.base_url = f"https://{host}:{port}"
        self.token: Optional[str] = None

        self.session = session if session is not None else requests.Session()

        # Session expiry is the only failure that gets retried.
        adapter = HTTPAdapter(max_retries=Retry(total=0, raise_on_status=False))
        self.session.mount("https://", adapter)

        if not verify_ssl:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    def _send(
        self,
        method: str,
        uri: str,
        json_data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        url = self.base_url + uri
        try:
            return self.session.request(
                method=method,
                url=url,
                json=json_data,
                headers=headers or {},
                timeout=self.timeout,
                verify=self.verify_ssl,
                allow_redirects=False,
            )
        except requests.exceptions.Timeout as e:
            raise ApiTimeout(f"Request to {url} timed out after {self.timeout}s: {e}")
        except requests.exceptions.ConnectionError as e:
            raise ApiConnectionError(f"Failed to connect to {url}: {e}")
        except requests.exceptions.RequestException as e:
            raise ApiError(f"Request to {url} failed: {e}")

    def login(self) -> None:
        """Log in and keep the bearer token for subsequent requests.

        Raises:
            LoginFailed: Cluster did not answer 200
        """
        response = self._send(
            "POST",
            "/v1/session/login",
            json_data={"username": self.username, "password": self.password},
        )
        if response.status_code != 200:
            raise LoginFailed(
                f"Login failed: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            self.token = _decode(response.content).get("bearer_token")
        except ApiError:
            raise LoginFailed(f"Login failed: unreadable response from {self.host}")

        LOG.info("Logged in to %s:%d as %s", self.host, self.port, self.username)

    def _do(self, method: str, uri: str, body: Optional[Dict[str, Any]]) -> bytes:
        headers = {}
        if self.token:
            headers["Authorization"] = "Bearer " + self.token

        response = self._send(method, uri, json_data=body, headers=headers)

        if response.status_code < 200 or response.status_code >= 300:
            try:
                error_data = _decode(response.content)
            except ApiError:
                error_data = {"description": response.text}
            raise RestError.from_response(response.status_code, error_data)

        return response.content

    def request(self, method: str, uri: str, body: Optional[Dict[str, Any]] = None) -> bytes:
        """Issue one authenticated request.

        Args:
            method: HTTP method (GET, POST, PUT, PATCH, DELETE)
            uri: API path (e.g., /v1/version)
            body: JSON request body

        Returns:
            Raw response body

        Raises:
            RestError: Cluster returned a non-2xx status
            LoginFailed: Re-authentication after a 401 failed
            ApiError: The HTTP request failed or the response was unreadable
        """
        LOG.debug("Request to %s %s %s", self.host, method, uri)
        try:
            return self._do(method, uri, body)
        except RestError as e:
            if not e.matches(401):
                raise

        LOG.info("Session with %s expired, re-authenticating", self.host)
        self.login()
        return self._do(method, uri, body)

    def get(self, uri: str) -> bytes:
        return self.request("GET", uri)

    def post(self, uri: str, body: Optional[Dict[str, Any]] = None) -> bytes:
        return self.request("POST", uri, body)

    def put(self, uri: str, body: Optional[Dict[str, Any]] = None) -> bytes:
        return self.request("PUT", uri, body)

    def patch(self, uri: str, body: Optional[Dict[str, Any]] = None) -> bytes:
        return self.request("PATCH", uri, body)

    def delete(self, uri: str) -> bytes:
        return self.request("DELETE", uri)

    # File operations

    def _create_entry(self, path: str, name: str, action: str) -> FileAttributes:
        uri = f"/v1/files/{_ref(path)}/entries/"
        response = self.post(uri, {"name": name, "action": action})
        return FileAttributes.from_response(_decode(response))

    def create_dir(self, path: str, name: str) -> FileAttributes:
        """Create directory ``name`` under ``path``.

        Raises:
            RestError: 409 fs_entry_exists_error if the name is taken,
                404 if ``path`` is missing
        """
        return self._create_entry(path, name, "CREATE_DIRECTORY")

    def create_file(self, path: str, name: str) -> FileAttributes:
        """Create an empty file ``name`` under ``path``."""
        return self._create_entry(path, name, "CREATE_FILE")

    def lookup(self, path_or_id: Union[str, int]) -> FileAttributes:
        """Read the attributes of an entry by path or ID."""
        uri = f"/v1/files/{_ref(path_or_id)}/info/attributes"
        return FileAttributes.from_response(_decode(self.get(uri)))

    def file_chmod(self, path_or_id: Union[str, int], mode: str) -> FileAttributes:
        """Set the permission mode of an entry (e.g., "0777")."""
        uri = f"/v1/files/{_ref(path_or_id)}/info/attributes"
        return FileAttributes.from_response(_decode(self.patch(uri, {"mode": mode})))

    # Quota operations

    def get_quota(self, entry_id: str) -> int:
        """Get the quota limit in bytes set on a directory."""
        response = _decode(self.get(f"/v1/files/quotas/{_ref(entry_id)}"))
        try:
            return int(response["limit"])
        except (KeyError, TypeError, ValueError):
            raise ApiError(f"Unexpected quota response for {entry_id}: {response!r}")

    def create_quota(self, entry_id: str, limit: int) -> None:
        """Create a quota on a directory.

        Raises:
            RestError: 409 api_quotas_quota_limit_already_set_error if the
                directory already has a quota
        """
        self.post("/v1/files/quotas/", {"id": entry_id, "limit": str(limit)})

    def update_quota(self, entry_id: str, limit: int) -> None:
        """Change the limit of an existing quota.

        Raises:
            RestError: 404 api_quotas_quota_limit_not_found_error if the
                directory has no quota
        """
        self.put(
            f"/v1/files/quotas/{_ref(entry_id)}",
            {"id": entry_id, "limit": str(limit)},
        )

    # Tree delete

    def tree_delete_create(self, entry_id: str) -> None:
        """Start an asynchronous recursive delete of a directory by ID."""
        self.post("/v1/tree-delete/jobs/", {"id": entry_id})

    # Version

    def get_version_info(self) -> Dict[str, Any]:
        """Get cluster version info; ``revision_id`` reads "Qumulo Core X.Y.Z"."""
        return _decode(self.get("/v1/version"))

    # Export operations

    def export_get(self, export_ref: Union[str, int]) -> ExportInfo:
        """Get an NFS export by export path or ID."""
        uri = f"/v2/nfs/exports/{_ref(export_ref)}"
        return ExportInfo.from_response(_decode(self.get(uri)))

    def export_create(self, export_path: str, fs_path: str) -> ExportInfo:
        """Create an unrestricted read-write NFS export of ``fs_path``."""
        data = {
            "export_path": export_path,
            "fs_path": fs_path,
            "description": "",
            "restrictions": [
                {
                    "read_only": False,
                    "require_privileged_port": False,
                    "host_restrictions": [],
                    "user_mapping": "NFS_MAP_NONE",
                    "map_to_user": {"id_type": "LOCAL_USER", "id_value": "0"},
                }
            ],
        }
        return ExportInfo.from_response(_decode(self.post("/v2/nfs/exports/", data)))

    def export_delete(self, export_ref: Union[str, int]) -> None:
        """Delete an NFS export by export path or ID."""
        self.delete(f"/v2/nfs/exports/{_ref(export_ref)}")

    def close(self):
        """Close the HTTP session."""
        if self.session:
            self.session.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
