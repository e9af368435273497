"""
Pytest configuration and fixtures.

Two stand-ins for ``requests.Session`` are provided:

* ``ScriptedSession`` replays a fixed list of (uri, status, body in, body
  out) exchanges and fails the test on anything unexpected.
* ``FakeQumuloCluster`` keeps a small in-memory filesystem with quotas,
  NFS exports and sessions, and answers the REST calls the controller
  makes.
"""

import itertools
import json
from unittest.mock import Mock
from urllib.parse import unquote, urlsplit

import pytest

from qumulo_csi import configuration as qumulo_config
from qumulo_csi.controller import ControllerServer

TEST_HOST = "1.2.3.4"
TEST_PORT = 44
TEST_USERNAME = "bob"
TEST_PASSWORD = "yeruncle"

DIRECTORY = "FS_FILE_TYPE_DIRECTORY"
FILE = "FS_FILE_TYPE_FILE"


class FakeResponse:
    """Minimal requests.Response."""

    def __init__(self, status_code, body=None):
        self.status_code = status_code
        if body is None:
            self.content = b""
        elif isinstance(body, (bytes, str)):
            self.content = body.encode() if isinstance(body, str) else body
        else:
            self.content = json.dumps(body).encode()
        self.text = self.content.decode()

    def json(self):
        return json.loads(self.content)


def error_body(error_class, description=""):
    return {
        "module": "qfsd",
        "error_class": error_class,
        "description": description or error_class,
        "stack": [],
        "user_visible": True,
    }


class ScriptedSession:
    """Replays scripted exchanges in order."""

    def __init__(self, messages, host=TEST_HOST, port=TEST_PORT):
        self.messages = list(messages)
        self.base_url = "https://%s:%d" % (host, port)
        self.calls = []
        self.close = Mock()
        self.mount = Mock()

    def request(self, method, url, json=None, headers=None, timeout=None, verify=None, allow_redirects=True):
        assert self.messages, "unexpected request %s %s" % (method, url)
        uri, status_code, body_in, body_out = self.messages.pop(0)

        assert url == self.base_url + uri, "unexpected url %s != %s" % (url, self.base_url + uri)
        assert json == body_in, "unexpected body %r != %r" % (json, body_in)

        self.calls.append(
            {
                "method": method,
                "url": url,
                "json": json,
                "headers": dict(headers or {}),
                "timeout": timeout,
                "verify": verify,
                "allow_redirects": allow_redirects,
            }
        )
        return FakeResponse(status_code, body_out)


class FakeQumuloCluster:
    """In-memory Qumulo cluster speaking the REST paths the driver uses."""

    def __init__(self, username=TEST_USERNAME, password=TEST_PASSWORD, version="4.2.4"):
        self.username = username
        self.password = password
        self.revision_id = "Qumulo Core %s" % version
        self.entries = {"/": {"id": "2", "type": DIRECTORY, "mode": "0755", "name": "", "path": "/"}}
        self.quotas = {}
        self.exports = {}
        self.tokens = set()
        self.requests = []
        self.injected = []
        self.sessions_opened = 0
        self.sessions_closed = 0
        self._ids = itertools.count(100)

    # requests.Session surface

    def mount(self, prefix, adapter):
        pass

    def close(self):
        self.sessions_closed += 1

    def request(self, method, url, json=None, headers=None, timeout=None, verify=None, allow_redirects=True):
        uri = urlsplit(url).path
        self.requests.append((method, uri))

        for i, (inj_method, inj_prefix, status_code, body) in enumerate(self.injected):
            if method == inj_method and uri.startswith(inj_prefix):
                del self.injected[i]
                return FakeResponse(status_code, body)

        if uri == "/v1/session/login":
            return self._login(json or {})

        token = (headers or {}).get("Authorization", "")[len("Bearer "):]
        if token not in self.tokens:
            return FakeResponse(401, error_body("http_unauthorized_error"))

        parts = [unquote(p) for p in uri.strip("/").split("/")]
        return self._dispatch(method, parts, json or {})

    # Test helpers

    def session_factory(self):
        self.sessions_opened += 1
        return self

    def expire_sessions(self):
        self.tokens.clear()

    def inject_error(self, method, uri_prefix, status_code, error_class):
        """Answer the next matching request with an error."""
        self.inject_response(method, uri_prefix, status_code, error_body(error_class))

    def inject_response(self, method, uri_prefix, status_code, body):
        """Answer the next matching request with an arbitrary body."""
        self.injected.append((method, uri_prefix, status_code, body))

    def make_dir(self, path):
        parent, _, name = path.rstrip("/").rpartition("/")
        return self._create(parent or "/", name, DIRECTORY).json()

    def make_file(self, path):
        parent, _, name = path.rstrip("/").rpartition("/")
        return self._create(parent or "/", name, FILE).json()

    def add_export(self, export_path, fs_path):
        export_id = str(len(self.exports) + 1)
        self.exports[export_id] = {"id": export_id, "export_path": export_path, "fs_path": fs_path}
        return self.exports[export_id]

    def count(self, method, uri_prefix):
        return sum(1 for m, u in self.requests if m == method and u.startswith(uri_prefix))

    def quota_for(self, path):
        entry = self.entries.get(path)
        return self.quotas.get(entry["id"]) if entry else None

    # Internals

    def _login(self, body):
        if body.get("username") != self.username or body.get("password") != self.password:
            return FakeResponse(401, error_body("http_unauthorized_error"))
        token = "token-%d" % next(self._ids)
        self.tokens.add(token)
        return FakeResponse(200, {"bearer_token": token})

    def _resolve(self, ref):
        if ref.startswith("/"):
            path = "/" + "/".join(p for p in ref.split("/") if p)
            return path if path in self.entries else None
        for path, entry in self.entries.items():
            if entry["id"] == ref:
                return path
        return None

    def _create(self, parent, name, entry_type):
        parent_path = self._resolve(parent)
        if parent_path is None or self.entries[parent_path]["type"] != DIRECTORY:
            return FakeResponse(404, error_body("fs_no_such_entry_error"))
        path = parent_path.rstrip("/") + "/" + name
        if path in self.entries:
            return FakeResponse(409, error_body("fs_entry_exists_error"))
        self.entries[path] = {
            "id": str(next(self._ids)),
            "type": entry_type,
            "mode": "0755" if entry_type == DIRECTORY else "0644",
            "name": name,
            "path": path,
        }
        return FakeResponse(200, self.entries[path])

    def _dispatch(self, method, parts, body):
        if parts == ["v1", "version"] and method == "GET":
            return FakeResponse(200, {"revision_id": self.revision_id})

        if parts[:3] == ["v1", "files", "quotas"]:
            return self._quotas(method, parts[3:], body)

        if parts[:2] == ["v1", "files"] and len(parts) >= 4:
            ref = parts[2]
            if parts[3:] == ["entries"] and method == "POST":
                entry_type = DIRECTORY if body["action"] == "CREATE_DIRECTORY" else FILE
                return self._create(ref, body["name"], entry_type)
            if parts[3:] == ["info", "attributes"]:
                path = self._resolve(ref)
                if path is None:
                    return FakeResponse(404, error_body("fs_no_such_entry_error"))
                if method == "PATCH":
                    self.entries[path]["mode"] = body["mode"]
                return FakeResponse(200, self.entries[path])

        if parts == ["v1", "tree-delete", "jobs"] and method == "POST":
            path = self._resolve(body["id"])
            if path is None:
                return FakeResponse(404, error_body("fs_no_such_entry_error"))
            for doomed in [p for p in self.entries if p == path or p.startswith(path + "/")]:
                self.quotas.pop(self.entries[doomed]["id"], None)
                del self.entries[doomed]
            return FakeResponse(202)

        if parts[:3] == ["v2", "nfs", "exports"]:
            return self._exports(method, parts[3:], body)

        return FakeResponse(404, error_body("http_not_found_error"))

    def _quotas(self, method, rest, body):
        if method == "POST" and not rest:
            if self._resolve(body["id"]) is None:
                return FakeResponse(404, error_body("fs_no_such_entry_error"))
            if body["id"] in self.quotas:
                return FakeResponse(409, error_body("api_quotas_quota_limit_already_set_error"))
            self.quotas[body["id"]] = int(body["limit"])
            return FakeResponse(200, body)

        entry_id = rest[0]
        if entry_id not in self.quotas:
            return FakeResponse(404, error_body("api_quotas_quota_limit_not_found_error"))
        if method == "PUT":
            self.quotas[entry_id] = int(body["limit"])
        return FakeResponse(200, {"id": entry_id, "limit": str(self.quotas[entry_id])})

    def _exports(self, method, rest, body):
        if method == "POST" and not rest:
            return FakeResponse(200, self.add_export(body["export_path"], body["fs_path"]))

        ref = rest[0]
        found = [
            e for e in self.exports.values()
            if e["id"] == ref or (ref.startswith("/") and e["export_path"] == ref)
        ]
        if not found:
            return FakeResponse(404, error_body("nfs_export_doesnt_exist_error"))
        if method == "DELETE":
            del self.exports[found[0]["id"]]
            return FakeResponse(200)
        return FakeResponse(200, found[0])


@pytest.fixture
def scripted_session():
    """Factory for ScriptedSession instances."""
    return ScriptedSession


@pytest.fixture
def cluster():
    """A fake cluster with a /data directory."""
    fake = FakeQumuloCluster()
    fake.make_dir("/data")
    return fake


@pytest.fixture
def configuration():
    """A private ``qumulo`` option group with default values."""
    return qumulo_config.get_configuration()


@pytest.fixture
def controller(configuration, cluster):
    """Controller talking to the fake cluster."""
    return ControllerServer(configuration=configuration, session_factory=cluster.session_factory)


@pytest.fixture
def secrets():
    return {"username": TEST_USERNAME, "password": TEST_PASSWORD}
