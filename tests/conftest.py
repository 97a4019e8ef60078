import io
import json
import os
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass

import pytest

from codag.modules.core.config import EnvFile, TokenStore


@dataclass
class Recorded:
    method: str
    path: str
    query: dict
    body: object
    authorization: str | None
    timeout: float | None


class _Response:
    def __init__(self, status: int, body: bytes) -> None:
        self.status = status
        self._body = body

    def read(self, *args) -> bytes:
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeServer:
    """Stands in for urllib.request.urlopen with queued responses per route.

    A response is (status, payload) where payload is JSON-serializable or
    bytes, or an exception instance to raise. The last queued response for a
    route repeats.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list] = {}
        self.requests: list[Recorded] = []

    def add(self, method: str, path: str, *responses) -> None:
        self.routes.setdefault((method, path), []).extend(responses)

    def calls(self, method: str, path: str) -> list[Recorded]:
        return [r for r in self.requests if r.method == method and r.path == path]

    def __call__(self, req, timeout=None):
        url = req.full_url
        parts = urllib.parse.urlsplit(url)
        method = req.get_method()
        body = json.loads(req.data) if req.data else None
        self.requests.append(
            Recorded(
                method=method,
                path=parts.path,
                query=dict(urllib.parse.parse_qsl(parts.query)),
                body=body,
                authorization=req.get_header("Authorization"),
                timeout=timeout,
            )
        )

        queue = self.routes.get((method, parts.path))
        if not queue:
            raise urllib.error.URLError(f"no route for {method} {parts.path}")
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            raise response

        status, payload = response
        data = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
        if status >= 400:
            raise urllib.error.HTTPError(url, status, "error", {}, io.BytesIO(data))
        return _Response(status, data)


@pytest.fixture
def fake_server(monkeypatch):
    server = FakeServer()
    monkeypatch.setattr(urllib.request, "urlopen", server)
    return server


_ENV_KEYS = ("CODAG_ACCESS_TOKEN", "CODAG_REFRESH_TOKEN", "CODAG_SERVER_URL", "CODAG_URL")


@pytest.fixture
def codag_home(tmp_path, monkeypatch):
    home = tmp_path / "codag-home"
    monkeypatch.setenv("CODAG_HOME", str(home))
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("CODAG_NO_UPDATE_CHECK", "1")
    yield home
    # TokenStore.load copies the env file into os.environ
    for key in _ENV_KEYS:
        os.environ.pop(key, None)


@pytest.fixture
def tokens(tmp_path):
    return TokenStore(env_file=EnvFile(tmp_path / "home" / ".env"))
