"""Tests for store adapters and the pull cache."""
import subprocess
from unittest import mock

import pytest
import requests
from google.api_core import exceptions as gcp_exceptions

from deploy_secrets.secrets.domains.errors import NotFoundError, RemoteStoreError
from deploy_secrets.secrets.domains.gcp_client import GCPSecretStore, secret_id
from deploy_secrets.secrets.domains.secret_cache import SecretCache
from deploy_secrets.secrets.domains.stores import (
    CachedSecretStore,
    MemorySecretStore,
    RailwaySecretStore,
    RenderSecretStore,
    VercelSecretStore,
    create_store,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def json_response(body, status_code=200):
    response = mock.Mock()
    response.status_code = status_code
    response.content = b"{}" if body is not None else b""
    response.json.return_value = body
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} error")
    return response


class TestMemoryStore:

    def test_push_pull_delete(self):
        store = MemorySecretStore()
        store.push("staging", "LOG_LEVEL", "info")
        assert store.pull("staging") == {"LOG_LEVEL": "info"}
        store.delete("staging", "LOG_LEVEL")
        assert store.pull("staging") == {}

    def test_pull_returns_a_copy(self):
        store = MemorySecretStore({"staging": {"A": "1"}})
        store.pull("staging")["A"] = "2"
        assert store.pull("staging") == {"A": "1"}

    def test_delete_missing(self):
        with pytest.raises(NotFoundError):
            MemorySecretStore().delete("staging", "MISSING")


class TestVercelStore:

    def _runner(self, calls, stdout="", returncode=0, env_file_content=None):
        def run(command, **kwargs):
            calls.append((command, kwargs))
            if env_file_content is not None and command[1:3] == ["env", "pull"]:
                with open(command[3], "w") as f:
                    f.write(env_file_content)
            return subprocess.CompletedProcess(command, returncode, stdout=stdout, stderr="boom")
        return run

    def test_pull_parses_env_file_and_maps_staging_to_preview(self):
        calls = []
        store = VercelSecretStore(
            token="tok",
            runner=self._runner(calls, env_file_content='LOG_LEVEL=info\nDATABASE_URL="postgresql://a:b@c:5432/d"\n'),
        )

        values = store.pull("staging")

        assert values == {"LOG_LEVEL": "info", "DATABASE_URL": "postgresql://a:b@c:5432/d"}
        command = calls[0][0]
        assert "--environment=preview" in command
        assert command[-2:] == ["--token", "tok"]

    def test_push_sends_value_on_stdin(self):
        calls = []
        VercelSecretStore(token="", scope="team-x", runner=self._runner(calls)).push("production", "A", "secret")

        command, kwargs = calls[0]
        assert command == ["vercel", "env", "add", "A", "production", "--force", "--scope", "team-x"]
        assert kwargs["input"] == "secret"
        assert "secret" not in command

    def test_nonzero_exit_is_remote_error(self):
        store = VercelSecretStore(token="", runner=self._runner([], returncode=1))
        with pytest.raises(RemoteStoreError) as exc_info:
            store.delete("production", "A")
        assert "boom" in str(exc_info.value)

    def test_missing_cli(self):
        def run(command, **kwargs):
            raise FileNotFoundError("vercel")

        with pytest.raises(RemoteStoreError) as exc_info:
            VercelSecretStore(token="", runner=run).check_auth()
        assert "npm install -g vercel" in str(exc_info.value)

    def test_timeout(self):
        def run(command, **kwargs):
            raise subprocess.TimeoutExpired(command, kwargs["timeout"])

        with pytest.raises(RemoteStoreError):
            VercelSecretStore(token="", timeout=1, runner=run).check_auth()

    def test_check_auth_returns_identity(self):
        assert VercelSecretStore(token="", runner=self._runner([], stdout="alice\n")).check_auth() == "alice"

    def test_describe_access_uses_team_org(self, monkeypatch):
        monkeypatch.setenv("VERCEL_ORG_ID", "team_abc")
        assert VercelSecretStore(token="").describe_access("production").team_scope
        monkeypatch.setenv("VERCEL_ORG_ID", "user_abc")
        assert not VercelSecretStore(token="").describe_access("production").team_scope


class TestRenderStore:

    def test_pull_pages_through_env_vars(self):
        session = mock.Mock()
        first_page = [{"envVar": {"key": f"K{i}", "value": str(i)}, "cursor": f"c{i}"} for i in range(100)]
        second_page = [{"envVar": {"key": "LAST", "value": "x"}, "cursor": "end"}]
        session.request.side_effect = [json_response(first_page), json_response(second_page)]
        store = RenderSecretStore({"production": "srv-1"}, api_token="tok", session=session)

        values = store.pull("production")

        assert len(values) == 101
        assert values["LAST"] == "x"
        second_call = session.request.call_args_list[1]
        assert second_call.kwargs["params"] == {"limit": 100, "cursor": "c99"}
        assert second_call.kwargs["headers"]["Authorization"] == "Bearer tok"

    def test_push_puts_value(self):
        session = mock.Mock()
        session.request.return_value = json_response(None)
        RenderSecretStore({"staging": "srv-2"}, api_token="tok", session=session).push("staging", "A", "1")

        args, kwargs = session.request.call_args
        assert args == ("PUT", "https://api.render.com/v1/services/srv-2/env-vars/A")
        assert kwargs["json"] == {"value": "1"}

    def test_delete_missing_is_not_found(self):
        session = mock.Mock()
        session.request.return_value = json_response({}, status_code=404)
        store = RenderSecretStore({"staging": "srv-2"}, api_token="tok", session=session)
        with pytest.raises(NotFoundError):
            store.delete("staging", "A")

    def test_http_error_is_remote_error(self):
        session = mock.Mock()
        session.request.return_value = json_response({}, status_code=500)
        store = RenderSecretStore({"staging": "srv-2"}, api_token="tok", session=session)
        with pytest.raises(RemoteStoreError):
            store.pull("staging")

    def test_unconfigured_environment(self):
        with pytest.raises(RemoteStoreError):
            RenderSecretStore({}, api_token="tok", session=mock.Mock()).pull("staging")

    def test_missing_token(self, monkeypatch):
        monkeypatch.delenv("RENDER_API_TOKEN", raising=False)
        with pytest.raises(RemoteStoreError):
            RenderSecretStore({"staging": "srv-2"}, session=mock.Mock()).pull("staging")

    def test_describe_access_reads_owner_type(self):
        session = mock.Mock()
        session.request.side_effect = [
            json_response({"id": "srv-1", "ownerId": "own-1"}),
            json_response({"id": "own-1", "name": "Acme", "type": "team"}),
        ]
        access = RenderSecretStore({"production": "srv-1"}, api_token="tok", session=session).describe_access(
            "production"
        )
        assert access.team_scope
        assert access.scope == "Acme"


class TestRailwayStore:

    def _store(self, session):
        return RailwaySecretStore(
            project_id="proj", environment_ids={"production": "env-prod"}, api_token="tok", session=session
        )

    def test_pull_returns_variables(self):
        session = mock.Mock()
        session.post.return_value = json_response({"data": {"variables": {"A": "1"}}})

        assert self._store(session).pull("production") == {"A": "1"}
        variables = session.post.call_args.kwargs["json"]["variables"]
        assert variables == {"projectId": "proj", "environmentId": "env-prod", "serviceId": None}

    def test_graphql_errors(self):
        session = mock.Mock()
        session.post.return_value = json_response({"errors": [{"message": "Not Authorized"}]})
        with pytest.raises(RemoteStoreError) as exc_info:
            self._store(session).push("production", "A", "1")
        assert "Not Authorized" in str(exc_info.value)

    def test_check_auth(self):
        session = mock.Mock()
        session.post.return_value = json_response({"data": {"me": {"email": "ops@example.com"}}})
        assert self._store(session).check_auth() == "ops@example.com"

    def test_describe_access_without_team(self):
        session = mock.Mock()
        session.post.return_value = json_response({"data": {"project": {"name": "app", "team": None}}})
        access = self._store(session).describe_access("production")
        assert not access.team_scope
        assert access.scope == "app"


class TestSecretCache:

    def test_entries_expire(self):
        clock = FakeClock()
        cache = SecretCache(ttl_seconds=10, clock=clock)
        cache.put("staging", {"A": "1"})

        clock.now += 5
        assert cache.get("staging") == {"A": "1"}
        clock.now += 6
        assert cache.get("staging") is None
        assert cache.evict_expired() == 1
        assert len(cache) == 0

    def test_cached_store_hits_cache_until_write(self):
        inner = MemorySecretStore({"staging": {"A": "1"}})
        inner.pull = mock.Mock(wraps=inner.pull)
        store = CachedSecretStore(inner, SecretCache(clock=FakeClock()))

        store.pull("staging")
        store.pull("staging")
        assert inner.pull.call_count == 1

        store.push("staging", "A", "2")
        assert store.pull("staging") == {"A": "2"}
        assert inner.pull.call_count == 2


class TestGCPStore:

    def _secret(self, name):
        secret = mock.Mock()
        secret.name = f"projects/proj/secrets/{name}"
        return secret

    def test_secret_id(self):
        assert secret_id("production", "API_KEY") == "production--API_KEY"

    def test_project_id_priority(self, monkeypatch):
        config = {"store": {"gcp": {"project_id": "from-config"}}}
        monkeypatch.delenv("GCP_PROJECT", raising=False)
        assert GCPSecretStore(config, client=mock.Mock()).get_project_id() == "from-config"
        monkeypatch.setenv("GCP_PROJECT", "from-env")
        assert GCPSecretStore(config, client=mock.Mock()).get_project_id() == "from-env"

    def test_missing_project_id(self, monkeypatch):
        monkeypatch.delenv("GCP_PROJECT", raising=False)
        with pytest.raises(RemoteStoreError):
            GCPSecretStore({}, client=mock.Mock()).get_project_id()

    def test_pull_strips_environment_prefix(self, monkeypatch):
        monkeypatch.setenv("GCP_PROJECT", "proj")
        client = mock.Mock()
        client.list_secrets.return_value = [self._secret("production--API_KEY"), self._secret("staging--API_KEY")]
        client.access_secret_version.return_value.payload.data = b"value"

        assert GCPSecretStore(client=client).pull("production") == {"API_KEY": "value"}

    def test_push_tolerates_existing_secret(self, monkeypatch):
        monkeypatch.setenv("GCP_PROJECT", "proj")
        client = mock.Mock()
        client.create_secret.side_effect = gcp_exceptions.AlreadyExists("exists")

        GCPSecretStore(client=client).push("production", "API_KEY", "v2")

        request = client.add_secret_version.call_args.kwargs["request"]
        assert request["parent"] == "projects/proj/secrets/production--API_KEY"
        assert request["payload"] == {"data": b"v2"}

    def test_delete_missing(self, monkeypatch):
        monkeypatch.setenv("GCP_PROJECT", "proj")
        client = mock.Mock()
        client.delete_secret.side_effect = gcp_exceptions.NotFound("gone")
        with pytest.raises(NotFoundError):
            GCPSecretStore(client=client).delete("production", "API_KEY")

    def test_describe_access_reports_public_bindings(self, monkeypatch):
        monkeypatch.setenv("GCP_PROJECT", "proj")
        client = mock.Mock()
        client.list_secrets.return_value = [self._secret("production--API_KEY")]
        binding = mock.Mock(members=["allUsers"])
        client.get_iam_policy.return_value.bindings = [binding]

        access = GCPSecretStore(client=client).describe_access("production")

        assert access.permissive == ["production--API_KEY"]


class TestCreateStore:

    def test_platforms(self):
        assert isinstance(create_store({"store": {"platform": "memory"}}), MemorySecretStore)
        assert isinstance(create_store({"store": {"platform": "vercel"}}), VercelSecretStore)
        render = create_store({"store": {"platform": "render", "render": {"service_ids": {"production": "s"}}}})
        assert render.service_ids == {"production": "s"}
        assert isinstance(create_store({"store": {"platform": "gcp"}}), GCPSecretStore)

    def test_unsupported(self):
        with pytest.raises(ValueError):
            create_store({"store": {"platform": "heroku"}})
