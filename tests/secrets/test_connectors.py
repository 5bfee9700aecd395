from __future__ import annotations

import json
from types import SimpleNamespace

import httpx
import pytest
import respx

from secretplan.secrets import (
    Connector,
    DopplerConnector,
    EnvironmentConnector,
    FileConnector,
    InMemoryConnector,
    SourceUnavailableError,
    build_connector,
)
from secretplan.secrets.connectors import extract_field, field_variable_name
from secretplan.secrets.crypto import (
    DEFAULT_PASSPHRASE_ENV,
    SecretDocumentCryptoError,
    encrypt_secrets,
)
from secretplan.settings import SecretPlanSettings

DOPPLER_URL = "https://api.doppler.com/v3/configs/config/secret"


@pytest.mark.parametrize(
    ("key", "field", "expected"),
    [
        ("API_CREDENTIALS", "username", "API_CREDENTIALS_USERNAME"),
        ("DEPLOY_KEY", "privateKey", "DEPLOY_KEY_PRIVATE_KEY"),
        ("INGRESS", "tls.crt", "INGRESS_TLS_CRT"),
    ],
)
def test_field_variable_name(key, field, expected):
    assert field_variable_name(key, field) == expected


def test_extract_field_follows_lookup_convention():
    document = json.dumps({"username": "api-user", "port": 5432})

    assert extract_field(document, "username") == "api-user"
    assert extract_field(document, "port") == "5432"
    assert extract_field(document, "password") is None
    assert extract_field("plain", "value") == "plain"
    assert extract_field("plain", "username") is None
    assert extract_field("plain", None) == "plain"
    assert extract_field(None, "value") is None


def test_environment_connector_without_prefix_reads_names_verbatim():
    connector = EnvironmentConnector(
        environ={
            "API_CREDENTIALS": json.dumps({"username": "from-json", "password": "json-pass"}),
            "API_CREDENTIALS_USERNAME": "dedicated-user",
            "DATABASE_URL": "postgresql://db",
        }
    )

    assert isinstance(connector, Connector)
    assert connector.fetch("API_CREDENTIALS", "username") == "dedicated-user"
    assert connector.fetch("API_CREDENTIALS", "password") == "json-pass"
    assert connector.fetch("DATABASE_URL", "value") == "postgresql://db"
    assert connector.fetch("DATABASE_URL", "host") is None
    assert connector.fetch("MISSING", "value") is None


def test_environment_connector_prefix_is_explicit():
    environ = {"CUSTOM_PREFIX_API_CREDENTIALS_PASSWORD": "prefixed", "API_CREDENTIALS_PASSWORD": "bare"}

    prefixed = EnvironmentConnector("CUSTOM_PREFIX_", environ=environ)
    bare = EnvironmentConnector(environ=environ)

    assert prefixed.prefix == "CUSTOM_PREFIX_"
    assert prefixed.fetch("API_CREDENTIALS", "password") == "prefixed"
    assert bare.fetch("API_CREDENTIALS", "password") == "bare"


def test_environment_connector_reads_process_environment(monkeypatch):
    monkeypatch.setenv("SECRETPLAN_TEST_TOKEN", "from-os")

    assert EnvironmentConnector().fetch("SECRETPLAN_TEST_TOKEN", "value") == "from-os"


def test_environment_connector_honours_source_option():
    connector = EnvironmentConnector(environ={"LEGACY_TOKEN": "legacy"})

    assert connector.fetch("TOKEN", "value", options={"source": "LEGACY_TOKEN"}) == "legacy"


def test_in_memory_connector_serves_mappings_and_scalars():
    connector = InMemoryConnector(
        {"API_CREDENTIALS": {"username": "u", "port": 8080}, "TOKEN": "abc"},
        scalar_field="token",
    )

    assert connector.fetch("API_CREDENTIALS", "username") == "u"
    assert connector.fetch("API_CREDENTIALS", "port") == "8080"
    assert connector.fetch("TOKEN", "token") == "abc"
    assert connector.fetch("TOKEN", "value") is None


def test_file_connector_reads_plain_documents(tmp_path):
    path = tmp_path / "secrets.json"
    path.write_text(json.dumps({"API_CREDENTIALS": {"username": "u", "password": "p"}}))

    connector = FileConnector(path)

    assert connector.fetch("API_CREDENTIALS", "password") == "p"
    assert connector.fetch("OTHER", "value") is None


def test_file_connector_reads_encrypted_documents(tmp_path):
    path = tmp_path / "secrets.enc.json"
    path.write_text(encrypt_secrets({"TOKEN": "abc"}, "correct horse"))

    assert FileConnector(path, passphrase="correct horse").fetch("TOKEN", "value") == "abc"
    with pytest.raises(SourceUnavailableError):
        FileConnector(path, passphrase="wrong").fetch("TOKEN", "value")


def test_file_connector_reports_unreadable_sources(tmp_path):
    with pytest.raises(SourceUnavailableError):
        FileConnector(tmp_path / "missing.json").fetch("TOKEN", "value")

    broken = tmp_path / "broken.json"
    broken.write_text("[1, 2]")
    with pytest.raises(SourceUnavailableError):
        FileConnector(broken).fetch("TOKEN", "value")


def _doppler_responder(secrets: dict[str, str]):
    def responder(request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "Bearer dp.st.test"
        assert request.url.params["project"] == "platform"
        assert request.url.params["config"] == "prd"
        name = request.url.params["name"]
        if name not in secrets:
            return httpx.Response(404, json={"messages": ["Could not find requested secret"]})
        return httpx.Response(200, json={"name": name, "secret": {"raw": secrets[name]}})

    return responder


def test_doppler_connector_prefers_dedicated_field_keys():
    connector = DopplerConnector("dp.st.test", config="prd", project="platform")

    with respx.mock(assert_all_called=True) as mock:
        mock.get(DOPPLER_URL).mock(
            side_effect=_doppler_responder(
                {
                    "API_CREDENTIALS_USERNAME": "dedicated",
                    "API_CREDENTIALS": json.dumps({"username": "json", "password": "json-pass"}),
                }
            )
        )

        assert connector.fetch("API_CREDENTIALS", "username") == "dedicated"
        assert connector.fetch("API_CREDENTIALS", "password") == "json-pass"
        assert connector.fetch("MISSING", "value") is None


def test_doppler_connector_applies_key_mapping():
    connector = DopplerConnector(
        "dp.st.test",
        config="prd",
        project="platform",
        key_mapping={"TOKEN": "SERVICE_TOKEN"},
    )

    with respx.mock() as mock:
        route = mock.get(DOPPLER_URL).mock(side_effect=_doppler_responder({"SERVICE_TOKEN": "t"}))

        assert connector.fetch("TOKEN") == "t"
        assert route.calls.last.request.url.params["name"] == "SERVICE_TOKEN"


def test_doppler_connector_surfaces_outages():
    connector = DopplerConnector("dp.st.test", config="prd", project="platform")

    with respx.mock() as mock:
        mock.get(DOPPLER_URL).mock(return_value=httpx.Response(503))
        with pytest.raises(SourceUnavailableError):
            connector.fetch("TOKEN", "value")

    with respx.mock() as mock:
        mock.get(DOPPLER_URL).mock(side_effect=httpx.ConnectError("connection refused"))
        with pytest.raises(SourceUnavailableError):
            connector.fetch("TOKEN", "value")


def test_doppler_connector_uses_injected_client():
    with respx.mock() as mock:
        mock.get(DOPPLER_URL).mock(side_effect=_doppler_responder({"TOKEN": "from-client"}))
        with httpx.Client() as client:
            connector = DopplerConnector(
                "dp.st.test", config="prd", project="platform", client=client
            )
            assert connector.fetch("TOKEN", "value") == "from-client"


def test_vault_connector_reads_kv_v2_data():
    hvac = pytest.importorskip("hvac")
    from secretplan.secrets import VaultConnector

    stored = {"secrets/api_credentials": {"username": "vault-user", "password": "vault-pass"}}
    paths: list[str] = []

    def read_secret_version(*, mount_point, path, raise_on_deleted_version):
        paths.append(path)
        if path == "secrets/down":
            raise hvac.exceptions.VaultDown("sealed")
        if path not in stored:
            raise hvac.exceptions.InvalidPath()
        return {"data": {"data": stored[path]}}

    client = SimpleNamespace(
        secrets=SimpleNamespace(
            kv=SimpleNamespace(v2=SimpleNamespace(read_secret_version=read_secret_version))
        )
    )
    connector = VaultConnector(client=client, mount_point="kv")

    assert connector.fetch("API_CREDENTIALS", "password") == "vault-pass"
    assert connector.fetch("MISSING", "value") is None
    with pytest.raises(SourceUnavailableError):
        connector.fetch("DOWN", "value")
    assert paths == ["secrets/api_credentials", "secrets/missing", "secrets/down"]


def test_aws_connector_reads_secret_strings():
    pytest.importorskip("boto3")
    from botocore.exceptions import ClientError, EndpointConnectionError

    from secretplan.secrets import AWSSecretsManagerConnector

    class FakeSecretsManager:
        def get_secret_value(self, *, SecretId):
            if SecretId == "prod/API_CREDENTIALS":
                return {"SecretString": json.dumps({"username": "aws-user", "password": "aws-pass"})}
            if SecretId == "prod/OFFLINE":
                raise EndpointConnectionError(endpoint_url="https://secretsmanager.invalid")
            if SecretId == "prod/DENIED":
                raise ClientError(
                    {"Error": {"Code": "AccessDeniedException", "Message": "denied"}},
                    "GetSecretValue",
                )
            raise ClientError(
                {"Error": {"Code": "ResourceNotFoundException", "Message": "missing"}},
                "GetSecretValue",
            )

    connector = AWSSecretsManagerConnector(prefix="prod/", client=FakeSecretsManager())

    assert connector.fetch("API_CREDENTIALS", "username") == "aws-user"
    assert connector.fetch("MISSING", "value") is None
    with pytest.raises(SourceUnavailableError):
        connector.fetch("OFFLINE", "value")
    with pytest.raises(SourceUnavailableError):
        connector.fetch("DENIED", "value")


def test_build_connector_defaults_to_environment():
    connector = build_connector(SecretPlanSettings(env_prefix="CUSTOM_PREFIX_"))

    assert isinstance(connector, EnvironmentConnector)
    assert connector.prefix == "CUSTOM_PREFIX_"


def test_build_connector_file_and_doppler(tmp_path):
    path = tmp_path / "secrets.json"
    path.write_text("{}")

    file_connector = build_connector(
        SecretPlanSettings(connector="FILE", secrets_file=path, secrets_file_passphrase="pw")
    )
    doppler = build_connector(
        SecretPlanSettings(
            connector="doppler",
            doppler_token="dp.st.test",
            doppler_project="platform",
            doppler_config="prd",
        )
    )

    assert isinstance(file_connector, FileConnector)
    assert isinstance(doppler, DopplerConnector)


@pytest.mark.parametrize(
    "overrides",
    [
        {"connector": "file"},
        {"connector": "vault"},
        {"connector": "doppler", "doppler_token": "dp.st.test"},
        {"connector": "carrier-pigeon"},
    ],
)
def test_build_connector_rejects_incomplete_configuration(overrides):
    with pytest.raises(RuntimeError):
        build_connector(SecretPlanSettings(**overrides))


def test_build_connector_takes_file_passphrase_from_environment(tmp_path, monkeypatch):
    path = tmp_path / "secrets.enc.json"
    path.write_text(encrypt_secrets({"TOKEN": "abc"}, "from-env"))
    monkeypatch.setenv(DEFAULT_PASSPHRASE_ENV, "from-env")

    connector = build_connector(
        SecretPlanSettings(connector="file", secrets_file=path, secrets_file_encrypted=True)
    )

    assert connector.fetch("TOKEN", "value") == "abc"


def test_build_connector_requires_a_passphrase_for_encrypted_files(tmp_path, monkeypatch):
    monkeypatch.delenv(DEFAULT_PASSPHRASE_ENV, raising=False)

    with pytest.raises(SecretDocumentCryptoError):
        build_connector(
            SecretPlanSettings(
                connector="file", secrets_file=tmp_path / "secrets.enc.json", secrets_file_encrypted=True
            )
        )
