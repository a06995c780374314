"""
Unit tests for the LeanCloud gateway.

Tests the HTTP gateway including:
- Request paths and payloads
- Translation of remote schema responses
- Error handling and retries
"""

import aiohttp
import pytest
import pytest_asyncio
from aioresponses import aioresponses
from yarl import URL

from schemasync.config import GatewayConfig
from schemasync.exceptions import ConfigurationError, GatewayAPIError, GatewayError
from schemasync.gateway import LeanCloudGateway
from schemasync.gateway.base import (
    ClassListItem,
    CreateClassData,
    CreateColumnData,
    UpdateColumnData,
)
from schemasync.schema.model import (
    Action,
    ClassKind,
    ColumnType,
    Everyone,
    RolesAndUsers,
    SignedInUsersOnly,
)


BASE_URL = "https://console.example.com/1.1/data/test-app"


def sent_json(m, method, url):
    """Body of the last request sent to ``url``."""
    return m.requests[(method, URL(url))][-1].kwargs["json"]


@pytest_asyncio.fixture
async def client(sample_config):
    client = LeanCloudGateway.from_config(sample_config)
    yield client
    await client.close()


class TestGatewayInitialization:
    """Test gateway construction."""

    def test_from_config(self, sample_config):
        client = LeanCloudGateway.from_config(sample_config)
        assert client.base_url == BASE_URL
        assert client.config.max_retries == 2

    def test_trailing_slash_is_ignored(self):
        client = LeanCloudGateway("https://console.example.com/", "app", "token")
        assert client.base_url == "https://console.example.com/1.1/data/app"

    def test_invalid_url(self):
        with pytest.raises(ConfigurationError):
            LeanCloudGateway("console.example.com", "app", "token")

    def test_missing_credentials(self, sample_config):
        sample_config.access_token = None
        with pytest.raises(ConfigurationError, match="no access token provided"):
            LeanCloudGateway.from_config(sample_config)

    @pytest.mark.asyncio
    async def test_auth_headers(self, client):
        session = await client._get_session()
        assert session.headers["Authorization"] == "Token test-token"
        assert session.headers["Cookie"] == "XSRF-TOKEN=None"
        assert session.headers["X-XSRF-Token"] == "None"


class TestReads:
    """Test class index and schema reads."""

    @pytest.mark.asyncio
    async def test_list_classes(self, client):
        with aioresponses() as m:
            m.get(
                f"{BASE_URL}/classes",
                payload=[
                    {"name": "Article", "class-type": "normal"},
                    {"name": "Audit", "class-type": "log"},
                ],
            )
            classes = await client.list_classes()

        assert classes == [
            ClassListItem("Article", ClassKind.NORMAL),
            ClassListItem("Audit", ClassKind.LOG),
        ]

    @pytest.mark.asyncio
    async def test_get_class_schema(self, client):
        with aioresponses() as m:
            m.get(
                f"{BASE_URL}/classes/Article",
                payload={
                    "name": "Article",
                    "class-type": "normal",
                    "at": {"*": {"read": True, "write": False}},
                    "permissions": {
                        "create": {"onlySignInUsers": True},
                        "find": {"*": True},
                        "delete": {"roles": ["admin"], "users": []},
                        "unknown_action": {"*": True},
                    },
                    "schema": {
                        "objectId": {"type": "String"},
                        "ACL": {"type": "ACL"},
                        "title": {
                            "type": "String",
                            "read_only": True,
                            "required": True,
                            "comment": None,
                            "user_private": False,
                        },
                        "views": {"type": "Number", "auto_increment": True},
                        "author": {"type": "Pointer", "className": "_User"},
                        "editor": {"type": "Pointer", "targetClassName": "_User"},
                        "tags": {"type": "Relation", "className": "Tag"},
                    },
                },
            )
            definition = await client.get_class_schema("Article")

        assert definition.name == "Article"
        assert definition.kind is ClassKind.NORMAL
        assert definition.schema.permissions == {
            Action.CREATE: SignedInUsersOnly(),
            Action.FIND: Everyone(),
            Action.DELETE: RolesAndUsers(("admin",), ()),
        }
        # "at" fills the ACL column default
        assert definition.columns["ACL"].default == {"*": {"read": True}}
        assert definition.schema.default_acl == {"*": {"read": True}}

        title = definition.columns["title"]
        assert title.readonly is True
        assert title.required is True
        assert title.comment == ""
        assert definition.columns["views"].auto_increment is True
        assert definition.columns["author"].target_class_name == "_User"
        assert definition.columns["editor"].target_class_name == "_User"
        assert "tags" not in definition.columns
        assert definition.unsupported_columns == {"tags": "Relation"}

    @pytest.mark.asyncio
    async def test_malformed_schema_response(self, client):
        with aioresponses() as m:
            m.get(
                f"{BASE_URL}/classes/Article",
                payload={"schema": {"author": {"type": "Pointer"}}},
            )
            with pytest.raises(GatewayError, match="Unexpected schema response"):
                await client.get_class_schema("Article")


class TestMutations:
    """Test mutation payloads."""

    @pytest.mark.asyncio
    async def test_create_class(self, client):
        url = f"{BASE_URL}/classes"
        with aioresponses() as m:
            m.post(url, payload={})
            await client.create_class(
                CreateClassData(
                    name="Article",
                    kind=ClassKind.LOG,
                    default_acl={"*": {"read": True}},
                    permissions={Action.GET: Everyone(), Action.ADD_FIELDS: SignedInUsersOnly()},
                )
            )
            body = sent_json(m, "POST", url)

        assert body == {
            "class_name": "Article",
            "class_type": "log",
            "acl_template": {"*": {"read": True}},
            "permissions": {"add_fields": {"onlySignInUsers": True}, "get": {"*": True}},
        }

    @pytest.mark.asyncio
    async def test_create_column(self, client):
        url = f"{BASE_URL}/classes/Article/columns"
        with aioresponses() as m:
            m.post(url, payload={})
            await client.create_column(
                "Article",
                CreateColumnData(
                    name="views",
                    type=ColumnType.NUMBER,
                    required=True,
                    default="0",
                    auto_increment=True,
                ),
            )
            body = sent_json(m, "POST", url)

        assert body == {
            "claid": "Article",
            "column": "views",
            "type": "Number",
            "hidden": False,
            "read_only": False,
            "required": True,
            "default": "0",
            "auto_increment": True,
            "incrementValue": 1,
        }

    @pytest.mark.asyncio
    async def test_create_pointer_column(self, client):
        url = f"{BASE_URL}/classes/Article/columns"
        with aioresponses() as m:
            m.post(url, payload={})
            await client.create_column(
                "Article",
                CreateColumnData(
                    name="author",
                    type=ColumnType.POINTER,
                    comment="who wrote it",
                    target_class_name="_User",
                ),
            )
            body = sent_json(m, "POST", url)

        assert body["class_name"] == "_User"
        assert body["comment"] == "who wrote it"
        assert "default" not in body
        assert "auto_increment" not in body

    @pytest.mark.asyncio
    async def test_update_column_sends_null_default(self, client):
        url = f"{BASE_URL}/classes/Article/columns/title"
        with aioresponses() as m:
            m.put(url, payload={})
            await client.update_column(
                "Article",
                "title",
                UpdateColumnData(hidden=True, readonly=False, required=False, comment=""),
            )
            body = sent_json(m, "PUT", url)

        assert body == {
            "claid": "Article",
            "hidden": True,
            "read_only": False,
            "required": False,
            "comment": "",
            "default": None,
        }

    @pytest.mark.asyncio
    async def test_update_class_permissions(self, client):
        url = f"{BASE_URL}/classes/Article/permissions"
        with aioresponses() as m:
            m.put(url, payload={})
            await client.update_class_permissions("Article", {Action.FIND: Everyone()})
            body = sent_json(m, "PUT", url)

        assert body == {"permissions": {"find": {"*": True}}}

    @pytest.mark.asyncio
    async def test_update_class_default_acl(self, client):
        url = f"{BASE_URL}/classes/Article/columns/ACL"
        with aioresponses() as m:
            m.put(url, payload={})
            await client.update_class_default_acl(
                "Article", {"_owner": {"read": True, "write": True}}
            )
            body = sent_json(m, "PUT", url)

        assert body == {
            "claid": "Article",
            "id": "ACL",
            "default": '{"_owner":{"read":true,"write":true}}',
        }


class TestErrors:
    """Test error handling and retries."""

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self, client):
        url = f"{BASE_URL}/classes"
        with aioresponses() as m:
            m.post(url, status=400, payload={"code": 1, "error": "Class exists"})
            with pytest.raises(GatewayAPIError) as exc_info:
                await client.create_class(
                    CreateClassData("Article", ClassKind.NORMAL, {}, {})
                )
            assert len(m.requests[("POST", URL(url))]) == 1

        assert exc_info.value.status_code == 400
        assert exc_info.value.response_body == {"code": 1, "error": "Class exists"}

    @pytest.mark.asyncio
    async def test_server_error_is_retried(self, client):
        url = f"{BASE_URL}/classes"
        with aioresponses() as m:
            m.get(url, status=503, body="unavailable")
            m.get(url, payload=[{"name": "Article", "class-type": "normal"}])
            classes = await client.list_classes()

        assert [c.name for c in classes] == ["Article"]

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, client):
        url = f"{BASE_URL}/classes"
        with aioresponses() as m:
            for _ in range(3):
                m.get(url, status=429, body="slow down")
            with pytest.raises(GatewayAPIError) as exc_info:
                await client.list_classes()

        assert exc_info.value.status_code == 429
        assert exc_info.value.response_body == "slow down"

    @pytest.mark.asyncio
    async def test_network_error(self, client):
        url = f"{BASE_URL}/classes"
        with aioresponses() as m:
            for _ in range(3):
                m.get(url, exception=aiohttp.ClientConnectionError("refused"))
            with pytest.raises(GatewayError) as exc_info:
                await client.list_classes()

        assert not isinstance(exc_info.value, GatewayAPIError)
        assert isinstance(exc_info.value.cause, aiohttp.ClientConnectionError)

    @pytest.mark.asyncio
    async def test_context_manager_closes_session(self, sample_config):
        async with LeanCloudGateway.from_config(sample_config) as client:
            session = await client._get_session()
        assert session.closed


class TestGatewayConfig:
    def test_defaults(self):
        config = GatewayConfig()
        assert config.timeout == 30
        assert config.max_retries == 2
