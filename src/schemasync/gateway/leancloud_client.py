"""
LeanCloud console gateway implementation.

Talks to the console's schema API over aiohttp. This is the only place
that knows the remote wire vocabulary (``class-type``, ``read_only``,
``auto_increment``, ``className``, ``at``); everything above it works on
the schema model.
"""

import asyncio
import json
import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional

import aiohttp

from ..config import GatewayConfig, SchemaSyncConfig
from ..exceptions import ConfigurationError, GatewayAPIError, GatewayError, ValidationError
from ..schema.codec import parse_permissions
from ..schema.model import (
    ACL,
    ClassDefinition,
    ClassKind,
    ClassSchema,
    ColumnAttributes,
    ColumnSchema,
    ColumnType,
    NumberOptions,
    PermissionSet,
    PointerOptions,
    normalize_acl,
    permissions_to_wire,
)
from .base import (
    ClassListItem,
    CreateClassData,
    CreateColumnData,
    SchemaGateway,
    UpdateColumnData,
)

logger = logging.getLogger(__name__)

# Names older console versions used for a pointer's target class
_POINTER_TARGET_KEYS = ("className", "targetClassName", "pointerClass")


class LeanCloudGateway(SchemaGateway):
    """
    Schema gateway for the LeanCloud console API.

    Requests are authenticated with a console access token. Rate limits,
    server errors and network errors are retried with exponential backoff;
    any other error status fails immediately.
    """

    def __init__(
        self,
        console_url: str,
        app_id: str,
        access_token: str,
        config: Optional[GatewayConfig] = None,
    ):
        if not (console_url.startswith("http://") or console_url.startswith("https://")):
            raise ConfigurationError(
                f"Console URL must start with http:// or https://: {console_url}"
            )
        if not app_id:
            raise ConfigurationError("App id is required")
        if not access_token:
            raise ConfigurationError("Access token is required")

        self.console_url = console_url.rstrip("/")
        self.app_id = app_id
        self.access_token = access_token
        self.config = config or GatewayConfig()
        self.base_url = f"{self.console_url}/1.1/data/{app_id}"

        # Session for connection reuse
        self._session: Optional[aiohttp.ClientSession] = None

    @classmethod
    def from_config(cls, config: SchemaSyncConfig) -> "LeanCloudGateway":
        """Build a gateway from the main configuration."""
        config.require_credentials()
        return cls(
            console_url=config.console_url,
            app_id=config.app_id,
            access_token=config.access_token,
            config=config.gateway,
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.timeout)
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                headers={
                    "Authorization": f"Token {self.access_token}",
                    "Cookie": "XSRF-TOKEN=None",
                    "X-XSRF-Token": "None",
                    "Content-Type": "application/json",
                    "User-Agent": self.config.user_agent,
                },
            )
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    @staticmethod
    async def _read_body(response: aiohttp.ClientResponse) -> Any:
        text = await response.text()
        if not text:
            return None
        try:
            return json.loads(text)
        except ValueError:
            return text

    async def _request(
        self, method: str, path: str, payload: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Send one request, retrying transient failures.

        Raises:
            GatewayAPIError: On a non-retryable error status, or when retries
                are exhausted on a retryable one
            GatewayError: When the store cannot be reached
        """
        session = await self._get_session()
        url = f"{self.base_url}{path}"
        retry_count = 0

        while True:
            try:
                async with session.request(method, url, json=payload) as response:
                    body = await self._read_body(response)
                    if 200 <= response.status < 300:
                        logger.debug(f"{method} {path} -> {response.status}")
                        return body

                    error = GatewayAPIError(
                        f"{method} {path} failed with HTTP {response.status}",
                        status_code=response.status,
                        response_body=body,
                    )
                    retryable = response.status == 429 or response.status >= 500
                    if not retryable or retry_count >= self.config.max_retries:
                        raise error
                    last_error: GatewayError = error

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = GatewayError(
                    f"Network error during {method} {path}", cause=e
                )
                if retry_count >= self.config.max_retries:
                    raise last_error

            delay = self.config.retry_delay * (2 ** retry_count)
            logger.warning(
                f"Attempt {retry_count + 1} of {method} {path} failed, "
                f"retrying in {delay}s: {last_error}"
            )
            await asyncio.sleep(delay)
            retry_count += 1

    async def list_classes(self) -> List[ClassListItem]:
        data = await self._request("GET", "/classes")
        try:
            return [
                ClassListItem(name=item["name"], kind=ClassKind(item["class-type"]))
                for item in data
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise GatewayError("Unexpected class list response", cause=e)

    async def get_class_schema(self, name: str) -> ClassDefinition:
        data = await self._request("GET", f"/classes/{name}")
        try:
            return self._parse_class(name, data)
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            raise GatewayError(f"Unexpected schema response for class {name}", cause=e)

    def _parse_class(self, name: str, data: Dict[str, Any]) -> ClassDefinition:
        columns: Dict[str, ColumnSchema] = {}
        unsupported: Dict[str, str] = {}
        for column_name, raw in (data.get("schema") or {}).items():
            column = self._parse_column(name, column_name, raw)
            if column is not None:
                columns[column_name] = column
            else:
                unsupported[column_name] = str(raw["type"])

        # Classes created outside this tool keep their default ACL in "at"
        template = data.get("at")
        acl_column = columns.get("ACL")
        if template and acl_column is not None and acl_column.default is None:
            acl_column = replace(acl_column, default=normalize_acl(template))
            columns["ACL"] = acl_column

        if acl_column is not None:
            default_acl = acl_column.default
        else:
            default_acl = normalize_acl(template) if template else None

        class_schema = ClassSchema(
            name=data.get("name") or name,
            kind=ClassKind(data.get("class-type") or ClassKind.NORMAL.value),
            permissions=parse_permissions(data.get("permissions") or {}, strict=False),
            default_acl=default_acl,
        )
        return ClassDefinition(
            schema=class_schema, columns=columns, unsupported_columns=unsupported
        )

    def _parse_column(
        self, class_name: str, column_name: str, raw: Dict[str, Any]
    ) -> Optional[ColumnSchema]:
        try:
            column_type = ColumnType(raw["type"])
        except ValueError:
            logger.warning(
                f"Column {class_name}.{column_name} has unsupported type "
                f"{raw['type']} and cannot be reconciled"
            )
            return None

        options = None
        if column_type == ColumnType.NUMBER:
            options = NumberOptions(auto_increment=bool(raw.get("auto_increment")))
        elif column_type == ColumnType.POINTER:
            target = next(
                (raw[key] for key in _POINTER_TARGET_KEYS if raw.get(key)), None
            )
            if target is None:
                raise ValueError(f"Pointer column {column_name} has no target class")
            options = PointerOptions(target_class_name=target)

        default = raw.get("default")
        if column_type == ColumnType.ACL and isinstance(default, dict):
            default = normalize_acl(default)

        return ColumnSchema(
            name=column_name,
            type=column_type,
            attributes=ColumnAttributes(
                hidden=bool(raw.get("hidden")),
                readonly=bool(raw.get("read_only")),
                required=bool(raw.get("required")),
                comment=raw.get("comment") or "",
            ),
            default=default,
            options=options,
        )

    async def create_class(self, data: CreateClassData) -> None:
        await self._request(
            "POST",
            "/classes",
            {
                "class_name": data.name,
                "class_type": data.kind.value,
                "acl_template": data.default_acl,
                "permissions": permissions_to_wire(data.permissions),
            },
        )
        logger.info(f"Created class {data.name}")

    async def create_column(self, class_name: str, data: CreateColumnData) -> None:
        payload = {
            "claid": class_name,
            "column": data.name,
            "type": data.type.value,
            "hidden": data.hidden,
            "read_only": data.readonly,
            "required": data.required,
            "comment": data.comment or None,
            "default": data.default,
            "auto_increment": data.auto_increment,
            "incrementValue": 1 if data.auto_increment else None,
            "class_name": data.target_class_name,
        }
        await self._request(
            "POST",
            f"/classes/{class_name}/columns",
            {k: v for k, v in payload.items() if v is not None},
        )
        logger.info(f"Created column {class_name}.{data.name}")

    async def update_column(
        self, class_name: str, column: str, data: UpdateColumnData
    ) -> None:
        await self._request(
            "PUT",
            f"/classes/{class_name}/columns/{column}",
            {
                "claid": class_name,
                "hidden": data.hidden,
                "read_only": data.readonly,
                "required": data.required,
                "comment": data.comment,
                "default": data.default,
            },
        )
        logger.info(f"Updated column {class_name}.{column}")

    async def update_class_permissions(
        self, class_name: str, permissions: PermissionSet
    ) -> None:
        await self._request(
            "PUT",
            f"/classes/{class_name}/permissions",
            {"permissions": permissions_to_wire(permissions)},
        )
        logger.info(f"Updated permissions of {class_name}")

    async def update_class_default_acl(self, class_name: str, default_acl: ACL) -> None:
        await self._request(
            "PUT",
            f"/classes/{class_name}/columns/ACL",
            {
                "claid": class_name,
                "id": "ACL",
                "default": json.dumps(default_acl, separators=(",", ":")),
            },
        )
        logger.info(f"Updated default ACL of {class_name}")

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(console_url={self.console_url}, app_id={self.app_id})"
