"""
Backend Connector — Adapters for the collaborators routing steps consult.

Three interfaces cover everything the business steps need from the
outside world:

    DataSource        run a parameterized query against a tenant database
    SessionDirectory  list operators currently logged in for a tenant
    ChatCounter       count open (unfinished) chats per operator

Each has a SQL or REST implementation plus an in-memory one for
development and tests. Which one is used is configured in settings.yaml
(services section). Adapters never swallow failures: a step that fails
on a collaborator error is rerouted through its fallback by the engine.
"""
from __future__ import annotations

import abc
import inspect
import structlog
from typing import Any, Callable, Iterable, Optional, Union

import httpx
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from tenacity import retry, stop_after_attempt, wait_exponential

from config.settings import ServicesConfig, get_settings
from database.models import ChatRow
from database.session import build_engine, get_session
from models.schemas import OnlineSession

logger = structlog.get_logger()

Rows = list[dict[str, Any]]
QueryParams = Union[list[Any], tuple[Any, ...], dict[str, Any], None]


# ══════════════════════════════════════════════════════════════
#  Interfaces
# ══════════════════════════════════════════════════════════════

class DataSource(abc.ABC):
    """Executes raw queries against the database of a tenant instance."""

    @abc.abstractmethod
    async def execute_query(self, instance: str, query: str, params: QueryParams = None) -> Rows:
        """Run `query` with positional `?` (or named) parameters, return rows as dicts."""
        ...

    async def close(self) -> None:
        return None


class SessionDirectory(abc.ABC):
    """Knows which operators are online right now."""

    @abc.abstractmethod
    async def get_online_sessions(self, instance: str) -> list[OnlineSession]:
        ...

    async def close(self) -> None:
        return None


class ChatCounter(abc.ABC):
    """Counts open chats per operator."""

    @abc.abstractmethod
    async def count_open_chats(self, instance: str, user_ids: Iterable[int]) -> dict[int, int]:
        """Return {user_id: open chat count} with an entry for every requested id."""
        ...


# ══════════════════════════════════════════════════════════════
#  SQL adapters
# ══════════════════════════════════════════════════════════════

def bind_positional(query: str, params: QueryParams) -> tuple[str, dict[str, Any]]:
    """
    Rewrite `?` placeholders to SQLAlchemy named binds (:p0, :p1, ...).

    Question marks inside quoted literals are left alone. Dict params are
    assumed to be named already and pass through untouched.
    """
    if params is None:
        return query, {}
    if isinstance(params, dict):
        return query, dict(params)

    values = list(params)
    out: list[str] = []
    binds: dict[str, Any] = {}
    quote: Optional[str] = None
    for ch in query:
        if quote:
            if ch == quote:
                quote = None
            out.append(ch)
        elif ch in ("'", '"', "`"):
            quote = ch
            out.append(ch)
        elif ch == "?":
            idx = len(binds)
            if idx >= len(values):
                raise ValueError(f"Query has more placeholders than parameters ({len(values)})")
            binds[f"p{idx}"] = values[idx]
            out.append(f":p{idx}")
        else:
            out.append(ch)
    return "".join(out), binds


class SqlDataSource(DataSource):
    """
    Direct database access, one async engine per tenant instance.
    Instance URLs come from settings `instances` unless given explicitly.
    """

    def __init__(self, urls: Optional[dict[str, str]] = None):
        self._urls = dict(urls if urls is not None else get_settings().instances)
        self._engines: dict[str, AsyncEngine] = {}

    def _get_engine(self, instance: str) -> AsyncEngine:
        if instance not in self._engines:
            url = self._urls.get(instance)
            if not url:
                raise LookupError(f"No database configured for instance '{instance}'")
            self._engines[instance] = build_engine(url)
        return self._engines[instance]

    async def execute_query(self, instance: str, query: str, params: QueryParams = None) -> Rows:
        sql, binds = bind_positional(query, params)
        engine = self._get_engine(instance)
        async with engine.begin() as conn:
            result = await conn.execute(text(sql), binds)
            rows = [dict(r) for r in result.mappings().all()] if result.returns_rows else []
        logger.debug("data_source_query", instance=instance, rows=len(rows))
        return rows

    async def close(self) -> None:
        for engine in self._engines.values():
            await engine.dispose()
        self._engines.clear()


class SqlChatCounter(ChatCounter):
    """Counts unfinished rows of the `chats` table grouped by user."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_factory = session_factory

    async def count_open_chats(self, instance: str, user_ids: Iterable[int]) -> dict[int, int]:
        ids = list(user_ids)
        counts = {uid: 0 for uid in ids}
        if not ids:
            return counts

        stmt = (
            select(ChatRow.user_id, func.count(ChatRow.id))
            .where(
                ChatRow.instance == instance,
                ChatRow.is_finished.is_(False),
                ChatRow.user_id.in_(ids),
            )
            .group_by(ChatRow.user_id)
        )
        async with get_session(self._session_factory) as db:
            result = await db.execute(stmt)
            for user_id, count in result.all():
                counts[user_id] = count
        return counts


# ══════════════════════════════════════════════════════════════
#  REST adapters
# ══════════════════════════════════════════════════════════════

class _RESTClient:
    """Shared httpx client with auth headers and retried requests."""

    def __init__(self, config: ServicesConfig = None, base_url: str = ""):
        self.config = config or get_settings().services
        self.base_url = base_url
        self.client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self.client is None or self.client.is_closed:
            headers = {}
            if self.config.auth_type == "bearer":
                token = self.config.auth_credentials.get("token", "")
                headers["Authorization"] = f"Bearer {token}"
            elif self.config.auth_type == "api_key":
                key_name = self.config.auth_credentials.get("header_name", "X-API-Key")
                headers[key_name] = self.config.auth_credentials.get("api_key", "")

            self.client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.config.timeout_seconds,
            )
        return self.client

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=1, max=10), reraise=True)
    async def _request(self, method: str, endpoint: str, **kwargs) -> Any:
        client = await self._get_client()
        url = self.config.endpoints.get(endpoint, endpoint)
        for k, v in kwargs.pop("path_params", {}).items():
            url = url.replace(f"{{{k}}}", str(v))

        response = await client.request(method, url, **kwargs)
        response.raise_for_status()
        return response.json()

    @staticmethod
    def _unwrap(payload: Any) -> list[Any]:
        if isinstance(payload, list):
            return payload
        if isinstance(payload, dict):
            for key in ("result", "data", "results"):
                if isinstance(payload.get(key), list):
                    return payload[key]
        return []

    async def close(self) -> None:
        if self.client:
            await self.client.aclose()


class RESTDataSource(_RESTClient, DataSource):
    """Runs queries through the instances service (`execute_query` endpoint)."""

    def __init__(self, config: ServicesConfig = None):
        config = config or get_settings().services
        super().__init__(config, base_url=config.instances_url)

    async def execute_query(self, instance: str, query: str, params: QueryParams = None) -> Rows:
        parameters = list(params) if isinstance(params, (list, tuple)) else (params or [])
        try:
            payload = await self._request(
                "POST", "execute_query",
                path_params={"instance": instance},
                json={"query": query, "parameters": parameters},
            )
        except httpx.HTTPError as e:
            logger.error("data_source_query_failed", instance=instance, error=str(e))
            raise
        return [dict(r) for r in self._unwrap(payload)]


class RESTSessionDirectory(_RESTClient, SessionDirectory):
    """Reads online operator sessions from the auth service."""

    def __init__(self, config: ServicesConfig = None):
        config = config or get_settings().services
        super().__init__(config, base_url=config.auth_url)

    async def get_online_sessions(self, instance: str) -> list[OnlineSession]:
        try:
            payload = await self._request(
                "GET", "online_sessions", path_params={"instance": instance},
            )
        except httpx.HTTPError as e:
            logger.error("online_sessions_fetch_failed", instance=instance, error=str(e))
            raise
        return [
            OnlineSession.model_validate({"instance": instance, **s})
            for s in self._unwrap(payload)
        ]


# ══════════════════════════════════════════════════════════════
#  In-memory adapters (development, tests)
# ══════════════════════════════════════════════════════════════

Response = Union[Rows, Exception, Callable[..., Any]]


class InMemoryDataSource(DataSource):
    """
    Canned query results. A response is registered per query pattern and
    matched as a case-insensitive substring of the whitespace-normalized
    query; the first registered match wins. Responses can be rows, an
    exception to raise, or a callable receiving (instance, params).
    Every call is recorded in `calls`.
    """

    def __init__(self, responses: Optional[dict[str, Response]] = None):
        self._responses: dict[str, Response] = dict(responses or {})
        self.calls: list[tuple[str, str, QueryParams]] = []

    def add(self, pattern: str, response: Response) -> None:
        self._responses[pattern] = response

    @staticmethod
    def _normalize(query: str) -> str:
        return " ".join(query.split()).lower()

    def _match(self, query: str) -> Optional[Response]:
        normalized = self._normalize(query)
        for pattern, response in self._responses.items():
            if self._normalize(pattern) in normalized:
                return response
        return None

    async def execute_query(self, instance: str, query: str, params: QueryParams = None) -> Rows:
        self.calls.append((instance, query, params))
        response = self._match(query)
        if response is None:
            return []
        if isinstance(response, Exception):
            raise response
        if callable(response):
            response = response(instance, params)
            if inspect.isawaitable(response):
                response = await response
        return [dict(r) for r in response]


class InMemorySessionDirectory(SessionDirectory):
    def __init__(self, sessions: Optional[dict[str, list[Any]]] = None):
        self._sessions: dict[str, list[OnlineSession]] = {}
        for instance, items in (sessions or {}).items():
            self.set_sessions(instance, items)
        self.calls: list[str] = []

    def set_sessions(self, instance: str, sessions: list[Any]) -> None:
        self._sessions[instance] = [
            s if isinstance(s, OnlineSession)
            else OnlineSession.model_validate({"instance": instance, **s})
            for s in sessions
        ]

    async def get_online_sessions(self, instance: str) -> list[OnlineSession]:
        self.calls.append(instance)
        return list(self._sessions.get(instance, []))


class InMemoryChatCounter(ChatCounter):
    def __init__(self, counts: Optional[dict[int, int]] = None):
        self._counts: dict[int, int] = dict(counts or {})
        self.calls: list[tuple[str, list[int]]] = []

    def set_count(self, user_id: int, count: int) -> None:
        self._counts[user_id] = count

    async def count_open_chats(self, instance: str, user_ids: Iterable[int]) -> dict[int, int]:
        ids = list(user_ids)
        self.calls.append((instance, ids))
        return {uid: self._counts.get(uid, 0) for uid in ids}


# ══════════════════════════════════════════════════════════════
#  Factories
# ══════════════════════════════════════════════════════════════

def create_data_source(config: ServicesConfig = None) -> DataSource:
    """Factory function to create the configured data source."""
    config = config or get_settings().services
    if config.data_source == "sql":
        return SqlDataSource()
    if config.data_source == "rest" and config.instances_url:
        return RESTDataSource(config)
    logger.warning("using_inmemory_data_source", configured=config.data_source)
    return InMemoryDataSource()


def create_session_directory(config: ServicesConfig = None) -> SessionDirectory:
    config = config or get_settings().services
    if config.sessions == "rest" and config.auth_url:
        return RESTSessionDirectory(config)
    logger.warning("using_inmemory_session_directory", configured=config.sessions)
    return InMemorySessionDirectory()


def create_chat_counter(config: ServicesConfig = None) -> ChatCounter:
    config = config or get_settings().services
    if config.chat_counter == "sql":
        return SqlChatCounter()
    logger.warning("using_inmemory_chat_counter", configured=config.chat_counter)
    return InMemoryChatCounter()
