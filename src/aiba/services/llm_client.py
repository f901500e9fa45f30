from __future__ import annotations

from typing import Any, Dict, Iterator, List, Optional, Protocol
import json
import logging

import requests
from requests.adapters import HTTPAdapter
from langchain_openai import ChatOpenAI

from ..config import Settings


LOG = logging.getLogger("aiba.llm")


class UpstreamError(RuntimeError):
    """The completion API could not be reached or answered badly."""


class UpstreamStream(Protocol):
    def __iter__(self) -> Iterator[Any]: ...

    def close(self) -> None: ...


class UpstreamClient(Protocol):
    def open_stream(self, messages: List[Dict[str, str]]) -> UpstreamStream: ...


def _build_session() -> requests.Session:
    # One relay invocation must map to one upstream request: no adapter retries.
    session = requests.Session()
    adapter = HTTPAdapter(max_retries=0, pool_connections=10, pool_maxsize=10)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


class _SSEStream:
    """Iterates the ``data:`` events of an OpenAI-style streamed completion."""

    def __init__(self, resp: requests.Response) -> None:
        self._resp = resp
        self._closed = False

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        try:
            for raw_line in self._resp.iter_lines():
                if not raw_line:
                    continue
                line = raw_line.decode("utf-8") if isinstance(raw_line, bytes) else raw_line
                if not line.startswith("data:"):
                    continue
                data = line[5:].strip()
                if data == "[DONE]":
                    break
                try:
                    parsed = json.loads(data)
                except json.JSONDecodeError as exc:
                    raise UpstreamError(f"Malformed stream chunk from completion API: {data[:80]!r}") from exc
                if isinstance(parsed, dict) and parsed.get("error"):
                    err = parsed["error"]
                    message = err.get("message") if isinstance(err, dict) else str(err)
                    raise UpstreamError(f"Completion API error: {message}")
                yield parsed
        except requests.exceptions.RequestException as exc:
            raise UpstreamError(f"Completion stream interrupted: {exc}") from exc

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._resp.close()


class OpenAIStreamClient:
    """Streams chat completions from any OpenAI-compatible ``/chat/completions`` endpoint."""

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None) -> None:
        self.base_url = settings.base_url.rstrip("/")
        self.model = settings.model
        self._api_key = settings.api_key
        self._timeout = settings.timeout
        self._session = session or _build_session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "text/event-stream"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def open_stream(self, messages: List[Dict[str, str]]) -> _SSEStream:
        LOG.debug(
            "upstream_stream_open",
            extra={"model": self.model, "base_url": self.base_url, "timeout": self._timeout},
        )
        payload = {"model": self.model, "messages": messages, "stream": True}
        try:
            resp = self._session.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers=self._headers(),
                timeout=self._timeout,
                stream=True,
            )
        except requests.exceptions.RequestException as exc:
            raise UpstreamError(f"Completion API unreachable: {exc}") from exc
        if resp.status_code >= 400:
            detail = _error_detail(resp)
            resp.close()
            raise UpstreamError(f"Completion API returned {resp.status_code}: {detail}")
        return _SSEStream(resp)


def _error_detail(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return (resp.text or resp.reason or "").strip()[:200]
    err = body.get("error") if isinstance(body, dict) else None
    if isinstance(err, dict) and err.get("message"):
        return str(err["message"])
    return str(body)[:200]


class _ChunkGenerator:
    def __init__(self, gen: Iterator[Any]) -> None:
        self._gen = gen

    def __iter__(self) -> Iterator[Any]:
        return self._gen

    def close(self) -> None:
        close = getattr(self._gen, "close", None)
        if close is not None:
            close()


class LangChainStreamClient:
    """Streams through langchain-openai; chunks are ``AIMessageChunk`` objects."""

    def __init__(self, settings: Settings) -> None:
        self.model = settings.model
        self._llm = ChatOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            model=settings.model,
            temperature=0.2,
            timeout=settings.read_timeout,
            max_retries=0,
        )

    def open_stream(self, messages: List[Dict[str, str]]) -> _ChunkGenerator:
        LOG.debug("upstream_stream_open", extra={"model": self.model, "client": "langchain"})
        return _ChunkGenerator(iter(self._llm.stream(messages)))


def build_upstream_client(settings: Settings) -> UpstreamClient:
    if settings.provider == "langchain":
        LOG.info("Using langchain-openai upstream model=%s base_url=%s", settings.model, settings.base_url)
        return LangChainStreamClient(settings)
    if settings.provider != "openai":
        raise ValueError(f"Unknown LLM provider: {settings.provider}")
    LOG.info("Using OpenAI-compatible upstream model=%s base_url=%s", settings.model, settings.base_url)
    return OpenAIStreamClient(settings)
