"""
Client for the hosted assistant (threads, messages and runs) and the query
pipeline that drives one question through it.
"""

import http.client
import json
import os
import time
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from response_format import WRAP_WIDTH, format_response

INIT_ERROR_LINE = "Error initializing AI system. Please check your configuration.\n"
NOT_INITIALIZED_LINE = "Error: AI system not properly initialized.\n"
PROCESSING_LINE = "Processing query...\n"


class RunStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    TIMED_OUT = "timed_out"

    @classmethod
    def from_api(cls, value):
        for status in (cls.COMPLETED, cls.FAILED, cls.CANCELLED, cls.EXPIRED):
            if value == status.value:
                return status
        return cls.PENDING

    @property
    def is_failure(self):
        return self not in (RunStatus.PENDING, RunStatus.COMPLETED)


class AssistantServiceError(RuntimeError):
    """Any failure talking to the assistant service."""


class AssistantConfigurationError(AssistantServiceError):
    """Raised when the API key or assistant id is missing."""


class ResponseFormatError(AssistantServiceError):
    """Raised when the service answers with an unexpected payload."""


class RunFailedError(AssistantServiceError):
    def __init__(self, status):
        super().__init__(f"Run ended with status: {status.value}")
        self.status = status


class RunTimeoutError(AssistantServiceError):
    def __init__(self, attempts):
        super().__init__("Run timed out")
        self.status = RunStatus.TIMED_OUT
        self.attempts = attempts


@dataclass(frozen=True)
class ConversationContext:
    id: str


@dataclass(frozen=True)
class AssistantMessage:
    role: str
    text: Optional[str]


class AssistantClient:
    def __init__(self, config: Optional[Dict[str, Any]] = None, logger=None):
        config = config or {}
        self.logger = logger or _NullLogger()
        self.base_url = config.get("base_url", "https://api.openai.com/v1").rstrip("/")
        self.timeout = float(config.get("timeout", 30))
        self.api_key = self._resolve_key(config)
        self.assistant_id = self._resolve_assistant_id(config)

    def _resolve_key(self, config: Dict[str, Any]) -> Optional[str]:
        env_var = config.get("key_env", "OPENAI_API_KEY")
        key = os.environ.get(env_var) if env_var else None
        if key:
            return key.strip()
        file_name = config.get("key_file")
        if not file_name:
            return None
        key_path = Path(file_name).expanduser()
        if key_path.is_file():
            lines = key_path.read_text(encoding="utf-8").splitlines()
            return lines[0].strip() if lines and lines[0].strip() else None
        return None

    def _resolve_assistant_id(self, config: Dict[str, Any]) -> Optional[str]:
        env_var = config.get("assistant_id_env", "ASSISTANT_ID")
        value = os.environ.get(env_var) if env_var else None
        if value:
            return value.strip()
        return config.get("assistant_id") or None

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
            "OpenAI-Beta": "assistants=v2",
        }

    def _request(self, method: str, path: str, payload=None, query=None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        if query:
            url = f"{url}?{urllib.parse.urlencode(query)}"
        data = json.dumps(payload).encode("utf-8") if payload is not None else None
        req = urllib.request.Request(url, data=data, headers=self._headers(), method=method)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                raw = response.read()
        except urllib.error.HTTPError as exc:
            detail = _http_error_detail(exc)
            self.logger.log("assistant_request_failed", path=path, status=exc.code, reason=detail)
            raise AssistantServiceError(f"HTTP {exc.code}: {detail}") from exc
        except (urllib.error.URLError, http.client.HTTPException, OSError) as exc:
            # IncompleteRead and friends can stringify to an empty reason
            reason = str(getattr(exc, "reason", None) or exc) or type(exc).__name__
            self.logger.log("assistant_request_failed", path=path, reason=reason)
            raise AssistantServiceError(f"Connection failed: {reason}") from exc
        try:
            # UnicodeDecodeError is a ValueError as well
            body = json.loads(raw.decode("utf-8"))
        except ValueError as exc:
            self.logger.log("assistant_request_failed", path=path, reason="invalid_json")
            raise ResponseFormatError("Assistant service returned invalid JSON") from exc
        if not isinstance(body, dict):
            raise ResponseFormatError("Assistant service returned an unexpected payload")
        return body

    def _require_credentials(self):
        if not self.api_key:
            raise AssistantConfigurationError("No API key configured")
        if not self.assistant_id:
            raise AssistantConfigurationError("No assistant id configured")

    def create_context(self) -> ConversationContext:
        self._require_credentials()
        body = self._request("POST", "/threads", {})
        return ConversationContext(id=_require_str(body, "id"))

    def post_message(self, context: ConversationContext, text: str) -> None:
        self._request("POST", f"/threads/{context.id}/messages", {"role": "user", "content": text})

    def start_run(self, context: ConversationContext) -> str:
        self._require_credentials()
        body = self._request("POST", f"/threads/{context.id}/runs", {"assistant_id": self.assistant_id})
        return _require_str(body, "id")

    def run_status(self, context: ConversationContext, run_id: str) -> RunStatus:
        body = self._request("GET", f"/threads/{context.id}/runs/{run_id}")
        return RunStatus.from_api(_require_str(body, "status"))

    def latest_messages(self, context: ConversationContext, limit: int = 1) -> List[AssistantMessage]:
        """Newest first, as returned by ``order=desc``."""
        body = self._request("GET", f"/threads/{context.id}/messages", query={"order": "desc", "limit": limit})
        data = body.get("data")
        if not isinstance(data, list):
            raise ResponseFormatError("Message list is missing from the response")
        return [_parse_message(item) for item in data if isinstance(item, dict)]


class AssistantQueryPipeline:
    """Sends one question at a time and renders either the reply or one error line."""

    def __init__(self, client, output, config=None, logger=None):
        config = config or {}
        self.client = client
        self.output = output
        self.logger = logger or _NullLogger()
        self.poll_interval = float(config.get("poll_interval", 1.0))
        self.max_poll_attempts = int(config.get("max_poll_attempts", 50))
        self.wrap_width = int(config.get("wrap_width", WRAP_WIDTH))
        self.context = None

    @property
    def available(self):
        return self.context is not None

    def initialize(self):
        try:
            self.context = self.client.create_context()
        except Exception as exc:
            self.context = None
            self.logger.log("context_failed", reason=str(exc) or repr(exc))
            self.output.write(INIT_ERROR_LINE, "error")
            return False
        self.logger.log("context_created", context=self.context.id)
        return True

    def query(self, text):
        if self.context is None:
            self.output.write(NOT_INITIALIZED_LINE, "error")
            return None
        self.output.write(PROCESSING_LINE, "dim")
        self.logger.log("query_start", context=self.context.id, length=len(text))
        try:
            self.client.post_message(self.context, text)
            run_id = self.client.start_run(self.context)
            self.poll_run(run_id)
            reply = self.fetch_reply()
        except AssistantServiceError as exc:
            self.logger.log("query_failed", reason=str(exc))
            self.output.write(f"Error processing query: {exc}\n", "error")
            return None
        except Exception as exc:
            self.logger.log("query_failed", reason=repr(exc))
            self.output.write(f"Error processing query: {str(exc) or type(exc).__name__}\n", "error")
            return None
        formatted = format_response(reply, self.wrap_width)
        self.output.write_markup(formatted + "\n")
        self.logger.log("query_complete", context=self.context.id, length=len(reply))
        return formatted

    def poll_run(self, run_id):
        for attempt in range(1, self.max_poll_attempts + 1):
            status = self.client.run_status(self.context, run_id)
            self.logger.log("run_status", run=run_id, status=status.value, attempt=attempt)
            if status is RunStatus.COMPLETED:
                return status
            if status.is_failure:
                raise RunFailedError(status)
            if attempt < self.max_poll_attempts:
                time.sleep(self.poll_interval)
        raise RunTimeoutError(self.max_poll_attempts)

    def fetch_reply(self):
        messages = self.client.latest_messages(self.context, limit=1)
        if not messages:
            raise ResponseFormatError("No assistant reply found")
        latest = messages[0]
        if latest.role != "assistant" or latest.text is None:
            raise ResponseFormatError("No assistant reply found")
        return latest.text


def _require_str(body, key):
    value = body.get(key)
    if not isinstance(value, str) or not value:
        raise ResponseFormatError(f"Response is missing '{key}'")
    return value


def _parse_message(item):
    text = None
    content = item.get("content")
    if not isinstance(content, list):
        content = []
    for part in content:
        if isinstance(part, dict) and part.get("type") == "text":
            body = part.get("text")
            value = body.get("value") if isinstance(body, dict) else None
            if isinstance(value, str):
                text = value
                break
    return AssistantMessage(role=str(item.get("role", "")), text=text)


def _http_error_detail(exc):
    try:
        payload = json.loads(exc.read().decode("utf-8"))
    except (ValueError, OSError, AttributeError):
        payload = None
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return str(exc.reason)


class _NullLogger:
    def log(self, *args, **kwargs) -> None:
        return
