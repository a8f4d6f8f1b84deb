"""
HTTP client for the chat-completion backend.

POST ``{base_url}{chat_path}`` with ``{"model", "messages", "stream"}``; the
API key travels in the ``X-API-Key`` header. Plain answers carry the text in
``output.content`` (a string, or ``{"text", "reasoning"}``); streamed answers
are newline-delimited JSON objects with ``delta.content`` and a final
``finish_reason``/``usage`` record.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional

import aiohttp
from loguru import logger

from interview_eval.utils.error_handlers import BackendError, api_retry_handler

Message = Dict[str, str]

STATUS_MESSAGES = {
    401: "API Key无效或未配置，请检查API Key设置",
    403: "API访问被拒绝，请检查API Key权限",
    429: "API请求频率超限，请稍后重试",
}
SERVER_ERROR_MESSAGE = "API服务暂时不可用，请稍后重试"


class ChatClient:
    """
    Async client implementing the ``ChatBackend`` protocol.

    One ``aiohttp.ClientSession`` is created lazily and reused; call
    ``close()`` when done.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        chat_path: str = "/menglong/chat",
        api_key: Optional[str] = None,
        model: str = "deepseek-chat",
        timeout: float = 120.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.chat_path = chat_path
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

        self.session: Optional[aiohttp.ClientSession] = None

        self.total_requests = 0
        self.total_tokens_used = 0

        logger.info(f"Chat client initialized. Backend: {self.base_url}, default model: {self.model}")

    @property
    def chat_url(self) -> str:
        return f"{self.base_url}{self.chat_path}"

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return headers

    async def _ensure_session(self):
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )

    def _payload(self, messages: List[Message], system_prompt: str, model: Optional[str], stream: bool) -> Dict[str, Any]:
        api_messages: List[Message] = []
        if system_prompt:
            api_messages.append({"role": "system", "content": system_prompt})
        api_messages.extend({"role": m["role"], "content": m["content"]} for m in messages)
        return {"model": model or self.model, "messages": api_messages, "stream": stream}

    async def _raise_for_status(self, response: aiohttp.ClientResponse) -> None:
        if response.status == 200:
            return

        detail = await response.text()
        try:
            detail = json.loads(detail).get("detail", detail)
        except (json.JSONDecodeError, AttributeError):
            pass

        status = response.status
        if status in STATUS_MESSAGES:
            message = STATUS_MESSAGES[status]
        elif status >= 500:
            message = SERVER_ERROR_MESSAGE
        else:
            message = f"API错误: {detail or status}"

        retryable = status == 429 or status >= 500
        raise BackendError(message, status=status, recoverable=retryable)

    @staticmethod
    def _extract_content(result: Dict[str, Any]) -> str:
        content = (result.get("output") or {}).get("content")
        if not content:
            raise BackendError("API响应中没有内容", recoverable=True)

        if isinstance(content, str):
            return content
        if isinstance(content, dict):
            if "text" in content:
                if content.get("reasoning"):
                    logger.debug(f"Model reasoning: {content['reasoning']}")
                return str(content["text"])
            return json.dumps(content, ensure_ascii=False)
        return str(content)

    @api_retry_handler()
    async def complete(self, messages: List[Message], system_prompt: str, model: Optional[str] = None) -> str:
        """Send one chat request and return the answer text."""
        await self._ensure_session()
        payload = self._payload(messages, system_prompt, model, stream=False)
        logger.debug(f"Sending chat request. Model: {payload['model']}, messages: {len(payload['messages'])}")

        try:
            async with self.session.post(self.chat_url, json=payload) as response:
                await self._raise_for_status(response)
                result = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise BackendError(f"Backend unreachable: {e}", recoverable=True) from e
        except asyncio.TimeoutError as e:
            raise BackendError(f"Backend timed out after {self.timeout}s", recoverable=True) from e

        self.total_requests += 1
        usage = result.get("usage") or {}
        self.total_tokens_used += usage.get("total_tokens", 0) or 0

        content = self._extract_content(result)
        logger.info(f"Chat answer received ({len(content)} chars)")
        return content

    async def complete_streaming(
        self,
        messages: List[Message],
        system_prompt: str,
        on_chunk,
        model: Optional[str] = None,
    ) -> str:
        """
        Stream the answer through ``on_chunk(content, is_complete)``.

        Not retried: chunks already delivered to the caller cannot be taken
        back. Returns the concatenated text.
        """
        await self._ensure_session()
        payload = self._payload(messages, system_prompt, model, stream=True)
        parts: List[str] = []

        try:
            async with self.session.post(self.chat_url, json=payload) as response:
                await self._raise_for_status(response)
                async for line in response.content:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        logger.warning(f"Skipping malformed stream chunk: {line[:80]!r}")
                        continue

                    delta = (data.get("delta") or {}).get("content")
                    if delta:
                        parts.append(delta)
                        on_chunk(delta, False)
                    if data.get("finish_reason"):
                        usage = data.get("usage") or {}
                        self.total_tokens_used += usage.get("total_tokens", 0) or 0
                        break
        except aiohttp.ClientError as e:
            raise BackendError(f"Backend unreachable: {e}", recoverable=True) from e
        except asyncio.TimeoutError as e:
            raise BackendError(f"Backend timed out after {self.timeout}s", recoverable=True) from e

        self.total_requests += 1
        on_chunk("", True)
        return "".join(parts)

    async def test_connection(self) -> bool:
        """Ask the backend a trivial question; True when a non-empty answer comes back."""
        try:
            logger.info("Testing backend connection...")
            response = await self.complete([{"role": "user", "content": "1+1=?"}], system_prompt="")
        except BackendError as e:
            logger.error(f"❌ Backend connection failed: {e}")
            return False

        if response and response.strip():
            logger.info("✅ Backend connection OK")
            return True
        logger.warning(f"Backend returned an empty answer: {response!r}")
        return False

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "total_tokens_used": self.total_tokens_used,
            "model": self.model,
            "base_url": self.base_url,
        }

    async def close(self):
        if self.session and not self.session.closed:
            await self.session.close()
