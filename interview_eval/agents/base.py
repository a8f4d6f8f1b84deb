"""
Agent base - the single seam between the pipeline and the text-generation backend.

Every agent (interviewer, candidate, evaluator) exposes the same
``generate(messages, system_prompt)`` capability. Higher layers depend on
that capability only, never on a concrete backend or agent class.
"""

from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol

from loguru import logger

from interview_eval.utils.error_handlers import InvalidInputError

StreamCallback = Callable[[str, bool], None]
Message = Dict[str, str]


class AgentRole(str, Enum):
    INTERVIEWER = "interviewer"
    CANDIDATE = "candidate"
    EVALUATOR = "evaluator"


class ChatBackend(Protocol):
    """Text-generation service (see ``ChatClient``)."""

    async def complete(
        self, messages: List[Message], system_prompt: str, model: Optional[str] = None
    ) -> str: ...

    async def complete_streaming(
        self,
        messages: List[Message],
        system_prompt: str,
        on_chunk: StreamCallback,
        model: Optional[str] = None,
    ) -> str: ...


class Agent(Protocol):
    name: str
    role: AgentRole

    async def generate(self, messages: List[Message], system_prompt: str) -> str: ...


class BaseAgent:
    """
    Wraps a ChatBackend call for one agent role.

    Messages use ``interviewer``/``candidate`` or plain chat roles; they are
    mapped to ``assistant``/``user`` before reaching the backend. Retry and
    timeout belong to the backend; errors propagate unchanged.
    """

    role_mapping = {
        "system": "system",
        "user": "user",
        "assistant": "assistant",
        "interviewer": "assistant",
        "candidate": "user",
    }

    def __init__(self, backend: ChatBackend, name: str, role: AgentRole, model: Optional[str] = None):
        self.backend = backend
        self.name = name
        self.role = role
        self.model = model

    def _validate_messages(self, messages: List[Message]) -> None:
        for index, message in enumerate(messages):
            role = message.get("role")
            content = message.get("content")
            if not role or not isinstance(content, str) or not content.strip():
                raise InvalidInputError(f"{self.name}: invalid message at position {index}")
            if role not in self.role_mapping:
                raise InvalidInputError(f"{self.name}: unknown message role '{role}'")

    def _to_api_messages(self, messages: List[Message]) -> List[Message]:
        return [
            {"role": self.role_mapping[message["role"]], "content": message["content"]}
            for message in messages
        ]

    async def generate(self, messages: List[Message], system_prompt: str) -> str:
        """Send the conversation to the backend and return the reply text."""
        self._validate_messages(messages)
        logger.debug(f"[{self.name}] request with {len(messages)} messages")
        reply = await self.backend.complete(self._to_api_messages(messages), system_prompt, model=self.model)
        logger.debug(f"[{self.name}] reply of {len(reply)} chars")
        return reply

    generate_response = generate

    async def generate_streaming(
        self, messages: List[Message], system_prompt: str, on_chunk: StreamCallback
    ) -> str:
        """
        Stream the reply through ``on_chunk(content, is_complete)``.

        The last callback has ``is_complete=True``. Returns the full text.
        """
        self._validate_messages(messages)
        logger.debug(f"[{self.name}] streaming request with {len(messages)} messages")
        return await self.backend.complete_streaming(
            self._to_api_messages(messages), system_prompt, on_chunk, model=self.model
        )

    def get_info(self) -> Dict[str, Optional[str]]:
        return {"name": self.name, "role": self.role.value, "model": self.model}
