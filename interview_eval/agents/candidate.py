"""
Candidate agent for simulated interviews.
"""

from typing import List, Optional

from interview_eval.agents import prompts
from interview_eval.agents.base import AgentRole, BaseAgent, ChatBackend, Message, StreamCallback
from interview_eval.agents.interviewer import DEFAULT_AGENT_MODEL
from interview_eval.schema import ConversationMessage, InterviewContext
from interview_eval.utils.error_handlers import InvalidInputError


class CandidateAgent(BaseAgent):
    """Answers interviewer questions in character, based on the resume."""

    def __init__(self, backend: ChatBackend, model: Optional[str] = DEFAULT_AGENT_MODEL):
        super().__init__(backend, name="Candidate", role=AgentRole.CANDIDATE, model=model)

    def _build_messages(self, history: List[ConversationMessage]) -> List[Message]:
        if not history:
            raise InvalidInputError("Candidate cannot answer before the first question")
        return [
            {"role": "assistant" if message.role == AgentRole.CANDIDATE.value else "user", "content": message.content}
            for message in history
        ]

    @staticmethod
    def _system_prompt(context: InterviewContext) -> str:
        return prompts.candidate_prompt(context.resume, context.jd, context.transcript)

    async def generate_answer(self, context: InterviewContext, history: List[ConversationMessage]) -> str:
        return await self.generate(self._build_messages(history), self._system_prompt(context))

    async def generate_answer_streaming(
        self,
        context: InterviewContext,
        history: List[ConversationMessage],
        on_chunk: StreamCallback,
    ) -> str:
        return await self.generate_streaming(self._build_messages(history), self._system_prompt(context), on_chunk)
