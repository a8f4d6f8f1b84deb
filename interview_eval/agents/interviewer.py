"""
Interviewer agent for simulated interviews.
"""

from typing import List, Optional

from interview_eval.agents import prompts
from interview_eval.agents.base import AgentRole, BaseAgent, ChatBackend, Message, StreamCallback
from interview_eval.schema import ConversationMessage, InterviewContext

DEFAULT_AGENT_MODEL = "global.anthropic.claude-sonnet-4-5-20250929-v1:0"

END_SIGNAL = prompts.END_SIGNAL


class InterviewerAgent(BaseAgent):
    """Asks one question per turn and emits ``END_SIGNAL`` when the interview is done."""

    END_SIGNAL = END_SIGNAL

    def __init__(self, backend: ChatBackend, model: Optional[str] = DEFAULT_AGENT_MODEL):
        super().__init__(backend, name="Interviewer", role=AgentRole.INTERVIEWER, model=model)

    def _build_messages(self, history: List[ConversationMessage]) -> List[Message]:
        # Own questions are the assistant side, candidate answers the user side
        messages = [
            {"role": "assistant" if message.role == AgentRole.INTERVIEWER.value else "user", "content": message.content}
            for message in history
        ]
        if not messages:
            messages.append({"role": "user", "content": prompts.INTERVIEW_START_MESSAGE})
        return messages

    @staticmethod
    def _system_prompt(context: InterviewContext) -> str:
        return prompts.interviewer_prompt(context.jd, context.resume, context.transcript)

    async def generate_question(self, context: InterviewContext, history: List[ConversationMessage]) -> str:
        return await self.generate(self._build_messages(history), self._system_prompt(context))

    async def generate_question_streaming(
        self,
        context: InterviewContext,
        history: List[ConversationMessage],
        on_chunk: StreamCallback,
    ) -> str:
        return await self.generate_streaming(self._build_messages(history), self._system_prompt(context), on_chunk)

    def is_end_signal(self, response) -> bool:
        return self.END_SIGNAL in str(response)
