"""
Evaluator agent: topic segmentation and six-dimension capability scoring.
"""

from datetime import date
from typing import List, Optional, Type, TypeVar, Union

from loguru import logger
from pydantic import BaseModel, ValidationError

from interview_eval.agents import prompts
from interview_eval.agents.base import AgentRole, BaseAgent, ChatBackend
from interview_eval.evaluation.json_cleanup import parse_json_response
from interview_eval.schema import (
    ConversationMessage,
    EvaluationResult,
    InterviewContext,
    TopicAnalysisResult,
    Transcript,
)
from interview_eval.utils.error_handlers import InvalidInputError, InvalidResultError, ResponseParseError

DEFAULT_EVALUATOR_MODEL = "deepseek-chat"

ResultT = TypeVar("ResultT", bound=BaseModel)


def format_transcript(transcript: Transcript) -> str:
    """Render a transcript as prompt text; list transcripts become ``ROLE: content`` lines."""
    if isinstance(transcript, str):
        return transcript
    return "\n".join(f"{_role_of(message).upper()}: {_content_of(message)}" for message in transcript)


def _role_of(message: Union[ConversationMessage, dict]) -> str:
    return message["role"] if isinstance(message, dict) else str(message.role)


def _content_of(message: Union[ConversationMessage, dict]) -> str:
    return message["content"] if isinstance(message, dict) else message.content


class EvaluatorAgent(BaseAgent):
    """
    Runs the two evaluation calls against the backend.

    Both methods send a single user message and validate the JSON answer
    into the result model. Transport errors from the backend propagate
    unchanged; unusable answers raise ``ResponseParseError`` (not JSON) or
    ``InvalidResultError`` (JSON of the wrong shape).
    """

    def __init__(self, backend: ChatBackend, model: Optional[str] = DEFAULT_EVALUATOR_MODEL):
        super().__init__(backend, name="Evaluator", role=AgentRole.EVALUATOR, model=model)

    @staticmethod
    def _today() -> str:
        return date.today().isoformat()

    async def analyze_topics(self, transcript: Transcript, context: InterviewContext) -> TopicAnalysisResult:
        transcript_text = self._require_transcript(transcript)
        messages = [{"role": "user", "content": prompts.topic_analysis_request(transcript_text)}]

        response = await self.generate(messages, prompts.topic_analysis_prompt(self._today()))
        result = self._parse_result(response, TopicAnalysisResult)
        logger.info(f"[{self.name}] topic analysis: {len(result.topics)} topics")
        return result

    async def evaluate_interview(
        self,
        transcript: Transcript,
        context: InterviewContext,
        stage: str = "1",
        previous_summary: Optional[str] = None,
    ) -> EvaluationResult:
        """
        Score the candidate on the six dimensions.

        For a second-round interview (``stage == "2"``) the first round's
        summary is prepended to the request when given.
        """
        transcript_text = self._require_transcript(transcript)
        content = prompts.evaluation_request(
            transcript_text, context.jd, context.resume, stage=stage, previous_summary=previous_summary
        )

        response = await self.generate(
            [{"role": "user", "content": content}], prompts.evaluation_prompt(self._today())
        )
        result = self._parse_result(response, EvaluationResult)
        logger.info(
            f"[{self.name}] evaluation for {result.candidate_name}: "
            f"{result.overall_rating} ({result.hiring_recommendation})"
        )
        return result

    format_transcript = staticmethod(format_transcript)

    def _require_transcript(self, transcript: Transcript) -> str:
        text = format_transcript(transcript)
        if not text.strip():
            raise InvalidInputError(f"{self.name}: transcript is empty")
        return text

    def _parse_result(self, response: str, model: Type[ResultT]) -> ResultT:
        outcome = parse_json_response(response, source=self.name)
        if isinstance(outcome, ResponseParseError):
            logger.error(f"[{self.name}] unparseable answer: {outcome.message}")
            logger.debug(f"[{self.name}] raw answer: {outcome.raw[:500]}")
            raise outcome

        try:
            return model.model_validate(outcome.data)
        except ValidationError as e:
            logger.error(f"[{self.name}] answer does not match {model.__name__}: {e.error_count()} errors")
            raise InvalidResultError(
                f"Invalid {model.__name__} from {self.name}: {_summarize(e)}",
                raw=outcome.raw,
                cleaned=outcome.cleaned,
            ) from e


def _summarize(error: ValidationError) -> str:
    parts: List[str] = []
    for item in error.errors()[:5]:
        location = ".".join(str(part) for part in item["loc"])
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)
