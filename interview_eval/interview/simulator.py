"""
Simulated interviews between an interviewer agent and a candidate agent.

The interviewer asks one question per turn and the candidate answers it,
until ``max_turns`` is reached, the interviewer emits ``END_SIGNAL`` or
``stop()`` is called.
"""

from datetime import datetime
from typing import Awaitable, Callable, List, Optional

from loguru import logger

from interview_eval.agents.base import StreamCallback
from interview_eval.agents.candidate import CandidateAgent
from interview_eval.agents.interviewer import InterviewerAgent
from interview_eval.schema import (
    ConversationMessage,
    InterviewContext,
    InterviewMetadata,
    InterviewResult,
    InterviewStatus,
    SimulationConfig,
    SpeakerRole,
)
from interview_eval.utils.error_handlers import ConcurrentRunError, EvaluationPipelineError
from interview_eval.utils.ids import generate_id

MessageCallback = Callable[[ConversationMessage], None]
StatusCallback = Callable[[str], None]
ProgressCallback = Callable[[int, int], None]

AUTO_SAVE_TAG = "auto-saved"
UNKNOWN_CANDIDATE = "Unknown Candidate"
UNKNOWN_POSITION = "Unknown Position"


def extract_candidate_name(resume: str) -> str:
    """First short line of the resume that is not a title line."""
    for line in resume.split("\n")[:5]:
        line = line.strip()
        if line and "简历" not in line and "Resume" not in line and len(line) < 20:
            return line
    return UNKNOWN_CANDIDATE


def extract_position(jd: str) -> str:
    for line in jd.split("\n")[:10]:
        line = line.strip()
        if "职位" in line or "岗位" in line or "Position" in line:
            return line
    return UNKNOWN_POSITION


class InterviewSimulator:
    def __init__(self, interviewer: InterviewerAgent, candidate: CandidateAgent, history_service=None):
        self.interviewer = interviewer
        self.candidate = candidate
        self.history_service = history_service

        self.session_id = generate_id("sim")
        self.conversation: List[ConversationMessage] = []
        self.metadata: Optional[InterviewMetadata] = None
        self.is_running = False
        self._should_stop = False

    async def run(
        self,
        config: SimulationConfig,
        on_message: Optional[MessageCallback] = None,
        on_status_change: Optional[StatusCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> InterviewResult:
        with logger.contextualize(run=self.session_id):
            return await self._simulate(
                config,
                ask=self.interviewer.generate_question,
                answer=self.candidate.generate_answer,
                on_message=on_message,
                on_status_change=on_status_change,
                on_progress=on_progress,
            )

    async def run_streaming(
        self,
        config: SimulationConfig,
        on_interviewer_chunk: Optional[StreamCallback] = None,
        on_candidate_chunk: Optional[StreamCallback] = None,
        on_message: Optional[MessageCallback] = None,
        on_status_change: Optional[StatusCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> InterviewResult:
        """Same as ``run`` but forwards every streamed chunk as it arrives."""

        def passthrough(callback: Optional[StreamCallback]) -> StreamCallback:
            def on_chunk(content: str, is_complete: bool) -> None:
                if callback is not None:
                    callback(content, is_complete)
            return on_chunk

        async def ask(context, history):
            return await self.interviewer.generate_question_streaming(
                context, history, passthrough(on_interviewer_chunk)
            )

        async def answer(context, history):
            return await self.candidate.generate_answer_streaming(context, history, passthrough(on_candidate_chunk))

        with logger.contextualize(run=self.session_id):
            return await self._simulate(
                config,
                ask=ask,
                answer=answer,
                on_message=on_message,
                on_status_change=on_status_change,
                on_progress=on_progress,
            )

    async def _simulate(
        self,
        config: SimulationConfig,
        ask: Callable[[InterviewContext, List[ConversationMessage]], Awaitable[str]],
        answer: Callable[[InterviewContext, List[ConversationMessage]], Awaitable[str]],
        on_message: Optional[MessageCallback],
        on_status_change: Optional[StatusCallback],
        on_progress: Optional[ProgressCallback],
    ) -> InterviewResult:
        if self.is_running:
            raise ConcurrentRunError("Interview simulation is already running")

        self.is_running = True
        self._should_stop = False
        self.conversation = []
        self.metadata = InterviewMetadata(
            candidate_name=extract_candidate_name(config.resume),
            position=extract_position(config.jd),
            config=config,
        )

        def set_status(status: str) -> None:
            logger.debug(f"Simulation {self.session_id}: {status}")
            if on_status_change is not None:
                on_status_change(status)

        def add_message(role: SpeakerRole, content: str, turn: int) -> None:
            message = ConversationMessage(role=role, content=content, turn=turn)
            self.conversation.append(message)
            if on_message is not None:
                on_message(message)

        try:
            set_status("starting")
            context = InterviewContext(jd=config.jd, resume=config.resume, transcript=config.transcript)
            logger.info(
                f"Simulation {self.session_id} started: {self.metadata.candidate_name} / {self.metadata.position}"
            )

            set_status("running")
            for turn in range(1, config.max_turns + 1):
                if self._should_stop:
                    break
                if on_progress is not None:
                    on_progress(turn, config.max_turns)

                question = await ask(context, self.conversation)
                if self.interviewer.is_end_signal(question):
                    self.metadata.ended_by_interviewer = True
                    closing = question.replace(InterviewerAgent.END_SIGNAL, "").strip()
                    if closing:
                        add_message(SpeakerRole.INTERVIEWER, closing, turn)
                    logger.info(f"Simulation {self.session_id} ended by interviewer at turn {turn}")
                    break
                add_message(SpeakerRole.INTERVIEWER, question, turn)

                if self._should_stop:
                    break

                reply = await answer(context, self.conversation)
                add_message(SpeakerRole.CANDIDATE, reply, turn)
                self.metadata.total_turns = turn

            self.metadata.end_time = datetime.now()
            set_status("completed")
            result = self._build_result(InterviewStatus.COMPLETED)
            save_error = await self._auto_save(result)
            if save_error:
                result = result.model_copy(update={"error": save_error})
            return result

        except Exception as e:
            self.metadata.end_time = datetime.now()
            message = getattr(e, "message", None) or str(e)
            logger.error(f"Simulation {self.session_id} failed: {message}")
            set_status("error")
            return self._build_result(InterviewStatus.ERROR, error=message)

        finally:
            self.is_running = False

    def stop(self) -> None:
        """Stop after the agent call currently in flight."""
        self._should_stop = True

    def get_conversation(self) -> List[ConversationMessage]:
        return list(self.conversation)

    def _build_result(self, status: InterviewStatus, error: Optional[str] = None) -> InterviewResult:
        return InterviewResult(
            session_id=self.session_id,
            messages=list(self.conversation),
            metadata=self.metadata.model_copy(),
            status=status,
            error=error,
        )

    async def _auto_save(self, result: InterviewResult) -> Optional[str]:
        """Save a completed run to history; returns the failure message if the save failed."""
        if self.history_service is None:
            return None
        try:
            record_id = await self.history_service.save_to_history(interview_result=result, tags=[AUTO_SAVE_TAG])
        except EvaluationPipelineError as e:
            logger.error(f"Failed to auto-save simulation {self.session_id}: {e}")
            return f"自动保存失败: {e.message}"
        logger.info(f"Simulation {self.session_id} saved to history as {record_id}")
        return None
