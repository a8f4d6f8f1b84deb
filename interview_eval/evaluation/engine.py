"""
Evaluation engine.

Drives the evaluator through topic analysis and capability evaluation,
validates what comes back and derives summaries, confidence levels and
follow-up suggestions from the results.
"""

from typing import Callable, List, Optional, Protocol, Union

from loguru import logger

from interview_eval.schema import (
    AnalysisResult,
    AnalysisStatus,
    BatchItemResult,
    CapabilityInsights,
    ComprehensiveReport,
    ConfidenceLevels,
    ConversationMessage,
    DimensionSnapshot,
    EvaluationItem,
    EvaluationResult,
    EvaluationStep,
    FollowUpSuggestion,
    InterviewContext,
    TopicAnalysisResult,
    TopicInsights,
    Transcript,
    TranscriptMetadata,
)
from interview_eval.utils.concurrency import run_bounded
from interview_eval.utils.error_handlers import ConcurrentRunError, InvalidInputError, InvalidResultError
from interview_eval.utils.export import format_number
from interview_eval.utils.ids import generate_id

StatusCallback = Callable[[str], None]
ProgressCallback = Callable[[str, int], None]
ItemCallback = Callable[[int, int, BatchItemResult], None]

TOPIC_STEP = "topic_analysis"
CAPABILITY_STEP = "capability_evaluation"

HIGH_CONFIDENCE = 80
MEDIUM_CONFIDENCE = 60
FOLLOW_UP_CONFIDENCE = 70


class TranscriptEvaluator(Protocol):
    """What the engine needs from an evaluator agent."""

    async def analyze_topics(self, transcript: Transcript, context: InterviewContext) -> TopicAnalysisResult: ...

    async def evaluate_interview(
        self,
        transcript: Transcript,
        context: InterviewContext,
        stage: str = "1",
        previous_summary: Optional[str] = None,
    ) -> EvaluationResult: ...


def _notify(callback: Optional[Callable], *args) -> None:
    if callback is not None:
        callback(*args)


def validate_transcript(transcript: Transcript) -> None:
    """Reject empty transcripts and messages without role or content."""
    if isinstance(transcript, str):
        if not transcript.strip():
            raise InvalidInputError("Invalid transcript format: transcript is empty")
        return

    if not isinstance(transcript, list) or not transcript:
        raise InvalidInputError("Invalid transcript format: no messages")
    for index, message in enumerate(transcript):
        role = message.get("role") if isinstance(message, dict) else message.role
        content = message.get("content") if isinstance(message, dict) else message.content
        if not role or not content:
            raise InvalidInputError(f"Invalid transcript format: message {index} has no role or content")


def validate_topic_analysis(result: TopicAnalysisResult) -> None:
    problems = []
    if not result.analysis_date.strip():
        problems.append("analysis_date is empty")
    if not result.topics:
        problems.append("no topics")
    for index, topic in enumerate(result.topics):
        if not topic.topic_name.strip():
            problems.append(f"topic {index} has no name")
        if not topic.summary.strip():
            problems.append(f"topic {index} has no summary")
    if not result.overall_summary.strip():
        problems.append("overall_summary is empty")

    if problems:
        raise InvalidResultError(f"Invalid topic analysis result structure: {'; '.join(problems)}")


def validate_evaluation(result: EvaluationResult) -> None:
    problems = [
        f"{field} is empty"
        for field in ("candidate_name", "position", "evaluation_date", "summary", "hiring_recommendation")
        if not str(getattr(result, field)).strip()
    ]
    problems.extend(
        f"dimension {name} has no assessment"
        for name, dimension in result.dimensions.items()
        if not dimension.assessment.strip()
    )

    if problems:
        raise InvalidResultError(f"Invalid evaluation result structure: {'; '.join(problems)}")


def format_topics_for_evaluation(topic_analysis: TopicAnalysisResult) -> str:
    """Render a topic analysis as ``## 主题:`` sections for the evaluation prompt."""
    sections = []
    for topic in topic_analysis.topics:
        lines = [f"## 主题: {topic.topic_name}"]
        for message in topic.dialogue:
            sender = message.name or message.role
            timestamp = f" ({message.timestamp})" if message.timestamp else ""
            lines.append(f"{sender}{timestamp}: {message.content}")
        sections.append("\n".join(lines) + "\n\n\n")
    return "".join(sections)


class EvaluationEngine:
    """
    Topic analysis and capability evaluation for one interview at a time.

    ``evaluate_interview`` and ``batch_evaluate`` hold a per-instance run
    guard; a second call while one is active raises ``ConcurrentRunError``.
    The single-step methods do not take the guard.
    """

    def __init__(self, evaluator: TranscriptEvaluator, process_id: Optional[str] = None):
        self.evaluator = evaluator
        self.process_id = process_id or generate_id("eval")
        self.is_running = False

    def _acquire(self) -> None:
        if self.is_running:
            raise ConcurrentRunError("Evaluation is already running")
        self.is_running = True

    async def evaluate_interview(
        self,
        transcript: Transcript,
        context: InterviewContext,
        step: Union[EvaluationStep, str] = EvaluationStep.ALL,
        stage: str = "1",
        previous_summary: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_status_change: Optional[StatusCallback] = None,
    ) -> AnalysisResult:
        """
        Run the requested step(s) and return the combined result.

        With ``step='all'`` the evaluation is fed the topic-segmented
        transcript instead of the raw one.
        """
        self._acquire()
        try:
            return await self._run(transcript, context, step, stage, previous_summary, on_progress, on_status_change)
        finally:
            self.is_running = False

    async def _run(
        self,
        transcript: Transcript,
        context: InterviewContext,
        step: Union[EvaluationStep, str],
        stage: str,
        previous_summary: Optional[str],
        on_progress: Optional[ProgressCallback],
        on_status_change: Optional[StatusCallback],
    ) -> AnalysisResult:
        step = EvaluationStep(step)
        _notify(on_status_change, "starting")
        try:
            validate_transcript(transcript)

            topic_analysis: Optional[TopicAnalysisResult] = None
            evaluation: Optional[EvaluationResult] = None

            if step in (EvaluationStep.ALL, EvaluationStep.TOPIC):
                _notify(on_status_change, "analyzing_topics")
                _notify(on_progress, TOPIC_STEP, 0)
                logger.info("Running topic analysis...")
                topic_analysis = await self.evaluator.analyze_topics(transcript, context)
                validate_topic_analysis(topic_analysis)
                _notify(on_progress, TOPIC_STEP, 100)
                logger.info(f"Topic analysis completed with {len(topic_analysis.topics)} topics")

            if step in (EvaluationStep.ALL, EvaluationStep.REPORT):
                _notify(on_status_change, "evaluating_capabilities")
                _notify(on_progress, CAPABILITY_STEP, 0)
                logger.info("Running capability evaluation...")
                evaluation_input = format_topics_for_evaluation(topic_analysis) if topic_analysis else transcript
                evaluation = await self.evaluator.evaluate_interview(
                    evaluation_input, context, stage, previous_summary
                )
                validate_evaluation(evaluation)
                _notify(on_progress, CAPABILITY_STEP, 100)
                logger.info(f"Capability evaluation completed for {evaluation.candidate_name}")
        except Exception as e:
            _notify(on_status_change, "error")
            logger.error(f"Evaluation error: {e}")
            raise

        _notify(on_status_change, "completed")
        return AnalysisResult(
            process_id=self.process_id,
            status=AnalysisStatus.COMPLETED,
            topic_analysis=topic_analysis,
            evaluation=evaluation,
        )

    async def analyze_topics(
        self,
        transcript: Transcript,
        context: InterviewContext,
        on_progress: Optional[ProgressCallback] = None,
        on_status_change: Optional[StatusCallback] = None,
    ) -> TopicAnalysisResult:
        _notify(on_status_change, "analyzing_topics")
        _notify(on_progress, TOPIC_STEP, 0)
        try:
            validate_transcript(transcript)
            result = await self.evaluator.analyze_topics(transcript, context)
            validate_topic_analysis(result)
        except Exception as e:
            _notify(on_status_change, "error")
            logger.error(f"Topic analysis error: {e}")
            raise

        _notify(on_progress, TOPIC_STEP, 100)
        _notify(on_status_change, "completed")
        logger.info(f"Topic analysis completed with {len(result.topics)} topics")
        return result

    async def evaluate_capabilities(
        self,
        transcript: Transcript,
        context: InterviewContext,
        stage: str = "1",
        previous_summary: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_status_change: Optional[StatusCallback] = None,
    ) -> EvaluationResult:
        _notify(on_status_change, "evaluating_capabilities")
        _notify(on_progress, CAPABILITY_STEP, 0)
        try:
            validate_transcript(transcript)
            result = await self.evaluator.evaluate_interview(transcript, context, stage, previous_summary)
            validate_evaluation(result)
        except Exception as e:
            _notify(on_status_change, "error")
            logger.error(f"Capability evaluation error: {e}")
            raise

        _notify(on_progress, CAPABILITY_STEP, 100)
        _notify(on_status_change, "completed")
        logger.info(f"Capability evaluation completed for {result.candidate_name}")
        return result

    async def batch_evaluate(
        self,
        items: List[EvaluationItem],
        step: Union[EvaluationStep, str] = EvaluationStep.ALL,
        stage: str = "1",
        concurrency: int = 3,
        on_item_complete: Optional[ItemCallback] = None,
        on_status_change: Optional[StatusCallback] = None,
    ) -> List[BatchItemResult]:
        """
        Evaluate several transcripts with at most ``concurrency`` in flight.

        Item failures are captured in ``BatchItemResult.error``; results are
        returned in input order.
        """
        self._acquire()
        try:
            _notify(on_status_change, "batch_processing")
            return await self._batch(items, step, stage, concurrency, on_item_complete, on_status_change)
        finally:
            self.is_running = False

    async def _batch(
        self,
        items: List[EvaluationItem],
        step: Union[EvaluationStep, str],
        stage: str,
        concurrency: int,
        on_item_complete: Optional[ItemCallback],
        on_status_change: Optional[StatusCallback],
    ) -> List[BatchItemResult]:
        total = len(items)

        async def evaluate_item(index: int, item: EvaluationItem) -> BatchItemResult:
            try:
                analysis = await self._run(item.transcript, item.context, step, stage, None, None, None)
                result = BatchItemResult(
                    name=item.name,
                    topic_analysis=analysis.topic_analysis,
                    evaluation=analysis.evaluation,
                )
            except Exception as e:
                result = BatchItemResult(name=item.name, error=str(e))
            _notify(on_item_complete, index, total, result)
            return result

        results = await run_bounded(items, evaluate_item, concurrency=concurrency)
        _notify(on_status_change, "completed")
        return results

    def get_process_id(self) -> str:
        return self.process_id

    # --- derived views ---

    @staticmethod
    def extract_topic_insights(topic_analysis: TopicAnalysisResult) -> TopicInsights:
        topics = topic_analysis.topics
        return TopicInsights(
            total_topics=len(topics),
            topic_names=[topic.topic_name for topic in topics],
            key_insights=[point for topic in topics for point in topic.key_points],
            critical_info=[topic.critical_info for topic in topics if topic.critical_info.strip()],
            dialogue_count=sum(len(topic.dialogue) for topic in topics),
        )

    def generate_topic_summary(self, topic_analysis: TopicAnalysisResult) -> str:
        insights = self.extract_topic_insights(topic_analysis)
        return (
            "面试主题分析摘要：\n"
            f"- 总计 {insights.total_topics} 个主题\n"
            f"- 涵盖领域：{'、'.join(insights.topic_names)}\n"
            f"- 对话轮次：{insights.dialogue_count} 轮\n"
            f"- 关键洞察：{len(insights.key_insights)} 个要点\n"
            f"- 风险提示：{len(insights.critical_info)} 个关键信息点\n"
            "\n"
            f"整体评价：{topic_analysis.overall_summary}"
        )

    @staticmethod
    def extract_capability_insights(evaluation: EvaluationResult) -> CapabilityInsights:
        snapshots = [
            DimensionSnapshot(dimension=name, score=data.score, confidence=data.confidence_score)
            for name, data in evaluation.dimensions.items()
        ]
        count = len(snapshots) or 1
        return CapabilityInsights(
            average_score=round(sum(s.score for s in snapshots) / count, 2),
            average_confidence=round(sum(s.confidence for s in snapshots) / count, 2),
            top_strengths=evaluation.strengths[:3],
            top_weaknesses=evaluation.weaknesses[:3],
            dimension_scores=snapshots,
            follow_up_questions=len(evaluation.suggested_follow_up_questions),
            recommendation=evaluation.hiring_recommendation,
        )

    def generate_capability_summary(self, evaluation: EvaluationResult) -> str:
        insights = self.extract_capability_insights(evaluation)
        top_dimensions = "、".join(
            f"{d.dimension}({format_number(d.score)}分)"
            for d in sorted(insights.dimension_scores, key=lambda d: d.score, reverse=True)[:3]
        )
        low_confidence = [d.dimension for d in insights.dimension_scores if d.confidence < MEDIUM_CONFIDENCE]

        coverage = f"需要进一步了解的维度：{'、'.join(low_confidence)}" if low_confidence else "各维度信息较为充分"
        follow_up = (
            f"建议追问 {insights.follow_up_questions} 个问题" if insights.follow_up_questions > 0 else "无需额外追问"
        )

        return (
            "六维能力评估摘要：\n"
            f"候选人：{evaluation.candidate_name}\n"
            f"职位：{evaluation.position}\n"
            f"综合评分：{format_number(evaluation.overall_rating)}/100 "
            f"(置信度: {format_number(evaluation.overall_confidence)}/100)\n"
            "\n"
            f"优势维度：{top_dimensions}\n"
            f"主要优点：{'；'.join(insights.top_strengths)}\n"
            f"改进空间：{'；'.join(insights.top_weaknesses)}\n"
            "\n"
            f"{coverage}\n"
            f"{follow_up}\n"
            "\n"
            f"录用建议：{evaluation.hiring_recommendation}"
        )

    @staticmethod
    def calculate_confidence_levels(evaluation: EvaluationResult) -> ConfidenceLevels:
        levels = ConfidenceLevels()
        for name, data in evaluation.dimensions.items():
            if data.confidence_score >= HIGH_CONFIDENCE:
                levels.high.append(name)
            elif data.confidence_score >= MEDIUM_CONFIDENCE:
                levels.medium.append(name)
            else:
                levels.low.append(name)
        return levels

    @staticmethod
    def generate_follow_up_questions(evaluation: EvaluationResult) -> List[FollowUpSuggestion]:
        """Dimensions with low confidence or missing information, with the questions keyed to them."""
        suggestions = []
        for name, data in evaluation.dimensions.items():
            if data.confidence_score >= FOLLOW_UP_CONFIDENCE and not data.missing_info:
                continue
            suggestions.append(
                FollowUpSuggestion(
                    dimension=name,
                    confidence=data.confidence_score,
                    questions=[
                        question
                        for key, question in evaluation.suggested_follow_up_questions.items()
                        if name in key
                    ],
                    missing_info=data.missing_info,
                )
            )
        return suggestions

    def generate_comprehensive_report(
        self,
        topic_analysis: Optional[TopicAnalysisResult] = None,
        evaluation: Optional[EvaluationResult] = None,
    ) -> ComprehensiveReport:
        summary = "面试综合评估报告\n\n"
        recommendations: List[str] = []
        follow_up_actions: List[str] = []
        topic_insights = None
        capability_insights = None

        if topic_analysis:
            topic_insights = self.extract_topic_insights(topic_analysis)
            summary += self.generate_topic_summary(topic_analysis) + "\n\n"
            if topic_insights.critical_info:
                recommendations.append("关注面试中暴露的风险点")
                follow_up_actions.append("针对关键风险点进行深入追问")

        if evaluation:
            capability_insights = self.extract_capability_insights(evaluation)
            summary += self.generate_capability_summary(evaluation) + "\n\n"

            low = self.calculate_confidence_levels(evaluation).low
            if low:
                recommendations.append(f"进一步评估{'、'.join(low)}维度")
                follow_up_actions.append("安排针对性的二面或技术面试")

            if capability_insights.average_score >= 80:
                recommendations.append("候选人综合素质优秀，建议优先考虑")
            elif capability_insights.average_score >= 60:
                recommendations.append("候选人基本符合要求，可考虑录用")
            else:
                recommendations.append("候选人存在明显不足，建议谨慎考虑")

        if topic_insights and capability_insights:
            if topic_insights.total_topics < 3:
                follow_up_actions.append("面试覆盖面较窄，建议补充相关主题的深入交流")
            if capability_insights.average_confidence < FOLLOW_UP_CONFIDENCE:
                follow_up_actions.append("整体信息置信度偏低，建议进行补充面试")

        return ComprehensiveReport(
            summary=summary,
            topic_insights=topic_insights,
            capability_insights=capability_insights,
            recommendations=recommendations,
            follow_up_actions=follow_up_actions,
        )

    @staticmethod
    def extract_metadata(transcript: Transcript) -> TranscriptMetadata:
        if isinstance(transcript, str):
            lines = [line for line in transcript.split("\n") if line.strip()]
            # interviewer and candidate
            return TranscriptMetadata(message_count=len(lines), participant_count=2)

        messages: List[ConversationMessage] = list(transcript)
        duration = None
        if messages and messages[0].timestamp and messages[-1].timestamp:
            duration = (messages[-1].timestamp - messages[0].timestamp).total_seconds()

        return TranscriptMetadata(
            message_count=len(messages),
            duration=duration,
            participant_count=len({message.role for message in messages}),
        )
