import asyncio

import pytest

from interview_eval.agents.evaluator import EvaluatorAgent
from interview_eval.evaluation.engine import (
    CAPABILITY_STEP,
    TOPIC_STEP,
    EvaluationEngine,
    format_topics_for_evaluation,
    validate_topic_analysis,
    validate_transcript,
)
from interview_eval.schema import (
    ConversationMessage,
    EvaluationItem,
    EvaluationResult,
    InterviewContext,
    TopicAnalysisResult,
)
from interview_eval.utils.error_handlers import ConcurrentRunError, InvalidInputError, InvalidResultError

CONTEXT = InterviewContext(jd="JD", resume="Resume")
TRANSCRIPT = "面试官: 请介绍一下你自己\n候选人: 我是张三"


class ScriptedEvaluator:
    """Evaluator stand-in that fails for transcripts containing 'FAIL'."""

    def __init__(self, topic_data, evaluation_data):
        self.topic_data = topic_data
        self.evaluation_data = evaluation_data
        self.evaluated = []

    async def analyze_topics(self, transcript, context):
        await asyncio.sleep(0)
        if "FAIL" in str(transcript):
            raise InvalidResultError("Test error")
        return TopicAnalysisResult.model_validate(self.topic_data)

    async def evaluate_interview(self, transcript, context, stage="1", previous_summary=None):
        await asyncio.sleep(0)
        self.evaluated.append(transcript)
        return EvaluationResult.model_validate(self.evaluation_data)


def test_evaluate_interview_runs_both_steps(make_backend, topic_data, evaluation_data, as_reply):
    backend = make_backend([as_reply(topic_data), as_reply(evaluation_data)])
    engine = EvaluationEngine(EvaluatorAgent(backend))
    statuses, progress = [], []

    result = asyncio.run(engine.evaluate_interview(
        TRANSCRIPT,
        CONTEXT,
        on_progress=lambda step, value: progress.append((step, value)),
        on_status_change=statuses.append,
    ))

    assert result.status == "completed"
    assert result.process_id == engine.get_process_id()
    assert [t.topic_name for t in result.topic_analysis.topics] == ["自我介绍", "项目经历"]
    assert result.evaluation.overall_rating == 85
    assert statuses == ["starting", "analyzing_topics", "evaluating_capabilities", "completed"]
    assert progress == [(TOPIC_STEP, 0), (TOPIC_STEP, 100), (CAPABILITY_STEP, 0), (CAPABILITY_STEP, 100)]

    # the evaluation sees the topic-segmented transcript, not the raw one
    evaluation_request = backend.calls[1]["messages"][0]["content"]
    assert "## 主题: 自我介绍" in evaluation_request
    assert not engine.is_running


def test_topic_step_only(make_backend, topic_data, as_reply):
    backend = make_backend([as_reply(topic_data)])
    engine = EvaluationEngine(EvaluatorAgent(backend))

    result = asyncio.run(engine.evaluate_interview(TRANSCRIPT, CONTEXT, step="topic"))

    assert result.topic_analysis is not None
    assert result.evaluation is None
    assert len(backend.calls) == 1


def test_report_step_uses_raw_transcript(topic_data, evaluation_data):
    evaluator = ScriptedEvaluator(topic_data, evaluation_data)
    engine = EvaluationEngine(evaluator)

    result = asyncio.run(engine.evaluate_interview(TRANSCRIPT, CONTEXT, step="report"))

    assert result.topic_analysis is None
    assert evaluator.evaluated == [TRANSCRIPT]


def test_concurrent_run_is_rejected(topic_data, evaluation_data):
    engine = EvaluationEngine(ScriptedEvaluator(topic_data, evaluation_data))

    async def scenario():
        first = asyncio.ensure_future(engine.evaluate_interview(TRANSCRIPT, CONTEXT))
        await asyncio.sleep(0)
        running = engine.is_running
        with pytest.raises(ConcurrentRunError) as excinfo:
            await engine.evaluate_interview(TRANSCRIPT, CONTEXT)
        with pytest.raises(ConcurrentRunError):
            await engine.batch_evaluate([])
        return running, excinfo.value, await first

    running, error, result = asyncio.run(scenario())

    assert running
    assert error.recoverable
    assert result.status == "completed"
    assert not engine.is_running


def test_guard_released_after_failure(topic_data, evaluation_data):
    engine = EvaluationEngine(ScriptedEvaluator(topic_data, evaluation_data))
    statuses = []

    with pytest.raises(InvalidResultError):
        asyncio.run(engine.evaluate_interview("FAIL", CONTEXT, on_status_change=statuses.append))

    assert statuses[-1] == "error"
    assert not engine.is_running


def test_validate_transcript():
    validate_transcript([ConversationMessage(role="interviewer", content="hi")])
    with pytest.raises(InvalidInputError):
        validate_transcript("")
    with pytest.raises(InvalidInputError):
        validate_transcript([])
    with pytest.raises(InvalidInputError):
        validate_transcript([{"role": "candidate", "content": ""}])


def test_validate_topic_analysis_rejects_empty_topics(topic_data):
    topic_data["topics"] = []
    with pytest.raises(InvalidResultError):
        validate_topic_analysis(TopicAnalysisResult.model_validate(topic_data))


def test_format_topics_for_evaluation(topic_data):
    text = format_topics_for_evaluation(TopicAnalysisResult.model_validate(topic_data))

    assert text.index("## 主题: 自我介绍") < text.index("## 主题: 项目经历")
    assert "王面试官 (00:01): 请介绍一下你自己" in text
    assert "candidate: 支付系统重构，我负责对账模块" in text


def test_batch_evaluate_isolates_failures(topic_data, evaluation_data):
    engine = EvaluationEngine(ScriptedEvaluator(topic_data, evaluation_data))
    items = [
        EvaluationItem(name="a", transcript=TRANSCRIPT, context=CONTEXT),
        EvaluationItem(name="b", transcript="FAIL", context=CONTEXT),
        EvaluationItem(name="c", transcript=TRANSCRIPT, context=CONTEXT),
    ]
    completed = []

    results = asyncio.run(engine.batch_evaluate(
        items, concurrency=2, on_item_complete=lambda index, total, result: completed.append(index)
    ))

    assert [r.name for r in results] == ["a", "b", "c"]
    assert results[0].evaluation is not None
    assert "Test error" in results[1].error
    assert results[2].error is None
    assert sorted(completed) == [0, 1, 2]
    assert not engine.is_running


def test_confidence_levels_and_follow_up(make_evaluation):
    evaluation = EvaluationResult.model_validate(
        make_evaluation(dimension_confidence={"皮实度": 50, "目标感": 65})
    )
    engine = EvaluationEngine(None)

    levels = engine.calculate_confidence_levels(evaluation)
    assert levels.low == ["皮实度"]
    assert levels.medium == ["目标感"]
    assert len(levels.high) == 4

    suggestions = engine.generate_follow_up_questions(evaluation)
    assert [s.dimension for s in suggestions] == ["目标感", "皮实度"]
    assert suggestions[1].questions == ["遇到最大的挫折是什么？"]


def test_comprehensive_report(topic_data, make_evaluation):
    engine = EvaluationEngine(None)
    topics = TopicAnalysisResult.model_validate(topic_data)
    evaluation = EvaluationResult.model_validate(make_evaluation(dimension_confidence={"皮实度": 50}))

    report = engine.generate_comprehensive_report(topics, evaluation)

    assert report.topic_insights.total_topics == 2
    assert report.topic_insights.critical_info == ["离职原因未说明"]
    assert report.capability_insights.average_score == 80
    assert "关注面试中暴露的风险点" in report.recommendations
    assert "进一步评估皮实度维度" in report.recommendations
    assert "候选人综合素质优秀，建议优先考虑" in report.recommendations
    assert "面试覆盖面较窄，建议补充相关主题的深入交流" in report.follow_up_actions
    assert "六维能力评估摘要" in report.summary


def test_extract_metadata():
    assert EvaluationEngine.extract_metadata("a\n\nb\nc").message_count == 3

    messages = [
        ConversationMessage(role="interviewer", content="q"),
        ConversationMessage(role="candidate", content="a"),
    ]
    metadata = EvaluationEngine.extract_metadata(messages)
    assert metadata.message_count == 2
    assert metadata.participant_count == 2
    assert metadata.duration >= 0


def test_batch_guard_released_when_status_callback_raises(topic_data, evaluation_data):
    engine = EvaluationEngine(ScriptedEvaluator(topic_data, evaluation_data))

    def on_status_change(status):
        raise RuntimeError("listener failed")

    with pytest.raises(RuntimeError):
        asyncio.run(engine.batch_evaluate([], on_status_change=on_status_change))

    assert not engine.is_running
    assert asyncio.run(engine.batch_evaluate([])) == []
