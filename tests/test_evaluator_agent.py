import asyncio

import pytest

from interview_eval.agents.evaluator import EvaluatorAgent, format_transcript
from interview_eval.schema import ConversationMessage, DIMENSIONS, InterviewContext
from interview_eval.utils.error_handlers import InvalidInputError, InvalidResultError, ResponseParseError

CONTEXT = InterviewContext(jd="后端工程师 JD", resume="张三 简历")


def test_format_transcript_renders_role_lines():
    transcript = [
        ConversationMessage(role="interviewer", content="你好"),
        ConversationMessage(role="candidate", content="您好"),
    ]
    assert format_transcript(transcript) == "INTERVIEWER: 你好\nCANDIDATE: 您好"
    assert format_transcript("raw text") == "raw text"


def test_analyze_topics(make_backend, topic_data, as_reply):
    backend = make_backend([as_reply(topic_data)])
    agent = EvaluatorAgent(backend)

    result = asyncio.run(agent.analyze_topics("面试官: 你好\n候选人: 您好", CONTEXT))

    assert [topic.topic_name for topic in result.topics] == ["自我介绍", "项目经历"]
    assert result.topics[1].critical_info == "离职原因未说明"

    call = backend.calls[0]
    assert call["model"] == "deepseek-chat"
    assert len(call["messages"]) == 1
    assert "面试官: 你好" in call["messages"][0]["content"]
    assert call["system_prompt"]


def test_evaluate_interview_second_stage_includes_previous_summary(make_backend, evaluation_data, as_reply):
    backend = make_backend([as_reply(evaluation_data)])
    agent = EvaluatorAgent(backend)

    result = asyncio.run(agent.evaluate_interview("transcript", CONTEXT, stage="2", previous_summary="一面表现不错"))

    assert list(result.dimensions) == list(DIMENSIONS)
    assert result.hiring_recommendation == "倾向录用"
    content = backend.calls[0]["messages"][0]["content"]
    assert content.startswith("现在是二面")
    assert "一面表现不错" in content
    assert "后端工程师 JD" in content


def test_evaluate_interview_missing_dimension(make_backend, evaluation_data, as_reply):
    del evaluation_data["dimensions"]["客户第一"]
    agent = EvaluatorAgent(make_backend([as_reply(evaluation_data)]))

    with pytest.raises(InvalidResultError) as excinfo:
        asyncio.run(agent.evaluate_interview("transcript", CONTEXT))

    assert "客户第一" in excinfo.value.message
    assert excinfo.value.raw.startswith("```json")


def test_unparseable_answer_raises_parse_error(make_backend):
    agent = EvaluatorAgent(make_backend(["抱歉，我无法完成这个任务"]))

    with pytest.raises(ResponseParseError) as excinfo:
        asyncio.run(agent.analyze_topics("transcript", CONTEXT))

    assert not isinstance(excinfo.value, InvalidResultError)
    assert excinfo.value.raw == "抱歉，我无法完成这个任务"


def test_empty_transcript_is_rejected_before_calling_backend(make_backend):
    backend = make_backend()
    agent = EvaluatorAgent(backend)

    with pytest.raises(InvalidInputError):
        asyncio.run(agent.analyze_topics("   ", CONTEXT))
    assert backend.calls == []
