import asyncio
import json

import pytest

from interview_eval.schema import DIMENSIONS
from interview_eval.storage.json_store import JsonFileStore


class FakeBackend:
    """ChatBackend that answers from a queue of scripted replies and records every call."""

    def __init__(self, replies=None):
        self.replies = list(replies or [])
        self.calls = []

    async def complete(self, messages, system_prompt, model=None):
        self.calls.append({"messages": messages, "system_prompt": system_prompt, "model": model})
        if not self.replies:
            raise AssertionError("FakeBackend ran out of scripted replies")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def complete_streaming(self, messages, system_prompt, on_chunk, model=None):
        text = await self.complete(messages, system_prompt, model)
        middle = len(text) // 2
        for part in (text[:middle], text[middle:]):
            if part:
                on_chunk(part, False)
        on_chunk("", True)
        return text


@pytest.fixture
def make_backend():
    return FakeBackend


@pytest.fixture
def topic_data():
    return {
        "analysis_date": "2025-01-01",
        "topics": [
            {
                "topic_name": "自我介绍",
                "dialogue": [
                    {"role": "interviewer", "name": "王面试官", "timestamp": "00:01", "content": "请介绍一下你自己"},
                    {"role": "candidate", "name": "张三", "timestamp": "00:05", "content": "我是张三，做了三年后端"},
                ],
                "summary": "候选人介绍了背景",
                "key_points": ["三年后端经验"],
                "critical_info": "",
            },
            {
                "topic_name": "项目经历",
                "dialogue": [
                    {"role": "interviewer", "content": "讲讲最难的项目"},
                    {"role": "candidate", "content": "支付系统重构，我负责对账模块"},
                ],
                "summary": "主导过支付系统重构",
                "key_points": ["支付系统", "对账"],
                "critical_info": ["离职原因未说明"],
            },
        ],
        "overall_summary": "整体表现良好",
    }


@pytest.fixture
def make_evaluation():
    def make(rating=85, confidence=75, name="张三", position="后端工程师", dimension_confidence=None):
        dimension_confidence = dimension_confidence or {}
        return {
            "candidate_name": name,
            "position": position,
            "evaluation_date": "2025-01-01",
            "dimensions": {
                dimension: {
                    "score": 80,
                    "assessment": f"{dimension}表现稳定",
                    "missing_info": "",
                    "confidence_score": dimension_confidence.get(dimension, 85),
                    "confidence_justification": "有具体事例",
                }
                for dimension in DIMENSIONS
            },
            "overall_rating": rating,
            "overall_confidence": confidence,
            "strengths": ["学习能力强", "沟通清晰"],
            "weaknesses": ["管理经验不足"],
            "suggested_follow_up_questions": {"皮实度": "遇到最大的挫折是什么？"},
            "summary": "综合素质良好",
            "hiring_recommendation": "倾向录用",
        }

    return make


@pytest.fixture
def evaluation_data(make_evaluation):
    return make_evaluation()


@pytest.fixture
def as_reply():
    """Wrap a dict the way models tend to answer: inside a fenced json block."""
    def wrap(data):
        return "```json\n" + json.dumps(data, ensure_ascii=False) + "\n```"
    return wrap


@pytest.fixture
def store(tmp_path):
    store = JsonFileStore(tmp_path / "store")
    asyncio.run(store.initialize())
    return store
