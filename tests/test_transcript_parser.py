from interview_eval.storage.transcript_parser import (
    SpeakerLabelParser,
    TimestampedSpeakerParser,
    TranscriptParserRegistry,
)
from interview_eval.schema import ConversationMessage


def test_speaker_labels_with_continuation_lines():
    content = "面试官: 你好\n请做个自我介绍\n候选人: 我是张三\nInterviewer: Thanks"

    messages = SpeakerLabelParser().parse(content)

    assert [(m.role, m.content) for m in messages] == [
        ("interviewer", "你好\n请做个自我介绍"),
        ("candidate", "我是张三"),
        ("interviewer", "Thanks"),
    ]
    assert [m.turn for m in messages] == [1, 2, 3]


def test_timestamped_speakers_by_order_of_appearance():
    content = "王经理 (00:01): 你好\n张三 (00:04): 您好\n继续说明\n王经理（01:02）：好的"

    messages = TimestampedSpeakerParser().parse(content)

    assert [m.role for m in messages] == ["interviewer", "candidate", "interviewer"]
    assert messages[1].content == "您好\n继续说明"


def test_timestamped_speakers_with_role_names():
    content = "候选人 (00:01): 我先说\n面试官 (00:03): 请"
    assert [m.role for m in TimestampedSpeakerParser().parse(content)] == ["candidate", "interviewer"]


def test_registry_picks_first_detecting_parser():
    registry = TranscriptParserRegistry()

    assert registry.detect("面试官: 你好").name == "speaker_label"
    assert registry.detect("A (00:01): hi").name == "timestamped_speaker"
    assert registry.detect("no speakers here") is None
    assert registry.parse("no speakers here") == []


class ArrowParser:
    name = "arrow"

    def detect(self, content):
        return content.startswith(">>")

    def parse(self, content):
        return [
            ConversationMessage(role="interviewer", content=line[2:].strip(), turn=index)
            for index, line in enumerate(content.splitlines(), 1)
        ]


def test_register_custom_format_first():
    registry = TranscriptParserRegistry()
    registry.register(ArrowParser(), first=True)

    messages = registry.parse(">> 面试官: 你好")

    assert registry.parsers[0].name == "arrow"
    assert messages[0].content == "面试官: 你好"


def test_quoted_marker_inside_timestamped_answer_keeps_every_turn():
    content = "\n".join([
        "王经理 (00:01): 请介绍一下你自己",
        "张三 (00:05): 我是张三",
        "王经理 (00:20): 为什么离职",
        "张三 (00:25): 当时我的面试官: 说团队要调整",
        "王经理 (00:40): 好的，谢谢",
    ])
    registry = TranscriptParserRegistry()

    messages = registry.parse(content)

    assert registry.detect(content).name == "timestamped_speaker"
    assert [m.role for m in messages] == ["interviewer", "candidate", "interviewer", "candidate", "interviewer"]
    assert messages[3].content == "当时我的面试官: 说团队要调整"
    assert [m.turn for m in messages] == [1, 2, 3, 4, 5]


def test_speaker_label_markers_only_count_at_line_start():
    content = "  面试官: 你好\n候选人: 我听说面试官: 很严格"

    messages = SpeakerLabelParser().parse(content)

    assert [(m.role, m.content) for m in messages] == [
        ("interviewer", "你好"),
        ("candidate", "我听说面试官: 很严格"),
    ]
