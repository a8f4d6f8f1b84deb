import asyncio

import pytest

from interview_eval.agents.prompts import RESUME_PARSE_PROMPT
from interview_eval.schema import SelectionCriteria
from interview_eval.storage.file_manager import (
    FileManager,
    clean_transcript,
    extract_candidate_name,
    extract_position,
    format_resume_basic,
    parse_file_name,
    validate_content,
)
from interview_eval.utils.error_handlers import BackendError, FileUploadError

TRANSCRIPT = """王面试官 (00:01): 你好，请先做个自我介绍
候选人 (00:05): 您好，我是张三，
目前在一家支付公司做后端。

王面试官 (01:10): 为什么考虑新机会？
"""


class FailingResumeAgent:
    async def generate(self, messages, system_prompt):
        raise BackendError("API服务暂时不可用，请稍后重试", status=503)


class MarkdownResumeAgent:
    def __init__(self):
        self.messages = None

    async def generate(self, messages, system_prompt):
        self.messages = messages
        return "# 张三\n\n## 工作经历"


@pytest.fixture
def manager(store):
    return FileManager(store, max_size=1024)


def test_clean_transcript_merges_wrapped_lines():
    assert clean_transcript(TRANSCRIPT).splitlines() == [
        "王面试官 (00:01): 你好，请先做个自我介绍",
        "候选人 (00:05): 您好，我是张三， 目前在一家支付公司做后端。",
        "王面试官 (01:10): 为什么考虑新机会？",
    ]


def test_parse_file_name():
    metadata = parse_file_name("张三_dev_x_2.txt")
    assert metadata.candidate_name == "张三"
    assert metadata.position == "dev"
    assert metadata.stage == "2"
    assert metadata.extension == ".txt"

    short = parse_file_name("notes")
    assert short.extension == ""
    assert short.position is None


def test_validate_content():
    assert validate_content("岗位职责: 负责后端开发", "jd")
    assert validate_content("姓名: 张三\n教育经历", "resume")
    assert validate_content("面试官: 你好", "conversation")
    assert validate_content("Interview transcript\nA (00:01): hi", "conversation")
    assert not validate_content("hello world", "conversation")
    assert not validate_content("   ", "report")


def test_extract_candidate_and_position():
    assert extract_candidate_name("个人简历\n姓名：李四\n电话", "resume") == "李四"
    assert extract_candidate_name("Resume\nWang Wu\nEngineer", "resume") == "Wang Wu"
    assert extract_candidate_name("候选人 (00:05): 我是张三，很高兴", "conversation") == "张三"
    assert extract_position("招聘\n职位：后端工程师\n要求", "jd") == "后端工程师"
    assert extract_position("岗位：测试", "conversation") == "测试"


def test_upload_conversation(manager):
    uploaded = asyncio.run(manager.upload_bytes("张三_dev_x_2.txt", TRANSCRIPT.encode("utf-8"), "conversation"))

    assert uploaded.type == "conversation"
    assert uploaded.content.count("\n") == 2
    assert uploaded.metadata.candidate_name == "张三"
    assert uploaded.metadata.position == "开发工程师"
    assert uploaded.metadata.stage == "2"
    assert asyncio.run(manager.get_file(uploaded.id)) == uploaded


def test_upload_from_disk(manager, tmp_path):
    path = tmp_path / "李四_pm_x_1.txt"
    path.write_text(TRANSCRIPT, encoding="utf-8")

    uploaded = asyncio.run(manager.upload_file(path, "conversation"))
    assert uploaded.name == "李四_pm_x_1.txt"
    assert uploaded.size == len(TRANSCRIPT.encode("utf-8"))

    with pytest.raises(FileUploadError):
        asyncio.run(manager.upload_file(tmp_path / "missing.txt", "conversation"))


@pytest.mark.parametrize(
    "file_name, data, file_type, message",
    [
        ("big.txt", b"x" * 2048, "jd", "exceeds"),
        ("resume.docx", "简历".encode("utf-8"), "resume", "Unsupported file type"),
        ("scan.pdf", b"%PDF-1.4", "resume", "命名规范"),
        ("jd.txt", "hello".encode("utf-8"), "jd", "Invalid content"),
        ("jd.txt", b"\xff\xfe\xfa", "jd", "UTF-8"),
    ],
)
def test_upload_rejections(manager, file_name, data, file_type, message):
    with pytest.raises(FileUploadError) as excinfo:
        asyncio.run(manager.upload_bytes(file_name, data, file_type))
    assert message in excinfo.value.message


def test_upload_without_validation(manager):
    uploaded = asyncio.run(manager.upload_bytes("notes.md", "hello".encode("utf-8"), "report", validate=False))
    assert uploaded.content == "hello"


def test_resume_formatting_falls_back_to_basic_layout(store):
    manager = FileManager(store, resume_agent=FailingResumeAgent())
    assert asyncio.run(manager._format_resume("张三\n五年经验")) == format_resume_basic("张三\n五年经验")


def test_resume_formatting_uses_agent(store):
    agent = MarkdownResumeAgent()
    manager = FileManager(store, resume_agent=agent)

    assert asyncio.run(manager._format_resume("张三")) == "# 张三\n\n## 工作经历"
    assert agent.messages[0]["content"].endswith("张三")
    assert agent.messages[0]["content"].startswith(RESUME_PARSE_PROMPT)


def test_queries_and_statistics(manager):
    async def scenario():
        first = await manager.upload_bytes("张三_dev_x_1.txt", TRANSCRIPT.encode("utf-8"), "conversation")
        await manager.upload_bytes("jd.md", "职位：后端工程师".encode("utf-8"), "jd")

        searched = await manager.search_files("支付")
        by_candidate = await manager.filter_files(SelectionCriteria(candidate="张"))
        updated = await manager.update_file(first.id, {"metadata": {"original_name": "x.txt", "extension": ".txt", "jd": "后端"}})
        by_jd = await manager.filter_files(SelectionCriteria(jd="后端"))
        statistics = await manager.get_statistics()
        deleted = await manager.delete_file(first.id)
        return first, searched, by_candidate, updated, by_jd, statistics, deleted

    first, searched, by_candidate, updated, by_jd, statistics, deleted = asyncio.run(scenario())

    assert [f.id for f in searched] == [first.id]
    assert [f.id for f in by_candidate] == [first.id]
    assert updated
    assert [f.id for f in by_jd] == [first.id]
    assert statistics["total_files"] == 2
    assert statistics["files_by_type"] == {"conversation": 1, "jd": 1}
    assert deleted
    assert len(asyncio.run(manager.get_files())) == 1

    asyncio.run(manager.clear_all_files())
    assert asyncio.run(manager.get_files()) == []
