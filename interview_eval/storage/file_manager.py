"""
Upload, parsing and storage of JD, resume and conversation files.

Accepted formats are plain text, markdown and PDF. Text is extracted,
transcripts are normalized to one ``Speaker (mm:ss): text`` line per turn,
content is checked against the declared file type and metadata (candidate,
position, stage) is taken from the content and the file name.
"""

import asyncio
import io
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from loguru import logger
from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError

from interview_eval.agents.prompts import RESUME_PARSE_PROMPT
from interview_eval.schema import FileMetadata, FileType, SelectionCriteria, UploadedFile
from interview_eval.storage.json_store import KeyValueStore
from interview_eval.utils.error_handlers import EvaluationPipelineError, FileUploadError
from interview_eval.utils.ids import generate_id

COLLECTION = "files"

DEFAULT_MAX_SIZE = 10 * 1024 * 1024
DEFAULT_ALLOWED_EXTENSIONS = (".pdf", ".txt", ".md")

TRANSCRIPT_HEADER = re.compile(r"^.*?[\(\[（【]\s*\d{1,2}:\d{2}(?::\d{2})?\s*[\)\]）】][:：]")
TIMESTAMP_MARK = re.compile(r"[\(\[（【]\s*\d{1,2}:\d{2}(?::\d{2})?\s*[\)\]）】][:：]")

JD_KEYWORDS = ("职位", "岗位", "position", "job", "jd", "招聘", "要求", "职责")
RESUME_KEYWORDS = ("简历", "resume", "教育", "工作经验", "education", "experience", "个人信息", "姓名", "学历")
CONVERSATION_KEYWORDS = ("面试官", "候选人", "interviewer", "candidate")

POSITION_ABBREVIATIONS = {
    "hr": "HR专员",
    "dev": "开发工程师",
    "fe": "前端工程师",
    "be": "后端工程师",
    "qa": "测试工程师",
    "pm": "产品经理",
    "ui": "UI设计师",
    "ux": "UX设计师",
}


_NAME_FIELD = re.compile(r"姓名[:：]\s*([^\n\r]+)")
_NAME_LINE = re.compile(r"^[a-zA-Z\u4e00-\u9fa5\s]+$")
_CANDIDATE_TURN = re.compile(r"候选人[：:\s]*\([^)]+\)[：:]\s*([^，。\n\r]+)")
_SELF_INTRODUCTION = re.compile(r"我[是叫]\s*([^\s，。]+)")
_POSITION_FIELD = re.compile(r"职位[:：]\s*([^\n\r]+)")
_JOB_FIELD = re.compile(r"岗位[：:]\s*([^\n\r]+)")


def clean_transcript(text: str) -> str:
    """
    Merge wrapped lines into the speaker line they belong to.

    A line that does not start with ``Name (mm:ss):`` is appended to the
    previous line; blank lines are dropped.
    """
    merged: List[str] = []
    current = ""
    for line in text.split("\n"):
        line = line.strip()
        if not line:
            continue
        if TRANSCRIPT_HEADER.match(line):
            if current:
                merged.append(current)
            current = line
        else:
            current = f"{current} {line}" if current else line
    if current:
        merged.append(current)
    return "\n".join(merged)


def parse_file_name(file_name: str) -> FileMetadata:
    """``candidate_position_x_stage.ext`` naming convention."""
    stem, dot, ext = file_name.rpartition(".")
    if not dot:
        stem, ext = file_name, ""
    parts = stem.split("_")

    def part(index: int) -> Optional[str]:
        return parts[index] or None if index < len(parts) else None

    return FileMetadata(
        original_name=file_name,
        extension=f".{ext}" if ext else "",
        candidate_name=part(0),
        position=part(1),
        stage=part(3),
    )


def validate_content(content: str, file_type: Union[FileType, str]) -> bool:
    """Keyword check that the content plausibly is what the file type claims."""
    if not content or not content.strip():
        return False

    lowered = content.lower()
    file_type = FileType(file_type)
    if file_type == FileType.JD:
        return any(keyword in lowered for keyword in JD_KEYWORDS)
    if file_type == FileType.RESUME:
        return any(keyword in lowered for keyword in RESUME_KEYWORDS)
    if file_type == FileType.CONVERSATION:
        if any(keyword in lowered for keyword in CONVERSATION_KEYWORDS):
            return True
        return bool(TIMESTAMP_MARK.search(content)) and ("interview" in lowered or "transcript" in lowered)
    return True


def extract_candidate_name(content: str, file_type: Union[FileType, str]) -> Optional[str]:
    file_type = FileType(file_type)
    if file_type == FileType.RESUME:
        for line in content.split("\n")[:10]:
            line = line.strip()
            match = _NAME_FIELD.search(line)
            if match:
                return match.group(1).strip()
            if (
                line
                and len(line) < 20
                and not any(marker in line for marker in ("简历", "Resume", "#", "个人信息"))
                and _NAME_LINE.match(line)
            ):
                return line

    if file_type == FileType.CONVERSATION:
        turn = _CANDIDATE_TURN.search(content)
        if turn:
            name = _SELF_INTRODUCTION.search(turn.group(1).strip())
            if name:
                return name.group(1)
    return None


def extract_position(content: str, file_type: Union[FileType, str]) -> Optional[str]:
    file_type = FileType(file_type)
    if file_type == FileType.JD:
        for line in content.split("\n")[:10]:
            line = line.strip()
            if any(marker in line for marker in ("职位", "岗位", "Position")):
                match = _POSITION_FIELD.search(line)
                return match.group(1).strip() if match else line

    if file_type == FileType.CONVERSATION:
        match = _POSITION_FIELD.search(content) or _JOB_FIELD.search(content)
        if match:
            return match.group(1).strip()
    return None


def format_resume_basic(text: str) -> str:
    return f"# 简历 - Resume\n\n{text.strip()}\n\n*注意: 此为基础文本提取，建议使用LLM解析获得更好的格式化效果*"


class FileManager:
    """
    File upload and lookup on top of the ``files`` collection.

    ``resume_agent`` is optional; when given, PDF resumes are rewritten to
    markdown through its ``generate`` call, otherwise a basic layout is used.
    """

    def __init__(
        self,
        store: KeyValueStore,
        max_size: int = DEFAULT_MAX_SIZE,
        allowed_extensions: Sequence[str] = DEFAULT_ALLOWED_EXTENSIONS,
        resume_agent=None,
    ):
        self.store = store
        self.max_size = max_size
        self.allowed_extensions = tuple(ext.lower() for ext in allowed_extensions)
        self.resume_agent = resume_agent

    async def initialize(self) -> None:
        await self.store.initialize()

    async def upload_file(
        self, path: Path, file_type: Union[FileType, str], validate: bool = True
    ) -> UploadedFile:
        """Read ``path`` from disk and upload it under its own file name."""
        path = Path(path)
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise FileUploadError(f"Cannot read {path}: {e}") from e
        return await self.upload_bytes(path.name, data, file_type, validate=validate)

    async def upload_bytes(
        self, file_name: str, data: bytes, file_type: Union[FileType, str], validate: bool = True
    ) -> UploadedFile:
        file_type = FileType(file_type)

        if len(data) > self.max_size:
            raise FileUploadError(f"File size exceeds limit of {self.max_size / 1024 / 1024:g}MB")

        extension = Path(file_name).suffix.lower()
        if extension not in self.allowed_extensions:
            raise FileUploadError(f"Unsupported file type. Allowed types: {', '.join(self.allowed_extensions)}")

        content = await self._parse(file_name, extension, data)

        if validate and not validate_content(content, file_type):
            raise FileUploadError(f"Invalid content for file type: {file_type.value}")

        uploaded = UploadedFile(
            id=generate_id("file"),
            name=file_name,
            type=file_type,
            content=content,
            metadata=self._extract_metadata(file_name, file_type, content),
            size=len(data),
        )
        await self.save_file(uploaded)
        logger.info(f"Uploaded {file_type.value} file {file_name} as {uploaded.id}")
        return uploaded

    async def _parse(self, file_name: str, extension: str, data: bytes) -> str:
        if extension == ".pdf":
            return await self._parse_pdf(file_name, data)

        try:
            content = data.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise FileUploadError(f"File is not valid UTF-8 text: {file_name}") from e

        lowered = file_name.lower()
        if "transcript" in lowered or "conversation" in lowered or TIMESTAMP_MARK.search(content):
            return clean_transcript(content)
        return content

    async def _parse_pdf(self, file_name: str, data: bytes) -> str:
        lowered = file_name.lower()
        if "transcript" in lowered:
            kind = "transcript"
        elif "jd" in lowered:
            kind = "jd"
        elif "resume" in lowered:
            kind = "resume"
        else:
            raise FileUploadError("未预期的PDF,请遵循命名规范,文件名携带 transcript, jd or resume")

        text = await asyncio.to_thread(self._read_pdf_text, data)
        if not text.strip():
            raise FileUploadError(f"No text content found in PDF {kind}: {file_name}")

        if kind == "transcript":
            return clean_transcript(text)
        if kind == "resume":
            return await self._format_resume(text)
        return text.strip()

    @staticmethod
    def _read_pdf_text(data: bytes) -> str:
        try:
            reader = PdfReader(io.BytesIO(data))
            pages = [page.extract_text() or "" for page in reader.pages]
        except PdfReadError as e:
            raise FileUploadError(f"PDF parsing failed: {e}") from e
        return "\n".join(page for page in pages if page.strip())

    async def _format_resume(self, text: str) -> str:
        if self.resume_agent is None:
            return format_resume_basic(text)

        messages = [{"role": "user", "content": f"{RESUME_PARSE_PROMPT}\n\n以下是简历的原始文本内容：\n\n{text}"}]
        try:
            formatted = await self.resume_agent.generate(messages, "")
        except EvaluationPipelineError as e:
            logger.warning(f"Resume formatting via LLM failed, using basic layout: {e}")
            return format_resume_basic(text)
        return formatted or format_resume_basic(text)

    def _extract_metadata(self, file_name: str, file_type: FileType, content: str) -> FileMetadata:
        metadata = parse_file_name(file_name)

        candidate = extract_candidate_name(content, file_type)
        position = extract_position(content, file_type)
        if position is None and file_type == FileType.CONVERSATION and metadata.position:
            position = POSITION_ABBREVIATIONS.get(metadata.position.lower(), metadata.position)

        return metadata.model_copy(update={
            "candidate_name": candidate or metadata.candidate_name,
            "position": position or metadata.position,
        })

    async def save_file(self, file: UploadedFile) -> None:
        await self.store.save_item(COLLECTION, file.id, file)

    async def get_file(self, file_id: str) -> Optional[UploadedFile]:
        item = await self.store.get_item(COLLECTION, file_id)
        return UploadedFile.model_validate(item) if item else None

    async def get_files(self, file_type: Optional[Union[FileType, str]] = None) -> List[UploadedFile]:
        files = [UploadedFile.model_validate(item) for item in await self.store.get_all_items(COLLECTION)]
        if file_type is None:
            return files
        wanted = FileType(file_type).value
        return [f for f in files if f.type == wanted]

    async def update_file(self, file_id: str, updates: Dict[str, Any]) -> bool:
        existing = await self.get_file(file_id)
        if existing is None:
            return False
        data = existing.model_dump()
        data.update(updates)
        data["id"] = file_id
        await self.save_file(UploadedFile.model_validate(data))
        return True

    async def delete_file(self, file_id: str) -> bool:
        return await self.store.delete_item(COLLECTION, file_id)

    async def filter_files(self, criteria: SelectionCriteria) -> List[UploadedFile]:
        files = await self.get_files(criteria.file_type)
        result = []
        for file in files:
            if criteria.jd and criteria.jd.lower() not in (file.metadata.jd or "").lower():
                continue
            if criteria.candidate and criteria.candidate.lower() not in (file.metadata.candidate_name or "").lower():
                continue
            if criteria.date_range:
                start, end = criteria.date_range
                if not start <= file.uploaded_at <= end:
                    continue
            result.append(file)
        return result

    async def search_files(self, query: str, file_type: Optional[Union[FileType, str]] = None) -> List[UploadedFile]:
        needle = query.lower()
        return [
            f for f in await self.get_files(file_type)
            if needle in f.name.lower()
            or needle in f.content.lower()
            or needle in (f.metadata.candidate_name or "").lower()
            or needle in (f.metadata.position or "").lower()
        ]

    async def get_statistics(self) -> Dict[str, Any]:
        files = await self.get_files()
        files_by_type: Dict[str, int] = {}
        for f in files:
            files_by_type[f.type] = files_by_type.get(f.type, 0) + 1
        return {
            "total_files": len(files),
            "total_size": sum(f.size for f in files),
            "files_by_type": files_by_type,
            "recent_files": sorted(files, key=lambda f: f.uploaded_at, reverse=True)[:10],
        }

    async def clear_all_files(self) -> None:
        await self.store.clear_store(COLLECTION)
