"""
Interview history: saved interviews and their analyses.

Records live in the ``interviews`` collection of the key-value store and are
cached in memory after first access.
"""

import json
from collections import Counter
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger

from interview_eval.schema import (
    DIMENSIONS,
    AnalysisResult,
    ComparisonData,
    ComparisonResult,
    HistoryFilter,
    HistoryRecord,
    HistoryStatistics,
    HistoryStatus,
    InterviewResult,
    RecordMetadata,
    TopCandidate,
)
from interview_eval.storage.json_store import KeyValueStore
from interview_eval.utils.error_handlers import InvalidInputError, NoRecordsError
from interview_eval.utils.export import ITEM_RULE, REPORT_RULE, csv_lines, format_number, format_timestamp, quote_csv
from interview_eval.utils.ids import generate_id

COLLECTION = "interviews"

CSV_HEADER = (
    "Candidate Name",
    "Position",
    "Interview Date",
    "Status",
    "Overall Rating",
    "Confidence",
    "Total Turns",
    "Duration (min)",
    "Tags",
)


def determine_status(
    interview_result: Optional[InterviewResult], analysis_result: Optional[AnalysisResult]
) -> HistoryStatus:
    """Any error means failed, any completed part means completed, otherwise in progress."""
    statuses = [r.status for r in (interview_result, analysis_result) if r is not None]
    if "error" in statuses:
        return HistoryStatus.FAILED
    if "completed" in statuses:
        return HistoryStatus.COMPLETED
    return HistoryStatus.IN_PROGRESS


def calculate_duration(interview_result: Optional[InterviewResult]) -> Optional[float]:
    if interview_result is None:
        return None
    metadata = interview_result.metadata
    if not metadata.start_time or not metadata.end_time:
        return None
    return (metadata.end_time - metadata.start_time).total_seconds()


def _contains(value: Optional[str], needle: str) -> bool:
    return bool(value) and needle in value.lower()


class HistoryManagementService:
    def __init__(self, store: KeyValueStore):
        self.store = store
        self.cache: Dict[str, HistoryRecord] = {}

    async def initialize(self) -> None:
        await self.store.initialize()
        await self._load_cache()

    async def _load_cache(self) -> None:
        for item in await self.store.get_all_items(COLLECTION):
            record = HistoryRecord.model_validate(item)
            self.cache[record.id] = record
        logger.info(f"History cache loaded: {len(self.cache)} records")

    async def _save(self, record: HistoryRecord) -> None:
        await self.store.save_item(COLLECTION, record.id, record)
        self.cache[record.id] = record

    async def save_to_history(
        self,
        interview_result: Optional[InterviewResult] = None,
        analysis_result: Optional[AnalysisResult] = None,
        tags: Optional[List[str]] = None,
        notes: Optional[str] = None,
    ) -> str:
        """Store an interview and/or its analysis as one history record; returns the record id."""
        interview_metadata = interview_result.metadata if interview_result else None
        evaluation = analysis_result.evaluation if analysis_result else None

        record = HistoryRecord(
            id=generate_id("history"),
            interview_result=interview_result,
            analysis_result=analysis_result,
            candidate_name=(interview_metadata and interview_metadata.candidate_name)
            or (evaluation and evaluation.candidate_name)
            or "Unknown",
            position=(interview_metadata and interview_metadata.position)
            or (evaluation and evaluation.position)
            or "Unknown",
            interview_date=(interview_metadata and interview_metadata.start_time)
            or (analysis_result and analysis_result.timestamp)
            or datetime.now(),
            status=determine_status(interview_result, analysis_result),
            tags=list(tags or []),
            notes=notes,
            metadata=RecordMetadata(
                total_turns=interview_metadata.total_turns if interview_metadata else None,
                duration=calculate_duration(interview_result),
                overall_rating=evaluation.overall_rating if evaluation else None,
                confidence=evaluation.overall_confidence if evaluation else None,
            ),
        )

        await self._save(record)
        logger.info(f"History record saved: {record.id} ({record.candidate_name})")
        return record.id

    async def get_record(self, record_id: str) -> Optional[HistoryRecord]:
        if record_id in self.cache:
            return self.cache[record_id]
        item = await self.store.get_item(COLLECTION, record_id)
        if item is None:
            return None
        record = HistoryRecord.model_validate(item)
        self.cache[record_id] = record
        return record

    async def get_all_records(self) -> List[HistoryRecord]:
        """All records, newest interview first."""
        records = [HistoryRecord.model_validate(item) for item in await self.store.get_all_items(COLLECTION)]
        for record in records:
            self.cache[record.id] = record
        return sorted(records, key=lambda r: r.interview_date, reverse=True)

    async def filter_records(self, criteria: HistoryFilter) -> List[HistoryRecord]:
        records = await self.get_all_records()

        if criteria.search:
            needle = criteria.search.lower()
            records = [
                r for r in records
                if _contains(r.candidate_name, needle)
                or _contains(r.position, needle)
                or _contains(r.notes, needle)
                or any(needle in tag.lower() for tag in r.tags)
            ]

        if criteria.candidate_name:
            needle = criteria.candidate_name.lower()
            records = [r for r in records if _contains(r.candidate_name, needle)]

        if criteria.position:
            needle = criteria.position.lower()
            records = [r for r in records if _contains(r.position, needle)]

        if criteria.status:
            records = [r for r in records if r.status == criteria.status]

        if criteria.date_range:
            start, end = criteria.date_range
            records = [r for r in records if start <= r.interview_date <= end]

        if criteria.tags:
            wanted = set(criteria.tags)
            records = [r for r in records if wanted.intersection(r.tags)]

        if criteria.has_analysis is not None:
            records = [r for r in records if (r.analysis_result is not None) == criteria.has_analysis]

        if criteria.min_rating is not None:
            records = [
                r for r in records
                if r.metadata.overall_rating is not None and r.metadata.overall_rating >= criteria.min_rating
            ]

        if criteria.max_rating is not None:
            records = [
                r for r in records
                if r.metadata.overall_rating is not None and r.metadata.overall_rating <= criteria.max_rating
            ]

        return records

    async def compare_records(self, record_ids: Iterable[str]) -> ComparisonResult:
        """Side-by-side view of several records; unknown ids are skipped."""
        records = []
        for record_id in record_ids:
            record = await self.get_record(record_id)
            if record is not None:
                records.append(record)

        if not records:
            raise NoRecordsError("No valid records found for comparison")

        evaluations = [r.analysis_result.evaluation if r.analysis_result else None for r in records]
        comparison = ComparisonData(
            candidates=[r.candidate_name for r in records],
            positions=[r.position for r in records],
            ratings=[r.metadata.overall_rating or 0 for r in records],
            confidences=[r.metadata.confidence or 0 for r in records],
            strengths=[e.strengths if e else [] for e in evaluations],
            weaknesses=[e.weaknesses if e else [] for e in evaluations],
            dimensions={
                dimension: [
                    e.dimensions[dimension].score if e and dimension in e.dimensions else 0
                    for e in evaluations
                ]
                for dimension in DIMENSIONS
            },
        )
        return ComparisonResult(records=records, comparison=comparison)

    async def update_record(self, record_id: str, updates: Dict[str, Any]) -> bool:
        record = await self.get_record(record_id)
        if record is None:
            return False

        data = record.model_dump()
        data.update(updates)
        data["id"] = record_id
        await self._save(HistoryRecord.model_validate(data))
        return True

    async def add_tags(self, record_id: str, tags: List[str]) -> bool:
        record = await self.get_record(record_id)
        if record is None:
            return False
        merged = list(record.tags)
        merged.extend(tag for tag in dict.fromkeys(tags) if tag not in record.tags)
        return await self.update_record(record_id, {"tags": merged})

    async def remove_tags(self, record_id: str, tags: List[str]) -> bool:
        record = await self.get_record(record_id)
        if record is None:
            return False
        removed = set(tags)
        return await self.update_record(record_id, {"tags": [tag for tag in record.tags if tag not in removed]})

    async def delete_record(self, record_id: str) -> bool:
        deleted = await self.store.delete_item(COLLECTION, record_id)
        if deleted:
            self.cache.pop(record_id, None)
        return deleted

    async def delete_records(self, record_ids: Iterable[str]) -> int:
        count = 0
        for record_id in record_ids:
            if await self.delete_record(record_id):
                count += 1
        return count

    async def get_statistics(self) -> HistoryStatistics:
        records = await self.get_all_records()
        if not records:
            return HistoryStatistics()

        rated = [r for r in records if r.metadata.overall_rating is not None]
        with_confidence = [r for r in records if r.metadata.confidence is not None]
        top = sorted(rated, key=lambda r: r.metadata.overall_rating, reverse=True)[:10]
        dates = [r.interview_date for r in records]

        return HistoryStatistics(
            total_records=len(records),
            completed_records=sum(1 for r in records if r.status == HistoryStatus.COMPLETED.value),
            failed_records=sum(1 for r in records if r.status == HistoryStatus.FAILED.value),
            average_rating=sum(r.metadata.overall_rating for r in rated) / len(rated) if rated else 0,
            average_confidence=(
                sum(r.metadata.confidence for r in with_confidence) / len(with_confidence) if with_confidence else 0
            ),
            top_candidates=[TopCandidate(name=r.candidate_name, rating=r.metadata.overall_rating) for r in top],
            position_distribution=dict(Counter(r.position for r in records)),
            tag_distribution=dict(Counter(tag for r in records for tag in r.tags)),
            date_range=(min(dates), max(dates)),
        )

    def export_records(self, records: List[HistoryRecord], format: str = "json") -> str:
        if format == "json":
            return json.dumps([r.model_dump(mode="json") for r in records], ensure_ascii=False, indent=2)
        if format == "csv":
            return self._export_csv(records)
        if format == "txt":
            return self._export_txt(records)
        raise InvalidInputError(f"Unsupported export format: {format}")

    @staticmethod
    def _export_csv(records: List[HistoryRecord]) -> str:
        rows = []
        for record in records:
            metadata = record.metadata
            rows.append([
                quote_csv(record.candidate_name),
                quote_csv(record.position),
                record.interview_date.isoformat(),
                record.status,
                format_number(metadata.overall_rating),
                format_number(metadata.confidence),
                format_number(metadata.total_turns),
                str(round(metadata.duration / 60)) if metadata.duration else "",
                quote_csv(", ".join(record.tags)),
            ])
        return csv_lines(CSV_HEADER, rows)

    @staticmethod
    def _export_txt(records: List[HistoryRecord]) -> str:
        lines = [
            "面试历史记录",
            REPORT_RULE,
            f"总记录数: {len(records)}",
            f"导出时间: {format_timestamp(datetime.now())}",
            REPORT_RULE,
            "",
        ]
        for record in records:
            metadata = record.metadata
            lines.extend([
                f"候选人: {record.candidate_name}",
                f"职位: {record.position}",
                f"面试日期: {format_timestamp(record.interview_date)}",
                f"状态: {record.status}",
            ])
            if metadata.overall_rating:
                lines.append(f"评分: {format_number(metadata.overall_rating)}")
            if metadata.confidence:
                lines.append(f"置信度: {format_number(metadata.confidence)}")
            if metadata.total_turns:
                lines.append(f"总轮数: {metadata.total_turns}")
            if record.tags:
                lines.append(f"标签: {', '.join(record.tags)}")
            if record.notes:
                lines.append(f"备注: {record.notes}")
            lines.extend([ITEM_RULE, ""])
        return "\n".join(lines) + "\n"

    async def search_records(self, query: str) -> List[HistoryRecord]:
        return await self.filter_records(HistoryFilter(search=query))

    async def get_records_by_tag(self, tag: str) -> List[HistoryRecord]:
        return await self.filter_records(HistoryFilter(tags=[tag]))

    async def get_all_tags(self) -> List[str]:
        return sorted({tag for record in await self.get_all_records() for tag in record.tags})

    async def get_all_positions(self) -> List[str]:
        return sorted({record.position for record in await self.get_all_records()})

    async def clear_history(self) -> None:
        await self.store.clear_store(COLLECTION)
        self.cache.clear()
        logger.info("History cleared")
