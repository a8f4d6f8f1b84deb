"""
Batch evaluation of uploaded conversation files.

Files are evaluated by a bounded pool of workers, progress is reported after
every file and the run ends with a ``BatchSummary`` that can be persisted and
exported as JSON, CSV or a plain-text report.
"""

import json
import time
from datetime import datetime
from typing import Callable, List, Optional

from loguru import logger

from interview_eval.evaluation.engine import EvaluationEngine, format_topics_for_evaluation
from interview_eval.schema import (
    AnalysisResult,
    AnalysisStatus,
    BatchEvaluationConfig,
    BatchProgress,
    BatchResult,
    BatchStatistics,
    BatchSummary,
    EvaluationStep,
    FileType,
    InterviewContext,
    SelectionCriteria,
    UploadedFile,
)
from interview_eval.storage.json_store import KeyValueStore
from interview_eval.storage.transcript_parser import TranscriptParserRegistry
from interview_eval.utils.concurrency import run_bounded
from interview_eval.utils.error_handlers import (
    BatchCancelledError,
    BatchInProgressError,
    InvalidInputError,
    NoMatchError,
)
from interview_eval.utils.export import ITEM_RULE, REPORT_RULE, csv_lines, format_number, format_timestamp, quote_csv
from interview_eval.utils.ids import generate_id

ProgressCallback = Callable[[BatchProgress], None]

CSV_HEADER = ("File Name", "Success", "Duration (ms)", "Overall Rating", "Confidence", "Error")


def build_context(file: UploadedFile) -> InterviewContext:
    metadata = file.metadata
    return InterviewContext(
        jd=metadata.jd or metadata.position or "",
        resume=metadata.candidate_name or "",
        transcript=file.content,
    )


def calculate_statistics(results: List[BatchResult]) -> BatchStatistics:
    analyses = [r.result for r in results if r.success and r.result]
    evaluations = [a.evaluation for a in analyses if a.evaluation]

    statistics = BatchStatistics(
        topic_analysis_count=sum(1 for a in analyses if a.topic_analysis),
        evaluation_count=len(evaluations),
    )
    if evaluations:
        statistics.average_overall_rating = sum(e.overall_rating for e in evaluations) / len(evaluations)
        statistics.average_confidence = sum(e.overall_confidence for e in evaluations) / len(evaluations)
    return statistics


def _error_message(error: Exception) -> str:
    return getattr(error, "message", None) or str(error)


class BatchEvaluationService:
    """
    Runs one batch at a time per instance.

    ``process_batch`` while another batch is running raises
    ``BatchInProgressError``. ``cancel_batch`` releases the guard at once;
    files already in flight finish, no new ones start and the cancelled run
    raises ``BatchCancelledError`` without saving a summary.
    """

    def __init__(
        self,
        engine: EvaluationEngine,
        store: KeyValueStore,
        selector=None,
        parser_registry: Optional[TranscriptParserRegistry] = None,
    ):
        self.engine = engine
        self.store = store
        self.selector = selector
        self.parser_registry = parser_registry or TranscriptParserRegistry()

        self.is_processing = False
        self.current_batch_id: Optional[str] = None

    async def initialize(self) -> None:
        await self.store.initialize()
        if self.selector is not None:
            await self.selector.initialize()

    async def process_batch(
        self, config: BatchEvaluationConfig, on_progress: Optional[ProgressCallback] = None
    ) -> BatchSummary:
        if self.is_processing:
            raise BatchInProgressError("Batch processing already in progress")

        batch_id = generate_id("batch")
        self.is_processing = True
        self.current_batch_id = batch_id

        files = config.files
        progress = BatchProgress(total=len(files))
        start_time = datetime.now()
        logger.info(f"Batch {batch_id} started: {len(files)} files, concurrency {config.concurrency}")

        def emit() -> None:
            if on_progress is not None:
                on_progress(progress.model_copy())

        async def process_file(index: int, file: UploadedFile) -> BatchResult:
            started = time.monotonic()
            progress.current = file.name
            emit()

            try:
                analysis = await self._evaluate_file(file, config)
                if config.save_results:
                    await self.store.save_item("analyses", analysis.process_id, analysis)
                result = BatchResult(
                    file_id=file.id,
                    file_name=file.name,
                    success=True,
                    result=analysis,
                    duration=int((time.monotonic() - started) * 1000),
                )
                progress.completed += 1
                logger.info(f"{file.name} evaluated")
            except Exception as e:
                result = BatchResult(
                    file_id=file.id,
                    file_name=file.name,
                    success=False,
                    error=_error_message(e),
                    duration=int((time.monotonic() - started) * 1000),
                )
                progress.failed += 1
                logger.error(f"{file.name} failed: {e}")
                if not config.skip_errors:
                    self._update_percentage(progress)
                    emit()
                    raise

            self._update_percentage(progress)
            emit()
            return result

        with logger.contextualize(run=batch_id):
            try:
                results = await run_bounded(
                    files,
                    process_file,
                    concurrency=config.concurrency,
                    should_continue=lambda: self.current_batch_id == batch_id,
                )

                if self.current_batch_id != batch_id:
                    logger.warning(f"Batch {batch_id} cancelled after {progress.completed + progress.failed} files")
                    raise BatchCancelledError(f"Batch {batch_id} was cancelled")

                end_time = datetime.now()
                total_duration = int((end_time - start_time).total_seconds() * 1000)
                summary = BatchSummary(
                    batch_id=batch_id,
                    start_time=start_time,
                    end_time=end_time,
                    total_files=len(files),
                    success_count=progress.completed,
                    failure_count=progress.failed,
                    results=results,
                    total_duration=total_duration,
                    average_duration=total_duration / len(results) if results else 0,
                    statistics=calculate_statistics(results),
                )

                if config.save_results:
                    await self.store.save_item("batches", batch_id, summary)

                logger.info(f"Batch {batch_id} finished: {summary.success_count} ok, {summary.failure_count} failed")
                return summary
            finally:
                if self.current_batch_id == batch_id:
                    self.is_processing = False
                    self.current_batch_id = None

    @staticmethod
    def _update_percentage(progress: BatchProgress) -> None:
        if progress.total:
            progress.percentage = round((progress.completed + progress.failed) / progress.total * 100)

    async def _evaluate_file(self, file: UploadedFile, config: BatchEvaluationConfig) -> AnalysisResult:
        messages = self.parser_registry.parse(file.content)
        transcript = messages or file.content
        context = build_context(file)
        step = EvaluationStep(config.step)

        topic_analysis = None
        evaluation = None
        if step in (EvaluationStep.ALL, EvaluationStep.TOPIC):
            topic_analysis = await self.engine.analyze_topics(transcript, context)
        if step in (EvaluationStep.ALL, EvaluationStep.REPORT):
            evaluation_input = format_topics_for_evaluation(topic_analysis) if topic_analysis else transcript
            evaluation = await self.engine.evaluate_capabilities(evaluation_input, context, stage=config.stage)

        return AnalysisResult(
            process_id=generate_id("analysis"),
            status=AnalysisStatus.COMPLETED,
            topic_analysis=topic_analysis,
            evaluation=evaluation,
        )

    async def process_batch_with_selection(
        self,
        criteria: SelectionCriteria,
        step: EvaluationStep = EvaluationStep.ALL,
        stage: str = "1",
        concurrency: int = 3,
        skip_errors: bool = True,
        save_results: bool = True,
        on_progress: Optional[ProgressCallback] = None,
    ) -> BatchSummary:
        """Evaluate the conversation files matching ``criteria``."""
        if self.selector is None:
            raise InvalidInputError("No file selector configured for this batch service")

        await self.selector.scan(FileType.CONVERSATION)
        selected = await self.selector.advanced_filter(criteria)
        if not selected:
            raise NoMatchError("No files match the selection criteria")

        config = BatchEvaluationConfig(
            files=selected,
            step=step,
            stage=stage,
            concurrency=concurrency,
            skip_errors=skip_errors,
            save_results=save_results,
        )
        return await self.process_batch(config, on_progress)

    def get_processing_status(self) -> dict:
        return {"is_processing": self.is_processing, "current_batch_id": self.current_batch_id}

    def cancel_batch(self) -> None:
        if self.is_processing:
            logger.info(f"Cancelling batch {self.current_batch_id}")
            self.is_processing = False
            self.current_batch_id = None

    async def get_batch_summary(self, batch_id: str) -> Optional[BatchSummary]:
        item = await self.store.get_item("batches", batch_id)
        return BatchSummary.model_validate(item) if item else None

    async def get_all_batch_summaries(self) -> List[BatchSummary]:
        return [BatchSummary.model_validate(item) for item in await self.store.get_all_items("batches")]

    async def delete_batch_summary(self, batch_id: str) -> bool:
        return await self.store.delete_item("batches", batch_id)

    def export_batch_results(self, summary: BatchSummary, format: str = "json") -> str:
        if format == "json":
            return json.dumps(summary.model_dump(mode="json"), ensure_ascii=False, indent=2)
        if format == "csv":
            return self._export_csv(summary)
        if format == "txt":
            return self._export_txt(summary)
        raise InvalidInputError(f"Unsupported export format: {format}")

    @staticmethod
    def _export_csv(summary: BatchSummary) -> str:
        rows = []
        for result in summary.results:
            evaluation = result.result.evaluation if result.result else None
            rows.append([
                quote_csv(result.file_name),
                "Yes" if result.success else "No",
                str(result.duration),
                format_number(evaluation.overall_rating) if evaluation else "",
                format_number(evaluation.overall_confidence) if evaluation else "",
                quote_csv(result.error) if result.error else "",
            ])
        return csv_lines(CSV_HEADER, rows)

    @staticmethod
    def _export_txt(summary: BatchSummary) -> str:
        statistics = summary.statistics
        lines = [
            "批量评估报告",
            REPORT_RULE,
            f"批次ID: {summary.batch_id}",
            f"开始时间: {format_timestamp(summary.start_time)}",
            f"结束时间: {format_timestamp(summary.end_time)}",
            f"总文件数: {summary.total_files}",
            f"成功: {summary.success_count}",
            f"失败: {summary.failure_count}",
            f"总耗时: {round(summary.total_duration / 1000)}秒",
            f"平均耗时: {round(summary.average_duration / 1000)}秒",
            REPORT_RULE,
            "",
            "统计信息:",
            f"- 主题分析数: {statistics.topic_analysis_count}",
            f"- 能力评估数: {statistics.evaluation_count}",
        ]
        if statistics.average_overall_rating is not None:
            lines.append(f"- 平均评分: {statistics.average_overall_rating:.2f}")
        if statistics.average_confidence is not None:
            lines.append(f"- 平均置信度: {statistics.average_confidence:.2f}")
        lines.extend(["", "详细结果:", REPORT_RULE])

        for result in summary.results:
            lines.extend([
                "",
                f"文件: {result.file_name}",
                f"状态: {'成功' if result.success else '失败'}",
                f"耗时: {round(result.duration / 1000)}秒",
            ])
            evaluation = result.result.evaluation if result.result else None
            if result.success and evaluation:
                lines.append(f"评分: {format_number(evaluation.overall_rating)}")
                lines.append(f"置信度: {format_number(evaluation.overall_confidence)}")
            if result.error:
                lines.append(f"错误: {result.error}")
            lines.append(ITEM_RULE)

        return "\n".join(lines) + "\n"
