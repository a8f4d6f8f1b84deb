import asyncio
from datetime import datetime

import pytest
from loguru import logger

from interview_eval.evaluation.batch import BatchEvaluationService, calculate_statistics
from interview_eval.evaluation.engine import EvaluationEngine
from interview_eval.schema import (
    AnalysisResult,
    BatchEvaluationConfig,
    BatchResult,
    BatchStatistics,
    BatchSummary,
    EvaluationResult,
    FileMetadata,
    SelectionCriteria,
    TopicAnalysisResult,
    UploadedFile,
)
from interview_eval.storage.file_manager import FileManager
from interview_eval.storage.selector import InteractiveSelector
from interview_eval.utils.error_handlers import (
    BatchCancelledError,
    BatchInProgressError,
    InvalidResultError,
    NoMatchError,
)
from interview_eval.utils.logger import setup_logging


class ScriptedEvaluator:
    def __init__(self, topic_data, evaluation_data):
        self.topic_data = topic_data
        self.evaluation_data = evaluation_data

    async def analyze_topics(self, transcript, context):
        await asyncio.sleep(0)
        if "FAIL" in str(transcript):
            raise InvalidResultError("Test error")
        return TopicAnalysisResult.model_validate(self.topic_data)

    async def evaluate_interview(self, transcript, context, stage="1", previous_summary=None):
        await asyncio.sleep(0)
        return EvaluationResult.model_validate(self.evaluation_data)


def make_file(file_id, content="面试官: 你好\n候选人: 您好", name=None):
    return UploadedFile(
        id=file_id,
        name=name or f"{file_id}.txt",
        type="conversation",
        content=content,
        metadata=FileMetadata(original_name=name or f"{file_id}.txt", extension=".txt", candidate_name="张三"),
        size=len(content.encode("utf-8")),
    )


@pytest.fixture
def service(store, topic_data, evaluation_data):
    engine = EvaluationEngine(ScriptedEvaluator(topic_data, evaluation_data))
    return BatchEvaluationService(engine, store)


def test_failure_isolation(service):
    files = [make_file("file_a"), make_file("file_b", content="FAIL"), make_file("file_c")]

    summary = asyncio.run(service.process_batch(BatchEvaluationConfig(files=files, concurrency=2)))

    assert summary.total_files == 3
    assert summary.success_count == 2
    assert summary.failure_count == 1
    by_id = {r.file_id: r for r in summary.results}
    assert set(by_id) == {"file_a", "file_b", "file_c"}
    assert by_id["file_b"].error == "Test error"
    assert by_id["file_a"].result.evaluation.overall_rating == 85
    assert summary.statistics.evaluation_count == 2
    assert not service.is_processing


def test_progress_is_monotonic(service):
    files = [make_file(f"file_{i}", content="FAIL" if i == 2 else "面试官: 你好") for i in range(5)]
    updates = []

    asyncio.run(service.process_batch(BatchEvaluationConfig(files=files, concurrency=3), updates.append))

    done = [u.completed + u.failed for u in updates]
    percentages = [u.percentage for u in updates]
    assert done == sorted(done)
    assert percentages == sorted(percentages)
    assert percentages[-1] == 100
    assert updates[-1].completed == 4
    assert updates[-1].failed == 1


def test_stop_on_first_error_without_skip(service):
    files = [make_file("file_a", content="FAIL"), make_file("file_b")]

    with pytest.raises(InvalidResultError):
        asyncio.run(service.process_batch(BatchEvaluationConfig(files=files, concurrency=1, skip_errors=False)))
    assert not service.is_processing


def test_rejects_second_batch_while_first_is_running(service):
    async def scenario():
        first = asyncio.ensure_future(service.process_batch(BatchEvaluationConfig(files=[make_file("file_a")])))
        await asyncio.sleep(0)
        status = service.get_processing_status()
        with pytest.raises(BatchInProgressError):
            await service.process_batch(BatchEvaluationConfig(files=[make_file("file_b")]))
        return status, await first

    status, summary = asyncio.run(scenario())

    assert status == {"is_processing": True, "current_batch_id": summary.batch_id}
    assert [r.file_id for r in summary.results] == ["file_a"]
    assert summary.success_count == 1
    assert not service.is_processing


def test_cancel_stops_new_files(service, store):
    files = [make_file(f"file_{i}") for i in range(4)]

    def on_progress(progress):
        if progress.completed == 1:
            service.cancel_batch()

    with pytest.raises(BatchCancelledError):
        asyncio.run(service.process_batch(BatchEvaluationConfig(files=files, concurrency=1), on_progress))

    assert service.get_processing_status() == {"is_processing": False, "current_batch_id": None}
    assert asyncio.run(store.get_all_items("batches")) == []


def test_summary_is_persisted(service):
    summary = asyncio.run(service.process_batch(BatchEvaluationConfig(files=[make_file("file_a")])))

    loaded = asyncio.run(service.get_batch_summary(summary.batch_id))
    assert loaded.batch_id == summary.batch_id
    assert loaded.results[0].result.evaluation.candidate_name == "张三"
    assert len(asyncio.run(service.get_all_batch_summaries())) == 1

    assert asyncio.run(service.delete_batch_summary(summary.batch_id))
    assert asyncio.run(service.get_batch_summary(summary.batch_id)) is None


def test_statistics_without_evaluations():
    statistics = calculate_statistics([
        BatchResult(file_id="f", file_name="f.txt", success=False, error="boom"),
    ])
    assert statistics == BatchStatistics()
    assert statistics.average_overall_rating is None
    assert calculate_statistics([]).evaluation_count == 0


def test_csv_export(service, make_evaluation):
    analysis = AnalysisResult(
        process_id="analysis_1",
        status="completed",
        evaluation=EvaluationResult.model_validate(make_evaluation(rating=7.5, confidence=80)),
    )
    now = datetime(2025, 1, 1, 12, 0, 0)
    summary = BatchSummary(
        batch_id="batch_1",
        start_time=now,
        end_time=now,
        total_files=2,
        success_count=1,
        failure_count=1,
        results=[
            BatchResult(file_id="a", file_name="a.txt", success=True, result=analysis, duration=1200),
            BatchResult(file_id="b", file_name="b.txt", success=False, error="Test error", duration=300),
        ],
        total_duration=1500,
        average_duration=750,
        statistics=BatchStatistics(),
    )

    lines = service.export_batch_results(summary, "csv").splitlines()

    assert lines[0] == "File Name,Success,Duration (ms),Overall Rating,Confidence,Error"
    assert lines[1] == '"a.txt",Yes,1200,7.5,80,'
    assert lines[2] == '"b.txt",No,300,,,"Test error"'

    text = service.export_batch_results(summary, "txt")
    assert "批次ID: batch_1" in text
    assert "错误: Test error" in text


def test_selection_batch(store, topic_data, evaluation_data):
    manager = FileManager(store)
    selector = InteractiveSelector(manager)
    engine = EvaluationEngine(ScriptedEvaluator(topic_data, evaluation_data))
    service = BatchEvaluationService(engine, store, selector=selector)

    async def scenario():
        await service.initialize()
        await manager.save_file(make_file("file_a", name="张三_dev_x_1.txt"))
        await manager.save_file(make_file("file_b", name="李四_qa_x_1.txt"))

        with pytest.raises(NoMatchError):
            await service.process_batch_with_selection(SelectionCriteria(search="王五"))
        return await service.process_batch_with_selection(SelectionCriteria(search="张三_dev"), concurrency=1)

    summary = asyncio.run(scenario())

    assert [r.file_id for r in summary.results] == ["file_a"]
    assert summary.success_count == 1


def test_batch_log_records_carry_the_batch_id(tmp_path, service):
    setup_logging("DEBUG", tmp_path)
    try:
        summary = asyncio.run(service.process_batch(BatchEvaluationConfig(files=[make_file("file_a")])))
        logger.info("outside any batch")
    finally:
        logger.remove()

    batch_log = (tmp_path / "logs" / "batches.log").read_text(encoding="utf-8")
    assert f"{summary.batch_id} | INFO     | file_a.txt evaluated" in batch_log
    assert "outside any batch" not in batch_log

    pipeline_log = next((tmp_path / "logs").glob("pipeline_*.log")).read_text(encoding="utf-8")
    assert "| - | " in pipeline_log
    assert "outside any batch" in pipeline_log
