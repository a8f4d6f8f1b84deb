import asyncio
from datetime import datetime, timedelta

import pytest

from interview_eval.schema import FileMetadata, SelectionCriteria, UploadedFile
from interview_eval.storage.file_manager import FileManager
from interview_eval.storage.selector import InteractiveSelector
from interview_eval.utils.error_handlers import InvalidInputError

BASE_TIME = datetime(2025, 1, 1, 9, 0, 0)


def make_file(index, candidate=None, position=None, file_type="conversation", size=100):
    return UploadedFile(
        id=f"file_{index}",
        name=f"{candidate or 'unknown'}_{index}.txt",
        type=file_type,
        content=f"面试官: 第{index}场面试",
        metadata=FileMetadata(
            original_name=f"{index}.txt", extension=".txt", candidate_name=candidate, position=position
        ),
        uploaded_at=BASE_TIME + timedelta(hours=index),
        size=size,
    )


@pytest.fixture
def selector(store):
    manager = FileManager(store)
    files = [
        make_file(1, "张三", "后端工程师", size=100),
        make_file(2, "李四", "产品经理", size=300),
        make_file(3, "王五", "后端工程师", size=200),
        make_file(4, None, None, file_type="jd", size=50),
    ]

    async def setup():
        for f in files:
            await manager.save_file(f)

    asyncio.run(setup())
    return InteractiveSelector(manager)


def test_scan_sorts_by_name(selector):
    files = asyncio.run(selector.scan())
    assert [f.name for f in files] == sorted(f.name for f in files)
    assert len(asyncio.run(selector.scan("conversation"))) == 3


def test_sort_by_size_descending(store, selector):
    selector = InteractiveSelector(selector.file_manager, sort_by="size", sort_order="desc")
    files = asyncio.run(selector.scan())
    assert [f.size for f in files] == [300, 200, 100, 50]


def test_invalid_sort_key(store):
    with pytest.raises(InvalidInputError):
        InteractiveSelector(FileManager(store), sort_by="rating")


def test_advanced_filter(selector):
    asyncio.run(selector.scan())

    backend = asyncio.run(selector.advanced_filter(SelectionCriteria(jd="后端")))
    assert {f.id for f in backend} == {"file_1", "file_3"}

    sized = asyncio.run(selector.advanced_filter(SelectionCriteria(jd="后端", size_range=(150, 250))))
    assert [f.id for f in sized] == ["file_3"]

    without_metadata = asyncio.run(selector.advanced_filter(SelectionCriteria(has_metadata=False)))
    assert [f.id for f in without_metadata] == ["file_4"]

    window = (BASE_TIME + timedelta(hours=1), BASE_TIME + timedelta(hours=2))
    dated = asyncio.run(selector.advanced_filter(SelectionCriteria(date_range=window, search="面试")))
    assert {f.id for f in dated} == {"file_1", "file_2"}

    assert len(selector.reset_filters()) == 4


def test_parse_selection_string(selector):
    asyncio.run(selector.scan())

    assert selector.parse_selection_string("1,3,2-3,x,9") == [0, 1, 2]
    assert selector.parse_selection_string("all") == [0, 1, 2, 3]
    assert selector.parse_selection_string(" , ") == []

    selected = selector.select_by_indices(selector.parse_selection_string("2"))
    assert selected == [selector.get_filtered_files()[1]]


def test_selection_stats_and_summary(selector):
    asyncio.run(selector.scan())
    selected = selector.select_by_ids(["file_1", "file_2"])

    stats = selector.get_selection_stats(selected)
    assert stats["total_files"] == 4
    assert stats["selection_rate"] == 0.5

    summary = selector.get_metadata_summary()
    assert summary["file_types"] == {"conversation": 3, "jd": 1}
    assert summary["candidates_count"] == 3
    assert summary["positions_count"] == 2
    assert summary["date_range"] == (BASE_TIME + timedelta(hours=1), BASE_TIME + timedelta(hours=4))


def test_export_selection(selector):
    asyncio.run(selector.scan())
    selected = selector.select_by_ids(["file_1"])

    csv = selector.export_selection(selected, "csv")
    assert csv.splitlines()[0] == "ID,Name,Type,Candidate,Position,Size,Upload Date"
    assert csv.splitlines()[1] == "file_1,张三_1.txt,conversation,张三,后端工程师,100,2025-01-01T10:00:00"
    assert not csv.endswith("\n")

    assert selector.export_selection(selected, "txt") == "张三_1.txt (conversation) - 张三 - 后端工程师"

    with pytest.raises(InvalidInputError):
        selector.export_selection(selected, "xml")
