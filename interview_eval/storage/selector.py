"""
Interactive file selection for batch runs.

Keeps the last scanned and filtered file lists so a CLI user can pick files
by position (``"1,3,5-8"``) after looking at the filtered listing.
"""

import json
from typing import Any, Dict, List, Optional, Union

from loguru import logger

from interview_eval.schema import FileType, SelectionCriteria, UploadedFile
from interview_eval.storage.file_manager import FileManager
from interview_eval.utils.error_handlers import InvalidInputError
from interview_eval.utils.export import csv_lines

SORT_KEYS = {
    "name": lambda f: f.name,
    "date": lambda f: f.uploaded_at,
    "type": lambda f: f.type,
    "size": lambda f: f.size,
}

EXPORT_HEADER = ("ID", "Name", "Type", "Candidate", "Position", "Size", "Upload Date")


class InteractiveSelector:
    def __init__(self, file_manager: FileManager, sort_by: str = "name", sort_order: str = "asc"):
        if sort_by not in SORT_KEYS:
            raise InvalidInputError(f"Unknown sort key: {sort_by}")
        if sort_order not in ("asc", "desc"):
            raise InvalidInputError(f"Unknown sort order: {sort_order}")

        self.file_manager = file_manager
        self.sort_by = sort_by
        self.sort_order = sort_order
        self.scanned_files: List[UploadedFile] = []
        self.filtered_files: List[UploadedFile] = []

    async def initialize(self) -> None:
        await self.file_manager.initialize()

    def _sorted(self, files: List[UploadedFile]) -> List[UploadedFile]:
        return sorted(files, key=SORT_KEYS[self.sort_by], reverse=self.sort_order == "desc")

    async def scan(self, file_type: Optional[Union[FileType, str]] = None) -> List[UploadedFile]:
        self.scanned_files = await self.file_manager.get_files(file_type)
        self.filtered_files = self._sorted(self.scanned_files)
        logger.debug(f"Scanned {len(self.scanned_files)} files")
        return list(self.filtered_files)

    async def filter(self, criteria: SelectionCriteria) -> List[UploadedFile]:
        """Basic filtering (type, jd, candidate, date range) delegated to the file manager."""
        self.filtered_files = self._sorted(await self.file_manager.filter_files(criteria))
        return list(self.filtered_files)

    async def advanced_filter(self, criteria: SelectionCriteria) -> List[UploadedFile]:
        """Filter the scanned files; every given criterion must match."""
        if not self.scanned_files:
            await self.scan()

        files = list(self.scanned_files)

        if criteria.search:
            needle = criteria.search.lower()
            files = [
                f for f in files
                if needle in f.name.lower()
                or needle in f.content.lower()
                or needle in (f.metadata.candidate_name or "").lower()
                or needle in (f.metadata.position or "").lower()
            ]

        if criteria.jd:
            needle = criteria.jd.lower()
            files = [
                f for f in files
                if needle in (f.metadata.jd or "").lower() or needle in (f.metadata.position or "").lower()
            ]

        if criteria.candidate:
            needle = criteria.candidate.lower()
            files = [
                f for f in files
                if needle in (f.metadata.candidate_name or "").lower() or needle in f.name.lower()
            ]

        if criteria.file_type:
            files = [f for f in files if f.type == criteria.file_type]

        if criteria.date_range:
            start, end = criteria.date_range
            files = [f for f in files if start <= f.uploaded_at <= end]

        if criteria.size_range:
            low, high = criteria.size_range
            files = [f for f in files if low <= f.size <= high]

        if criteria.has_metadata is not None:
            files = [
                f for f in files
                if bool(f.metadata.candidate_name or f.metadata.position) == criteria.has_metadata
            ]

        self.filtered_files = self._sorted(files)
        return list(self.filtered_files)

    def select_by_indices(self, indices: List[int]) -> List[UploadedFile]:
        return [self.filtered_files[i] for i in indices if 0 <= i < len(self.filtered_files)]

    def select_by_ids(self, ids: List[str]) -> List[UploadedFile]:
        wanted = set(ids)
        return [f for f in self.filtered_files if f.id in wanted]

    def select_all(self) -> List[UploadedFile]:
        return list(self.filtered_files)

    def parse_selection_string(self, selection: str) -> List[int]:
        """
        Turn ``"1,3,5-8"`` (1-based, as shown to the user) into sorted 0-based indices.

        ``"all"`` selects every filtered file. Tokens that are not numbers or
        ranges are skipped, and so are indices outside the filtered list.
        """
        count = len(self.filtered_files)
        if selection.strip().lower() == "all":
            return list(range(count))

        indices = set()
        for token in selection.split(","):
            token = token.strip()
            if not token:
                continue
            try:
                if "-" in token:
                    start_text, end_text = token.split("-", 1)
                    start, end = int(start_text) - 1, int(end_text) - 1
                else:
                    start = end = int(token) - 1
            except ValueError:
                logger.debug(f"Skipping invalid selection token: {token!r}")
                continue
            indices.update(i for i in range(start, end + 1) if 0 <= i < count)

        return sorted(indices)

    def get_selection_stats(self, selected: List[UploadedFile]) -> Dict[str, Any]:
        filtered = len(self.filtered_files)
        return {
            "selected_files": selected,
            "total_files": len(self.scanned_files),
            "filtered_files": filtered,
            "selection_rate": len(selected) / filtered if filtered else 0,
        }

    def get_metadata_summary(self) -> Dict[str, Any]:
        files = self.scanned_files
        if not files:
            return {
                "total_files": 0,
                "file_types": {},
                "candidates_count": 0,
                "positions_count": 0,
                "average_size": 0,
                "date_range": None,
            }

        file_types: Dict[str, int] = {}
        for f in files:
            file_types[f.type] = file_types.get(f.type, 0) + 1
        dates = [f.uploaded_at for f in files]

        return {
            "total_files": len(files),
            "file_types": file_types,
            "candidates_count": len({f.metadata.candidate_name for f in files if f.metadata.candidate_name}),
            "positions_count": len({f.metadata.position for f in files if f.metadata.position}),
            "average_size": sum(f.size for f in files) / len(files),
            "date_range": (min(dates), max(dates)),
        }

    def export_selection(self, selected: List[UploadedFile], format: str = "json") -> str:
        if format == "json":
            return json.dumps([f.model_dump(mode="json") for f in selected], ensure_ascii=False, indent=2)
        if format == "csv":
            rows = [
                [
                    f.id,
                    f.name,
                    f.type,
                    f.metadata.candidate_name or "",
                    f.metadata.position or "",
                    str(f.size),
                    f.uploaded_at.isoformat(),
                ]
                for f in selected
            ]
            return csv_lines(EXPORT_HEADER, rows).rstrip("\n")
        if format == "txt":
            return "\n".join(
                f"{f.name} ({f.type}) - {f.metadata.candidate_name or 'Unknown'} - {f.metadata.position or 'Unknown'}"
                for f in selected
            )
        raise InvalidInputError(f"Unsupported export format: {format}")

    def get_filtered_files(self) -> List[UploadedFile]:
        return list(self.filtered_files)

    def get_scanned_files(self) -> List[UploadedFile]:
        return list(self.scanned_files)

    def reset_filters(self) -> List[UploadedFile]:
        self.filtered_files = self._sorted(self.scanned_files)
        return list(self.filtered_files)
