"""
Shared data model of the evaluation pipeline.

Field names of the LLM-produced structures (TopicAnalysisResult,
EvaluationResult) mirror the JSON schema embedded in the evaluator prompts and
must not be renamed.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Dict, List, Optional, Tuple, Union

from loguru import logger
from pydantic import BaseModel, Field, field_validator


DIMENSIONS: Tuple[str, ...] = ("聪明度", "勤奋度", "目标感", "皮实度", "迎难而上", "客户第一")

HIRING_RECOMMENDATIONS: Tuple[str, ...] = ("倾向录用", "倾向不录用", "强烈推荐录用", "追面")

Score = Union[Annotated[int, Field(ge=0, le=100)], Annotated[float, Field(ge=0, le=100)]]


class SpeakerRole(str, Enum):
    INTERVIEWER = "interviewer"
    CANDIDATE = "candidate"


class EvaluationStep(str, Enum):
    """Which part of the pipeline to run: both steps, topics only or the capability report only."""
    ALL = "all"
    TOPIC = "topic"
    REPORT = "report"


class AnalysisStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class InterviewStatus(str, Enum):
    COMPLETED = "completed"
    ERROR = "error"
    INTERRUPTED = "interrupted"


class HistoryStatus(str, Enum):
    COMPLETED = "completed"
    IN_PROGRESS = "in_progress"
    FAILED = "failed"


class FileType(str, Enum):
    JD = "jd"
    RESUME = "resume"
    CONVERSATION = "conversation"
    REPORT = "report"


# --- Interview input ---

class InterviewContext(BaseModel):
    """JD and resume for one interview; ``transcript`` is an optional reference example."""
    jd: str
    resume: str
    transcript: Optional[str] = None

    model_config = {"frozen": True}


class ConversationMessage(BaseModel):
    role: SpeakerRole
    content: str
    timestamp: datetime = Field(default_factory=datetime.now)
    turn: int = 0
    thinking: Optional[str] = None

    model_config = {"use_enum_values": True}


Transcript = Union[str, List[ConversationMessage]]


# --- Topic analysis ---

class TaggedMessage(BaseModel):
    role: str
    content: str
    name: Optional[str] = None
    timestamp: Optional[str] = None


class Topic(BaseModel):
    topic_name: str
    dialogue: List[TaggedMessage]
    summary: str
    key_points: List[str]
    critical_info: str = ""

    @field_validator("critical_info", mode="before")
    @classmethod
    def join_critical_info(cls, v):
        if v is None:
            return ""
        if isinstance(v, list):
            return "；".join(str(item) for item in v)
        return v


class TopicAnalysisResult(BaseModel):
    analysis_date: str
    topics: List[Topic]
    overall_summary: str


# --- Capability evaluation ---

class DimensionScore(BaseModel):
    score: Score
    assessment: str
    missing_info: str = ""
    confidence_score: Score
    confidence_justification: str = ""

    @field_validator("missing_info", "confidence_justification", mode="before")
    @classmethod
    def coerce_text(cls, v):
        if v is None or v is False:
            return ""
        return v if isinstance(v, str) else str(v)


class EvaluationResult(BaseModel):
    candidate_name: str
    position: str
    evaluation_date: str
    dimensions: Dict[str, DimensionScore]
    overall_rating: Score
    overall_confidence: Score
    strengths: List[str]
    weaknesses: List[str]
    interviewer_rating_assessment: Optional[str] = None
    interviewer_rating: Optional[Union[float, str]] = None
    suggested_follow_up_questions: Dict[str, str] = Field(default_factory=dict)
    summary: str
    hiring_recommendation: str

    @field_validator("dimensions")
    @classmethod
    def require_all_dimensions(cls, v: Dict[str, DimensionScore]) -> Dict[str, DimensionScore]:
        missing = [dim for dim in DIMENSIONS if dim not in v]
        if missing:
            raise ValueError(f"missing dimensions: {', '.join(missing)}")
        extra = [key for key in v if key not in DIMENSIONS]
        if extra:
            logger.warning(f"Dropping unknown dimensions from evaluation: {extra}")
        return {dim: v[dim] for dim in DIMENSIONS}

    @field_validator("suggested_follow_up_questions", mode="before")
    @classmethod
    def default_questions(cls, v):
        return {} if v is None else v

    @field_validator("hiring_recommendation")
    @classmethod
    def normalize_recommendation(cls, v: str) -> str:
        label = v.strip()
        if label in HIRING_RECOMMENDATIONS:
            return label
        found = [rec for rec in HIRING_RECOMMENDATIONS if rec in label]
        if len(found) == 1:
            return found[0]
        raise ValueError(f"unknown hiring recommendation: {v!r}")


class AnalysisResult(BaseModel):
    process_id: str
    status: AnalysisStatus
    timestamp: datetime = Field(default_factory=datetime.now)
    topic_analysis: Optional[TopicAnalysisResult] = None
    evaluation: Optional[EvaluationResult] = None
    error: Optional[str] = None

    model_config = {"use_enum_values": True}


# --- Uploaded files ---

class FileMetadata(BaseModel):
    original_name: str
    extension: str
    candidate_name: Optional[str] = None
    position: Optional[str] = None
    stage: Optional[str] = None
    jd: Optional[str] = None


class UploadedFile(BaseModel):
    id: str
    name: str
    type: FileType
    content: str
    metadata: FileMetadata
    uploaded_at: datetime = Field(default_factory=datetime.now)
    size: int

    model_config = {"use_enum_values": True}


class SelectionCriteria(BaseModel):
    """File filter used by FileManager.filter_files and InteractiveSelector.advanced_filter."""
    search: Optional[str] = None
    jd: Optional[str] = None
    candidate: Optional[str] = None
    file_type: Optional[FileType] = None
    date_range: Optional[Tuple[datetime, datetime]] = None
    size_range: Optional[Tuple[int, int]] = None
    has_metadata: Optional[bool] = None

    model_config = {"use_enum_values": True}


# --- Simulated interviews ---

class SimulationConfig(BaseModel):
    jd: str
    resume: str
    transcript: Optional[str] = None
    max_turns: int = Field(20, ge=1)


class InterviewMetadata(BaseModel):
    candidate_name: str
    position: str
    start_time: datetime = Field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    total_turns: int = 0
    ended_by_interviewer: bool = False
    config: SimulationConfig


class InterviewResult(BaseModel):
    session_id: str
    messages: List[ConversationMessage] = Field(default_factory=list)
    metadata: InterviewMetadata
    status: InterviewStatus
    error: Optional[str] = None

    model_config = {"use_enum_values": True}


# --- History ---

class RecordMetadata(BaseModel):
    total_turns: Optional[int] = None
    duration: Optional[float] = Field(None, description="Interview duration in seconds")
    overall_rating: Optional[Union[int, float]] = None
    confidence: Optional[Union[int, float]] = None


class HistoryRecord(BaseModel):
    id: str
    interview_result: Optional[InterviewResult] = None
    analysis_result: Optional[AnalysisResult] = None
    candidate_name: str
    position: str
    interview_date: datetime
    status: HistoryStatus
    tags: List[str] = Field(default_factory=list)
    notes: Optional[str] = None
    metadata: RecordMetadata = Field(default_factory=RecordMetadata)

    model_config = {"use_enum_values": True}


class HistoryFilter(BaseModel):
    search: Optional[str] = None
    candidate_name: Optional[str] = None
    position: Optional[str] = None
    status: Optional[HistoryStatus] = None
    date_range: Optional[Tuple[datetime, datetime]] = None
    tags: Optional[List[str]] = None
    has_analysis: Optional[bool] = None
    min_rating: Optional[float] = None
    max_rating: Optional[float] = None

    model_config = {"use_enum_values": True}


class ComparisonData(BaseModel):
    candidates: List[str]
    positions: List[str]
    ratings: List[float]
    confidences: List[float]
    strengths: List[List[str]]
    weaknesses: List[List[str]]
    dimensions: Dict[str, List[float]]


class ComparisonResult(BaseModel):
    records: List[HistoryRecord]
    comparison: ComparisonData


class TopCandidate(BaseModel):
    name: str
    rating: float


class HistoryStatistics(BaseModel):
    total_records: int = 0
    completed_records: int = 0
    failed_records: int = 0
    average_rating: float = 0
    average_confidence: float = 0
    top_candidates: List[TopCandidate] = Field(default_factory=list)
    position_distribution: Dict[str, int] = Field(default_factory=dict)
    tag_distribution: Dict[str, int] = Field(default_factory=dict)
    date_range: Optional[Tuple[datetime, datetime]] = None


# --- Batch evaluation ---

class BatchEvaluationConfig(BaseModel):
    files: List[UploadedFile]
    step: EvaluationStep = EvaluationStep.ALL
    stage: str = "1"
    concurrency: int = Field(3, ge=1)
    skip_errors: bool = True
    save_results: bool = True

    model_config = {"use_enum_values": True}


class BatchProgress(BaseModel):
    total: int
    completed: int = 0
    failed: int = 0
    current: Optional[str] = None
    percentage: int = 0


class BatchResult(BaseModel):
    file_id: str
    file_name: str
    success: bool
    result: Optional[AnalysisResult] = None
    error: Optional[str] = None
    duration: int = Field(0, description="Milliseconds")


class BatchStatistics(BaseModel):
    topic_analysis_count: int = 0
    evaluation_count: int = 0
    average_overall_rating: Optional[float] = None
    average_confidence: Optional[float] = None


class BatchSummary(BaseModel):
    batch_id: str
    start_time: datetime
    end_time: datetime
    total_files: int
    success_count: int
    failure_count: int
    results: List[BatchResult]
    total_duration: int = Field(..., description="Milliseconds")
    average_duration: float
    statistics: BatchStatistics


# --- Engine batch and derived insights ---

class EvaluationItem(BaseModel):
    name: str
    transcript: Transcript
    context: InterviewContext


class BatchItemResult(BaseModel):
    name: str
    topic_analysis: Optional[TopicAnalysisResult] = None
    evaluation: Optional[EvaluationResult] = None
    error: Optional[str] = None


class TopicInsights(BaseModel):
    total_topics: int
    topic_names: List[str]
    key_insights: List[str]
    critical_info: List[str]
    dialogue_count: int


class DimensionSnapshot(BaseModel):
    dimension: str
    score: float
    confidence: float


class CapabilityInsights(BaseModel):
    average_score: float
    average_confidence: float
    top_strengths: List[str]
    top_weaknesses: List[str]
    dimension_scores: List[DimensionSnapshot]
    follow_up_questions: int
    recommendation: str


class ConfidenceLevels(BaseModel):
    high: List[str] = Field(default_factory=list)
    medium: List[str] = Field(default_factory=list)
    low: List[str] = Field(default_factory=list)


class FollowUpSuggestion(BaseModel):
    dimension: str
    confidence: float
    questions: List[str]
    missing_info: str


class ComprehensiveReport(BaseModel):
    summary: str
    topic_insights: Optional[TopicInsights] = None
    capability_insights: Optional[CapabilityInsights] = None
    recommendations: List[str] = Field(default_factory=list)
    follow_up_actions: List[str] = Field(default_factory=list)


class TranscriptMetadata(BaseModel):
    message_count: int
    duration: Optional[float] = Field(None, description="Seconds between first and last message")
    participant_count: int
