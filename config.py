"""
Interview Evaluation Pipeline - Configuration

Settings come from environment variables (or a .env file) and are grouped
by concern. ``load_config()`` builds the aggregate ``Config`` used by the
command line entry point.
"""

from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings
from loguru import logger

from interview_eval.clients import ChatClient
from interview_eval.utils.logger import setup_logging

load_dotenv()


class LLMConfig(BaseSettings):
    """Chat backend settings"""

    base_url: str = "http://localhost:8000"
    chat_path: str = "/menglong/chat"
    api_key: Optional[str] = None
    timeout: float = Field(120.0, gt=0)

    # Model per agent role
    evaluator_model: str = "deepseek-chat"
    interviewer_model: str = "global.anthropic.claude-sonnet-4-5-20250929-v1:0"
    candidate_model: str = "global.anthropic.claude-sonnet-4-5-20250929-v1:0"

    model_config = {"env_prefix": "LLM_", "env_file": ".env", "case_sensitive": False, "extra": "ignore"}


class StorageConfig(BaseSettings):
    """Where stored items and exports live"""

    data_dir: Path = Path("./data/store")
    export_dir: Path = Path("./data/exports")

    @field_validator("data_dir", "export_dir", mode="before")
    @classmethod
    def create_dirs(cls, v: Path) -> Path:
        v = Path(v)
        v.mkdir(parents=True, exist_ok=True)
        return v

    model_config = {"env_prefix": "STORAGE_", "env_file": ".env", "case_sensitive": False, "extra": "ignore"}


class EvaluationSettings(BaseSettings):
    """Defaults for evaluation runs, uploads and simulations"""

    stage: str = "1"
    concurrency: int = Field(3, ge=1)
    skip_errors: bool = True
    save_results: bool = True
    max_upload_mb: int = Field(10, ge=1)
    max_turns: int = Field(20, ge=1)

    @field_validator("stage", mode="before")
    @classmethod
    def valid_stage(cls, v: str) -> str:
        if str(v) not in ("1", "2"):
            raise ValueError("Interview stage must be 1 or 2")
        return str(v)

    model_config = {"env_prefix": "EVAL_", "env_file": ".env", "case_sensitive": False, "extra": "ignore"}


class ApplicationConfig(BaseSettings):
    """General application settings"""

    base_dir: Path = Path(__file__).parent
    log_level: str = "INFO"
    debug: bool = False

    model_config = {"env_file": ".env", "case_sensitive": False, "extra": "ignore"}


class Config:
    """Aggregate configuration; build it through ``load_config()``."""

    def __init__(
        self,
        llm: Optional[LLMConfig] = None,
        storage: Optional[StorageConfig] = None,
        evaluation: Optional[EvaluationSettings] = None,
        app: Optional[ApplicationConfig] = None,
    ):
        self.llm = llm or LLMConfig()
        self.storage = storage or StorageConfig()
        self.evaluation = evaluation or EvaluationSettings()
        self.app = app or ApplicationConfig()

    def create_chat_client(self) -> ChatClient:
        return ChatClient(
            base_url=self.llm.base_url,
            chat_path=self.llm.chat_path,
            api_key=self.llm.api_key,
            model=self.llm.evaluator_model,
            timeout=self.llm.timeout,
        )

    async def validate(self) -> bool:
        """Check that the storage directories exist and the backend answers."""
        if not self.llm.api_key:
            logger.warning("LLM_API_KEY is not set; the backend may reject requests")

        for directory in (self.storage.data_dir, self.storage.export_dir):
            if not directory.exists():
                logger.error(f"Directory missing: {directory}")
                return False

        client = self.create_chat_client()
        try:
            ok = await client.test_connection()
        finally:
            await client.close()

        if ok:
            logger.info("Configuration check passed")
        return ok

    def get_summary(self) -> dict:
        """Configuration summary without secrets"""
        return {
            "backend": {
                "url": f"{self.llm.base_url}{self.llm.chat_path}",
                "api_key": "set" if self.llm.api_key else "missing",
                "timeout": self.llm.timeout,
            },
            "models": {
                "evaluator": self.llm.evaluator_model,
                "interviewer": self.llm.interviewer_model,
                "candidate": self.llm.candidate_model,
            },
            "storage": {
                "data_dir": str(self.storage.data_dir),
                "export_dir": str(self.storage.export_dir),
            },
            "evaluation": {
                "stage": self.evaluation.stage,
                "concurrency": self.evaluation.concurrency,
                "skip_errors": self.evaluation.skip_errors,
                "max_upload_mb": self.evaluation.max_upload_mb,
                "max_turns": self.evaluation.max_turns,
            },
            "log_level": self.app.log_level,
            "debug": self.app.debug,
        }


def load_config(configure_logging: bool = True) -> Config:
    config = Config()
    if configure_logging:
        setup_logging(
            log_level="DEBUG" if config.app.debug else config.app.log_level,
            base_dir=config.app.base_dir,
        )
    return config
