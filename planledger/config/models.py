"""Configuration models for planledger."""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class WorkspaceConfig(BaseModel):
    """Workspace location."""

    dir_name: str = Field(default=".planledger", description="Workspace directory under the project root")
    project_id: str = Field(default="", description="Project identifier (defaults to root dir name)")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    level: str = Field(default="INFO", description="Log level")
    log_dir: Path = Field(default=Path(".planledger/logs"), description="Log directory")
    rotation_mb: int = Field(default=10, description="Log rotation size (MB)")
    retention_days: int = Field(default=7, description="Log retention days")
    file_logging: bool = Field(default=False, description="Write logs to log_dir")


class PlanledgerConfig(BaseModel):
    """Main configuration model."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
