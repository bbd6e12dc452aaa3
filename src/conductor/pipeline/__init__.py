"""Command pipelines: stage models, caching, scheduling, and the execution engine."""

from conductor.pipeline.cache import (
    CacheStore,
    MemoryCacheStore,
    SessionCacheStore,
    SqliteCacheStore,
    command_cache_key,
    stage_cache_key,
)
from conductor.pipeline.context import ExecutionContext
from conductor.pipeline.engine import PipelineEngine
from conductor.pipeline.errors import (
    ContextCreationError,
    StageExecutionError,
    StrategyExecutionError,
)
from conductor.pipeline.models import (
    CacheStrategy,
    CommandDefinition,
    CommandResult,
    ErrorKind,
    MergeStrategy,
    PromptsPipeline,
    RetryPolicy,
    StageOutput,
    StageSpec,
    StageState,
)
from conductor.pipeline.provider import DryRunProvider, HttpProvider, Provider

__all__ = [
    "CacheStore",
    "CacheStrategy",
    "CommandDefinition",
    "CommandResult",
    "ContextCreationError",
    "DryRunProvider",
    "ErrorKind",
    "ExecutionContext",
    "HttpProvider",
    "MemoryCacheStore",
    "MergeStrategy",
    "PipelineEngine",
    "PromptsPipeline",
    "Provider",
    "RetryPolicy",
    "SessionCacheStore",
    "SqliteCacheStore",
    "StageExecutionError",
    "StageOutput",
    "StageSpec",
    "StageState",
    "StrategyExecutionError",
    "command_cache_key",
    "stage_cache_key",
]
