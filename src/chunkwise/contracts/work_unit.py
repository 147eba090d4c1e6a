"""Work unit and fault policy configuration contracts.

These are the runtime (frozen dataclass) counterparts of the pydantic
settings in chunkwise.core.config. Settings are validated at the trust
boundary (YAML/env); these are what the engine actually consumes.

Collaborators are wired explicitly: a WorkUnitDefinition holds direct
references to its source, transform and sink. There is no runtime type
discovery.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

from chunkwise.contracts.enums import BackoffMode, ErrorCategory, FaultVerdict
from chunkwise.contracts.errors import ConfigurationError

if TYPE_CHECKING:
    from chunkwise.core.config import FaultPolicySettings, WorkUnitSettings
    from chunkwise.plugins.protocols import SinkProtocol, SourceProvider, TransformProtocol


DEFAULT_CLASSIFICATION: Mapping[str, FaultVerdict] = MappingProxyType(
    {
        ErrorCategory.TRANSIENT.value: FaultVerdict.RETRY,
        ErrorCategory.VALIDATION.value: FaultVerdict.SKIP,
        ErrorCategory.FATAL.value: FaultVerdict.FATAL,
    }
)

# Builtin exceptions that are transient by nature. Matched by class name
# anywhere in the exception's MRO, so subclasses (e.g. ConnectionResetError)
# inherit the category.
DEFAULT_EXCEPTION_CATEGORIES: Mapping[str, str] = MappingProxyType(
    {
        "TimeoutError": ErrorCategory.TRANSIENT.value,
        "ConnectionError": ErrorCategory.TRANSIENT.value,
    }
)

DEFAULT_SKIP_AFTER_RETRY: frozenset[str] = frozenset({ErrorCategory.TRANSIENT.value})


@dataclass(frozen=True)
class FaultPolicyConfig:
    """Retry/skip configuration for one work unit.

    retry_limit is the number of RETRIES, not attempts. retry_limit=2
    means: try, retry, retry (3 attempts total).

    skip_limit bounds silent data loss: the (skip_limit + 1)-th skip in an
    execution is converted to FATAL.
    """

    retry_limit: int = 0
    skip_limit: int = 0
    backoff: BackoffMode = BackoffMode.FIXED
    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 60.0
    exponential_base: float = 2.0
    jitter_seconds: float = 0.0
    classification: Mapping[str, FaultVerdict] = field(default_factory=lambda: DEFAULT_CLASSIFICATION)
    exception_categories: Mapping[str, str] = field(default_factory=lambda: DEFAULT_EXCEPTION_CATEGORIES)
    skip_after_retry: frozenset[str] = DEFAULT_SKIP_AFTER_RETRY

    def __post_init__(self) -> None:
        if self.retry_limit < 0:
            raise ConfigurationError(f"retry_limit must be >= 0, got {self.retry_limit}")
        if self.skip_limit < 0:
            raise ConfigurationError(f"skip_limit must be >= 0, got {self.skip_limit}")
        if self.initial_delay_seconds < 0 or self.max_delay_seconds < 0 or self.jitter_seconds < 0:
            raise ConfigurationError("retry delays must be >= 0")
        if self.exponential_base < 1.0:
            raise ConfigurationError(f"exponential_base must be >= 1.0, got {self.exponential_base}")
        for category, verdict in self.classification.items():
            if not isinstance(verdict, FaultVerdict):
                raise ConfigurationError(f"classification[{category!r}] must be FaultVerdict, got {verdict!r}")
        object.__setattr__(self, "classification", MappingProxyType(dict(self.classification)))
        object.__setattr__(self, "exception_categories", MappingProxyType(dict(self.exception_categories)))
        object.__setattr__(self, "skip_after_retry", frozenset(self.skip_after_retry))

    @property
    def max_attempts(self) -> int:
        return self.retry_limit + 1

    @classmethod
    def no_retry(cls, *, skip_limit: int = 0) -> FaultPolicyConfig:
        return cls(retry_limit=0, skip_limit=skip_limit)

    @classmethod
    def from_settings(cls, settings: FaultPolicySettings) -> FaultPolicyConfig:
        """Factory from validated FaultPolicySettings.

        The settings table only names categories the user overrides; the
        defaults fill in the rest.
        """
        classification = dict(DEFAULT_CLASSIFICATION)
        classification.update({k: FaultVerdict(v) for k, v in settings.classification.items()})
        exception_categories = dict(DEFAULT_EXCEPTION_CATEGORIES)
        exception_categories.update(settings.exception_categories)
        return cls(
            retry_limit=settings.retry_limit,
            skip_limit=settings.skip_limit,
            backoff=BackoffMode(settings.backoff),
            initial_delay_seconds=settings.initial_delay_seconds,
            max_delay_seconds=settings.max_delay_seconds,
            exponential_base=settings.exponential_base,
            jitter_seconds=settings.jitter_seconds,
            classification=classification,
            exception_categories=exception_categories,
            skip_after_retry=frozenset(settings.skip_after_retry),
        )


@dataclass(frozen=True)
class WorkUnitDefinition:
    """Immutable description of one chunk-loop configuration (one step)."""

    name: str
    chunk_size: int
    source: SourceProvider
    transform: TransformProtocol
    sink: SinkProtocol
    fault_policy: FaultPolicyConfig = field(default_factory=FaultPolicyConfig)
    partition_count: int = 1
    key_range: tuple[int, int] | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigurationError("work unit name must not be empty")
        if self.chunk_size < 1:
            raise ConfigurationError(f"chunk_size must be > 0, got {self.chunk_size}")
        if self.partition_count < 1:
            raise ConfigurationError(f"partition_count must be >= 1, got {self.partition_count}")
        if self.key_range is not None:
            start, end = self.key_range
            if start < 0 or start > end:
                raise ConfigurationError(f"key_range must satisfy 0 <= start <= end, got {self.key_range}")

    @classmethod
    def from_settings(
        cls,
        name: str,
        settings: WorkUnitSettings,
        *,
        source: SourceProvider,
        transform: TransformProtocol,
        sink: SinkProtocol,
    ) -> WorkUnitDefinition:
        """Build a work unit from settings plus explicitly supplied collaborators."""
        return cls(
            name=name,
            chunk_size=settings.chunk_size,
            source=source,
            transform=transform,
            sink=sink,
            fault_policy=FaultPolicyConfig.from_settings(settings.fault_policy),
            partition_count=settings.partition_count,
            key_range=settings.key_range,
        )


@dataclass(frozen=True)
class JobDefinition:
    """Ordered steps run one after another.

    Each step runs under its own RunIdentity ("<job>.<step>", params), so a
    re-run of the job skips steps that already COMPLETED and resumes the
    first unfinished one.
    """

    name: str
    steps: tuple[WorkUnitDefinition, ...]

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigurationError("job name must not be empty")
        if not self.steps:
            raise ConfigurationError(f"job {self.name!r} has no steps")
        names = [step.name for step in self.steps]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ConfigurationError(f"job {self.name!r} has duplicate step names: {duplicates}")

    def step_identity_name(self, step: WorkUnitDefinition) -> str:
        return f"{self.name}.{step.name}"
