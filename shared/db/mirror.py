from dataclasses import dataclass
from typing import Any, Optional

SUCCEEDED = "succeeded"
FAILED = "failed"
SKIPPED = "skipped"


@dataclass(frozen=True)
class MirrorResult:
    """
    Outcome of a best-effort write into the secondary (new) schema.

    Mirror writes never raise. A failure is carried here so the caller can
    log it and move on; the primary write has already been committed.
    """

    domain: str
    operation: str
    entity_id: Any
    outcome: str
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.outcome != FAILED

    @property
    def attempted(self) -> bool:
        return self.outcome != SKIPPED

    @classmethod
    def succeeded(cls, domain: str, operation: str, entity_id: Any) -> "MirrorResult":
        return cls(domain, operation, entity_id, SUCCEEDED)

    @classmethod
    def failed(cls, domain: str, operation: str, entity_id: Any, error: BaseException) -> "MirrorResult":
        return cls(domain, operation, entity_id, FAILED, error)

    @classmethod
    def skipped(cls, domain: str, operation: str, entity_id: Any) -> "MirrorResult":
        return cls(domain, operation, entity_id, SKIPPED)
