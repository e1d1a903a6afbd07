from dataclasses import dataclass, field
from typing import Any, Optional, Protocol


@dataclass
class SubmitResult:
    """광고 플랫폼 제출 1회의 결과"""
    success: bool
    response: dict[str, Any] = field(default_factory=dict)
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    is_transient: bool = True

    @classmethod
    def ok(cls, response: Optional[dict[str, Any]] = None) -> "SubmitResult":
        return cls(success=True, response=response or {})

    @classmethod
    def failure(
        cls,
        message: str,
        code: Optional[str] = None,
        is_transient: bool = True,
        response: Optional[dict[str, Any]] = None,
    ) -> "SubmitResult":
        return cls(
            success=False,
            response=response or {},
            error_message=message,
            error_code=code,
            is_transient=is_transient,
        )


class AdPlatformClient(Protocol):
    platform: str

    def submit_feed(self, feed_url: str, credentials: dict[str, Any], catalog_name: str) -> SubmitResult:
        ...
