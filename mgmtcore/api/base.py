"""
Base class for management API resources.
"""

from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from mgmtcore.services.client import RequestOrchestrator

T = TypeVar("T", bound=BaseModel)


class BaseResourceApi(Generic[T]):
    """
    Common plumbing for resource APIs.

    All resource APIs should:
    - Go through the shared RequestOrchestrator (cache, retries, breaker)
    - Read with cached_fetch and write with mutate
    - Return Pydantic models
    """

    model: type[T]

    def __init__(self, orchestrator: RequestOrchestrator):
        self.orchestrator = orchestrator

    def _to_model(self, data: Any) -> T:
        return self.model.model_validate(data)

    def _to_models(self, data: Any) -> list[T]:
        return [self.model.model_validate(item) for item in data or []]
