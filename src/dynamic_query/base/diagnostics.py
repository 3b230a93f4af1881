# src/dynamic_query/base/diagnostics.py
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Optional

from .conditions import ConditionType

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Diagnostic:
    """Describes a condition that was skipped instead of applied."""

    field: str
    reason: str
    condition_type: Optional[ConditionType] = None
    value: Any = None

    def __str__(self) -> str:
        kind = f" ({self.condition_type.name})" if self.condition_type else ""
        return f"Skipped condition on '{self.field}'{kind}: {self.reason}"


class DiagnosticsSink(ABC):
    """Receives soft-degradation diagnostics from the predicate algebra."""

    @abstractmethod
    def emit(self, diagnostic: Diagnostic) -> None:
        pass


class NullDiagnostics(DiagnosticsSink):
    """Discards everything. The default sink."""

    def emit(self, diagnostic: Diagnostic) -> None:
        pass


class LoggingDiagnostics(DiagnosticsSink):
    """Forwards diagnostics to a logger at WARNING level."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._logger = logger or log

    def emit(self, diagnostic: Diagnostic) -> None:
        self._logger.warning(str(diagnostic))


class CollectingDiagnostics(DiagnosticsSink):
    """Keeps every diagnostic in memory, in emission order."""

    def __init__(self):
        self.diagnostics: List[Diagnostic] = []

    def emit(self, diagnostic: Diagnostic) -> None:
        self.diagnostics.append(diagnostic)

    def fields(self) -> List[str]:
        return [d.field for d in self.diagnostics]

    def clear(self) -> None:
        self.diagnostics.clear()

    def __len__(self) -> int:
        return len(self.diagnostics)
