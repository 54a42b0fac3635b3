"""
Format-ordered loader.

Probes candidate locations one at a time, in order, until one format
strategy produces a payload:

    IDLE -> PROBING(0) -> SUCCESS
                       -> PROBING(1) -> ... -> EXHAUSTED

Each candidate runs under ``with_retry(lambda: with_timeout(...))``.
Candidates never run concurrently and later candidates are never
attempted once one succeeds.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from ..faults.domains import CargoNotFoundFault, LoadTimeoutFault, NetworkFault
from .fetch import ModuleFetcher
from .formats import FormatCandidate, ModuleFormat, detect_format_from_entry
from .retry import Sleep, with_retry, with_timeout
from .scope import ExecutionScope, IncidentalNameFilter
from .strategies import FormatStrategy, LoadRequest, default_strategies

logger = logging.getLogger("expozr.loading.loader")


class AttemptState(str, Enum):
    IDLE = "idle"
    PROBING = "probing"
    SUCCESS = "success"
    EXHAUSTED = "exhausted"


@dataclass
class CandidateFailure:
    candidate: FormatCandidate
    error: BaseException

    @property
    def timed_out(self) -> bool:
        return isinstance(self.error, LoadTimeoutFault)

    def describe(self) -> str:
        return f"{self.candidate.format.value} {self.candidate.url}: {self.error}"


@dataclass
class LoadAttempt:
    """Progress of one load across its candidates."""
    candidates: List[FormatCandidate]
    state: AttemptState = AttemptState.IDLE
    index: int = -1
    failures: List[CandidateFailure] = field(default_factory=list)

    @property
    def current(self) -> Optional[FormatCandidate]:
        if 0 <= self.index < len(self.candidates):
            return self.candidates[self.index]
        return None


@dataclass
class LoadResult:
    payload: Any
    candidate: FormatCandidate
    format_used: ModuleFormat
    strategy_name: str
    attempt: LoadAttempt


class FormatOrderedLoader:
    """
    Walks ordered candidates through their format strategies.

    Args:
        fetcher: Shared module fetcher
        strategies: ``ModuleFormat -> FormatStrategy`` dispatch table
        scope: Namespace builder for universal wrappers
        name_filter: Incidental-name filter for universal wrappers
        sleep: Retry sleep override (seconds)
    """

    def __init__(
        self,
        fetcher: Optional[ModuleFetcher] = None,
        strategies: Optional[Dict[ModuleFormat, FormatStrategy]] = None,
        *,
        scope: Optional[ExecutionScope] = None,
        name_filter: Optional[IncidentalNameFilter] = None,
        sleep: Optional[Sleep] = None,
    ):
        self.fetcher = fetcher or ModuleFetcher()
        self.strategies: Dict[ModuleFormat, FormatStrategy] = default_strategies(
            self.fetcher, scope, name_filter
        )
        if strategies:
            self.strategies.update(strategies)
        self._sleep = sleep

    def strategy_for(self, candidate: FormatCandidate) -> tuple[ModuleFormat, FormatStrategy]:
        fmt = candidate.format
        if fmt is ModuleFormat.AUTO:
            fmt = detect_format_from_entry(candidate.url)
        strategy = self.strategies.get(fmt)
        if strategy is None:
            raise NetworkFault(
                candidate.url,
                message=f"No strategy registered for format '{fmt.value}'",
            )
        return fmt, strategy

    async def _probe(self, candidate: FormatCandidate, request: LoadRequest) -> tuple[Any, ModuleFormat, str]:
        fmt, strategy = self.strategy_for(candidate)
        payload = await with_retry(
            lambda: with_timeout(
                strategy.attempt_load(candidate.url, request),
                request.timeout_ms,
                candidate.url,
            ),
            attempts=request.attempts,
            delay_ms=request.delay_ms,
            backoff=request.backoff,
            sleep=self._sleep,
        )
        return payload, fmt, strategy.name

    async def load(self, candidates: Sequence[FormatCandidate], request: LoadRequest) -> LoadResult:
        """
        Load the first candidate that succeeds.

        Raises:
            LoadTimeoutFault: If every candidate failed by timing out
            NetworkFault: Otherwise, aggregating every candidate's reason
        """
        attempt = LoadAttempt(candidates=list(candidates))

        for index, candidate in enumerate(attempt.candidates):
            attempt.state = AttemptState.PROBING
            attempt.index = index
            try:
                payload, fmt, strategy_name = await self._probe(candidate, request)
            except Exception as e:
                failure = CandidateFailure(candidate, e)
                attempt.failures.append(failure)
                log = logger.warning if request.suppress_errors else logger.error
                log("Failed to load %s for %s: %s", candidate, request.resource, e)
                continue

            attempt.state = AttemptState.SUCCESS
            logger.info(
                "Loaded %s via %s (%s)", request.resource, fmt.value, candidate.url
            )
            return LoadResult(
                payload=payload,
                candidate=candidate,
                format_used=fmt,
                strategy_name=strategy_name,
                attempt=attempt,
            )

        attempt.state = AttemptState.EXHAUSTED
        raise self._exhausted(attempt, request)

    @staticmethod
    def _exhausted(attempt: LoadAttempt, request: LoadRequest) -> Exception:
        described = [f.describe() for f in attempt.failures]
        metadata = {
            "source": request.source,
            "cargo": request.cargo,
            "candidates": described,
        }

        if attempt.failures and all(f.timed_out for f in attempt.failures):
            return LoadTimeoutFault(request.resource, request.timeout_ms or 0, metadata=metadata)

        if not attempt.candidates:
            summary = "no loadable candidates"
        else:
            summary = "; ".join(described)
        last_url = attempt.candidates[-1].url if attempt.candidates else request.resource
        return NetworkFault(
            last_url,
            message=f"All formats failed for '{request.resource}': {summary}",
            metadata=metadata,
        )


# ============================================================================
# Export extraction
# ============================================================================

_MISSING = object()


def _export(payload: Any, name: str) -> Any:
    if isinstance(payload, Mapping):
        return payload.get(name, _MISSING)
    return getattr(payload, name, _MISSING)


def extract_exports(payload: Any, names: Optional[Sequence[str]] = None, *, cargo: str = "", source: str = "") -> Any:
    """
    Select exports from a payload.

    No names gives the ``default`` export when present, else the whole
    payload. One name gives that export. Several names give a dict of
    those present.

    Raises:
        CargoNotFoundFault: When none of the requested names exist
    """
    if not names:
        default = _export(payload, "default")
        return payload if default is _MISSING else default

    found = {name: value for name in names if (value := _export(payload, name)) is not _MISSING}
    if not found:
        raise CargoNotFoundFault(
            f"{cargo}:{','.join(names)}" if cargo else ",".join(names),
            source,
            metadata={"exports": list(names)},
        )

    if len(names) == 1:
        return found[names[0]]
    return found
