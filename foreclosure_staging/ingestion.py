# foreclosure_staging/ingestion.py
"""Ingestion runs: source -> dedup gate -> staging store, bracketed by a run log entry.

Candidate-level problems (unparseable payload, failed lookup, failed insert)
are logged and skipped. Anything that escapes the candidate loop ends the run
as ``error``. Either way the run log entry is closed on the way out, so a
``running`` entry only survives a process that died mid-run.
"""
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Optional, Sequence, Set

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import crud
from .catalog import Catalog
from .dedup import DedupGate
from .errors import ConfigNotFound, RunAborted, RunInProgress, RunLogError, SourceFetchError, StoreWriteError
from .models import RUN_COMPLETED, RUN_ERROR
from .runlog import RunLog
from .schemas import CandidateListing, RunResponse
from .settings import NORTHEAST_STATES, Settings, settings as default_settings
from .sources import CandidateSource, build_source
from .utils import logger


@dataclass
class RunResult:
    success: bool
    found: int = 0
    new: int = 0
    error: Optional[str] = None
    log_id: Optional[int] = None
    stale_run_ids: List[int] = field(default_factory=list)

    def to_response(self) -> RunResponse:
        return RunResponse(
            success=self.success,
            properties_found=self.found,
            properties_new=self.new,
            error=self.error,
            log_id=self.log_id,
            stale_run_ids=self.stale_run_ids,
        )


class RunGuard:
    """Allows at most one in-flight run per config within this process."""

    def __init__(self):
        self._lock = threading.Lock()
        self._active: Set[int] = set()

    @contextmanager
    def hold(self, config_id: int):
        with self._lock:
            if config_id in self._active:
                raise RunInProgress(config_id)
            self._active.add(config_id)
        try:
            yield
        finally:
            with self._lock:
                self._active.discard(config_id)

    def is_active(self, config_id: int) -> bool:
        with self._lock:
            return config_id in self._active


run_guard = RunGuard()


def resolve_states(override: Optional[Sequence[str]], configured: Optional[Sequence[str]]) -> List[str]:
    for scope in (override, configured):
        if scope:
            return [s.strip().upper() for s in scope if s and s.strip()]
    return list(NORTHEAST_STATES)


class IngestionOrchestrator:
    def __init__(
        self,
        db: Session,
        source: CandidateSource,
        *,
        catalog: Optional[Catalog] = None,
        allow_unlogged_runs: bool = False,
        timeout_seconds: Optional[float] = None,
        guard: Optional[RunGuard] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.db = db
        self.source = source
        self.catalog = catalog
        self.allow_unlogged_runs = allow_unlogged_runs
        self.timeout_seconds = timeout_seconds
        self.guard = guard or run_guard
        self.clock = clock

    def run(self, config_id: int, states: Optional[Sequence[str]] = None,
            cancel_event: Optional[threading.Event] = None) -> RunResult:
        """Run one ingestion for ``config_id``.

        Raises ConfigNotFound or RunInProgress before any run log work.
        Every other failure is reported through the returned RunResult.
        """
        config = crud.get_config(self.db, config_id)
        if config is None:
            raise ConfigNotFound(config_id)
        with self.guard.hold(config.id):
            return self._run(config.id, resolve_states(states, config.states), cancel_event)

    def _run(self, config_id: int, scope: List[str], cancel_event) -> RunResult:
        runlog = RunLog(self.db)
        stale = [entry.id for entry in runlog.running_for(config_id)]
        if stale:
            logger.warning("Config %s has run log entries stuck in running: %s", config_id, stale)

        try:
            log_id = runlog.open(config_id)
        except StoreWriteError as exc:
            if not self.allow_unlogged_runs:
                logger.error("Not starting run for config %s: %s", config_id, exc)
                return RunResult(success=False, error=str(exc), stale_run_ids=stale)
            logger.warning("Continuing run for config %s without a run log: %s", config_id, exc)
            log_id = None

        logger.info("Starting ingestion for config %s over %s", config_id, ",".join(scope))
        gate = DedupGate(self.db, self.catalog)
        seen: Set[str] = set()
        found = new = 0
        status, error = RUN_ERROR, "Run interrupted before completion"
        deadline = self.clock() + self.timeout_seconds if self.timeout_seconds else None
        candidates: Optional[Iterable[Any]] = None
        try:
            candidates = iter(self.source.fetch(scope))
            for raw in candidates:
                if cancel_event is not None and cancel_event.is_set():
                    raise RunAborted("Run cancelled")
                if deadline is not None and self.clock() > deadline:
                    raise RunAborted(f"Run timed out after {self.timeout_seconds}s")
                found += 1
                if self._stage(raw, gate, seen, log_id):
                    new += 1
            status, error = RUN_COMPLETED, None
        except RunAborted as exc:
            error = str(exc)
            logger.warning("Run for config %s aborted after %d candidates: %s", config_id, found, exc)
        except Exception as exc:
            error = str(exc) or exc.__class__.__name__
            logger.exception("Ingestion run for config %s failed", config_id)
        finally:
            close = getattr(candidates, "close", None)
            if close is not None:
                close()
            self._finish(config_id, log_id, status, found, new, error)

        logger.info("Run for config %s finished %s: %d found, %d new", config_id, status, found, new)
        return RunResult(
            success=status == RUN_COMPLETED,
            found=found,
            new=new,
            error=error,
            log_id=log_id,
            stale_run_ids=stale,
        )

    def _stage(self, raw, gate: DedupGate, seen: Set[str], log_id: Optional[int]) -> bool:
        if isinstance(raw, SourceFetchError):
            logger.warning("Skipping candidate the source could not fetch: %s", raw)
            return False
        try:
            candidate = CandidateListing.model_validate(raw)
        except ValidationError as exc:
            ref = raw.get("external_id") if isinstance(raw, dict) else type(raw).__name__
            logger.warning("Skipping invalid candidate %s: %d validation errors", ref, exc.error_count())
            return False

        external_id = candidate.external_id
        if external_id in seen:
            logger.debug("Duplicate %s within the same run", external_id)
            return False
        seen.add(external_id)

        verdict = gate.check(external_id)
        if verdict.error:
            logger.error("Skipping %s, dedup check failed: %s", external_id, verdict.error)
            return False
        if not verdict.is_new:
            return False

        try:
            new_id = crud.insert_staging(self.db, candidate, raw, run_id=log_id)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Failed to stage %s: %s", external_id, exc)
            return False
        if new_id is None:
            # lost a race against a concurrent run; the unique constraint held
            logger.info("%s was staged concurrently, skipping", external_id)
            return False
        return True

    def _finish(self, config_id, log_id, status, found, new, error):
        if log_id is not None:
            try:
                RunLog(self.db).close(log_id, status, found, new, error)
            except (StoreWriteError, RunLogError) as exc:
                logger.error("Could not close run log %s: %s", log_id, exc)
        if status == RUN_COMPLETED:
            try:
                crud.touch_config_last_run(self.db, config_id)
            except SQLAlchemyError as exc:
                self.db.rollback()
                logger.error("Could not update last_run_at for config %s: %s", config_id, exc)


def run_ingestion(db: Session, config_id: int, states: Optional[Sequence[str]] = None,
                  source: Optional[CandidateSource] = None, app_settings: Optional[Settings] = None) -> RunResult:
    """Build an orchestrator from settings and run it once."""
    app_settings = app_settings or default_settings
    # an unknown config is reported as such even when the scraper backend is misconfigured
    if crud.get_config(db, config_id) is None:
        raise ConfigNotFound(config_id)
    owned = source is None
    if source is None:
        source = build_source(app_settings.source)
    try:
        orchestrator = IngestionOrchestrator(
            db,
            source,
            allow_unlogged_runs=app_settings.allow_unlogged_runs,
            timeout_seconds=app_settings.run_timeout_seconds,
        )
        return orchestrator.run(config_id, states)
    finally:
        close = getattr(source, "close", None)
        if owned and close is not None:
            close()
