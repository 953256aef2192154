# tests/test_ingestion.py
import threading

import pytest
from sqlalchemy.exc import OperationalError

from foreclosure_staging import crud
from foreclosure_staging.dedup import DedupGate, DedupVerdict
from foreclosure_staging.errors import ConfigNotFound, RunInProgress, SourceFetchError, StoreWriteError
from foreclosure_staging.ingestion import IngestionOrchestrator, RunGuard, resolve_states
from foreclosure_staging.models import Property, ScrapingLog, StagingProperty
from foreclosure_staging.runlog import RunLog

from conftest import ListSource, make_candidate, stage


class TickingClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        value = self.now
        self.now += 1.0
        return value


class BrokenCatalog:
    def exists_by_external_id(self, external_id):
        raise RuntimeError("catalog unreachable")

    def create_from_staging(self, record):
        raise AssertionError("not used during ingestion")


def _orchestrator(db, items, **kwargs):
    source = ListSource(items)
    kwargs.setdefault("guard", RunGuard())
    return IngestionOrchestrator(db, source, **kwargs), source


def test_run_counts_found_and_new_against_existing_staging(db, config):
    for n in range(3):
        stage(db, n)

    orch, _ = _orchestrator(db, [make_candidate(n) for n in range(10)])
    result = orch.run(config.id)

    assert result.success
    assert (result.found, result.new) == (10, 7)
    entry = db.get(ScrapingLog, result.log_id)
    assert entry.status == "completed"
    assert (entry.properties_found, entry.properties_new) == (10, 7)
    assert entry.finished_at is not None
    assert db.query(StagingProperty).count() == 10


def test_repeated_runs_never_duplicate_external_ids(db, config):
    items = [make_candidate(n) for n in range(5)]
    for _ in range(3):
        orch, _ = _orchestrator(db, items)
        orch.run(config.id)

    assert db.query(StagingProperty).count() == 5
    logs = RunLog(db).recent(config_id=config.id)
    assert [log.properties_new for log in reversed(logs)] == [5, 0, 0]


def test_catalog_records_are_not_restaged(db, config):
    db.add(Property(external_id="caixa-1", title="Already public"))
    db.commit()

    orch, _ = _orchestrator(db, [make_candidate(1), make_candidate(2)])
    result = orch.run(config.id)

    assert (result.found, result.new) == (2, 1)
    assert crud.staging_exists(db, "caixa-2")
    assert not crud.staging_exists(db, "caixa-1")


def test_duplicate_ids_within_one_run_are_staged_once(db, config):
    orch, _ = _orchestrator(db, [make_candidate(4), make_candidate(4, price=1)])
    result = orch.run(config.id)
    assert (result.found, result.new) == (2, 1)


def test_bad_candidates_are_skipped_but_counted(db, config):
    items = [
        make_candidate(1),
        {"title": "no id at all"},
        make_candidate(2, discount=250),
        SourceFetchError("detail page timed out"),
        "not a mapping",
        make_candidate(3),
    ]
    orch, _ = _orchestrator(db, items)
    result = orch.run(config.id)

    assert result.success
    assert (result.found, result.new) == (6, 2)


def test_source_failure_before_first_candidate_ends_in_error(db, config):
    orch, _ = _orchestrator(db, [RuntimeError("search page unavailable")])
    result = orch.run(config.id)

    assert not result.success
    assert "search page unavailable" in result.error
    assert (result.found, result.new) == (0, 0)
    entry = db.get(ScrapingLog, result.log_id)
    assert entry.status == "error"
    assert entry.error_message == "search page unavailable"
    assert (entry.properties_found, entry.properties_new) == (0, 0)
    db.refresh(config)
    assert config.last_run_at is None


def test_completed_run_updates_last_run_at(db, config):
    orch, _ = _orchestrator(db, [make_candidate(1)])
    orch.run(config.id)
    db.refresh(config)
    assert config.last_run_at is not None


def test_unknown_config_is_rejected_before_logging(db):
    orch, source = _orchestrator(db, [make_candidate(1)])
    with pytest.raises(ConfigNotFound):
        orch.run(404)
    assert db.query(ScrapingLog).count() == 0
    assert source.calls == []


def test_scope_override_and_config_states(db, config):
    orch, source = _orchestrator(db, [])
    orch.run(config.id)
    orch.run(config.id, states=["ce"])
    assert source.calls == [["PE", "BA"], ["CE"]]


def test_resolve_states_falls_back_to_northeast():
    assert resolve_states(None, []) == ["AL", "BA", "CE", "MA", "PB", "PE", "PI", "RN", "SE"]


def test_dedup_lookup_failure_fails_closed(db, config):
    orch, _ = _orchestrator(db, [make_candidate(1), make_candidate(2)], catalog=BrokenCatalog())
    result = orch.run(config.id)

    assert result.success
    assert (result.found, result.new) == (2, 0)
    assert db.query(StagingProperty).count() == 0


def test_timeout_closes_log_with_partial_counts(db, config):
    orch, _ = _orchestrator(
        db, [make_candidate(n) for n in range(5)], timeout_seconds=2.5, clock=TickingClock()
    )
    result = orch.run(config.id)

    assert not result.success
    assert "timed out" in result.error
    assert (result.found, result.new) == (2, 2)
    entry = db.get(ScrapingLog, result.log_id)
    assert entry.status == "error"
    assert entry.properties_new == 2


def test_cancellation_closes_log(db, config):
    cancel = threading.Event()
    cancel.set()
    orch, _ = _orchestrator(db, [make_candidate(1)])
    result = orch.run(config.id, cancel_event=cancel)

    assert not result.success
    assert result.error == "Run cancelled"
    assert db.get(ScrapingLog, result.log_id).status == "error"


def test_interrupt_still_closes_log(db, config):
    orch, _ = _orchestrator(db, [make_candidate(1), KeyboardInterrupt()])
    with pytest.raises(KeyboardInterrupt):
        orch.run(config.id)

    entry = db.query(ScrapingLog).one()
    assert entry.status == "error"
    assert entry.error_message == "Run interrupted before completion"
    assert (entry.properties_found, entry.properties_new) == (1, 1)


def test_concurrent_run_for_same_config_is_rejected(db, config):
    guard = RunGuard()
    orch, _ = _orchestrator(db, [make_candidate(1)], guard=guard)
    with guard.hold(config.id):
        with pytest.raises(RunInProgress):
            orch.run(config.id)
    assert orch.run(config.id).success


def test_stale_running_entries_are_reported(db, config):
    stale_id = RunLog(db).open(config.id)
    orch, _ = _orchestrator(db, [make_candidate(1)])
    result = orch.run(config.id)

    assert result.success
    assert result.stale_run_ids == [stale_id]
    assert db.get(ScrapingLog, stale_id).status == "running"


def test_log_open_failure_aborts_by_default(db, config, monkeypatch):
    def broken_open(self, config_id):
        raise StoreWriteError("scraping_logs is read-only")

    monkeypatch.setattr(RunLog, "open", broken_open)
    orch, source = _orchestrator(db, [make_candidate(1)])
    result = orch.run(config.id)

    assert not result.success
    assert "read-only" in result.error
    assert source.calls == []
    assert db.query(StagingProperty).count() == 0


def test_log_open_failure_tolerated_when_allowed(db, config, monkeypatch):
    def broken_open(self, config_id):
        raise StoreWriteError("scraping_logs is read-only")

    monkeypatch.setattr(RunLog, "open", broken_open)
    orch, _ = _orchestrator(db, [make_candidate(1)], allow_unlogged_runs=True)
    result = orch.run(config.id)

    assert result.success
    assert result.log_id is None
    assert result.new == 1


def test_store_write_failure_skips_candidate_and_continues(db, config, monkeypatch):
    original_insert = crud.insert_staging

    def insert_or_fail(session, candidate, raw, run_id=None):
        if candidate.external_id == "caixa-2":
            raise OperationalError("INSERT INTO staging_properties", {}, Exception("disk I/O error"))
        return original_insert(session, candidate, raw, run_id=run_id)

    monkeypatch.setattr(crud, "insert_staging", insert_or_fail)
    orch, _ = _orchestrator(db, [make_candidate(n) for n in (1, 2, 3)])
    result = orch.run(config.id)

    assert result.success
    assert (result.found, result.new) == (3, 2)
    assert crud.staging_exists(db, "caixa-1")
    assert not crud.staging_exists(db, "caixa-2")
    assert crud.staging_exists(db, "caixa-3")
    assert db.get(ScrapingLog, result.log_id).status == "completed"


def test_unique_constraint_stops_insert_the_gate_let_through(db, config, monkeypatch):
    stage(db, 1)
    monkeypatch.setattr(DedupGate, "check", lambda self, external_id: DedupVerdict(True))

    orch, _ = _orchestrator(db, [make_candidate(1), make_candidate(2)])
    result = orch.run(config.id)

    assert result.success
    assert (result.found, result.new) == (2, 1)
    assert db.query(StagingProperty).filter_by(external_id="caixa-1").count() == 1
    assert db.query(StagingProperty).count() == 2
