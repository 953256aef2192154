# tests/test_runlog.py
import pytest

from foreclosure_staging.dedup import DedupGate
from foreclosure_staging.errors import RunLogError
from foreclosure_staging.models import Property
from foreclosure_staging.runlog import RunLog

from conftest import stage


def test_open_creates_running_entry(db, config):
    log = RunLog(db)
    log_id = log.open(config.id)
    entry = log.get(log_id)
    assert entry.status == "running"
    assert (entry.properties_found, entry.properties_new) == (0, 0)
    assert entry.finished_at is None
    assert [e.id for e in log.running_for(config.id)] == [log_id]


def test_close_is_one_shot(db, config):
    log = RunLog(db)
    log_id = log.open(config.id)
    log.close(log_id, "completed", 4, 2)

    entry = log.get(log_id)
    assert entry.status == "completed"
    assert (entry.properties_found, entry.properties_new) == (4, 2)
    assert log.running_for(config.id) == []

    with pytest.raises(RunLogError):
        log.close(log_id, "error", 0, 0, "late failure")
    assert log.get(log_id).status == "completed"


def test_close_rejects_non_terminal_status(db, config):
    log = RunLog(db)
    log_id = log.open(config.id)
    with pytest.raises(ValueError):
        log.close(log_id, "running", 0, 0)


def test_close_unknown_entry(db):
    with pytest.raises(RunLogError):
        RunLog(db).close(31337, "completed", 0, 0)


def test_recent_is_newest_first(db, config):
    log = RunLog(db)
    first = log.open(config.id)
    second = log.open(config.id)
    assert [e.id for e in log.recent()] == [second, first]


def test_gate_checks_staging_and_catalog(db):
    stage(db, 1)
    db.add(Property(external_id="caixa-2"))
    db.commit()

    gate = DedupGate(db)
    assert not gate.is_new("caixa-1")
    assert not gate.is_new("caixa-2")
    assert gate.is_new("caixa-3")
    verdict = gate.check("")
    assert not verdict.is_new
    assert verdict.error
