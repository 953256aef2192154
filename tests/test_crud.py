# tests/test_crud.py
from foreclosure_staging import crud
from foreclosure_staging.models import Property, StagingProperty

from conftest import stage


def test_insert_and_get_staging(db):
    new_id = stage(db, 1)
    obj = crud.get_staging(db, new_id)
    assert obj is not None
    assert obj.external_id == "caixa-1"
    assert obj.status == "pending"
    assert obj.raw_data["title"] == "Casa 1 - Recife"
    assert obj.images == ["https://img.example/1.jpg"]


def test_insert_staging_ignores_existing_external_id(db):
    first = stage(db, 7)
    second = stage(db, 7, title="Different title")
    assert first is not None
    assert second is None
    assert db.query(StagingProperty).count() == 1
    assert crud.get_staging(db, first).title == "Casa 7 - Recife"


def test_list_staging_is_oldest_first(db):
    ids = [stage(db, n) for n in (3, 1, 2)]
    listed = crud.list_staging(db, "pending")
    assert [r.id for r in listed] == ids


def test_config_last_run_is_touched(db, config):
    assert config.last_run_at is None
    crud.touch_config_last_run(db, config.id)
    db.refresh(config)
    assert config.last_run_at is not None


def test_property_status_toggle_and_search(db):
    db.add(Property(external_id="caixa-9", title="Apartamento Olinda", address_city="Olinda"))
    db.commit()
    prop = db.query(Property).one()

    sold = crud.set_property_status(db, prop.id, sold=True)
    assert sold.status == "sold"
    assert sold.sold_at is not None

    back = crud.set_property_status(db, prop.id, sold=False)
    assert back.status == "available"
    assert back.sold_at is None

    assert [p.id for p in crud.list_properties(db, search="olinda")] == [prop.id]
    assert crud.list_properties(db, search="fortaleza") == []
    assert crud.set_property_status(db, 999, sold=True) is None
