# tests/conftest.py
import os

# in-memory SQLite shared through a static pool; set before the package reads settings
os.environ["POSTGRES_URL"] = "sqlite://"
os.environ.setdefault("SCRAPER_BACKEND", "firecrawl")

import pytest

from foreclosure_staging import crud
from foreclosure_staging.db import Base, SessionLocal, engine
from foreclosure_staging.errors import SourceFetchError
import foreclosure_staging.models  # noqa: F401


class ListSource:
    """Candidate source that replays a fixed list and records the scopes it was asked for."""

    def __init__(self, items):
        self.items = list(items)
        self.calls = []

    def fetch(self, states):
        self.calls.append(list(states))
        for item in self.items:
            if isinstance(item, BaseException) and not isinstance(item, SourceFetchError):
                raise item
            yield item


def make_candidate(n, **overrides):
    data = {
        "external_id": f"caixa-{n}",
        "title": f"Casa {n} - Recife",
        "type": "casa",
        "price": 100000 + n,
        "original_price": 150000 + n,
        "discount": 30,
        "address_city": "Recife",
        "address_state": "PE",
        "bedrooms": 2,
        "area": 60.5,
        "images": [f"https://img.example/{n}.jpg"],
        "accepts_fgts": True,
        "accepts_financing": False,
        "modality": "Venda Direta",
        "source_link": f"https://venda-imoveis.caixa.gov.br/sistema/detalhe-imovel.asp?hdnimovel={n}",
    }
    data.update(overrides)
    return data


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def config(db):
    return crud.create_config(db, {"name": "Nordeste", "states": ["PE", "BA"]})


def stage(db, n, **overrides):
    """Insert a pending staging row for candidate ``n`` and return its id."""
    from foreclosure_staging.schemas import CandidateListing

    raw = make_candidate(n, **overrides)
    return crud.insert_staging(db, CandidateListing.model_validate(raw), raw)
