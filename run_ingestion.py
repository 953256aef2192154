"""Run one ingestion for a scraping config from the command line.

    python run_ingestion.py 1 --states PE BA
"""
import argparse
import json

from foreclosure_staging.db import Base, SessionLocal, engine
from foreclosure_staging.errors import StagingError
from foreclosure_staging.ingestion import run_ingestion


def main(argv=None):
    parser = argparse.ArgumentParser(description="Scrape listings into the staging area")
    parser.add_argument("config_id", type=int, help="scraping config id")
    parser.add_argument("--states", nargs="*", help="limit the run to these states")
    args = parser.parse_args(argv)

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        result = run_ingestion(db, args.config_id, args.states)
    except StagingError as e:
        print(json.dumps({"success": False, "error": str(e)}))
        return 2
    finally:
        db.close()

    print(json.dumps(result.to_response().model_dump(by_alias=True)))
    return 0 if result.success else 1


if __name__ == "__main__":
    raise SystemExit(main())
