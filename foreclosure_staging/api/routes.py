# foreclosure_staging/api/routes.py
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from typing import List
from .. import crud, schemas
from ..db import get_db
from ..errors import CatalogError, ConfigNotFound, ConfigurationError, NotFound, NotPending, RunInProgress, StoreWriteError
from ..ingestion import run_ingestion
from ..models import STAGING_STATUSES
from ..review import ReviewWorkflow
from ..runlog import RunLog
from ..utils import logger

router = APIRouter()

def _run_failure(status_code: int, message: str) -> JSONResponse:
    body = schemas.RunResponse(success=False, error=message).model_dump(by_alias=True)
    return JSONResponse(status_code=status_code, content=body)

@router.get("/health")
def health():
    return {"status": "ok"}

# -- ingestion -------------------------------------------------------------------

@router.post("/scrape", response_model=schemas.RunResponse)
def trigger_scrape(payload: schemas.RunRequest, db: Session = Depends(get_db)):
    try:
        result = run_ingestion(db, payload.config_id, payload.states)
    except ConfigNotFound as e:
        return _run_failure(400, str(e))
    except RunInProgress as e:
        return _run_failure(409, str(e))
    except ConfigurationError as e:
        logger.error("Scraper misconfigured: %s", e)
        return _run_failure(500, str(e))
    if not result.success:
        return JSONResponse(status_code=500, content=result.to_response().model_dump(by_alias=True))
    return result.to_response()

@router.get("/scraping/configs", response_model=List[schemas.ScrapingConfigOut])
def list_configs(active_only: bool = False, db: Session = Depends(get_db)):
    return crud.list_configs(db, active_only=active_only)

@router.post("/scraping/configs", response_model=schemas.ScrapingConfigOut, status_code=201)
def create_config(payload: schemas.ScrapingConfigCreate, db: Session = Depends(get_db)):
    return crud.create_config(db, payload.model_dump())

@router.get("/scraping/logs", response_model=List[schemas.ScrapingLogOut])
def list_logs(limit: int = Query(20, ge=1, le=200), config_id: int | None = None, db: Session = Depends(get_db)):
    return RunLog(db).recent(limit=limit, config_id=config_id)

# -- staging review --------------------------------------------------------------

@router.get("/staging", response_model=List[schemas.StagingPropertyOut])
def list_staging(
    status: str = "pending",
    skip: int = 0,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db)
):
    if status not in STAGING_STATUSES:
        raise HTTPException(status_code=422, detail=f"status must be one of {', '.join(STAGING_STATUSES)}")
    return crud.list_staging(db, status, skip=skip, limit=limit)

@router.post("/staging/bulk-import", response_model=schemas.BulkImportResponse)
def bulk_import(payload: schemas.BulkImportRequest, db: Session = Depends(get_db)):
    result = ReviewWorkflow(db).bulk_import(payload.ids)
    return {"succeeded": sorted(result.succeeded), "failed": result.failed}

@router.post("/staging/{staging_id}/import", response_model=schemas.PropertyOut)
def import_staging(staging_id: int, db: Session = Depends(get_db)):
    try:
        return ReviewWorkflow(db).import_one(staging_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except NotPending as e:
        raise HTTPException(status_code=409, detail=str(e))
    except CatalogError as e:
        raise HTTPException(status_code=502, detail=str(e))

@router.post("/staging/{staging_id}/ignore", response_model=schemas.StagingPropertyOut)
def ignore_staging(staging_id: int, db: Session = Depends(get_db)):
    try:
        return ReviewWorkflow(db).ignore(staging_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except NotPending as e:
        raise HTTPException(status_code=409, detail=str(e))
    except StoreWriteError as e:
        logger.exception("Ignore failed: %s", e)
        raise HTTPException(status_code=500, detail="Ignore failed")

# -- catalog admin ---------------------------------------------------------------

@router.get("/properties", response_model=List[schemas.PropertyOut])
def list_properties(
    q: str | None = Query(None),
    skip: int = 0,
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db)
):
    return crud.list_properties(db, search=q, skip=skip, limit=limit)

@router.post("/properties/{property_id}/sold", response_model=schemas.PropertyOut)
def mark_sold(property_id: int, db: Session = Depends(get_db)):
    obj = crud.set_property_status(db, property_id, sold=True)
    if not obj:
        raise HTTPException(status_code=404, detail="Property not found")
    return obj

@router.post("/properties/{property_id}/available", response_model=schemas.PropertyOut)
def mark_available(property_id: int, db: Session = Depends(get_db)):
    obj = crud.set_property_status(db, property_id, sold=False)
    if not obj:
        raise HTTPException(status_code=404, detail="Property not found")
    return obj
