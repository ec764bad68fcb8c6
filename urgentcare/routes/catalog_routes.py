# urgentcare/routes/catalog_routes.py
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from urgentcare.auth.deps import get_current_principal
from urgentcare.db.session import get_db
from urgentcare.schemas.catalog import ServiceTypeOut, SymptomOut
from urgentcare.services import catalog as catalog_service

router = APIRouter(prefix="/api/catalog", tags=["catalog"], dependencies=[Depends(get_current_principal)])


@router.get("/service-types", response_model=List[ServiceTypeOut])
def list_service_types(db: Session = Depends(get_db)):
    return catalog_service.list_service_types(db)


@router.get("/symptoms", response_model=List[SymptomOut])
def list_symptoms(db: Session = Depends(get_db)):
    return catalog_service.list_symptoms(db)


@router.get("/symptoms/search", response_model=List[SymptomOut])
def search_symptoms(q: str = Query(..., min_length=1, max_length=120), db: Session = Depends(get_db)):
    return catalog_service.search_symptoms(db, q)
