# carelog/routes/companies.py
from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_store
from ..models import Company, CompanyUpdate
from ..service.crud_companies import add_company, delete_company, get_company, list_companies, update_company

router = APIRouter()


@router.post("/", status_code=201)
async def create_company(company: Company, store=Depends(get_store)):
    created = await add_company(store, company)
    return {"status": "ok", "company": created}


@router.get("/")
async def fetch_companies(store=Depends(get_store)):
    return {"status": "ok", "companies": await list_companies(store)}


@router.get("/{company_id}")
async def fetch_company(company_id: str, store=Depends(get_store)):
    company = await get_company(store, company_id)
    if not company:
        raise HTTPException(status_code=404, detail="Company not found")
    return {"status": "ok", "company": company}


@router.patch("/{company_id}")
async def edit_company(company_id: str, changes: CompanyUpdate, store=Depends(get_store)):
    return {"status": "ok", "company": await update_company(store, company_id, changes)}


@router.delete("/{company_id}")
async def remove_company(company_id: str, store=Depends(get_store)):
    """Patients of a deleted company keep the reference and show as unknown company."""
    await delete_company(store, company_id)
    return {"status": "ok"}
