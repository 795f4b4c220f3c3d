# carelog/service/crud_companies.py
import logging
from typing import List, Optional

from ..errors import NotFoundError, ValidationError
from ..models import Company, CompanyUpdate
from .store import COMPANIES_COLL

logger = logging.getLogger(__name__)


async def add_company(store, company: Company) -> Company:
    if not company.name or not company.name.strip():
        raise ValidationError("add company", "name is required")
    doc = company.model_dump(exclude={"id"})
    doc["name"] = doc["name"].strip()
    created = await store.create(COMPANIES_COLL, doc)
    logger.info("[companies] created %s (%s)", created["id"], created["name"])
    return Company.model_validate(created)


async def get_company(store, company_id: str) -> Optional[Company]:
    doc = await store.get_by_id(COMPANIES_COLL, company_id)
    return Company.model_validate(doc) if doc else None


async def list_companies(store) -> List[Company]:
    docs = await store.list_all(COMPANIES_COLL, [("name", "asc")])
    return [Company.model_validate(d) for d in docs]


async def update_company(store, company_id: str, changes: CompanyUpdate) -> Company:
    # unset fields are left alone, an explicit null clears an optional one
    if "name" in changes.model_fields_set and not (changes.name or "").strip():
        raise ValidationError("update company", "name cannot be empty")
    if not await store.get_by_id(COMPANIES_COLL, company_id):
        raise NotFoundError("update company", f"company {company_id} not found")
    await store.update(COMPANIES_COLL, company_id, changes.model_dump(exclude_unset=True))
    return await get_company(store, company_id)


async def delete_company(store, company_id: str) -> None:
    """
    Deletes the company only. Patients keep the stale company_id and are shown
    under the unknown-company label.
    """
    if not await store.get_by_id(COMPANIES_COLL, company_id):
        raise NotFoundError("delete company", f"company {company_id} not found")
    await store.delete(COMPANIES_COLL, company_id)
    logger.info("[companies] deleted %s", company_id)
