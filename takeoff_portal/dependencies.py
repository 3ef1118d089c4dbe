from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from takeoff_portal.auth import Principal, get_current_principal
from takeoff_portal.db import get_db
from takeoff_portal.services.company_scope_service import COMPANY_HEADER, CompanyScope, resolve_company_scope


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


def get_company_scope(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> CompanyScope:
    try:
        return resolve_company_scope(db, principal, request.headers.get(COMPANY_HEADER))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except PermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
