from fastapi import APIRouter, Depends

from takeoff_portal.auth import Principal, get_current_principal
from takeoff_portal.services.takeoff_status_service import describe_workflow

router = APIRouter(prefix='/api/status-config', tags=['status-config'])


@router.get('')
def status_config(principal: Principal = Depends(get_current_principal)):
    return {'statuses': describe_workflow()}
