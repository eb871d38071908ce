from fastapi import APIRouter, Depends

from taskflow.auth.dependencies import get_current_user
from taskflow.permissions import service
from taskflow.utils.errors import PermissionDenied
from taskflow.utils.helpers import envelope

router = APIRouter(prefix="/roles", tags=["Roles"])


@router.get("/me")
async def my_roles(current_user: dict = Depends(get_current_user)):
    return envelope(await service.get_user_roles(current_user["id"]), "Roles retrieved")


@router.get("/me/drift")
async def my_role_drift(current_user: dict = Depends(get_current_user)):
    drift = await service.find_role_drift(current_user["id"])
    return envelope({"in_sync": not drift, "drift": drift}, "Role drift checked")


@router.post("/reconcile/{user_id}")
async def reconcile(user_id: str, current_user: dict = Depends(get_current_user)):
    if user_id != current_user["id"]:
        roles = await service.get_user_roles(current_user["id"])
        if not service.is_system_admin(current_user, roles):
            raise PermissionDenied("Only system admins can reconcile other users")
    result = await service.reconcile_user_roles(user_id)
    return envelope(result, "Roles reconciled")
