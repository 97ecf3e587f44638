from fastapi import APIRouter, Depends

from medibook.auth.dependencies import get_current_identity
from medibook.auth.identity import Identity

router = APIRouter(tags=['auth'])


@router.get("/me")
def me(identity: Identity = Depends(get_current_identity)):
    return {"id": identity.user_id, "email": identity.email, "role": identity.role}
