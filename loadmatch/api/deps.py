from typing import Annotated

from fastapi import Header, HTTPException, status


async def get_current_owner(
    x_owner_id: Annotated[str | None, Header(alias="X-Owner-Id")] = None,
) -> str:
    """
    Owner id resolved by the authentication layer in front of this service.

    Usage:
        @router.get("/items")
        async def list_items(owner_id: str = Depends(get_current_owner)):
            ...
    """
    owner_id = (x_owner_id or "").strip()
    if not owner_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing credentials")
    return owner_id
