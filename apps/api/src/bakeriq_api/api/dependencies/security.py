from fastapi import Depends, Header, HTTPException, status

from bakeriq_api.core.settings import Settings, get_settings


async def require_operator_api_key(
    x_api_key: str = Header("", alias="X-API-Key"),
    settings: Settings = Depends(get_settings),
) -> None:
    """Guard operator endpoints; open when no operator key is configured."""

    if not settings.operator_api_key:
        return

    if x_api_key != settings.operator_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )
