"""
API Dependencies

Request-scoped access to the process services and the optional admin
token guard.
"""

import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from storefront.config import get_settings
from storefront.serving.services import Services


def get_services(request: Request) -> Services:
    services: Optional[Services] = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service is starting up")
    return services


async def require_admin(x_admin_token: Optional[str] = Header(default=None)) -> None:
    """Admin routes need X-Admin-Token when ADMIN_TOKEN is configured"""
    expected = get_settings().security.admin_token
    if expected is None or not expected.get_secret_value():
        return
    if not x_admin_token or not secrets.compare_digest(x_admin_token, expected.get_secret_value()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Admin token required")


AdminOnly = Depends(require_admin)
