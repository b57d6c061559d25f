"""Request authentication for the stock API.

End-user sessions are handled upstream; the gateway forwards the
authenticated user id in X-User-Id. Admin and cron endpoints check shared
secrets from the environment.
"""
import os

from fastapi import Header, HTTPException


async def get_caller_id(x_user_id: str = Header(None, alias="X-User-Id")) -> str:
    """Authenticated user id forwarded by the gateway."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()


async def verify_admin_key(x_admin_key: str = Header(None, alias="X-Admin-Key")):
    """Verify ADMIN_API_KEY for admin stock operations."""
    admin_key = os.environ.get("ADMIN_API_KEY", "")

    if not admin_key:
        raise HTTPException(status_code=500, detail="ADMIN_API_KEY not configured")

    if x_admin_key != admin_key:
        raise HTTPException(status_code=403, detail="Admin access required")

    return True


async def verify_cron_secret(
    authorization: str = Header(None, alias="Authorization")
):
    """
    Verify CRON_SECRET for scheduled jobs.
    """
    cron_secret = os.environ.get("CRON_SECRET", "")

    if not cron_secret:
        raise HTTPException(status_code=500, detail="CRON_SECRET not configured")

    if authorization != f"Bearer {cron_secret}":
        raise HTTPException(status_code=401, detail="Invalid CRON_SECRET")

    return True
