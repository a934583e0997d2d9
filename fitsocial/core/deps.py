"""
Dependency Injection

FastAPI dependencies for routes.
"""

from typing import Annotated

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from fitsocial.core.config import settings
from fitsocial.core.errors import AuthenticationError
from fitsocial.core.security import verify_token
from fitsocial.infra.db import AsyncSessionLocal, get_db
from fitsocial.infra.storage import LocalBlobStorage
from fitsocial.realtime.feed import change_feed
from fitsocial.services.data_service import DataService

# Tokens are issued by the external auth provider; tokenUrl only feeds the docs UI
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.api_prefix}/auth/token")

SessionDep = Annotated[AsyncSession, Depends(get_db)]


async def get_current_user_id(token: Annotated[str, Depends(oauth2_scheme)]) -> str:
    """
    Validate token and return current user ID.
    Does not fetch the profile to save a DB call.
    """
    user_id = verify_token(token)
    if not user_id:
        raise AuthenticationError("Could not validate credentials")
    return user_id


CurrentUserDep = Annotated[str, Depends(get_current_user_id)]


def get_data_service() -> DataService:
    return DataService(AsyncSessionLocal, change_feed, LocalBlobStorage())


DataServiceDep = Annotated[DataService, Depends(get_data_service)]
