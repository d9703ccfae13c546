from typing import Optional
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.auth.security import TokenStatus, verify_access_token
from app.db.database import get_db
from app.exceptions import AuthenticationException
from app.image_service.models import Principal
from app.repository import MetadataRepository
from app.storage.s3 import S3Service

bearer_scheme = HTTPBearer(auto_error=False)

def get_s3_service(request: Request) -> S3Service:
    """Dependency provider for S3Service"""
    return request.app.state.s3

def get_repository(db: Session = Depends(get_db)) -> MetadataRepository:
    """Dependency provider for MetadataRepository"""
    return MetadataRepository(db)

def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    repo: MetadataRepository = Depends(get_repository),
) -> Principal:
    """Resolves the bearer token to the calling user."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationException("Authorization token is required")

    check = verify_access_token(credentials.credentials)
    if check.status is TokenStatus.EXPIRED:
        raise AuthenticationException("Token expired")
    if check.status is not TokenStatus.VALID:
        raise AuthenticationException("Invalid Token")

    user = repo.get_user(check.user_id)
    if user is None:
        raise AuthenticationException("User not found")
    return Principal(id=user.id, username=user.username)
