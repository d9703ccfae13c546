from fastapi import APIRouter, Depends
import logging

from app.auth.models import AuthResponse, LoginRequest, UserCredentials, UserItem
from app.auth.security import create_access_token, hash_password, verify_password
from app.dependencies.dependencies import get_repository
from app.exceptions import AuthenticationException, ConflictException, DatabaseException, ValidationException
from app.repository import MetadataRepository, WriteStatus

log = logging.getLogger(__name__)

router = APIRouter(
    prefix="/users",
    tags=["users"]
)

@router.post("/signup", response_model=AuthResponse, status_code=201)
def signup(
    body: UserCredentials,
    repo: MetadataRepository = Depends(get_repository),
):
    """Registers a user and returns a bearer token."""
    result = repo.create_user(body.username, hash_password(body.password))
    if result.status is WriteStatus.CONFLICT:
        raise ConflictException("username already exists.")
    if not result.ok:
        raise DatabaseException(f"Failed to create user: {result.detail}")

    user = result.value
    log.info("Registered user %s", user.id)
    return AuthResponse(user=UserItem.model_validate(user), token=create_access_token(user.id))

@router.post("/login", response_model=AuthResponse)
def login(
    body: LoginRequest,
    repo: MetadataRepository = Depends(get_repository),
):
    if not body.username or not body.password:
        raise ValidationException("username and password are required")

    user = repo.get_user_by_username(body.username)
    if user is None or not verify_password(body.password, user.password):
        raise AuthenticationException("Invalid credentials.")

    return AuthResponse(user=UserItem.model_validate(user), token=create_access_token(user.id))
