import io
import os
import pytest
from moto import mock_aws
from fastapi.testclient import TestClient
from PIL import Image

# Set test environment variables BEFORE importing app modules
os.environ["TESTING"] = "true"

# Dummy AWS credentials for moto
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
os.environ["AWS_SECURITY_TOKEN"] = "testing"
os.environ["AWS_SESSION_TOKEN"] = "testing"
os.environ["AWS_REGION"] = "us-east-1"
os.environ["S3_BUCKET"] = "image-service-bucket"
# Clear the AWS_ENDPOINT_URL so moto mocks are used instead of localstack
os.environ.pop("AWS_ENDPOINT_URL", None)

# In-memory SQLite shared through a single pooled connection
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret-0123456789abcdef0123456789"
os.environ["PASSWORD_HASH_ROUNDS"] = "4"

from app.main import app
from app.auth.security import create_access_token
from app.db.database import Base, SessionLocal, engine
from app.db import models
from app.repository import MetadataRepository
from app.storage.s3 import S3Service


def make_image_bytes(size=(10, 10), fmt="PNG", color="red", mode="RGB"):
    """Generate a simple valid image in-memory."""
    img = Image.new(mode, size, color=color)
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture(scope="function")
def aws_credentials():
    """Mocked AWS Credentials for moto."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"


@pytest.fixture(scope="function")
def db_session():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def repo(db_session):
    return MetadataRepository(db_session)


@pytest.fixture(scope="function")
def s3_service(aws_credentials):
    with mock_aws():
        yield S3Service()


@pytest.fixture(scope="function")
def test_client(aws_credentials, db_session):
    with mock_aws():
        with TestClient(app) as client:
            yield client


@pytest.fixture
def make_user(db_session):
    def _make(username="alice"):
        user = models.User(username=username, password="not-a-hash")
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user
    return _make


@pytest.fixture
def make_tags(db_session):
    def _make(*names):
        tags = [models.Tag(tag_name=name) for name in names]
        db_session.add_all(tags)
        db_session.commit()
        for tag in tags:
            db_session.refresh(tag)
        return tags
    return _make


@pytest.fixture
def auth_headers(make_user):
    def _headers(username="alice"):
        user = make_user(username)
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}
    return _headers
