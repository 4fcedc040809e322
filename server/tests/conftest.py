"""
Shared test configuration and fixtures for the leasing e-signature test suite.
"""

from typing import Dict
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from leasing_esign.core.config import Settings
from leasing_esign.db.base import Base
from leasing_esign.integrations.esignature.auth import TokenAcquirer
from leasing_esign.models.lease import Lease, SignatureStatus

from factories import WEBHOOK_SECRET


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="session")
def rsa_key_pair() -> Dict[str, str]:
    """RSA key pair in PEM form for assertion signing tests."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")
    public_pem = key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("utf-8")
    return {"private": private_pem, "public": public_pem}


@pytest.fixture
def settings(rsa_key_pair) -> Settings:
    return Settings(
        _env_file=None,
        docusign_integration_key="integration-key",
        docusign_user_id="user-guid",
        docusign_account_id="account-id",
        docusign_private_key=rsa_key_pair["private"],
        docusign_base_path="https://demo.docusign.net/restapi",
        docusign_webhook_secret=WEBHOOK_SECRET,
        storage_strategy="database",
    )


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncSession:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def pending_lease(db_session) -> Lease:
    lease = Lease(
        id="lease-123",
        tenant_email="tenant@example.com",
        tenant_name="Jane Doe",
        pdf_document_ref="leases/lease-123/lease.pdf",
        docusign_envelope_id="env-123",
        signature_status=SignatureStatus.PENDING_SIGNATURE,
    )
    db_session.add(lease)
    await db_session.commit()
    return lease


@pytest.fixture
def token_acquirer() -> Mock:
    acquirer = Mock(spec=TokenAcquirer)
    acquirer.get_access_token = AsyncMock(return_value="access-token")
    acquirer.invalidate = Mock()
    return acquirer
