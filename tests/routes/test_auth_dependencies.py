import jwt
import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from medibook.auth import dependencies
from medibook.auth.jwt_handler import create_access_token, decode_access_token
from medibook.routes.auth_routes import me


def _bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme='Bearer', credentials=token)


@pytest.fixture(autouse=True)
def use_test_sessions(monkeypatch: pytest.MonkeyPatch, session_factory) -> None:
    monkeypatch.setattr(dependencies, 'SessionLocal', session_factory)


def test_access_token_carries_subject_and_role() -> None:
    claims = decode_access_token(create_access_token('doctor@example.com', role='doctor'))

    assert claims['sub'] == 'doctor@example.com'
    assert claims['role'] == 'doctor'
    assert claims['exp'] > claims['iat']


def test_expired_access_token_is_rejected() -> None:
    token = create_access_token('patient@example.com', expires_minutes=-1)

    with pytest.raises(jwt.ExpiredSignatureError):
        decode_access_token(token)


def test_missing_token_gives_anonymous_identity() -> None:
    assert dependencies.get_optional_identity(None) is None


def test_valid_token_resolves_identity(patient) -> None:
    identity = dependencies.get_optional_identity(_bearer(create_access_token(patient.email)))

    assert identity.user_id == patient.id
    assert identity.email == 'patient@example.com'
    assert identity.role == 'patient'
    assert not identity.is_doctor


def test_invalid_token_is_rejected_even_for_optional_identity() -> None:
    with pytest.raises(HTTPException) as exception_info:
        dependencies.get_optional_identity(_bearer('not-a-token'))

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'Invalid token'


def test_token_for_unknown_user_is_rejected(db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        dependencies.get_optional_identity(_bearer(create_access_token('ghost@example.com')))

    assert exception_info.value.detail == 'User not found'


def test_current_identity_requires_sign_in() -> None:
    with pytest.raises(HTTPException) as exception_info:
        dependencies.get_current_identity(None)

    assert exception_info.value.status_code == 401


def test_me_returns_identity_summary(admin_identity) -> None:
    assert me(identity=admin_identity) == {
        'id': admin_identity.user_id,
        'email': 'admin@example.com',
        'role': 'admin',
    }
