import pytest
from jose import jwt

from chatcore.core.settings import settings
from chatcore.errors import Unauthenticated
from chatcore.services.auth import create_access_token, identity_from_token


class TestIdentityFromToken:
    def test_claims_become_identity(self):
        token = create_access_token("u1", name="Alice", picture="https://img/a.png", email="a@example.com")
        ident = identity_from_token(token)
        assert (ident.id, ident.display_name, ident.photo_url, ident.email) == ("u1", "Alice", "https://img/a.png", "a@example.com")

    def test_missing_claims_stay_empty(self):
        ident = identity_from_token(create_access_token("u1"))
        assert ident.display_name is None and ident.photo_url is None

    @pytest.mark.parametrize("token", [None, "", "garbage"])
    def test_rejected(self, token):
        with pytest.raises(Unauthenticated):
            identity_from_token(token)

    def test_wrong_issuer(self):
        token = jwt.encode({"sub": "u1", "iss": "someone-else"}, settings.jwt_secret, algorithm="HS256")
        with pytest.raises(Unauthenticated):
            identity_from_token(token)

    def test_wrong_secret(self):
        token = jwt.encode({"sub": "u1", "iss": settings.jwt_issuer}, "other-secret", algorithm="HS256")
        with pytest.raises(Unauthenticated):
            identity_from_token(token)
