"""Tests for the Google and Apple OAuth adapters."""

import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

import httpx
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from jose import jwk, jwt

from adapter.external.apple_oauth import APPLE_ISSUER, AppleOAuthAdapter
from adapter.external.google_oauth import GOOGLE_USERINFO_URL, GoogleOAuthAdapter
from domain.model.errors import ValidationError

_RealAsyncClient = httpx.AsyncClient


def _mock_async_client(handler):
    """Factory standing in for httpx.AsyncClient, routed to a MockTransport."""
    return lambda **kwargs: _RealAsyncClient(transport=httpx.MockTransport(handler), **kwargs)


def _pem(private_key) -> str:
    return private_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()


class TestGoogleOAuthAdapter(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.adapter = GoogleOAuthAdapter(
            client_id='google-client', client_secret='shh', redirect_uri='https://api.example/auth/google/callback',
        )

    def test_authorization_url(self):
        url = urlparse(self.adapter.authorization_url('state-1'))
        params = parse_qs(url.query)

        self.assertEqual(params['client_id'], ['google-client'])
        self.assertEqual(params['state'], ['state-1'])
        self.assertEqual(params['scope'], ['openid email profile'])

    def test_unconfigured(self):
        with patch.dict('os.environ', {'GOOGLE_CLIENT_ID': ''}):
            adapter = GoogleOAuthAdapter(client_id='')
        with self.assertRaises(ValidationError):
            adapter.authorization_url('state-1')

    async def test_assert_identity(self):
        def handler(request):
            if request.url.path.endswith('/token'):
                return httpx.Response(200, json={'access_token': 'at-1'})
            self.assertEqual(str(request.url), GOOGLE_USERINFO_URL)
            self.assertEqual(request.headers['Authorization'], 'Bearer at-1')
            return httpx.Response(200, json={
                'sub': 'g-1', 'email': 'A@Gmail.com', 'email_verified': True, 'name': 'Alice',
            })

        with patch('adapter.external.google_oauth.httpx.AsyncClient', _mock_async_client(handler)):
            assertion = await self.adapter.assert_identity('code-1')

        self.assertEqual(assertion.provider_id, 'g-1')
        self.assertEqual(assertion.email, 'a@gmail.com')

    async def test_unverified_google_email_rejected(self):
        def handler(request):
            if request.url.path.endswith('/token'):
                return httpx.Response(200, json={'access_token': 'at-1'})
            return httpx.Response(200, json={'sub': 'g-1', 'email': 'a@x.com', 'email_verified': False})

        with patch('adapter.external.google_oauth.httpx.AsyncClient', _mock_async_client(handler)):
            with self.assertRaises(ValidationError):
                await self.adapter.assert_identity('code-1')

    async def test_rejected_code(self):
        with patch(
            'adapter.external.google_oauth.httpx.AsyncClient',
            _mock_async_client(lambda request: httpx.Response(400, json={'error': 'invalid_grant'})),
        ):
            with self.assertRaises(ValidationError):
                await self.adapter.assert_identity('bad-code')


class TestAppleOAuthAdapter(unittest.TestCase):

    def setUp(self):
        self.ec_key = ec.generate_private_key(ec.SECP256R1())
        self.adapter = AppleOAuthAdapter(
            client_id='com.example.web',
            team_id='TEAM123',
            key_id='KEY123',
            private_key=_pem(self.ec_key).replace('\n', '\\n'),
            redirect_uri='https://api.example/auth/apple/callback',
        )
        self.rsa_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        public_pem = self.rsa_key.public_key().public_bytes(
            serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode()
        jwk_dict = jwk.construct(public_pem, 'RS256').to_dict()
        self.keys = {'keys': [{**jwk_dict, 'kid': 'apple-kid', 'use': 'sig'}]}

    def _id_token(self, **overrides):
        now = datetime.now(timezone.utc)
        claims = {
            'iss': APPLE_ISSUER,
            'aud': 'com.example.web',
            'sub': '001234.abcd',
            'email': 'ada@privaterelay.appleid.com',
            'iat': now,
            'exp': now + timedelta(minutes=10),
        }
        claims.update(overrides)
        return jwt.encode(claims, _pem(self.rsa_key), algorithm='RS256', headers={'kid': 'apple-kid'})

    def test_authorization_url_uses_form_post(self):
        params = parse_qs(urlparse(self.adapter.authorization_url('state-1')).query)
        self.assertEqual(params['response_mode'], ['form_post'])
        self.assertEqual(params['scope'], ['name email'])

    def test_client_secret_is_es256_with_key_id(self):
        secret = self.adapter.client_secret()

        header = jwt.get_unverified_header(secret)
        claims = jwt.get_unverified_claims(secret)
        self.assertEqual(header['alg'], 'ES256')
        self.assertEqual(header['kid'], 'KEY123')
        self.assertEqual(claims['iss'], 'TEAM123')
        self.assertEqual(claims['sub'], 'com.example.web')

    def test_verify_id_token(self):
        claims = self.adapter.verify_id_token(self._id_token(), self.keys)
        self.assertEqual(claims['sub'], '001234.abcd')

    def test_wrong_audience_rejected(self):
        with self.assertRaises(ValidationError):
            self.adapter.verify_id_token(self._id_token(aud='com.other.app'), self.keys)

    def test_wrong_issuer_rejected(self):
        with self.assertRaises(ValidationError):
            self.adapter.verify_id_token(self._id_token(iss='https://evil.example'), self.keys)


if __name__ == '__main__':
    unittest.main()
