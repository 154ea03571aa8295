"""Tests for bearer, OAuth state and single-use tokens."""

import unittest
from datetime import datetime, timedelta, timezone

from domain.model.user import TokenPurpose
from services.token_service import (
    hash_token,
    issue_bearer_token,
    issue_oauth_state,
    issue_single_use_token,
    verify_bearer_token,
    verify_oauth_state,
)


class TestBearerToken(unittest.TestCase):

    def test_round_trip(self):
        token = issue_bearer_token('user-1')
        self.assertEqual(verify_bearer_token(token), 'user-1')

    def test_expired_token_rejected(self):
        issued = datetime.now(timezone.utc) - timedelta(days=8)
        self.assertIsNone(verify_bearer_token(issue_bearer_token('user-1', now=issued)))

    def test_garbage_rejected(self):
        self.assertIsNone(verify_bearer_token('not-a-jwt'))


class TestOAuthState(unittest.TestCase):

    def test_state_bound_to_provider(self):
        state = issue_oauth_state('google')
        self.assertTrue(verify_oauth_state(state, 'google'))
        self.assertFalse(verify_oauth_state(state, 'apple'))

    def test_missing_or_stale_state(self):
        self.assertFalse(verify_oauth_state(None, 'google'))
        self.assertFalse(verify_oauth_state('', 'google'))
        stale = issue_oauth_state('google', now=datetime.now(timezone.utc) - timedelta(hours=1))
        self.assertFalse(verify_oauth_state(stale, 'google'))


class TestSingleUseToken(unittest.TestCase):

    def test_only_digest_is_meant_for_storage(self):
        token = issue_single_use_token(TokenPurpose.VERIFY_EMAIL)

        self.assertEqual(len(token.plaintext), 64)
        self.assertEqual(token.token_hash, hash_token(token.plaintext))
        self.assertNotEqual(token.token_hash, token.plaintext)

    def test_validity_by_purpose(self):
        now = datetime(2026, 3, 1, tzinfo=timezone.utc)

        self.assertEqual(issue_single_use_token(TokenPurpose.VERIFY_EMAIL, now).expires_at, now + timedelta(hours=24))
        self.assertEqual(issue_single_use_token(TokenPurpose.LINK_ACCOUNT, now).expires_at, now + timedelta(hours=24))
        self.assertEqual(issue_single_use_token(TokenPurpose.RESET_PASSWORD, now).expires_at, now + timedelta(hours=1))
        self.assertEqual(issue_single_use_token(TokenPurpose.SETUP_PASSWORD, now).expires_at, now + timedelta(hours=1))

    def test_tokens_are_unique(self):
        tokens = {issue_single_use_token(TokenPurpose.VERIFY_EMAIL).plaintext for _ in range(20)}
        self.assertEqual(len(tokens), 20)


if __name__ == '__main__':
    unittest.main()
