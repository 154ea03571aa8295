"""Unit tests for FakeUserRepository — verifies Port contract compliance."""

import unittest
from datetime import datetime, timedelta, timezone

from adapter.fake.user_repository import FakeUserRepository
from domain.model.errors import UniquenessViolationError
from domain.model.user import AuthMethod, TokenPurpose, User, UserMatch, UserMutation

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _user(user_id='user-1', email='a@x.com', **kwargs) -> User:
    defaults = {
        'name': 'Alice',
        'created_at': NOW,
        'updated_at': NOW,
        'auth_methods': frozenset({AuthMethod.EMAIL}),
    }
    defaults.update(kwargs)
    return User(id=user_id, email=email, **defaults)


class TestFakeUserRepository(unittest.TestCase):
    """Tests that FakeUserRepository correctly implements UserRepository Protocol."""

    def setUp(self):
        self.repo = FakeUserRepository()

    # ── insert_if_absent ──────────────────────────────────────

    def test_insert_and_get(self):
        self.repo.insert_if_absent(_user())

        self.assertEqual(self.repo.get_by_id('user-1').email, 'a@x.com')
        self.assertEqual(self.repo.get_by_email('a@x.com').id, 'user-1')

    def test_insert_duplicate_email(self):
        self.repo.insert_if_absent(_user())
        with self.assertRaises(UniquenessViolationError) as ctx:
            self.repo.insert_if_absent(_user('user-2'))
        self.assertEqual(ctx.exception.key, 'email')

    def test_insert_duplicate_provider_id(self):
        self.repo.insert_if_absent(_user(google_id='g-1'))
        with self.assertRaises(UniquenessViolationError) as ctx:
            self.repo.insert_if_absent(_user('user-2', 'b@x.com', google_id='g-1'))
        self.assertEqual(ctx.exception.key, 'google_id')

    def test_absent_provider_ids_do_not_collide(self):
        self.repo.insert_if_absent(_user())
        self.repo.insert_if_absent(_user('user-2', 'b@x.com'))
        self.assertEqual(len(self.repo.store), 2)

    def test_reads_return_copies(self):
        self.repo.insert_if_absent(_user())
        self.repo.get_by_id('user-1').name = 'Mallory'
        self.assertEqual(self.repo.get_by_id('user-1').name, 'Alice')

    # ── conditional_update ────────────────────────────────────

    def test_update_applies_all_changes(self):
        self.repo.insert_if_absent(_user(pending_password_hash='pending', avatar=''))

        updated = self.repo.conditional_update(
            UserMatch(email='a@x.com'),
            UserMutation(
                set_fields={'google_id': 'g-1'},
                add_methods=frozenset({AuthMethod.GOOGLE}),
                increment={'login_attempts': 2},
                copy_fields={'password_hash': 'pending_password_hash'},
                set_if_empty={'avatar': 'https://img/a.png'},
                unset_fields=frozenset({'pending_password_hash'}),
            ),
        )

        self.assertEqual(updated.google_id, 'g-1')
        self.assertEqual(updated.auth_methods, frozenset({AuthMethod.EMAIL, AuthMethod.GOOGLE}))
        self.assertEqual(updated.login_attempts, 2)
        self.assertEqual(updated.password_hash, 'pending')
        self.assertIsNone(updated.pending_password_hash)
        self.assertEqual(updated.avatar, 'https://img/a.png')
        self.assertGreater(updated.updated_at, NOW)

    def test_update_no_match(self):
        self.repo.insert_if_absent(_user())
        self.assertIsNone(self.repo.conditional_update(UserMatch(email='b@x.com'), UserMutation()))

    def test_method_conditions(self):
        self.repo.insert_if_absent(_user())

        self.assertIsNone(self.repo.conditional_update(
            UserMatch(id='user-1', without_method=AuthMethod.EMAIL), UserMutation(),
        ))
        self.assertIsNotNone(self.repo.conditional_update(
            UserMatch(id='user-1', with_method=AuthMethod.EMAIL), UserMutation(),
        ))

    def test_token_must_be_unexpired(self):
        self.repo.insert_if_absent(_user(
            email_verification_token='hash',
            email_verification_expires=NOW + timedelta(hours=1),
            email_verification_purpose=TokenPurpose.VERIFY_EMAIL,
        ))
        match = UserMatch(verification_token='hash', verification_purpose=TokenPurpose.VERIFY_EMAIL)

        expired = UserMatch(**{**vars(match), 'token_valid_at': NOW + timedelta(hours=1)})
        valid = UserMatch(**{**vars(match), 'token_valid_at': NOW})

        self.assertIsNone(self.repo.conditional_update(expired, UserMutation()))
        self.assertIsNotNone(self.repo.conditional_update(valid, UserMutation()))

    def test_lock_expiry_condition(self):
        self.repo.insert_if_absent(_user(is_locked=True, lock_until=NOW))

        self.assertIsNone(self.repo.conditional_update(
            UserMatch(id='user-1', lock_expired_at=NOW - timedelta(seconds=1)), UserMutation(),
        ))
        self.assertIsNotNone(self.repo.conditional_update(
            UserMatch(id='user-1', lock_expired_at=NOW), UserMutation(),
        ))

    def test_pending_password_condition(self):
        self.repo.insert_if_absent(_user())

        self.assertIsNone(self.repo.conditional_update(
            UserMatch(id='user-1', has_pending_password=True), UserMutation(),
        ))
        self.assertIsNotNone(self.repo.conditional_update(
            UserMatch(id='user-1', has_pending_password=False), UserMutation(),
        ))

        self.repo.conditional_update(UserMatch(id='user-1'), UserMutation(set_fields={'pending_password_hash': 'h'}))
        self.assertIsNotNone(self.repo.conditional_update(
            UserMatch(id='user-1', has_pending_password=True), UserMutation(),
        ))

    def test_update_rejects_taken_provider_id(self):
        self.repo.insert_if_absent(_user(google_id='g-1'))
        self.repo.insert_if_absent(_user('user-2', 'b@x.com'))

        with self.assertRaises(UniquenessViolationError):
            self.repo.conditional_update(UserMatch(id='user-2'), UserMutation(set_fields={'google_id': 'g-1'}))
        self.assertIsNone(self.repo.get_by_id('user-2').google_id)

    def test_unset_restores_defaults(self):
        self.repo.insert_if_absent(_user(is_locked=True, lock_until=NOW, login_attempts=5))

        updated = self.repo.conditional_update(
            UserMatch(id='user-1'),
            UserMutation(unset_fields=frozenset({'is_locked', 'lock_until', 'login_attempts'})),
        )

        self.assertFalse(updated.is_locked)
        self.assertIsNone(updated.lock_until)
        self.assertEqual(updated.login_attempts, 0)

    # ── get_by_provider_id ────────────────────────────────────

    def test_get_by_provider_id(self):
        self.repo.insert_if_absent(_user(apple_id='apple-1'))

        self.assertEqual(self.repo.get_by_provider_id(AuthMethod.APPLE, 'apple-1').id, 'user-1')
        self.assertIsNone(self.repo.get_by_provider_id(AuthMethod.GOOGLE, 'apple-1'))
        self.assertIsNone(self.repo.get_by_provider_id(AuthMethod.EMAIL, 'apple-1'))


if __name__ == '__main__':
    unittest.main()
