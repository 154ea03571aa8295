"""Tests for assertion construction at the provider boundary."""

import unittest

from domain.model.assertion import AppleAssertion, GoogleAssertion


class TestAppleFallbackPrecedence(unittest.TestCase):

    def test_decoded_token_wins(self):
        assertion = AppleAssertion.from_callback(
            provider_id='apple-1',
            decoded_token={'email': 'Token@X.com', 'name': 'Token Name'},
            profile={'email': 'profile@x.com', 'displayName': 'Profile Name'},
            form_user={'email': 'form@x.com', 'name': {'firstName': 'Form', 'lastName': 'User'}},
        )
        self.assertEqual(assertion.email, 'token@x.com')
        self.assertEqual(assertion.name, 'Token Name')

    def test_profile_used_when_token_lacks_field(self):
        assertion = AppleAssertion.from_callback(
            provider_id='apple-1',
            decoded_token={'sub': 'apple-1'},
            profile={'email': 'profile@x.com', 'displayName': 'Profile Name'},
            form_user={'email': 'form@x.com'},
        )
        self.assertEqual(assertion.email, 'profile@x.com')
        self.assertEqual(assertion.name, 'Profile Name')

    def test_form_body_is_last_resort(self):
        """Apple posts the name only in the form, on first authorization."""
        assertion = AppleAssertion.from_callback(
            provider_id='apple-1',
            decoded_token={'email': 'token@x.com'},
            form_user={'name': {'firstName': 'Ada', 'lastName': 'Lovelace'}},
        )
        self.assertEqual(assertion.email, 'token@x.com')
        self.assertEqual(assertion.name, 'Ada Lovelace')

    def test_fields_resolved_independently(self):
        assertion = AppleAssertion.from_callback(
            provider_id='apple-1',
            decoded_token={'name': '  '},
            profile={'email': 'profile@x.com'},
            form_user={'email': 'form@x.com', 'name': {'firstName': 'Ada'}},
        )
        self.assertEqual(assertion.email, 'profile@x.com')
        self.assertEqual(assertion.name, 'Ada')

    def test_no_sources(self):
        assertion = AppleAssertion.from_callback(provider_id='Apple-1')
        self.assertIsNone(assertion.email)
        self.assertEqual(assertion.name, 'Apple User')
        self.assertEqual(assertion.placeholder_email, 'apple-1@privaterelay.appleid.com')


class TestGoogleAssertion(unittest.TestCase):

    def test_from_userinfo(self):
        assertion = GoogleAssertion.from_userinfo({
            'sub': 12345,
            'email': 'User@Gmail.com',
            'name': 'Gee User',
            'picture': 'https://img/u.png',
        })
        self.assertEqual(assertion.provider_id, '12345')
        self.assertEqual(assertion.email, 'user@gmail.com')
        self.assertEqual(assertion.name, 'Gee User')
        self.assertEqual(assertion.avatar_url, 'https://img/u.png')


if __name__ == '__main__':
    unittest.main()
