import asyncio
import unittest

from auth.exceptions import InvalidTokenError, PasswordTooLongError, TokenAlreadyUsedError, TokenExpiredError
from auth.security import hash_password, hash_token, verify_password
from auth.services.credential_service import EMAIL_VERIFY, PASSWORD_RESET
from auth.stores.memory_store import MemoryVerificationStore
from tests.support import MemoryStores, RecordingEmailService, make_services

EMAIL = "member@swayamvar.in"
OLD_PASSWORD = "OldPass@123"
NEW_PASSWORD = "NewPass@456"


class SlowLookupVerificationStore(MemoryVerificationStore):
    """Yields after every lookup so concurrent consumers interleave."""

    async def get_by_hash(self, token_hash: str) -> dict | None:
        record = await super().get_by_hash(token_hash)
        await asyncio.sleep(0)
        return record


class CredentialServiceTestCase(unittest.IsolatedAsyncioTestCase):
    stores_class = MemoryStores

    async def asyncSetUp(self):
        self.services, self.stores, self.email, self.clock = make_services(stores=self.stores_class())
        self.credentials = self.services.credentials
        self.account = await self.stores.users.create_account(
            {"email": EMAIL, "hashed_password": hash_password(OLD_PASSWORD, rounds=4)}
        )


class TestPasswordReset(CredentialServiceTestCase):
    async def test_unknown_email_is_silent(self):
        await self.credentials.request_password_reset("nobody@swayamvar.in")

        self.assertEqual(self.email.sent, [])
        self.assertEqual(self.stores.verifications._by_hash, {})

    async def test_only_token_hash_is_stored(self):
        await self.credentials.request_password_reset(EMAIL)

        raw_token = self.email.last_reset_token()
        self.assertEqual(list(self.stores.verifications._by_hash), [hash_token(raw_token)])
        record = self.stores.verifications._by_hash[hash_token(raw_token)]
        self.assertEqual(record["purpose"], PASSWORD_RESET)
        self.assertEqual(record["expires_at"] - record["created_at"], 60 * 60)
        self.assertEqual(self.email.sent[-1].to, EMAIL)

    async def test_reset_changes_password_and_revokes_sessions(self):
        pair = await self.services.tokens.issue_token_pair(self.account)
        await self.credentials.request_password_reset(EMAIL)

        account = await self.credentials.reset_password(self.email.last_reset_token(), NEW_PASSWORD)

        self.assertTrue(verify_password(NEW_PASSWORD, account["hashed_password"]))
        self.assertFalse(verify_password(OLD_PASSWORD, account["hashed_password"]))
        with self.assertRaises(InvalidTokenError):
            await self.services.tokens.rotate_refresh_token(pair["refresh_token"])

    async def test_reset_clears_lockout(self):
        await self.stores.users.update_account(
            self.account["id"], {"failed_login_attempts": 5, "lock_until": self.clock() + 3600}
        )
        await self.credentials.request_password_reset(EMAIL)

        account = await self.credentials.reset_password(self.email.last_reset_token(), NEW_PASSWORD)

        self.assertEqual(account["failed_login_attempts"], 0)
        self.assertIsNone(account["lock_until"])

    async def test_long_password_leaves_token_usable(self):
        await self.credentials.request_password_reset(EMAIL)
        raw_token = self.email.last_reset_token()

        with self.assertRaises(PasswordTooLongError):
            await self.credentials.reset_password(raw_token, "Aa1@" + "x" * 80)

        record = self.stores.verifications._by_hash[hash_token(raw_token)]
        self.assertIsNone(record.get("consumed_at"))
        account = await self.credentials.reset_password(raw_token, NEW_PASSWORD)
        self.assertTrue(verify_password(NEW_PASSWORD, account["hashed_password"]))

    async def test_token_is_single_use(self):
        await self.credentials.request_password_reset(EMAIL)
        raw_token = self.email.last_reset_token()
        await self.credentials.reset_password(raw_token, NEW_PASSWORD)

        with self.assertRaises(TokenAlreadyUsedError):
            await self.credentials.reset_password(raw_token, "Another@789")

    async def test_token_expires(self):
        await self.credentials.request_password_reset(EMAIL)
        raw_token = self.email.last_reset_token()

        self.clock.advance(60 * 60)

        with self.assertRaises(TokenExpiredError) as ctx:
            await self.credentials.reset_password(raw_token, NEW_PASSWORD)
        self.assertEqual(ctx.exception.status_code, 400)

    async def test_unknown_token(self):
        with self.assertRaises(InvalidTokenError) as ctx:
            await self.credentials.reset_password("not-a-real-token", NEW_PASSWORD)
        self.assertEqual(ctx.exception.status_code, 400)

    async def test_new_request_invalidates_previous_token(self):
        await self.credentials.request_password_reset(EMAIL)
        first = self.email.last_reset_token()
        await self.credentials.request_password_reset(EMAIL)
        second = self.email.last_reset_token()

        with self.assertRaises(InvalidTokenError):
            await self.credentials.reset_password(first, NEW_PASSWORD)
        await self.credentials.reset_password(second, NEW_PASSWORD)

    async def test_delivery_failure_is_not_fatal(self):
        self.email.deliver = False

        await self.credentials.request_password_reset(EMAIL)

        self.assertEqual(len(self.stores.verifications._by_hash), 1)

    async def test_verification_token_cannot_reset_password(self):
        await self.credentials.resend_verification(EMAIL)

        with self.assertRaises(InvalidTokenError):
            await self.credentials.reset_password(self.email.last_verification_token(), NEW_PASSWORD)


class SlowStores(MemoryStores):
    def __init__(self) -> None:
        super().__init__()
        self.verifications = SlowLookupVerificationStore()


class TestConcurrentConsumption(CredentialServiceTestCase):
    stores_class = SlowStores

    async def test_one_winner(self):
        await self.credentials.request_password_reset(EMAIL)
        raw_token = self.email.last_reset_token()

        results = await asyncio.gather(
            self.credentials.reset_password(raw_token, NEW_PASSWORD),
            self.credentials.reset_password(raw_token, "Another@789"),
            return_exceptions=True,
        )

        winners = [result for result in results if isinstance(result, dict)]
        losers = [result for result in results if isinstance(result, TokenAlreadyUsedError)]
        self.assertEqual(len(winners), 1)
        self.assertEqual(len(losers), 1)


class TestEmailVerification(CredentialServiceTestCase):
    async def test_verify_email(self):
        await self.credentials.request_email_verification(self.account["id"])

        account = await self.credentials.verify_email(self.email.last_verification_token())

        self.assertTrue(account["is_email_verified"])
        record = next(iter(self.stores.verifications._by_hash.values()))
        self.assertEqual(record["purpose"], EMAIL_VERIFY)
        self.assertEqual(record["expires_at"] - record["created_at"], 24 * 60 * 60)

    async def test_verified_account_gets_no_email(self):
        await self.stores.users.update_account(self.account["id"], {"is_email_verified": True})

        await self.credentials.resend_verification(EMAIL)
        await self.credentials.request_email_verification(self.account["id"])

        self.assertEqual(self.email.sent, [])

    async def test_reset_token_cannot_verify_email(self):
        await self.credentials.request_password_reset(EMAIL)

        with self.assertRaises(InvalidTokenError):
            await self.credentials.verify_email(self.email.last_reset_token())

    async def test_verification_link_expires(self):
        await self.credentials.resend_verification(EMAIL)

        self.clock.advance(24 * 60 * 60)

        with self.assertRaises(TokenExpiredError):
            await self.credentials.verify_email(self.email.last_verification_token())

    async def test_purge_expired(self):
        await self.credentials.request_password_reset(EMAIL)
        await self.credentials.resend_verification(EMAIL)

        self.clock.advance(60 * 60)

        self.assertEqual(await self.credentials.purge_expired(), 1)
        self.assertEqual(len(self.stores.verifications._by_hash), 1)


class TestEmailContent(unittest.IsolatedAsyncioTestCase):
    async def test_links_point_at_frontend(self):
        services, stores, email, _ = make_services(email=RecordingEmailService())
        await stores.users.create_account({"email": EMAIL})

        await services.credentials.request_password_reset(EMAIL)
        await services.credentials.resend_verification(EMAIL)

        self.assertIn("http://frontend.local/reset-password?token=", email.sent[0].text_body)
        self.assertIn("http://frontend.local/verify-email/", email.sent[1].text_body)
        self.assertIn(email.last_verification_token(), email.sent[1].html_body)


if __name__ == "__main__":
    unittest.main()
