import threading
import unittest
from unittest import mock

from doarama_client.auth import Anonymous, Delegated, resolve_session
from doarama_client.client import Client
from doarama_client.errors import AmbiguousCredentialsError, RemoteCallError
from doarama_client.retry import BackoffRetry

from fakes import API_URL, FakeHTTP, FakeResponse


def make_client(http: FakeHTTP) -> Client:
    return Client(API_URL, "app", "secret", http=http)


class ResolveSessionTests(unittest.TestCase):
    def test_user_id_only_gives_anonymous_session(self) -> None:
        http = FakeHTTP()
        session = resolve_session(make_client(http), user_id="pilot-1")
        self.assertEqual(session.identity, Anonymous("pilot-1"))
        self.assertEqual(http.calls, [])

    def test_user_key_only_gives_delegated_session(self) -> None:
        http = FakeHTTP()
        session = resolve_session(make_client(http), user_key="k-123")
        self.assertIsInstance(session.identity, Delegated)
        self.assertEqual(session.identity.user_key, "k-123")
        self.assertEqual(http.calls, [])

    def test_both_or_neither_credentials_are_rejected(self) -> None:
        for user_id, user_key in (("", ""), ("pilot-1", "k-123")):
            http = FakeHTTP()
            with self.subTest(user_id=user_id, user_key=user_key):
                with self.assertRaises(AmbiguousCredentialsError):
                    resolve_session(make_client(http), user_id=user_id, user_key=user_key)
                self.assertEqual(http.calls, [])


class IdentityHeaderTests(unittest.TestCase):
    def test_anonymous_requests_carry_user_id(self) -> None:
        http = FakeHTTP({("DELETE", "/activity/7"): FakeResponse(204)})
        session = make_client(http).anonymous("pilot-1")
        session.activity(7).delete()
        headers = http.calls[0]["headers"]
        self.assertEqual(headers["user-id"], "pilot-1")
        self.assertEqual(headers["api-name"], "app")
        self.assertEqual(headers["api-key"], "secret")
        self.assertNotIn("user-key", headers)

    def test_delegate_exchange_is_lazy_and_happens_once(self) -> None:
        http = FakeHTTP({
            ("POST", "/user/delegate"): FakeResponse(200, {"key": "delegated-1"}),
            ("DELETE", "/activity/1"): FakeResponse(204),
            ("DELETE", "/activity/2"): FakeResponse(204),
        })
        session = make_client(http).delegate("k-123")
        self.assertFalse(session.identity.exchanged)
        self.assertEqual(http.calls, [])

        session.activity(1).delete()
        session.activity(2).delete()

        self.assertEqual(http.paths(), ["/user/delegate", "/activity/1", "/activity/2"])
        self.assertEqual(http.calls[0]["headers"]["user-key"], "k-123")
        self.assertEqual(http.calls[1]["headers"]["user-key"], "delegated-1")
        self.assertEqual(http.calls[2]["headers"]["user-key"], "delegated-1")

    def test_concurrent_first_use_shares_one_exchange(self) -> None:
        http = FakeHTTP({("POST", "/user/delegate"): FakeResponse(200, {"key": "delegated-1"})})
        client = make_client(http)
        identity = Delegated("k-123")
        keys: list[str] = []

        def worker() -> None:
            keys.append(identity.ensure_key(client))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(keys, ["delegated-1"] * 8)
        self.assertEqual(http.paths(), ["/user/delegate"])

    def test_failed_exchange_is_a_remote_call_error(self) -> None:
        http = FakeHTTP({("POST", "/user/delegate"): FakeResponse(403, {"error": "bad user key"})})
        session = make_client(http).delegate("k-123")
        with self.assertRaises(RemoteCallError) as ctx:
            session.activity(1).delete()
        self.assertEqual(ctx.exception.operation, "delegate user")
        self.assertEqual(ctx.exception.status_code, 403)
        self.assertFalse(session.identity.exchanged)

    def test_exchange_without_key_in_response_fails(self) -> None:
        http = FakeHTTP({("POST", "/user/delegate"): FakeResponse(200, {})})
        with self.assertRaises(RemoteCallError):
            Delegated("k-123").ensure_key(make_client(http))

    def test_exchange_is_retried_once_per_policy_attempt(self) -> None:
        http = FakeHTTP({("POST", "/user/delegate"): [FakeResponse(503) for _ in range(10)]})
        client = Client(API_URL, "app", "secret", retry_policy=BackoffRetry(attempts=3), http=http)
        session = client.delegate("k-123")
        with mock.patch("doarama_client.retry.time.sleep") as sleep:
            with self.assertRaises(RemoteCallError) as ctx:
                session.activity(1).delete()
        self.assertEqual(ctx.exception.operation, "delegate user")
        self.assertEqual(http.paths(), ["/user/delegate"] * 3)
        self.assertEqual(sleep.call_count, 2)

    def test_exchange_and_request_retry_independently(self) -> None:
        http = FakeHTTP({
            ("POST", "/user/delegate"): [FakeResponse(503), FakeResponse(200, {"key": "delegated-1"})],
            ("DELETE", "/activity/1"): [FakeResponse(502), FakeResponse(204)],
        })
        client = Client(API_URL, "app", "secret", retry_policy=BackoffRetry(attempts=3), http=http)
        with mock.patch("doarama_client.retry.time.sleep"):
            client.delegate("k-123").activity(1).delete()
        self.assertEqual(http.paths(), ["/user/delegate", "/user/delegate", "/activity/1", "/activity/1"])


if __name__ == "__main__":
    unittest.main()
