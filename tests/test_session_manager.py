import asyncio
import unittest
from unittest.mock import AsyncMock, patch

import httpx

from sunobridge import auth
from sunobridge.auth import SessionContext, SessionManager, get_session_manager, resolve_cookie
from sunobridge.errors import MissingCookie, NoActiveSession, SessionAcquisitionFailed, SunoApiError
from sunobridge.state import session_registry

from tests._bridge_test_utils import TEST_COOKIE, BaseBridgeTest, clerk_handler


class TestSessionManager(BaseBridgeTest):
    def _manager(self, handler, cookie: str = TEST_COOKIE) -> SessionManager:
        session = SessionContext.from_cookie_header(cookie)
        return SessionManager(session, config=self.write_config(), transport=httpx.MockTransport(handler))

    async def test_init_acquires_session_and_token(self) -> None:
        calls: list[httpx.Request] = []
        manager = self._manager(clerk_handler(session_id="sess_abc", jwt="jwt-abc", calls=calls))

        await manager.init()

        self.assertEqual(manager.session.session_id, "sess_abc")
        self.assertEqual(manager.session.token, "jwt-abc")
        self.assertIsNotNone(manager.session.issued_at)
        self.assertTrue(manager.session.is_authenticated)

        client_call, token_call = calls
        self.assertEqual(client_call.method, "GET")
        self.assertEqual(client_call.headers["authorization"], "client-cookie-value")
        self.assertEqual(client_call.url.params["_is_native"], "true")
        self.assertEqual(client_call.url.params["_clerk_js_version"], "5.117.0")
        self.assertEqual(client_call.url.params["__clerk_api_version"], "2025-11-10")
        self.assertEqual(token_call.method, "POST")
        self.assertEqual(token_call.url.path, "/v1/client/sessions/sess_abc/tokens")
        self.assertEqual(token_call.headers["authorization"], "client-cookie-value")

    async def test_requests_carry_client_headers_and_cookie_jar(self) -> None:
        calls: list[httpx.Request] = []
        manager = self._manager(clerk_handler(calls=calls))

        await manager.init()

        headers = calls[0].headers
        self.assertEqual(headers["x-suno-client"], "Android prerelease-4nt180t 1.0.42")
        self.assertEqual(headers["x-requested-with"], "com.suno.android")
        self.assertEqual(headers["affiliate-id"], "undefined")
        self.assertEqual(headers["device-id"], '"device-123"')
        self.assertIn("__client=client-cookie-value", headers["cookie"])

    async def test_set_cookie_is_merged_into_store(self) -> None:
        manager = self._manager(clerk_handler())

        await manager.init()

        self.assertEqual(manager.session.cookies.get("__client_uat"), "1766669400")
        self.assertEqual(manager.session.cookies.client, "client-cookie-value")

    async def test_missing_session_id_fails_acquisition(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"response": {"last_active_session_id": None}})

        manager = self._manager(handler)

        with self.assertRaises(SessionAcquisitionFailed):
            await manager.acquire_session()

    async def test_missing_client_cookie_fails_acquisition_without_request(self) -> None:
        handler = unittest.mock.Mock(side_effect=AssertionError("no request expected"))
        manager = self._manager(handler, cookie="foo=bar")

        with self.assertRaises(SessionAcquisitionFailed):
            await manager.acquire_session()
        handler.assert_not_called()

    async def test_renew_without_session_id_raises(self) -> None:
        manager = self._manager(clerk_handler())

        with self.assertRaises(NoActiveSession):
            await manager.renew_token()

    async def test_renew_without_jwt_raises_api_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"errors": []})

        manager = self._manager(handler)
        manager.session.session_id = "sess_1"

        with self.assertRaises(SunoApiError) as ctx:
            await manager.renew_token()
        self.assertEqual(ctx.exception.status_code, 401)

    async def test_anonymous_request_is_rejected(self) -> None:
        manager = self._manager(clerk_handler())

        with self.assertRaises(NoActiveSession):
            await manager.request("GET", "https://studio-api.prod.suno.com/api/billing/info/")

    async def test_bearer_token_used_once_present(self) -> None:
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json={})

        manager = self._manager(handler)
        manager.session.set_token("jwt-xyz")

        await manager.request("GET", "https://studio-api.prod.suno.com/api/billing/info/")

        self.assertEqual(calls[0].headers["authorization"], "Bearer jwt-xyz")

    async def test_renew_with_wait_sleeps_in_configured_range(self) -> None:
        manager = self._manager(clerk_handler())
        manager.session.session_id = "sess_1"
        manager.timeouts["keep_alive_sleep_min"] = 1.0
        manager.timeouts["keep_alive_sleep_max"] = 2.0

        with patch.object(auth.asyncio, "sleep", AsyncMock()) as sleep_mock:
            await manager.renew_token(wait=True)

        delay = sleep_mock.await_args.args[0]
        self.assertGreaterEqual(delay, 1.0)
        self.assertLessEqual(delay, 2.0)

    async def test_concurrent_renewals_last_response_wins(self) -> None:
        counter = {"n": 0}
        answered: list[str] = []

        async def handler(request: httpx.Request) -> httpx.Response:
            counter["n"] += 1
            jwt = f"jwt-{counter['n']}"
            # The first request answers last
            await asyncio.sleep(0.02 if counter["n"] == 1 else 0)
            answered.append(jwt)
            return httpx.Response(200, json={"jwt": jwt})

        manager = self._manager(handler)
        manager.session.session_id = "sess_1"

        await asyncio.gather(manager.renew_token(), manager.renew_token())

        self.assertEqual(len(answered), 2)
        self.assertEqual(manager.session.token, answered[-1])


class TestSessionRegistryLookup(BaseBridgeTest):
    def test_resolve_cookie_prefers_request_cookie_with_client(self) -> None:
        config = self.write_config(suno_cookie="__client=configured")
        self.assertEqual(resolve_cookie("__client=from-request", config), "__client=from-request")
        self.assertEqual(resolve_cookie("other=1", config), "__client=configured")

    def test_resolve_cookie_without_any_cookie_raises(self) -> None:
        with self.assertRaises(MissingCookie):
            resolve_cookie(None, self.write_config())

    async def test_get_session_manager_initializes_once_per_identity(self) -> None:
        init = AsyncMock(side_effect=lambda: None)

        async def fake_init(self):
            await init()
            self.session.session_id = "sess"
            self.session.set_token("jwt")
            return self

        with patch.object(SessionManager, "init", fake_init):
            first, second = await asyncio.gather(
                get_session_manager(TEST_COOKIE, config=self.write_config()),
                get_session_manager(TEST_COOKIE, config=self.write_config()),
            )
            other = await get_session_manager("__client=someone-else", config=self.write_config())

        self.assertIs(first, second)
        self.assertIsNot(first, other)
        self.assertEqual(init.await_count, 2)
        self.assertEqual(len(session_registry), 2)


if __name__ == "__main__":
    unittest.main()
