"""Unit tests for auth/service.py and auth/models.py.

The provider is FakeSupabaseAuth (AsyncMock methods). Covers:
- Each method calls the provider with the expected arguments
- Provider results and errors pass through unchanged
- Calls issued concurrently through one service never overlap
- Per-operation deadlines and their labels
- AuthTimeouts defaults and from_settings()
- SessionInfo.from_session() and from_user()
"""

import asyncio
import re

import pytest

from auth.models import AuthTimeouts, SessionInfo
from auth.queue import SerialQueue
from auth.service import AuthService
from core.config import Settings
from core.timeout import OperationTimeoutError
from tests.helpers import FakeSupabaseAuth, make_auth_response, make_session, make_user_response, provider_error


def _service(fake: FakeSupabaseAuth, **timeouts) -> AuthService:
    return AuthService(fake, queue=SerialQueue(), timeouts=AuthTimeouts(**timeouts))


class TestProviderCalls:
    def test_get_session_returns_provider_value(self):
        fake = FakeSupabaseAuth()
        session = make_session()
        fake.get_session.return_value = session
        assert asyncio.run(_service(fake).get_session()) is session

    def test_sign_in_passes_credentials(self):
        fake = FakeSupabaseAuth()
        response = make_auth_response(make_session())
        fake.sign_in_with_password.return_value = response

        result = asyncio.run(_service(fake).sign_in_with_password("ana@univ.fr", "s3cret-pass"))

        assert result is response
        fake.sign_in_with_password.assert_awaited_once_with({"email": "ana@univ.fr", "password": "s3cret-pass"})

    def test_sign_out_is_local_scope(self):
        fake = FakeSupabaseAuth()
        asyncio.run(_service(fake).sign_out_local())
        fake.sign_out.assert_awaited_once_with({"scope": "local"})

    def test_set_session_passes_tokens(self):
        fake = FakeSupabaseAuth()
        asyncio.run(_service(fake).set_session("acc", "ref"))
        fake.set_session.assert_awaited_once_with("acc", "ref")

    def test_exchange_code_uses_auth_code_param(self):
        fake = FakeSupabaseAuth()
        asyncio.run(_service(fake).exchange_code_for_session("pkce-code"))
        fake.exchange_code_for_session.assert_awaited_once_with({"auth_code": "pkce-code"})

    def test_exchange_code_forwards_code_verifier(self):
        fake = FakeSupabaseAuth()
        asyncio.run(_service(fake).exchange_code_for_session("pkce-code", "verifier-123"))
        fake.exchange_code_for_session.assert_awaited_once_with(
            {"auth_code": "pkce-code", "code_verifier": "verifier-123"}
        )

    def test_get_user_verifies_access_token(self):
        fake = FakeSupabaseAuth()
        response = make_user_response(make_session(user_id="u-7"))
        fake.get_user.return_value = response
        assert asyncio.run(_service(fake).get_user("jwt-1")) is response
        fake.get_user.assert_awaited_once_with("jwt-1")

    def test_reset_password_passes_redirect(self):
        fake = FakeSupabaseAuth()
        asyncio.run(_service(fake).reset_password_for_email("ana@univ.fr", "http://site/reset-password/confirm"))
        fake.reset_password_for_email.assert_awaited_once_with(
            "ana@univ.fr", {"redirect_to": "http://site/reset-password/confirm"}
        )

    def test_update_user_passes_attributes(self):
        fake = FakeSupabaseAuth()
        asyncio.run(_service(fake).update_user({"password": "new-password"}))
        fake.update_user.assert_awaited_once_with({"password": "new-password"})

    def test_on_auth_state_change_is_not_queued(self):
        fake = FakeSupabaseAuth()
        service = _service(fake)

        def callback(event, session):
            return None

        subscription = service.on_auth_state_change(callback)

        fake.on_auth_state_change.assert_called_once_with(callback)
        assert subscription is fake.on_auth_state_change.return_value
        assert service.queue.idle


class TestErrors:
    def test_provider_error_passes_through_verbatim(self):
        fake = FakeSupabaseAuth()
        err = provider_error("Invalid login credentials")
        fake.sign_in_with_password.side_effect = err

        with pytest.raises(type(err)) as excinfo:
            asyncio.run(_service(fake).sign_in_with_password("a@b.fr", "x"))
        assert excinfo.value is err

    def test_timeout_uses_operation_label(self):
        fake = FakeSupabaseAuth()

        async def hang(*args, **kwargs):
            await asyncio.Event().wait()

        fake.sign_out.side_effect = hang

        with pytest.raises(OperationTimeoutError, match=r"auth\.signOutLocal timed out after 20ms"):
            asyncio.run(_service(fake, sign_out_ms=20).sign_out_local())

    @pytest.mark.parametrize(
        ("method", "args", "field", "label"),
        [
            ("get_user", ("jwt",), "get_user_ms", "auth.getUser"),
            ("reset_password_for_email", ("a@b.fr", "http://site"), "reset_password_ms", "auth.resetPasswordForEmail"),
        ],
    )
    def test_each_operation_has_its_own_deadline(self, method, args, field, label):
        fake = FakeSupabaseAuth()

        async def hang(*a, **kw):
            await asyncio.Event().wait()

        getattr(fake, method).side_effect = hang
        service = _service(fake, **{field: 15})

        with pytest.raises(OperationTimeoutError, match=re.escape(f"{label} timed out after 15ms")):
            asyncio.run(getattr(service, method)(*args))

    def test_failed_call_does_not_block_next_call(self):
        fake = FakeSupabaseAuth()
        fake.set_session.side_effect = provider_error("Invalid Refresh Token")
        fake.get_session.return_value = None

        async def scenario():
            service = _service(fake)
            results = await asyncio.gather(
                service.set_session("a", "r"),
                service.get_session(),
                return_exceptions=True,
            )
            return results

        failed, session = asyncio.run(scenario())
        assert isinstance(failed, Exception)
        assert session is None


class TestSerialization:
    def test_concurrent_calls_never_overlap(self):
        fake = FakeSupabaseAuth()
        in_flight = 0
        peak = 0
        order: list[str] = []

        def tracked(name: str, seconds: float):
            async def call(*args, **kwargs):
                nonlocal in_flight, peak
                in_flight += 1
                peak = max(peak, in_flight)
                order.append(name)
                await asyncio.sleep(seconds)
                in_flight -= 1
                return name

            return call

        fake.get_session.side_effect = tracked("get_session", 0.02)
        fake.sign_in_with_password.side_effect = tracked("sign_in", 0.01)
        fake.update_user.side_effect = tracked("update_user", 0.0)

        async def scenario():
            service = _service(fake)
            return await asyncio.gather(
                service.get_session(),
                service.sign_in_with_password("a@b.fr", "pw"),
                service.update_user({"data": {"firstName": "Ana"}}),
            )

        results = asyncio.run(scenario())
        assert results == ["get_session", "sign_in", "update_user"]
        assert order == ["get_session", "sign_in", "update_user"]
        assert peak == 1

    def test_services_share_the_process_wide_queue_by_default(self):
        from auth.queue import auth_queue

        a = AuthService(FakeSupabaseAuth())
        b = AuthService(FakeSupabaseAuth())
        assert a.queue is auth_queue
        assert b.queue is auth_queue


class TestModels:
    def test_auth_timeouts_defaults(self):
        t = AuthTimeouts()
        assert (t.get_session_ms, t.sign_in_ms, t.sign_out_ms) == (10000, 15000, 2000)
        assert (t.set_session_ms, t.exchange_code_ms, t.update_user_ms) == (8000, 8000, 10000)
        assert (t.get_user_ms, t.reset_password_ms) == (10000, 20000)

    def test_auth_timeouts_from_settings(self):
        settings = Settings(debug=True, auth_sign_in_timeout_ms=1234, auth_sign_out_timeout_ms=99)
        t = AuthTimeouts.from_settings(settings)
        assert t.sign_in_ms == 1234
        assert t.sign_out_ms == 99
        assert t.get_session_ms == 10000

    def test_auth_timeouts_from_settings_covers_token_and_recovery_calls(self):
        settings = Settings(debug=True, auth_reset_password_timeout_ms=4321, auth_get_user_timeout_ms=55)
        t = AuthTimeouts.from_settings(settings)
        assert (t.reset_password_ms, t.get_user_ms) == (4321, 55)

    def test_session_info_from_session(self):
        info = SessionInfo.from_session(make_session(user_id="u-9", metadata={"firstName": "Ana"}))
        assert info.user_id == "u-9"
        assert info.access_token == "access-abc"
        assert info.refresh_token == "refresh-xyz"
        assert info.expires_at == 1767225600
        assert info.user_metadata == {"firstName": "Ana"}

    def test_session_info_from_user_has_no_expiry(self):
        info = SessionInfo.from_user(make_session(user_id="u-3").user, "acc", None)
        assert info.user_id == "u-3"
        assert info.access_token == "acc"
        assert info.refresh_token is None
        assert info.expires_at is None
