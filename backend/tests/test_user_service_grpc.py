import asyncio
from types import SimpleNamespace

import grpc
import pytest

from services.user_preferences import UserPreferencesClient
from services.user_service_grpc import (
    PROTO_PATH,
    GrpcUserService,
    UserProfile,
    UserServiceError,
    profile_from_message,
)


class FakeMessage(SimpleNamespace):
    """Mimics protobuf field presence for the fields that were set."""

    def HasField(self, name):
        return getattr(self, name, None) is not None


def _rpc_error(code):
    return grpc.aio.AioRpcError(code, grpc.aio.Metadata(), grpc.aio.Metadata(), details="boom")


class FakeStub:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.requests = []

    async def Get(self, request, timeout=None):
        self.requests.append((request, timeout))
        if self.error is not None:
            raise self.error
        return self.result


MESSAGES = SimpleNamespace(GetUserRequest=lambda **kw: kw)


def _client(stub):
    return GrpcUserService("localhost:50051", timeout=1.5, stub=stub, messages=MESSAGES)


def test_get_user_maps_options():
    user = FakeMessage(
        id=7,
        options=FakeMessage(
            language_code="ru",
            provider_mode="yandex",
            location=FakeMessage(latitude=55.75, longitude=37.62),
        ),
    )
    stub = FakeStub(result=user)
    profile = asyncio.run(_client(stub).get_user("12345"))

    assert profile == UserProfile(id=7, language_code="ru", provider_mode="yandex", location=(55.75, 37.62))
    assert stub.requests == [({"external_id": "12345"}, 1.5)]


def test_get_user_without_options():
    profile = profile_from_message(FakeMessage(id=3, options=None))
    assert profile == UserProfile(id=3)


def test_unset_optional_fields_are_none():
    options = FakeMessage(language_code=None, provider_mode=None, location=None)
    profile = profile_from_message(FakeMessage(id=1, options=options))
    assert profile.language_code is None
    assert profile.location is None


def test_not_found_returns_none():
    stub = FakeStub(error=_rpc_error(grpc.StatusCode.NOT_FOUND))
    assert asyncio.run(_client(stub).get_user("42")) is None


def test_other_rpc_errors_raise_user_service_error():
    stub = FakeStub(error=_rpc_error(grpc.StatusCode.UNAVAILABLE))
    with pytest.raises(UserServiceError) as exc_info:
        asyncio.run(_client(stub).get_user("42"))
    assert exc_info.value.code == grpc.StatusCode.UNAVAILABLE


def test_channel_usage_errors_raise_user_service_error():
    stub = FakeStub(error=grpc.aio.UsageError("Channel is closed."))
    with pytest.raises(UserServiceError):
        asyncio.run(_client(stub).get_user("42"))


def test_connect_failure_degrades_to_defaults(monkeypatch):
    def broken(path):
        raise ImportError("grpc_tools is not installed")

    monkeypatch.setattr(grpc, "protos_and_services", broken)
    client = UserPreferencesClient(GrpcUserService("127.0.0.1:1"), default_locale="de")

    async def scenario():
        await client.start()
        try:
            return await client.get_preferences("42")
        finally:
            await client.close()

    prefs = asyncio.run(scenario())
    assert prefs.locale == "de"
    assert prefs.provider_mode is None


def _servicer_class(protos, services):
    class Servicer(services.UserServiceServicer):
        async def Get(self, request, context):
            if request.external_id == "42":
                return protos.User(
                    id=42,
                    name="Ada",
                    options=protos.Options(
                        language_code="ru",
                        provider_mode="yandex",
                        location=protos.Location(latitude=55.75, longitude=37.62),
                    ),
                )
            if request.external_id == "down":
                await context.abort(grpc.StatusCode.UNAVAILABLE, "maintenance")
            await context.abort(grpc.StatusCode.NOT_FOUND, "no such user")

    return Servicer


def test_against_a_running_server():
    protos, services = grpc.protos_and_services(PROTO_PATH)

    async def scenario():
        server = grpc.aio.server()
        services.add_UserServiceServicer_to_server(_servicer_class(protos, services)(), server)
        port = server.add_insecure_port("127.0.0.1:0")
        await server.start()
        remote = GrpcUserService(f"127.0.0.1:{port}", timeout=5.0)
        client = UserPreferencesClient(remote, default_locale="en", timeout=5.0)
        try:
            await client.start()
            known = await remote.get_user("42")
            missing = await remote.get_user("nobody")
            with pytest.raises(UserServiceError) as exc_info:
                await remote.get_user("down")
            prefs = await client.get_preferences("42")
            fallback = await client.get_preferences("down")
        finally:
            await client.close()
            await server.stop(None)
        return known, missing, exc_info.value, prefs, fallback

    known, missing, error, prefs, fallback = asyncio.run(scenario())
    assert known == UserProfile(id=42, language_code="ru", provider_mode="yandex", location=(55.75, 37.62))
    assert missing is None
    assert error.code == grpc.StatusCode.UNAVAILABLE
    assert prefs.locale == "ru"
    assert prefs.location == (55.75, 37.62)
    assert fallback.locale == "en"
    assert fallback.provider_mode is None
