import asyncio

from domain.models import ProviderMode
from services.user_preferences import UserPreferencesClient
from services.user_service_grpc import UserProfile, UserServiceError


class FakeRemote:
    def __init__(self, profiles=None, error=None, delay=0.0):
        self.profiles = profiles or {}
        self.error = error
        self.delay = delay
        self.calls = []
        self.connected = False
        self.closed = False

    async def connect(self):
        self.connected = True

    async def close(self):
        self.closed = True

    async def get_user(self, identity):
        self.calls.append(identity)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.profiles.get(identity)


def test_disabled_client_returns_defaults():
    client = UserPreferencesClient(None, default_locale="en")
    prefs = asyncio.run(client.get_preferences("u1"))
    assert not client.enabled
    assert prefs.identity == "u1"
    assert prefs.locale == "en"
    assert prefs.provider_mode is None


def test_profile_is_mapped_and_cached_until_ttl(clock):
    remote = FakeRemote(
        {"u1": UserProfile(id=1, language_code="ru", provider_mode="yandex", location=(55.75, 37.62))}
    )
    client = UserPreferencesClient(remote, ttl=360, clock=clock)

    async def scenario():
        first = await client.get_preferences("u1")
        second = await client.get_preferences("u1")
        clock.now = 361.0
        await client.get_preferences("u1")
        return first, second

    first, second = asyncio.run(scenario())
    assert first.locale == "ru"
    assert first.provider_mode == ProviderMode.YANDEX
    assert first.location == (55.75, 37.62)
    assert second == first
    assert remote.calls == ["u1", "u1"]


def test_unknown_identity_gets_cached_defaults():
    remote = FakeRemote({})
    client = UserPreferencesClient(remote, default_locale="de")

    async def scenario():
        await client.get_preferences("ghost")
        return await client.get_preferences("ghost")

    prefs = asyncio.run(scenario())
    assert prefs.locale == "de"
    assert remote.calls == ["ghost"]


def test_rpc_failure_gives_uncached_defaults():
    remote = FakeRemote(error=UserServiceError("unreachable"))
    client = UserPreferencesClient(remote, default_locale="en")

    async def scenario():
        await client.get_preferences("u1")
        return await client.get_preferences("u1")

    prefs = asyncio.run(scenario())
    assert prefs.locale == "en"
    assert prefs.provider_mode is None
    assert remote.calls == ["u1", "u1"]


def test_slow_rpc_times_out_to_defaults():
    remote = FakeRemote({"u1": UserProfile(id=1, language_code="fr")}, delay=1.0)
    client = UserPreferencesClient(remote, default_locale="en", timeout=0.05)
    prefs = asyncio.run(client.get_preferences("u1"))
    assert prefs.locale == "en"


def test_unknown_provider_mode_is_ignored():
    remote = FakeRemote({"u1": UserProfile(id=1, provider_mode="bing")})
    prefs = asyncio.run(UserPreferencesClient(remote).get_preferences("u1"))
    assert prefs.provider_mode is None


def test_start_and_close_manage_remote_and_sweeper():
    remote = FakeRemote()
    client = UserPreferencesClient(remote, sweep_interval=60)

    async def scenario():
        await client.start()
        assert remote.connected
        assert client._sweeper.running
        await client.close()
        assert not client._sweeper.running

    asyncio.run(scenario())
    assert remote.closed


def test_sweep_drops_expired_entries(clock):
    remote = FakeRemote({"u1": UserProfile(id=1)})
    client = UserPreferencesClient(remote, ttl=10, clock=clock)
    asyncio.run(client.get_preferences("u1"))
    clock.now = 11.0
    assert client.sweep() == 1


def test_start_survives_unreachable_service():
    remote = FakeRemote(error=UserServiceError("unreachable"))

    async def connect():
        raise UserServiceError("cannot connect")

    remote.connect = connect
    client = UserPreferencesClient(remote, default_locale="en")

    async def scenario():
        await client.start()
        try:
            return await client.get_preferences("u1")
        finally:
            await client.close()

    prefs = asyncio.run(scenario())
    assert prefs.locale == "en"
    assert remote.closed
