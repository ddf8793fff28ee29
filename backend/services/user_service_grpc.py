"""
gRPC client for the identity microservice.

The service definition ships as `user_service.proto` next to this module and is
compiled at runtime with grpc.protos_and_services, so no generated code is
checked in.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Tuple

import grpc

logger = logging.getLogger(__name__)

PROTO_PATH = "services/user_service.proto"


class UserServiceError(Exception):
    """The identity service could not be reached or answered with an error."""

    def __init__(self, message: str, code: Optional[grpc.StatusCode] = None):
        self.code = code
        super().__init__(message)


@dataclass(frozen=True)
class UserProfile:
    """The subset of a remote user record the resolver cares about."""
    id: int
    language_code: Optional[str] = None
    provider_mode: Optional[str] = None
    location: Optional[Tuple[float, float]] = None


def _has_field(message: Any, field: str) -> bool:
    try:
        return message.HasField(field)
    except ValueError:
        # non-optional scalar: proto3 has no presence for it
        return bool(getattr(message, field, None))


def profile_from_message(user: Any) -> UserProfile:
    options = user.options if _has_field(user, "options") else None
    if options is None:
        return UserProfile(id=int(user.id))
    location = None
    if _has_field(options, "location"):
        location = (float(options.location.latitude), float(options.location.longitude))
    return UserProfile(
        id=int(user.id),
        language_code=options.language_code if _has_field(options, "language_code") else None,
        provider_mode=options.provider_mode if _has_field(options, "provider_mode") else None,
        location=location,
    )


class GrpcUserService:
    """
    Thin async wrapper over the generated UserService stub.

    The channel is opened once by `connect()` and reused for every call.
    """

    def __init__(self, address: str, timeout: float = 2.0, stub: Any = None, messages: Any = None):
        self.address = address
        self.timeout = timeout
        self._stub = stub
        self._messages = messages
        self._channel: Optional[grpc.aio.Channel] = None

    @property
    def connected(self) -> bool:
        return self._stub is not None

    async def connect(self) -> None:
        if self._stub is not None:
            return
        try:
            protos, services = grpc.protos_and_services(PROTO_PATH)
            self._channel = grpc.aio.insecure_channel(self.address)
        except Exception as exc:
            raise UserServiceError(f"cannot connect to {self.address}: {exc}") from exc
        self._stub = services.UserServiceStub(self._channel)
        self._messages = protos
        logger.info("Connected to user service at %s", self.address)

    async def get_user(self, identity: str) -> Optional[UserProfile]:
        """Fetch a user by external ID; None when the service does not know it."""
        if self._stub is None:
            await self.connect()
        request = self._messages.GetUserRequest(external_id=identity)
        try:
            user = await self._stub.Get(request, timeout=self.timeout)
        except grpc.aio.AioRpcError as exc:
            if exc.code() == grpc.StatusCode.NOT_FOUND:
                return None
            raise UserServiceError(
                f"Get({identity}) failed: {exc.code().name} {exc.details()}", code=exc.code()
            ) from exc
        except (grpc.RpcError, grpc.aio.BaseError) as exc:
            # channel misuse or a closed channel, not a status from the server
            raise UserServiceError(f"Get({identity}) failed: {exc!r}") from exc
        return profile_from_message(user)

    async def close(self) -> None:
        if self._channel is not None:
            await self._channel.close()
            self._channel = None
            self._stub = None
