from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Generic, TypeVar

from pydantic import BaseModel

from services.message import CanonicalMessage

if TYPE_CHECKING:
    from services.gateway import Gateway

T = TypeVar("T", bound=BaseModel)


class BaseDriver(ABC, Generic[T]):
    """Abstract base class for all platform drivers."""

    def __init__(self, instance_id: str, config: T, gateway: "Gateway"):
        self.instance_id = instance_id
        self.config: T = config
        self.gateway = gateway

    @abstractmethod
    async def start(self):
        """Start the driver (connect, authenticate, begin listening).
        Long-running drivers should loop indefinitely here."""

    @abstractmethod
    async def send(self, channel: dict, msg: CanonicalMessage):
        """Relay *msg* to the given *channel* on this platform."""
