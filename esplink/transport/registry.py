from __future__ import annotations

from typing import Callable, Dict, Optional

from .base import Transport
from .errors import TransportError
from .fake import FakeTransport
from .params import SerialSettings
from .uart import SerialTransport

TransportCtor = Callable[..., Transport]


class TransportDriverRegistry:
    """
    Maps driver keys -> transport constructors.

    Constructors are called as ctor(port=..., settings=...). Anything callable
    with that signature can be registered (tests register factories that hand
    back a prepared FakeTransport).
    """

    def __init__(self, drivers: Dict[str, TransportCtor]):
        # normalize keys to be case-insensitive
        self._drivers: Dict[str, TransportCtor] = {k.lower(): v for k, v in drivers.items()}

    @classmethod
    def default(cls) -> "TransportDriverRegistry":
        return cls(
            drivers={
                "serial": SerialTransport,
                "fake": FakeTransport,
            }
        )

    def has(self, driver: str) -> bool:
        return driver.lower() in self._drivers

    def keys(self) -> list[str]:
        return sorted(self._drivers)

    def register(self, driver: str, ctor: TransportCtor) -> None:
        self._drivers[driver.lower()] = ctor

    def get_class(self, driver: str) -> TransportCtor:
        key = driver.lower()
        if key not in self._drivers:
            raise TransportError(f"Transport driver '{driver}' not registered")
        return self._drivers[key]

    def create(self, driver: str, *, port: str, settings: Optional[SerialSettings] = None) -> Transport:
        """
        Instantiate a transport by driver key. Does NOT open it.
        """
        ctor = self.get_class(driver)
        return ctor(port=port, settings=settings or SerialSettings())
