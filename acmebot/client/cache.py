import asyncio
import typing

T = typing.TypeVar("T")


class OnceCell(typing.Generic[T]):
    """Write-once cell for a value that is expensive to compute and shared by many callers.

    The first caller of :meth:`get` runs the factory, concurrent callers wait for its result.
    A failed computation leaves the cell empty, so the next caller tries again.
    """

    def __init__(self, factory: typing.Callable[[], typing.Awaitable[T]]):
        self._factory = factory
        self._lock = asyncio.Lock()
        self._value: typing.Optional[T] = None
        self._set = False

    async def get(self) -> T:
        if self._set:
            return self._value

        async with self._lock:
            if not self._set:
                self._value = await self._factory()
                self._set = True

        return self._value
