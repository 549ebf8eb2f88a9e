from __future__ import annotations

from collections.abc import Callable

from turn_orchestrator.contracts import RuntimeInput, RuntimePort, RuntimeResult
from turn_orchestrator.errors import CoreError

RuntimeFactory = Callable[[], RuntimePort]


class ProviderRouter:
    """Runtime port that dispatches each turn to the runtime registered for its provider.

    Runtimes are built lazily so a provider that is never used never needs credentials.
    """

    def __init__(self, factories: dict[str, RuntimeFactory]):
        self._factories = {name.strip().lower(): factory for name, factory in factories.items()}
        self._runtimes: dict[str, RuntimePort] = {}

    @property
    def providers(self) -> list[str]:
        return sorted(self._factories)

    def resolve(self, provider: str) -> RuntimePort:
        name = (provider or "").strip().lower()
        if not name:
            raise CoreError("provider is required", "MISSING_PROVIDER")
        runtime = self._runtimes.get(name)
        if runtime is not None:
            return runtime
        factory = self._factories.get(name)
        if factory is None:
            supported = ", ".join(self.providers) or "none"
            raise CoreError(f"unsupported provider: {provider!r}. Supported: {supported}", "VALIDATION_ERROR")
        runtime = factory()
        self._runtimes[name] = runtime
        return runtime

    async def run(self, runtime_input: RuntimeInput) -> RuntimeResult:
        runtime = self.resolve(runtime_input.provider)
        try:
            return await runtime.run(runtime_input)
        except CoreError:
            raise
        except Exception as ex:
            message = str(ex).strip() or f"{type(ex).__name__} in {runtime_input.provider} runtime"
            raise CoreError(message, "RUNTIME_FAILURE") from ex
