"""Explicit (operation, language) -> handler table.

The table is filled once at startup and frozen. A lookup yields one of:
``Available`` (a handler that can run now), ``Unavailable`` (the language
support is not loaded; carries installation guidance) or ``None`` when no
handler exists at all, which ``dispatch`` reports as ``UNSUPPORTED``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from idebridge.core.constants import OP_EXTRACT_METHOD, OP_FIND_USAGES, OP_MOVE, OP_RENAME
from idebridge.core.errors import EngineError, OperationError
from idebridge.core.languages import Language
from idebridge.core.types import OperationResult, UsageReport
from idebridge.host.engine import Engine
from idebridge.host.executor import MutationCancelled

_host_log = logging.getLogger("idebridge.host")

_GUIDANCE: dict[Language, str] = {
    Language.JAVA: "Java plugin is not available. Use IntelliJ IDEA or install Java plugin.",
    Language.KOTLIN: "Kotlin plugin is not available. Install Kotlin plugin to use this feature.",
    Language.JAVASCRIPT: "JavaScript plugin is not available. Use WebStorm or install JavaScript plugin.",
    Language.TYPESCRIPT: "JavaScript plugin is not available. Use WebStorm or install JavaScript plugin.",
    Language.PYTHON: "Python plugin is not available. Use PyCharm or install Python plugin.",
    Language.GO: "Go plugin is not available. Use GoLand or install Go plugin.",
    Language.RUST: "Rust plugin is not available. Install intellij-rust plugin.",
}


def guidance_for(language: Language) -> str:
    return _GUIDANCE.get(language, f"{language.value} support is not available in this IDE.")


class _Unsupported:
    def __repr__(self) -> str:
        return "UNSUPPORTED"


UNSUPPORTED = _Unsupported()


@dataclass(frozen=True)
class Available:
    operation: str
    language: Language
    handler: Callable[..., OperationResult]

    def invoke(self, *args: Any) -> OperationResult:
        """Run the handler; any exception becomes a failed result here."""
        try:
            return self.handler(*args)
        except MutationCancelled:
            raise
        except EngineError as e:
            _host_log.warning(
                "engine_error operation=%s language=%s error=%s",
                self.operation,
                self.language.value,
                str(e),
                extra={"operation": self.operation, "language": self.language.value},
            )
            return OperationResult.failed(
                OperationError(e.code, f"Refactoring failed: {e}", {"error_type": type(e).__name__})
            )
        except Exception as e:
            _host_log.warning(
                "engine_exception operation=%s language=%s error=%s",
                self.operation,
                self.language.value,
                str(e),
                extra={"operation": self.operation, "language": self.language.value},
                exc_info=True,
            )
            return OperationResult.failed(OperationError.internal(e))


@dataclass(frozen=True)
class Unavailable:
    operation: str
    language: Language
    reason: str

    def to_result(self) -> OperationResult:
        return OperationResult.failed(
            OperationError.capability_unavailable(self.language.value, self.operation, self.reason)
        )


Capability = Available | Unavailable


@dataclass(frozen=True)
class _Registration:
    handler: Callable[..., OperationResult]
    is_available: Callable[[], bool]


def _always() -> bool:
    return True


class CapabilityRegistry:
    def __init__(self) -> None:
        self._handlers: dict[tuple[str, Language], _Registration] = {}
        self._plugins: dict[Language, Callable[[], bool]] = {}
        self._frozen = False

    # Registration (startup only)

    def _check_mutable(self) -> None:
        if self._frozen:
            raise RuntimeError("Capability registry is frozen")

    def register(
        self,
        operation: str,
        language: Language,
        handler: Callable[..., OperationResult],
        is_available: Callable[[], bool] | None = None,
    ) -> None:
        self._check_mutable()
        key = (operation, language)
        if key in self._handlers:
            raise ValueError(f"Handler already registered for {operation}/{language.value}")
        self._handlers[key] = _Registration(handler, is_available or _always)

    def register_plugin(self, language: Language, is_available: Callable[[], bool]) -> None:
        """Declare how to tell whether a language plugin is loaded, handler or not."""
        self._check_mutable()
        self._plugins[language] = is_available

    def register_engine(self, engine: Engine) -> None:
        handlers: dict[str, Callable[..., OperationResult]] = {
            OP_RENAME: engine.rename,
            OP_FIND_USAGES: lambda entity: UsageReport.of(engine.find_references(entity)),
            OP_MOVE: engine.move,
            OP_EXTRACT_METHOD: engine.extract_operation,
        }
        for language in engine.languages:
            for operation in engine.operations:
                self.register(operation, language, handlers[operation], engine.is_available)

    def freeze(self) -> CapabilityRegistry:
        self._frozen = True
        return self

    # Lookup

    def capability(self, operation: str, language: Language) -> Capability | None:
        plugin_check = self._plugins.get(language)
        if plugin_check is not None and not plugin_check():
            return Unavailable(operation, language, guidance_for(language))

        registration = self._handlers.get((operation, language))
        if registration is None:
            return None
        if not registration.is_available():
            return Unavailable(operation, language, guidance_for(language))
        return Available(operation, language, registration.handler)

    def check(self, operation: str, language: Language) -> OperationResult | None:
        """Failure a dispatch of ``operation`` would produce right now, or None if it can run."""
        capability = self.capability(operation, language)
        if capability is None:
            return self.unsupported_result(operation, language)
        if isinstance(capability, Unavailable):
            return capability.to_result()
        return None

    def dispatch(self, operation: str, language: Language, *args: Any) -> OperationResult | _Unsupported:
        capability = self.capability(operation, language)
        if capability is None:
            _host_log.info(
                "dispatch_unsupported operation=%s language=%s",
                operation,
                language.value,
                extra={"operation": operation, "language": language.value},
            )
            return UNSUPPORTED
        if isinstance(capability, Unavailable):
            return capability.to_result()
        return capability.invoke(*args)

    def unsupported_result(self, operation: str, language: Language) -> OperationResult:
        error = OperationError.no_capability(language.value, operation)
        error.context["supported_languages"] = sorted(
            {registered.value for op, registered in self._handlers if op == operation}
        )
        return OperationResult.failed(error)

    # Status reporting

    def implemented_tools(self) -> dict[str, list[str]]:
        tools: dict[str, list[str]] = {}
        for operation, language in self._handlers:
            if isinstance(self.capability(operation, language), Available):
                tools.setdefault(operation, []).append(language.value)
        return {operation: sorted(languages) for operation, languages in sorted(tools.items())}

    def language_plugins(self) -> dict[str, bool]:
        languages = {language for _operation, language in self._handlers} | set(self._plugins)
        plugins: dict[str, bool] = {}
        for language in sorted(languages, key=lambda item: item.value):
            plugin_check = self._plugins.get(language)
            if plugin_check is not None:
                plugins[language.value] = bool(plugin_check())
            else:
                plugins[language.value] = any(
                    registration.is_available()
                    for (_operation, registered), registration in self._handlers.items()
                    if registered is language
                )
        return plugins
