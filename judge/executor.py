"""
Code execution: one runtime per supported language tag.

The set of languages is closed. A tag outside `Language` is rejected before
anything runs; a registered language without a working runtime reports
itself as not implemented instead of pretending to execute.
"""

import abc
import enum
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .config import Settings
from .docker_runner import DockerSandbox
from .errors import (
    LanguageNotAvailableError, LanguageNotImplementedError, UnsupportedLanguageError,
)
from .sandbox import ProcessSandbox

logger = logging.getLogger(__name__)


class Language(str, enum.Enum):
    python = 'python'
    javascript = 'javascript'
    java = 'java'
    cpp = 'cpp'

    @classmethod
    def parse(cls, tag: str) -> 'Language':
        try:
            return cls(tag.strip().lower())
        except ValueError:
            raise UnsupportedLanguageError(tag) from None


@dataclass
class ExecutionOutcome:
    stdout: str = ''
    stderr: str = ''
    timed_out: bool = False
    exit_error: bool = False
    compile_error: bool = False
    memory_exceeded: bool = False
    elapsed_ms: int = 0
    memory_kb: Optional[int] = None

    @property
    def ok(self) -> bool:
        return not (self.timed_out or self.exit_error or self.compile_error
                    or self.memory_exceeded)


class Runtime(abc.ABC):
    language: Language
    implemented = True

    def check(self, source: str) -> Optional[str]:
        """Return a compiler diagnostic, or None when the source is acceptable."""
        return None

    @abc.abstractmethod
    def run(self, source: str, stdin: str, time_limit_ms: int,
            memory_limit_mb: int) -> ExecutionOutcome:
        """Run `source` once against `stdin` under the given limits."""


class PythonRuntime(Runtime):
    language = Language.python

    def __init__(self, sandbox):
        self.sandbox = sandbox

    def check(self, source: str) -> Optional[str]:
        try:
            compile(source, 'main.py', 'exec', dont_inherit=True)
        except SyntaxError as e:
            return f'{type(e).__name__}: {e.msg} (line {e.lineno})'
        except (ValueError, RecursionError) as e:
            return f'SyntaxError: {e}'
        return None

    def run(self, source: str, stdin: str, time_limit_ms: int,
            memory_limit_mb: int) -> ExecutionOutcome:
        raw = self.sandbox.run(source, stdin, time_limit_ms / 1000.0, memory_limit_mb)
        timed_out = bool(raw.get('timed_out'))
        memory_exceeded = bool(raw.get('memory_exceeded')) and not timed_out
        exit_code = raw.get('exit_code')
        return ExecutionOutcome(
            stdout=raw.get('stdout', ''),
            stderr=raw.get('stderr', ''),
            timed_out=timed_out,
            memory_exceeded=memory_exceeded,
            exit_error=(not timed_out and not memory_exceeded
                        and exit_code is not None and exit_code != 0),
            elapsed_ms=raw.get('elapsed_ms', 0),
            memory_kb=raw.get('memory_kb'),
        )


class PlaceholderRuntime(Runtime):
    """Registered language that has no execution support yet."""

    implemented = False

    def __init__(self, language: Language):
        self.language = language

    def check(self, source: str) -> Optional[str]:
        raise LanguageNotImplementedError(self.language.value)

    def run(self, source: str, stdin: str, time_limit_ms: int,
            memory_limit_mb: int) -> ExecutionOutcome:
        raise LanguageNotImplementedError(self.language.value)


def make_sandbox(settings: Settings):
    if settings.sandbox == 'docker':
        return DockerSandbox(
            image=settings.runner_image,
            cpus=settings.docker_cpus,
            max_output_bytes=settings.max_output_bytes,
        )
    if settings.sandbox == 'process':
        if not settings.allow_unsafe_sandbox:
            raise ValueError('the process sandbox is not isolated from the host; '
                             'set JUDGE_ALLOW_UNSAFE_SANDBOX=1 to use it anyway')
        logger.warning('using the local process sandbox')
        return ProcessSandbox(max_output_bytes=settings.max_output_bytes)
    raise ValueError(f'unknown sandbox backend {settings.sandbox!r}')


class Executor:
    def __init__(self, sandbox):
        self.runtimes: Dict[Language, Runtime] = {
            Language.python: PythonRuntime(sandbox),
            Language.javascript: PlaceholderRuntime(Language.javascript),
            Language.java: PlaceholderRuntime(Language.java),
            Language.cpp: PlaceholderRuntime(Language.cpp),
        }

    @classmethod
    def from_settings(cls, settings: Settings) -> 'Executor':
        return cls(make_sandbox(settings))

    def languages(self) -> List[Runtime]:
        return list(self.runtimes.values())

    def runtime_for(self, language: str,
                    allowed: Optional[Iterable[str]] = None) -> Runtime:
        """
        Resolve a language tag to a runnable runtime.

        Raises UnsupportedLanguageError for unknown tags, LanguageNotAvailableError
        when `allowed` does not list the tag, and LanguageNotImplementedError for
        registered languages without a runtime.
        """
        lang = Language.parse(language)
        if allowed is not None and lang.value not in {a.lower() for a in allowed}:
            raise LanguageNotAvailableError(lang.value)
        runtime = self.runtimes[lang]
        if not runtime.implemented:
            raise LanguageNotImplementedError(lang.value)
        return runtime

    def execute(self, source: str, language: str, stdin: str, time_limit_ms: int,
                memory_limit_mb: int = 256,
                allowed: Optional[Iterable[str]] = None) -> ExecutionOutcome:
        runtime = self.runtime_for(language, allowed)
        diagnostic = runtime.check(source)
        if diagnostic is not None:
            return ExecutionOutcome(stderr=diagnostic, compile_error=True)
        return runtime.run(source, stdin, time_limit_ms, memory_limit_mb)
