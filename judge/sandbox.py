"""
Local sandbox for executing submitted Python code.

Every call gets a fresh temporary directory and a fresh interpreter started
in isolated mode, without site packages and with an empty environment. An
audit hook installed before the submission runs confines file access to the
working directory (plus read access to the standard library) and refuses
process, signal, socket and ctypes calls. On POSIX the child is also bound
by CPU-time and address-space rlimits; the wall-clock limit is enforced by
the parent on every platform.

Audit hooks are not a security boundary against native code. The Docker
backend is the default; this one only starts when
JUDGE_ALLOW_UNSAFE_SANDBOX is set.
"""

import logging
import math
import platform
import subprocess
import sys
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

PYTHON_EXE = sys.executable
ISOLATION_FLAGS = ['-I', '-S', '-B']
SOURCE_NAME = 'main.py'

# runs in the child ahead of the submission; hooks cannot be removed once added
GUARD = '''
import builtins, os, sys

_READ_ROOTS = tuple(os.path.realpath(p) for p in sys.path if p)
_WORKDIR = os.path.realpath(os.getcwd())
_WRITE_FLAGS = os.O_WRONLY | os.O_RDWR | os.O_CREAT | os.O_APPEND | os.O_TRUNC
_DENIED = ('os.system', 'os.exec', 'os.posix_spawn', 'os.spawn', 'os.fork', 'os.kill',
           'os.killpg', 'signal.pthread_kill', 'subprocess.', 'socket.', 'ctypes.',
           'sqlite3.', 'os.chdir', 'os.chroot', 'webbrowser.')


def _inside(path, roots):
    real = os.path.realpath(os.fsdecode(path))
    return any(real == root or real.startswith(root + os.sep) for root in roots)


def _guard(event, args):
    if event == 'open':
        path, _, flags = args
        if isinstance(path, int):
            return
        if flags & _WRITE_FLAGS:
            allowed = _inside(path, (_WORKDIR,))
        else:
            allowed = _inside(path, (_WORKDIR,) + _READ_ROOTS)
        if not allowed:
            raise PermissionError(f'access to {os.fsdecode(path)!r} is not permitted')
    elif event in ('os.listdir', 'os.scandir'):
        path = args[0]
        if path is not None and not isinstance(path, int) and \\
                not _inside(path, (_WORKDIR,) + _READ_ROOTS):
            raise PermissionError(f'access to {os.fsdecode(path)!r} is not permitted')
    elif event.startswith(_DENIED):
        raise PermissionError(f'{event} is not permitted')


with open(sys.argv[1], encoding='utf-8') as _f:
    _code = compile(_f.read(), sys.argv[1], 'exec', dont_inherit=True)
builtins.exit = builtins.quit = sys.exit
sys.argv = [sys.argv[1]]
sys.addaudithook(_guard)
exec(_code, {'__name__': '__main__', '__file__': sys.argv[0], '__builtins__': builtins})
'''


def _decode(raw: Optional[bytes], limit: int) -> str:
    if not raw:
        return ''
    return raw[:limit].decode('utf-8', errors='replace')


def ran_out_of_memory(exit_code: Optional[int], stderr: str) -> bool:
    """True when a failed run ended on an uncaught MemoryError."""
    if not exit_code or not stderr.strip():
        return False
    last_line = stderr.rstrip().splitlines()[-1]
    return last_line.split(':', 1)[0].strip() == 'MemoryError'


def _limits(timeout_sec: float, memory_limit_mb: int):
    def set_limits():
        import resource

        cpu = int(math.ceil(timeout_sec)) + 1
        try:
            resource.setrlimit(resource.RLIMIT_CPU, (cpu, cpu))
        except (ValueError, OSError):
            pass
        try:
            memory_bytes = memory_limit_mb * 1024 * 1024
            resource.setrlimit(resource.RLIMIT_AS, (memory_bytes, memory_bytes))
        except (ValueError, OSError):
            pass
    return set_limits


class ProcessSandbox:
    """Runs one script per call in a throwaway interpreter process."""

    def __init__(self, python_exe: str = PYTHON_EXE, max_output_bytes: int = 64 * 1024):
        self.python_exe = python_exe
        self.max_output_bytes = max_output_bytes

    def run(
        self,
        source: str,
        stdin: str,
        timeout_sec: float,
        memory_limit_mb: int,
    ) -> Dict[str, Any]:
        """
        Execute `source` with `stdin` piped in.

        Returns a dict with stdout, stderr, exit_code, timed_out, memory_exceeded
        and elapsed_ms. Never raises for problems caused by the submitted code.
        """
        with tempfile.TemporaryDirectory(prefix='judge_') as temp_dir:
            code_path = Path(temp_dir) / SOURCE_NAME
            code_path.write_text(source, encoding='utf-8')

            command = [self.python_exe, *ISOLATION_FLAGS, '-c', GUARD, SOURCE_NAME]
            kwargs = {
                'input': stdin.encode('utf-8'),
                'capture_output': True,
                'timeout': timeout_sec,
                'check': False,
                'cwd': temp_dir,
                'env': {'LANG': 'C.UTF-8'},
            }
            if platform.system() != 'Windows':
                kwargs['preexec_fn'] = _limits(timeout_sec, memory_limit_mb)

            start = time.perf_counter()
            try:
                proc = subprocess.run(command, **kwargs)
            except subprocess.TimeoutExpired as e:
                elapsed_ms = int((time.perf_counter() - start) * 1000)
                logger.debug('sandbox process killed after %d ms', elapsed_ms)
                return {
                    'stdout': _decode(e.stdout, self.max_output_bytes),
                    'stderr': 'Process exceeded time limit',
                    'exit_code': None,
                    'timed_out': True,
                    'memory_exceeded': False,
                    'elapsed_ms': elapsed_ms,
                }
            elapsed_ms = int((time.perf_counter() - start) * 1000)

        stdout = _decode(proc.stdout, self.max_output_bytes)
        stderr = _decode(proc.stderr, self.max_output_bytes)
        # SIGXCPU from RLIMIT_CPU
        timed_out = proc.returncode == -24
        return {
            'stdout': stdout,
            'stderr': stderr,
            'exit_code': proc.returncode,
            'timed_out': timed_out,
            'memory_exceeded': not timed_out and ran_out_of_memory(proc.returncode, stderr),
            'elapsed_ms': elapsed_ms,
        }
