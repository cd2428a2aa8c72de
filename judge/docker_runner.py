import logging
import os
import shlex
import shutil
import tempfile
import time
from typing import Any, Dict, Optional, Tuple

import docker
from docker.errors import DockerException

from .errors import SandboxUnavailableError
from .sandbox import ran_out_of_memory

logger = logging.getLogger(__name__)

# exit codes of coreutils `timeout` and of a SIGKILLed child
TIMEOUT_EXIT = 124
KILLED_EXIT = 137
# grace period between SIGTERM and SIGKILL once the limit is hit
KILL_AFTER_SECONDS = 1


def _exec(container, script: str, workdir: str = '/tmp/run') -> Tuple[int, str]:
    rc, raw = container.exec_run(cmd=['/bin/bash', '-lc', script], workdir=workdir)
    if isinstance(raw, tuple):
        raw = b''.join(part for part in raw if part)
    return rc, (raw or b'').decode('utf-8', errors='replace')


def _parse_time(text: str):
    time_seconds = None
    memory_kb = None
    for line in text.splitlines():
        if line.startswith('TIME:'):
            try:
                time_seconds = float(line.split('TIME:')[1].strip())
            except ValueError:
                pass
        elif line.startswith('MEM:'):
            try:
                memory_kb = int(line.split('MEM:')[1].strip())
            except ValueError:
                pass
    return time_seconds, memory_kb


def run_in_container(
    workspace_host_path: str,
    image: str,
    run_cmd: str,
    mem_limit: str = '256m',
    cpus: float = 0.5,
    timeout_seconds: float = 5,
    max_output_bytes: int = 64 * 1024,
    client=None,
) -> Dict[str, Any]:
    """
    Run `run_cmd` once inside a new container, feeding it /workspace/input.txt.

    The workspace is mounted read-only and copied into a tmpfs; the container has
    no network, no capabilities and a read-only root, and is removed afterwards.
    A program that ignores SIGTERM is killed KILL_AFTER_SECONDS after the limit.
    """
    container = None
    try:
        client = client or docker.from_env()
        container = client.containers.run(
            image,
            command='/bin/bash',
            detach=True,
            tty=True,
            working_dir='/tmp/run',
            volumes={workspace_host_path: {'bind': '/workspace', 'mode': 'ro'}},
            network_mode='none',
            read_only=True,
            tmpfs={'/tmp/run': ''},
            security_opt=['no-new-privileges'],
            cap_drop=['ALL'],
            mem_limit=mem_limit,
            nano_cpus=int(cpus * 1e9),
        )

        _exec(container, 'cp -a /workspace/. /tmp/run/', workdir='/')

        script = (
            f"timeout -k {KILL_AFTER_SECONDS} {timeout_seconds:g}s "
            f"/usr/bin/time -f 'TIME:%e\nMEM:%M' -o run_time.txt "
            f"{run_cmd} < /workspace/input.txt > prog_out.txt 2> prog_err.txt"
        )
        started = time.monotonic()
        rc, _ = _exec(container, script)
        wall_seconds = time.monotonic() - started

        def read(name: str) -> str:
            return _exec(container, f'head -c {max_output_bytes} {shlex.quote(name)}')[1]

        stdout = read('prog_out.txt')
        stderr = read('prog_err.txt')
        time_seconds, memory_kb = _parse_time(read('run_time.txt'))

        # 137 is also what `timeout -k` returns after escalating to SIGKILL
        timed_out = rc == TIMEOUT_EXIT or (rc == KILLED_EXIT and wall_seconds >= timeout_seconds)
        memory_exceeded = not timed_out and (
            rc == KILLED_EXIT or ran_out_of_memory(rc, stderr))

        return {
            'stdout': stdout,
            'stderr': stderr,
            'exit_code': rc,
            'timed_out': timed_out,
            'memory_exceeded': memory_exceeded,
            'time_seconds': time_seconds,
            'memory_kb': memory_kb,
        }

    except DockerException as e:
        raise SandboxUnavailableError(str(e)) from e

    finally:
        if container is not None:
            try:
                container.remove(force=True)
            except DockerException:
                logger.warning('could not remove sandbox container %s', container.id)


class DockerSandbox:
    """Same contract as ProcessSandbox, one container per execution."""

    def __init__(self, image: str, run_cmd: str = 'python3 -I -B main.py',
                 source_name: str = 'main.py', cpus: float = 0.5,
                 max_output_bytes: int = 64 * 1024, client=None):
        self.image = image
        self.run_cmd = run_cmd
        self.source_name = source_name
        self.cpus = cpus
        self.max_output_bytes = max_output_bytes
        self._client = client

    def run(self, source: str, stdin: str, timeout_sec: float,
            memory_limit_mb: int) -> Dict[str, Any]:
        workdir = tempfile.mkdtemp(prefix='exec_')
        try:
            with open(os.path.join(workdir, self.source_name), 'w', encoding='utf-8') as f:
                f.write(source)
            with open(os.path.join(workdir, 'input.txt'), 'w', encoding='utf-8') as fh:
                fh.write(stdin)

            result = run_in_container(
                workspace_host_path=workdir,
                image=self.image,
                run_cmd=self.run_cmd,
                mem_limit=f'{memory_limit_mb}m',
                cpus=self.cpus,
                timeout_seconds=timeout_sec,
                max_output_bytes=self.max_output_bytes,
                client=self._client,
            )
        finally:
            shutil.rmtree(workdir, ignore_errors=True)

        time_seconds: Optional[float] = result.pop('time_seconds')
        result['elapsed_ms'] = int(time_seconds * 1000) if time_seconds is not None else 0
        return result
