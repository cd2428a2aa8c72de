import os
from dataclasses import dataclass


def _env_bool(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).lower() in ('1', 'true', 'yes')


@dataclass
class Settings:
    database_url: str = 'sqlite:///./judge.db'
    sandbox: str = 'docker'
    allow_unsafe_sandbox: bool = False
    runner_image: str = 'testportal/runner:latest'
    docker_cpus: float = 0.5
    max_output_bytes: int = 64 * 1024
    debug: bool = False
    log_level: str = 'INFO'

    @staticmethod
    def from_env() -> 'Settings':
        return Settings(
            database_url=os.getenv('JUDGE_DATABASE_URL', 'sqlite:///./judge.db'),
            sandbox=os.getenv('JUDGE_SANDBOX', 'docker').lower(),
            allow_unsafe_sandbox=_env_bool('JUDGE_ALLOW_UNSAFE_SANDBOX'),
            runner_image=os.getenv('RUNNER_IMAGE', 'testportal/runner:latest'),
            docker_cpus=float(os.getenv('JUDGE_DOCKER_CPUS', '0.5')),
            max_output_bytes=int(os.getenv('JUDGE_MAX_OUTPUT_BYTES', str(64 * 1024))),
            debug=_env_bool('JUDGE_DEBUG'),
            log_level=os.getenv('JUDGE_LOG_LEVEL', 'INFO').upper(),
        )


def logging_config(settings: Settings) -> dict:
    """dictConfig payload for the service loggers."""
    return {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'verbose': {
                'format': '{levelname} {asctime} {name} {process:d} {thread:d} {message}',
                'style': '{',
            },
            'simple': {
                'format': '{levelname} {name} {message}',
                'style': '{',
            },
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'formatter': 'simple' if settings.debug else 'verbose',
            },
        },
        'root': {
            'handlers': ['console'],
            'level': 'DEBUG' if settings.debug else settings.log_level,
        },
        'loggers': {
            'judge': {
                'handlers': ['console'],
                'level': 'DEBUG' if settings.debug else settings.log_level,
                'propagate': False,
            },
            'sqlalchemy.engine': {
                'handlers': ['console'],
                'level': 'INFO' if settings.debug else 'WARNING',
                'propagate': False,
            },
        },
    }
