# clinic_project/log_config.py
"""
Structured logging for the clinic backend.

structlog sits on top of the standard library: Django and third-party
loggers go through the same ProcessorFormatter as our own event logs, so
everything comes out either as JSON lines (production) or as a readable
console stream (DEBUG).
"""

import structlog


SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
]


def build_logging_config(log_level="INFO", json_logs=True):
    """
    Returns a dictConfig-compatible LOGGING dict.

    Args:
        log_level: Root level for the project loggers.
        json_logs: Render JSON lines when True, coloured console output otherwise.
    """
    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    return {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'structured': {
                '()': structlog.stdlib.ProcessorFormatter,
                'processors': [
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    structlog.processors.format_exc_info,
                    renderer,
                ],
                'foreign_pre_chain': SHARED_PROCESSORS,
            },
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'formatter': 'structured',
            },
        },
        'root': {
            'handlers': ['console'],
            'level': 'WARNING',
        },
        'loggers': {
            'django': {'handlers': ['console'], 'level': 'WARNING', 'propagate': False},
            'appointments': {'handlers': ['console'], 'level': log_level, 'propagate': False},
            'staff': {'handlers': ['console'], 'level': log_level, 'propagate': False},
            'patients': {'handlers': ['console'], 'level': log_level, 'propagate': False},
            'audit_log': {'handlers': ['console'], 'level': log_level, 'propagate': False},
        },
    }


def configure_structlog():
    """Route structlog through the stdlib handlers configured by LOGGING."""
    structlog.configure(
        processors=SHARED_PROCESSORS + [
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
