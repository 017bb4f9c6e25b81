"""
quotewall Decorators

Helpers for turning plain rendering functions into well behaved CLI commands.
"""

from functools import wraps

import click

from quotewall.console import fail
from quotewall.errors import ExportCancelled, SequenceCancelled


def catch_errors(func):
    """
    Catch and format errors with the "fail" console template and gracefully exit the application
    with an error code. Cancellation is not a failure and exits with 130 like an interrupted
    shell command. click's own exceptions (usage errors, --help) pass straight through.
    """

    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (click.exceptions.Exit, click.exceptions.Abort, click.ClickException):
            raise
        except (ExportCancelled, SequenceCancelled, KeyboardInterrupt) as error:
            fail(f"cancelled. {error}")
            raise SystemExit(130)
        except Exception as error:
            fail(str(error))
            raise SystemExit(1)

    return wrapper
