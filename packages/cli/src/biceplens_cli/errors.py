from __future__ import annotations

from contextlib import contextmanager

import click

from biceplens_core.errors import BicepLensError, ConfigurationError


@contextmanager
def cli_errors():
    """Turn fatal library errors into click errors: usage problems exit 2, the rest exit 1."""
    try:
        yield
    except ConfigurationError as e:
        raise click.UsageError(str(e)) from e
    except BicepLensError as e:
        raise click.ClickException(f"{e.collaborator} failed: {e}") from e
