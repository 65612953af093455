"""Command-line interface for rootsftp.

Usage:
    rootsftp                              # configure entirely from SFTP_* env vars
    rootsftp --root ./files --port 2222   # override individual settings
"""

from __future__ import annotations

from pathlib import Path

import click
from paramiko.ssh_exception import SSHException
from pydantic import ValidationError

from rootsftp import __version__, util
from rootsftp.listener import SFTPListener, load_host_key
from rootsftp.settings import Settings


def load_settings(**overrides: object) -> Settings:
    """Build settings from the environment, with non-None overrides on top."""
    values = {key: value for key, value in overrides.items() if value is not None}
    try:
        return Settings(**values)
    except ValidationError as exc:
        raise click.ClickException(str(exc)) from exc


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("-r", "--root", "root_dir", type=click.Path(path_type=Path), help="Directory to serve [env: SFTP_ROOT_DIR]")
@click.option("-H", "--hostname", help="Address to bind [env: SFTP_HOSTNAME]")
@click.option("-p", "--port", type=int, help="Port to listen on [env: SFTP_PORT]")
@click.option("-k", "--host-key", type=click.Path(path_type=Path), help="Private host key file [env: SFTP_HOST_KEY]")
@click.option("--log-level", help="Log level [env: SFTP_LOG_LEVEL]")
@click.option("--log-file", type=click.Path(path_type=Path), help="Append logs to this file [env: SFTP_LOG_FILE]")
@click.version_option(__version__, "-V", "--version", prog_name="rootsftp")
def main(
    root_dir: Path | None,
    hostname: str | None,
    port: int | None,
    host_key: Path | None,
    log_level: str | None,
    log_file: Path | None,
) -> None:
    """Serve a directory over SFTP.

    Clients authenticate with one of the username/password pairs given in
    SFTP_USERNAMES and SFTP_PASSWORDS and can only see files below the root.
    """
    settings = load_settings(
        root_dir=root_dir,
        hostname=hostname,
        port=port,
        host_key=host_key,
        log_level=log_level,
        log_file=log_file,
    )

    if settings.log_file is not None:
        util.log_to_file(str(settings.log_file), settings.log_level)
    else:
        util.log_to_stderr(settings.log_level)

    credentials = settings.credentials()
    if not credentials:
        click.echo("Warning: no usernames configured, every login will be refused.", err=True)

    try:
        key = load_host_key(str(settings.host_key), settings.host_key_passphrase)
    except (OSError, SSHException) as exc:
        raise click.ClickException(f"Unable to load host key: {exc}") from exc

    listener = SFTPListener(
        settings.root_dir,
        key,
        credentials,
        hostname=settings.hostname,
        port=settings.port,
    )
    try:
        listener.bind()
    except OSError as exc:
        raise click.ClickException(f"Unable to listen on {settings.hostname}:{settings.port}: {exc}") from exc

    click.echo(f"SFTP server listening on {settings.hostname}:{listener.port}, serving {settings.root_dir}", err=True)
    try:
        listener.serve_forever()
    except KeyboardInterrupt:
        click.echo("Shutting down.", err=True)
    finally:
        listener.close()
