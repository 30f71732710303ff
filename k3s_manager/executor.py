"""Local and remote (ssh) command execution."""

import os
import shlex
import subprocess
from urllib.parse import urlparse

from pydantic import BaseModel

from k3s_manager.exceptions import TransportError
from k3s_manager.logging_config import get_logger, redact_secrets

logger = get_logger(__name__)

# ssh exits with 255 when the connection itself fails
SSH_CONNECTION_FAILED = 255


class ExecResult(BaseModel):
    """Outcome of a finished command."""

    stdout: str = ""
    exit_code: int


class RemoteHost(BaseModel):
    """Connection details parsed from a remote host string."""

    hostname: str
    user: str | None = None
    port: int | None = None

    @classmethod
    def parse(cls, remote_host: str) -> "RemoteHost":
        """Parse ``ssh://user@host:port``, ``user@host`` or a bare host.

        Raises:
            ValueError: If no host name can be found
        """
        value = remote_host.strip()
        if "://" not in value:
            value = f"ssh://{value}"

        parsed = urlparse(value)
        if not parsed.hostname:
            raise ValueError(f"Unable to parse host name from remote host '{remote_host}'")

        return cls(hostname=parsed.hostname, user=parsed.username, port=parsed.port)

    @property
    def destination(self) -> str:
        """``user@host`` or ``host`` as accepted by ssh."""
        if self.user:
            return f"{self.user}@{self.hostname}"
        return self.hostname

    def scp_target(self, path: str) -> str:
        """``[user@]host:path``, with IPv6 addresses bracketed for scp."""
        host = f"[{self.hostname}]" if ":" in self.hostname else self.hostname
        if self.user:
            host = f"{self.user}@{host}"
        return f"{host}:{path}"


def _ssh_options(allow_unknown_hosts: bool) -> list[str]:
    options = ["-o", "BatchMode=yes"]
    if allow_unknown_hosts:
        options += ["-o", "StrictHostKeyChecking=no", "-o", "UserKnownHostsFile=/dev/null"]
    return options


class CommandExecutor:
    """Runs processes on the local host or over ssh."""

    def __init__(self, ssh_binary: str = "ssh", scp_binary: str = "scp"):
        self.ssh_binary = ssh_binary
        self.scp_binary = scp_binary

    def _remote_argv(
        self,
        command: str,
        args: list[str],
        remote_host: str,
        sudo: bool,
        allow_unknown_hosts: bool,
        env: dict[str, str] | None,
    ) -> list[str]:
        host = RemoteHost.parse(remote_host)

        remote_command = []
        if sudo:
            remote_command.append("sudo")
        if env:
            remote_command += ["env", *(f"{key}={value}" for key, value in env.items())]
        remote_command += [command, *args]

        argv = [self.ssh_binary, *_ssh_options(allow_unknown_hosts)]
        if host.port:
            argv += ["-p", str(host.port)]
        argv += [host.destination, "--", shlex.join(remote_command)]
        return argv

    def run(
        self,
        command: str,
        args: list[str] | None = None,
        remote_host: str | None = None,
        sudo: bool = False,
        allow_unknown_hosts: bool = False,
        stream_output: bool = False,
        capture_output: bool = False,
        env: dict[str, str] | None = None,
    ) -> ExecResult:
        """Run a command and return its exit code, without checking it.

        Raises:
            TransportError: If the process cannot be started or the remote
                connection cannot be established
        """
        args = list(args or [])
        if remote_host:
            argv = self._remote_argv(command, args, remote_host, sudo, allow_unknown_hosts, env)
            process_env = None
        else:
            argv = (["sudo"] if sudo else []) + [command, *args]
            process_env = {**os.environ, **env} if env else None

        where = f" on {remote_host}" if remote_host else ""
        logger.debug(f"Running{where}: {shlex.join([command, *args])}")

        kwargs = {}
        if capture_output:
            kwargs = {"capture_output": True, "text": True}
        elif not stream_output:
            kwargs = {"stdout": subprocess.DEVNULL, "stderr": subprocess.DEVNULL}

        try:
            result = subprocess.run(argv, check=False, env=process_env, **kwargs)
        except FileNotFoundError:
            logger.error(f"Executable not found: {argv[0]}")
            raise TransportError(
                f"Unable to run {command}{where}",
                f"'{argv[0]}' is not installed or not in PATH",
                command=command,
            )
        except OSError as e:
            logger.error(f"Failed to start {argv[0]}: {e}")
            raise TransportError(f"Unable to run {command}{where}", str(e), command=command)

        if remote_host and result.returncode == SSH_CONNECTION_FAILED:
            logger.error(f"ssh connection to {remote_host} failed")
            raise TransportError(
                f"Unable to connect to {remote_host} to run {command}",
                "Check that the host is reachable, that key-based ssh access works, "
                "and pass --insecure-allow-unknown-hosts for hosts not in known_hosts",
                command=command,
                exit_code=result.returncode,
            )

        stdout = result.stdout if capture_output and result.stdout else ""
        logger.debug(f"{command}{where} exited with {result.returncode}")
        return ExecResult(stdout=stdout, exit_code=result.returncode)

    def check(self, command: str, args: list[str] | None = None, **kwargs) -> ExecResult:
        """Run a command and raise ``TransportError`` on a non-zero exit code."""
        result = self.run(command, args, **kwargs)
        if result.exit_code != 0:
            where = f" over ssh on {kwargs['remote_host']}" if kwargs.get("remote_host") else ""
            raise TransportError(
                f"Invalid exit code from {command} command{where}: {result.exit_code}",
                f"Command: {redact_secrets(shlex.join([command, *(args or [])]))}",
                command=command,
                exit_code=result.exit_code,
            )
        return result

    def copy_to_remote(
        self,
        local_path: str,
        remote_host: str,
        remote_path: str,
        allow_unknown_hosts: bool = False,
    ) -> None:
        """Copy a local file to ``remote_path`` on the remote host with scp.

        Raises:
            TransportError: If scp cannot run or exits non-zero
        """
        host = RemoteHost.parse(remote_host)
        argv = [self.scp_binary, *_ssh_options(allow_unknown_hosts)]
        if host.port:
            argv += ["-P", str(host.port)]
        argv += [str(local_path), host.scp_target(remote_path)]

        logger.debug(f"Copying {local_path} to {remote_host}:{remote_path}")
        try:
            result = subprocess.run(argv, check=False, capture_output=True, text=True)
        except OSError as e:
            raise TransportError(
                f"Unable to copy {local_path} to {remote_host}", str(e), command="scp"
            )

        if result.returncode != 0:
            raise TransportError(
                f"Invalid exit code from scp to {remote_host}: {result.returncode}",
                result.stderr.strip() or None,
                command="scp",
                exit_code=result.returncode,
            )
