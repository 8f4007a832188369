"""Shallow git checkout of one module version into an ephemeral workspace.

The clone is an OS-process boundary: ``git`` runs with the ambient
environment (needed for SSH agent/key forwarding), its combined output is
captured, and a non-zero exit becomes ``CloneFailed``.

Credential handling:
    * ``PUBLIC``: the source URL is used unchanged.
    * token over https: ``https://`` becomes ``https://oauth2:{token}@``.
    * ``SSH~<type>``: the key is written into the workspace (outside the
      checkout) and handed to git through ``GIT_SSH_COMMAND``.
"""

from __future__ import annotations

import os
import shlex
import shutil
import subprocess
import tempfile
from pathlib import Path

from tfregistry.core.context import CancelScope
from tfregistry.models.archives import Workspace
from tfregistry.models.coordinates import (
    PUBLIC_VCS_TYPE,
    SSH_VCS_PREFIX,
    SourceDescriptor,
)

WORKSPACE_PREFIX = "tfregistry-"
HTTPS_PREFIX = "https://"

# How often a running clone wakes up to look at its cancel scope.
_POLL_SECONDS = 0.5


class CloneFailed(RuntimeError):
    """Raised when a repository cannot be checked out at the requested ref.

    ``output`` is git's combined stdout/stderr with credentials redacted.
    """

    def __init__(self, message: str, *, returncode: int | None = None, output: str = "") -> None:
        super().__init__(f"{message}: {output.strip()}" if output.strip() else message)
        self.returncode = returncode
        self.output = output


def resolve_ref(tag_prefix: str, version: str) -> str:
    """Tag to check out: plain concatenation of prefix and version."""
    return f"{tag_prefix or ''}{version}"


def inject_credentials(source_url: str, vcs_type: str, token: str) -> str:
    """Return the URL git should clone from.

    Only HTTPS sources of non-public, non-SSH connections with a token are
    rewritten; everything else is returned as-is.
    """
    if vcs_type == PUBLIC_VCS_TYPE or vcs_type.startswith(SSH_VCS_PREFIX):
        return source_url
    if not token or not source_url.startswith(HTTPS_PREFIX):
        return source_url
    return source_url.replace(HTTPS_PREFIX, f"{HTTPS_PREFIX}oauth2:{token}@", 1)


def checkout_name(source_url: str) -> str:
    """Directory name for the checkout, derived from the repository URL.

    ``https://github.com/o/terraform-aws-vpc.git`` -> ``terraform-aws-vpc``.
    """
    tail = source_url.rstrip("/").rsplit("/", 1)[-1].rsplit(":", 1)[-1]
    name = tail.removesuffix(".git")
    if not name or name.startswith(".") or "@" in name:
        return "module"
    return name


def redact(text: str, *secrets: str) -> str:
    for secret in secrets:
        if secret:
            text = text.replace(secret, "***")
    return text


class VersionControlFetcher:
    """Clones module source with ``git clone --depth 1 --branch <ref>``.

    Parameters
    ----------
    git_binary:
        Name or path of the git executable.
    work_dir:
        Parent directory for workspaces. ``None`` uses the system temp dir.
    """

    def __init__(self, git_binary: str = "git", work_dir: Path | None = None) -> None:
        self._git = git_binary
        self._work_dir = Path(work_dir) if work_dir else None
        if self._work_dir is not None:
            self._work_dir.mkdir(parents=True, exist_ok=True)

    def fetch(
        self,
        source: SourceDescriptor,
        version: str,
        *,
        scope: CancelScope | None = None,
    ) -> Workspace:
        """Check out ``tag_prefix + version`` of *source* into a new workspace.

        The caller owns the returned workspace and must delete
        ``workspace.root``. On failure the workspace is removed here.

        Raises
        ------
        CloneFailed
            Non-zero git exit (auth rejected, unknown ref, ...), cancellation,
            or a ``folder`` that is missing or escapes the checkout.
        """
        ref = resolve_ref(source.tag_prefix, version)
        credential = source.credential
        url = inject_credentials(source.source_url, source.vcs_type, credential.secret)

        root = Path(tempfile.mkdtemp(prefix=WORKSPACE_PREFIX, dir=self._work_dir))
        try:
            checkout = root / checkout_name(source.source_url)
            env = self._environment(root, source)
            argv = [self._git, "clone", "--depth", "1", "--branch", ref, url, str(checkout)]
            self._run(argv, env, scope, secrets=(credential.secret,))
            module_root = self._module_root(checkout, source.folder)
        except BaseException:
            shutil.rmtree(root, ignore_errors=True)
            raise

        return Workspace(root=root, module_root=module_root, ref=ref)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _environment(root: Path, source: SourceDescriptor) -> dict[str, str]:
        env = dict(os.environ)
        env["GIT_TERMINAL_PROMPT"] = "0"

        if source.vcs_type.startswith(SSH_VCS_PREFIX) and source.credential.secret:
            key_type = source.vcs_type.removeprefix(SSH_VCS_PREFIX) or "rsa"
            ssh_dir = root / ".ssh"
            ssh_dir.mkdir(mode=0o700)
            key_file = ssh_dir / f"id_{key_type}"
            key = source.credential.secret
            key_file.write_text(key if key.endswith("\n") else f"{key}\n")
            key_file.chmod(0o600)
            env["GIT_SSH_COMMAND"] = (
                f"ssh -i {shlex.quote(str(key_file))} -o IdentitiesOnly=yes "
                "-o StrictHostKeyChecking=no -o UserKnownHostsFile=/dev/null"
            )
        return env

    @staticmethod
    def _module_root(checkout: Path, folder: str) -> Path:
        folder = (folder or "").strip().strip("/")
        if not folder:
            return checkout
        candidate = (checkout / folder).resolve()
        if not candidate.is_relative_to(checkout.resolve()):
            raise CloneFailed(f"folder {folder!r} escapes the repository")
        if not candidate.is_dir():
            raise CloneFailed(f"folder {folder!r} not found in repository")
        return candidate

    @staticmethod
    def _run(
        argv: list[str],
        env: dict[str, str],
        scope: CancelScope | None,
        *,
        secrets: tuple[str, ...] = (),
    ) -> None:
        try:
            proc = subprocess.Popen(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                env=env,
                text=True,
            )
        except OSError as exc:
            raise CloneFailed(f"cannot run {argv[0]}: {exc}") from exc

        # Without a scope there is nothing to poll for; block until git exits.
        timeout = None if scope is None else _POLL_SECONDS
        output = ""
        while True:
            try:
                output, _ = proc.communicate(timeout=timeout)
                break
            except subprocess.TimeoutExpired:
                if scope is not None and scope.cancelled:
                    proc.kill()
                    output, _ = proc.communicate()
                    reason = "timed out" if scope.expired else "cancelled"
                    raise CloneFailed(
                        f"git clone {reason}",
                        returncode=proc.returncode,
                        output=redact(output or "", *secrets),
                    ) from None

        if proc.returncode != 0:
            raise CloneFailed(
                f"git clone exited with status {proc.returncode}",
                returncode=proc.returncode,
                output=redact(output or "", *secrets),
            )
