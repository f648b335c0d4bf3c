"""
Utility functions for the Azure DevOps project cloning tool.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
from subprocess import CompletedProcess
from urllib.parse import urlparse


class PassError(Exception):
    """Base class for pass-related errors."""


class InvalidPassPathError(PassError):
    """Raised when the pass path format is invalid."""


class PassphraseRequiredError(PassError):
    """Raised when a GPG passphrase is required for the pass utility."""


def setup_logging(*, verbose: bool = False) -> None:
    """Configure logging for the clone run."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(), logging.FileHandler("clone.log", mode="a")],
    )


def _validate_pass_path(pass_path: str) -> None:
    if not re.fullmatch(r"(?:[A-Za-z0-9_-]+)(?:/[A-Za-z0-9_-]+)*", pass_path):
        msg = f"Invalid pass path: {pass_path}"
        raise ValueError(msg)


def _pass_failure_message(pass_path: str, error: subprocess.CalledProcessError, *, suffix: str = "") -> str:
    return (
        f"Failed to get value from pass at '{pass_path}'{suffix}.\n"
        f"Output: {error.stdout.strip()}\n"
        f"Error: {error.stderr.strip()}\n"
        f"Return code: {error.returncode}"
    )


def get_pass_value(pass_path: str) -> str:
    """Get value from pass utility at specified path."""
    _validate_pass_path(pass_path)

    try:
        result: CompletedProcess[str] = subprocess.run(  # noqa: S603
            ["pass", pass_path], capture_output=True, text=True, check=True
        )
    except subprocess.CalledProcessError as e:
        stderr = e.stderr.lower()
        if e.returncode == 1 and "not in the password store" in stderr:
            msg = f"Pass path '{pass_path}' not found or invalid."
            raise InvalidPassPathError(msg) from e
        if not (e.returncode == 2 and "gpg" in stderr and "public key decryption failed" in stderr):
            raise PassError(_pass_failure_message(pass_path, e)) from e

        # The GPG key is locked. Ask for the passphrase and hand it to pass on stdin.
        # This fails in non-interactive sessions (e.g. pytest).
        try:
            passphrase = input("Enter passphrase for GPG key used by pass: ")
        except EOFError as eof:
            msg = "Passphrase input was interrupted. Please run the command in an interactive session."
            raise PassphraseRequiredError(msg) from eof

        env = os.environ.copy() | {"PASSWORD_STORE_GPG_OPTS": "--pinentry-mode=loopback --passphrase-fd 0"}
        try:
            result = subprocess.run(  # noqa: S603
                ["pass", pass_path], input=passphrase, capture_output=True, text=True, check=True, env=env
            )
        except subprocess.CalledProcessError as retry_error:
            raise PassphraseRequiredError(
                _pass_failure_message(pass_path, retry_error, suffix=" with passphrase")
            ) from retry_error

    return result.stdout.strip()


def normalize_organization_url(url: str) -> str:
    """Normalize an organization URL so two spellings of the same organization compare equal.

    Lower-cases, strips trailing slashes and rewrites the legacy
    ``https://{org}.visualstudio.com`` form to ``https://dev.azure.com/{org}``.

    Args:
        url: Organization URL as typed by the user

    Returns:
        Normalized URL, or an empty string for an empty input
    """
    cleaned = url.strip().rstrip("/").lower()
    if not cleaned:
        return ""
    if "://" not in cleaned:
        cleaned = f"https://{cleaned}"

    parsed = urlparse(cleaned)
    host = parsed.netloc
    path = parsed.path.rstrip("/")
    if host.endswith(".visualstudio.com"):
        organization = host.removesuffix(".visualstudio.com")
        return f"https://dev.azure.com/{organization}"
    if host == "dev.azure.com":
        organization = path.strip("/").split("/", 1)[0]
        return f"https://dev.azure.com/{organization}"
    return f"{parsed.scheme}://{host}{path}"


def organization_name(url: str) -> str:
    """Extract the organization name from an organization URL."""
    return normalize_organization_url(url).rsplit("/", 1)[-1]


def graph_base_url(url: str) -> str:
    """Identity (graph) host for the organization behind url."""
    return f"https://vssps.dev.azure.com/{organization_name(url)}"
