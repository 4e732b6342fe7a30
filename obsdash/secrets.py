"""Backend auth token lookup.

The bearer token comes from ``OBSDASH_AUTH_TOKEN`` when set. On macOS it can
live in the login Keychain instead, stored with:

    security add-generic-password -s obsdash-token -a "$USER" -w '<TOKEN>'

Backends without auth need neither; the token is then empty.
"""

import logging
import os
import subprocess
from typing import Optional

logger = logging.getLogger(__name__)

TOKEN_ENV_VAR = "OBSDASH_AUTH_TOKEN"
TOKEN_KEYCHAIN_SERVICE = "obsdash-token"
KEYCHAIN_TIMEOUT_SECONDS = 5


class AuthTokenMissing(RuntimeError):
    """Raised when a token is required but neither the env nor the Keychain has one."""


def _keychain_token() -> Optional[str]:
    cmd = ["security", "find-generic-password", "-s", TOKEN_KEYCHAIN_SERVICE]
    account = os.environ.get("USER")
    if account:
        cmd += ["-a", account]
    cmd.append("-w")

    try:
        # A locked Keychain can prompt forever
        output = subprocess.check_output(
            cmd, text=True, stderr=subprocess.DEVNULL, timeout=KEYCHAIN_TIMEOUT_SECONDS
        )
    except FileNotFoundError:
        return None
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
        logger.debug(f"No Keychain entry '{TOKEN_KEYCHAIN_SERVICE}': {e}")
        return None
    return output.strip() or None


def read_auth_token(required: bool = False) -> str:
    """Backend bearer token, or an empty string when none is configured."""
    token = os.environ.get(TOKEN_ENV_VAR) or _keychain_token()
    if token:
        return token
    if required:
        raise AuthTokenMissing(
            f"Set {TOKEN_ENV_VAR} or add a Keychain entry for service '{TOKEN_KEYCHAIN_SERVICE}'"
        )
    return ""
