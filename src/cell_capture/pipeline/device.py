"""Device information for submitted executions."""

from __future__ import annotations

from collections.abc import Mapping
import getpass
import os
from pathlib import Path
import platform
import socket
import sys
import uuid

from cell_capture.core.constants import DEPLOYMENT_SERVICE_ENV, LOOPBACK_HOSTNAMES
from cell_capture.core.types import DeviceInfo, HostEnvironment

# Align with the architecture names the service already stores.
_ARCH_ALIASES = {
    "x86_64": "x64",
    "amd64": "x64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "ia32",
    "i686": "ia32",
}

# /proc/cpuinfo keys naming the CPU model (x86, then ARM boards).
_CPUINFO_MODEL_KEYS = ("model name", "Model")


def resolve_hostname(
    os_hostname: str, environ: Mapping[str, str] | None = None
) -> str:
    """Return the hostname to submit.

    A loopback alias is replaced by the deployment service name when one is
    set, so executions from hosted sandboxes stay attributable.
    """
    env = os.environ if environ is None else environ
    service = env.get(DEPLOYMENT_SERVICE_ENV)
    if os_hostname in LOOPBACK_HOSTNAMES and service:
        return service
    return os_hostname


def mac_address() -> str:
    """Primary MAC address formatted as colon-separated hex.

    Returns an empty string when no hardware address can be read.
    """
    node = uuid.getnode()
    # getnode() falls back to a random number with the multicast bit set.
    if (node >> 40) & 1:
        return ""
    return ":".join(f"{(node >> shift) & 0xFF:02x}" for shift in range(40, -8, -8))


def cpu_model(cpuinfo: Path = Path("/proc/cpuinfo")) -> str:
    """Marketing name of the first CPU, e.g. ``Intel(R) Xeon(R) ...``."""
    try:
        lines = cpuinfo.read_text(encoding="utf-8", errors="replace").splitlines()
    except OSError:
        lines = []
    for line in lines:
        key, sep, value = line.partition(":")
        if sep and key.strip() in _CPUINFO_MODEL_KEYS and value.strip():
            return value.strip()
    return platform.processor() or platform.machine()


def _user_shell(environ: Mapping[str, str]) -> str:
    if shell := environ.get("SHELL"):
        return shell
    try:
        import pwd

        return pwd.getpwuid(os.getuid()).pw_shell
    except (ImportError, KeyError, AttributeError):
        return environ.get("COMSPEC", "")


def _user_name() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return ""


def collect_device_info(
    host: HostEnvironment | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    os_hostname: str | None = None,
) -> DeviceInfo:
    """Gather device fields from the running machine.

    Args:
        host: Editor host environment to embed.
        environ: Environment to read overrides from (defaults to os.environ).
        os_hostname: Hostname reported by the OS (defaults to socket.gethostname()).
    """
    env = os.environ if environ is None else environ
    machine = platform.machine().lower()
    return DeviceInfo(
        hostname=resolve_hostname(os_hostname or socket.gethostname(), env),
        platform=sys.platform,
        arch=_ARCH_ALIASES.get(machine, machine),
        release=platform.release(),
        mac_address=mac_address(),
        shell=_user_shell(env),
        user_name=_user_name(),
        cpu_model=cpu_model(),
        host=host or HostEnvironment(),
    )
