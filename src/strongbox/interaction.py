"""Terminal prompts and clipboard access."""

import getpass
import os
import subprocess
import sys
from typing import List, Optional

from .config import ENV_PASSWORD


def get_password(prompt: str = "Enter master password: ") -> bytes:
    """Get the master password from the environment or a no-echo prompt.

    STRONGBOX_PASSWORD is checked first for automation/testing. It may be
    visible in process listings; only use it in isolated environments.
    """
    env_password = os.environ.get(ENV_PASSWORD)
    if env_password:
        return env_password.encode("utf-8")
    return getpass.getpass(prompt).encode("utf-8")


def read_secret(prompt: str = "Secret: ") -> bytes:
    return getpass.getpass(prompt).encode("utf-8")


def read_line(prompt: str) -> str:
    try:
        return input(prompt).strip()
    except EOFError:
        return ""


def confirm(prompt: str) -> bool:
    """Ask a y/N question; anything but y/yes is no."""
    return read_line(f"{prompt} (y/N): ").lower() in ("y", "yes")


def _clipboard_command() -> Optional[List[str]]:
    if sys.platform == "darwin":
        return ["pbcopy"]

    if os.path.exists("/proc/version"):
        with open("/proc/version") as f:
            kernel = f.read().lower()
        if "microsoft" in kernel or "wsl" in kernel:
            return ["clip.exe"]
        if os.environ.get("WAYLAND_DISPLAY"):
            return ["wl-copy"]
        return ["xclip", "-selection", "clipboard"]

    return None


def copy_to_clipboard(data: bytes) -> bool:
    """Copy bytes to the system clipboard.

    Best effort: returns False when no clipboard tool is available or the
    tool fails. Never raises for a missing tool.
    """
    cmd = _clipboard_command()
    if cmd is None:
        return False

    try:
        proc = subprocess.run(cmd, input=data, capture_output=True)
    except (FileNotFoundError, PermissionError):
        return False
    return proc.returncode == 0
