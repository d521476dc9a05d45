"""Desktop notification helpers for run events.

Notifies the user when a run completes, exhausts its budget or stops on a
fatal error.
"""

import platform
import shutil
import subprocess


def send_notification(title: str, message: str, sound: bool = True) -> None:
    """Send a desktop notification.

    Uses osascript on macOS and notify-send elsewhere when it is installed.
    Silently does nothing when neither is available.

    Args:
        title: Notification title (bold text)
        message: Notification body text
        sound: Whether to play the default notification sound (macOS only)
    """
    if platform.system() == "Darwin":
        script = f'display notification "{_quote(message)}" with title "{_quote(title)}"'
        if sound:
            script += ' sound name "default"'
        subprocess.run(["osascript", "-e", script], check=False)
        return

    if shutil.which("notify-send"):
        subprocess.run(["notify-send", title, message], check=False)


def _quote(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')
