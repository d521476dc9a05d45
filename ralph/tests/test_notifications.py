"""Tests for desktop notifications."""

from unittest.mock import patch

from ralph.notifications import send_notification


class TestSendNotification:
    """Test send_notification."""

    def test_macos_uses_osascript(self):
        """On macOS an AppleScript notification is displayed."""
        with patch("ralph.notifications.platform.system", return_value="Darwin"):
            with patch("ralph.notifications.subprocess.run") as mock_run:
                send_notification("Ralph", 'Run "done"')

        args = mock_run.call_args[0][0]
        assert args[:2] == ["osascript", "-e"]
        assert 'display notification "Run \\"done\\""' in args[2]
        assert 'with title "Ralph"' in args[2]
        assert 'sound name "default"' in args[2]

    def test_macos_without_sound(self):
        with patch("ralph.notifications.platform.system", return_value="Darwin"):
            with patch("ralph.notifications.subprocess.run") as mock_run:
                send_notification("Ralph", "done", sound=False)

        assert "sound name" not in mock_run.call_args[0][0][2]

    def test_linux_uses_notify_send(self):
        with patch("ralph.notifications.platform.system", return_value="Linux"):
            with patch("ralph.notifications.shutil.which", return_value="/usr/bin/notify-send"):
                with patch("ralph.notifications.subprocess.run") as mock_run:
                    send_notification("Ralph", "done")

        mock_run.assert_called_once_with(["notify-send", "Ralph", "done"], check=False)

    def test_no_notifier_is_silent(self):
        """Without a notifier nothing is run."""
        with patch("ralph.notifications.platform.system", return_value="Linux"):
            with patch("ralph.notifications.shutil.which", return_value=None):
                with patch("ralph.notifications.subprocess.run") as mock_run:
                    send_notification("Ralph", "done")

        mock_run.assert_not_called()
