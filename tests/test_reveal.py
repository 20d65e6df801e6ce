import platform

from efi_mounter.lib import reveal


def test_file_browser_argv_per_platform(monkeypatch):
    monkeypatch.setattr(platform, "system", lambda: "Darwin")
    assert reveal.file_browser_argv("/Volumes/EFI") == ["open", "/Volumes/EFI"]
    monkeypatch.setattr(platform, "system", lambda: "Linux")
    assert reveal.file_browser_argv("/mnt/efi") == ["xdg-open", "/mnt/efi"]


def test_open_failure_is_not_fatal(monkeypatch):
    monkeypatch.setattr(reveal, "file_browser_argv", lambda p: ["definitely-not-a-real-binary-efi", p])
    assert reveal.open_in_file_browser("/Volumes/EFI") is False


def test_dry_run_reports_success():
    assert reveal.open_in_file_browser("/Volumes/EFI", dry_run=True) is True
