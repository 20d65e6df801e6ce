import json

import pytest

from efi_mounter.main import build_parser, format_table, main
from efi_mounter.service import EfiService
from efi_mounter.settings import ENV_CONFIG


@pytest.fixture(autouse=True)
def no_user_config(tmp_path, monkeypatch):
    monkeypatch.setenv(ENV_CONFIG, str(tmp_path / "absent.yaml"))


@pytest.fixture
def service(host, executor, fast_settings):
    svc = EfiService(
        settings=fast_settings,
        query=host,
        executor=executor,
        scanner=host.scanner,
        reveal=lambda p: None,
        sleep=lambda s: None,
    )
    yield svc
    svc.close()


def test_list_prints_table(service, capsys):
    assert main(["list"], service=service) == 0
    out = capsys.readouterr().out
    assert "disk1s1" in out and "disk2s1" in out
    assert "🔹" in out
    assert "external" in out


def test_list_json_and_output_file(service, capsys, tmp_path):
    target = tmp_path / "snap.yaml"
    assert main(["list", "--json", "--output", str(target)], service=service) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["boot_efi"] == "disk1s1"
    assert target.exists()


def test_list_reports_failures_on_stderr(service, host, capsys):
    host.failing.add(("diskutil", "info", "disk2"))
    assert main(["list"], service=service) == 0
    assert "disk2s1" in capsys.readouterr().err


def test_list_scan_failure(service, host, capsys):
    host.failing.add(("diskutil", "list"))
    assert main(["list"], service=service) == 1
    assert "scan failed" in capsys.readouterr().err


def test_mount_known_device(service, capsys):
    assert main(["mount", "disk2s1"], service=service) == 0
    assert "mount disk2s1: ok at /Volumes/EFI" in capsys.readouterr().out


def test_unknown_device(service, capsys):
    assert main(["toggle", "disk9s1"], service=service) == 2
    assert "disk9s1" in capsys.readouterr().err


def test_mutation_failure_exit_code(service, executor, capsys):
    executor.returncode = 1
    executor.output = "Operation not permitted"
    assert main(["mount", "disk1s1"], service=service) == 1
    assert "Operation not permitted" in capsys.readouterr().err


def test_bad_config_is_a_usage_error(tmp_path, capsys):
    p = tmp_path / "config.yaml"
    p.write_text("- nope\n", encoding="utf-8")
    assert main(["--config", str(p), "list"]) == 2


def test_empty_table():
    from efi_mounter.models import ScanResult

    assert format_table(ScanResult()) == "No EFI partitions found."


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_dry_run_mount_succeeds_without_waiting(host, fast_settings, capsys):
    slept = []
    with EfiService(
        settings=fast_settings,
        query=host,
        scanner=host.scanner,
        reveal=lambda p: None,
        sleep=slept.append,
        dry_run=True,
    ) as svc:
        assert main(["--dry-run", "mount", "disk2s1"], service=svc) == 0
    captured = capsys.readouterr()
    assert "mount disk2s1: ok" in captured.out
    assert "warning" not in captured.err
    assert slept == []
    assert host.partitions["disk2s1"]["mount"] != "/Volumes/EFI"


def test_non_mapping_section_is_a_usage_error(tmp_path, capsys):
    p = tmp_path / "config.yaml"
    p.write_text("timeouts: 30\n", encoding="utf-8")
    assert main(["--config", str(p), "list"]) == 2
    assert "timeouts" in capsys.readouterr().err
