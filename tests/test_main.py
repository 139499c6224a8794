from src.application_logger import main, settings


def test_configuration_error_exits_with_status_2(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "CONFIG_PATH", str(tmp_path / "missing.yaml"))
    assert main.main(["process"]) == 2


def test_command_dispatch(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text("app:\n  log_level: DEBUG\n", encoding="utf-8")
    monkeypatch.setattr(settings, "CONFIG_PATH", str(path))
    seen = []
    monkeypatch.setitem(main.COMMANDS, "sweep", lambda cfg, dry_run=False: seen.append(dry_run))
    assert main.main(["sweep", "--dry-run"]) == 0
    assert seen == [True]
