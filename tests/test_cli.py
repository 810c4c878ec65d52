import json

import pytest

from stepshot import cli


@pytest.fixture(autouse=True)
def fast_simulator(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("STEPSHOT_SIMULATED_MIN_DELAY_MS", "0")
    monkeypatch.setenv("STEPSHOT_SIMULATED_MAX_DELAY_MS", "2")
    monkeypatch.setenv("STEPSHOT_SEED_EXAMPLE", "false")


def _write_script(tmp_path, steps, **settings):
    path = tmp_path / "login.json"
    path.write_text(json.dumps({"steps": steps, "settings": settings}), encoding="utf-8")
    return path


def test_run_prints_completed_run(tmp_path, capsys) -> None:
    path = _write_script(tmp_path, [{"action": "open", "target": "https://example.com"}])

    code = cli.main(["--config", str(tmp_path / "none.toml"), "run", str(path), "--backend", "simulated", "--poll", "0.01"])

    assert code == 0
    run = json.loads(capsys.readouterr().out)
    assert run["status"] == "completed"
    assert run["scriptId"] == "login"


def test_run_with_failure_exits_nonzero_and_honours_continue_flag(tmp_path, capsys) -> None:
    path = _write_script(
        tmp_path,
        [{"action": "click", "selector": "#a", "shouldFail": True}, {"action": "click", "selector": "#b"}],
    )

    code = cli.main(
        [
            "--config",
            str(tmp_path / "none.toml"),
            "run",
            str(path),
            "--backend",
            "simulated",
            "--continue-on-error",
            "--poll",
            "0.01",
        ]
    )

    assert code == 1
    run = json.loads(capsys.readouterr().out)
    assert [step["status"] for step in run["steps"]] == ["failed", "passed"]


def test_run_missing_file(tmp_path) -> None:
    code = cli.main(["--config", str(tmp_path / "none.toml"), "run", str(tmp_path / "absent.json")])
    assert code == 2
