from __future__ import annotations

import json
from pathlib import Path

from desktop_build_pipeline.cli import main


def _definition(py, *, package_ok: bool = True) -> dict:
    package = (
        "import pathlib; pathlib.Path('dist').mkdir(exist_ok=True); "
        "pathlib.Path('dist/App Setup 1.0.0.exe').write_bytes(b'MZ')"
    )
    if not package_ok:
        package = "raise SystemExit(1)"
    return {
        "spec_version": 1,
        "name": "windows-desktop",
        "env": {"CSC_IDENTITY_AUTO_DISCOVERY": "false"},
        "steps": [
            {"name": "install", "command": py("print('npm ci')")},
            {
                "name": "lint",
                "command": py("raise SystemExit(2)"),
                "on_failure": "warn-only",
            },
            {"name": "package", "command": py(package), "produces": ["dist/*.exe"]},
            {"name": "after", "command": py("pass")},
        ],
        "artifacts": [
            {"glob_pattern": "dist/*.exe", "required": True},
            {"glob_pattern": "dist/*-portable.exe", "required": False},
        ],
    }


def _only_run_dir(run_root: Path) -> Path:
    dirs = [p for p in run_root.iterdir() if p.is_dir()]
    assert len(dirs) == 1
    return dirs[0]


def test_run_success_writes_report(tmp_path: Path, py, write_pipeline) -> None:
    work = tmp_path / "work"
    work.mkdir()
    run_root = tmp_path / "_runs"
    pipeline = write_pipeline(tmp_path / "pipeline.json", _definition(py))

    rc = main(
        [
            "run",
            "--pipeline",
            str(pipeline),
            "--working-dir",
            str(work),
            "--run-root",
            str(run_root),
        ]
    )
    assert rc == 0

    run_dir = _only_run_dir(run_root)
    report = json.loads((run_dir / "run_report.json").read_text())
    assert report["status"] == "completed"
    assert report["exit_code"] == 0
    assert [r["status"] for r in report["results"]] == [
        "success",
        "failed",
        "success",
        "success",
    ]
    assert report["validation"]["matched"] == {"dist/*.exe": ["dist/App Setup 1.0.0.exe"]}
    assert len(report["validation"]["warnings"]) == 1

    sums = (run_dir / "sha256sums.txt").read_text()
    assert sums.endswith("  dist/App Setup 1.0.0.exe\n")


def test_run_fatal_failure_exits_1(tmp_path: Path, py, write_pipeline) -> None:
    work = tmp_path / "work"
    work.mkdir()
    run_root = tmp_path / "_runs"
    pipeline = write_pipeline(
        tmp_path / "pipeline.json", _definition(py, package_ok=False)
    )

    rc = main(
        [
            "run",
            "--pipeline",
            str(pipeline),
            "--working-dir",
            str(work),
            "--run-root",
            str(run_root),
        ]
    )
    assert rc == 1

    report = json.loads((_only_run_dir(run_root) / "run_report.json").read_text())
    assert report["status"] == "failed_fatal"
    assert [r["status"] for r in report["results"]][-2:] == ["failed", "skipped"]
    assert report["validation"]["errors"] == ["required artifact missing: dist/*.exe"]


def test_run_without_run_dir(tmp_path: Path, py, write_pipeline, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    write_pipeline(tmp_path / "pipeline.json", _definition(py))

    assert main(["run", "--no-run-dir"]) == 0
    assert (tmp_path / "dist" / "App Setup 1.0.0.exe").is_file()
    assert not (tmp_path / "_runs").exists()


def test_configuration_error_exits_1(tmp_path: Path, write_pipeline) -> None:
    bad = write_pipeline(
        tmp_path / "bad.json",
        {"spec_version": 1, "name": "x", "steps": [{"name": "a", "command": ""}]},
    )
    assert main(["check", "--pipeline", str(bad)]) == 1
    assert main(["run", "--pipeline", str(bad), "--run-root", str(tmp_path / "r")]) == 1
    assert not (tmp_path / "r").exists()
    assert main(["check", "--pipeline", str(tmp_path / "missing.json")]) == 1


def test_check_shipped_definition() -> None:
    shipped = Path(__file__).resolve().parents[1] / "config" / "pipeline.json"
    assert main(["check", "--pipeline", str(shipped)]) == 0


def test_artifacts_command(tmp_path: Path, py, write_pipeline) -> None:
    pipeline = write_pipeline(tmp_path / "pipeline.json", _definition(py))
    args = ["artifacts", "--pipeline", str(pipeline), "--working-dir", str(tmp_path)]

    assert main(args) == 1

    (tmp_path / "dist").mkdir()
    (tmp_path / "dist" / "Setup.exe").write_bytes(b"MZ")
    assert main(args) == 0


def test_retry_command(py) -> None:
    assert main(["retry", "--attempts", "2", "--backoff", "0", "--"] + py("pass")) == 0
    assert (
        main(["retry", "--attempts", "2", "--backoff", "0", "--"] + py("raise SystemExit(4)"))
        == 4
    )
