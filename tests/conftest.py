import io
from contextlib import redirect_stderr, redirect_stdout
from dataclasses import dataclass
from datetime import datetime

import pytest

from studio import config, db
from studio.core.models import Task
from studio.lib import ansi


@pytest.fixture(autouse=True)
def plain_output():
    ansi.use(ansi.PLAIN)
    yield
    ansi.use(ansi.DEFAULT)


@pytest.fixture
def tmp_studio_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "STUDIO_DIR", tmp_path)
    monkeypatch.setattr(config, "DB_PATH", tmp_path / "studio.db")
    monkeypatch.setattr(config, "CONFIG_PATH", tmp_path / "config.yaml")
    monkeypatch.setattr(config, "BACKUP_DIR", tmp_path / "backups")
    monkeypatch.setattr("fncli._TIMING_LOG", tmp_path / "cli_timings.jsonl")
    config.Config.reset()
    db.init()
    yield tmp_path
    config.Config.reset()


T0 = datetime(2026, 3, 2, 9, 0, 0)


def make_task(task_id: str, **fields) -> Task:
    fields.setdefault("name", task_id)
    fields.setdefault("created_at", T0)
    return Task(id=task_id, **fields)


@dataclass
class CLIResult:
    exit_code: int
    stdout: str
    stderr: str


class FnCLIRunner:
    def invoke(self, args: list[str]) -> CLIResult:
        from studio.cli import main

        out, err = io.StringIO(), io.StringIO()
        code = 0
        try:
            with redirect_stdout(out), redirect_stderr(err):
                main(args)
        except SystemExit as e:
            code = e.code if isinstance(e.code, int) else 1
        return CLIResult(code, out.getvalue(), err.getvalue())
