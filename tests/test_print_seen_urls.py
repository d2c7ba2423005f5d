import importlib.util
from pathlib import Path

import pytest

from modules.job_crawler.lib.config import DEFAULT_SQLITE_PATH, Settings
from modules.job_crawler.lib.db import SqliteDedupStore

SCRIPT = Path(__file__).resolve().parent.parent / "scripts" / "print_seen_urls.py"


@pytest.fixture
def script():
    spec = importlib.util.spec_from_file_location("print_seen_urls", SCRIPT)
    mod = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(mod)
    return mod


def test_default_db_is_the_crawler_default(script):
    assert script.DEFAULT_DB == DEFAULT_SQLITE_PATH == Settings().sqlite_path


def test_prints_rows_for_one_identity(script, tmp_path, capsys):
    dbp = str(tmp_path / "jc.db")
    store = SqliteDedupStore(dbp)
    store.insert("https://a/1", "10.0.0.5:8080")
    store.insert("https://b/1", "other:1")

    assert script.main(["5", "--db", dbp, "--identity", "10.0.0.5:8080"]) == 0
    out, _ = capsys.readouterr()
    assert "https://a/1" in out
    assert "https://b/1" not in out


def test_missing_db_is_an_error(script, tmp_path):
    assert script.main(["--db", str(tmp_path / "nope.db")]) == 1
