from main import _load_app_version


def test_version_is_read_from_pyproject(tmp_path, monkeypatch):
    (tmp_path / "pyproject.toml").write_text('[project]\nversion = "9.9.9"\n')
    monkeypatch.chdir(tmp_path)
    assert _load_app_version() == "9.9.9"


def test_version_is_unknown_without_pyproject(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert _load_app_version() == "unknown"


def test_version_is_unknown_for_malformed_pyproject(tmp_path, monkeypatch):
    (tmp_path / "pyproject.toml").write_text("[project\n")
    monkeypatch.chdir(tmp_path)
    assert _load_app_version() == "unknown"
