import pytest
from click.testing import CliRunner

from rootsftp import __version__, util
from rootsftp.cli import main


@pytest.fixture
def runner(monkeypatch, tmp_path):
    for name in ("SFTP_ROOT_DIR", "SFTP_HOST_KEY", "SFTP_USERNAMES", "SFTP_PASSWORDS", "SFTP_LOG_FILE"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    # keep handlers off the runner's temporary stderr
    monkeypatch.setattr(util, "log_to_stderr", lambda level: True)
    return CliRunner()


class TestMain:
    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_missing_root(self, runner, tmp_path):
        result = runner.invoke(main, ["--root", str(tmp_path / "missing")])
        assert result.exit_code == 1
        assert "SFTP root dir does not exist" in result.output

    def test_unreadable_host_key(self, runner, tmp_path):
        (tmp_path / "bad.key").write_text("garbage\n")
        result = runner.invoke(main, ["--root", str(tmp_path), "--host-key", str(tmp_path / "bad.key")])
        assert result.exit_code == 1
        assert "Unable to load host key" in result.output

    def test_missing_host_key(self, runner, tmp_path):
        result = runner.invoke(main, ["-r", str(tmp_path), "-k", str(tmp_path / "none.key")])
        assert result.exit_code == 1
        assert "Unable to load host key" in result.output

    def test_mismatched_credentials(self, runner, tmp_path):
        result = runner.invoke(
            main,
            ["--root", str(tmp_path)],
            env={"SFTP_USERNAMES": "alice,bob", "SFTP_PASSWORDS": "one"},
        )
        assert result.exit_code == 1
        assert "same number of entries" in result.output
