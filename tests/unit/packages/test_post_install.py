"""Unit tests for platform post-install scripts."""

import sys

import pytest

from boardmgr.errors import PostInstallError
from boardmgr.packages.post_install import kill_process_tree, post_install_script, run_post_install_script

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="post_install.sh scripts are POSIX only")


def _script(install_dir, body):
    script = install_dir / "post_install.sh"
    script.write_text("#!/bin/sh\n" + body)
    return script


class TestPostInstall:
    """Test cases for run_post_install_script."""

    def test_no_script(self, tmp_path):
        assert post_install_script(tmp_path) is None
        assert run_post_install_script(tmp_path) is False

    def test_script_runs_in_install_dir(self, tmp_path):
        _script(tmp_path, "touch configured\n")
        assert run_post_install_script(tmp_path) is True
        assert (tmp_path / "configured").is_file()

    def test_failing_script(self, tmp_path):
        _script(tmp_path, "echo no udev rules >&2\nexit 3\n")
        with pytest.raises(PostInstallError, match="exited with code 3: no udev rules"):
            run_post_install_script(tmp_path)

    def test_timeout_kills_script(self, tmp_path):
        _script(tmp_path, "sleep 30\n")
        with pytest.raises(PostInstallError, match="timed out"):
            run_post_install_script(tmp_path, timeout=0.5)

    def test_kill_missing_process(self):
        assert kill_process_tree(2**22 + 12345) == 0
