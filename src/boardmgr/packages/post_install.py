"""Platform post-install scripts.

A platform release may ship a ``post_install.sh`` (``post_install.bat`` on
Windows) at the top of its installation directory, used for example to
install USB drivers or udev rules. The script runs in the release directory
with a timeout; on timeout the script and every process it spawned are
terminated.
"""

import logging
import os
import subprocess
import sys
from pathlib import Path
from typing import List, Optional

import psutil

from ..errors import PostInstallError


def post_install_script(install_dir: Path) -> Optional[Path]:
    """Get the post-install script of an installed release, if it has one."""
    name = "post_install.bat" if sys.platform == "win32" else "post_install.sh"
    script = Path(install_dir) / name
    return script if script.is_file() else None


def kill_process_tree(root_pid: int) -> int:
    """Terminate a process and all of its descendants, children first.

    Returns:
        Number of processes signalled
    """
    try:
        root_proc = psutil.Process(root_pid)
        processes: List[psutil.Process] = root_proc.children(recursive=True)
        processes.reverse()
        processes.append(root_proc)
    except psutil.NoSuchProcess:
        return 0

    killed = 0
    for proc in processes:
        try:
            proc.terminate()
            killed += 1
        except psutil.NoSuchProcess:
            pass
        except psutil.AccessDenied as e:
            logging.warning(f"Failed to terminate process {proc.pid}: {e}")

    _gone, alive = psutil.wait_procs(processes, timeout=3)
    for proc in alive:
        try:
            proc.kill()
            logging.warning(f"Force killed stubborn process {proc.pid}")
        except psutil.NoSuchProcess:
            pass
        except psutil.AccessDenied as e:
            logging.warning(f"Failed to force kill process {proc.pid}: {e}")
    return killed


def run_post_install_script(install_dir: Path, timeout: float = 300.0) -> bool:
    """Run the post-install script of an installed release.

    Args:
        install_dir: Installation directory of the platform release
        timeout: Seconds to wait before the script is killed

    Returns:
        True if a script was run, False if the release has none

    Raises:
        PostInstallError: If the script fails, times out or cannot be started
    """
    script = post_install_script(install_dir)
    if script is None:
        return False

    if sys.platform == "win32":
        cmd = ["cmd", "/c", str(script)]
    else:
        if not os.access(script, os.X_OK):
            script.chmod(script.stat().st_mode | 0o111)
        cmd = [str(script)]

    logging.info(f"Running post-install script {script}")
    try:
        proc = subprocess.Popen(
            cmd,
            cwd=str(install_dir),
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
    except OSError as e:
        raise PostInstallError(f"Starting post-install script {script}", e) from e

    try:
        stdout, stderr = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired as e:
        kill_process_tree(proc.pid)
        proc.communicate()
        raise PostInstallError(f"Post-install script {script} timed out after {timeout}s", e) from e

    if proc.returncode != 0:
        output = (stdout or "") + (stderr or "")
        raise PostInstallError(f"Post-install script {script} exited with code {proc.returncode}: {output.strip()}")
    return True
