"""Resumable downloader with progress reporting.

Downloads stream into a ``.part`` file next to the destination. When a partial
file from an interrupted transfer is present the download resumes with an
HTTP Range request; servers that ignore the range get a full restart. The
partial file is renamed onto the destination only when the transfer is
complete, so the destination is never observed half-written.
"""

import logging
import threading
from pathlib import Path
from typing import Callable, Dict, Optional
from urllib.parse import urlparse

import requests
from tqdm import tqdm

from ..errors import DownloadCancelledError, FailedDownloadError, PermissionDeniedError
from ..interrupt_utils import handle_keyboard_interrupt_properly

ProgressCallback = Callable[[int, int], None]

USER_AGENT = "boardmgr/1.0"


class PackageDownloader:
    """Downloads files with resume, cancellation and progress tracking."""

    def __init__(
        self,
        chunk_size: int = 8192,
        timeout: float = 30.0,
        proxy: str = "",
        user_agent: str = USER_AGENT,
    ):
        """Initialize downloader.

        Args:
            chunk_size: Size of chunks for downloading
            timeout: Connection and read timeout in seconds
            proxy: Optional proxy URL used for http and https
            user_agent: User-Agent header sent with every request
        """
        self.chunk_size = chunk_size
        self.timeout = timeout
        self.proxy = proxy
        self.user_agent = user_agent

    @staticmethod
    def partial_path(dest_path: Path) -> Path:
        """Get the path of the in-progress file for a destination."""
        return dest_path.with_name(dest_path.name + ".part")

    def _proxies(self) -> Optional[Dict[str, str]]:
        if not self.proxy:
            return None
        return {"http": self.proxy, "https": self.proxy}

    def download(
        self,
        url: str,
        dest_path: Path,
        progress: Optional[ProgressCallback] = None,
        resume: bool = True,
        cancel_event: Optional[threading.Event] = None,
        show_progress: bool = False,
    ) -> Path:
        """Download a file from a URL.

        Args:
            url: URL to download from
            dest_path: Destination file path
            progress: Optional callback receiving (downloaded_bytes, total_bytes)
            resume: Whether to resume from an existing partial file
            cancel_event: Optional event; when set the transfer stops
            show_progress: Whether to show a console progress bar

        Returns:
            Path to the downloaded file

        Raises:
            FailedDownloadError: If the transfer fails
            PermissionDeniedError: If the destination directory cannot be written
            DownloadCancelledError: If cancel_event is set during the transfer
        """
        dest_path = Path(dest_path)
        partial = self.partial_path(dest_path)

        offset = 0
        headers = {"User-Agent": self.user_agent}
        try:
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            # Anything other than a regular file is not a resumable transfer
            if resume and partial.is_file():
                offset = partial.stat().st_size
                if offset > 0:
                    headers["Range"] = f"bytes={offset}-"
            elif partial.is_file():
                partial.unlink()
        except PermissionError as e:
            raise PermissionDeniedError(f"Preparing download of {url} into {dest_path.parent}", e) from e
        except OSError as e:
            raise FailedDownloadError(f"Preparing download of {url} into {dest_path.parent}", e) from e

        response = None
        progress_bar = None
        try:
            response = requests.get(
                url,
                stream=True,
                timeout=self.timeout,
                headers=headers,
                proxies=self._proxies(),
            )

            if offset and response.status_code == 416:
                # Partial file does not match the remote one anymore
                logging.info(f"Server rejected resume range for {url}, restarting download")
                response.close()
                partial.unlink()
                return self.download(url, dest_path, progress, False, cancel_event, show_progress)

            response.raise_for_status()

            content_length = int(response.headers.get("content-length", 0) or 0)
            if offset and response.status_code == 206:
                logging.info(f"Resuming download of {url} at byte {offset}")
                mode = "ab"
                total_size = content_length + offset if content_length else 0
            else:
                offset = 0
                mode = "wb"
                total_size = content_length

            if show_progress and total_size > 0:
                filename = Path(urlparse(url).path).name
                progress_bar = tqdm(
                    total=total_size,
                    initial=offset,
                    unit="B",
                    unit_scale=True,
                    unit_divisor=1024,
                    desc=f"Downloading {filename}",
                )

            downloaded = offset
            with open(partial, mode) as f:
                for chunk in response.iter_content(chunk_size=self.chunk_size):
                    if cancel_event is not None and cancel_event.is_set():
                        raise DownloadCancelledError(f"Download of {url} cancelled")
                    if not chunk:
                        continue
                    f.write(chunk)
                    downloaded += len(chunk)
                    if progress_bar:
                        progress_bar.update(len(chunk))
                    if progress:
                        progress(downloaded, total_size)

            partial.replace(dest_path)
            return dest_path

        except requests.RequestException as e:
            raise FailedDownloadError(f"Failed to download {url}", e) from e
        except OSError as e:
            raise FailedDownloadError(f"Failed to save {url} to {dest_path}", e) from e
        except KeyboardInterrupt as ke:
            handle_keyboard_interrupt_properly(ke)
            raise
        finally:
            if progress_bar:
                progress_bar.close()
            if response is not None:
                response.close()
