"""Integrity verification for downloaded artifacts and indexes.

Archives are checked against the ``ALGORITHM:hexdigest`` checksum and the size
declared by the index that referenced them. Indexes are checked against a
detached OpenPGP signature, but only when they come from a trusted host: the
signature policy is explicit and configurable rather than applied uniformly
to every origin.
"""

import hashlib
import logging
from pathlib import Path
from typing import Iterable, Optional
from urllib.parse import urlparse

import gnupg

from ..errors import ChecksumError, SignatureVerificationError

# Index checksum prefixes mapped to hashlib algorithm names
SUPPORTED_ALGORITHMS = {
    "SHA-256": "sha256",
    "SHA-1": "sha1",
    "MD5": "md5",
}


def parse_checksum(checksum: str) -> tuple:
    """Split an index checksum into (hashlib_name, hexdigest).

    Args:
        checksum: Checksum string (e.g. "SHA-256:49241fd5...")

    Returns:
        Tuple of (hashlib algorithm name, lowercase hex digest)

    Raises:
        ChecksumError: If the checksum is malformed or the algorithm unsupported
    """
    algorithm, sep, digest = checksum.partition(":")
    if not sep or not digest:
        raise ChecksumError(f"Invalid checksum format: {checksum!r}")
    name = SUPPORTED_ALGORITHMS.get(algorithm.upper())
    if name is None:
        raise ChecksumError(f"Unsupported hash algorithm: {algorithm}")
    return name, digest.strip().lower()


def compute_checksum(file_path: Path, algorithm: str = "sha256", chunk_size: int = 65536) -> str:
    """Compute the hex digest of a file."""
    digest = hashlib.new(algorithm)
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


def verify_checksum(file_path: Path, checksum: str) -> bool:
    """Check a file against an index checksum.

    Args:
        file_path: File to verify
        checksum: Expected checksum in "ALGORITHM:hex" form

    Returns:
        True if the checksum matches, False otherwise

    Raises:
        ChecksumError: If the checksum string itself is invalid
    """
    algorithm, expected = parse_checksum(checksum)
    actual = compute_checksum(file_path, algorithm)
    if actual != expected:
        logging.warning(f"Checksum mismatch for {file_path}: expected {expected}, got {actual}")
        return False
    return True


def verify_size(file_path: Path, size: int) -> bool:
    """Check a file against its declared size; a size of 0 is not checked."""
    if size <= 0:
        return True
    actual = file_path.stat().st_size
    if actual != size:
        logging.warning(f"Size mismatch for {file_path}: expected {size}, got {actual}")
        return False
    return True


class SignatureVerifier:
    """Verifies detached OpenPGP signatures with GnuPG."""

    def __init__(self, keyring: Optional[Path] = None):
        """Initialize verifier.

        Args:
            keyring: GnuPG home directory holding the trusted public keys.
                     None uses the default GnuPG home.
        """
        self.keyring = keyring
        self._gpg: Optional[gnupg.GPG] = None

    def _get_gpg(self) -> gnupg.GPG:
        if self._gpg is None:
            if self.keyring is not None:
                self._gpg = gnupg.GPG(gnupghome=str(self.keyring))
            else:
                self._gpg = gnupg.GPG()
        return self._gpg

    def verify_detached(self, data_path: Path, signature_path: Path) -> bool:
        """Verify a detached signature over a file.

        Args:
            data_path: Signed file
            signature_path: Detached signature file

        Returns:
            True if the signature is valid

        Raises:
            SignatureVerificationError: If GnuPG cannot be run or the
                signature file cannot be read
        """
        try:
            gpg = self._get_gpg()
            with open(signature_path, "rb") as sig:
                verified = gpg.verify_file(sig, str(data_path))
        except (OSError, ValueError, RuntimeError) as e:
            raise SignatureVerificationError(str(data_path), e) from e

        if not verified:
            logging.warning(f"Invalid signature for {data_path}: {getattr(verified, 'status', 'unknown')}")
            return False
        logging.info(f"Valid signature for {data_path} (key {verified.key_id})")
        return True


class IndexSignaturePolicy:
    """Decides which index origins must carry a valid detached signature.

    Indexes from trusted hosts are fetched together with ``<url>.sig`` and
    rejected when the signature does not verify. Indexes from any other origin
    are accepted unsigned and their releases are not marked trusted.
    """

    def __init__(self, trusted_hosts: Iterable[str], enforce: bool = True):
        self.trusted_hosts = {h.lower() for h in trusted_hosts}
        self.enforce = enforce

    def requires_signature(self, url: str) -> bool:
        if not self.enforce:
            return False
        host = (urlparse(url).hostname or "").lower()
        return host in self.trusted_hosts

    @staticmethod
    def signature_url(url: str) -> str:
        parsed = urlparse(url)
        return parsed._replace(path=parsed.path + ".sig").geturl()
