"""Addon package archives.

This module packs a working directory into a gzip-compressed tar stream
using npm-publish exclusion rules, and extracts such streams (local or
downloaded from the registry) into a destination directory.
"""

from __future__ import annotations

import fnmatch
import io
import json
import os
import tarfile
import zlib
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Callable, Iterable, Iterator, List, Optional, Tuple, Union

import httpx

from lacona.addon_system.manifest import MANIFEST_FILENAME
from lacona.utils.exceptions import ExtractionError, FilesystemError, MalformedManifestError, NetworkError

# Every npm tarball nests its files under this directory
ARCHIVE_PREFIX = "package"

DEFAULT_IGNORE_PATTERNS = [
    # Logs
    "logs",
    "*.log",
    "npm-debug.log*",
    # Runtime data
    "pids",
    "*.pid",
    "*.seed",
    # Instrumented libs and coverage
    "lib-cov",
    "coverage",
    ".nyc_output",
    # Grunt intermediate storage
    ".grunt",
    # node-waf configuration
    ".lock-wscript",
    # Compiled binary addons
    "build/Release",
    # Dependency directories
    "node_modules",
    "jspm_packages",
    # npm cache and REPL history
    ".npm",
    ".node_repl_history",
    # Version control and editor metadata npm never publishes
    ".git",
    ".svn",
    ".hg",
    "CVS",
    ".DS_Store",
    "._*",
    ".*.swp",
    "*.orig",
    ".npmrc",
    # Packaging metadata npm never publishes
    ".npmignore",
    ".gitignore",
    "package-lock.json",
]

# Files that are published even when a pattern matches them
ALWAYS_INCLUDED = {MANIFEST_FILENAME}

# Root files published alongside a "files" whitelist whatever it lists
WHITELIST_ALWAYS_INCLUDED = ("README*", "LICENSE*", "LICENCE*", "CHANGELOG*")

PROJECT_IGNORE_FILES = (".npmignore", ".gitignore")


class _IgnorePattern:
    """One gitignore-style pattern."""

    def __init__(self, pattern: str) -> None:
        self.negated = pattern.startswith("!")
        if self.negated:
            pattern = pattern[1:]
        self.dir_only = pattern.endswith("/")
        pattern = pattern.rstrip("/")
        self.anchored = pattern.startswith("/") or "/" in pattern
        self.pattern = pattern.lstrip("/")

    def matches(self, rel_path: PurePosixPath, is_dir: bool) -> bool:
        if self.dir_only and not is_dir:
            return False
        if self.anchored:
            if fnmatch.fnmatchcase(rel_path.as_posix(), self.pattern):
                return True
            if self.pattern.startswith("**/"):
                return fnmatch.fnmatchcase(rel_path.as_posix(), self.pattern[3:])
            return False
        return fnmatch.fnmatchcase(rel_path.name, self.pattern)


class _WhitelistEntry:
    """One entry of the manifest's ``files`` list."""

    def __init__(self, entry: str) -> None:
        entry = entry.strip()
        if entry.startswith("./"):
            entry = entry[2:]
        self.pattern = entry.strip("/")
        self.parts = PurePosixPath(self.pattern).parts

    def covers(self, rel_path: PurePosixPath) -> bool:
        """Whether the entry names ``rel_path`` or one of its parent directories."""
        parts = rel_path.parts
        return any(
            fnmatch.fnmatchcase("/".join(parts[:depth]), self.pattern)
            for depth in range(1, len(parts) + 1)
        )

    def may_contain(self, rel_dir: PurePosixPath) -> bool:
        """Whether files below ``rel_dir`` could be named by the entry."""
        for part, pattern in zip(rel_dir.parts, self.parts):
            if pattern == "**":
                return True
            if not fnmatch.fnmatchcase(part, pattern):
                return False
        return len(rel_dir.parts) < len(self.parts)


class IgnoreRules:
    """npm-publish style exclusion rules.

    Patterns follow ``.gitignore`` syntax: blank lines and ``#`` comments are
    skipped, ``!`` re-includes, a trailing ``/`` only matches directories and a
    pattern containing ``/`` is anchored at the package root. Later patterns
    win over earlier ones. Files inside an excluded directory are excluded
    with it.

    When the manifest declares a ``files`` whitelist, only the listed entries
    (plus ``package.json`` and root README, LICENSE and CHANGELOG files) are
    candidates, and the ignore patterns still apply within them.
    """

    def __init__(
            self,
            patterns: Optional[Iterable[str]] = None,
            files: Optional[Iterable[str]] = None
    ) -> None:
        self.patterns: List[_IgnorePattern] = []
        self.add(DEFAULT_IGNORE_PATTERNS if patterns is None else patterns)
        self.files: Optional[List[_WhitelistEntry]] = None
        if files is not None:
            entries = [_WhitelistEntry(entry) for entry in files if entry.strip()]
            # "." or "/" lists the whole package
            if not any(entry.pattern in ("", ".") for entry in entries):
                self.files = entries

    def add(self, patterns: Iterable[str]) -> None:
        for line in patterns:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            self.patterns.append(_IgnorePattern(line))

    @classmethod
    def for_directory(
            cls,
            directory: Union[str, Path],
            extra_patterns: Optional[Iterable[str]] = None
    ) -> IgnoreRules:
        """Build the rules for packing ``directory``.

        Defaults come first, then the project's ``.npmignore`` (or its
        ``.gitignore`` when there is no ``.npmignore``), then ``extra_patterns``.
        The ``files`` and ``main`` fields of ``package.json`` form the whitelist.

        Raises:
            FilesystemError: If an ignore file cannot be read
            MalformedManifestError: If ``package.json`` or its ``files`` field is invalid
        """
        directory = Path(directory)
        rules = cls(files=_read_files_whitelist(directory))
        for filename in PROJECT_IGNORE_FILES:
            ignore_file = directory / filename
            if ignore_file.is_file():
                try:
                    rules.add(ignore_file.read_text(encoding="utf-8").splitlines())
                except (OSError, UnicodeDecodeError) as e:
                    raise FilesystemError(
                        f"Cannot read ignore file {ignore_file}: {e}", file_path=str(ignore_file)
                    ) from e
                break
        if extra_patterns:
            rules.add(extra_patterns)
        return rules

    def is_ignored(self, rel_path: Union[str, PurePosixPath], is_dir: bool = False) -> bool:
        rel_path = PurePosixPath(rel_path)
        if not is_dir and rel_path.as_posix() in ALWAYS_INCLUDED:
            return False
        if not self._whitelisted(rel_path, is_dir):
            return True

        ignored = False
        for pattern in self.patterns:
            if pattern.negated == ignored and pattern.matches(rel_path, is_dir):
                ignored = not pattern.negated
        return ignored

    def _whitelisted(self, rel_path: PurePosixPath, is_dir: bool) -> bool:
        if self.files is None:
            return True
        if not is_dir and len(rel_path.parts) == 1 and any(
            fnmatch.fnmatchcase(rel_path.name.upper(), pattern) for pattern in WHITELIST_ALWAYS_INCLUDED
        ):
            return True
        if any(entry.covers(rel_path) for entry in self.files):
            return True
        return is_dir and any(entry.may_contain(rel_path) for entry in self.files)


def _read_files_whitelist(directory: Path) -> Optional[List[str]]:
    """Return the ``files`` whitelist of ``directory``'s manifest, with ``main`` added."""
    manifest_path = directory / MANIFEST_FILENAME
    if not manifest_path.is_file():
        return None
    try:
        document = json.loads(manifest_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, ValueError) as e:
        raise MalformedManifestError(f"Invalid manifest file {manifest_path}: {e}") from e

    if not isinstance(document, dict) or "files" not in document:
        return None
    files = document["files"]
    if not isinstance(files, list) or not all(isinstance(entry, str) for entry in files):
        raise MalformedManifestError(f"The files field of {manifest_path} must be a list of paths")

    main = document.get("main")
    if isinstance(main, str) and main.strip():
        files = files + [main]
    return files


def iter_package_files(root: Union[str, Path], rules: IgnoreRules) -> Iterator[Tuple[Path, PurePosixPath]]:
    """Yield ``(absolute_path, relative_path)`` for every file to publish.

    Ignored directories are pruned without being walked. Symbolic links are
    yielded as-is and not followed.
    """
    root = Path(root)
    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        rel_dir = PurePosixPath(current.relative_to(root).as_posix())

        kept_dirs = []
        for dirname in sorted(dirnames):
            rel = rel_dir / dirname
            if rules.is_ignored(rel, is_dir=True):
                continue
            if (current / dirname).is_symlink():
                yield current / dirname, rel
                continue
            kept_dirs.append(dirname)
        dirnames[:] = kept_dirs

        for filename in sorted(filenames):
            rel = rel_dir / filename
            if rules.is_ignored(rel):
                continue
            yield current / filename, rel


def pack_directory(root: Union[str, Path], rules: IgnoreRules, fileobj: BinaryIO) -> int:
    """Write a gzip tar stream of the publishable files in ``root``.

    Entries are stored under ``package/`` like an npm tarball.

    Args:
        root: Package directory
        rules: Exclusion rules
        fileobj: Binary stream to write the archive to

    Returns:
        Number of entries written

    Raises:
        FilesystemError: If a file cannot be read
    """
    count = 0
    try:
        with tarfile.open(fileobj=fileobj, mode="w|gz") as tar:
            for path, rel in iter_package_files(root, rules):
                tar.add(str(path), arcname=f"{ARCHIVE_PREFIX}/{rel.as_posix()}", recursive=False)
                count += 1
    except OSError as e:
        raise FilesystemError(
            f"Failed to pack {root}: {e.strerror or e}", file_path=getattr(e, "filename", None)
        ) from e
    return count


def _strip_leading_directory(name: str) -> Optional[str]:
    parts = [part for part in PurePosixPath(name).parts if part not in ("", ".")]
    if len(parts) < 2:
        return None
    return "/".join(parts[1:])


def _check_member_path(name: str) -> None:
    path = PurePosixPath(name)
    if path.is_absolute() or ".." in path.parts:
        raise ExtractionError(f"Archive entry escapes the destination: {name}")


def extract_archive(fileobj: BinaryIO, destination: Union[str, Path]) -> int:
    """Extract a gzip tar stream into ``destination``.

    The stream is read sequentially, so it can come straight from a network
    response. The single leading directory of every entry (``package/`` in
    npm tarballs) is stripped.

    Args:
        fileobj: Binary stream positioned at the start of the archive
        destination: Existing directory to extract into

    Returns:
        Number of entries extracted

    Raises:
        ExtractionError: If the stream is corrupt, truncated, empty or contains
            entries that would land outside ``destination``
    """
    destination = Path(destination)
    count = 0
    try:
        with tarfile.open(fileobj=fileobj, mode="r|gz") as tar:
            for member in tar:
                _check_member_path(member.name)
                stripped = _strip_leading_directory(member.name)
                if stripped is None:
                    continue
                member.name = stripped
                if member.islnk():
                    _check_member_path(member.linkname)
                    linkname = _strip_leading_directory(member.linkname)
                    if linkname is None:
                        raise ExtractionError(f"Archive hard link escapes the destination: {member.linkname}")
                    member.linkname = linkname
                tar.extract(member, path=str(destination), filter="data")
                count += 1
    except ExtractionError:
        raise
    except tarfile.FilterError as e:
        raise ExtractionError(f"Archive entry escapes the destination: {e}") from e
    except (tarfile.TarError, EOFError, zlib.error) as e:
        raise ExtractionError(f"Corrupt or truncated archive: {e}") from e
    except OSError as e:
        raise ExtractionError(f"Failed to write archive contents to {destination}: {e}") from e

    if count == 0:
        raise ExtractionError("Archive contains no files")
    return count


class _ResponseStream(io.RawIOBase):
    """Read-only file object over an iterator of byte chunks."""

    def __init__(self, chunks: Iterator[bytes]) -> None:
        self._chunks = chunks
        self._buffer = b""

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        while not self._buffer:
            try:
                self._buffer = next(self._chunks)
            except StopIteration:
                return 0
        size = min(len(b), len(self._buffer))
        b[:size] = self._buffer[:size]
        self._buffer = self._buffer[size:]
        return size


class ArchiveFetcher:
    """Stream archives over HTTP and unpack them.

    Attributes:
        timeout: Request timeout in seconds
    """

    def __init__(
            self,
            client: Optional[httpx.Client] = None,
            timeout: float = 30.0,
            logger: Optional[Callable[[str, str], None]] = None
    ) -> None:
        """Initialize the fetcher.

        Args:
            client: HTTP client to use (one is created if omitted)
            timeout: Request timeout in seconds
            logger: Logger function for recording fetch events
        """
        self.timeout = timeout
        self.logger = logger or (lambda msg, level: None)
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)

    def log(self, message: str, level: str = "info") -> None:
        self.logger(message, level)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> ArchiveFetcher:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def fetch_and_extract(self, url: str, destination: Union[str, Path]) -> int:
        """Download the archive at ``url`` and extract it into ``destination``.

        The response body is fed to the tar reader as it arrives. On failure
        ``destination`` may hold a partial extraction; the caller cleans up.

        Returns:
            Number of entries extracted

        Raises:
            NetworkError: If the request fails or returns an error status
            ExtractionError: If the body cannot be extracted or the transfer
                breaks off midway
        """
        destination = Path(destination)
        destination.mkdir(parents=True, exist_ok=True)
        self.log(f"Downloading {url}", "debug")

        try:
            with self._client.stream("GET", url) as response:
                if response.status_code >= 400:
                    raise NetworkError(
                        f"Archive download failed: {response.status_code} {response.reason_phrase}",
                        url=url,
                        status_code=response.status_code,
                    )
                stream = io.BufferedReader(_ResponseStream(response.iter_bytes()), buffer_size=64 * 1024)
                try:
                    count = extract_archive(stream, destination)
                except httpx.HTTPError as e:
                    raise ExtractionError(f"Transfer of {url} was interrupted: {e}") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Failed to download {url}: {e}", url=url) from e

        self.log(f"Extracted {count} entries from {url} into {destination}", "debug")
        return count
