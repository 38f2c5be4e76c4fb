"""Source tree collection and packing.

The Build Stage receives the source tree as a tar archive rooted at the
builder's workdir. Local build output and VCS metadata are left out so the
builder compiles from sources only. Exclusion patterns follow ``.dockerignore``
rules through the docker SDK's own matcher, the one ``docker build`` uses for
its context.
"""

from __future__ import annotations

import io
from pathlib import Path, PurePath, PurePosixPath
import tarfile
from typing import TYPE_CHECKING

from docker.utils.build import exclude_paths
import structlog

from lucius_build.errors import SourceTreeError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from lucius_build.config import SourceConfig

logger = structlog.get_logger(__name__)


def read_ignore_file(path: Path) -> list[str]:
    """Read patterns from a ``.dockerignore``-style file.

    Blank lines and ``#`` comments are skipped.

    Args:
        path: Ignore file location.

    Returns:
        Patterns in file order.
    """
    patterns: list[str] = []
    for raw in path.read_text().splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        patterns.append(line)
    return patterns


def select_files(root: Path, patterns: Iterable[str]) -> list[str]:
    """List the files under root that survive the exclusion patterns.

    Patterns are anchored at root: ``target/`` drops the top-level
    ``target`` directory only, ``**/*.md`` reaches any depth, and a later
    ``!`` pattern re-includes. A ``Dockerfile`` at the root is always kept.

    Example:
        >>> select_files(Path("."), ["target/", "*.md", "!README.md"])
        ['Cargo.lock', 'Cargo.toml', 'README.md', 'src/main.rs']
    """
    # exclude_paths appends to the list it is given
    kept = exclude_paths(str(root), list(patterns))
    return sorted(
        PurePath(rel).as_posix()
        for rel in kept
        if (root / rel).is_file() or (root / rel).is_symlink()
    )


class SourceTree:
    """A directory of sources with exclusion patterns.

    Attributes:
        root: Absolute directory holding the sources.
        ignore: Exclusion patterns, applied in order.

    Example:
        >>> tree = SourceTree(Path("."), ignore=["target/"])
        >>> data = tree.to_tar("/usr/src/lucius-mcp-worker")
    """

    def __init__(self, root: str | Path, ignore: Iterable[str] = ()) -> None:
        self.root = Path(root).resolve()
        self.ignore = list(ignore)

    @classmethod
    def from_config(cls, config: SourceConfig, base_dir: str | Path | None = None) -> SourceTree:
        """Build a SourceTree from configuration.

        Args:
            config: Source configuration.
            base_dir: Directory ``config.context`` is relative to (the
                config file's directory). Defaults to the working directory.

        Returns:
            SourceTree with configured and ignore-file patterns merged.
        """
        base = Path(base_dir) if base_dir is not None else Path.cwd()
        root = (base / config.context).resolve()
        patterns = list(config.ignore)

        if config.ignore_file:
            ignore_path = root / config.ignore_file
            if ignore_path.is_file():
                patterns.extend(read_ignore_file(ignore_path))
                logger.debug("ignore_file_loaded", path=str(ignore_path))

        return cls(root, patterns)

    def validate(self) -> None:
        """Check that the root exists and is a directory.

        Raises:
            SourceTreeError: If the root is missing or not a directory.
        """
        if not self.root.exists():
            raise SourceTreeError(f"Source tree not found: {self.root}")
        if not self.root.is_dir():
            raise SourceTreeError(f"Source tree is not a directory: {self.root}")

    def files(self) -> list[str]:
        """List the files that make up the build context.

        Returns:
            Sorted POSIX paths relative to the root.

        Raises:
            SourceTreeError: If the root is missing or not a directory.
        """
        self.validate()
        return select_files(self.root, self.ignore)

    def to_tar(self, prefix: str) -> bytes:
        """Pack the build context into an uncompressed tar archive.

        Members are sorted and owned by root so the same tree always
        packs the same way.

        Args:
            prefix: Absolute directory the members are placed under.

        Returns:
            Tar archive bytes.
        """
        files = self.files()
        arc_root = PurePosixPath(prefix.lstrip("/"))
        buffer = io.BytesIO()

        with tarfile.open(fileobj=buffer, mode="w") as tar:
            for rel in files:
                info = tar.gettarinfo(str(self.root / rel), arcname=str(arc_root / rel))
                info.uid = info.gid = 0
                info.uname = info.gname = "root"
                if info.isfile():
                    with (self.root / rel).open("rb") as f:
                        tar.addfile(info, f)
                else:
                    tar.addfile(info)

        logger.info(
            "source_tree_packed",
            root=str(self.root),
            files=len(files),
            size_bytes=buffer.tell(),
        )
        return buffer.getvalue()
