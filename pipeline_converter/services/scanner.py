"""
Directory scanner that turns pipeline files into work items.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional

from pipeline_converter.models.dto import SourceKind, WorkItem
from pipeline_converter.sources import PipelineSource, default_sources

logger = logging.getLogger(__name__)

_SKIPPED_DIRECTORIES = {".git", "node_modules", ".venv", "__pycache__"}
_CONTENT_CANDIDATE_SUFFIXES = (".yml", ".yaml", ".groovy")


class PipelineScanner:
    """Finds pipeline files under a directory.

    Files are matched by name against each source's patterns; with
    ``match_content`` enabled, other YAML and Groovy files are also offered
    to the sources for content-based detection.
    """

    def __init__(
        self,
        sources: Optional[Iterable[PipelineSource]] = None,
        match_content: bool = False,
    ) -> None:
        self.sources = list(sources) if sources is not None else default_sources()
        self.match_content = match_content

    def supported_patterns(self) -> list[str]:
        patterns: list[str] = []
        for source in self.sources:
            patterns.extend(p for p in source.file_patterns if p not in patterns)
        return patterns

    def _active_sources(self, source_filter: Optional[SourceKind]) -> list[PipelineSource]:
        if source_filter is None:
            return self.sources
        return [s for s in self.sources if s.kind == source_filter]

    def _is_candidate(self, path: Path, sources: list[PipelineSource]) -> bool:
        name = path.name.lower()
        for source in sources:
            if name in (p.lower() for p in source.file_patterns):
                return True
            if source.kind == SourceKind.JENKINS and name.startswith("jenkinsfile"):
                return True
        return self.match_content and name.endswith(_CONTENT_CANDIDATE_SUFFIXES)

    def _walk(self, directory: Path, recursive: bool) -> Iterator[Path]:
        entries = directory.rglob("*") if recursive else directory.glob("*")
        for path in sorted(entries):
            if any(part in _SKIPPED_DIRECTORIES for part in path.relative_to(directory).parts):
                continue
            if path.is_file():
                yield path

    def scan(
        self,
        directory: str | Path,
        source_filter: Optional[SourceKind] = None,
        recursive: bool = True,
        on_error: Optional[Callable[[Path, Exception], None]] = None,
    ) -> list[WorkItem]:
        """Work items for every recognized pipeline file, in path order.

        Raises:
            FileNotFoundError: ``directory`` does not exist.
        """
        root = Path(directory)
        if not root.is_dir():
            raise FileNotFoundError(f"Directory not found: {root}")

        sources = self._active_sources(source_filter)
        items: list[WorkItem] = []
        for path in self._walk(root, recursive):
            if not self._is_candidate(path, sources):
                continue
            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                logger.warning(f"Skipping unreadable file {path}: {exc}")
                if on_error is not None:
                    on_error(path, exc)
                continue

            for source in sources:
                if source.can_handle(path, content):
                    items.append(source.extract_info(path, content))
                    break
        logger.info(f"Discovered {len(items)} pipeline(s) in {root}")
        return items
