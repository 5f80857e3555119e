"""
Generation orchestrator: executes a GenerationPlan as one unit.

Every write is recorded in an undo log together with the content it
replaced. If any artifact fails (rendering, merging, ownership or I/O) the
log is replayed in reverse so the filesystem ends up exactly as it was before
the run.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from ..constants import GENERATOR_STAMP_PREFIX
from ..domain.models import ArtifactDescriptor, GeneratedFile, GenerationPlan
from ..exceptions import GenerationIOError, PathConflict, ScaffoldForgeError
from .filesystem import FileSystem
from .renderer import TemplateRenderer, merge_at_marker, remove_at_marker

logger = logging.getLogger(__name__)

_STAMP_PATTERN = re.compile(re.escape(GENERATOR_STAMP_PREFIX) + r":(?P<kind>[a-z_]+):(?P<resource>[A-Za-z0-9_]+)")


def read_stamp(content: str) -> Optional[str]:
    """Return the artifact kind recorded in a file's ownership stamp, if any."""
    match = _STAMP_PATTERN.search(content)
    return match.group("kind") if match else None


@dataclass
class UndoEntry:
    path: str
    prior_content: Optional[str]
    created_dirs: List[str] = field(default_factory=list)


class GenerationOrchestrator:
    """Renders plans through a TemplateRenderer and writes them through a FileSystem."""

    def __init__(self, renderer: TemplateRenderer, filesystem: FileSystem):
        self.renderer = renderer
        self.filesystem = filesystem

    def _render(self, artifact: ArtifactDescriptor, current: Optional[str]) -> str:
        if not artifact.is_merge:
            return self.renderer.render_template(artifact.template_id, artifact.variables)

        host = current
        if host is None:
            logger.debug(f"Creating host file {artifact.target_path} from {artifact.host_template_id}")
            host = self.renderer.render_template(artifact.host_template_id, artifact.variables)
        fragment = self.renderer.render_template(artifact.template_id, artifact.variables)
        return merge_at_marker(host, artifact.marker_id, fragment)

    @staticmethod
    def _check_ownership(artifact: ArtifactDescriptor, current: str, content: str) -> None:
        if current == content:
            return
        owner_kind = read_stamp(current)
        if owner_kind != artifact.kind:
            raise PathConflict(
                f"'{artifact.target_path}' already exists and is not a generated {artifact.kind}",
                path=artifact.target_path,
                context={"existing_owner": owner_kind or "none"},
            )

    def execute(self, plan: GenerationPlan, dry_run: bool = False) -> List[GeneratedFile]:
        """
        Render and write every artifact of ``plan`` in order.

        In ``dry_run`` mode nothing is written; the returned files describe
        what a real run would produce.

        Raises:
            RenderError: If a template or marker merge fails.
            PathConflict: If a target path holds a file the generator does not own.
            GenerationIOError: If reading or writing fails.
        """
        undo_log: List[UndoEntry] = []
        staged = {}
        generated: List[GeneratedFile] = []

        try:
            for artifact in plan:
                path = artifact.target_path
                if path in staged:
                    current = staged[path]
                elif self.filesystem.exists(path):
                    current = self.filesystem.read(path)
                else:
                    current = None

                content = self._render(artifact, current)
                if current is not None and not artifact.is_merge:
                    self._check_ownership(artifact, current, content)

                changed = content != current
                if changed and not dry_run:
                    created_dirs = self.filesystem.write(path, content)
                    undo_log.append(UndoEntry(path, current, created_dirs))

                staged[path] = content
                generated.append(GeneratedFile(path, content, is_new_file=current is None, changed=changed))
                logger.debug(f"{'create' if current is None else ('update' if changed else 'identical')} {path}")
        except BaseException as e:
            error = self._as_generation_error(e)
            self._rollback(undo_log, error)
            if error is e:
                raise
            raise error from e

        return generated

    def destroy(self, plan: GenerationPlan) -> List[GeneratedFile]:
        """
        Remove what ``plan`` generated: stamped files are deleted, merged
        fragments are taken back out of their host files. Hosts are kept.

        Raises:
            PathConflict: If a target file is not owned by the generator.
            GenerationIOError: If a file cannot be deleted or rewritten.
        """
        undo_log: List[UndoEntry] = []
        removed: List[GeneratedFile] = []

        try:
            for artifact in plan:
                path = artifact.target_path
                if not self.filesystem.exists(path):
                    logger.debug(f"skip {path} (not present)")
                    continue
                current = self.filesystem.read(path)

                if artifact.is_merge:
                    fragment = self.renderer.render_template(artifact.template_id, artifact.variables)
                    content = remove_at_marker(current, artifact.marker_id, fragment)
                    if content != current:
                        self.filesystem.write(path, content)
                        undo_log.append(UndoEntry(path, current))
                        removed.append(GeneratedFile(path, content, is_new_file=False))
                    continue

                if read_stamp(current) != artifact.kind:
                    raise PathConflict(
                        f"Refusing to delete '{path}': it is not a generated {artifact.kind}",
                        path=path,
                    )
                self.filesystem.delete(path)
                undo_log.append(UndoEntry(path, current))
                removed.append(GeneratedFile(path, "", is_new_file=False))
        except BaseException as e:
            error = self._as_generation_error(e)
            self._rollback(undo_log, error)
            if error is e:
                raise
            raise error from e

        return removed

    @staticmethod
    def _as_generation_error(error: BaseException) -> BaseException:
        if isinstance(error, OSError) and not isinstance(error, ScaffoldForgeError):
            return GenerationIOError(
                f"File operation failed: {error}",
                path=getattr(error, "filename", None),
            )
        return error

    def _rollback(self, undo_log: List[UndoEntry], error: BaseException) -> None:
        """Replay the undo log newest first; never raises."""
        if not undo_log:
            return

        logger.warning(f"Generation failed, rolling back {len(undo_log)} write(s)")
        problems: List[str] = []
        for entry in reversed(undo_log):
            try:
                if entry.prior_content is None:
                    self.filesystem.delete(entry.path)
                else:
                    self.filesystem.write(entry.path, entry.prior_content)
            except OSError as e:
                logger.error(f"Could not restore {entry.path}: {e}")
                problems.append(f"{entry.path}: {e}")
                continue

            for directory in reversed(entry.created_dirs):
                if not self.filesystem.remove_dir(directory):
                    logger.debug(f"Left directory {directory} in place (not empty)")

        if isinstance(error, ScaffoldForgeError):
            error.context["rolled_back"] = [entry.path for entry in reversed(undo_log)]
            if problems:
                error.context["rollback_errors"] = problems
