"""
Feature Directory Allocator

Creates one numbered directory per feature under
``<features_dir>/<project_id>/`` and seeds it with the phase templates:

    .features/
      <project_id>/
        .sequence              # last number handed out, never decreases
        1-feat-login/
          user-stories.md
          architecture.md
          implementation.md
          testing-strategy.md
          context.md
          tasks.md             # written by the orchestrator, see checklist.py

Allocation for a project is serialized with a file lock, and the persisted
counter keeps numbers from being reused after a directory is removed.
"""

import logging
import re
import shutil
from pathlib import Path
from typing import Any, Optional

from filelock import FileLock, Timeout

from .errors import FileSystemError, ValidationError

logger = logging.getLogger(__name__)


FEATURE_NAME_PLACEHOLDER = "[Feature Name]"

TEMPLATE_FILES = [
    "user-stories.md",
    "architecture.md",
    "implementation.md",
    "testing-strategy.md",
    "context.md",
]

PACKAGE_TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"

SEQUENCE_FILE = ".sequence"
ALLOCATE_LOCK_FILE = ".allocate.lock"
LOCK_TIMEOUT_SECONDS = 10

_NUMBERED_DIR_RE = re.compile(r"^(\d+)-")
_FEATURE_DIR_RE = re.compile(r"^(\d+)-([^-]+)-(.+)$")
_WORKFLOW_TYPE_RE = re.compile(r"^[a-z0-9]+$")


def slugify(feature_name: str) -> str:
    """Lower-case ``feature_name`` and replace whitespace runs with hyphens.

    Path separators count as whitespace, so ``Auth / SSO`` becomes ``auth-sso``.
    """
    name = re.sub(r"[/\\]", " ", feature_name).strip().lower()
    return re.sub(r"\s+", "-", name)


def check_workflow_type(workflow_type: str) -> str:
    # the type is the second dash-separated field of the directory name
    if not workflow_type or not _WORKFLOW_TYPE_RE.match(workflow_type):
        raise ValidationError(
            f"Invalid workflow_type: {workflow_type!r}. Use lower-case letters and digits only"
        )
    return workflow_type


def _check_path_component(value: str, field: str) -> str:
    if not value or value in (".", "..") or "/" in value or "\\" in value:
        raise ValidationError(f"Invalid {field}: {value!r}")
    return value


class DirectoryAllocator:

    def __init__(self, features_dir: Path, templates_dir: Optional[Path] = None):
        self.features_dir = Path(features_dir)
        self._templates_dir = Path(templates_dir) if templates_dir else None

    @property
    def templates_dir(self) -> Path:
        if self._templates_dir:
            return self._templates_dir
        project_templates = self.features_dir / "templates"
        if project_templates.is_dir():
            return project_templates
        return PACKAGE_TEMPLATES_DIR

    def project_dir(self, project_id: str) -> Path:
        return self.features_dir / _check_path_component(project_id, "project_id")

    def _scan_max_number(self, project_dir: Path) -> int:
        if not project_dir.exists():
            return 0
        numbers = []
        for d in project_dir.iterdir():
            if d.is_dir():
                match = _NUMBERED_DIR_RE.match(d.name)
                if match:
                    numbers.append(int(match.group(1)))
        return max(numbers, default=0)

    def _read_counter(self, project_dir: Path) -> int:
        counter_file = project_dir / SEQUENCE_FILE
        if not counter_file.exists():
            return 0
        try:
            return int(counter_file.read_text().strip() or 0)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable sequence counter {counter_file}: {e}")
            return 0

    def next_sequence_number(self, project_id: str) -> int:
        project_dir = self.project_dir(project_id)
        return max(self._scan_max_number(project_dir), self._read_counter(project_dir)) + 1

    def allocate(
        self,
        project_id: str,
        feature_name: str,
        workflow_type: str = "feat"
    ) -> Path:
        """Create and seed the next numbered feature directory for ``project_id``."""
        slug = slugify(feature_name)
        if not slug:
            raise ValidationError("feature_name must not be empty")
        _check_path_component(slug, "feature_name")
        check_workflow_type(workflow_type)

        project_dir = self.project_dir(project_id)
        try:
            project_dir.mkdir(parents=True, exist_ok=True)
            with FileLock(str(project_dir / ALLOCATE_LOCK_FILE), timeout=LOCK_TIMEOUT_SECONDS):
                number = self.next_sequence_number(project_id)
                feature_dir = project_dir / f"{number}-{workflow_type}-{slug}"
                feature_dir.mkdir()
                (project_dir / SEQUENCE_FILE).write_text(f"{number}\n")
        except Timeout as e:
            raise FileSystemError(f"Timed out waiting for allocation lock on {project_dir}") from e
        except OSError as e:
            raise FileSystemError(f"Could not create feature directory under {project_dir}: {e}") from e

        seeded = self.seed_templates(feature_dir, feature_name)
        logger.info(f"Allocated {feature_dir} ({len(seeded)} templates seeded)")
        return feature_dir

    def seed_templates(self, feature_dir: Path, feature_name: str) -> list[str]:
        """Copy templates into ``feature_dir``; unreadable templates are skipped."""
        templates_dir = self.templates_dir
        created = []
        for name in TEMPLATE_FILES:
            try:
                content = (templates_dir / name).read_text(encoding="utf-8")
                content = content.replace(FEATURE_NAME_PLACEHOLDER, feature_name)
                (feature_dir / name).write_text(content, encoding="utf-8")
                created.append(name)
            except OSError as e:
                logger.warning(f"Could not copy template {name} from {templates_dir}: {e}")
        return created

    def list_feature_directories(self, project_id: str) -> list[dict[str, Any]]:
        project_dir = self.project_dir(project_id)
        if not project_dir.exists():
            return []

        features = []
        for d in project_dir.iterdir():
            if not d.is_dir():
                continue
            match = _FEATURE_DIR_RE.match(d.name)
            if not match:
                continue
            features.append({
                "directory": d.name,
                "number": int(match.group(1)),
                "type": match.group(2),
                "name": match.group(3),
                "path": str(d),
            })

        features.sort(key=lambda f: f["number"])
        return features

    def remove(self, feature_dir: Path) -> bool:
        """Delete a feature directory. Only directories inside ``features_dir`` are removed."""
        feature_dir = Path(feature_dir).resolve()
        root = self.features_dir.resolve()
        if root not in feature_dir.parents:
            raise ValidationError(f"Refusing to remove {feature_dir}: outside {root}")
        if not feature_dir.exists():
            return False
        try:
            shutil.rmtree(feature_dir)
        except OSError as e:
            raise FileSystemError(f"Could not remove {feature_dir}: {e}") from e
        logger.info(f"Removed feature directory {feature_dir}")
        return True
