"""Worker agent.

Implements a work order end to end:
1. Derive the branch name
2. Generate code under the retry executor
3. Verify under the retry executor
4. Persist the result

A task that crashed after code generation resumes at verification.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Protocol

from ..errors import (
    CodeGenerationError,
    EscalationRequiredError,
    ImplementationBlockedError,
    MaxRetriesExceededError,
)
from ..recovery.checkpoints import WorkerStep
from ..retry.executor import ExecutionOutcome, RetryExecutor, TaskContext
from ..verification.models import VerificationReport
from ..verification.pipeline import VerificationPipeline
from .models import (
    CodeGenerationRequest,
    CodeGenerationResponse,
    FileChange,
    ImplementationResult,
    ImplementationStatus,
    StyleConventions,
    WorkOrder,
)

logger = logging.getLogger(__name__)


class CodeGenerator(Protocol):
    """Produces file changes for a work order."""

    async def generate(self, request: CodeGenerationRequest) -> CodeGenerationResponse: ...


def derive_branch_name(issue_id: str) -> str:
    """Derive a git branch name from an issue id.

    Example: "BUG-142" becomes "fix/bug-142".
    """
    lowered = issue_id.lower()
    if "fix" in lowered or "bug" in lowered:
        prefix = "fix"
    elif "doc" in lowered:
        prefix = "docs"
    elif "test" in lowered:
        prefix = "test"
    elif "refactor" in lowered:
        prefix = "refactor"
    else:
        prefix = "feature"

    slug = re.sub(r"[^a-z0-9]+", "-", lowered).strip("-")
    return f"{prefix}/{slug}"


def detect_conventions(project_root: Path, related_files: list[str]) -> StyleConventions:
    """Detect code style from the first readable related source file."""
    for name in related_files:
        path = project_root / name
        if path.suffix not in (".ts", ".tsx", ".js", ".jsx", ".py") or not path.is_file():
            continue
        try:
            content = path.read_text()
        except (OSError, UnicodeDecodeError):
            continue

        indentation = "spaces"
        indent_size = 4 if path.suffix == ".py" else 2
        for line in content.splitlines():
            if line.startswith("\t"):
                indentation = "tabs"
                break
            match = re.match(r"^( +)\S", line)
            if match:
                indent_size = len(match.group(1))
                break

        single = content.count("'")
        double = content.count('"')
        with_semi = len(re.findall(r";\s*$", content, re.MULTILINE))
        without_semi = len(re.findall(r"[^;{}\s]\s*$", content, re.MULTILINE))

        return StyleConventions(
            indentation=indentation,
            indent_size=indent_size,
            quote_style="single" if single >= double else "double",
            use_semicolons=with_semi >= without_semi,
        )

    return StyleConventions()


class WorkerAgent:
    """Implements work orders using a code generator and the verification pipeline."""

    def __init__(
        self,
        generator: CodeGenerator,
        executor: RetryExecutor,
        pipeline: VerificationPipeline | None = None,
        results_dir: Path | None = None,
        project_root: Path | None = None,
    ):
        """Initialize worker.

        Args:
            generator: Code generator collaborator.
            executor: Retry executor; its checkpoint store drives resumption.
            pipeline: Verification pipeline, verification is skipped if None.
            results_dir: Directory for ``<order_id>-result.json``, not persisted if None.
            project_root: Root used for style detection. Defaults to current directory.
        """
        self.generator = generator
        self.executor = executor
        self.pipeline = pipeline
        self.results_dir = results_dir
        self.project_root = project_root or Path.cwd()

    def _resume_step(self, order_id: str) -> WorkerStep | None:
        checkpoint = self.executor.checkpoints.load(order_id)
        if checkpoint is None:
            return None
        if checkpoint.current_step.split(":", 1)[0] == WorkerStep.VERIFICATION.value:
            logger.info(f"Resuming {order_id} at verification (attempt {checkpoint.attempt_number})")
            return WorkerStep.VERIFICATION
        return None

    async def _generate(self, work_order: WorkOrder, conventions: StyleConventions) -> list[FileChange]:
        request = CodeGenerationRequest(
            work_order_id=work_order.order_id,
            issue_id=work_order.issue_id,
            title=work_order.title,
            description=work_order.description,
            acceptance_criteria=work_order.acceptance_criteria,
            related_files=work_order.related_files,
            conventions=conventions,
        )
        response = await self.generator.generate(request)
        if response.blockers:
            raise ImplementationBlockedError(work_order.issue_id, response.blockers)
        if not response.success:
            raise CodeGenerationError(work_order.issue_id, response.error)
        return response.changes

    def _result(
        self,
        work_order: WorkOrder,
        status: ImplementationStatus,
        branch_name: str,
        started_at: str,
        outcome: ExecutionOutcome | None = None,
        changes: list[FileChange] | None = None,
        report: VerificationReport | None = None,
        notes: str | None = None,
    ) -> ImplementationResult:
        blockers: list[str] = []
        if outcome is not None and outcome.error is not None:
            blockers = list(outcome.error.context.get("blockers", []))
            notes = notes or outcome.error.message

        result = ImplementationResult(
            work_order_id=work_order.order_id,
            issue_id=work_order.issue_id,
            status=status,
            branch_name=branch_name,
            started_at=started_at,
            changes=changes or [],
            verification=report.to_dict() if report else None,
            attempts=outcome.attempts if outcome else 0,
            blockers=blockers,
            notes=notes,
        )

        if self.results_dir is not None:
            self.results_dir.mkdir(parents=True, exist_ok=True)
            path = self.results_dir / f"{work_order.order_id}-result.json"
            path.write_text(result.model_dump_json(indent=2))
        return result

    async def implement(self, work_order: WorkOrder) -> ImplementationResult:
        """Implement a work order.

        Args:
            work_order: The work to implement.

        Returns:
            ImplementationResult with status completed, failed or blocked.
        """
        started_at = datetime.now().isoformat()
        branch_name = derive_branch_name(work_order.issue_id)
        work_item = work_order.model_dump()
        changes: list[FileChange] = []

        logger.info(f"Implementing {work_order.order_id} ({work_order.issue_id}) on {branch_name}")

        try:
            if self._resume_step(work_order.order_id) != WorkerStep.VERIFICATION:
                conventions = detect_conventions(self.project_root, work_order.related_files)
                generation = await self.executor.execute_with_retry(
                    lambda: self._generate(work_order, conventions),
                    TaskContext(work_order.order_id, WorkerStep.CODE_GENERATION.value, work_item),
                )
                if not generation.success:
                    blocked = generation.error is not None and generation.error.code == ImplementationBlockedError.code
                    status = ImplementationStatus.BLOCKED if blocked else ImplementationStatus.FAILED
                    return self._result(work_order, status, branch_name, started_at, generation)
                changes = list(generation.result or [])

            report: VerificationReport | None = None
            if self.pipeline is not None:
                pipeline = self.pipeline
                verification = await self.executor.execute_with_retry(
                    lambda: pipeline.run(work_order.order_id, work_item),
                    TaskContext(work_order.order_id, WorkerStep.VERIFICATION.value, work_item),
                )
                if not verification.success:
                    failed_report = None
                    if isinstance(verification.exception, EscalationRequiredError):
                        failed_report = verification.exception.report
                    return self._result(
                        work_order,
                        ImplementationStatus.FAILED,
                        branch_name,
                        started_at,
                        verification,
                        changes,
                        failed_report,
                    )
                report = verification.result
        except MaxRetriesExceededError as e:
            logger.error(f"Giving up on {work_order.order_id}: {e}")
            return self._result(
                work_order,
                ImplementationStatus.FAILED,
                branch_name,
                started_at,
                changes=changes,
                notes=str(e),
            )

        return self._result(
            work_order,
            ImplementationStatus.COMPLETED,
            branch_name,
            started_at,
            changes=changes,
            report=report,
        )
