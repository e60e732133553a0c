"""Depth-leveled workflow scheduling."""

import asyncio
import logging
from pathlib import Path
from typing import List, Mapping, Optional, Sequence

from .conditions import evaluate_condition
from .dag import ResultStore, StepResult, Workflow, build_index, group_by_depth
from .executor import BackendFactory, PreparedStep, StepExecutor
from .templates import TemplateResolver, validate_templates

logger = logging.getLogger(__name__)


class WorkflowRunner:
    """Runs a workflow one depth level at a time.

    All steps of a level are dispatched together and the level completes
    only when every one of them has a result, so a step never starts before
    the steps it depends on have finished. A failed step does not stop the
    run; its failure text is what dependents see as its output. With
    ``parallel=False`` the steps of a level run one after another instead.
    """

    def __init__(
        self,
        backend_factory: BackendFactory,
        working_dir: Path,
        args: Sequence[str] = (),
        env: Optional[Mapping[str, str]] = None,
        executor: Optional[StepExecutor] = None,
        parallel: bool = True,
    ):
        self.working_dir = Path(working_dir)
        self.parallel = parallel
        self.resolver = TemplateResolver(args=args, env=env)
        self.executor = executor or StepExecutor(backend_factory, self.working_dir)

    async def run(self, workflow: Workflow) -> List[StepResult]:
        """
        Execute every runnable step and return results level by level, in declaration order within a level.

        Raises:
            WorkflowError: On an invalid graph or template. Raised before any
                step of the affected level runs.
        """
        levels = group_by_depth(workflow)
        validate_templates(workflow)
        index = build_index(workflow)

        logger.info(f"Running workflow: {workflow.name}")
        if workflow.description:
            logger.info(workflow.description)

        results = ResultStore()
        ordered: List[StepResult] = []

        for depth, names in enumerate(levels):
            prepared = self._prepare_level([index[name] for name in names], results)
            if not prepared:
                continue
            level_results = await self._run_level(prepared, depth)

            for result in level_results:
                results.record(result)
                ordered.append(result)

        return ordered

    async def _run_level(self, prepared: List[PreparedStep], depth: int) -> List[StepResult]:
        if not self.parallel:
            return [await self.executor.execute(p) for p in prepared]
        if len(prepared) > 1:
            logger.info(f"[parallel] Running {len(prepared)} steps in parallel (depth {depth})")
        return list(await asyncio.gather(*(self.executor.execute(p) for p in prepared)))

    def _prepare_level(self, steps, results: ResultStore) -> List[PreparedStep]:
        prepared = []
        for step in steps:
            if step.when and not evaluate_condition(step.when, results):
                logger.info(f"[skip] {step.name} (condition not met)")
                continue
            prepared.append(PreparedStep(
                step=step,
                prompt="" if step.is_shell else self.resolver.resolve(step.prompt, results, step.name),
                shell=self.resolver.resolve(step.shell, results, step.name),
                verify=self.resolver.resolve(step.verify, results, step.name),
            ))
        return prepared
