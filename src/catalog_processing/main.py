"""Main entry point for catalog processing system."""

import argparse
import json
import logging
import sys
from concurrent.futures import Future
from pathlib import Path

from .agent.orchestrator import CatalogOrchestrator
from .config.loader import Config, load_config
from .errors import CatalogError
from .models.job import Phase
from .models.processing_result import CatalogProcessingResult

DEFAULT_CONFIG = "config/config.yaml"

PHASE_STARTERS = {
    Phase.MAPPING: "start_mapping",
    Phase.VALIDATION: "start_validation",
    Phase.EXTRACTION: "start_extraction",
    Phase.ENHANCEMENT: "start_enhancement",
}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Catalog Processing System - discover, validate and catalog web assets"
    )
    parser.add_argument(
        "-c",
        "--config",
        default=DEFAULT_CONFIG,
        help="Path to config file (YAML or JSON)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    def job_options(p: argparse.ArgumentParser) -> None:
        p.add_argument("name", help="Job name")
        p.add_argument("seed_url", help="Seed URL to start discovery from")
        p.add_argument("--depth", type=int, default=None, help="Max crawl depth")
        p.add_argument("--max-urls", type=int, default=None, help="Max URLs to discover")
        p.add_argument("--concurrency", type=int, default=None, help="Concurrent validations")
        p.add_argument(
            "--no-validate-during-mapping",
            action="store_true",
            help="Validate only after the crawl finishes",
        )
        p.add_argument("--ai", action="store_true", help="Use the LLM in the enhancement phase")

    job_options(sub.add_parser("create", help="Create a processing job"))
    run = sub.add_parser("run", help="Create a job and run every phase")
    job_options(run)
    run.add_argument(
        "--until",
        choices=[p.value for p in Phase],
        default=Phase.ENHANCEMENT.value,
        help="Last phase to run",
    )

    for name, phase, help_text in (
        ("map", Phase.MAPPING, "Map a job's site (reconnaissance, crawl, validation)"),
        ("validate", Phase.VALIDATION, "Validate mapped URLs with asset classification"),
        ("extract", Phase.EXTRACTION, "Extract page metadata from valid HTML assets"),
        ("enhance", Phase.ENHANCEMENT, "Categorize and summarize valid assets"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("job_id")
        p.set_defaults(phase=phase)

    status = sub.add_parser("status", help="Show job status")
    status.add_argument("job_id")
    sub.add_parser("list", help="List jobs")
    result = sub.add_parser("result", help="Show the stored result of a phase")
    result.add_argument("job_id")
    result.add_argument("--phase", choices=[p.value for p in Phase], default=Phase.MAPPING.value)
    result.add_argument("--urls", action="store_true", help="Include per-URL outcomes")
    return parser


def _load(config_arg: str) -> Config:
    config_path = Path(config_arg)
    if config_path.exists():
        return load_config(config_path)
    if config_arg != DEFAULT_CONFIG:
        raise FileNotFoundError(f"Config not found: {config_path}")
    return Config()


def _job_configuration(args: argparse.Namespace) -> dict:
    overrides: dict = {}
    if args.concurrency is not None:
        overrides["concurrent_validations"] = args.concurrency
    if args.no_validate_during_mapping:
        overrides["validate_during_mapping"] = False
    if args.ai:
        overrides["enhance_with_ai"] = True
    return overrides


def _wait(orchestrator: CatalogOrchestrator, job_id: str, future: Future) -> CatalogProcessingResult:
    """Block on a phase; Ctrl-C turns into a cooperative stop."""
    try:
        return future.result()
    except KeyboardInterrupt:
        print("Stop requested, finishing current step...", file=sys.stderr)
        orchestrator.stop_job(job_id)
        return future.result()


def _run_phase(orchestrator: CatalogOrchestrator, job_id: str, phase: Phase) -> bool:
    start = getattr(orchestrator, PHASE_STARTERS[phase])
    future = start(job_id, status_callback=lambda message: print(f"[{phase.value}] {message}"))
    try:
        result = _wait(orchestrator, job_id, future)
    except Exception as e:
        print(f"{phase.value} failed: {e}", file=sys.stderr)
        return False
    print(
        f"{phase.value}: {result.total_processed_count} URLs, "
        f"{result.success_count} ok, {result.warning_count} warnings, {result.error_count} errors"
        + (" (cancelled)" if result.cancelled else "")
    )
    return result.successful


def _print_json(data) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2, default=str))


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        config = _load(args.config)
    except FileNotFoundError as e:
        print(str(e), file=sys.stderr)
        return 1

    with CatalogOrchestrator(config) as orchestrator:
        try:
            if args.command in ("create", "run"):
                job = orchestrator.create_job(
                    args.name,
                    args.seed_url,
                    max_depth=args.depth,
                    max_urls=args.max_urls,
                    configuration=_job_configuration(args),
                )
                print(f"Created job {job.id}")
                if args.command == "create":
                    return 0
                for phase in Phase:
                    if not _run_phase(orchestrator, job.id, phase):
                        return 1
                    if phase.value == args.until:
                        break
                return 0

            if args.command in ("map", "validate", "extract", "enhance"):
                return 0 if _run_phase(orchestrator, args.job_id, args.phase) else 1

            if args.command == "status":
                _print_json(orchestrator.get_job_status(args.job_id))
                return 0

            if args.command == "list":
                for job in orchestrator.list_jobs():
                    phases = " ".join(f"{p.value}={job.phase_status(p).value}" for p in Phase)
                    print(f"{job.id}  {job.name}  {job.seed_url}  {phases}")
                return 0

            if args.command == "result":
                result = orchestrator.get_phase_result(args.job_id, Phase(args.phase))
                if result is None:
                    print(f"No {args.phase} result for job {args.job_id}", file=sys.stderr)
                    return 1
                exclude = None if args.urls else {"processed_urls"}
                data = result.model_dump(mode="json", exclude=exclude)
                data.update(
                    success_count=result.success_count,
                    warning_count=result.warning_count,
                    error_count=result.error_count,
                    total_processed_count=result.total_processed_count,
                )
                _print_json(data)
                return 0
        except CatalogError as e:
            print(str(e), file=sys.stderr)
            return 1
    return 1


if __name__ == "__main__":
    sys.exit(main())
