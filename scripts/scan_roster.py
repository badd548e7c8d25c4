from __future__ import annotations

import argparse
import getpass
import logging
import mimetypes
from pathlib import Path

from dotenv import load_dotenv

_REPO_ROOT = Path(__file__).resolve().parents[1]
load_dotenv(_REPO_ROOT / ".env", override=False)

from roster_scanner.container import build_pipeline, build_services
from roster_scanner.domain.errors import describe_error
from roster_scanner.domain.models import JobMapping, QuestionAnswer, SmartQuestion
from roster_scanner.services.pipeline_controller import PipelineController, ScanStep
from roster_scanner.settings import LOG_LEVEL


def _sign_in(auth, email: str | None) -> None:
    if auth.restore_session() is not None:
        return
    if not email:
        raise SystemExit("No saved session. Pass --email to sign in.")
    password = getpass.getpass(f"Password for {email}: ")
    try:
        auth.sign_in_with_password(email, password)
    except RuntimeError as exc:
        raise SystemExit(f"Sign-in failed: {exc}") from exc


def _ask(question: SmartQuestion) -> QuestionAnswer:
    print(question.question)
    if question.type == "single_select" and question.options:
        for index, option in enumerate(question.options, start=1):
            suffix = f" ({option.description})" if option.description else ""
            print(f"  {index}. {option.label}{suffix}")
        while True:
            choice = input("> ").strip()
            if choice.isdigit() and 1 <= int(choice) <= len(question.options):
                return QuestionAnswer(question.id, question.options[int(choice) - 1].value)
            print("Enter one of the listed numbers.")
    return QuestionAnswer(question.id, input("> ").strip())


def _map_jobs(pipeline: PipelineController, save_aliases: bool) -> list[JobMapping]:
    jobs = pipeline.state.job_configs
    if not jobs:
        raise SystemExit("No job configurations exist to map roster names onto.")
    mappings = []
    for name in pipeline.state.unmapped_job_names:
        print(f"Roster job '{name}' maps to:")
        for index, job in enumerate(jobs, start=1):
            print(f"  {index}. {job.name}")
        while True:
            choice = input("> ").strip()
            if choice.isdigit() and 1 <= int(choice) <= len(jobs):
                break
            print("Enter one of the listed numbers.")
        mappings.append(
            JobMapping(
                roster_job_name=name,
                mapped_job_id=jobs[int(choice) - 1].id,
                save_as_alias=save_aliases,
            )
        )
    return mappings


def _print_shifts(pipeline: PipelineController) -> None:
    names = {job.id: job.name for job in pipeline.state.job_configs}
    for shift in pipeline.state.parsed_shifts:
        times = f"{shift.start_time or '?'}-{shift.end_time or '?'}"
        job = names.get(shift.mapped_job_id or "", shift.roster_job_name)
        print(f"  {shift.date}  {times}  {job}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Scan a roster image into shifts.")
    parser.add_argument("image", help="Path to a roster photo or PDF.")
    parser.add_argument("--email", default=None, help="Account email for sign-in.")
    parser.add_argument(
        "--single-phase", action="store_true", help="Skip clarifying questions."
    )
    parser.add_argument(
        "--no-save-aliases", action="store_true", help="Do not remember job mappings."
    )
    args = parser.parse_args()

    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    path = Path(args.image)
    if not path.is_file():
        raise SystemExit(f"File not found: {path}")
    mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"

    services = build_services()
    _sign_in(services["auth"], args.email)

    pipeline = build_pipeline(services)
    pipeline.open()
    pipeline.select_file(path.read_bytes(), path.name, mime_type)
    if args.single_phase:
        pipeline.process_single_phase()
    else:
        pipeline.process()

    while True:
        state = pipeline.state
        if state.error:
            title = describe_error(state.error_type).title if state.error_type else "Error"
            pipeline.dispose()
            raise SystemExit(f"{title}: {state.error}")
        if state.step == ScanStep.QUESTIONS:
            pipeline.submit_answers([_ask(question) for question in state.questions])
        elif state.step == ScanStep.MAPPING:
            pipeline.complete_mapping(_map_jobs(pipeline, not args.no_save_aliases))
        elif state.step == ScanStep.CONFIRMATION:
            for warning in state.warnings:
                print(f"Warning: {warning}")
            _print_shifts(pipeline)
            pipeline.confirm()
        elif state.step == ScanStep.SUCCESS:
            print(f"Added {state.added_count} shift(s).")
            pipeline.dispose()
            return
        else:
            pipeline.dispose()
            raise SystemExit(f"Pipeline stopped at step '{state.step.value}'.")


if __name__ == "__main__":
    main()
