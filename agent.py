"""Instagram reply copilot — command-line entry point.

Wires the pipeline stages for operators and cron jobs:
  sync         pull posts/comments into the knowledge store and inbox
  ingest       ingest a webhook payload (JSON file), then draft and route
  draft        draft every pending message without a suggestion
  approve / reject / regenerate / feedback   act on one message
  personality  synthesize the system prompt from the knowledge store
  simulate     draft a reply to arbitrary text (trainer)
  teach        add a golden correction by hand
  guideline    add a prioritized rule (global without --user)
  settings     show or change operation settings
  stats        queue and knowledge counters
  purge        delete every message of a user (maintenance)

Usage:
  python agent.py sync --user u_123
  python agent.py approve --user u_123 --message-id <uuid> --response "R$50" --edited
  python agent.py settings --user u_123 --mode semi_auto --threshold 90
"""
import argparse
import asyncio
import json
import logging
import os
import sys
import uuid
from pathlib import Path

from pydantic import ValidationError

from db.connection import dispose_engine, get_db
from db.repositories import guidelines as guidelines_repo
from db.repositories import knowledge as knowledge_repo
from db.repositories import messages as messages_repo
from db.repositories import settings as settings_repo
from pipeline import approval, drafting, ingestion, personality, sync
from pipeline.settings import load_effective_settings
from schemas.messages import CorrectionSource, FeedbackStatus, GuidelineCategory
from schemas.results import ActionResult, ErrorCode
from schemas.settings import OperationMode, SettingsValues
from vertex_ai_init import init_vertex_ai

logger = logging.getLogger(__name__)


def _print(model) -> None:
    if hasattr(model, "model_dump_json"):
        print(model.model_dump_json(indent=2, exclude_none=True))
    else:
        print(json.dumps(model, indent=2, default=str))


async def run_sync(user_id: str) -> bool:
    async with get_db() as session:
        ok = False
        async for event in sync.sync_account(session, user_id):
            if event.type == "progress":
                print(f"  [{event.progress:3d}%] {event.step}")
            else:
                _print(event)
                ok = event.type == "complete"
    return ok


async def run_ingest(payload_path: Path) -> bool:
    payload = json.loads(payload_path.read_text())
    async with get_db() as session:
        outcomes = await ingestion.process_webhook(session, payload)
    print(f"  {len(outcomes)} new message(s)")
    for outcome in outcomes:
        _print(outcome)
    return all(o.success for o in outcomes)


async def run_draft(user_id: str) -> bool:
    async with get_db() as session:
        outcomes = await drafting.draft_pending(session, user_id)
    print(f"  Drafted {sum(o.success for o in outcomes)}/{len(outcomes)} pending message(s)")
    for outcome in outcomes:
        _print(outcome)
    return all(o.success for o in outcomes)


async def run_message_action(args) -> bool:
    try:
        message_id = uuid.UUID(args.message_id)
    except ValueError:
        _print(ActionResult.fail(ErrorCode.VALIDATION_ERROR, f"Invalid message id: {args.message_id}"))
        return False
    async with get_db() as session:
        if args.command == "approve":
            result = await approval.approve(
                session, args.user, message_id, args.response, was_edited=args.edited
            )
        elif args.command == "reject":
            result = await approval.reject(session, args.user, message_id)
        elif args.command == "regenerate":
            result = await approval.regenerate(session, args.user, message_id)
        else:
            result = await approval.submit_feedback(
                session, args.user, message_id, FeedbackStatus(args.status), args.text
            )
    _print(result)
    return result.success


async def run_personality(user_id: str) -> bool:
    async with get_db() as session:
        result = await personality.generate_personality(session, user_id)
    _print(result)
    return result.success


async def run_simulate(user_id: str, text: str) -> bool:
    async with get_db() as session:
        result = await drafting.simulate_reply(session, user_id, text)
    _print(result)
    return result.success


async def run_teach(user_id: str, question: str, answer: str) -> bool:
    async with get_db() as session:
        try:
            entry = await knowledge_repo.add_manual_correction(
                session, user_id, question, answer, source=CorrectionSource.SIMULATOR
            )
        except ValueError as exc:
            _print(ActionResult.fail(ErrorCode.NOT_FOUND, str(exc)))
            return False
        print(f"  Stored golden correction {entry.id}")
    return True


async def run_guideline(args) -> bool:
    async with get_db() as session:
        try:
            rule = await guidelines_repo.add_guideline(
                session, args.user, args.rule, args.priority, GuidelineCategory(args.category)
            )
        except ValueError as exc:
            logger.error("Guideline not stored: %s", exc)
            return False
        print(f"  Stored guideline {rule.id} (priority {rule.priority})")
    return True


async def run_settings(args) -> bool:
    try:
        values = SettingsValues(
            operation_mode=OperationMode(args.mode) if args.mode else None,
            confidence_threshold=args.threshold,
            ai_tone=args.tone,
        )
    except ValidationError as exc:
        _print(ActionResult.fail(ErrorCode.VALIDATION_ERROR, str(exc)))
        return False
    async with get_db() as session:
        if values.model_dump(exclude_none=True):
            if args.user:
                await settings_repo.update_user_settings(session, args.user, values)
            else:
                await settings_repo.set_global(session, values)
        if args.user:
            _print(await load_effective_settings(session, args.user))
        else:
            _print(await settings_repo.get_global(session))
    return True


async def run_stats(user_id: str) -> bool:
    async with get_db() as session:
        _print(await messages_repo.get_stats(session, user_id))
        _print(await knowledge_repo.get_stats(session, user_id))
    return True


async def run_purge(user_id: str) -> bool:
    async with get_db() as session:
        removed = await messages_repo.purge_messages(session, user_id)
    print(f"  Removed {removed} message(s)")
    return True


async def _dispatch(args) -> bool:
    try:
        if args.command == "sync":
            return await run_sync(args.user)
        if args.command == "ingest":
            return await run_ingest(Path(args.file))
        if args.command == "draft":
            return await run_draft(args.user)
        if args.command in ("approve", "reject", "regenerate", "feedback"):
            return await run_message_action(args)
        if args.command == "personality":
            return await run_personality(args.user)
        if args.command == "simulate":
            return await run_simulate(args.user, args.text)
        if args.command == "teach":
            return await run_teach(args.user, args.question, args.answer)
        if args.command == "guideline":
            return await run_guideline(args)
        if args.command == "settings":
            return await run_settings(args)
        if args.command == "stats":
            return await run_stats(args.user)
        if args.command == "purge":
            return await run_purge(args.user)
        raise ValueError(f"Unknown command: {args.command}")
    finally:
        await dispose_engine()


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Instagram reply copilot")
    sub = parser.add_subparsers(dest="command")

    for name, help_text in (
        ("sync", "Sync posts and comments for a connected account"),
        ("draft", "Draft replies for pending messages"),
        ("personality", "Generate the system prompt from the knowledge store"),
        ("stats", "Show queue and knowledge counters"),
        ("purge", "Delete all messages of a user"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("--user", required=True)

    ingest = sub.add_parser("ingest", help="Ingest an Instagram webhook payload")
    ingest.add_argument("--file", required=True, help="Path to the JSON payload")

    approve = sub.add_parser("approve", help="Approve and send a reply")
    approve.add_argument("--user", required=True)
    approve.add_argument("--message-id", required=True)
    approve.add_argument("--response", required=True, help="Reply text to send")
    approve.add_argument("--edited", action="store_true", default=False,
                         help="Set when the reply differs from the AI suggestion")

    for name, help_text in (
        ("reject", "Reject a message without replying"),
        ("regenerate", "Ask the AI for a different suggestion"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("--user", required=True)
        cmd.add_argument("--message-id", required=True)

    feedback = sub.add_parser("feedback", help="Rate an AI suggestion")
    feedback.add_argument("--user", required=True)
    feedback.add_argument("--message-id", required=True)
    feedback.add_argument("--status", required=True, choices=[s.value for s in FeedbackStatus])
    feedback.add_argument("--text", default=None)

    simulate = sub.add_parser("simulate", help="Draft a reply to arbitrary text")
    simulate.add_argument("--user", required=True)
    simulate.add_argument("--text", required=True)

    teach = sub.add_parser("teach", help="Add a golden correction")
    teach.add_argument("--user", required=True)
    teach.add_argument("--question", required=True)
    teach.add_argument("--answer", required=True)

    guideline = sub.add_parser("guideline", help="Add a prioritized rule to every prompt")
    guideline.add_argument("--user", default=None, help="Omit for a global rule")
    guideline.add_argument("--rule", required=True)
    guideline.add_argument("--priority", type=int, default=3, help="1 (low) to 5 (high)")
    guideline.add_argument("--category", choices=[c.value for c in GuidelineCategory], default="general")

    settings = sub.add_parser("settings", help="Show or update settings (global without --user)")
    settings.add_argument("--user", default=None)
    settings.add_argument("--mode", choices=[m.value for m in OperationMode], default=None)
    settings.add_argument("--threshold", type=int, default=None, help="50-100")
    settings.add_argument("--tone", default=None)

    return parser


def main() -> None:
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    parser = _build_arg_parser()
    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        sys.exit(1)

    init_vertex_ai()
    ok = asyncio.run(_dispatch(args))
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
