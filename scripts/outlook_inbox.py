"""Command-line access to the Outlook inbox used by the job dashboard."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
import sys

from dotenv import load_dotenv

# Ensure project root is on sys.path when running as a script
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from src.attachment_export import JOB_ATTACHMENT_CATEGORIES, save_attachments, select_attachments
from src.config import Settings
from src.errors import MailCoreError
from src.job_uploader import JobAttachmentUploader
from src.models import Message
from src.pager import collapse_conversations
from src.session import MailSession

load_dotenv()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Browse Outlook threads and move attachments to jobs.")
    commands = parser.add_subparsers(dest="command", required=True)

    list_cmd = commands.add_parser("list", help="List one inbox page")
    list_cmd.add_argument("--page", type=int, default=0, help="Zero-based page index")
    list_cmd.add_argument("--search", default="", help="Free-text search term")

    thread_cmd = commands.add_parser("thread", help="Show the conversation of a message")
    thread_cmd.add_argument("message_id")

    download_cmd = commands.add_parser("download", help="Save all attachments of a thread")
    download_cmd.add_argument("message_id")
    download_cmd.add_argument("--dest", type=Path, required=True, help="Target directory")
    download_cmd.add_argument(
        "--include-signature", action="store_true", help="Also save images from signature blocks"
    )
    download_cmd.add_argument(
        "--message-only", action="store_true", help="Only this message's attachments, not the thread's"
    )
    download_cmd.add_argument(
        "--name", action="append", default=[], help="Only attachments with this file name (repeatable)"
    )

    upload_cmd = commands.add_parser("upload", help="Upload thread or message attachments to a job")
    upload_cmd.add_argument("message_id")
    upload_cmd.add_argument("--job", type=int, required=True, help="Job id")
    upload_cmd.add_argument("--category", choices=JOB_ATTACHMENT_CATEGORIES, default="Installation")
    upload_cmd.add_argument(
        "--message-only", action="store_true", help="Only this message's attachments, not the thread's"
    )
    upload_cmd.add_argument(
        "--name", action="append", default=[], help="Only attachments with this file name (repeatable)"
    )
    upload_cmd.add_argument("--dry-run", action="store_true", help="List files without uploading")
    return parser


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def describe(message: Message) -> str:
    received = message.received_at.strftime("%b %d %H:%M")
    marker = " [+]" if message.has_attachments else ""
    return f"{received}  {message.sender.display:<30.30}  {message.subject or '(No Subject)'}{marker}  {message.id}"


async def run_list(session: MailSession, args: argparse.Namespace) -> None:
    page = await session.list_page(0, args.search)
    # Search pages chain through continuation cursors, so walk them in order.
    for index in range(1, args.page + 1):
        if not page.has_more:
            logging.info("No more results after page %s", index - 1)
            return
        page = await session.list_page(index, args.search)

    for message in collapse_conversations(page.items):
        print(describe(message))
    print(f"-- page {page.page_index + 1}{' (more available)' if page.has_more else ''}")


async def open_selected(session: MailSession, message_id: str) -> list[Message]:
    message = await session.load_message(message_id)
    return await session.open_thread(message)


async def run_thread(session: MailSession, args: argparse.Namespace) -> None:
    thread = await open_selected(session, args.message_id)
    rendered = await session.render_thread(thread)
    for item in rendered:
        print(describe(item.message))
        if item.attachments_failed:
            print("    attachments unavailable")
        for attachment in item.attachments:
            inline = " inline" if attachment.is_inline else ""
            print(f"    {attachment.name} ({attachment.size / 1024:.0f} KB{inline})")
    merged = session.merge_thread_attachments([item.message for item in rendered])
    print(f"-- {len(thread)} messages, {len(merged)} unique attachments")


async def thread_attachments(session: MailSession, args: argparse.Namespace):
    if args.message_only:
        return select_attachments(await session.fetch_attachments(args.message_id), args.name)
    thread = await open_selected(session, args.message_id)
    rendered = await session.render_thread(thread)
    exclude: set[str] = set()
    if not getattr(args, "include_signature", False):
        for item in rendered:
            exclude.update(item.final.signature_content_ids)
    messages = [item.message for item in rendered]
    merged = session.merge_thread_attachments(messages, exclude_content_ids=exclude)
    return select_attachments(merged, args.name)


async def run_download(session: MailSession, args: argparse.Namespace) -> None:
    attachments = await thread_attachments(session, args)
    written = save_attachments(attachments, args.dest)
    logging.info("Saved %s files to %s", len(written), args.dest)


async def run_upload(session: MailSession, settings: Settings, args: argparse.Namespace) -> None:
    attachments = await thread_attachments(session, args)
    if args.dry_run:
        for attachment in attachments:
            logging.info("[DRY-RUN] Would upload '%s' to job %s", attachment.name, args.job)
        return

    uploader = JobAttachmentUploader(settings)
    for attachment in attachments:
        uploader.upload(args.job, args.category, attachment)
    logging.info("Uploaded %s files to job %s", len(attachments), args.job)


async def dispatch(settings: Settings, args: argparse.Namespace) -> None:
    session = MailSession.from_settings(settings)
    if args.command == "list":
        await run_list(session, args)
    elif args.command == "thread":
        await run_thread(session, args)
    elif args.command == "download":
        await run_download(session, args)
    elif args.command == "upload":
        await run_upload(session, settings, args)


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    settings = Settings()
    configure_logging(settings.log_level)

    try:
        asyncio.run(dispatch(settings, args))
    except MailCoreError as exc:
        raise SystemExit(f"{type(exc).__name__}: {exc}") from exc


if __name__ == "__main__":
    main()
