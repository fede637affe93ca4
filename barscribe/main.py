"""Main application entry point for barscribe."""

import sys
import asyncio
import argparse
import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import BarscribeConfig
from .exceptions import BarscribeError
from .models.session import LiveTranscriptionCallbacks, SessionStatus
from .services.live_transcription import CaptureFactory, LiveTranscriptionService
from .storage.backup_store import AudioBackupStore
from .transcription.aggregator import OutcomeAggregator

logger = logging.getLogger(__name__)

console = Console()


class Recorder:
    """Records one answer with live transcript output on the console."""

    def __init__(self, config: BarscribeConfig, capture_factory: Optional[CaptureFactory] = None):
        self.config = config
        self.backup_store = AudioBackupStore(config.get_data_directory())
        self.service = LiveTranscriptionService(self.backup_store, capture_factory=capture_factory,
                                                **config.get_session_options())
        self.aggregator = OutcomeAggregator()

    def _callbacks(self) -> LiveTranscriptionCallbacks:
        def on_transcript(text: str, is_final: bool) -> None:
            console.print(text, end="", style="bold" if is_final else None, highlight=False)

        def on_error(error: Exception) -> None:
            console.print(f"\n❌ {error}", style="red")

        def on_status_change(status: SessionStatus) -> None:
            style = {"connected": "green", "disconnected": "yellow"}.get(status.value, "blue")
            console.print(f"[{status.value}]", style=style)

        return LiveTranscriptionCallbacks(on_transcript, on_error, on_status_change)

    async def run(self, session_id: str, question_id: str, provider: str,
                  duration: Optional[float]) -> None:
        try:
            credentials = self.config.get_provider_credentials(provider)
            options = self.config.get_provider_options(provider)
            session = await self.service.start(
                provider, credentials, self._callbacks(),
                session_id=session_id, parameter_id=question_id, provider_options=options)
            try:
                if duration:
                    console.print(f"🎙️  Recording for {duration:g}s...", style="blue")
                    await asyncio.sleep(duration)
                else:
                    console.print("🎙️  Recording. Press Enter to stop.", style="blue")
                    await asyncio.get_running_loop().run_in_executor(None, sys.stdin.readline)
                await session.drain()
            finally:
                result = await self.service.stop(session)
        finally:
            self.aggregator.shutdown()

        console.print()
        console.print(Panel(result.transcript or "(no speech)", title="Transcript"))
        summary = self.aggregator.get_summary()
        console.print(f"Chunks: {summary['succeeded']} ok, {summary['failed']} failed, "
                      f"{summary['discarded']} discarded. Audio: {len(result.audio_blob)} bytes "
                      f"({result.mime_type})")


async def run_backups_command(config: BarscribeConfig, args: argparse.Namespace) -> None:
    store = AudioBackupStore(config.get_data_directory())

    if args.backups_command == "stats":
        stats = await store.stats()
        console.print(f"{stats['count']} backups, {stats['total_size_bytes']} bytes in {store.backups_dir}")

    elif args.backups_command == "list":
        if args.question:
            records = await store.get_by_question(args.session, args.question)
        else:
            records = sorted(await store.get_by_session(args.session), key=lambda r: r.timestamp)
        table = Table(title=f"Backups for session {args.session}")
        table.add_column("Timestamp", justify="right")
        table.add_column("Question")
        table.add_column("Type")
        table.add_column("Bytes", justify="right")
        for record in records:
            table.add_row(str(record.timestamp), record.parameter_id, record.mime_type, str(record.size_bytes))
        console.print(table)

    elif args.backups_command == "clear":
        await store.clear_all()
        console.print("✅ All backups cleared", style="green")


def setup_logging(config, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'data/logs/barscribe.log')
    console_output = config.get('logging.console_output', True)

    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    ))
    handlers.append(file_handler)

    # Console handler - only if enabled in config
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)  # Only show warnings and above on console
        console_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info("barscribe starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="barscribe - interview answer capture and live transcription")
    parser.add_argument("--config", type=str, default="barscribe.yaml",
                        help="Path to configuration YAML file (default: barscribe.yaml)")
    parser.add_argument("--log-level", type=str, choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Set logging level (overrides config)")
    parser.add_argument("--version", action="version", version="barscribe v0.1.0")

    commands = parser.add_subparsers(dest="command", required=True)

    record = commands.add_parser("record", help="Record and transcribe one answer")
    record.add_argument("--session", required=True, help="Interview session id")
    record.add_argument("--question", required=True, help="Question (rubric parameter) id")
    record.add_argument("--provider", help="Transcription provider (overrides config)")
    record.add_argument("--duration", type=float,
                        help="Stop after this many seconds instead of waiting for Enter")

    backups = commands.add_parser("backups", help="Inspect or clear audio backups")
    backup_commands = backups.add_subparsers(dest="backups_command", required=True)
    backup_commands.add_parser("stats", help="Count and total size of stored backups")
    listing = backup_commands.add_parser("list", help="List backups of a session")
    listing.add_argument("--session", required=True)
    listing.add_argument("--question")
    backup_commands.add_parser("clear", help="Delete every backup")

    return parser


def main(argv=None) -> None:
    """Main entry point for barscribe."""
    args = build_parser().parse_args(argv)

    try:
        config = BarscribeConfig(args.config)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"❌ {e}", style="red")
        sys.exit(2)
    setup_logging(config, args.log_level or config.get('logging.level', 'INFO'))

    try:
        if args.command == "record":
            provider = args.provider or config.get_default_provider()
            asyncio.run(Recorder(config).run(args.session, args.question, provider, args.duration))
        else:
            asyncio.run(run_backups_command(config, args))
    except KeyboardInterrupt:
        console.print("\n👋 Goodbye!")
    except (BarscribeError, ValueError) as e:
        console.print(f"❌ Error: {e}", style="red")
        logger.error(f"Application error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
