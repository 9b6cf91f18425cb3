"""Deliver background outcomes through a chat transport."""

import logging

from conduit.background.supervisor import BackgroundOutcome, OutcomeStatus
from conduit.chat.types import ActivityKind, Transport

logger = logging.getLogger(__name__)


class TransportOutcomeSink:
    """OutcomeSink that reports job progress and results to the user's chat."""

    def __init__(self, transport: Transport) -> None:
        self._transport = transport

    async def __call__(self, outcome: BackgroundOutcome) -> None:
        chat_id = outcome.job.chat_id
        match outcome.status:
            case OutcomeStatus.RUNNING:
                if outcome.attempt > 1:
                    await self._transport.send_text(
                        chat_id,
                        f"🔄 Retrying (attempt {outcome.attempt}/{outcome.max_attempts})...",
                    )
                await self._transport.show_activity(
                    chat_id, ActivityKind.UPLOAD_DOCUMENT
                )
            case OutcomeStatus.RETRYING:
                await self._transport.send_text(
                    chat_id,
                    f"⚠️ Attempt {outcome.attempt} failed. "
                    f"Retrying in {outcome.retry_in_seconds:g} seconds...",
                )
            case OutcomeStatus.SUCCEEDED:
                await self._deliver_success(outcome)
            case OutcomeStatus.FAILED:
                await self._transport.send_text(
                    chat_id,
                    f"❌ Failed after {outcome.max_attempts} attempts.\n\n"
                    f"Error: {outcome.error or 'Unknown error'}\n\n"
                    "Please try again later.",
                )

    async def _deliver_success(self, outcome: BackgroundOutcome) -> None:
        chat_id = outcome.job.chat_id
        if outcome.artifact_path is not None:
            await self._transport.send_file(chat_id, outcome.artifact_path)

        if outcome.recovered:
            await self._transport.send_text(chat_id, "✅ Completed successfully!")
            return

        lines = ["✅ Complete!"]
        original = outcome.details.get("originalFile")
        if original:
            lines.append(f"\n📄 Original: {str(original).rsplit('/', 1)[-1]}")
        size = outcome.details.get("fileSizeReadable")
        if size:
            lines.append(f"📊 Size: {size}")
        await self._transport.send_text(chat_id, "\n".join(lines))
        logger.info(
            "background_outcome_delivered",
            extra={"user.id": outcome.job.user_id, "file.path": str(outcome.artifact_path)},
        )
