"""Tests for the background retry supervisor."""

import asyncio
import json
import logging
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from conduit.background.artifacts import (
    ArtifactExpectation,
    scan_for_artifact,
    strip_upload_prefix,
)
from conduit.background.supervisor import (
    BackgroundSupervisor,
    LongRunningJob,
    OutcomeStatus,
)
from conduit.capabilities.connections import ProviderConnectionManager
from conduit.capabilities.providers.base import is_timeout_like
from conduit.capabilities.router import InvocationRouter
from conduit.config.models import BackgroundConfig
from conduit.errors import InvocationError, TimeoutLikeError
from tests.conftest import (
    FakeProviderSession,
    FakeSessionFactory,
    OutcomeRecorder,
    capability,
    launch_spec,
)


@pytest.fixture
def artifact_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "temp"
    directory.mkdir()
    return directory


@pytest.fixture
def fast_config(artifact_dir: Path) -> BackgroundConfig:
    return BackgroundConfig(
        retry_delay_seconds=0,
        backoff_base_seconds=0,
        grace_period_seconds=0,
        artifact_dir=artifact_dir,
    )


def make_job(artifact_dir: Path, source: str = "12345_report.pdf") -> LongRunningJob:
    return LongRunningJob(
        user_id="12345",
        chat_id=999,
        capability_name="translate_pdf",
        arguments={"filePath": str(artifact_dir / source), "targetLang": "es"},
        artifact=ArtifactExpectation(
            directory=artifact_dir,
            prefix="translated_",
            source_name=source,
            result_key="translatedFile",
        ),
    )


async def connect_translator(
    connections: ProviderConnectionManager,
    session_factory: FakeSessionFactory,
    behavior,
) -> FakeProviderSession:
    session = session_factory.add(
        FakeProviderSession(
            "translator", [capability("translate_pdf")], {"translate_pdf": behavior}
        )
    )
    await connections.connect(launch_spec("translator"))
    return session


class TestSupervisor:
    @pytest.mark.asyncio
    async def test_success_with_reported_artifact(
        self,
        router: InvocationRouter,
        connections: ProviderConnectionManager,
        session_factory: FakeSessionFactory,
        outcomes: OutcomeRecorder,
        fast_config: BackgroundConfig,
        artifact_dir: Path,
    ):
        output = artifact_dir / "translated_report.pdf"
        output.write_bytes(b"%PDF")
        payload = json.dumps(
            {
                "translatedFile": str(output),
                "originalFile": "/x/12345_report.pdf",
                "fileSizeReadable": "1 KB",
            }
        )
        session = await connect_translator(connections, session_factory, payload)
        supervisor = BackgroundSupervisor(router, outcomes, fast_config)

        outcome = await supervisor.submit(make_job(artifact_dir))

        assert outcome.status == OutcomeStatus.SUCCEEDED
        assert outcome.artifact_path == output
        assert outcome.attempt == 1
        assert not outcome.recovered
        assert outcome.details["fileSizeReadable"] == "1 KB"
        assert len(session.calls) == 1
        assert outcomes.terminal == [outcome]

    @pytest.mark.asyncio
    async def test_three_failures_yield_terminal_failure(
        self,
        router: InvocationRouter,
        connections: ProviderConnectionManager,
        session_factory: FakeSessionFactory,
        outcomes: OutcomeRecorder,
        fast_config: BackgroundConfig,
        artifact_dir: Path,
    ):
        session = await connect_translator(
            connections, session_factory, InvocationError("unsupported font")
        )
        supervisor = BackgroundSupervisor(router, outcomes, fast_config)

        outcome = await supervisor.submit(make_job(artifact_dir))

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.error == "unsupported font"
        assert len(session.calls) == 3
        assert [o.status for o in outcomes.terminal] == [OutcomeStatus.FAILED]
        assert not any(o.status == OutcomeStatus.SUCCEEDED for o in outcomes.outcomes)
        retries = [o for o in outcomes.outcomes if o.status == OutcomeStatus.RETRYING]
        assert [o.attempt for o in retries] == [1, 2]

    @pytest.mark.asyncio
    async def test_timeout_then_artifact_found_skips_retry(
        self,
        router: InvocationRouter,
        connections: ProviderConnectionManager,
        session_factory: FakeSessionFactory,
        outcomes: OutcomeRecorder,
        artifact_dir: Path,
    ):
        async def slow_translate(arguments):
            # The work lands on disk after the acknowledgment is lost
            async def finish_later():
                await asyncio.sleep(0.02)
                (artifact_dir / "translated_report.pdf").write_bytes(b"%PDF")

            asyncio.create_task(finish_later())
            return TimeoutLikeError("Request timed out", code=-32001)

        session = await connect_translator(connections, session_factory, slow_translate)
        config = BackgroundConfig(
            retry_delay_seconds=0,
            backoff_base_seconds=0,
            grace_period_seconds=0.2,
            artifact_dir=artifact_dir,
        )
        supervisor = BackgroundSupervisor(router, outcomes, config)

        outcome = await supervisor.submit(make_job(artifact_dir))

        assert outcome.status == OutcomeStatus.SUCCEEDED
        assert outcome.recovered
        assert outcome.artifact_path == artifact_dir / "translated_report.pdf"
        assert len(session.calls) == 1
        assert [o.status for o in outcomes.terminal] == [OutcomeStatus.SUCCEEDED]

    @pytest.mark.asyncio
    async def test_timeout_without_artifact_retries(
        self,
        router: InvocationRouter,
        connections: ProviderConnectionManager,
        session_factory: FakeSessionFactory,
        outcomes: OutcomeRecorder,
        fast_config: BackgroundConfig,
        artifact_dir: Path,
    ):
        session = await connect_translator(
            connections, session_factory, InvocationError("MCP error -32001: timeout")
        )
        supervisor = BackgroundSupervisor(router, outcomes, fast_config)

        outcome = await supervisor.submit(make_job(artifact_dir))

        assert outcome.status == OutcomeStatus.FAILED
        assert len(session.calls) == 3

    @pytest.mark.asyncio
    async def test_default_delay_schedule(
        self,
        router: InvocationRouter,
        connections: ProviderConnectionManager,
        session_factory: FakeSessionFactory,
        outcomes: OutcomeRecorder,
        artifact_dir: Path,
    ):
        await connect_translator(
            connections, session_factory, InvocationError("unsupported font")
        )
        supervisor = BackgroundSupervisor(
            router, outcomes, BackgroundConfig(artifact_dir=artifact_dir)
        )

        with patch(
            "conduit.background.supervisor.asyncio.sleep", new=AsyncMock()
        ) as sleep:
            outcome = await supervisor.submit(make_job(artifact_dir))

        assert outcome.status == OutcomeStatus.FAILED
        # backoff after attempt 1, pause before 2, backoff after 2, pause before 3
        assert [c.args[0] for c in sleep.await_args_list] == [10, 5, 20, 5]
        retries = [o for o in outcomes.outcomes if o.status == OutcomeStatus.RETRYING]
        assert [o.retry_in_seconds for o in retries] == [10, 20]

    @pytest.mark.asyncio
    async def test_timeout_waits_grace_period_before_scanning(
        self,
        router: InvocationRouter,
        connections: ProviderConnectionManager,
        session_factory: FakeSessionFactory,
        outcomes: OutcomeRecorder,
        artifact_dir: Path,
    ):
        await connect_translator(
            connections,
            session_factory,
            TimeoutLikeError("Request timed out", code=-32001),
        )
        supervisor = BackgroundSupervisor(
            router, outcomes, BackgroundConfig(artifact_dir=artifact_dir)
        )

        with patch(
            "conduit.background.supervisor.asyncio.sleep", new=AsyncMock()
        ) as sleep:
            outcome = await supervisor.submit(make_job(artifact_dir))

        assert outcome.status == OutcomeStatus.FAILED
        assert not outcome.recovered
        assert [c.args[0] for c in sleep.await_args_list] == [10, 10, 5, 10, 20, 5, 10]

    @pytest.mark.asyncio
    async def test_missing_reported_artifact_counts_as_failure(
        self,
        router: InvocationRouter,
        connections: ProviderConnectionManager,
        session_factory: FakeSessionFactory,
        outcomes: OutcomeRecorder,
        fast_config: BackgroundConfig,
        artifact_dir: Path,
    ):
        payload = json.dumps({"translatedFile": str(artifact_dir / "nowhere.pdf")})
        session = await connect_translator(connections, session_factory, payload)
        supervisor = BackgroundSupervisor(router, outcomes, fast_config)

        outcome = await supervisor.submit(make_job(artifact_dir))

        assert outcome.status == OutcomeStatus.FAILED
        assert "nowhere.pdf" in (outcome.error or "")
        assert len(session.calls) == 3

    @pytest.mark.asyncio
    async def test_second_attempt_succeeds(
        self,
        router: InvocationRouter,
        connections: ProviderConnectionManager,
        session_factory: FakeSessionFactory,
        outcomes: OutcomeRecorder,
        fast_config: BackgroundConfig,
        artifact_dir: Path,
    ):
        output = artifact_dir / "translated_report.pdf"
        attempts = 0

        async def flaky(arguments):
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                return InvocationError("worker crashed")
            output.write_bytes(b"%PDF")
            return json.dumps({"translatedFile": str(output)})

        await connect_translator(connections, session_factory, flaky)
        supervisor = BackgroundSupervisor(router, outcomes, fast_config)

        outcome = await supervisor.submit(make_job(artifact_dir))

        assert outcome.status == OutcomeStatus.SUCCEEDED
        assert outcome.attempt == 2
        running = [o.attempt for o in outcomes.outcomes if o.status == OutcomeStatus.RUNNING]
        assert running == [1, 2]

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(
        self,
        router: InvocationRouter,
        connections: ProviderConnectionManager,
        session_factory: FakeSessionFactory,
        outcomes: OutcomeRecorder,
        artifact_dir: Path,
    ):
        active = 0
        peak = 0

        async def tracked(arguments):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return "ok"

        await connect_translator(connections, session_factory, tracked)
        config = BackgroundConfig(max_concurrent=2, artifact_dir=artifact_dir)
        supervisor = BackgroundSupervisor(router, outcomes, config)

        for _ in range(6):
            supervisor.submit(
                LongRunningJob(
                    user_id="u",
                    chat_id=1,
                    capability_name="translate_pdf",
                    arguments={},
                )
            )
        await supervisor.wait_idle()

        assert peak == 2
        assert len(outcomes.terminal) == 6
        assert supervisor.active_count == 0

    @pytest.mark.asyncio
    async def test_sink_failure_does_not_crash_job(
        self,
        router: InvocationRouter,
        connections: ProviderConnectionManager,
        session_factory: FakeSessionFactory,
        fast_config: BackgroundConfig,
    ):
        async def broken_sink(outcome):
            raise RuntimeError("chat unreachable")

        await connect_translator(connections, session_factory, "ok")
        supervisor = BackgroundSupervisor(router, broken_sink, fast_config)

        outcome = await supervisor.submit(
            LongRunningJob(
                user_id="u", chat_id=1, capability_name="translate_pdf", arguments={}
            )
        )

        assert outcome.status == OutcomeStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_shutdown_cancels_jobs(
        self,
        router: InvocationRouter,
        connections: ProviderConnectionManager,
        session_factory: FakeSessionFactory,
        outcomes: OutcomeRecorder,
        fast_config: BackgroundConfig,
    ):
        async def forever(arguments):
            await asyncio.Event().wait()

        await connect_translator(connections, session_factory, forever)
        supervisor = BackgroundSupervisor(router, outcomes, fast_config)
        task = supervisor.submit(
            LongRunningJob(
                user_id="u", chat_id=1, capability_name="translate_pdf", arguments={}
            )
        )
        await asyncio.sleep(0.01)

        await supervisor.shutdown()

        assert task.cancelled()
        assert outcomes.terminal == []


class TestArtifacts:
    def test_strip_upload_prefix(self):
        assert strip_upload_prefix("12345_report.pdf") == "report.pdf"
        assert strip_upload_prefix("report_2024.pdf") == "report_2024.pdf"

    def test_scan_matches_prefix_and_source_name(self, artifact_dir: Path):
        (artifact_dir / "12345_report.pdf").write_bytes(b"source")
        (artifact_dir / "translated_other.pdf").write_bytes(b"x")
        match = artifact_dir / "translated_es_report.pdf"
        match.write_bytes(b"x")

        found = scan_for_artifact(
            ArtifactExpectation(
                directory=artifact_dir,
                prefix="translated_",
                source_name="12345_report.pdf",
            )
        )

        assert found == match

    def test_scan_missing_directory(self, tmp_path: Path):
        expectation = ArtifactExpectation(
            directory=tmp_path / "absent", prefix="translated_", source_name="a.pdf"
        )
        assert scan_for_artifact(expectation) is None


class TestTimeoutClassification:
    def test_timeout_like_error(self):
        assert is_timeout_like(TimeoutLikeError("lost"))

    def test_request_timeout_code(self):
        assert is_timeout_like(InvocationError("gone", code=-32001))

    def test_timeout_in_message(self):
        assert is_timeout_like(RuntimeError("Request timeout after 60000ms"))
        assert is_timeout_like(RuntimeError("Timed out while waiting for response"))

    def test_ordinary_failure(self):
        assert not is_timeout_like(InvocationError("unsupported font", code=-32603))


@pytest.mark.asyncio
async def test_submit_logs_active_job_count(
    router: InvocationRouter,
    connections: ProviderConnectionManager,
    session_factory: FakeSessionFactory,
    outcomes: OutcomeRecorder,
    fast_config: BackgroundConfig,
    caplog: pytest.LogCaptureFixture,
):
    await connect_translator(connections, session_factory, "done")
    supervisor = BackgroundSupervisor(router, outcomes, fast_config)
    job = LongRunningJob(
        user_id="u", chat_id=1, capability_name="translate_pdf", arguments={}
    )

    with caplog.at_level(logging.INFO, logger="conduit.background.supervisor"):
        supervisor.submit(job)
        supervisor.submit(job)
        assert supervisor.active_count == 2
        await supervisor.wait_idle()

    submitted = [
        getattr(r, "job.active")
        for r in caplog.records
        if r.message == "background_job_submitted"
    ]
    assert submitted == [1, 2]
    assert supervisor.active_count == 0
