"""Tests for the batch orchestrator."""

import asyncio
from dataclasses import FrozenInstanceError, replace

import pytest

from srt_ai_translator.batch import BatchAlreadyRunning, BatchTranslator
from srt_ai_translator.config import RunOptions, TranslatorConfig
from srt_ai_translator.models import BatchStatus, ErrorKind, SubtitleEntry, TranslationError
from srt_ai_translator.progress import ProgressObserver

from conftest import API, FakeServer, chunked, sse_lines, status, stream


FAILED = TranslationError(ErrorKind.SERVER, "earlier failure", code=500, retryable=True)


class RecordingObserver(ProgressObserver):

    def __init__(self):
        self.statuses = []
        self.finished = []
        self.attempted = []

    def on_batch_status(self, status, current_entry_id):
        self.statuses.append((status, current_entry_id))

    def on_attempt(self, entry_id, attempt):
        self.attempted.append(entry_id)

    def on_entry_finished(self, entry):
        self.finished.append((entry.id, entry.translated_text, entry.error))


def run(server, coro_factory):
    async def go():
        async with server.http_client() as http:
            return await coro_factory(http)
    return asyncio.run(go())


class TestRunAll:

    def test_translates_in_order(self, entries, fast_options):
        server = FakeServer(stream("Hola"), stream("Mundo"), stream("Adiós"))
        observer = RecordingObserver()

        async def go(http):
            translator = BatchTranslator(observer=observer, http_client=http)
            summary = await translator.run_all(entries, API, fast_options)
            return translator, summary

        translator, summary = run(server, go)

        assert [e.translated_text for e in entries] == ["Hola", "Mundo", "Adiós"]
        assert all(e.error is None for e in entries)
        assert server.prompts == ["Hello", "World", "Bye"]
        assert summary.succeeded == 3
        assert summary.failed == 0
        assert not summary.cancelled
        assert [f[0] for f in observer.finished] == [1, 2, 3]

        assert observer.statuses == [
            (BatchStatus.RUNNING, None),
            (BatchStatus.RUNNING, 1),
            (BatchStatus.RUNNING, 2),
            (BatchStatus.RUNNING, 3),
            (BatchStatus.IDLE, None),
        ]
        assert translator.state.status is BatchStatus.IDLE
        assert translator.state.current_entry_id is None
        assert translator.state.token is None

    def test_failure_does_not_stop_batch(self, entries, fast_options):
        server = FakeServer(stream("Hola"), status(401, "bad key"), stream("Adiós"))

        async def go(http):
            return await BatchTranslator(http_client=http).run_all(entries, API, fast_options)

        summary = run(server, go)

        assert entries[0].translated_text == "Hola"
        assert entries[1].error.kind is ErrorKind.PERMISSION
        assert entries[2].translated_text == "Adiós"
        assert summary.failed_ids == [2]

    def test_every_entry_ends_with_text_or_error(self, entries, fast_options):
        server = FakeServer(stream("Hola"), status(400, "bad request"), stream())

        async def go(http):
            return await BatchTranslator(http_client=http).run_all(entries, API, fast_options)

        run(server, go)

        for entry in entries:
            assert bool(entry.translated_text and entry.error is None) != (entry.error is not None)

    def test_resets_previous_results(self, entries, fast_options):
        entries[0].translated_text = "old"
        entries[1].error = FAILED
        server = FakeServer(default=stream("new"))

        async def go(http):
            return await BatchTranslator(http_client=http).run_all(entries, API, fast_options)

        run(server, go)

        assert [e.translated_text for e in entries] == ["new", "new", "new"]
        assert all(e.error is None for e in entries)

    def test_does_not_touch_source_fields(self, entries, fast_options):
        before = [(e.id, e.start_time, e.end_time, e.text) for e in entries]
        server = FakeServer(default=stream("x"))

        async def go(http):
            return await BatchTranslator(http_client=http).run_all(entries, API, fast_options)

        run(server, go)

        assert [(e.id, e.start_time, e.end_time, e.text) for e in entries] == before

    def test_context_window(self, entries):
        server = FakeServer(default=stream("x"))
        options = RunOptions(context_enabled=True, preceding_context_count=1,
                             succeeding_context_count=1, retry_delay=0)

        async def go(http):
            return await BatchTranslator(http_client=http).run_all(entries, API, options)

        run(server, go)

        first, middle, last = server.prompts
        assert first.startswith("Context (Previous):\n---")
        assert "Hello\n---\nTranslate THIS Subtitle:\nWorld\n---\nContext (Succeeding):\nBye" in middle
        assert last.endswith("Context (Succeeding):")


class TestRetryFailed:

    def test_only_failed_entries(self, entries, fast_options):
        server = FakeServer(
            stream("Hola"), status(500, "boom"), stream("Adiós"),
            stream("Mundo"),
        )
        options = replace(fast_options, auto_retry_enabled=False)

        async def go(http):
            translator = BatchTranslator(http_client=http)
            await translator.run_all(entries, API, options)
            assert entries[1].error.kind is ErrorKind.SERVER
            return await translator.retry_failed(entries, API, options)

        summary = run(server, go)

        assert len(server.chat_requests) == 4
        assert server.prompts[-1] == "World"
        assert summary.total == 1
        assert summary.succeeded == 1
        assert entries[1].translated_text == "Mundo"
        assert entries[1].error is None
        assert entries[0].translated_text == "Hola"

    def test_context_resolves_against_full_document(self, entries):
        server = FakeServer(default=stream("x"))
        options = RunOptions(context_enabled=True, retry_delay=0)
        entries[2].error = FAILED

        async def go(http):
            return await BatchTranslator(http_client=http).retry_failed(entries, API, options)

        run(server, go)

        assert server.prompts == [
            "Context (Previous):\nWorld\n---\nTranslate THIS Subtitle:\nBye\n---\nContext (Succeeding):"
        ]

    def test_processes_failed_entries_in_list_order(self, fast_options):
        doc = [SubtitleEntry(i, "a", "b", f"line {i}") for i in (1, 2, 3, 4)]
        doc[3].error = FAILED
        doc[1].error = FAILED
        server = FakeServer(default=stream("ok"))
        observer = RecordingObserver()

        async def go(http):
            return await BatchTranslator(observer=observer, http_client=http).retry_failed(doc, API, fast_options)

        run(server, go)

        assert observer.attempted == [2, 4]

    def test_nothing_to_retry(self, entries, fast_options):
        server = FakeServer()
        observer = RecordingObserver()

        async def go(http):
            return await BatchTranslator(observer=observer, http_client=http).retry_failed(entries, API, fast_options)

        summary = run(server, go)

        assert summary.total == 0
        assert observer.statuses == []
        assert server.requests == []


class TestStop:

    def test_cancel_mid_batch(self, entries, fast_options):
        server = FakeServer(default=stream("x"))

        class StopAfterFirst(RecordingObserver):
            translator = None

            def on_entry_finished(self, entry):
                super().on_entry_finished(entry)
                self.translator.stop()

        observer = StopAfterFirst()

        async def go(http):
            translator = BatchTranslator(observer=observer, http_client=http)
            observer.translator = translator
            summary = await translator.run_all(entries, API, fast_options)
            return translator, summary

        translator, summary = run(server, go)

        assert len(server.chat_requests) == 1
        assert observer.attempted == [1]
        assert entries[0].translated_text == "x"
        assert entries[1].translated_text == "" and entries[1].error is None
        assert entries[2].translated_text == "" and entries[2].error is None
        assert summary.cancelled
        assert translator.state.status is BatchStatus.CANCELLED
        assert observer.statuses[-1] == (BatchStatus.CANCELLED, None)

    def test_stop_while_streaming(self, entries, fast_options):
        server = FakeServer(
            chunked(sse_lines("Ho", done=False), sse_lines("la"), delay=0.01),
            default=stream("never"),
        )

        class StopOnFirstDelta(RecordingObserver):
            translator = None

            def on_entry_update(self, entry_id, text, error):
                if text and error is None:
                    self.translator.stop()

        observer = StopOnFirstDelta()

        async def go(http):
            translator = BatchTranslator(observer=observer, http_client=http)
            observer.translator = translator
            return await translator.run_all(entries, API, fast_options)

        summary = run(server, go)

        assert len(server.chat_requests) == 1
        assert entries[0].error.aborted
        assert summary.cancelled
        assert observer.attempted == [1]

    def test_stop_when_idle_is_noop(self, entries, fast_options):
        server = FakeServer(default=stream("x"))

        async def go(http):
            translator = BatchTranslator(http_client=http)
            translator.stop()
            return await translator.run_all(entries, API, fast_options)

        summary = run(server, go)

        assert summary.succeeded == 3

    def test_stale_token_does_not_affect_next_batch(self, entries, fast_options):
        server = FakeServer(default=stream("x"))

        class StopOnce(RecordingObserver):
            translator = None
            stopped = False

            def on_entry_finished(self, entry):
                if not self.stopped:
                    self.stopped = True
                    self.translator.stop()

        observer = StopOnce()

        async def go(http):
            translator = BatchTranslator(observer=observer, http_client=http)
            observer.translator = translator
            first = await translator.run_all(entries, API, fast_options)
            second = await translator.run_all(entries, API, fast_options)
            return first, second, translator

        first, second, translator = run(server, go)

        assert first.cancelled
        assert not second.cancelled
        assert second.succeeded == 3
        assert translator.state.status is BatchStatus.IDLE

    def test_rejects_concurrent_batch(self, entries, fast_options):
        server = FakeServer(default=chunked(sse_lines("slow"), delay=0.05))

        async def go(http):
            translator = BatchTranslator(http_client=http)
            task = asyncio.create_task(translator.run_all(entries, API, fast_options))
            while not translator.is_running:
                await asyncio.sleep(0)
            with pytest.raises(BatchAlreadyRunning):
                await translator.run_all(entries, API, fast_options)
            return await task

        summary = run(server, go)

        assert summary.succeeded == 3


class TestSettingsSnapshot:

    def test_frozen_values(self):
        with pytest.raises(FrozenInstanceError):
            API.model_name = "other"
        with pytest.raises(FrozenInstanceError):
            RunOptions().max_retries = 10

    def test_snapshot_is_independent_of_live_settings(self):
        live = TranslatorConfig(api_key="k", base_url="https://x/v1", target_language="fr")
        api, options = live.snapshot()

        live.target_language = "de"
        live.model_name = "changed"

        assert options.target_language == "fr"
        assert api.model_name != "changed"


class TestStartChecks:

    def test_invalid_options_rejected_before_reset(self, entries):
        entries[0].translated_text = "kept"
        server = FakeServer()

        async def go(http):
            translator = BatchTranslator(http_client=http)
            with pytest.raises(ValueError):
                await translator.run_all(entries, API, RunOptions(max_retries=-1))
            return translator

        translator = run(server, go)

        assert entries[0].translated_text == "kept"
        assert translator.state.status is BatchStatus.IDLE
        assert server.requests == []

    def test_client_creation_failure_leaves_translator_idle(self, entries, fast_options, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("cannot build client")

        monkeypatch.setattr("srt_ai_translator.batch.create_client", broken)
        translator = BatchTranslator()

        with pytest.raises(RuntimeError):
            asyncio.run(translator.run_all(entries, API, fast_options))

        assert translator.state.status is BatchStatus.IDLE
        assert translator.state.token is None
        assert not translator.is_running
