#!/usr/bin/env python3
"""
Unit tests for the I/O edge of fal-progress.
Tests cover: queue status client, progress tracker, config, error codes.
"""

import os
import sys
import json
import tempfile
import threading
from pathlib import Path
from unittest import mock

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

import unittest

import requests

from falprogress.core.constants import ErrorCode, QueueStatus
from falprogress.core.error_codes import QueueError, is_retryable
from falprogress.core.models import QueueStatusEvent
from falprogress.core.progress_strategy import create_progress_strategy
from falprogress.core.tracker import ProgressTracker
from falprogress.core.config import AppConfig
from falprogress.core import queue_client
from falprogress.core.queue_client import fetch_status, watch_request, status_url


def _response(status_code=200, payload=None, text=""):
    resp = mock.Mock()
    resp.status_code = status_code
    resp.text = text
    resp.json.return_value = payload
    return resp


def _fixed_clock():
    return 0.0


class TestQueueClient(unittest.TestCase):
    """Test status fetching against a mocked requests layer."""

    def test_status_url(self):
        self.assertEqual(
            status_url("fal-ai/nano-banana/", "abc"),
            "https://queue.fal.run/fal-ai/nano-banana/requests/abc/status",
        )

    @mock.patch.object(queue_client.requests, 'get')
    def test_fetch_status(self, mock_get):
        mock_get.return_value = _response(200, {
            'status': 'IN_PROGRESS',
            'logs': [{'message': 'Animating frame 3', 'level': 'INFO'}],
        })
        event = fetch_status("fal-ai/app", "req-1", api_key="secret")

        self.assertEqual(event.status, QueueStatus.IN_PROGRESS)
        self.assertEqual(event.last_log_message, 'Animating frame 3')
        self.assertEqual(event.request_id, 'req-1')

        args, kwargs = mock_get.call_args
        self.assertEqual(args[0], "https://queue.fal.run/fal-ai/app/requests/req-1/status")
        self.assertEqual(kwargs['headers'], {"Authorization": "Key secret"})
        self.assertEqual(kwargs['params'], {"logs": "1"})

    @mock.patch.object(queue_client.requests, 'get')
    def test_api_key_from_env(self, mock_get):
        mock_get.return_value = _response(202, {'status': 'IN_QUEUE', 'queue_position': 4})
        with mock.patch.dict(os.environ, {'FAL_KEY': 'env-key'}):
            event = fetch_status("fal-ai/app", "req-1")
        self.assertEqual(event.queue_position, 4)
        self.assertEqual(mock_get.call_args[1]['headers'], {"Authorization": "Key env-key"})

    def test_missing_api_key(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(QueueError) as ctx:
                fetch_status("fal-ai/app", "req-1")
        self.assertEqual(ctx.exception.code, ErrorCode.MISSING_API_KEY)
        self.assertFalse(ctx.exception.retryable)

    @mock.patch.object(queue_client.requests, 'get')
    def test_timeout(self, mock_get):
        mock_get.side_effect = requests.exceptions.Timeout()
        with self.assertRaises(QueueError) as ctx:
            fetch_status("fal-ai/app", "req-1", api_key="k")
        self.assertEqual(ctx.exception.code, ErrorCode.QUEUE_TIMEOUT)
        self.assertTrue(ctx.exception.retryable)

    @mock.patch.object(queue_client.requests, 'get')
    def test_connection_error(self, mock_get):
        mock_get.side_effect = requests.exceptions.ConnectionError()
        with self.assertRaises(QueueError) as ctx:
            fetch_status("fal-ai/app", "req-1", api_key="k")
        self.assertEqual(ctx.exception.code, ErrorCode.NETWORK_TRANSIENT)

    @mock.patch.object(queue_client.requests, 'get')
    def test_http_errors(self, mock_get):
        mock_get.return_value = _response(503, text="upstream down")
        with self.assertRaises(QueueError) as ctx:
            fetch_status("fal-ai/app", "req-1", api_key="k")
        self.assertEqual(ctx.exception.code, ErrorCode.QUEUE_STATUS_FAILED)
        self.assertTrue(ctx.exception.retryable)
        self.assertIn("upstream down", ctx.exception.message)
        self.assertEqual(ctx.exception.status_code, 503)
        self.assertEqual(ctx.exception.request_id, "req-1")

        mock_get.return_value = _response(404, text="")
        with self.assertRaises(QueueError) as ctx:
            fetch_status("fal-ai/app", "req-1", api_key="k")
        self.assertFalse(ctx.exception.retryable)

    @mock.patch.object(queue_client.requests, 'get')
    def test_bad_payload(self, mock_get):
        resp = _response(200)
        resp.json.side_effect = ValueError("no json")
        mock_get.return_value = resp
        with self.assertRaises(QueueError) as ctx:
            fetch_status("fal-ai/app", "req-1", api_key="k")
        self.assertEqual(ctx.exception.code, ErrorCode.QUEUE_BAD_RESPONSE)

        mock_get.return_value = _response(200, ["not", "a", "dict"])
        with self.assertRaises(QueueError) as ctx:
            fetch_status("fal-ai/app", "req-1", api_key="k")
        self.assertEqual(ctx.exception.code, ErrorCode.QUEUE_BAD_RESPONSE)


class TestWatchRequest(unittest.TestCase):
    """Test the polling loop end to end with a fake session."""

    def _patch_session(self, responses):
        session = mock.MagicMock()
        session.get.side_effect = responses
        patcher = mock.patch.object(queue_client.requests, 'Session')
        session_cls = patcher.start()
        self.addCleanup(patcher.stop)
        session_cls.return_value.__enter__.return_value = session
        return session

    def test_full_lifecycle(self):
        session = self._patch_session([
            _response(202, {'status': 'IN_QUEUE', 'queue_position': 1}),
            _response(202, {'status': 'IN_PROGRESS', 'logs': []}),
            _response(202, {'status': 'IN_PROGRESS', 'logs': [{'message': 'Denoise step 4'}]}),
            _response(200, {'status': 'COMPLETED', 'logs': []}),
        ])
        strategy = create_progress_strategy(expected_ms=10000, clock=_fixed_clock)
        updates = []
        sleeps = []

        final = watch_request("fal-ai/app", "req-1", strategy,
                              on_update=updates.append, api_key="k",
                              sleep=sleeps.append, poll_interval=0.5)

        self.assertEqual([u.step for u in updates], [5, 10, 40, 100])
        self.assertEqual(updates[1].message, "Processing... (0s elapsed, ~10s ETA)")
        self.assertEqual(final.step, 100)
        self.assertEqual(final.message, "Finalizing...")
        self.assertEqual(sleeps, [0.5, 0.5, 0.5])
        self.assertEqual(session.get.call_count, 4)

    def test_max_polls(self):
        session = self._patch_session([
            _response(202, {'status': 'IN_QUEUE'}) for _ in range(3)
        ])
        strategy = create_progress_strategy(expected_ms=10000, clock=_fixed_clock)
        final = watch_request("fal-ai/app", "req-1", strategy, api_key="k",
                              max_polls=3, sleep=lambda s: None)
        self.assertEqual(final.step, 5)
        self.assertEqual(session.get.call_count, 3)

    def test_error_propagates(self):
        self._patch_session([requests.exceptions.ConnectionError()])
        strategy = create_progress_strategy(expected_ms=10000)
        with self.assertRaises(QueueError):
            watch_request("fal-ai/app", "req-1", strategy, api_key="k", sleep=lambda s: None)


class TestProgressTracker(unittest.TestCase):
    """Test per-job routing."""

    def setUp(self):
        self.updates = []
        self.tracker = ProgressTracker(
            lambda job_id: create_progress_strategy(expected_ms=10000, clock=_fixed_clock),
            on_update=lambda job_id, update: self.updates.append((job_id, update.step)),
        )

    def test_call_count(self):
        self.tracker.handle_event("a", QueueStatusEvent.queued())
        self.assertEqual(self.tracker.call_count("a"), 0)
        self.tracker.handle_event("a", QueueStatusEvent.in_progress("Loading"))
        update = self.tracker.handle_event("a", QueueStatusEvent.in_progress("Loading"))
        self.assertEqual(self.tracker.call_count("a"), 2)
        self.assertEqual(update.step, 50)

    def test_completed_discards_job(self):
        self.tracker.handle_event("a", QueueStatusEvent.in_progress("Denoise"))
        update = self.tracker.handle_event("a", QueueStatusEvent.completed())
        self.assertEqual(update.step, 100)
        self.assertEqual(self.tracker.active_jobs(), [])
        self.assertEqual(self.updates, [("a", 40), ("a", 100)])

    def test_jobs_are_independent(self):
        parser_calls = []

        def factory(job_id):
            def parser(event, n):
                parser_calls.append((job_id, n))
                return None
            return create_progress_strategy(expected_ms=10000, log_parser=parser, clock=_fixed_clock)

        tracker = ProgressTracker(factory)
        tracker.handle_event("a", QueueStatusEvent.in_progress("x"))
        tracker.handle_event("a", QueueStatusEvent.in_progress("x"))
        tracker.handle_event("b", QueueStatusEvent.in_progress("x"))
        self.assertEqual(parser_calls, [("a", 1), ("a", 2), ("b", 1)])
        self.assertEqual(sorted(tracker.active_jobs()), ["a", "b"])

    def test_explicit_strategy(self):
        strategy = create_progress_strategy(expected_ms=10000, in_queue_message="Hold on")
        self.assertIs(self.tracker.track("a", strategy), strategy)
        self.assertIs(self.tracker.track("a"), strategy)
        self.tracker.discard("a")
        self.assertEqual(self.tracker.active_jobs(), [])

    def test_events_after_completion_are_ignored(self):
        self.tracker.handle_event("a", QueueStatusEvent.in_progress("Denoise"))
        self.tracker.handle_event("a", QueueStatusEvent.completed())
        late = self.tracker.handle_event("a", QueueStatusEvent.in_progress("Upload"))

        self.assertEqual((late.step, late.message), (100, "Finalizing..."))
        self.assertEqual(self.tracker.active_jobs(), [])
        self.assertTrue(self.tracker.is_finished("a"))
        self.assertEqual(self.updates, [("a", 40), ("a", 100)])

    def test_track_reopens_finished_job(self):
        self.tracker.handle_event("a", QueueStatusEvent.completed())
        self.tracker.track("a")
        self.assertFalse(self.tracker.is_finished("a"))
        update = self.tracker.handle_event("a", QueueStatusEvent.in_progress("Denoise"))
        self.assertEqual(update.step, 40)
        self.assertEqual(self.tracker.call_count("a"), 1)

    def test_concurrent_completion(self):
        tracker = ProgressTracker(
            lambda job_id: create_progress_strategy(expected_ms=10000, clock=_fixed_clock),
        )
        events = [QueueStatusEvent.in_progress("Denoise")] * 20 + [QueueStatusEvent.completed()]

        def worker():
            for event in events:
                tracker.handle_event("a", event)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(tracker.active_jobs(), [])
        self.assertTrue(tracker.is_finished("a"))

    def test_sink_error_is_logged(self):
        def sink(job_id, update):
            raise RuntimeError("ui gone")

        tracker = ProgressTracker(
            lambda job_id: create_progress_strategy(expected_ms=10000), on_update=sink,
        )
        with self.assertLogs('falprogress.core.tracker', level='ERROR'):
            update = tracker.handle_event("a", QueueStatusEvent.queued())
        self.assertEqual(update.step, 5)

    def test_concurrent_callbacks_same_job(self):
        tracker = ProgressTracker(
            lambda job_id: create_progress_strategy(expected_ms=10000, clock=_fixed_clock),
        )
        event = QueueStatusEvent.in_progress("Denoise")

        def worker():
            for _ in range(50):
                tracker.handle_event("a", event)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(tracker.call_count("a"), 400)


class TestConfig(unittest.TestCase):
    """Test JSON config defaults and validation."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = Path(self.tmpdir.name) / "config.json"

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_defaults(self):
        config = AppConfig(self.path)
        options = config.strategy_options()
        self.assertEqual(options['min_start_step'], 10)
        self.assertEqual(options['max_cap_step'], 98)
        self.assertEqual(options['in_queue_message'], "Waiting in queue...")
        self.assertEqual(config.poll_interval_sec, 1.0)
        self.assertFalse(self.path.exists())

    def test_set_clamps_and_saves(self):
        config = AppConfig(self.path)
        config.set('max_cap_step', 150)
        config.set('expected_ms', 'abc')
        config.set('poll_interval_sec', 0)
        self.assertEqual(config.get('max_cap_step'), 100)
        self.assertEqual(config.get('expected_ms'), 30000)
        self.assertEqual(config.poll_interval_sec, 0.1)

        reloaded = AppConfig(self.path)
        self.assertEqual(reloaded.get('max_cap_step'), 100)

    def test_load_validates_file(self):
        self.path.write_text(json.dumps({
            'expected_ms': 500,
            'min_start_step': -3,
            'finalizing_message': '',
        }))
        config = AppConfig(self.path)
        self.assertEqual(config.get('expected_ms'), 2000)
        self.assertEqual(config.get('min_start_step'), 0)
        self.assertEqual(config.get('finalizing_message'), "Finalizing...")

    def test_corrupt_file(self):
        self.path.write_text("{not json")
        with self.assertLogs('falprogress.core.config', level='WARNING'):
            config = AppConfig(self.path)
        self.assertEqual(config.get('max_cap_step'), 98)

    def test_strategy_from_config(self):
        config = AppConfig(self.path)
        config.set('in_queue_message', "Queued upstream")
        strategy = create_progress_strategy(**config.strategy_options())
        self.assertEqual(strategy.on_queue().message, "Queued upstream")


class TestCommandLine(unittest.TestCase):
    """Test argument validation of the watcher entry point."""

    def test_expected_ms_with_video_duration_rejected(self):
        import main
        with mock.patch.object(main, 'watch_request') as mock_watch, \
                mock.patch('sys.stderr'):
            with self.assertRaises(SystemExit) as ctx:
                main.main(["fal-ai/app", "req-1", "--expected-ms", "5000", "--video-duration", "5"])
        self.assertEqual(ctx.exception.code, 2)
        mock_watch.assert_not_called()


class TestErrorCodes(unittest.TestCase):
    """Test error code handling."""

    def test_retryable_errors(self):
        self.assertTrue(is_retryable(ErrorCode.NETWORK_TRANSIENT))
        self.assertTrue(is_retryable(ErrorCode.QUEUE_TIMEOUT))

    def test_non_retryable_errors(self):
        self.assertFalse(is_retryable(ErrorCode.MISSING_API_KEY))
        self.assertFalse(is_retryable(ErrorCode.QUEUE_BAD_RESPONSE))

    def test_queue_error_carries_http_status(self):
        err = QueueError(ErrorCode.QUEUE_STATUS_FAILED, "boom", status_code=502, request_id="req-1")
        self.assertEqual(err.status_code, 502)
        self.assertTrue(err.retryable)
        self.assertEqual(str(err), "[ERR_QUEUE_STATUS_FAILED HTTP 502] boom (request req-1)")
        self.assertFalse(QueueError(ErrorCode.QUEUE_STATUS_FAILED, "gone", status_code=404).retryable)

    def test_queue_error_auto_retryable(self):
        self.assertTrue(QueueError(ErrorCode.QUEUE_TIMEOUT, "test").retryable)
        self.assertFalse(QueueError(ErrorCode.QUEUE_STATUS_FAILED, "test").retryable)
        self.assertTrue(QueueError(ErrorCode.QUEUE_STATUS_FAILED, "test", retryable=True).retryable)


if __name__ == "__main__":
    unittest.main()
