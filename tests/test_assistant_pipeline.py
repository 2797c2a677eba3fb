import http.client
import io
import json
import os
import tempfile
import unittest
import urllib.error
from unittest.mock import patch

import assistant_client
from assistant_client import (
    INIT_ERROR_LINE,
    NOT_INITIALIZED_LINE,
    AssistantClient,
    AssistantConfigurationError,
    AssistantMessage,
    AssistantQueryPipeline,
    AssistantServiceError,
    ConversationContext,
    RunStatus,
)
from neural_terminal import TerminalOutput


class LoggingRecorder:
    def __init__(self):
        self.events = []

    def log(self, event, **details):
        self.events.append((event, details))


class ScriptedClient:
    """Stands in for the HTTP client and records every call in order."""

    def __init__(self, statuses=(), messages=None, fail_on=None, context_error=None):
        self.statuses = list(statuses)
        self.messages = messages if messages is not None else [AssistantMessage("assistant", "All systems nominal.")]
        self.fail_on = fail_on
        self.context_error = context_error
        self.calls = []

    def _call(self, name):
        self.calls.append(name)
        if self.fail_on == name:
            raise AssistantServiceError(f"{name} exploded")

    def create_context(self):
        self._call("create_context")
        if self.context_error:
            raise self.context_error
        return ConversationContext("thread_1")

    def post_message(self, context, text):
        self._call("post_message")
        self.posted = (context.id, text)

    def start_run(self, context):
        self._call("start_run")
        return "run_1"

    def run_status(self, context, run_id):
        self._call("run_status")
        return self.statuses.pop(0)

    def latest_messages(self, context, limit=1):
        self._call("latest_messages")
        return self.messages


def make_pipeline(client, **config):
    output = TerminalOutput({}, quiet=True)
    config.setdefault("poll_interval", 1.0)
    logger = LoggingRecorder()
    pipeline = AssistantQueryPipeline(client, output, config, logger=logger)
    return pipeline, output, logger


class PipelineTests(unittest.TestCase):
    def setUp(self):
        patcher = patch("assistant_client.time.sleep")
        self.sleep = patcher.start()
        self.addCleanup(patcher.stop)

    def test_success_runs_steps_in_order(self):
        client = ScriptedClient(statuses=[RunStatus.PENDING, RunStatus.COMPLETED])
        pipeline, output, logger = make_pipeline(client)
        self.assertTrue(pipeline.initialize())
        result = pipeline.query("status of node 7?")
        self.assertEqual(
            client.calls,
            ["create_context", "post_message", "start_run", "run_status", "run_status", "latest_messages"],
        )
        self.assertEqual(client.posted, ("thread_1", "status of node 7?"))
        self.assertEqual(result, "All systems nominal.")
        self.assertEqual(output.blocks[0].text, "Processing query...\n")
        self.assertEqual(output.blocks[0].style, "dim")
        self.assertTrue(output.blocks[-1].markup)
        self.assertEqual(output.blocks[-1].text, "All systems nominal.\n")
        self.sleep.assert_called_once_with(1.0)
        self.assertIn("query_complete", [event for event, _ in logger.events])

    def test_reply_is_formatted(self):
        reply = "Core temperature is 18.2°C (nominal)."
        client = ScriptedClient(statuses=[RunStatus.COMPLETED], messages=[AssistantMessage("assistant", reply)])
        pipeline, output, _ = make_pipeline(client)
        pipeline.initialize()
        pipeline.query("temp?")
        self.assertEqual(
            output.blocks[-1].text,
            'Core temperature is <span class="bright">18.2</span>°C <span class="dim">(nominal)</span>.\n',
        )
        self.assertEqual(output.text, "Processing query...\n" + reply + "\n")

    def test_succeeds_on_last_allowed_poll(self):
        client = ScriptedClient(statuses=[RunStatus.PENDING] * 49 + [RunStatus.COMPLETED])
        pipeline, output, _ = make_pipeline(client)
        pipeline.initialize()
        self.assertIsNotNone(pipeline.query("hello"))
        self.assertEqual(client.calls.count("run_status"), 50)
        self.assertEqual(self.sleep.call_count, 49)
        self.assertNotIn("error", [block.style for block in output.blocks])

    def test_times_out_without_extra_poll(self):
        client = ScriptedClient(statuses=[RunStatus.PENDING] * 50 + [RunStatus.COMPLETED])
        pipeline, output, _ = make_pipeline(client)
        pipeline.initialize()
        self.assertIsNone(pipeline.query("hello"))
        self.assertEqual(client.calls.count("run_status"), 50)
        self.assertNotIn("latest_messages", client.calls)
        self.assertEqual(output.blocks[-1].text, "Error processing query: Run timed out\n")
        self.assertEqual(output.blocks[-1].style, "error")

    def test_poll_budget_is_configurable(self):
        client = ScriptedClient(statuses=[RunStatus.PENDING] * 3)
        pipeline, output, _ = make_pipeline(client, max_poll_attempts=3, poll_interval=0.5)
        pipeline.initialize()
        pipeline.query("hello")
        self.assertEqual(client.calls.count("run_status"), 3)
        self.assertEqual([call.args[0] for call in self.sleep.call_args_list], [0.5, 0.5])

    def test_terminal_failure_statuses(self):
        for status in (RunStatus.FAILED, RunStatus.CANCELLED, RunStatus.EXPIRED):
            with self.subTest(status=status):
                client = ScriptedClient(statuses=[RunStatus.PENDING, status])
                pipeline, output, _ = make_pipeline(client)
                pipeline.initialize()
                self.assertIsNone(pipeline.query("hello"))
                self.assertEqual(
                    output.blocks[-1].text,
                    f"Error processing query: Run ended with status: {status.value}\n",
                )
                self.assertNotIn("latest_messages", client.calls)

    def test_transport_failure_renders_single_error_line(self):
        for step in ("post_message", "start_run", "run_status", "latest_messages"):
            with self.subTest(step=step):
                client = ScriptedClient(statuses=[RunStatus.COMPLETED], fail_on=step)
                pipeline, output, logger = make_pipeline(client)
                pipeline.initialize()
                self.assertIsNone(pipeline.query("hello"))
                errors = [block for block in output.blocks if block.style == "error"]
                self.assertEqual(len(errors), 1)
                self.assertEqual(errors[0].text, f"Error processing query: {step} exploded\n")
                self.assertFalse(any(block.markup for block in output.blocks))
                self.assertIn("query_failed", [event for event, _ in logger.events])

    def test_non_assistant_reply_is_an_error(self):
        client = ScriptedClient(statuses=[RunStatus.COMPLETED], messages=[AssistantMessage("user", "echo")])
        pipeline, output, _ = make_pipeline(client)
        pipeline.initialize()
        self.assertIsNone(pipeline.query("hello"))
        self.assertEqual(output.blocks[-1].text, "Error processing query: No assistant reply found\n")

    def test_initialization_failure_short_circuits_queries(self):
        client = ScriptedClient(context_error=AssistantConfigurationError("No API key configured"))
        pipeline, output, logger = make_pipeline(client)
        self.assertFalse(pipeline.initialize())
        self.assertFalse(pipeline.available)
        self.assertEqual(output.blocks[-1].text, INIT_ERROR_LINE)
        pipeline.query("hello")
        pipeline.query("again")
        self.assertEqual(client.calls, ["create_context"])
        self.assertEqual(output.blocks[-1].text, NOT_INITIALIZED_LINE)
        self.assertEqual(output.blocks[-1].style, "error")
        self.assertNotIn("Processing query...\n", output.text)
        self.assertIn("context_failed", [event for event, _ in logger.events])

    def test_run_status_mapping(self):
        self.assertEqual(RunStatus.from_api("completed"), RunStatus.COMPLETED)
        self.assertEqual(RunStatus.from_api("expired"), RunStatus.EXPIRED)
        for raw in ("queued", "in_progress", "requires_action", "cancelling"):
            self.assertEqual(RunStatus.from_api(raw), RunStatus.PENDING)
        self.assertTrue(RunStatus.CANCELLED.is_failure)
        self.assertFalse(RunStatus.PENDING.is_failure)


class FakeResponse:
    def __init__(self, payload):
        self.payload = payload

    def read(self):
        if isinstance(self.payload, bytes):
            return self.payload
        return json.dumps(self.payload).encode("utf-8")

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class ClientTests(unittest.TestCase):
    def setUp(self):
        self.env = patch.dict(os.environ, {"TEST_OPENAI_KEY": "sk-test "}, clear=False)
        self.env.start()
        self.addCleanup(self.env.stop)
        self.config = {
            "base_url": "https://assistant.example/v1/",
            "key_env": "TEST_OPENAI_KEY",
            "key_file": None,
            "assistant_id_env": None,
            "assistant_id": "asst_123",
            "timeout": 5,
        }

    def test_create_context_posts_thread(self):
        client = AssistantClient(self.config)
        with patch("assistant_client.urllib.request.urlopen", return_value=FakeResponse({"id": "thread_9"})) as urlopen:
            context = client.create_context()
        self.assertEqual(context, ConversationContext("thread_9"))
        request = urlopen.call_args.args[0]
        self.assertEqual(request.get_method(), "POST")
        self.assertEqual(request.full_url, "https://assistant.example/v1/threads")
        self.assertEqual(request.get_header("Authorization"), "Bearer sk-test")
        self.assertEqual(request.get_header("Openai-beta"), "assistants=v2")
        self.assertEqual(urlopen.call_args.kwargs["timeout"], 5.0)

    def test_message_and_run_payloads(self):
        client = AssistantClient(self.config)
        context = ConversationContext("thread_9")
        responses = [FakeResponse({"id": "msg_1"}), FakeResponse({"id": "run_1"}), FakeResponse({"status": "queued"})]
        with patch("assistant_client.urllib.request.urlopen", side_effect=responses) as urlopen:
            client.post_message(context, "ping")
            run_id = client.start_run(context)
            status = client.run_status(context, run_id)
        requests = [call.args[0] for call in urlopen.call_args_list]
        self.assertEqual(json.loads(requests[0].data), {"role": "user", "content": "ping"})
        self.assertEqual(requests[0].full_url, "https://assistant.example/v1/threads/thread_9/messages")
        self.assertEqual(json.loads(requests[1].data), {"assistant_id": "asst_123"})
        self.assertEqual(run_id, "run_1")
        self.assertEqual(requests[2].get_method(), "GET")
        self.assertEqual(requests[2].full_url, "https://assistant.example/v1/threads/thread_9/runs/run_1")
        self.assertEqual(status, RunStatus.PENDING)

    def test_latest_messages_newest_first(self):
        client = AssistantClient(self.config)
        payload = {
            "data": [
                {"role": "assistant", "content": [{"type": "text", "text": {"value": "Hello, operator."}}]},
                {"role": "user", "content": [{"type": "text", "text": {"value": "hi"}}]},
            ]
        }
        with patch("assistant_client.urllib.request.urlopen", return_value=FakeResponse(payload)) as urlopen:
            messages = client.latest_messages(ConversationContext("thread_9"))
        self.assertEqual(messages[0], AssistantMessage("assistant", "Hello, operator."))
        self.assertTrue(urlopen.call_args.args[0].full_url.endswith("/messages?order=desc&limit=1"))

    def test_missing_key_fails_without_request(self):
        config = dict(self.config, key_env="TEST_MISSING_KEY")
        client = AssistantClient(config)
        with patch("assistant_client.urllib.request.urlopen") as urlopen:
            with self.assertRaises(AssistantConfigurationError):
                client.create_context()
        urlopen.assert_not_called()

    def test_missing_assistant_id_fails(self):
        client = AssistantClient(dict(self.config, assistant_id=None))
        with self.assertRaises(AssistantConfigurationError) as ctx:
            client.create_context()
        self.assertIn("assistant id", str(ctx.exception))

    def test_http_error_carries_service_message(self):
        logger = LoggingRecorder()
        client = AssistantClient(self.config, logger=logger)
        error = urllib.error.HTTPError(
            "https://assistant.example/v1/threads",
            401,
            "Unauthorized",
            None,
            io.BytesIO(b'{"error": {"message": "Incorrect API key provided"}}'),
        )
        with patch("assistant_client.urllib.request.urlopen", side_effect=error):
            with self.assertRaises(AssistantServiceError) as ctx:
                client.create_context()
        self.assertEqual(str(ctx.exception), "HTTP 401: Incorrect API key provided")
        self.assertEqual(logger.events[0][0], "assistant_request_failed")

    def test_connection_error_is_wrapped(self):
        client = AssistantClient(self.config)
        with patch("assistant_client.urllib.request.urlopen", side_effect=urllib.error.URLError("no route")):
            with self.assertRaises(AssistantServiceError) as ctx:
                client.run_status(ConversationContext("thread_9"), "run_1")
        self.assertEqual(str(ctx.exception), "Connection failed: no route")

    def test_invalid_json_is_a_format_error(self):
        client = AssistantClient(self.config)
        with patch("assistant_client.urllib.request.urlopen", return_value=FakeResponse(b"<html>")):
            with self.assertRaises(assistant_client.ResponseFormatError):
                client.create_context()

    def test_key_file_fallback(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "openai_api_key.txt")
            with open(path, "w", encoding="utf-8") as fh:
                fh.write("sk-from-file\nsecond line\n")
            client = AssistantClient(dict(self.config, key_env="TEST_MISSING_KEY", key_file=path))
        self.assertEqual(client.api_key, "sk-from-file")


class RemoteFailureBoundaryTests(unittest.TestCase):
    """Every remote failure ends in exactly one error line, never an exception."""

    def setUp(self):
        patcher = patch("assistant_client.time.sleep")
        patcher.start()
        self.addCleanup(patcher.stop)
        env = patch.dict(os.environ, {"TEST_OPENAI_KEY": "sk-test"}, clear=False)
        env.start()
        self.addCleanup(env.stop)
        config = {"key_env": "TEST_OPENAI_KEY", "assistant_id_env": None, "assistant_id": "asst_1"}
        self.client = AssistantClient(config)
        self.pipeline, self.output, self.logger = make_pipeline(self.client)

    def initialize(self):
        with patch("assistant_client.urllib.request.urlopen", return_value=FakeResponse({"id": "thread_1"})):
            self.assertTrue(self.pipeline.initialize())

    def assert_single_error_after_processing(self, result):
        self.assertIsNone(result)
        self.assertEqual(self.output.blocks[0].text, "Processing query...\n")
        trailing = self.output.blocks[1:]
        self.assertEqual(len(trailing), 1)
        self.assertEqual(trailing[0].style, "error")
        self.assertTrue(trailing[0].text.startswith("Error processing query: "))
        self.assertIn("query_failed", [event for event, _ in self.logger.events])

    def test_undecodable_body(self):
        self.initialize()
        with patch("assistant_client.urllib.request.urlopen", return_value=FakeResponse(b"\xff\xfe")):
            result = self.pipeline.query("hi")
        self.assert_single_error_after_processing(result)
        self.assertIn("invalid JSON", self.output.blocks[-1].text)

    def test_truncated_response(self):
        self.initialize()
        with patch("assistant_client.urllib.request.urlopen", side_effect=http.client.IncompleteRead(b"")):
            result = self.pipeline.query("hi")
        self.assert_single_error_after_processing(result)
        self.assertIn("Connection failed", self.output.blocks[-1].text)

    def test_text_part_without_value_object(self):
        self.initialize()
        responses = [
            FakeResponse({"id": "msg_1"}),
            FakeResponse({"id": "run_1"}),
            FakeResponse({"status": "completed"}),
            FakeResponse({"data": [{"role": "assistant", "content": [{"type": "text", "text": "plain"}]}]}),
        ]
        with patch("assistant_client.urllib.request.urlopen", side_effect=responses):
            result = self.pipeline.query("hi")
        self.assert_single_error_after_processing(result)
        self.assertEqual(self.output.blocks[-1].text, "Error processing query: No assistant reply found\n")

    def test_content_that_is_not_a_list(self):
        self.initialize()
        responses = [
            FakeResponse({"id": "msg_1"}),
            FakeResponse({"id": "run_1"}),
            FakeResponse({"status": "completed"}),
            FakeResponse({"data": [{"role": "assistant", "content": 7}]}),
        ]
        with patch("assistant_client.urllib.request.urlopen", side_effect=responses):
            result = self.pipeline.query("hi")
        self.assert_single_error_after_processing(result)

    def test_unexpected_client_error_is_contained(self):
        self.initialize()
        with patch.object(self.client, "post_message", side_effect=TypeError("bad payload")):
            result = self.pipeline.query("hi")
        self.assert_single_error_after_processing(result)
        self.assertEqual(self.output.blocks[-1].text, "Error processing query: bad payload\n")

    def test_initialize_failures_write_init_error_line(self):
        for failure in (
            {"return_value": FakeResponse(b"\xff\xfe")},
            {"side_effect": http.client.IncompleteRead(b"")},
            {"side_effect": ValueError("boom")},
        ):
            with self.subTest(failure=failure):
                pipeline, output, _ = make_pipeline(self.client)
                with patch("assistant_client.urllib.request.urlopen", **failure):
                    self.assertFalse(pipeline.initialize())
                self.assertIsNone(pipeline.context)
                self.assertEqual([block.text for block in output.blocks], [INIT_ERROR_LINE])
                self.assertEqual(output.blocks[0].style, "error")
